"""Shared pytest fixtures."""

from unittest.mock import MagicMock

import pytest
import yaml

from postback.config import FormSettings, get_settings
from postback.forms.context import FormContext
from postback.forms.request import RequestData
from postback.forms.session import MappingSessionStore


@pytest.fixture
def temp_app_yaml(tmp_path):
    """Create a temporary app.yaml file for testing."""
    config_path = tmp_path / "app.yaml"

    def _create_config(config: dict):
        with open(config_path, "w") as f:
            yaml.safe_dump(config, f)
        return config_path

    return _create_config


@pytest.fixture(autouse=True)
def clear_settings_cache():
    """get_settings is lru_cached; keep tests independent."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def session_data():
    """Backing dict standing in for request.session."""
    return {}


@pytest.fixture
def make_context(session_data):
    """Factory for a FormContext over ``session_data``.

    Defaults to a POST with a content length so payload checks pass, and
    CSRF disabled so tests opt in explicitly.
    """

    def _make(
        params=None,
        *,
        method="POST",
        url="http://testserver/contact",
        content_length=128,
        csrf_enabled=False,
        translator=None,
        session=None,
        **settings_overrides,
    ):
        settings = FormSettings(csrf_enabled=csrf_enabled, **settings_overrides)
        request = RequestData(
            method=method,
            url=url,
            params=dict(params or {}),
            content_length=content_length,
        )
        return FormContext(
            request=request,
            session_store=MappingSessionStore(session if session is not None else session_data),
            settings=settings,
            translator=translator,
        )

    return _make


@pytest.fixture
def mock_request_factory():
    """Factory fixture that returns mock Litestar requests with a session dict."""

    def _make(
        method="POST",
        url="http://testserver/contact?x=1",
        session=None,
        form_data=None,
        query_params=None,
        headers=None,
    ):
        request = MagicMock()
        request.method = method
        request.url = url
        request.session = session if session is not None else {}
        request.headers = headers if headers is not None else {"content-length": "42"}
        request.query_params = query_params or {}

        async def _form():
            return form_data or {}

        request.form = _form
        return request

    return _make
