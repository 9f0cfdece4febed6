"""Tests for the configuration error handler and the observability facade."""

from unittest.mock import MagicMock, patch

import pytest

from postback.lib import observability
from postback.lib.exceptions import (
    ConfigurationError,
    DispatchError,
    PostbackError,
    configuration_error_handler,
)


@pytest.fixture
def fake_request():
    """Create a minimal mock request for the error handler."""
    request = MagicMock()
    request.method = "POST"
    request.url.path = "/contact"
    request.headers.get.return_value = "application/json"
    request.app.debug = False
    return request


class TestTaxonomy:
    def test_configuration_error_is_runtime_error(self):
        assert issubclass(ConfigurationError, PostbackError)
        assert issubclass(ConfigurationError, RuntimeError)

    def test_dispatch_error(self):
        assert issubclass(DispatchError, PostbackError)


class TestObservabilityException:
    """Test the observability.exception() facade function."""

    def test_returns_true_when_available(self):
        with patch.object(observability, "_logfire", MagicMock()) as mock_lf, \
             patch.object(observability, "_configured", True):
            assert observability.exception("test error") is True
            mock_lf.exception.assert_called_once_with("test error")

    def test_returns_false_when_unavailable(self):
        with patch.object(observability, "_logfire", None), \
             patch.object(observability, "_configured", False):
            assert observability.exception("test error") is False

    def test_span_without_logfire_yields_none(self):
        with patch.object(observability, "_configured", False):
            with observability.span("form.submit", form_id="contact") as span:
                assert span is None

    def test_span_uses_logfire_when_configured(self):
        with patch.object(observability, "_logfire", MagicMock()) as mock_lf, \
             patch.object(observability, "_configured", True):
            with observability.span("form.submit", form_id="contact"):
                pass
            mock_lf.span.assert_called_once_with("form.submit", form_id="contact")


class TestConfigurationErrorHandler:
    def test_json_response_hides_detail(self, fake_request):
        response = configuration_error_handler(fake_request, ConfigurationError("No form id defined."))
        assert response.status_code == 500
        assert response.content == {"status_code": 500, "detail": "Internal Server Error"}

    def test_debug_exposes_detail(self, fake_request):
        fake_request.app.debug = True
        response = configuration_error_handler(fake_request, ConfigurationError("No form id defined."))
        assert response.content["detail"] == "No form id defined."

    def test_html_for_browsers(self, fake_request):
        fake_request.headers.get.return_value = "text/html,application/xhtml+xml"
        fake_request.app.debug = True
        response = configuration_error_handler(fake_request, ConfigurationError("<bad>"))
        assert response.media_type == "text/html"
        assert "&lt;bad&gt;" in response.content

    def test_logs_error(self, fake_request):
        with patch("postback.lib.exceptions.logger") as mock_logger:
            configuration_error_handler(fake_request, ConfigurationError("boom"))
        mock_logger.error.assert_called_once()
