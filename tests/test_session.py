"""Tests for session namespaces and form state persistence."""

from datetime import date

import pytest

from postback.config import SessionConfig
from postback.forms.csrf import CsrfToken
from postback.forms.errors import FormError
from postback.forms.session import MappingSessionStore, SessionPersistence


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def backing():
    return {}


@pytest.fixture
def persistence(backing):
    return SessionPersistence(MappingSessionStore(backing))


class TestSessionNamespace:
    def test_created_lazily(self, backing):
        store = MappingSessionStore(backing)
        namespace = store.namespace("Form.Data")
        assert backing == {}
        assert namespace.get("x") is None
        assert backing["Form.Data"] == {"expires_at": None, "data": {}}

    def test_write_through(self, backing):
        namespace = MappingSessionStore(backing).namespace("Form.Data")
        namespace["contact"] = {"name": "Bob"}
        assert backing["Form.Data"]["data"] == {"contact": {"name": "Bob"}}
        del namespace["contact"]
        assert backing["Form.Data"]["data"] == {}

    def test_expired_namespace_resets(self, backing):
        clock = FakeClock()
        store = MappingSessionStore(backing, clock=clock)
        store.namespace("Form.Errors", expiration=60)["contact"] = ["x"]
        assert backing["Form.Errors"]["expires_at"] == 1060

        clock.now = 1059
        assert store.namespace("Form.Errors", expiration=60)["contact"] == ["x"]

        clock.now = 1061
        assert "contact" not in store.namespace("Form.Errors", expiration=60)

    def test_zero_expiration_lasts_for_the_session(self, backing):
        clock = FakeClock()
        store = MappingSessionStore(backing, clock=clock)
        store.namespace("Form.Data")["contact"] = {}
        clock.now = 10**9
        assert "contact" in store.namespace("Form.Data")

    def test_malformed_record_is_replaced(self, backing):
        backing["Form.Data"] = "garbage"
        namespace = MappingSessionStore(backing).namespace("Form.Data")
        assert len(namespace) == 0


class TestSessionPersistence:
    def test_reads_are_empty_by_default(self, persistence):
        assert persistence.get_values("contact") == {}
        assert persistence.get_errors("contact") == []
        assert persistence.get_csrf("contact").is_empty

    def test_values_round_trip(self, persistence):
        persistence.set_values("contact", {"name": "Bob", "tags": ["a", "b"]})
        assert persistence.get_values("contact") == {"name": "Bob", "tags": ["a", "b"]}

    def test_values_are_stored_json_ready(self, persistence, backing):
        persistence.set_values("contact", {"day": date(2024, 1, 2)})
        assert backing["Form.Data"]["data"]["contact"] == {"day": "2024-01-02"}

    def test_errors_round_trip(self, persistence, backing):
        errors = [
            FormError(message="Sent data are empty."),
            FormError(message="Field 'name' is required.", field_names=("name",)),
        ]
        persistence.set_errors("contact", errors)
        assert persistence.get_errors("contact") == errors
        assert backing["Form.Errors"]["data"]["contact"] == [
            {"message": "Sent data are empty."},
            {"message": "Field 'name' is required.", "fieldNames": ["name"]},
        ]

    def test_csrf_round_trip(self, persistence):
        token = CsrfToken(name="_csrf_abc", value="def")
        persistence.set_csrf("contact", token)
        assert persistence.get_csrf("contact") == token

    def test_forms_are_isolated(self, persistence):
        persistence.set_values("one", {"a": "1"})
        persistence.set_values("two", {"b": "2"})
        assert persistence.get_values("one") == {"a": "1"}

    def test_clear_session(self, persistence):
        persistence.set_values("contact", {"name": "Bob"})
        persistence.set_errors("contact", [FormError(message="x")])
        persistence.set_csrf("contact", CsrfToken(name="n", value="v"))
        persistence.set_values("other", {"keep": "me"})

        persistence.clear_session("contact")

        assert persistence.get_values("contact") == {}
        assert persistence.get_errors("contact") == []
        assert persistence.get_csrf("contact").is_empty
        assert persistence.get_values("other") == {"keep": "me"}

    def test_custom_namespaces(self, backing):
        config = SessionConfig(values_namespace="V", errors_namespace="E", csrf_namespace="C")
        persistence = SessionPersistence(MappingSessionStore(backing), config)
        persistence.set_values("contact", {"a": 1})
        persistence.set_errors("contact", [])
        persistence.set_csrf("contact", CsrfToken())
        assert set(backing) == {"V", "E", "C"}
