"""Tests for CSRF token issuance and verification."""

from unittest.mock import patch

import pytest

from postback.forms.core import Form
from postback.forms.csrf import CSRF_FIELD_PREFIX, CsrfToken
from postback.forms.fields import SubmitButton, Text
from postback.forms.states import DispatchState
from postback.lib.exceptions import ConfigurationError


class GuardedForm(Form):
    id = "guarded"

    def init(self):
        super().init()
        self.add_fields(Text("name"), SubmitButton("save"))


def issued_form(make_context, session):
    """Render a form once so the session holds a token pair."""
    form = GuardedForm(make_context(method="GET", csrf_enabled=True, session=session))
    form.render()
    return form.csrf.token


def submitting_form(make_context, session, params):
    return GuardedForm(make_context(params, csrf_enabled=True, session=session))


class TestCsrfToken:
    def test_empty(self):
        assert CsrfToken().is_empty
        assert CsrfToken(name="n").is_empty
        assert not CsrfToken(name="n", value="v").is_empty


class TestIssue:
    def test_render_issues_and_persists_pair(self, make_context):
        session = {}
        token = issued_form(make_context, session)
        assert token.name.startswith(CSRF_FIELD_PREFIX)
        assert len(token.value) == 64
        assert session["Form.Csrf"]["data"]["guarded"] == {"name": token.name, "value": token.value}

    def test_existing_pair_is_reused(self, make_context):
        session = {}
        first = issued_form(make_context, session)
        second = issued_form(make_context, session)
        assert first == second

    def test_successive_issues_differ(self, make_context):
        form = GuardedForm(make_context(method="GET", csrf_enabled=True))
        form.ensure_state(DispatchState.INITIALIZED)
        with patch("postback.forms.csrf.time.time_ns", return_value=1):
            one = form.csrf.issue_tokens()
        with patch("postback.forms.csrf.time.time_ns", return_value=2):
            two = form.csrf.issue_tokens()
        assert one.name != two.name
        assert one.value != two.value

    def test_csrf_field_markup(self, make_context):
        form = GuardedForm(make_context(method="GET", csrf_enabled=True))
        view = form.render()
        html = str(view.csrf)
        assert 'type="hidden"' in html
        assert f'name="{form.csrf.token.name}"' in html
        assert f'value="{form.csrf.token.value}"' in html


class TestVerify:
    def test_matching_token_passes(self, make_context):
        session = {}
        token = issued_form(make_context, session)
        form = submitting_form(make_context, session, {"save": "1", token.name: token.value})
        result = form.submit()
        assert result.result == 1
        assert not result.errors

    def test_token_rotates_after_success(self, make_context):
        session = {}
        token = issued_form(make_context, session)
        form = submitting_form(make_context, session, {"save": "1", token.name: token.value})
        form.submit()
        assert session["Form.Csrf"]["data"]["guarded"]["value"] != token.value

    @pytest.mark.parametrize("mutate", ["name", "value"])
    def test_mutated_token_fails_with_one_form_error(self, make_context, mutate):
        session = {}
        token = issued_form(make_context, session)
        name = token.name + "x" if mutate == "name" else token.name
        value = token.value + "x" if mutate == "value" else token.value
        form = submitting_form(make_context, session, {"save": "1", name: value})

        result = form.submit()

        assert result.result == 0
        assert len(result.errors) == 1
        assert result.errors[0].is_form_level
        assert result.errors[0].message == "Form hash expired, please submit the form again."

    def test_no_coercion(self, make_context):
        session = {}
        token = issued_form(make_context, session)
        form = submitting_form(make_context, session, {"save": "1", token.name: [token.value]})
        assert form.submit().result == 0

    def test_missing_session_pair_fails(self, make_context):
        form = submitting_form(make_context, {}, {"save": "1"})
        assert form.submit().result == 0

    def test_failure_handlers_run_in_order_despite_exceptions(self, make_context):
        session = {}
        calls = []
        context = make_context({"save": "1"}, csrf_enabled=True, session=session)

        def first(form, message):
            calls.append(("first", form.id, message))
            raise RuntimeError("handler broke")

        def second(form, message):
            calls.append(("second", form.id, message))

        context.add_csrf_error_handler(first)
        context.add_csrf_error_handler(second)

        result = GuardedForm(context).submit()

        message = "Form hash expired, please submit the form again."
        assert calls == [("first", "guarded", message), ("second", "guarded", message)]
        assert result.result == 0

    def test_handler_failure_is_logged(self, make_context, caplog):
        context = make_context({"save": "1"}, csrf_enabled=True)

        def broken(form, message):
            raise RuntimeError("handler broke")

        context.add_csrf_error_handler(broken)
        with caplog.at_level("WARNING", logger="postback.lib.hooks"):
            GuardedForm(context).submit()
        assert "csrf_failed" in caplog.text

    def test_error_message_is_translated(self, make_context):
        context = make_context(
            {"save": "1"},
            csrf_enabled=True,
            translator=lambda key, args: f"T:{key}",
        )
        result = GuardedForm(context).submit()
        assert result.errors[0].message == "T:Form hash expired, please submit the form again."


class TestDisabled:
    def test_no_check_when_disabled(self, make_context):
        form = GuardedForm(make_context({"save": "1"}, csrf_enabled=False))
        assert form.submit().result == 1

    def test_csrf_field_raises_when_disabled(self, make_context):
        form = GuardedForm(make_context(csrf_enabled=False))
        with pytest.raises(ConfigurationError, match="CSRF"):
            form.csrf_field()
