"""Form lifecycle: init, pre-dispatch, submit, render, redirect.

A form moves through ``CREATED -> INITIALIZED -> PRE_DISPATCHED ->
SUBMITTED -> RENDERED -> TERMINATED`` and never back. Later stages bring
earlier ones up to date through ``ensure_state``, which also guards
against re-entry while a stage is running (e.g. ``init`` adding fields,
which itself needs an initialized form).

Usage:
    class ContactForm(Form):
        id = "contact"
        success_url = "/contact/thanks"
        error_url = "/contact"

        def init(self):
            super().init()
            self.add_fields(
                Text("name", label="Name", required=True),
                Email("email", label="Email", required=True),
                SubmitButton("send", label="Send"),
            )

    @post("/contact")
    async def submit_contact(request: Request) -> Redirect:
        form = ContactForm(await FormContext.from_litestar(request))
        form.submit()
        return form.submitted_redirect()

One form instance serves one request; never cache or share it.
"""

from __future__ import annotations

import functools
import logging
from dataclasses import dataclass, field
from typing import Any, ClassVar, Iterable, Iterator, Mapping

from litestar.response import Redirect
from litestar.status_codes import HTTP_303_SEE_OTHER
from markupsafe import Markup

from postback.forms.context import FormContext
from postback.forms.csrf import CsrfGuard
from postback.forms.errors import ErrorAggregator, FormError
from postback.forms.fields import Field, Fieldset
from postback.forms.pipeline import ValidatorPipeline
from postback.forms.registry import FieldRegistry
from postback.forms.request import canonical_url
from postback.forms.session import SessionPersistence
from postback.forms.states import (
    DEFAULT_ERROR_MESSAGES,
    METHOD_POST,
    DispatchState,
    ErrorCode,
    ResultState,
    format_message,
)
from postback.forms.submission import SubmissionProcessor, SubmissionResult
from postback.lib import observability
from postback.lib.exceptions import ConfigurationError, DispatchError

logger = logging.getLogger(__name__)

_STAGE_HOOKS = {
    "init": DispatchState.INITIALIZED,
    "pre_dispatch": DispatchState.PRE_DISPATCHED,
}


def dispatch_stage(state: DispatchState):
    """Make a stage hook a no-op once the form has reached ``state``."""

    def decorator(hook):
        if getattr(hook, "__dispatch_stage__", None) is not None:
            return hook

        @functools.wraps(hook)
        def wrapper(self, *args, **kwargs):
            if self.dispatch_state >= state:
                return None
            return hook(self, *args, **kwargs)

        wrapper.__dispatch_stage__ = state
        return wrapper

    return decorator


def _walk(entry: Field | Fieldset) -> Iterator[Field | Fieldset]:
    yield entry
    if entry.is_fieldset:
        for child in entry.ordered_children():
            yield from _walk(child)


@dataclass
class RenderContext:
    """Everything a template needs to draw the form."""

    form_id: str
    action: str
    method: str
    children: dict[str, Field | Fieldset]
    fields: dict[str, Field]
    fieldsets: dict[str, Fieldset]
    errors: list[FormError]
    values: dict[str, Any]
    result: int | None
    csrf: Markup | None = None
    form_errors: list[FormError] = field(default_factory=list)


class Form:
    """Server-rendered form with session-backed post/redirect/get support.

    Subclasses set ``id`` (unique among live forms of a context) and the
    redirect URLs, and override ``init`` to add fields. Overrides of
    ``init`` and ``pre_dispatch`` must call the base implementation first.
    Both are stage hooks: calling one again after its stage has run is a
    no-op, overrides included.
    """

    id: str | None = None
    action: str | None = None
    method: str = METHOD_POST
    success_url: str | None = None
    error_url: str | None = None
    prev_step_url: str | None = None
    next_step_url: str | None = None
    csrf_enabled: bool | None = None
    default_required: bool | None = None
    error_messages: ClassVar[Mapping[ErrorCode, str]] = DEFAULT_ERROR_MESSAGES

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        for name, state in _STAGE_HOOKS.items():
            hook = cls.__dict__.get(name)
            if hook is not None:
                setattr(cls, name, dispatch_stage(state)(hook))

    def __init__(
        self,
        context: FormContext | None = None,
        *,
        id: str | None = None,
        action: str | None = None,
        method: str | None = None,
        success_url: str | None = None,
        error_url: str | None = None,
        prev_step_url: str | None = None,
        next_step_url: str | None = None,
        csrf_enabled: bool | None = None,
        default_required: bool | None = None,
    ) -> None:
        self.context = context if context is not None else FormContext()
        if id is not None:
            self.id = id
        if action is not None:
            self.action = action
        self.method = (method or self.method).upper()
        for name, value in (
            ("success_url", success_url),
            ("error_url", error_url),
            ("prev_step_url", prev_step_url),
            ("next_step_url", next_step_url),
            ("csrf_enabled", csrf_enabled),
            ("default_required", default_required),
        ):
            if value is not None:
                setattr(self, name, value)

        self.dispatch_state = DispatchState.CREATED
        self.submitting: bool | None = None
        self.translate = False
        self.result: int | None = None
        self.values: dict[str, Any] = {}
        self.errors = ErrorAggregator()
        self.registry = FieldRegistry(self.id or "")
        self.pipeline = ValidatorPipeline(self, self.context.validators)
        self.session: SessionPersistence | None = None
        self.csrf: CsrfGuard | None = None
        self.view: RenderContext | None = None
        self._transitioning = False

    # -- Lifecycle --

    def advance(self, state: DispatchState) -> None:
        """Move forward to ``state``; never moves backwards."""
        if state > self.dispatch_state:
            self.dispatch_state = state

    def ensure_state(self, target: DispatchState, submit: bool | None = None) -> None:
        """Run every stage up to ``target`` that has not run yet.

        No-op when the form is already there, or while another stage is
        running. ``submit=None`` detects submission from the request.
        """
        if self.dispatch_state >= target or self._transitioning:
            return
        self._transitioning = True
        try:
            if self.dispatch_state < DispatchState.INITIALIZED:
                self.init()
                self.advance(DispatchState.INITIALIZED)
            if (
                target >= DispatchState.PRE_DISPATCHED
                and self.dispatch_state < DispatchState.PRE_DISPATCHED
            ):
                if submit is None:
                    submit = self.detect_submit()
                self.pre_dispatch(submit)
                self.advance(DispatchState.PRE_DISPATCHED)
        finally:
            self._transitioning = False

    @dispatch_stage(DispatchState.INITIALIZED)
    def init(self) -> None:
        """Validate identity and wire per-request collaborators.

        Raises:
            ConfigurationError: the id is missing or used by another live form
        """
        if not self.id:
            raise ConfigurationError(f"[{type(self).__name__}] No form id defined.")
        self.context.register_form(self)
        self.registry.owner = self.id

        settings = self.context.settings
        self.translate = self.context.translator is not None
        if self.default_required is None:
            self.default_required = settings.default_required
        if self.csrf_enabled is None:
            self.csrf_enabled = settings.csrf_enabled
        self.session = SessionPersistence(self.context.session_store, settings.session)
        self.csrf = CsrfGuard(self)
        self.advance(DispatchState.INITIALIZED)

    @dispatch_stage(DispatchState.PRE_DISPATCHED)
    def pre_dispatch(self, submit: bool = False) -> None:
        """Sort children, load persisted state and issue CSRF tokens.

        When not submitting, fields and fieldsets are prepared for
        rendering and the render context is built.
        """
        self.ensure_state(DispatchState.INITIALIZED)
        self.advance(DispatchState.PRE_DISPATCHED)
        self.submitting = submit
        self.registry.sort()

        if not self.errors:
            for error in self.session.get_errors(self.id):
                self.add_error(error.message, error.field_names)

        for name, value in self.session.get_values(self.id).items():
            entry = self.registry.fields.get(name)
            if entry is None or entry.is_control:
                continue
            if entry.value is None or (isinstance(entry.value, list) and not entry.value):
                entry.value = value
                self.values[name] = value

        if self.csrf_enabled:
            self.csrf.setup()

        if not submit:
            for fieldset in self.registry.fieldsets.values():
                fieldset.pre_dispatch()
            for entry in self.registry.fields.values():
                entry.pre_dispatch()
            self.view = self.build_view()

    def detect_submit(self) -> bool:
        """Whether the current request targets this form or one of its submit controls."""
        request = self.context.request
        if self._targets(self.action, self.method):
            return True
        for control in self.registry.submit_fields:
            if control.form_action is None and control.form_method is None:
                continue
            action = control.form_action if control.form_action is not None else self.action
            method = control.form_method or self.method
            if self._targets(action, method):
                return True
        logger.debug("Request %s %s does not submit form %s", request.method, request.url, self.id)
        return False

    def _targets(self, action: str | None, method: str) -> bool:
        request = self.context.request
        if request.method != method.upper():
            return False
        if not action:
            return True
        return canonical_url(action, base=request.url) == request.url

    # -- Fields --

    def add_field(self, entry: Field) -> Form:
        self._check_mutable()
        self.ensure_state(DispatchState.INITIALIZED)
        parent = self.registry.fieldsets.get(entry.fieldset_name) if entry.fieldset_name else None
        if parent is not None:
            parent.add(entry)
        else:
            self._register(entry, root=entry.fieldset_name is None)
        return self

    def add_fields(self, *entries: Field) -> Form:
        for entry in entries:
            self.add_field(entry)
        return self

    def add_fieldset(self, fieldset: Fieldset) -> Form:
        self._check_mutable()
        self.ensure_state(DispatchState.INITIALIZED)
        parent = self.registry.fieldsets.get(fieldset.fieldset_name) if fieldset.fieldset_name else None
        if parent is not None:
            parent.add(fieldset)
        else:
            self._register(fieldset, root=fieldset.fieldset_name is None)
        return self

    def register_child(self, child: Field | Fieldset) -> None:
        """Register a fieldset member (called by fieldsets on attach/add)."""
        self._check_mutable()
        self._register(child, root=False)

    def _register(self, entry: Field | Fieldset, root: bool) -> None:
        if entry.is_fieldset:
            if not entry.name:
                raise ConfigurationError(f"[{type(entry).__name__}] No fieldset name defined.")
            if self.registry.add(entry, root=root):
                entry.attach(self)
            return
        entry.attach(self)
        self.pipeline.check_field(entry)
        self.registry.add(entry, root=root)

    def remove_field(self, name: str) -> Field | Fieldset | None:
        """Remove a field, or a fieldset together with everything inside it."""
        self._check_mutable()
        entry = self.registry.remove(name)
        if entry is None:
            return None
        if entry.fieldset_name:
            parent = self.registry.fieldsets.get(entry.fieldset_name)
            if parent is not None:
                parent.remove(name)
        for removed in _walk(entry):
            self.values.pop(removed.name, None)
        return entry

    def _check_mutable(self) -> None:
        if self.dispatch_state >= DispatchState.SUBMITTED:
            raise DispatchError(
                f"[{type(self).__name__}] Cannot change fields of form `{self.id}` "
                f"after it was {self.dispatch_state.name.lower()}."
            )

    @property
    def fields(self) -> dict[str, Field]:
        return self.registry.fields

    @property
    def fieldsets(self) -> dict[str, Fieldset]:
        return self.registry.fieldsets

    @property
    def children(self) -> dict[str, Field | Fieldset]:
        return self.registry.children

    def get_field(self, name: str) -> Field | None:
        entry = self.registry.get(name)
        return None if entry is None or entry.is_fieldset else entry

    # -- Errors, values, messages --

    def add_error(self, message: str, field_names: str | Iterable[str] | None = None) -> FormError:
        """Record an error; any error turns the result into ERRORS.

        Field errors are mirrored onto each named field.
        """
        error = self.errors.add(message, field_names)
        self.result = ResultState.ERRORS
        for name in error.field_names:
            entry = self.get_field(name)
            if entry is not None:
                entry.add_error(message)
        return error

    def set_errors(self, errors: Iterable[FormError | Mapping[str, Any]]) -> Form:
        """Replace all errors with ``errors`` (FormError or session-style dicts)."""
        self.clear_errors()
        for error in errors:
            if not isinstance(error, FormError):
                error = FormError.model_validate(error)
            self.add_error(error.message, error.field_names)
        return self

    def clear_errors(self) -> None:
        self.errors.clear()
        for entry in self.registry.fields.values():
            entry.errors.clear()
            if "error" in entry.css_classes:
                entry.css_classes.remove("error")

    def set_values(
        self,
        values: Mapping[str, Any],
        case_insensitive: bool = False,
        clear_previous_session_values: bool = False,
    ) -> Form:
        """Preload field values, e.g. from a database record.

        ``None`` and empty strings are skipped, as are unknown names and
        controls.
        """
        self.ensure_state(DispatchState.INITIALIZED)
        if case_insensitive:
            lookup = {name.lower(): entry for name, entry in self.registry.fields.items()}
        else:
            lookup = self.registry.fields
        for key, value in values.items():
            if value is None or value == "":
                continue
            entry = lookup.get(key.lower() if case_insensitive else key)
            if entry is None or entry.is_control:
                continue
            entry.value = value
            self.values[entry.name] = value
        if clear_previous_session_values:
            self.session.set_values(self.id, {})
        return self

    def translate_text(self, key: str, replacements: Iterable[Any] = ()) -> str:
        if not self.translate:
            return key
        return self.context.translate(key, [str(r) for r in replacements])

    def error_message(self, code: ErrorCode) -> str:
        return self.error_messages.get(code, DEFAULT_ERROR_MESSAGES[code])

    def default_error(self, code: ErrorCode, *args: Any) -> str:
        """Translated and formatted built-in form-level message."""
        return format_message(self.translate_text(self.error_message(code)), args)

    # -- Submission --

    def submit(self, raw_params: dict[str, Any] | None = None) -> SubmissionResult:
        """Validate the request (or ``raw_params``) and persist values and errors."""
        return SubmissionProcessor(self).submit(raw_params)

    def submitted_redirect(self) -> Redirect:
        """Redirect after submit to the URL matching the result state (303).

        Raises:
            DispatchError: the form was not submitted
            ConfigurationError: no URL is configured for the result state
        """
        self.ensure_state(DispatchState.PRE_DISPATCHED, submit=True)
        result = self.result
        if result is None:
            raise DispatchError(f"[{type(self).__name__}] Form `{self.id}` was not submitted.")

        urls = {
            ResultState.ERRORS: self.error_url,
            ResultState.SUCCESS: self.success_url,
            ResultState.PREV_STEP: self.prev_step_url,
            ResultState.NEXT_STEP: self.next_step_url,
        }
        url = urls.get(result, self.success_url)
        if not url:
            state = ResultState(result).name if result in urls else str(result)
            raise ConfigurationError(
                f"[{type(self).__name__}] No redirect url defined for result `{state}`, "
                f"form id: `{self.id}`."
            )

        self.save_session()
        if result == ResultState.SUCCESS and self.context.settings.clear_session_on_success:
            self.clear_session()
        self.advance(DispatchState.TERMINATED)
        return Redirect(path=url, status_code=HTTP_303_SEE_OTHER)

    # -- Session --

    def save_session(self) -> None:
        self.ensure_state(DispatchState.INITIALIZED)
        self.session.set_values(self.id, self.values)
        self.session.set_errors(self.id, self.errors)

    def clear_session(self) -> None:
        self.ensure_state(DispatchState.INITIALIZED)
        self.session.clear_session(self.id)

    # -- Rendering --

    def csrf_field(self) -> Markup:
        """Hidden CSRF input for templates.

        Raises:
            ConfigurationError: CSRF protection is disabled for this form
        """
        self.ensure_state(DispatchState.INITIALIZED)
        if not self.csrf_enabled:
            raise ConfigurationError(
                f"[{type(self).__name__}] CSRF protection is disabled for form `{self.id}`."
            )
        return self.csrf.csrf_field()

    def build_view(self) -> RenderContext:
        return RenderContext(
            form_id=self.id,
            action=self.action or self.context.request.url,
            method=self.method,
            children=dict(self.registry.children),
            fields=dict(self.registry.fields),
            fieldsets=dict(self.registry.fieldsets),
            errors=self.errors.to_list(),
            values=dict(self.values),
            result=self.result,
            csrf=self.csrf.csrf_field() if self.csrf_enabled else None,
            form_errors=self.errors.form_level(),
        )

    def render(self) -> RenderContext:
        """Prepare the render context and drop displayed errors from the session."""
        if self.dispatch_state >= DispatchState.TERMINATED:
            raise DispatchError(f"[{type(self).__name__}] Form `{self.id}` is terminated.")
        self.ensure_state(DispatchState.PRE_DISPATCHED, submit=False)
        with observability.span("form.render", form_id=self.id):
            self.view = self.build_view()
            self.advance(DispatchState.RENDERED)
            self.session.set_errors(self.id, [])
        return self.view

    def __repr__(self) -> str:
        return f"<{type(self).__name__} id={self.id!r} state={self.dispatch_state.name}>"
