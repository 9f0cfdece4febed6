"""Submission processing: from raw request params to ``{result, values, errors}``."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Iterator

from postback.forms.errors import FormError
from postback.forms.states import DispatchState, ErrorCode, ResultState, human_bytes
from postback.lib import observability
from postback.lib.exceptions import DispatchError
from postback.lib.hooks import FORM_SUBMITTED, form_submitted_hook

if TYPE_CHECKING:
    from postback.forms.core import Form
    from postback.forms.fields import Field, Fieldset, SubmitButton

logger = logging.getLogger(__name__)


@dataclass
class SubmissionResult:
    """Outcome of one submission; unpacks as ``result, values, errors``."""

    result: int
    values: dict[str, Any] = field(default_factory=dict)
    errors: list[FormError] = field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        return self.result == ResultState.ERRORS

    def __iter__(self) -> Iterator[Any]:
        yield self.result
        yield self.values
        yield self.errors


class SubmissionProcessor:
    def __init__(self, form: Form) -> None:
        self.form = form

    def submit(self, raw_params: dict[str, Any] | None = None) -> SubmissionResult:
        """Validate ``raw_params`` (the request params by default) and persist the outcome.

        Payload, CSRF and validation failures are recorded as errors; every
        step runs regardless of earlier failures.
        """
        form = self.form
        if form.dispatch_state >= DispatchState.SUBMITTED:
            raise DispatchError(
                f"[{type(form).__name__}] Form `{form.id}` has already been submitted."
            )
        form.ensure_state(DispatchState.PRE_DISPATCHED, submit=True)
        if raw_params is None:
            raw_params = form.context.request.params

        with observability.span("form.submit", form_id=form.id):
            # this submission's errors replace whatever the session carried
            form.clear_errors()
            form.result = self.start_result_state(raw_params)

            self.check_payload()
            if form.csrf_enabled:
                form.csrf.verify(raw_params)
            self.propagate_disabled()

            values: dict[str, Any] = {}
            for entry in form.fields.values():
                if entry.is_control:
                    continue
                safe_value = entry.submit(raw_params)
                if safe_value is not None:
                    entry.value = safe_value
                    values[entry.name] = safe_value
            form.values = values

            form.save_session()
            form.advance(DispatchState.SUBMITTED)

            result = SubmissionResult(form.result, dict(values), form.errors.to_list())
            logger.debug(
                "Form %s submitted with result %s and %d error(s)",
                form.id,
                result.result,
                len(result.errors),
            )
            hooks = form.context.hooks
            result = hooks.apply_filters(FORM_SUBMITTED, result, form)
            result = hooks.apply_filters(form_submitted_hook(form.id), result, form)
        return result

    def start_result_state(self, raw_params: dict[str, Any]) -> int:
        """Result state declared by the first fired submit control, else SUCCESS."""
        control: SubmitButton
        for control in self.form.registry.submit_fields:
            if control.name not in raw_params:
                continue
            if control.disabled or control.custom_result_state is None:
                return ResultState.SUCCESS
            return control.custom_result_state
        return ResultState.SUCCESS

    def check_payload(self) -> None:
        form = self.form
        request = form.context.request
        settings = form.context.settings
        if request.method not in {m.upper() for m in settings.post_like_methods}:
            return
        if request.content_length is None:
            form.add_error(form.default_error(ErrorCode.EMPTY_CONTENT))
        elif (
            settings.max_content_length is not None
            and request.content_length > settings.max_content_length
        ):
            form.add_error(
                form.default_error(ErrorCode.MAX_POST_SIZE, human_bytes(settings.max_content_length))
            )

    def propagate_disabled(self) -> None:
        """Disable every visible field inside a disabled fieldset."""
        for entry in self.form.registry.children.values():
            if entry.is_fieldset:
                self._disable_within(entry, False)

    def _disable_within(self, fieldset: Fieldset, inherited: bool) -> None:
        disabled = inherited if fieldset.disabled is None else fieldset.disabled
        child: Field | Fieldset
        for child in fieldset.ordered_children():
            if child.is_fieldset:
                self._disable_within(child, disabled)
            elif disabled and child.visible:
                child.disabled = True
