"""Postback form system - lifecycle, validation, CSRF and session persistence."""

from postback.forms.context import FormContext
from postback.forms.core import Form, RenderContext
from postback.forms.csrf import CsrfGuard, CsrfToken
from postback.forms.errors import ErrorAggregator, FormError
from postback.forms.fields import (
    Checkbox,
    Date,
    Email,
    Field,
    Fieldset,
    Hidden,
    Number,
    Password,
    ResetButton,
    Select,
    SubmitButton,
    SubmitInput,
    Text,
    Textarea,
    Url,
)
from postback.forms.request import RequestData
from postback.forms.session import MappingSessionStore, SessionPersistence, SessionStore
from postback.forms.states import DispatchState, ErrorCode, ResultState
from postback.forms.submission import SubmissionResult
from postback.forms.validators import Validator, ValidatorRegistry, default_registry

__all__ = [
    "Form",
    "FormContext",
    "RenderContext",
    "RequestData",
    "SubmissionResult",
    "DispatchState",
    "ResultState",
    "ErrorCode",
    "FormError",
    "ErrorAggregator",
    "CsrfGuard",
    "CsrfToken",
    "SessionStore",
    "MappingSessionStore",
    "SessionPersistence",
    "Validator",
    "ValidatorRegistry",
    "default_registry",
    "Field",
    "Fieldset",
    "Text",
    "Email",
    "Password",
    "Url",
    "Textarea",
    "Hidden",
    "Number",
    "Date",
    "Select",
    "Checkbox",
    "SubmitButton",
    "SubmitInput",
    "ResetButton",
]
