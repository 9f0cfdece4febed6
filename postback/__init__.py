"""Postback - server-rendered forms for Litestar with post/redirect/get support."""

from postback.config import FormSettings, get_settings
from postback.forms import Form, FormContext, ResultState, SubmissionResult
from postback.lib.exceptions import ConfigurationError, DispatchError, PostbackError

__all__ = [
    "Form",
    "FormContext",
    "FormSettings",
    "ResultState",
    "SubmissionResult",
    "get_settings",
    "PostbackError",
    "ConfigurationError",
    "DispatchError",
]
