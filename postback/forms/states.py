"""Lifecycle, result and error-code constants shared by the form modules."""

import re
from enum import IntEnum
from typing import Sequence


class DispatchState(IntEnum):
    """Monotonic lifecycle stage of a form instance."""

    CREATED = 0
    INITIALIZED = 1
    PRE_DISPATCHED = 2
    SUBMITTED = 3
    RENDERED = 4
    TERMINATED = 5


class ResultState(IntEnum):
    """Outcome of a submission.

    Submit controls may also declare any other positive integer as a
    custom result state, so form results are stored as plain ints.
    """

    ERRORS = 0
    SUCCESS = 1
    PREV_STEP = 2
    NEXT_STEP = 3


class ErrorCode(IntEnum):
    """Form-level error messages produced outside of validators."""

    REQUIRED = 0
    EMPTY_CONTENT = 1
    MAX_POST_SIZE = 2
    CSRF = 3


DEFAULT_ERROR_MESSAGES: dict[ErrorCode, str] = {
    ErrorCode.REQUIRED: "Field '{0}' is required.",
    ErrorCode.EMPTY_CONTENT: "Sent data are empty.",
    ErrorCode.MAX_POST_SIZE: "Sent data exceeds the limit of {0}.",
    ErrorCode.CSRF: "Form hash expired, please submit the form again.",
}

METHOD_POST = "POST"

_PLACEHOLDER = re.compile(r"\{(\d+)\}")


def format_message(message: str, args: Sequence[object]) -> str:
    """Replace ``{0}``, ``{1}``... placeholders, leaving unknown indexes untouched."""

    def replace(match: re.Match) -> str:
        index = int(match.group(1))
        if index < len(args):
            return str(args[index])
        return match.group(0)

    return _PLACEHOLDER.sub(replace, message)


def human_bytes(size: int) -> str:
    """Render a byte count the way error messages show limits, e.g. ``8 MB``."""
    value = float(size)
    for unit in ("B", "KB", "MB", "GB"):
        if value < 1024 or unit == "GB":
            text = f"{value:.1f}".rstrip("0").rstrip(".")
            return f"{text} {unit}"
        value /= 1024
    return f"{size} B"
