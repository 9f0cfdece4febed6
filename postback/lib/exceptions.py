"""Exception taxonomy and the Litestar handler for developer-facing failures.

Validation, CSRF and payload problems never raise: they are recorded as
form errors. Only structural misuse of a form ends up here.
"""

import logging

from litestar import Request, Response
from litestar.status_codes import HTTP_500_INTERNAL_SERVER_ERROR
from markupsafe import escape

logger = logging.getLogger(__name__)


class PostbackError(Exception):
    """Base class for every exception raised by postback."""


class ConfigurationError(PostbackError, RuntimeError):
    """A form, field or validator is wired up incorrectly.

    Raised immediately for missing or duplicate form ids, orphaned fields,
    unknown validator names and similar mistakes. These are never shown to
    the end user as form errors.
    """


class DispatchError(PostbackError):
    """A lifecycle operation was invoked in a state that forbids it."""


def _accepts_html(request: Request) -> bool:
    """Check if the request accepts HTML responses (browser request)."""
    accept = request.headers.get("accept", "")
    return "text/html" in accept


def configuration_error_handler(request: Request, exc: PostbackError) -> Response:
    """Turn a form configuration failure into a 500 response.

    Browsers get a minimal HTML page, API clients get JSON. The detail is
    only exposed when the app runs in debug mode.
    """
    logger.error("Form configuration error", exc_info=exc)
    status_code = HTTP_500_INTERNAL_SERVER_ERROR
    debug = bool(getattr(request.app, "debug", False))
    detail = str(exc) if debug else "Internal Server Error"

    if _accepts_html(request):
        return Response(
            content=f"<h1>{status_code}</h1><p>{escape(detail)}</p>",
            status_code=status_code,
            media_type="text/html",
        )

    return Response(
        content={"status_code": status_code, "detail": detail},
        status_code=status_code,
        media_type="application/json",
    )
