"""CSRF protection scoped to one form id.

Every issuance derives a random field name and value from the form id, the
canonical request URL, a timestamp and fresh random bytes, persists the
pair in the session and renders it as a hidden input. A submission passes
only when the request carries exactly the persisted value under exactly
the persisted name.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
import time
from typing import TYPE_CHECKING, Any

from markupsafe import Markup, escape
from pydantic import BaseModel

from postback.forms.states import ErrorCode
from postback.lib.hooks import CSRF_FAILED

if TYPE_CHECKING:
    from postback.forms.core import Form

logger = logging.getLogger(__name__)

CSRF_FIELD_PREFIX = "_csrf_"


class CsrfToken(BaseModel):
    name: str | None = None
    value: str | None = None

    @property
    def is_empty(self) -> bool:
        return not self.name or not self.value


class CsrfGuard:
    """Issues and verifies the form's single active token pair."""

    def __init__(self, form: Form) -> None:
        self.form = form
        self.token = CsrfToken()
        self._expected: CsrfToken | None = None

    def setup(self) -> CsrfToken:
        """Load the persisted pair, issuing one when the session has none.

        The loaded pair is what ``verify`` compares against, so a freshly
        issued pair never validates the current request.
        """
        persisted = self.form.session.get_csrf(self.form.id)
        self._expected = persisted
        if persisted.is_empty:
            return self.issue_tokens()
        self.token = persisted
        return persisted

    def issue_tokens(self) -> CsrfToken:
        form_id = self.form.id
        url = self.form.context.request.url
        timestamp = str(time.time_ns())
        random = secrets.token_bytes(32)

        def digest(part: str) -> str:
            seed = "|".join((form_id, url, part, timestamp)).encode()
            return hashlib.sha256(seed + random).hexdigest()

        token = CsrfToken(name=CSRF_FIELD_PREFIX + digest("name")[:32], value=digest("value"))
        self.form.session.set_csrf(form_id, token)
        self.token = token
        return token

    def verify(self, raw_params: dict[str, Any]) -> bool:
        """Check the submitted token; on failure record an error and notify handlers.

        The pair is rotated after a successful check (single use).
        """
        expected = self._expected
        if expected is None:
            expected = self.form.session.get_csrf(self.form.id)

        submitted = raw_params.get(expected.name) if expected.name else None
        if (
            not expected.is_empty
            and isinstance(submitted, str)
            and hmac.compare_digest(submitted.encode(), expected.value.encode())
        ):
            self._expected = None
            self.issue_tokens()
            return True

        message = self.form.default_error(ErrorCode.CSRF)
        self.form.add_error(message)
        logger.info("CSRF check failed for form %s", self.form.id)
        self.form.context.hooks.do_action_isolated(CSRF_FAILED, self.form, message)
        return False

    def csrf_field(self) -> Markup:
        """Render the hidden CSRF input for the active pair."""
        if self.token.is_empty:
            self.setup()
        return Markup(
            f'<input type="hidden" name="{escape(self.token.name)}" value="{escape(self.token.value)}">'
        )
