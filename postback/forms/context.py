"""Per-request scope shared by the forms handling one request.

Everything that would otherwise be process-wide (the live form ids, the
validator lookup, hook handlers, the translator) hangs off a FormContext.
Build one per request and pass it to every form:

    context = await FormContext.from_litestar(request, translator=translate)
    form = ContactForm(context)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Sequence
from weakref import WeakValueDictionary

from postback.config import FormSettings, get_settings
from postback.forms.request import RequestData
from postback.forms.session import MappingSessionStore, SessionStore
from postback.forms.validators import ValidatorRegistry, default_registry
from postback.lib import observability
from postback.lib.exceptions import ConfigurationError
from postback.lib.hooks import CSRF_FAILED, HookRegistry

if TYPE_CHECKING:
    from litestar import Request

    from postback.forms.core import Form

Translator = Callable[[str, Sequence[str]], str]
CsrfErrorHandler = Callable[["Form", str], Any]


@dataclass
class FormContext:
    request: RequestData = field(default_factory=RequestData)
    session_store: SessionStore = field(default_factory=MappingSessionStore)
    settings: FormSettings = field(default_factory=FormSettings)
    validators: ValidatorRegistry = field(default_factory=default_registry)
    translator: Translator | None = None
    hooks: HookRegistry = field(default_factory=HookRegistry)
    _forms: WeakValueDictionary = field(default_factory=WeakValueDictionary, init=False, repr=False)

    def register_form(self, form: Form) -> None:
        """Claim ``form.id`` for the lifetime of ``form``.

        Raises:
            ConfigurationError: another live form in this context uses the id
        """
        existing = self._forms.get(form.id)
        if existing is not None and existing is not form:
            raise ConfigurationError(
                f"[{type(form).__name__}] Form id `{form.id}` already defined by "
                f"`{type(existing).__name__}`."
            )
        self._forms[form.id] = form

    def unregister_form(self, form: Form) -> None:
        if self._forms.get(form.id) is form:
            del self._forms[form.id]

    def get_form(self, form_id: str) -> Form | None:
        return self._forms.get(form_id)

    def translate(self, key: str, replacements: Sequence[str] = ()) -> str:
        """Translate ``key``; without a translator the key is returned verbatim."""
        if self.translator is None:
            return key
        return self.translator(key, list(replacements))

    def add_csrf_error_handler(self, handler: CsrfErrorHandler, priority: int = 10) -> None:
        """Queue ``handler(form, error_message)`` to run on every CSRF failure."""
        self.hooks.add_action(CSRF_FAILED, handler, priority)

    @classmethod
    async def from_litestar(
        cls,
        request: Request,
        *,
        settings: FormSettings | None = None,
        validators: ValidatorRegistry | None = None,
        translator: Translator | None = None,
        hooks: HookRegistry | None = None,
    ) -> FormContext:
        """Build a context from a Litestar request and its ``request.session``.

        Also configures Logfire on first use when it is enabled in settings.
        """
        settings = settings or get_settings()
        observability.configure(settings)
        return cls(
            request=await RequestData.from_litestar(request, settings.post_like_methods),
            session_store=MappingSessionStore(request.session),
            settings=settings,
            validators=validators or default_registry(),
            translator=translator,
            hooks=hooks or HookRegistry(),
        )
