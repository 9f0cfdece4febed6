"""Session-backed persistence of form values, errors and CSRF tokens.

State survives the redirect that follows a submission in three logical
namespaces (``Form.Data``, ``Form.Errors``, ``Form.Csrf`` by default), each
a map from form id to a JSON-serializable structure. Namespaces carry an
expiration in seconds; ``0`` keeps them for the whole session.

Any ``MutableMapping`` can back the store, typically Litestar's
``request.session``:

    store = MappingSessionStore(request.session)
    persistence = SessionPersistence(store, settings.session)
"""

from __future__ import annotations

import time
from typing import Any, Callable, Iterable, Iterator, MutableMapping, Protocol

from pydantic_core import to_jsonable_python

from postback.config import SessionConfig
from postback.forms.csrf import CsrfToken
from postback.forms.errors import FormError


class SessionStore(Protocol):
    """Anything able to hand out named, expiring key/value namespaces."""

    def namespace(self, name: str, expiration: int = 0) -> MutableMapping[str, Any]: ...


class SessionNamespace(MutableMapping[str, Any]):
    """Write-through view of one namespace record in a backing mapping.

    Records are stored as ``{"expires_at": float | None, "data": {...}}``
    and reassigned on every write so session backends notice the change.
    """

    def __init__(
        self,
        backing: MutableMapping[str, Any],
        name: str,
        expiration: int = 0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._backing = backing
        self.name = name
        self.expiration = expiration
        self._clock = clock

    def _record(self) -> dict[str, Any]:
        record = self._backing.get(self.name)
        if not isinstance(record, dict) or not isinstance(record.get("data"), dict):
            return self._reset()
        expires_at = record.get("expires_at")
        if expires_at is not None and expires_at <= self._clock():
            return self._reset()
        return record

    def _reset(self) -> dict[str, Any]:
        record = {"expires_at": self._expires_at(), "data": {}}
        self._backing[self.name] = record
        return record

    def _expires_at(self) -> float | None:
        return self._clock() + self.expiration if self.expiration else None

    def _store(self, data: dict[str, Any]) -> None:
        self._backing[self.name] = {"expires_at": self._expires_at(), "data": data}

    def __getitem__(self, key: str) -> Any:
        return self._record()["data"][key]

    def __setitem__(self, key: str, value: Any) -> None:
        data = dict(self._record()["data"])
        data[key] = value
        self._store(data)

    def __delitem__(self, key: str) -> None:
        data = dict(self._record()["data"])
        del data[key]
        self._store(data)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._record()["data"]))

    def __len__(self) -> int:
        return len(self._record()["data"])


class MappingSessionStore:
    """SessionStore over a plain mapping (a Litestar session, or a dict in tests)."""

    def __init__(
        self,
        backing: MutableMapping[str, Any] | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.backing = backing if backing is not None else {}
        self._clock = clock

    def namespace(self, name: str, expiration: int = 0) -> SessionNamespace:
        return SessionNamespace(self.backing, name, expiration, self._clock)


class SessionPersistence:
    """Values, errors and CSRF buckets keyed by form id.

    Reads return empty structures when nothing is stored.
    """

    def __init__(self, store: SessionStore, config: SessionConfig | None = None) -> None:
        self.store = store
        self.config = config or SessionConfig()

    def _values(self) -> MutableMapping[str, Any]:
        return self.store.namespace(self.config.values_namespace, self.config.values_expiration)

    def _errors(self) -> MutableMapping[str, Any]:
        return self.store.namespace(self.config.errors_namespace, self.config.errors_expiration)

    def _csrf(self) -> MutableMapping[str, Any]:
        return self.store.namespace(self.config.csrf_namespace, self.config.csrf_expiration)

    def get_values(self, form_id: str) -> dict[str, Any]:
        return dict(self._values().get(form_id) or {})

    def set_values(self, form_id: str, values: dict[str, Any]) -> None:
        self._values()[form_id] = to_jsonable_python(values)

    def get_errors(self, form_id: str) -> list[FormError]:
        return [FormError.model_validate(item) for item in self._errors().get(form_id) or []]

    def set_errors(self, form_id: str, errors: Iterable[FormError]) -> None:
        self._errors()[form_id] = [error.to_session() for error in errors]

    def get_csrf(self, form_id: str) -> CsrfToken:
        stored = self._csrf().get(form_id)
        if not stored:
            return CsrfToken()
        return CsrfToken.model_validate(stored)

    def set_csrf(self, form_id: str, token: CsrfToken) -> None:
        self._csrf()[form_id] = token.model_dump()

    def clear_session(self, form_id: str) -> None:
        for namespace in (self._values(), self._errors(), self._csrf()):
            namespace.pop(form_id, None)
