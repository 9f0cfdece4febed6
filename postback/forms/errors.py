"""Form error records and the aggregator collecting them during a request."""

from __future__ import annotations

from typing import Any, Iterable, Iterator

from pydantic import BaseModel, ConfigDict, Field


class FormError(BaseModel):
    """A single validation or configuration message shown to the user.

    Errors without field names are form-level (CSRF, payload size...).
    Serialized as ``{"message": ..., "fieldNames": [...]}`` in the session.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    message: str
    field_names: tuple[str, ...] = Field(default=(), alias="fieldNames")

    @property
    def is_form_level(self) -> bool:
        return not self.field_names

    def to_session(self) -> dict[str, Any]:
        data: dict[str, Any] = {"message": self.message}
        if self.field_names:
            data["fieldNames"] = list(self.field_names)
        return data


def _normalize_names(field_names: str | Iterable[str] | None) -> tuple[str, ...]:
    if field_names is None:
        return ()
    if isinstance(field_names, str):
        return (field_names,)
    return tuple(field_names)


class ErrorAggregator:
    """Ordered collection of FormError records."""

    def __init__(self, errors: Iterable[FormError] = ()) -> None:
        self._errors: list[FormError] = list(errors)

    def add(self, message: str, field_names: str | Iterable[str] | None = None) -> FormError:
        error = FormError(message=message, field_names=_normalize_names(field_names))
        self._errors.append(error)
        return error

    def for_field(self, field_name: str) -> list[FormError]:
        return [e for e in self._errors if field_name in e.field_names]

    def form_level(self) -> list[FormError]:
        return [e for e in self._errors if e.is_form_level]

    def clear(self) -> None:
        self._errors.clear()

    def to_list(self) -> list[FormError]:
        return list(self._errors)

    def to_session(self) -> list[dict[str, Any]]:
        return [e.to_session() for e in self._errors]

    def __iter__(self) -> Iterator[FormError]:
        return iter(self._errors)

    def __len__(self) -> int:
        return len(self._errors)

    def __bool__(self) -> bool:
        return bool(self._errors)

    def __repr__(self) -> str:
        return f"ErrorAggregator({self._errors!r})"
