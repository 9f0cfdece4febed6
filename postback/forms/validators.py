"""Validators turning raw request values into safe values.

A validator receives the raw value (or the previous validator's output)
and returns a safe value, or ``None`` after reporting an error through
``add_error``. Validators are resolved by name through a
``ValidatorRegistry`` and cached per form, so one instance serves every
field that names it; ``bind`` points it at the field being processed.

Plain callables can be used as validators too. They receive the value and
return the safe value; raising ``ValueError`` reports the exception text
as the field error.
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import TYPE_CHECKING, Any, Callable, ClassVar
from urllib.parse import urlparse

from markupsafe import escape
from pydantic import EmailStr, FiniteFloat, TypeAdapter, ValidationError

from postback.forms.fields import HasFormat, HasOptions, HasPattern, MinMaxLength, MinMaxStep
from postback.lib.exceptions import ConfigurationError

if TYPE_CHECKING:
    from postback.forms.core import Form
    from postback.forms.fields import Field

ValidatorFactory = Callable[[], "Validator"]

# C0 controls except tab, line feed and carriage return, plus DEL
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")
_EMAIL = TypeAdapter(EmailStr)
_INTEGER = TypeAdapter(int)
_FLOAT = TypeAdapter(FiniteFloat)


class Validator:
    """Base validator.

    Subclasses set ``name``, optionally ``requires`` (capability classes a
    field must implement) and ``error_messages``, and implement ``validate``.
    """

    name: ClassVar[str] = ""
    requires: ClassVar[tuple[type, ...]] = ()
    error_messages: ClassVar[dict[str, str]] = {}

    def __init__(self) -> None:
        self.form: Form | None = None
        self.field: Field | None = None

    def check(self, field: Field) -> None:
        """Fail fast when ``field`` lacks a capability this validator needs."""
        for capability in self.requires:
            if not isinstance(field, capability):
                raise ConfigurationError(
                    f"[{type(self).__name__}] Field `{field.name}` ({type(field).__name__}) "
                    f"does not implement `{capability.__name__}` required by validator "
                    f"`{self.name}`."
                )

    def bind(self, form: Form, field: Field) -> Validator:
        self.form = form
        self.field = field
        return self

    def validate(self, raw_value: Any) -> Any:
        raise NotImplementedError

    def add_error(self, key: str, *args: Any) -> None:
        self.field.add_validation_error(self.error_messages[key], *args)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name!r}>"


class CallableValidator(Validator):
    """Adapter for ``(raw) -> safe | None`` functions."""

    def __init__(self, func: Callable[[Any], Any], name: str | None = None) -> None:
        super().__init__()
        self.func = func
        self.name = name or getattr(func, "__qualname__", repr(func))

    def validate(self, raw_value: Any) -> Any:
        try:
            return self.func(raw_value)
        except ValueError as exc:
            self.field.add_validation_error(str(exc))
            return None


def _clean_string(value: Any) -> str | None:
    if value is None:
        return None
    text = _CONTROL_CHARS.sub("", str(value)).strip()
    if not text:
        return None
    return str(escape(text))


def _as_text(value: Any) -> str | None:
    """Trimmed string form of a scalar, ``None`` when empty or a list."""
    if value is None or isinstance(value, (list, tuple)):
        return None
    text = str(value).strip()
    return text or None


def _as_number(value: Any) -> Any:
    """Numbers pass through, anything else is reduced to trimmed text."""
    if isinstance(value, (int, float)):
        return value
    return _as_text(value)


def _as_list(value: Any) -> list[Any]:
    if value is None or value == "":
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


# -- Strings --


class SafeString(Validator):
    """Strip control characters, trim and HTML-escape.

    Lists are cleaned item by item; empty items are dropped.
    """

    name = "SafeString"

    def validate(self, raw_value: Any) -> Any:
        if isinstance(raw_value, (list, tuple)):
            cleaned = (_clean_string(item) for item in raw_value)
            return [item for item in cleaned if item is not None]
        return _clean_string(raw_value)


class Clear(Validator):
    """Discard the submitted value (e.g. password confirmations)."""

    name = "Clear"

    def validate(self, raw_value: Any) -> Any:
        return None


class Email(Validator):
    name = "Email"
    error_messages = {"invalid": "Field '{0}' requires a valid email address."}

    def validate(self, raw_value: Any) -> Any:
        text = _as_text(raw_value)
        if text is None:
            return None
        try:
            return _EMAIL.validate_python(text)
        except ValidationError:
            self.add_error("invalid")
            return None


class Url(Validator):
    name = "Url"
    error_messages = {"invalid": "Field '{0}' requires a valid URL."}

    def validate(self, raw_value: Any) -> Any:
        text = _as_text(raw_value)
        if text is None:
            return None
        parsed = urlparse(text)
        if parsed.scheme not in ("http", "https") or not parsed.netloc or re.search(r"\s", text):
            self.add_error("invalid")
            return None
        return str(escape(text))


class MinLength(Validator):
    name = "MinLength"
    requires = (MinMaxLength,)
    error_messages = {"too_short": "Field '{0}' requires at least {1} characters."}

    def validate(self, raw_value: Any) -> Any:
        limit = self.field.min_length
        if raw_value is None or limit is None:
            return raw_value
        if len(str(raw_value)) < limit:
            self.add_error("too_short", limit)
            return None
        return raw_value


class MaxLength(Validator):
    name = "MaxLength"
    requires = (MinMaxLength,)
    error_messages = {"too_long": "Field '{0}' requires no more than {1} characters."}

    def validate(self, raw_value: Any) -> Any:
        limit = self.field.max_length
        if raw_value is None or limit is None:
            return raw_value
        if len(str(raw_value)) > limit:
            self.add_error("too_long", limit)
            return None
        return raw_value


class Pattern(Validator):
    name = "Pattern"
    requires = (HasPattern,)
    error_messages = {"mismatch": "Field '{0}' does not match the required pattern."}

    def validate(self, raw_value: Any) -> Any:
        pattern = self.field.pattern
        if raw_value is None or not pattern:
            return raw_value
        if re.fullmatch(pattern, str(raw_value)) is None:
            self.add_error("mismatch")
            return None
        return raw_value


# -- Numbers and dates --


class Integer(Validator):
    name = "Integer"
    error_messages = {"invalid": "Field '{0}' requires a valid integer."}

    def validate(self, raw_value: Any) -> Any:
        value = _as_number(raw_value)
        if value is None:
            return None
        try:
            return _INTEGER.validate_python(value)
        except ValidationError:
            self.add_error("invalid")
            return None


class Float(Validator):
    name = "Float"
    error_messages = {"invalid": "Field '{0}' requires a valid number."}

    def validate(self, raw_value: Any) -> Any:
        value = _as_number(raw_value)
        if value is None:
            return None
        try:
            return _FLOAT.validate_python(value)
        except ValidationError:
            self.add_error("invalid")
            return None


class Range(Validator):
    """Check a numeric value against the field's ``min``, ``max`` and ``step``."""

    name = "Range"
    requires = (MinMaxStep,)
    error_messages = {
        "too_low": "Field '{0}' requires a value greater than or equal to {1}.",
        "too_high": "Field '{0}' requires a value less than or equal to {1}.",
        "step": "Field '{0}' requires a value in steps of {1}.",
    }

    def validate(self, raw_value: Any) -> Any:
        if raw_value is None or isinstance(raw_value, bool) or not isinstance(raw_value, (int, float)):
            return raw_value
        field = self.field
        if field.min is not None and raw_value < field.min:
            self.add_error("too_low", field.min)
            return None
        if field.max is not None and raw_value > field.max:
            self.add_error("too_high", field.max)
            return None
        if field.step:
            base = field.min if field.min is not None else 0
            steps = (raw_value - base) / field.step
            if abs(steps - round(steps)) > 1e-9:
                self.add_error("step", field.step)
                return None
        return raw_value


class Date(Validator):
    name = "Date"
    requires = (HasFormat,)
    error_messages = {"invalid": "Field '{0}' requires a valid date in format '{1}'."}

    def validate(self, raw_value: Any) -> Any:
        text = _as_text(raw_value)
        if text is None:
            return None
        try:
            parsed = datetime.strptime(text, self.field.format)
        except ValueError:
            self.add_error("invalid", self.field.format)
            return None
        return parsed.date() if self.field.type == "date" else parsed


# -- Options --


class ValueInOptions(Validator):
    """Keep only submitted values that are configured option keys."""

    name = "ValueInOptions"
    requires = (HasOptions,)
    error_messages = {"invalid": "Field '{0}' has a value that is not in the allowed options."}

    def validate(self, raw_value: Any) -> Any:
        keys = set(self.field.all_option_keys())
        if self.field.multiple:
            submitted = [str(item) for item in _as_list(raw_value)]
            valid = [item for item in submitted if item in keys]
            if len(valid) != len(submitted):
                self.add_error("invalid")
            return valid
        text = _as_text(raw_value)
        if text is None:
            return None
        if text not in keys:
            self.add_error("invalid")
            return None
        return text


class MinOptions(Validator):
    name = "MinOptions"
    requires = (HasOptions,)
    error_messages = {"too_few": "Field '{0}' requires at least {1} selected options."}

    def validate(self, raw_value: Any) -> Any:
        limit = self.field.min_options
        if not self.field.multiple or limit is None:
            return raw_value
        selected = _as_list(raw_value)
        # an empty selection is left to the required check
        if selected and len(selected) < limit:
            self.add_error("too_few", limit)
        return raw_value


class MaxOptions(Validator):
    name = "MaxOptions"
    requires = (HasOptions,)
    error_messages = {"too_many": "Field '{0}' allows no more than {1} selected options."}

    def validate(self, raw_value: Any) -> Any:
        limit = self.field.max_options
        if not self.field.multiple or limit is None:
            return raw_value
        selected = _as_list(raw_value)
        if len(selected) > limit:
            self.add_error("too_many", limit)
            return selected[:limit]
        return raw_value


BUILTIN_VALIDATORS: tuple[type[Validator], ...] = (
    SafeString,
    Clear,
    Email,
    Url,
    MinLength,
    MaxLength,
    Pattern,
    Integer,
    Float,
    Range,
    Date,
    ValueInOptions,
    MinOptions,
    MaxOptions,
)


class ValidatorRegistry:
    """Name -> factory lookup for validators.

    Populate at startup, then ``freeze()`` it before sharing between
    requests; a frozen registry rejects further registration.
    """

    def __init__(self, factories: dict[str, ValidatorFactory] | None = None) -> None:
        self._factories: dict[str, ValidatorFactory] = dict(factories or {})
        self._frozen = False

    @property
    def frozen(self) -> bool:
        return self._frozen

    def register(self, name: str, factory: ValidatorFactory) -> None:
        if self._frozen:
            raise ConfigurationError(
                f"[{type(self).__name__}] Cannot register validator `{name}` on a frozen registry."
            )
        self._factories[name] = factory

    def create(self, name: str) -> Validator:
        factory = self._factories.get(name)
        if factory is None:
            raise ConfigurationError(f"[{type(self).__name__}] Unknown validator `{name}`.")
        return factory()

    def freeze(self) -> ValidatorRegistry:
        self._frozen = True
        return self

    def copy(self) -> ValidatorRegistry:
        """Unfrozen copy, for request-specific additions."""
        return ValidatorRegistry(self._factories)

    def names(self) -> list[str]:
        return list(self._factories)

    def __contains__(self, name: object) -> bool:
        return name in self._factories


BUILTIN_REGISTRY = ValidatorRegistry({cls.name: cls for cls in BUILTIN_VALIDATORS}).freeze()


def default_registry() -> ValidatorRegistry:
    """Unfrozen copy of the shared built-in registry, one per context."""
    return BUILTIN_REGISTRY.copy()
