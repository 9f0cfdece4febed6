"""Per-field validator chains."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Hashable

from postback.forms.states import ErrorCode
from postback.forms.validators import CallableValidator, Validator, ValidatorRegistry
from postback.lib.exceptions import ConfigurationError

if TYPE_CHECKING:
    from postback.forms.core import Form
    from postback.forms.fields import Field, ValidatorSpec


def is_empty(value: Any) -> bool:
    """Empty for the required check: ``None``, ``""`` or an empty list."""
    return value is None or value == "" or (isinstance(value, (list, tuple)) and not value)


class ValidatorPipeline:
    """Runs a field's validators in order, each fed the previous output.

    Validator instances are cached per form: at most one live instance per
    validator name, whatever the number of fields naming it.
    """

    def __init__(self, form: Form, registry: ValidatorRegistry) -> None:
        self.form = form
        self.registry = registry
        self._instances: dict[Hashable, Validator] = {}

    def resolve(self, spec: ValidatorSpec) -> Validator:
        if isinstance(spec, Validator):
            return spec
        if isinstance(spec, str):
            validator = self._instances.get(spec)
            if validator is None:
                validator = self._instances[spec] = self.registry.create(spec)
            return validator
        if callable(spec):
            key = ("callable", id(spec))
            validator = self._instances.get(key)
            if validator is None or validator.func is not spec:
                validator = self._instances[key] = CallableValidator(spec)
            return validator
        raise ConfigurationError(
            f"[{type(self).__name__}] Unsupported validator {spec!r} in form `{self.form.id}`."
        )

    def check_field(self, field: Field) -> None:
        """Resolve every validator of ``field`` now, so bad ones fail at build time."""
        for spec in field.validators:
            self.resolve(spec).check(field)

    def run_chain(self, field: Field, raw_value: Any) -> Any:
        """Return the safe value for ``field``; errors go through the form.

        Read-only and disabled fields skip the chain and keep their value.
        A missing raw value skips the chain unless the field always
        validates (checkboxes). The required check runs once, at the end,
        and only if no validator has already reported an error.
        """
        if field.bypasses_validation:
            return field.value

        result = raw_value
        if raw_value is not None or field.always_validate:
            for spec in field.validators:
                validator = self.resolve(spec).bind(self.form, field)
                result = validator.validate(result)
        else:
            result = None

        if field.required and not field.errors and is_empty(result):
            field.add_validation_error(self.form.error_message(ErrorCode.REQUIRED))
        return result
