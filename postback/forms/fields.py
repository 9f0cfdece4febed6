"""Field, control and fieldset definitions.

Fields carry their configuration, current value and the ordered list of
validators that turn a raw request value into a safe value. Optional
capabilities (length limits, options, patterns...) are small mixin classes;
validators that need one check for it when they are bound to a field.

    form.add_fields(
        Text("name", label="Your name", required=True, max_length=80),
        Email("email", required=True),
        Select("topic", options={"sales": "Sales", "support": "Support"}),
        SubmitButton("send", label="Send"),
    )
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Callable, ClassVar, Iterable, Union

from postback.forms.registry import ChildOrdering
from postback.forms.states import format_message
from postback.lib.exceptions import ConfigurationError

if TYPE_CHECKING:
    from postback.forms.core import Form
    from postback.forms.validators import Validator

ValidatorSpec = Union[str, "Validator", Callable[[Any], Any]]


# -- Capabilities --


class MinMaxLength:
    """Field accepts ``min_length``/``max_length`` character limits."""

    min_length: int | None = None
    max_length: int | None = None


class HasPattern:
    """Field carries a regular expression its value must fully match."""

    pattern: str | None = None


class MinMaxStep:
    """Numeric field with optional bounds and step."""

    min: float | None = None
    max: float | None = None
    step: float | None = None


class HasFormat:
    """Field parses its value with a ``strptime`` format."""

    format: str = "%Y-%m-%d"


class HasOptions:
    """Field restricts its value to a set of option keys.

    ``options`` is a ``{key: label}`` mapping, a plain list of keys, or a
    mapping of group labels to nested ``{key: label}`` mappings (optgroups).
    """

    options: dict[str, Any] | list[str] = {}
    multiple: bool = False
    min_options: int | None = None
    max_options: int | None = None

    def all_option_keys(self) -> list[str]:
        keys: list[str] = []
        if isinstance(self.options, dict):
            for key, label in self.options.items():
                if isinstance(label, dict):
                    keys.extend(str(k) for k in label)
                else:
                    keys.append(str(key))
        else:
            keys.extend(str(k) for k in self.options)
        return keys


# -- Fields --


class Field:
    """Base class of every form field.

    Attributes:
        name: Unique name within the form, including nested fieldsets
        value: Current value (scalar or list)
        validators: Ordered validator chain (names, instances or callables)
        required: ``None`` means "use the form default" for visible fields
        field_order: Explicit sort position; ``None`` keeps insertion order
    """

    type: ClassVar[str] = "text"
    default_validators: ClassVar[tuple[str, ...]] = ()
    visible: ClassVar[bool] = True
    is_control: ClassVar[bool] = False
    is_submit: ClassVar[bool] = False
    always_validate: ClassVar[bool] = False
    is_fieldset: ClassVar[bool] = False

    def __init__(
        self,
        name: str,
        *,
        value: Any = None,
        label: str | None = None,
        title: str | None = None,
        validators: Iterable[ValidatorSpec] | None = None,
        required: bool | None = None,
        readonly: bool = False,
        disabled: bool = False,
        field_order: int | None = None,
        fieldset_name: str | None = None,
        translate: bool | None = None,
        css_classes: Iterable[str] = (),
    ) -> None:
        self.name = name
        self.value = value
        self.label = label
        self.title = title
        self.validators: list[ValidatorSpec] = (
            list(self.default_validators) if validators is None else list(validators)
        )
        self.required = required
        self.readonly = readonly
        self.disabled = disabled
        self.field_order = field_order
        self.fieldset_name = fieldset_name
        self.translate = translate
        self.css_classes: list[str] = list(css_classes)

        self.id: str | None = None
        self.form: Form | None = None
        self.errors: list[str] = []

    # -- Form binding --

    def attach(self, form: Form) -> None:
        """Bind the field to its owning form and inherit form defaults."""
        if not self.name:
            raise ConfigurationError(f"[{type(self).__name__}] No field name defined.")
        if self.form is form:
            return
        if self.form is not None:
            raise ConfigurationError(
                f"[{type(self).__name__}] Field `{self.name}` already belongs to form `{self.form.id}`."
            )
        self.form = form
        if self.id is None:
            self.id = f"{form.id}_{self.name}"
        if self.visible:
            if self.required is None:
                self.required = form.default_required
        else:
            self.required = bool(self.required)
        if self.translate is None:
            self.translate = form.translate

    def pre_dispatch(self) -> None:
        """Prepare the field for rendering: translate label and title."""
        if not self.translate or self.form is None:
            return
        if self.title is not None:
            self.title = self.form.translate_text(self.title)
        if self.label is not None:
            self.label = self.form.translate_text(self.label)

    # -- Submission --

    @property
    def bypasses_validation(self) -> bool:
        """Read-only and disabled visible fields keep their current value."""
        return self.visible and (self.readonly or self.disabled)

    def raw_value(self, raw_params: dict[str, Any]) -> Any:
        return raw_params.get(self.name)

    def submit(self, raw_params: dict[str, Any]) -> Any:
        """Run the validator chain against this field's raw request value."""
        if self.form is None:
            raise ConfigurationError(f"[{type(self).__name__}] Field `{self.name}` has no form.")
        return self.form.pipeline.run_chain(self, self.raw_value(raw_params))

    def add_validation_error(self, message: str, *args: Any) -> None:
        """Translate and format ``message`` and record it against this field.

        ``{0}`` is always the field label (or name); further placeholders
        are filled from ``args``.
        """
        if self.form is None:
            raise ConfigurationError(f"[{type(self).__name__}] Field `{self.name}` has no form.")
        if self.translate:
            message = self.form.translate_text(message)
            label = self.form.translate_text(self.label) if self.label else self.name
        else:
            label = self.label or self.name
        self.form.add_error(format_message(message, [label, *args]), self.name)

    def add_error(self, message: str) -> None:
        """Mirror a form error onto the field (called by the form)."""
        self.errors.append(message)
        if "error" not in self.css_classes:
            self.css_classes.append("error")

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r}, value={self.value!r})"


class Text(Field, MinMaxLength, HasPattern):
    type = "text"
    default_validators = ("SafeString", "MinLength", "MaxLength", "Pattern")

    def __init__(
        self,
        name: str,
        *,
        min_length: int | None = None,
        max_length: int | None = None,
        pattern: str | None = None,
        placeholder: str | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(name, **kwargs)
        self.min_length = min_length
        self.max_length = max_length
        self.pattern = pattern
        self.placeholder = placeholder


class Email(Text):
    type = "email"
    default_validators = ("Email", "MaxLength")


class Password(Text):
    type = "password"
    default_validators = ("MinLength", "MaxLength")


class Url(Text):
    type = "url"
    default_validators = ("Url", "MaxLength")


class Textarea(Field, MinMaxLength):
    type = "textarea"
    default_validators = ("SafeString", "MinLength", "MaxLength")

    def __init__(
        self,
        name: str,
        *,
        min_length: int | None = None,
        max_length: int | None = None,
        rows: int | None = None,
        cols: int | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(name, **kwargs)
        self.min_length = min_length
        self.max_length = max_length
        self.rows = rows
        self.cols = cols


class Hidden(Field):
    type = "hidden"
    default_validators = ("SafeString",)
    visible = False


class Number(Field, MinMaxStep):
    type = "number"
    default_validators = ("Float", "Range")

    def __init__(
        self,
        name: str,
        *,
        min: float | None = None,
        max: float | None = None,
        step: float | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(name, **kwargs)
        self.min = min
        self.max = max
        self.step = step


class Date(Field, HasFormat):
    type = "date"
    default_validators = ("Date",)

    def __init__(self, name: str, *, format: str = "%Y-%m-%d", **kwargs: Any) -> None:
        super().__init__(name, **kwargs)
        self.format = format


class Select(Field, HasOptions):
    type = "select"
    default_validators = ("ValueInOptions", "MinOptions", "MaxOptions")

    def __init__(
        self,
        name: str,
        *,
        options: dict[str, Any] | list[str] | None = None,
        multiple: bool = False,
        min_options: int | None = None,
        max_options: int | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(name, **kwargs)
        self.options = options if options is not None else {}
        self.multiple = multiple
        self.min_options = min_options
        self.max_options = max_options


class Checkbox(Field):
    """Unchecked boxes are absent from the request, so the chain always runs."""

    type = "checkbox"
    default_validators = ("SafeString",)
    always_validate = True


# -- Controls --


class SubmitButton(Field):
    """Button whose presence in the request identifies the fired action.

    ``custom_result_state`` overrides the starting result of a submission
    fired by this button; ``form_action``/``form_method`` mirror the HTML
    ``formaction``/``formmethod`` attributes.
    """

    type = "submit"
    visible = True
    is_control = True
    is_submit = True

    def __init__(
        self,
        name: str,
        *,
        custom_result_state: int | None = None,
        form_action: str | None = None,
        form_method: str | None = None,
        **kwargs: Any,
    ) -> None:
        kwargs.setdefault("validators", ())
        kwargs.setdefault("required", False)
        super().__init__(name, **kwargs)
        if custom_result_state is not None and custom_result_state < 0:
            raise ConfigurationError(
                f"[{type(self).__name__}] Custom result state must be a positive integer, "
                f"field: `{name}`."
            )
        self.custom_result_state = custom_result_state
        self.form_action = form_action
        self.form_method = form_method.upper() if form_method else None


class SubmitInput(SubmitButton):
    type = "submit-input"


class ResetButton(Field):
    type = "reset"
    is_control = True

    def __init__(self, name: str, **kwargs: Any) -> None:
        kwargs.setdefault("validators", ())
        kwargs.setdefault("required", False)
        super().__init__(name, **kwargs)


# -- Fieldsets --


class Fieldset:
    """Named, orderable container of fields and nested fieldsets.

    ``disabled`` is tri-state: ``None`` inherits from the parent fieldset
    at submit time, ``True`` disables every visible field inside.
    """

    is_fieldset: ClassVar[bool] = True

    def __init__(
        self,
        name: str,
        *,
        legend: str | None = None,
        field_order: int | None = None,
        disabled: bool | None = None,
        children: Iterable[Field | Fieldset] = (),
    ) -> None:
        self.name = name
        self.legend = legend
        self.field_order = field_order
        self.disabled = disabled
        self.fieldset_name: str | None = None
        self.form: Form | None = None
        self._children: dict[str, Field | Fieldset] = {}
        self._ordering: ChildOrdering[str] = ChildOrdering()
        for child in children:
            self.add(child)

    def add(self, child: Field | Fieldset) -> Fieldset:
        if child.fieldset_name not in (None, self.name):
            raise ConfigurationError(
                f"[{type(self).__name__}] `{child.name}` already belongs to fieldset "
                f"`{child.fieldset_name}`."
            )
        existing = self._children.get(child.name)
        if existing is not None and existing is not child:
            raise ConfigurationError(
                f"[{type(self).__name__}] Fieldset `{self.name}` already contains `{child.name}`."
            )
        child.fieldset_name = self.name
        if existing is None:
            self._children[child.name] = child
            self._ordering.add(child.name, child.field_order)
        if self.form is not None:
            self.form.register_child(child)
        return self

    def add_field(self, field: Field) -> Fieldset:
        return self.add(field)

    def add_fieldset(self, fieldset: Fieldset) -> Fieldset:
        return self.add(fieldset)

    def remove(self, name: str) -> None:
        child = self._children.pop(name, None)
        if child is None:
            return
        self._ordering.remove(name, child.field_order)
        child.fieldset_name = None

    @property
    def fields(self) -> dict[str, Field]:
        return {n: c for n, c in self._children.items() if not c.is_fieldset}

    @property
    def fieldsets(self) -> dict[str, Fieldset]:
        return {n: c for n, c in self._children.items() if c.is_fieldset}

    def ordered_children(self) -> list[Field | Fieldset]:
        """Direct children in render order (explicit ``field_order`` spliced in)."""
        return [self._children[name] for name in self._ordering.merged()]

    def attach(self, form: Form) -> None:
        if self.form is form:
            return
        if self.form is not None:
            raise ConfigurationError(
                f"[{type(self).__name__}] Fieldset `{self.name}` already belongs to form `{self.form.id}`."
            )
        self.form = form
        for child in list(self._children.values()):
            form.register_child(child)

    def pre_dispatch(self) -> None:
        if self.form is not None and self.form.translate and self.legend is not None:
            self.legend = self.form.translate_text(self.legend)

    def __repr__(self) -> str:
        return f"Fieldset({self.name!r}, children={list(self._children)!r})"
