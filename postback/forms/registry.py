"""Field and fieldset registry with deterministic render ordering.

Children are kept in two buckets: ``naturally`` (insertion order) and
``numbered`` (explicit ``field_order`` -> names). Sorting splices each
numbered group into the natural list using the order number as a literal
list index, lowest number first, so ``[a, b, c]`` plus ``d`` at order 1
becomes ``[a, d, b, c]``. Gaps simply move the insertion point; an index
past the end appends.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Generic, Hashable, TypeVar, Union

from postback.lib.exceptions import ConfigurationError

if TYPE_CHECKING:
    from postback.forms.fields import Field, Fieldset

    Entry = Union[Field, Fieldset]

K = TypeVar("K", bound=Hashable)


class ChildOrdering(Generic[K]):
    """Natural/numbered ordering buckets with an idempotent ``sorted`` flag."""

    def __init__(self) -> None:
        self.naturally: list[K] = []
        self.numbered: dict[int, list[K]] = {}
        self.sorted = True

    def add(self, key: K, order: int | None = None) -> None:
        bucket = self.naturally if order is None else self.numbered.setdefault(order, [])
        if key not in bucket:
            bucket.append(key)
            self.sorted = False

    def remove(self, key: K, order: int | None = None) -> None:
        bucket = self.naturally if order is None else self.numbered.get(order, [])
        if key in bucket:
            bucket.remove(key)
            self.sorted = False
        if order is not None and order in self.numbered and not self.numbered[order]:
            del self.numbered[order]

    def merged(self) -> list[K]:
        """Return all keys in render order without touching the buckets."""
        result = list(self.naturally)
        for order in sorted(self.numbered):
            result[order:order] = self.numbered[order]
        return result


class FieldRegistry:
    """Owns a form's fields and fieldsets.

    Entries live in an append-only arena and are referenced by slot index,
    so ordering state never has to be spliced by name. ``fields`` is the
    flat map of every field (nested fieldsets included), ``children`` only
    the root-level entries.
    """

    def __init__(self, owner: str = "") -> None:
        self.owner = owner
        self._arena: list[Entry | None] = []
        self._slots: dict[str, int] = {}
        self._ordering: ChildOrdering[int] = ChildOrdering()
        self.fields: dict[str, Field] = {}
        self.fieldsets: dict[str, Fieldset] = {}
        self.children: dict[str, Entry] = {}

    @property
    def sorted(self) -> bool:
        return self._ordering.sorted

    def add(self, entry: Entry, root: bool = True) -> bool:
        """Register a field or fieldset.

        Returns False when the very same instance is already registered.

        Raises:
            ConfigurationError: another field or fieldset already uses the name
        """
        name = entry.name
        slot = self._slots.get(name)
        if slot is not None:
            if self._arena[slot] is entry:
                return False
            raise ConfigurationError(
                f"[{type(entry).__name__}] Name `{name}` is already registered "
                f"in form `{self.owner}`."
            )

        slot = len(self._arena)
        self._arena.append(entry)
        self._slots[name] = slot
        if entry.is_fieldset:
            self.fieldsets[name] = entry
        else:
            self.fields[name] = entry
        if root:
            self.children[name] = entry
            self._ordering.add(slot, entry.field_order)
        self._ordering.sorted = False
        return True

    def remove(self, name: str) -> Entry | None:
        """Unregister ``name``; a fieldset takes its registered descendants along."""
        slot = self._slots.pop(name, None)
        if slot is None:
            return None
        entry = self._arena[slot]
        self._arena[slot] = None
        self.fields.pop(name, None)
        self.fieldsets.pop(name, None)
        if self.children.pop(name, None) is not None:
            self._ordering.remove(slot, entry.field_order)
        self._ordering.sorted = False
        if entry.is_fieldset:
            for child in entry.ordered_children():
                if self.get(child.name) is child:
                    self.remove(child.name)
        return entry

    def get(self, name: str) -> Entry | None:
        slot = self._slots.get(name)
        return None if slot is None else self._arena[slot]

    def __contains__(self, name: str) -> bool:
        return name in self._slots

    def __len__(self) -> int:
        return len(self._slots)

    def in_registration_order(self) -> list[Entry]:
        return [entry for entry in self._arena if entry is not None]

    @property
    def submit_fields(self) -> list[Field]:
        """Submit controls in registration order."""
        return [
            entry
            for entry in self.in_registration_order()
            if not entry.is_fieldset and entry.is_submit
        ]

    def sort(self) -> None:
        """Rebuild ``fields``, ``fieldsets`` and ``children`` in render order.

        Idempotent until something new is added or removed.

        Raises:
            ConfigurationError: a registered entry is not reachable from the
                root (e.g. it names a fieldset that was never added)
        """
        if self._ordering.sorted:
            return

        fields: dict[str, Field] = {}
        fieldsets: dict[str, Fieldset] = {}
        children: dict[str, Entry] = {}
        for slot in self._ordering.merged():
            entry = self._arena[slot]
            children[entry.name] = entry
            self._collect(entry, fields, fieldsets)

        missing = [n for n in self._slots if n not in fields and n not in fieldsets]
        if missing:
            names = "`, `".join(missing)
            raise ConfigurationError(
                f"[{type(self).__name__}] Some fields or fieldsets are not connected "
                f"with form instance, form id: `{self.owner}`, names: `{names}`."
            )

        self.fields = fields
        self.fieldsets = fieldsets
        self.children = children
        self._ordering.sorted = True

    def _collect(
        self,
        entry: Entry,
        fields: dict[str, Field],
        fieldsets: dict[str, Fieldset],
    ) -> None:
        # only entries this registry knows about are collected
        if self.get(entry.name) is not entry:
            return
        if entry.is_fieldset:
            fieldsets[entry.name] = entry
            for child in entry.ordered_children():
                self._collect(child, fields, fieldsets)
        else:
            fields[entry.name] = entry
