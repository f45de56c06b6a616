"""Selection store — the shopper's in-progress build.

Structural categories hold exactly one part; `services` holds an ordered
list with toggle semantics. Entries are tagged variants so callers never
have to branch on "is this a list?".
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple, Union

from rigbuilder.models.build import ConfigurationLine
from rigbuilder.models.components import (
    CONFIGURATOR_SLOTS,
    MULTI_SELECT_CATEGORIES,
    Part,
    category_key,
)


# ──────────────────────────────────────────────
# Entry Variants
# ──────────────────────────────────────────────


@dataclass(frozen=True)
class Single:
    """A structural slot holding one part."""

    part: Part

    def first(self) -> Optional[Part]:
        return self.part

    def all(self) -> List[Part]:
        return [self.part]


@dataclass(frozen=True)
class Multiple:
    """A multi-select slot holding one or more parts, in selection order."""

    parts: Tuple[Part, ...]

    def first(self) -> Optional[Part]:
        return self.parts[0] if self.parts else None

    def all(self) -> List[Part]:
        return list(self.parts)


SelectionEntry = Union[Single, Multiple]


# ──────────────────────────────────────────────
# Store
# ──────────────────────────────────────────────


class Selection:
    """Mapping from category key to a selection entry.

    Every mutation bumps `version`; derived values (issues, power total)
    are memoized against it.
    """

    def __init__(self) -> None:
        self._entries: Dict[str, SelectionEntry] = {}
        self.version = 0

    # ── Mutations ──

    def select(self, category_id: Any, part: Part) -> bool:
        """Select a part. Toggles for multi-select slots, replaces otherwise.

        Categories outside the configurator slots (legacy networking,
        sound cards, unknown ids) are refused and leave the store untouched.
        Returns whether the part was routed into a slot.
        """
        key = category_key(category_id)
        if key not in CONFIGURATOR_SLOTS:
            return False
        if key in MULTI_SELECT_CATEGORIES:
            current = self.all(key)
            if any(p.id == part.id for p in current):
                remaining = tuple(p for p in current if p.id != part.id)
            else:
                remaining = tuple(current) + (part,)

            if remaining:
                self._entries[key] = Multiple(remaining)
            else:
                # An emptied services slot is removed, never kept as []
                self._entries.pop(key, None)
        else:
            self._entries[key] = Single(part)
        self.version += 1
        return True

    def deselect(self, category_id: Any) -> None:
        """Remove the category's entry entirely."""
        if self._entries.pop(category_key(category_id), None) is not None:
            self.version += 1

    def clear(self) -> None:
        if self._entries:
            self._entries.clear()
            self.version += 1

    # ── Accessors ──

    def get(self, category_id: Any) -> Optional[Part]:
        """The part in a slot (first service for multi-select slots)."""
        entry = self._entries.get(category_key(category_id))
        return entry.first() if entry is not None else None

    def has(self, category_id: Any) -> bool:
        entry = self._entries.get(category_key(category_id))
        return entry is not None and bool(entry.all())

    def all(self, category_id: Any) -> List[Part]:
        """Every part in a slot, as a list (empty when unselected)."""
        entry = self._entries.get(category_key(category_id))
        return entry.all() if entry is not None else []

    def entry(self, category_id: Any) -> Optional[SelectionEntry]:
        return self._entries.get(category_key(category_id))

    def categories(self) -> List[str]:
        return list(self._entries)

    def parts(self) -> List[Part]:
        """Every selected part across all slots."""
        return [p for entry in self._entries.values() for p in entry.all()]

    def is_selected(self, part: Part, category_id: Any = None) -> bool:
        key = category_key(category_id) if category_id is not None else part.category_id
        return any(p.id == part.id for p in self.all(key))

    def missing(self, required: Iterable[Any]) -> List[str]:
        """Required categories that have no selection yet."""
        return [category_key(c) for c in required if not self.has(c)]

    def total_price(self) -> float:
        return round(sum(p.effective_price for p in self.parts()), 2)

    def to_lines(self) -> List[ConfigurationLine]:
        """Flatten to `{id, quantity}` lines — one line per service."""
        return [ConfigurationLine(id=p.id, quantity=1) for p in self.parts()]

    def as_dict(self) -> Dict[str, Union[Part, List[Part]]]:
        """Plain snapshot: a part per structural slot, a list for services."""
        return {
            key: entry.all() if isinstance(entry, Multiple) else entry.part
            for key, entry in self._entries.items()
        }

    def __contains__(self, category_id: Any) -> bool:
        return self.has(category_id)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._entries))

    # ── Construction ──

    @classmethod
    def from_mapping(
        cls, mapping: Mapping[Any, Union[Part, List[Part], None]]
    ) -> "Selection":
        """Rebuild a Selection from a plain `{category: part | [parts]}` snapshot.

        Entries under non-configurator categories are dropped.
        """
        selection = cls()
        for category, value in mapping.items():
            if value is None:
                continue
            parts = value if isinstance(value, list) else [value]
            for part in parts:
                selection.select(category, part)
        return selection

    @classmethod
    def from_parts(cls, parts: Iterable[Part]) -> "Selection":
        """Route parts into slots by their own `category_id`; others are dropped."""
        selection = cls()
        for part in parts:
            if part.category_id:
                selection.select(part.category_id, part)
        return selection
