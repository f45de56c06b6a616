"""Filter vocabulary — structured filters derived from the loaded catalog.

Two kinds of filters feed the catalog query:

- Structured filters are `key=value` strings built from whatever
  specification keys the loaded parts actually carry.
- Quick filters are hand-authored per-category shorthands (`amd-ryzen-7`)
  that expand into one or more structured filters
  (`Brand=AMD`, `Series=Ryzen 7`).

The two are mutually exclusive: applying a quick filter replaces the
active structured set, and toggling a structured filter drops the quick
filter highlight.
"""

from __future__ import annotations

import re
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from rigbuilder.engine.compatibility import is_form_factor_compatible
from rigbuilder.engine.selection import Selection
from rigbuilder.engine.specs import known, numeric, spec
from rigbuilder.models.components import (
    CategoryId,
    FilterGroup,
    FilterOption,
    Part,
    QuickFilter,
    category_key,
)


# ──────────────────────────────────────────────
# Quick Filter Table
# ──────────────────────────────────────────────

# category → ordered (quick id, label, expansion)
_QUICK_FILTER_TABLE: Dict[str, Tuple[Tuple[str, str, Tuple[str, ...]], ...]] = {
    "cpu": (
        ("intel", "Intel", ("Brand=Intel",)),
        ("intel-core-i3", "Core i3", ("Brand=Intel", "Series=Core i3")),
        ("intel-core-i5", "Core i5", ("Brand=Intel", "Series=Core i5")),
        ("intel-core-i7", "Core i7", ("Brand=Intel", "Series=Core i7")),
        ("intel-core-i9", "Core i9", ("Brand=Intel", "Series=Core i9")),
        ("amd", "AMD", ("Brand=AMD",)),
        ("amd-ryzen-3", "Ryzen 3", ("Brand=AMD", "Series=Ryzen 3")),
        ("amd-ryzen-5", "Ryzen 5", ("Brand=AMD", "Series=Ryzen 5")),
        ("amd-ryzen-7", "Ryzen 7", ("Brand=AMD", "Series=Ryzen 7")),
        ("amd-ryzen-9", "Ryzen 9", ("Brand=AMD", "Series=Ryzen 9")),
        ("amd-threadripper", "Threadripper", ("Brand=AMD", "Series=Threadripper")),
    ),
    "gpu": (
        ("nvidia", "Nvidia", ("Brand=NVIDIA",)),
        ("rtx-50", "RTX 50", ("Brand=NVIDIA", "Series=RTX 50")),
        ("rtx-40", "RTX 40", ("Brand=NVIDIA", "Series=RTX 40")),
        ("amd", "AMD", ("Brand=AMD",)),
        ("rx-8000", "RX 8000", ("Brand=AMD", "Series=RX 8000")),
        ("rx-7000", "RX 7000", ("Brand=AMD", "Series=RX 7000")),
        ("rx-6000", "RX 6000", ("Brand=AMD", "Series=RX 6000")),
        ("rx-5000", "RX 5000", ("Brand=AMD", "Series=RX 5000")),
        ("intel", "Intel", ("Brand=Intel",)),
        ("arc-a", "Arc A", ("Brand=Intel", "Series=Arc A")),
    ),
    "motherboard": (
        ("micro-atx", "Micro-ATX", ("Form Factor=Micro-ATX",)),
        ("mini-itx", "Mini-ITX", ("Form Factor=Mini-ITX",)),
        ("atx", "ATX", ("Form Factor=ATX",)),
        ("e-atx", "E-ATX", ("Form Factor=E-ATX",)),
        ("intel-compatible", "Intel", ("Platform=Intel",)),
        ("amd-compatible", "AMD", ("Platform=AMD",)),
    ),
    "ram": (
        ("16gb", "16GB", ("Capacity=16GB",)),
        ("32gb", "32GB", ("Capacity=32GB",)),
        ("64gb", "64GB", ("Capacity=64GB",)),
        ("128gb", "128GB", ("Capacity=128GB",)),
        ("256gb", "256GB", ("Capacity=256GB",)),
        ("512gb", "512GB", ("Capacity=512GB",)),
        ("ddr4", "DDR4", ("Type=DDR4",)),
        ("ddr5", "DDR5", ("Type=DDR5",)),
    ),
    "storage": (
        ("hdd", "HDD", ("Type=HDD",)),
        ("nvme", "NVMe", ("Type=NVMe",)),
        ("sata", "SATA", ("Type=SATA",)),
    ),
    "psu": (
        ("80plus-bronze", "80+ Bronze", ("Efficiency=80 PLUS Bronze",)),
        ("80plus-gold", "80+ Gold", ("Efficiency=80 PLUS Gold",)),
        ("80plus-platinum", "80+ Platinum", ("Efficiency=80 PLUS Platinum",)),
        ("80plus-titanium", "80+ Titanium", ("Efficiency=80 PLUS Titanium",)),
    ),
    "case": (
        ("micro-atx", "Micro-ATX", ("Form Factor=Micro-ATX",)),
        ("mini-itx", "Mini-ITX", ("Form Factor=Mini-ITX",)),
        ("atx", "ATX", ("Form Factor=ATX",)),
        ("e-atx", "E-ATX", ("Form Factor=E-ATX",)),
    ),
    "cooling": (
        ("liquid", "Liquid", ("Type=Liquid",)),
        ("air", "Air", ("Type=Air",)),
    ),
    "services": (
        ("windows", "Windows", ("Type=Windows",)),
        ("wifi+bluetooth", "WiFi + Bluetooth", ("Type=WiFi + Bluetooth",)),
        ("4gpu", "For GPU", ("Type=GPU",)),
        ("sound", "Sound Card", ("Type=Sound Card",)),
        ("capture", "Capture Card", ("Type=Capture Card",)),
    ),
}

QUICK_FILTERS: Dict[str, List[QuickFilter]] = {
    category: [QuickFilter(id=qid, name=label, category=category) for qid, label, _ in rows]
    for category, rows in _QUICK_FILTER_TABLE.items()
}

_EXPANSIONS: Dict[str, Dict[str, Tuple[str, ...]]] = {
    category: {qid: expansion for qid, _, expansion in rows}
    for category, rows in _QUICK_FILTER_TABLE.items()
}

# Identity and marketing keys never become filter groups
METADATA_KEYS = frozenset({"brand", "manufacturer", "series", "model", "name"})


def quick_filters(category: str) -> List[QuickFilter]:
    """Quick filters offered for a category (empty for unknown ones)."""
    return list(QUICK_FILTERS.get(category_key(category), []))


def expand_quick_filter(category: str, quick_id: str) -> List[str]:
    """Structured `key=value` filters a quick filter stands for.

    Deterministic; empty for an unknown category or quick id.
    """
    return list(_EXPANSIONS.get(category_key(category), {}).get(quick_id, ()))


def apply_quick_filter(category: str, quick_id: Optional[str]) -> List[str]:
    """New active filter set after picking a quick filter.

    The expansion replaces whatever was active; `None` clears everything.
    """
    if quick_id is None:
        return []
    return expand_quick_filter(category, quick_id)


def is_quick_filter_active(category: str, quick_id: str, active_filters: Iterable[str]) -> bool:
    """Whether the active set is exactly this quick filter's expansion."""
    expansion = expand_quick_filter(category, quick_id)
    return bool(expansion) and set(expansion) == set(active_filters)


def reserved_keys(category: str) -> Set[str]:
    """Lower-cased spec keys owned by quick filters or metadata."""
    keys = set(METADATA_KEYS)
    for expansion in _EXPANSIONS.get(category_key(category), {}).values():
        for filter_id in expansion:
            keys.add(parse_filter_id(filter_id)[0].lower())
    return keys


# ──────────────────────────────────────────────
# Structured Filters
# ──────────────────────────────────────────────


def parse_filter_id(filter_id: str) -> Tuple[str, str]:
    """Split `key=value` on the first `=`. A value may itself contain `=`."""
    key, _, value = filter_id.partition("=")
    return key.strip(), value.strip()


def toggle_filter(active: Sequence[str], filter_id: str) -> List[str]:
    """Add the filter when absent, remove it when present."""
    if filter_id in active:
        return [f for f in active if f != filter_id]
    return list(active) + [filter_id]


_LEADING_NUMBER_RE = re.compile(r"^\s*[-+]?\d+(?:\.\d+)?")


def _value_sort_key(value: str):
    # Numeric values first, in numeric order, then the rest lexically
    match = _LEADING_NUMBER_RE.match(value)
    if match:
        return (0, float(match.group()), value.lower())
    return (1, 0.0, value.lower())


def build_filter_groups(category: str, parts: Iterable[Part]) -> List[FilterGroup]:
    """One FilterGroup per unreserved spec key present in the loaded parts.

    Keys keep the order in which they are first seen; option values are
    distinct, stripped and numeric-aware sorted.
    """
    reserved = reserved_keys(category)
    values: Dict[str, Set[str]] = {}

    for part in parts:
        for key, raw in part.specifications.items():
            if key.lower() in reserved:
                continue
            value = str(raw).strip()
            if not value:
                continue
            values.setdefault(key, set()).add(value)

    return [
        FilterGroup(
            title=key,
            options=[
                FilterOption(id=f"{key}={value}", name=value)
                for value in sorted(found, key=_value_sort_key)
            ],
        )
        for key, found in values.items()
    ]


def matches_filters(part: Part, filters: Iterable[str]) -> bool:
    """OR between values of the same key, AND across keys.

    Keys and values compare case-insensitively; a part lacking a filtered
    key does not match.
    """
    wanted: Dict[str, Set[str]] = {}
    for filter_id in filters:
        key, value = parse_filter_id(filter_id)
        if key:
            wanted.setdefault(key.lower(), set()).add(value.lower())

    if not wanted:
        return True

    specs = {k.lower(): str(v).strip().lower() for k, v in part.specifications.items()}
    return all(specs.get(key) in allowed for key, allowed in wanted.items())


def matches_search(part: Part, text: str) -> bool:
    """Case-insensitive substring search over name and description."""
    needle = text.strip().lower()
    if not needle:
        return True
    return needle in part.name.lower() or needle in part.description.lower()


def matches_price(part: Part, min_price: Optional[float], max_price: Optional[float]) -> bool:
    price = part.effective_price
    if min_price is not None and price < min_price:
        return False
    if max_price is not None and price > max_price:
        return False
    return True


# ──────────────────────────────────────────────
# Selection-Aware Prefilter
# ──────────────────────────────────────────────


def prefilter_parts(
    category: str, parts: Iterable[Part], selection: Selection, total_power: float = 0
) -> List[Part]:
    """Hide parts that physically cannot join the current selection.

    - cases that cannot mount the selected motherboard
    - motherboards too large for the selected case
    - PSUs whose rated wattage is below the estimated draw

    Parts whose data cannot be read are kept.
    """
    key = category_key(category)
    parts = list(parts)

    if key == CategoryId.CASE.value:
        board_ff = spec(selection.get(CategoryId.MOTHERBOARD), "form_factor")
        if board_ff:
            return [p for p in parts if is_form_factor_compatible(spec(p, "case_size"), board_ff)]

    if key == CategoryId.MOTHERBOARD.value:
        case_size = spec(selection.get(CategoryId.CASE), "case_size")
        if case_size:
            return [p for p in parts if is_form_factor_compatible(case_size, spec(p, "form_factor"))]

    if key == CategoryId.PSU.value and total_power > 0:
        return [p for p in parts if _psu_covers(p, total_power)]

    return parts


def _psu_covers(psu: Part, total_power: float) -> bool:
    watts = numeric(spec(psu, "wattage"))
    return not known(watts) or watts >= total_power
