"""Power budget estimation and PSU sizing.

Each structural category contributes a wattage — the catalog's own
power figure when it has one, a static default otherwise. The sum is the
estimated draw; the recommended PSU adds 30% headroom and snaps up onto
the market wattage ladder.
"""

from __future__ import annotations

import math
from fractions import Fraction
from enum import Enum
from typing import Dict, Optional, Union

from rigbuilder.engine.selection import Selection
from rigbuilder.engine.specs import known, numeric, spec
from rigbuilder.models.components import CategoryId, Part, category_key

# ──────────────────────────────────────────────
# Static Tables
# ──────────────────────────────────────────────

# Fallback draw when the catalog has no power figure for the part
DEFAULT_WATTS: Dict[str, int] = {
    CategoryId.CPU.value: 65,
    CategoryId.GPU.value: 150,
    CategoryId.RAM.value: 10,
    CategoryId.STORAGE.value: 15,
}

MOTHERBOARD_WATTS = 30
LIQUID_COOLING_WATTS = 20
AIR_COOLING_WATTS = 10

HEADROOM_FACTOR = Fraction(13, 10)
MINIMUM_RECOMMENDED_WATTS = 450

# Market PSU sizes, ascending. Anything above 1000 W is "1200+".
PSU_LADDER = (500, 600, 650, 750, 850, 1000, "1200+")
TOP_RUNG_WATTS = 1200

# Draw above which an 80 PLUS certified PSU is expected
EFFICIENCY_THRESHOLD_WATTS = 500

PsuRung = Union[int, str]


class PowerSeverity(str, Enum):
    """How far a PSU falls short of the estimated draw."""

    OK = "ok"
    ADVISORY = "advisory"
    CRITICAL = "critical"


# ──────────────────────────────────────────────
# Per-Category Contributions
# ──────────────────────────────────────────────


def _catalog_watts(part: Part) -> Optional[float]:
    value = part.power_consumption
    return value if value is not None and value > 0 else None


def part_watts(category_id: str, part: Part) -> float:
    """Wattage one selected part adds to the system draw."""
    if category_id == CategoryId.CPU:
        catalog = _catalog_watts(part)
        if catalog is not None:
            return catalog
        tdp = numeric(spec(part, "tdp"))
        if known(tdp) and tdp > 0:
            return tdp
        return DEFAULT_WATTS[CategoryId.CPU.value]

    if category_id in (CategoryId.GPU, CategoryId.RAM, CategoryId.STORAGE):
        catalog = _catalog_watts(part)
        return catalog if catalog is not None else DEFAULT_WATTS[category_key(category_id)]

    if category_id == CategoryId.MOTHERBOARD:
        return MOTHERBOARD_WATTS

    if category_id == CategoryId.COOLING:
        cooler_type = (spec(part, "cooler_type") or "").lower()
        return LIQUID_COOLING_WATTS if "liquid" in cooler_type else AIR_COOLING_WATTS

    # PSU, case and services draw nothing
    return 0


def power_breakdown(selection: Selection) -> Dict[str, int]:
    """Per-category wattage for every powered slot in the selection."""
    breakdown: Dict[str, int] = {}
    for category in selection.categories():
        part = selection.get(category)
        if part is None:
            continue
        watts = part_watts(category, part)
        if watts:
            breakdown[category] = math.ceil(watts)
    return breakdown


def estimate_total_power(selection: Selection) -> int:
    """Estimated total system draw in watts."""
    return sum(power_breakdown(selection).values())


# ──────────────────────────────────────────────
# PSU Sizing
# ──────────────────────────────────────────────


def ladder_value(rung: PsuRung) -> int:
    """Numeric wattage of a ladder rung ("1200+" → 1200)."""
    return TOP_RUNG_WATTS if isinstance(rung, str) else rung


def recommended_psu_wattage(total: float) -> PsuRung:
    """Smallest ladder rung covering the draw plus 30% headroom."""
    needed = max(MINIMUM_RECOMMENDED_WATTS, headroom_watts(total))
    for rung in PSU_LADDER[:-1]:
        if rung >= needed:
            return rung
    return PSU_LADDER[-1]


def _scaled_ceil(total: float, factor: Fraction) -> int:
    # Exact arithmetic: a float product can land just above a whole watt
    return math.ceil(Fraction(str(total)) * factor)


def headroom_watts(total: float) -> int:
    """PSU wattage at which no headroom warning is emitted."""
    return _scaled_ceil(total, HEADROOM_FACTOR)


def classify_psu(psu_watts: float, total: float) -> PowerSeverity:
    """Severity band of a PSU rated `psu_watts` against draw `total`.

    critical:  P < total
    advisory:  total <= P < ceil(total * 1.3)
    ok:        P >= ceil(total * 1.3)

    A PSU that covers the draw but misses the 30% headroom is advisory,
    however thin the margin.
    """
    if psu_watts < total:
        return PowerSeverity.CRITICAL
    if psu_watts < headroom_watts(total):
        return PowerSeverity.ADVISORY
    return PowerSeverity.OK
