"""Hardware compatibility rules — pairwise checks over the current selection.

A rule fires only when both of its parts are selected AND the fields it
needs resolve on both sides. Missing or unparsable data skips the rule;
unknown is never a violation. Violations are advisory: they never block
a selection, and every rule runs on every evaluation.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import FrozenSet, List, Optional

from rigbuilder.engine.power import (
    EFFICIENCY_THRESHOLD_WATTS,
    PowerSeverity,
    classify_psu,
    estimate_total_power,
    headroom_watts,
)
from rigbuilder.engine.selection import Selection
from rigbuilder.engine.specs import (
    count_power_connectors,
    fmt,
    known,
    largest_number,
    module_count,
    numeric,
    spec,
)
from rigbuilder.models.components import CategoryId, Part


# ──────────────────────────────────────────────
# Result Types
# ──────────────────────────────────────────────


@dataclass
class Violation:
    """A single compatibility violation."""

    rule: str
    message: str
    components_involved: List[str] = field(default_factory=list)


@dataclass
class CompatibilityResult:
    """Result of a full compatibility check."""

    passed: bool
    violations: List[Violation] = field(default_factory=list)

    @property
    def issues(self) -> List[str]:
        """The human-readable issue list, in rule order."""
        return [v.message for v in self.violations]

    @property
    def power_warnings(self) -> List[str]:
        return power_warnings(self.issues)


_POWER_WORDS = re.compile(r"power|wattage|consumption", re.IGNORECASE)


def power_warnings(issues: List[str]) -> List[str]:
    """Subset of issues the selection panel highlights as power warnings."""
    return [issue for issue in issues if _POWER_WORDS.search(issue)]


# ──────────────────────────────────────────────
# Form Factor Classes
# ──────────────────────────────────────────────

MINI_ITX = "mini-itx"
MICRO_ATX = "micro-atx"
ATX = "atx"
E_ATX = "e-atx"

# Case class → board classes it can mount
CASE_ACCEPTS = {
    E_ATX: frozenset({MINI_ITX, MICRO_ATX, ATX, E_ATX}),
    ATX: frozenset({MINI_ITX, MICRO_ATX, ATX}),
    MICRO_ATX: frozenset({MINI_ITX, MICRO_ATX}),
    MINI_ITX: frozenset({MINI_ITX}),
}


def _normalize_size(text: str) -> str:
    return re.sub(r"[\s_]+", "-", text.strip().lower())


def board_form_factor(text: Optional[str]) -> Optional[str]:
    """Normalize motherboard form factor text to a board class, or None."""
    if not text:
        return None
    size = _normalize_size(text)
    if "mini-itx" in size or "mitx" in size or size == "itx":
        return MINI_ITX
    if "micro-atx" in size or "matx" in size or "m-atx" in size:
        return MICRO_ATX
    if "e-atx" in size or "eatx" in size or "extended-atx" in size:
        return E_ATX
    if "atx" in size:
        return ATX
    return None


def case_form_factor(text: Optional[str]) -> Optional[str]:
    """Largest board class a case can take, or None when unrecognized."""
    if not text:
        return None
    size = _normalize_size(text)
    if "full-tower" in size or "e-atx" in size or "eatx" in size:
        return E_ATX
    if "mid-tower" in size:
        return ATX
    # micro-atx must be tested before plain atx: it contains "atx"
    if "micro-atx" in size or "matx" in size or "m-atx" in size:
        return MICRO_ATX
    if "mini-itx" in size or "mitx" in size or "itx" in size:
        return MINI_ITX
    if "atx" in size:
        return ATX
    return None


def is_form_factor_compatible(case_text: Optional[str], board_text: Optional[str]) -> bool:
    """Whether a case can mount a motherboard, judged on their size texts.

    Unrecognized case text is compatible (fail-open), as is an
    unrecognized board class or an empty field on either side.
    """
    case_class = case_form_factor(case_text)
    board_class = board_form_factor(board_text)
    if case_class is None or board_class is None:
        return True
    return board_class in CASE_ACCEPTS[case_class]


# ──────────────────────────────────────────────
# Vendor Tables
# ──────────────────────────────────────────────

AMD_CHIPSETS: FrozenSet[str] = frozenset({
    "A520", "B550", "X570", "A620", "B650", "X670", "B850", "X870",
    "TRX40", "TRX50", "WRX80", "WRX90",
})
INTEL_CHIPSETS: FrozenSet[str] = frozenset({
    "H510", "B560", "Z590", "H610", "B660", "H670", "Z690", "B760",
    "H770", "Z790", "B860", "Z890", "W790",
})

_CHIPSET_RE = re.compile(r"(?<![A-Z0-9])([A-Z]{1,3}\d{2,3})")


def cpu_vendor(cpu: Part) -> Optional[str]:
    """CPU vendor ("intel" or "amd") from the brand spec, else the part name."""
    brand = (spec(cpu, "brand") or "").lower()
    if "intel" in brand:
        return "intel"
    if "amd" in brand:
        return "amd"
    name = cpu.name.lower()
    if "intel" in name or "core i" in name:
        return "intel"
    if "amd" in name or "ryzen" in name or "threadripper" in name:
        return "amd"
    return None


def chipset_vendor(chipset: Optional[str]) -> Optional[str]:
    """Vendor of a recognized chipset family, or None."""
    if not chipset:
        return None
    for token in _CHIPSET_RE.findall(chipset.upper()):
        if token in AMD_CHIPSETS:
            return "amd"
        if token in INTEL_CHIPSETS:
            return "intel"
    return None


def _squash(text: str) -> str:
    return re.sub(r"\s+", "", text).upper()


# ──────────────────────────────────────────────
# CPU ↔ Motherboard
# ──────────────────────────────────────────────


def check_cpu_motherboard_socket(cpu: Part, motherboard: Part) -> Optional[Violation]:
    """CPU.socket == Motherboard.socket"""
    cpu_socket = spec(cpu, "socket")
    mobo_socket = spec(motherboard, "socket")

    if cpu_socket is None or mobo_socket is None:
        return None  # Can't check if data is missing

    if _squash(cpu_socket) != _squash(mobo_socket):
        return Violation(
            rule="cpu_motherboard_socket",
            message=(
                f"CPU socket ({cpu_socket}) does not match "
                f"motherboard socket ({mobo_socket})"
            ),
            components_involved=[cpu.name, motherboard.name],
        )
    return None


def check_cpu_motherboard_chipset(cpu: Part, motherboard: Part) -> Optional[Violation]:
    """CPU vendor must match the vendor of the board's chipset family."""
    vendor = cpu_vendor(cpu)
    chipset = spec(motherboard, "chipset")
    board_vendor = chipset_vendor(chipset)

    if vendor is None or board_vendor is None:
        return None

    if vendor != board_vendor:
        return Violation(
            rule="cpu_motherboard_chipset",
            message=(
                f"{'Intel' if vendor == 'intel' else 'AMD'} CPU is not supported "
                f"by {'AMD' if board_vendor == 'amd' else 'Intel'} chipset ({chipset})"
            ),
            components_involved=[cpu.name, motherboard.name],
        )
    return None


# ──────────────────────────────────────────────
# RAM ↔ Motherboard
# ──────────────────────────────────────────────

_DDR_RE = re.compile(r"DDR\d", re.IGNORECASE)


def check_ram_motherboard_type(ram: Part, motherboard: Part) -> Optional[Violation]:
    """RAM memory type must appear in the board's supported memory type."""
    ram_type = spec(ram, "memory_type")
    mobo_type = spec(motherboard, "board_memory_type")

    if ram_type is None or mobo_type is None:
        return None

    ram_generations = {g.upper() for g in _DDR_RE.findall(ram_type)}
    mobo_generations = {g.upper() for g in _DDR_RE.findall(mobo_type)}
    if ram_generations and mobo_generations:
        supported = bool(ram_generations & mobo_generations)
    else:
        a, b = _squash(ram_type), _squash(mobo_type)
        supported = a in b or b in a

    if not supported:
        return Violation(
            rule="ram_motherboard_type",
            message=(
                f"RAM type ({ram_type}) is not supported by "
                f"motherboard ({mobo_type})"
            ),
            components_involved=[ram.name, motherboard.name],
        )
    return None


def check_ram_motherboard_capacity(ram: Part, motherboard: Part) -> Optional[Violation]:
    """RAM.capacity (GB) <= Motherboard.max_memory (GB)"""
    capacity = numeric(spec(ram, "capacity"))
    max_ram = numeric(spec(motherboard, "max_memory"))

    if not known(capacity, max_ram):
        return None

    if capacity > max_ram:
        return Violation(
            rule="ram_motherboard_capacity",
            message=(
                f"RAM capacity ({fmt(capacity)}GB) exceeds "
                f"motherboard maximum ({fmt(max_ram)}GB)"
            ),
            components_involved=[ram.name, motherboard.name],
        )
    return None


def check_ram_motherboard_speed(ram: Part, motherboard: Part) -> Optional[Violation]:
    """RAM.speed (MHz) <= Motherboard.max_memory_speed"""
    speed = largest_number(spec(ram, "speed"))
    max_speed = largest_number(spec(motherboard, "max_memory_speed"))

    if not known(speed, max_speed):
        return None

    if speed > max_speed:
        return Violation(
            rule="ram_motherboard_speed",
            message=(
                f"RAM speed ({fmt(speed)}MHz) exceeds "
                f"motherboard maximum memory speed ({fmt(max_speed)}MHz)"
            ),
            components_involved=[ram.name, motherboard.name],
        )
    return None


def check_ram_motherboard_slots(ram: Part, motherboard: Part) -> Optional[Violation]:
    """RAM.modules <= Motherboard.memory_slots"""
    modules = module_count(spec(ram, "modules"))
    slots = numeric(spec(motherboard, "memory_slots"))

    if not known(modules, slots):
        return None

    if modules > slots:
        return Violation(
            rule="ram_motherboard_slots",
            message=(
                f"RAM modules ({fmt(modules)}) exceed "
                f"motherboard memory slots ({fmt(slots)})"
            ),
            components_involved=[ram.name, motherboard.name],
        )
    return None


# ──────────────────────────────────────────────
# Case ↔ Motherboard / GPU
# ──────────────────────────────────────────────


def check_motherboard_case_form_factor(motherboard: Part, case: Part) -> Optional[Violation]:
    """Case class must accept the board's form factor."""
    mobo_ff = spec(motherboard, "form_factor")
    case_size = spec(case, "case_size")

    if mobo_ff is None or case_size is None:
        return None

    if not is_form_factor_compatible(case_size, mobo_ff):
        return Violation(
            rule="motherboard_case_form_factor",
            message=(
                f"Motherboard form factor ({mobo_ff}) is too large "
                f"for case ({case_size})"
            ),
            components_involved=[motherboard.name, case.name],
        )
    return None


def check_case_gpu_length(case: Part, gpu: Part) -> Optional[Violation]:
    """GPU.length (mm) <= Case.max_gpu_length (mm)"""
    case_max = numeric(spec(case, "max_gpu_length"))
    gpu_len = numeric(spec(gpu, "gpu_length"))

    if not known(case_max, gpu_len):
        return None

    if gpu_len > case_max:
        return Violation(
            rule="case_gpu_length",
            message=(
                f"GPU length ({fmt(gpu_len)}mm) exceeds "
                f"case max GPU length ({fmt(case_max)}mm)"
            ),
            components_involved=[case.name, gpu.name],
        )
    return None


def check_case_gpu_slots(case: Part, gpu: Part) -> Optional[Violation]:
    """GPU.slot_width <= Case.expansion_slots"""
    expansion = numeric(spec(case, "expansion_slots"))
    width = numeric(spec(gpu, "slot_width"))

    if not known(expansion, width):
        return None

    if width > expansion:
        return Violation(
            rule="case_gpu_slots",
            message=(
                f"GPU is too wide ({fmt(width)} slots) for "
                f"case expansion slots ({fmt(expansion)})"
            ),
            components_involved=[case.name, gpu.name],
        )
    return None


# ──────────────────────────────────────────────
# Cooling
# ──────────────────────────────────────────────


def _cooler_type(cooler: Part) -> str:
    return (spec(cooler, "cooler_type") or "").lower()


def check_case_cooler_height(case: Part, cooler: Part) -> Optional[Violation]:
    """Cooler.height (mm) <= Case.max_cooler_height (mm)"""
    case_max = numeric(spec(case, "max_cooler_height"))
    height = numeric(spec(cooler, "cooler_height"))

    if not known(case_max, height):
        return None

    if height > case_max:
        return Violation(
            rule="case_cooler_height",
            message=(
                f"CPU cooler height ({fmt(height)}mm) exceeds "
                f"case max cooler height ({fmt(case_max)}mm)"
            ),
            components_involved=[case.name, cooler.name],
        )
    return None


_UNIVERSAL_RE = re.compile(r"\buniversal\b|\ball\b", re.IGNORECASE)


def check_cooler_cpu_socket(cooler: Part, cpu: Part) -> Optional[Violation]:
    """CPU.socket IN Cooler.socket_support (or a universal mount)"""
    cpu_socket = spec(cpu, "socket")
    cooler_sockets = spec(cooler, "cooler_sockets")

    if cpu_socket is None or cooler_sockets is None:
        return None

    if _UNIVERSAL_RE.search(cooler_sockets):
        return None

    if _squash(cpu_socket) not in _squash(cooler_sockets):
        return Violation(
            rule="cooler_cpu_socket",
            message=(
                f"CPU socket ({cpu_socket}) is not supported "
                f"by cooler (supports: {cooler_sockets})"
            ),
            components_involved=[cooler.name, cpu.name],
        )
    return None


def check_cooler_cpu_tdp(cooler: Part, cpu: Part) -> Optional[Violation]:
    """Cooler.max_tdp >= CPU.tdp"""
    cooler_tdp = numeric(spec(cooler, "max_tdp"))
    cpu_tdp = numeric(spec(cpu, "tdp"))

    if not known(cooler_tdp, cpu_tdp):
        return None

    if cooler_tdp < cpu_tdp:
        return Violation(
            rule="cooler_cpu_tdp",
            message=(
                f"Insufficient cooling: cooler TDP rating ({fmt(cooler_tdp)}W) "
                f"is below CPU TDP ({fmt(cpu_tdp)}W)"
            ),
            components_involved=[cooler.name, cpu.name],
        )
    return None


HIGH_PROFILE_RAM_MM = 45


def is_high_profile_ram(ram: Part) -> Optional[bool]:
    """Whether a RAM kit has tall heat spreaders; None when unknown."""
    profile = spec(ram, "ram_profile")
    if profile is None:
        return None
    text = profile.lower()
    if "high" in text:
        return True
    if "low" in text or "standard" in text:
        return False
    height = numeric(profile)
    if not known(height):
        return None
    return height >= HIGH_PROFILE_RAM_MM


def check_cooler_ram_clearance(cooler: Part, ram: Part) -> Optional[Violation]:
    """Tower/air coolers can overhang high-profile memory."""
    cooler_type = _cooler_type(cooler)
    if not cooler_type or ("tower" not in cooler_type and "air" not in cooler_type):
        return None

    if not is_high_profile_ram(ram):
        return None

    return Violation(
        rule="cooler_ram_clearance",
        message=(
            f"Tower cooler ({cooler.name}) may not clear "
            f"high-profile RAM ({ram.name})"
        ),
        components_involved=[cooler.name, ram.name],
    )


def check_case_radiator(case: Part, cooler: Part) -> Optional[Violation]:
    """Liquid cooler radiator (mm) <= Case.radiator_support (mm)"""
    cooler_type = _cooler_type(cooler)
    if "liquid" not in cooler_type and "aio" not in cooler_type:
        return None

    radiator = largest_number(spec(cooler, "radiator_size"))
    support = largest_number(spec(case, "radiator_support"))

    if not known(radiator, support):
        return None

    if radiator > support:
        return Violation(
            rule="case_radiator",
            message=(
                f"Radiator ({fmt(radiator)}mm) is too large for "
                f"case radiator support ({fmt(support)}mm)"
            ),
            components_involved=[case.name, cooler.name],
        )
    return None


# ──────────────────────────────────────────────
# PSU
# ──────────────────────────────────────────────


def check_case_psu_length(case: Part, psu: Part) -> Optional[Violation]:
    """PSU.length (mm) <= Case.max_psu_length (mm)"""
    case_max = numeric(spec(case, "max_psu_length"))
    length = numeric(spec(psu, "psu_length"))

    if not known(case_max, length):
        return None

    if length > case_max:
        return Violation(
            rule="case_psu_length",
            message=(
                f"PSU length ({fmt(length)}mm) exceeds "
                f"case max PSU length ({fmt(case_max)}mm)"
            ),
            components_involved=[case.name, psu.name],
        )
    return None


def check_case_psu_form_factor(case: Part, psu: Part) -> Optional[Violation]:
    """PSU.form_factor substring-contained in Case.psu_support"""
    psu_ff = spec(psu, "form_factor")
    support = spec(case, "psu_support")

    if psu_ff is None or support is None:
        return None

    if _squash(psu_ff) not in _squash(support):
        return Violation(
            rule="case_psu_form_factor",
            message=(
                f"PSU form factor ({psu_ff}) is not supported "
                f"by case (supports: {support})"
            ),
            components_involved=[case.name, psu.name],
        )
    return None


def check_psu_wattage(psu: Part, total_power: float) -> Optional[Violation]:
    """PSU.wattage against the estimated draw: critical or headroom advisory."""
    psu_watts = numeric(spec(psu, "wattage"))

    if not known(psu_watts) or total_power <= 0:
        return None

    severity = classify_psu(psu_watts, total_power)
    total = fmt(total_power)
    watts = fmt(psu_watts)

    if severity == PowerSeverity.CRITICAL:
        message = f"PSU critically underpowered: {watts}W < {total}W estimated power draw"
    elif severity == PowerSeverity.ADVISORY:
        message = (
            f"PSU wattage leaves little headroom: "
            f"{watts}W < {headroom_watts(total_power)}W recommended"
        )
    else:
        return None

    return Violation(
        rule=f"psu_wattage_{severity.value}",
        message=message,
        components_involved=[psu.name],
    )


_EIGHTY_PLUS_RE = re.compile(r"80\s*(?:\+|plus)", re.IGNORECASE)


def check_psu_efficiency(psu: Part, total_power: float) -> Optional[Violation]:
    """Draw above 500 W calls for an 80 PLUS certified PSU."""
    efficiency = spec(psu, "efficiency")

    if efficiency is None or total_power <= EFFICIENCY_THRESHOLD_WATTS:
        return None

    if not _EIGHTY_PLUS_RE.search(efficiency):
        return Violation(
            rule="psu_efficiency",
            message=(
                f"High power draw ({fmt(total_power)}W) calls for an 80 PLUS "
                f"certified PSU (rated: {efficiency})"
            ),
            components_involved=[psu.name],
        )
    return None


def check_gpu_psu_connectors(gpu: Part, psu: Part) -> Optional[Violation]:
    """GPU 8-pin/6-pin connector demand <= PSU PCIe connector supply.

    Spare 8-pin (6+2) plugs can stand in for missing 6-pin ones. A PSU that
    lists a bare count ("4") is read as that many 6+2-pin plugs.
    """
    need_text = spec(gpu, "power_connectors")
    have_text = spec(psu, "pcie_connectors")

    if need_text is None or have_text is None:
        return None

    need8, need6 = count_power_connectors(need_text)
    if need8 == 0 and need6 == 0:
        return None

    have8, have6 = count_power_connectors(have_text)
    if have8 == 0 and have6 == 0:
        bare = numeric(have_text)
        if not known(bare):
            return None
        have8 = int(bare)

    spare8 = have8 - need8
    if spare8 < 0 or need6 > have6 + spare8:
        return Violation(
            rule="gpu_psu_connectors",
            message=(
                f"GPU needs {need8}x 8-pin + {need6}x 6-pin connectors, "
                f"PSU provides {have8}x 8-pin + {have6}x 6-pin"
            ),
            components_involved=[gpu.name, psu.name],
        )
    return None


# ──────────────────────────────────────────────
# Storage ↔ Motherboard
# ──────────────────────────────────────────────


def check_storage_motherboard_interface(storage: Part, motherboard: Part) -> Optional[Violation]:
    """NVMe/M.2 drives need an M.2 slot; SATA drives need a SATA port."""
    storage_type = spec(storage, "storage_type")
    if storage_type is None:
        return None

    text = storage_type.upper()
    if "NVME" in text or "M.2" in text:
        slot_name, available = "M.2 slots", numeric(spec(motherboard, "m2_slots"))
    elif "SATA" in text:
        slot_name, available = "SATA ports", numeric(spec(motherboard, "sata_ports"))
    else:
        return None

    if not known(available):
        return None

    if available < 1:
        return Violation(
            rule="storage_motherboard_interface",
            message=(
                f"Storage interface ({storage_type}) has no matching "
                f"motherboard connector ({slot_name}: {fmt(available)})"
            ),
            components_involved=[storage.name, motherboard.name],
        )
    return None


# ──────────────────────────────────────────────
# Main Compatibility Check
# ──────────────────────────────────────────────


def check_compatibility(
    selection: Selection, total_power: Optional[float] = None
) -> CompatibilityResult:
    """Run every compatibility rule against the current selection.

    Never short-circuits: the result carries every violation found.
    `total_power` defaults to the estimate for the same selection.
    """
    if total_power is None:
        total_power = estimate_total_power(selection)

    violations: List[Violation] = []

    cpu = selection.get(CategoryId.CPU)
    motherboard = selection.get(CategoryId.MOTHERBOARD)
    ram = selection.get(CategoryId.RAM)
    gpu = selection.get(CategoryId.GPU)
    psu = selection.get(CategoryId.PSU)
    case = selection.get(CategoryId.CASE)
    cooler = selection.get(CategoryId.COOLING)
    storage = selection.get(CategoryId.STORAGE)

    def add(v: Optional[Violation]) -> None:
        if v:
            violations.append(v)

    # CPU ↔ Motherboard
    if cpu and motherboard:
        add(check_cpu_motherboard_socket(cpu, motherboard))
        add(check_cpu_motherboard_chipset(cpu, motherboard))

    # RAM ↔ Motherboard
    if ram and motherboard:
        add(check_ram_motherboard_type(ram, motherboard))
        add(check_ram_motherboard_capacity(ram, motherboard))
        add(check_ram_motherboard_speed(ram, motherboard))
        add(check_ram_motherboard_slots(ram, motherboard))

    # Case ↔ Motherboard
    if motherboard and case:
        add(check_motherboard_case_form_factor(motherboard, case))

    # GPU ↔ Case
    if case and gpu:
        add(check_case_gpu_length(case, gpu))
        add(check_case_gpu_slots(case, gpu))

    # Cooling ↔ Case
    if case and cooler:
        add(check_case_cooler_height(case, cooler))

    # Cooling ↔ CPU
    if cooler and cpu:
        add(check_cooler_cpu_socket(cooler, cpu))
        add(check_cooler_cpu_tdp(cooler, cpu))

    # Cooling ↔ RAM, only once the board they share is chosen
    if cooler and ram and motherboard:
        add(check_cooler_ram_clearance(cooler, ram))

    # Cooling ↔ Case radiator
    if case and cooler:
        add(check_case_radiator(case, cooler))

    # PSU ↔ Case
    if case and psu:
        add(check_case_psu_length(case, psu))
        add(check_case_psu_form_factor(case, psu))

    # PSU ↔ System
    if psu:
        add(check_psu_wattage(psu, total_power))
        add(check_psu_efficiency(psu, total_power))

    # Storage ↔ Motherboard
    if storage and motherboard:
        add(check_storage_motherboard_interface(storage, motherboard))

    # GPU ↔ PSU
    if gpu and psu:
        add(check_gpu_psu_connectors(gpu, psu))

    return CompatibilityResult(
        passed=len(violations) == 0,
        violations=violations,
    )
