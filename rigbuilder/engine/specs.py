"""Specification accessor — reads fields out of a part's open spec bag.

Catalog data has accumulated several spellings for the same attribute
("Socket", "socket", "CPU Socket"). Every logical field the rule set needs
is listed once in SPEC_KEYS with its candidate spellings, in lookup order.

Numeric helpers return NaN for anything they cannot read; callers treat
NaN as "unknown" and skip the check.
"""

from __future__ import annotations

import math
import re
from typing import Dict, Optional, Tuple

from rigbuilder.models.components import Part


# ──────────────────────────────────────────────
# Candidate Key Table
# ──────────────────────────────────────────────

SPEC_KEYS: Dict[str, Tuple[str, ...]] = {
    # Shared
    "brand": ("Brand", "brand", "Manufacturer", "manufacturer"),
    "form_factor": ("Form Factor", "form_factor", "formFactor"),
    "length": ("Length", "length", "length_mm"),
    "height": ("Height", "height", "height_mm"),
    # CPU / motherboard
    "socket": ("Socket", "socket", "CPU Socket", "cpu_socket", "cpuSocket"),
    "chipset": ("Chipset", "chipset"),
    "tdp": ("TDP", "tdp", "Power Consumption", "power_consumption"),
    "board_memory_type": (
        "Memory Type", "memory_type", "memoryType",
        "Supported Memory", "RAM Type", "ram_type",
    ),
    "max_memory": (
        "Max Memory", "max_memory", "maxMemory", "Maximum Memory", "max_ram_gb",
    ),
    "max_memory_speed": (
        "Max Memory Speed", "max_memory_speed", "maxMemorySpeed",
        "Memory Speed", "memory_speed",
    ),
    "memory_slots": (
        "Memory Slots", "memory_slots", "memorySlots", "RAM Slots", "ram_slots",
    ),
    "m2_slots": ("M.2 Slots", "m2_slots", "m2Slots", "M2 Slots"),
    "sata_ports": ("SATA Ports", "sata_ports", "sataPorts", "SATA Connectors"),
    # RAM
    "memory_type": ("Type", "type", "Memory Type", "memory_type", "memoryType"),
    "capacity": ("Capacity", "capacity", "Total Capacity", "capacity_gb"),
    "speed": ("Speed", "speed", "Frequency", "frequency"),
    "modules": ("Modules", "modules", "Module Count", "module_count", "Kit"),
    "ram_profile": ("Profile", "profile", "Height", "height", "Heat Spreader"),
    # GPU
    "gpu_length": ("Length", "length", "Card Length", "gpu_length", "length_mm"),
    "slot_width": ("Slot Width", "slot_width", "slotWidth", "Slots", "slots"),
    "power_connectors": (
        "Power Connectors", "power_connectors", "powerConnectors",
        "Power Connector",
    ),
    # Case
    "case_size": (
        "Form Factor", "form_factor", "formFactor",
        "Case Type", "case_type", "Type", "type", "Size",
    ),
    "max_gpu_length": (
        "Max GPU Length", "max_gpu_length", "maxGpuLength",
        "GPU Clearance", "max_gpu_length_mm",
    ),
    "expansion_slots": ("Expansion Slots", "expansion_slots", "expansionSlots"),
    "max_cooler_height": (
        "Max CPU Cooler Height", "max_cpu_cooler_height", "maxCpuCoolerHeight",
        "CPU Cooler Clearance", "max_cooler_height",
    ),
    "radiator_support": (
        "Radiator Support", "radiator_support", "radiatorSupport",
        "Max Radiator Size", "max_radiator_size",
    ),
    "max_psu_length": (
        "Max PSU Length", "max_psu_length", "maxPsuLength", "PSU Clearance",
    ),
    "psu_support": (
        "PSU Form Factor", "psu_form_factor", "psuFormFactor",
        "PSU Support", "psu_support", "Supported PSU",
    ),
    # Cooling
    "cooler_type": ("Type", "type", "Cooler Type", "cooler_type", "Cooling Type"),
    "cooler_sockets": (
        "Socket Support", "socket_support", "socketSupport",
        "Compatible Sockets", "Supported Sockets", "Sockets", "sockets",
        "Socket", "socket",
    ),
    "max_tdp": ("Max TDP", "max_tdp", "maxTdp", "TDP Rating", "tdp_rating", "TDP", "tdp"),
    "cooler_height": ("Height", "height", "Cooler Height", "cooler_height"),
    "radiator_size": ("Radiator Size", "radiator_size", "radiatorSize", "Radiator"),
    # PSU
    "wattage": ("Wattage", "wattage", "Power", "power", "Output"),
    "efficiency": (
        "Efficiency", "efficiency", "Efficiency Rating", "Certification", "80 PLUS",
    ),
    "psu_length": ("Length", "length", "Depth", "depth"),
    "pcie_connectors": (
        "PCIe Connectors", "pcie_connectors", "pcieConnectors",
        "PCI-E Connectors", "GPU Connectors",
    ),
    # Storage
    "storage_type": (
        "Type", "type", "Interface", "interface", "Storage Type", "storage_type",
    ),
}


# ──────────────────────────────────────────────
# Accessors
# ──────────────────────────────────────────────


def get_spec(part: Optional[Part], *candidate_keys: str) -> Optional[str]:
    """Return the first present, non-empty value among the candidate keys."""
    if part is None:
        return None
    for key in candidate_keys:
        value = part.specifications.get(key)
        if value is not None and str(value).strip():
            return str(value).strip()
    return None


def spec(part: Optional[Part], field: str) -> Optional[str]:
    """Resolve a logical field through the SPEC_KEYS table."""
    return get_spec(part, *SPEC_KEYS[field])


# ──────────────────────────────────────────────
# Numeric Normalization
# ──────────────────────────────────────────────

_NUMBER_RE = re.compile(r"(?:(?<![\w.])[-+])?\d+(?:\.\d+)?")
_THOUSANDS_RE = re.compile(r"(?<=\d),(?=\d{3}\b)")
_MODULES_RE = re.compile(r"^\s*(\d+)\s*[x×*]", re.IGNORECASE)
_CONNECTOR_RE = re.compile(
    r"(?:(\d+)\s*[x×]\s*)?(?<!\d)(6\s*\+\s*2|8|6)\s*-?\s*pin", re.IGNORECASE
)


def _tokens(value: Optional[str]) -> list[float]:
    if value is None:
        return []
    text = _THOUSANDS_RE.sub("", str(value))
    return [float(t) for t in _NUMBER_RE.findall(text)]


def numeric(value: Optional[str]) -> float:
    """Number carried by a unit-suffixed string ("16 GB" → 16, "850W" → 850).

    Reads the first numeric token; NaN when there is none.
    """
    tokens = _tokens(value)
    return tokens[0] if tokens else math.nan


def largest_number(value: Optional[str]) -> float:
    """Largest numeric token, e.g. "DDR5-6000" → 6000, "360mm / 280mm" → 360."""
    tokens = _tokens(value)
    return max(tokens) if tokens else math.nan


def module_count(value: Optional[str]) -> float:
    """Module count of a RAM kit ("2x16GB" → 2, "4" → 4)."""
    if value is None:
        return math.nan
    match = _MODULES_RE.match(str(value))
    if match:
        return float(match.group(1))
    return numeric(value)


def count_power_connectors(text: Optional[str]) -> Tuple[int, int]:
    """Count PCIe power connectors in free text → (eight_pin, six_pin).

    "6+2-pin" plugs count as 8-pin. A bare "8-pin" counts as one.
    """
    eight = six = 0
    if not text:
        return eight, six
    for qty, kind in _CONNECTOR_RE.findall(str(text)):
        n = int(qty) if qty else 1
        if kind.replace(" ", "") == "6":
            six += n
        else:
            eight += n
    return eight, six


def known(*values: float) -> bool:
    """True when every value is a usable number."""
    return all(not math.isnan(v) for v in values)


def fmt(value: float) -> str:
    """Render a measured value without a trailing `.0`."""
    return str(int(value)) if float(value).is_integer() else f"{value:g}"
