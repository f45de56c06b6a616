"""Shared enums, part/category models, and filter vocabulary models for RigBuilder."""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


# ──────────────────────────────────────────────
# Enums: Shared Vocabulary
# ──────────────────────────────────────────────


class CategoryId(str, Enum):
    """Configurator slots a part can occupy."""

    CPU = "cpu"
    GPU = "gpu"
    MOTHERBOARD = "motherboard"
    RAM = "ram"
    STORAGE = "storage"
    COOLING = "cooling"
    CASE = "case"
    PSU = "psu"
    SERVICES = "services"


# Fixed order of the structural slots, one part each
STRUCTURAL_CATEGORIES = (
    CategoryId.CPU.value,
    CategoryId.GPU.value,
    CategoryId.MOTHERBOARD.value,
    CategoryId.RAM.value,
    CategoryId.STORAGE.value,
    CategoryId.COOLING.value,
    CategoryId.CASE.value,
    CategoryId.PSU.value,
)

# Slots that hold a list of parts instead of a single one
MULTI_SELECT_CATEGORIES = frozenset({CategoryId.SERVICES.value})

# Legacy catalog categories that never appear in the configurator
EXCLUDED_CATEGORIES = frozenset({"networking", "sound-cards"})

# Every slot a Selection may hold
CONFIGURATOR_SLOTS = frozenset(STRUCTURAL_CATEGORIES) | MULTI_SELECT_CATEGORIES


def category_key(category: Any) -> str:
    """Plain string key for a category id (enum member or str)."""
    return category.value if hasattr(category, "value") else str(category)


# ──────────────────────────────────────────────
# Part Data Models
# ──────────────────────────────────────────────


class PowerDetails(BaseModel):
    """Typed sub-record carrying the authoritative power figure, when known."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    power_consumption: Optional[float] = Field(
        default=None, ge=0, alias="powerConsumption"
    )


class Part(BaseModel):
    """A purchasable component as served by the storefront catalog.

    `specifications` is an open bag — the same physical attribute may show
    up under several historical key names ("Socket", "CPU Socket", ...).
    Use `rigbuilder.engine.specs` to read it.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    name: str
    price: float = Field(ge=0)
    discount_price: Optional[float] = Field(
        default=None, ge=0, alias="discountPrice"
    )
    category_id: str = Field(default="", alias="categoryId")
    description: str = ""
    specifications: Dict[str, str] = Field(default_factory=dict)

    # Authoritative power figures (only some catalog entries carry them)
    cpu: Optional[PowerDetails] = None
    gpu: Optional[PowerDetails] = None
    ram: Optional[PowerDetails] = None
    storage: Optional[PowerDetails] = None

    stock: int = Field(default=0, ge=0)

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Any:
        return str(value) if isinstance(value, int) else value

    @field_validator("specifications", mode="before")
    @classmethod
    def _coerce_specifications(cls, value: Any) -> Any:
        # Catalog data mixes numbers, booleans and strings
        if not isinstance(value, dict):
            return value
        return {
            str(k): (str(v).lower() if isinstance(v, bool) else str(v))
            for k, v in value.items()
            if v is not None
        }

    @property
    def effective_price(self) -> float:
        """Discount price when present and lower, else the list price."""
        if self.discount_price is not None and self.discount_price < self.price:
            return self.discount_price
        return self.price

    @property
    def in_stock(self) -> bool:
        return self.stock > 0

    @property
    def power_consumption(self) -> Optional[float]:
        """Catalog-provided wattage from whichever typed sub-record exists."""
        for details in (self.cpu, self.gpu, self.ram, self.storage):
            if details is not None and details.power_consumption is not None:
                return details.power_consumption
        return None


class Category(BaseModel):
    """A catalog category (structural slot, services, or legacy)."""

    id: str
    slug: str = ""
    name: str = ""

    @property
    def key(self) -> str:
        """Slug when present — the configurator addresses categories by slug."""
        return self.slug or self.id


# ──────────────────────────────────────────────
# Filter Vocabulary
# ──────────────────────────────────────────────


class FilterOption(BaseModel):
    """One selectable filter value. `id` is a `key=value` pair."""

    id: str
    name: str


class FilterGroup(BaseModel):
    """All options derived from one specification key."""

    title: str
    options: List[FilterOption] = Field(default_factory=list)


class QuickFilter(BaseModel):
    """Category-scoped shorthand that expands to structured filters."""

    id: str
    name: str
    category: str
