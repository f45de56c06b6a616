"""Configuration, catalog query, and compatibility report models for RigBuilder."""

from __future__ import annotations

from typing import Dict, List, Optional, Union

from pydantic import BaseModel, Field, computed_field, model_validator

from rigbuilder.models.components import FilterGroup, Part, QuickFilter


# ──────────────────────────────────────────────
# Catalog Query
# ──────────────────────────────────────────────


class CatalogQuery(BaseModel):
    """Input contract of the storefront catalog search.

    `filters` are `spec-key=value` strings; the storefront applies them
    server-side.
    """

    category: str
    min_price: Optional[float] = Field(default=None, ge=0)
    max_price: Optional[float] = Field(default=None, ge=0)
    search: str = ""
    filters: List[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _validate_price_range(self) -> "CatalogQuery":
        if (
            self.min_price is not None
            and self.max_price is not None
            and self.min_price > self.max_price
        ):
            raise ValueError(
                f"min_price ({self.min_price}) cannot exceed "
                f"max_price ({self.max_price})"
            )
        return self


# ──────────────────────────────────────────────
# Saved Configurations
# ──────────────────────────────────────────────


class ConfigurationLine(BaseModel):
    """One line of a flattened selection (services expand to one line each)."""

    id: str
    quantity: int = Field(default=1, ge=1)


class SavedConfiguration(BaseModel):
    """A persisted configuration, rehydrated with full part specifications."""

    id: str
    name: str
    parts: List[Part] = Field(default_factory=list)


# ──────────────────────────────────────────────
# Compatibility Report
# ──────────────────────────────────────────────


class SelectionPayload(BaseModel):
    """A Selection snapshot as sent over HTTP.

    Structural categories map to one part, `services` to a list.
    """

    selections: Dict[str, Union[Part, List[Part]]] = Field(default_factory=dict)


class CompatibilityReport(BaseModel):
    """Derived state of a Selection — recomputed, never stored."""

    issues: List[str] = Field(default_factory=list)
    power_warnings: List[str] = Field(default_factory=list)
    total_power: int = 0
    recommended_psu: Union[int, str] = 500

    @computed_field
    @property
    def compatible(self) -> bool:
        return not self.issues


# ──────────────────────────────────────────────
# Catalog Page
# ──────────────────────────────────────────────


class CatalogPage(BaseModel):
    """One category's catalog with the filter vocabulary derived from it."""

    category: str
    parts: List[Part] = Field(default_factory=list)
    filter_groups: List[FilterGroup] = Field(default_factory=list)
    quick_filters: List[QuickFilter] = Field(default_factory=list)
