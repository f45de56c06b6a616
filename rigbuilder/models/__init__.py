"""Pydantic models for parts, categories, filters, and configurator reports."""

from rigbuilder.models.build import (
    CatalogPage,
    CatalogQuery,
    CompatibilityReport,
    ConfigurationLine,
    SavedConfiguration,
    SelectionPayload,
)
from rigbuilder.models.components import (
    CONFIGURATOR_SLOTS,
    EXCLUDED_CATEGORIES,
    MULTI_SELECT_CATEGORIES,
    STRUCTURAL_CATEGORIES,
    Category,
    CategoryId,
    FilterGroup,
    FilterOption,
    Part,
    PowerDetails,
    QuickFilter,
    category_key,
)

__all__ = [
    # Parts, categories & filters
    "CONFIGURATOR_SLOTS",
    "EXCLUDED_CATEGORIES",
    "MULTI_SELECT_CATEGORIES",
    "STRUCTURAL_CATEGORIES",
    "Category",
    "CategoryId",
    "FilterGroup",
    "FilterOption",
    "Part",
    "PowerDetails",
    "QuickFilter",
    "category_key",
    # Configurator models
    "CatalogPage",
    "CatalogQuery",
    "CompatibilityReport",
    "ConfigurationLine",
    "SavedConfiguration",
    "SelectionPayload",
]
