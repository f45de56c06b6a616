"""Session state for the configurator controller.

Holds everything the presentation layer renders besides the Selection
itself: the category list, the loaded catalog page, active filters,
and the loading/error flags of the last catalog fetch.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import List, Optional

from rigbuilder.models.build import CatalogQuery
from rigbuilder.models.components import Category, Part


# ──────────────────────────────────────────────
# Default parameters (overridable via config)
# ──────────────────────────────────────────────

DEFAULT_PAGE_SIZE = int(os.getenv("RIGBUILDER_PAGE_SIZE", "12"))


@dataclass
class ConfiguratorState:
    """Mutable state of one configurator session.

    Only the controller writes to it.
    """

    # Navigation
    categories: List[Category] = field(default_factory=list)
    active_index: int = 0
    page: int = 1
    page_size: int = DEFAULT_PAGE_SIZE

    # Catalog for the active category
    parts: List[Part] = field(default_factory=list)
    loading: bool = False
    load_failed: bool = False

    # Set when the configuration requested at mount could not be fetched
    config_load_failed: bool = False

    # Query inputs
    filters: List[str] = field(default_factory=list)
    quick_filter: Optional[str] = None
    search: str = ""
    min_price: Optional[float] = None
    max_price: Optional[float] = None

    # Stale-response guard: only the latest issued request may land.
    # Carried over when the controller remounts.
    request_seq: int = 0

    # Saved configuration being edited
    config_id: Optional[str] = None
    config_name: str = ""

    # ── Computed Properties ──

    @property
    def active_category(self) -> Optional[Category]:
        if 0 <= self.active_index < len(self.categories):
            return self.categories[self.active_index]
        return None

    @property
    def active_key(self) -> Optional[str]:
        category = self.active_category
        return category.key if category else None

    @property
    def is_first_category(self) -> bool:
        return self.active_index <= 0

    @property
    def is_last_category(self) -> bool:
        return self.active_index >= len(self.categories) - 1

    # ── State Updates ──

    def next_sequence(self) -> int:
        """Issue a new request sequence number."""
        self.request_seq += 1
        return self.request_seq

    def is_stale(self, seq: int) -> bool:
        """Whether a response for request `seq` has been superseded."""
        return seq < self.request_seq

    def reset_query(self) -> None:
        """Drop filters, search and price bounds (category change)."""
        self.filters = []
        self.quick_filter = None
        self.search = ""
        self.min_price = None
        self.max_price = None
        self.page = 1

    def query(self) -> Optional[CatalogQuery]:
        """The catalog query for the active category, if any."""
        key = self.active_key
        if key is None:
            return None
        return CatalogQuery(
            category=key,
            min_price=self.min_price,
            max_price=self.max_price,
            search=self.search,
            filters=list(self.filters),
        )
