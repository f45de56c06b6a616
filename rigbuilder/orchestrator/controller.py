"""Configurator controller.

Wires together:
  Selection → Compatibility rules + Power estimate → derived report
  Category / filter changes → Storefront catalog query → visible parts

Rule evaluation and power estimation are synchronous and memoized per
Selection version. Catalog fetches are async; each carries a sequence
number and responses that arrive after a newer request are dropped.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime
from typing import Callable, Iterable, List, Optional, Union

from rigbuilder.engine.compatibility import check_compatibility, power_warnings
from rigbuilder.engine.filters import (
    apply_quick_filter,
    build_filter_groups,
    is_quick_filter_active,
    prefilter_parts,
    quick_filters,
    toggle_filter,
)
from rigbuilder.engine.power import estimate_total_power, recommended_psu_wattage
from rigbuilder.engine.selection import Selection
from rigbuilder.models.build import CompatibilityReport
from rigbuilder.models.components import (
    EXCLUDED_CATEGORIES,
    MULTI_SELECT_CATEGORIES,
    STRUCTURAL_CATEGORIES,
    Category,
    FilterGroup,
    Part,
    QuickFilter,
    category_key,
)
from rigbuilder.orchestrator.state import DEFAULT_PAGE_SIZE, ConfiguratorState
from rigbuilder.storefront.client import BaseStorefrontClient, StorefrontError

logger = logging.getLogger(__name__)

NamingPolicy = Callable[[], str]


def timestamp_name(now: Optional[datetime] = None) -> str:
    """Default configuration name, e.g. "Configuration 2026-10-19 14:03"."""
    now = now or datetime.now()
    return f"Configuration {now:%Y-%m-%d %H:%M}"


def configurator_categories(categories: Iterable[Category]) -> List[Category]:
    """Categories the configurator walks through, in step order.

    Structural slots come first in their fixed order, services last.
    Excluded legacy categories and anything unknown are dropped.
    """
    by_key = {}
    for category in categories:
        key = category.key
        if key in EXCLUDED_CATEGORIES:
            continue
        by_key.setdefault(key, category)

    order = list(STRUCTURAL_CATEGORIES) + sorted(MULTI_SELECT_CATEGORIES)
    return [by_key[key] for key in order if key in by_key]


class ConfiguratorController:
    """One shopper's configurator session.

    Args:
        storefront: Catalog/persistence backend.
        naming: Policy producing the default configuration name.
        page_size: Parts per catalog page.
    """

    def __init__(
        self,
        storefront: BaseStorefrontClient,
        naming: NamingPolicy = timestamp_name,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> None:
        self.storefront = storefront
        self.naming = naming
        self.selection = Selection()
        self.state = ConfiguratorState(page_size=max(1, page_size))
        self._report: Optional[CompatibilityReport] = None
        self._report_version = -1

    # ──────────────────────────────────────────
    # Lifecycle
    # ──────────────────────────────────────────

    async def mount(self, config_id: Optional[str] = None) -> None:
        """Load categories (and optionally a saved configuration), then the first page."""
        self.selection.clear()
        self.state = ConfiguratorState(
            page_size=self.state.page_size,
            request_seq=self.state.request_seq,
        )
        # Responses to requests issued before the remount must not land
        self.state.next_sequence()

        try:
            categories = await self.storefront.list_categories()
        except StorefrontError as e:
            logger.warning("Category fetch failed: %s", e)
            self.state.load_failed = True
            return

        self.state.categories = configurator_categories(categories)
        logger.info(
            "Configurator mounted with %d categories via %s",
            len(self.state.categories),
            self.storefront.provider_name,
        )

        if config_id:
            try:
                await self.load_configuration(config_id)
            except StorefrontError as e:
                logger.warning("Configuration %s could not be loaded: %s", config_id, e)
                self.state.config_load_failed = True
        await self.reload()

    async def reload(self) -> None:
        """Fetch the active category's parts for the current query inputs."""
        query = self.state.query()
        if query is None:
            self.state.parts = []
            return

        seq = self.state.next_sequence()
        self.state.loading = True
        try:
            parts = await self.storefront.query_parts(query)
        except StorefrontError as e:
            if self.state.is_stale(seq):
                logger.debug("Dropping stale failure for %s (request %d)", query.category, seq)
                return
            logger.warning("Catalog fetch for %s failed: %s", query.category, e)
            self.state.parts = []
            self.state.load_failed = True
            self.state.loading = False
            return

        if self.state.is_stale(seq):
            logger.debug(
                "Dropping stale %s response (request %d, latest %d)",
                query.category, seq, self.state.request_seq,
            )
            return

        self.state.parts = parts
        self.state.load_failed = False
        self.state.loading = False
        logger.debug("Loaded %d %s parts", len(parts), query.category)

    # ──────────────────────────────────────────
    # Navigation
    # ──────────────────────────────────────────

    async def set_active_category(self, category: Union[str, int]) -> bool:
        """Switch to a category by key or index. Unknown targets are ignored."""
        if isinstance(category, int):
            index = category
        else:
            keys = [c.key for c in self.state.categories]
            key = category_key(category)
            if key not in keys:
                return False
            index = keys.index(key)

        if not 0 <= index < len(self.state.categories):
            return False

        self.state.active_index = index
        self.state.reset_query()
        await self.reload()
        return True

    async def next_category(self) -> bool:
        if self.state.is_last_category:
            return False
        return await self.set_active_category(self.state.active_index + 1)

    async def previous_category(self) -> bool:
        if self.state.is_first_category:
            return False
        return await self.set_active_category(self.state.active_index - 1)

    def set_page(self, page: int) -> int:
        """Move to a page, clamped to the available range."""
        self.state.page = min(max(1, page), self.page_count)
        return self.state.page

    def next_page(self) -> int:
        return self.set_page(self.state.page + 1)

    def previous_page(self) -> int:
        return self.set_page(self.state.page - 1)

    # ──────────────────────────────────────────
    # Selection
    # ──────────────────────────────────────────

    def select(self, part: Part, category_id: Optional[str] = None) -> bool:
        """Select (or, for services, toggle) a part. Never blocked by issues.

        Parts of categories the configurator does not offer are refused.
        """
        key = category_key(category_id) if category_id else (
            part.category_id or self.state.active_key
        )
        if not key or not self.selection.select(key, part):
            logger.debug("Refusing %s: %r is not a configurator slot", part.id, key)
            return False
        logger.debug("Selection v%d: %s → %s", self.selection.version, key, part.id)
        return True

    def deselect(self, category_id: str) -> None:
        self.selection.deselect(category_id)

    def reset(self) -> None:
        """Clear the selection and forget the configuration being edited."""
        self.selection.clear()
        self.state.config_id = None
        self.state.config_name = ""

    def missing_required(self) -> List[str]:
        return self.selection.missing(STRUCTURAL_CATEGORIES)

    # ──────────────────────────────────────────
    # Filters
    # ──────────────────────────────────────────

    async def apply_quick_filter(self, quick_id: Optional[str]) -> None:
        """Replace the active filters with a quick filter's expansion."""
        key = self.state.active_key
        if key is None:
            return
        self.state.filters = apply_quick_filter(key, quick_id)
        self.state.quick_filter = quick_id if self.state.filters else None
        self.state.page = 1
        await self.reload()

    async def toggle_filter(self, filter_id: str) -> None:
        """Toggle a manual `key=value` filter; clears any quick filter."""
        self.state.filters = toggle_filter(self.state.filters, filter_id)
        self.state.quick_filter = None
        self.state.page = 1
        await self.reload()

    async def clear_filters(self) -> None:
        self.state.filters = []
        self.state.quick_filter = None
        self.state.page = 1
        await self.reload()

    async def set_search(self, text: str) -> None:
        self.state.search = text
        self.state.page = 1
        await self.reload()

    async def set_price_range(
        self, min_price: Optional[float], max_price: Optional[float]
    ) -> None:
        """Set price bounds. Reversed bounds are swapped."""
        if min_price is not None and max_price is not None and min_price > max_price:
            min_price, max_price = max_price, min_price
        self.state.min_price = min_price
        self.state.max_price = max_price
        self.state.page = 1
        await self.reload()

    def is_quick_filter_active(self, quick_id: str) -> bool:
        key = self.state.active_key
        return key is not None and is_quick_filter_active(key, quick_id, self.state.filters)

    # ──────────────────────────────────────────
    # Derived state
    # ──────────────────────────────────────────

    def report(self) -> CompatibilityReport:
        """Issues and power figures for the current Selection (memoized)."""
        if self._report is None or self._report_version != self.selection.version:
            total = estimate_total_power(self.selection)
            issues = check_compatibility(self.selection, total).issues
            self._report = CompatibilityReport(
                issues=issues,
                power_warnings=power_warnings(issues),
                total_power=total,
                recommended_psu=recommended_psu_wattage(total),
            )
            self._report_version = self.selection.version
        return self._report

    @property
    def issues(self) -> List[str]:
        return self.report().issues

    @property
    def power_warnings(self) -> List[str]:
        return self.report().power_warnings

    @property
    def total_power(self) -> int:
        return self.report().total_power

    @property
    def recommended_psu(self) -> Union[int, str]:
        return self.report().recommended_psu

    @property
    def total_price(self) -> float:
        return self.selection.total_price()

    @property
    def filter_groups(self) -> List[FilterGroup]:
        key = self.state.active_key
        return build_filter_groups(key, self.state.parts) if key else []

    @property
    def quick_filters(self) -> List[QuickFilter]:
        key = self.state.active_key
        return quick_filters(key) if key else []

    @property
    def available_parts(self) -> List[Part]:
        """Loaded parts that can physically join the current selection."""
        key = self.state.active_key
        if key is None:
            return []
        return prefilter_parts(key, self.state.parts, self.selection, self.total_power)

    @property
    def page_count(self) -> int:
        return max(1, math.ceil(len(self.available_parts) / self.state.page_size))

    @property
    def visible_parts(self) -> List[Part]:
        """The current page of available parts."""
        start = (self.state.page - 1) * self.state.page_size
        return self.available_parts[start:start + self.state.page_size]

    # ──────────────────────────────────────────
    # Persistence
    # ──────────────────────────────────────────

    async def save_configuration(self, name: Optional[str] = None) -> str:
        """Create or update the saved configuration. Returns its id."""
        name = name or self.state.config_name or self.naming()
        config_id = await self.storefront.save_configuration(
            name, self.selection.to_lines(), config_id=self.state.config_id
        )
        self.state.config_id = config_id
        self.state.config_name = name
        logger.info("Saved configuration %s (%s)", config_id, name)
        return config_id

    async def load_configuration(self, config_id: str) -> None:
        """Rehydrate the selection from a saved configuration."""
        saved = await self.storefront.fetch_configuration(config_id)
        self.selection.clear()
        for part in saved.parts:
            if not self.selection.select(part.category_id, part):
                logger.debug("Skipping %s from configuration %s", part.category_id, config_id)
        self.state.config_id = saved.id
        self.state.config_name = saved.name
        logger.info("Loaded configuration %s with %d parts", saved.id, len(self.selection.parts()))

    async def add_to_cart(self) -> int:
        """Add every selected part as a cart line. Returns the line count."""
        lines = self.selection.to_lines()
        await self.storefront.add_to_cart(lines)
        return len(lines)

    async def place_order(self) -> str:
        """Order the current configuration, saving it first. Returns the order id."""
        config_id = await self.save_configuration()
        order_id = await self.storefront.create_order(config_id)
        logger.info("Order %s placed for configuration %s", order_id, config_id)
        return order_id
