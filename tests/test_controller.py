"""Tests for the configurator controller.

Runs against InMemoryStorefront. Tests verify navigation, memoized
derived state, stale-response handling, and persistence round trips.
"""

from __future__ import annotations

import asyncio
from datetime import datetime

import pytest

from rigbuilder.models.build import CatalogQuery
from rigbuilder.models.components import Category, Part
from rigbuilder.orchestrator.controller import (
    ConfiguratorController,
    configurator_categories,
    timestamp_name,
)
from rigbuilder.storefront.client import InMemoryStorefront, StorefrontError


# ──────────────────────────────────────────────
# Test Data
# ──────────────────────────────────────────────


def _make(id: str, category: str, specs: dict | None = None, **kw) -> Part:
    return Part(
        id=id,
        name=kw.pop("name", f"Part {id}"),
        price=kw.pop("price", 100),
        category_id=category,
        specifications=specs or {},
        stock=kw.pop("stock", 5),
        **kw,
    )


SAMPLE_PARTS = [
    _make("cpu-amd", "cpu", {"Brand": "AMD", "Series": "Ryzen 7", "Socket": "AM5", "TDP": "105W"}, price=350),
    _make("cpu-intel", "cpu", {"Brand": "Intel", "Series": "Core i7", "Socket": "LGA1700", "TDP": "125W"}, price=400),
    _make("gpu-1", "gpu", {"Length": "300mm"}, price=600),
    _make("mb-am4", "motherboard", {"Socket": "AM4", "Form Factor": "ATX"}, price=150),
    _make("mb-am5", "motherboard", {"Socket": "AM5", "Form Factor": "ATX"}, price=200),
    _make("case-itx", "case", {"Form Factor": "Mini-ITX"}),
    _make("case-mid", "case", {"Form Factor": "Mid Tower"}),
    _make("psu-250", "psu", {"Wattage": "250W"}),
    _make("psu-750", "psu", {"Wattage": "750W"}),
    _make("svc-assembly", "services", name="Assembly", price=50),
    _make("svc-os", "services", name="OS install", price=30),
    _make("nic-1", "networking"),
]


class GatedStorefront(InMemoryStorefront):
    """Holds catalog responses for gated categories until released."""

    def __init__(self, *args, **kw) -> None:
        super().__init__(*args, **kw)
        self.gates: dict[str, asyncio.Event] = {}

    async def query_parts(self, query: CatalogQuery):
        gate = self.gates.get(query.category)
        if gate is not None:
            await gate.wait()
        return await super().query_parts(query)


class FailingStorefront(InMemoryStorefront):
    async def query_parts(self, query: CatalogQuery):
        raise StorefrontError("catalog down")


async def _mounted(storefront=None, **kw) -> ConfiguratorController:
    controller = ConfiguratorController(storefront or InMemoryStorefront(SAMPLE_PARTS), **kw)
    await controller.mount()
    return controller


def _part(id: str) -> Part:
    return next(p for p in SAMPLE_PARTS if p.id == id)


# ──────────────────────────────────────────────
# Helpers
# ──────────────────────────────────────────────


class TestHelpers:
    def test_timestamp_name(self):
        assert timestamp_name(datetime(2026, 10, 19, 14, 3)) == "Configuration 2026-10-19 14:03"

    def test_configurator_categories_order_and_exclusions(self):
        categories = [
            Category(id="9", slug="services"),
            Category(id="8", slug="networking"),
            Category(id="2", slug="gpu"),
            Category(id="7", slug="sound-cards"),
            Category(id="1", slug="cpu"),
            Category(id="6", slug="peripherals"),
        ]
        assert [c.key for c in configurator_categories(categories)] == ["cpu", "gpu", "services"]


# ──────────────────────────────────────────────
# Mount & Navigation
# ──────────────────────────────────────────────


class TestNavigation:
    @pytest.mark.asyncio
    async def test_mount_loads_first_category(self):
        controller = await _mounted()
        keys = [c.key for c in controller.state.categories]
        assert keys == ["cpu", "gpu", "motherboard", "case", "psu", "services"]
        assert controller.state.active_key == "cpu"
        assert [p.id for p in controller.state.parts] == ["cpu-amd", "cpu-intel"]
        assert controller.state.loading is False

    @pytest.mark.asyncio
    async def test_next_and_previous_category(self):
        controller = await _mounted()
        assert await controller.previous_category() is False
        assert await controller.next_category() is True
        assert controller.state.active_key == "gpu"
        assert await controller.previous_category() is True
        assert controller.state.active_key == "cpu"

    @pytest.mark.asyncio
    async def test_unknown_category_ignored(self):
        controller = await _mounted()
        assert await controller.set_active_category("networking") is False
        assert controller.state.active_key == "cpu"

    @pytest.mark.asyncio
    async def test_category_change_resets_query(self):
        controller = await _mounted()
        await controller.toggle_filter("Socket=AM5")
        await controller.set_search("ryzen")
        await controller.set_active_category("gpu")
        assert controller.state.filters == []
        assert controller.state.search == ""

    @pytest.mark.asyncio
    async def test_paging(self):
        controller = await _mounted(page_size=1)
        assert controller.page_count == 2
        assert [p.id for p in controller.visible_parts] == ["cpu-amd"]
        assert controller.next_page() == 2
        assert controller.next_page() == 2
        assert [p.id for p in controller.visible_parts] == ["cpu-intel"]
        assert controller.previous_page() == 1
        assert controller.set_page(99) == 2


# ──────────────────────────────────────────────
# Catalog Fetching
# ──────────────────────────────────────────────


class TestFetching:
    @pytest.mark.asyncio
    async def test_fetch_failure_renders_empty_state(self):
        controller = await _mounted(FailingStorefront(SAMPLE_PARTS))
        assert controller.state.parts == []
        assert controller.state.load_failed is True
        assert controller.state.loading is False

    @pytest.mark.asyncio
    async def test_category_failure_on_mount(self):
        class NoCategories(InMemoryStorefront):
            async def list_categories(self):
                raise StorefrontError("down")

        controller = await _mounted(NoCategories(SAMPLE_PARTS))
        assert controller.state.categories == []
        assert controller.state.load_failed is True
        assert controller.visible_parts == []

    @pytest.mark.asyncio
    async def test_stale_response_is_discarded(self):
        shop = GatedStorefront(SAMPLE_PARTS)
        controller = await _mounted(shop)

        gate = asyncio.Event()
        shop.gates["cpu"] = gate
        slow = asyncio.create_task(controller.set_active_category("cpu"))
        await asyncio.sleep(0)

        await controller.set_active_category("gpu")
        gate.set()
        await slow

        assert controller.state.active_key == "gpu"
        assert [p.id for p in controller.state.parts] == ["gpu-1"]

    @pytest.mark.asyncio
    async def test_remount_discards_request_from_previous_mount(self):
        shop = GatedStorefront(SAMPLE_PARTS)
        controller = await _mounted(shop)

        gate = asyncio.Event()
        shop.gates["gpu"] = gate
        slow = asyncio.create_task(controller.set_active_category("gpu"))
        await asyncio.sleep(0)

        await controller.mount()
        gate.set()
        await slow

        assert controller.state.active_key == "cpu"
        assert [p.id for p in controller.state.parts] == ["cpu-amd", "cpu-intel"]

    @pytest.mark.asyncio
    async def test_failed_remount_discards_request_from_previous_mount(self):
        class FlakyCategories(GatedStorefront):
            fail = False

            async def list_categories(self):
                if self.fail:
                    raise StorefrontError("down")
                return await super().list_categories()

        shop = FlakyCategories(SAMPLE_PARTS)
        controller = await _mounted(shop)

        gate = asyncio.Event()
        shop.gates["gpu"] = gate
        slow = asyncio.create_task(controller.set_active_category("gpu"))
        await asyncio.sleep(0)

        shop.fail = True
        await controller.mount()
        gate.set()
        await slow

        assert controller.state.load_failed is True
        assert controller.state.parts == []

    @pytest.mark.asyncio
    async def test_missing_configuration_still_loads_catalog(self):
        controller = ConfiguratorController(InMemoryStorefront(SAMPLE_PARTS))
        await controller.mount("no-such-config")

        assert controller.state.config_load_failed is True
        assert controller.state.config_id is None
        assert len(controller.selection) == 0
        assert controller.state.active_key == "cpu"
        assert [p.id for p in controller.state.parts] == ["cpu-amd", "cpu-intel"]

    @pytest.mark.asyncio
    async def test_filters_reach_the_storefront(self):
        shop = InMemoryStorefront(SAMPLE_PARTS)
        controller = await _mounted(shop)
        await controller.set_price_range(500, 300)
        assert shop.queries[-1].min_price == 300
        assert shop.queries[-1].max_price == 500
        assert [p.id for p in controller.state.parts] == ["cpu-amd", "cpu-intel"]


# ──────────────────────────────────────────────
# Filters
# ──────────────────────────────────────────────


class TestFilters:
    @pytest.mark.asyncio
    async def test_quick_filter_replaces_manual_filters(self):
        controller = await _mounted()
        await controller.toggle_filter("Socket=LGA1700")
        await controller.apply_quick_filter("amd-ryzen-7")

        assert controller.state.filters == ["Brand=AMD", "Series=Ryzen 7"]
        assert controller.is_quick_filter_active("amd-ryzen-7")
        assert [p.id for p in controller.state.parts] == ["cpu-amd"]

    @pytest.mark.asyncio
    async def test_manual_filter_clears_quick_filter(self):
        controller = await _mounted()
        await controller.apply_quick_filter("amd-ryzen-7")
        await controller.toggle_filter("Socket=AM5")
        assert controller.state.quick_filter is None
        assert not controller.is_quick_filter_active("amd-ryzen-7")

    @pytest.mark.asyncio
    async def test_filter_groups_from_loaded_parts(self):
        controller = await _mounted()
        titles = [g.title for g in controller.filter_groups]
        assert "Socket" in titles
        assert "Brand" not in titles
        assert controller.quick_filters

    @pytest.mark.asyncio
    async def test_clear_filters(self):
        controller = await _mounted()
        await controller.apply_quick_filter("amd-ryzen-7")
        await controller.clear_filters()
        assert controller.state.filters == []
        assert len(controller.state.parts) == 2


# ──────────────────────────────────────────────
# Selection & Derived State
# ──────────────────────────────────────────────


class TestDerivedState:
    @pytest.mark.asyncio
    async def test_socket_mismatch_scenario(self):
        controller = await _mounted()
        controller.select(_part("cpu-amd"))
        controller.select(_part("mb-am4"))

        assert len(controller.issues) == 1
        assert "AM5" in controller.issues[0] and "AM4" in controller.issues[0]
        assert controller.total_power == 105 + 30
        assert controller.recommended_psu == 500

    @pytest.mark.asyncio
    async def test_report_memoized_per_version(self):
        controller = await _mounted()
        controller.select(_part("cpu-amd"))
        first = controller.report()
        assert controller.report() is first

        controller.select(_part("gpu-1"))
        second = controller.report()
        assert second is not first
        assert second.total_power == 105 + 150

    @pytest.mark.asyncio
    async def test_underpowered_psu_is_a_power_warning(self):
        controller = await _mounted()
        controller.select(_part("cpu-amd"))
        controller.select(_part("gpu-1"))
        controller.select(_part("psu-250"))
        assert controller.power_warnings
        assert controller.report().compatible is False

    @pytest.mark.asyncio
    async def test_selection_never_blocked(self):
        controller = await _mounted()
        controller.select(_part("cpu-amd"))
        controller.select(_part("mb-am4"))
        assert controller.selection.get("motherboard").id == "mb-am4"

    @pytest.mark.asyncio
    async def test_excluded_category_part_is_refused(self):
        shop = InMemoryStorefront(SAMPLE_PARTS)
        controller = await _mounted(shop)

        assert controller.select(_part("nic-1")) is False
        assert controller.select(_part("cpu-amd"), category_id="sound-cards") is False
        assert controller.selection.categories() == []
        assert controller.selection.to_lines() == []
        assert await controller.add_to_cart() == 0
        assert shop.cart == []

        assert controller.select(_part("cpu-amd")) is True
        assert controller.selection.categories() == ["cpu"]

    @pytest.mark.asyncio
    async def test_services_toggle(self):
        controller = await _mounted()
        controller.select(_part("svc-os"))
        controller.select(_part("svc-assembly"))
        controller.select(_part("svc-os"))
        assert [p.id for p in controller.selection.all("services")] == ["svc-assembly"]
        assert controller.total_price == 50

    @pytest.mark.asyncio
    async def test_prefilter_hides_incompatible_cases(self):
        controller = await _mounted()
        controller.select(_part("mb-am5"))
        await controller.set_active_category("case")
        assert [p.id for p in controller.visible_parts] == ["case-mid"]

    @pytest.mark.asyncio
    async def test_prefilter_hides_small_psus(self):
        controller = await _mounted()
        controller.select(_part("cpu-intel"))
        controller.select(_part("gpu-1"))
        await controller.set_active_category("psu")
        assert [p.id for p in controller.visible_parts] == ["psu-750"]

    @pytest.mark.asyncio
    async def test_missing_required_and_reset(self):
        controller = await _mounted()
        controller.select(_part("cpu-amd"))
        assert "cpu" not in controller.missing_required()
        assert "psu" in controller.missing_required()

        controller.reset()
        assert len(controller.selection) == 0
        assert controller.issues == []


# ──────────────────────────────────────────────
# Persistence
# ──────────────────────────────────────────────


class TestPersistence:
    @pytest.mark.asyncio
    async def test_save_uses_naming_policy_then_updates(self):
        shop = InMemoryStorefront(SAMPLE_PARTS)
        controller = await _mounted(shop, naming=lambda: "Rig A")
        controller.select(_part("cpu-amd"))

        config_id = await controller.save_configuration()
        assert shop.configurations[config_id].name == "Rig A"

        controller.select(_part("gpu-1"))
        assert await controller.save_configuration() == config_id
        assert [p.id for p in shop.configurations[config_id].parts] == ["cpu-amd", "gpu-1"]

    @pytest.mark.asyncio
    async def test_load_rehydrates_selection(self):
        shop = InMemoryStorefront(SAMPLE_PARTS)
        controller = await _mounted(shop)
        for id in ("cpu-amd", "mb-am5", "svc-os", "svc-assembly"):
            controller.select(_part(id))
        config_id = await controller.save_configuration("Mine")

        fresh = ConfiguratorController(shop)
        await fresh.mount(config_id)
        assert fresh.state.config_name == "Mine"
        assert fresh.selection.get("cpu").id == "cpu-amd"
        assert [p.id for p in fresh.selection.all("services")] == ["svc-os", "svc-assembly"]
        assert fresh.issues == []

    @pytest.mark.asyncio
    async def test_cart_expands_services(self):
        shop = InMemoryStorefront(SAMPLE_PARTS)
        controller = await _mounted(shop)
        for id in ("cpu-amd", "svc-os", "svc-assembly"):
            controller.select(_part(id))
        assert await controller.add_to_cart() == 3
        assert [line.id for line in shop.cart] == ["cpu-amd", "svc-os", "svc-assembly"]

    @pytest.mark.asyncio
    async def test_place_order_saves_first(self):
        shop = InMemoryStorefront(SAMPLE_PARTS)
        controller = await _mounted(shop, naming=lambda: "Order rig")
        controller.select(_part("cpu-amd"))
        order_id = await controller.place_order()
        assert shop.orders[order_id] == controller.state.config_id
