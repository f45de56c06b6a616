"""Tests for the configurator API gateway.

Uses FastAPI's TestClient — no storefront or server needed.
"""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from rigbuilder.api.app import create_app
from rigbuilder.api.configurator import set_storefront
from rigbuilder.models.components import Part
from rigbuilder.storefront.client import InMemoryStorefront, StorefrontError


# ──────────────────────────────────────────────
# Fixtures
# ──────────────────────────────────────────────


CPU_AM5 = {
    "id": 1, "name": "AMD Ryzen 7 7700X", "price": 330, "categoryId": "cpu",
    "specifications": {"Brand": "AMD", "Series": "Ryzen 7", "Socket": "AM5", "TDP": "105W"},
}
BOARD_AM4 = {
    "id": 2, "name": "MSI B550 Tomahawk", "price": 160, "categoryId": "motherboard",
    "specifications": {"Socket": "AM4", "Form Factor": "ATX"},
}
BOARD_AM5 = {
    "id": 3, "name": "MSI B650 Tomahawk", "price": 210, "categoryId": "motherboard",
    "specifications": {"Socket": "AM5", "Form Factor": "ATX"},
}
GPU = {
    "id": 4, "name": "RTX 4070", "price": 599, "categoryId": "gpu",
    "gpu": {"powerConsumption": 200},
}
PSU_500 = {
    "id": 5, "name": "Budget 500W", "price": 50, "categoryId": "psu",
    "specifications": {"Wattage": "500W"},
}
SERVICE = {"id": 6, "name": "Assembly", "price": 40, "categoryId": "services"}


@pytest.fixture
def client(monkeypatch):
    """Create a test client with no storefront configured."""
    monkeypatch.delenv("RIGBUILDER_STOREFRONT_URL", raising=False)
    app = create_app()
    with TestClient(app) as c:
        yield c


# ──────────────────────────────────────────────
# Root Tests
# ──────────────────────────────────────────────


class TestRoot:
    def test_root_returns_gateway_info(self, client):
        resp = client.get("/")
        assert resp.status_code == 200
        data = resp.json()
        assert data["engine"] == "RigBuilder Configurator"
        assert "configurator" in data["gateways"]

    def test_health(self, client):
        resp = client.get("/configurator/health")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "healthy"
        assert data["storefront_available"] is False


# ──────────────────────────────────────────────
# Compatibility & Power
# ──────────────────────────────────────────────


class TestCompatibility:
    def test_compatible_selection(self, client):
        resp = client.post("/configurator/compatibility/check", json={
            "selections": {"cpu": CPU_AM5, "motherboard": BOARD_AM5},
        })
        assert resp.status_code == 200
        data = resp.json()
        assert data["compatible"] is True
        assert data["issues"] == []
        assert data["total_power"] == 135
        assert data["recommended_psu"] == 500

    def test_socket_mismatch(self, client):
        resp = client.post("/configurator/compatibility/check", json={
            "selections": {"cpu": CPU_AM5, "motherboard": BOARD_AM4, "services": [SERVICE]},
        })
        data = resp.json()
        assert data["compatible"] is False
        assert len(data["issues"]) == 1
        assert "AM5" in data["issues"][0] and "AM4" in data["issues"][0]
        assert data["power_warnings"] == []

    def test_sufficient_psu_has_no_warning(self, client):
        resp = client.post("/configurator/compatibility/check", json={
            "selections": {"cpu": CPU_AM5, "gpu": GPU, "motherboard": BOARD_AM5, "psu": PSU_500},
        })
        data = resp.json()
        # 105 + 200 + 30 = 335W; 500W covers ceil(335 * 1.3) = 436W
        assert data["total_power"] == 335
        assert data["issues"] == []
        assert data["recommended_psu"] == 500

    def test_excluded_category_ignored(self, client):
        nic = {"id": 7, "name": "WiFi Card", "price": 30, "categoryId": "networking"}
        resp = client.post("/configurator/power", json={
            "selections": {"cpu": CPU_AM5, "networking": nic},
        })
        assert resp.status_code == 200
        assert resp.json()["breakdown"] == {"cpu": 105}

    def test_empty_selection(self, client):
        resp = client.post("/configurator/compatibility/check", json={"selections": {}})
        assert resp.status_code == 200
        assert resp.json()["compatible"] is True

    def test_malformed_part_rejected(self, client):
        resp = client.post("/configurator/compatibility/check", json={
            "selections": {"cpu": {"id": 1}},
        })
        assert resp.status_code == 422

    def test_power_breakdown(self, client):
        resp = client.post("/configurator/power", json={
            "selections": {"cpu": CPU_AM5, "gpu": GPU, "psu": PSU_500},
        })
        assert resp.status_code == 200
        data = resp.json()
        assert data["breakdown"] == {"cpu": 105, "gpu": 200}
        assert data["total_power"] == 305
        assert data["recommended_psu"] == 500
        assert data["recommended_psu_watts"] == 500


# ──────────────────────────────────────────────
# Filters
# ──────────────────────────────────────────────


class TestFilters:
    def test_list_quick_filters(self, client):
        resp = client.get("/configurator/quick-filters/cpu")
        assert resp.status_code == 200
        ids = [q["id"] for q in resp.json()]
        assert "amd-ryzen-7" in ids

    def test_expand_quick_filter(self, client):
        resp = client.get("/configurator/quick-filters/cpu/amd-ryzen-7")
        assert resp.status_code == 200
        assert resp.json()["filters"] == ["Brand=AMD", "Series=Ryzen 7"]

    def test_unknown_quick_filter_404(self, client):
        resp = client.get("/configurator/quick-filters/cpu/nope")
        assert resp.status_code == 404

    def test_quick_filter_active(self, client):
        resp = client.post(
            "/configurator/quick-filters/cpu/amd-ryzen-7/active",
            json={"filters": ["Series=Ryzen 7", "Brand=AMD"]},
        )
        assert resp.json() == {"active": True}

        resp = client.post(
            "/configurator/quick-filters/cpu/amd-ryzen-7/active",
            json={"filters": ["Brand=AMD"]},
        )
        assert resp.json() == {"active": False}

    def test_filter_groups(self, client):
        resp = client.post("/configurator/filters/motherboard", json=[BOARD_AM4, BOARD_AM5])
        assert resp.status_code == 200
        groups = {g["title"]: [o["id"] for o in g["options"]] for g in resp.json()}
        assert groups["Socket"] == ["Socket=AM4", "Socket=AM5"]


# ──────────────────────────────────────────────
# Catalog Proxy
# ──────────────────────────────────────────────


class FailingStorefront(InMemoryStorefront):
    async def query_parts(self, query):
        raise StorefrontError("down")


class TestCatalogProxy:
    def test_no_storefront_503(self, client):
        resp = client.get("/configurator/parts/cpu")
        assert resp.status_code == 503

    def test_excluded_category_404(self, client):
        set_storefront(InMemoryStorefront())
        resp = client.get("/configurator/parts/networking")
        assert resp.status_code == 404

    def test_parts_with_vocabulary(self, client):
        shop = InMemoryStorefront([Part.model_validate(p) for p in (BOARD_AM4, BOARD_AM5)])
        set_storefront(shop)

        resp = client.get("/configurator/parts/motherboard", params={"filter": "Socket=AM5"})
        assert resp.status_code == 200
        data = resp.json()
        assert [p["id"] for p in data["parts"]] == ["3"]
        assert data["filter_groups"][0]["title"] == "Socket"
        assert shop.queries[-1].filters == ["Socket=AM5"]

    def test_reversed_price_bounds_422(self, client):
        set_storefront(InMemoryStorefront())
        resp = client.get("/configurator/parts/cpu", params={"min_price": 500, "max_price": 100})
        assert resp.status_code == 422

    def test_storefront_failure_502(self, client):
        set_storefront(FailingStorefront())
        resp = client.get("/configurator/parts/cpu")
        assert resp.status_code == 502
