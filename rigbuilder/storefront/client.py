"""Storefront client with transport abstraction.

The configurator core never talks to the shop directly. It consumes
parts and persists configurations through this interface:

- catalog queries (category, price bounds, search, `key=value` filters)
- saved configurations (create/update, fetch back with full specs)
- cart lines and orders

`HttpStorefrontClient` speaks the shop's REST API over httpx.
`InMemoryStorefront` serves a fixed catalog for tests and local runs.
Failures surface as `StorefrontError`; nothing here retries.
"""

from __future__ import annotations

import logging
import os
import uuid
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional

import httpx
from pydantic import ValidationError

from rigbuilder.cache.redis_cache import CatalogCache
from rigbuilder.engine.filters import matches_filters, matches_price, matches_search
from rigbuilder.models.build import CatalogQuery, ConfigurationLine, SavedConfiguration
from rigbuilder.models.components import Category, Part

logger = logging.getLogger(__name__)

# ──────────────────────────────────────────────
# Configuration
# ──────────────────────────────────────────────

DEFAULT_TIMEOUT = float(os.getenv("RIGBUILDER_HTTP_TIMEOUT", "10"))  # seconds


# ──────────────────────────────────────────────
# Custom Exceptions
# ──────────────────────────────────────────────


class StorefrontError(Exception):
    """Base exception for storefront client errors."""


class StorefrontTimeoutError(StorefrontError):
    """Raised when a storefront call times out."""


# ──────────────────────────────────────────────
# Abstract Base Client
# ──────────────────────────────────────────────


class BaseStorefrontClient(ABC):
    """Abstract storefront interface.

    The controller only depends on this interface, so swapping the
    transport (REST, GraphQL, in-memory) requires no logic changes.
    """

    @abstractmethod
    async def list_categories(self) -> List[Category]:
        """Every catalog category, in the shop's display order."""
        ...

    @abstractmethod
    async def query_parts(self, query: CatalogQuery) -> List[Part]:
        """Parts of one category matching the query's bounds and filters."""
        ...

    @abstractmethod
    async def save_configuration(
        self,
        name: str,
        lines: List[ConfigurationLine],
        config_id: Optional[str] = None,
    ) -> str:
        """Create (or update, when `config_id` is given). Returns the id."""
        ...

    @abstractmethod
    async def fetch_configuration(self, config_id: str) -> SavedConfiguration:
        """A saved configuration with full specifications for every part."""
        ...

    @abstractmethod
    async def add_to_cart(self, lines: List[ConfigurationLine]) -> None:
        """Add each line as an individual cart item."""
        ...

    @abstractmethod
    async def create_order(self, config_id: str) -> str:
        """Order a saved configuration. Returns the order id."""
        ...

    async def close(self) -> None:
        """Release transport resources."""

    @property
    def provider_name(self) -> str:
        """Human-readable backend name for logs."""
        return self.__class__.__name__


# ──────────────────────────────────────────────
# HTTP Client
# ──────────────────────────────────────────────


def _unwrap(payload: Any, *keys: str) -> Any:
    """Return the first wrapped value among `keys`, or the payload itself."""
    if isinstance(payload, dict):
        for key in keys:
            if key in payload:
                return payload[key]
    return payload


class HttpStorefrontClient(BaseStorefrontClient):
    """REST storefront client.

    Endpoints (relative to `base_url`):
      GET  /components                  → {"categories": [...]}
      GET  /components?category=…       → {"components": [...]}
      POST /configurations/save         → {"configuration": {"id": …}}
      PUT  /configurations/{id}
      GET  /configurations/{id}         → {"configuration": {..., "components": [...]}}
      POST /cart                        (one call per line)
      POST /orders                      → {"order": {"id": …}}
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = DEFAULT_TIMEOUT,
        cache: Optional[CatalogCache] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.cache = cache
        self._transport = transport
        self._headers = headers or {}
        self._client: Optional[httpx.AsyncClient] = None

    def _get_client(self) -> httpx.AsyncClient:
        """Lazy-init the httpx client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
                headers={"Content-Type": "application/json", **self._headers},
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        """Make the raw call. Returns the decoded JSON body."""
        client = self._get_client()
        try:
            response = await client.request(method, path, **kwargs)
            response.raise_for_status()
            return response.json() if response.content else None

        except httpx.TimeoutException:
            raise StorefrontTimeoutError(
                f"{method} {path} timed out after {self.timeout}s"
            )
        except httpx.HTTPStatusError as e:
            raise StorefrontError(
                f"{method} {path} failed: HTTP {e.response.status_code}: {e.response.text}"
            )
        except httpx.RequestError as e:
            raise StorefrontError(f"{method} {path} failed: {e}")
        except ValueError as e:
            raise StorefrontError(f"{method} {path} returned invalid JSON: {e}")

    async def list_categories(self) -> List[Category]:
        payload = await self._request("GET", "/components")
        try:
            return [Category.model_validate(c) for c in _unwrap(payload, "categories") or []]
        except (ValidationError, TypeError) as e:
            raise StorefrontError(f"Malformed category list: {e}")

    async def query_parts(self, query: CatalogQuery) -> List[Part]:
        if self.cache is not None:
            cached = await self.cache.get_parts(query)
            if cached is not None:
                return cached

        params: List[tuple] = [("category", query.category)]
        if query.search.strip():
            params.append(("search", query.search.strip()))
        if query.min_price is not None:
            params.append(("minPrice", query.min_price))
        if query.max_price is not None:
            params.append(("maxPrice", query.max_price))
        params.extend(("spec", f) for f in query.filters)

        payload = await self._request("GET", "/components", params=params)
        try:
            parts = [
                Part.model_validate({"categoryId": query.category, **item})
                for item in _unwrap(payload, "components") or []
            ]
        except (ValidationError, TypeError) as e:
            raise StorefrontError(f"Malformed component list: {e}")

        logger.debug("Fetched %d %s parts", len(parts), query.category)
        if self.cache is not None:
            await self.cache.set_parts(query, parts)
        return parts

    async def save_configuration(
        self,
        name: str,
        lines: List[ConfigurationLine],
        config_id: Optional[str] = None,
    ) -> str:
        body = {"name": name, "components": [line.model_dump() for line in lines]}
        if config_id:
            await self._request("PUT", f"/configurations/{config_id}", json=body)
            return config_id

        payload = _unwrap(await self._request("POST", "/configurations/save", json=body), "configuration")
        if not isinstance(payload, dict) or "id" not in payload:
            raise StorefrontError("Save response carried no configuration id")
        return str(payload["id"])

    async def fetch_configuration(self, config_id: str) -> SavedConfiguration:
        payload = _unwrap(await self._request("GET", f"/configurations/{config_id}"), "configuration")
        if not isinstance(payload, dict):
            raise StorefrontError(f"Malformed configuration {config_id}")

        raw_parts = payload.get("components", payload.get("parts", []))
        try:
            return SavedConfiguration(
                id=str(payload.get("id", config_id)),
                name=payload.get("name", ""),
                parts=[
                    Part.model_validate(_flatten_configuration_item(item))
                    for item in raw_parts
                ],
            )
        except (ValidationError, TypeError) as e:
            raise StorefrontError(f"Malformed configuration {config_id}: {e}")

    async def add_to_cart(self, lines: List[ConfigurationLine]) -> None:
        for line in lines:
            await self._request(
                "POST", "/cart", json={"componentId": line.id, "quantity": line.quantity}
            )

    async def create_order(self, config_id: str) -> str:
        payload = _unwrap(
            await self._request("POST", "/orders", json={"configurationId": config_id}),
            "order",
        )
        if not isinstance(payload, dict) or "id" not in payload:
            raise StorefrontError("Order response carried no order id")
        return str(payload["id"])


def _flatten_configuration_item(item: Dict[str, Any]) -> Dict[str, Any]:
    """Configuration items come either as parts or as `{component: part}` rows."""
    if "component" in item and isinstance(item["component"], dict):
        component = dict(item["component"])
        category = component.get("category")
        if isinstance(category, dict) and "categoryId" not in component:
            component["categoryId"] = category.get("slug") or category.get("name", "")
        return component
    return item


# ──────────────────────────────────────────────
# In-Memory Storefront
# ──────────────────────────────────────────────


class InMemoryStorefront(BaseStorefrontClient):
    """Dict-backed storefront for tests and offline use.

    Applies the same filter semantics the shop applies server-side.
    """

    def __init__(
        self,
        parts: Iterable[Part] = (),
        categories: Optional[Iterable[Category]] = None,
    ) -> None:
        self.parts: List[Part] = list(parts)
        if categories is None:
            seen = dict.fromkeys(p.category_id for p in self.parts if p.category_id)
            categories = [Category(id=c, slug=c, name=c.title()) for c in seen]
        self.categories: List[Category] = list(categories)
        self.configurations: Dict[str, SavedConfiguration] = {}
        self.cart: List[ConfigurationLine] = []
        self.orders: Dict[str, str] = {}
        self.queries: List[CatalogQuery] = []

    async def list_categories(self) -> List[Category]:
        return list(self.categories)

    async def query_parts(self, query: CatalogQuery) -> List[Part]:
        self.queries.append(query)
        return [
            p for p in self.parts
            if p.category_id == query.category
            and matches_search(p, query.search)
            and matches_price(p, query.min_price, query.max_price)
            and matches_filters(p, query.filters)
        ]

    async def save_configuration(
        self,
        name: str,
        lines: List[ConfigurationLine],
        config_id: Optional[str] = None,
    ) -> str:
        if config_id is not None and config_id not in self.configurations:
            raise StorefrontError(f"Unknown configuration {config_id}")
        config_id = config_id or uuid.uuid4().hex
        by_id = {p.id: p for p in self.parts}
        missing = [line.id for line in lines if line.id not in by_id]
        if missing:
            raise StorefrontError(f"Unknown components: {', '.join(missing)}")
        self.configurations[config_id] = SavedConfiguration(
            id=config_id,
            name=name,
            parts=[by_id[line.id] for line in lines for _ in range(line.quantity)],
        )
        return config_id

    async def fetch_configuration(self, config_id: str) -> SavedConfiguration:
        try:
            return self.configurations[config_id]
        except KeyError:
            raise StorefrontError(f"Unknown configuration {config_id}")

    async def add_to_cart(self, lines: List[ConfigurationLine]) -> None:
        self.cart.extend(lines)

    async def create_order(self, config_id: str) -> str:
        if config_id not in self.configurations:
            raise StorefrontError(f"Unknown configuration {config_id}")
        order_id = uuid.uuid4().hex
        self.orders[order_id] = config_id
        return order_id


# ──────────────────────────────────────────────
# Factory
# ──────────────────────────────────────────────


def create_storefront_client(
    base_url: Optional[str] = None,
    timeout: float = DEFAULT_TIMEOUT,
    cache: Optional[CatalogCache] = None,
) -> Optional[BaseStorefrontClient]:
    """Create the HTTP storefront client from configuration.

    Returns None (catalog endpoints disabled) when no URL is configured.
    """
    base_url = base_url or os.getenv("RIGBUILDER_STOREFRONT_URL")
    if not base_url:
        logger.warning(
            "RIGBUILDER_STOREFRONT_URL not set. Catalog endpoints are disabled."
        )
        return None
    return HttpStorefrontClient(base_url=base_url, timeout=timeout, cache=cache)
