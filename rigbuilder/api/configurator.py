"""Configurator API gateway.

Routes under /configurator/* expose the rule engine to the storefront
frontend: compatibility reports for a selection snapshot, power figures,
the filter vocabulary, and a catalog proxy.

All rule endpoints are stateless; the selection travels with each call.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Union

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel, Field

from rigbuilder.cache.redis_cache import CatalogCache
from rigbuilder.engine.compatibility import check_compatibility, power_warnings
from rigbuilder.engine.filters import (
    build_filter_groups,
    expand_quick_filter,
    is_quick_filter_active,
    quick_filters,
)
from rigbuilder.engine.power import (
    estimate_total_power,
    ladder_value,
    power_breakdown,
    recommended_psu_wattage,
)
from rigbuilder.engine.selection import Selection
from rigbuilder.models.build import (
    CatalogPage,
    CatalogQuery,
    CompatibilityReport,
    SelectionPayload,
)
from rigbuilder.models.components import (
    EXCLUDED_CATEGORIES,
    FilterGroup,
    Part,
    QuickFilter,
)
from rigbuilder.storefront.client import BaseStorefrontClient, StorefrontError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/configurator", tags=["Configurator"])

# Set by app lifespan: shared resources
_storefront: Optional[BaseStorefrontClient] = None
_cache: Optional[CatalogCache] = None


def set_storefront(storefront: Optional[BaseStorefrontClient]) -> None:
    """Called during app startup to inject the storefront client."""
    global _storefront
    _storefront = storefront


def set_cache(cache: Optional[CatalogCache]) -> None:
    """Called during app startup to inject the cache."""
    global _cache
    _cache = cache


# ──────────────────────────────────────────────
# Request / Response Models
# ──────────────────────────────────────────────


class PowerReport(BaseModel):
    total_power: int
    breakdown: Dict[str, int] = Field(default_factory=dict)
    recommended_psu: Union[int, str]
    recommended_psu_watts: int


class QuickFilterExpansion(BaseModel):
    id: str
    category: str
    filters: List[str]


class ActiveFilters(BaseModel):
    filters: List[str] = Field(default_factory=list)


# ──────────────────────────────────────────────
# Routes
# ──────────────────────────────────────────────


@router.get("/health")
async def health():
    """Health check for frontend monitoring."""
    return {
        "status": "healthy",
        "gateway": "configurator",
        "storefront_available": _storefront is not None,
        "cache_available": _cache is not None and _cache.available,
    }


@router.post("/compatibility/check", response_model=CompatibilityReport)
async def check_selection(payload: SelectionPayload):
    """Evaluate every compatibility rule against a selection snapshot.

    Issues are advisory. Call this on every selection change.
    """
    selection = Selection.from_mapping(payload.selections)
    total = estimate_total_power(selection)
    result = check_compatibility(selection, total)

    if not result.passed:
        logger.debug(
            "Compatibility: %d issue(s): %s",
            len(result.violations),
            ", ".join(v.rule for v in result.violations),
        )

    return CompatibilityReport(
        issues=result.issues,
        power_warnings=power_warnings(result.issues),
        total_power=total,
        recommended_psu=recommended_psu_wattage(total),
    )


@router.post("/power", response_model=PowerReport)
async def estimate_power(payload: SelectionPayload):
    """Estimated draw per category and the recommended PSU tier."""
    selection = Selection.from_mapping(payload.selections)
    total = estimate_total_power(selection)
    rung = recommended_psu_wattage(total)
    return PowerReport(
        total_power=total,
        breakdown=power_breakdown(selection),
        recommended_psu=rung,
        recommended_psu_watts=ladder_value(rung),
    )


@router.get("/quick-filters/{category}", response_model=List[QuickFilter])
async def list_quick_filters(category: str):
    return quick_filters(category)


@router.get("/quick-filters/{category}/{quick_id}", response_model=QuickFilterExpansion)
async def get_quick_filter(category: str, quick_id: str):
    """The structured `key=value` filters a quick filter stands for."""
    filters = expand_quick_filter(category, quick_id)
    if not filters:
        raise HTTPException(
            status_code=404,
            detail=f"Unknown quick filter '{quick_id}' for category '{category}'",
        )
    return QuickFilterExpansion(id=quick_id, category=category, filters=filters)


@router.post("/quick-filters/{category}/{quick_id}/active")
async def quick_filter_active(category: str, quick_id: str, body: ActiveFilters):
    """Whether the active filter set is exactly this quick filter."""
    return {"active": is_quick_filter_active(category, quick_id, body.filters)}


@router.post("/filters/{category}", response_model=List[FilterGroup])
async def filter_groups(category: str, parts: List[Part]):
    """Filter vocabulary for an already-loaded part list."""
    return build_filter_groups(category, parts)


@router.get("/parts/{category}", response_model=CatalogPage)
async def list_parts(
    category: str,
    search: str = "",
    min_price: Optional[float] = Query(default=None, ge=0),
    max_price: Optional[float] = Query(default=None, ge=0),
    filters: List[str] = Query(default=[], alias="filter"),
):
    """Proxy a catalog query and attach the filter vocabulary.

    Goes through the catalog cache when the storefront client has one.
    """
    if category in EXCLUDED_CATEGORIES:
        raise HTTPException(status_code=404, detail=f"Category '{category}' is not configurable")
    if _storefront is None:
        raise HTTPException(status_code=503, detail="No storefront configured")

    try:
        query = CatalogQuery(
            category=category,
            search=search,
            min_price=min_price,
            max_price=max_price,
            filters=filters,
        )
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))

    try:
        parts = await _storefront.query_parts(query)
    except StorefrontError as e:
        logger.warning("Catalog proxy for %s failed: %s", category, e)
        raise HTTPException(status_code=502, detail="Storefront request failed")

    return CatalogPage(
        category=category,
        parts=parts,
        filter_groups=build_filter_groups(category, parts),
        quick_filters=quick_filters(category),
    )
