"""
Coverage area API routes.
"""
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from shipping.api.deps import get_coverage_resolver, get_delivery_cache
from shipping.core.exceptions import CoverageAreaNotFoundException
from shipping.schemas.coverage import (
    CoverageAreaCreate,
    CoverageAreaResponse,
    CoverageAreaUpdate,
    CoverageInfoResponse,
    CoverageStatsResponse,
)
from shipping.services.coverage_resolver import CoverageResolver
from shipping.services.delivery_cache import DeliveryCache

router = APIRouter(prefix="/coverage", tags=["coverage"])


@router.get("/resolve", response_model=CoverageAreaResponse)
async def resolve_coverage(
    province: str = Query(..., min_length=1),
    district: Optional[str] = Query(None),
    subdistrict: Optional[str] = Query(None),
    postal_code: Optional[str] = Query(None),
    resolver: CoverageResolver = Depends(get_coverage_resolver),
) -> CoverageAreaResponse:
    """Most specific active area for a destination."""
    area = await resolver.resolve(province, district, subdistrict, postal_code)
    if area is None:
        scope = "/".join(p for p in (province, district, subdistrict, postal_code) if p)
        raise CoverageAreaNotFoundException(scope)
    return CoverageAreaResponse.model_validate(area)


@router.get("/self-delivery", response_model=list[CoverageAreaResponse])
async def list_self_delivery_areas(
    resolver: CoverageResolver = Depends(get_coverage_resolver),
) -> list[CoverageAreaResponse]:
    return [CoverageAreaResponse.model_validate(a) for a in await resolver.list_self_delivery_areas()]


@router.get("/stats", response_model=CoverageStatsResponse)
async def get_coverage_stats(
    resolver: CoverageResolver = Depends(get_coverage_resolver),
) -> CoverageStatsResponse:
    return CoverageStatsResponse(**await resolver.get_coverage_stats())


@router.post("/areas", response_model=CoverageAreaResponse, status_code=201)
async def create_area(
    data: CoverageAreaCreate,
    resolver: CoverageResolver = Depends(get_coverage_resolver),
    cache: DeliveryCache = Depends(get_delivery_cache),
) -> CoverageAreaResponse:
    area = await resolver.create_area(data.model_dump())
    await cache.invalidate_coverage(area.province)
    return CoverageAreaResponse.model_validate(area)


@router.put("/areas/{area_id}", response_model=CoverageAreaResponse)
async def update_area(
    area_id: UUID,
    data: CoverageAreaUpdate,
    resolver: CoverageResolver = Depends(get_coverage_resolver),
    cache: DeliveryCache = Depends(get_delivery_cache),
) -> CoverageAreaResponse:
    area = await resolver.update_area(area_id, data.model_dump(exclude_unset=True))
    await cache.invalidate_coverage(area.province)
    return CoverageAreaResponse.model_validate(area)


@router.post("/areas/{area_id}/deactivate", response_model=CoverageAreaResponse)
async def deactivate_area(
    area_id: UUID,
    resolver: CoverageResolver = Depends(get_coverage_resolver),
    cache: DeliveryCache = Depends(get_delivery_cache),
) -> CoverageAreaResponse:
    area = await resolver.deactivate_area(area_id)
    await cache.invalidate_coverage(area.province)
    return CoverageAreaResponse.model_validate(area)


@router.get("/{province}", response_model=CoverageInfoResponse)
async def get_coverage_info(
    province: str,
    resolver: CoverageResolver = Depends(get_coverage_resolver),
    cache: DeliveryCache = Depends(get_delivery_cache),
) -> CoverageInfoResponse:
    """Self-delivery eligibility, route and base fee for a province."""
    cached = await cache.get_coverage(province)
    if cached is not None:
        return CoverageInfoResponse.model_validate(cached)
    info = CoverageInfoResponse(**await resolver.get_coverage_info(province))
    await cache.set_coverage(province, info.model_dump(mode="json"))
    return info
