"""
Delivery provider API routes.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query

from shipping.api.deps import get_provider_registry
from shipping.models.provider import ProviderType
from shipping.schemas.provider import (
    ProviderCreate,
    ProviderPerformanceUpdate,
    ProviderPriorityUpdate,
    ProviderResponse,
    ProviderUpdate,
    QuoteItem,
    QuoteRequest,
    QuoteResponse,
)
from shipping.services.provider_registry import ProviderRegistry

router = APIRouter(prefix="/providers", tags=["providers"])


@router.post("/quote", response_model=QuoteResponse)
async def quote(
    data: QuoteRequest,
    registry: ProviderRegistry = Depends(get_provider_registry),
) -> QuoteResponse:
    """Fee of every provider able to take the shipment, cheapest first."""
    quotes = await registry.quote(
        data.province,
        data.weight_kg,
        data.distance_km,
        data.same_day_required,
        data.cod_required,
    )
    items = [QuoteItem(**q.to_dict()) for q in quotes]
    cheapest = next((item for item in items if item.within_cutoff), None)
    return QuoteResponse(items=items, cheapest=cheapest)


@router.post("", response_model=ProviderResponse, status_code=201)
async def register_provider(
    data: ProviderCreate,
    registry: ProviderRegistry = Depends(get_provider_registry),
) -> ProviderResponse:
    provider = await registry.register(data.model_dump())
    return ProviderResponse.model_validate(provider)


@router.get("", response_model=list[ProviderResponse])
async def list_providers(
    active_only: bool = Query(False),
    provider_type: Optional[ProviderType] = Query(None),
    province: Optional[str] = Query(None, description="Only providers covering this province"),
    registry: ProviderRegistry = Depends(get_provider_registry),
) -> list[ProviderResponse]:
    if province:
        providers = await registry.list_for_province(province)
        if provider_type is not None:
            providers = [p for p in providers if p.provider_type == provider_type]
    else:
        providers = await registry.list_providers(active_only, provider_type)
    return [ProviderResponse.model_validate(p) for p in providers]


@router.get("/{code}", response_model=ProviderResponse)
async def get_provider(
    code: str,
    registry: ProviderRegistry = Depends(get_provider_registry),
) -> ProviderResponse:
    return ProviderResponse.model_validate(await registry.get(code))


@router.put("/{code}", response_model=ProviderResponse)
async def update_provider(
    code: str,
    data: ProviderUpdate,
    registry: ProviderRegistry = Depends(get_provider_registry),
) -> ProviderResponse:
    provider = await registry.update(code, data.model_dump(exclude_unset=True))
    return ProviderResponse.model_validate(provider)


@router.post("/{code}/activate", response_model=ProviderResponse)
async def activate_provider(
    code: str,
    registry: ProviderRegistry = Depends(get_provider_registry),
) -> ProviderResponse:
    return ProviderResponse.model_validate(await registry.set_active(code, True))


@router.post("/{code}/deactivate", response_model=ProviderResponse)
async def deactivate_provider(
    code: str,
    registry: ProviderRegistry = Depends(get_provider_registry),
) -> ProviderResponse:
    """Soft delete; providers are never removed."""
    return ProviderResponse.model_validate(await registry.set_active(code, False))


@router.post("/{code}/priority", response_model=ProviderResponse)
async def set_priority(
    code: str,
    data: ProviderPriorityUpdate,
    registry: ProviderRegistry = Depends(get_provider_registry),
) -> ProviderResponse:
    return ProviderResponse.model_validate(await registry.set_priority(code, data.priority_order))


@router.post("/{code}/performance", response_model=ProviderResponse)
async def update_performance(
    code: str,
    data: ProviderPerformanceUpdate,
    registry: ProviderRegistry = Depends(get_provider_registry),
) -> ProviderResponse:
    provider = await registry.update_performance(
        code,
        average_delivery_hours=data.average_delivery_hours,
        success_rate=data.success_rate,
        customer_rating=data.customer_rating,
    )
    return ProviderResponse.model_validate(provider)
