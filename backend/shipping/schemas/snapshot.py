"""
Delivery snapshot schemas.

Transition details are a tagged union keyed by `snapshot_type`; each
variant carries only the fields relevant to that transition.
"""
from datetime import date, datetime
from decimal import Decimal
from typing import Annotated, Any, Literal, Optional, Union
from uuid import UUID

from pydantic import BaseModel, Field, TypeAdapter


class CreatedDetails(BaseModel):
    snapshot_type: Literal["created"] = "created"
    delivery_method: str
    provider_code: Optional[str] = None
    delivery_fee: Decimal
    requires_manual_coordination: bool = False
    coverage_route: Optional[str] = None


class AssignedDetails(BaseModel):
    snapshot_type: Literal["assigned"] = "assigned"
    vehicle_id: Optional[UUID] = None
    route_id: Optional[UUID] = None
    provider_code: Optional[str] = None
    previous_status: Optional[str] = None
    new_status: Optional[str] = None
    released_vehicle_id: Optional[UUID] = None
    released_route_id: Optional[UUID] = None
    cancelled_task_ids: list[UUID] = Field(default_factory=list)


class StatusChangeDetails(BaseModel):
    snapshot_type: Literal["picked_up", "in_transit", "delivered", "status_updated"]
    previous_status: str
    new_status: str
    actual_pickup_time: Optional[datetime] = None
    actual_delivery_time: Optional[datetime] = None
    cancelled_task_ids: list[UUID] = Field(default_factory=list)


class FailedDetails(BaseModel):
    snapshot_type: Literal["failed"] = "failed"
    previous_status: str
    reason: Optional[str] = None
    cancelled_task_ids: list[UUID] = Field(default_factory=list)
    released_vehicle_id: Optional[UUID] = None


class CancelledDetails(BaseModel):
    snapshot_type: Literal["cancelled"] = "cancelled"
    previous_status: str
    reason: Optional[str] = None
    cancelled_task_ids: list[UUID] = Field(default_factory=list)
    released_vehicle_id: Optional[UUID] = None


class ProviderUpdatedDetails(BaseModel):
    snapshot_type: Literal["provider_updated"] = "provider_updated"
    provider_code: Optional[str] = None
    tracking_number: Optional[str] = None
    provider_order_id: Optional[str] = None
    external_reference: Optional[str] = None
    source: Optional[str] = None


SnapshotDetails = Annotated[
    Union[
        CreatedDetails,
        AssignedDetails,
        StatusChangeDetails,
        FailedDetails,
        CancelledDetails,
        ProviderUpdatedDetails,
    ],
    Field(discriminator="snapshot_type"),
]

snapshot_details_adapter: TypeAdapter = TypeAdapter(SnapshotDetails)


def parse_details(raw: dict[str, Any]):
    """Stored JSON back to its typed variant."""
    return snapshot_details_adapter.validate_python(raw)


class SnapshotResponse(BaseModel):
    """Schema for snapshot response."""
    id: UUID
    delivery_id: UUID
    sequence: int
    snapshot_type: str
    snapshot_data: dict[str, Any]
    details: SnapshotDetails
    previous_snapshot_id: Optional[UUID] = None
    triggered_by: str
    triggered_by_user_id: Optional[UUID] = None
    triggered_event: Optional[str] = None
    status: str
    customer_id: UUID
    order_id: UUID
    vehicle_id: Optional[UUID] = None
    province: Optional[str] = None
    delivery_fee: Decimal
    provider_code: Optional[str] = None
    created_at: datetime
    business_date: date

    class Config:
        from_attributes = True


class TimelineResponse(BaseModel):
    delivery_id: UUID
    items: list[SnapshotResponse]
    total: int


class SnapshotChange(BaseModel):
    field: str
    previous: Any = None
    current: Any = None


class SnapshotDiffResponse(BaseModel):
    snapshot_id: UUID
    previous_snapshot_id: Optional[UUID] = None
    has_changes: bool
    changes: list[SnapshotChange]
    time_diff_minutes: float
