"""DTOs for the Orders app."""
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from ninja import Schema


@dataclass(frozen=True)
class ProductionSyncResult:
    """Outcome of a call to the external production tracking system."""
    success: bool
    error: Optional[str] = None
    should_retry: bool = False
    external_order_id: Optional[str] = None


@dataclass(frozen=True)
class OrderChange:
    """What an admin or bulk update actually changed on one order."""
    order_id: UUID
    previous_stage: str
    new_stage: str
    previous_ship_date: datetime
    new_ship_date: datetime
    reason: str
    updated_by_id: Optional[UUID]

    @property
    def stage_changed(self) -> bool:
        return self.previous_stage != self.new_stage

    @property
    def ship_date_changed(self) -> bool:
        return self.previous_ship_date != self.new_ship_date

    def to_payload(self) -> dict:
        """JSON-safe form for task queues."""
        return {
            "order_id": str(self.order_id),
            "previous_stage": self.previous_stage,
            "new_stage": self.new_stage,
            "previous_ship_date": self.previous_ship_date.isoformat(),
            "new_ship_date": self.new_ship_date.isoformat(),
            "reason": self.reason,
            "updated_by_id": str(self.updated_by_id) if self.updated_by_id else None,
        }

    @classmethod
    def from_payload(cls, payload: dict) -> "OrderChange":
        return cls(
            order_id=UUID(payload["order_id"]),
            previous_stage=payload["previous_stage"],
            new_stage=payload["new_stage"],
            previous_ship_date=datetime.fromisoformat(payload["previous_ship_date"]),
            new_ship_date=datetime.fromisoformat(payload["new_ship_date"]),
            reason=payload.get("reason", ""),
            updated_by_id=UUID(payload["updated_by_id"]) if payload.get("updated_by_id") else None,
        )


class StageHistoryOut(Schema):
    id: UUID
    stage: str
    entered_at: datetime
    updated_by_name: Optional[str] = None
    notes: str
    previous_ship_date: Optional[datetime] = None
    new_ship_date: Optional[datetime] = None
    change_reason: str

    @staticmethod
    def resolve_updated_by_name(obj):
        return obj.updated_by.display_name if obj.updated_by else None


class OrderOut(Schema):
    id: UUID
    order_number: str
    description: str
    current_stage: str
    original_ship_date: datetime
    current_ship_date: datetime
    total_amount: Optional[Decimal] = None
    payment_status: str
    notes: str
    is_active: bool
    organization_id: UUID
    organization_name: str
    created_at: datetime
    updated_at: datetime

    @staticmethod
    def resolve_organization_name(obj):
        return obj.organization.name


class OrderDetailOut(OrderOut):
    stage_history: List[StageHistoryOut]

    @staticmethod
    def resolve_stage_history(obj):
        return list(obj.stage_history.select_related('updated_by').all())


class CreateOrderIn(Schema):
    description: str
    measurement_date: date
    delivery_date: date
    needs_sample: bool = False
    notes: Optional[str] = None


class AdminCreateOrderIn(Schema):
    organization_id: UUID
    description: str
    ship_date: datetime
    stage: Optional[str] = None
    total_amount: Optional[Decimal] = None
    payment_status: Optional[str] = None
    notes: Optional[str] = None


class AdminOrderUpdateIn(Schema):
    stage: str
    ship_date: Optional[datetime] = None
    reason: str = ""


class BulkOrderUpdateIn(Schema):
    order_ids: List[UUID]
    stage: Optional[str] = None
    ship_date: Optional[datetime] = None
    reason: str = ""


class BulkUpdateFailure(Schema):
    order_id: UUID
    error: str


class BulkOrderUpdateOut(Schema):
    successful: List[UUID]
    failed: List[BulkUpdateFailure]


class OrganizationSummary(Schema):
    id: UUID
    name: str


class AdminOrdersPage(Schema):
    orders: List[OrderOut]
    total_count: int
    page: int
    page_size: int
    total_pages: int
    organizations: List[OrganizationSummary]


class OrderRequestIn(Schema):
    name: str
    email: str
    description: str
    notes: Optional[str] = None
    performer_count: int
    preferred_completion_date: date
    estimated_budget: Optional[Decimal] = None
    priority: str = "Normal"


class OrderRequestOut(Schema):
    id: UUID
    organization_id: UUID
    organization_name: str
    requester_id: Optional[UUID] = None
    name: str
    email: str
    description: str
    notes: str
    performer_count: int
    preferred_completion_date: date
    estimated_budget: Optional[Decimal] = None
    priority: str
    status: str
    created_order_id: Optional[UUID] = None
    processed_at: Optional[datetime] = None
    processing_notes: str
    created_at: datetime

    @staticmethod
    def resolve_organization_name(obj):
        return obj.organization.name


class ProcessOrderRequestIn(Schema):
    approve: bool
    processing_notes: Optional[str] = None
    ship_date: Optional[datetime] = None
    total_amount: Optional[Decimal] = None
