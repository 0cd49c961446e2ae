"""
Order lifecycle services: creation, stage progression, ship-date changes
and order requests. API handlers stay thin and call into this module.
"""
import logging
import math
import secrets
from datetime import datetime, time, timezone as dt_timezone
from decimal import Decimal
from typing import List, Optional

from django.db import transaction
from django.db.models import QuerySet
from django.utils import timezone

from apps.core.task_service import TaskService
from apps.organizations.models import Organization
from .models import Order, OrderStageHistory, OrderRequest, OrderRequestStatus, PaymentStatus, RequestPriority
from .dtos import (
    OrderChange, CreateOrderIn, AdminCreateOrderIn, BulkOrderUpdateOut, BulkUpdateFailure,
    OrderRequestIn,
)
from .stages import INITIAL_STAGE, CLIENT_ORDER_STAGE, normalize_stage, is_valid_transition

logger = logging.getLogger(__name__)

DEFAULT_ADMIN_PAGE_SIZE = 50
MAX_ADMIN_PAGE_SIZE = 100
MAX_PERFORMERS = 10000
MAX_ESTIMATED_BUDGET = Decimal('999999.99')


def _start_of_day(value) -> datetime:
    return datetime.combine(value, time.min, tzinfo=dt_timezone.utc)


def generate_order_number() -> str:
    """CG-<year>-<6 hex chars>, retried until unused."""
    year = timezone.now().year
    while True:
        candidate = f"CG-{year}-{secrets.token_hex(3).upper()}"
        if not Order.objects.filter(order_number=candidate).exists():
            return candidate


# =============================================================================
# Queries
# =============================================================================

def orders_visible_to(user, org_scope=None) -> QuerySet:
    """
    Orders a user may see. Staff see everything (optionally narrowed to
    org_scope); client users only ever see their own organization.
    """
    qs = Order.objects.select_related('organization')
    if user.is_colorgarb_staff:
        return qs.filter(organization_id=org_scope) if org_scope else qs
    if not user.organization_id:
        return qs.none()
    return qs.filter(organization_id=user.organization_id)


def get_order_for_user(user, order_id) -> Optional[Order]:
    return orders_visible_to(user).filter(id=order_id).first()


def filter_orders(qs: QuerySet, status: Optional[str] = None, stage: Optional[str] = None) -> QuerySet:
    """status: Active (default) or Inactive; stage matched case-insensitively."""
    if status and status.strip().lower() == 'inactive':
        qs = qs.filter(is_active=False)
    else:
        qs = qs.filter(is_active=True)
    if stage:
        qs = qs.filter(current_stage__iexact=stage.strip())
    return qs.order_by('-created_at')


def admin_list_orders(organization_id=None, status: Optional[str] = None, stage: Optional[str] = None,
                      page: int = 1, page_size: int = DEFAULT_ADMIN_PAGE_SIZE) -> dict:
    page = max(1, page)
    if page_size < 1 or page_size > MAX_ADMIN_PAGE_SIZE:
        page_size = DEFAULT_ADMIN_PAGE_SIZE

    qs = Order.objects.select_related('organization')
    if organization_id:
        qs = qs.filter(organization_id=organization_id)
    qs = filter_orders(qs, status=status, stage=stage)

    total = qs.count()
    offset = (page - 1) * page_size
    return {
        'orders': list(qs[offset:offset + page_size]),
        'total_count': total,
        'page': page,
        'page_size': page_size,
        'total_pages': math.ceil(total / page_size) if total else 0,
        'organizations': list(Organization.objects.filter(is_active=True).values('id', 'name')),
    }


# =============================================================================
# Creation
# =============================================================================

def build_client_order_notes(payload: CreateOrderIn) -> str:
    lines = [
        f"Measurements scheduled for: {payload.measurement_date:%Y-%m-%d}",
        f"Delivery needed by: {payload.delivery_date:%Y-%m-%d}",
    ]
    if payload.needs_sample:
        lines.append("Sample requested prior to production")
    if payload.notes and payload.notes.strip():
        lines.append(f"Additional Notes: {payload.notes.strip()}")
    return "\n".join(lines)


def validate_client_order(payload: CreateOrderIn) -> None:
    today = timezone.now().date()
    if not payload.description or not payload.description.strip():
        raise ValueError("Description is required")
    if len(payload.description) > 500:
        raise ValueError("Description cannot exceed 500 characters")
    if payload.measurement_date < today:
        raise ValueError("Measurement date cannot be in the past")
    if payload.delivery_date < today:
        raise ValueError("Delivery date cannot be in the past")
    if payload.delivery_date < payload.measurement_date:
        raise ValueError("Delivery date must be after measurement date")


def create_client_order(user, payload: CreateOrderIn) -> Order:
    """
    Director/Finance order placement. Starts at Design Proposal with no price.

    Raises:
        ValueError: validation failed or the user has no organization
    """
    if not user.organization_id:
        raise ValueError("User must belong to an organization to create orders")
    validate_client_order(payload)

    notes = build_client_order_notes(payload)
    if len(notes) > 2000:
        raise ValueError("Notes cannot exceed 2000 characters")

    ship_date = _start_of_day(payload.delivery_date)
    with transaction.atomic():
        order = Order.objects.create(
            order_number=generate_order_number(),
            organization_id=user.organization_id,
            description=payload.description.strip(),
            current_stage=CLIENT_ORDER_STAGE,
            original_ship_date=ship_date,
            current_ship_date=ship_date,
            total_amount=None,
            payment_status=PaymentStatus.PENDING_DESIGN_APPROVAL,
            notes=notes,
        )
        OrderStageHistory.objects.create(
            order=order,
            stage=CLIENT_ORDER_STAGE,
            updated_by=user,
            notes="Order created by client",
            new_ship_date=ship_date,
            change_reason="Initial order creation",
        )

    logger.info(f"Order {order.order_number} created by user {user.id} for organization {user.organization_id}")
    return order


def admin_create_order(user, payload: AdminCreateOrderIn) -> Order:
    """
    Raises:
        ValueError: unknown/inactive organization, bad stage or payment status
    """
    organization = Organization.objects.filter(id=payload.organization_id, is_active=True).first()
    if organization is None:
        raise ValueError("Organization not found or inactive")

    stage = INITIAL_STAGE
    if payload.stage:
        stage = normalize_stage(payload.stage)
        if stage is None:
            raise ValueError(f"Unknown manufacturing stage: {payload.stage}")

    payment_status = payload.payment_status or PaymentStatus.PENDING
    if payment_status not in PaymentStatus.values:
        raise ValueError(f"Invalid payment status: {payment_status}")

    if not payload.description.strip():
        raise ValueError("Description is required")

    with transaction.atomic():
        order = Order.objects.create(
            order_number=generate_order_number(),
            organization=organization,
            description=payload.description.strip()[:500],
            current_stage=stage,
            original_ship_date=payload.ship_date,
            current_ship_date=payload.ship_date,
            total_amount=payload.total_amount,
            payment_status=payment_status,
            notes=(payload.notes or "")[:2000],
        )
        OrderStageHistory.objects.create(
            order=order,
            stage=stage,
            updated_by=user,
            notes="Order created by ColorGarb staff",
            new_ship_date=payload.ship_date,
            change_reason="Initial order creation",
        )
    return order


# =============================================================================
# Stage / ship-date updates
# =============================================================================

def apply_order_update(order: Order, *, stage: Optional[str], ship_date: Optional[datetime],
                       reason: str, user) -> OrderChange:
    """
    Move an order to a new stage and/or ship date and record history.
    Every successful call writes one history row, even when nothing moved.

    Raises:
        ValueError: unknown stage or disallowed transition
    """
    new_stage = order.current_stage
    if stage:
        new_stage = normalize_stage(stage)
        if new_stage is None:
            raise ValueError(f"Unknown manufacturing stage: {stage}")
        if not is_valid_transition(order.current_stage, new_stage):
            raise ValueError(f"Invalid stage transition from {order.current_stage} to {new_stage}")

    change = OrderChange(
        order_id=order.id,
        previous_stage=order.current_stage,
        new_stage=new_stage,
        previous_ship_date=order.current_ship_date,
        new_ship_date=ship_date or order.current_ship_date,
        reason=(reason or "").strip(),
        updated_by_id=user.id if user else None,
    )

    with transaction.atomic():
        order.current_stage = change.new_stage
        order.current_ship_date = change.new_ship_date
        order.save(update_fields=['current_stage', 'current_ship_date', 'updated_at'])

        OrderStageHistory.objects.create(
            order=order,
            stage=change.new_stage,
            updated_by=user,
            notes=change.reason[:1000],
            previous_ship_date=change.previous_ship_date if change.ship_date_changed else None,
            new_ship_date=change.new_ship_date if change.ship_date_changed else None,
            change_reason=change.reason[:500],
        )
        transaction.on_commit(lambda: dispatch_order_change(change))

    logger.info(
        f"Order {order.order_number} updated: stage {change.previous_stage} -> {change.new_stage}, "
        f"ship date changed={change.ship_date_changed}"
    )
    return change


def dispatch_order_change(change: OrderChange) -> None:
    """
    Queue production sync and client notifications. Runs after commit so
    workers never observe a rolled-back change.
    """
    if not (change.stage_changed or change.ship_date_changed):
        return
    payload = change.to_payload()
    for queue in (TaskService.sync_production_update, TaskService.send_order_notifications):
        try:
            queue(payload)
        except Exception:
            logger.exception(f"Failed to queue follow-up work for order {change.order_id}")


def bulk_update_orders(order_ids: List, *, stage: Optional[str], ship_date: Optional[datetime],
                       reason: str, user) -> BulkOrderUpdateOut:
    """
    Apply the same update to many orders; each order succeeds or fails alone.

    Raises:
        ValueError: no order ids, or neither stage nor ship date given
    """
    if not order_ids:
        raise ValueError("At least one order ID is required")
    if not stage and not ship_date:
        raise ValueError("A stage or ship date is required")

    orders = {o.id: o for o in Order.objects.select_related('organization').filter(id__in=order_ids)}
    successful = []
    failed = []
    for order_id in dict.fromkeys(order_ids):
        order = orders.get(order_id)
        if order is None:
            failed.append(BulkUpdateFailure(order_id=order_id, error="Order not found"))
            continue
        try:
            apply_order_update(order, stage=stage, ship_date=ship_date, reason=reason, user=user)
        except ValueError as e:
            failed.append(BulkUpdateFailure(order_id=order_id, error=str(e)))
            continue
        successful.append(order_id)

    logger.info(f"Bulk order update by {user.id}: {len(successful)} succeeded, {len(failed)} failed")
    return BulkOrderUpdateOut(successful=successful, failed=failed)


# =============================================================================
# Order requests
# =============================================================================

def submit_order_request(user, payload: OrderRequestIn) -> OrderRequest:
    """
    Raises:
        ValueError: validation failed or the user has no organization
    """
    if not user.organization_id:
        raise ValueError("User must belong to an organization to request orders")
    if not payload.name.strip():
        raise ValueError("Name is required")
    if not payload.email.strip():
        raise ValueError("Email is required")
    if not payload.description.strip():
        raise ValueError("Description is required")
    if len(payload.description) > 500:
        raise ValueError("Description cannot exceed 500 characters")
    if not 1 <= payload.performer_count <= MAX_PERFORMERS:
        raise ValueError(f"Performer count must be between 1 and {MAX_PERFORMERS}")
    if payload.preferred_completion_date < timezone.now().date():
        raise ValueError("Preferred completion date cannot be in the past")
    if payload.estimated_budget is not None and not (
        Decimal('0.01') <= payload.estimated_budget <= MAX_ESTIMATED_BUDGET
    ):
        raise ValueError(f"Estimated budget must be between 0.01 and {MAX_ESTIMATED_BUDGET}")
    if payload.priority not in RequestPriority.values:
        raise ValueError(f"Invalid priority: {payload.priority}")

    order_request = OrderRequest.objects.create(
        organization_id=user.organization_id,
        requester=user,
        name=payload.name.strip(),
        email=payload.email.strip(),
        description=payload.description.strip(),
        notes=(payload.notes or "").strip()[:2000],
        performer_count=payload.performer_count,
        preferred_completion_date=payload.preferred_completion_date,
        estimated_budget=payload.estimated_budget,
        priority=payload.priority,
    )
    logger.info(f"Order request {order_request.id} submitted by {user.id}")
    return order_request


def process_order_request(order_request: OrderRequest, *, approve: bool, user,
                          processing_notes: str = "", ship_date: Optional[datetime] = None,
                          total_amount: Optional[Decimal] = None) -> OrderRequest:
    """
    Approve (creating the order) or reject a pending request.

    Raises:
        ValueError: the request was already processed
    """
    if order_request.status != OrderRequestStatus.PENDING:
        raise ValueError(f"Order request has already been {order_request.status.lower()}")

    with transaction.atomic():
        if approve:
            ship_date = ship_date or _start_of_day(order_request.preferred_completion_date)
            order = Order.objects.create(
                order_number=generate_order_number(),
                organization=order_request.organization,
                description=order_request.description,
                current_stage=INITIAL_STAGE,
                original_ship_date=ship_date,
                current_ship_date=ship_date,
                total_amount=total_amount,
                payment_status=PaymentStatus.PENDING,
                notes=f"Performers: {order_request.performer_count}\n{order_request.notes}".strip()[:2000],
            )
            OrderStageHistory.objects.create(
                order=order,
                stage=INITIAL_STAGE,
                updated_by=user,
                new_ship_date=ship_date,
                change_reason="Created from order request",
            )
            order_request.created_order = order
            order_request.status = OrderRequestStatus.APPROVED
        else:
            order_request.status = OrderRequestStatus.REJECTED

        order_request.processed_by = user
        order_request.processed_at = timezone.now()
        order_request.processing_notes = (processing_notes or "")[:1000]
        order_request.save()

    return order_request
