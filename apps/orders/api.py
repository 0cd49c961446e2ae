from typing import List, Optional
from uuid import UUID
from ninja import Router
from ninja.errors import HttpError
from django.http import HttpRequest
from django.shortcuts import get_object_or_404

from apps.identity.decorators import has_permission
from apps.identity.permissions import Permissions
from apps.governance.audit_service import log_action, record_role_access, AuditAction
from .models import Order, OrderRequest
from .dtos import (
    OrderOut, OrderDetailOut, CreateOrderIn, AdminCreateOrderIn, AdminOrderUpdateIn,
    BulkOrderUpdateIn, BulkOrderUpdateOut, AdminOrdersPage,
    OrderRequestIn, OrderRequestOut, ProcessOrderRequestIn,
)
from . import services

router = Router(tags=["Orders"])
requests_router = Router(tags=["Order Requests"])


def _audit_order_change(request, order: Order, change):
    if change.stage_changed or not change.ship_date_changed:
        log_action(
            org_id=order.organization_id,
            action=AuditAction.UPDATE_ORDER_STAGE,
            target_type="Order",
            target_id=order.id,
            target_label=order.order_number,
            performed_by=request.user,
            context={
                "previous_stage": change.previous_stage,
                "new_stage": change.new_stage,
                "reason": change.reason,
            },
        )
    if change.ship_date_changed:
        log_action(
            org_id=order.organization_id,
            action=AuditAction.UPDATE_SHIP_DATE,
            target_type="Order",
            target_id=order.id,
            target_label=order.order_number,
            performed_by=request.user,
            context={
                "previous_ship_date": change.previous_ship_date.isoformat(),
                "new_ship_date": change.new_ship_date.isoformat(),
                "reason": change.reason,
            },
        )


# =============================================================================
# Staff endpoints (registered before /{order_id} routes)
# =============================================================================

@router.get("/admin/orders", response=AdminOrdersPage, auth=None)
@has_permission(Permissions.ORDERS_MANAGE)
def admin_list_orders(
    request: HttpRequest,
    organization_id: Optional[UUID] = None,
    status: Optional[str] = None,
    stage: Optional[str] = None,
    page: int = 1,
    page_size: int = services.DEFAULT_ADMIN_PAGE_SIZE,
):
    """Paged cross-organization order list for the staff dashboard."""
    return services.admin_list_orders(
        organization_id=organization_id or request.org_id,
        status=status,
        stage=stage,
        page=page,
        page_size=page_size,
    )


@router.post("/admin/orders", response={201: OrderOut}, auth=None)
@has_permission(Permissions.ORDERS_MANAGE)
def admin_create_order(request: HttpRequest, payload: AdminCreateOrderIn):
    try:
        order = services.admin_create_order(request.user, payload)
    except ValueError as e:
        raise HttpError(400, str(e))

    log_action(
        org_id=order.organization_id,
        action=AuditAction.CREATE_ORDER,
        target_type="Order",
        target_id=order.id,
        target_label=order.order_number,
        performed_by=request.user,
        context={"stage": order.current_stage, "created_by_staff": True},
    )
    return 201, order


@router.post("/admin/orders/bulk-update", response=BulkOrderUpdateOut, auth=None)
@has_permission(Permissions.ORDERS_MANAGE)
def bulk_update_orders(request: HttpRequest, payload: BulkOrderUpdateIn):
    """
    Apply one stage/ship-date update to many orders. Each order succeeds
    or fails independently; failures are reported, not raised.
    """
    try:
        result = services.bulk_update_orders(
            payload.order_ids,
            stage=payload.stage,
            ship_date=payload.ship_date,
            reason=payload.reason,
            user=request.user,
        )
    except ValueError as e:
        raise HttpError(400, str(e))

    for order_id in result.successful:
        log_action(
            action=AuditAction.BULK_UPDATE_ORDERS,
            target_type="Order",
            target_id=order_id,
            performed_by=request.user,
            context={"stage": payload.stage, "reason": payload.reason},
        )
    return result


# =============================================================================
# Client + staff endpoints
# =============================================================================

@router.get("", response=List[OrderOut], auth=None)
@has_permission(Permissions.ORDERS_VIEW)
def list_orders(request: HttpRequest, status: Optional[str] = None, stage: Optional[str] = None):
    """
    Orders for the caller's organization. Staff see every organization
    unless X-Organization-ID narrows the scope.
    """
    qs = services.orders_visible_to(request.user, org_scope=request.org_id)
    return list(services.filter_orders(qs, status=status, stage=stage))


@router.post("", response={201: OrderOut}, auth=None)
@has_permission(Permissions.ORDERS_CREATE)
def create_order(request: HttpRequest, payload: CreateOrderIn):
    try:
        order = services.create_client_order(request.user, payload)
    except ValueError as e:
        raise HttpError(400, str(e))

    log_action(
        org_id=order.organization_id,
        action=AuditAction.CREATE_ORDER,
        target_type="Order",
        target_id=order.id,
        target_label=order.order_number,
        performed_by=request.user,
        context={"needs_sample": payload.needs_sample},
    )
    return 201, order


@router.get("/{order_id}", response=OrderDetailOut, auth=None)
@has_permission(Permissions.ORDERS_VIEW)
def get_order(request: HttpRequest, order_id: UUID):
    order = services.get_order_for_user(request.user, order_id)
    if order is None:
        raise HttpError(404, "Order not found")
    return order


@router.patch("/{order_id}/admin", response={204: None}, auth=None)
@has_permission(Permissions.ORDERS_MANAGE)
def admin_update_order(request: HttpRequest, order_id: UUID, payload: AdminOrderUpdateIn):
    """
    Move an order's stage and/or ship date. Production tracking and client
    notifications are queued once the change commits.
    """
    resource = f"orders/{order_id}/admin"
    order = Order.objects.filter(id=order_id).first()
    if order is None:
        record_role_access(request, resource=resource, access_granted=False, details="Order not found")
        raise HttpError(404, "Order not found")

    try:
        change = services.apply_order_update(
            order,
            stage=payload.stage,
            ship_date=payload.ship_date,
            reason=payload.reason,
            user=request.user,
        )
    except ValueError as e:
        record_role_access(
            request, resource=resource, access_granted=False,
            details=str(e), organization_id=order.organization_id,
        )
        raise HttpError(400, str(e))

    record_role_access(
        request, resource=resource, access_granted=True,
        details=f"Stage {change.previous_stage} -> {change.new_stage}",
        organization_id=order.organization_id,
    )
    _audit_order_change(request, order, change)
    return 204, None


# =============================================================================
# Order requests
# =============================================================================

@requests_router.post("", response={201: OrderRequestOut}, auth=None)
@has_permission(Permissions.ORDER_REQUESTS_SUBMIT)
def submit_order_request(request: HttpRequest, payload: OrderRequestIn):
    try:
        order_request = services.submit_order_request(request.user, payload)
    except ValueError as e:
        raise HttpError(400, str(e))

    log_action(
        org_id=order_request.organization_id,
        action=AuditAction.SUBMIT_ORDER_REQUEST,
        target_type="OrderRequest",
        target_id=order_request.id,
        target_label=order_request.description[:100],
        performed_by=request.user,
    )
    return 201, order_request


@requests_router.get("", response=List[OrderRequestOut], auth=None)
@has_permission(Permissions.ORDERS_VIEW)
def list_order_requests(request: HttpRequest, status: Optional[str] = None):
    qs = OrderRequest.objects.select_related('organization')
    if not request.user.is_colorgarb_staff:
        qs = qs.filter(organization_id=request.user.organization_id)
    elif request.org_id:
        qs = qs.filter(organization_id=request.org_id)
    if status:
        qs = qs.filter(status__iexact=status)
    return list(qs)


@requests_router.post("/{request_id}/process", response=OrderRequestOut, auth=None)
@has_permission(Permissions.ORDER_REQUESTS_PROCESS)
def process_order_request(request: HttpRequest, request_id: UUID, payload: ProcessOrderRequestIn):
    """Approve (creates the order at Initial Consultation) or reject."""
    order_request = get_object_or_404(OrderRequest.objects.select_related('organization'), id=request_id)
    try:
        services.process_order_request(
            order_request,
            approve=payload.approve,
            user=request.user,
            processing_notes=payload.processing_notes or "",
            ship_date=payload.ship_date,
            total_amount=payload.total_amount,
        )
    except ValueError as e:
        raise HttpError(400, str(e))

    log_action(
        org_id=order_request.organization_id,
        action=AuditAction.APPROVE_ORDER_REQUEST if payload.approve else AuditAction.REJECT_ORDER_REQUEST,
        target_type="OrderRequest",
        target_id=order_request.id,
        target_label=order_request.description[:100],
        performed_by=request.user,
        context={"created_order_id": str(order_request.created_order_id) if order_request.created_order_id else None},
    )
    return order_request
