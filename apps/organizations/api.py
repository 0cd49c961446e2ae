from typing import List
from uuid import UUID
from ninja import Router
from ninja.errors import HttpError
from django.http import HttpRequest, HttpResponse
from django.shortcuts import get_object_or_404
from django.utils import timezone

from apps.identity.decorators import has_permission
from apps.identity.permissions import Permissions
from apps.governance.audit_service import log_action, AuditAction
from .models import Organization
from .dtos import (
    OrganizationOut, OrganizationIn, OrganizationUpdate, OrganizationDetailsOut,
    BulkImportRequest, BulkImportResult,
)
from . import services

router = Router(tags=["Organizations"])


def _raise_for_validation(error: ValueError):
    message = str(error)
    if "already exists" in message:
        raise HttpError(409, message)
    raise HttpError(400, message)


@router.get("", response=List[OrganizationOut], auth=None)
@has_permission(Permissions.ORGANIZATION_MANAGE)
def list_organizations(request: HttpRequest):
    """Active organizations, alphabetical. Staff only."""
    return list(Organization.objects.filter(is_active=True))


@router.post("", response={201: OrganizationOut}, auth=None)
@has_permission(Permissions.ORGANIZATION_MANAGE)
def create_organization(request: HttpRequest, payload: OrganizationIn):
    try:
        org = services.create_organization(payload)
    except ValueError as e:
        _raise_for_validation(e)

    log_action(
        org_id=org.id,
        action=AuditAction.CREATE_ORGANIZATION,
        target_type="Organization",
        target_id=org.id,
        target_label=org.name,
        performed_by=request.user,
    )
    return 201, org


@router.post("/bulk-import", response=BulkImportResult, auth=None)
@has_permission(Permissions.ORGANIZATION_MANAGE)
def bulk_import(request: HttpRequest, payload: BulkImportRequest):
    """
    Import up to 1000 organizations. Each row succeeds or fails on its own.
    """
    try:
        result = services.bulk_import_organizations(payload.organizations)
    except ValueError as e:
        raise HttpError(400, str(e))

    for org in result.created:
        log_action(
            org_id=org.id,
            action=AuditAction.IMPORT_ORGANIZATIONS,
            target_type="Organization",
            target_id=org.id,
            target_label=org.name,
            performed_by=request.user,
        )
    return result


@router.get("/export", auth=None)
@has_permission(Permissions.ORGANIZATION_MANAGE)
def export_organizations(request: HttpRequest, include_inactive: bool = False):
    """CSV export of organizations."""
    qs = Organization.objects.all()
    if not include_inactive:
        qs = qs.filter(is_active=True)

    content = services.export_organizations_csv(qs)
    filename = f"organizations_{timezone.now():%Y%m%d_%H%M%S}.csv"
    response = HttpResponse(content, content_type='text/csv')
    response['Content-Disposition'] = f'attachment; filename="{filename}"'
    return response


@router.get("/{org_id}", response=OrganizationOut, auth=None)
@has_permission(Permissions.ORGANIZATION_MANAGE)
def get_organization(request: HttpRequest, org_id: UUID):
    return get_object_or_404(Organization, id=org_id)


@router.get("/{org_id}/details", response=OrganizationDetailsOut, auth=None)
@has_permission(Permissions.ORGANIZATION_MANAGE)
def get_organization_details(request: HttpRequest, org_id: UUID):
    """Organization with order statistics."""
    org = get_object_or_404(Organization, id=org_id)
    return services.get_organization_details(org)


@router.put("/{org_id}", response=OrganizationOut, auth=None)
@has_permission(Permissions.ORGANIZATION_MANAGE)
def update_organization(request: HttpRequest, org_id: UUID, payload: OrganizationUpdate):
    org = get_object_or_404(Organization, id=org_id)
    changes = payload.dict(exclude_unset=True)
    try:
        services.update_organization(org, changes)
    except ValueError as e:
        _raise_for_validation(e)

    log_action(
        org_id=org.id,
        action=AuditAction.UPDATE_ORGANIZATION,
        target_type="Organization",
        target_id=org.id,
        target_label=org.name,
        performed_by=request.user,
        context={"fields": sorted(changes.keys())},
    )
    return org


@router.delete("/{org_id}", response={204: None}, auth=None)
@has_permission(Permissions.ORGANIZATION_MANAGE)
def deactivate_organization(request: HttpRequest, org_id: UUID):
    """Soft delete: the organization and its orders become inactive."""
    org = get_object_or_404(Organization, id=org_id)
    orders_deactivated = services.deactivate_organization(org)

    log_action(
        org_id=org.id,
        action=AuditAction.DEACTIVATE_ORGANIZATION,
        target_type="Organization",
        target_id=org.id,
        target_label=org.name,
        performed_by=request.user,
        context={"orders_deactivated": orders_deactivated},
    )
    return 204, None
