"""
Services for Organizations app.
This is the public API for other apps to interact with organizations.
"""
import csv
import io
import logging
import re
from decimal import Decimal
from typing import Iterable, Optional

from django.db import transaction
from django.db.models import Count, Max, Q, Sum

from .models import Organization, OrganizationType
from .dtos import OrganizationIn, OrganizationOut, BulkImportFailure, BulkImportResult

logger = logging.getLogger(__name__)

MAX_IMPORT_ROWS = 1000
EMAIL_PATTERN = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')

EXPORT_COLUMNS = [
    'Id', 'Name', 'Type', 'ContactEmail', 'ContactPhone',
    'Address', 'ShippingAddress', 'IsActive', 'CreatedAt',
]


def get_organization_dto(org_id) -> OrganizationOut | None:
    """
    Get an organization by ID and return as DTO.
    This is the only way other apps should access organization data.
    """
    try:
        org = Organization.objects.get(id=org_id)
        return OrganizationOut.from_orm(org)
    except Organization.DoesNotExist:
        return None


def validate_organization_data(data: dict, exclude_id=None) -> None:
    """
    Raises:
        ValueError: first validation problem found
    """
    name = (data.get('name') or '').strip()
    if 'name' in data:
        if not name:
            raise ValueError("Organization name is required")
        if len(name) > 200:
            raise ValueError("Organization name cannot exceed 200 characters")
        duplicates = Organization.objects.filter(name__iexact=name)
        if exclude_id:
            duplicates = duplicates.exclude(id=exclude_id)
        if duplicates.exists():
            raise ValueError(f"An organization named '{name}' already exists")

    org_type = data.get('org_type')
    if org_type is not None and org_type.strip().lower() not in OrganizationType.values:
        raise ValueError("Invalid organization type. Allowed values: school, theater, dance_company, other")

    email = data.get('contact_email')
    if email is not None:
        if not email.strip():
            raise ValueError("Contact email is required")
        if not EMAIL_PATTERN.match(email.strip()):
            raise ValueError("Contact email format is invalid")

    address = data.get('address')
    if address is not None and not address.strip():
        raise ValueError("Address is required")

    for field in ('address', 'shipping_address'):
        if len(data.get(field) or '') > 500:
            raise ValueError(f"{field.replace('_', ' ').capitalize()} cannot exceed 500 characters")


def create_organization(payload: OrganizationIn) -> Organization:
    data = payload.dict()
    validate_organization_data(data)
    data['name'] = data['name'].strip()
    data['org_type'] = data['org_type'].strip().lower()
    org = Organization.objects.create(**data)
    logger.info(f"Organization created: {org.id} - {org.name}")
    return org


def update_organization(org: Organization, data: dict) -> Organization:
    validate_organization_data(data, exclude_id=org.id)
    for attr, value in data.items():
        if value is None:
            continue
        if attr == 'org_type':
            value = value.strip().lower()
        elif isinstance(value, str):
            value = value.strip()
        setattr(org, attr, value)
    org.save()
    return org


def deactivate_organization(org: Organization) -> int:
    """Soft-delete the organization and its orders. Returns orders deactivated."""
    from apps.orders.models import Order

    with transaction.atomic():
        org.is_active = False
        org.save(update_fields=['is_active', 'updated_at'])
        count = Order.objects.filter(organization=org, is_active=True).update(is_active=False)

    logger.info(f"Organization {org.id} deactivated along with {count} orders")
    return count


def find_or_create_organization(*, name: str, org_type: str, contact_email: str,
                                contact_phone: Optional[str] = None,
                                address: Optional[str] = None) -> Organization:
    """Registration lookup: same name and type (case-insensitive) joins the existing tenant."""
    org_type = org_type.strip().lower()
    existing = Organization.objects.filter(name__iexact=name.strip(), org_type=org_type).first()
    if existing:
        return existing

    org = Organization.objects.create(
        name=name.strip(),
        org_type=org_type,
        contact_email=contact_email.strip(),
        contact_phone=(contact_phone or '').strip(),
        address=(address or '').strip() or "Address not provided",
    )
    logger.info(f"New organization created: {org.id} - {org.name}")
    return org


def get_organization_details(org: Organization) -> dict:
    stats = org.orders.aggregate(
        total_orders=Count('id'),
        active_orders=Count('id', filter=Q(is_active=True)),
        total_order_value=Sum('total_amount'),
        last_order_date=Max('created_at'),
    )
    return {
        'organization': org,
        'total_orders': stats['total_orders'],
        'active_orders': stats['active_orders'],
        'total_order_value': stats['total_order_value'] or Decimal('0.00'),
        'last_order_date': stats['last_order_date'],
    }


def bulk_import_organizations(rows: list[OrganizationIn]) -> BulkImportResult:
    """
    Create organizations row by row; a bad row never blocks the others.

    Raises:
        ValueError: empty payload or more than MAX_IMPORT_ROWS rows
    """
    if not rows:
        raise ValueError("At least one organization is required")
    if len(rows) > MAX_IMPORT_ROWS:
        raise ValueError(f"Cannot import more than {MAX_IMPORT_ROWS} organizations at once")

    created = []
    failures = []
    for row_number, row in enumerate(rows, start=1):
        try:
            with transaction.atomic():
                created.append(create_organization(row))
        except ValueError as e:
            failures.append(BulkImportFailure(
                row_number=row_number,
                organization_name=row.name,
                error=str(e),
            ))

    logger.info(f"Organization import finished: {len(created)} created, {len(failures)} failed")
    return BulkImportResult(
        success_count=len(created),
        failure_count=len(failures),
        failures=failures,
        created=[OrganizationOut.from_orm(org) for org in created],
    )


def export_organizations_csv(organizations: Iterable[Organization]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(EXPORT_COLUMNS)
    for org in organizations:
        writer.writerow([
            org.id,
            org.name,
            org.org_type,
            org.contact_email,
            org.contact_phone,
            org.address,
            org.shipping_address,
            org.is_active,
            org.created_at.isoformat(),
        ])
    return buffer.getvalue()
