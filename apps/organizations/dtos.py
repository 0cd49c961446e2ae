from ninja import Schema
from ninja.orm import create_schema
from uuid import UUID
from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from .models import Organization

OrganizationOut = create_schema(Organization, exclude=['updated_at'])


class OrganizationIn(Schema):
    name: str
    org_type: str = "school"  # school, theater, dance_company or other
    contact_email: str = ""  # required, checked by validate_organization_data
    contact_phone: str = ""
    address: str = ""  # required
    shipping_address: str = ""


class OrganizationUpdate(Schema):
    name: Optional[str] = None
    org_type: Optional[str] = None
    contact_email: Optional[str] = None
    contact_phone: Optional[str] = None
    address: Optional[str] = None
    shipping_address: Optional[str] = None
    is_active: Optional[bool] = None


class OrganizationDetailsOut(Schema):
    organization: OrganizationOut
    total_orders: int
    active_orders: int
    total_order_value: Decimal
    last_order_date: Optional[datetime] = None


class BulkImportRequest(Schema):
    organizations: List[OrganizationIn]


class BulkImportFailure(Schema):
    row_number: int
    organization_name: str
    error: str


class BulkImportResult(Schema):
    success_count: int
    failure_count: int
    failures: List[BulkImportFailure]
    created: List[OrganizationOut]
