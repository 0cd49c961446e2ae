import csv
import io
import json
from datetime import datetime, timezone as dt_timezone
from decimal import Decimal

from django.test import TestCase, Client

from apps.governance.models import AuditLog
from apps.identity.models import User, UserRole
from apps.orders.models import Order
from apps.organizations.models import Organization
from apps.organizations.dtos import OrganizationIn
from apps.organizations import services


def org_in(name, **fields):
    fields.setdefault("contact_email", "office@example.edu")
    fields.setdefault("address", "1 Main St")
    return OrganizationIn(name=name, **fields)


def make_order(org, number, amount=None, is_active=True):
    ship = datetime(2030, 5, 1, tzinfo=dt_timezone.utc)
    return Order.objects.create(
        order_number=number, organization=org, description="Uniforms",
        current_stage="Design Proposal", original_ship_date=ship, current_ship_date=ship,
        total_amount=amount, is_active=is_active,
    )


class OrganizationServiceTest(TestCase):

    def test_create_normalizes_type(self):
        org = services.create_organization(org_in("  Lincoln High ", org_type="School"))
        self.assertEqual(org.name, "Lincoln High")
        self.assertEqual(org.org_type, "school")

    def test_duplicate_name_is_case_insensitive(self):
        services.create_organization(org_in("Lincoln High"))
        with self.assertRaises(ValueError):
            services.create_organization(org_in("LINCOLN HIGH"))

    def test_invalid_type_and_email(self):
        with self.assertRaises(ValueError):
            services.create_organization(org_in("Circus", org_type="circus"))
        with self.assertRaises(ValueError):
            services.create_organization(org_in("Circus", contact_email="nope"))

    def test_contact_email_and_address_are_required(self):
        with self.assertRaisesMessage(ValueError, "Contact email is required"):
            services.create_organization(OrganizationIn(name="Circus", address="1 Big Top Way"))
        with self.assertRaisesMessage(ValueError, "Address is required"):
            services.create_organization(OrganizationIn(name="Circus", contact_email="ring@circus.org", address="  "))
        self.assertFalse(Organization.objects.exists())

    def test_find_or_create_joins_existing(self):
        first = services.find_or_create_organization(name="Lincoln High", org_type="school", contact_email="a@x.edu")
        second = services.find_or_create_organization(name="lincoln high", org_type="SCHOOL", contact_email="b@x.edu")
        self.assertEqual(first.id, second.id)
        self.assertEqual(first.address, "Address not provided")

    def test_deactivate_cascades_to_orders(self):
        org = Organization.objects.create(name="Lincoln High")
        make_order(org, "CG-2030-000001")
        make_order(org, "CG-2030-000002")

        self.assertEqual(services.deactivate_organization(org), 2)
        self.assertFalse(Order.objects.filter(is_active=True).exists())

    def test_details_statistics(self):
        org = Organization.objects.create(name="Lincoln High")
        make_order(org, "CG-2030-000001", amount=Decimal("1500.00"))
        make_order(org, "CG-2030-000002", amount=Decimal("500.00"), is_active=False)

        details = services.get_organization_details(org)
        self.assertEqual(details['total_orders'], 2)
        self.assertEqual(details['active_orders'], 1)
        self.assertEqual(details['total_order_value'], Decimal("2000.00"))

    def test_bulk_import_isolates_bad_rows(self):
        rows = [
            org_in("Lincoln High"),
            org_in("Bad Type", org_type="circus"),
            org_in("lincoln high"),
            org_in("Jefferson Theater", org_type="theater"),
        ]
        result = services.bulk_import_organizations(rows)
        self.assertEqual(result.success_count, 2)
        self.assertEqual(result.failure_count, 2)
        self.assertEqual([f.row_number for f in result.failures], [2, 3])

    def test_bulk_import_limits(self):
        with self.assertRaises(ValueError):
            services.bulk_import_organizations([])
        with self.assertRaises(ValueError):
            services.bulk_import_organizations(
                [org_in(f"Org {i}") for i in range(services.MAX_IMPORT_ROWS + 1)]
            )


class OrganizationAPITest(TestCase):

    def setUp(self):
        self.client = Client()
        self.org = Organization.objects.create(name="Lincoln High", org_type="school")
        self.staff = User.objects.create_user(email="staff@colorgarb.com", password="Password123", role=UserRole.STAFF)
        self.director = User.objects.create_user(
            email="director@lincoln.edu", password="Password123", role=UserRole.DIRECTOR, organization=self.org
        )

    def test_create_organization_permission(self):
        payload = json.dumps({
            "name": "Jefferson Theater", "org_type": "theater",
            "contact_email": "office@jefferson.org", "address": "9 Stage Door Rd",
        })

        # Client users cannot create organizations
        self.client.force_login(self.director)
        response = self.client.post("/api/organizations/", data=payload, content_type="application/json")
        self.assertEqual(response.status_code, 403)

        self.client.force_login(self.staff)
        response = self.client.post("/api/organizations/", data=payload, content_type="application/json")
        self.assertEqual(response.status_code, 201)
        self.assertEqual(Organization.objects.count(), 2)
        self.assertTrue(AuditLog.objects.filter(action="CREATE_ORGANIZATION").exists())

    def test_duplicate_name_conflict(self):
        self.client.force_login(self.staff)
        response = self.client.post(
            "/api/organizations/",
            data=json.dumps({"name": "lincoln high"}),
            content_type="application/json",
        )
        self.assertEqual(response.status_code, 409)

    def test_create_without_contact_details_is_400(self):
        self.client.force_login(self.staff)
        response = self.client.post(
            "/api/organizations/",
            data=json.dumps({"name": "Jefferson Theater", "org_type": "theater"}),
            content_type="application/json",
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["detail"], "Contact email is required")

    def test_update_and_soft_delete(self):
        self.client.force_login(self.staff)
        response = self.client.put(
            f"/api/organizations/{self.org.id}",
            data=json.dumps({"shipping_address": "12 Stage Door Rd"}),
            content_type="application/json",
        )
        self.assertEqual(response.json()["shipping_address"], "12 Stage Door Rd")

        response = self.client.delete(f"/api/organizations/{self.org.id}")
        self.assertEqual(response.status_code, 204)
        self.assertEqual(self.client.get("/api/organizations/").json(), [])

    def test_export_csv(self):
        Organization.objects.create(name="Closed Dance Co", org_type="dance_company", is_active=False)
        self.client.force_login(self.staff)

        response = self.client.get("/api/organizations/export")
        self.assertEqual(response["Content-Type"], "text/csv")
        rows = list(csv.reader(io.StringIO(response.content.decode())))
        self.assertEqual(rows[0], services.EXPORT_COLUMNS)
        self.assertEqual(len(rows), 2)

        response = self.client.get("/api/organizations/export?include_inactive=true")
        self.assertEqual(len(list(csv.reader(io.StringIO(response.content.decode())))), 3)


class TenantMiddlewareTest(TestCase):

    def setUp(self):
        self.client = Client()
        self.lincoln = Organization.objects.create(name="Lincoln High")
        self.jefferson = Organization.objects.create(name="Jefferson Theater", org_type="theater")
        make_order(self.lincoln, "CG-2030-000001")
        make_order(self.jefferson, "CG-2030-000002")
        self.staff = User.objects.create_user(email="staff@colorgarb.com", password="Password123", role=UserRole.STAFF)
        self.director = User.objects.create_user(
            email="director@lincoln.edu", password="Password123", role=UserRole.DIRECTOR, organization=self.lincoln
        )

    def test_client_header_is_ignored(self):
        self.client.force_login(self.director)
        response = self.client.get("/api/orders/", HTTP_X_ORGANIZATION_ID=str(self.jefferson.id))
        numbers = [o["order_number"] for o in response.json()]
        self.assertEqual(numbers, ["CG-2030-000001"])

    def test_staff_can_narrow_with_header(self):
        self.client.force_login(self.staff)
        self.assertEqual(len(self.client.get("/api/orders/").json()), 2)

        response = self.client.get("/api/orders/", HTTP_X_ORGANIZATION_ID=str(self.jefferson.id))
        self.assertEqual([o["order_number"] for o in response.json()], ["CG-2030-000002"])

    def test_staff_bad_header_falls_back_to_all(self):
        self.client.force_login(self.staff)
        response = self.client.get("/api/orders/", HTTP_X_ORGANIZATION_ID="not-a-uuid")
        self.assertEqual(len(response.json()), 2)
