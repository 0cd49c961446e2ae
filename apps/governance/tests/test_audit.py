"""
Tests for the audit trail.

Covers:
1. audit_service.log_action() and record_role_access()
2. GET /governance/audit-logs and /governance/role-access, staff only
3. Wiring smoke tests: real API calls leave audit rows behind
"""
import json
from uuid import uuid4
from datetime import datetime, timezone as dt_timezone

from django.test import TestCase, Client, RequestFactory
from django.contrib.auth import get_user_model
from django.contrib.auth.models import AnonymousUser

from apps.organizations.models import Organization, OrganizationType
from apps.identity.models import UserRole
from apps.governance.models import AuditLog, RoleAccessAudit
from apps.governance.audit_service import log_action, record_role_access, AuditAction
from apps.orders.models import Order


User = get_user_model()


def make_org():
    """Create a test Organization."""
    return Organization.objects.create(
        name=f"Test School {uuid4().hex[:6]}",
        org_type=OrganizationType.SCHOOL,
    )


def make_user(org=None, role=UserRole.DIRECTOR):
    """Create a test User, optionally in the given org."""
    email = f"user_{uuid4().hex[:8]}@test.com"
    return User.objects.create_user(
        email=email,
        password="testpass123",
        organization=org,
        role=role,
    )


class AuditServiceTest(TestCase):
    """Test the log_action() and record_role_access() helpers directly."""

    def setUp(self):
        self.org = make_org()
        self.user = make_user(self.org)
        self.target_id = uuid4()

    def test_log_action_creates_audit_log(self):
        """log_action() should create an AuditLog with correct fields."""
        log = log_action(
            org_id=self.org.id,
            action=AuditAction.UPDATE_ORDER_STAGE,
            target_type="Order",
            target_id=self.target_id,
            target_label="CG-2030-000001",
            performed_by=self.user,
            context={"previous_stage": "Cutting", "new_stage": "Sewing"},
        )
        self.assertIsNotNone(log)
        self.assertEqual(log.action, AuditAction.UPDATE_ORDER_STAGE)
        self.assertEqual(log.target_type, "Order")
        self.assertEqual(log.target_id, self.target_id)
        self.assertEqual(log.org_id, self.org.id)
        self.assertEqual(log.performed_by, self.user)
        self.assertEqual(log.context["new_stage"], "Sewing")

    def test_log_action_never_raises_on_bad_input(self):
        """log_action() should return None on failure, never raise."""
        result = log_action(
            org_id=self.org.id,
            action=AuditAction.CREATE_ORDER,
            target_type="Order",
            target_id="not-a-uuid",
            performed_by=None,
        )
        self.assertIsNone(result)

    def test_log_action_with_no_context(self):
        """log_action() should default context to empty dict."""
        log = log_action(
            action=AuditAction.CREATE_ORGANIZATION,
            target_type="Organization",
            target_id=self.target_id,
            performed_by=self.user,
        )
        self.assertIsNotNone(log)
        self.assertIsNone(log.org_id)
        self.assertEqual(log.context, {})

    def test_record_role_access(self):
        request = RequestFactory().get("/api/orders/", HTTP_USER_AGENT="pytest", REMOTE_ADDR="10.0.0.5")
        request.user = self.user

        entry = record_role_access(request, resource="/api/orders/", access_granted=True, details="ok")
        self.assertEqual(entry.user_role, "Director")
        self.assertEqual(entry.http_method, "GET")
        self.assertEqual(entry.organization_id, self.org.id)
        self.assertEqual(entry.ip_address, "10.0.0.5")
        self.assertEqual(entry.session_id, "")

    def test_record_role_access_skips_anonymous(self):
        request = RequestFactory().get("/api/orders/")
        request.user = AnonymousUser()
        self.assertIsNone(record_role_access(request, resource="/api/orders/", access_granted=False))
        self.assertEqual(RoleAccessAudit.objects.count(), 0)


class AuditLogAPITest(TestCase):
    """Test GET /governance endpoints."""

    def setUp(self):
        self.client = Client()
        self.org = make_org()
        self.other_org = make_org()

        self.staff = make_user(role=UserRole.STAFF)
        self.director = make_user(self.org)

        self.target_id = uuid4()

        self.log1 = AuditLog.objects.create(
            org_id=self.org.id,
            action=AuditAction.CREATE_ORDER,
            target_type="Order",
            target_id=self.target_id,
            target_label="CG-2030-000001",
            performed_by=self.director,
        )
        self.log2 = AuditLog.objects.create(
            org_id=self.org.id,
            action=AuditAction.CHANGE_USER_ROLE,
            target_type="User",
            target_id=self.director.id,
            performed_by=self.staff,
        )
        AuditLog.objects.create(
            org_id=self.other_org.id,
            action=AuditAction.CREATE_ORDER,
            target_type="Order",
            target_id=uuid4(),
            performed_by=self.staff,
        )

    def test_list_audit_logs_requires_auth(self):
        """Unauthenticated requests should get 401."""
        response = self.client.get("/api/governance/audit-logs")
        self.assertEqual(response.status_code, 401)

    def test_client_cannot_list_audit_logs(self):
        """Directors lack GOVERNANCE_VIEW_AUDIT and the denial is itself recorded."""
        self.client.force_login(self.director)
        response = self.client.get("/api/governance/audit-logs")
        self.assertEqual(response.status_code, 403)

        denial = RoleAccessAudit.objects.get()
        self.assertFalse(denial.access_granted)
        self.assertEqual(denial.resource, "/api/governance/audit-logs")
        self.assertIn("governance.view_audit", denial.details)

    def test_staff_sees_every_organization(self):
        # force_login writes a USER_LOGIN row of its own
        self.client.force_login(self.staff)
        response = self.client.get("/api/governance/audit-logs")
        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual(len(data), 4)
        self.assertEqual({row["org_id"] for row in data if row["org_id"]}, {str(self.org.id), str(self.other_org.id)})

        login = [row for row in data if row["action"] == AuditAction.USER_LOGIN]
        self.assertEqual(len(login), 1)
        self.assertEqual(login[0]["target_id"], str(self.staff.id))

    def test_filter_by_organization_and_action(self):
        self.client.force_login(self.staff)
        response = self.client.get(
            f"/api/governance/audit-logs?organization_id={self.org.id}&action={AuditAction.CREATE_ORDER}"
        )
        data = response.json()
        self.assertEqual(len(data), 1)
        self.assertEqual(data[0]["id"], str(self.log1.id))

    def test_filter_by_target_type(self):
        self.client.force_login(self.staff)
        response = self.client.get("/api/governance/audit-logs?target_type=User")
        data = response.json()
        self.assertEqual(
            sorted(row["action"] for row in data),
            [AuditAction.CHANGE_USER_ROLE, AuditAction.USER_LOGIN],
        )

    def test_limit_is_clamped(self):
        self.client.force_login(self.staff)
        response = self.client.get("/api/governance/audit-logs?limit=0")
        self.assertEqual(len(response.json()), 1)

    def test_get_audit_log_detail(self):
        self.client.force_login(self.staff)
        response = self.client.get(f"/api/governance/audit-logs/{self.log1.id}")
        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual(data["performed_by_name"], self.director.email)

        response = self.client.get(f"/api/governance/audit-logs/{uuid4()}")
        self.assertEqual(response.status_code, 404)

    def test_role_access_listing(self):
        self.client.force_login(self.director)
        self.client.get("/api/governance/role-access")

        self.client.force_login(self.staff)
        response = self.client.get(f"/api/governance/role-access?user_id={self.director.id}&access_granted=false")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(len(response.json()), 1)


class AuditWiringTest(TestCase):
    """Smoke tests: verify audit logs are created via real API calls."""

    def setUp(self):
        self.client = Client()
        self.org = make_org()
        self.staff = make_user(role=UserRole.STAFF)
        ship = datetime(2030, 5, 1, tzinfo=dt_timezone.utc)
        self.order = Order.objects.create(
            order_number="CG-2030-000001", organization=self.org, description="Band uniforms",
            current_stage="Cutting", original_ship_date=ship, current_ship_date=ship,
        )

    def test_stage_update_creates_audit_log(self):
        self.client.force_login(self.staff)

        response = self.client.patch(
            f"/api/orders/{self.order.id}/admin",
            data=json.dumps({"stage": "Sewing", "reason": "Fabric arrived"}),
            content_type="application/json",
        )
        self.assertEqual(response.status_code, 204)

        log = AuditLog.objects.get(action=AuditAction.UPDATE_ORDER_STAGE)
        self.assertEqual(log.target_id, self.order.id)
        self.assertEqual(log.org_id, self.org.id)
        self.assertEqual(log.performed_by, self.staff)
        self.assertTrue(RoleAccessAudit.objects.filter(access_granted=True).exists())
