"""
Unit tests for order services: stage rules, client order creation,
admin updates and order requests.
"""
from datetime import datetime, timedelta, timezone as dt_timezone
from decimal import Decimal
from unittest.mock import patch
from uuid import uuid4

from django.test import TestCase
from django.utils import timezone

from apps.identity.models import User, UserRole
from apps.organizations.models import Organization
from apps.orders import services
from apps.orders.dtos import CreateOrderIn, OrderRequestIn
from apps.orders.models import Order, OrderStageHistory, OrderRequestStatus, PaymentStatus
from apps.orders.stages import MANUFACTURING_STAGES, is_valid_transition, normalize_stage


def make_order(organization, stage="Cutting", ship_date=None):
    ship_date = ship_date or datetime(2030, 6, 1, tzinfo=dt_timezone.utc)
    return Order.objects.create(
        order_number=services.generate_order_number(),
        organization=organization,
        description="Marching band uniforms",
        current_stage=stage,
        original_ship_date=ship_date,
        current_ship_date=ship_date,
    )


class StageRulesTest(TestCase):

    def test_fourteen_stages_in_order(self):
        self.assertEqual(len(MANUFACTURING_STAGES), 14)
        self.assertEqual(MANUFACTURING_STAGES[0], "Initial Consultation")
        self.assertEqual(MANUFACTURING_STAGES[-1], "Delivery")

    def test_transitions(self):
        self.assertTrue(is_valid_transition("Cutting", "Cutting"))
        self.assertTrue(is_valid_transition("Cutting", "Sewing"))
        self.assertTrue(is_valid_transition("Cutting", "Initial Consultation"))
        self.assertFalse(is_valid_transition("Cutting", "Quality Control"))
        self.assertFalse(is_valid_transition("Cutting", "Dyeing"))

    def test_normalize_stage_is_case_insensitive(self):
        self.assertEqual(normalize_stage("  quality control "), "Quality Control")
        self.assertIsNone(normalize_stage("Unknown"))


class ClientOrderCreationTest(TestCase):

    def setUp(self):
        self.org = Organization.objects.create(name="Lincoln High", org_type="school", contact_email="band@lincoln.edu")
        self.director = User.objects.create_user(
            email="director@lincoln.edu", password="Password123", role=UserRole.DIRECTOR, organization=self.org
        )
        self.today = timezone.now().date()

    def _payload(self, **overrides):
        data = {
            "description": "Fall show costumes",
            "measurement_date": self.today + timedelta(days=7),
            "delivery_date": self.today + timedelta(days=60),
            "needs_sample": True,
            "notes": "Sizes for 40 performers",
        }
        data.update(overrides)
        return CreateOrderIn(**data)

    def test_creates_order_at_design_proposal(self):
        order = services.create_client_order(self.director, self._payload())

        self.assertEqual(order.current_stage, "Design Proposal")
        self.assertEqual(order.payment_status, PaymentStatus.PENDING_DESIGN_APPROVAL)
        self.assertIsNone(order.total_amount)
        self.assertEqual(order.current_ship_date, order.original_ship_date)
        self.assertEqual(order.current_ship_date.date(), self.today + timedelta(days=60))
        self.assertRegex(order.order_number, r"^CG-\d{4}-[0-9A-F]{6}$")

        lines = order.notes.split("\n")
        self.assertTrue(lines[0].startswith("Measurements scheduled for: "))
        self.assertTrue(lines[1].startswith("Delivery needed by: "))
        self.assertEqual(lines[2], "Sample requested prior to production")
        self.assertEqual(lines[3], "Additional Notes: Sizes for 40 performers")

        history = OrderStageHistory.objects.get(order=order)
        self.assertEqual(history.change_reason, "Initial order creation")

    def test_rejects_past_measurement_date(self):
        with self.assertRaisesMessage(ValueError, "Measurement date cannot be in the past"):
            services.create_client_order(self.director, self._payload(measurement_date=self.today - timedelta(days=1)))

    def test_rejects_delivery_before_measurement(self):
        with self.assertRaisesMessage(ValueError, "Delivery date must be after measurement date"):
            services.create_client_order(
                self.director,
                self._payload(measurement_date=self.today + timedelta(days=10), delivery_date=self.today + timedelta(days=5)),
            )

    def test_user_without_organization_cannot_create(self):
        loner = User.objects.create_user(email="loner@example.com", password="Password123", role=UserRole.DIRECTOR)
        with self.assertRaisesMessage(ValueError, "organization"):
            services.create_client_order(loner, self._payload())


class OrderUpdateTest(TestCase):

    def setUp(self):
        self.org = Organization.objects.create(name="Riverside Theater", org_type="theater")
        self.staff = User.objects.create_user(email="staff@colorgarb.com", password="Password123", role=UserRole.STAFF)
        self.order = make_order(self.org)

    def test_advance_one_stage_writes_history(self):
        change = services.apply_order_update(self.order, stage="Sewing", ship_date=None, reason="On track", user=self.staff)

        self.order.refresh_from_db()
        self.assertEqual(self.order.current_stage, "Sewing")
        self.assertTrue(change.stage_changed)
        self.assertFalse(change.ship_date_changed)
        row = OrderStageHistory.objects.get(order=self.order)
        self.assertEqual(row.stage, "Sewing")
        self.assertEqual(row.change_reason, "On track")
        self.assertIsNone(row.new_ship_date)

    def test_skipping_stages_is_rejected(self):
        with self.assertRaisesMessage(ValueError, "Invalid stage transition"):
            services.apply_order_update(self.order, stage="Finishing", ship_date=None, reason="", user=self.staff)
        self.order.refresh_from_db()
        self.assertEqual(self.order.current_stage, "Cutting")
        self.assertFalse(OrderStageHistory.objects.filter(order=self.order).exists())

    def test_ship_date_change_records_both_dates(self):
        old = self.order.current_ship_date
        new = old + timedelta(days=5)
        services.apply_order_update(self.order, stage="Cutting", ship_date=new, reason="Fabric delay", user=self.staff)

        row = OrderStageHistory.objects.get(order=self.order)
        self.assertEqual(row.previous_ship_date, old)
        self.assertEqual(row.new_ship_date, new)

    def test_unchanged_update_still_writes_history(self):
        services.apply_order_update(self.order, stage="Cutting", ship_date=None, reason="Checked", user=self.staff)
        self.assertEqual(OrderStageHistory.objects.filter(order=self.order).count(), 1)

    @patch("apps.orders.services.TaskService")
    def test_follow_up_work_queued_after_commit(self, task_service):
        with self.captureOnCommitCallbacks(execute=True):
            services.apply_order_update(self.order, stage="Sewing", ship_date=None, reason="", user=self.staff)

        task_service.sync_production_update.assert_called_once()
        task_service.send_order_notifications.assert_called_once()
        payload = task_service.sync_production_update.call_args[0][0]
        self.assertEqual(payload["order_id"], str(self.order.id))
        self.assertEqual(payload["new_stage"], "Sewing")

    @patch("apps.orders.services.TaskService")
    def test_no_follow_up_when_nothing_changed(self, task_service):
        with self.captureOnCommitCallbacks(execute=True):
            services.apply_order_update(self.order, stage="Cutting", ship_date=None, reason="", user=self.staff)
        task_service.sync_production_update.assert_not_called()

    def test_bulk_update_reports_each_order(self):
        behind = make_order(self.org, stage="Measurements")
        missing = uuid4()

        result = services.bulk_update_orders(
            [self.order.id, behind.id, missing], stage="Sewing", ship_date=None, reason="Batch", user=self.staff
        )

        self.assertEqual(result.successful, [self.order.id])
        failures = {f.order_id: f.error for f in result.failed}
        self.assertIn("Invalid stage transition", failures[behind.id])
        self.assertEqual(failures[missing], "Order not found")

    def test_bulk_update_requires_ids(self):
        with self.assertRaises(ValueError):
            services.bulk_update_orders([], stage="Sewing", ship_date=None, reason="", user=self.staff)


class AdminListingTest(TestCase):

    def setUp(self):
        self.org = Organization.objects.create(name="Valley Dance", org_type="dance_company")
        for _ in range(3):
            make_order(self.org)
        inactive = make_order(self.org)
        inactive.is_active = False
        inactive.save()

    def test_page_size_out_of_range_resets_to_default(self):
        page = services.admin_list_orders(page_size=500)
        self.assertEqual(page["page_size"], 50)
        self.assertEqual(page["total_count"], 3)
        self.assertEqual(page["total_pages"], 1)

    def test_paging_and_inactive_filter(self):
        page = services.admin_list_orders(page=2, page_size=2)
        self.assertEqual(len(page["orders"]), 1)
        self.assertEqual(page["total_pages"], 2)

        inactive = services.admin_list_orders(status="Inactive")
        self.assertEqual(inactive["total_count"], 1)


class OrderRequestTest(TestCase):

    def setUp(self):
        self.org = Organization.objects.create(name="Lincoln High", org_type="school")
        self.finance = User.objects.create_user(
            email="finance@lincoln.edu", password="Password123", role=UserRole.FINANCE, organization=self.org
        )
        self.staff = User.objects.create_user(email="ops@colorgarb.com", password="Password123", role=UserRole.STAFF)

    def _submit(self, **overrides):
        data = {
            "name": "Pat Finance",
            "email": "finance@lincoln.edu",
            "description": "Spring guard flags",
            "performer_count": 24,
            "preferred_completion_date": timezone.now().date() + timedelta(days=90),
            "estimated_budget": Decimal("4500.00"),
        }
        data.update(overrides)
        return services.submit_order_request(self.finance, OrderRequestIn(**data))

    def test_performer_count_bounds(self):
        with self.assertRaises(ValueError):
            self._submit(performer_count=0)
        with self.assertRaises(ValueError):
            self._submit(performer_count=10001)

    def test_approve_creates_order_at_initial_consultation(self):
        order_request = self._submit()
        services.process_order_request(order_request, approve=True, user=self.staff, processing_notes="Go")

        order_request.refresh_from_db()
        self.assertEqual(order_request.status, OrderRequestStatus.APPROVED)
        self.assertEqual(order_request.created_order.current_stage, "Initial Consultation")
        self.assertEqual(order_request.processed_by, self.staff)

    def test_already_processed_request_is_rejected(self):
        order_request = self._submit()
        services.process_order_request(order_request, approve=False, user=self.staff, processing_notes="Out of scope")
        self.assertEqual(order_request.status, OrderRequestStatus.REJECTED)
        self.assertIsNone(order_request.created_order)

        with self.assertRaises(ValueError):
            services.process_order_request(order_request, approve=True, user=self.staff)
