"""
Integration tests for the orders API: tenancy, permissions and admin updates.
"""
import json
from datetime import datetime, timedelta, timezone as dt_timezone
from uuid import uuid4

from django.test import TestCase, Client
from django.utils import timezone

from apps.governance.models import AuditLog, RoleAccessAudit
from apps.identity.models import User, UserRole
from apps.organizations.models import Organization
from apps.orders.models import Order, OrderStageHistory
from apps.orders.services import generate_order_number


class OrdersAPITest(TestCase):

    def setUp(self):
        self.client = Client()
        self.org_a = Organization.objects.create(name="Lincoln High", org_type="school")
        self.org_b = Organization.objects.create(name="Riverside Theater", org_type="theater")

        self.director = User.objects.create_user(
            email="director@lincoln.edu", password="Password123", role=UserRole.DIRECTOR, organization=self.org_a
        )
        self.staff = User.objects.create_user(email="staff@colorgarb.com", password="Password123", role=UserRole.STAFF)

        ship = datetime(2030, 5, 1, tzinfo=dt_timezone.utc)
        self.order_a = Order.objects.create(
            order_number=generate_order_number(), organization=self.org_a, description="Band uniforms",
            current_stage="Cutting", original_ship_date=ship, current_ship_date=ship,
        )
        self.order_b = Order.objects.create(
            order_number=generate_order_number(), organization=self.org_b, description="Stage costumes",
            current_stage="Measurements", original_ship_date=ship, current_ship_date=ship,
        )

    def test_list_requires_auth(self):
        response = self.client.get('/api/orders/')
        self.assertEqual(response.status_code, 401)

    def test_client_sees_only_own_organization(self):
        self.client.force_login(self.director)
        response = self.client.get('/api/orders/')
        self.assertEqual(response.status_code, 200)
        numbers = [o['order_number'] for o in response.json()]
        self.assertEqual(numbers, [self.order_a.order_number])

    def test_client_gets_404_for_other_organization_order(self):
        self.client.force_login(self.director)
        response = self.client.get(f'/api/orders/{self.order_b.id}')
        self.assertEqual(response.status_code, 404)

    def test_staff_sees_all_and_can_narrow_by_header(self):
        self.client.force_login(self.staff)
        response = self.client.get('/api/orders/')
        self.assertEqual(len(response.json()), 2)

        response = self.client.get('/api/orders/', HTTP_X_ORGANIZATION_ID=str(self.org_b.id))
        self.assertEqual([o['id'] for o in response.json()], [str(self.order_b.id)])

    def test_order_detail_includes_history(self):
        self.client.force_login(self.director)
        response = self.client.get(f'/api/orders/{self.order_a.id}')
        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual(data['organization_name'], "Lincoln High")
        self.assertEqual(data['stage_history'], [])

    def test_director_creates_order(self):
        self.client.force_login(self.director)
        today = timezone.now().date()
        payload = {
            'description': 'Winter guard',
            'measurement_date': str(today + timedelta(days=3)),
            'delivery_date': str(today + timedelta(days=45)),
            'needs_sample': False,
        }
        response = self.client.post('/api/orders/', data=json.dumps(payload), content_type='application/json')

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()['current_stage'], 'Design Proposal')
        self.assertTrue(AuditLog.objects.filter(action="CREATE_ORDER").exists())

    def test_create_order_validation_error_is_400(self):
        self.client.force_login(self.director)
        yesterday = timezone.now().date() - timedelta(days=1)
        payload = {
            'description': 'Winter guard',
            'measurement_date': str(yesterday),
            'delivery_date': str(yesterday + timedelta(days=30)),
        }
        response = self.client.post('/api/orders/', data=json.dumps(payload), content_type='application/json')
        self.assertEqual(response.status_code, 400)

    def test_staff_cannot_place_client_orders(self):
        self.client.force_login(self.staff)
        today = timezone.now().date()
        payload = {
            'description': 'Winter guard',
            'measurement_date': str(today + timedelta(days=3)),
            'delivery_date': str(today + timedelta(days=45)),
        }
        response = self.client.post('/api/orders/', data=json.dumps(payload), content_type='application/json')
        self.assertEqual(response.status_code, 403)

    def test_admin_update_advances_stage(self):
        self.client.force_login(self.staff)
        response = self.client.patch(
            f'/api/orders/{self.order_a.id}/admin',
            data=json.dumps({'stage': 'Sewing', 'reason': 'Cutting complete'}),
            content_type='application/json',
        )
        self.assertEqual(response.status_code, 204)

        self.order_a.refresh_from_db()
        self.assertEqual(self.order_a.current_stage, 'Sewing')
        self.assertEqual(OrderStageHistory.objects.filter(order=self.order_a).count(), 1)
        self.assertTrue(RoleAccessAudit.objects.filter(user=self.staff, access_granted=True).exists())
        self.assertTrue(AuditLog.objects.filter(action="UPDATE_ORDER_STAGE", target_id=self.order_a.id).exists())

    def test_admin_update_invalid_transition_is_400_and_audited(self):
        self.client.force_login(self.staff)
        response = self.client.patch(
            f'/api/orders/{self.order_a.id}/admin',
            data=json.dumps({'stage': 'Delivery', 'reason': ''}),
            content_type='application/json',
        )
        self.assertEqual(response.status_code, 400)
        self.assertTrue(RoleAccessAudit.objects.filter(user=self.staff, access_granted=False).exists())

    def test_admin_update_unknown_order_is_404(self):
        self.client.force_login(self.staff)
        response = self.client.patch(
            f'/api/orders/{uuid4()}/admin',
            data=json.dumps({'stage': 'Sewing'}),
            content_type='application/json',
        )
        self.assertEqual(response.status_code, 404)

    def test_client_cannot_use_admin_update(self):
        self.client.force_login(self.director)
        response = self.client.patch(
            f'/api/orders/{self.order_a.id}/admin',
            data=json.dumps({'stage': 'Sewing'}),
            content_type='application/json',
        )
        self.assertEqual(response.status_code, 403)
        self.assertTrue(RoleAccessAudit.objects.filter(user=self.director, access_granted=False).exists())

    def test_admin_listing_and_bulk_update(self):
        self.client.force_login(self.staff)
        response = self.client.get('/api/orders/admin/orders?page_size=0')
        data = response.json()
        self.assertEqual(data['page_size'], 50)
        self.assertEqual(data['total_count'], 2)
        self.assertEqual(len(data['organizations']), 2)

        response = self.client.post(
            '/api/orders/admin/orders/bulk-update',
            data=json.dumps({'order_ids': [str(self.order_a.id), str(self.order_b.id)], 'stage': 'Sewing'}),
            content_type='application/json',
        )
        self.assertEqual(response.status_code, 200)
        result = response.json()
        self.assertEqual(result['successful'], [str(self.order_a.id)])
        self.assertEqual(result['failed'][0]['order_id'], str(self.order_b.id))

    def test_bulk_update_without_ids_is_400(self):
        self.client.force_login(self.staff)
        response = self.client.post(
            '/api/orders/admin/orders/bulk-update',
            data=json.dumps({'order_ids': [], 'stage': 'Sewing'}),
            content_type='application/json',
        )
        self.assertEqual(response.status_code, 400)


class OrderRequestsAPITest(TestCase):

    def setUp(self):
        self.client = Client()
        self.org = Organization.objects.create(name="Lincoln High", org_type="school")
        self.finance = User.objects.create_user(
            email="finance@lincoln.edu", password="Password123", role=UserRole.FINANCE, organization=self.org
        )
        self.staff = User.objects.create_user(email="staff@colorgarb.com", password="Password123", role=UserRole.STAFF)

    def _submit(self):
        payload = {
            'name': 'Pat',
            'email': 'finance@lincoln.edu',
            'description': 'Flags for spring',
            'performer_count': 12,
            'preferred_completion_date': str(timezone.now().date() + timedelta(days=60)),
            'priority': 'High',
        }
        return self.client.post('/api/order-requests/', data=json.dumps(payload), content_type='application/json')

    def test_submit_and_approve(self):
        self.client.force_login(self.finance)
        response = self._submit()
        self.assertEqual(response.status_code, 201)
        request_id = response.json()['id']

        self.client.force_login(self.staff)
        response = self.client.post(
            f'/api/order-requests/{request_id}/process',
            data=json.dumps({'approve': True, 'processing_notes': 'Approved'}),
            content_type='application/json',
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['status'], 'Approved')
        self.assertIsNotNone(response.json()['created_order_id'])

        response = self.client.post(
            f'/api/order-requests/{request_id}/process',
            data=json.dumps({'approve': False}),
            content_type='application/json',
        )
        self.assertEqual(response.status_code, 400)

    def test_client_lists_own_requests(self):
        self.client.force_login(self.finance)
        self._submit()
        response = self.client.get('/api/order-requests/')
        self.assertEqual(len(response.json()), 1)
