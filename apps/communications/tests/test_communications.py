"""
Tests for the communication audit trail, search validation and provider webhooks.
"""
import base64
import json
from datetime import datetime, timedelta, timezone as dt_timezone

from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from django.test import TestCase, Client, SimpleTestCase, override_settings

from apps.communications import services
from apps.communications.dtos import CommunicationSearchIn
from apps.communications.models import CommunicationLog, NotificationDeliveryLog
from apps.communications.webhooks import compute_twilio_signature, verify_sendgrid_signature
from apps.identity.models import User, UserRole
from apps.organizations.models import Organization
from apps.orders.models import Order


def make_order(org, number):
    ship = datetime(2030, 5, 1, tzinfo=dt_timezone.utc)
    return Order.objects.create(
        order_number=number, organization=org, description="Uniforms",
        current_stage="Cutting", original_ship_date=ship, current_ship_date=ship,
    )


class ProviderInferenceTest(SimpleTestCase):

    def test_prefixes(self):
        self.assertEqual(services.infer_provider("sendgrid-abc"), "SendGrid")
        self.assertEqual(services.infer_provider("sg-abc"), "SendGrid")
        self.assertEqual(services.infer_provider("twilio-abc"), "Twilio")
        self.assertEqual(services.infer_provider("SM123"), "Twilio")
        self.assertEqual(services.infer_provider("internal-123"), "Internal")
        self.assertEqual(services.infer_provider("xyz"), "Unknown")


class SearchValidationTest(SimpleTestCase):

    def test_valid_defaults(self):
        self.assertEqual(services.validate_search(CommunicationSearchIn()), [])

    def test_invalid_values(self):
        now = datetime(2030, 1, 1, tzinfo=dt_timezone.utc)
        cases = [
            CommunicationSearchIn(date_from=now, date_to=now - timedelta(days=1)),
            CommunicationSearchIn(date_from=now, date_to=now + timedelta(days=366)),
            CommunicationSearchIn(sort_by="subject"),
            CommunicationSearchIn(sort_direction="sideways"),
            CommunicationSearchIn(communication_types=["Pigeon"]),
            CommunicationSearchIn(delivery_statuses=["Lost"]),
            CommunicationSearchIn(page_size=101),
        ]
        for params in cases:
            self.assertTrue(services.validate_search(params), params)


class DeliveryStatusTest(TestCase):

    def setUp(self):
        self.log = services.log_communication(
            communication_type="Email",
            recipient_email="band@lincoln.edu",
            subject="Order update",
            external_message_id="sg-123",
        )

    def test_unknown_id_is_noop(self):
        self.assertFalse(services.update_delivery_status("sg-missing", "Delivered"))

    def test_delivered_then_opened(self):
        self.assertTrue(services.update_delivery_status("sg-123", "Delivered"))
        self.log.refresh_from_db()
        self.assertIsNotNone(self.log.delivered_at)

        services.update_delivery_status("sg-123", "Opened")
        self.log.refresh_from_db()
        self.assertEqual(self.log.delivery_status, "Opened")
        self.assertIsNotNone(self.log.read_at)

        delivery = NotificationDeliveryLog.objects.get(communication_log=self.log)
        self.assertEqual(delivery.delivery_provider, "SendGrid")
        self.assertEqual(delivery.status, "Opened")

    def test_opened_backfills_delivered_at(self):
        services.update_delivery_status("sg-123", "Opened")
        self.log.refresh_from_db()
        self.assertEqual(self.log.delivered_at, self.log.read_at)

    def test_bounce_records_reason(self):
        services.update_delivery_status("sg-123", "Bounced", "Mailbox full")
        self.log.refresh_from_db()
        self.assertEqual(self.log.failure_reason, "Mailbox full")


class CommunicationAuditAPITest(TestCase):

    def setUp(self):
        self.client = Client()
        self.org_a = Organization.objects.create(name="Lincoln High", org_type="school")
        self.org_b = Organization.objects.create(name="Riverside Theater", org_type="theater")
        self.order_a = make_order(self.org_a, "CG-2030-00000A")
        self.order_b = make_order(self.org_b, "CG-2030-00000B")
        self.director = User.objects.create_user(
            email="director@lincoln.edu", password="Password123", role=UserRole.DIRECTOR, organization=self.org_a
        )
        self.staff = User.objects.create_user(email="staff@colorgarb.com", password="Password123", role=UserRole.STAFF)
        services.log_communication(communication_type="Email", order=self.order_a, subject="Stage update A")
        services.log_communication(communication_type="Email", order=self.order_b, subject="Stage update B")
        services.log_communication(
            communication_type="Message", order=self.order_a, subject="Message A", delivery_status="Delivered"
        )

    def test_client_search_is_pinned_to_own_organization(self):
        self.client.force_login(self.director)
        response = self.client.get(f'/api/communication-audit/logs?organization_id={self.org_b.id}')
        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual(data['total_count'], 2)
        self.assertEqual(data['status_summary'], {'Sent': 1, 'Delivered': 1})

    def test_staff_filters_by_type(self):
        self.client.force_login(self.staff)
        response = self.client.get('/api/communication-audit/logs?communication_types=Email')
        self.assertEqual(response.json()['total_count'], 2)

    def test_bad_sort_is_400(self):
        self.client.force_login(self.staff)
        response = self.client.get('/api/communication-audit/logs?sort_by=subject')
        self.assertEqual(response.status_code, 400)

    def test_summary_for_other_organization_is_forbidden(self):
        self.client.force_login(self.director)
        response = self.client.get(
            f'/api/communication-audit/organizations/{self.org_b.id}/summary'
            f'?date_from=2020-01-01T00:00:00Z&date_to=2099-01-01T00:00:00Z'
        )
        self.assertEqual(response.status_code, 403)

    def test_summary_counts(self):
        self.client.force_login(self.staff)
        response = self.client.get(
            f'/api/communication-audit/organizations/{self.org_a.id}/summary'
            f'?date_from=2020-01-01T00:00:00Z&date_to=2099-01-01T00:00:00Z'
        )
        data = response.json()
        self.assertEqual(data['total'], 2)
        self.assertEqual(data['type_counts'], {'Email': 1, 'Message': 1})

    def test_export_is_staff_only_csv(self):
        self.client.force_login(self.director)
        self.assertEqual(self.client.get('/api/communication-export/csv').status_code, 403)

        self.client.force_login(self.staff)
        response = self.client.get('/api/communication-export/csv')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response['Content-Type'], 'text/csv')
        lines = response.content.decode().strip().splitlines()
        self.assertEqual(len(lines), 4)
        self.assertTrue(lines[0].startswith('id,order_number'))


class WebhookTest(TestCase):

    def setUp(self):
        self.client = Client()
        self.private_key = ec.generate_private_key(ec.SECP256R1())
        der = self.private_key.public_key().public_bytes(
            serialization.Encoding.DER, serialization.PublicFormat.SubjectPublicKeyInfo
        )
        self.public_key = base64.b64encode(der).decode()
        self.log = services.log_communication(
            communication_type="Email", recipient_email="band@lincoln.edu", external_message_id="sg-789",
        )

    def _sign(self, timestamp, body):
        signature = self.private_key.sign(timestamp.encode() + body, ec.ECDSA(hashes.SHA256()))
        return base64.b64encode(signature).decode()

    def test_sendgrid_signature_roundtrip(self):
        body = b'[]'
        self.assertTrue(verify_sendgrid_signature(self.public_key, self._sign("1700000000", body), "1700000000", body))
        self.assertFalse(verify_sendgrid_signature(self.public_key, self._sign("1700000000", body), "1700000001", body))

    def test_sendgrid_webhook_updates_status(self):
        body = json.dumps([
            {"event": "delivered", "sg_message_id": "sg-789", "email": "band@lincoln.edu"},
            {"event": "open"},
        ]).encode()
        timestamp = "1700000000"
        with override_settings(SENDGRID_WEBHOOK_PUBLIC_KEY=self.public_key):
            response = self.client.post(
                '/api/webhooks/sendgrid',
                data=body,
                content_type='application/json',
                HTTP_X_TWILIO_EMAIL_EVENT_WEBHOOK_SIGNATURE=self._sign(timestamp, body),
                HTTP_X_TWILIO_EMAIL_EVENT_WEBHOOK_TIMESTAMP=timestamp,
            )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"processed": 1})
        self.log.refresh_from_db()
        self.assertEqual(self.log.delivery_status, "Delivered")

    def test_sendgrid_without_key_is_401(self):
        with override_settings(SENDGRID_WEBHOOK_PUBLIC_KEY=""):
            response = self.client.post('/api/webhooks/sendgrid', data=b'[]', content_type='application/json')
        self.assertEqual(response.status_code, 401)

    def test_twilio_webhook(self):
        CommunicationLog.objects.create(
            communication_type="SMS", recipient_phone="+15550001111", external_message_id="SM42",
            sent_at=datetime(2030, 1, 1, tzinfo=dt_timezone.utc),
        )
        params = {"MessageSid": "SM42", "MessageStatus": "undelivered", "ErrorCode": "30003"}
        url = "http://testserver/api/webhooks/twilio"
        with override_settings(TWILIO_AUTH_TOKEN="token"):
            response = self.client.post(
                '/api/webhooks/twilio', data=params,
                HTTP_X_TWILIO_SIGNATURE=compute_twilio_signature("token", url, params),
            )
            bad = self.client.post('/api/webhooks/twilio', data=params, HTTP_X_TWILIO_SIGNATURE="nope")

        self.assertEqual(response.status_code, 200)
        self.assertIn(b"<Response></Response>", response.content)
        self.assertEqual(CommunicationLog.objects.get(external_message_id="SM42").delivery_status, "Failed")
        self.assertEqual(bad.status_code, 401)

    def test_health(self):
        self.assertEqual(self.client.get('/api/webhooks/health').json()['status'], 'healthy')
