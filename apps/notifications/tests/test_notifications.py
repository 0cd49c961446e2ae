"""
Tests for notification preferences and transactional email.
"""
import json
from datetime import datetime, timedelta, timezone as dt_timezone
from unittest.mock import patch

from django.core import mail
from django.test import TestCase, Client

from apps.communications.models import CommunicationLog
from apps.identity.models import User, UserRole
from apps.notifications import email_service, preference_service
from apps.notifications.models import EmailNotification, NotificationPreference
from apps.organizations.models import Organization
from apps.orders.dtos import OrderChange
from apps.orders.models import Order


class PreferenceServiceTest(TestCase):

    def setUp(self):
        self.user = User.objects.create_user(email="director@lincoln.edu", password="Password123", role=UserRole.DIRECTOR)

    def test_defaults(self):
        preference = preference_service.get_or_create_preferences(self.user)
        self.assertTrue(preference.email_enabled)
        self.assertFalse(preference.sms_enabled)
        self.assertEqual(preference.frequency, "Immediate")
        self.assertEqual(preference.milestones[0], {"type": "MeasurementsDue", "enabled": True, "notifyBefore": 24})
        self.assertEqual(len(preference.unsubscribe_token), 43)
        self.assertNotIn("=", preference.unsubscribe_token)

    def test_create_twice_fails(self):
        preference_service.create_preferences(self.user, {})
        with self.assertRaises(ValueError):
            preference_service.create_preferences(self.user, {})

    def test_unsubscribe(self):
        preference = preference_service.get_or_create_preferences(self.user)
        self.assertIsNotNone(preference_service.unsubscribe(preference.unsubscribe_token))
        preference.refresh_from_db()
        self.assertFalse(preference.email_enabled)
        self.assertIsNone(preference_service.unsubscribe("not-a-token"))

    def test_milestone_opt_out(self):
        milestones = [{"type": "Shipping", "enabled": False, "notifyBefore": 0}]
        preference_service.update_preferences(self.user, {"milestones": milestones})
        self.assertFalse(preference_service.wants_email(self.user, "Shipping"))
        self.assertTrue(preference_service.wants_email(self.user, "Delivery"))
        self.assertTrue(preference_service.wants_email(self.user))


class EmailServiceTest(TestCase):

    def setUp(self):
        self.org = Organization.objects.create(name="Lincoln High", org_type="school", contact_email="band@lincoln.edu")
        self.director = User.objects.create_user(
            email="director@lincoln.edu", password="Password123", role=UserRole.DIRECTOR, organization=self.org
        )
        self.finance = User.objects.create_user(
            email="finance@lincoln.edu", password="Password123", role=UserRole.FINANCE, organization=self.org
        )
        NotificationPreference.objects.create(user=self.finance, email_enabled=False)
        ship = datetime(2030, 5, 1, tzinfo=dt_timezone.utc)
        self.order = Order.objects.create(
            order_number="CG-2030-000001", organization=self.org, description="Band uniforms",
            current_stage="Sewing", original_ship_date=ship, current_ship_date=ship,
        )

    def _change(self, **overrides):
        data = dict(
            order_id=self.order.id,
            previous_stage="Cutting",
            new_stage="Sewing",
            previous_ship_date=self.order.current_ship_date,
            new_ship_date=self.order.current_ship_date,
            reason="",
            updated_by_id=None,
        )
        data.update(overrides)
        return OrderChange(**data)

    def test_password_reset_email(self):
        self.assertTrue(email_service.send_password_reset_email(self.director, "raw-token"))

        self.assertEqual(len(mail.outbox), 1)
        self.assertIn("raw-token", mail.outbox[0].body)
        self.assertIn("1 hour", mail.outbox[0].body)
        notification = EmailNotification.objects.get()
        self.assertEqual(notification.status, "Sent")
        self.assertEqual(notification.delivery_attempts, 1)
        log = CommunicationLog.objects.get()
        self.assertEqual(log.communication_type, "Email")
        self.assertTrue(log.external_message_id.startswith("internal-"))

    def test_stage_update_goes_to_contact_and_opted_in_users(self):
        sent = email_service.send_order_change_notifications(self._change())

        self.assertEqual(sent, 2)
        recipients = sorted(m.to[0] for m in mail.outbox)
        self.assertEqual(recipients, ["band@lincoln.edu", "director@lincoln.edu"])
        self.assertIn("Sewing", mail.outbox[0].subject)

    def test_ship_date_delay_wording(self):
        later = self.order.current_ship_date + timedelta(days=3)
        email_service.send_order_change_notifications(
            self._change(new_stage="Cutting", previous_stage="Cutting", new_ship_date=later, reason="Fabric backorder")
        )
        body = mail.outbox[0].body
        self.assertIn("delayed by 3 days", body)
        self.assertIn("Fabric backorder", body)

    def test_shift_wording(self):
        base = datetime(2030, 5, 10, tzinfo=dt_timezone.utc)
        self.assertEqual(email_service.describe_ship_date_shift(base, base - timedelta(days=1)), "moved earlier by 1 day")
        self.assertEqual(email_service.describe_ship_date_shift(base, base + timedelta(days=2)), "delayed by 2 days")

    def test_no_change_sends_nothing(self):
        change = self._change(previous_stage="Sewing")
        self.assertEqual(email_service.send_order_change_notifications(change), 0)
        self.assertEqual(len(mail.outbox), 0)

    @patch("apps.notifications.email_service.send_mail", side_effect=OSError("SMTP down"))
    def test_send_failure_is_recorded_not_raised(self, _send_mail):
        self.assertFalse(email_service.send_account_lockout_email(self.director, datetime(2030, 1, 1, tzinfo=dt_timezone.utc)))
        notification = EmailNotification.objects.get()
        self.assertEqual(notification.status, "Failed")
        self.assertIn("SMTP down", notification.error_message)
        self.assertEqual(CommunicationLog.objects.get().delivery_status, "Failed")


class NotificationsAPITest(TestCase):

    def setUp(self):
        self.client = Client()
        self.director = User.objects.create_user(email="director@lincoln.edu", password="Password123", role=UserRole.DIRECTOR)
        self.other = User.objects.create_user(email="other@lincoln.edu", password="Password123", role=UserRole.FINANCE)
        self.staff = User.objects.create_user(email="staff@colorgarb.com", password="Password123", role=UserRole.STAFF)

    def test_get_own_preferences_creates_defaults(self):
        self.client.force_login(self.director)
        response = self.client.get(f'/api/notifications/preferences/{self.director.id}')
        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertIn("Ship Date Change", data['available_milestones'])
        self.assertEqual(len(data['available_milestones']), 15)

    def test_cannot_read_someone_elses_preferences(self):
        self.client.force_login(self.director)
        response = self.client.get(f'/api/notifications/preferences/{self.other.id}')
        self.assertEqual(response.status_code, 403)

        self.client.force_login(self.staff)
        response = self.client.get(f'/api/notifications/preferences/{self.other.id}')
        self.assertEqual(response.status_code, 200)

    def test_update_and_invalid_frequency(self):
        self.client.force_login(self.director)
        url = f'/api/notifications/preferences/{self.director.id}'
        response = self.client.put(url, data=json.dumps({'frequency': 'Daily'}), content_type='application/json')
        self.assertEqual(response.json()['frequency'], 'Daily')

        response = self.client.put(url, data=json.dumps({'frequency': 'Hourly'}), content_type='application/json')
        self.assertEqual(response.status_code, 400)

    def test_email_history_page_validation(self):
        self.client.force_login(self.director)
        response = self.client.get(f'/api/notifications/email-history/{self.director.id}?page_size=500')
        self.assertEqual(response.status_code, 400)

    def test_public_unsubscribe(self):
        preference = preference_service.get_or_create_preferences(self.director)
        response = self.client.get(f'/api/notifications/unsubscribe/{preference.unsubscribe_token}')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(self.client.get('/api/notifications/unsubscribe/bogus').status_code, 404)
