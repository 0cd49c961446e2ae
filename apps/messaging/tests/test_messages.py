"""
Tests for order message threads, attachments and the staff inbox.
"""
import json
from datetime import datetime, timezone as dt_timezone
from unittest.mock import patch

from django.core.files.storage import default_storage
from django.core.files.uploadedfile import SimpleUploadedFile
from django.test import TestCase, Client, override_settings

from apps.communications.models import CommunicationLog
from apps.identity.models import User, UserRole
from apps.messaging import services
from apps.messaging.attachment_service import validate_attachments
from apps.messaging.models import Message, MessageAttachment, MessageAuditTrail, MessageEdit
from apps.organizations.models import Organization
from apps.orders.models import Order

IN_MEMORY_STORAGE = {
    "default": {"BACKEND": "django.core.files.storage.InMemoryStorage"},
    "staticfiles": {"BACKEND": "django.contrib.staticfiles.storage.StaticFilesStorage"},
}


def make_order(org, number):
    ship = datetime(2030, 5, 1, tzinfo=dt_timezone.utc)
    return Order.objects.create(
        order_number=number, organization=org, description="Uniforms",
        current_stage="Cutting", original_ship_date=ship, current_ship_date=ship,
    )


class AttachmentValidationTest(TestCase):

    def test_rules(self):
        files = [
            SimpleUploadedFile("empty.pdf", b"", content_type="application/pdf"),
            SimpleUploadedFile("script.exe", b"MZ", content_type="application/x-msdownload"),
            SimpleUploadedFile("big.png", b"x" * (10 * 1024 * 1024 + 1), content_type="image/png"),
            SimpleUploadedFile("ok.csv", b"a,b", content_type="text/csv"),
        ]
        errors = validate_attachments(files)
        self.assertEqual(errors["empty.pdf"], ["File is empty"])
        self.assertEqual(errors["script.exe"], ["File type not allowed"])
        self.assertEqual(errors["big.png"], ["File size exceeds 10MB limit"])
        self.assertNotIn("ok.csv", errors)

    def test_too_many_files(self):
        files = [SimpleUploadedFile(f"f{i}.txt", b"hi", content_type="text/plain") for i in range(6)]
        errors = validate_attachments(files)
        self.assertIn("_general", errors)


@override_settings(STORAGES=IN_MEMORY_STORAGE)
class MessageServiceTest(TestCase):

    def setUp(self):
        self.org = Organization.objects.create(name="Lincoln High", org_type="school")
        self.order = make_order(self.org, "CG-2030-000001")
        self.director = User.objects.create_user(
            email="director@lincoln.edu", password="Password123", name="Dana Director",
            role=UserRole.DIRECTOR, organization=self.org,
        )
        self.staff = User.objects.create_user(email="staff@colorgarb.com", password="Password123", role=UserRole.STAFF)

    def test_send_records_trail_attachment_and_communication(self):
        upload = SimpleUploadedFile("measurements.pdf", b"%PDF-1.4", content_type="application/pdf")
        message = services.send_message(
            self.order, self.director, "Here are our measurements", files=[upload],
            ip_address="10.0.0.1", user_agent="pytest",
        )

        self.assertEqual(message.sender_role, UserRole.DIRECTOR)
        self.assertEqual(message.sender_name, "Dana Director")
        self.assertEqual(message.recipient_role, "All")
        attachment = MessageAttachment.objects.get(message=message)
        self.assertEqual(attachment.original_file_name, "measurements.pdf")
        self.assertTrue(attachment.file_name.endswith(".pdf"))
        self.assertNotEqual(attachment.file_name, "measurements.pdf")
        self.assertEqual(MessageAuditTrail.objects.get(message=message).ip_address, "10.0.0.1")

        log = CommunicationLog.objects.get(order=self.order)
        self.assertEqual(log.communication_type, "Message")
        self.assertEqual(log.external_message_id, f"internal-{message.id}")

    def test_failed_send_removes_stored_files(self):
        upload = SimpleUploadedFile("measurements.pdf", b"%PDF-1.4", content_type="application/pdf")
        with patch("apps.messaging.services.store_attachment", wraps=services.store_attachment) as store, \
                patch.object(MessageAuditTrail.objects, "create", side_effect=RuntimeError("db down")):
            with self.assertRaises(RuntimeError):
                services.send_message(self.order, self.director, "Here are our measurements", files=[upload])

        stored_paths = store.call_args.args[3]
        self.assertEqual(len(stored_paths), 1)
        self.assertFalse(default_storage.exists(stored_paths[0]))
        self.assertFalse(Message.objects.exists())
        self.assertFalse(MessageAttachment.objects.exists())

    def test_empty_content_is_rejected(self):
        with self.assertRaises(services.MessageValidationError) as ctx:
            services.send_message(self.order, self.director, "   ")
        self.assertIn("content", ctx.exception.errors)

    def test_unread_count_excludes_own_messages(self):
        services.send_message(self.order, self.director, "From client")
        services.send_message(self.order, self.staff, "To client", recipient_role="Client")
        services.send_message(self.order, self.staff, "Internal", recipient_role="ColorGarbStaff")

        self.assertEqual(services.unread_count(self.order, self.director), 1)
        self.assertEqual(services.unread_count(self.order, self.staff), 1)

    def test_search_paging_and_term(self):
        for i in range(3):
            services.send_message(self.order, self.director, f"Question {i} about sizing")
        services.send_message(self.order, self.director, "Unrelated")

        result = services.search_order_messages(self.order, self.staff, page=1, page_size=2, search_term="sizing")
        self.assertEqual(result["total_count"], 3)
        self.assertTrue(result["has_next_page"])
        self.assertEqual(len(result["messages"]), 2)

    def test_only_sender_can_edit(self):
        message = services.send_message(self.order, self.director, "Original")
        with self.assertRaises(PermissionError):
            services.edit_message(message, self.staff, "Hijacked")

        services.edit_message(message, self.director, "Corrected", "typo")
        message.refresh_from_db()
        self.assertEqual(message.content, "Corrected")
        self.assertEqual(MessageEdit.objects.get().previous_content, "Original")

    def test_admin_unread_counts_client_messages(self):
        services.send_message(self.order, self.director, "Client note")
        services.send_message(self.order, self.staff, "Staff note")
        self.assertEqual(services.admin_unread_count(), 1)


@override_settings(STORAGES=IN_MEMORY_STORAGE)
class MessagesAPITest(TestCase):

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

    def test_send_and_list(self):
        self.client.force_login(self.director)
        response = self.client.post(
            f'/api/orders/{self.order_a.id}/messages',
            data={'content': 'When is the fitting?', 'message_type': 'Question'},
        )
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()['message_type'], 'Question')

        response = self.client.get(f'/api/orders/{self.order_a.id}/messages')
        data = response.json()
        self.assertEqual(data['total_count'], 1)
        self.assertEqual(data['unread_count'], 0)

    def test_other_organization_order_is_404(self):
        self.client.force_login(self.director)
        response = self.client.get(f'/api/orders/{self.order_b.id}/messages')
        self.assertEqual(response.status_code, 404)

    def test_invalid_attachment_is_400_with_errors(self):
        self.client.force_login(self.director)
        bad = SimpleUploadedFile("virus.exe", b"MZ", content_type="application/x-msdownload")
        response = self.client.post(
            f'/api/orders/{self.order_a.id}/messages',
            data={'content': 'See attached', 'files': [bad]},
        )
        self.assertEqual(response.status_code, 400)
        self.assertIn("virus.exe", response.json()['errors'])

    def test_bulk_mark_read(self):
        first = services.send_message(self.order_a, self.director, "One")
        second = services.send_message(self.order_a, self.director, "Two")

        self.client.force_login(self.staff)
        response = self.client.put(
            f'/api/orders/{self.order_a.id}/messages/mark-read',
            data=json.dumps({'message_ids': [str(first.id), str(second.id)]}),
            content_type='application/json',
        )
        self.assertEqual(response.json(), {'marked_as_read_count': 2, 'total_requested': 2})
        self.assertFalse(Message.objects.filter(is_read=False).exists())

    def test_admin_inbox_is_staff_only(self):
        services.send_message(self.order_a, self.director, "Hello from Lincoln")

        self.client.force_login(self.director)
        self.assertEqual(self.client.get('/api/admin/messages/').status_code, 403)

        self.client.force_login(self.staff)
        data = self.client.get('/api/admin/messages/?client_name=lincoln').json()
        self.assertEqual(data['total_count'], 1)
        self.assertEqual(data['messages'][0]['organization_name'], "Lincoln High")
        self.assertEqual(data['unread_count'], 1)

    def test_mark_single_message_read(self):
        message = services.send_message(self.order_a, self.director, "Fitting question")

        # Senders never mark their own messages
        self.client.force_login(self.director)
        response = self.client.put(f'/api/orders/{self.order_a.id}/messages/{message.id}/read')
        self.assertEqual(response.status_code, 204)
        message.refresh_from_db()
        self.assertFalse(message.is_read)

        self.client.force_login(self.staff)
        response = self.client.put(f'/api/orders/{self.order_a.id}/messages/{message.id}/read')
        self.assertEqual(response.status_code, 204)
        message.refresh_from_db()
        self.assertTrue(message.is_read)
        self.assertIsNotNone(message.read_at)

    def test_download_attachment(self):
        upload = SimpleUploadedFile("measurements.pdf", b"%PDF-1.4 sizes", content_type="application/pdf")
        message = services.send_message(self.order_a, self.director, "Sizes attached", files=[upload])
        attachment = MessageAttachment.objects.get(message=message)
        url = f'/api/orders/{self.order_a.id}/messages/{message.id}/attachments/{attachment.id}/download'

        self.client.force_login(self.director)
        response = self.client.get(url)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response['Content-Type'], "application/pdf")
        self.assertIn('filename="measurements.pdf"', response['Content-Disposition'])
        self.assertEqual(b"".join(response.streaming_content), b"%PDF-1.4 sizes")

        other = User.objects.create_user(
            email="director@riverside.org", password="Password123", role=UserRole.DIRECTOR, organization=self.org_b
        )
        self.client.force_login(other)
        self.assertEqual(self.client.get(url).status_code, 404)
