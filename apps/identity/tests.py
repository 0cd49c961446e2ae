import json
from datetime import timedelta
from unittest.mock import patch

from django.core import mail
from django.test import TestCase, Client
from django.utils import timezone
from django.utils.dateparse import parse_datetime

from apps.governance.models import AuditLog
from apps.organizations.models import Organization
from .models import User, UserRole, LoginAttempt, PasswordResetToken
from .permissions import get_user_permissions, Permissions
from . import services


class RBACTest(TestCase):
    def test_director_permissions(self):
        user = User.objects.create_user(email="director@lincoln.edu", password="pw", role=UserRole.DIRECTOR)
        perms = get_user_permissions(user)
        self.assertIn(Permissions.ORDERS_CREATE, perms)
        self.assertNotIn(Permissions.ORDERS_MANAGE, perms)

    def test_finance_matches_director(self):
        director = User.objects.create_user(email="d@lincoln.edu", password="pw", role=UserRole.DIRECTOR)
        finance = User.objects.create_user(email="f@lincoln.edu", password="pw", role=UserRole.FINANCE)
        self.assertEqual(get_user_permissions(director), get_user_permissions(finance))

    def test_staff_permissions(self):
        user = User.objects.create_user(email="staff@colorgarb.com", password="pw", role=UserRole.STAFF)
        perms = get_user_permissions(user)
        self.assertIn(Permissions.ORDERS_MANAGE, perms)
        self.assertIn(Permissions.MESSAGES_ADMIN_INBOX, perms)
        self.assertNotIn(Permissions.ORDERS_CREATE, perms)

    def test_inactive_user_has_no_permissions(self):
        user = User.objects.create_user(email="gone@colorgarb.com", password="pw", role=UserRole.STAFF, is_active=False)
        self.assertEqual(get_user_permissions(user), [])


class LoginTest(TestCase):

    def setUp(self):
        self.client = Client()
        self.org = Organization.objects.create(name="Lincoln High", org_type="school")
        self.user = User.objects.create_user(
            email="director@lincoln.edu", password="Password123",
            name="Dana Director", role=UserRole.DIRECTOR, organization=self.org,
        )

    def _login(self, email, password):
        return self.client.post(
            '/api/auth/login',
            data=json.dumps({'email': email, 'password': password}),
            content_type='application/json',
        )

    def test_successful_login_returns_token_and_cookies(self):
        response = self._login("Director@Lincoln.edu", "Password123")
        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual(data['token_type'], "Bearer")
        self.assertEqual(data['expires_in'], 3600)
        self.assertEqual(data['user']['role'], "Director")
        self.assertIn('access_token', response.cookies)
        self.assertTrue(AuditLog.objects.filter(action="USER_LOGIN", target_id=self.user.id).exists())

    def test_missing_credentials(self):
        self.assertEqual(self._login("", "").status_code, 400)

    def test_unknown_email_and_wrong_password_look_the_same(self):
        unknown = self._login("nobody@lincoln.edu", "Password123")
        wrong = self._login("director@lincoln.edu", "nope")
        self.assertEqual(unknown.status_code, 401)
        self.assertEqual(wrong.status_code, 401)
        self.assertEqual(unknown.json(), wrong.json())
        self.assertEqual(LoginAttempt.objects.filter(is_successful=False).count(), 2)

    def test_lockout_after_five_failures(self):
        for _ in range(services.MAX_FAILED_ATTEMPTS):
            self._login("director@lincoln.edu", "wrong-password")

        # The fifth failure sends the lockout notice
        self.assertEqual(len(mail.outbox), 1)

        response = self._login("director@lincoln.edu", "Password123")
        self.assertEqual(response.status_code, 403)
        data = response.json()
        self.assertIn("15 minutes", data['message'])
        self.assertEqual(data['lockout_remaining_minutes'], 15)

        newest = LoginAttempt.objects.filter(details="Invalid password").order_by('-attempted_at').first()
        expected = newest.attempted_at + timedelta(minutes=services.LOCKOUT_DURATION_MINUTES)
        self.assertAlmostEqual(parse_datetime(data['locked_until']), expected, delta=timedelta(seconds=1))

    def test_old_failures_do_not_lock(self):
        for _ in range(services.MAX_FAILED_ATTEMPTS):
            services.record_login_attempt("director@lincoln.edu", False, "Invalid password")
        LoginAttempt.objects.update(attempted_at=timezone.now() - timedelta(minutes=20))

        self.assertFalse(services.is_account_locked("director@lincoln.edu"))
        self.assertEqual(self._login("director@lincoln.edu", "Password123").status_code, 200)

    def test_inactive_account(self):
        self.user.is_active = False
        self.user.save()
        self.assertEqual(self._login("director@lincoln.edu", "Password123").status_code, 403)

    def test_me_requires_auth(self):
        self.assertEqual(self.client.get('/api/auth/me').status_code, 401)
        self.client.force_login(self.user)
        response = self.client.get('/api/auth/me')
        self.assertEqual(response.json()['organization_name'], "Lincoln High")

    def test_refresh_issues_new_access_token(self):
        self.assertEqual(self.client.post('/api/auth/refresh').status_code, 401)

        self._login("director@lincoln.edu", "Password123")
        response = self.client.post('/api/auth/refresh')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['user']['email'], "director@lincoln.edu")
        self.assertEqual(response.cookies['access_token'].value, response.json()['access_token'])

    def test_refresh_rejects_access_token(self):
        login = self._login("director@lincoln.edu", "Password123")
        self.client.cookies['refresh_token'] = login.json()['access_token']
        self.assertEqual(self.client.post('/api/auth/refresh').status_code, 401)

    def test_logout_clears_cookies(self):
        self._login("director@lincoln.edu", "Password123")
        response = self.client.post('/api/auth/logout')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.cookies['access_token'].value, "")
        self.assertEqual(response.cookies['refresh_token'].value, "")
        self.assertEqual(self.client.post('/api/auth/refresh').status_code, 401)


class RegistrationTest(TestCase):

    def setUp(self):
        self.client = Client()

    def _register(self, **overrides):
        payload = {
            'name': "Sam Director",
            'email': "sam@roosevelt.edu",
            'password': "Password123",
            'organization_name': "Roosevelt High",
            'organization_type': "school",
        }
        payload.update(overrides)
        return self.client.post('/api/auth/register', data=json.dumps(payload), content_type='application/json')

    def test_register_creates_org_and_director(self):
        response = self._register()
        self.assertEqual(response.status_code, 201)
        user = User.objects.get(email="sam@roosevelt.edu")
        self.assertEqual(user.role, UserRole.DIRECTOR)
        self.assertEqual(user.organization.name, "Roosevelt High")

    def test_second_registration_joins_existing_org(self):
        self._register()
        self._register(email="pat@roosevelt.edu", organization_name="roosevelt high", requested_role="finance")
        self.assertEqual(Organization.objects.count(), 1)
        self.assertEqual(User.objects.get(email="pat@roosevelt.edu").role, UserRole.FINANCE)

    def test_staff_role_cannot_be_requested(self):
        self._register(requested_role="ColorGarbStaff")
        self.assertEqual(User.objects.get().role, UserRole.DIRECTOR)

    def test_validation_errors(self):
        response = self._register(email="not-an-email", password="short", organization_type="circus")
        self.assertEqual(response.status_code, 400)
        data = response.json()
        self.assertEqual(data['message'], "Validation failed")
        self.assertIsInstance(data['errors'], list)
        self.assertEqual(len(data['errors']), 3)
        self.assertIn("Email format is invalid", data['errors'])
        self.assertTrue(any("at least 8 characters" in e for e in data['errors']))
        self.assertTrue(any(e.startswith("Invalid organization type") for e in data['errors']))
        self.assertFalse(User.objects.exists())

    def test_duplicate_email(self):
        self._register()
        self.assertEqual(self._register().status_code, 409)


class PasswordResetTest(TestCase):

    def setUp(self):
        self.client = Client()
        self.user = User.objects.create_user(email="director@lincoln.edu", password="Password123", role=UserRole.DIRECTOR)

    def _post(self, path, payload):
        return self.client.post(path, data=json.dumps(payload), content_type='application/json')

    def test_unknown_email_gets_same_answer(self):
        known = self._post('/api/auth/forgot-password', {'email': "director@lincoln.edu"})
        unknown = self._post('/api/auth/forgot-password', {'email': "ghost@lincoln.edu"})
        self.assertEqual(known.json(), unknown.json())
        self.assertEqual(len(mail.outbox), 1)

    @patch("apps.identity.services.generate_secure_token", return_value="known-token")
    def test_reset_flow_is_single_use(self, _token):
        self._post('/api/auth/forgot-password', {'email': "director@lincoln.edu"})
        stored = PasswordResetToken.objects.get()
        self.assertNotEqual(stored.token_hash, "known-token")

        response = self._post('/api/auth/reset-password', {'token': "known-token", 'new_password': "NewPassword456"})
        self.assertEqual(response.status_code, 200)
        self.user.refresh_from_db()
        self.assertTrue(self.user.check_password("NewPassword456"))

        response = self._post('/api/auth/reset-password', {'token': "known-token", 'new_password': "Another789"})
        self.assertEqual(response.status_code, 401)

    @patch("apps.identity.services.generate_secure_token", return_value="stale-token")
    def test_expired_token(self, _token):
        services.request_password_reset("director@lincoln.edu")
        PasswordResetToken.objects.update(expires_at=timezone.now() - timedelta(minutes=1))
        with self.assertRaises(LookupError):
            services.reset_password("stale-token", "NewPassword456")

    def test_cleanup_removes_stale_rows(self):
        services.record_login_attempt("director@lincoln.edu", False)
        LoginAttempt.objects.update(attempted_at=timezone.now() - timedelta(hours=25))
        services.record_login_attempt("director@lincoln.edu", True)
        self.assertEqual(services.cleanup_login_attempts(), 1)
        self.assertEqual(LoginAttempt.objects.count(), 1)


class UserManagementAPITest(TestCase):

    def setUp(self):
        self.client = Client()
        self.org = Organization.objects.create(name="Lincoln High", org_type="school")
        self.other_org = Organization.objects.create(name="Jefferson Theater", org_type="theater")
        self.staff = User.objects.create_user(email="staff@colorgarb.com", password="Password123", role=UserRole.STAFF)
        self.director = User.objects.create_user(
            email="director@lincoln.edu", password="Password123", role=UserRole.DIRECTOR, organization=self.org
        )

    def test_change_role_is_audited(self):
        self.client.force_login(self.staff)
        response = self.client.patch(
            f'/api/users/{self.director.id}/role',
            data=json.dumps({'role': 'finance', 'reason': 'Moved to bookkeeping'}),
            content_type='application/json',
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['role'], "Finance")
        log = AuditLog.objects.get(action="CHANGE_USER_ROLE")
        self.assertEqual(log.context['previous_role'], "Director")

    def test_staff_cannot_change_own_role(self):
        self.client.force_login(self.staff)
        response = self.client.patch(
            f'/api/users/{self.staff.id}/role',
            data=json.dumps({'role': 'Director'}),
            content_type='application/json',
        )
        self.assertEqual(response.status_code, 400)

    def test_client_cannot_manage_users(self):
        self.client.force_login(self.director)
        response = self.client.patch(
            f'/api/users/{self.director.id}/status',
            data=json.dumps({'is_active': False}),
            content_type='application/json',
        )
        self.assertEqual(response.status_code, 403)

    def test_client_lists_only_own_org_users(self):
        self.client.force_login(self.director)
        self.assertEqual(self.client.get(f'/api/users/organization/{self.org.id}').status_code, 200)
        self.assertEqual(self.client.get(f'/api/users/organization/{self.other_org.id}').status_code, 403)

    def test_profile_update_rejects_taken_email(self):
        self.client.force_login(self.director)
        response = self.client.put(
            '/api/users/profile',
            data=json.dumps({'email': 'staff@colorgarb.com'}),
            content_type='application/json',
        )
        self.assertEqual(response.status_code, 400)
