"""
Test suite for the core module
Tests: JWT login, current user, settings overrides, audit log and the error handler
"""
from django.core.cache import cache
from django.test import TestCase, override_settings
from rest_framework import status
from backend.core.cache_utils import make_cache_key
from backend.core.exceptions import MinimumWeightNotMet, InUse, portal_exception_handler
from backend.core.models import AuditLog, Setting
from backend.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from backend.core.utils import actor_name, create_audit_log, get_setting


class AuthTests(TestCase):
    """Test login and current-user endpoints"""

    def setUp(self):
        self.client = AuthenticatedAPIClient()
        self.distributor = TestDataFactory.create_distributor(code='DST001')

    def test_login_returns_tokens_and_role(self):
        response = self.client.post('/api/v1/auth/login/', {
            'username': 'dst001@test.com',
            'password': 'testpass123',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn('access', response.data)
        self.assertIn('refresh', response.data)
        self.assertEqual(response.data['role'], 'DISTRIBUTOR')

    def test_login_with_wrong_password(self):
        response = self.client.post('/api/v1/auth/login/', {
            'username': 'dst001@test.com',
            'password': 'wrong',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_me_includes_distributor_profile(self):
        self.client.authenticate_user(self.distributor.user)
        response = self.client.get('/api/v1/auth/me/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(response.data['is_admin'])
        self.assertEqual(response.data['distributor']['distributor_code'], 'DST001')

    def test_me_for_admin(self):
        self.client.authenticate_user(TestDataFactory.create_admin())
        response = self.client.get('/api/v1/auth/me/')
        self.assertTrue(response.data['is_admin'])
        self.assertNotIn('distributor', response.data)

    def test_unauthenticated_request_rejected(self):
        response = self.client.get('/api/v1/auth/me/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_distributor_cannot_list_users(self):
        self.client.authenticate_user(self.distributor.user)
        response = self.client.get('/api/v1/users/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)


class SettingTests(TestCase):
    """Test runtime setting resolution"""

    @override_settings(ORDER_LEAD_TIME_DAYS=12)
    def test_falls_back_to_django_setting(self):
        self.assertEqual(get_setting('order_lead_time_days', 5, cast=int), 12)

    def test_falls_back_to_default(self):
        self.assertEqual(get_setting('unconfigured_rule', 7, cast=int), 7)

    def test_stored_value_wins(self):
        Setting.objects.create(key='order_lead_time_days', value='9')
        self.assertEqual(get_setting('order_lead_time_days', 12, cast=int), 9)

    @override_settings(ORDER_LEAD_TIME_DAYS=12)
    def test_invalid_stored_value_ignored(self):
        Setting.objects.create(key='order_lead_time_days', value='soon')
        with self.assertLogs('backend.core.utils', level='WARNING'):
            self.assertEqual(get_setting('order_lead_time_days', 3, cast=int), 12)

    def test_admin_creates_setting_with_normalised_key(self):
        client = AuthenticatedAPIClient()
        client.authenticate_user(TestDataFactory.create_admin())
        response = client.post('/api/v1/settings/', {'key': ' Order_Lead_Time_Days ', 'value': '14'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['key'], 'order_lead_time_days')


class SettingCacheTests(TestCase):
    """Test dashboard cache invalidation on setting writes"""

    def setUp(self):
        cache.clear()
        self.key = make_cache_key('dashboard')
        cache.set(self.key, {'urgent_alerts': []}, 300)

    def test_setting_write_invalidates_dashboard(self):
        with self.captureOnCommitCallbacks(execute=True) as callbacks:
            Setting.objects.create(key='urgent_delivery_window_days', value='5')
        self.assertEqual(len(callbacks), 1)
        self.assertIsNone(cache.get(self.key))

    def test_setting_delete_invalidates_dashboard(self):
        setting = Setting.objects.create(key='urgent_delivery_window_days', value='5')
        cache.set(self.key, {'urgent_alerts': []}, 300)
        with self.captureOnCommitCallbacks(execute=True):
            setting.delete()
        self.assertIsNone(cache.get(self.key))


class AuditLogTests(TestCase):
    """Test audit log helpers"""

    def test_create_audit_log_records_user(self):
        admin = TestDataFactory.create_admin()
        log = create_audit_log(user=admin, action='create', model_name='Metal', object_id=5,
                               object_name='22K Gold', changes={'purity': 91.6})
        self.assertEqual(log.user, admin)
        self.assertEqual(log.object_id, '5')
        self.assertEqual(log.changes, {'purity': 91.6})

    def test_missing_fields_skip_entry(self):
        self.assertIsNone(create_audit_log(action='create', model_name=None, object_id=1))
        self.assertEqual(AuditLog.objects.count(), 0)

    def test_actor_name(self):
        self.assertEqual(actor_name(None), 'System')
        user = TestDataFactory.create_user(username='ops')
        self.assertEqual(actor_name(user), 'ops')

    def test_audit_log_list_filters_by_reference(self):
        admin = TestDataFactory.create_admin()
        create_audit_log(user=admin, action='order_split', model_name='Order', object_id=1,
                         object_reference='ORD-2026-0001')
        create_audit_log(user=admin, action='order_split', model_name='Order', object_id=2,
                         object_reference='ORD-2026-0002')
        client = AuthenticatedAPIClient()
        client.authenticate_user(admin)
        response = client.get('/api/v1/audit-logs/?reference=ORD-2026-0002')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 1)
        self.assertEqual(response.data[0]['object_id'], '2')


class ExceptionHandlerTests(TestCase):
    """Test rendering of portal errors"""

    def test_business_rule_rendered_with_context(self):
        response = portal_exception_handler(MinimumWeightNotMet('Gold', 50.0, 49.99), {})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error'], 'minimum_weight_not_met')
        self.assertEqual(response.data['context']['material'], 'Gold')
        self.assertIn('Gold', response.data['message'])

    def test_in_use_is_conflict(self):
        response = portal_exception_handler(InUse('Cannot delete metal.', count=3), {})
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['context'], {'count': 3})
