"""
Test suite for the parties module
Tests: Distributor onboarding, uniqueness, updates, deactivation and deletion
"""
from django.test import TestCase
from rest_framework import status
from backend.core.models import AuditLog, User
from backend.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from backend.parties.models import Distributor


class DistributorAPITests(TestCase):
    """Test distributor endpoints"""

    def setUp(self):
        self.admin = TestDataFactory.create_admin()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.admin)

    def _payload(self, **overrides):
        data = {
            'email': 'Shop@Example.com',
            'password': 'secret123',
            'company_name': 'Shree Jewels',
            'distributor_code': 'sj01',
            'contact_person': 'Asha Rao',
            'contact_no': '9876543210',
            'address': '12 Market Road',
            'region': 'West',
        }
        data.update(overrides)
        return data

    def test_create_distributor_with_login(self):
        response = self.client.post('/api/v1/distributors/', self._payload(), format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['distributor_code'], 'SJ01')
        self.assertEqual(response.data['email'], 'shop@example.com')

        user = User.objects.get(username='shop@example.com')
        self.assertEqual(user.role, User.ROLE_DISTRIBUTOR)
        self.assertTrue(user.check_password('secret123'))
        self.assertTrue(AuditLog.objects.filter(model_name='Distributor', action='create').exists())

    def test_new_distributor_can_log_in(self):
        self.client.post('/api/v1/distributors/', self._payload(), format='json')
        self.client.logout()
        response = self.client.post('/api/v1/auth/login/', {
            'username': 'shop@example.com', 'password': 'secret123',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)

    def test_duplicate_email_rejected(self):
        self.client.post('/api/v1/distributors/', self._payload(), format='json')
        response = self.client.post('/api/v1/distributors/', self._payload(distributor_code='SJ02'), format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('email', response.data)

    def test_duplicate_code_rejected(self):
        self.client.post('/api/v1/distributors/', self._payload(), format='json')
        response = self.client.post('/api/v1/distributors/', self._payload(email='other@example.com',
                                                                           distributor_code='SJ01'), format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('distributor_code', response.data)

    def test_short_contact_number_rejected(self):
        response = self.client.post('/api/v1/distributors/', self._payload(contact_no='12345'), format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(Distributor.objects.count(), 0)

    def test_list_filters_by_region(self):
        TestDataFactory.create_distributor(code='N01', region='North')
        TestDataFactory.create_distributor(code='S01', region='South')
        response = self.client.get('/api/v1/distributors/?region=south')
        self.assertEqual([row['distributor_code'] for row in response.data], ['S01'])

    def test_deactivate_distributor(self):
        distributor = TestDataFactory.create_distributor(code='N02')
        response = self.client.patch(f'/api/v1/distributors/{distributor.id}/',
                                     {'is_active': False, 'region': 'East'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(response.data['is_active'])
        self.assertEqual(response.data['region'], 'East')

    def test_code_is_read_only_on_update(self):
        distributor = TestDataFactory.create_distributor(code='N03')
        self.client.patch(f'/api/v1/distributors/{distributor.id}/', {'distributor_code': 'X99'}, format='json')
        distributor.refresh_from_db()
        self.assertEqual(distributor.distributor_code, 'N03')

    def test_delete_distributor_without_orders(self):
        distributor = TestDataFactory.create_distributor(code='N04')
        user_id = distributor.user_id
        response = self.client.delete(f'/api/v1/distributors/{distributor.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(User.objects.filter(pk=user_id).exists())

    def test_delete_distributor_with_orders_conflict(self):
        distributor = TestDataFactory.create_distributor(code='N05')
        TestDataFactory.create_order(distributor=distributor)
        response = self.client.delete(f'/api/v1/distributors/{distributor.id}/')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertTrue(Distributor.objects.filter(pk=distributor.id).exists())

    def test_distributor_cannot_manage_distributors(self):
        distributor = TestDataFactory.create_distributor(code='N06')
        self.client.authenticate_user(distributor.user)
        response = self.client.get('/api/v1/distributors/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
