"""
Test suite for the reports module
Tests: date presets, admin dashboard, report builder, report options and distributor dashboard
"""
from datetime import date, timedelta

from django.core.cache import cache
from django.test import SimpleTestCase, TestCase
from django.utils import timezone
from rest_framework import status
from backend.catalog.models import Metal
from backend.core.exceptions import PortalValidationError
from backend.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from backend.orders.models import Order
from backend.orders.state_machine import transition_item
from backend.reports import services


class DateRangeTests(SimpleTestCase):
    """Test dashboard date presets"""

    today = date(2026, 5, 20)  # a Wednesday

    def test_today(self):
        self.assertEqual(services.resolve_date_range('TODAY', today=self.today), (self.today, self.today))

    def test_this_week(self):
        self.assertEqual(services.resolve_date_range('THIS_WEEK', today=self.today),
                         (date(2026, 5, 18), date(2026, 5, 24)))

    def test_this_month(self):
        self.assertEqual(services.resolve_date_range('THIS_MONTH', today=self.today),
                         (date(2026, 5, 1), date(2026, 5, 31)))

    def test_last_three_months_clamps_day(self):
        self.assertEqual(services.resolve_date_range('LAST_3_MONTHS', today=date(2026, 5, 31)),
                         (date(2026, 2, 28), date(2026, 5, 31)))

    def test_this_year(self):
        self.assertEqual(services.resolve_date_range('this_year', today=self.today),
                         (date(2026, 1, 1), self.today))

    def test_all_is_unbounded(self):
        self.assertEqual(services.resolve_date_range('ALL', today=self.today), (None, None))

    def test_custom_bounds(self):
        self.assertEqual(
            services.resolve_date_range('CUSTOM', date(2026, 1, 5), date(2026, 2, 5), today=self.today),
            (date(2026, 1, 5), date(2026, 2, 5)),
        )

    def test_inverted_custom_bounds_rejected(self):
        with self.assertRaises(PortalValidationError):
            services.resolve_date_range('CUSTOM', date(2026, 3, 1), date(2026, 2, 1), today=self.today)

    def test_unknown_preset_rejected(self):
        with self.assertRaises(PortalValidationError):
            services.resolve_date_range('FOREVER', today=self.today)


class ReportsTestBase(TestCase):
    """Two distributors, gold and silver metals and a configured pipeline"""

    def setUp(self):
        cache.clear()
        TestDataFactory.create_gold_metals(min_order_weight=50)
        silver = TestDataFactory.create_material('Silver')
        TestDataFactory.create_metal('925 Silver', silver, 1.0, 0.0)
        TestDataFactory.create_default_stages()

        self.rings = TestDataFactory.create_category('Rings')
        self.ring = TestDataFactory.create_product(model_no='RG-1', base_weight=10, category=self.rings)
        self.chain = TestDataFactory.create_product(model_no='CH-1', base_weight=20)

        self.north = TestDataFactory.create_distributor(company_name='North Gold')
        self.south = TestDataFactory.create_distributor(company_name='South Silver')

        today = timezone.localdate()
        self.open_order = TestDataFactory.create_order(self.north, requested_delivery_date=today + timedelta(days=1))
        self.open_items = [
            TestDataFactory.create_order_item(self.open_order, self.ring, '22K Gold', quantity=2),
            TestDataFactory.create_order_item(self.open_order, self.chain, '18K Gold', quantity=1),
        ]
        self.done_order = TestDataFactory.create_order(self.south)
        self.done_item = TestDataFactory.create_order_item(self.done_order, self.chain, '925 Silver', quantity=3,
                                                           metal_color='White')
        transition_item(self.done_item.id, 'Dispatched')
        transition_item(self.open_items[0].id, 'Casting')
        cache.clear()

        self.admin = TestDataFactory.create_admin()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.admin)


class AdminDashboardTests(ReportsTestBase):
    """Test the admin dashboard payload"""

    def test_active_and_delivered_split(self):
        data = services.dashboard_stats.uncached()
        self.assertEqual(data['order_count'], 2)
        active = {row['key']: row for row in data['active_orders']['grand_total']}
        delivered = {row['key']: row for row in data['delivered_orders']['grand_total']}
        self.assertEqual(active['Gold']['gross_weight'], 37.0)
        self.assertEqual(delivered['Silver']['gross_weight'], 60.0)
        self.assertIsNone(delivered['Silver']['pure_weight'])
        self.assertNotIn('Silver', active)

    def test_stage_stats_list_every_stage(self):
        data = services.dashboard_stats.uncached()
        stats = {row['stage']: row for row in data['stage_stats']}
        self.assertEqual(stats['Casting']['count'], 2)
        self.assertEqual(stats['Dispatched']['count'], 3)
        self.assertEqual(stats['Polishing']['count'], 0)
        self.assertEqual(stats['PENDING']['count'], 1)
        self.assertFalse(stats['PENDING']['registered'])

    def test_top_products_by_pieces(self):
        data = services.dashboard_stats.uncached()
        self.assertEqual([row['model_no'] for row in data['top_products']], ['CH-1', 'RG-1'])
        self.assertEqual(data['top_products'][0]['count'], 4)

    def test_urgent_alerts_skip_delivered_orders(self):
        data = services.dashboard_stats.uncached()
        self.assertEqual({row['order_number'] for row in data['urgent_alerts']}, {self.open_order.order_number})
        self.assertEqual(len(data['urgent_alerts']), 2)

    def test_distributor_summary(self):
        data = services.dashboard_stats.uncached()
        north = next(row for row in data['distributor_summary'] if row['distributor'] == 'North Gold')
        self.assertEqual(north['order_count'], 1)
        self.assertEqual(north['metal_types'], {'18K Gold': 1, '22K Gold': 2})
        self.assertEqual(north['categories']['Rings'], 2)

    def test_date_range_excludes_old_orders(self):
        old = TestDataFactory.create_order(self.north, created_at=timezone.now() - timedelta(days=400))
        TestDataFactory.create_order_item(old, self.ring, '22K Gold')
        data = services.dashboard_stats.uncached(*services.resolve_date_range('THIS_YEAR'))
        self.assertEqual(data['order_count'], 2)

    def test_dashboard_endpoint(self):
        response = self.client.get('/api/v1/reports/dashboard/?range=ALL')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['order_count'], 2)

    def test_dashboard_endpoint_bad_date(self):
        response = self.client.get('/api/v1/reports/dashboard/?range=CUSTOM&date_from=20-01-2026')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_dashboard_requires_admin(self):
        self.client.authenticate_user(self.north.user)
        response = self.client.get('/api/v1/reports/dashboard/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)


class ReportDataTests(ReportsTestBase):
    """Test the report builder"""

    def test_distributor_report(self):
        item_filter = services.build_report_filter('DISTRIBUTOR', distributor_id=self.north.id)
        data = services.report_data.uncached(item_filter)
        self.assertEqual([order['order_number'] for order in data['orders']], [self.open_order.order_number])
        self.assertEqual(data['total']['count'], 3)
        self.assertEqual(data['grand_total'][0]['key'], 'Gold')
        self.assertEqual(data['grand_total'][0]['gross_weight'], 37.0)

    def test_advanced_report_by_colour(self):
        item_filter = services.build_report_filter('ADVANCED', metal_color='White', order_number='ignored')
        data = services.report_data.uncached(item_filter)
        self.assertEqual(len(data['orders']), 1)
        self.assertEqual(data['orders'][0]['items'][0]['metal'], '925 Silver')

    def test_date_report_needs_both_bounds(self):
        item_filter = services.build_report_filter('DATE', date_from=date(2000, 1, 1))
        self.assertTrue(item_filter.is_empty)

    def test_unknown_report_type(self):
        with self.assertRaises(PortalValidationError):
            services.build_report_filter('WEEKLY')

    def test_report_reflects_live_conversion_ratio(self):
        Metal.objects.filter(name='18K Gold').update(conversion_ratio=0.5)
        data = services.report_data.uncached(services.build_report_filter('ORDER', order_number=self.open_order.order_number))
        self.assertEqual(data['total']['gross_weight'], 30.0)

    def test_report_endpoint(self):
        response = self.client.get(f'/api/v1/reports/data/?type=ORDER&order_number={self.done_order.order_number}')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['orders'][0]['status'], Order.STATUS_COMPLETED)

    def test_report_endpoint_rejects_bad_type(self):
        response = self.client.get('/api/v1/reports/data/?type=WEEKLY')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error'], 'validation_error')

    def test_report_options(self):
        response = self.client.get('/api/v1/reports/options/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['metals'], ['18K Gold', '22K Gold', '925 Silver'])
        self.assertEqual(len(response.data['orders']), 2)
        self.assertEqual(response.data['metal_colors'], ['Yellow', 'White', 'Rose'])


class DistributorDashboardTests(ReportsTestBase):
    """Test the distributor's own dashboard"""

    def test_own_orders_only(self):
        data = services.distributor_dashboard.uncached(self.north.id)
        self.assertEqual(data['order_count'], 1)
        self.assertEqual(data['status_counts'], {Order.STATUS_PROCESSING: 1})
        self.assertEqual(data['total']['count'], 3)

    def test_progress(self):
        data = services.distributor_dashboard.uncached(self.south.id)
        self.assertEqual(data['orders'][0]['progress'], 100)
        self.assertEqual(data['overall_progress'], 100)

    def test_endpoint(self):
        self.client.authenticate_user(self.south.user)
        response = self.client.get('/api/v1/reports/distributor-dashboard/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['by_material'][0]['key'], 'Silver')

    def test_admin_has_no_distributor_dashboard(self):
        response = self.client.get('/api/v1/reports/distributor-dashboard/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
