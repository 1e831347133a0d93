"""
Test suite for the orders module
Tests: weight engine, aggregation, minimum order weight, delivery lead time,
stage registry, item transitions, derived status, progress, splitting and order APIs
"""
import random
from datetime import timedelta
from types import SimpleNamespace

from django.test import SimpleTestCase, TestCase
from django.utils import timezone
from rest_framework import status
from backend.catalog.registry import MetalRegistry, ResolvedMetal
from backend.core.exceptions import (
    DeliveryDateTooSoon, DuplicateName, InUse, ItemNotInOrder, MinimumWeightNotMet, NotFound,
    PortalValidationError, ReasonRequired,
)
from backend.core.models import AuditLog, Setting
from backend.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from backend.orders import stages as stage_service
from backend.orders.models import Order, OrderItem, OrderStageAudit, StageDefinition
from backend.orders.policy import (
    CartLine, earliest_delivery_date, lead_time_days, validate_delivery_date, validate_minimum_weight,
)
from backend.orders.services import order_items_queryset, submit_order
from backend.orders.stages import Stage, StageRegistry
from backend.orders.state_machine import (
    derive_order_status, order_progress, recompute_order_status, split_order, transition_item,
)
from backend.orders.utils import generate_order_number
from backend.orders.weights import GroupBy, ItemFilter, aggregate, compute_item_weight, grand_total


def _registry(min_gold=50.0):
    return MetalRegistry([
        ResolvedMetal('22K Gold', 1.0, 91.6, 'Gold', 1, min_gold),
        ResolvedMetal('18K Gold', 0.85, 75.0, 'Gold', 1, min_gold),
        ResolvedMetal('925 Silver', 1.0, 0.0, 'Silver', 2, 0.0),
    ])


def _item(metal_type, quantity, base_weight, category='Rings', stage='PENDING', order_number='ORD-1',
          distributor='Shree Jewels', model_no=None):
    product = SimpleNamespace(
        base_weight=base_weight,
        model_no=model_no or f'MDL-{base_weight}',
        category=SimpleNamespace(name=category),
    )
    order = SimpleNamespace(order_number=order_number, distributor=SimpleNamespace(company_name=distributor))
    return SimpleNamespace(metal_type=metal_type, quantity=quantity, product=product, order=order, stage=stage)


class WeightEngineTests(SimpleTestCase):
    """Test per-item weights and the aggregation fold"""

    def setUp(self):
        self.registry = _registry()

    def test_gross_weight_scales_with_quantity(self):
        product = SimpleNamespace(base_weight=12.5)
        for quantity in (1, 5, 100):
            line = CartLine(product_id=1, metal_type='18K Gold', quantity=quantity)
            weight = compute_item_weight(line, product, self.registry)
            self.assertEqual(weight.gross, 12.5 * 0.85 * quantity)

    def test_pure_weight_from_purity(self):
        weight = compute_item_weight(CartLine(1, '22K Gold', 2), SimpleNamespace(base_weight=10), self.registry)
        self.assertEqual(weight.gross, 20.0)
        self.assertAlmostEqual(weight.pure, 18.32)
        self.assertEqual(weight.as_dict()['pure_weight'], 18.32)

    def test_pure_weight_not_applicable_without_purity(self):
        weight = compute_item_weight(CartLine(1, '925 Silver', 1), SimpleNamespace(base_weight=10), self.registry)
        self.assertEqual(weight.pure, 0.0)
        self.assertIsNone(weight.as_dict()['pure_weight'])

    def test_unknown_metal_falls_back_to_ratio_one(self):
        weight = compute_item_weight(CartLine(1, 'Rhodium', 3), SimpleNamespace(base_weight=2.5), self.registry)
        self.assertEqual(weight.gross, 7.5)
        self.assertEqual(weight.metal.purity, 0.0)
        self.assertTrue(weight.as_dict()['unknown_metal'])

    def test_aggregate_is_order_independent(self):
        items = [
            _item('22K Gold', 3, 10.1), _item('18K Gold', 7, 3.3), _item('925 Silver', 2, 20.7),
            _item('22K Gold', 1, 0.1), _item('18K Gold', 11, 0.7), _item('Rhodium', 4, 1.9),
        ]
        expected = aggregate(items, GroupBy.MATERIAL, self.registry)
        shuffler = random.Random(7)
        for _ in range(5):
            shuffled = items[:]
            shuffler.shuffle(shuffled)
            self.assertEqual(aggregate(shuffled, GroupBy.MATERIAL, self.registry), expected)
        self.assertEqual(list(expected), ['Gold', 'Silver', 'Unknown'])

    def test_material_and_metal_type_totals_agree(self):
        items = [_item('22K Gold', 3, 10.1), _item('18K Gold', 7, 3.3), _item('925 Silver', 2, 20.7),
                 _item('Rhodium', 1, 4.4)]
        by_material = aggregate(items, GroupBy.MATERIAL, self.registry)
        by_metal = aggregate(items, 'metal_type', self.registry)
        total = grand_total(items, self.registry)
        self.assertAlmostEqual(sum(t.gross for t in by_material.values()), total.gross, places=9)
        self.assertAlmostEqual(sum(t.gross for t in by_metal.values()), total.gross, places=9)
        self.assertEqual(total.count, 13)
        self.assertEqual(total.lines, 4)
        self.assertTrue(total.unknown_metal)

    def test_group_totals_count_pieces(self):
        items = [_item('22K Gold', 3, 10, category='Rings'), _item('22K Gold', 2, 5, category='Pendants'),
                 _item('18K Gold', 1, 10, category='Rings')]
        groups = aggregate(items, GroupBy.CATEGORY, self.registry)
        self.assertEqual(groups['Rings'].count, 4)
        self.assertEqual(groups['Rings'].gross, 38.5)
        self.assertEqual(groups['Pendants'].as_dict()['gross_weight'], 10.0)

    def test_silver_only_group_has_no_pure_weight(self):
        groups = aggregate([_item('925 Silver', 1, 5)], GroupBy.MATERIAL, self.registry)
        self.assertIsNone(groups['Silver'].as_dict()['pure_weight'])

    def test_unknown_group_key_rejected(self):
        with self.assertRaises(ValueError):
            aggregate([], 'colour', self.registry)


class MinimumWeightTests(SimpleTestCase):
    """Test the per-material minimum order weight"""

    def setUp(self):
        self.registry = _registry(min_gold=50.0)

    def test_just_below_minimum_rejected(self):
        products = {1: SimpleNamespace(base_weight=49.99)}
        with self.assertRaises(MinimumWeightNotMet) as ctx:
            validate_minimum_weight([CartLine(1, '22K Gold')], products, self.registry)
        self.assertEqual(ctx.exception.material, 'Gold')
        self.assertEqual(ctx.exception.required, 50.0)

    def test_exact_minimum_accepted(self):
        products = {1: SimpleNamespace(base_weight=50.00)}
        totals = validate_minimum_weight([CartLine(1, '22K Gold')], products, self.registry)
        self.assertEqual(totals, {'Gold': 50.0})

    def test_minimum_accumulates_across_metals_of_material(self):
        products = {1: SimpleNamespace(base_weight=10.0), 2: SimpleNamespace(base_weight=20.0)}
        lines = [CartLine(1, '22K Gold', 3), CartLine(2, '18K Gold', 2)]
        totals = validate_minimum_weight(lines, products, self.registry)
        self.assertAlmostEqual(totals['Gold'], 64.0)

    def test_material_without_minimum_always_accepted(self):
        products = {1: SimpleNamespace(base_weight=0.5)}
        totals = validate_minimum_weight([CartLine(1, '925 Silver')], products, self.registry)
        self.assertEqual(totals, {'Silver': 0.5})


class DeliveryDateTests(TestCase):
    """Test the delivery lead time"""

    def setUp(self):
        self.today = timezone.localdate()

    def test_eleven_days_rejected(self):
        with self.assertRaises(DeliveryDateTooSoon):
            validate_delivery_date(self.today + timedelta(days=11), today=self.today, lead_days=12)

    def test_twelve_days_accepted(self):
        requested = self.today + timedelta(days=12)
        self.assertEqual(validate_delivery_date(requested, today=self.today, lead_days=12), requested)

    def test_no_date_allowed(self):
        self.assertIsNone(validate_delivery_date(None))

    def test_lead_time_setting_override(self):
        Setting.objects.create(key='order_lead_time_days', value='5')
        self.assertEqual(lead_time_days(), 5)
        self.assertEqual(earliest_delivery_date(self.today), self.today + timedelta(days=5))
        validate_delivery_date(self.today + timedelta(days=5), today=self.today)


class StageRegistryTests(SimpleTestCase):
    """Test stage resolution, reasons, derived status and progress"""

    def setUp(self):
        self.registry = StageRegistry([
            Stage('Received', StageDefinition.TYPE_PENDING, 1, definition_id=1),
            Stage('Casting', StageDefinition.TYPE_STANDARD, 2, definition_id=2),
            Stage('On Hold', StageDefinition.TYPE_ON_HOLD, 3, True, ('Awaiting payment', 'Other'), definition_id=3),
            Stage('Setting', StageDefinition.TYPE_STANDARD, 4, definition_id=4),
            Stage('Dispatched', StageDefinition.TYPE_COMPLETED, 5, definition_id=5),
            Stage('Cancelled', StageDefinition.TYPE_CANCELLED, 6, definition_id=6),
        ])

    def test_default_pending_is_unregistered(self):
        stage = self.registry.resolve('PENDING')
        self.assertFalse(stage.is_registered)
        self.assertEqual(stage.type, StageDefinition.TYPE_PENDING)
        self.assertEqual(stage.sequence, 0)
        self.assertEqual(self.registry.resolve(None).name, 'PENDING')

    def test_unknown_name_has_no_type(self):
        self.assertIsNone(self.registry.type_of('Engraving'))

    def test_reason_vocabulary(self):
        hold = self.registry.resolve('On Hold')
        self.assertFalse(hold.accepts_reason(''))
        self.assertFalse(hold.accepts_reason('   '))
        self.assertFalse(hold.accepts_reason('Because'))
        self.assertTrue(hold.accepts_reason('Awaiting payment'))
        self.assertTrue(hold.accepts_reason('Other'))
        self.assertTrue(hold.accepts_reason('Other: courier delay'))
        self.assertTrue(self.registry.resolve('Casting').accepts_reason(None))

    def test_all_completed(self):
        names = ['Dispatched'] * 3
        self.assertEqual(derive_order_status(names, self.registry), Order.STATUS_COMPLETED)

    def test_completed_with_pending_is_processing(self):
        names = ['Dispatched', 'Dispatched', 'Received']
        self.assertEqual(derive_order_status(names, self.registry), Order.STATUS_PROCESSING)

    def test_all_cancelled(self):
        self.assertEqual(derive_order_status(['Cancelled', 'Cancelled'], self.registry), Order.STATUS_CANCELLED)

    def test_registered_and_default_pending(self):
        self.assertEqual(derive_order_status(['Received', 'PENDING'], self.registry), Order.STATUS_PENDING)

    def test_completed_and_cancelled_mix_is_processing(self):
        self.assertEqual(derive_order_status(['Dispatched', 'Cancelled'], self.registry), Order.STATUS_PROCESSING)

    def test_empty_order_is_pending(self):
        self.assertEqual(derive_order_status([], self.registry), Order.STATUS_PENDING)

    def test_progress_percentage(self):
        registry = StageRegistry([Stage(f'S{n}', StageDefinition.TYPE_STANDARD, n, definition_id=n)
                                  for n in range(1, 6)])
        self.assertEqual(order_progress(['S2', 'S4'], registry), 60)
        self.assertEqual(order_progress([], registry), 0)
        self.assertEqual(order_progress(['PENDING', 'S5'], registry), 50)

    def test_progress_without_stages(self):
        self.assertEqual(order_progress(['PENDING'], StageRegistry()), 0)


class StageServiceTests(TestCase):
    """Test stage definition maintenance"""

    def setUp(self):
        self.stages = TestDataFactory.create_default_stages()

    def test_create_appends_to_pipeline(self):
        stage = stage_service.create_stage('Stone Setting', StageDefinition.TYPE_STANDARD)
        self.assertEqual(stage.sequence, len(self.stages) + 1)

    def test_duplicate_stage_name_rejected(self):
        with self.assertRaises(DuplicateName):
            stage_service.create_stage('casting', StageDefinition.TYPE_STANDARD)

    def test_invalid_type_rejected(self):
        with self.assertRaises(PortalValidationError):
            stage_service.create_stage('Plating', 'DONE')

    def test_reasons_dropped_when_not_required(self):
        stage = stage_service.create_stage('Plating', StageDefinition.TYPE_STANDARD, False, 'A, B')
        self.assertEqual(stage.reasons, '')

    def test_rename_moves_items(self):
        order = TestDataFactory.create_order()
        item = TestDataFactory.create_order_item(order, stage='Casting')
        casting = self.stages[1]
        stage_service.update_stage(casting.id, 'Wax Casting', StageDefinition.TYPE_STANDARD)
        item.refresh_from_db()
        self.assertEqual(item.stage, 'Wax Casting')

    def test_type_change_rederives_order_status(self):
        order = TestDataFactory.create_order()
        items = [TestDataFactory.create_order_item(order) for _ in range(2)]
        for item in items:
            transition_item(item.id, 'Casting')
        order.refresh_from_db()
        self.assertEqual(order.status, Order.STATUS_PROCESSING)

        stage_service.update_stage(self.stages[1].id, 'Casting', StageDefinition.TYPE_COMPLETED)
        order.refresh_from_db()
        self.assertEqual(order.status, Order.STATUS_COMPLETED)
        self.assertEqual(order.history.last().stage, Order.STATUS_COMPLETED)

    def test_rename_keeps_order_status_in_sync(self):
        order = TestDataFactory.create_order()
        item = TestDataFactory.create_order_item(order)
        transition_item(item.id, 'Casting')
        stage_service.update_stage(self.stages[1].id, 'Wax Casting', StageDefinition.TYPE_COMPLETED)
        order.refresh_from_db()
        self.assertEqual(order.status, Order.STATUS_COMPLETED)

    def test_delete_stage_in_use_rejected(self):
        TestDataFactory.create_order_item(TestDataFactory.create_order(), stage='Polishing')
        with self.assertRaises(InUse):
            stage_service.delete_stage(self.stages[2].id)

    def test_delete_unused_stage(self):
        stage_service.delete_stage(self.stages[2].id)
        self.assertFalse(StageDefinition.objects.filter(name='Polishing').exists())

    def test_reorder_rewrites_sequences(self):
        ids = [stage.id for stage in reversed(self.stages)]
        result = stage_service.reorder_stages(ids)
        self.assertEqual([s.id for s in result], ids)
        self.assertEqual([s.sequence for s in result], list(range(1, len(ids) + 1)))
        self.assertTrue(AuditLog.objects.filter(action='stage_reorder').exists())

    def test_reorder_requires_every_stage(self):
        with self.assertRaises(PortalValidationError):
            stage_service.reorder_stages([stage.id for stage in self.stages[:-1]])

    def test_reorder_rejects_repeats(self):
        ids = [stage.id for stage in self.stages]
        with self.assertRaises(PortalValidationError):
            stage_service.reorder_stages(ids + ids[:1])


class TransitionTests(TestCase):
    """Test item transitions and derived order status"""

    def setUp(self):
        TestDataFactory.create_default_stages()
        self.order = TestDataFactory.create_order()
        self.items = [TestDataFactory.create_order_item(self.order) for _ in range(3)]

    def test_partial_completion_is_processing(self):
        transition_item(self.items[0].id, 'Dispatched')
        order, derived = transition_item(self.items[1].id, 'Dispatched')
        self.assertEqual(derived, Order.STATUS_PROCESSING)
        order.refresh_from_db()
        self.assertEqual(order.status, Order.STATUS_PROCESSING)

    def test_all_items_completed(self):
        for item in self.items:
            order, derived = transition_item(item.id, 'Dispatched')
        self.assertEqual(derived, Order.STATUS_COMPLETED)
        self.assertEqual(Order.objects.get(pk=self.order.id).status, Order.STATUS_COMPLETED)

    def test_status_change_recorded_in_history(self):
        transition_item(self.items[0].id, 'Casting')
        transition_item(self.items[1].id, 'Casting')
        history = list(OrderStageAudit.objects.filter(order=self.order))
        self.assertEqual(len(history), 1)
        self.assertEqual(history[0].stage, Order.STATUS_PROCESSING)
        self.assertEqual(history[0].reason, 'Auto-updated: Item(s) moved to Casting')

    def test_reason_required(self):
        with self.assertRaises(ReasonRequired):
            transition_item(self.items[0].id, 'On Hold', '')
        self.items[0].refresh_from_db()
        self.assertEqual(self.items[0].stage, 'PENDING')

    def test_reason_from_vocabulary_accepted(self):
        transition_item(self.items[0].id, 'On Hold', 'Awaiting payment')
        self.items[0].refresh_from_db()
        self.assertEqual(self.items[0].stage, 'On Hold')
        self.assertEqual(self.items[0].stage_reason, 'Awaiting payment')

    def test_reason_outside_vocabulary_rejected(self):
        with self.assertRaises(ReasonRequired):
            transition_item(self.items[0].id, 'Cancelled', 'Changed my mind')

    def test_unknown_stage_not_found(self):
        with self.assertRaises(NotFound):
            transition_item(self.items[0].id, 'Engraving')
        self.items[0].refresh_from_db()
        self.assertEqual(self.items[0].stage, 'PENDING')

    def test_reason_dropped_when_stage_does_not_require_one(self):
        transition_item(self.items[0].id, 'Casting', 'Rush job')
        self.items[0].refresh_from_db()
        self.assertEqual(self.items[0].stage, 'Casting')
        self.assertIsNone(self.items[0].stage_reason)

    def test_bare_stage_type_accepted(self):
        transition_item(self.items[0].id, 'Casting')
        order, derived = transition_item(self.items[0].id, 'PENDING')
        self.assertEqual(derived, Order.STATUS_PENDING)

    def test_transition_audited(self):
        admin = TestDataFactory.create_admin()
        transition_item(self.items[0].id, 'Casting', actor=admin)
        log = AuditLog.objects.get(action='item_transition')
        self.assertEqual(log.user, admin)
        self.assertEqual(log.object_reference, self.order.order_number)
        self.assertEqual(OrderStageAudit.objects.get(order=self.order).changed_by, admin.username)

    def test_recompute_repairs_drifted_status(self):
        OrderItem.objects.filter(order=self.order).update(stage='Dispatched')
        order, derived = recompute_order_status(self.order.id)
        self.assertEqual(derived, Order.STATUS_COMPLETED)
        self.assertEqual(Order.objects.get(pk=self.order.id).status, Order.STATUS_COMPLETED)
        self.assertTrue(AuditLog.objects.filter(action='order_status_repair').exists())


class SplitOrderTests(TestCase):
    """Test moving items into a new order"""

    def setUp(self):
        TestDataFactory.create_default_stages()
        self.order = TestDataFactory.create_order(requested_delivery_date=timezone.localdate() + timedelta(days=20))
        self.items = [TestDataFactory.create_order_item(self.order) for _ in range(5)]

    def test_split_two_of_five(self):
        moved_ids = [self.items[0].id, self.items[1].id]
        new_order = split_order(self.order.id, moved_ids)

        self.assertEqual(self.order.items.count(), 3)
        self.assertEqual(sorted(new_order.items.values_list('id', flat=True)), sorted(moved_ids))
        self.assertIn(self.order.order_number, new_order.instruction_note)
        self.assertEqual(new_order.distributor_id, self.order.distributor_id)
        self.assertEqual(new_order.requested_delivery_date, self.order.requested_delivery_date)
        self.assertEqual(new_order.status, Order.STATUS_PENDING)
        self.assertEqual(new_order.history.count(), 1)

    def test_split_rederives_both_statuses(self):
        transition_item(self.items[0].id, 'Dispatched')
        transition_item(self.items[1].id, 'Dispatched')
        new_order = split_order(self.order.id, [self.items[0].id, self.items[1].id])
        new_order.refresh_from_db()
        self.order.refresh_from_db()
        self.assertEqual(new_order.status, Order.STATUS_COMPLETED)
        self.assertEqual(self.order.status, Order.STATUS_PENDING)

    def test_foreign_item_rejected(self):
        other = TestDataFactory.create_order_item(TestDataFactory.create_order())
        with self.assertRaises(ItemNotInOrder):
            split_order(self.order.id, [self.items[0].id, other.id])
        self.assertEqual(self.order.items.count(), 5)

    def test_empty_selection_rejected(self):
        with self.assertRaises(PortalValidationError):
            split_order(self.order.id, [])

    def test_moving_every_item_rejected(self):
        with self.assertRaises(PortalValidationError):
            split_order(self.order.id, [item.id for item in self.items])


class ItemFilterTests(TestCase):
    """Test that the database and in-memory forms of the item filter agree"""

    def setUp(self):
        self.north = TestDataFactory.create_distributor(company_name='North Gold')
        self.south = TestDataFactory.create_distributor(company_name='South Gold')
        first = TestDataFactory.create_order(distributor=self.north)
        second = TestDataFactory.create_order(distributor=self.south)
        TestDataFactory.create_order_item(first, metal_type='22K Gold', metal_color='Rose')
        TestDataFactory.create_order_item(first, metal_type='18K Gold')
        TestDataFactory.create_order_item(second, metal_type='22K Gold')

    def _check(self, item_filter):
        queryset = order_items_queryset()
        in_db = sorted(item.id for item in item_filter.apply(queryset))
        in_memory = sorted(item.id for item in queryset if item_filter.matches(item))
        self.assertEqual(in_db, in_memory)
        return in_db

    def test_filters_agree(self):
        self.assertEqual(len(self._check(ItemFilter(distributor_id=self.north.id))), 2)
        self.assertEqual(len(self._check(ItemFilter(metal_type='22K Gold'))), 2)
        self.assertEqual(len(self._check(ItemFilter(metal_color='Rose'))), 1)
        self.assertEqual(len(self._check(ItemFilter(date_from=timezone.localdate()))), 3)
        self.assertEqual(len(self._check(ItemFilter(date_to=timezone.localdate() - timedelta(days=1)))), 0)
        self.assertTrue(ItemFilter().is_empty)


class OrderNumberTests(TestCase):
    """Test order number generation"""

    def test_sequential_numbers(self):
        year = timezone.now().year
        first = TestDataFactory.create_order()
        second = TestDataFactory.create_order()
        self.assertEqual(first.order_number, f'ORD-{year}-0001')
        self.assertEqual(second.order_number, f'ORD-{year}-0002')

    def test_skips_taken_numbers(self):
        year = timezone.now().year
        order = TestDataFactory.create_order()
        Order.objects.filter(pk=order.pk).update(order_number=f'ORD-{year}-0002')
        self.assertEqual(generate_order_number(), f'ORD-{year}-0003')


class SubmitOrderTests(TestCase):
    """Test cart submission"""

    def setUp(self):
        self.gold, self.gold_22k, self.gold_18k = TestDataFactory.create_gold_metals(min_order_weight=50)
        self.distributor = TestDataFactory.create_distributor()
        self.product = TestDataFactory.create_product(base_weight=10)

    def test_submit_creates_pending_order(self):
        order = submit_order(self.distributor, [CartLine(self.product.id, '22K Gold', 5)], instruction_note=' rush ')
        self.assertEqual(order.status, Order.STATUS_PENDING)
        self.assertEqual(order.instruction_note, 'rush')
        self.assertEqual(order.items.get().stage, OrderItem.DEFAULT_STAGE)
        self.assertEqual(order.history.get().reason, 'Initial Submission')
        self.assertTrue(AuditLog.objects.filter(action='order_submit', object_reference=order.order_number).exists())

    def test_below_minimum_creates_nothing(self):
        with self.assertRaises(MinimumWeightNotMet):
            submit_order(self.distributor, [CartLine(self.product.id, '18K Gold', 5)])
        self.assertEqual(Order.objects.count(), 0)

    def test_empty_cart_rejected(self):
        with self.assertRaises(PortalValidationError):
            submit_order(self.distributor, [])

    def test_hidden_metal_rejected(self):
        self.gold_22k.is_visible = False
        self.gold_22k.save()
        with self.assertRaises(PortalValidationError):
            submit_order(self.distributor, [CartLine(self.product.id, '22K Gold', 5)])

    def test_restricted_product_rejected(self):
        self.product.visibility = 'RESTRICTED'
        self.product.save()
        with self.assertRaises(PortalValidationError):
            submit_order(self.distributor, [CartLine(self.product.id, '22K Gold', 5)])

    def test_delivery_date_checked(self):
        too_soon = timezone.localdate() + timedelta(days=11)
        with self.assertRaises(DeliveryDateTooSoon):
            submit_order(self.distributor, [CartLine(self.product.id, '22K Gold', 5)],
                         requested_delivery_date=too_soon)

    def test_dict_lines_accepted(self):
        order = submit_order(self.distributor, [
            {'product_id': self.product.id, 'metal_type': '22K Gold', 'quantity': '6', 'metal_color': 'White'},
        ])
        self.assertEqual(order.items.get().quantity, 6)

    def test_invalid_colour_rejected(self):
        with self.assertRaises(PortalValidationError):
            submit_order(self.distributor, [CartLine(self.product.id, '22K Gold', 5, metal_color='Green')])


class OrderAPITests(TestCase):
    """Test order, stage and portal endpoints"""

    def setUp(self):
        TestDataFactory.create_gold_metals(min_order_weight=50)
        self.stages = TestDataFactory.create_default_stages()
        self.admin = TestDataFactory.create_admin()
        self.distributor = TestDataFactory.create_distributor(company_name='Shree Jewels')
        self.product = TestDataFactory.create_product(base_weight=10)
        self.client = AuthenticatedAPIClient()

    def _submit(self, quantity=5, days=12, metal='22K Gold'):
        self.client.authenticate_user(self.distributor.user)
        return self.client.post('/api/v1/orders/submit/', {
            'items': [{'product_id': self.product.id, 'metal_type': metal, 'quantity': quantity}],
            'requested_delivery_date': (timezone.localdate() + timedelta(days=days)).isoformat(),
        }, format='json')

    def test_submit_order(self):
        response = self._submit()
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['status'], Order.STATUS_PENDING)
        self.assertEqual(response.data['total']['gross_weight'], 50.0)
        self.assertEqual(response.data['summary'][0]['key'], 'Gold')
        self.assertEqual(response.data['items'][0]['pure_weight'], 45.8)

    def test_submit_below_minimum(self):
        response = self._submit(quantity=4)
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error'], 'minimum_weight_not_met')
        self.assertEqual(response.data['context']['material'], 'Gold')

    def test_submit_delivery_too_soon(self):
        response = self._submit(days=11)
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error'], 'delivery_date_too_soon')

    def test_admin_cannot_submit(self):
        self.client.authenticate_user(self.admin)
        response = self.client.post('/api/v1/orders/submit/', {'items': []}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_transition_endpoint(self):
        order_id = self._submit().data['id']
        item_id = Order.objects.get(pk=order_id).items.get().id
        self.client.authenticate_user(self.admin)
        response = self.client.post(f'/api/v1/order-items/{item_id}/transition/', {'stage': 'Dispatched'},
                                    format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['derived_status'], Order.STATUS_COMPLETED)

    def test_transition_reason_required_response(self):
        order_id = self._submit().data['id']
        item_id = Order.objects.get(pk=order_id).items.get().id
        self.client.authenticate_user(self.admin)
        response = self.client.post(f'/api/v1/order-items/{item_id}/transition/', {'stage': 'On Hold'},
                                    format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error'], 'reason_required')
        self.assertIn('Awaiting payment', response.data['context']['reasons'])

    def test_transition_unknown_stage_response(self):
        order_id = self._submit().data['id']
        item_id = Order.objects.get(pk=order_id).items.get().id
        self.client.authenticate_user(self.admin)
        response = self.client.post(f'/api/v1/order-items/{item_id}/transition/', {'stage': 'Engraving'},
                                    format='json')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data['error'], 'not_found')

    def test_distributor_cannot_transition(self):
        order_id = self._submit().data['id']
        item_id = Order.objects.get(pk=order_id).items.get().id
        response = self.client.post(f'/api/v1/order-items/{item_id}/transition/', {'stage': 'Casting'},
                                    format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_order_detail_hidden_from_other_distributor(self):
        order_id = self._submit().data['id']
        other = TestDataFactory.create_distributor()
        self.client.authenticate_user(other.user)
        response = self.client.get(f'/api/v1/orders/{order_id}/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_order_detail_includes_history(self):
        order_id = self._submit().data['id']
        response = self.client.get(f'/api/v1/orders/{order_id}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['history'][0]['reason'], 'Initial Submission')

    def test_my_orders(self):
        self._submit()
        self._submit(quantity=6)
        response = self.client.get('/api/v1/my-orders/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 2)

    def test_admin_order_list_filters_by_stage(self):
        first = self._submit().data['id']
        self._submit(quantity=6)
        item = Order.objects.get(pk=first).items.get()
        transition_item(item.id, 'Casting')
        self.client.authenticate_user(self.admin)
        response = self.client.get('/api/v1/orders/?stage=Casting')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([row['id'] for row in response.data['results']], [first])
        self.assertEqual(response.data['results'][0]['status'], Order.STATUS_PROCESSING)

    def test_split_endpoint(self):
        order = TestDataFactory.create_order(distributor=self.distributor)
        items = [TestDataFactory.create_order_item(order, self.product) for _ in range(3)]
        self.client.authenticate_user(self.admin)
        response = self.client.post(f'/api/v1/orders/{order.id}/split/', {'item_ids': [items[0].id]}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(len(response.data['original']['items']), 2)
        self.assertEqual(len(response.data['new_order']['items']), 1)

    def test_item_update_changes_weight(self):
        order = TestDataFactory.create_order(distributor=self.distributor)
        item = TestDataFactory.create_order_item(order, self.product, quantity=2)
        self.client.authenticate_user(self.admin)
        response = self.client.patch(f'/api/v1/order-items/{item.id}/', {'metal_type': '18K Gold'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['items'][0]['gross_weight'], 17.0)

    def test_stage_list_and_reorder_endpoints(self):
        self.client.authenticate_user(self.admin)
        response = self.client.get('/api/v1/stages/')
        self.assertEqual([row['name'] for row in response.data][:2], ['Order Received', 'Casting'])
        ids = [stage.id for stage in reversed(self.stages)]
        response = self.client.post('/api/v1/stages/reorder/', {'ordered_ids': ids}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data[0]['name'], 'Dispatched')

    def test_delivery_lead_time_endpoint(self):
        self.client.authenticate_user(self.distributor.user)
        response = self.client.get('/api/v1/delivery-lead-time/')
        self.assertEqual(response.data['lead_time_days'], 12)
        self.assertEqual(response.data['earliest_delivery_date'], timezone.localdate() + timedelta(days=12))
