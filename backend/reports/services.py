"""
Dashboard and report payloads.

Every breakdown here is one ``aggregate`` call over a filtered item set; the
functions only choose the items and the grouping key. Payloads are cached
under the dashboard/reports prefixes and dropped by the cache signals on any
order or registry write.
"""
import calendar
import logging
from datetime import date, timedelta

from django.conf import settings
from django.utils import timezone

from backend.catalog.models import Category, Material, Metal
from backend.catalog.registry import MetalRegistry
from backend.core.cache_utils import DASHBOARD_CACHE_PREFIX, REPORTS_CACHE_PREFIX, cached_query
from backend.core.exceptions import PortalValidationError
from backend.core.utils import get_setting
from backend.orders.models import Order, OrderItem
from backend.orders.services import order_items_queryset
from backend.orders.stages import StageRegistry
from backend.orders.state_machine import derive_order_status, order_progress
from backend.orders.weights import GroupBy, ItemFilter, aggregate, compute_item_weight, grand_total, present, present_groups
from backend.parties.models import Distributor

logger = logging.getLogger(__name__)

DATE_PRESETS = ('TODAY', 'THIS_WEEK', 'THIS_MONTH', 'LAST_3_MONTHS', 'THIS_YEAR', 'ALL', 'CUSTOM')
REPORT_TYPES = ('DISTRIBUTOR', 'ORDER', 'DATE', 'ADVANCED')
TOP_PRODUCTS_LIMIT = 10
URGENT_ALERTS_LIMIT = 20


def _months_ago(day, months):
    month_index = day.year * 12 + day.month - 1 - months
    year, month = divmod(month_index, 12)
    month += 1
    return date(year, month, min(day.day, calendar.monthrange(year, month)[1]))


def _month_end(day):
    return day.replace(day=calendar.monthrange(day.year, day.month)[1])


def resolve_date_range(preset, custom_start=None, custom_end=None, today=None):
    """
    Inclusive ``(date_from, date_to)`` for a dashboard preset; ``None`` means unbounded.

    Explicit custom bounds override the preset's bounds.
    """
    preset = (preset or 'ALL').upper()
    if preset not in DATE_PRESETS:
        raise PortalValidationError(f"Unknown date range '{preset}'.", allowed=list(DATE_PRESETS))
    today = today or timezone.localdate()

    date_from, date_to = None, today
    if preset == 'TODAY':
        date_from = today
    elif preset == 'THIS_WEEK':
        date_from = today - timedelta(days=today.weekday())
        date_to = date_from + timedelta(days=6)
    elif preset == 'THIS_MONTH':
        date_from = today.replace(day=1)
        date_to = _month_end(today)
    elif preset == 'LAST_3_MONTHS':
        date_from = _months_ago(today, 3)
    elif preset == 'THIS_YEAR':
        date_from = today.replace(month=1, day=1)
    elif preset in ('ALL', 'CUSTOM'):
        date_to = None

    if custom_start:
        date_from = custom_start
    if custom_end:
        date_to = custom_end
    if date_from and date_to and date_from > date_to:
        raise PortalValidationError("Start date must be before end date.", start=date_from, end=date_to)
    return date_from, date_to


def _orders_with_items(orders):
    """Orders with their items; each item's ``order`` is the loaded order"""
    orders = list(orders.select_related('distributor').prefetch_related('items__product__category'))
    items = [item for order in orders for item in order.items.all()]
    return orders, items


def _stage_stats(items, metals, stages):
    """Pieces and gross weight per stage, every configured stage listed plus PENDING"""
    groups = aggregate(items, GroupBy.STAGE, metals)
    names = stages.names()
    if OrderItem.DEFAULT_STAGE not in names:
        names.append(OrderItem.DEFAULT_STAGE)
    names += [name for name in groups if name not in names]

    rows = []
    for name in names:
        totals = groups.get(name)
        stage = stages.resolve(name)
        rows.append({
            'stage': name,
            'type': stage.type,
            'sequence': stage.sequence,
            'registered': stage.is_registered,
            'count': totals.count if totals else 0,
            'gross_weight': present(totals.gross) if totals else 0.0,
        })
    return rows


def _order_weights(orders, metals):
    return [
        {
            'order_number': order.order_number,
            'weights': present_groups(aggregate(order.items.all(), GroupBy.MATERIAL, metals)),
        }
        for order in orders
    ]


def _weight_summary(orders, metals):
    items = [item for order in orders for item in order.items.all()]
    return {
        'grand_total': present_groups(aggregate(items, GroupBy.MATERIAL, metals)),
        'by_metal_type': present_groups(aggregate(items, GroupBy.METAL_TYPE, metals)),
        'orders': _order_weights(orders, metals),
    }


@cached_query(cache_ttl=settings.DASHBOARD_CACHE_TTL, key_prefix=DASHBOARD_CACHE_PREFIX)
def dashboard_stats(date_from=None, date_to=None, today=None):
    """Admin dashboard over orders created within the date range"""
    today = today or timezone.localdate()
    metals = MetalRegistry.load()
    stages = StageRegistry.load()

    orders = Order.objects.all()
    if date_from:
        orders = orders.filter(created_at__date__gte=date_from)
    if date_to:
        orders = orders.filter(created_at__date__lte=date_to)
    orders, items = _orders_with_items(orders.order_by('-created_at', '-id'))

    # Distributor summary
    distributors = {}
    for order in orders:
        entry = distributors.setdefault(order.distributor.company_name, {'orders': [], 'items': []})
        entry['orders'].append(order)
        entry['items'].extend(order.items.all())
    distributor_summary = [
        {
            'distributor': name,
            'order_count': len(entry['orders']),
            'categories': {k: v.count for k, v in aggregate(entry['items'], GroupBy.CATEGORY, metals).items()},
            'metal_types': {k: v.count for k, v in aggregate(entry['items'], GroupBy.METAL_TYPE, metals).items()},
        }
        for name, entry in sorted(distributors.items())
    ]

    # Active vs delivered, classified by the derived status
    active, delivered = [], []
    for order in orders:
        derived = derive_order_status([item.stage for item in order.items.all()], stages)
        (delivered if derived == Order.STATUS_COMPLETED else active).append(order)

    # Top products by pieces
    product_info = {item.product.model_no: item.product for item in items}
    ranked = sorted(aggregate(items, GroupBy.PRODUCT, metals).items(), key=lambda kv: (-kv[1].count, kv[0]))
    top_products = [
        {
            'product': product_info[model_no].id,
            'model_no': model_no,
            'title': product_info[model_no].title,
            'main_image': product_info[model_no].main_image,
            'count': totals.count,
            'gross_weight': present(totals.gross),
        }
        for model_no, totals in ranked[:TOP_PRODUCTS_LIMIT]
    ]

    # Urgent alerts: delivery due within the window and not yet terminal
    window = get_setting('urgent_delivery_window_days', 2, cast=int)
    urgent_orders = sorted(
        (
            order for order in orders
            if order.requested_delivery_date
            and today <= order.requested_delivery_date <= today + timedelta(days=window)
            and derive_order_status([i.stage for i in order.items.all()], stages)
            not in (Order.STATUS_COMPLETED, Order.STATUS_CANCELLED)
        ),
        key=lambda order: (order.requested_delivery_date, order.order_number),
    )
    urgent_alerts = [
        {
            'order_number': order.order_number,
            'distributor': order.distributor.company_name,
            'model_no': item.product.model_no,
            'title': item.product.title,
            'main_image': item.product.main_image,
            'stage': item.stage,
            'delivery_date': order.requested_delivery_date,
        }
        for order in urgent_orders
        for item in order.items.all()
        if not stages.resolve(item.stage).is_terminal
    ][:URGENT_ALERTS_LIMIT]

    return {
        'period': {
            'from': date_from.isoformat() if date_from else None,
            'to': date_to.isoformat() if date_to else None,
        },
        'order_count': len(orders),
        'distributor_summary': distributor_summary,
        'active_orders': _weight_summary(active, metals),
        'delivered_orders': _weight_summary(delivered, metals),
        'stage_stats': _stage_stats(items, metals, stages),
        'top_products': top_products,
        'urgent_alerts': urgent_alerts,
        'stages': [{'name': s.name, 'type': s.type, 'sequence': s.sequence} for s in stages],
    }


def build_report_filter(report_type, distributor_id=None, order_number=None, date_from=None, date_to=None,
                        category_id=None, metal_type=None, metal_color=None):
    """The item filter a report type applies; other parameters are ignored"""
    report_type = (report_type or '').upper()
    if report_type not in REPORT_TYPES:
        raise PortalValidationError(f"Unknown report type '{report_type}'.", allowed=list(REPORT_TYPES))
    if report_type == 'DISTRIBUTOR':
        return ItemFilter(distributor_id=distributor_id)
    if report_type == 'ORDER':
        return ItemFilter(order_number=(order_number or '').strip() or None)
    if report_type == 'DATE':
        if date_from and date_to:
            return ItemFilter(date_from=date_from, date_to=date_to)
        return ItemFilter()
    return ItemFilter(category_id=category_id, metal_type=metal_type or None, metal_color=metal_color or None)


@cached_query(cache_ttl=settings.REPORTS_CACHE_TTL, key_prefix=REPORTS_CACHE_PREFIX)
def report_data(item_filter):
    """Orders with matching items, weights per item, per-order and overall by material"""
    metals = MetalRegistry.load()
    items = list(item_filter.apply(order_items_queryset()).order_by('-order__created_at', 'order_id', 'id'))

    by_order = {}
    for item in items:
        by_order.setdefault(item.order_id, []).append(item)

    orders = []
    for order_items in by_order.values():
        order = order_items[0].order
        rows = []
        for item in order_items:
            weight = compute_item_weight(item, item.product, metals)
            rows.append({
                'id': item.id,
                'model_no': item.product.model_no,
                'title': item.product.title,
                'category': item.product.category.name,
                'metal_type': item.metal_type,
                'metal_color': item.metal_color,
                'size': item.size,
                'quantity': item.quantity,
                'stage': item.stage,
                **weight.as_dict(),
            })
        orders.append({
            'id': order.id,
            'order_number': order.order_number,
            'distributor': order.distributor.company_name,
            'created_at': order.created_at.isoformat(),
            'requested_delivery_date': order.requested_delivery_date,
            'status': order.status,
            'items': rows,
            'summary': present_groups(aggregate(order_items, GroupBy.MATERIAL, metals)),
        })

    return {
        'orders': orders,
        'grand_total': present_groups(aggregate(items, GroupBy.MATERIAL, metals)),
        'total': grand_total(items, metals).as_dict(),
    }


@cached_query(cache_ttl=settings.REPORTS_CACHE_TTL, key_prefix=REPORTS_CACHE_PREFIX)
def report_options():
    """Choices for the report builder"""
    visible_metals = Metal.objects.filter(is_visible=True).order_by('name')
    return {
        'distributors': list(Distributor.objects.order_by('company_name').values('id', 'company_name', 'distributor_code')),
        'orders': [
            {
                'id': order.id,
                'order_number': order.order_number,
                'created_at': order.created_at.isoformat(),
                'distributor': order.distributor.company_name,
            }
            for order in Order.objects.select_related('distributor').order_by('-created_at', '-id')
        ],
        'materials': [
            {
                'id': material.id,
                'name': material.name,
                'metals': [m.name for m in visible_metals if m.material_id == material.id],
            }
            for material in Material.objects.filter(is_visible=True).order_by('name')
        ],
        'metals': [metal.name for metal in visible_metals],
        'categories': list(Category.objects.order_by('name').values('id', 'name')),
        'metal_colors': [choice for choice, _ in OrderItem.METAL_COLOR_CHOICES],
    }


@cached_query(cache_ttl=settings.DASHBOARD_CACHE_TTL, key_prefix=DASHBOARD_CACHE_PREFIX)
def distributor_dashboard(distributor_id):
    """A distributor's own orders with progress and weight breakdowns"""
    metals = MetalRegistry.load()
    stages = StageRegistry.load()
    orders, items = _orders_with_items(
        Order.objects.filter(distributor_id=distributor_id).order_by('-created_at', '-id')
    )

    status_counts = {}
    order_rows = []
    for order in orders:
        stage_names = [item.stage for item in order.items.all()]
        derived = derive_order_status(stage_names, stages)
        status_counts[derived] = status_counts.get(derived, 0) + 1
        order_rows.append({
            'id': order.id,
            'order_number': order.order_number,
            'created_at': order.created_at.isoformat(),
            'requested_delivery_date': order.requested_delivery_date,
            'status': derived,
            'progress': order_progress(stage_names, stages),
            'pieces': sum(item.quantity for item in order.items.all()),
        })

    return {
        'order_count': len(orders),
        'status_counts': status_counts,
        'overall_progress': order_progress([item.stage for item in items], stages),
        'orders': order_rows,
        'by_material': present_groups(aggregate(items, GroupBy.MATERIAL, metals)),
        'by_metal_type': present_groups(aggregate(items, GroupBy.METAL_TYPE, metals)),
        'total': grand_total(items, metals).as_dict(),
    }
