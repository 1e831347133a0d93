"""
Weight computation engine.

    gross = product.base_weight * metal.conversion_ratio * item.quantity
    pure  = gross * metal.purity / 100

Weights are floats in grams and are never stored; every dashboard, report and
order list recomputes them from the current ``MetalRegistry`` snapshot and
folds them with ``aggregate``. Per-group sums use ``math.fsum``, so a fold
gives the same totals whatever order the items arrive in. Rounding happens
only in ``WeightTotals.as_dict`` / ``ItemWeight.as_dict``.
"""
import math
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Optional

from django.utils import timezone

from backend.catalog.registry import ResolvedMetal
from .models import OrderItem

UNCATEGORIZED = 'Uncategorized'


def present(weight):
    """Presentation rounding (2 dp)"""
    return round(weight, 2)


@dataclass(frozen=True)
class ItemWeight:
    gross: float
    pure: float
    metal: ResolvedMetal

    @property
    def pure_applicable(self):
        return self.metal.pure_applicable

    def as_dict(self):
        return {
            'gross_weight': present(self.gross),
            'pure_weight': present(self.pure) if self.pure_applicable else None,
            'material': self.metal.material_name,
            'metal': self.metal.name,
            'unknown_metal': not self.metal.is_known,
        }


def item_gross_weight(base_weight, conversion_ratio, quantity):
    return base_weight * conversion_ratio * quantity


def compute_item_weight(item, product, registry) -> ItemWeight:
    """Gross and pure weight of one order item (or cart line) against a registry snapshot"""
    metal = registry.resolve(item.metal_type)
    gross = item_gross_weight(product.base_weight, metal.conversion_ratio, item.quantity)
    return ItemWeight(gross=gross, pure=gross * (metal.purity / 100), metal=metal)


class GroupBy(str, Enum):
    MATERIAL = 'material'
    METAL_TYPE = 'metal_type'
    CATEGORY = 'category'
    DISTRIBUTOR = 'distributor'
    STAGE = 'stage'
    ORDER = 'order'
    PRODUCT = 'product'


def _category_key(item, weight):
    category = item.product.category
    return category.name if category is not None else UNCATEGORIZED


GROUP_KEYS = {
    GroupBy.MATERIAL: lambda item, weight: weight.metal.material_name,
    GroupBy.METAL_TYPE: lambda item, weight: item.metal_type or '',
    GroupBy.CATEGORY: _category_key,
    GroupBy.DISTRIBUTOR: lambda item, weight: item.order.distributor.company_name,
    GroupBy.STAGE: lambda item, weight: item.stage or OrderItem.DEFAULT_STAGE,
    GroupBy.ORDER: lambda item, weight: item.order.order_number,
    GroupBy.PRODUCT: lambda item, weight: item.product.model_no,
}


@dataclass(frozen=True)
class ItemFilter:
    """
    Item-level filter shared by every view.

    ``apply`` narrows a queryset in the database; ``matches`` checks an
    already-loaded item. Both express the same predicate.
    """
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    distributor_id: Optional[int] = None
    stage_name: Optional[str] = None
    order_number: Optional[str] = None
    category_id: Optional[int] = None
    metal_type: Optional[str] = None
    metal_color: Optional[str] = None

    def apply(self, queryset):
        if self.date_from:
            queryset = queryset.filter(order__created_at__date__gte=self.date_from)
        if self.date_to:
            queryset = queryset.filter(order__created_at__date__lte=self.date_to)
        if self.distributor_id:
            queryset = queryset.filter(order__distributor_id=self.distributor_id)
        if self.stage_name:
            queryset = queryset.filter(stage=self.stage_name)
        if self.order_number:
            queryset = queryset.filter(order__order_number__icontains=self.order_number)
        if self.category_id:
            queryset = queryset.filter(product__category_id=self.category_id)
        if self.metal_type:
            queryset = queryset.filter(metal_type=self.metal_type)
        if self.metal_color:
            queryset = queryset.filter(metal_color=self.metal_color)
        return queryset

    def matches(self, item):
        created = timezone.localtime(item.order.created_at).date()
        if self.date_from and created < self.date_from:
            return False
        if self.date_to and created > self.date_to:
            return False
        if self.distributor_id and item.order.distributor_id != self.distributor_id:
            return False
        if self.stage_name and (item.stage or OrderItem.DEFAULT_STAGE) != self.stage_name:
            return False
        if self.order_number and self.order_number.lower() not in item.order.order_number.lower():
            return False
        if self.category_id and item.product.category_id != self.category_id:
            return False
        if self.metal_type and item.metal_type != self.metal_type:
            return False
        if self.metal_color and item.metal_color != self.metal_color:
            return False
        return True

    @property
    def is_empty(self):
        return not any(getattr(self, field) for field in self.__dataclass_fields__)


@dataclass(frozen=True)
class WeightTotals:
    count: int = 0
    lines: int = 0
    gross: float = 0.0
    pure: float = 0.0
    pure_applicable: bool = False
    unknown_metal: bool = False

    def as_dict(self):
        return {
            'count': self.count,
            'lines': self.lines,
            'gross_weight': present(self.gross),
            'pure_weight': present(self.pure) if self.pure_applicable else None,
            'unknown_metal': self.unknown_metal,
        }


class _Bucket:
    __slots__ = ('count', 'lines', 'gross', 'pure', 'pure_applicable', 'unknown_metal')

    def __init__(self):
        self.count = 0
        self.lines = 0
        self.gross = []
        self.pure = []
        self.pure_applicable = False
        self.unknown_metal = False

    def add(self, item, weight):
        self.count += item.quantity
        self.lines += 1
        self.gross.append(weight.gross)
        self.pure.append(weight.pure)
        self.pure_applicable = self.pure_applicable or weight.pure_applicable
        self.unknown_metal = self.unknown_metal or not weight.metal.is_known

    def freeze(self):
        return WeightTotals(
            count=self.count,
            lines=self.lines,
            gross=math.fsum(self.gross),
            pure=math.fsum(self.pure),
            pure_applicable=self.pure_applicable,
            unknown_metal=self.unknown_metal,
        )


def aggregate(items, group_by, registry, filters=None):
    """
    Fold items into ``{group key: WeightTotals}``, keys in sorted order.

    ``group_by`` is a ``GroupBy`` member or its value; ``filters`` is an
    optional ``ItemFilter`` applied to each item before folding. Items need
    ``product`` (with ``category``) and, for distributor/order grouping or
    date filters, ``order`` (with ``distributor``) loaded.
    """
    key_of = GROUP_KEYS[GroupBy(group_by)]
    buckets = {}
    for item in items:
        if filters is not None and not filters.matches(item):
            continue
        weight = compute_item_weight(item, item.product, registry)
        key = key_of(item, weight)
        bucket = buckets.get(key)
        if bucket is None:
            bucket = buckets[key] = _Bucket()
        bucket.add(item, weight)
    return {key: buckets[key].freeze() for key in sorted(buckets)}


def grand_total(items, registry, filters=None) -> WeightTotals:
    bucket = _Bucket()
    for item in items:
        if filters is not None and not filters.matches(item):
            continue
        bucket.add(item, compute_item_weight(item, item.product, registry))
    return bucket.freeze()


def present_groups(groups):
    """``aggregate`` output as JSON-ready rows"""
    return [dict(key=key, **totals.as_dict()) for key, totals in groups.items()]
