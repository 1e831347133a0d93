"""
Order submission policy: minimum order weight per material and delivery lead time.
"""
import logging
import math
from dataclasses import dataclass
from datetime import timedelta

from django.utils import timezone

from backend.core.exceptions import DeliveryDateTooSoon, MinimumWeightNotMet
from backend.core.utils import get_setting
from .weights import compute_item_weight

logger = logging.getLogger(__name__)

DEFAULT_LEAD_TIME_DAYS = 12
# Float sums of gram weights can land a hair under an exact minimum
WEIGHT_TOLERANCE = 1e-9


@dataclass(frozen=True)
class CartLine:
    product_id: int
    metal_type: str
    quantity: int = 1
    metal_color: str = 'Yellow'
    size: str = ''
    instructions: str = ''


def material_totals(cart_lines, products, registry):
    """Accumulated gross weight per material name for a cart"""
    weights = {}
    for line in cart_lines:
        weight = compute_item_weight(line, products[line.product_id], registry)
        weights.setdefault(weight.metal.material_name, []).append(weight.gross)
    return {material: math.fsum(values) for material, values in weights.items()}


def validate_minimum_weight(cart_lines, products, registry):
    """
    Reject a cart when any material's accumulated gross weight is below its
    minimum order weight (the minimum itself is accepted).

    ``products`` maps product id to Product. Returns the per-material totals.
    Materials are checked in name order, so the reported violation is stable.
    """
    totals = material_totals(cart_lines, products, registry)
    minimums = registry.materials()
    for material in sorted(totals):
        required = minimums.get(material, 0.0)
        actual = totals[material]
        if required > 0 and actual + WEIGHT_TOLERANCE < required:
            logger.info(f"Cart rejected: {material} {actual:.2f}g below minimum {required:g}g")
            raise MinimumWeightNotMet(material, required, actual)
    return totals


def lead_time_days():
    return get_setting('order_lead_time_days', DEFAULT_LEAD_TIME_DAYS, cast=int)


def earliest_delivery_date(today=None, lead_days=None):
    today = today or timezone.localdate()
    lead_days = lead_time_days() if lead_days is None else lead_days
    return today + timedelta(days=lead_days)


def validate_delivery_date(requested, today=None, lead_days=None):
    """Requested delivery must be at least the lead time after today; ``None`` is allowed"""
    if requested is None:
        return None
    lead_days = lead_time_days() if lead_days is None else lead_days
    earliest = earliest_delivery_date(today, lead_days)
    if requested < earliest:
        raise DeliveryDateTooSoon(requested, earliest, lead_days)
    return requested
