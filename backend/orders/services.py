import logging

from django.db import transaction

from backend.catalog.models import Product
from backend.catalog.registry import MetalRegistry
from backend.core.exceptions import NotFound, PortalValidationError
from backend.core.utils import actor_name, create_audit_log
from .models import Order, OrderItem, OrderStageAudit
from .policy import CartLine, validate_delivery_date, validate_minimum_weight
from .state_machine import order_progress
from .utils import generate_order_number
from .weights import GroupBy, aggregate, compute_item_weight, grand_total, present_groups

logger = logging.getLogger(__name__)

METAL_COLORS = tuple(choice for choice, _ in OrderItem.METAL_COLOR_CHOICES)


def _clean_line(line, index):
    if isinstance(line, dict):
        try:
            line = CartLine(
                product_id=int(line['product_id']),
                metal_type=(line.get('metal_type') or '').strip(),
                quantity=int(line.get('quantity', 1)),
                metal_color=line.get('metal_color') or 'Yellow',
                size=(line.get('size') or '').strip(),
                instructions=(line.get('instructions') or '').strip(),
            )
        except (KeyError, TypeError, ValueError):
            raise PortalValidationError("Invalid cart line.", line=index)
    if line.quantity < 1:
        raise PortalValidationError("Quantity must be at least 1.", line=index, field='quantity')
    if not line.metal_type:
        raise PortalValidationError("Metal type is required.", line=index, field='metal_type')
    if line.metal_color not in METAL_COLORS:
        raise PortalValidationError(f"Invalid metal colour '{line.metal_color}'.", line=index, field='metal_color')
    return line


def submit_order(distributor, cart_lines, instruction_note='', requested_delivery_date=None,
                 actor=None, request=None):
    """
    Create a PENDING order from a distributor cart.

    Delivery date, product availability and the minimum order weight are
    checked inside the same transaction that creates the order, so a rejected
    cart leaves nothing behind.
    """
    if not cart_lines:
        raise PortalValidationError("Cart is empty.")
    lines = [_clean_line(line, index) for index, line in enumerate(cart_lines)]
    validate_delivery_date(requested_delivery_date)

    with transaction.atomic():
        products = Product.objects.select_related('category').in_bulk({line.product_id for line in lines})
        for index, line in enumerate(lines):
            product = products.get(line.product_id)
            if product is None or not product.is_visible_to(distributor):
                raise PortalValidationError("Product is not available.", line=index, product_id=line.product_id)

        registry = MetalRegistry.load()
        offered = MetalRegistry.load(visible_only=True)
        for index, line in enumerate(lines):
            if line.metal_type not in offered:
                raise PortalValidationError(f"Metal '{line.metal_type}' is not available.",
                                            line=index, field='metal_type')

        totals = validate_minimum_weight(lines, products, registry)

        order = Order.objects.create(
            order_number=generate_order_number(),
            distributor=distributor,
            status=Order.STATUS_PENDING,
            instruction_note=(instruction_note or '').strip(),
            requested_delivery_date=requested_delivery_date,
        )
        OrderStageAudit.objects.create(
            order=order,
            stage=Order.STATUS_PENDING,
            reason='Initial Submission',
            changed_by=actor_name(actor),
        )
        OrderItem.objects.bulk_create([
            OrderItem(
                order=order,
                product_id=line.product_id,
                metal_type=line.metal_type,
                metal_color=line.metal_color,
                size=line.size,
                quantity=line.quantity,
                instructions=line.instructions,
            )
            for line in lines
        ])
        create_audit_log(
            request=request,
            user=actor,
            action='order_submit',
            model_name='Order',
            object_id=order.id,
            object_name=order.order_number,
            object_reference=order.order_number,
            changes={'items': len(lines), 'material_weights': {k: round(v, 2) for k, v in totals.items()}},
        )
    logger.info(f"Order {order.order_number} submitted by {distributor.distributor_code} with {len(lines)} items")
    return order


def update_item_details(item_id, data, actor=None, request=None):
    """Admin edit of an item's metal, colour, size, quantity and instructions"""
    editable = ('metal_type', 'metal_color', 'size', 'quantity', 'instructions')
    with transaction.atomic():
        try:
            item = OrderItem.objects.select_for_update().select_related('order').get(pk=item_id)
        except OrderItem.DoesNotExist:
            raise NotFound("Order item not found.", item_id=item_id)

        current = CartLine(
            product_id=item.product_id,
            metal_type=item.metal_type,
            quantity=item.quantity,
            metal_color=item.metal_color,
            size=item.size,
            instructions=item.instructions,
        )
        merged = {field: data.get(field, getattr(current, field)) for field in editable}
        merged['product_id'] = item.product_id
        line = _clean_line(merged, 0)
        if line.metal_type != item.metal_type and line.metal_type not in MetalRegistry.load():
            raise PortalValidationError(f"Unknown metal '{line.metal_type}'.", field='metal_type')

        changes = {}
        for field in editable:
            old, new = getattr(item, field), getattr(line, field)
            if old != new:
                changes[field] = [old, new]
                setattr(item, field, new)
        if changes:
            item.save()
            create_audit_log(
                request=request,
                user=actor,
                action='item_update',
                model_name='OrderItem',
                object_id=item.id,
                object_name=item.order.order_number,
                object_reference=item.order.order_number,
                changes=changes,
            )
    return item


def order_items_queryset():
    return OrderItem.objects.select_related('product__category', 'order__distributor')


def describe_order(order, metal_registry, stage_registry, items=None):
    """Order payload with per-item weights, progress and the per-material summary"""
    items = list(items if items is not None else order.items.all())
    rows = []
    for item in items:
        weight = compute_item_weight(item, item.product, metal_registry)
        stage = stage_registry.resolve(item.stage)
        rows.append({
            'id': item.id,
            'product': item.product_id,
            'model_no': item.product.model_no,
            'title': item.product.title,
            'category': item.product.category.name,
            'main_image': item.product.main_image,
            'metal_type': item.metal_type,
            'metal_label': weight.metal.label,
            'metal_color': item.metal_color,
            'size': item.size,
            'quantity': item.quantity,
            'instructions': item.instructions,
            'stage': stage.name,
            'stage_type': stage.type,
            'stage_registered': stage.is_registered,
            'stage_reason': item.stage_reason,
            **weight.as_dict(),
        })
    total = grand_total(items, metal_registry)
    return {
        'id': order.id,
        'order_number': order.order_number,
        'distributor': {
            'id': order.distributor_id,
            'company_name': order.distributor.company_name,
            'distributor_code': order.distributor.distributor_code,
        },
        'created_at': order.created_at,
        'requested_delivery_date': order.requested_delivery_date,
        'instruction_note': order.instruction_note,
        'status': order.status,
        'progress': order_progress([item.stage for item in items], stage_registry),
        'items': rows,
        'summary': present_groups(aggregate(items, GroupBy.MATERIAL, metal_registry)),
        'total': total.as_dict(),
    }
