"""
Order stage state machine.

Each item moves through the configured stages on its own; the order status is
derived from the item stages and stored only as a cache of that derivation.
``recompute_order_status`` can always rebuild it.
"""
import logging

from django.db import transaction

from backend.core.exceptions import (
    ItemNotInOrder, NotFound, PortalValidationError, ReasonRequired,
)
from backend.core.utils import actor_name, create_audit_log
from .models import Order, OrderItem, OrderStageAudit, StageDefinition
from .stages import STAGE_TYPES, StageRegistry
from .utils import generate_order_number

logger = logging.getLogger(__name__)


def derive_order_status(stage_names, registry):
    """
    Order status from item stage names.

    All COMPLETED -> COMPLETED, else all CANCELLED -> CANCELLED, else all
    PENDING -> PENDING, else PROCESSING. An order without items stays PENDING.
    """
    types = [registry.type_of(name) for name in stage_names]
    if not types:
        return Order.STATUS_PENDING
    if all(t == StageDefinition.TYPE_COMPLETED for t in types):
        return Order.STATUS_COMPLETED
    if all(t == StageDefinition.TYPE_CANCELLED for t in types):
        return Order.STATUS_CANCELLED
    if all(t == StageDefinition.TYPE_PENDING for t in types):
        return Order.STATUS_PENDING
    return Order.STATUS_PROCESSING


def order_progress(stage_names, registry):
    """Completion percentage: sum of stage sequences over items * max sequence"""
    stage_names = list(stage_names)
    if not stage_names:
        return 0
    total = sum(registry.sequence_of(name) for name in stage_names)
    return round(total / (len(stage_names) * registry.max_sequence) * 100)


def _sync_status(order, registry, reason, actor):
    """Store the derived status and append a history entry when it changed"""
    stage_names = list(order.items.values_list('stage', flat=True))
    new_status = derive_order_status(stage_names, registry)
    if order.status == new_status:
        return new_status, False

    old_status = order.status
    order.status = new_status
    order.save(update_fields=['status', 'updated_at'])
    OrderStageAudit.objects.create(
        order=order,
        stage=new_status,
        reason=reason,
        changed_by=actor_name(actor),
    )
    logger.info(f"Order {order.order_number} status {old_status} -> {new_status}")
    return new_status, True


def transition_item(item_id, new_stage, reason=None, actor=None, request=None):
    """
    Move one item to ``new_stage`` and re-derive its order's status.

    The item update, the status recompute and the history entry commit
    together. Returns ``(order, derived_status)``.
    """
    registry = StageRegistry.load()
    stage_name = (new_stage or '').strip()
    stage = registry.resolve(stage_name)
    if not stage.is_registered and stage_name not in STAGE_TYPES:
        raise NotFound(f"Stage '{stage_name}' not found.", stage=stage_name)
    if not stage.accepts_reason(reason):
        raise ReasonRequired(
            f"A reason is required to move an item to '{stage.name}'.",
            stage=stage.name, reasons=list(stage.reasons),
        )

    with transaction.atomic():
        try:
            item = OrderItem.objects.select_for_update().select_related('order').get(pk=item_id)
        except OrderItem.DoesNotExist:
            raise NotFound("Order item not found.", item_id=item_id)
        order = Order.objects.select_for_update().get(pk=item.order_id)

        previous = item.stage
        item.stage = stage.name
        item.stage_reason = ((reason or '').strip() or None) if stage.requires_reason else None
        item.save(update_fields=['stage', 'stage_reason', 'updated_at'])

        status, changed = _sync_status(
            order, registry, f"Auto-updated: Item(s) moved to {stage.name}", actor,
        )
        create_audit_log(
            request=request,
            user=actor,
            action='item_transition',
            model_name='OrderItem',
            object_id=item.id,
            object_name=order.order_number,
            object_reference=order.order_number,
            changes={'stage': [previous, stage.name], 'reason': item.stage_reason,
                     'order_status': status, 'status_changed': changed},
        )
    return order, status


def recompute_order_status(order_id, actor=None, request=None):
    """Repair a stored status that drifted from the item stages"""
    registry = StageRegistry.load()
    with transaction.atomic():
        try:
            order = Order.objects.select_for_update().get(pk=order_id)
        except Order.DoesNotExist:
            raise NotFound("Order not found.", order_id=order_id)
        old_status = order.status
        status, changed = _sync_status(order, registry, "Status recomputed from item stages", actor)
        if changed:
            create_audit_log(
                request=request,
                user=actor,
                action='order_status_repair',
                model_name='Order',
                object_id=order.id,
                object_name=order.order_number,
                object_reference=order.order_number,
                changes={'status': [old_status, status]},
            )
    return order, status


def resync_orders_at_stage(stage_name, reason, actor=None):
    """Re-derive the stored status of every order holding an item in ``stage_name``"""
    registry = StageRegistry.load()
    orders = Order.objects.select_for_update().filter(
        pk__in=OrderItem.objects.filter(stage=stage_name).values('order_id'),
    )
    updated = []
    for order in orders:
        _, changed = _sync_status(order, registry, reason, actor)
        if changed:
            updated.append(order.order_number)
    return updated


def split_order(order_id, item_ids, actor=None, request=None):
    """
    Move ``item_ids`` out of an order into a new order of the same distributor.

    Every id must belong to the order and at least one item must stay
    behind. Both orders get their status re-derived. Returns the new order.
    """
    try:
        item_ids = {int(pk) for pk in item_ids}
    except (TypeError, ValueError):
        raise PortalValidationError("Item ids must be integers.", field='item_ids')
    if not item_ids:
        raise PortalValidationError("Select at least one item to split.", field='item_ids')

    registry = StageRegistry.load()
    with transaction.atomic():
        try:
            original = Order.objects.select_for_update().get(pk=order_id)
        except Order.DoesNotExist:
            raise NotFound("Order not found.", order_id=order_id)

        owned = set(original.items.values_list('id', flat=True))
        foreign = sorted(item_ids - owned)
        if foreign:
            raise ItemNotInOrder(order=original.order_number, item_ids=foreign)
        if item_ids == owned:
            raise PortalValidationError("Cannot split every item out of an order.",
                                        order=original.order_number)

        new_order = Order.objects.create(
            order_number=generate_order_number(),
            distributor_id=original.distributor_id,
            status=Order.STATUS_PENDING,
            instruction_note=f"Split from {original.order_number}",
            requested_delivery_date=original.requested_delivery_date,
        )
        moved = OrderItem.objects.filter(id__in=item_ids, order=original).update(order=new_order)
        OrderStageAudit.objects.create(
            order=new_order,
            stage=Order.STATUS_PENDING,
            reason=f"Split from {original.order_number}",
            changed_by=actor_name(actor),
        )

        reason = f"Auto-updated: Order split into {new_order.order_number}"
        _sync_status(original, registry, reason, actor)
        _sync_status(new_order, registry, f"Auto-updated: Split from {original.order_number}", actor)

        create_audit_log(
            request=request,
            user=actor,
            action='order_split',
            model_name='Order',
            object_id=original.id,
            object_name=original.order_number,
            object_reference=original.order_number,
            changes={'new_order': new_order.order_number, 'item_ids': sorted(item_ids), 'moved': moved},
        )
    logger.info(f"Order {original.order_number} split: {moved} items moved to {new_order.order_number}")
    return new_order
