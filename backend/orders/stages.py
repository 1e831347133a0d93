"""
Stage definition registry.

Order items hold a stage *name*. ``StageRegistry.resolve`` turns a name into a
``Stage``: either a registered definition, or an unregistered stage for names
with no row (the implicit ``PENDING`` default of items created before stages
were configured, or a stage that was renamed away). An unregistered stage
takes its type from its own name when the name is a stage type, which keeps
legacy rows whose stage was stored as a bare type working.
"""
import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from django.db import transaction

from backend.core.exceptions import DuplicateName, InUse, NotFound, PortalValidationError
from backend.core.utils import create_audit_log
from .models import OrderItem, StageDefinition

logger = logging.getLogger(__name__)

STAGE_TYPES = tuple(choice for choice, _ in StageDefinition.TYPE_CHOICES)
OTHER_REASON = 'Other'


def parse_reasons(raw) -> Tuple[str, ...]:
    if not raw:
        return ()
    return tuple(reason.strip() for reason in raw.split(',') if reason.strip())


@dataclass(frozen=True)
class Stage:
    name: str
    type: Optional[str]
    sequence: int = 0
    requires_reason: bool = False
    reasons: Tuple[str, ...] = ()
    definition_id: Optional[int] = None

    @property
    def is_registered(self):
        return self.definition_id is not None

    @property
    def is_terminal(self):
        return self.type in StageDefinition.TERMINAL_TYPES

    def accepts_reason(self, reason):
        """A reason-gated stage needs a non-empty reason from its vocabulary or "Other ..." """
        if not self.requires_reason:
            return True
        reason = (reason or '').strip()
        if not reason:
            return False
        if not self.reasons:
            return True
        return reason in self.reasons or reason.split(':')[0].strip() == OTHER_REASON


def unregistered_stage(name):
    """Stage for a name with no definition: type is the name itself if it is a type"""
    name = name or OrderItem.DEFAULT_STAGE
    return Stage(name=name, type=name if name in STAGE_TYPES else None)


def stage_from_definition(definition):
    return Stage(
        name=definition.name,
        type=definition.type,
        sequence=definition.sequence,
        requires_reason=definition.requires_reason,
        reasons=parse_reasons(definition.reasons) if definition.requires_reason else (),
        definition_id=definition.id,
    )


class StageRegistry:
    """Immutable snapshot of the configured stages, ordered by sequence"""

    def __init__(self, stages=()):
        self._stages = tuple(sorted(stages, key=lambda s: (s.sequence, s.name)))
        self._by_name = {stage.name: stage for stage in self._stages}

    @classmethod
    def load(cls):
        return cls(stage_from_definition(d) for d in StageDefinition.objects.all())

    def resolve(self, name) -> Stage:
        stage = self._by_name.get(name or OrderItem.DEFAULT_STAGE)
        if stage is None:
            return unregistered_stage(name)
        return stage

    def type_of(self, name):
        return self.resolve(name).type

    def sequence_of(self, name):
        """Progress numerator; unregistered stages count 0"""
        return self.resolve(name).sequence

    @property
    def max_sequence(self):
        return max([stage.sequence for stage in self._stages] + [1])

    def names(self):
        return [stage.name for stage in self._stages]

    def __iter__(self):
        return iter(self._stages)

    def __len__(self):
        return len(self._stages)

    def __contains__(self, name):
        return name in self._by_name


def _validate_stage_input(name, stage_type):
    name = (name or '').strip()
    if not name or not stage_type:
        raise PortalValidationError("Name and Type are required.")
    if stage_type not in STAGE_TYPES:
        raise PortalValidationError(f"Unknown stage type '{stage_type}'.", field='type', allowed=list(STAGE_TYPES))
    return name


def create_stage(name, stage_type, requires_reason=False, reasons='', user=None, request=None):
    """Append a stage at the end of the pipeline"""
    name = _validate_stage_input(name, stage_type)
    with transaction.atomic():
        if StageDefinition.objects.filter(name__iexact=name).exists():
            raise DuplicateName(f"Stage '{name}' already exists.", name=name)
        stage = StageDefinition.objects.create(
            name=name,
            type=stage_type,
            sequence=StageDefinition.objects.count() + 1,
            requires_reason=requires_reason,
            reasons=(reasons or '').strip() if requires_reason else '',
        )
        create_audit_log(request=request, user=user, action='create', model_name='StageDefinition',
                         object_id=stage.id, object_name=stage.name,
                         changes={'type': stage.type, 'sequence': stage.sequence})
    logger.info(f"Stage created: {stage.name} ({stage.type}) at sequence {stage.sequence}")
    return stage


def update_stage(stage_id, name, stage_type, requires_reason=False, reasons='', user=None, request=None):
    """
    Update a stage definition.

    A rename also moves every order item sitting in the old stage name, so
    items never lose their definition because of a rename. A rename or type
    change re-derives the stored status of the orders holding those items.
    """
    name = _validate_stage_input(name, stage_type)
    with transaction.atomic():
        try:
            stage = StageDefinition.objects.select_for_update().get(pk=stage_id)
        except StageDefinition.DoesNotExist:
            raise NotFound("Stage not found.", id=stage_id)
        if StageDefinition.objects.filter(name__iexact=name).exclude(pk=stage.pk).exists():
            raise DuplicateName(f"Stage '{name}' already exists.", name=name)

        old_name = stage.name
        old_type = stage.type
        changes = {
            'name': [old_name, name],
            'type': [stage.type, stage_type],
            'requires_reason': [stage.requires_reason, requires_reason],
        }
        stage.name = name
        stage.type = stage_type
        stage.requires_reason = requires_reason
        stage.reasons = (reasons or '').strip() if requires_reason else ''
        stage.save()

        if old_name != name:
            changes['moved_items'] = OrderItem.objects.filter(stage=old_name).update(stage=name)
        if old_name != name or old_type != stage_type:
            # state_machine imports this module
            from .state_machine import resync_orders_at_stage
            changes['resynced_orders'] = resync_orders_at_stage(
                name, f"Auto-updated: Stage '{name}' changed", user or getattr(request, 'user', None),
            )
        create_audit_log(request=request, user=user, action='update', model_name='StageDefinition',
                         object_id=stage.id, object_name=stage.name, changes=changes)
    return stage


def delete_stage(stage_id, user=None, request=None):
    with transaction.atomic():
        try:
            stage = StageDefinition.objects.get(pk=stage_id)
        except StageDefinition.DoesNotExist:
            raise NotFound("Stage not found.", id=stage_id)
        in_use = OrderItem.objects.filter(stage=stage.name).count()
        if in_use:
            raise InUse("Cannot delete: Stage is in use by order items.", stage=stage.name, order_items=in_use)
        create_audit_log(request=request, user=user, action='delete', model_name='StageDefinition',
                         object_id=stage.id, object_name=stage.name)
        stage.delete()
    logger.info(f"Stage deleted: {stage.name}")


def reorder_stages(ordered_ids, user=None, request=None):
    """Rewrite every sequence to 1..N following ``ordered_ids`` (the complete id list)"""
    try:
        ordered_ids = [int(pk) for pk in ordered_ids]
    except (TypeError, ValueError):
        raise PortalValidationError("Stage ids must be integers.", field='ordered_ids')
    if len(set(ordered_ids)) != len(ordered_ids):
        raise PortalValidationError("Stage ids must not repeat.", field='ordered_ids')

    with transaction.atomic():
        stages = {s.id: s for s in StageDefinition.objects.select_for_update()}
        if set(ordered_ids) != set(stages):
            raise PortalValidationError(
                "Reorder needs the complete list of stage ids.",
                missing=sorted(set(stages) - set(ordered_ids)),
                unknown=sorted(set(ordered_ids) - set(stages)),
            )
        for sequence, pk in enumerate(ordered_ids, start=1):
            stage = stages[pk]
            if stage.sequence != sequence:
                stage.sequence = sequence
                stage.save(update_fields=['sequence', 'updated_at'])
        create_audit_log(request=request, user=user, action='stage_reorder', model_name='StageDefinition',
                         object_id=0, object_name='pipeline',
                         changes={'order': [stages[pk].name for pk in ordered_ids]})
    return list(StageDefinition.objects.all())

