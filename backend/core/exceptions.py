"""
Portal error taxonomy and the DRF exception handler that renders it.

Services raise these exceptions; views never catch them individually. The
handler below turns them into a JSON body of the form
``{"error": <code>, "message": <text>, "context": {...}}``.
"""
import logging

from django.db import DatabaseError
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)


class PortalError(Exception):
    """Base class for every expected failure of a portal operation"""
    code = 'portal_error'
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = 'The operation could not be completed.'

    def __init__(self, message=None, **context):
        self.message = message or self.default_message
        self.context = context
        super().__init__(self.message)

    def to_dict(self):
        return {
            'error': self.code,
            'message': self.message,
            'context': {key: _jsonable(value) for key, value in self.context.items()},
        }


class PortalValidationError(PortalError):
    """Bad input shape, missing field or invalid numeric format"""
    code = 'validation_error'
    default_message = 'Invalid data.'


class BusinessRuleError(PortalError):
    """An expected rule violation the UI should show as an actionable message"""
    code = 'business_rule_violation'


class BaseMetalConflict(BusinessRuleError):
    code = 'base_metal_conflict'
    default_message = 'This material already has a Base Metal (Ratio 1.0).'


class DuplicateName(BusinessRuleError):
    code = 'duplicate_name'
    default_message = 'An entry with this name already exists.'


class ReasonRequired(BusinessRuleError):
    code = 'reason_required'
    default_message = 'A reason is required for this stage.'


class MinimumWeightNotMet(BusinessRuleError):
    code = 'minimum_weight_not_met'

    def __init__(self, material, required, actual):
        message = (
            f"Minimum order weight for {material} is {required:g}g. "
            f"Your cart has {actual:.2f}g."
        )
        super().__init__(message, material=material, required=required, actual=round(actual, 2))
        self.material = material
        self.required = required
        self.actual = actual


class DeliveryDateTooSoon(BusinessRuleError):
    code = 'delivery_date_too_soon'

    def __init__(self, requested, earliest, lead_days):
        message = f"Delivery date must be at least {lead_days} days from today."
        super().__init__(message, requested=requested, earliest=earliest, lead_days=lead_days)


class ItemNotInOrder(BusinessRuleError):
    code = 'item_not_in_order'
    default_message = 'One or more items do not belong to this order.'


class InUse(PortalError):
    code = 'in_use'
    status_code = status.HTTP_409_CONFLICT
    default_message = 'Cannot delete: the record is in use.'


class NotFound(PortalError):
    code = 'not_found'
    status_code = status.HTTP_404_NOT_FOUND
    default_message = 'Not found.'


class StoreError(PortalError):
    code = 'store_error'
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_message = 'The data store is unavailable. Please try again.'


def _jsonable(value):
    if hasattr(value, 'isoformat'):
        return value.isoformat()
    if isinstance(value, (list, tuple, set)):
        return [_jsonable(v) for v in value]
    return value


def portal_exception_handler(exc, context):
    """DRF exception handler: portal errors first, then DRF's default handling"""
    if isinstance(exc, DatabaseError):
        view = context.get('view')
        logger.exception(f"Store failure in {view.__class__.__name__ if view else 'unknown view'}: {exc}")
        exc = StoreError()

    if isinstance(exc, PortalError):
        if isinstance(exc, (BusinessRuleError, PortalValidationError)):
            logger.info(f"Rejected request ({exc.code}): {exc.message}")
        elif not isinstance(exc, StoreError):
            logger.warning(f"Request failed ({exc.code}): {exc.message}")
        return Response(exc.to_dict(), status=exc.status_code)

    return exception_handler(exc, context)
