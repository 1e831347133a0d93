"""Utility functions for audit logging and runtime settings"""
import logging

from django.conf import settings as django_settings

from .models import AuditLog, Setting

logger = logging.getLogger(__name__)


def get_client_ip(request):
    """Extract client IP address from request"""
    if not request or not hasattr(request, 'META'):
        return None
    x_forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR')
    if x_forwarded_for:
        ip = x_forwarded_for.split(',')[0].strip()
    else:
        ip = request.META.get('REMOTE_ADDR')
    return ip or None


def create_audit_log(request=None, action=None, model_name=None, object_id=None,
                     changes=None, user=None, object_name=None, object_reference=None):
    """
    Create an audit log entry

    Args:
        request: Django request object (for user and IP) - optional if user is provided
        action: Action type (create, update, delete, item_transition, etc.)
        model_name: Name of the model being acted upon
        object_id: ID of the object (as string)
        changes: Dictionary of changes made
        user: Optional user override (defaults to request.user if request provided)
        object_name: Human-readable name of the object (e.g., metal name, order number)
        object_reference: Reference identifier (e.g., order number)

    Runs inside the caller's transaction, so a failed insert rolls the whole
    operation back instead of leaving an unaudited change behind.
    """
    audit_user = None
    if user is not None:
        audit_user = user
    elif request is not None and hasattr(request, 'user'):
        audit_user = request.user

    if not action or not model_name or object_id is None:
        logger.warning(f"Audit log creation skipped: missing required fields (action={action}, model_name={model_name}, object_id={object_id})")
        return None

    return AuditLog.objects.create(
        user=audit_user if audit_user is not None and audit_user.is_authenticated else None,
        action=action,
        model_name=model_name,
        object_id=str(object_id),
        object_name=object_name,
        object_reference=object_reference,
        changes=changes or {},
        ip_address=get_client_ip(request) if request is not None else None,
    )


def actor_name(user):
    """Display name recorded as the actor of an order history entry"""
    if user is None or not getattr(user, 'is_authenticated', False):
        return 'System'
    return user.get_username()


def get_setting(key, default=None, cast=str):
    """
    Resolve a business-rule setting.

    Lookup order: ``core.Setting`` row with a lowercase key, the Django setting
    with the uppercase key, then ``default``. A stored value that cannot be
    cast is reported and ignored.
    """
    fallback = getattr(django_settings, key.upper(), default)
    row = Setting.objects.filter(key=key.lower()).values_list('value', flat=True).first()
    if row is None:
        return fallback
    try:
        return cast(row)
    except (TypeError, ValueError):
        logger.warning(f"Ignoring invalid value {row!r} for setting '{key}', using {fallback!r}")
        return fallback
