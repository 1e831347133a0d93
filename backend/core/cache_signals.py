"""
Cache invalidation signals
Automatically invalidate dashboard/report caches when portal data changes
"""
from django.db import transaction
from django.db.models.signals import post_save, post_delete
from django.dispatch import receiver
import logging
import threading
from contextlib import contextmanager

from .cache_utils import invalidate_dashboard_cache, invalidate_reports_cache

logger = logging.getLogger(__name__)

# Thread-local storage to track signal suspension
_thread_locals = threading.local()

# Any write to these models changes a weight, a stage or an order grouping
WEIGHT_AFFECTING_MODELS = {
    'Material', 'Metal', 'Category', 'Product',
    'Distributor',
    'StageDefinition', 'Order', 'OrderItem',
}

# Runtime settings feed the dashboard rules (urgent delivery window)
DASHBOARD_AFFECTING_MODELS = {'Setting'}


@contextmanager
def suspend_cache_signals():
    """
    Context manager to temporarily suspend cache invalidation signals.
    Useful for bulk operations to prevent excessive cache clearing.
    Remember to manually invalidate cache after the block!
    """
    try:
        _thread_locals.suspended = True
        yield
    finally:
        _thread_locals.suspended = False


def is_suspended():
    return getattr(_thread_locals, 'suspended', False)


def invalidate_portal_views():
    """Invalidate every cached view derived from orders and registries"""
    invalidate_dashboard_cache()
    invalidate_reports_cache()
    logger.debug("Invalidated dashboard and reports cache")


@receiver([post_save, post_delete])
def invalidate_weight_views(sender, instance, **kwargs):
    """Invalidate dashboards/reports after the write commits"""
    if is_suspended():
        return

    if sender.__name__ in DASHBOARD_AFFECTING_MODELS and sender._meta.app_label == 'core':
        transaction.on_commit(invalidate_dashboard_cache)
        return
    if sender.__name__ not in WEIGHT_AFFECTING_MODELS:
        return
    if sender._meta.app_label not in ('catalog', 'parties', 'orders'):
        return

    # After commit, so a concurrent reader cannot repopulate the cache with
    # pre-commit data
    transaction.on_commit(invalidate_portal_views)
