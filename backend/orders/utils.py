from django.utils import timezone

from .models import Order


def generate_order_number(now=None):
    """Next free order number of the form ORD-<year>-<NNNN>"""
    year = (now or timezone.now()).year
    prefix = f"ORD-{year}-"
    sequence = Order.objects.filter(order_number__startswith=prefix).count() + 1
    while True:
        order_number = f"{prefix}{sequence:04d}"
        if not Order.objects.filter(order_number=order_number).exists():
            return order_number
        sequence += 1
