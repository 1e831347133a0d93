from django.core.validators import MinValueValidator
from django.db import models
from django.utils import timezone
from backend.catalog.models import Product
from backend.parties.models import Distributor


class StageDefinition(models.Model):
    """One configurable step of the production pipeline"""
    TYPE_STANDARD = 'STANDARD'
    TYPE_PENDING = 'PENDING'
    TYPE_ON_HOLD = 'ON_HOLD'
    TYPE_CANCELLED = 'CANCELLED'
    TYPE_COMPLETED = 'COMPLETED'
    TYPE_CHOICES = [
        (TYPE_STANDARD, 'Standard'),
        (TYPE_PENDING, 'Pending'),
        (TYPE_ON_HOLD, 'On hold'),
        (TYPE_CANCELLED, 'Cancelled'),
        (TYPE_COMPLETED, 'Completed'),
    ]
    TERMINAL_TYPES = (TYPE_CANCELLED, TYPE_COMPLETED)

    name = models.CharField(max_length=100, unique=True)
    type = models.CharField(max_length=20, choices=TYPE_CHOICES, default=TYPE_STANDARD)
    sequence = models.IntegerField(default=0, db_index=True)
    requires_reason = models.BooleanField(default=False)
    reasons = models.TextField(blank=True, help_text='Comma-separated reason vocabulary')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.sequence}. {self.name} ({self.type})"

    class Meta:
        db_table = 'stage_definitions'
        ordering = ['sequence', 'id']


class Order(models.Model):
    """Distributor order; status is derived from its items' stages"""
    STATUS_PENDING = 'PENDING'
    STATUS_PROCESSING = 'PROCESSING'
    STATUS_COMPLETED = 'COMPLETED'
    STATUS_CANCELLED = 'CANCELLED'
    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending'),
        (STATUS_PROCESSING, 'Processing'),
        (STATUS_COMPLETED, 'Completed'),
        (STATUS_CANCELLED, 'Cancelled'),
    ]

    order_number = models.CharField(max_length=50, unique=True, db_index=True)
    distributor = models.ForeignKey(Distributor, on_delete=models.PROTECT, related_name='orders')
    created_at = models.DateTimeField(default=timezone.now, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)
    requested_delivery_date = models.DateField(null=True, blank=True)
    instruction_note = models.TextField(blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PENDING, db_index=True)

    def __str__(self):
        return self.order_number

    class Meta:
        db_table = 'orders'
        ordering = ['-created_at']


class OrderItem(models.Model):
    """One order line; weights are computed from the metal registry, never stored"""
    DEFAULT_STAGE = 'PENDING'
    METAL_COLOR_CHOICES = [
        ('Yellow', 'Yellow'),
        ('White', 'White'),
        ('Rose', 'Rose'),
    ]

    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name='items')
    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name='order_items')
    metal_type = models.CharField(max_length=100, db_index=True, help_text='Metal name at the time of ordering')
    metal_color = models.CharField(max_length=10, choices=METAL_COLOR_CHOICES, default='Yellow')
    size = models.CharField(max_length=50, blank=True)
    quantity = models.PositiveIntegerField(default=1, validators=[MinValueValidator(1)])
    instructions = models.TextField(blank=True)
    stage = models.CharField(max_length=100, default=DEFAULT_STAGE, db_index=True)
    stage_reason = models.TextField(blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.order.order_number} - {self.product.model_no} x {self.quantity}"

    class Meta:
        db_table = 'order_items'
        ordering = ['id']


class OrderStageAudit(models.Model):
    """Append-only order status history"""
    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name='history')
    stage = models.CharField(max_length=100)
    reason = models.TextField(blank=True, null=True)
    changed_by = models.CharField(max_length=150, default='System')
    created_at = models.DateTimeField(default=timezone.now, db_index=True)

    def __str__(self):
        return f"{self.order.order_number} -> {self.stage}"

    class Meta:
        db_table = 'order_stage_audits'
        ordering = ['created_at', 'id']
