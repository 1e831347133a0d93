from django.contrib.auth.models import AbstractUser
from django.db import models


class User(AbstractUser):
    """Extended user model with portal role"""
    ROLE_ADMIN = 'ADMIN'
    ROLE_DISTRIBUTOR = 'DISTRIBUTOR'
    ROLE_CHOICES = [
        (ROLE_ADMIN, 'Admin'),
        (ROLE_DISTRIBUTOR, 'Distributor'),
    ]

    role = models.CharField(max_length=20, choices=ROLE_CHOICES, default=ROLE_DISTRIBUTOR, db_index=True)
    phone = models.CharField(max_length=20, blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    @property
    def is_portal_admin(self):
        return self.is_superuser or self.role == self.ROLE_ADMIN

    @property
    def is_distributor(self):
        return self.role == self.ROLE_DISTRIBUTOR

    class Meta:
        db_table = 'users'


class Setting(models.Model):
    """System settings (runtime overrides for business rule constants)"""
    key = models.CharField(max_length=100, unique=True)
    value = models.TextField()
    description = models.TextField(blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.key

    class Meta:
        db_table = 'settings'


class AuditLog(models.Model):
    """Audit log for critical operations"""
    ACTION_CHOICES = [
        ('create', 'Create'),
        ('update', 'Update'),
        ('delete', 'Delete'),
        ('visibility_toggle', 'Visibility Toggled'),
        ('stage_reorder', 'Stages Reordered'),
        ('item_transition', 'Item Stage Changed'),
        ('item_update', 'Item Details Updated'),
        ('order_submit', 'Order Submitted'),
        ('order_split', 'Order Split'),
        ('order_status_repair', 'Order Status Recomputed'),
    ]

    user = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, related_name='audit_logs')
    action = models.CharField(max_length=50, choices=ACTION_CHOICES)
    model_name = models.CharField(max_length=100)
    object_id = models.CharField(max_length=100)
    object_name = models.CharField(max_length=255, blank=True, null=True, help_text="Human-readable name of the object (e.g., metal name, order number)")
    object_reference = models.CharField(max_length=255, blank=True, null=True, help_text="Reference identifier (e.g., order number)")
    changes = models.JSONField(default=dict, blank=True)
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'audit_logs'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['-created_at'], name='audit_created_idx'),
            models.Index(fields=['action'], name='audit_action_idx'),
            models.Index(fields=['model_name'], name='audit_model_idx'),
            models.Index(fields=['object_reference'], name='audit_reference_idx'),
        ]
