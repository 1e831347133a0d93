from django.contrib import admin
from .models import StageDefinition, Order, OrderItem, OrderStageAudit


@admin.register(StageDefinition)
class StageDefinitionAdmin(admin.ModelAdmin):
    list_display = ['sequence', 'name', 'type', 'requires_reason']
    list_filter = ['type', 'requires_reason']
    search_fields = ['name']
    ordering = ['sequence']


class OrderItemInline(admin.TabularInline):
    model = OrderItem
    extra = 0
    fields = ['product', 'metal_type', 'metal_color', 'size', 'quantity', 'stage', 'stage_reason']
    raw_id_fields = ['product']


class OrderStageAuditInline(admin.TabularInline):
    model = OrderStageAudit
    extra = 0
    readonly_fields = ['stage', 'reason', 'changed_by', 'created_at']
    can_delete = False


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = ['order_number', 'distributor', 'status', 'requested_delivery_date', 'created_at']
    list_filter = ['status', 'created_at']
    search_fields = ['order_number', 'distributor__company_name', 'distributor__distributor_code']
    ordering = ['-created_at']
    readonly_fields = ['status', 'updated_at']
    inlines = [OrderItemInline, OrderStageAuditInline]


@admin.register(OrderStageAudit)
class OrderStageAuditAdmin(admin.ModelAdmin):
    list_display = ['order', 'stage', 'reason', 'changed_by', 'created_at']
    list_filter = ['stage', 'created_at']
    search_fields = ['order__order_number', 'changed_by']
    readonly_fields = ['order', 'stage', 'reason', 'changed_by', 'created_at']
