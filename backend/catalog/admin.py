from django.contrib import admin
from .models import Category, Material, Metal, Size, Product


@admin.register(Category)
class CategoryAdmin(admin.ModelAdmin):
    list_display = ['name', 'created_at']
    search_fields = ['name']
    ordering = ['name']


class MetalInline(admin.TabularInline):
    model = Metal
    extra = 0
    fields = ['name', 'conversion_ratio', 'purity', 'is_visible']


@admin.register(Material)
class MaterialAdmin(admin.ModelAdmin):
    list_display = ['name', 'min_order_weight', 'is_visible', 'created_at']
    list_filter = ['is_visible']
    search_fields = ['name']
    ordering = ['name']
    inlines = [MetalInline]


@admin.register(Metal)
class MetalAdmin(admin.ModelAdmin):
    list_display = ['name', 'material', 'conversion_ratio', 'purity', 'is_visible']
    list_filter = ['material', 'is_visible']
    search_fields = ['name', 'material__name']
    ordering = ['material__name', 'name']


@admin.register(Size)
class SizeAdmin(admin.ModelAdmin):
    list_display = ['name', 'category', 'created_at']
    list_filter = ['category']
    search_fields = ['name']


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ['model_no', 'title', 'category', 'base_weight', 'visibility', 'is_active', 'created_at']
    list_filter = ['is_active', 'visibility', 'category', 'created_at']
    search_fields = ['model_no', 'title']
    ordering = ['-created_at']
    readonly_fields = ['created_at', 'updated_at']
    filter_horizontal = ['allowed_distributors']
