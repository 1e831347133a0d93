from django.contrib import admin
from .models import Distributor


@admin.register(Distributor)
class DistributorAdmin(admin.ModelAdmin):
    list_display = ['distributor_code', 'company_name', 'contact_person', 'region', 'user', 'created_at']
    list_filter = ['region', 'created_at']
    search_fields = ['distributor_code', 'company_name', 'contact_person', 'user__email']
    ordering = ['distributor_code']
    readonly_fields = ['created_at', 'updated_at']
