import django_filters
from django.db.models import Q
from .models import Order


class OrderFilter(django_filters.FilterSet):
    """Admin order list filter"""
    search = django_filters.CharFilter(method='filter_search', label='Search')
    distributor = django_filters.NumberFilter(field_name='distributor_id')
    status = django_filters.ChoiceFilter(choices=Order.STATUS_CHOICES)
    stage = django_filters.CharFilter(method='filter_stage', label='Item stage')
    date_from = django_filters.DateFilter(field_name='created_at', lookup_expr='date__gte')
    date_to = django_filters.DateFilter(field_name='created_at', lookup_expr='date__lte')

    class Meta:
        model = Order
        fields = ['search', 'distributor', 'status', 'stage', 'date_from', 'date_to']

    def filter_search(self, queryset, name, value):
        if not value or not value.strip():
            return queryset
        value = value.strip()
        return queryset.filter(
            Q(order_number__icontains=value) |
            Q(distributor__company_name__icontains=value) |
            Q(distributor__distributor_code__icontains=value)
        )

    def filter_stage(self, queryset, name, value):
        """Orders having at least one item in the stage"""
        if not value:
            return queryset
        return queryset.filter(items__stage=value).distinct()
