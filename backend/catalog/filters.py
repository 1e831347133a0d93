import django_filters
from django.db.models import Q
from .models import Product


class ProductFilter(django_filters.FilterSet):
    """Catalogue filter for Product model using django-filter"""

    search = django_filters.CharFilter(method='filter_search', label='Search')
    category = django_filters.NumberFilter(field_name='category_id', lookup_expr='exact')
    active = django_filters.CharFilter(method='filter_active', label='Active')
    visibility = django_filters.ChoiceFilter(choices=Product.VISIBILITY_CHOICES)
    tag = django_filters.CharFilter(method='filter_tag', label='Tag')
    min_weight = django_filters.NumberFilter(field_name='base_weight', lookup_expr='gte')
    max_weight = django_filters.NumberFilter(field_name='base_weight', lookup_expr='lte')

    class Meta:
        model = Product
        fields = ['search', 'category', 'active', 'visibility', 'tag', 'min_weight', 'max_weight']

    def filter_search(self, queryset, name, value):
        """Match every word against model number, title or category name"""
        if not value or not value.strip():
            return queryset
        for word in value.split():
            queryset = queryset.filter(
                Q(model_no__icontains=word) |
                Q(title__icontains=word) |
                Q(category__name__icontains=word)
            )
        return queryset

    def filter_active(self, queryset, name, value):
        if value is None or value == '':
            return queryset
        return queryset.filter(is_active=value.lower() in ('true', '1', 'yes'))

    def filter_tag(self, queryset, name, value):
        # JSON list membership differs between SQLite and Postgres, so match in Python
        if not value:
            return queryset
        wanted = value.strip().lower()
        ids = [
            pk for pk, tags in queryset.values_list('id', 'tags')
            if any(str(tag).lower() == wanted for tag in (tags or []))
        ]
        return queryset.filter(id__in=ids)


def visible_products_for(distributor, queryset=None):
    """Active products a distributor may see: visibility ALL, or RESTRICTED to them"""
    queryset = queryset if queryset is not None else Product.objects.all()
    return queryset.filter(is_active=True).filter(
        Q(visibility=Product.VISIBILITY_ALL) |
        Q(visibility=Product.VISIBILITY_RESTRICTED, allowed_distributors=distributor)
    ).distinct()
