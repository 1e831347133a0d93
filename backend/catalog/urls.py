from django.urls import path
from .views import (
    category_list_create, category_detail,
    material_list_create, material_detail, material_toggle_visibility,
    metal_list_create, metal_detail, metal_toggle_visibility,
    size_list_create, size_detail,
    product_list_create, product_detail, product_weight_preview,
)

urlpatterns = [
    # Category endpoints
    path('categories/', category_list_create, name='category-list-create'),
    path('categories/<int:pk>/', category_detail, name='category-detail'),

    # Material endpoints
    path('materials/', material_list_create, name='material-list-create'),
    path('materials/<int:pk>/', material_detail, name='material-detail'),
    path('materials/<int:pk>/toggle-visibility/', material_toggle_visibility, name='material-toggle-visibility'),

    # Metal endpoints
    path('metals/', metal_list_create, name='metal-list-create'),
    path('metals/<int:pk>/', metal_detail, name='metal-detail'),
    path('metals/<int:pk>/toggle-visibility/', metal_toggle_visibility, name='metal-toggle-visibility'),

    # Size endpoints
    path('sizes/', size_list_create, name='size-list-create'),
    path('sizes/<int:pk>/', size_detail, name='size-detail'),

    # Product endpoints
    path('products/', product_list_create, name='product-list-create'),
    path('products/<int:pk>/', product_detail, name='product-detail'),
    path('products/<int:pk>/weights/', product_weight_preview, name='product-weight-preview'),
]
