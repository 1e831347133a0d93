from django.urls import path
from .views import (
    stage_list_create, stage_detail, stage_reorder,
    admin_order_list, order_detail, order_item_transition, order_item_update,
    order_split, order_recompute_status,
    order_submit, my_orders, delivery_lead_time,
)

urlpatterns = [
    # Stage configuration
    path('stages/', stage_list_create, name='stage-list-create'),
    path('stages/reorder/', stage_reorder, name='stage-reorder'),
    path('stages/<int:pk>/', stage_detail, name='stage-detail'),

    # Order administration
    path('orders/', admin_order_list, name='admin-order-list'),
    path('orders/<int:pk>/', order_detail, name='order-detail'),
    path('orders/<int:pk>/split/', order_split, name='order-split'),
    path('orders/<int:pk>/recompute-status/', order_recompute_status, name='order-recompute-status'),
    path('order-items/<int:item_id>/', order_item_update, name='order-item-update'),
    path('order-items/<int:item_id>/transition/', order_item_transition, name='order-item-transition'),

    # Distributor portal
    path('orders/submit/', order_submit, name='order-submit'),
    path('my-orders/', my_orders, name='my-orders'),
    path('delivery-lead-time/', delivery_lead_time, name='delivery-lead-time'),
]
