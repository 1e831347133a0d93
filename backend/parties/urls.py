from django.urls import path
from .views import distributor_list_create, distributor_detail

urlpatterns = [
    path('distributors/', distributor_list_create, name='distributor-list-create'),
    path('distributors/<int:pk>/', distributor_detail, name='distributor-detail'),
]
