from django.urls import path
from . import views

urlpatterns = [
    path('reports/dashboard/', views.admin_dashboard, name='admin-dashboard'),
    path('reports/data/', views.report_data, name='report-data'),
    path('reports/options/', views.report_options, name='report-options'),
    path('reports/distributor-dashboard/', views.distributor_dashboard, name='distributor-dashboard'),
]
