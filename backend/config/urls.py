"""
URL configuration for backend project.

Every app mounts its routes under /api/v1/; the Django admin lives at /admin/.
"""
from django.contrib import admin
from django.urls import path, include, re_path
from django.conf import settings
from django.views.static import serve

admin.site.site_header = "Jewel Portal Admin Panel"
admin.site.site_title = "Jewel Portal Admin"
admin.site.index_title = "Catalogue, Orders & Production"

urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/v1/', include('backend.core.urls')),
    path('api/v1/', include('backend.catalog.urls')),
    path('api/v1/', include('backend.parties.urls')),
    path('api/v1/', include('backend.orders.urls')),
    path('api/v1/', include('backend.reports.urls')),
    re_path(r'^media/(?P<path>.*)$', serve, {'document_root': settings.MEDIA_ROOT}),
    re_path(r'^static/(?P<path>.*)$', serve, {'document_root': settings.STATIC_ROOT}),
]
