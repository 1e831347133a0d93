import logging
from datetime import datetime

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response

from backend.core.permissions import IsAdminRole, IsDistributorRole
from . import services

logger = logging.getLogger('backend.reports')


def _parse_date(value, field):
    if not value:
        return None
    try:
        return datetime.strptime(value, '%Y-%m-%d').date()
    except ValueError:
        raise ValueError(f"{field} must be YYYY-MM-DD")


def _parse_int(value):
    return int(value) if value not in (None, '') else None


@api_view(['GET'])
@permission_classes([IsAdminRole])
def admin_dashboard(request):
    """Admin dashboard for a date range preset (TODAY, THIS_WEEK, ..., CUSTOM)"""
    try:
        start = _parse_date(request.query_params.get('date_from'), 'date_from')
        end = _parse_date(request.query_params.get('date_to'), 'date_to')
    except ValueError as e:
        return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)

    date_from, date_to = services.resolve_date_range(request.query_params.get('range', 'ALL'), start, end)
    return Response(services.dashboard_stats(date_from, date_to))


@api_view(['GET'])
@permission_classes([IsAdminRole])
def report_data(request):
    """Report builder: type DISTRIBUTOR, ORDER, DATE or ADVANCED"""
    params = request.query_params
    try:
        item_filter = services.build_report_filter(
            params.get('type'),
            distributor_id=_parse_int(params.get('distributor')),
            order_number=params.get('order_number'),
            date_from=_parse_date(params.get('date_from'), 'date_from'),
            date_to=_parse_date(params.get('date_to'), 'date_to'),
            category_id=_parse_int(params.get('category')),
            metal_type=params.get('metal_type'),
            metal_color=params.get('metal_color'),
        )
    except ValueError as e:
        return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)
    return Response(services.report_data(item_filter))


@api_view(['GET'])
@permission_classes([IsAdminRole])
def report_options(request):
    return Response(services.report_options())


@api_view(['GET'])
@permission_classes([IsDistributorRole])
def distributor_dashboard(request):
    return Response(services.distributor_dashboard(request.user.distributor_profile.id))
