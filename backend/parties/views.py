from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from django.db import transaction
from django.db.models import Q
from django.shortcuts import get_object_or_404
from backend.core.exceptions import InUse
from backend.core.permissions import IsAdminRole
from backend.core.utils import create_audit_log
from .models import Distributor
from .serializers import DistributorSerializer, DistributorCreateSerializer


@api_view(['GET', 'POST'])
@permission_classes([IsAdminRole])
def distributor_list_create(request):
    """List distributors or create a distributor together with its login"""
    if request.method == 'GET':
        queryset = Distributor.objects.select_related('user').order_by('distributor_code')
        search = request.query_params.get('search', None)
        region = request.query_params.get('region', None)
        if search:
            queryset = queryset.filter(
                Q(company_name__icontains=search) |
                Q(distributor_code__icontains=search) |
                Q(contact_person__icontains=search) |
                Q(user__email__icontains=search)
            )
        if region:
            queryset = queryset.filter(region__iexact=region)
        serializer = DistributorSerializer(queryset, many=True)
        return Response(serializer.data)

    serializer = DistributorCreateSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    with transaction.atomic():
        distributor = serializer.save()
        create_audit_log(
            request=request,
            action='create',
            model_name='Distributor',
            object_id=distributor.id,
            object_name=distributor.company_name,
            object_reference=distributor.distributor_code,
        )
    return Response(serializer.data, status=status.HTTP_201_CREATED)


@api_view(['GET', 'PATCH', 'DELETE'])
@permission_classes([IsAdminRole])
def distributor_detail(request, pk):
    """Retrieve, update or delete a distributor"""
    distributor = get_object_or_404(Distributor.objects.select_related('user'), pk=pk)

    if request.method == 'GET':
        return Response(DistributorSerializer(distributor).data)

    if request.method == 'PATCH':
        serializer = DistributorSerializer(distributor, data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        with transaction.atomic():
            serializer.save()
            changes = {key: value for key, value in serializer.validated_data.items()}
            if 'is_active' in request.data:
                distributor.user.is_active = str(request.data['is_active']).lower() in ('true', '1')
                distributor.user.save(update_fields=['is_active'])
                changes['is_active'] = distributor.user.is_active
            create_audit_log(
                request=request,
                action='update',
                model_name='Distributor',
                object_id=distributor.id,
                object_name=distributor.company_name,
                object_reference=distributor.distributor_code,
                changes=changes,
            )
        return Response(DistributorSerializer(distributor).data)

    if distributor.orders.exists():
        raise InUse("Cannot delete: Distributor has orders. Deactivate the account instead.",
                    distributor=distributor.distributor_code)
    with transaction.atomic():
        create_audit_log(
            request=request,
            action='delete',
            model_name='Distributor',
            object_id=distributor.id,
            object_name=distributor.company_name,
            object_reference=distributor.distributor_code,
        )
        # The profile cascades from its login
        distributor.user.delete()
    return Response(status=status.HTTP_204_NO_CONTENT)
