from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.exceptions import PermissionDenied
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.core.paginator import Paginator
from django.db.models import Prefetch
from django.shortcuts import get_object_or_404
from backend.catalog.registry import MetalRegistry
from backend.core.permissions import IsAdminRole, IsDistributorRole
from . import services, stages as stage_registry
from .filters import OrderFilter
from .models import Order, OrderItem, StageDefinition
from .serializers import (
    StageDefinitionSerializer, StageWriteSerializer, StageReorderSerializer,
    OrderStageAuditSerializer, SubmitOrderSerializer, TransitionSerializer,
    SplitOrderSerializer, OrderItemDetailsSerializer,
)
from .policy import CartLine, earliest_delivery_date, lead_time_days
from .state_machine import recompute_order_status, split_order, transition_item
from .stages import StageRegistry


def orders_with_items():
    return Order.objects.select_related('distributor').prefetch_related(
        Prefetch('items', queryset=OrderItem.objects.select_related('product__category'))
    )


def _paginate(request, queryset, describe):
    try:
        page = int(request.query_params.get('page', 1))
        limit = int(request.query_params.get('limit', 25))
    except ValueError:
        return Response({'error': 'page and limit must be integers'}, status=status.HTTP_400_BAD_REQUEST)
    paginator = Paginator(queryset, max(1, min(limit, 100)))
    page_obj = paginator.get_page(page)
    return Response({
        'results': [describe(order) for order in page_obj],
        'count': paginator.count,
        'next': page_obj.next_page_number() if page_obj.has_next() else None,
        'previous': page_obj.previous_page_number() if page_obj.has_previous() else None,
        'page': page_obj.number,
        'page_size': paginator.per_page,
        'total_pages': paginator.num_pages,
    })


# Stage configuration
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def stage_list_create(request):
    """List the pipeline in sequence order or append a stage"""
    if request.method == 'GET':
        return Response(StageDefinitionSerializer(StageDefinition.objects.all(), many=True).data)

    if not request.user.is_portal_admin:
        raise PermissionDenied('Administrator access required.')
    serializer = StageWriteSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data
    stage = stage_registry.create_stage(
        data['name'], data['type'], data['requires_reason'], data['reasons'], request=request,
    )
    return Response(StageDefinitionSerializer(stage).data, status=status.HTTP_201_CREATED)


@api_view(['PUT', 'DELETE'])
@permission_classes([IsAdminRole])
def stage_detail(request, pk):
    if request.method == 'PUT':
        serializer = StageWriteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        stage = stage_registry.update_stage(
            pk, data['name'], data['type'], data['requires_reason'], data['reasons'], request=request,
        )
        return Response(StageDefinitionSerializer(stage).data)

    stage_registry.delete_stage(pk, request=request)
    return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['POST'])
@permission_classes([IsAdminRole])
def stage_reorder(request):
    serializer = StageReorderSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    stages = stage_registry.reorder_stages(serializer.validated_data['ordered_ids'], request=request)
    return Response(StageDefinitionSerializer(stages, many=True).data)


# Order administration
@api_view(['GET'])
@permission_classes([IsAdminRole])
def admin_order_list(request):
    """All orders with progress, item weights and material summary"""
    filterset = OrderFilter(request.query_params, queryset=orders_with_items())
    queryset = filterset.qs.order_by('-created_at', '-id')
    metals = MetalRegistry.load()
    stages = StageRegistry.load()
    return _paginate(request, queryset, lambda order: services.describe_order(order, metals, stages))


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def order_detail(request, pk):
    """One order with its history; distributors only see their own"""
    order = get_object_or_404(orders_with_items(), pk=pk)
    if not request.user.is_portal_admin:
        profile = getattr(request.user, 'distributor_profile', None)
        if profile is None or order.distributor_id != profile.id:
            return Response({'error': 'Order not found'}, status=status.HTTP_404_NOT_FOUND)

    data = services.describe_order(order, MetalRegistry.load(), StageRegistry.load())
    data['history'] = OrderStageAuditSerializer(order.history.all(), many=True).data
    return Response(data)


@api_view(['POST'])
@permission_classes([IsAdminRole])
def order_item_transition(request, item_id):
    """Move an item to another stage; answers with the re-derived order status"""
    serializer = TransitionSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    order, derived_status = transition_item(
        item_id,
        serializer.validated_data['stage'],
        serializer.validated_data['reason'],
        actor=request.user,
        request=request,
    )
    return Response({
        'order': order.id,
        'order_number': order.order_number,
        'derived_status': derived_status,
    })


@api_view(['PATCH'])
@permission_classes([IsAdminRole])
def order_item_update(request, item_id):
    serializer = OrderItemDetailsSerializer(data=request.data, partial=True)
    serializer.is_valid(raise_exception=True)
    item = services.update_item_details(item_id, serializer.validated_data, actor=request.user, request=request)
    order = get_object_or_404(orders_with_items(), pk=item.order_id)
    return Response(services.describe_order(order, MetalRegistry.load(), StageRegistry.load()))


@api_view(['POST'])
@permission_classes([IsAdminRole])
def order_split(request, pk):
    serializer = SplitOrderSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    new_order = split_order(pk, serializer.validated_data['item_ids'], actor=request.user, request=request)

    metals = MetalRegistry.load()
    stages = StageRegistry.load()
    orders = {order.id: order for order in orders_with_items().filter(pk__in=[pk, new_order.id])}
    return Response({
        'message': 'Order split successfully',
        'original': services.describe_order(orders[int(pk)], metals, stages),
        'new_order': services.describe_order(orders[new_order.id], metals, stages),
    }, status=status.HTTP_201_CREATED)


@api_view(['POST'])
@permission_classes([IsAdminRole])
def order_recompute_status(request, pk):
    order, derived_status = recompute_order_status(pk, actor=request.user, request=request)
    return Response({'order': order.id, 'order_number': order.order_number, 'derived_status': derived_status})


# Distributor portal
@api_view(['POST'])
@permission_classes([IsDistributorRole])
def order_submit(request):
    """Submit the distributor's cart as a new order"""
    serializer = SubmitOrderSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data
    order = services.submit_order(
        request.user.distributor_profile,
        [CartLine(**line) for line in data['items']],
        instruction_note=data['instruction_note'],
        requested_delivery_date=data['requested_delivery_date'],
        actor=request.user,
        request=request,
    )
    order = orders_with_items().get(pk=order.id)
    return Response(
        services.describe_order(order, MetalRegistry.load(), StageRegistry.load()),
        status=status.HTTP_201_CREATED,
    )


@api_view(['GET'])
@permission_classes([IsDistributorRole])
def my_orders(request):
    queryset = orders_with_items().filter(distributor=request.user.distributor_profile).order_by('-created_at', '-id')
    status_filter = request.query_params.get('status')
    if status_filter:
        queryset = queryset.filter(status=status_filter)
    metals = MetalRegistry.load()
    stages = StageRegistry.load()
    return _paginate(request, queryset, lambda order: services.describe_order(order, metals, stages))


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def delivery_lead_time(request):
    """Earliest delivery date a cart may request today"""
    return Response({
        'lead_time_days': lead_time_days(),
        'earliest_delivery_date': earliest_delivery_date(),
    })
