from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.exceptions import PermissionDenied
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.core.paginator import Paginator
from django.db.models import Count, Prefetch
from django.shortcuts import get_object_or_404
from backend.core.permissions import IsAdminRole
from backend.core.utils import create_audit_log
from . import services
from .filters import ProductFilter, visible_products_for
from .models import Category, Material, Metal, Size, Product
from .registry import MetalRegistry
from .serializers import (
    CategorySerializer, MaterialSerializer, MetalSerializer, MetalWriteSerializer,
    SizeSerializer, ProductSerializer, ProductListSerializer,
)


def _require_admin(request):
    if not request.user.is_portal_admin:
        raise PermissionDenied('Administrator access required.')


def _distributor_of(request):
    """Distributor profile of a non-admin caller, None for admins"""
    if request.user.is_portal_admin:
        return None
    profile = getattr(request.user, 'distributor_profile', None)
    if profile is None:
        raise PermissionDenied('Distributor access required.')
    return profile


# Category views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def category_list_create(request):
    """List all categories or create a new category"""
    if request.method == 'GET':
        categories = Category.objects.annotate(product_count=Count('products'))
        serializer = CategorySerializer(categories, many=True)
        return Response(serializer.data)

    _require_admin(request)
    category = services.create_category(request.data.get('name'), request=request)
    return Response(CategorySerializer(category).data, status=status.HTTP_201_CREATED)


@api_view(['GET', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def category_detail(request, pk):
    """Retrieve, rename or delete a category"""
    category = get_object_or_404(Category, pk=pk)

    if request.method == 'GET':
        return Response(CategorySerializer(category).data)

    _require_admin(request)
    if request.method == 'PATCH':
        category = services.update_category(pk, request.data.get('name', category.name), request=request)
        return Response(CategorySerializer(category).data)

    services.delete_category(pk, request=request)
    return Response(status=status.HTTP_204_NO_CONTENT)


# Material views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def material_list_create(request):
    """List materials with their metals, or create a material"""
    if request.method == 'GET':
        materials = Material.objects.prefetch_related('metals')
        if not request.user.is_portal_admin:
            materials = Material.objects.filter(is_visible=True).prefetch_related(
                Prefetch('metals', queryset=Metal.objects.filter(is_visible=True))
            )
        return Response(MaterialSerializer(materials, many=True).data)

    _require_admin(request)
    material = services.create_material(
        request.data.get('name'),
        request.data.get('min_order_weight', 0),
        request=request,
    )
    return Response(MaterialSerializer(material).data, status=status.HTTP_201_CREATED)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def material_detail(request, pk):
    """Retrieve, update or delete a material"""
    material = get_object_or_404(Material, pk=pk)

    if request.method == 'GET':
        return Response(MaterialSerializer(material).data)

    _require_admin(request)
    if request.method in ('PUT', 'PATCH'):
        material = services.update_material(
            pk,
            request.data.get('name', material.name),
            request.data.get('min_order_weight', material.min_order_weight),
            request=request,
        )
        return Response(MaterialSerializer(material).data)

    services.delete_material(pk, request=request)
    return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['POST'])
@permission_classes([IsAdminRole])
def material_toggle_visibility(request, pk):
    material = services.toggle_material_visibility(pk, request=request)
    return Response(MaterialSerializer(material).data)


# Metal views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def metal_list_create(request):
    """List metals (optionally by material) or create a metal"""
    if request.method == 'GET':
        metals = Metal.objects.select_related('material')
        material_id = request.query_params.get('material')
        if material_id:
            metals = metals.filter(material_id=material_id)
        if not request.user.is_portal_admin:
            metals = metals.filter(is_visible=True, material__is_visible=True)
        return Response(MetalSerializer(metals, many=True).data)

    _require_admin(request)
    serializer = MetalWriteSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data
    if 'material' not in data:
        return Response({'material': ['This field is required.']}, status=status.HTTP_400_BAD_REQUEST)
    metal = services.create_metal(
        data['name'], data['material'], data['conversion_ratio'], data['purity'],
        request=request,
    )
    return Response(MetalSerializer(metal).data, status=status.HTTP_201_CREATED)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def metal_detail(request, pk):
    """Retrieve, update or delete a metal"""
    metal = get_object_or_404(Metal.objects.select_related('material'), pk=pk)

    if request.method == 'GET':
        return Response(MetalSerializer(metal).data)

    _require_admin(request)
    if request.method in ('PUT', 'PATCH'):
        payload = {
            'name': metal.name,
            'conversion_ratio': metal.conversion_ratio,
            'purity': metal.purity,
        }
        payload.update({key: value for key, value in request.data.items() if key in
                        ('name', 'conversion_ratio', 'purity', 'migrate_order_items')})
        serializer = MetalWriteSerializer(data=payload)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        metal = services.update_metal(
            pk, data['name'], data['conversion_ratio'], data['purity'],
            migrate_order_items=data['migrate_order_items'],
            request=request,
        )
        return Response(MetalSerializer(metal).data)

    services.delete_metal(pk, request=request)
    return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['POST'])
@permission_classes([IsAdminRole])
def metal_toggle_visibility(request, pk):
    metal = services.toggle_metal_visibility(pk, request=request)
    return Response(MetalSerializer(metal).data)


# Size views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def size_list_create(request):
    if request.method == 'GET':
        sizes = Size.objects.all()
        category = request.query_params.get('category')
        if category:
            sizes = sizes.filter(category=category)
        return Response(SizeSerializer(sizes, many=True).data)

    _require_admin(request)
    size = services.create_size(request.data.get('name'), request.data.get('category', 'General'))
    return Response(SizeSerializer(size).data, status=status.HTTP_201_CREATED)


@api_view(['DELETE'])
@permission_classes([IsAdminRole])
def size_detail(request, pk):
    size = get_object_or_404(Size, pk=pk)
    size.delete()
    return Response(status=status.HTTP_204_NO_CONTENT)


# Product views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def product_list_create(request):
    """List catalogue products (paginated) or create a product"""
    if request.method == 'GET':
        queryset = Product.objects.select_related('category')
        distributor = _distributor_of(request)
        if distributor is not None:
            queryset = visible_products_for(distributor, queryset)

        filterset = ProductFilter(request.query_params, queryset=queryset)
        queryset = filterset.qs.order_by('-updated_at', '-created_at')

        try:
            page = int(request.query_params.get('page', 1))
            limit = int(request.query_params.get('limit', 50))
        except ValueError:
            return Response({'error': 'page and limit must be integers'}, status=status.HTTP_400_BAD_REQUEST)

        paginator = Paginator(queryset, max(1, min(limit, 200)))
        page_obj = paginator.get_page(page)

        serializer = ProductListSerializer(page_obj, many=True)
        return Response({
            'results': serializer.data,
            'count': paginator.count,
            'next': page_obj.next_page_number() if page_obj.has_next() else None,
            'previous': page_obj.previous_page_number() if page_obj.has_previous() else None,
            'page': page_obj.number,
            'page_size': paginator.per_page,
            'total_pages': paginator.num_pages,
        })

    _require_admin(request)
    serializer = ProductSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    product = serializer.save()
    create_audit_log(
        request=request,
        action='create',
        model_name='Product',
        object_id=product.id,
        object_name=product.model_no,
        changes={'base_weight': product.base_weight, 'visibility': product.visibility},
    )
    return Response(ProductSerializer(product).data, status=status.HTTP_201_CREATED)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def product_detail(request, pk):
    """Retrieve, update or retire a product"""
    product = get_object_or_404(Product.objects.select_related('category'), pk=pk)

    if request.method == 'GET':
        distributor = _distributor_of(request)
        if distributor is not None and not product.is_visible_to(distributor):
            return Response({'error': 'Product not found'}, status=status.HTTP_404_NOT_FOUND)
        return Response(ProductSerializer(product).data)

    _require_admin(request)
    if request.method in ('PUT', 'PATCH'):
        serializer = ProductSerializer(product, data=request.data, partial=request.method == 'PATCH')
        serializer.is_valid(raise_exception=True)
        old_data = {
            'model_no': product.model_no,
            'base_weight': product.base_weight,
            'visibility': product.visibility,
            'is_active': product.is_active,
        }
        serializer.save()
        new_data = {
            'model_no': product.model_no,
            'base_weight': product.base_weight,
            'visibility': product.visibility,
            'is_active': product.is_active,
        }
        changes = {k: {'old': old_data[k], 'new': new_data[k]} for k in old_data if old_data[k] != new_data[k]}
        if changes:
            create_audit_log(
                request=request,
                action='update',
                model_name='Product',
                object_id=product.id,
                object_name=product.model_no,
                changes=changes,
            )
        return Response(serializer.data)

    retired = services.retire_product(pk, request=request)
    if retired is not None:
        return Response({'message': 'Product is referenced by orders and was disabled instead of deleted.',
                         'product': ProductSerializer(retired).data})
    return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def product_weight_preview(request, pk):
    """Weight of one piece of the product in each selectable metal"""
    product = get_object_or_404(Product, pk=pk)
    distributor = _distributor_of(request)
    if distributor is not None and not product.is_visible_to(distributor):
        return Response({'error': 'Product not found'}, status=status.HTTP_404_NOT_FOUND)

    registry = MetalRegistry.load(visible_only=True)
    return Response({
        'product': product.id,
        'model_no': product.model_no,
        'base_weight': product.base_weight,
        'weights': services.weight_preview(product, registry),
    })
