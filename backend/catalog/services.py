"""
Registry maintenance for materials, metals, categories, sizes and products.

The single-base-metal rule (at most one metal with ratio 1.0 per material) is
not a database constraint; it is enforced here on create and update.
"""
import logging

from django.db import IntegrityError, transaction

from backend.core.exceptions import (
    BaseMetalConflict, DuplicateName, InUse, NotFound, PortalValidationError,
)
from backend.core.utils import create_audit_log
from backend.orders.models import OrderItem
from .models import Category, Material, Metal, Product, Size

logger = logging.getLogger(__name__)


def _clean_name(name, label):
    name = (name or '').strip()
    if not name:
        raise PortalValidationError(f"{label} name required.", field='name')
    return name


def _as_float(value, field, default=None):
    if value in (None, ''):
        if default is None:
            raise PortalValidationError(f"{field} is required.", field=field)
        return float(default)
    try:
        return float(value)
    except (TypeError, ValueError):
        raise PortalValidationError(f"{field} must be a number.", field=field, value=value)


def _validate_metal_numbers(conversion_ratio, purity):
    if conversion_ratio <= 0:
        raise PortalValidationError("Conversion ratio must be greater than 0.", field='conversion_ratio')
    if not 0 <= purity <= 100:
        raise PortalValidationError("Purity must be between 0 and 100.", field='purity')


def _ensure_unique_name(model, name, label, exclude_id=None):
    clash = model.objects.filter(name__iexact=name)
    if exclude_id is not None:
        clash = clash.exclude(pk=exclude_id)
    if clash.exists():
        raise DuplicateName(f"{label} '{name}' already exists.", name=name)


def _ensure_single_base_metal(material_id, conversion_ratio, exclude_id=None):
    if conversion_ratio != Metal.BASE_RATIO:
        return
    existing = Metal.objects.filter(material_id=material_id, conversion_ratio=Metal.BASE_RATIO)
    if exclude_id is not None:
        existing = existing.exclude(pk=exclude_id)
    base = existing.first()
    if base is not None:
        raise BaseMetalConflict(
            f"Error: This material already has a Base Metal (Ratio 1.0): {base.name}.",
            material_id=material_id, base_metal=base.name,
        )


def _get(model, pk, label):
    try:
        return model.objects.get(pk=pk)
    except model.DoesNotExist:
        raise NotFound(f"{label} not found.", id=pk)


# --- Materials ---

def create_material(name, min_order_weight=0, user=None, request=None):
    name = _clean_name(name, 'Material')
    min_order_weight = _as_float(min_order_weight, 'min_order_weight', default=0)
    if min_order_weight < 0:
        raise PortalValidationError("Minimum order weight cannot be negative.", field='min_order_weight')

    with transaction.atomic():
        _ensure_unique_name(Material, name, 'Material')
        try:
            material = Material.objects.create(name=name, min_order_weight=min_order_weight)
        except IntegrityError:
            raise DuplicateName(f"Material '{name}' already exists.", name=name)
        create_audit_log(request=request, user=user, action='create', model_name='Material',
                         object_id=material.id, object_name=material.name,
                         changes={'min_order_weight': min_order_weight})
    logger.info(f"Material created: {material.name} (min {min_order_weight}g)")
    return material


def update_material(material_id, name, min_order_weight=0, user=None, request=None):
    name = _clean_name(name, 'Material')
    min_order_weight = _as_float(min_order_weight, 'min_order_weight', default=0)
    if min_order_weight < 0:
        raise PortalValidationError("Minimum order weight cannot be negative.", field='min_order_weight')

    with transaction.atomic():
        material = _get(Material.objects.select_for_update(), material_id, 'Material')
        _ensure_unique_name(Material, name, 'Material', exclude_id=material.id)
        changes = {
            'name': [material.name, name],
            'min_order_weight': [material.min_order_weight, min_order_weight],
        }
        material.name = name
        material.min_order_weight = min_order_weight
        material.save(update_fields=['name', 'min_order_weight', 'updated_at'])
        create_audit_log(request=request, user=user, action='update', model_name='Material',
                         object_id=material.id, object_name=material.name, changes=changes)
    return material


def toggle_material_visibility(material_id, user=None, request=None):
    with transaction.atomic():
        material = _get(Material.objects.select_for_update(), material_id, 'Material')
        material.is_visible = not material.is_visible
        material.save(update_fields=['is_visible', 'updated_at'])
        create_audit_log(request=request, user=user, action='visibility_toggle', model_name='Material',
                         object_id=material.id, object_name=material.name,
                         changes={'is_visible': material.is_visible})
    return material


def delete_material(material_id, user=None, request=None):
    with transaction.atomic():
        material = _get(Material, material_id, 'Material')
        metal_names = list(material.metals.values_list('name', flat=True))
        if metal_names:
            raise InUse("Cannot delete: Material is in use.", material=material.name, metals=metal_names)
        create_audit_log(request=request, user=user, action='delete', model_name='Material',
                         object_id=material.id, object_name=material.name)
        material.delete()
    logger.info(f"Material deleted: {material.name}")


# --- Metals ---

def create_metal(name, material_id, conversion_ratio=1.0, purity=0.0, user=None, request=None):
    name = _clean_name(name, 'Metal')
    conversion_ratio = _as_float(conversion_ratio, 'conversion_ratio', default=1.0)
    purity = _as_float(purity, 'purity', default=0.0)
    _validate_metal_numbers(conversion_ratio, purity)

    with transaction.atomic():
        material = _get(Material.objects.select_for_update(), material_id, 'Material')
        _ensure_unique_name(Metal, name, 'Metal')
        _ensure_single_base_metal(material.id, conversion_ratio)
        try:
            metal = Metal.objects.create(
                name=name, material=material,
                conversion_ratio=conversion_ratio, purity=purity,
            )
        except IntegrityError:
            raise DuplicateName(f"Metal '{name}' already exists.", name=name)
        create_audit_log(request=request, user=user, action='create', model_name='Metal',
                         object_id=metal.id, object_name=metal.name,
                         changes={'material': material.name, 'conversion_ratio': conversion_ratio, 'purity': purity})
    logger.info(f"Metal created: {metal.name} ({material.name}, ratio {conversion_ratio}, purity {purity})")
    return metal


def update_metal(metal_id, name, conversion_ratio=1.0, purity=0.0, migrate_order_items=False,
                 user=None, request=None):
    """
    Update a metal.

    Weights are never stored, so a new ratio or purity changes the weight of
    every historical item of this metal. A rename detaches historical items
    unless ``migrate_order_items`` rewrites their metal name in the same
    transaction.
    """
    name = _clean_name(name, 'Metal')
    conversion_ratio = _as_float(conversion_ratio, 'conversion_ratio', default=1.0)
    purity = _as_float(purity, 'purity', default=0.0)
    _validate_metal_numbers(conversion_ratio, purity)

    with transaction.atomic():
        metal = _get(Metal.objects.select_for_update(), metal_id, 'Metal')
        # Lock the parent so two concurrent base-metal promotions serialize
        Material.objects.select_for_update().filter(pk=metal.material_id).first()
        _ensure_unique_name(Metal, name, 'Metal', exclude_id=metal.id)
        _ensure_single_base_metal(metal.material_id, conversion_ratio, exclude_id=metal.id)

        old_name = metal.name
        changes = {
            'name': [old_name, name],
            'conversion_ratio': [metal.conversion_ratio, conversion_ratio],
            'purity': [metal.purity, purity],
        }
        metal.name = name
        metal.conversion_ratio = conversion_ratio
        metal.purity = purity
        metal.save(update_fields=['name', 'conversion_ratio', 'purity', 'updated_at'])

        if old_name != name:
            if migrate_order_items:
                moved = OrderItem.objects.filter(metal_type=old_name).update(metal_type=name)
                changes['migrated_order_items'] = moved
            else:
                orphaned = OrderItem.objects.filter(metal_type=old_name).count()
                if orphaned:
                    logger.warning(f"Metal renamed {old_name} -> {name}: {orphaned} order items keep the old name and fall back to the unknown-metal weight")
                changes['orphaned_order_items'] = orphaned

        create_audit_log(request=request, user=user, action='update', model_name='Metal',
                         object_id=metal.id, object_name=metal.name, changes=changes)
    return metal


def toggle_metal_visibility(metal_id, user=None, request=None):
    with transaction.atomic():
        metal = _get(Metal.objects.select_for_update(), metal_id, 'Metal')
        metal.is_visible = not metal.is_visible
        metal.save(update_fields=['is_visible', 'updated_at'])
        create_audit_log(request=request, user=user, action='visibility_toggle', model_name='Metal',
                         object_id=metal.id, object_name=metal.name,
                         changes={'is_visible': metal.is_visible})
    return metal


def delete_metal(metal_id, user=None, request=None):
    with transaction.atomic():
        metal = _get(Metal, metal_id, 'Metal')
        # No foreign key from OrderItem to Metal, so the reference check is explicit
        in_use = OrderItem.objects.filter(metal_type=metal.name).count()
        if in_use:
            raise InUse("Cannot delete: Metal is in use.", metal=metal.name, order_items=in_use)
        create_audit_log(request=request, user=user, action='delete', model_name='Metal',
                         object_id=metal.id, object_name=metal.name)
        metal.delete()
    logger.info(f"Metal deleted: {metal.name}")


# --- Categories & sizes ---

def create_category(name, user=None, request=None):
    name = (name or '').strip()
    if len(name) < 2:
        raise PortalValidationError("Category name required.", field='name')
    with transaction.atomic():
        _ensure_unique_name(Category, name, 'Category')
        category = Category.objects.create(name=name)
        create_audit_log(request=request, user=user, action='create', model_name='Category',
                         object_id=category.id, object_name=category.name)
    return category


def update_category(category_id, name, user=None, request=None):
    name = (name or '').strip()
    if len(name) < 2:
        raise PortalValidationError("Category name required.", field='name')
    with transaction.atomic():
        category = _get(Category, category_id, 'Category')
        _ensure_unique_name(Category, name, 'Category', exclude_id=category.id)
        old_name = category.name
        category.name = name
        category.save()
        create_audit_log(request=request, user=user, action='update', model_name='Category',
                         object_id=category.id, object_name=category.name,
                         changes={'name': [old_name, name]})
    return category


def delete_category(category_id, user=None, request=None):
    with transaction.atomic():
        category = _get(Category, category_id, 'Category')
        if category.products.exists():
            raise InUse("Cannot delete: Category is in use.", category=category.name)
        create_audit_log(request=request, user=user, action='delete', model_name='Category',
                         object_id=category.id, object_name=category.name)
        category.delete()


def create_size(name, category='General'):
    name = _clean_name(name, 'Size')
    category = (category or '').strip() or 'General'
    if Size.objects.filter(name=name, category=category).exists():
        raise DuplicateName(f"Size '{name}' already exists in {category}.", name=name, category=category)
    return Size.objects.create(name=name, category=category)


# --- Products ---

def retire_product(product_id, user=None, request=None):
    """
    Delete a product, or soft-disable it when order items reference it.

    Returns the product when it was disabled, ``None`` when it was deleted.
    """
    with transaction.atomic():
        product = _get(Product.objects.select_for_update(), product_id, 'Product')
        if OrderItem.objects.filter(product=product).exists():
            product.is_active = False
            product.save(update_fields=['is_active', 'updated_at'])
            create_audit_log(request=request, user=user, action='update', model_name='Product',
                             object_id=product.id, object_name=product.model_no,
                             changes={'is_active': False, 'reason': 'Referenced by orders'})
            return product
        create_audit_log(request=request, user=user, action='delete', model_name='Product',
                         object_id=product.id, object_name=product.model_no)
        product.delete()
    return None


def weight_preview(product, registry):
    """Gross weight of one piece of ``product`` in every visible metal of the registry"""
    return [
        {
            'metal': metal.name,
            'material': metal.material_name,
            'weight': round(product.base_weight * metal.conversion_ratio, 2),
        }
        for metal in sorted(registry, key=lambda m: (m.material_name, m.name))
    ]
