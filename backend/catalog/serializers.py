from rest_framework import serializers
from backend.parties.models import Distributor
from .models import Category, Material, Metal, Size, Product


class CategorySerializer(serializers.ModelSerializer):
    product_count = serializers.IntegerField(read_only=True, required=False)

    class Meta:
        model = Category
        fields = ['id', 'name', 'product_count', 'created_at', 'updated_at']


class MetalSerializer(serializers.ModelSerializer):
    material_name = serializers.CharField(source='material.name', read_only=True)
    is_base = serializers.BooleanField(read_only=True)

    class Meta:
        model = Metal
        fields = ['id', 'name', 'material', 'material_name', 'conversion_ratio', 'purity',
                  'is_base', 'is_visible', 'created_at', 'updated_at']
        read_only_fields = ['is_visible']


class MetalWriteSerializer(serializers.Serializer):
    """Input shape for metal create/update; registry rules are checked by the service"""
    name = serializers.CharField(max_length=100)
    material = serializers.IntegerField(required=False)
    conversion_ratio = serializers.FloatField(default=1.0, min_value=0.0)
    purity = serializers.FloatField(default=0.0, min_value=0.0, max_value=100.0)
    migrate_order_items = serializers.BooleanField(default=False)


class MaterialSerializer(serializers.ModelSerializer):
    metals = MetalSerializer(many=True, read_only=True)

    class Meta:
        model = Material
        fields = ['id', 'name', 'min_order_weight', 'is_visible', 'metals', 'created_at', 'updated_at']
        read_only_fields = ['is_visible']


class SizeSerializer(serializers.ModelSerializer):
    class Meta:
        model = Size
        fields = ['id', 'name', 'category', 'created_at']


class ProductSerializer(serializers.ModelSerializer):
    category = CategorySerializer(read_only=True)
    category_id = serializers.PrimaryKeyRelatedField(
        queryset=Category.objects.all(),
        source='category',
        write_only=True,
    )
    allowed_distributors = serializers.PrimaryKeyRelatedField(
        queryset=Distributor.objects.all(),
        many=True,
        required=False,
    )

    class Meta:
        model = Product
        fields = ['id', 'model_no', 'title', 'category', 'category_id', 'base_weight',
                  'main_image', 'additional_images', 'cad_file', 'tags', 'visibility',
                  'allowed_distributors', 'is_active', 'created_at', 'updated_at']

    def validate_model_no(self, value):
        value = value.strip()
        if not value:
            raise serializers.ValidationError("Model number is required.")
        return value

    def validate_base_weight(self, value):
        if value <= 0:
            raise serializers.ValidationError("Base weight must be greater than 0.")
        return value

    def validate_additional_images(self, value):
        if not isinstance(value, list):
            raise serializers.ValidationError("Expected a list of image URLs.")
        return value

    def validate_tags(self, value):
        if not isinstance(value, list):
            raise serializers.ValidationError("Expected a list of tags.")
        return [str(tag).strip() for tag in value if str(tag).strip()]

    def validate(self, attrs):
        visibility = attrs.get('visibility', getattr(self.instance, 'visibility', Product.VISIBILITY_ALL))
        if visibility == Product.VISIBILITY_ALL:
            attrs['allowed_distributors'] = []
        return attrs


class ProductListSerializer(serializers.ModelSerializer):
    """Lightweight product list row"""
    category_name = serializers.CharField(source='category.name', read_only=True)

    class Meta:
        model = Product
        fields = ['id', 'model_no', 'title', 'category', 'category_name', 'base_weight',
                  'main_image', 'tags', 'visibility', 'is_active']
