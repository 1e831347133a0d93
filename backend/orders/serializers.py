from rest_framework import serializers
from .models import StageDefinition, OrderItem, OrderStageAudit


class StageDefinitionSerializer(serializers.ModelSerializer):
    reason_list = serializers.SerializerMethodField()

    class Meta:
        model = StageDefinition
        fields = ['id', 'name', 'type', 'sequence', 'requires_reason', 'reasons', 'reason_list',
                  'created_at', 'updated_at']
        read_only_fields = ['sequence']

    def get_reason_list(self, obj):
        from .stages import parse_reasons
        return list(parse_reasons(obj.reasons)) if obj.requires_reason else []


class StageWriteSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=100)
    type = serializers.ChoiceField(choices=StageDefinition.TYPE_CHOICES)
    requires_reason = serializers.BooleanField(default=False)
    reasons = serializers.CharField(required=False, allow_blank=True, default='')


class StageReorderSerializer(serializers.Serializer):
    ordered_ids = serializers.ListField(child=serializers.IntegerField(), allow_empty=False)


class OrderStageAuditSerializer(serializers.ModelSerializer):
    class Meta:
        model = OrderStageAudit
        fields = ['id', 'stage', 'reason', 'changed_by', 'created_at']


class CartLineSerializer(serializers.Serializer):
    product_id = serializers.IntegerField()
    metal_type = serializers.CharField(max_length=100)
    metal_color = serializers.ChoiceField(choices=OrderItem.METAL_COLOR_CHOICES, default='Yellow')
    size = serializers.CharField(max_length=50, required=False, allow_blank=True, default='')
    quantity = serializers.IntegerField(min_value=1, default=1)
    instructions = serializers.CharField(required=False, allow_blank=True, default='')


class SubmitOrderSerializer(serializers.Serializer):
    items = CartLineSerializer(many=True, allow_empty=False)
    instruction_note = serializers.CharField(required=False, allow_blank=True, default='')
    requested_delivery_date = serializers.DateField(required=False, allow_null=True, default=None)


class TransitionSerializer(serializers.Serializer):
    stage = serializers.CharField(max_length=100)
    reason = serializers.CharField(required=False, allow_blank=True, allow_null=True, default=None)


class SplitOrderSerializer(serializers.Serializer):
    item_ids = serializers.ListField(child=serializers.IntegerField(), allow_empty=False)


class OrderItemDetailsSerializer(serializers.Serializer):
    metal_type = serializers.CharField(max_length=100, required=False)
    metal_color = serializers.ChoiceField(choices=OrderItem.METAL_COLOR_CHOICES, required=False)
    size = serializers.CharField(max_length=50, required=False, allow_blank=True)
    quantity = serializers.IntegerField(min_value=1, required=False)
    instructions = serializers.CharField(required=False, allow_blank=True)
