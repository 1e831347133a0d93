from django.db import transaction
from rest_framework import serializers
from backend.core.models import User
from .models import Distributor


class DistributorSerializer(serializers.ModelSerializer):
    username = serializers.CharField(source='user.username', read_only=True)
    email = serializers.EmailField(source='user.email', read_only=True)
    is_active = serializers.BooleanField(source='user.is_active', read_only=True)

    class Meta:
        model = Distributor
        fields = [
            'id', 'username', 'email', 'is_active', 'company_name', 'distributor_code',
            'contact_person', 'contact_no', 'address', 'region', 'gst_no',
            'created_at', 'updated_at'
        ]
        read_only_fields = ['distributor_code']


class DistributorCreateSerializer(serializers.ModelSerializer):
    """Creates the distributor login and its profile together"""
    email = serializers.EmailField(write_only=True)
    password = serializers.CharField(write_only=True, min_length=6)
    company_name = serializers.CharField(min_length=2, max_length=200)
    distributor_code = serializers.CharField(min_length=3, max_length=50)
    contact_person = serializers.CharField(min_length=2, max_length=200)
    contact_no = serializers.CharField(min_length=10, max_length=20)
    address = serializers.CharField(min_length=5)
    region = serializers.CharField(min_length=2, max_length=100)

    class Meta:
        model = Distributor
        fields = [
            'email', 'password', 'company_name', 'distributor_code', 'contact_person',
            'contact_no', 'address', 'region', 'gst_no'
        ]

    def validate_email(self, value):
        value = value.strip().lower()
        if User.objects.filter(email__iexact=value).exists() or User.objects.filter(username__iexact=value).exists():
            raise serializers.ValidationError("Email already exists.")
        return value

    def validate_distributor_code(self, value):
        value = value.strip().upper()
        if Distributor.objects.filter(distributor_code__iexact=value).exists():
            raise serializers.ValidationError("Distributor Code must be unique.")
        return value

    def create(self, validated_data):
        email = validated_data.pop('email')
        password = validated_data.pop('password')
        with transaction.atomic():
            user = User.objects.create_user(
                username=email,
                email=email,
                password=password,
                role=User.ROLE_DISTRIBUTOR,
            )
            return Distributor.objects.create(user=user, **validated_data)

    def to_representation(self, instance):
        return DistributorSerializer(instance).data
