"""
Test utilities and factories for creating test data
"""
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken
from backend.catalog.models import Category, Material, Metal, Product
from backend.parties.models import Distributor
from backend.orders.models import Order, OrderItem, StageDefinition
from backend.orders.utils import generate_order_number
import random
import string

User = get_user_model()


class TestDataFactory:
    """Factory class for creating test data"""

    @staticmethod
    def random_string(length=10):
        """Generate a random string"""
        return ''.join(random.choices(string.ascii_letters + string.digits, k=length))

    @staticmethod
    def create_user(username=None, email=None, password='testpass123', role=User.ROLE_DISTRIBUTOR,
                    is_superuser=False):
        """Create a test user"""
        if not username:
            username = f'testuser_{TestDataFactory.random_string(6)}'
        if not email:
            email = f'{username}@test.com'
        return User.objects.create_user(
            username=username,
            email=email,
            password=password,
            role=role,
            is_superuser=is_superuser,
        )

    @staticmethod
    def create_admin(username=None):
        """Create a portal administrator"""
        return TestDataFactory.create_user(username=username, role=User.ROLE_ADMIN)

    @staticmethod
    def create_distributor(company_name=None, code=None, region='North', user=None):
        """Create a distributor with its login"""
        if not code:
            code = f'D{TestDataFactory.random_string(6).upper()}'
        if not company_name:
            company_name = f'Company {code}'
        if user is None:
            user = TestDataFactory.create_user(username=f'{code.lower()}@test.com')
        return Distributor.objects.create(
            user=user,
            company_name=company_name,
            distributor_code=code,
            contact_person='Test Contact',
            contact_no='9876543210',
            address=f'Test Address {company_name}',
            region=region,
        )

    @staticmethod
    def create_material(name=None, min_order_weight=0.0, is_visible=True):
        """Create a test material"""
        if not name:
            name = f'Material_{TestDataFactory.random_string(6)}'
        return Material.objects.create(name=name, min_order_weight=min_order_weight, is_visible=is_visible)

    @staticmethod
    def create_metal(name=None, material=None, conversion_ratio=1.0, purity=0.0, is_visible=True):
        """Create a test metal, with a fresh material unless one is given"""
        if not name:
            name = f'Metal_{TestDataFactory.random_string(6)}'
        if material is None:
            material = TestDataFactory.create_material()
        return Metal.objects.create(
            name=name,
            material=material,
            conversion_ratio=conversion_ratio,
            purity=purity,
            is_visible=is_visible,
        )

    @staticmethod
    def create_gold_metals(min_order_weight=50.0):
        """Gold with 22K as base metal and 18K at ratio 0.85"""
        gold = TestDataFactory.create_material('Gold', min_order_weight=min_order_weight)
        gold_22k = TestDataFactory.create_metal('22K Gold', gold, 1.0, 91.6)
        gold_18k = TestDataFactory.create_metal('18K Gold', gold, 0.85, 75.0)
        return gold, gold_22k, gold_18k

    @staticmethod
    def create_category(name=None):
        """Create a test category"""
        if not name:
            name = f'Category_{TestDataFactory.random_string(6)}'
        return Category.objects.create(name=name)

    @staticmethod
    def create_product(model_no=None, base_weight=10.0, category=None, visibility=Product.VISIBILITY_ALL,
                       is_active=True, tags=None):
        """Create a test product"""
        if not model_no:
            model_no = f'MDL-{TestDataFactory.random_string(8).upper()}'
        if not category:
            category = TestDataFactory.create_category()
        return Product.objects.create(
            model_no=model_no,
            title=f'Product {model_no}',
            category=category,
            base_weight=base_weight,
            main_image=f'https://images.test/{model_no}.jpg',
            tags=tags or [],
            visibility=visibility,
            is_active=is_active,
        )

    @staticmethod
    def create_stage(name, stage_type=StageDefinition.TYPE_STANDARD, sequence=None, requires_reason=False,
                     reasons=''):
        """Create a stage definition appended to the pipeline unless a sequence is given"""
        if sequence is None:
            sequence = StageDefinition.objects.count() + 1
        return StageDefinition.objects.create(
            name=name,
            type=stage_type,
            sequence=sequence,
            requires_reason=requires_reason,
            reasons=reasons,
        )

    @staticmethod
    def create_default_stages():
        """Pending, two production steps, hold, cancel and complete"""
        return [
            TestDataFactory.create_stage('Order Received', StageDefinition.TYPE_PENDING),
            TestDataFactory.create_stage('Casting'),
            TestDataFactory.create_stage('Polishing'),
            TestDataFactory.create_stage('On Hold', StageDefinition.TYPE_ON_HOLD, requires_reason=True,
                                         reasons='Awaiting payment, Design query, Other'),
            TestDataFactory.create_stage('Cancelled', StageDefinition.TYPE_CANCELLED, requires_reason=True,
                                         reasons='Customer request, Other'),
            TestDataFactory.create_stage('Dispatched', StageDefinition.TYPE_COMPLETED),
        ]

    @staticmethod
    def create_order(distributor=None, status=Order.STATUS_PENDING, requested_delivery_date=None, created_at=None):
        """Create a test order without items"""
        if distributor is None:
            distributor = TestDataFactory.create_distributor()
        order = Order.objects.create(
            order_number=generate_order_number(),
            distributor=distributor,
            status=status,
            requested_delivery_date=requested_delivery_date,
        )
        if created_at is not None:
            Order.objects.filter(pk=order.pk).update(created_at=created_at)
            order.refresh_from_db()
        return order

    @staticmethod
    def create_order_item(order, product=None, metal_type='22K Gold', quantity=1, stage=OrderItem.DEFAULT_STAGE,
                          metal_color='Yellow', size=''):
        """Create a test order item"""
        if product is None:
            product = TestDataFactory.create_product()
        return OrderItem.objects.create(
            order=order,
            product=product,
            metal_type=metal_type,
            metal_color=metal_color,
            size=size,
            quantity=quantity,
            stage=stage,
        )


class AuthenticatedAPIClient(APIClient):
    """APIClient with authentication helper"""

    def authenticate_user(self, user):
        """Authenticate the client with a user"""
        refresh = RefreshToken.for_user(user)
        self.credentials(HTTP_AUTHORIZATION=f'Bearer {refresh.access_token}')
        return self

    def logout(self):
        """Remove authentication"""
        self.credentials()
