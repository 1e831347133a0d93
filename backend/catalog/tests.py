"""
Test suite for the catalog module
Tests: Material/Metal registry rules, registry snapshot, categories, products and visibility
"""
from django.test import TestCase
from rest_framework import status
from backend.catalog import services
from backend.catalog.models import Material, Metal, Product
from backend.catalog.registry import MetalRegistry, UNKNOWN_MATERIAL
from backend.core.exceptions import BaseMetalConflict, DuplicateName, InUse, PortalValidationError
from backend.core.models import AuditLog
from backend.core.test_utils import TestDataFactory, AuthenticatedAPIClient


class MetalRegistryRuleTests(TestCase):
    """Test single base metal, uniqueness and numeric rules"""

    def setUp(self):
        self.gold = TestDataFactory.create_material('Gold', min_order_weight=50)

    def test_first_base_metal_accepted(self):
        metal = services.create_metal('22K Gold', self.gold.id, 1.0, 91.6)
        self.assertTrue(metal.is_base)
        self.assertEqual(AuditLog.objects.filter(model_name='Metal', action='create').count(), 1)

    def test_second_base_metal_rejected(self):
        services.create_metal('22K Gold', self.gold.id, 1.0, 91.6)
        with self.assertRaises(BaseMetalConflict) as ctx:
            services.create_metal('24K Gold', self.gold.id, 1.0, 99.9)
        self.assertIn('22K Gold', ctx.exception.message)
        self.assertFalse(Metal.objects.filter(name='24K Gold').exists())

    def test_update_to_base_ratio_rejected_when_base_exists(self):
        services.create_metal('22K Gold', self.gold.id, 1.0, 91.6)
        metal_18k = services.create_metal('18K Gold', self.gold.id, 0.85, 75.0)
        with self.assertRaises(BaseMetalConflict):
            services.update_metal(metal_18k.id, '18K Gold', 1.0, 75.0)
        metal_18k.refresh_from_db()
        self.assertEqual(metal_18k.conversion_ratio, 0.85)

    def test_base_metal_update_keeps_its_own_ratio(self):
        base = services.create_metal('22K Gold', self.gold.id, 1.0, 91.6)
        updated = services.update_metal(base.id, '22K Gold', 1.0, 91.7)
        self.assertEqual(updated.purity, 91.7)

    def test_base_rule_is_per_material(self):
        silver = TestDataFactory.create_material('Silver')
        services.create_metal('22K Gold', self.gold.id, 1.0, 91.6)
        metal = services.create_metal('925 Silver', silver.id, 1.0, 0)
        self.assertTrue(metal.is_base)

    def test_metal_name_unique_case_insensitive(self):
        services.create_metal('22K Gold', self.gold.id, 1.0, 91.6)
        with self.assertRaises(DuplicateName):
            services.create_metal('22k gold', self.gold.id, 0.9, 91.6)

    def test_ratio_must_be_positive(self):
        with self.assertRaises(PortalValidationError):
            services.create_metal('Broken', self.gold.id, 0, 50)

    def test_purity_range(self):
        with self.assertRaises(PortalValidationError):
            services.create_metal('Broken', self.gold.id, 0.9, 101)

    def test_non_numeric_ratio_rejected(self):
        with self.assertRaises(PortalValidationError):
            services.create_metal('Broken', self.gold.id, 'abc', 50)

    def test_rename_migrates_order_items_when_requested(self):
        metal = services.create_metal('22K Gold', self.gold.id, 1.0, 91.6)
        order = TestDataFactory.create_order()
        item = TestDataFactory.create_order_item(order, metal_type='22K Gold')
        services.update_metal(metal.id, '22K Yellow Gold', 1.0, 91.6, migrate_order_items=True)
        item.refresh_from_db()
        self.assertEqual(item.metal_type, '22K Yellow Gold')

    def test_rename_without_migration_detaches_items(self):
        metal = services.create_metal('22K Gold', self.gold.id, 1.0, 91.6)
        order = TestDataFactory.create_order()
        item = TestDataFactory.create_order_item(order, metal_type='22K Gold')
        with self.assertLogs('backend.catalog.services', level='WARNING'):
            services.update_metal(metal.id, '22K Yellow Gold', 1.0, 91.6)
        item.refresh_from_db()
        self.assertEqual(item.metal_type, '22K Gold')
        self.assertFalse(MetalRegistry.load().resolve('22K Gold').is_known)


class MaterialTests(TestCase):
    """Test material maintenance"""

    def test_create_material_with_minimum(self):
        material = services.create_material('Platinum', 20)
        self.assertEqual(material.min_order_weight, 20.0)

    def test_negative_minimum_rejected(self):
        with self.assertRaises(PortalValidationError):
            services.create_material('Platinum', -1)

    def test_duplicate_material_rejected(self):
        services.create_material('Gold')
        with self.assertRaises(DuplicateName):
            services.create_material(' gold ')

    def test_delete_material_with_metals_rejected(self):
        metal = TestDataFactory.create_metal('925 Silver')
        with self.assertRaises(InUse):
            services.delete_material(metal.material_id)

    def test_delete_unused_material(self):
        material = TestDataFactory.create_material('Palladium')
        services.delete_material(material.id)
        self.assertFalse(Material.objects.filter(pk=material.id).exists())

    def test_delete_metal_referenced_by_items_rejected(self):
        metal = TestDataFactory.create_metal('22K Gold')
        TestDataFactory.create_order_item(TestDataFactory.create_order(), metal_type='22K Gold')
        with self.assertRaises(InUse):
            services.delete_metal(metal.id)

    def test_toggle_visibility(self):
        material = TestDataFactory.create_material('Gold')
        self.assertFalse(services.toggle_material_visibility(material.id).is_visible)
        self.assertTrue(services.toggle_material_visibility(material.id).is_visible)


class MetalRegistrySnapshotTests(TestCase):
    """Test registry loading and the unknown metal fallback"""

    def setUp(self):
        self.gold, self.gold_22k, self.gold_18k = TestDataFactory.create_gold_metals()

    def test_resolve_known_metal(self):
        metal = MetalRegistry.load().resolve('18K Gold')
        self.assertTrue(metal.is_known)
        self.assertEqual(metal.conversion_ratio, 0.85)
        self.assertEqual(metal.material_name, 'Gold')
        self.assertEqual(metal.min_order_weight, 50.0)

    def test_unknown_metal_fallback(self):
        metal = MetalRegistry.load().resolve('14K Gold')
        self.assertFalse(metal.is_known)
        self.assertEqual(metal.conversion_ratio, 1.0)
        self.assertEqual(metal.purity, 0.0)
        self.assertEqual(metal.material_name, UNKNOWN_MATERIAL)
        self.assertFalse(metal.pure_applicable)
        self.assertIn('Unknown metal', metal.label)

    def test_visible_only_excludes_hidden_metals_and_materials(self):
        self.gold_18k.is_visible = False
        self.gold_18k.save()
        silver = TestDataFactory.create_material('Silver', is_visible=False)
        TestDataFactory.create_metal('925 Silver', silver)

        offered = MetalRegistry.load(visible_only=True)
        self.assertIn('22K Gold', offered)
        self.assertNotIn('18K Gold', offered)
        self.assertNotIn('925 Silver', offered)
        self.assertEqual(len(MetalRegistry.load()), 3)

    def test_weight_preview(self):
        product = TestDataFactory.create_product(base_weight=10)
        rows = services.weight_preview(product, MetalRegistry.load())
        self.assertEqual(rows, [
            {'metal': '18K Gold', 'material': 'Gold', 'weight': 8.5},
            {'metal': '22K Gold', 'material': 'Gold', 'weight': 10.0},
        ])


class CatalogAPITests(TestCase):
    """Test catalog endpoints"""

    def setUp(self):
        self.admin = TestDataFactory.create_admin()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.admin)
        self.gold = TestDataFactory.create_material('Gold', min_order_weight=50)

    def test_create_metal_endpoint(self):
        response = self.client.post('/api/v1/metals/', {
            'name': '22K Gold', 'material': self.gold.id, 'conversion_ratio': 1.0, 'purity': 91.6,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(response.data['is_base'])
        self.assertEqual(response.data['material_name'], 'Gold')

    def test_base_metal_conflict_response(self):
        TestDataFactory.create_metal('22K Gold', self.gold, 1.0, 91.6)
        response = self.client.post('/api/v1/metals/', {
            'name': '24K Gold', 'material': self.gold.id, 'conversion_ratio': 1.0, 'purity': 99.9,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error'], 'base_metal_conflict')
        self.assertEqual(response.data['context']['base_metal'], '22K Gold')

    def test_create_metal_requires_material(self):
        response = self.client.post('/api/v1/metals/', {'name': '22K Gold'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_patch_metal_keeps_unsent_fields(self):
        metal = TestDataFactory.create_metal('18K Gold', self.gold, 0.85, 75.0)
        response = self.client.patch(f'/api/v1/metals/{metal.id}/', {'purity': 75.5}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['conversion_ratio'], 0.85)
        self.assertEqual(response.data['purity'], 75.5)

    def test_delete_material_in_use_conflict(self):
        TestDataFactory.create_metal('22K Gold', self.gold)
        response = self.client.delete(f'/api/v1/materials/{self.gold.id}/')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)

    def test_distributor_sees_only_visible_materials(self):
        TestDataFactory.create_metal('22K Gold', self.gold)
        TestDataFactory.create_metal('Hidden Gold', self.gold, 0.7, 50, is_visible=False)
        hidden = TestDataFactory.create_material('Silver', is_visible=False)
        distributor = TestDataFactory.create_distributor()
        self.client.authenticate_user(distributor.user)

        response = self.client.get('/api/v1/materials/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        names = [material['name'] for material in response.data]
        self.assertEqual(names, ['Gold'])
        self.assertNotIn(hidden.name, names)
        self.assertEqual([metal['name'] for metal in response.data[0]['metals']], ['22K Gold'])

    def test_distributor_cannot_create_material(self):
        distributor = TestDataFactory.create_distributor()
        self.client.authenticate_user(distributor.user)
        response = self.client.post('/api/v1/materials/', {'name': 'Platinum'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_category_name_too_short(self):
        response = self.client.post('/api/v1/categories/', {'name': 'R'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_rename_category_case_insensitive_duplicate_rejected(self):
        TestDataFactory.create_category('Rings')
        pendants = TestDataFactory.create_category('Pendants')
        response = self.client.patch(f'/api/v1/categories/{pendants.id}/', {'name': 'rings'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error'], 'duplicate_name')
        pendants.refresh_from_db()
        self.assertEqual(pendants.name, 'Pendants')

    def test_rename_category(self):
        rings = TestDataFactory.create_category('Rings')
        response = self.client.patch(f'/api/v1/categories/{rings.id}/', {'name': 'RINGS'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['name'], 'RINGS')
        self.assertTrue(AuditLog.objects.filter(model_name='Category', action='update').exists())

    def test_delete_category_with_products_conflict(self):
        product = TestDataFactory.create_product()
        response = self.client.delete(f'/api/v1/categories/{product.category_id}/')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)

    def test_duplicate_size_rejected(self):
        self.client.post('/api/v1/sizes/', {'name': '12', 'category': 'Ring'}, format='json')
        response = self.client.post('/api/v1/sizes/', {'name': '12', 'category': 'Ring'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error'], 'duplicate_name')


class ProductTests(TestCase):
    """Test product endpoints, filters and distributor visibility"""

    def setUp(self):
        self.admin = TestDataFactory.create_admin()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.admin)
        self.rings = TestDataFactory.create_category('Rings')
        self.distributor = TestDataFactory.create_distributor()
        self.other = TestDataFactory.create_distributor()

    def test_create_product(self):
        response = self.client.post('/api/v1/products/', {
            'model_no': ' RG-100 ',
            'title': 'Solitaire',
            'category_id': self.rings.id,
            'base_weight': 12.5,
            'main_image': 'https://images.test/rg-100.jpg',
            'tags': ['bridal', ' ', 'classic'],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['model_no'], 'RG-100')
        self.assertEqual(response.data['category']['name'], 'Rings')
        self.assertEqual(response.data['tags'], ['bridal', 'classic'])

    def test_zero_base_weight_rejected(self):
        response = self.client.post('/api/v1/products/', {
            'model_no': 'RG-101',
            'category_id': self.rings.id,
            'base_weight': 0,
            'main_image': 'https://images.test/rg-101.jpg',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('base_weight', response.data)

    def test_restricted_product_visibility(self):
        restricted = TestDataFactory.create_product(model_no='RG-200', category=self.rings,
                                                    visibility=Product.VISIBILITY_RESTRICTED)
        restricted.allowed_distributors.add(self.distributor)
        TestDataFactory.create_product(model_no='RG-201', category=self.rings)
        TestDataFactory.create_product(model_no='RG-202', category=self.rings, is_active=False)

        self.client.authenticate_user(self.distributor.user)
        response = self.client.get('/api/v1/products/')
        self.assertEqual({row['model_no'] for row in response.data['results']}, {'RG-200', 'RG-201'})

        self.client.authenticate_user(self.other.user)
        response = self.client.get('/api/v1/products/')
        self.assertEqual({row['model_no'] for row in response.data['results']}, {'RG-201'})
        response = self.client.get(f'/api/v1/products/{restricted.id}/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_visibility_all_clears_allowed_list(self):
        product = TestDataFactory.create_product(category=self.rings, visibility=Product.VISIBILITY_RESTRICTED)
        product.allowed_distributors.add(self.distributor)
        response = self.client.patch(f'/api/v1/products/{product.id}/', {'visibility': 'ALL'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['allowed_distributors'], [])

    def test_search_and_tag_filters(self):
        TestDataFactory.create_product(model_no='RG-300', category=self.rings, tags=['Bridal'])
        pendants = TestDataFactory.create_category('Pendants')
        TestDataFactory.create_product(model_no='PD-300', category=pendants, tags=['daily'])

        response = self.client.get('/api/v1/products/?search=rings 300')
        self.assertEqual([row['model_no'] for row in response.data['results']], ['RG-300'])
        response = self.client.get('/api/v1/products/?tag=bridal')
        self.assertEqual([row['model_no'] for row in response.data['results']], ['RG-300'])

    def test_pagination(self):
        for index in range(3):
            TestDataFactory.create_product(model_no=f'PG-{index}', category=self.rings)
        response = self.client.get('/api/v1/products/?limit=2&page=2')
        self.assertEqual(response.data['count'], 3)
        self.assertEqual(len(response.data['results']), 1)
        self.assertEqual(response.data['total_pages'], 2)

    def test_delete_ordered_product_disables_it(self):
        product = TestDataFactory.create_product(category=self.rings)
        TestDataFactory.create_order_item(TestDataFactory.create_order(distributor=self.distributor), product)
        response = self.client.delete(f'/api/v1/products/{product.id}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        product.refresh_from_db()
        self.assertFalse(product.is_active)

    def test_delete_unordered_product(self):
        product = TestDataFactory.create_product(category=self.rings)
        response = self.client.delete(f'/api/v1/products/{product.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(Product.objects.filter(pk=product.id).exists())

    def test_weight_preview_uses_visible_metals(self):
        TestDataFactory.create_gold_metals()
        product = TestDataFactory.create_product(category=self.rings, base_weight=4)
        Metal.objects.filter(name='18K Gold').update(is_visible=False)
        response = self.client.get(f'/api/v1/products/{product.id}/weights/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['weights'], [{'metal': '22K Gold', 'material': 'Gold', 'weight': 4.0}])
