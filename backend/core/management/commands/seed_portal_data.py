"""
Management command to seed a portal with demo registry data and logins
Usage: python manage.py seed_portal_data [--password PASSWORD]
"""
from django.core.management.base import BaseCommand
from django.db import transaction
from backend.catalog.models import Category, Material, Metal, Size
from backend.core.cache_signals import invalidate_portal_views, suspend_cache_signals
from backend.core.models import User
from backend.orders.models import StageDefinition
from backend.parties.models import Distributor


MATERIALS = [
    # name, minimum order weight (g), [(metal, conversion ratio, purity)]
    ('Gold', 50.0, [('22K Gold', 1.0, 91.6), ('18K Gold', 0.85, 75.0), ('14K Gold', 0.78, 58.5)]),
    ('Silver', 0.0, [('925 Silver', 1.0, 0.0)]),
]

STAGES = [
    # name, type, requires reason, reasons
    ('Order Received', StageDefinition.TYPE_PENDING, False, ''),
    ('Design', StageDefinition.TYPE_STANDARD, False, ''),
    ('Casting', StageDefinition.TYPE_STANDARD, False, ''),
    ('Polishing', StageDefinition.TYPE_STANDARD, False, ''),
    ('On Hold', StageDefinition.TYPE_ON_HOLD, True, 'Awaiting payment, Design query, Other'),
    ('Cancelled', StageDefinition.TYPE_CANCELLED, True, 'Customer request, Duplicate order, Other'),
    ('Delivered', StageDefinition.TYPE_COMPLETED, False, ''),
]

CATEGORIES = ['Rings', 'Pendants', 'Earrings', 'Bangles', 'Chains']

SIZES = [('Ring', str(size)) for size in range(6, 25, 2)] + [('Bangle', size) for size in ('2.4', '2.6', '2.8')]


class Command(BaseCommand):
    help = "Seeds materials, metals, stages, categories, sizes, an admin and a distributor"

    def add_arguments(self, parser):
        parser.add_argument(
            '--password',
            default='Portal@123',
            help='Password for the seeded admin and distributor logins',
        )

    def handle(self, *args, **options):
        password = options['password']

        self.stdout.write(self.style.SUCCESS("=" * 60))
        self.stdout.write(self.style.SUCCESS("SEEDING PORTAL DATA"))
        self.stdout.write(self.style.SUCCESS("=" * 60))

        with suspend_cache_signals(), transaction.atomic():
            for name, min_weight, metals in MATERIALS:
                material, created = Material.objects.get_or_create(
                    name=name, defaults={'min_order_weight': min_weight},
                )
                self._report(f"Material {name}", created)
                for metal_name, ratio, purity in metals:
                    _, created = Metal.objects.get_or_create(
                        name=metal_name,
                        defaults={'material': material, 'conversion_ratio': ratio, 'purity': purity},
                    )
                    self._report(f"  Metal {metal_name}", created)

            for sequence, (name, stage_type, requires_reason, reasons) in enumerate(STAGES, start=1):
                _, created = StageDefinition.objects.get_or_create(
                    name=name,
                    defaults={
                        'type': stage_type,
                        'sequence': sequence,
                        'requires_reason': requires_reason,
                        'reasons': reasons,
                    },
                )
                self._report(f"Stage {sequence}. {name}", created)

            for name in CATEGORIES:
                _, created = Category.objects.get_or_create(name=name)
                self._report(f"Category {name}", created)

            for category, name in SIZES:
                Size.objects.get_or_create(name=name, category=category)

            admin, created = User.objects.get_or_create(
                username='admin@portal.local',
                defaults={'email': 'admin@portal.local', 'role': User.ROLE_ADMIN, 'is_staff': True},
            )
            if created:
                admin.set_password(password)
                admin.save()
            self._report("Admin admin@portal.local", created)

            user, created = User.objects.get_or_create(
                username='distributor@portal.local',
                defaults={'email': 'distributor@portal.local', 'role': User.ROLE_DISTRIBUTOR},
            )
            if created:
                user.set_password(password)
                user.save()
            Distributor.objects.get_or_create(
                user=user,
                defaults={
                    'company_name': 'General Traders',
                    'distributor_code': 'DIST-001',
                    'contact_person': 'Demo Distributor',
                    'contact_no': '1111111111',
                    'address': '123 Main Street',
                    'region': 'General',
                },
            )
            self._report("Distributor distributor@portal.local", created)
        invalidate_portal_views()

        self.stdout.write(self.style.SUCCESS("=" * 60))
        self.stdout.write(f"Materials: {Material.objects.count()}  Metals: {Metal.objects.count()}  "
                          f"Stages: {StageDefinition.objects.count()}  Categories: {Category.objects.count()}")

    def _report(self, label, created):
        if created:
            self.stdout.write(self.style.SUCCESS(f"  Created: {label}"))
        else:
            self.stdout.write(self.style.WARNING(f"  Skipped (already exists): {label}"))
