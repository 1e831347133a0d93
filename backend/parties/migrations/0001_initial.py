import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Distributor',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('company_name', models.CharField(max_length=200)),
                ('distributor_code', models.CharField(max_length=50, unique=True)),
                ('contact_person', models.CharField(max_length=200)),
                ('contact_no', models.CharField(max_length=20)),
                ('address', models.TextField()),
                ('region', models.CharField(db_index=True, max_length=100)),
                ('gst_no', models.CharField(blank=True, max_length=20)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('user', models.OneToOneField(on_delete=django.db.models.deletion.CASCADE, related_name='distributor_profile', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'distributors',
                'ordering': ['distributor_code'],
            },
        ),
    ]
