# Initial migration for utility types, configurations and meter readings

import datetime
import django.core.validators
import django.db.models.deletion
from decimal import Decimal
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('property', '0001_initial'),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='UtilityType',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('is_active', models.BooleanField(default=True)),
                ('name', models.CharField(max_length=100, unique=True)),
                ('billing_mode', models.CharField(choices=[('fixed', 'Fixed'), ('metered', 'Metered'), ('shared', 'Shared')], default='fixed', max_length=20)),
                ('unit_of_measure', models.CharField(blank=True, help_text='e.g. m3, kWh', max_length=20)),
                ('description', models.TextField(blank=True)),
                ('created_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='%(app_label)s_%(class)s_created', to=settings.AUTH_USER_MODEL)),
                ('updated_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='%(app_label)s_%(class)s_updated', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'ordering': ['name'],
            },
        ),
        migrations.CreateModel(
            name='UtilityConfig',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('is_active', models.BooleanField(default=True)),
                ('billing_mode', models.CharField(blank=True, choices=[('fixed', 'Fixed'), ('metered', 'Metered'), ('shared', 'Shared')], help_text='Defaults to the utility type billing mode', max_length=20)),
                ('fixed_amount', models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True, validators=[django.core.validators.MinValueValidator(Decimal('0.00'))])),
                ('rate', models.DecimalField(blank=True, decimal_places=4, help_text='Amount per unit of measure', max_digits=12, null=True, validators=[django.core.validators.MinValueValidator(Decimal('0.0000'))])),
                ('shared_amount', models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True, validators=[django.core.validators.MinValueValidator(Decimal('0.00'))])),
                ('effective_from', models.DateField()),
                ('effective_to', models.DateField(blank=True, help_text='Exclusive; empty for open-ended', null=True)),
                ('notes', models.TextField(blank=True)),
                ('created_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='%(app_label)s_%(class)s_created', to=settings.AUTH_USER_MODEL)),
                ('updated_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='%(app_label)s_%(class)s_updated', to=settings.AUTH_USER_MODEL)),
                ('utility_type', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='configs', to='utilities.utilitytype')),
                ('property', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='utility_configs', to='property.property')),
                ('unit', models.ForeignKey(blank=True, help_text='Leave empty to apply to every unit of the property', null=True, on_delete=django.db.models.deletion.CASCADE, related_name='utility_configs', to='property.unit')),
            ],
            options={
                'verbose_name': 'utility configuration',
                'ordering': ['property', 'utility_type', '-effective_from'],
            },
        ),
        migrations.CreateModel(
            name='MeterReading',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('is_active', models.BooleanField(default=True)),
                ('reading_date', models.DateField(default=datetime.date.today)),
                ('reading_value', models.DecimalField(decimal_places=3, max_digits=14, validators=[django.core.validators.MinValueValidator(Decimal('0.000'))])),
                ('notes', models.CharField(blank=True, max_length=255)),
                ('created_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='%(app_label)s_%(class)s_created', to=settings.AUTH_USER_MODEL)),
                ('updated_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='%(app_label)s_%(class)s_updated', to=settings.AUTH_USER_MODEL)),
                ('utility_config', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='readings', to='utilities.utilityconfig')),
                ('unit', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='meter_readings', to='property.unit')),
            ],
            options={
                'ordering': ['utility_config', 'unit', 'reading_date'],
            },
        ),
        migrations.AddConstraint(
            model_name='meterreading',
            constraint=models.UniqueConstraint(fields=('utility_config', 'unit', 'reading_date'), name='unique_meter_reading_per_day'),
        ),
    ]
