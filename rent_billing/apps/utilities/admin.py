"""
Utilities Admin
"""
from django.contrib import admin
from .models import UtilityType, UtilityConfig, MeterReading


@admin.register(UtilityType)
class UtilityTypeAdmin(admin.ModelAdmin):
    list_display = ['name', 'billing_mode', 'unit_of_measure', 'is_active']
    list_filter = ['billing_mode', 'is_active']
    search_fields = ['name']


@admin.register(UtilityConfig)
class UtilityConfigAdmin(admin.ModelAdmin):
    list_display = ['utility_type', 'property', 'unit', 'billing_mode', 'fixed_amount', 'rate',
                    'shared_amount', 'effective_from', 'effective_to', 'is_active']
    list_filter = ['billing_mode', 'utility_type', 'property', 'is_active']
    search_fields = ['utility_type__name', 'property__name', 'unit__unit_number']
    date_hierarchy = 'effective_from'


@admin.register(MeterReading)
class MeterReadingAdmin(admin.ModelAdmin):
    list_display = ['utility_config', 'unit', 'reading_date', 'reading_value']
    list_filter = ['utility_config__utility_type', 'unit__property']
    search_fields = ['unit__unit_number']
    date_hierarchy = 'reading_date'
