"""
Property Management Admin
"""
from django.contrib import admin
from .models import Property, PropertyAssignment, Unit, Tenant


class UnitInline(admin.TabularInline):
    model = Unit
    extra = 0
    fields = ['unit_number', 'unit_type', 'floor', 'bedrooms', 'is_active']


@admin.register(Property)
class PropertyAdmin(admin.ModelAdmin):
    list_display = ['property_number', 'name', 'organization', 'landlord', 'property_type', 'is_active']
    list_filter = ['organization', 'property_type', 'is_active']
    search_fields = ['property_number', 'name', 'address']
    readonly_fields = ['property_number', 'created_at', 'updated_at']
    inlines = [UnitInline]


@admin.register(PropertyAssignment)
class PropertyAssignmentAdmin(admin.ModelAdmin):
    list_display = ['user', 'property', 'is_active']
    list_filter = ['property__organization', 'is_active']
    search_fields = ['user__username', 'property__name']


@admin.register(Unit)
class UnitAdmin(admin.ModelAdmin):
    list_display = ['unit_number', 'property', 'unit_type', 'occupied']
    list_filter = ['property', 'unit_type']
    search_fields = ['unit_number', 'property__name']

    @admin.display(boolean=True)
    def occupied(self, obj):
        return obj.is_occupied()


@admin.register(Tenant)
class TenantAdmin(admin.ModelAdmin):
    list_display = ['tenant_number', 'name', 'unit', 'monthly_rent', 'rent_due_day', 'status', 'lease_start', 'lease_end']
    list_filter = ['status', 'unit__property']
    search_fields = ['tenant_number', 'name', 'email', 'phone']
    readonly_fields = ['tenant_number', 'created_at', 'updated_at']
