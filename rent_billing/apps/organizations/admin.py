"""
Organization Admin
"""
from django.contrib import admin
from .models import Organization, Membership, AuditLog


class MembershipInline(admin.TabularInline):
    model = Membership
    extra = 0
    fields = ['user', 'role', 'is_active']


@admin.register(Organization)
class OrganizationAdmin(admin.ModelAdmin):
    list_display = ['code', 'name', 'email', 'is_active']
    list_filter = ['is_active']
    search_fields = ['code', 'name']
    readonly_fields = ['created_at', 'updated_at']
    inlines = [MembershipInline]


@admin.register(Membership)
class MembershipAdmin(admin.ModelAdmin):
    list_display = ['user', 'organization', 'role', 'is_active']
    list_filter = ['role', 'organization', 'is_active']
    search_fields = ['user__username', 'organization__name']


@admin.register(AuditLog)
class AuditLogAdmin(admin.ModelAdmin):
    list_display = ['timestamp', 'user', 'organization', 'action', 'model', 'record_id']
    list_filter = ['action', 'model']
    search_fields = ['record_id', 'user__username']
    readonly_fields = ['timestamp', 'user', 'organization', 'action', 'model', 'record_id', 'changes', 'ip_address']

    def has_add_permission(self, request):
        return False
