"""
Billing Admin

Generated invoices are read-only here; they change only through payment
application and the status refresh job.
"""
from django.contrib import admin
from .models import Invoice, InvoiceLineItem, InvoiceGenerationRun


class InvoiceLineItemInline(admin.TabularInline):
    model = InvoiceLineItem
    extra = 0
    can_delete = False
    fields = ['sort_order', 'line_type', 'description', 'quantity', 'rate', 'amount', 'unit_of_measure']
    readonly_fields = fields

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Invoice)
class InvoiceAdmin(admin.ModelAdmin):
    list_display = ['invoice_number', 'tenant', 'property', 'period_start', 'due_date',
                    'amount', 'opening_balance', 'balance', 'status']
    list_filter = ['status', 'organization', 'property', 'period_start']
    search_fields = ['invoice_number', 'tenant__name', 'tenant__tenant_number']
    date_hierarchy = 'period_start'
    inlines = [InvoiceLineItemInline]

    def get_readonly_fields(self, request, obj=None):
        return [field.name for field in self.model._meta.fields]

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(InvoiceGenerationRun)
class InvoiceGenerationRunAdmin(admin.ModelAdmin):
    list_display = ['id', 'period_start', 'organization', 'triggered_by', 'dry_run', 'status',
                    'created_count', 'skipped_count', 'failed_count', 'pending_count', 'warning_count', 'started_at']
    list_filter = ['status', 'dry_run', 'organization']
    readonly_fields = ['period_start', 'period_end', 'organization', 'triggered_by', 'dry_run', 'status',
                       'created_count', 'skipped_count', 'failed_count', 'pending_count', 'warning_count',
                       'details', 'started_at', 'finished_at']

    def has_add_permission(self, request):
        return False
