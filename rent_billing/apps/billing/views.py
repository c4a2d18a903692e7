"""
Billing Views - invoice generation and invoice read endpoints (JSON).

All reads go through the caller's AccessScope; AccessDenied,
ResourceNotFound and ValidationError are turned into JSON error responses
by apps.core.middleware.ApiExceptionMiddleware.
"""
import json

from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.paginator import Paginator
from django.http import JsonResponse
from django.views import View

from apps.core.mixins import GeneratePermissionMixin, ScopedAccessMixin
from .filters import InvoiceFilter
from .forms import GenerateInvoicesForm
from .models import Invoice
from .services import InvoiceGenerator


PAGE_SIZE = 50


def line_item_to_dict(item):
    return {
        'line_type': item.line_type,
        'description': item.description,
        'quantity': str(item.quantity),
        'rate': str(item.rate),
        'amount': str(item.amount),
        'unit_of_measure': item.unit_of_measure,
        'utility_type': item.utility_type_id,
    }


def invoice_to_dict(invoice, include_lines=False):
    data = {
        'id': invoice.pk,
        'invoice_number': invoice.invoice_number,
        'organization': invoice.organization_id,
        'property': invoice.property_id,
        'unit': invoice.unit_id,
        'tenant': invoice.tenant_id,
        'tenant_name': invoice.tenant.name,
        'period_start': invoice.period_start.isoformat(),
        'period_end': invoice.period_end.isoformat(),
        'due_date': invoice.due_date.isoformat(),
        'amount': str(invoice.amount),
        'opening_balance': str(invoice.opening_balance),
        'balance': str(invoice.balance),
        'currency': settings.BILLING.get('CURRENCY', 'KES'),
        'status': invoice.status,
    }
    if include_lines:
        data['line_items'] = [line_item_to_dict(item) for item in invoice.line_items.all()]
    return data


def paginated_invoices(request, queryset):
    paginator = Paginator(queryset, PAGE_SIZE)
    page = paginator.get_page(request.GET.get('page'))
    return {
        'count': paginator.count,
        'page': page.number,
        'num_pages': paginator.num_pages,
        'results': [invoice_to_dict(invoice) for invoice in page.object_list],
    }


class GenerateInvoicesView(GeneratePermissionMixin, View):
    """
    POST year/month (form or JSON body) to generate invoices for that month.
    Safe to repeat: already invoiced tenants come back as skipped.
    """

    def post(self, request):
        if request.content_type == 'application/json':
            try:
                data = json.loads(request.body or b'{}')
            except ValueError:
                raise ValidationError('Request body is not valid JSON.')
        else:
            data = request.POST

        form = GenerateInvoicesForm(data)
        if not form.is_valid():
            return JsonResponse({'error': 'invalid', 'detail': form.errors}, status=400)

        generator = InvoiceGenerator(self.scope, dry_run=form.cleaned_data['dry_run'])
        result = generator.generate_for_period(form.cleaned_data['year'], form.cleaned_data['month'])
        status = 201 if result.created_count and not result.dry_run else 200
        return JsonResponse(result.as_dict(), status=status)


class InvoiceListView(ScopedAccessMixin, View):
    """GET invoices visible to the caller, filtered by InvoiceFilter."""

    def get(self, request):
        queryset = self.scope.queryset(Invoice).select_related('tenant').order_by('-period_start', 'invoice_number')
        filterset = InvoiceFilter(request.GET, queryset=queryset)
        if not filterset.is_valid():
            return JsonResponse({'error': 'invalid', 'detail': filterset.errors}, status=400)
        return JsonResponse(paginated_invoices(request, filterset.qs))


class InvoiceDetailView(ScopedAccessMixin, View):

    def get(self, request, pk):
        invoice = self.scope.get(Invoice, pk, base=Invoice.objects.select_related('tenant'))
        return JsonResponse(invoice_to_dict(invoice, include_lines=True))


class TenantInvoiceListView(ScopedAccessMixin, View):
    """GET the invoices of one tenant the caller may see."""

    def get(self, request, tenant_id):
        tenant = self.scope.ensure_tenant_access(tenant_id)
        queryset = self.scope.queryset(Invoice).filter(tenant=tenant).select_related('tenant')
        return JsonResponse(paginated_invoices(request, queryset))
