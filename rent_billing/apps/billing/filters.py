"""
Invoice list filters.

Property and tenant are plain id filters so an out-of-scope id yields an
empty list instead of a "not a valid choice" error that would confirm the
record exists.
"""
import django_filters

from .models import Invoice


class InvoiceFilter(django_filters.FilterSet):
    property = django_filters.NumberFilter(field_name='property_id')
    tenant = django_filters.NumberFilter(field_name='tenant_id')
    status = django_filters.ChoiceFilter(choices=Invoice.Status.choices)
    period_start_from = django_filters.DateFilter(field_name='period_start', lookup_expr='gte')
    period_start_to = django_filters.DateFilter(field_name='period_start', lookup_expr='lte')

    class Meta:
        model = Invoice
        fields = ['property', 'tenant', 'status', 'period_start_from', 'period_start_to']
