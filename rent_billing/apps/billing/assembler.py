"""
Invoice Assembler.

Combines the rent line, utility line items and the tenant's prior balance
into one unsaved Invoice. Persisting is a separate step so the caller
controls the transaction.
"""
import calendar

from django.core.exceptions import ValidationError
from django.db import transaction

from apps.core.money import ZERO, prorate, round_money, sum_money, to_decimal
from .models import Invoice, InvoiceLineItem


def due_date_for(period, rent_due_day):
    """Rent due day within the period's first month, clamped to the month length."""
    start = period.start
    last_day = calendar.monthrange(start.year, start.month)[1]
    return start.replace(day=min(rent_due_day, last_day))


def rent_line_item(tenant, period):
    """
    Base rent for the tenant's active days in ``period``.

    Raises:
        ValidationError: The tenancy does not cover a single day of the period.
    """
    active = tenant.tenancy.clamp_to(period)
    if active is None:
        raise ValidationError(
            f'Tenant {tenant.tenant_number} has no active days in {period}.'
        )

    label = f"Rent - {period.start:%B %Y}"
    if active == period:
        amount = round_money(tenant.monthly_rent)
    else:
        active_days = active.duration_days()
        period_days = period.duration_days()
        amount = prorate(tenant.monthly_rent, active_days, period_days)
        label = f"{label} (prorated {active_days}/{period_days} days)"

    return InvoiceLineItem(
        line_type=InvoiceLineItem.LineType.RENT,
        description=label,
        quantity=to_decimal(1),
        rate=amount,
        amount=amount,
    )


def assemble(tenant, period, line_items, prior_balance=ZERO):
    """
    Build an unsaved Invoice for ``tenant`` and ``period``.

    Args:
        tenant: Tenant with a unit
        period: Billing Period
        line_items: Utility line items from the calculator (unsaved)
        prior_balance: Outstanding balance of the previous invoice

    Returns:
        Invoice: unsaved, with the ordered line items in ``pending_line_items``
    """
    if tenant.unit_id is None:
        raise ValidationError(f'Tenant {tenant.tenant_number} is not assigned to a unit.')

    unit = tenant.unit
    prop = unit.property
    items = [rent_line_item(tenant, period)] + list(line_items)

    amount = sum_money(item.amount for item in items)
    opening_balance = round_money(prior_balance)

    invoice = Invoice(
        organization_id=prop.organization_id,
        property=prop,
        unit=unit,
        tenant=tenant,
        landlord_id=prop.landlord_id,
        period_start=period.start,
        period_end=period.end,
        due_date=due_date_for(period, tenant.rent_due_day),
        amount=amount,
        opening_balance=opening_balance,
        balance=amount + opening_balance,
        status=Invoice.Status.OPEN,
    )
    invoice.invoice_number = Invoice.build_number(tenant.tenant_number, period.start)
    invoice.pending_line_items = items
    return invoice


def persist_invoice(invoice, generation_run=None):
    """Save an assembled invoice and its line items in insertion order."""
    with transaction.atomic():
        if generation_run is not None:
            invoice.generation_run = generation_run
        invoice.save()
        items = getattr(invoice, 'pending_line_items', [])
        for position, item in enumerate(items, start=1):
            item.invoice = invoice
            item.sort_order = position
        InvoiceLineItem.objects.bulk_create(items)
        invoice.pending_line_items = []
    return invoice
