"""
Invoice Assembler Test Cases

Run: python manage.py test apps.billing.tests.test_assembler -v 2
"""
from datetime import date
from decimal import Decimal

from django.core.exceptions import ValidationError
from django.test import TestCase

from apps.core.periods import Period
from apps.billing.assembler import assemble, due_date_for, persist_invoice, rent_line_item
from apps.billing.models import Invoice, InvoiceLineItem
from .mixins import BillingSetupMixin

JANUARY = Period.for_month(2025, 1)


def utility_line(description, amount):
    amount = Decimal(amount)
    return InvoiceLineItem(
        line_type=InvoiceLineItem.LineType.UTILITY,
        description=description,
        quantity=Decimal('1'),
        rate=amount,
        amount=amount,
    )


class RentLineTest(BillingSetupMixin, TestCase):

    def test_full_month_rent(self):
        item = rent_line_item(self.tenant1, JANUARY)

        self.assertEqual(item.amount, Decimal('1000.00'))
        self.assertEqual(item.quantity, Decimal('1'))
        self.assertEqual(item.rate, Decimal('1000.00'))
        self.assertEqual(item.description, 'Rent - January 2025')
        self.assertEqual(item.line_type, InvoiceLineItem.LineType.RENT)

    def test_lease_starting_mid_period_is_prorated(self):
        item = rent_line_item(self.tenant2, JANUARY)

        # 1500 x 16/31
        self.assertEqual(item.amount, Decimal('774.19'))
        self.assertEqual(item.rate, item.amount)
        self.assertEqual(item.description, 'Rent - January 2025 (prorated 16/31 days)')

    def test_lease_ending_mid_period_is_prorated(self):
        self.tenant1.lease_end = date(2025, 2, 14)

        item = rent_line_item(self.tenant1, Period.for_month(2025, 2))

        # Last day inclusive: 14 of 28 days
        self.assertEqual(item.amount, Decimal('500.00'))

    def test_no_active_days_rejected(self):
        with self.assertRaises(ValidationError):
            rent_line_item(self.tenant2, Period.for_month(2024, 12))


class DueDateTest(TestCase):

    def test_due_day_within_month(self):
        self.assertEqual(due_date_for(JANUARY, 5), date(2025, 1, 5))

    def test_due_day_clamped_to_month_end(self):
        self.assertEqual(due_date_for(Period.for_month(2025, 2), 31), date(2025, 2, 28))
        self.assertEqual(due_date_for(Period.for_month(2024, 2), 30), date(2024, 2, 29))
        self.assertEqual(due_date_for(Period.for_month(2025, 4), 31), date(2025, 4, 30))


class AssembleTest(BillingSetupMixin, TestCase):

    def test_totals_without_prior_balance(self):
        invoice = assemble(self.tenant1, JANUARY, [])

        self.assertEqual(invoice.amount, Decimal('1000.00'))
        self.assertEqual(invoice.opening_balance, Decimal('0.00'))
        self.assertEqual(invoice.balance, Decimal('1000.00'))
        self.assertEqual(invoice.status, Invoice.Status.OPEN)
        self.assertEqual(invoice.due_date, date(2025, 1, 5))
        self.assertEqual(invoice.period_start, date(2025, 1, 1))
        self.assertEqual(invoice.period_end, date(2025, 2, 1))
        self.assertIsNone(invoice.pk)

    def test_balance_carry_forward(self):
        invoice = assemble(self.tenant1, JANUARY, [], prior_balance=Decimal('500.00'))

        self.assertEqual(invoice.opening_balance, Decimal('500.00'))
        self.assertEqual(invoice.amount, Decimal('1000.00'))
        self.assertEqual(invoice.balance, Decimal('1500.00'))

    def test_utility_lines_added_after_rent(self):
        lines = [utility_line('Garbage (Fixed)', '300.00'), utility_line('Water (Metered)', '200.00')]

        invoice = assemble(self.tenant1, JANUARY, lines)

        self.assertEqual(invoice.amount, Decimal('1500.00'))
        self.assertEqual(
            [item.description for item in invoice.pending_line_items],
            ['Rent - January 2025', 'Garbage (Fixed)', 'Water (Metered)']
        )

    def test_ownership_copied_from_unit(self):
        invoice = assemble(self.tenant1, JANUARY, [])

        self.assertEqual(invoice.organization_id, self.org_a.pk)
        self.assertEqual(invoice.property_id, self.prop_a1.pk)
        self.assertEqual(invoice.unit_id, self.a1_u1.pk)
        self.assertEqual(invoice.landlord_id, self.landlord_a.pk)

    def test_invoice_number_is_deterministic(self):
        invoice = assemble(self.tenant1, JANUARY, [])

        self.assertEqual(invoice.invoice_number, f'INV-202501-{self.tenant1.tenant_number}')

    def test_tenant_without_unit_rejected(self):
        self.tenant1.unit = None

        with self.assertRaises(ValidationError):
            assemble(self.tenant1, JANUARY, [])


class PersistInvoiceTest(BillingSetupMixin, TestCase):

    def test_line_items_saved_in_insertion_order(self):
        lines = [utility_line('Water (Metered)', '200.00'), utility_line('Garbage (Fixed)', '300.00')]
        invoice = persist_invoice(assemble(self.tenant1, JANUARY, lines))

        saved = list(invoice.line_items.all())
        self.assertEqual(
            [item.description for item in saved],
            ['Rent - January 2025', 'Water (Metered)', 'Garbage (Fixed)']
        )
        self.assertEqual([item.sort_order for item in saved], [1, 2, 3])
        invoice.refresh_from_db()
        self.assertEqual(invoice.amount, Decimal('1500.00'))
