"""
Invoice Generation Test Cases

1. Running the same month twice creates nothing the second time
2. Prior unpaid balance is carried into the next invoice
3. One tenant failing does not stop the others
4. Cancellation leaves committed invoices and reports the rest as pending
5. A concurrent duplicate (unique constraint) is reported as skipped
6. Dry runs write no invoices
7. Generated invoices are immutable apart from balance/status
8. Several workers generate each invoice exactly once

Run: python manage.py test apps.billing.tests.test_generation -v 2
"""
from datetime import date
from decimal import Decimal
from io import StringIO
from unittest import mock

from django.core.exceptions import ValidationError
from django.core.management import call_command
from django.core.management.base import CommandError
from django.db import IntegrityError, OperationalError, connection, transaction
from django.test import TestCase, TransactionTestCase

from apps.billing import services
from apps.billing.assembler import assemble, persist_invoice
from apps.billing.models import Invoice, InvoiceGenerationRun, InvoiceLineItem
from apps.billing.services import CancellationToken, InvoiceGenerator, TenantOutcome, refresh_invoice_statuses
from apps.core.access import AccessScope
from apps.core.exceptions import AccessDenied
from apps.core.periods import Period
from apps.organizations.models import AuditLog
from apps.property.models import Tenant
from apps.utilities.calculator import BillingWarning
from apps.utilities.models import MeterReading, UtilityConfig
from .mixins import BillingSetupMixin


class GenerationTestCase(BillingSetupMixin, TestCase):

    def generator(self, scope=None, **kwargs):
        kwargs.setdefault('max_workers', 1)
        return InvoiceGenerator(scope or AccessScope.system(), **kwargs)

    def generate(self, year=2025, month=1, **kwargs):
        return self.generator(**kwargs).generate_for_period(year, month)


class IdempotenceTest(GenerationTestCase):

    def test_first_run_creates_one_invoice_per_active_tenant(self):
        result = self.generate()

        self.assertEqual(result.created_count, 4)
        self.assertEqual(result.skipped_count, 0)
        self.assertEqual(result.failed_count, 0)
        self.assertEqual(Invoice.objects.count(), 4)

    def test_second_run_creates_nothing(self):
        self.generate()
        snapshot = list(Invoice.objects.order_by('pk').values_list('pk', 'invoice_number', 'amount', 'balance'))

        result = self.generate()

        self.assertEqual(result.created_count, 0)
        self.assertEqual(result.skipped_count, 4)
        self.assertEqual(
            list(Invoice.objects.order_by('pk').values_list('pk', 'invoice_number', 'amount', 'balance')),
            snapshot
        )
        self.assertEqual(InvoiceLineItem.objects.count(), 4)

    def test_rerun_only_fills_gaps(self):
        Tenant.objects.filter(pk=self.tenant3.pk).update(unit=None)
        first = self.generate()
        self.assertEqual(first.failed_count, 1)

        Tenant.objects.filter(pk=self.tenant3.pk).update(unit=self.a2_u1)
        second = self.generate()

        self.assertEqual(second.created_count, 1)
        self.assertEqual(second.created[0].tenant_id, self.tenant3.pk)
        self.assertEqual(second.skipped_count, 3)

    def test_inactive_and_departed_tenants_are_not_billed(self):
        Tenant.objects.filter(pk=self.tenant3.pk).update(status=Tenant.Status.INACTIVE)
        Tenant.objects.filter(pk=self.tenant_b.pk).update(lease_end=date(2024, 12, 31))

        result = self.generate()

        billed = {outcome.tenant_id for outcome in result.created}
        self.assertEqual(billed, {self.tenant1.pk, self.tenant2.pk})

    def test_lease_starting_later_is_not_billed(self):
        result = self.generate(2024, 12)

        billed = {outcome.tenant_id for outcome in result.created}
        self.assertNotIn(self.tenant2.pk, billed)
        self.assertEqual(result.created_count, 3)


class InvoiceContentTest(GenerationTestCase):

    def test_prorated_rent_for_mid_month_lease(self):
        self.generate()

        invoice = Invoice.objects.get(tenant=self.tenant2)
        rent = invoice.line_items.get(line_type=InvoiceLineItem.LineType.RENT)
        self.assertEqual(rent.amount, Decimal('774.19'))
        self.assertEqual(invoice.amount, Decimal('774.19'))

    def test_balance_carry_forward(self):
        self.generate(2025, 1)
        january = Invoice.objects.get(tenant=self.tenant1)
        january.balance = Decimal('500.00')
        january.save(update_fields=['balance'])

        self.generate(2025, 2)

        february = Invoice.objects.get(tenant=self.tenant1, period_start=date(2025, 2, 1))
        self.assertEqual(february.opening_balance, Decimal('500.00'))
        self.assertEqual(february.amount, Decimal('1000.00'))
        self.assertEqual(february.balance, Decimal('1500.00'))

    def test_void_invoice_balance_not_carried(self):
        self.generate(2025, 1)
        Invoice.objects.filter(tenant=self.tenant1).update(status=Invoice.Status.VOID)

        self.generate(2025, 2)

        february = Invoice.objects.get(tenant=self.tenant1, period_start=date(2025, 2, 1))
        self.assertEqual(february.opening_balance, Decimal('0.00'))

    def test_utility_lines_and_warnings(self):
        UtilityConfig.objects.create(
            utility_type=self.garbage, property=self.prop_a1,
            fixed_amount=Decimal('300.00'), effective_from=date(2024, 1, 1),
        )
        water = UtilityConfig.objects.create(
            utility_type=self.water, property=self.prop_a1,
            rate=Decimal('10'), effective_from=date(2024, 1, 1),
        )
        MeterReading.objects.create(utility_config=water, unit=self.a1_u1,
                                    reading_date=date(2025, 1, 1), reading_value=Decimal('100'))
        MeterReading.objects.create(utility_config=water, unit=self.a1_u1,
                                    reading_date=date(2025, 1, 31), reading_value=Decimal('120'))

        result = self.generate()

        invoice = Invoice.objects.get(tenant=self.tenant1)
        self.assertEqual(invoice.amount, Decimal('1500.00'))
        self.assertEqual(
            list(invoice.line_items.values_list('description', flat=True)),
            ['Rent - January 2025', 'Garbage (Fixed)', 'Water (Metered)']
        )
        # tenant2 has no readings: invoiced without water, warning listed
        self.assertEqual(Invoice.objects.get(tenant=self.tenant2).amount, Decimal('1074.19'))
        self.assertEqual(
            [warning.code for warning in result.warnings[self.tenant2.pk]],
            [BillingWarning.MISSING_READING]
        )
        self.assertNotIn(self.tenant1.pk, result.warnings)

    def test_invoice_linked_to_run(self):
        result = self.generate()

        run = InvoiceGenerationRun.objects.get(pk=result.run_id)
        self.assertEqual(run.invoices.count(), 4)
        self.assertEqual(run.status, InvoiceGenerationRun.Status.COMPLETED)
        self.assertEqual(run.created_count, 4)
        self.assertIsNotNone(run.finished_at)
        self.assertEqual(run.details['created'], 4)


class FailureIsolationTest(GenerationTestCase):

    def test_validation_failure_isolated_to_tenant(self):
        Tenant.objects.filter(pk=self.tenant3.pk).update(unit=None)

        result = self.generate()

        self.assertEqual(result.created_count, 3)
        self.assertEqual(result.failed_count, 1)
        failure = result.failed[0]
        self.assertEqual(failure.tenant_id, self.tenant3.pk)
        self.assertIn('not assigned to a unit', failure.reason)
        self.assertFalse(Invoice.objects.filter(tenant=self.tenant3).exists())

    def test_unexpected_error_isolated_to_tenant(self):
        original = services.assemble

        def flaky(tenant, *args, **kwargs):
            if tenant.pk == self.tenant1.pk:
                raise RuntimeError('boom')
            return original(tenant, *args, **kwargs)

        with mock.patch('apps.billing.services.assemble', side_effect=flaky):
            result = self.generate()

        self.assertEqual(result.created_count, 3)
        self.assertEqual([outcome.reason for outcome in result.failed], ['boom'])
        self.assertFalse(Invoice.objects.filter(tenant=self.tenant1).exists())

    def test_unique_constraint_conflict_reported_as_skipped(self):
        original = services.persist_invoice

        def racing(invoice, generation_run=None):
            if invoice.tenant_id == self.tenant2.pk:
                raise IntegrityError('UNIQUE constraint failed: unique_invoice_per_tenant_period')
            return original(invoice, generation_run=generation_run)

        with mock.patch('apps.billing.services.persist_invoice', side_effect=racing):
            result = self.generate()

        self.assertEqual(result.created_count, 3)
        self.assertEqual(result.failed_count, 0)
        self.assertEqual([outcome.tenant_id for outcome in result.skipped], [self.tenant2.pk])

    def test_unique_constraint_backstop_without_precheck(self):
        self.generate()

        with mock.patch.object(InvoiceGenerator, 'existing_invoice_number', return_value=None):
            result = self.generate()

        self.assertEqual(result.created_count, 0)
        self.assertEqual(result.failed_count, 0)
        self.assertEqual(result.skipped_count, 4)
        self.assertIn(self.tenant1.pk, [outcome.tenant_id for outcome in result.skipped])
        self.assertEqual(Invoice.objects.filter(tenant=self.tenant1).count(), 1)
        self.assertEqual(Invoice.objects.count(), 4)

    def test_second_invoice_for_same_period_violates_constraint(self):
        self.generate()
        duplicate = assemble(self.tenant1, Period.for_month(2025, 1), [])
        duplicate.invoice_number = 'INV-DUPLICATE'

        with self.assertRaises(IntegrityError):
            with transaction.atomic():
                persist_invoice(duplicate)
        self.assertEqual(Invoice.objects.filter(tenant=self.tenant1).count(), 1)

    def test_storage_failure_aborts_batch(self):
        with mock.patch.object(InvoiceGenerator, 'prior_balance', side_effect=OperationalError('database is gone')):
            with self.assertRaises(OperationalError):
                self.generate()

        run = InvoiceGenerationRun.objects.get()
        self.assertEqual(run.status, InvoiceGenerationRun.Status.FAILED)
        self.assertEqual(Invoice.objects.count(), 0)


class CancellationTest(GenerationTestCase):

    def test_cancel_between_tenants(self):
        token = CancellationToken()
        original = services.persist_invoice

        def persist_then_cancel(invoice, generation_run=None):
            saved = original(invoice, generation_run=generation_run)
            token.cancel()
            return saved

        with mock.patch('apps.billing.services.persist_invoice', side_effect=persist_then_cancel):
            result = self.generate(cancel_token=token)

        self.assertEqual(result.created_count, 1)
        self.assertEqual(result.pending_count, 3)
        self.assertEqual(Invoice.objects.count(), 1)
        run = InvoiceGenerationRun.objects.get(pk=result.run_id)
        self.assertEqual(run.status, InvoiceGenerationRun.Status.CANCELLED)
        self.assertEqual(run.pending_count, 3)

    def test_rerun_after_cancel_completes(self):
        token = CancellationToken()
        token.cancel()
        cancelled = self.generate(cancel_token=token)
        self.assertEqual(cancelled.pending_count, 4)

        result = self.generate()

        self.assertEqual(result.created_count, 4)


class DryRunTest(GenerationTestCase):

    def test_dry_run_writes_no_invoices(self):
        result = self.generate(dry_run=True)

        self.assertEqual(result.created_count, 4)
        self.assertTrue(result.dry_run)
        self.assertEqual(Invoice.objects.count(), 0)
        self.assertEqual(InvoiceLineItem.objects.count(), 0)
        self.assertTrue(InvoiceGenerationRun.objects.get(pk=result.run_id).dry_run)

    def test_dry_run_then_real_run(self):
        self.generate(dry_run=True)

        self.assertEqual(self.generate().created_count, 4)


class GenerationPreconditionTest(GenerationTestCase):

    def test_invalid_month_rejected_before_writes(self):
        with self.assertRaises(ValidationError):
            self.generate(2025, 13)
        self.assertFalse(InvoiceGenerationRun.objects.exists())

    def test_caller_without_capability_denied(self):
        scope = AccessScope.for_user(self.tenant_user)

        with self.assertRaises(AccessDenied):
            self.generator(scope).generate_for_period(2025, 1)
        self.assertFalse(InvoiceGenerationRun.objects.exists())

    def test_organization_scope_limits_tenants(self):
        scope = AccessScope.for_organization(self.org_a)

        result = self.generator(scope, organization=self.org_a).generate_for_period(2025, 1)

        self.assertEqual(result.created_count, 3)
        self.assertFalse(Invoice.objects.filter(tenant=self.tenant_b).exists())

    def test_manager_generates_for_assigned_property_only(self):
        scope = AccessScope.for_user(self.manager_a)

        result = self.generator(scope).generate_for_period(2025, 1)

        self.assertEqual({o.tenant_id for o in result.created}, {self.tenant1.pk, self.tenant2.pk})

    def test_run_is_audited(self):
        result = self.generate()

        entry = AuditLog.objects.get(action='generate')
        self.assertEqual(entry.record_id, str(result.run_id))
        self.assertEqual(entry.changes['created'], 4)


class ImmutabilityTest(GenerationTestCase):

    def setUp(self):
        self.generate()
        self.invoice = Invoice.objects.get(tenant=self.tenant1)

    def test_amount_cannot_change(self):
        self.invoice.amount = Decimal('1.00')

        with self.assertRaises(ValidationError):
            self.invoice.save()

    def test_frozen_update_fields_rejected(self):
        with self.assertRaises(ValidationError):
            self.invoice.save(update_fields=['due_date'])

    def test_balance_and_status_can_change(self):
        self.invoice.balance = Decimal('250.00')
        self.invoice.status = Invoice.Status.PARTIALLY_PAID
        self.invoice.save()

        self.invoice.refresh_from_db()
        self.assertEqual(self.invoice.balance, Decimal('250.00'))

    def test_invoice_cannot_be_deleted(self):
        with self.assertRaises(ValidationError):
            self.invoice.delete()


class StatusRefreshTest(GenerationTestCase):

    def setUp(self):
        self.generate()
        self.invoice = Invoice.objects.get(tenant=self.tenant1)

    def test_open_until_due(self):
        self.assertEqual(self.invoice.calculate_status(date(2025, 1, 5)), Invoice.Status.OPEN)

    def test_overdue_after_due_date(self):
        self.assertEqual(self.invoice.calculate_status(date(2025, 1, 6)), Invoice.Status.OVERDUE)

    def test_partially_paid(self):
        self.invoice.balance = Decimal('400.00')
        self.assertEqual(self.invoice.calculate_status(date(2025, 1, 2)), Invoice.Status.PARTIALLY_PAID)

    def test_paid(self):
        self.invoice.balance = Decimal('0.00')
        self.assertEqual(self.invoice.calculate_status(date(2025, 3, 1)), Invoice.Status.PAID)

    def test_void_is_terminal(self):
        self.invoice.status = Invoice.Status.VOID
        self.assertEqual(self.invoice.calculate_status(date(2025, 3, 1)), Invoice.Status.VOID)

    def test_period_and_amount_properties(self):
        self.invoice.balance = Decimal('400.00')

        self.assertEqual(self.invoice.period, Period.for_month(2025, 1))
        self.assertEqual(self.invoice.total_due, Decimal('1000.00'))
        self.assertEqual(self.invoice.paid_amount, Decimal('600.00'))

    def test_refresh_marks_overdue(self):
        changed = refresh_invoice_statuses(AccessScope.system(), as_of=date(2025, 2, 1))

        self.assertEqual(changed, 4)
        self.assertEqual(
            set(Invoice.objects.values_list('status', flat=True)), {Invoice.Status.OVERDUE}
        )
        self.assertTrue(AuditLog.objects.filter(action='refresh').exists())

    def test_refresh_is_scoped(self):
        changed = refresh_invoice_statuses(AccessScope.for_organization(self.org_b), as_of=date(2025, 2, 1))

        self.assertEqual(changed, 1)


class GenerateCommandTest(BillingSetupMixin, TestCase):

    def call(self, *args, **kwargs):
        out = StringIO()
        call_command('generate_invoices', *args, stdout=out, **kwargs)
        return out.getvalue()

    def test_command_generates_and_reruns(self):
        output = self.call(year=2025, month=1, workers=1)
        self.assertIn('Created: 4', output)

        output = self.call(year=2025, month=1, workers=1)
        self.assertIn('Created: 0', output)
        self.assertIn('Skipped: 4', output)

    def test_command_organization_filter(self):
        output = self.call(year=2025, month=1, organization='globex', workers=1)

        self.assertIn('Created: 1', output)
        self.assertEqual(Invoice.objects.get().tenant_id, self.tenant_b.pk)

    def test_command_dry_run(self):
        output = self.call(year=2025, month=1, dry_run=True, workers=1)

        self.assertIn('DRY RUN', output)
        self.assertEqual(Invoice.objects.count(), 0)

    def test_command_unknown_organization(self):
        with self.assertRaises(CommandError):
            self.call(year=2025, month=1, organization='nope')

    def test_command_invalid_month(self):
        with self.assertRaises(CommandError):
            self.call(year=2025, month=13)

    def test_refresh_command(self):
        self.call(year=2025, month=1, workers=1)
        out = StringIO()

        call_command('refresh_invoice_statuses', date='2025-02-01', stdout=out)

        self.assertIn('4 invoice statuses updated', out.getvalue())


class ParallelGenerationTest(GenerationTestCase):

    def test_sqlite_runs_single_worker(self):
        generator = InvoiceGenerator(AccessScope.system(), max_workers=4)

        if connection.vendor == 'sqlite':
            self.assertEqual(generator.max_workers, 1)
        else:
            self.assertEqual(generator.max_workers, 4)

    def test_worker_pool_collects_every_outcome(self):
        generator = self.generator()
        generator.max_workers = 3

        def created(tenant_id, tenant_number, period, run):
            return TenantOutcome(tenant_id, tenant_number, TenantOutcome.CREATED)

        with mock.patch.object(generator, '_process_tenant', side_effect=created):
            result = generator.generate_for_period(2025, 1)

        self.assertEqual(
            sorted(outcome.tenant_id for outcome in result.created),
            sorted([self.tenant1.pk, self.tenant2.pk, self.tenant3.pk, self.tenant_b.pk])
        )
        self.assertEqual(InvoiceGenerationRun.objects.get(pk=result.run_id).created_count, 4)


class ConcurrentWorkersTest(BillingSetupMixin, TransactionTestCase):
    """Runs against committed data so worker threads see the fixtures."""

    def setUp(self):
        self.setUpTestData()

    def test_multiple_workers_generate_once(self):
        first = InvoiceGenerator(AccessScope.system(), max_workers=3).generate_for_period(2025, 1)
        second = InvoiceGenerator(AccessScope.system(), max_workers=3).generate_for_period(2025, 1)

        self.assertEqual(first.created_count, 4)
        self.assertEqual(first.failed_count, 0)
        self.assertEqual(second.created_count, 0)
        self.assertEqual(second.skipped_count, 4)
        self.assertEqual(Invoice.objects.count(), 4)
