"""
Invoice generation orchestrator.

Generates one invoice per active tenant for a billing period:

- every tenant is processed in its own transaction; a failure rolls back
  that tenant only
- an existing invoice for (tenant, period) is left untouched and reported
  as skipped, so re-running a period is always safe
- the unique constraint on (tenant, period_start, period_end) catches a
  concurrent run that got there first; that is reported as skipped too
- storage outages (OperationalError/InterfaceError) abort the batch

Usage:
    generator = InvoiceGenerator(AccessScope.system())
    result = generator.generate_for_period(2025, 1)
    result.created_count, result.skipped_count, result.failed_count
"""
import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import IntegrityError, InterfaceError, OperationalError, connection, transaction
from django.db.models import Q
from django.utils import timezone

from apps.core.access import Capability
from apps.core.audit import log_audit
from apps.core.money import ZERO
from apps.core.periods import Period
from apps.property.models import Tenant
from apps.utilities.calculator import UtilityBillingCalculator
from .assembler import assemble, persist_invoice
from .models import Invoice, InvoiceGenerationRun

logger = logging.getLogger(__name__)

STORAGE_ERRORS = (OperationalError, InterfaceError)


class CancellationToken:
    """Cooperative cancellation flag, checked between tenants."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self):
        self._event.set()

    @property
    def is_cancelled(self):
        return self._event.is_set()


@dataclass
class TenantOutcome:
    CREATED = 'created'
    SKIPPED = 'skipped'
    FAILED = 'failed'
    PENDING = 'pending'

    tenant_id: int
    tenant_number: str
    status: str
    invoice_number: str = ''
    reason: str = ''
    warnings: list = field(default_factory=list)

    def as_dict(self):
        return {
            'tenant_id': self.tenant_id,
            'tenant_number': self.tenant_number,
            'status': self.status,
            'invoice_number': self.invoice_number,
            'reason': self.reason,
            'warnings': [warning.as_dict() for warning in self.warnings],
        }


class GenerationResult:
    """Aggregated outcome of one generation run."""

    def __init__(self, period, dry_run=False):
        self.period = period
        self.dry_run = dry_run
        self.created = []
        self.skipped = []
        self.failed = []
        self.pending = []
        self.warnings = {}
        self.run_id = None

    def record(self, outcome):
        getattr(self, outcome.status).append(outcome)
        if outcome.warnings:
            self.warnings.setdefault(outcome.tenant_id, []).extend(outcome.warnings)

    @property
    def created_count(self):
        return len(self.created)

    @property
    def skipped_count(self):
        return len(self.skipped)

    @property
    def failed_count(self):
        return len(self.failed)

    @property
    def pending_count(self):
        return len(self.pending)

    @property
    def warning_count(self):
        return sum(len(items) for items in self.warnings.values())

    @property
    def status(self):
        if self.pending:
            return InvoiceGenerationRun.Status.CANCELLED
        return InvoiceGenerationRun.Status.COMPLETED

    def as_dict(self):
        return {
            'run_id': self.run_id,
            'period_start': self.period.start.isoformat(),
            'period_end': self.period.end.isoformat(),
            'dry_run': self.dry_run,
            'status': str(self.status),
            'created': self.created_count,
            'skipped': self.skipped_count,
            'failed': self.failed_count,
            'pending': self.pending_count,
            'outcomes': [
                outcome.as_dict()
                for outcome in self.created + self.skipped + self.failed + self.pending
            ],
            'warnings': {
                str(tenant_id): [warning.as_dict() for warning in items]
                for tenant_id, items in self.warnings.items()
            },
        }


class InvoiceGenerator:
    """
    Generates invoices for every active tenant visible to ``scope``.

    Args:
        scope: AccessScope of the caller; needs the generate_invoices capability
        organization: Optional Organization to restrict the run to
        max_workers: Parallel tenant workers (defaults to BILLING['GENERATION_WORKERS'])
        cancel_token: CancellationToken for cooperative cancellation
        dry_run: Compute and validate every invoice, then roll back
    """

    def __init__(self, scope, organization=None, max_workers=None, cancel_token=None, dry_run=False):
        self.scope = scope
        self.organization = organization
        if max_workers is None:
            max_workers = settings.BILLING.get('GENERATION_WORKERS', 1)
        self.max_workers = max(1, int(max_workers))
        if self.max_workers > 1 and connection.vendor == 'sqlite':
            # SQLite allows one writer; a lock wait surfaces as OperationalError
            logger.info("SQLite backend: invoice generation limited to 1 worker (requested %d)", self.max_workers)
            self.max_workers = 1
        self.cancel_token = cancel_token or CancellationToken()
        self.dry_run = dry_run
        self.calculator = UtilityBillingCalculator(scope)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def active_tenants(self, period):
        """Active tenants in scope whose lease covers at least one day of ``period``."""
        qs = self.scope.queryset(Tenant).filter(
            status=Tenant.Status.ACTIVE,
            lease_start__lt=period.end,
        ).filter(
            Q(lease_end__isnull=True) | Q(lease_end__gte=period.start)
        )
        if self.organization is not None:
            qs = qs.filter(unit__property__organization=self.organization)
        return qs.order_by('tenant_number')

    @staticmethod
    def prior_balance(tenant, period):
        """Outstanding balance of the tenant's latest non-void invoice before ``period``."""
        balance = (
            Invoice.objects.filter(tenant=tenant, period_start__lt=period.start)
            .exclude(status=Invoice.Status.VOID)
            .order_by('-period_start')
            .values_list('balance', flat=True)
            .first()
        )
        return balance if balance is not None else ZERO

    @staticmethod
    def existing_invoice_number(tenant, period):
        return Invoice.objects.filter(
            tenant=tenant, period_start=period.start, period_end=period.end
        ).values_list('invoice_number', flat=True).first()

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    def generate_for_period(self, year, month):
        """
        Generate invoices for calendar month (year, month).

        Raises:
            ValidationError: Invalid year/month (nothing written)
            AccessDenied: Caller may not generate invoices
            OperationalError, InterfaceError: Storage unavailable; batch aborted
        """
        period = Period.for_month(year, month)
        self.scope.require(Capability.GENERATE_INVOICES)

        tenants = list(self.active_tenants(period).values_list('pk', 'tenant_number'))
        run = InvoiceGenerationRun.objects.create(
            period_start=period.start,
            period_end=period.end,
            organization=self.organization,
            triggered_by=self._triggering_user(),
            dry_run=self.dry_run,
        )
        result = GenerationResult(period, dry_run=self.dry_run)
        result.run_id = run.pk

        logger.info(
            "Invoice generation run %s for %s: %d tenants, %d workers%s",
            run.pk, period, len(tenants), self.max_workers, ' (dry run)' if self.dry_run else ''
        )

        try:
            if self.max_workers == 1:
                for tenant_id, tenant_number in tenants:
                    result.record(self._process_tenant(tenant_id, tenant_number, period, run))
            else:
                self._run_parallel(tenants, period, run, result)
        except STORAGE_ERRORS:
            logger.exception("Invoice generation run %s aborted: storage unavailable", run.pk)
            self._finish_run(run, result, InvoiceGenerationRun.Status.FAILED)
            raise

        self._finish_run(run, result, result.status)
        logger.info(
            "Invoice generation run %s %s: created=%d skipped=%d failed=%d pending=%d warnings=%d",
            run.pk, result.status, result.created_count, result.skipped_count,
            result.failed_count, result.pending_count, result.warning_count
        )
        return result

    def _run_parallel(self, tenants, period, run, result):
        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix='invoice-gen') as executor:
            futures = [
                executor.submit(self._process_in_worker, tenant_id, tenant_number, period, run)
                for tenant_id, tenant_number in tenants
            ]
            try:
                for future in as_completed(futures):
                    result.record(future.result())
            except STORAGE_ERRORS:
                # Let queued tenants drain as pending
                self.cancel_token.cancel()
                raise

    def _process_in_worker(self, tenant_id, tenant_number, period, run):
        try:
            return self._process_tenant(tenant_id, tenant_number, period, run)
        finally:
            connection.close()

    def _process_tenant(self, tenant_id, tenant_number, period, run):
        if self.cancel_token.is_cancelled:
            return TenantOutcome(tenant_id, tenant_number, TenantOutcome.PENDING, reason='Run cancelled.')

        warnings = []
        try:
            with transaction.atomic():
                # Row lock keeps the prior-balance read consistent with the insert
                tenant = (
                    self.scope.queryset(Tenant)
                    .select_for_update(of=('self',))
                    .select_related('unit__property')
                    .get(pk=tenant_id)
                )
                existing = self.existing_invoice_number(tenant, period)
                if existing:
                    return TenantOutcome(
                        tenant_id, tenant_number, TenantOutcome.SKIPPED,
                        invoice_number=existing, reason='Invoice already exists for this period.'
                    )

                computation = self.calculator.compute_line_items(tenant, period)
                warnings = computation.warnings
                invoice = assemble(tenant, period, computation.line_items, self.prior_balance(tenant, period))
                persist_invoice(invoice, generation_run=run)

                if self.dry_run:
                    transaction.set_rollback(True)

        except IntegrityError:
            logger.info("Tenant %s: invoice for %s created concurrently; skipped", tenant_number, period)
            return TenantOutcome(
                tenant_id, tenant_number, TenantOutcome.SKIPPED,
                invoice_number=Invoice.build_number(tenant_number, period.start),
                reason='Invoice created by a concurrent run.', warnings=warnings
            )
        except STORAGE_ERRORS:
            raise
        except ValidationError as exc:
            reason = '; '.join(exc.messages)
            logger.warning("Tenant %s: invoice not generated: %s", tenant_number, reason)
            return TenantOutcome(tenant_id, tenant_number, TenantOutcome.FAILED, reason=reason, warnings=warnings)
        except Exception as exc:
            logger.exception("Tenant %s: invoice generation failed", tenant_number)
            return TenantOutcome(tenant_id, tenant_number, TenantOutcome.FAILED, reason=str(exc), warnings=warnings)

        logger.debug("Tenant %s: %s invoice %s", tenant_number,
                     'validated' if self.dry_run else 'created', invoice.invoice_number)
        return TenantOutcome(
            tenant_id, tenant_number, TenantOutcome.CREATED,
            invoice_number=invoice.invoice_number, warnings=warnings
        )

    def _triggering_user(self):
        user = self.scope.user
        if user is not None and user.is_authenticated:
            return user
        return None

    def _finish_run(self, run, result, status):
        run.status = status
        run.created_count = result.created_count
        run.skipped_count = result.skipped_count
        run.failed_count = result.failed_count
        run.pending_count = result.pending_count
        run.warning_count = result.warning_count
        run.details = result.as_dict()
        run.finished_at = timezone.now()
        run.save()

        log_audit(
            self._triggering_user(),
            'generate',
            'Invoice',
            record_id=run.pk,
            changes={
                'period': str(result.period),
                'status': str(status),
                'dry_run': self.dry_run,
                'created': result.created_count,
                'skipped': result.skipped_count,
                'failed': result.failed_count,
                'pending': result.pending_count,
            },
            organization=self.organization,
        )


def refresh_invoice_statuses(scope, as_of=None):
    """
    Recompute invoice statuses from balance and due date.

    Returns:
        int: Number of invoices whose status changed
    """
    as_of = as_of or timezone.localdate()
    changed = 0
    invoices = scope.queryset(Invoice).exclude(status=Invoice.Status.VOID)
    for invoice in invoices.iterator():
        status = invoice.calculate_status(as_of)
        if status != invoice.status:
            invoice.status = status
            invoice.save(update_fields=['status', 'updated_at'])
            changed += 1
    if changed:
        logger.info("Refreshed %d invoice statuses as of %s", changed, as_of)
        log_audit(scope.user, 'refresh', 'Invoice', changes={'as_of': as_of, 'changed': changed})
    return changed
