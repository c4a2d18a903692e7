"""
Billing models - invoices, line items and generation runs.

Invoices are generated once per tenant per billing period and never
regenerated. After creation only the payment-driven fields (balance and
status) may change.
"""
from django.db import models
from django.conf import settings
from django.core.exceptions import ValidationError
from decimal import Decimal
from apps.core.models import BaseModel
from apps.core.periods import Period


class Invoice(BaseModel):
    """
    Tenant invoice for one billing period ``[period_start, period_end)``.

    amount          = sum of line item amounts (rent + utilities)
    opening_balance = outstanding balance carried from the previous invoice
    balance         = amount + opening_balance - payments applied
    """
    PROPERTY_LOOKUP = 'property'
    TENANT_LOOKUP = 'tenant'

    class Status(models.TextChoices):
        OPEN = 'open', 'Open'
        PARTIALLY_PAID = 'partially_paid', 'Partially Paid'
        PAID = 'paid', 'Paid'
        OVERDUE = 'overdue', 'Overdue'
        VOID = 'void', 'Void'

    # Fields that payment application and status refresh may write
    MUTABLE_FIELDS = {'balance', 'status', 'updated_at', 'updated_by', 'updated_by_id'}
    FROZEN_ATTRS = [
        'invoice_number', 'organization_id', 'property_id', 'unit_id', 'tenant_id',
        'landlord_id', 'period_start', 'period_end', 'due_date', 'amount',
        'opening_balance', 'generation_run_id',
    ]

    # Properties are declared before the ``property`` field shadows the builtin

    @property
    def period(self):
        return Period(self.period_start, self.period_end)

    @property
    def total_due(self):
        return self.amount + self.opening_balance

    @property
    def paid_amount(self):
        return self.total_due - self.balance

    invoice_number = models.CharField(max_length=60, unique=True, editable=False)
    organization = models.ForeignKey('organizations.Organization', on_delete=models.PROTECT, related_name='invoices')
    property = models.ForeignKey('property.Property', on_delete=models.PROTECT, related_name='invoices')
    unit = models.ForeignKey('property.Unit', on_delete=models.PROTECT, related_name='invoices')
    tenant = models.ForeignKey('property.Tenant', on_delete=models.PROTECT, related_name='invoices')
    landlord = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True, blank=True,
        related_name='landlord_invoices'
    )

    period_start = models.DateField()
    period_end = models.DateField(help_text='Exclusive')
    due_date = models.DateField()

    # Amounts
    amount = models.DecimalField(max_digits=15, decimal_places=2, default=Decimal('0.00'))
    opening_balance = models.DecimalField(max_digits=15, decimal_places=2, default=Decimal('0.00'))
    balance = models.DecimalField(max_digits=15, decimal_places=2, default=Decimal('0.00'))

    status = models.CharField(max_length=20, choices=Status.choices, default=Status.OPEN)
    generation_run = models.ForeignKey(
        'billing.InvoiceGenerationRun',
        on_delete=models.SET_NULL,
        null=True, blank=True,
        related_name='invoices'
    )

    class Meta:
        ordering = ['-period_start', 'invoice_number']
        constraints = [
            # Final idempotency guard for concurrent generation runs
            models.UniqueConstraint(
                fields=['tenant', 'period_start', 'period_end'],
                name='unique_invoice_per_tenant_period'
            )
        ]
        indexes = [
            models.Index(fields=['tenant', 'period_start'], name='billing_inv_tenant_period_idx'),
        ]

    def __str__(self):
        return f"{self.invoice_number} - {self.tenant.name}"

    @staticmethod
    def build_number(tenant_number, period_start):
        prefix = settings.BILLING.get('INVOICE_NUMBER_PREFIX', 'INV')
        return f"{prefix}-{period_start:%Y%m}-{tenant_number}"

    def save(self, *args, **kwargs):
        if self._state.adding:
            if not self.invoice_number:
                self.invoice_number = self.build_number(self.tenant.tenant_number, self.period_start)
        else:
            self._check_frozen(kwargs.get('update_fields'))
        super().save(*args, **kwargs)

    def _check_frozen(self, update_fields):
        if update_fields is not None:
            frozen = set(update_fields) - self.MUTABLE_FIELDS
            if frozen:
                raise ValidationError(
                    f"Invoice {self.invoice_number} is immutable; cannot update {', '.join(sorted(frozen))}."
                )
            return
        stored = Invoice.objects.filter(pk=self.pk).values(*self.FROZEN_ATTRS).first()
        if stored is None:
            return
        changed = [attr for attr in self.FROZEN_ATTRS if stored[attr] != getattr(self, attr)]
        if changed:
            raise ValidationError(
                f"Invoice {self.invoice_number} is immutable; cannot update {', '.join(changed)}."
            )

    def delete(self, *args, **kwargs):
        raise ValidationError(f"Invoice {self.invoice_number} cannot be deleted; void it instead.")

    def calculate_status(self, as_of):
        """
        Status implied by the current balance on date ``as_of``.
        Void is terminal.
        """
        if self.status == self.Status.VOID:
            return self.Status.VOID
        if self.balance <= 0:
            return self.Status.PAID
        if self.due_date < as_of:
            return self.Status.OVERDUE
        if self.balance < self.total_due:
            return self.Status.PARTIALLY_PAID
        return self.Status.OPEN


class InvoiceLineItem(models.Model):
    """
    Invoice line, kept in insertion order.
    amount = quantity * rate, or a flat amount with quantity 1 and rate = amount.
    """
    PROPERTY_LOOKUP = 'invoice__property'
    TENANT_LOOKUP = 'invoice__tenant'

    class LineType(models.TextChoices):
        RENT = 'rent', 'Rent'
        UTILITY = 'utility', 'Utility'
        ADJUSTMENT = 'adjustment', 'Adjustment'

    invoice = models.ForeignKey(Invoice, on_delete=models.CASCADE, related_name='line_items')
    line_type = models.CharField(max_length=20, choices=LineType.choices)
    description = models.CharField(max_length=255)
    quantity = models.DecimalField(max_digits=14, decimal_places=3, default=Decimal('1.000'))
    rate = models.DecimalField(max_digits=14, decimal_places=4)
    amount = models.DecimalField(max_digits=15, decimal_places=2)
    unit_of_measure = models.CharField(max_length=20, blank=True)
    utility_type = models.ForeignKey(
        'utilities.UtilityType', on_delete=models.SET_NULL, null=True, blank=True, related_name='invoice_lines'
    )
    utility_config = models.ForeignKey(
        'utilities.UtilityConfig', on_delete=models.SET_NULL, null=True, blank=True, related_name='invoice_lines'
    )
    sort_order = models.PositiveIntegerField(default=0)

    class Meta:
        ordering = ['invoice', 'sort_order', 'id']

    def __str__(self):
        return f"{self.description} - {self.amount}"


class InvoiceGenerationRun(models.Model):
    """
    One invocation of invoice generation for a billing period.
    ``details`` lists per-tenant outcomes and warnings for remediation.
    """
    class Status(models.TextChoices):
        RUNNING = 'running', 'Running'
        COMPLETED = 'completed', 'Completed'
        CANCELLED = 'cancelled', 'Cancelled'
        FAILED = 'failed', 'Failed'

    period_start = models.DateField()
    period_end = models.DateField()
    organization = models.ForeignKey(
        'organizations.Organization',
        on_delete=models.SET_NULL,
        null=True, blank=True,
        related_name='generation_runs',
        help_text='Empty when the run covered every organization in scope'
    )
    triggered_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True, blank=True,
        related_name='invoice_generation_runs'
    )
    dry_run = models.BooleanField(default=False)
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.RUNNING)

    created_count = models.PositiveIntegerField(default=0)
    skipped_count = models.PositiveIntegerField(default=0)
    failed_count = models.PositiveIntegerField(default=0)
    pending_count = models.PositiveIntegerField(default=0)
    warning_count = models.PositiveIntegerField(default=0)
    details = models.JSONField(default=dict, blank=True)

    started_at = models.DateTimeField(auto_now_add=True)
    finished_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ['-started_at']

    def __str__(self):
        return f"Run {self.pk} {self.period_start:%Y-%m} ({self.get_status_display()})"
