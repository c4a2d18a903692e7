"""
Utility Billing Calculator.

Turns the utility configurations that apply to a tenant's unit into unsaved
invoice line items for one billing period. Data problems (overlapping
configs, missing or inconsistent meter readings) never abort the tenant:
the affected utility is left off the invoice and a BillingWarning is
returned alongside the line items.
"""
import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from decimal import Decimal

from django.core.exceptions import ValidationError
from django.db.models import Q

from apps.core.money import ZERO, prorate, round_money
from .models import BillingMode, MeterReading, UtilityConfig

logger = logging.getLogger(__name__)


@dataclass
class BillingWarning:
    """A data-integrity problem found while billing one tenant."""
    CONFIG_OVERLAP = 'config_overlap'
    MISSING_READING = 'missing_reading'
    NEGATIVE_CONSUMPTION = 'negative_consumption'
    INVALID_CONFIG = 'invalid_config'

    code: str
    message: str
    tenant_id: int = None
    config_id: int = None

    def as_dict(self):
        return {
            'code': self.code,
            'message': self.message,
            'tenant_id': self.tenant_id,
            'config_id': self.config_id,
        }


@dataclass
class BillingComputation:
    line_items: list = field(default_factory=list)
    warnings: list = field(default_factory=list)

    @property
    def total(self):
        return sum((item.amount for item in self.line_items), ZERO)


class UtilityBillingCalculator:
    """
    Computes utility charges for a tenant and period.

    Usage:
        calculator = UtilityBillingCalculator(scope)
        result = calculator.compute_line_items(tenant, Period.for_month(2025, 1))

    Reads configs, readings and occupancy through the given AccessScope and
    writes nothing.
    """

    def __init__(self, scope):
        self.scope = scope

    def compute_line_items(self, tenant, period):
        from apps.billing.models import InvoiceLineItem

        if tenant.unit_id is None:
            raise ValidationError(f'Tenant {tenant.tenant_number} is not assigned to a unit.')

        result = BillingComputation()
        configs = self._select_configs(tenant, period, result)

        for config in configs:
            if config.mode_parameter is None or config.mode_parameter <= 0:
                self._warn(result, BillingWarning.INVALID_CONFIG, tenant, config,
                           f'{config} has no positive {config.MODE_PARAMETERS[config.mode].replace("_", " ")}.')
                continue

            if config.mode == BillingMode.FIXED:
                values = self._fixed(config, period)
            elif config.mode == BillingMode.METERED:
                values = self._metered(config, tenant, period, result)
            else:
                values = self._shared(config, tenant, period)

            if values is None:
                continue

            quantity, rate, amount = values
            utility_type = config.utility_type
            result.line_items.append(InvoiceLineItem(
                line_type=InvoiceLineItem.LineType.UTILITY,
                description=f'{utility_type.name} ({BillingMode(config.mode).label})',
                quantity=quantity,
                rate=rate,
                amount=amount,
                unit_of_measure=utility_type.unit_of_measure,
                utility_type=utility_type,
                utility_config=config,
            ))

        return result

    # ------------------------------------------------------------------
    # Config selection
    # ------------------------------------------------------------------

    def _select_configs(self, tenant, period, result):
        unit = tenant.unit
        candidates = self.scope.queryset(UtilityConfig).filter(
            property_id=unit.property_id,
            is_active=True,
            effective_from__lt=period.end,
        ).filter(
            Q(unit__isnull=True) | Q(unit_id=unit.pk)
        ).filter(
            Q(effective_to__isnull=True) | Q(effective_to__gt=period.start)
        ).select_related('utility_type').order_by('utility_type__name', 'effective_from', 'pk')

        by_type = OrderedDict()
        for config in candidates:
            by_type.setdefault(config.utility_type_id, []).append(config)

        selected = []
        for configs in by_type.values():
            unit_specific = [c for c in configs if c.is_unit_specific]
            if unit_specific:
                # Unit-level configuration replaces the property-wide one entirely
                configs = unit_specific
            selected.extend(self._resolve_overlaps(configs, tenant, result))
        return selected

    def _resolve_overlaps(self, configs, tenant, result):
        """
        Keep non-overlapping configs; among overlapping ones the latest
        effective_from wins and the conflict is reported.
        """
        kept = []
        for config in sorted(configs, key=lambda c: (c.effective_from, c.pk), reverse=True):
            winner = next(
                (k for k in kept if k.effective_period.overlaps(config.effective_period)), None
            )
            if winner is None:
                kept.append(config)
                continue
            self._warn(
                result, BillingWarning.CONFIG_OVERLAP, tenant, config,
                f'Utility config {config.pk} overlaps config {winner.pk} for '
                f'{config.utility_type.name}; using config {winner.pk} '
                f'(effective from {winner.effective_from}).'
            )
        kept.reverse()
        return kept

    # ------------------------------------------------------------------
    # Billing modes
    # ------------------------------------------------------------------

    def _fixed(self, config, period):
        coverage = config.effective_period.clamp_to(period)
        if coverage == period:
            amount = round_money(config.fixed_amount)
        else:
            amount = prorate(config.fixed_amount, coverage.duration_days(), period.duration_days())
        if amount <= 0:
            return None
        return Decimal('1'), amount, amount

    def _metered(self, config, tenant, period, result):
        readings = MeterReading.objects.filter(utility_config=config, unit_id=tenant.unit_id)
        opening = readings.filter(reading_date__lte=period.start).order_by('-reading_date').first()
        closing = readings.filter(reading_date__lte=period.end).order_by('-reading_date').first()

        if opening is None or closing is None or closing.reading_date <= opening.reading_date:
            self._warn(
                result, BillingWarning.MISSING_READING, tenant, config,
                f'{config.utility_type.name}: need a reading on or before {period.start} '
                f'and a later one on or before {period.end}; not billed.'
            )
            return None

        quantity = closing.reading_value - opening.reading_value
        if quantity < 0:
            self._warn(
                result, BillingWarning.NEGATIVE_CONSUMPTION, tenant, config,
                f'{config.utility_type.name}: reading dropped from {opening.reading_value} '
                f'({opening.reading_date}) to {closing.reading_value} ({closing.reading_date}); not billed.'
            )
            return None
        if quantity == 0:
            return None

        return quantity, config.rate, round_money(quantity * config.rate)

    def _shared(self, config, tenant, period):
        occupied = self._occupied_unit_count(config.property_id, period)
        if occupied == 0:
            return None
        share = config.shared_amount / occupied

        active = tenant.tenancy.clamp_to(period)
        if active is None:
            return None
        coverage = config.effective_period.clamp_to(active)
        if coverage is None:
            return None
        if coverage == period:
            amount = round_money(share)
        else:
            amount = prorate(share, coverage.duration_days(), period.duration_days())
        if amount <= 0:
            return None
        return Decimal('1'), amount, amount

    def _occupied_unit_count(self, property_id, period):
        """
        Units of the property with a tenant in place for at least one day of the period.
        A terminated tenant counts only up to a recorded lease_end.
        """
        from apps.property.models import Tenant

        tenants = Tenant.objects.filter(
            unit__property_id=property_id,
            lease_start__lt=period.end,
        ).filter(
            Q(status=Tenant.Status.ACTIVE)
            | Q(status=Tenant.Status.TERMINATED, lease_end__isnull=False)
        ).filter(
            Q(lease_end__isnull=True) | Q(lease_end__gte=period.start)
        )
        return tenants.order_by().values('unit_id').distinct().count()

    def _warn(self, result, code, tenant, config, message):
        warning = BillingWarning(code=code, message=message, tenant_id=tenant.pk, config_id=config.pk)
        result.warnings.append(warning)
        logger.warning("Tenant %s: [%s] %s", tenant.tenant_number, code, message)
