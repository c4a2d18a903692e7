"""
Utility Billing Calculator Test Cases

1. Metered: readings 100 -> 120 at rate 10 bills 20 units, 200.00
2. Missing or inconsistent readings are skipped with a warning, never estimated
3. Fixed amounts are prorated by how much of the period the config covers
4. Unit-specific configs replace property-wide configs of the same type
5. Overlapping configs: latest effective_from wins, conflict reported
6. Shared amounts are split across occupied units and prorated by active days
7. Overlapping configs are rejected at write time
8. Meter readings never go below the previous reading

Run: python manage.py test apps.utilities -v 2
"""
from datetime import date
from decimal import Decimal

from django.core.exceptions import ValidationError
from django.test import TestCase

from apps.billing.models import InvoiceLineItem
from apps.billing.tests.mixins import BillingSetupMixin
from apps.core.access import AccessScope
from apps.core.periods import Period
from apps.property.models import Tenant
from .calculator import BillingWarning, UtilityBillingCalculator
from .models import MeterReading, UtilityConfig

JANUARY = Period.for_month(2025, 1)


class CalculatorTestCase(BillingSetupMixin, TestCase):

    def setUp(self):
        self.calculator = UtilityBillingCalculator(AccessScope.system())

    def compute(self, tenant, period=JANUARY):
        return self.calculator.compute_line_items(tenant, period)

    def water_config(self, **kwargs):
        values = {'utility_type': self.water, 'property': self.prop_a1, 'rate': Decimal('10'),
                  'effective_from': date(2024, 1, 1)}
        values.update(kwargs)
        return UtilityConfig.objects.create(**values)

    def garbage_config(self, amount, **kwargs):
        values = {'utility_type': self.garbage, 'property': self.prop_a1, 'fixed_amount': Decimal(amount),
                  'effective_from': date(2024, 1, 1)}
        values.update(kwargs)
        return UtilityConfig.objects.create(**values)

    def read(self, config, day, value, unit=None):
        return MeterReading.objects.create(
            utility_config=config, unit=unit or self.a1_u1, reading_date=day, reading_value=Decimal(value)
        )


class MeteredBillingTest(CalculatorTestCase):

    def test_metered_consumption_times_rate(self):
        config = self.water_config()
        self.read(config, date(2025, 1, 1), '100')
        self.read(config, date(2025, 1, 31), '120')

        result = self.compute(self.tenant1)

        self.assertEqual(len(result.line_items), 1)
        item = result.line_items[0]
        self.assertEqual(item.quantity, Decimal('20'))
        self.assertEqual(item.rate, Decimal('10'))
        self.assertEqual(item.amount, Decimal('200.00'))
        self.assertEqual(item.description, 'Water (Metered)')
        self.assertEqual(item.line_type, InvoiceLineItem.LineType.UTILITY)
        self.assertEqual(item.unit_of_measure, 'm3')
        self.assertEqual(result.warnings, [])

    def test_latest_reading_at_or_before_each_boundary(self):
        config = self.water_config()
        self.read(config, date(2024, 12, 1), '80')
        self.read(config, date(2024, 12, 28), '95')
        self.read(config, date(2025, 1, 20), '110')
        self.read(config, date(2025, 2, 1), '118.5')
        self.read(config, date(2025, 2, 10), '150')

        item = self.compute(self.tenant1).line_items[0]

        self.assertEqual(item.quantity, Decimal('23.5'))
        self.assertEqual(item.amount, Decimal('235.00'))

    def test_readings_of_other_units_are_ignored(self):
        config = self.water_config()
        self.read(config, date(2025, 1, 1), '100', unit=self.a1_u2)
        self.read(config, date(2025, 1, 31), '120', unit=self.a1_u2)

        result = self.compute(self.tenant1)

        self.assertEqual(result.line_items, [])
        self.assertEqual(result.warnings[0].code, BillingWarning.MISSING_READING)

    def test_missing_opening_reading_skips_with_warning(self):
        config = self.water_config()
        self.read(config, date(2025, 1, 15), '120')

        result = self.compute(self.tenant1)

        self.assertEqual(result.line_items, [])
        self.assertEqual(len(result.warnings), 1)
        warning = result.warnings[0]
        self.assertEqual(warning.code, BillingWarning.MISSING_READING)
        self.assertEqual(warning.tenant_id, self.tenant1.pk)
        self.assertEqual(warning.config_id, config.pk)

    def test_no_readings_at_all(self):
        self.water_config()

        result = self.compute(self.tenant1)

        self.assertEqual(result.line_items, [])
        self.assertEqual(result.total, Decimal('0.00'))
        self.assertEqual([w.code for w in result.warnings], [BillingWarning.MISSING_READING])

    def test_negative_consumption_is_flagged_not_clamped(self):
        config = self.water_config()
        self.read(config, date(2025, 1, 1), '100')
        self.read(config, date(2025, 1, 31), '40')

        result = self.compute(self.tenant1)

        self.assertEqual(result.line_items, [])
        self.assertEqual([w.code for w in result.warnings], [BillingWarning.NEGATIVE_CONSUMPTION])

    def test_zero_consumption_produces_no_line(self):
        config = self.water_config()
        self.read(config, date(2025, 1, 1), '100')
        self.read(config, date(2025, 1, 31), '100')

        result = self.compute(self.tenant1)

        self.assertEqual(result.line_items, [])
        self.assertEqual(result.warnings, [])

    def test_amount_rounds_half_up(self):
        config = self.water_config(rate=Decimal('0.125'))
        self.read(config, date(2025, 1, 1), '0')
        self.read(config, date(2025, 1, 31), '1')

        item = self.compute(self.tenant1).line_items[0]

        self.assertEqual(item.amount, Decimal('0.13'))


class FixedBillingTest(CalculatorTestCase):

    def test_full_coverage_bills_exact_amount(self):
        self.garbage_config('300.00')

        item = self.compute(self.tenant1).line_items[0]

        self.assertEqual(item.amount, Decimal('300.00'))
        self.assertEqual(item.quantity, Decimal('1'))
        self.assertEqual(item.rate, item.amount)
        self.assertEqual(item.description, 'Garbage (Fixed)')

    def test_config_starting_mid_period_is_prorated(self):
        self.garbage_config('300.00', effective_from=date(2025, 1, 11))

        item = self.compute(self.tenant1).line_items[0]

        # 21 of 31 days
        self.assertEqual(item.amount, Decimal('203.23'))

    def test_sequential_configs_bill_their_own_slice(self):
        self.garbage_config('300.00', effective_to=date(2025, 1, 16))
        self.garbage_config('400.00', effective_from=date(2025, 1, 16))

        result = self.compute(self.tenant1)

        self.assertEqual([item.amount for item in result.line_items], [Decimal('145.16'), Decimal('206.45')])
        self.assertEqual(result.warnings, [])

    def test_expired_and_future_configs_are_ignored(self):
        self.garbage_config('300.00', effective_to=date(2025, 1, 1))
        self.garbage_config('500.00', effective_from=date(2025, 2, 1))

        self.assertEqual(self.compute(self.tenant1).line_items, [])

    def test_inactive_config_is_ignored(self):
        self.garbage_config('300.00', is_active=False)

        self.assertEqual(self.compute(self.tenant1).line_items, [])

    def test_config_of_other_property_is_ignored(self):
        self.garbage_config('300.00', property=self.prop_a2)

        self.assertEqual(self.compute(self.tenant1).line_items, [])
        self.assertEqual(len(self.compute(self.tenant3).line_items), 1)

    def test_config_without_amount_is_reported(self):
        self.garbage_config('0', fixed_amount=None)

        result = self.compute(self.tenant1)

        self.assertEqual(result.line_items, [])
        self.assertEqual([w.code for w in result.warnings], [BillingWarning.INVALID_CONFIG])


class ConfigPrecedenceTest(CalculatorTestCase):

    def test_unit_specific_config_wins(self):
        self.garbage_config('300.00')
        self.garbage_config('450.00', unit=self.a1_u1)

        result = self.compute(self.tenant1)

        self.assertEqual([item.amount for item in result.line_items], [Decimal('450.00')])

    def test_property_wide_config_still_applies_to_other_units(self):
        self.garbage_config('300.00')
        self.garbage_config('450.00', unit=self.a1_u1)

        result = self.compute(self.tenant2, Period.for_month(2025, 2))

        self.assertEqual([item.amount for item in result.line_items], [Decimal('300.00')])

    def test_overlapping_configs_latest_effective_from_wins(self):
        # Bypasses clean(), as legacy or imported rows may
        self.garbage_config('300.00')
        newer = self.garbage_config('350.00', effective_from=date(2024, 12, 1))

        result = self.compute(self.tenant1)

        self.assertEqual([item.amount for item in result.line_items], [Decimal('350.00')])
        self.assertEqual(result.line_items[0].utility_config, newer)
        self.assertEqual([w.code for w in result.warnings], [BillingWarning.CONFIG_OVERLAP])

    def test_each_utility_type_billed_separately(self):
        self.garbage_config('300.00')
        config = self.water_config()
        self.read(config, date(2025, 1, 1), '100')
        self.read(config, date(2025, 1, 31), '120')

        result = self.compute(self.tenant1)

        self.assertEqual(
            [item.description for item in result.line_items],
            ['Garbage (Fixed)', 'Water (Metered)']
        )
        self.assertEqual(result.total, Decimal('500.00'))


class SharedBillingTest(CalculatorTestCase):

    def setUp(self):
        super().setUp()
        UtilityConfig.objects.create(
            utility_type=self.security, property=self.prop_a1,
            shared_amount=Decimal('3000.00'), effective_from=date(2024, 1, 1),
        )

    def test_split_across_occupied_units(self):
        # A1 and A2 occupied during January, A3 vacant
        item = self.compute(self.tenant1).line_items[0]

        self.assertEqual(item.amount, Decimal('1500.00'))
        self.assertEqual(item.description, 'Security (Shared)')

    def test_partial_tenancy_prorates_share(self):
        # 16 of 31 days
        item = self.compute(self.tenant2).line_items[0]

        self.assertEqual(item.amount, Decimal('774.19'))

    def test_unit_occupied_before_period_is_not_counted(self):
        Tenant.objects.create(
            unit=self.a1_u3, name='Former Tenant', monthly_rent=Decimal('900.00'),
            lease_start=date(2024, 1, 1), lease_end=date(2024, 12, 31),
            status=Tenant.Status.TERMINATED,
        )

        item = self.compute(self.tenant1).line_items[0]

        self.assertEqual(item.amount, Decimal('1500.00'))

    def test_tenant_leaving_during_period_still_counts_unit(self):
        Tenant.objects.create(
            unit=self.a1_u3, name='Leaving Tenant', monthly_rent=Decimal('900.00'),
            lease_start=date(2024, 1, 1), lease_end=date(2025, 1, 10),
            status=Tenant.Status.TERMINATED,
        )

        item = self.compute(self.tenant1).line_items[0]

        self.assertEqual(item.amount, Decimal('1000.00'))

    def test_terminated_tenant_without_lease_end_is_not_counted(self):
        Tenant.objects.create(
            unit=self.a1_u3, name='Departed Tenant', monthly_rent=Decimal('900.00'),
            lease_start=date(2024, 1, 1), status=Tenant.Status.TERMINATED,
        )

        item = self.compute(self.tenant1).line_items[0]

        self.assertEqual(item.amount, Decimal('1500.00'))


class CalculatorValidationTest(CalculatorTestCase):

    def test_tenant_without_unit_is_rejected(self):
        tenant = Tenant.objects.create(
            name='Unhoused', monthly_rent=Decimal('500.00'), lease_start=date(2024, 1, 1),
            status=Tenant.Status.INACTIVE,
        )

        with self.assertRaises(ValidationError):
            self.compute(tenant)


class UtilityConfigValidationTest(BillingSetupMixin, TestCase):

    def build(self, **kwargs):
        values = {'utility_type': self.garbage, 'property': self.prop_a1, 'fixed_amount': Decimal('300.00'),
                  'effective_from': date(2025, 1, 1)}
        values.update(kwargs)
        return UtilityConfig(**values)

    def test_overlapping_range_rejected(self):
        self.build().save()
        clash = self.build(effective_from=date(2025, 3, 1))

        with self.assertRaises(ValidationError):
            clash.full_clean()

    def test_adjacent_ranges_allowed(self):
        self.build(effective_to=date(2025, 3, 1)).save()
        follow_up = self.build(effective_from=date(2025, 3, 1))

        follow_up.full_clean()

    def test_unit_and_property_scopes_do_not_clash(self):
        self.build().save()
        unit_config = self.build(unit=self.a1_u1)

        unit_config.full_clean()

    def test_mode_parameter_required(self):
        with self.assertRaises(ValidationError) as ctx:
            self.build(fixed_amount=None).full_clean()
        self.assertIn('fixed_amount', ctx.exception.message_dict)

    def test_billing_mode_defaults_to_type(self):
        config = self.build()
        config.save()

        self.assertEqual(config.billing_mode, 'fixed')

    def test_end_before_start_rejected(self):
        with self.assertRaises(ValidationError) as ctx:
            self.build(effective_to=date(2024, 12, 1)).full_clean()
        self.assertIn('effective_to', ctx.exception.message_dict)

    def test_reading_requires_metered_config(self):
        config = self.build()
        config.save()
        reading = MeterReading(utility_config=config, unit=self.a1_u1,
                               reading_date=date(2025, 1, 1), reading_value=Decimal('10'))

        with self.assertRaises(ValidationError):
            reading.full_clean()

    def test_config_properties(self):
        config = self.build(unit=self.a1_u1, effective_to=date(2025, 3, 1))

        self.assertEqual(config.effective_period, Period(date(2025, 1, 1), date(2025, 3, 1)))
        self.assertEqual(config.mode, 'fixed')
        self.assertEqual(config.mode_parameter, Decimal('300.00'))
        self.assertTrue(config.is_unit_specific)
        self.assertFalse(self.build().is_unit_specific)


class MeterReadingValidationTest(BillingSetupMixin, TestCase):

    def setUp(self):
        self.config = UtilityConfig.objects.create(
            utility_type=self.water, property=self.prop_a1, rate=Decimal('10'), effective_from=date(2024, 1, 1),
        )
        MeterReading.objects.create(utility_config=self.config, unit=self.a1_u1,
                                    reading_date=date(2025, 1, 1), reading_value=Decimal('100'))

    def reading(self, day, value, unit=None):
        return MeterReading(utility_config=self.config, unit=unit or self.a1_u1,
                            reading_date=day, reading_value=Decimal(value))

    def test_reading_below_previous_rejected(self):
        with self.assertRaises(ValidationError) as ctx:
            self.reading(date(2025, 1, 31), '90').full_clean()
        self.assertIn('reading_value', ctx.exception.message_dict)

    def test_reading_at_or_above_previous_accepted(self):
        self.reading(date(2025, 1, 31), '100').full_clean()
        self.reading(date(2025, 1, 31), '125.5').full_clean()

    def test_first_reading_of_other_unit_accepted(self):
        self.reading(date(2025, 1, 31), '5', unit=self.a1_u2).full_clean()

    def test_previous_reading_is_latest_before_date(self):
        MeterReading.objects.create(utility_config=self.config, unit=self.a1_u1,
                                    reading_date=date(2025, 2, 1), reading_value=Decimal('130'))

        previous = self.reading(date(2025, 1, 15), '110').previous_reading()

        self.assertEqual(previous.reading_value, Decimal('100'))
