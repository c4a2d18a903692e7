"""
Property, Unit and Tenant Test Cases

1. At most one active tenant per unit (validation and database constraint)
2. Unit occupancy derived from the active tenant
3. Lease end is the last occupied day
4. Sequential tenant numbers

Run: python manage.py test apps.property -v 2
"""
from datetime import date
from decimal import Decimal

from django.core.exceptions import ValidationError
from django.db import IntegrityError, transaction
from django.test import TestCase

from apps.billing.tests.mixins import BillingSetupMixin
from apps.core.periods import Period
from .models import Tenant


class ActiveTenantConstraintTest(BillingSetupMixin, TestCase):

    def new_tenant(self, unit, **kwargs):
        values = {'unit': unit, 'name': 'New Tenant', 'monthly_rent': Decimal('900.00'),
                  'lease_start': date(2025, 3, 1)}
        values.update(kwargs)
        return Tenant(**values)

    def test_second_active_tenant_fails_validation(self):
        with self.assertRaises(ValidationError) as ctx:
            self.new_tenant(self.a1_u1).full_clean(exclude=['tenant_number'])
        self.assertIn('unit', ctx.exception.message_dict)

    def test_second_active_tenant_blocked_by_database(self):
        with self.assertRaises(IntegrityError):
            with transaction.atomic():
                self.new_tenant(self.a1_u1).save()

    def test_inactive_tenant_allowed_alongside_active(self):
        tenant = self.new_tenant(self.a1_u1, status=Tenant.Status.TERMINATED)
        tenant.full_clean(exclude=['tenant_number'])
        tenant.save()

        self.assertEqual(self.a1_u1.tenants.count(), 2)

    def test_vacant_unit_accepts_tenant(self):
        tenant = self.new_tenant(self.a1_u3)
        tenant.full_clean(exclude=['tenant_number'])
        tenant.save()

        self.assertTrue(self.a1_u3.is_occupied())


class OccupancyTest(BillingSetupMixin, TestCase):

    def test_occupancy_follows_active_tenant(self):
        self.assertTrue(self.a1_u1.is_occupied())
        self.assertFalse(self.a1_u3.is_occupied())
        self.assertEqual(self.a1_u1.get_active_tenant(), self.tenant1)

        Tenant.objects.filter(pk=self.tenant1.pk).update(status=Tenant.Status.TERMINATED)

        self.assertFalse(self.a1_u1.is_occupied())
        self.assertIsNone(self.a1_u1.get_active_tenant())


class TenancyTest(BillingSetupMixin, TestCase):

    def test_lease_end_is_inclusive(self):
        self.tenant1.lease_end = date(2025, 1, 31)

        self.assertEqual(self.tenant1.tenancy, Period(date(2024, 1, 1), date(2025, 2, 1)))
        self.assertTrue(self.tenant1.tenancy.covers(Period.for_month(2025, 1)))

    def test_open_lease(self):
        self.assertTrue(self.tenant1.tenancy.covers(Period.for_month(2040, 1)))

    def test_lease_end_before_start_rejected(self):
        self.tenant1.lease_end = date(2023, 12, 31)

        with self.assertRaises(ValidationError):
            self.tenant1.full_clean()

    def test_rent_due_day_range(self):
        self.tenant1.rent_due_day = 32

        with self.assertRaises(ValidationError) as ctx:
            self.tenant1.full_clean()
        self.assertIn('rent_due_day', ctx.exception.message_dict)


class NumberingTest(BillingSetupMixin, TestCase):

    def test_tenant_numbers_are_sequential(self):
        numbers = list(Tenant.objects.order_by('pk').values_list('tenant_number', flat=True))

        self.assertEqual([n.split('-')[-1] for n in numbers], ['0001', '0002', '0003', '0004'])
        self.assertTrue(all(n.startswith('TEN-') for n in numbers))
        self.assertTrue(self.prop_a1.property_number.startswith('PROP-'))
