"""
Money and Period primitive tests.

Run: python manage.py test apps.core -v 2
"""
from datetime import date
from decimal import Decimal

from django.core.exceptions import ValidationError
from django.test import SimpleTestCase

from .money import prorate, round_money, sum_money, to_decimal
from .periods import Period


class MoneyTest(SimpleTestCase):

    def test_round_half_away_from_zero(self):
        self.assertEqual(round_money(Decimal('2.345')), Decimal('2.35'))
        self.assertEqual(round_money(Decimal('2.355')), Decimal('2.36'))
        self.assertEqual(round_money(Decimal('-2.345')), Decimal('-2.35'))
        self.assertEqual(round_money('0.125'), Decimal('0.13'))

    def test_always_two_places(self):
        self.assertEqual(str(round_money(5)), '5.00')
        self.assertEqual(str(sum_money([])), '0.00')

    def test_floats_rejected(self):
        with self.assertRaises(TypeError):
            to_decimal(0.1)
        with self.assertRaises(TypeError):
            round_money(1.5)
        with self.assertRaises(TypeError):
            to_decimal(True)

    def test_prorate_rounds_once(self):
        self.assertEqual(prorate(Decimal('1500.00'), 16, 31), Decimal('774.19'))
        self.assertEqual(prorate(Decimal('1000.00'), 31, 31), Decimal('1000.00'))
        self.assertEqual(prorate(Decimal('100.00'), 1, 3), Decimal('33.33'))

    def test_prorate_empty_whole(self):
        with self.assertRaises(ValueError):
            prorate(Decimal('100.00'), 1, 0)

    def test_sum_money(self):
        self.assertEqual(sum_money(['0.10', '0.20', Decimal('0.30')]), Decimal('0.60'))


class PeriodTest(SimpleTestCase):

    def test_month_is_half_open(self):
        period = Period.for_month(2025, 1)

        self.assertEqual(period.start, date(2025, 1, 1))
        self.assertEqual(period.end, date(2025, 2, 1))
        self.assertEqual(period.duration_days(), 31)
        self.assertEqual(period.last_day, date(2025, 1, 31))
        self.assertTrue(period.contains(date(2025, 1, 31)))
        self.assertFalse(period.contains(date(2025, 2, 1)))

    def test_december_and_leap_february(self):
        self.assertEqual(Period.for_month(2024, 12).end, date(2025, 1, 1))
        self.assertEqual(Period.for_month(2024, 2).duration_days(), 29)

    def test_invalid_month_rejected(self):
        for year, month in [(2025, 0), (2025, 13), ('abc', 1), (None, 1)]:
            with self.assertRaises(ValidationError):
                Period.for_month(year, month)

    def test_empty_period_rejected(self):
        with self.assertRaises(ValueError):
            Period(date(2025, 1, 1), date(2025, 1, 1))

    def test_overlap_is_exclusive_at_end(self):
        january = Period.for_month(2025, 1)
        february = Period.for_month(2025, 2)

        self.assertFalse(january.overlaps(february))
        self.assertIsNone(january.clamp_to(february))
        self.assertTrue(january.overlaps(Period(date(2025, 1, 31), date(2025, 2, 2))))

    def test_clamp_to(self):
        january = Period.for_month(2025, 1)
        lease = Period.from_inclusive(date(2025, 1, 16), date(2025, 3, 31))

        clamped = lease.clamp_to(january)

        self.assertEqual(clamped, Period(date(2025, 1, 16), date(2025, 2, 1)))
        self.assertEqual(clamped.duration_days(), 16)

    def test_open_ended_covers(self):
        open_ended = Period.open_ended(date(2024, 1, 1))

        self.assertTrue(open_ended.covers(Period.for_month(2030, 6)))
        self.assertEqual(open_ended.clamp_to(Period.for_month(2025, 1)), Period.for_month(2025, 1))
