"""
Half-open date periods used for billing cycles, tenancies and utility
configuration ranges.
"""
from datetime import date, timedelta

from dateutil.relativedelta import relativedelta
from django.core.exceptions import ValidationError


class Period:
    """
    Date range ``[start, end)``: ``start`` is included, ``end`` is not.

    A calendar month is ``Period(date(2025, 1, 1), date(2025, 2, 1))``.
    """
    __slots__ = ('start', 'end')

    def __init__(self, start, end):
        if not isinstance(start, date) or not isinstance(end, date):
            raise TypeError('Period bounds must be dates.')
        if end <= start:
            raise ValueError(f'Period end {end} must be after start {start}.')
        self.start = start
        self.end = end

    @classmethod
    def for_month(cls, year, month):
        """Canonical billing period ``[first day of month, first day of next month)``."""
        try:
            year = int(year)
            month = int(month)
        except (TypeError, ValueError):
            raise ValidationError('Year and month must be integers.')
        if not 1 <= month <= 12:
            raise ValidationError(f'Invalid month {month}; expected 1-12.')
        if not 1900 <= year <= 9998:
            raise ValidationError(f'Invalid year {year}.')
        start = date(year, month, 1)
        return cls(start, start + relativedelta(months=1))

    @classmethod
    def from_inclusive(cls, start, last_day):
        """Build a period from a start and an inclusive last day."""
        return cls(start, last_day + timedelta(days=1))

    @classmethod
    def open_ended(cls, start):
        return cls(start, date.max)

    def duration_days(self):
        return (self.end - self.start).days

    def overlaps(self, other):
        return self.start < other.end and other.start < self.end

    def clamp_to(self, other):
        """Intersection with ``other``, or None when they do not overlap."""
        if not self.overlaps(other):
            return None
        return Period(max(self.start, other.start), min(self.end, other.end))

    def contains(self, day):
        return self.start <= day < self.end

    def covers(self, other):
        return self.start <= other.start and other.end <= self.end

    @property
    def last_day(self):
        return self.end - timedelta(days=1)

    def __eq__(self, other):
        if not isinstance(other, Period):
            return NotImplemented
        return self.start == other.start and self.end == other.end

    def __hash__(self):
        return hash((self.start, self.end))

    def __repr__(self):
        return f"Period({self.start.isoformat()}, {self.end.isoformat()})"

    def __str__(self):
        return f"{self.start.isoformat()} to {self.last_day.isoformat()}"
