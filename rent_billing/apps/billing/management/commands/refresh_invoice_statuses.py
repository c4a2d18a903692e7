"""
Recompute invoice statuses (overdue, paid, partially paid) from balance
and due date. Intended for a daily schedule.
"""
from datetime import date

from django.core.management.base import BaseCommand, CommandError

from apps.billing.services import refresh_invoice_statuses
from apps.core.access import AccessScope


class Command(BaseCommand):
    help = 'Refresh invoice statuses as of a date (default: today)'

    def add_arguments(self, parser):
        parser.add_argument('--date', help='As-of date, YYYY-MM-DD')

    def handle(self, *args, **options):
        as_of = None
        if options['date']:
            try:
                as_of = date.fromisoformat(options['date'])
            except ValueError:
                raise CommandError(f"Invalid date '{options['date']}'; expected YYYY-MM-DD.")

        changed = refresh_invoice_statuses(AccessScope.system(), as_of=as_of)
        self.stdout.write(self.style.SUCCESS(f'✓ {changed} invoice statuses updated.'))
