"""
Generate tenant invoices for one billing month.

Re-running the same month is safe: tenants that already have an invoice
are reported as skipped. Ctrl+C stops after the tenant in progress;
invoices already written are kept.

Usage:
    python manage.py generate_invoices --year 2025 --month 1
    python manage.py generate_invoices --year 2025 --month 1 --organization acme --workers 4
    python manage.py generate_invoices --year 2025 --month 1 --dry-run
"""
import signal

from django.core.exceptions import ValidationError
from django.core.management.base import BaseCommand, CommandError

from apps.billing.services import CancellationToken, InvoiceGenerator
from apps.core.access import AccessScope
from apps.organizations.models import Organization


class Command(BaseCommand):
    help = 'Generate invoices for all active tenants for a billing month'

    def add_arguments(self, parser):
        parser.add_argument('--year', type=int, required=True)
        parser.add_argument('--month', type=int, required=True)
        parser.add_argument('--organization', help='Organization code; defaults to all organizations')
        parser.add_argument('--workers', type=int, help='Parallel tenant workers')
        parser.add_argument('--dry-run', action='store_true', help='Compute invoices without saving them')

    def handle(self, *args, **options):
        organization = None
        scope = AccessScope.system()
        if options['organization']:
            try:
                organization = Organization.objects.get(code=options['organization'], is_active=True)
            except Organization.DoesNotExist:
                raise CommandError(f"Organization '{options['organization']}' not found.")
            scope = AccessScope.for_organization(organization)

        token = CancellationToken()

        def request_cancel(signum, frame):
            self.stdout.write(self.style.WARNING('Cancelling after the current tenant...'))
            token.cancel()

        previous_handler = signal.signal(signal.SIGINT, request_cancel)
        try:
            generator = InvoiceGenerator(
                scope,
                organization=organization,
                max_workers=options['workers'],
                cancel_token=token,
                dry_run=options['dry_run'],
            )
            result = generator.generate_for_period(options['year'], options['month'])
        except ValidationError as exc:
            raise CommandError('; '.join(exc.messages))
        finally:
            signal.signal(signal.SIGINT, previous_handler)

        label = 'DRY RUN ' if result.dry_run else ''
        self.stdout.write(f"{label}Invoices for {result.period}:")
        self.stdout.write(f"  Created: {result.created_count}")
        self.stdout.write(f"  Skipped: {result.skipped_count}")
        self.stdout.write(f"  Failed:  {result.failed_count}")
        if result.pending_count:
            self.stdout.write(f"  Pending: {result.pending_count}")

        for outcome in result.failed:
            self.stdout.write(self.style.ERROR(f"  ✗ {outcome.tenant_number}: {outcome.reason}"))
        for tenant_id, warnings in result.warnings.items():
            for warning in warnings:
                self.stdout.write(self.style.WARNING(f"  ! [{warning.code}] {warning.message}"))

        if result.pending_count:
            self.stdout.write(self.style.WARNING(
                f"Run cancelled; {result.pending_count} tenants pending. Re-run to finish."
            ))
        elif result.failed_count:
            self.stdout.write(self.style.WARNING('Completed with failures. Fix the data and re-run.'))
        else:
            self.stdout.write(self.style.SUCCESS('✓ Invoice generation completed.'))
