"""
Utility functions shared by the billing back office.
"""
from django.conf import settings
from django.utils import timezone


def generate_number(document_type, model_class, number_field='number', year=None):
    """
    Generate a sequential number for master records.
    Format: PREFIX-YEAR-NUMBER (e.g., TEN-2025-0001)

    Args:
        document_type: Key from NUMBER_SERIES settings (e.g., 'TENANT')
        model_class: The model class to query for existing numbers
        number_field: The field name that stores the number
        year: Year segment; defaults to the current year

    Returns:
        str: Generated number
    """
    series = settings.NUMBER_SERIES.get(document_type, {})
    prefix = series.get('prefix', 'DOC')
    padding = series.get('padding', 4)

    year = year or timezone.now().year
    year_prefix = f"{prefix}-{year}-"

    # Get the last number for this year
    filter_kwargs = {f'{number_field}__startswith': year_prefix}
    last_record = model_class.objects.filter(**filter_kwargs).order_by(f'-{number_field}').first()

    last_seq = 0
    if last_record:
        try:
            last_seq = int(getattr(last_record, number_field).split('-')[-1])
        except (ValueError, IndexError):
            last_seq = 0

    return f"{year_prefix}{str(last_seq + 1).zfill(padding)}"


def get_client_ip(request):
    """Get the client IP address from request."""
    if request is None:
        return None
    x_forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR')
    if x_forwarded_for:
        return x_forwarded_for.split(',')[0].strip()
    return request.META.get('REMOTE_ADDR')
