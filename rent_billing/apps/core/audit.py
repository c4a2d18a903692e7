"""
Audit logging for billing actions.
"""
import json
import logging
from decimal import Decimal

from .middleware import get_current_request
from .utils import get_client_ip

logger = logging.getLogger(__name__)


def serialize_value(value):
    """Convert value to JSON-serializable format."""
    if value is None:
        return None
    if isinstance(value, Decimal):
        return str(value)
    if hasattr(value, 'isoformat'):
        return value.isoformat()
    if hasattr(value, 'pk'):
        return str(value)
    return value


def log_audit(user, action, model_name, record_id=None, changes=None, organization=None, request=None):
    """
    Create an audit log entry.

    Args:
        user: The user performing the action (None for system jobs)
        action: One of AuditLog.ACTION_CHOICES
        model_name: Name of the model being acted on
        record_id: Primary key of the record
        changes: Dictionary describing the action
        organization: Organization the action belongs to, if any
        request: HTTP request object (optional)
    """
    from apps.organizations.models import AuditLog

    request = request or get_current_request()
    ip_address = get_client_ip(request)

    if changes:
        changes = {key: serialize_value(value) for key, value in changes.items()}
        try:
            json.dumps(changes)
        except (TypeError, ValueError):
            changes = {'message': str(changes)}

    if user is not None and not getattr(user, 'is_authenticated', False):
        user = None

    entry = AuditLog.objects.create(
        user=user,
        organization=organization,
        action=action,
        model=model_name,
        record_id=str(record_id) if record_id else '',
        changes=changes or {},
        ip_address=ip_address
    )
    logger.debug("Audit %s %s %s by %s", action, model_name, record_id, user)
    return entry
