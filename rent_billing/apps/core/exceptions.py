"""
Domain exceptions shared across apps.

Validation problems use django.core.exceptions.ValidationError directly,
the same as model ``clean()`` methods do.
"""
from django.core.exceptions import ObjectDoesNotExist, PermissionDenied


class AccessDenied(PermissionDenied):
    """Caller is authenticated but the resource is outside their scope."""


class ResourceNotFound(ObjectDoesNotExist):
    """
    Resource does not exist, or exists outside the caller's scope where
    confirming its existence would itself leak information.
    """
