"""
Core middleware for the billing back office.
"""
import logging
import threading

from django.core.exceptions import ValidationError
from django.http import JsonResponse
from django.utils.deprecation import MiddlewareMixin
from django.utils.functional import SimpleLazyObject

from apps.core.exceptions import AccessDenied, ResourceNotFound

logger = logging.getLogger(__name__)

# Thread local storage for current user
_thread_locals = threading.local()


def get_current_user():
    """Get the current user from thread local storage."""
    return getattr(_thread_locals, 'user', None)


def get_current_request():
    """Get the current request from thread local storage."""
    return getattr(_thread_locals, 'request', None)


class AccessScopeMiddleware(MiddlewareMixin):
    """
    Stores the current user and request in thread local storage so models
    can track created_by/updated_by, and attaches ``request.access_scope``.

    The scope is resolved lazily, once per request, from the user's
    memberships.
    """

    def process_request(self, request):
        from apps.core.access import AccessScope

        _thread_locals.user = getattr(request, 'user', None)
        _thread_locals.request = request
        request.access_scope = SimpleLazyObject(lambda: AccessScope.for_user(request.user))

    def process_response(self, request, response):
        # Clean up thread local storage
        if hasattr(_thread_locals, 'user'):
            del _thread_locals.user
        if hasattr(_thread_locals, 'request'):
            del _thread_locals.request
        return response


class ApiExceptionMiddleware(MiddlewareMixin):
    """
    Translates domain exceptions raised by JSON endpoints into JSON errors.

    AccessDenied -> 403, ResourceNotFound -> 404, ValidationError -> 400.
    Anything else falls through to Django's own handling.
    """

    def process_exception(self, request, exception):
        if isinstance(exception, AccessDenied):
            logger.info("Access denied for %s on %s: %s", request.user, request.path, exception)
            return JsonResponse({'error': 'forbidden', 'detail': str(exception) or 'Access denied.'}, status=403)
        if isinstance(exception, ResourceNotFound):
            return JsonResponse({'error': 'not_found', 'detail': str(exception) or 'Not found.'}, status=404)
        if isinstance(exception, ValidationError):
            return JsonResponse({'error': 'invalid', 'detail': exception.messages}, status=400)
        return None
