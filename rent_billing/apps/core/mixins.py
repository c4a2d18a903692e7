"""
View mixins for the billing back office.
"""
from django.contrib.auth.mixins import LoginRequiredMixin, UserPassesTestMixin
from django.http import JsonResponse

from apps.core.access import Capability
from apps.core.exceptions import AccessDenied


class ScopedAccessMixin(LoginRequiredMixin, UserPassesTestMixin):
    """
    Mixin exposing the caller's AccessScope and checking one capability.

    Usage:
        class MyView(ScopedAccessMixin, View):
            required_capability = Capability.GENERATE_INVOICES

    Views without ``required_capability`` only need an authenticated caller;
    record-level isolation is still applied by the scope's querysets.
    """
    required_capability = None
    raise_exception = True

    @property
    def scope(self):
        return self.request.access_scope

    def test_func(self):
        if not self.required_capability:
            return True
        return self.scope.has(self.required_capability)

    def handle_no_permission(self):
        if not self.request.user.is_authenticated:
            return JsonResponse({'error': 'unauthenticated', 'detail': 'Authentication required.'}, status=401)
        raise AccessDenied('You do not have permission to perform this action.')


class GeneratePermissionMixin(ScopedAccessMixin):
    """Mixin for invoice generation views."""
    required_capability = Capability.GENERATE_INVOICES
