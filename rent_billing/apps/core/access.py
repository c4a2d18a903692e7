"""
Tenant-isolation guard.

Every read and write the billing engine performs goes through an
``AccessScope``. The scope is computed once per request (or once per job)
from the caller's memberships and reduced to a capability set, so role
checks live here instead of being re-implemented in each view.

Scoping layers, outermost first:
- organization: owners see every property of their organizations
- property: landlords see properties they own, staff see assigned properties
- tenant: tenant-role callers see only their own tenant records and invoices
"""
import logging

from django.db import models
from django.db.models import Q

from apps.core.exceptions import AccessDenied, ResourceNotFound

logger = logging.getLogger(__name__)


class Capability(models.TextChoices):
    ADMIN_ALL = 'admin_all', 'Administer all organizations'
    VIEW_ORG_PROPERTIES = 'view_org_properties', 'View all organization properties'
    VIEW_OWNED_PROPERTIES = 'view_owned_properties', 'View owned properties'
    VIEW_ASSIGNED_PROPERTIES = 'view_assigned_properties', 'View assigned properties'
    VIEW_OWN_TENANT_DATA = 'view_own_tenant_data', 'View own tenant data'
    GENERATE_INVOICES = 'generate_invoices', 'Generate invoices'


ROLE_CAPABILITIES = {
    'owner': {Capability.VIEW_ORG_PROPERTIES, Capability.GENERATE_INVOICES},
    'landlord': {Capability.VIEW_OWNED_PROPERTIES, Capability.GENERATE_INVOICES},
    'manager': {Capability.VIEW_ASSIGNED_PROPERTIES, Capability.GENERATE_INVOICES},
    'caretaker': {Capability.VIEW_ASSIGNED_PROPERTIES},
    'accountant': {Capability.VIEW_ASSIGNED_PROPERTIES},
    'tenant': {Capability.VIEW_OWN_TENANT_DATA},
}

STAFF_CAPABILITIES = {
    Capability.ADMIN_ALL,
    Capability.VIEW_ORG_PROPERTIES,
    Capability.VIEW_OWNED_PROPERTIES,
    Capability.VIEW_ASSIGNED_PROPERTIES,
}


def _lookup(prefix, field):
    return f'{prefix}__{field}' if prefix else field


class AccessScope:
    """
    Resolved data-access scope of one caller.

    Attributes:
        user: The caller (None for system jobs)
        capabilities: frozenset of Capability values
        organization_ids: Organizations the caller belongs to
        org_wide_ids: Organizations whose properties are fully visible
        property_ids: Individually visible properties (landlord/staff)
        tenant_ids: Tenant records the caller is (tenant role)
    """

    def __init__(self, user=None, capabilities=(), organization_ids=(), org_wide_ids=(),
                 property_ids=(), tenant_ids=(), all_access=False):
        self.user = user
        self.capabilities = frozenset(capabilities)
        self.organization_ids = frozenset(organization_ids)
        self.org_wide_ids = frozenset(org_wide_ids)
        self.property_ids = frozenset(property_ids)
        self.tenant_ids = frozenset(tenant_ids)
        self.all_access = all_access

    def __repr__(self):
        return (
            f"AccessScope(user={getattr(self.user, 'username', None)!r}, "
            f"capabilities={sorted(self.capabilities)}, all_access={self.all_access})"
        )

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def anonymous(cls):
        return cls()

    @classmethod
    def system(cls):
        """Unrestricted scope for scheduled jobs and management commands."""
        return cls(
            capabilities={Capability.ADMIN_ALL, Capability.GENERATE_INVOICES},
            all_access=True,
        )

    @classmethod
    def for_organization(cls, organization, user=None):
        """Organization-wide scope, e.g. a job run for a single organization."""
        return cls(
            user=user,
            capabilities={Capability.VIEW_ORG_PROPERTIES, Capability.GENERATE_INVOICES},
            organization_ids={organization.pk},
            org_wide_ids={organization.pk},
        )

    @classmethod
    def for_user(cls, user):
        """
        Build the scope of an authenticated user from their memberships.

        Superusers are platform administrators and get unrestricted access.
        """
        if user is None or not user.is_authenticated:
            return cls.anonymous()

        if user.is_superuser:
            return cls(
                user=user,
                capabilities={Capability.ADMIN_ALL, Capability.GENERATE_INVOICES},
                all_access=True,
            )

        from apps.organizations.models import Membership
        from apps.property.models import Property, PropertyAssignment, Tenant

        capabilities = set()
        organization_ids = set()
        org_wide_ids = set()
        property_ids = set()
        tenant_ids = set()

        memberships = Membership.objects.filter(
            user=user, is_active=True, organization__is_active=True
        )
        for membership in memberships:
            org_id = membership.organization_id
            organization_ids.add(org_id)
            capabilities |= ROLE_CAPABILITIES.get(membership.role, set())

            if membership.role == Membership.Role.OWNER:
                org_wide_ids.add(org_id)
            elif membership.role == Membership.Role.LANDLORD:
                property_ids.update(
                    Property.objects.filter(organization_id=org_id, landlord=user)
                    .values_list('pk', flat=True)
                )
            elif membership.role == Membership.Role.TENANT:
                tenant_ids.update(
                    Tenant.objects.filter(user=user, unit__property__organization_id=org_id)
                    .values_list('pk', flat=True)
                )
            else:
                property_ids.update(
                    PropertyAssignment.objects.filter(
                        user=user, is_active=True, property__organization_id=org_id
                    ).values_list('property_id', flat=True)
                )

        return cls(
            user=user,
            capabilities=capabilities,
            organization_ids=organization_ids,
            org_wide_ids=org_wide_ids,
            property_ids=property_ids,
            tenant_ids=tenant_ids,
        )

    # ------------------------------------------------------------------
    # Capabilities
    # ------------------------------------------------------------------

    @property
    def is_authenticated(self):
        return self.all_access or bool(self.capabilities)

    @property
    def is_tenant_only(self):
        """True when the caller has no staff visibility at all."""
        return not self.all_access and not (self.capabilities & STAFF_CAPABILITIES)

    def has(self, capability):
        return Capability.ADMIN_ALL in self.capabilities or capability in self.capabilities

    def require(self, capability):
        if not self.has(capability):
            raise AccessDenied(f"Missing capability: {Capability(capability).label}.")

    # ------------------------------------------------------------------
    # Query scoping
    # ------------------------------------------------------------------

    def _scope_q(self, model):
        """
        Q object restricting ``model`` to this scope, or None when nothing
        of that model is visible.
        """
        property_lookup = getattr(model, 'PROPERTY_LOOKUP', None)
        tenant_lookup = getattr(model, 'TENANT_LOOKUP', None)

        if property_lookup is None and tenant_lookup is None:
            # Shared catalogues (e.g. utility types) are readable by any caller.
            return Q() if self.is_authenticated else None

        conditions = []
        if property_lookup is not None:
            if self.org_wide_ids:
                conditions.append(Q(**{
                    _lookup(property_lookup, 'organization__in'): self.org_wide_ids
                }))
            if self.property_ids:
                conditions.append(Q(**{_lookup(property_lookup, 'pk__in'): self.property_ids}))
        if tenant_lookup is not None and self.tenant_ids:
            conditions.append(Q(**{_lookup(tenant_lookup, 'pk__in'): self.tenant_ids}))

        if not conditions:
            return None
        combined = conditions[0]
        for condition in conditions[1:]:
            combined |= condition
        return combined

    def queryset(self, model, base=None):
        """
        Scoped queryset of ``model``.

        Args:
            model: A model class declaring PROPERTY_LOOKUP / TENANT_LOOKUP
            base: Optional queryset of that model to restrict further
        """
        qs = base if base is not None else model._default_manager.all()
        if self.all_access:
            return qs
        q = self._scope_q(model)
        if q is None:
            return qs.none()
        return qs.filter(q)

    def organizations(self):
        from apps.organizations.models import Organization
        qs = Organization.objects.filter(is_active=True)
        if self.all_access:
            return qs
        return qs.filter(pk__in=self.organization_ids)

    def _deny(self, model, pk):
        name = model._meta.verbose_name.capitalize()
        if self.is_tenant_only:
            # Same answer whether or not the record exists.
            return ResourceNotFound(f"{name} {pk} not found.")
        logger.warning("Scope violation: %r requested %s %s", self, model._meta.label, pk)
        return AccessDenied(f"You do not have permission to access this {model._meta.verbose_name}.")

    def get(self, model, pk, base=None):
        """
        Fetch one record through the scope.

        Raises:
            ResourceNotFound: The record does not exist, or the caller is a
                tenant and the record is not theirs.
            AccessDenied: The record exists outside a staff caller's scope.
        """
        obj = self.queryset(model, base).filter(pk=pk).first()
        if obj is not None:
            return obj
        if not self.is_tenant_only and not model._default_manager.filter(pk=pk).exists():
            raise ResourceNotFound(f"{model._meta.verbose_name.capitalize()} {pk} not found.")
        raise self._deny(model, pk)

    def ensure_tenant_access(self, tenant_id):
        """Ensure the caller may read the given tenant's resources."""
        from apps.property.models import Tenant
        return self.get(Tenant, tenant_id)
