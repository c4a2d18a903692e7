"""
Property Management Models - Properties, Units, Tenants

Ownership chain used for data isolation:
Organization -> Property -> Unit -> Tenant

Key rules:
- At most one active tenant per unit (partial unique constraint)
- Unit occupancy is derived from active tenant presence, never stored
- A tenant's lease_end is the last occupied day (inclusive)
"""
from django.db import models
from django.db.models import Q
from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import MaxValueValidator, MinValueValidator
from decimal import Decimal
from apps.core.models import BaseModel
from apps.core.periods import Period
from apps.core.utils import generate_number


class Property(BaseModel):
    """
    Property/Building for rental management.
    """
    PROPERTY_LOOKUP = ''

    property_number = models.CharField(max_length=50, unique=True, editable=False)
    organization = models.ForeignKey(
        'organizations.Organization',
        on_delete=models.PROTECT,
        related_name='properties'
    )
    landlord = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True, blank=True,
        related_name='owned_properties'
    )
    name = models.CharField(max_length=200)
    address = models.TextField(blank=True)
    city = models.CharField(max_length=100, blank=True)
    property_type = models.CharField(max_length=50, choices=[
        ('residential', 'Residential'),
        ('commercial', 'Commercial'),
        ('mixed', 'Mixed Use'),
    ], default='residential')
    description = models.TextField(blank=True)

    class Meta:
        ordering = ['name']
        verbose_name_plural = 'Properties'

    def __str__(self):
        return f"{self.property_number} - {self.name}"

    def save(self, *args, **kwargs):
        if not self.property_number:
            self.property_number = generate_number('PROPERTY', Property, 'property_number')
        super().save(*args, **kwargs)


class PropertyAssignment(BaseModel):
    """
    Grants a manager, caretaker or accountant access to one property.
    Owners see every property of their organization and need no assignment.
    """
    PROPERTY_LOOKUP = 'property'

    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='property_assignments')
    property = models.ForeignKey(Property, on_delete=models.CASCADE, related_name='assignments')

    class Meta:
        unique_together = ['user', 'property']

    def __str__(self):
        return f"{self.user.username} - {self.property.name}"


class Unit(BaseModel):
    """
    Individual unit within a property.
    """
    PROPERTY_LOOKUP = 'property'

    unit_number = models.CharField(max_length=50)
    property = models.ForeignKey(Property, on_delete=models.CASCADE, related_name='units')
    unit_type = models.CharField(max_length=50, choices=[
        ('apartment', 'Apartment'),
        ('house', 'House'),
        ('office', 'Office'),
        ('shop', 'Shop/Retail'),
        ('storage', 'Storage'),
    ], default='apartment')
    floor = models.CharField(max_length=20, blank=True)
    bedrooms = models.PositiveIntegerField(default=0)

    class Meta:
        ordering = ['property', 'unit_number']
        unique_together = ['property', 'unit_number']

    def __str__(self):
        return f"{self.property.name} - {self.unit_number}"

    def get_active_tenant(self):
        return self.tenants.filter(status=Tenant.Status.ACTIVE).first()

    def is_occupied(self):
        """Occupancy is derived from active tenant presence."""
        return self.tenants.filter(status=Tenant.Status.ACTIVE).exists()


class Tenant(BaseModel):
    """
    Renter assigned to one unit.
    Carries the rent terms used by invoice generation.
    """
    PROPERTY_LOOKUP = 'unit__property'
    TENANT_LOOKUP = ''

    class Status(models.TextChoices):
        ACTIVE = 'active', 'Active'
        INACTIVE = 'inactive', 'Inactive'
        TERMINATED = 'terminated', 'Terminated'

    tenant_number = models.CharField(max_length=50, unique=True, editable=False)
    unit = models.ForeignKey(Unit, on_delete=models.PROTECT, related_name='tenants', null=True, blank=True)
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True, blank=True,
        related_name='tenant_profiles',
        help_text='Portal login of the tenant'
    )
    name = models.CharField(max_length=200)
    email = models.EmailField(blank=True)
    phone = models.CharField(max_length=20, blank=True)

    # Rent terms
    monthly_rent = models.DecimalField(
        max_digits=12, decimal_places=2,
        validators=[MinValueValidator(Decimal('0.00'))]
    )
    rent_due_day = models.PositiveSmallIntegerField(
        default=1,
        validators=[MinValueValidator(1), MaxValueValidator(31)],
        help_text='Day of month rent is due (clamped to month length)'
    )

    # Lease period
    lease_start = models.DateField()
    lease_end = models.DateField(null=True, blank=True, help_text='Last occupied day; empty for open-ended leases')

    status = models.CharField(max_length=20, choices=Status.choices, default=Status.ACTIVE)
    notes = models.TextField(blank=True)

    class Meta:
        ordering = ['name']
        constraints = [
            # Only one active tenant may occupy a unit at any time
            models.UniqueConstraint(
                fields=['unit'],
                condition=Q(status='active'),
                name='unique_active_tenant_per_unit'
            )
        ]

    def __str__(self):
        return f"{self.tenant_number} - {self.name}"

    def save(self, *args, **kwargs):
        if not self.tenant_number:
            self.tenant_number = generate_number('TENANT', Tenant, 'tenant_number')
        super().save(*args, **kwargs)

    def clean(self):
        if self.lease_end and self.lease_start and self.lease_end < self.lease_start:
            raise ValidationError({'lease_end': 'Lease end cannot be before lease start.'})
        if self.status == self.Status.ACTIVE and self.unit_id:
            clash = Tenant.objects.filter(unit_id=self.unit_id, status=self.Status.ACTIVE).exclude(pk=self.pk)
            if clash.exists():
                raise ValidationError({'unit': 'This unit already has an active tenant.'})

    @property
    def tenancy(self):
        """The lease as a half-open Period."""
        if self.lease_end:
            return Period.from_inclusive(self.lease_start, self.lease_end)
        return Period.open_ended(self.lease_start)