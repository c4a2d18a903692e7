"""
Organization models - tenancy boundary, memberships (roles), audit log.
"""
from django.db import models
from django.conf import settings
from apps.core.models import BaseModel


class Organization(BaseModel):
    """
    A property-management company. Every Property belongs to exactly one
    Organization and no data crosses organizations.
    """
    name = models.CharField(max_length=200)
    code = models.SlugField(max_length=50, unique=True)
    email = models.EmailField(blank=True)
    phone = models.CharField(max_length=20, blank=True)

    class Meta:
        ordering = ['name']

    def __str__(self):
        return self.name


class Membership(BaseModel):
    """
    Links users to organizations with a role.
    The role decides the user's capabilities (see apps.core.access).
    """
    class Role(models.TextChoices):
        OWNER = 'owner', 'Owner'
        LANDLORD = 'landlord', 'Landlord'
        MANAGER = 'manager', 'Manager'
        CARETAKER = 'caretaker', 'Caretaker'
        ACCOUNTANT = 'accountant', 'Accountant'
        TENANT = 'tenant', 'Tenant'

    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='memberships')
    organization = models.ForeignKey(Organization, on_delete=models.CASCADE, related_name='memberships')
    role = models.CharField(max_length=20, choices=Role.choices)

    class Meta:
        unique_together = ['user', 'organization']
        ordering = ['organization', 'user']

    def __str__(self):
        return f"{self.user.username} - {self.organization.name} ({self.get_role_display()})"


class AuditLog(models.Model):
    """
    Audit trail for billing actions (generation runs, status refreshes).
    """
    ACTION_CHOICES = [
        ('create', 'Create'),
        ('update', 'Update'),
        ('generate', 'Generate'),
        ('refresh', 'Refresh'),
    ]

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        related_name='audit_logs'
    )
    organization = models.ForeignKey(
        Organization,
        on_delete=models.SET_NULL,
        null=True, blank=True,
        related_name='audit_logs'
    )
    action = models.CharField(max_length=20, choices=ACTION_CHOICES)
    model = models.CharField(max_length=100)
    record_id = models.CharField(max_length=50, blank=True)
    changes = models.JSONField(default=dict, blank=True)
    timestamp = models.DateTimeField(auto_now_add=True)
    ip_address = models.GenericIPAddressField(null=True, blank=True)

    class Meta:
        ordering = ['-timestamp']

    def __str__(self):
        return f"{self.user} - {self.action} - {self.model}"
