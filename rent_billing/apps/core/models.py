"""
Abstract base for every persistent billing record.
"""
from django.db import models
from django.conf import settings


class BaseModel(models.Model):
    """
    Timestamps, user tracking and a soft ``is_active`` flag.

    Scoping:
    PROPERTY_LOOKUP is the ORM path from the model to its Property
    ('' when the model *is* a Property, None when the model is not
    property-owned). TENANT_LOOKUP is the path to the owning Tenant, or
    None when tenant-role callers may never read the model.
    The isolation guard in apps.core.access reads both.
    """
    PROPERTY_LOOKUP = None
    TENANT_LOOKUP = None

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True,
        related_name='%(app_label)s_%(class)s_created'
    )
    updated_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True,
        related_name='%(app_label)s_%(class)s_updated'
    )
    is_active = models.BooleanField(default=True)

    class Meta:
        abstract = True

    def save(self, *args, **kwargs):
        # Stamp the request user, if any; jobs run without one
        from apps.core.middleware import get_current_user
        user = get_current_user()

        update_fields = kwargs.get('update_fields')
        if user and user.is_authenticated:
            if not self.pk and not self.created_by_id:
                self.created_by = user
            self.updated_by = user
            if update_fields is not None:
                kwargs['update_fields'] = set(update_fields) | {'updated_by'}

        super().save(*args, **kwargs)
