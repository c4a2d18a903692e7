"""
Utility billing models - utility types, per-property/unit configurations
and meter readings.

A UtilityConfig applies to a property (unit empty) or to one unit, over the
half-open range [effective_from, effective_to). An empty effective_to means
the configuration is open-ended.
"""
from django.db import models
from django.db.models import Q
from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from datetime import date
from decimal import Decimal
from apps.core.models import BaseModel
from apps.core.periods import Period


class BillingMode(models.TextChoices):
    FIXED = 'fixed', 'Fixed'
    METERED = 'metered', 'Metered'
    SHARED = 'shared', 'Shared'


class UtilityType(BaseModel):
    """
    Billable utility category (e.g., Water, Garbage, Electricity).
    Shared catalogue, not owned by any organization.
    """
    name = models.CharField(max_length=100, unique=True)
    billing_mode = models.CharField(max_length=20, choices=BillingMode.choices, default=BillingMode.FIXED)
    unit_of_measure = models.CharField(max_length=20, blank=True, help_text='e.g. m3, kWh')
    description = models.TextField(blank=True)

    class Meta:
        ordering = ['name']

    def __str__(self):
        return f"{self.name} ({self.get_billing_mode_display()})"


class UtilityConfig(BaseModel):
    """
    Binds a utility type to a property, optionally narrowed to one unit,
    with the parameters of its billing mode:

    - Fixed: fixed_amount per billing period
    - Metered: rate per unit of measure consumed
    - Shared: shared_amount split across occupied units
    """
    PROPERTY_LOOKUP = 'property'

    MODE_PARAMETERS = {
        BillingMode.FIXED: 'fixed_amount',
        BillingMode.METERED: 'rate',
        BillingMode.SHARED: 'shared_amount',
    }

    # Properties are declared before the ``property`` field shadows the builtin

    @property
    def effective_period(self):
        if self.effective_to:
            return Period(self.effective_from, self.effective_to)
        return Period.open_ended(self.effective_from)

    @property
    def mode(self):
        return self.billing_mode or self.utility_type.billing_mode

    @property
    def mode_parameter(self):
        """Value of the parameter the billing mode needs, or None."""
        return getattr(self, self.MODE_PARAMETERS[self.mode])

    @property
    def is_unit_specific(self):
        return self.unit_id is not None

    utility_type =models.ForeignKey(UtilityType, on_delete=models.PROTECT, related_name='configs')
    property = models.ForeignKey('property.Property', on_delete=models.CASCADE, related_name='utility_configs')
    unit = models.ForeignKey(
        'property.Unit',
        on_delete=models.CASCADE,
        null=True, blank=True,
        related_name='utility_configs',
        help_text='Leave empty to apply to every unit of the property'
    )
    billing_mode = models.CharField(
        max_length=20, choices=BillingMode.choices, blank=True,
        help_text='Defaults to the utility type billing mode'
    )

    fixed_amount = models.DecimalField(
        max_digits=12, decimal_places=2, null=True, blank=True,
        validators=[MinValueValidator(Decimal('0.00'))]
    )
    rate = models.DecimalField(
        max_digits=12, decimal_places=4, null=True, blank=True,
        validators=[MinValueValidator(Decimal('0.0000'))],
        help_text='Amount per unit of measure'
    )
    shared_amount = models.DecimalField(
        max_digits=12, decimal_places=2, null=True, blank=True,
        validators=[MinValueValidator(Decimal('0.00'))]
    )

    effective_from = models.DateField()
    effective_to = models.DateField(null=True, blank=True, help_text='Exclusive; empty for open-ended')

    notes = models.TextField(blank=True)

    class Meta:
        ordering = ['property', 'utility_type', '-effective_from']
        verbose_name = 'utility configuration'

    def __str__(self):
        scope = self.unit.unit_number if self.unit_id else 'All units'
        return f"{self.utility_type.name} - {self.property.name} ({scope})"

    def save(self, *args, **kwargs):
        if not self.billing_mode and self.utility_type_id:
            self.billing_mode = self.utility_type.billing_mode
        super().save(*args, **kwargs)

    def overlapping_configs(self):
        """Other active configs of the same type and scope whose range intersects this one."""
        qs = UtilityConfig.objects.filter(
            utility_type_id=self.utility_type_id,
            property_id=self.property_id,
            is_active=True,
        ).filter(
            Q(effective_to__isnull=True) | Q(effective_to__gt=self.effective_from)
        )
        if self.unit_id:
            qs = qs.filter(unit_id=self.unit_id)
        else:
            qs = qs.filter(unit__isnull=True)
        if self.effective_to:
            qs = qs.filter(effective_from__lt=self.effective_to)
        if self.pk:
            qs = qs.exclude(pk=self.pk)
        return qs

    def clean(self):
        """Validate mode parameters, date range and scope overlap."""
        errors = {}

        if self.effective_to and self.effective_from and self.effective_to <= self.effective_from:
            errors['effective_to'] = 'Effective to must be after effective from.'

        if self.unit_id and self.property_id and self.unit.property_id != self.property_id:
            errors['unit'] = 'Unit does not belong to the selected property.'

        if self.utility_type_id:
            field = self.MODE_PARAMETERS[self.mode]
            value = getattr(self, field)
            if value is None or value <= 0:
                errors[field] = f'{self.get_billing_mode_display() or self.mode.title()} billing needs a positive {field.replace("_", " ")}.'

        if errors:
            raise ValidationError(errors)

        if self.is_active and self.utility_type_id and self.property_id and self.overlapping_configs().exists():
            raise ValidationError(
                'Another configuration for this utility already covers part of this date range '
                'for the same property/unit.'
            )


class MeterReading(BaseModel):
    """
    Timestamped meter value for a metered utility config and unit.
    Consumption is always the difference between two readings; it is never
    extrapolated.
    """
    PROPERTY_LOOKUP = 'unit__property'

    utility_config = models.ForeignKey(UtilityConfig, on_delete=models.CASCADE, related_name='readings')
    unit = models.ForeignKey('property.Unit', on_delete=models.CASCADE, related_name='meter_readings')
    reading_date = models.DateField(default=date.today)
    reading_value = models.DecimalField(
        max_digits=14, decimal_places=3,
        validators=[MinValueValidator(Decimal('0.000'))]
    )
    notes = models.CharField(max_length=255, blank=True)

    class Meta:
        ordering = ['utility_config', 'unit', 'reading_date']
        constraints = [
            models.UniqueConstraint(
                fields=['utility_config', 'unit', 'reading_date'],
                name='unique_meter_reading_per_day'
            )
        ]

    def __str__(self):
        return f"{self.utility_config.utility_type.name} {self.unit.unit_number} @ {self.reading_date}: {self.reading_value}"

    def clean(self):
        if self.utility_config_id and self.utility_config.mode != BillingMode.METERED:
            raise ValidationError({'utility_config': 'Readings can only be recorded for metered utilities.'})
        if self.utility_config_id and self.unit_id and self.utility_config.property_id != self.unit.property_id:
            raise ValidationError({'unit': 'Unit does not belong to the configuration property.'})
        previous = self.previous_reading()
        if previous is not None and self.reading_value is not None and self.reading_value < previous.reading_value:
            raise ValidationError({
                'reading_value': f'Reading value cannot be less than the previous reading '
                                 f'({previous.reading_value} on {previous.reading_date}).'
            })

    def previous_reading(self):
        """Latest reading of the same meter dated before this one."""
        if not (self.utility_config_id and self.unit_id and self.reading_date):
            return None
        return (
            MeterReading.objects.filter(
                utility_config_id=self.utility_config_id,
                unit_id=self.unit_id,
                reading_date__lt=self.reading_date,
            )
            .exclude(pk=self.pk)
            .order_by('-reading_date')
            .first()
        )
