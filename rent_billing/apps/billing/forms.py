"""
Billing Forms
"""
from django import forms
from django.core.exceptions import ValidationError

from apps.core.periods import Period


class GenerateInvoicesForm(forms.Form):
    year = forms.IntegerField(min_value=1900, max_value=9998)
    month = forms.IntegerField(min_value=1, max_value=12)
    dry_run = forms.BooleanField(required=False)

    def clean(self):
        cleaned_data = super().clean()
        year = cleaned_data.get('year')
        month = cleaned_data.get('month')
        if year is not None and month is not None:
            try:
                cleaned_data['period'] = Period.for_month(year, month)
            except ValidationError as exc:
                raise forms.ValidationError(exc.messages)
        return cleaned_data
