"""Forms for the linkgraph app.

The rule form backs the admin and enforces the linking rule invariants at
write time. The small query forms validate the parameters of the JSON
endpoints.
"""

from __future__ import annotations

from django import forms

from .engine.policy import validate_rule
from .models import LinkingRule


class LinkingRuleForm(forms.ModelForm):
    """Edit a platform's linking rule; empty fields fall back to the default."""

    class Meta:
        model = LinkingRule
        fields = ('platform',) + LinkingRule.RULE_FIELDS + ('is_active',)

    def clean(self) -> dict:  # type: ignore[override]
        cleaned_data = super().clean()
        data = {
            name: cleaned_data.get(name)
            for name in LinkingRule.RULE_FIELDS
            if cleaned_data.get(name) is not None
        }
        errors = validate_rule(data)
        if errors:
            raise forms.ValidationError(errors)
        return cleaned_data


class ListingForm(forms.Form):
    """Paging and language filter for orphan and dead-end listings."""

    language = forms.CharField(required=False, max_length=8)
    limit = forms.IntegerField(required=False, min_value=1, max_value=500)
    offset = forms.IntegerField(required=False, min_value=0)

    def clean(self) -> dict:  # type: ignore[override]
        cleaned_data = super().clean()
        cleaned_data['language'] = cleaned_data.get('language') or None
        if cleaned_data.get('limit') is None:
            cleaned_data['limit'] = 50
        if cleaned_data.get('offset') is None:
            cleaned_data['offset'] = 0
        return cleaned_data


class WeakLinkForm(ListingForm):
    """Listing parameters plus the total-links threshold."""

    min_links = forms.IntegerField(required=False, min_value=1, max_value=100)

    def clean(self) -> dict:  # type: ignore[override]
        cleaned_data = super().clean()
        if cleaned_data.get('min_links') is None:
            cleaned_data['min_links'] = 2
        return cleaned_data


class RepairForm(forms.Form):
    """Parameters of an auto-repair request. Dry run unless told otherwise."""

    language = forms.CharField(required=False, max_length=8)
    dry_run = forms.NullBooleanField(required=False)
    limit = forms.IntegerField(required=False, min_value=1)

    def clean(self) -> dict:  # type: ignore[override]
        cleaned_data = super().clean()
        cleaned_data['language'] = cleaned_data.get('language') or None
        if cleaned_data.get('dry_run') is None:
            cleaned_data['dry_run'] = True
        return cleaned_data
