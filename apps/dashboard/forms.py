from __future__ import annotations

from typing import Any

from django import forms
from django.core.exceptions import ValidationError

TRANSACTION_TYPES = [
    ("all", "All"),
    ("DEPOSIT", "Deposit"),
    ("ORDER_FEE", "Order fee"),
    ("SUBSCRIPTION", "Subscription"),
    ("ADJUSTMENT", "Adjustment"),
    ("REFUND", "Refund"),
]


class TransactionFilterForm(forms.Form):
    type = forms.ChoiceField(choices=TRANSACTION_TYPES, required=False)
    startDate = forms.DateField(required=False)
    endDate = forms.DateField(required=False)
    q = forms.CharField(required=False, max_length=100)

    def clean(self) -> dict[str, Any]:
        data = super().clean()
        start, end = data.get("startDate"), data.get("endDate")
        if start and end and start > end:
            raise ValidationError("Start date must be before end date.")
        return data

    def backend_filters(self) -> dict[str, str]:
        """Filters as the transactions endpoint expects them (ISO dates, no 'all')."""
        if not self.is_valid():
            return {}
        data = self.cleaned_data
        out = {}
        if data.get("type") and data["type"] != "all":
            out["type"] = data["type"]
        if data.get("startDate"):
            out["startDate"] = data["startDate"].isoformat()
        if data.get("endDate"):
            out["endDate"] = data["endDate"].isoformat()
        return out


class TransferForm(forms.Form):
    from_merchant_id = forms.CharField(required=False, max_length=64)
    to_merchant_id = forms.CharField(required=False, max_length=64)
    amount = forms.CharField(required=False, max_length=32)
    note = forms.CharField(required=False, max_length=200)
    confirmed = forms.BooleanField(required=False)


class SubscriptionPlanForm(forms.Form):
    trialDays = forms.IntegerField(min_value=0, max_value=365)
    depositMinimumIdr = forms.DecimalField(min_value=0, decimal_places=2, max_digits=14)
    orderFeeIdr = forms.DecimalField(min_value=0, decimal_places=2, max_digits=14)
    monthlyPriceIdr = forms.DecimalField(min_value=0, decimal_places=2, max_digits=14)
    depositMinimumAud = forms.DecimalField(min_value=0, decimal_places=2, max_digits=12)
    orderFeeAud = forms.DecimalField(min_value=0, decimal_places=2, max_digits=12)
    monthlyPriceAud = forms.DecimalField(min_value=0, decimal_places=2, max_digits=12)
    bankNameIdr = forms.CharField(required=False, max_length=100)
    bankAccountIdr = forms.CharField(required=False, max_length=50)
    bankAccountNameIdr = forms.CharField(required=False, max_length=100)
    bankNameAud = forms.CharField(required=False, max_length=100)
    bankAccountAud = forms.CharField(required=False, max_length=50)
    bankAccountNameAud = forms.CharField(required=False, max_length=100)
    influencerFirstCommissionPercent = forms.DecimalField(min_value=0, max_value=100, decimal_places=2, max_digits=5)
    influencerRecurringCommissionPercent = forms.DecimalField(min_value=0, max_value=100, decimal_places=2, max_digits=5)

    DEFAULTS = {
        "trialDays": 30,
        "depositMinimumIdr": 100000,
        "orderFeeIdr": 250,
        "monthlyPriceIdr": 100000,
        "depositMinimumAud": 15,
        "orderFeeAud": "0.04",
        "monthlyPriceAud": 15,
        "influencerFirstCommissionPercent": 10,
        "influencerRecurringCommissionPercent": 5,
    }

    @classmethod
    def initial_from_plan(cls, plan: dict[str, Any] | None) -> dict[str, Any]:
        initial = dict(cls.DEFAULTS)
        for name in cls.base_fields:
            value = (plan or {}).get(name)
            if value is not None:
                initial[name] = value
        return initial

    def to_payload(self, plan_id: str) -> dict[str, Any]:
        if not self.is_valid():
            raise ValueError("Form must be valid before to_payload().")
        payload: dict[str, Any] = {"id": plan_id}
        for name, value in self.cleaned_data.items():
            if isinstance(value, str):
                payload[name] = value.strip()
            elif value is None:
                payload[name] = None
            elif name == "trialDays":
                payload[name] = int(value)
            else:
                payload[name] = float(value)
        return payload


class ProfileForm(forms.Form):
    name = forms.CharField(max_length=100)
    email = forms.EmailField()
    phone = forms.CharField(required=False, max_length=32)
    currentPassword = forms.CharField(required=False, widget=forms.PasswordInput)
    newPassword = forms.CharField(required=False, min_length=8, widget=forms.PasswordInput)
    confirmPassword = forms.CharField(required=False, widget=forms.PasswordInput)

    def clean(self) -> dict[str, Any]:
        data = super().clean()
        new = data.get("newPassword") or ""
        if new and new != (data.get("confirmPassword") or ""):
            raise ValidationError("New passwords do not match")
        if new and not data.get("currentPassword"):
            raise ValidationError("Enter your current password to set a new one.")
        return data

    def to_payload(self) -> dict[str, Any]:
        data = self.cleaned_data
        payload: dict[str, Any] = {
            "name": data["name"].strip(),
            "email": data["email"].strip().lower(),
            "phone": (data.get("phone") or "").strip() or None,
        }
        if data.get("newPassword"):
            payload["currentPassword"] = data["currentPassword"]
            payload["newPassword"] = data["newPassword"]
        return payload
