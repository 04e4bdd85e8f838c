from __future__ import annotations

from typing import Any

from django import forms
from django.conf import settings
from django.core.exceptions import ValidationError

from apps.common.phone import to_e164

from .cart import ORDER_MODES


def _max_notes() -> int:
    return int(settings.ORDERING.get("max_notes_length", 200))


class AddToCartForm(forms.Form):
    menu_id = forms.CharField(max_length=64)
    quantity = forms.IntegerField(min_value=1, max_value=99, initial=1)
    notes = forms.CharField(required=False)
    addons = forms.MultipleChoiceField(required=False)

    def __init__(self, *args: Any, addon_ids: list[str] | None = None, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.fields["addons"].choices = [(a, a) for a in (addon_ids or [])]

    def clean_notes(self) -> str:
        notes = (self.cleaned_data.get("notes") or "").strip()
        if len(notes) > _max_notes():
            raise ValidationError(f"Notes must be at most {_max_notes()} characters.")
        return notes


class CartLineForm(forms.Form):
    cart_item_id = forms.CharField(max_length=64)
    quantity = forms.IntegerField(required=False, min_value=0, max_value=99)
    notes = forms.CharField(required=False)

    def clean_notes(self) -> str:
        notes = (self.cleaned_data.get("notes") or "").strip()
        return notes[: _max_notes()]

    def patch(self) -> dict[str, Any]:
        data = self.cleaned_data
        out: dict[str, Any] = {}
        if data.get("quantity") is not None:
            out["quantity"] = data["quantity"]
        if "notes" in self.data:
            out["notes"] = data.get("notes") or ""
        return out


class CheckoutForm(forms.Form):
    name = forms.CharField(max_length=100)
    email = forms.EmailField(required=False)
    phone = forms.CharField(required=False, max_length=32)
    table_number = forms.CharField(required=False, max_length=16)

    def __init__(self, *args: Any, mode: str = "takeaway", known_table: str | None = None, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        if mode not in ORDER_MODES:
            raise ValueError(f"invalid order mode: {mode}")
        self.mode = mode
        self.known_table = known_table

    def clean_name(self) -> str:
        name = (self.cleaned_data.get("name") or "").strip()
        if len(name) < 2:
            raise ValidationError("Please enter your name.")
        return name

    def clean_phone(self) -> str:
        raw = (self.cleaned_data.get("phone") or "").strip()
        if not raw:
            return ""
        try:
            return to_e164(raw, settings.ORDERING.get("default_phone_region", "ID"))
        except ValueError:
            raise ValidationError("Enter a valid phone number (e.g. +62 812 3456 7890).")

    def clean(self) -> dict[str, Any]:
        data = super().clean()
        table = (data.get("table_number") or "").strip() or (self.known_table or "")
        if self.mode == "dinein" and not table:
            raise ValidationError("Table number is required for dine-in orders.")
        data["table_number"] = table or None
        return data
