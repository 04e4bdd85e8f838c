from django import forms

from .spreadsheet import AddonRow


class UploadForm(forms.Form):
    file = forms.FileField()


class AddonRowForm(forms.Form):
    """Inline edit of one draft row; business rules are re-checked by reconcile()."""

    category_name = forms.CharField(required=False, max_length=100)
    name = forms.CharField(required=False, max_length=100)
    description = forms.CharField(required=False, max_length=500)
    price = forms.DecimalField(required=False, max_digits=14, decimal_places=2)
    input_type = forms.ChoiceField(choices=[("SELECT", "Select"), ("QTY", "Quantity")], required=False)
    is_active = forms.BooleanField(required=False)
    track_stock = forms.BooleanField(required=False)
    stock_qty = forms.IntegerField(required=False)
    daily_stock_template = forms.IntegerField(required=False)
    auto_reset_stock = forms.BooleanField(required=False)
    display_order = forms.IntegerField(required=False)

    @classmethod
    def for_row(cls, row: AddonRow) -> "AddonRowForm":
        return cls(initial={name: getattr(row, name) for name in cls.base_fields})

    def apply(self, row: AddonRow) -> AddonRow:
        data = self.cleaned_data
        for name in self.base_fields:
            value = data.get(name)
            if isinstance(value, str):
                value = value.strip()
            setattr(row, name, value)
        row.input_type = row.input_type or "SELECT"
        row.display_order = row.display_order or 0
        return row
