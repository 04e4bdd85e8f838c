from django import template

from apps.common.currency import format_currency, truncate

register = template.Library()


@register.filter
def money(value, currency="IDR"):
    """Format an amount in the given currency (e.g., 10000|money:"IDR" -> Rp 10.000)."""
    if value is None or value == "":
        return ""
    return format_currency(value, currency)


@register.filter
def clip(value, length=50):
    return truncate(value, int(length))
