import phonenumbers
from typing import Final


def to_e164(raw: str, default_region: str = "ID") -> str:
    try:
        n = phonenumbers.parse(raw, default_region)
    except phonenumbers.NumberParseException:
        raise ValueError("Invalid phone number")
    if not phonenumbers.is_valid_number(n):
        raise ValueError("Invalid phone number")
    return phonenumbers.format_number(n, phonenumbers.PhoneNumberFormat.E164)


_MASK_TEMPLATE: Final = "****{}"


def last4_digits(phone: str) -> str:
    digits = "".join(ch for ch in (phone or "") if ch.isdigit())
    return digits[-4:] if digits else ""


def mask_phone(phone: str) -> str:
    last4 = last4_digits(phone)
    if not last4:
        return "********"
    return _MASK_TEMPLATE.format(last4)
