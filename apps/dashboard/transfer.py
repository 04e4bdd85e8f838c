from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Final, Iterable, Mapping

from apps.common.api import GENERIC_ERROR, BackendError, api_request
from apps.common.currency import to_decimal

log = logging.getLogger(__name__)

TRANSFER_PATH: Final[str] = "/api/merchant/balance/transfer"

SELECT_DIFFERENT: Final[str] = "Select two different merchants."
INVALID_AMOUNT: Final[str] = "Enter an amount greater than zero."
CURRENCY_MISMATCH: Final[str] = "Transfers between different currencies are not supported."
TRANSFER_FAILED: Final[str] = "Transfer failed."


@dataclass(slots=True)
class TransferCheck:
    ok: bool
    error: str | None = None
    amount: Decimal = Decimal(0)
    currency: str = "IDR"


def flatten_groups(groups: Iterable[Mapping[str, Any]]) -> list[Mapping[str, Any]]:
    out: list[Mapping[str, Any]] = []
    for group in groups:
        out.append(group["main"])
        out.extend(group.get("branches") or [])
    return out


def group_total(group: Mapping[str, Any]) -> Decimal:
    merchants = [group["main"], *(group.get("branches") or [])]
    return sum((to_decimal((m.get("balance") or {}).get("amount")) for m in merchants), Decimal(0))


def find_merchant(merchants: Iterable[Mapping[str, Any]], merchant_id: str) -> Mapping[str, Any] | None:
    for merchant in merchants:
        if str(merchant.get("id")) == str(merchant_id):
            return merchant
    return None


def validate_transfer(from_merchant: Mapping[str, Any] | None, to_merchant: Mapping[str, Any] | None, amount: Any) -> TransferCheck:
    """Client-side checks that must pass before any transfer request is sent."""
    if not from_merchant or not to_merchant or from_merchant.get("id") == to_merchant.get("id"):
        return TransferCheck(False, SELECT_DIFFERENT)
    value = to_decimal(amount)
    if not value.is_finite() or value <= 0:
        return TransferCheck(False, INVALID_AMOUNT)
    if from_merchant.get("currency") != to_merchant.get("currency"):
        return TransferCheck(False, CURRENCY_MISMATCH)
    return TransferCheck(True, amount=value, currency=from_merchant.get("currency") or "IDR")


def submit_transfer(request, from_id: str, to_id: str, amount: Decimal, note: str = "") -> dict[str, Any]:
    body: dict[str, Any] = {"fromMerchantId": from_id, "toMerchantId": to_id, "amount": float(amount)}
    if note.strip():
        body["note"] = note.strip()
    try:
        payload = api_request(request, "POST", TRANSFER_PATH, json=body)
    except BackendError as exc:
        log.warning("[transfer] %s -> %s rejected: %s", from_id, to_id, exc.message)
        message = exc.message if exc.message and exc.message != GENERIC_ERROR else TRANSFER_FAILED
        raise BackendError(message, exc.status_code) from exc
    log.info("[transfer] %s -> %s amount=%s", from_id, to_id, amount)
    return payload
