"""Session-backed cart, one per (merchant code, order mode).

The store is handed its storage (normally ``request.session``) instead of
reaching for a global, so views and tests each work on their own instance.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import asdict, dataclass, field
from decimal import Decimal
from typing import Any, Iterable, MutableMapping

from apps.common.currency import to_decimal

from .totals import FeeConfig, Totals, compute_totals

log = logging.getLogger(__name__)

ORDER_MODES = ("dinein", "takeaway", "delivery")
ORDER_TYPES = {"dinein": "DINE_IN", "takeaway": "TAKEAWAY", "delivery": "DELIVERY"}
PATCHABLE_FIELDS = {"quantity", "notes", "addons"}


def cart_key(merchant_code: str, mode: str) -> str:
    return f"cart_{merchant_code}_{mode}"


def table_key(merchant_code: str) -> str:
    return f"table_{merchant_code}"


def _clean_addons(addons: Iterable[dict[str, Any]] | None) -> list[dict[str, Any]]:
    out = []
    for addon in addons or []:
        price = to_decimal(addon.get("price"))
        if price < 0:
            raise ValueError("addon price must be >= 0")
        out.append({"id": str(addon.get("id") or ""), "name": str(addon.get("name") or ""), "price": str(price)})
    return out


@dataclass(slots=True)
class CartItem:
    cart_item_id: str
    menu_id: str
    menu_name: str
    unit_price: Decimal
    quantity: int
    addons: list[dict[str, Any]] = field(default_factory=list)
    notes: str = ""

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "CartItem":
        # Older payloads may carry prices as strings; coerce on the way in
        return cls(
            cart_item_id=str(raw.get("cart_item_id") or uuid.uuid4().hex),
            menu_id=str(raw.get("menu_id") or ""),
            menu_name=str(raw.get("menu_name") or ""),
            unit_price=to_decimal(raw.get("unit_price")),
            quantity=max(1, int(raw.get("quantity") or 1)),
            addons=[
                {"id": str(a.get("id") or ""), "name": str(a.get("name") or ""), "price": str(to_decimal(a.get("price")))}
                for a in raw.get("addons") or []
            ],
            notes=str(raw.get("notes") or ""),
        )

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["unit_price"] = str(self.unit_price)
        return data

    @property
    def addons_total(self) -> Decimal:
        return sum((to_decimal(a.get("price")) for a in self.addons), Decimal(0))

    @property
    def line_total(self) -> Decimal:
        return (self.unit_price + self.addons_total) * self.quantity


@dataclass(slots=True)
class Cart:
    merchant_code: str
    mode: str
    items: list[CartItem] = field(default_factory=list)
    table_number: str | None = None

    @property
    def is_empty(self) -> bool:
        return not self.items

    def to_dict(self) -> dict[str, Any]:
        return {
            "merchant_code": self.merchant_code,
            "mode": self.mode,
            "table_number": self.table_number,
            "items": [item.to_dict() for item in self.items],
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "Cart":
        return cls(
            merchant_code=raw["merchant_code"],
            mode=raw["mode"],
            table_number=raw.get("table_number"),
            items=[CartItem.from_dict(i) for i in raw.get("items") or []],
        )


class CartStore:
    def __init__(self, storage: MutableMapping[str, Any]):
        self.storage = storage
        self.cart: Cart | None = None

    # -- lifecycle -------------------------------------------------------

    def initialize(self, merchant_code: str, mode: str, table_number: str | None = None) -> Cart:
        """Load (or create) the cart for this merchant and mode.

        Calling it again for the cart already held is a no-op.
        """
        if mode not in ORDER_MODES:
            raise ValueError(f"invalid order mode: {mode}")
        if self.cart is not None and self.cart.merchant_code == merchant_code and self.cart.mode == mode:
            return self.cart

        raw = self.storage.get(cart_key(merchant_code, mode))
        cart = Cart.from_dict(raw) if raw else Cart(merchant_code=merchant_code, mode=mode)
        if mode == "dinein":
            if table_number:
                self.storage[table_key(merchant_code)] = table_number
            cart.table_number = table_number or self.storage.get(table_key(merchant_code)) or cart.table_number
        self.cart = cart
        if not raw or table_number:
            self._persist()
        return cart

    def _require(self) -> Cart:
        if self.cart is None:
            raise RuntimeError("CartStore.initialize() must be called first")
        return self.cart

    def _persist(self) -> None:
        cart = self._require()
        self.storage[cart_key(cart.merchant_code, cart.mode)] = cart.to_dict()
        if hasattr(self.storage, "modified"):
            self.storage.modified = True

    # -- mutations -------------------------------------------------------

    def add_item(
        self,
        *,
        menu_id: str,
        menu_name: str,
        unit_price: Any,
        quantity: int = 1,
        addons: Iterable[dict[str, Any]] | None = None,
        notes: str = "",
    ) -> CartItem:
        """Append a new line; identical lines are never merged."""
        cart = self._require()
        price = to_decimal(unit_price)
        if price < 0:
            raise ValueError("unit price must be >= 0")
        if int(quantity) < 1:
            raise ValueError("quantity must be >= 1")
        item = CartItem(
            cart_item_id=uuid.uuid4().hex,
            menu_id=str(menu_id),
            menu_name=menu_name,
            unit_price=price,
            quantity=int(quantity),
            addons=_clean_addons(addons),
            notes=(notes or "").strip(),
        )
        cart.items.append(item)
        self._persist()
        log.info("[cart] %s/%s add menu=%s qty=%s", cart.merchant_code, cart.mode, item.menu_id, item.quantity)
        return item

    def get_item(self, cart_item_id: str) -> CartItem | None:
        for item in self._require().items:
            if item.cart_item_id == cart_item_id:
                return item
        return None

    def update_item(self, cart_item_id: str, **patch: Any) -> CartItem | None:
        item = self.get_item(cart_item_id)
        if item is None:
            return None
        unknown = set(patch) - PATCHABLE_FIELDS
        if unknown:
            raise ValueError(f"cannot update fields: {', '.join(sorted(unknown))}")
        if "quantity" in patch:
            qty = int(patch["quantity"])
            if qty <= 0:
                self.remove_item(cart_item_id)
                return None
            item.quantity = qty
        if "notes" in patch:
            item.notes = (patch["notes"] or "").strip()
        if "addons" in patch:
            item.addons = _clean_addons(patch["addons"])
        self._persist()
        return item

    def remove_item(self, cart_item_id: str) -> None:
        cart = self._require()
        before = len(cart.items)
        cart.items = [i for i in cart.items if i.cart_item_id != cart_item_id]
        if len(cart.items) != before:
            self._persist()

    def clear(self) -> None:
        cart = self._require()
        cart.items = []
        key = cart_key(cart.merchant_code, cart.mode)
        if key in self.storage:
            del self.storage[key]
        if hasattr(self.storage, "modified"):
            self.storage.modified = True

    # -- reads -----------------------------------------------------------

    def item_count(self) -> int:
        return sum(i.quantity for i in self._require().items)

    def totals(self, fee_config: FeeConfig | None = None) -> Totals:
        return compute_totals(self._require().items, fee_config)
