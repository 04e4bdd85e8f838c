from __future__ import annotations

import logging
import re
from decimal import Decimal
from typing import Any, Final, Iterable

from django.core.cache import cache

from apps.common.api import BackendError, public_request
from apps.common.currency import to_decimal
from apps.common.phone import mask_phone

from .cart import ORDER_TYPES, Cart

log = logging.getLogger(__name__)

MERCHANT_CACHE_TTL: Final[int] = 30
MENU_CACHE_TTL: Final[int] = 30
MERCHANT_CODE_PATTERN: Final[re.Pattern[str]] = re.compile(r"^[A-Z0-9]{4,10}$")


def is_valid_merchant_code(code: str) -> bool:
    return bool(MERCHANT_CODE_PATTERN.match(code or ""))


def _cached(key: str, ttl: int, path: str) -> Any:
    data = cache.get(key)
    if data is not None:
        return data
    data = public_request("GET", path).get("data")
    cache.set(key, data, ttl)
    return data


def get_merchant(code: str) -> dict[str, Any]:
    data = _cached(f"public:merchant:{code}", MERCHANT_CACHE_TTL, f"/api/public/merchants/{code}")
    if not data:
        raise BackendError("Merchant not found.", 404)
    return data


def get_categories(code: str) -> list[dict[str, Any]]:
    return _cached(f"public:categories:{code}", MENU_CACHE_TTL, f"/api/public/merchants/{code}/categories") or []


def get_menus(code: str) -> list[dict[str, Any]]:
    return _cached(f"public:menus:{code}", MENU_CACHE_TTL, f"/api/public/merchants/{code}/menus") or []


def get_menu_addons(code: str, menu_id: str) -> list[dict[str, Any]]:
    path = f"/api/public/merchants/{code}/menus/{menu_id}/addons"
    return _cached(f"public:addons:{code}:{menu_id}", MENU_CACHE_TTL, path) or []


def find_menu(menus: Iterable[dict[str, Any]], menu_id: str) -> dict[str, Any] | None:
    for menu in menus:
        if str(menu.get("id")) == str(menu_id):
            return menu
    return None


def filter_menus(menus: Iterable[dict[str, Any]], *, category_id: str = "", search: str = "") -> list[dict[str, Any]]:
    term = (search or "").strip().lower()
    out = []
    for menu in menus:
        if not menu.get("isActive", True):
            continue
        if category_id:
            ids = {str(c.get("id")) for c in menu.get("categories") or []}
            if menu.get("categoryId") is not None:
                ids.add(str(menu["categoryId"]))
            if str(category_id) not in ids:
                continue
        if term and term not in (menu.get("name") or "").lower() and term not in (menu.get("description") or "").lower():
            continue
        out.append(menu)
    return out


def effective_price(menu: dict[str, Any]) -> Decimal:
    if menu.get("isPromo") and menu.get("promoPrice") not in (None, ""):
        return to_decimal(menu["promoPrice"])
    return to_decimal(menu.get("price"))


def resolve_addons(addon_categories: list[dict[str, Any]], selected_ids: Iterable[str]) -> list[dict[str, Any]]:
    """Turn the posted addon ids into priced addons, enforcing each category's selection bounds.

    Raises ValueError when a selection is unknown, unavailable or out of bounds.
    """
    wanted = [str(x) for x in selected_ids if str(x)]
    # Deduplicate while preserving order
    wanted = list(dict.fromkeys(wanted))
    chosen: list[dict[str, Any]] = []
    known: set[str] = set()
    for category in addon_categories:
        picked = []
        for addon in category.get("addons") or []:
            addon_id = str(addon.get("id"))
            known.add(addon_id)
            if addon_id in wanted:
                if not addon.get("isAvailable", True):
                    raise ValueError(f"{addon.get('name')} is not available")
                picked.append(addon)
        min_sel = int(category.get("minSelections") or 0)
        max_sel = int(category.get("maxSelections") or 0)
        if category.get("type") == "required" and min_sel < 1:
            min_sel = 1
        if len(picked) < min_sel:
            raise ValueError(f"Choose at least {min_sel} from {category.get('name')}")
        if max_sel and len(picked) > max_sel:
            raise ValueError(f"Choose at most {max_sel} from {category.get('name')}")
        for addon in picked:
            price = to_decimal(addon.get("price"))
            if price < 0:
                raise ValueError("invalid addon price")
            chosen.append({"id": str(addon["id"]), "name": addon.get("name") or "", "price": price})
    unknown = [x for x in wanted if x not in known]
    if unknown:
        raise ValueError("invalid addon")
    return chosen


def get_recommendations(code: str, menu_ids: Iterable[str], limit: int = 4) -> list[dict[str, Any]]:
    """Upsell suggestions for the cart review page; failures only hide the section."""
    ids = [str(m) for m in menu_ids]
    if not ids:
        return []
    try:
        payload = public_request(
            "GET",
            f"/api/public/merchants/{code}/recommendations",
            params={"menuIds": ",".join(ids)},
        )
    except BackendError as exc:
        log.info("[upsell] no suggestions for %s: %s", code, exc.message)
        return []
    data = payload.get("data") or []
    return [m for m in data if str(m.get("id")) not in ids][:limit]


def customer_login(*, name: str, email: str, phone: str) -> str:
    payload = public_request(
        "POST",
        "/api/public/auth/customer-login",
        json={"name": name, "email": email or None, "phone": phone or None},
    )
    token = (payload.get("data") or {}).get("accessToken")
    if not token:
        raise BackendError("Could not start a customer session.", 502)
    log.info("[order] customer session for phone=%s", mask_phone(phone))
    return token


def build_order_payload(cart: Cart, *, name: str, email: str = "", phone: str = "") -> dict[str, Any]:
    return {
        "merchantCode": cart.merchant_code,
        "orderType": ORDER_TYPES[cart.mode],
        "tableNumber": cart.table_number if cart.mode == "dinein" else None,
        "customerName": name,
        "customerEmail": email or None,
        "customerPhone": phone or None,
        "items": [
            {
                "menuId": item.menu_id,
                "quantity": item.quantity,
                "notes": item.notes or None,
                "addons": [{"addonItemId": a["id"], "quantity": 1} for a in item.addons],
            }
            for item in cart.items
        ],
    }


def submit_order(cart: Cart, *, name: str, email: str = "", phone: str = "", token: str | None = None) -> dict[str, Any]:
    payload = build_order_payload(cart, name=name, email=email, phone=phone)
    result = public_request("POST", "/api/public/orders", json=payload, token=token)
    order = result.get("data") or {}
    log.info("[order] %s created %s items=%s", cart.merchant_code, order.get("orderNumber"), len(cart.items))
    return order
