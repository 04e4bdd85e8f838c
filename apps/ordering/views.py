from __future__ import annotations

import logging

from django.conf import settings
from django.http import Http404
from django.shortcuts import render
from django.urls import reverse
from django.views.decorators.csrf import ensure_csrf_cookie
from django.views.decorators.http import require_http_methods

from apps.common.api import BackendError
from apps.common.currency import format_order_number
from apps.common.htmx import flash, flash_error, hx_redirect
from apps.common.rate_limit import release, submit_once

from . import services
from .cart import ORDER_MODES, CartStore
from .forms import AddToCartForm, CartLineForm, CheckoutForm
from .totals import FeeConfig

log = logging.getLogger(__name__)

LAST_ORDER_SESSION_KEY = "last_order"


def _mode(request) -> str:
    mode = request.GET.get("mode") or request.POST.get("mode") or settings.ORDERING.get("default_mode", "takeaway")
    if mode not in ORDER_MODES:
        raise Http404("unknown order mode")
    return mode


def _merchant(merchant_code: str) -> dict:
    if not services.is_valid_merchant_code(merchant_code):
        raise Http404()
    try:
        return services.get_merchant(merchant_code)
    except BackendError as exc:
        if exc.status_code == 404:
            raise Http404()
        raise


def _store(request, merchant_code: str, mode: str) -> CartStore:
    store = CartStore(request.session)
    store.initialize(merchant_code, mode, request.GET.get("table") or None)
    return store


def _session_key(request):
    if not request.session.session_key:
        request.session.create()
    return request.session.session_key


def _menu_url(merchant_code: str, mode: str) -> str:
    return f"{reverse('ordering:menu', args=[merchant_code])}?mode={mode}"


def _cart_context(request, merchant: dict, store: CartStore) -> dict:
    cart = store.cart
    fees = FeeConfig.for_merchant(merchant, cart.mode)
    return {
        "merchant": merchant,
        "merchant_code": cart.merchant_code,
        "currency": merchant.get("currency") or settings.DEFAULT_CURRENCY,
        "cart": cart,
        "totals": store.totals(fees),
        "fees": fees,
        "item_count": store.item_count(),
        "mode": cart.mode,
    }


def _backend_unavailable(request, exc: BackendError, merchant_code: str):
    return render(
        request,
        "ordering/error.html",
        {"message": exc.message, "merchant_code": merchant_code, "retry_url": request.get_full_path()},
        status=502,
    )


@ensure_csrf_cookie
def menu_browse(request, merchant_code: str):
    mode = _mode(request)
    try:
        merchant = _merchant(merchant_code)
        categories = services.get_categories(merchant_code)
        menus = services.get_menus(merchant_code)
    except BackendError as exc:
        return _backend_unavailable(request, exc, merchant_code)

    store = _store(request, merchant_code, mode)
    category_id = request.GET.get("category") or ""
    search = request.GET.get("q") or ""
    visible = services.filter_menus(menus, category_id=category_id, search=search)
    promos = [m for m in visible if m.get("isPromo") and m.get("promoPrice")]
    ctx = {
        **_cart_context(request, merchant, store),
        "categories": categories,
        "menus": visible,
        "promos": promos,
        "category_id": category_id,
        "search": search,
    }
    if request.htmx and request.htmx.target == "menu-list":
        return render(request, "ordering/_menu_list.html", ctx)
    return render(request, "ordering/menu.html", ctx)


def menu_item(request, merchant_code: str, menu_id: str):
    mode = _mode(request)
    try:
        merchant = _merchant(merchant_code)
        menu = services.find_menu(services.get_menus(merchant_code), menu_id)
        if menu is None:
            raise Http404()
        addon_categories = services.get_menu_addons(merchant_code, menu_id)
    except BackendError as exc:
        return _backend_unavailable(request, exc, merchant_code)
    return render(request, "ordering/_menu_item_modal.html", {
        "merchant": merchant,
        "merchant_code": merchant_code,
        "currency": merchant.get("currency") or settings.DEFAULT_CURRENCY,
        "menu": menu,
        "price": services.effective_price(menu),
        "addon_categories": addon_categories,
        "mode": mode,
    })


@require_http_methods(["POST"])  # CSRF enforced
def cart_add(request, merchant_code: str):
    mode = _mode(request)
    try:
        merchant = _merchant(merchant_code)
        menu = services.find_menu(services.get_menus(merchant_code), request.POST.get("menu_id") or "")
        if menu is None or not menu.get("isActive", True):
            return flash_error("This item is no longer available.")
        addon_categories = services.get_menu_addons(merchant_code, str(menu["id"]))
    except BackendError as exc:
        return flash_error(exc.message, status=502)

    addon_ids = [str(a["id"]) for c in addon_categories for a in c.get("addons") or []]
    form = AddToCartForm(request.POST, addon_ids=addon_ids)
    if not form.is_valid():
        return flash_error("Please review your choices.")
    try:
        addons = services.resolve_addons(addon_categories, form.cleaned_data["addons"])
        store = _store(request, merchant_code, mode)
        store.add_item(
            menu_id=str(menu["id"]),
            menu_name=menu.get("name") or "",
            unit_price=services.effective_price(menu),
            quantity=form.cleaned_data["quantity"],
            addons=addons,
            notes=form.cleaned_data["notes"],
        )
    except ValueError as exc:
        return flash_error(str(exc) or "Please review your choices.")
    resp = render(request, "ordering/_cart_badge.html", _cart_context(request, merchant, store))
    return flash(resp, "success", "Added", f"{menu.get('name')} added to cart.")


def cart_review(request, merchant_code: str):
    mode = _mode(request)
    try:
        merchant = _merchant(merchant_code)
    except BackendError as exc:
        return _backend_unavailable(request, exc, merchant_code)
    store = _store(request, merchant_code, mode)
    if store.cart.is_empty:
        return hx_redirect(request, _menu_url(merchant_code, mode))
    ctx = _cart_context(request, merchant, store)
    ctx["suggestions"] = services.get_recommendations(merchant_code, list(dict.fromkeys(i.menu_id for i in store.cart.items)))
    ctx["checkout_form"] = CheckoutForm(mode=mode, known_table=store.cart.table_number)
    return render(request, "ordering/cart.html", ctx)


@require_http_methods(["POST"])  # CSRF enforced
def cart_update(request, merchant_code: str):
    mode = _mode(request)
    try:
        merchant = _merchant(merchant_code)
    except BackendError as exc:
        return flash_error(exc.message, status=502)
    store = _store(request, merchant_code, mode)
    form = CartLineForm(request.POST)
    if not form.is_valid():
        return flash_error("Invalid quantity.")
    store.update_item(form.cleaned_data["cart_item_id"], **form.patch())
    if store.cart.is_empty:
        return hx_redirect(request, _menu_url(merchant_code, mode))
    return render(request, "ordering/_cart_items.html", _cart_context(request, merchant, store))


@require_http_methods(["POST"])  # CSRF enforced
def cart_remove(request, merchant_code: str):
    mode = _mode(request)
    try:
        merchant = _merchant(merchant_code)
    except BackendError as exc:
        return flash_error(exc.message, status=502)
    store = _store(request, merchant_code, mode)
    store.remove_item(request.POST.get("cart_item_id") or "")
    if store.cart.is_empty:
        return hx_redirect(request, _menu_url(merchant_code, mode))
    return render(request, "ordering/_cart_items.html", _cart_context(request, merchant, store))


@require_http_methods(["POST"])  # CSRF enforced
def checkout_submit(request, merchant_code: str):
    mode = _mode(request)
    try:
        merchant = _merchant(merchant_code)
    except BackendError as exc:
        return flash_error(exc.message, status=502)
    store = _store(request, merchant_code, mode)
    if store.cart.is_empty:
        return flash_error("Add items before checking out.", title="Empty cart")

    form = CheckoutForm(request.POST, mode=mode, known_table=store.cart.table_number)
    if not form.is_valid():
        ctx = _cart_context(request, merchant, store)
        ctx["checkout_form"] = form
        return render(request, "ordering/_checkout_form.html", ctx, status=422)

    guard = f"{_session_key(request)}:{merchant_code}:{mode}"
    if not submit_once("checkout", guard, settings.SUBMIT_GUARD_SECONDS):
        return flash_error("Your order is already being submitted.", title="Please wait", status=409)

    data = form.cleaned_data
    if data.get("table_number"):
        store.cart.table_number = data["table_number"]
    try:
        token = services.customer_login(name=data["name"], email=data["email"], phone=data["phone"])
        order = services.submit_order(store.cart, name=data["name"], email=data["email"], phone=data["phone"], token=token)
    except BackendError as exc:
        release("checkout", guard)
        return flash_error(exc.message or "Failed to create the order.", title="Order failed")

    totals = store.totals(FeeConfig.for_merchant(merchant, mode))
    request.session[LAST_ORDER_SESSION_KEY] = {
        "merchant_code": merchant_code,
        "order_number": order.get("orderNumber") or "",
        "total": str(totals.total),
        "currency": merchant.get("currency") or settings.DEFAULT_CURRENCY,
        "mode": mode,
    }
    store.clear()
    return hx_redirect(request, reverse("ordering:order_summary", args=[merchant_code]))


def order_summary(request, merchant_code: str):
    last = request.session.get(LAST_ORDER_SESSION_KEY)
    if not last or last.get("merchant_code") != merchant_code:
        return hx_redirect(request, _menu_url(merchant_code, settings.ORDERING.get("default_mode", "takeaway")))
    order = dict(last, display_number=format_order_number(merchant_code, last.get("order_number") or ""))
    return render(request, "ordering/order_summary.html", {"order": order, "merchant_code": merchant_code})
