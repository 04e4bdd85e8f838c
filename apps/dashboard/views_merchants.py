from __future__ import annotations

import logging
from typing import Any

from django.conf import settings
from django.shortcuts import render
from django.urls import reverse
from django.views.decorators.http import require_http_methods, require_POST

from apps.accounts.decorators import bearer_required
from apps.common.api import BackendError, api_request, mutate, query
from apps.common.htmx import flash, flash_error

from .listing import ListQuery, apply_filters, paginate
from .views import payload_data, render_panel

log = logging.getLogger(__name__)

MERCHANTS_URL = "/api/admin/merchants"
SEARCH_FIELDS = ("name", "code", "email", "city")
FILTER_FIELDS = ("status", "subscription")
SUPER_ADMIN = ("SUPER_ADMIN",)


def _status_matches(row: dict[str, Any], wanted: str) -> bool:
    return bool(row.get("isActive")) == (wanted == "active")


FILTER_MAP = {
    "status": _status_matches,
    "subscription": "subscriptionStatus.type",
}


def store_status(merchant: dict[str, Any]) -> str:
    if not merchant.get("isActive"):
        return "inactive"
    return "open" if merchant.get("isOpen") else "closed"


def _rows(data: Any) -> list[dict[str, Any]]:
    if isinstance(data, dict):
        data = data.get("merchants") or []
    rows = []
    for merchant in data or []:
        rows.append({**merchant, "store_status": store_status(merchant)})
    return rows


def _table_context(request, result) -> dict[str, Any]:
    list_query = ListQuery.from_request(request, FILTER_FIELDS)
    rows = _rows(payload_data(result))
    listing = paginate(apply_filters(rows, list_query, SEARCH_FIELDS, FILTER_MAP), list_query)
    return {
        "result": result,
        "query": list_query,
        "listing": listing,
        "merchants": listing.rows,
        "loaded_count": len(rows),
        "panel_url": list_query.url(reverse("dashboard:merchants")),
    }


@bearer_required(roles=SUPER_ADMIN)
def merchants_page(request):
    result = query(request, MERCHANTS_URL, settings.POLL_INTERVALS["merchants"])
    return render_panel(request, "dashboard/merchants.html", "dashboard/_merchants_table.html", _table_context(request, result))


def _after_write(request, kind: str, title: str, message: str, status: int = 200):
    result = mutate(request, MERCHANTS_URL, settings.POLL_INTERVALS["merchants"])
    resp = render(request, "dashboard/_merchants_table.html", _table_context(request, result), status=status)
    return flash(resp, kind, title, message)


@require_POST
@bearer_required(roles=SUPER_ADMIN)
def merchant_toggle(request, merchant_id: str):
    currently_active = request.POST.get("is_active") == "true"
    try:
        api_request(request, "PUT", f"{MERCHANTS_URL}/{merchant_id}", json={"isActive": not currently_active})
    except BackendError as exc:
        log.warning("[merchants] toggle %s failed: %s", merchant_id, exc.message)
        return flash_error(exc.message or "Failed to update merchant status")
    state = "deactivated" if currently_active else "activated"
    log.info("[merchants] %s %s", merchant_id, state)
    return _after_write(request, "success", "Merchant updated", f"Merchant {state}.")


@require_http_methods(["GET", "POST"])
@bearer_required(roles=SUPER_ADMIN)
def merchant_delete(request, merchant_id: str):
    if request.method == "GET":
        ctx = {"merchant_id": merchant_id, "name": request.GET.get("name", ""), "kind": "merchant"}
        return render(request, "dashboard/_confirm_delete.html", ctx)
    try:
        api_request(request, "DELETE", f"{MERCHANTS_URL}/{merchant_id}")
    except BackendError as exc:
        log.warning("[merchants] delete %s failed: %s", merchant_id, exc.message)
        return flash_error(exc.message or "Failed to delete merchant")
    log.info("[merchants] deleted %s", merchant_id)
    return _after_write(request, "success", "Merchant deleted", "The merchant was removed.")
