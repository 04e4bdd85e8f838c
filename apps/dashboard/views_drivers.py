from __future__ import annotations

import logging
from typing import Any

from django.shortcuts import render
from django.urls import reverse
from django.views.decorators.http import require_http_methods, require_POST

from apps.accounts.decorators import bearer_required
from apps.common.api import BackendError, api_request, mutate, query_static
from apps.common.htmx import flash, flash_error

from .listing import ListQuery, apply_filters, paginate
from .views import payload_data, render_panel

log = logging.getLogger(__name__)

DRIVERS_PATH = "/api/merchant/drivers"
DRIVERS_URL = f"{DRIVERS_PATH}?includeInactive=1"
SEARCH_FIELDS = ("name", "email", "phone")


def _rows(data: Any) -> list[dict[str, Any]]:
    if isinstance(data, dict):
        data = data.get("drivers") or []
    return list(data or [])


def _table_context(request, result) -> dict[str, Any]:
    list_query = ListQuery.from_request(request, ("status",))
    rows = _rows(payload_data(result))
    filter_map = {"status": lambda row, wanted: bool(row.get("isActive")) == (wanted == "active")}
    listing = paginate(apply_filters(rows, list_query, SEARCH_FIELDS, filter_map), list_query)
    return {
        "result": result,
        "query": list_query,
        "listing": listing,
        "drivers": listing.rows,
        "panel_url": list_query.url(reverse("dashboard:drivers")),
    }


@bearer_required
def drivers_page(request):
    result = query_static(request, DRIVERS_URL)
    return render_panel(request, "dashboard/drivers.html", "dashboard/_drivers_table.html", _table_context(request, result))


def _refresh(request, message: str):
    result = mutate(request, DRIVERS_URL)
    resp = render(request, "dashboard/_drivers_table.html", _table_context(request, result))
    return flash(resp, "success", "Drivers", message)


@require_POST
@bearer_required
def driver_toggle(request, driver_id: str):
    currently_active = request.POST.get("is_active") == "true"
    try:
        api_request(request, "PUT", f"{DRIVERS_PATH}/{driver_id}", json={"isActive": not currently_active})
    except BackendError as exc:
        log.warning("[drivers] toggle %s failed: %s", driver_id, exc.message)
        return flash_error(exc.message or "Failed to update driver")
    return _refresh(request, "Driver deactivated." if currently_active else "Driver activated.")


@require_http_methods(["GET", "POST"])
@bearer_required
def driver_delete(request, driver_id: str):
    if request.method == "GET":
        ctx = {"driver_id": driver_id, "name": request.GET.get("name", ""), "kind": "driver"}
        return render(request, "dashboard/_confirm_delete.html", ctx)
    try:
        api_request(request, "DELETE", f"{DRIVERS_PATH}/{driver_id}")
    except BackendError as exc:
        log.warning("[drivers] delete %s failed: %s", driver_id, exc.message)
        return flash_error(exc.message or "Failed to remove driver")
    log.info("[drivers] removed %s", driver_id)
    return _refresh(request, "Driver removed.")
