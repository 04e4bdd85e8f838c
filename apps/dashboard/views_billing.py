from __future__ import annotations

import logging
from typing import Any

from django.conf import settings
from django.shortcuts import render
from django.views.decorators.http import require_POST

from apps.accounts.decorators import bearer_required
from apps.common.api import BackendError, mutate, query_static
from apps.common.htmx import flash
from apps.common.rate_limit import release, submit_once

from .forms import TransferForm
from .transfer import find_merchant, flatten_groups, group_total, submit_transfer, validate_transfer
from .views import payload_data, render_panel

log = logging.getLogger(__name__)

GROUP_URL = "/api/merchant/balance/group"


def _groups(result) -> list[dict[str, Any]]:
    data = payload_data(result) or {}
    groups = data.get("groups") if isinstance(data, dict) else data
    out = []
    for group in groups or []:
        main = group.get("main") or {}
        out.append({
            **group,
            "total": group_total(group),
            "currency": main.get("currency") or settings.DEFAULT_CURRENCY,
        })
    return out


def _panel_context(request, result, form: TransferForm | None = None, **extra) -> dict[str, Any]:
    groups = _groups(result)
    return {
        "result": result,
        "groups": groups,
        "merchants": flatten_groups(groups),
        "form": form or TransferForm(),
        **extra,
    }


@bearer_required
def group_billing(request):
    result = query_static(request, GROUP_URL)
    return render_panel(request, "dashboard/group_billing.html", "dashboard/_group_panel.html", _panel_context(request, result))


@require_POST
@bearer_required
def transfer(request):
    result = query_static(request, GROUP_URL)
    form = TransferForm(request.POST)
    form.is_valid()
    data = form.cleaned_data
    merchants = flatten_groups(_groups(result))
    source = find_merchant(merchants, data.get("from_merchant_id") or "")
    target = find_merchant(merchants, data.get("to_merchant_id") or "")

    check = validate_transfer(source, target, data.get("amount"))
    if not check.ok:
        ctx = _panel_context(request, result, form, transfer_error=check.error)
        return render(request, "dashboard/_transfer_form.html", ctx, status=422)

    if not data.get("confirmed"):
        ctx = _panel_context(request, result, form, confirm=True, source=source, target=target, check=check)
        return render(request, "dashboard/_transfer_form.html", ctx)

    guard = f"{request.session.session_key}:{source['id']}:{target['id']}:{check.amount}"
    if not submit_once("transfer", guard, settings.SUBMIT_GUARD_SECONDS):
        ctx = _panel_context(request, result, form, transfer_error="This transfer is already being processed.")
        return render(request, "dashboard/_transfer_form.html", ctx, status=409)

    try:
        submit_transfer(request, source["id"], target["id"], check.amount, data.get("note") or "")
    except BackendError as exc:
        release("transfer", guard)
        ctx = _panel_context(request, result, form, transfer_error=exc.message)
        return render(request, "dashboard/_transfer_form.html", ctx, status=422)

    fresh = mutate(request, GROUP_URL)
    resp = render(request, "dashboard/_group_panel.html", _panel_context(request, fresh, transfer_done=True))
    resp["HX-Retarget"] = "#group-panel"
    return flash(resp, "success", "Transfer complete", "The balance was moved between merchants.")
