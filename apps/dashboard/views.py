from __future__ import annotations

import logging
from typing import Any

from django.conf import settings
from django.http import HttpResponse
from django.shortcuts import render
from django.views.decorators.csrf import ensure_csrf_cookie

from apps.accounts.decorators import bearer_required
from apps.common.api import query
from apps.common.currency import to_decimal

log = logging.getLogger(__name__)

BALANCE_URL = "/api/merchant/balance"


def render_panel(request, page_template: str, partial_template: str, ctx: dict[str, Any], status: int = 200) -> HttpResponse:
    """Full page on navigation, bare partial for HTMX swaps and polling."""
    template = partial_template if request.htmx else page_template
    return render(request, template, {**ctx, "partial_template": partial_template}, status=status)


def payload_data(result) -> Any:
    if result.data is None:
        return None
    return result.data.get("data")


def balance_context(request) -> dict[str, Any]:
    result = query(request, BALANCE_URL, settings.POLL_INTERVALS["balance"])
    info = payload_data(result) or {}
    return {
        "balance_result": result,
        "balance": info,
        "balance_currency": info.get("currency") or settings.DEFAULT_CURRENCY,
        "balance_amount": to_decimal(info.get("balance")),
    }


@ensure_csrf_cookie
@bearer_required
def index(request):
    return render(request, "dashboard/index.html", balance_context(request))


@bearer_required
def balance_card(request):
    return render(request, "dashboard/_balance_card.html", balance_context(request))
