from __future__ import annotations

import logging
from urllib.parse import urlencode

from django.conf import settings
from django.http import StreamingHttpResponse
from django.shortcuts import render
from django.urls import reverse

from apps.accounts.decorators import bearer_required
from apps.common.api import BackendError, api_stream, query

from .forms import TRANSACTION_TYPES, TransactionFilterForm
from .listing import ListQuery, download_filename, pagination_from_envelope
from .views import balance_context, payload_data, render_panel

log = logging.getLogger(__name__)

TRANSACTIONS_URL = "/api/merchant/balance/transactions"
EXPORT_URL = "/api/merchant/balance/transactions/export"
EXPORT_DEFAULT_NAME = "transactions.csv"
FILTER_FIELDS = ("type", "startDate", "endDate")


def _transactions_url(form: TransactionFilterForm, query_: ListQuery) -> str:
    # Transactions are searched on the server, unlike the merchant and driver lists
    params = {**query_.to_params(), **form.backend_filters()}
    return f"{TRANSACTIONS_URL}?{urlencode(params)}"


@bearer_required
def transactions_page(request):
    form = TransactionFilterForm(request.GET or None)
    list_query = ListQuery.from_request(request, FILTER_FIELDS)
    base = reverse("dashboard:transactions")
    if form.is_bound and not form.is_valid():
        ctx = {
            "form": form,
            "error": form.non_field_errors() or form.errors,
            "tabs": TRANSACTION_TYPES,
            "query": list_query,
            "panel_url": list_query.url(base),
        }
        return render_panel(request, "dashboard/transactions.html", "dashboard/_transactions_table.html", ctx, status=422)

    result = query(request, _transactions_url(form, list_query), settings.POLL_INTERVALS["transactions"])
    data = payload_data(result) or {}
    rows = data.get("transactions") or []
    listing = pagination_from_envelope(rows, data.get("pagination"), list_query)

    active_type = list_query.filters.get("type", "all")
    ctx = {
        **balance_context(request),
        "form": form,
        "query": list_query,
        "result": result,
        "listing": listing,
        "transactions": rows,
        "panel_url": list_query.url(base),
        "tabs": [
            {"key": key, "label": label, "active": key == active_type, "url": list_query.url(base, type=key)}
            for key, label in TRANSACTION_TYPES
        ],
        "prev_url": list_query.url(base, page=listing.page - 1) if listing.page > 1 else None,
        "next_url": list_query.url(base, page=listing.page + 1) if listing.has_more else None,
        "export_query": urlencode(form.backend_filters()),
    }
    return render_panel(request, "dashboard/transactions.html", "dashboard/_transactions_table.html", ctx)


@bearer_required
def transactions_export(request):
    form = TransactionFilterForm(request.GET or None)
    # Same filters as the table, without search and pagination
    params = form.backend_filters()
    try:
        upstream = api_stream(request, EXPORT_URL, params=params)
    except BackendError as exc:
        log.warning("[export] transactions export failed: %s", exc.message)
        return render(request, "dashboard/error.html", {"message": exc.message or "Failed to export transactions"}, status=502)

    filename = download_filename(upstream.headers.get("Content-Disposition"), EXPORT_DEFAULT_NAME)
    resp = StreamingHttpResponse(
        upstream.iter_content(chunk_size=8192),
        content_type=upstream.headers.get("Content-Type") or "text/csv",
    )
    resp["Content-Disposition"] = f'attachment; filename="{filename}"'
    return resp
