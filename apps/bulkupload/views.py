from __future__ import annotations

import logging
from typing import Any

from django.conf import settings
from django.http import Http404, HttpResponse
from django.shortcuts import render
from django.urls import reverse
from django.views.decorators.http import require_GET, require_http_methods, require_POST

from apps.accounts.decorators import bearer_required
from apps.common.api import BackendError, api_request, mutate, query_static
from apps.common.htmx import flash, flash_error, hx_redirect
from apps.common.rate_limit import release, submit_once

from .forms import AddonRowForm, UploadForm
from .reconcile import build_payload, reconcile
from .spreadsheet import AddonRow, UploadError, build_items_xlsx, parse_workbook

log = logging.getLogger(__name__)

DRAFT_SESSION_KEY = "addon_bulk_draft"
ITEMS_URL = "/api/merchant/addon-items"
CATEGORIES_URL = "/api/merchant/addon-categories"
BULK_UPLOAD_PATH = "/api/merchant/addon-items/bulk-upload"
XLSX_CONTENT_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _list(result) -> list[dict[str, Any]]:
    if result.data is None:
        return []
    data = result.data.get("data")
    if isinstance(data, dict):
        data = data.get("items") or data.get("categories") or []
    return list(data or [])


def _reference(request):
    categories = query_static(request, CATEGORIES_URL)
    existing = query_static(request, ITEMS_URL)
    error = categories.error or existing.error
    return _list(categories), _list(existing), error


def _draft(request) -> dict[str, Any]:
    return request.session.get(DRAFT_SESSION_KEY) or {"filename": "", "rows": []}


def _rows(request) -> list[AddonRow]:
    return [AddonRow.from_dict(r) for r in _draft(request)["rows"]]


def _save_draft(request, rows: list[AddonRow], filename: str | None = None) -> None:
    draft = _draft(request)
    request.session[DRAFT_SESSION_KEY] = {
        "filename": draft["filename"] if filename is None else filename,
        "rows": [r.to_dict() for r in rows],
    }
    request.session.modified = True


def _context(request, **extra) -> dict[str, Any]:
    categories, existing, error = _reference(request)
    rows = _rows(request)
    result = reconcile(rows, categories, existing)
    return {
        "draft": _draft(request),
        "result": result,
        "rows": [(row, result.match_for(row)) for row in result.rows],
        "categories": categories,
        "reference_error": error,
        "upload_form": UploadForm(),
        **extra,
    }


def _render_draft(request, status: int = 200, **extra) -> HttpResponse:
    return render(request, "bulkupload/_draft.html", _context(request, **extra), status=status)


def _xlsx_response(content, filename: str) -> HttpResponse:
    resp = HttpResponse(content.getvalue(), content_type=XLSX_CONTENT_TYPE)
    resp["Content-Disposition"] = f'attachment; filename="{filename}"'
    return resp


@require_GET
@bearer_required
def upload_page(request):
    template = "bulkupload/_draft.html" if request.htmx else "bulkupload/upload.html"
    return render(request, template, _context(request))


@require_GET
@bearer_required
def download_template(request):
    return _xlsx_response(build_items_xlsx(), "addon-items-template.xlsx")


@require_GET
@bearer_required
def export_items(request):
    categories, existing, error = _reference(request)
    if error is not None:
        return render(request, "dashboard/error.html", {"message": error.message}, status=502)
    return _xlsx_response(build_items_xlsx(existing, categories), "addon-items-export.xlsx")


@require_POST
@bearer_required
def upload_file(request):
    form = UploadForm(request.POST, request.FILES)
    if not form.is_valid():
        return flash_error("Choose a file to upload.", status=400)
    upload = form.cleaned_data["file"]
    try:
        rows = parse_workbook(upload)
    except UploadError as exc:
        log.info("[bulk] upload rejected file=%s: %s", upload.name, exc)
        return flash_error(str(exc))
    _save_draft(request, rows, filename=upload.name)
    log.info("[bulk] loaded %s rows from %s", len(rows), upload.name)
    return flash(_render_draft(request), "success", "File loaded", f"Loaded {len(rows)} items from file")


def _find_row(rows: list[AddonRow], row_index: int) -> AddonRow:
    for row in rows:
        if row.row_index == row_index:
            return row
    raise Http404("Row not found")


@require_http_methods(["GET", "POST"])
@bearer_required
def edit_row(request, row_index: int):
    rows = _rows(request)
    row = _find_row(rows, row_index)
    if request.method == "GET":
        ctx = {"row": row, "form": AddonRowForm.for_row(row), "categories": _reference(request)[0]}
        return render(request, "bulkupload/_row_form.html", ctx)

    form = AddonRowForm(request.POST)
    if not form.is_valid():
        ctx = {"row": row, "form": form, "categories": _reference(request)[0]}
        return render(request, "bulkupload/_row_form.html", ctx, status=422)
    form.apply(row)
    _save_draft(request, rows)
    return _render_draft(request)


@require_POST
@bearer_required
def remove_row(request, row_index: int):
    rows = [r for r in _rows(request) if r.row_index != row_index]
    _save_draft(request, rows)
    return _render_draft(request)


@require_POST
@bearer_required
def clear_draft(request):
    request.session.pop(DRAFT_SESSION_KEY, None)
    return _render_draft(request)


@require_POST
@bearer_required
def save_draft(request):
    ctx = _context(request)
    result = ctx["result"]
    if not result.rows:
        return flash_error("No items to save")
    if ctx["reference_error"] is not None:
        return flash_error(ctx["reference_error"].message, status=502)
    if not result.can_save:
        resp = render(request, "bulkupload/_draft.html", ctx, status=422)
        return flash(resp, "error", "Fix errors first", f"{result.error_count} rows have errors.")
    if result.needs_confirmation and request.POST.get("confirmed") != "1":
        return render(request, "bulkupload/_confirm.html", ctx)

    guard = request.session.session_key or "anon"
    if not submit_once("bulk-upload", guard, settings.SUBMIT_GUARD_SECONDS):
        return flash_error("This upload is already being saved.", status=409)

    try:
        payload = api_request(request, "POST", BULK_UPLOAD_PATH, json=build_payload(result, ctx["categories"]))
    except BackendError as exc:
        release("bulk-upload", guard)
        log.warning("[bulk] save failed: %s", exc.message)
        return flash_error(exc.message or "Failed to save addon items")

    created = payload.get("createdCount", 0)
    updated = payload.get("updatedCount", 0)
    log.info("[bulk] saved created=%s updated=%s", created, updated)
    request.session.pop(DRAFT_SESSION_KEY, None)
    mutate(request, ITEMS_URL)
    resp = hx_redirect(request, reverse("bulkupload:upload"))
    return flash(resp, "success", "Saved", f"Created {created} and updated {updated} addon items.")
