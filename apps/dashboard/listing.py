"""Shared list/filter/paginate behaviour for the dashboard tables.

Free-text search is applied to the rows the page already holds, never to the
full dataset on the server. :class:`ListResult` carries
``search_is_page_local`` so templates can say so next to the search box.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from math import ceil
from typing import Any, Iterable, Mapping, Sequence
from urllib.parse import urlencode, urlsplit

from django.conf import settings
from django.core.paginator import Paginator
from django.http import QueryDict

ALL = "all"
_FILENAME_RE = re.compile(r'filename\*?=(?:UTF-8\'\')?"?([^";]+)"?', re.IGNORECASE)


def _page_size() -> int:
    return int(getattr(settings, "DASHBOARD_PAGE_SIZE", 20))


def list_params(request) -> QueryDict:
    """Query string of the list the user is looking at.

    Toggles and deletes are POSTs with an empty query string; the table they
    re-render is the one in the browser, which htmx reports as HX-Current-URL.
    """
    if request.method == "GET":
        return request.GET
    htmx = getattr(request, "htmx", None)
    current = htmx.current_url if htmx else None
    if not current:
        return QueryDict()
    return QueryDict(urlsplit(current).query)


@dataclass(slots=True)
class ListQuery:
    search: str = ""
    filters: dict[str, str] = field(default_factory=dict)
    page: int = 1
    page_size: int = 20

    @classmethod
    def from_request(cls, request, filter_fields: Sequence[str] = ()) -> "ListQuery":
        params = list_params(request)
        try:
            page = max(1, int(params.get("page") or 1))
        except ValueError:
            page = 1
        filters = {}
        for name in filter_fields:
            value = (params.get(name) or "").strip()
            if value and value != ALL:
                filters[name] = value
        return cls(search=(params.get("q") or "").strip(), filters=filters, page=page, page_size=_page_size())

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size

    @property
    def has_filters(self) -> bool:
        return bool(self.search or self.filters)

    def with_changes(self, *, search: str | None = None, page: int | None = None, **filters: str) -> "ListQuery":
        """Return a copy with new values; touching search or any filter goes back to page 1."""
        new_filters = dict(self.filters)
        changed = False
        for name, value in filters.items():
            value = (value or "").strip()
            if value in ("", ALL):
                changed = changed or name in new_filters
                new_filters.pop(name, None)
            elif new_filters.get(name) != value:
                new_filters[name] = value
                changed = True
        new_search = self.search
        if search is not None and search.strip() != self.search:
            new_search = search.strip()
            changed = True
        new_page = 1 if changed else (page if page is not None else self.page)
        return replace(self, search=new_search, filters=new_filters, page=max(1, new_page))

    def to_query_string(self) -> str:
        """The list state as it appears in the page URL (`q`, filters, `page`)."""
        params: dict[str, Any] = dict(self.filters)
        if self.search:
            params["q"] = self.search
        if self.page > 1:
            params["page"] = self.page
        return urlencode(params)

    def url(self, base: str, **changes) -> str:
        target = self.with_changes(**changes) if changes else self
        qs = target.to_query_string()
        return f"{base}?{qs}" if qs else base

    def to_params(self, *, paginate: bool = True, include_search: bool = True) -> dict[str, Any]:
        params: dict[str, Any] = dict(self.filters)
        if include_search and self.search:
            params["search"] = self.search
        if paginate:
            params["limit"] = self.page_size
            params["offset"] = self.offset
        return params


@dataclass(slots=True)
class ListResult:
    rows: list[Any]
    total: int
    page: int
    pages: int
    has_more: bool
    search_is_page_local: bool = False
    paginator_page: Any = None


def _matches(row: Mapping[str, Any], term: str, fields: Iterable[str]) -> bool:
    for name in fields:
        value = row.get(name)
        if value is not None and term in str(value).lower():
            return True
    return False


def _field(row: Mapping[str, Any], path: str) -> Any:
    value: Any = row
    for part in path.split("."):
        if not isinstance(value, Mapping):
            return None
        value = value.get(part)
    return value


def apply_filters(
    rows: Iterable[Mapping[str, Any]],
    query: ListQuery,
    search_fields: Sequence[str],
    filter_map: Mapping[str, Any] | None = None,
) -> list[Mapping[str, Any]]:
    """Case-insensitive substring search plus equality filters over loaded rows.

    `filter_map` maps a filter name to a dotted row path, or to a callable
    `(row, value) -> bool` for filters that are not plain equality.
    """
    term = query.search.lower()
    mapping = filter_map or {}
    out = []
    for row in rows:
        if term and not _matches(row, term, search_fields):
            continue
        keep = True
        for name, wanted in query.filters.items():
            target = mapping.get(name, name)
            if callable(target):
                ok = target(row, wanted)
            else:
                ok = str(_field(row, target)) == wanted
            if not ok:
                keep = False
                break
        if keep:
            out.append(row)
    return out


def paginate(rows: Sequence[Any], query: ListQuery) -> ListResult:
    paginator = Paginator(rows, query.page_size)
    page = paginator.get_page(query.page)
    return ListResult(
        rows=list(page.object_list),
        total=paginator.count,
        page=page.number,
        pages=paginator.num_pages,
        has_more=page.has_next(),
        search_is_page_local=bool(query.search),
        paginator_page=page,
    )


def pagination_from_envelope(rows: list[Any], envelope: Mapping[str, Any] | None, query: ListQuery) -> ListResult:
    """Build a result from a server page plus its `{total, limit, offset, hasMore}` envelope."""
    env = envelope or {}
    total = int(env.get("total") or len(rows))
    limit = int(env.get("limit") or query.page_size) or query.page_size
    offset = int(env.get("offset") or query.offset)
    return ListResult(
        rows=rows,
        total=total,
        page=offset // limit + 1,
        pages=max(1, ceil(total / limit)),
        has_more=bool(env.get("hasMore", offset + len(rows) < total)),
    )


def download_filename(content_disposition: str | None, default: str) -> str:
    if not content_disposition:
        return default
    match = _FILENAME_RE.search(content_disposition)
    if not match:
        return default
    name = match.group(1).strip()
    return name or default
