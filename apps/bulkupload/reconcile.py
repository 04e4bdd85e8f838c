"""Validation and duplicate detection for uploaded addon-item rows.

A row matches an existing item by id first. Rows without an id (or with an
id the merchant does not have) fall back to a case-insensitive match on
name within the same category.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

from .spreadsheet import AddonRow

MATCH_BY_ID = "id"
MATCH_BY_NAME = "name_category"


@dataclass(slots=True)
class ExistingMatch:
    item_id: str
    name: str
    path: str


@dataclass
class Reconciliation:
    rows: list[AddonRow]
    matches: dict[int, ExistingMatch] = field(default_factory=dict)

    @property
    def error_count(self) -> int:
        return sum(1 for row in self.rows if row.errors)

    @property
    def warning_count(self) -> int:
        return sum(1 for row in self.rows if row.warnings)

    @property
    def update_count(self) -> int:
        return len(self.matches)

    @property
    def create_count(self) -> int:
        return len(self.rows) - self.update_count

    @property
    def can_save(self) -> bool:
        return bool(self.rows) and self.error_count == 0

    @property
    def needs_confirmation(self) -> bool:
        return bool(self.matches)

    def match_for(self, row: AddonRow) -> ExistingMatch | None:
        return self.matches.get(row.row_index)


def _key(value: Any) -> str:
    return str(value or "").strip().lower()


def find_category(name: str, categories: Iterable[Mapping[str, Any]]) -> Mapping[str, Any] | None:
    wanted = _key(name)
    for category in categories:
        if _key(category.get("name")) == wanted:
            return category
    return None


def validate_row(row: AddonRow, categories: Iterable[Mapping[str, Any]]) -> tuple[list[str], list[str]]:
    errors: list[str] = []
    warnings: list[str] = []

    if not row.category_name:
        errors.append("Addon Category Name is required")
    elif find_category(row.category_name, categories) is None:
        errors.append(f'Addon Category "{row.category_name}" not found')

    if not row.name:
        errors.append("Name is required")

    if row.price is None or row.price < 0:
        errors.append("Valid price is required (must be >= 0)")

    if row.track_stock and (row.stock_qty is None or row.stock_qty < 0):
        errors.append("Stock quantity is required when tracking stock")

    if not row.description:
        warnings.append("No description")
    if not row.track_stock and (row.stock_qty is not None or row.daily_stock_template is not None):
        warnings.append("Stock values are ignored because stock tracking is off")

    return errors, warnings


def _category_name(item: Mapping[str, Any], categories: Iterable[Mapping[str, Any]]) -> str:
    nested = item.get("addonCategory") or {}
    if nested.get("name"):
        return nested["name"]
    for category in categories:
        if str(category.get("id")) == str(item.get("addonCategoryId")):
            return category.get("name") or ""
    return ""


def find_existing(
    row: AddonRow,
    existing: Iterable[Mapping[str, Any]],
    categories: Iterable[Mapping[str, Any]] = (),
) -> ExistingMatch | None:
    existing = list(existing)
    if row.id:
        for item in existing:
            if str(item.get("id")) == row.id:
                return ExistingMatch(str(item["id"]), item.get("name") or "", MATCH_BY_ID)

    name, category = _key(row.name), _key(row.category_name)
    if not name:
        return None
    for item in existing:
        if _key(item.get("name")) == name and _key(_category_name(item, categories)) == category:
            return ExistingMatch(str(item["id"]), item.get("name") or "", MATCH_BY_NAME)
    return None


def reconcile(
    rows: list[AddonRow],
    categories: Iterable[Mapping[str, Any]],
    existing: Iterable[Mapping[str, Any]],
) -> Reconciliation:
    categories = list(categories)
    existing = list(existing)
    result = Reconciliation(rows=rows)
    seen: dict[tuple[str, str], int] = {}

    for row in rows:
        row.errors, row.warnings = validate_row(row, categories)
        key = (_key(row.name), _key(row.category_name))
        if key[0]:
            if key in seen:
                row.warnings.append(f"Same name and category as row {seen[key]}")
            else:
                seen[key] = row.row_index
        match = find_existing(row, existing, categories)
        if match is not None:
            result.matches[row.row_index] = match
    return result


def build_payload(result: Reconciliation, categories: Iterable[Mapping[str, Any]], upsert_by_name: bool = True) -> dict[str, Any]:
    categories = list(categories)
    items = []
    for row in result.rows:
        category = find_category(row.category_name, categories) or {}
        item: dict[str, Any] = {
            "addonCategoryId": category.get("id") or "",
            "name": row.name,
            "description": row.description,
            "price": float(row.price) if row.price is not None else None,
            "inputType": row.input_type,
            "isActive": row.is_active,
            "trackStock": row.track_stock,
            "stockQty": row.stock_qty if row.track_stock else None,
            "dailyStockTemplate": row.daily_stock_template if row.track_stock else None,
            "autoResetStock": row.auto_reset_stock,
            "displayOrder": row.display_order,
        }
        match = result.match_for(row)
        if match is not None:
            item["id"] = match.item_id
        items.append(item)
    return {"items": items, "upsertByName": upsert_by_name}
