"""Reading and writing the addon-item spreadsheet.

Rows come from the first sheet of an ``.xlsx`` workbook or from a CSV file;
the header row names the columns, with a few accepted spellings for each.
"""
from __future__ import annotations

import csv
import io
from dataclasses import asdict, dataclass, field
from decimal import Decimal, InvalidOperation
from io import BytesIO
from typing import Any, Iterable, Iterator

from django.conf import settings
from django.core.exceptions import ValidationError
from openpyxl import Workbook, load_workbook
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter

from apps.common.validators import validate_upload

TEMPLATE_HEADERS = [
    "ID",
    "Addon Category Name *",
    "Name *",
    "Description",
    "Price *",
    "Input Type (SELECT/QTY)",
    "Is Active",
    "Track Stock",
    "Stock Qty",
    "Daily Stock Template",
    "Auto Reset Stock",
    "Display Order",
]

COLUMN_ALIASES = {
    "id": ("id",),
    "category_name": ("addon category name *", "addon category name", "category"),
    "name": ("name *", "name"),
    "description": ("description",),
    "price": ("price *", "price"),
    "input_type": ("input type (select/qty)", "input type"),
    "is_active": ("is active",),
    "track_stock": ("track stock",),
    "stock_qty": ("stock qty",),
    "daily_stock_template": ("daily stock template",),
    "auto_reset_stock": ("auto reset stock",),
    "display_order": ("display order",),
}

TRUE_VALUES = {"yes", "true", "1"}


class UploadError(Exception):
    pass


@dataclass
class AddonRow:
    row_index: int
    category_name: str = ""
    name: str = ""
    description: str = ""
    price: Decimal | None = None
    input_type: str = "SELECT"
    is_active: bool = True
    track_stock: bool = False
    stock_qty: int | None = None
    daily_stock_template: int | None = None
    auto_reset_stock: bool = False
    display_order: int = 0
    id: str = ""
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["price"] = None if self.price is None else str(self.price)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AddonRow":
        values = dict(data)
        values["price"] = parse_decimal(values.get("price"))
        return cls(**{k: v for k, v in values.items() if k in cls.__dataclass_fields__})


def parse_bool(value: Any, default: bool = False) -> bool:
    if isinstance(value, bool):
        return value
    if value is None or value == "":
        return default
    if isinstance(value, (int, float)):
        return value == 1
    return str(value).strip().lower() in TRUE_VALUES


def parse_decimal(value: Any) -> Decimal | None:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    try:
        number = Decimal(str(value).strip())
    except InvalidOperation:
        return None
    return number if number.is_finite() else None


def parse_int(value: Any) -> int | None:
    number = parse_decimal(value)
    return None if number is None else int(number)


def parse_input_type(value: Any) -> str:
    text = str(value or "").strip().upper()
    return "QTY" if text in ("QTY", "QUANTITY") else "SELECT"


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()


def _header_map(header: Iterable[Any]) -> dict[str, int]:
    index = {_text(name).lower(): pos for pos, name in enumerate(header)}
    mapping = {}
    for key, aliases in COLUMN_ALIASES.items():
        for alias in aliases:
            if alias in index:
                mapping[key] = index[alias]
                break
    return mapping


def row_from_cells(cells: list[Any], columns: dict[str, int], row_index: int) -> AddonRow:
    def cell(key):
        pos = columns.get(key)
        if pos is None or pos >= len(cells):
            return None
        return cells[pos]

    return AddonRow(
        row_index=row_index,
        id=_text(cell("id")),
        category_name=_text(cell("category_name")),
        name=_text(cell("name")),
        description=_text(cell("description")),
        price=parse_decimal(cell("price")),
        input_type=parse_input_type(cell("input_type")),
        is_active=parse_bool(cell("is_active"), default=True),
        track_stock=parse_bool(cell("track_stock")),
        stock_qty=parse_int(cell("stock_qty")),
        daily_stock_template=parse_int(cell("daily_stock_template")),
        auto_reset_stock=parse_bool(cell("auto_reset_stock")),
        display_order=parse_int(cell("display_order")) or 0,
    )


def _xlsx_rows(file) -> Iterator[list[Any]]:
    try:
        wb = load_workbook(file, read_only=True, data_only=True)
    except Exception as exc:  # openpyxl raises several unrelated types on corrupt input
        raise UploadError("Failed to parse the uploaded file. Please check the format.") from exc
    try:
        ws = wb.worksheets[0]
        for values in ws.iter_rows(values_only=True):
            yield list(values)
    finally:
        wb.close()


def _csv_rows(file) -> Iterator[list[Any]]:
    raw = file.read()
    try:
        text = raw.decode("utf-8-sig") if isinstance(raw, bytes) else raw
    except UnicodeDecodeError as exc:
        raise UploadError("CSV files must be UTF-8 encoded.") from exc
    yield from csv.reader(io.StringIO(text))


def parse_workbook(file) -> list[AddonRow]:
    """Turn an uploaded spreadsheet into rows, numbered as the spreadsheet numbers them."""
    try:
        ext = validate_upload(file)
    except ValidationError as exc:
        raise UploadError(exc.messages[0]) from exc

    source = _xlsx_rows(file) if ext == ".xlsx" else _csv_rows(file)
    header = next(source, None)
    if not header or not any(_text(v) for v in header):
        raise UploadError("The uploaded file is empty")
    columns = _header_map(header)
    if "name" not in columns and "category_name" not in columns:
        raise UploadError("Missing header row: expected columns like 'Name *' and 'Price *'.")

    max_rows = settings.BULK_UPLOAD.get("max_rows", 500)
    rows = []
    for offset, cells in enumerate(source):
        if not any(_text(v) for v in cells):
            continue
        if len(rows) >= max_rows:
            raise UploadError(f"Too many rows: the limit is {max_rows} per upload.")
        rows.append(row_from_cells(cells, columns, offset + 2))
    if not rows:
        raise UploadError("The uploaded file is empty")
    return rows


# -- writing -------------------------------------------------------------------

def _autosize(ws):
    for col in ws.columns:
        max_len = 0
        letter = get_column_letter(col[0].column)
        for cell in col:
            val = "" if cell.value is None else str(cell.value)
            max_len = max(max_len, len(val))
        ws.column_dimensions[letter].width = min(max(10, max_len + 2), 40)


def _yes_no(value: Any) -> str:
    return "Yes" if value else "No"


def _item_cells(item: dict[str, Any], category_names: dict[str, str]) -> list[Any]:
    category = item.get("addonCategory") or {}
    return [
        item.get("id") or "",
        category.get("name") or category_names.get(str(item.get("addonCategoryId")), ""),
        item.get("name") or "",
        item.get("description") or "",
        item.get("price"),
        item.get("inputType") or "SELECT",
        _yes_no(item.get("isActive", True)),
        _yes_no(item.get("trackStock")),
        item.get("stockQty"),
        item.get("dailyStockTemplate"),
        _yes_no(item.get("autoResetStock")),
        item.get("displayOrder") or 0,
    ]


SAMPLE_ROWS = [
    ["", "Toppings", "Extra Cheese", "Melted cheddar", 5000, "SELECT", "Yes", "No", None, None, "No", 1],
    ["", "Toppings", "Fried Egg", "", 8000, "SELECT", "Yes", "Yes", 100, 100, "Yes", 2],
    ["", "Spice Level", "Extra Hot", "", 0, "SELECT", "Yes", "No", None, None, "No", 1],
]


def build_items_xlsx(items: Iterable[dict[str, Any]] | None = None, categories: Iterable[dict[str, Any]] = (), sheet_name: str = "Addon Items") -> BytesIO:
    """Workbook in upload format; without `items` it holds sample rows to fill in."""
    wb = Workbook()
    ws = wb.active
    ws.title = sheet_name

    header_font = Font(bold=True, color="FFFFFF")
    header_fill = PatternFill("solid", fgColor="4F81BD")
    center = Alignment(horizontal="center", vertical="center")

    ws.append(TEMPLATE_HEADERS)
    for cell in ws[1]:
        cell.font = header_font
        cell.fill = header_fill
        cell.alignment = center

    if items is None:
        for row in SAMPLE_ROWS:
            ws.append(row)
    else:
        names = {str(c.get("id")): c.get("name") or "" for c in categories}
        for item in items:
            ws.append(_item_cells(item, names))

    _autosize(ws)

    bio = BytesIO()
    wb.save(bio)
    bio.seek(0)
    return bio
