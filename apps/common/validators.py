from pathlib import PurePath

from django.core.exceptions import ValidationError

SPREADSHEET_EXTENSIONS = {".xlsx", ".csv"}

# Leading bytes of the binary formats; CSV has no signature
_MAGIC = {
    ".xlsx": b"PK\x03\x04",
}


def validate_max_size(file, max_bytes: int):
    size = getattr(file, "size", 0) or 0
    if size > max_bytes:
        raise ValidationError(f"File exceeds {max_bytes // (1024 * 1024)}MB.")


def validate_spreadsheet(file):
    ext = PurePath(getattr(file, "name", "") or "").suffix.lower()
    if ext not in SPREADSHEET_EXTENSIONS:
        raise ValidationError("Please upload an Excel file (.xlsx) or CSV file")
    magic = _MAGIC.get(ext)
    if magic is None:
        return ext
    pos = file.tell()
    head = file.read(len(magic))
    file.seek(pos)
    if head != magic:
        raise ValidationError("The uploaded file is not a valid spreadsheet.")
    return ext


def validate_upload(file):
    from django.conf import settings
    validate_max_size(file, settings.BULK_UPLOAD.get("max_bytes", 2 * 1024 * 1024))
    return validate_spreadsheet(file)
