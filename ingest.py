# ingest.py
"""
Bulk CSV import for competitors and pricing observations.

A file is staged to disk, size-checked, decoded and split into rows keyed by
canonical header names (`"Price Range Min"` -> `price_range_min`). Each row is
turned into the same pydantic model the interactive routes accept and written
through crud.py. A bad row is rolled back and reported as `Row N: ...`; it never
stops the rest of the batch. Only file-level problems (empty, unreadable,
oversized, store down) abort the request.
"""
import csv
import os
import re
import tempfile
from contextlib import contextmanager
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation as DecimalError
from typing import BinaryIO, Dict, Iterator, List, Optional, Tuple

from pydantic import ValidationError as SchemaError
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

import crud
from errors import EmptyFile, StorageUnavailable, UploadTooLarge, ValidationError
from logging_config import get_logger
from models import TREND_STATUSES
from schemas import CompetitorCreate, IngestResult, PricingDataCreate

logger = get_logger(__name__)

RECORD_TYPES = ("competitors", "pricing")
DELIMITER = ","
QUOTES = ("\"", "'")
MAX_ERRORS = 10
DEFAULT_CATEGORY = "Technology"
DEFAULT_TREND_STATUS = "stable"

UPLOAD_DIR = os.getenv("UPLOAD_DIR") or tempfile.gettempdir()
MAX_UPLOAD_BYTES = int(os.getenv("MAX_UPLOAD_BYTES", str(10 * 1024 * 1024)))
CHUNK_SIZE = 64 * 1024

Row = Dict[str, str]


class RowError(Exception):
    """A single row could not be imported."""


# ---------- Parsing ----------

def clean_value(raw: str) -> str:
    value = raw.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in QUOTES:
        value = value[1:-1]
    return value


def canonical_key(raw: str) -> str:
    return re.sub(r"\s+", "_", clean_value(raw).strip().lower())


def split_line(line: str) -> List[str]:
    fields = next(csv.reader([line], delimiter=DELIMITER, quoting=csv.QUOTE_NONE), [])
    return [clean_value(f) for f in fields]


def parse_rows(raw_text: str) -> Tuple[List[str], List[Tuple[int, Row]]]:
    """
    Return the canonical header keys and `(row_number, mapping)` per data row.

    Blank lines are dropped before numbering; the header is row 1.
    """
    lines = [line for line in raw_text.splitlines() if line.strip()]
    if len(lines) < 2:
        raise EmptyFile()

    keys = [canonical_key(h) for h in split_line(lines[0])]
    rows: List[Tuple[int, Row]] = []
    for offset, line in enumerate(lines[1:], start=2):
        values = split_line(line)
        row = {key: (values[i] if i < len(values) else "") for i, key in enumerate(keys)}
        rows.append((offset, row))
    return keys, rows


# ---------- Field coercion ----------

def coerce_trend_status(value: Optional[str]) -> str:
    """Return a valid trend status, or the default for anything unrecognised."""
    candidate = (value or "").strip().lower()
    return candidate if candidate in TREND_STATUSES else DEFAULT_TREND_STATUS


def parse_price(value: Optional[str]) -> Decimal:
    """Non-negative 2-dp price; blank, malformed or negative input becomes 0."""
    try:
        price = Decimal((value or "").strip())
    except DecimalError:
        return Decimal("0.00")
    if not price.is_finite() or price < 0:
        return Decimal("0.00")
    try:
        return price.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    except DecimalError:
        # too many digits to hold at 2 dp
        return Decimal("0.00")


def _first(row: Row, *keys: str, default: str = "") -> str:
    for key in keys:
        value = row.get(key, "").strip()
        if value:
            return value
    return default


def build_competitor(row: Row) -> CompetitorCreate:
    return CompetitorCreate(
        name=row.get("name", ""),
        category=_first(row, "industry", "category", default=DEFAULT_CATEGORY),
        price_range_min=_first(row, "price_range_min", default="0.00"),
        price_range_max=_first(row, "price_range_max", default="100.00"),
        market_share=_first(row, "market_share", default="0.00"),
        trend_status=coerce_trend_status(row.get("trend_status")),
    )


def _describe(exc: Exception) -> str:
    if isinstance(exc, SchemaError):
        parts = []
        for err in exc.errors():
            loc = ".".join(str(p) for p in err.get("loc", ())) or "row"
            parts.append(f"{loc}: {err.get('msg')}")
        return "; ".join(parts)
    return str(exc) or exc.__class__.__name__


# ---------- Row handlers ----------

def _import_competitor(db: Session, row: Row, acting_user_id: Optional[int]) -> None:
    crud.create_competitor(db, build_competitor(row), created_by=acting_user_id)


def _import_pricing(db: Session, row: Row, acting_user_id: Optional[int]) -> None:
    name = row.get("competitor", "").strip()
    competitor = crud.find_competitor_by_name(db, name) if name else None
    if competitor is None:
        raise RowError(f'Competitor "{name}" not found')
    crud.create_pricing_data(
        db, PricingDataCreate(competitor_id=competitor.id, price=parse_price(row.get("price")))
    )


_HANDLERS = {
    "competitors": _import_competitor,
    "pricing": _import_pricing,
}


def _handler_for(record_type: str):
    if record_type not in _HANDLERS:
        raise ValidationError(
            f"Unsupported upload type: {record_type!r}",
            errors=[{"loc": ["body", "type"], "msg": f"must be one of {', '.join(RECORD_TYPES)}"}],
        )
    return _HANDLERS[record_type]


def ingest(db: Session, raw_text: str, record_type: str, acting_user_id: Optional[int]) -> IngestResult:
    handler = _handler_for(record_type)

    _, rows = parse_rows(raw_text)
    processed = 0
    errors: List[str] = []

    for row_number, row in rows:
        try:
            handler(db, row, acting_user_id)
        except OperationalError as exc:
            db.rollback()
            raise StorageUnavailable("Storage unavailable during bulk upload") from exc
        except Exception as exc:
            db.rollback()
            errors.append(f"Row {row_number}: {_describe(exc)}")
            continue
        processed += 1

    logger.info(
        "Bulk upload type=%s rows=%d processed=%d errors=%d",
        record_type, len(rows), processed, len(errors),
    )
    return IngestResult(
        records_processed=processed,
        total_rows=len(rows),
        errors=errors[:MAX_ERRORS],
        success=True,
    )


# ---------- Upload staging ----------

@contextmanager
def staged_upload(stream: BinaryIO) -> Iterator[str]:
    """
    Copy an upload stream to a temporary file and yield its path.

    The size cap is enforced while copying, so an oversized upload is rejected
    before any parsing. The file is removed on exit, whatever the outcome.
    """
    os.makedirs(UPLOAD_DIR, exist_ok=True)
    fd, path = tempfile.mkstemp(prefix="bulk-upload-", suffix=".csv", dir=UPLOAD_DIR)
    try:
        written = 0
        with os.fdopen(fd, "wb") as out:
            while True:
                chunk = stream.read(CHUNK_SIZE)
                if not chunk:
                    break
                written += len(chunk)
                if written > MAX_UPLOAD_BYTES:
                    raise UploadTooLarge(f"Uploaded file exceeds the limit of {MAX_UPLOAD_BYTES} bytes")
                out.write(chunk)
        yield path
    finally:
        if os.path.exists(path):
            os.remove(path)


def read_staged(path: str) -> str:
    try:
        with open(path, "rb") as f:
            return f.read().decode("utf-8-sig")
    except (OSError, UnicodeDecodeError) as exc:
        raise ValidationError("Unable to read uploaded file") from exc


def ingest_upload(
    db: Session, stream: BinaryIO, record_type: str, acting_user_id: Optional[int]
) -> IngestResult:
    _handler_for(record_type)
    with staged_upload(stream) as path:
        return ingest(db, read_staged(path), record_type, acting_user_id)
