"""
Filter & Normalize — Raw Store Rows to Telemetry Documents.

Raw rows look like ``{"_id", "devID", "timestamp", "data": {<code>: value}}``.
Numeric fields arrive either as numbers or numeric-looking strings; anything
that does not convert to a finite number is treated as absent (``None``), never
as zero. Rows that are not mappings, or whose ``data`` is not a mapping, are
discarded.
"""

import math
from collections.abc import Iterable, Mapping
from datetime import datetime, timezone as dt_timezone, tzinfo
from typing import Any, Optional

import structlog

from moldkpi.config import FieldCodes
from moldkpi.models.telemetry import TelemetryDocument

logger = structlog.get_logger()

# Top-level fields tried, in order, when the primary timestamp is unusable
TIMESTAMP_FALLBACK_FIELDS = ("createdAt", "updatedAt", "date", "time", "_ts", "ts")


def coerce_number(value: Any) -> Optional[float]:
    """
    Convert a raw field value to a finite float.

    Returns:
        The number, or None for missing, blank, boolean, non-numeric,
        non-finite or float-overflowing values
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            number = float(value)
        except OverflowError:
            return None
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def is_valid_count(value: Optional[float]) -> bool:
    """A present, non-negative count; negatives are data-quality skips."""
    return value is not None and value >= 0


def coerce_text(value: Any) -> Optional[str]:
    """Stringify a scalar field value, None when missing or a container."""
    if value is None or isinstance(value, (Mapping, list, tuple, set)):
        return None
    return str(value)


def parse_timestamp(value: Any, timezone: tzinfo) -> Optional[datetime]:
    """
    Parse a raw timestamp into an aware datetime in plant time.

    Accepts ISO-8601 strings (with or without offset), datetimes and epoch
    milliseconds. Naive values are taken as plant time.

    Returns:
        Aware datetime, or None when the value cannot be parsed
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)):
        if not math.isfinite(value):
            return None
        try:
            parsed = datetime.fromtimestamp(value / 1000.0, tz=dt_timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone)
    try:
        return parsed.astimezone(timezone)
    except OverflowError:
        # Shifting into plant time leaves the representable date range
        return None


def normalize_document(
    raw: Any,
    fields: FieldCodes,
    timezone: tzinfo,
) -> Optional[TelemetryDocument]:
    """
    Normalize one raw store row.

    Args:
        raw: Row as returned by the store
        fields: Field code mapping
        timezone: Plant timezone

    Returns:
        TelemetryDocument, or None when the row is malformed
    """
    if not isinstance(raw, Mapping):
        return None
    data = raw.get("data")
    if data is None:
        data = {}
    if not isinstance(data, Mapping):
        return None

    alternate = None
    for field in TIMESTAMP_FALLBACK_FIELDS:
        alternate = parse_timestamp(raw.get(field), timezone)
        if alternate is not None:
            break

    return TelemetryDocument(
        document_id=coerce_text(raw.get("_id")),
        device_id=coerce_text(raw.get("devID")) or "",
        timestamp=parse_timestamp(raw.get("timestamp"), timezone),
        alternate_timestamp=alternate,
        units_produced=coerce_number(data.get(fields.units_produced)),
        rejection_count=coerce_number(data.get(fields.rejection_count)),
        rejection_reason=coerce_text(data.get(fields.rejection_reason)),
        downtime_seconds=coerce_number(data.get(fields.downtime_seconds)),
        status_indicator=coerce_text(data.get(fields.status_indicator)),
        mold_identifier=coerce_text(data.get(fields.mold_identifier)),
        target_units=coerce_number(data.get(fields.target_units)),
    )


def normalize_documents(
    rows: Iterable[Any],
    fields: FieldCodes,
    timezone: tzinfo,
) -> list[TelemetryDocument]:
    """Normalize a batch of rows, dropping malformed ones."""
    documents = []
    discarded = 0
    for raw in rows:
        document = normalize_document(raw, fields, timezone)
        if document is None:
            discarded += 1
            continue
        documents.append(document)

    if discarded:
        logger.debug("malformed_rows_discarded", discarded=discarded, kept=len(documents))
    return documents


def matches_mold(document: TelemetryDocument, mold: str) -> bool:
    """Exact, case-sensitive match of the trimmed mold identifiers."""
    if not document.mold_identifier:
        return False
    doc_mold = document.mold_identifier.strip()
    return bool(doc_mold) and doc_mold == str(mold).strip()


def filter_by_mold(documents: Iterable[TelemetryDocument], mold: str) -> list[TelemetryDocument]:
    """Documents produced on the selected mold."""
    return [document for document in documents if matches_mold(document, mold)]
