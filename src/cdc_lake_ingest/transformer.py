from __future__ import annotations

import base64
import binascii
import json
import logging
from collections.abc import Iterable, Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor
from typing import Any

from pydantic import ValidationError

from cdc_lake_ingest.attribute_value import decode_attribute_map
from cdc_lake_ingest.models import (
    ENTITY_TYPE_ATTRIBUTE,
    BatchOutcome,
    ChangeEvent,
    NormalizedRecord,
    RawRecord,
    RecordOutcome,
)

LOGGER = logging.getLogger(__name__)

_KEY_SCHEMA_FIELDS = frozenset({"PK", "SK"})
_INDEX_FIELD_PREFIX = "GSI"


class EnvelopeDecodeError(ValueError):
    """Raised when a record payload is not a base64 encoded change event."""


def to_snake_case(name: str) -> str:
    chars: list[str] = []
    for position, char in enumerate(name):
        if char.isupper() and position > 0:
            chars.append("_")
        chars.append(char)
    return "".join(chars).lower()


def is_key_schema_field(name: str) -> bool:
    return name in _KEY_SCHEMA_FIELDS or name.startswith(_INDEX_FIELD_PREFIX)


def decode_envelope(data: str) -> ChangeEvent:
    try:
        raw = base64.b64decode(data, validate=True)
        return ChangeEvent.model_validate_json(raw)
    except (binascii.Error, ValueError, ValidationError) as exc:
        raise EnvelopeDecodeError(f"Invalid change event payload: {exc}") from exc


def normalize_change_event(event: ChangeEvent) -> NormalizedRecord:
    item = decode_attribute_map(event.source_image)

    if event.is_removal:
        item["deleted"] = True

    # Single table design: the entity type selects the destination folder.
    if ENTITY_TYPE_ATTRIBUTE in item:
        item["entity_type"] = item.pop(ENTITY_TYPE_ATTRIBUTE)

    date = item.get("date")
    if isinstance(date, str) and date:
        item["year"] = _date_part(date[0:4])
        item["month"] = _date_part(date[5:7])
        item["day"] = _date_part(date[8:10])

    return {
        to_snake_case(name): value
        for name, value in item.items()
        if not is_key_schema_field(name)
    }


def _date_part(segment: str) -> int | None:
    # Slices are taken by position only; a slice that is not digits yields null.
    return int(segment) if segment.isascii() and segment.isdigit() else None


def serialize_record(record: NormalizedRecord) -> str:
    return json.dumps(record, separators=(",", ":"), allow_nan=False)


def transform_record(record: RawRecord | Mapping[str, Any]) -> RecordOutcome:
    record_id, data = _record_fields(record)
    try:
        raw = record if isinstance(record, RawRecord) else RawRecord.model_validate(record)
        event = decode_envelope(raw.data)
        serialized = serialize_record(normalize_change_event(event))
    except Exception:
        LOGGER.warning(
            "record_transform_failed",
            exc_info=True,
            extra={"record_id": record_id},
        )
        return RecordOutcome(record_id=record_id, result="ProcessingFailed", data=data)

    LOGGER.info("record_transformed %s", serialized, extra={"record_id": record_id})
    encoded = base64.b64encode(serialized.encode("utf-8")).decode("ascii")
    return RecordOutcome(record_id=record_id, result="Ok", data=encoded)


def _record_fields(record: RawRecord | Mapping[str, Any]) -> tuple[str, str]:
    if isinstance(record, RawRecord):
        return record.record_id, record.data

    record_id = record.get("recordId") if isinstance(record, Mapping) else None
    data = record.get("data") if isinstance(record, Mapping) else None
    return (
        "" if record_id is None else str(record_id),
        data if isinstance(data, str) else "",
    )


def transform_batch(
    records: Iterable[RawRecord | Mapping[str, Any]],
    *,
    max_workers: int | None = None,
) -> BatchOutcome:
    """Transform one delivery stream batch; every input record yields exactly one outcome."""
    raw_records: Sequence[RawRecord | Mapping[str, Any]] = list(records)

    if max_workers is None or max_workers <= 1 or len(raw_records) <= 1:
        outcomes = [transform_record(record) for record in raw_records]
    else:
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            # map() yields results in submission order.
            outcomes = list(executor.map(transform_record, raw_records))

    batch = BatchOutcome(records=tuple(outcomes))
    LOGGER.info(
        "batch_transformed",
        extra={"ok": batch.ok_count, "failed": batch.failed_count},
    )
    return batch
