from __future__ import annotations

import base64
import json
from collections.abc import Iterable, Mapping
from datetime import datetime, timezone
from typing import Any

from cdc_lake_ingest.models import PartitionPolicy, RecordOutcome

ERROR_OUTPUT_PREFIX = "errors/!{firehose:error-output-type}/!{timestamp:yyyy/MM/dd}/"
_PARTITION_FIELDS = ("entity_type", "year", "month", "day")


class PartitionConfigurationError(RuntimeError):
    """Raised when a record cannot satisfy the partition policy it is routed with."""


def route_path(
    record: Mapping[str, Any],
    policy: PartitionPolicy,
    *,
    now: datetime | None = None,
) -> str:
    """Return the slash-terminated storage prefix for a normalized record."""
    segments: list[str] = []

    if policy.folder_prefix:
        segments.append(policy.folder_prefix)

    if policy.use_entity_type_partitioning:
        entity_type = record.get("entity_type")
        if entity_type is None or entity_type == "":
            raise PartitionConfigurationError(
                "Entity type partitioning is enabled but the record has no entity_type"
            )
        segments.append(str(entity_type))

    if policy.use_record_date_for_partition:
        missing = [name for name in ("year", "month", "day") if record.get(name) is None]
        if missing:
            raise PartitionConfigurationError(
                f"Record date partitioning is enabled but the record lacks {', '.join(missing)}"
            )
        year, month, day = record["year"], record["month"], record["day"]
    else:
        current = now or datetime.now(timezone.utc)
        year, month, day = current.year, current.month, current.day

    segments.append(f"year={year}/month={int(month):02d}/day={int(day):02d}")
    return "/".join(segments) + "/"


def prefix_template(policy: PartitionPolicy) -> str:
    """Render the S3 prefix expression the delivery stream evaluates per record."""
    prefix = ""

    if policy.use_entity_type_partitioning:
        prefix = "!{partitionKeyFromQuery:entity_type}/"

    if policy.use_record_date_for_partition:
        prefix += (
            "year=!{partitionKeyFromQuery:year}/"
            "month=!{partitionKeyFromQuery:month}/"
            "day=!{partitionKeyFromQuery:day}/"
        )
    else:
        prefix += "year=!{timestamp:yyyy}/month=!{timestamp:MM}/day=!{timestamp:dd}/"

    if policy.folder_prefix:
        prefix = f"{policy.folder_prefix}/{prefix}"

    return prefix


def metadata_extraction_query(policy: PartitionPolicy) -> str | None:
    if not policy.uses_dynamic_partitioning:
        return None
    return "{" + ", ".join(f"{name}: .{name}" for name in _PARTITION_FIELDS) + "}"


def group_by_partition(
    outcomes: Iterable[RecordOutcome],
    policy: PartitionPolicy,
    *,
    now: datetime | None = None,
) -> dict[str, list[dict[str, Any]]]:
    """Group successfully transformed records by the prefix they are written under."""
    current = now or datetime.now(timezone.utc)
    grouped: dict[str, list[dict[str, Any]]] = {}

    for outcome in outcomes:
        if not outcome.ok:
            continue
        record = json.loads(base64.b64decode(outcome.data))
        path = route_path(record, policy, now=current)
        grouped.setdefault(path, []).append(record)

    return grouped
