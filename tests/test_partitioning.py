from __future__ import annotations

from datetime import datetime, timezone

import pytest
from stream_events import encode_event

from cdc_lake_ingest.models import PartitionPolicy
from cdc_lake_ingest.partitioning import (
    PartitionConfigurationError,
    group_by_partition,
    metadata_extraction_query,
    prefix_template,
    route_path,
)
from cdc_lake_ingest.transformer import transform_batch

_NOW = datetime(2025, 11, 2, 23, 55, tzinfo=timezone.utc)


def test_entity_type_and_record_date() -> None:
    policy = PartitionPolicy(use_entity_type_partitioning=True, use_record_date_for_partition=True)
    record = {"entity_type": "ORDER", "year": 2024, "month": 1, "day": 5}

    assert route_path(record, policy) == "ORDER/year=2024/month=01/day=05/"


def test_folder_prefix_with_wall_clock_date() -> None:
    policy = PartitionPolicy(folder_prefix="ITEM")

    assert route_path({"item_id": "i-1"}, policy, now=_NOW) == "ITEM/year=2025/month=11/day=02/"


def test_folder_prefix_comes_before_entity_type() -> None:
    policy = PartitionPolicy(
        folder_prefix="lake",
        use_entity_type_partitioning=True,
        use_record_date_for_partition=True,
    )
    record = {"entity_type": "CUSTOMER", "year": 2024, "month": 12, "day": 31}

    assert route_path(record, policy) == "lake/CUSTOMER/year=2024/month=12/day=31/"


def test_wall_clock_ignores_record_date() -> None:
    policy = PartitionPolicy(use_entity_type_partitioning=True)
    record = {"entity_type": "ORDER", "year": 2020, "month": 1, "day": 1}

    assert route_path(record, policy, now=_NOW) == "ORDER/year=2025/month=11/day=02/"


def test_missing_entity_type_is_a_configuration_error() -> None:
    policy = PartitionPolicy(use_entity_type_partitioning=True)

    with pytest.raises(PartitionConfigurationError):
        route_path({"year": 2024, "month": 1, "day": 5}, policy, now=_NOW)


def test_empty_entity_type_is_a_configuration_error() -> None:
    policy = PartitionPolicy(use_entity_type_partitioning=True)

    with pytest.raises(PartitionConfigurationError):
        route_path({"entity_type": "", "year": 2024, "month": 1, "day": 5}, policy, now=_NOW)


def test_missing_record_date_is_a_configuration_error() -> None:
    policy = PartitionPolicy(use_record_date_for_partition=True)

    with pytest.raises(PartitionConfigurationError, match="month, day"):
        route_path({"year": 2024}, policy)


def test_prefix_template_for_single_table_stream() -> None:
    policy = PartitionPolicy(use_entity_type_partitioning=True, use_record_date_for_partition=True)

    assert prefix_template(policy) == (
        "!{partitionKeyFromQuery:entity_type}/"
        "year=!{partitionKeyFromQuery:year}/"
        "month=!{partitionKeyFromQuery:month}/"
        "day=!{partitionKeyFromQuery:day}/"
    )
    assert metadata_extraction_query(policy) == (
        "{entity_type: .entity_type, year: .year, month: .month, day: .day}"
    )


def test_prefix_template_for_static_folder() -> None:
    policy = PartitionPolicy(folder_prefix="ITEM")

    assert prefix_template(policy) == (
        "ITEM/year=!{timestamp:yyyy}/month=!{timestamp:MM}/day=!{timestamp:dd}/"
    )
    assert metadata_extraction_query(policy) is None


def test_group_by_partition_skips_failed_records() -> None:
    policy = PartitionPolicy(use_entity_type_partitioning=True, use_record_date_for_partition=True)
    outcome = transform_batch(
        [
            {
                "recordId": "1",
                "data": encode_event(
                    new_image={"ENTITY_TYPE": {"S": "ORDER"}, "date": {"S": "2024-01-05"}}
                ),
            },
            {"recordId": "2", "data": "not-base64!"},
            {
                "recordId": "3",
                "data": encode_event(
                    new_image={"ENTITY_TYPE": {"S": "CUSTOMER"}, "date": {"S": "2024-01-06"}}
                ),
            },
            {
                "recordId": "4",
                "data": encode_event(
                    new_image={"ENTITY_TYPE": {"S": "ORDER"}, "date": {"S": "2024-01-05T10:00:00Z"}}
                ),
            },
        ]
    )

    grouped = group_by_partition(outcome.records, policy)

    assert sorted(grouped) == [
        "CUSTOMER/year=2024/month=01/day=06/",
        "ORDER/year=2024/month=01/day=05/",
    ]
    assert len(grouped["ORDER/year=2024/month=01/day=05/"]) == 2
