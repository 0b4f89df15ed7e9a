from __future__ import annotations

import json
from typing import Any

import pytest

from cdc_lake_ingest import event_filter
from cdc_lake_ingest.event_filter import build_filter_pattern, filter_events, should_forward
from cdc_lake_ingest.models import FilterCriteria

_CRITERIA = FilterCriteria(entity_types=frozenset({"CUSTOMER", "ORDER"}))


def _event(entity_type: str | None, *, image: str = "NewImage") -> dict[str, Any]:
    attributes: dict[str, Any] = {"PK": {"S": "CUSTOMER#1"}}
    if entity_type is not None:
        attributes["ENTITY_TYPE"] = {"S": entity_type}
    return {"eventName": "INSERT", "dynamodb": {image: attributes}}


def test_forwards_everything_without_criteria() -> None:
    assert should_forward(_event(None), None) is True
    assert should_forward({"dynamodb": {}}, None) is True


@pytest.mark.parametrize(
    ("entity_type", "expected"),
    [("CUSTOMER", True), ("ORDER", True), ("ITEM", False), ("order", False), (None, False)],
)
def test_allow_list_is_exact_and_case_sensitive(entity_type: str | None, expected: bool) -> None:
    assert should_forward(_event(entity_type), _CRITERIA) is expected


def test_uses_old_image_when_new_image_is_missing() -> None:
    assert should_forward(_event("ORDER", image="OldImage"), _CRITERIA) is True


def test_new_image_takes_precedence_over_old_image() -> None:
    event = {
        "dynamodb": {
            "NewImage": {"ENTITY_TYPE": {"S": "ITEM"}},
            "OldImage": {"ENTITY_TYPE": {"S": "ORDER"}},
        }
    }

    assert should_forward(event, _CRITERIA) is False


def test_non_string_entity_type_is_dropped() -> None:
    event = {"dynamodb": {"NewImage": {"ENTITY_TYPE": {"N": "1"}}}}

    assert should_forward(event, _CRITERIA) is False


def test_does_not_decode_the_image(monkeypatch: pytest.MonkeyPatch) -> None:
    def fail(*_: object) -> None:
        raise AssertionError("full attribute decoding must not run in the filter")

    monkeypatch.setattr("cdc_lake_ingest.attribute_value.decode_attribute_map", fail)
    monkeypatch.setattr("cdc_lake_ingest.attribute_value.decode_attribute_value", fail)
    event = _event("ORDER")
    event["dynamodb"]["NewImage"]["broken"] = {"XX": "unknown tag"}

    assert should_forward(event, _CRITERIA) is True
    assert not hasattr(event_filter, "decode_attribute_map")


def test_filter_events_keeps_input_order() -> None:
    events = [_event("ORDER"), _event("ITEM"), _event("CUSTOMER")]

    forwarded = list(filter_events(events, _CRITERIA))

    assert forwarded == [events[0], events[2]]


def test_filter_pattern_matches_pipe_format() -> None:
    pattern = build_filter_pattern(_CRITERIA)

    assert pattern is not None
    assert json.loads(pattern) == {
        "dynamodb": {"NewImage": {"ENTITY_TYPE": {"S": ["CUSTOMER", "ORDER"]}}}
    }
    assert build_filter_pattern(None) is None
