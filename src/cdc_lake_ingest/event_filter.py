from __future__ import annotations

import json
from collections.abc import Iterable, Iterator, Mapping
from typing import Any

from cdc_lake_ingest.attribute_value import AttributeTag
from cdc_lake_ingest.models import ENTITY_TYPE_ATTRIBUTE, FilterCriteria


def should_forward(event: Mapping[str, Any], criteria: FilterCriteria | None) -> bool:
    """Decide whether a raw stream event is forwarded to the delivery stream.

    Only the ``ENTITY_TYPE`` string tag is inspected; the image is not decoded.
    """
    if criteria is None:
        return True

    entity_type = _shallow_entity_type(event)
    if entity_type is None:
        return False
    return entity_type in criteria.entity_types


def filter_events(
    events: Iterable[Mapping[str, Any]],
    criteria: FilterCriteria | None,
) -> Iterator[Mapping[str, Any]]:
    return (event for event in events if should_forward(event, criteria))


def build_filter_pattern(criteria: FilterCriteria | None) -> str | None:
    """Render the criteria as an EventBridge Pipes filter pattern."""
    if criteria is None:
        return None

    pattern = {
        "dynamodb": {
            "NewImage": {
                ENTITY_TYPE_ATTRIBUTE: {
                    AttributeTag.STRING.value: sorted(criteria.entity_types),
                },
            },
        },
    }
    return json.dumps(pattern)


def _shallow_entity_type(event: Mapping[str, Any]) -> str | None:
    images = event.get("dynamodb")
    if not isinstance(images, Mapping):
        return None

    image = images.get("NewImage")
    if image is None:
        image = images.get("OldImage")
    if not isinstance(image, Mapping):
        return None

    attribute = image.get(ENTITY_TYPE_ATTRIBUTE)
    if not isinstance(attribute, Mapping):
        return None

    value = attribute.get(AttributeTag.STRING.value)
    return value if isinstance(value, str) else None
