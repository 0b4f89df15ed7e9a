from __future__ import annotations

import re
from collections.abc import Mapping
from enum import Enum
from typing import Any

_NUMBER_PATTERN = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?$")
_INTEGER_PATTERN = re.compile(r"^[+-]?\d+$")


class AttributeDecodeError(ValueError):
    """Raised when a DynamoDB attribute value does not match the typed encoding."""


class AttributeTag(str, Enum):
    STRING = "S"
    NUMBER = "N"
    BOOLEAN = "BOOL"
    NULL = "NULL"
    LIST = "L"
    MAP = "M"


def decode_attribute_map(image: Mapping[str, Any]) -> dict[str, Any]:
    """Decode a DynamoDB image (``{name: AttributeValue}``) into plain Python values."""
    if not isinstance(image, Mapping):
        raise AttributeDecodeError(f"Attribute map must be an object, got {type(image).__name__}")

    return {name: decode_attribute_value(value) for name, value in image.items()}


def decode_attribute_value(value: Any) -> Any:
    tag, payload = _split_tagged(value)

    if tag is AttributeTag.STRING:
        if not isinstance(payload, str):
            raise AttributeDecodeError("S attribute must carry a string")
        return payload

    if tag is AttributeTag.NUMBER:
        return _decode_number(payload)

    if tag is AttributeTag.BOOLEAN:
        if not isinstance(payload, bool):
            raise AttributeDecodeError("BOOL attribute must carry a boolean")
        return payload

    if tag is AttributeTag.NULL:
        if payload is not True:
            raise AttributeDecodeError("NULL attribute must carry true")
        return None

    if tag is AttributeTag.LIST:
        if not isinstance(payload, list):
            raise AttributeDecodeError("L attribute must carry a list")
        return [decode_attribute_value(item) for item in payload]

    return decode_attribute_map(payload)


def _split_tagged(value: Any) -> tuple[AttributeTag, Any]:
    if not isinstance(value, Mapping):
        raise AttributeDecodeError(
            f"Attribute value must be a single-tag object, got {type(value).__name__}"
        )
    if len(value) != 1:
        raise AttributeDecodeError(
            f"Attribute value must have exactly one type tag, got {sorted(value)}"
        )

    (raw_tag, payload), = value.items()
    try:
        tag = AttributeTag(raw_tag)
    except ValueError:
        raise AttributeDecodeError(f"Unsupported attribute type tag: {raw_tag!r}") from None
    return tag, payload


def _decode_number(payload: Any) -> int | float:
    # DynamoDB ships numbers as strings to keep arbitrary precision on the wire.
    if not isinstance(payload, str) or not _NUMBER_PATTERN.fullmatch(payload.strip()):
        raise AttributeDecodeError(f"N attribute must carry a numeric string, got {payload!r}")

    normalized = payload.strip()
    if _INTEGER_PATTERN.fullmatch(normalized):
        return int(normalized)
    return float(normalized)
