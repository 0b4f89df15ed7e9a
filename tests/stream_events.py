from __future__ import annotations

import base64
import json
from typing import Any


def encode_event(
    *,
    new_image: dict[str, Any] | None = None,
    old_image: dict[str, Any] | None = None,
    event_name: str = "INSERT",
) -> str:
    images: dict[str, Any] = {}
    if new_image is not None:
        images["NewImage"] = new_image
    if old_image is not None:
        images["OldImage"] = old_image
    envelope = {"eventName": event_name, "dynamodb": images}
    return base64.b64encode(json.dumps(envelope).encode("utf-8")).decode("ascii")


def decode_payload(data: str) -> dict[str, Any]:
    return json.loads(base64.b64decode(data))
