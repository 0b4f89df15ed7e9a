"""Lambda entry points.

Settings are read from the function environment here and nowhere else; the
components below receive them explicitly.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Any

from cdc_lake_ingest.app import build_query_controller, configure_logging
from cdc_lake_ingest.athena import QueryLifecycleController
from cdc_lake_ingest.models import QueryStateChange
from cdc_lake_ingest.reports import run_daily_reports
from cdc_lake_ingest.settings import QuerySettings, TransformSettings
from cdc_lake_ingest.transformer import transform_batch

LOGGER = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def _transform_settings() -> TransformSettings:
    settings = TransformSettings()
    configure_logging(settings.log_level)
    return settings


@lru_cache(maxsize=1)
def _query_settings() -> QuerySettings:
    settings = QuerySettings()
    configure_logging(settings.log_level)
    return settings


@lru_cache(maxsize=1)
def _query_controller() -> QueryLifecycleController:
    # Kept for the lifetime of the execution environment so repeated
    # notifications delivered to a warm function hit the same ledger.
    return build_query_controller(_query_settings())


def firehose_transformation_handler(event: dict[str, Any], context: Any = None) -> dict[str, Any]:
    settings = _transform_settings()
    outcome = transform_batch(
        event.get("records", []),
        max_workers=settings.transform_max_workers,
    )
    return outcome.to_response()


def athena_query_start_handler(event: dict[str, Any] | None = None, context: Any = None) -> dict[str, Any]:
    execution_ids = run_daily_reports(_query_controller(), _query_settings())
    return {"executionIds": execution_ids}


def athena_query_finished_handler(event: dict[str, Any], context: Any = None) -> dict[str, Any]:
    change = QueryStateChange.from_eventbridge(event)
    handled = _query_controller().on_completion_notification(change)
    LOGGER.info(
        "athena_notification_processed",
        extra={"execution_id": change.execution_id, "handled": handled},
    )
    return {"executionId": change.execution_id, "handled": handled}
