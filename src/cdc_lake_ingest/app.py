from __future__ import annotations

import logging

from cdc_lake_ingest.athena import (
    DynamoDbExecutionLedger,
    ExecutionLedger,
    QueryLifecycleController,
    ResultConsumer,
    create_athena_client,
    create_dynamodb_client,
)
from cdc_lake_ingest.settings import QuerySettings

LOGGER = logging.getLogger(__name__)


def configure_logging(level_name: str = "INFO") -> None:
    level = getattr(logging, level_name.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    # basicConfig is a no-op when the runtime already attached a root handler.
    logging.getLogger().setLevel(level)


def build_query_controller(
    settings: QuerySettings,
    *,
    on_succeeded: ResultConsumer | None = None,
) -> QueryLifecycleController:
    ledger: ExecutionLedger | None = None
    if settings.execution_ledger_table:
        ledger = DynamoDbExecutionLedger(
            client=create_dynamodb_client(region_name=settings.aws_region),
            table_name=settings.execution_ledger_table,
        )

    LOGGER.info(
        "query_controller_ready",
        extra={
            "database": settings.glue_database_name,
            "workgroup": settings.athena_work_group_name,
            "shared_ledger": ledger is not None,
        },
    )
    return QueryLifecycleController(
        client=create_athena_client(region_name=settings.aws_region),
        database=settings.glue_database_name,
        workgroup=settings.athena_work_group_name,
        ledger=ledger,
        on_succeeded=on_succeeded,
    )
