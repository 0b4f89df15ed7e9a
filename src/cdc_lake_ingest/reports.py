from __future__ import annotations

import logging
from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict

from cdc_lake_ingest.athena import QueryLifecycleController
from cdc_lake_ingest.settings import QuerySettings

LOGGER = logging.getLogger(__name__)

_DAILY_EARNINGS_SQL = """
WITH "order" AS (
  SELECT DISTINCT *
  FROM "{order_table}"
),
"order_item" AS (
  SELECT DISTINCT *
  FROM "{order_item_table}"
)
SELECT year, month, day, SUM(oi.price * oi.quantity) AS total
  FROM "order" AS o
      INNER JOIN "order_item" AS oi
              ON oi.order_id = o.order_id
WHERE year = ?
  AND month = ?
  AND day = ?
GROUP BY year, month, day
"""

_TOP_ORDER_SQL = """
WITH "order" AS (
  SELECT DISTINCT *
  FROM "{order_table}"
),
"order_item" AS (
  SELECT DISTINCT *
  FROM "{order_item_table}"
),
"customer" AS (
  SELECT DISTINCT *
  FROM "{customer_table}"
)
SELECT o.order_id,
       c.customer_id,
       c.name AS customer_name,
       SUM(oi.price * oi.quantity) AS total,
       ARRAY_AGG(
         CAST(
           CAST(
             ROW(oi.item_id, oi.item_name, oi.quantity, oi.price)
               AS ROW(item_id VARCHAR, item_name VARCHAR, quantity INTEGER, price DOUBLE)
         ) AS JSON)
       ) AS items
  FROM "order" AS o
      INNER JOIN "order_item" AS oi
              ON oi.order_id = o.order_id
      INNER JOIN "customer" AS c
              ON c.customer_id = o.customer_id
WHERE year = ?
  AND month = ?
  AND day = ?
GROUP BY o.order_id, c.customer_id, c.name
ORDER BY total DESC
LIMIT 1
"""

# Items removed from the source table are kept in the lake with deleted = true.
_INVENTORY_COUNT_SQL = """
SELECT COUNT(DISTINCT i.item_id) AS total_items
  FROM "{item_table}" AS i
       LEFT OUTER JOIN (SELECT DISTINCT item_id
                          FROM "{item_table}"
                         WHERE deleted = true) AS i_deleted
                ON i_deleted.item_id = i.item_id
WHERE i_deleted.item_id IS NULL
"""


class ReportQuery(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    template: str
    parameters: tuple[str, ...] = ()


def report_date_parameters(now: datetime) -> tuple[str, str, str]:
    return str(now.year), str(now.month), str(now.day)


def daily_report_queries(settings: QuerySettings, *, now: datetime) -> list[ReportQuery]:
    date_parameters = report_date_parameters(now)
    tables = {
        "order_table": settings.glue_table_order,
        "order_item_table": settings.glue_table_order_item,
        "customer_table": settings.glue_table_customer,
        "item_table": settings.glue_item_table,
    }

    return [
        ReportQuery(
            name="daily_earnings",
            template=_DAILY_EARNINGS_SQL.format(**tables),
            parameters=date_parameters,
        ),
        ReportQuery(
            name="top_order_of_day",
            template=_TOP_ORDER_SQL.format(**tables),
            parameters=date_parameters,
        ),
        ReportQuery(
            name="inventory_count",
            template=_INVENTORY_COUNT_SQL.format(**tables),
        ),
    ]


def run_daily_reports(
    controller: QueryLifecycleController,
    settings: QuerySettings,
    *,
    now: datetime | None = None,
) -> dict[str, str]:
    """Submit every daily report and return ``{report name: execution id}``."""
    report_time = now or datetime.now(timezone.utc)
    execution_ids: dict[str, str] = {}

    for query in daily_report_queries(settings, now=report_time):
        execution_ids[query.name] = controller.trigger_query(query.template, query.parameters)
        LOGGER.info(
            "report_submitted",
            extra={"report": query.name, "execution_id": execution_ids[query.name]},
        )

    return execution_ids
