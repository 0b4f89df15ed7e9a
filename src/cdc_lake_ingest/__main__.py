from __future__ import annotations

import argparse
import json
import sys
from collections.abc import Sequence

from cdc_lake_ingest.app import build_query_controller, configure_logging
from cdc_lake_ingest.event_filter import build_filter_pattern
from cdc_lake_ingest.partitioning import (
    ERROR_OUTPUT_PREFIX,
    metadata_extraction_query,
    prefix_template,
)
from cdc_lake_ingest.reports import run_daily_reports
from cdc_lake_ingest.settings import QuerySettings, TransformSettings


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cdc-lake-ingest",
        description="DynamoDB change stream to analytics lake tooling",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser(
        "run-reports",
        help="Submit the daily report queries to Athena",
    )
    subparsers.add_parser(
        "delivery-config",
        help="Print the pipe filter pattern and delivery stream prefixes for the current settings",
    )
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    if args.command == "run-reports":
        settings = QuerySettings()
        configure_logging(settings.log_level)
        execution_ids = run_daily_reports(build_query_controller(settings), settings)
        for name, execution_id in execution_ids.items():
            print(f"{name}\t{execution_id}")
        return 0

    transform_settings = TransformSettings()
    policy = transform_settings.partition_policy
    print(
        json.dumps(
            {
                "filterPattern": build_filter_pattern(transform_settings.filter_criteria),
                "prefix": prefix_template(policy),
                "errorOutputPrefix": ERROR_OUTPUT_PREFIX,
                "metadataExtractionQuery": metadata_extraction_query(policy),
            },
            indent=2,
        )
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
