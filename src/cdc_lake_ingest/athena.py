from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Sequence
from typing import Any, Protocol

import boto3

from cdc_lake_ingest.models import QueryStateChange, TerminalState

LOGGER = logging.getLogger(__name__)

ResultConsumer = Callable[[str, list[dict[str, str | None]]], None]


class QuerySubmissionError(RuntimeError):
    """Raised when Athena rejects a query submission."""

    def __init__(self, message: str, *, error_code: str | None = None) -> None:
        super().__init__(message)
        self.error_code = error_code


class AthenaClient(Protocol):
    def start_query_execution(self, **kwargs: Any) -> dict[str, Any]:
        ...

    def get_query_execution(self, *, QueryExecutionId: str) -> dict[str, Any]:
        ...

    def get_query_results(self, **kwargs: Any) -> dict[str, Any]:
        ...


def create_athena_client(*, region_name: str) -> AthenaClient:
    return boto3.client("athena", region_name=region_name)


class ExecutionLedger(Protocol):
    def claim(self, execution_id: str, state: TerminalState) -> TerminalState | None:
        """Record the terminal state; return the previously recorded state, if any."""
        ...

    def release(self, execution_id: str) -> None:
        """Forget a claim whose handling failed so a redelivery can retry it."""
        ...


class InMemoryExecutionLedger:
    """Process-local record of finalized executions."""

    def __init__(self) -> None:
        self._states: dict[str, TerminalState] = {}
        self._lock = threading.Lock()

    def claim(self, execution_id: str, state: TerminalState) -> TerminalState | None:
        with self._lock:
            previous = self._states.get(execution_id)
            if previous is None:
                self._states[execution_id] = state
            return previous

    def release(self, execution_id: str) -> None:
        with self._lock:
            self._states.pop(execution_id, None)

    def state_of(self, execution_id: str) -> TerminalState | None:
        return self._states.get(execution_id)

    def __len__(self) -> int:
        return len(self._states)


class DynamoDbExecutionLedger:
    """Ledger shared across invocations, backed by a table keyed on ``execution_id``."""

    def __init__(self, *, client: Any, table_name: str) -> None:
        self._client = client
        self._table_name = table_name

    def claim(self, execution_id: str, state: TerminalState) -> TerminalState | None:
        try:
            self._client.put_item(
                TableName=self._table_name,
                Item={
                    "execution_id": {"S": execution_id},
                    "terminal_state": {"S": state.value},
                },
                ConditionExpression="attribute_not_exists(execution_id)",
            )
        except Exception as exc:
            error_code, _ = _extract_exception_error(exc)
            if error_code != "ConditionalCheckFailedException":
                raise
        else:
            return None

        response = self._client.get_item(
            TableName=self._table_name,
            Key={"execution_id": {"S": execution_id}},
            ConsistentRead=True,
        )
        recorded = response.get("Item", {}).get("terminal_state", {}).get("S")
        return TerminalState(recorded) if recorded else state

    def release(self, execution_id: str) -> None:
        self._client.delete_item(
            TableName=self._table_name,
            Key={"execution_id": {"S": execution_id}},
        )


def create_dynamodb_client(*, region_name: str) -> Any:
    return boto3.client("dynamodb", region_name=region_name)


class QueryLifecycleController:
    def __init__(
        self,
        *,
        client: AthenaClient,
        database: str,
        workgroup: str,
        ledger: ExecutionLedger | None = None,
        on_succeeded: ResultConsumer | None = None,
    ) -> None:
        self._client = client
        self._database = database
        self._workgroup = workgroup
        self._ledger = ledger if ledger is not None else InMemoryExecutionLedger()
        self._on_succeeded = on_succeeded

    def trigger_query(self, template: str, parameters: Sequence[str] = ()) -> str:
        """Submit a query with positional ``?`` parameters and return its execution id."""
        markers = count_parameter_markers(template)
        if markers != len(parameters):
            raise ValueError(
                f"Query has {markers} parameter markers but {len(parameters)} parameters were given"
            )

        request: dict[str, Any] = {
            "QueryString": template,
            "QueryExecutionContext": {"Database": self._database},
            "WorkGroup": self._workgroup,
        }
        # Athena rejects an empty ExecutionParameters list.
        if parameters:
            request["ExecutionParameters"] = [str(value) for value in parameters]

        try:
            response = self._client.start_query_execution(**request)
        except Exception as exc:
            error_code, error_message = _extract_exception_error(exc)
            LOGGER.error(
                "athena_query_submission_failed",
                extra={"workgroup": self._workgroup, "error_code": error_code},
            )
            raise QuerySubmissionError(
                f"Athena rejected query submission: {error_message}",
                error_code=error_code,
            ) from exc

        execution_id = response.get("QueryExecutionId")
        if not execution_id:
            raise QuerySubmissionError("StartQueryExecution returned no QueryExecutionId")

        LOGGER.info("athena_query_started", extra={"execution_id": execution_id})
        return str(execution_id)

    def on_completion_notification(self, change: QueryStateChange) -> bool:
        """Handle a terminal state notification; return False for repeated deliveries."""
        previous = self._ledger.claim(change.execution_id, change.terminal_state)
        if previous is not None:
            if previous is not change.terminal_state:
                LOGGER.warning(
                    "athena_conflicting_terminal_state",
                    extra={
                        "execution_id": change.execution_id,
                        "recorded_state": previous.value,
                        "received_state": change.terminal_state.value,
                    },
                )
            else:
                LOGGER.info(
                    "athena_duplicate_notification",
                    extra={"execution_id": change.execution_id},
                )
            return False

        try:
            self._handle_terminal_state(change)
        except Exception:
            LOGGER.exception(
                "athena_notification_handling_failed",
                extra={"execution_id": change.execution_id},
            )
            self._ledger.release(change.execution_id)
            raise
        return True

    def _handle_terminal_state(self, change: QueryStateChange) -> None:
        if change.terminal_state is TerminalState.FAILED:
            LOGGER.error(
                "athena_query_failed",
                extra={
                    "execution_id": change.execution_id,
                    "reason": self.failure_reason(change.execution_id),
                },
            )
            return

        LOGGER.info("athena_query_succeeded", extra={"execution_id": change.execution_id})
        if self._on_succeeded is not None:
            rows = self.fetch_results(change.execution_id)
            self._on_succeeded(change.execution_id, rows)

    def failure_reason(self, execution_id: str) -> str | None:
        response = self._client.get_query_execution(QueryExecutionId=execution_id)
        status = response.get("QueryExecution", {}).get("Status", {})
        reason = status.get("StateChangeReason")
        return str(reason) if reason is not None else None

    def fetch_results(self, execution_id: str) -> list[dict[str, str | None]]:
        """Read every result row of a finished query as ``{column: value}`` dicts."""
        rows: list[dict[str, str | None]] = []
        columns: list[str] | None = None
        next_token: str | None = None

        while True:
            request: dict[str, Any] = {"QueryExecutionId": execution_id}
            if next_token:
                request["NextToken"] = next_token
            response = self._client.get_query_results(**request)
            result_set = response.get("ResultSet", {})
            page_rows = result_set.get("Rows", [])

            if columns is None:
                columns = [
                    column["Name"]
                    for column in result_set.get("ResultSetMetadata", {}).get("ColumnInfo", [])
                ]
                # The first row of a SELECT result repeats the column names.
                if page_rows and _row_values(page_rows[0]) == columns:
                    page_rows = page_rows[1:]

            for row in page_rows:
                rows.append(dict(zip(columns, _row_values(row), strict=True)))

            next_token = response.get("NextToken")
            if not next_token:
                return rows


def count_parameter_markers(template: str) -> int:
    """Count ``?`` markers outside single-quoted literals and double-quoted identifiers."""
    count = 0
    quote: str | None = None
    for char in template:
        if quote is not None:
            if char == quote:
                quote = None
        elif char in ("'", '"'):
            quote = char
        elif char == "?":
            count += 1
    return count


def _row_values(row: dict[str, Any]) -> list[str | None]:
    return [datum.get("VarCharValue") for datum in row.get("Data", [])]


def _extract_exception_error(exc: Exception) -> tuple[str | None, str | None]:
    response = getattr(exc, "response", None)
    if isinstance(response, dict):
        error = response.get("Error")
        if isinstance(error, dict):
            code = error.get("Code")
            message = error.get("Message")
            return (
                str(code) if code is not None else None,
                str(message) if message is not None else None,
            )

    return None, str(exc)
