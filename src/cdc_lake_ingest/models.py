from __future__ import annotations

from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

ENTITY_TYPE_ATTRIBUTE = "ENTITY_TYPE"

AttributeMap = dict[str, Any]
NormalizedRecord = dict[str, Any]


class EventKind(str, Enum):
    INSERT = "INSERT"
    MODIFY = "MODIFY"
    REMOVE = "REMOVE"


class StreamImages(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    new_image: AttributeMap | None = Field(default=None, alias="NewImage")
    old_image: AttributeMap | None = Field(default=None, alias="OldImage")


class ChangeEvent(BaseModel):
    """DynamoDB stream record as forwarded by the pipe into the delivery stream."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    event_kind: EventKind | None = Field(default=None, alias="eventName")
    dynamodb: StreamImages

    @model_validator(mode="after")
    def _require_an_image(self) -> ChangeEvent:
        if self.dynamodb.new_image is None and self.dynamodb.old_image is None:
            raise ValueError("Change event must carry a NewImage or an OldImage")
        return self

    @property
    def source_image(self) -> AttributeMap:
        if self.dynamodb.new_image is not None:
            return self.dynamodb.new_image
        # The validator guarantees one of the images is present.
        return self.dynamodb.old_image  # type: ignore[return-value]

    @property
    def is_removal(self) -> bool:
        return self.dynamodb.new_image is None


class FilterCriteria(BaseModel):
    model_config = ConfigDict(frozen=True)

    entity_types: frozenset[str] = Field(min_length=1)


class PartitionPolicy(BaseModel):
    model_config = ConfigDict(frozen=True)

    use_entity_type_partitioning: bool = False
    use_record_date_for_partition: bool = False
    folder_prefix: str | None = None

    @property
    def uses_dynamic_partitioning(self) -> bool:
        return self.use_entity_type_partitioning or self.use_record_date_for_partition


class RawRecord(BaseModel):
    """Record handed to the transformation by the delivery stream."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    record_id: str = Field(alias="recordId")
    data: str


class RecordOutcome(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    record_id: str = Field(alias="recordId")
    result: Literal["Ok", "ProcessingFailed"]
    data: str

    @property
    def ok(self) -> bool:
        return self.result == "Ok"

    def to_response(self) -> dict[str, str]:
        return self.model_dump(by_alias=True)


class BatchOutcome(BaseModel):
    model_config = ConfigDict(frozen=True)

    records: tuple[RecordOutcome, ...]

    @property
    def ok_count(self) -> int:
        return sum(1 for outcome in self.records if outcome.ok)

    @property
    def failed_count(self) -> int:
        return len(self.records) - self.ok_count

    def to_response(self) -> dict[str, list[dict[str, str]]]:
        return {"records": [outcome.to_response() for outcome in self.records]}


class TerminalState(str, Enum):
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"


class QueryStateChange(BaseModel):
    model_config = ConfigDict(frozen=True)

    execution_id: str = Field(min_length=1)
    terminal_state: TerminalState

    @classmethod
    def from_eventbridge(cls, event: dict[str, Any]) -> QueryStateChange:
        """Parse an ``Athena Query State Change`` EventBridge event."""
        detail = event.get("detail")
        if not isinstance(detail, dict):
            raise ValueError("Athena state change event has no detail object")

        return cls(
            execution_id=detail.get("queryExecutionId", ""),
            terminal_state=detail.get("currentState"),
        )
