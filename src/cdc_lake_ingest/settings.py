from __future__ import annotations

from typing import Annotated

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from cdc_lake_ingest.models import FilterCriteria, PartitionPolicy


class TransformSettings(BaseSettings):
    """Configuration of the delivery stream transformation function."""

    model_config = SettingsConfigDict(case_sensitive=False)

    entity_types: Annotated[frozenset[str], NoDecode] = Field(
        default_factory=frozenset,
        alias="ENTITY_TYPES",
    )
    partition_by_entity_type: bool = Field(default=False, alias="PARTITION_BY_ENTITY_TYPE")
    partition_by_record_date: bool = Field(default=False, alias="PARTITION_BY_RECORD_DATE")
    folder_prefix: str | None = Field(default=None, alias="FOLDER_PREFIX")
    transform_max_workers: int | None = Field(default=None, alias="TRANSFORM_MAX_WORKERS")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    @field_validator("entity_types", mode="before")
    @classmethod
    def _split_entity_types(cls, value: object) -> object:
        if isinstance(value, str):
            return frozenset(part.strip() for part in value.split(",") if part.strip())
        return value

    @field_validator("folder_prefix")
    @classmethod
    def _validate_folder_prefix(cls, value: str | None) -> str | None:
        if value is None:
            return None
        stripped = value.strip("/")
        return stripped or None

    @field_validator("transform_max_workers")
    @classmethod
    def _validate_max_workers(cls, value: int | None) -> int | None:
        if value is not None and value < 1:
            raise ValueError("TRANSFORM_MAX_WORKERS must be >= 1")
        return value

    @property
    def filter_criteria(self) -> FilterCriteria | None:
        if not self.entity_types:
            return None
        return FilterCriteria(entity_types=self.entity_types)

    @property
    def partition_policy(self) -> PartitionPolicy:
        return PartitionPolicy(
            use_entity_type_partitioning=self.partition_by_entity_type,
            use_record_date_for_partition=self.partition_by_record_date,
            folder_prefix=self.folder_prefix,
        )


class QuerySettings(BaseSettings):
    """Configuration of the query start/finish functions."""

    model_config = SettingsConfigDict(case_sensitive=False)

    aws_region: str = Field(alias="AWS_REGION")
    glue_database_name: str = Field(alias="GLUE_DATABASE_NAME")
    athena_work_group_name: str = Field(alias="ATHENA_WORK_GROUP_NAME")
    glue_table_order: str = Field(alias="GLUE_TABLE_ORDER")
    glue_table_order_item: str = Field(alias="GLUE_TABLE_ORDER_ITEM")
    glue_table_customer: str = Field(alias="GLUE_TABLE_CUSTOMER")
    glue_item_table: str = Field(alias="GLUE_ITEM_TABLE")
    execution_ledger_table: str | None = Field(default=None, alias="EXECUTION_LEDGER_TABLE")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    @field_validator(
        "glue_table_order",
        "glue_table_order_item",
        "glue_table_customer",
        "glue_item_table",
    )
    @classmethod
    def _validate_table_name(cls, value: str) -> str:
        if not value or '"' in value:
            raise ValueError("Glue table names must be non-empty and must not contain '\"'")
        return value
