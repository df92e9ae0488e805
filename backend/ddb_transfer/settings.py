from __future__ import annotations

from functools import lru_cache

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=None, extra="ignore")

    # AWS / data
    aws_region: str = Field(default="us-east-2", validation_alias="AWS_REGION")
    # OLD_TABLE_NAME is still honored for scripts written against the legacy table.
    table_name: str | None = Field(
        default=None, validation_alias=AliasChoices("TABLE_NAME", "OLD_TABLE_NAME")
    )

    # Export defaults
    output_file: str | None = Field(default=None, validation_alias="OUTPUT_FILE")
    output_dir: str | None = Field(default=None, validation_alias="OUTPUT_DIR")
    group_by_type: bool = Field(default=False, validation_alias="GROUP_BY_TYPE")
    filter_expression: str | None = Field(default=None, validation_alias="FILTER_EXPRESSION")

    # Import tuning
    import_batch_size: int = Field(default=25, ge=1, validation_alias="IMPORT_BATCH_SIZE")
    import_pacing_ms: int = Field(default=100, ge=0, validation_alias="IMPORT_PACING_MS")

    # DynamoDB client
    ddb_connect_timeout_s: float = Field(default=2.0, validation_alias="DDB_CONNECT_TIMEOUT_S")
    ddb_read_timeout_s: float = Field(default=10.0, validation_alias="DDB_READ_TIMEOUT_S")
    # Attempts per throttled request; 1 means a failed page or chunk is not retried.
    ddb_max_attempts: int = Field(default=1, ge=1, validation_alias="DDB_MAX_ATTEMPTS")
    key_schema_cache_ttl_s: float = Field(default=300.0, gt=0, validation_alias="KEY_SCHEMA_CACHE_TTL_S")

    # Observability
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

    @property
    def import_pacing_seconds(self) -> float:
        return max(0, int(self.import_pacing_ms)) / 1000.0

    def resolve_table(self, explicit: str | None) -> str:
        tn = str(explicit or self.table_name or "").strip()
        if not tn:
            raise ValueError("No table name given (use --table or set TABLE_NAME)")
        return tn

    def resolve_region(self, explicit: str | None) -> str:
        return str(explicit or self.aws_region or "").strip() or "us-east-2"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
