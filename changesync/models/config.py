"""Configuration models for the changesync replication engine."""

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class StoresConfig(BaseModel):
    """Configuration for the pair of record stores being replicated."""

    model_name: str = Field(default=..., min_length=1, description="Logical model/collection name")
    source_path: str = Field(default=..., description="JSON file backing the source store")
    target_path: str = Field(default=..., description="JSON file backing the target store")
    source_name: str = Field(default="source", description="Name the source is tracked under")
    target_name: str = Field(default="target", description="Name the target is tracked under")
    id_field: str = Field(default="id", description="Record field holding the record id")


class ReplicationConfig(BaseModel):
    """Configuration for replication passes."""

    state_file: str | None = Field(
        default=None,
        description="Where the last confirmed checkpoints are kept. None disables tracking.",
    )
    include_replicated: bool = Field(
        default=False,
        description="Forward source changes that were themselves replicated from elsewhere",
    )
    max_retries: int = Field(
        default=3, ge=0, le=10, description="Retries of a failed pass before giving up"
    )
    retry_base_delay: float = Field(
        default=1.0, ge=0.0, le=60.0, description="Initial retry delay in seconds"
    )


class LoggingConfig(BaseModel):
    """Configuration for logging."""

    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    json_logs: bool = Field(
        default=True,
        description="If True, output JSON logs. If False, use console format.",
    )
    log_file: str | None = Field(
        default=None,
        description="Optional path to log file. If None, logs only to stdout.",
    )


class AppConfig(BaseSettings):
    """Main application configuration.

    Values can also come from environment variables with the CHANGESYNC_
    prefix, e.g. ``CHANGESYNC_STORES__SOURCE_PATH``.
    """

    model_config = SettingsConfigDict(
        env_prefix="CHANGESYNC_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    stores: StoresConfig
    replication: ReplicationConfig = Field(default_factory=ReplicationConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
