"""
Configuration settings for the codeticket import job.

Uses Pydantic Settings to load environment variables (or a `.env` file) for the
database connection, logging, file locations, the input format and the chunk /
fault-tolerance knobs of the import step.
"""
from __future__ import annotations

from decimal import Decimal
from functools import lru_cache
from pathlib import Path
from typing import Dict, Literal, Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Database
    db_host: str = Field("localhost", alias="DB_HOST")
    db_port: int = Field(5432, alias="DB_PORT")
    db_user: str = Field("postgres", alias="DB_USER")
    db_password: str = Field("postgres", alias="DB_PASSWORD")
    db_name: str = Field("codeticket", alias="DB_NAME")
    db_statement_timeout_ms: int = Field(0, ge=0, alias="DB_STATEMENT_TIMEOUT_MS")
    db_pool_min_size: int = Field(1, ge=1, alias="DB_POOL_MIN_SIZE")
    db_pool_max_size: int = Field(4, ge=1, alias="DB_POOL_MAX_SIZE")

    # Application
    app_env: str = Field("development", alias="APP_ENV")
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    json_logs: bool = Field(False, alias="JSON_LOGS")

    # Job and files
    job_name: str = Field("geracao-tickets", alias="JOB_NAME")
    input_dir: Path = Field(Path("files"), alias="INPUT_DIR")
    archive_dir: Path = Field(Path("imported-files"), alias="ARCHIVE_DIR")
    source_file: Optional[Path] = Field(None, alias="SOURCE_FILE")
    file_pattern: str = Field("*.csv", alias="FILE_PATTERN")
    file_encoding: str = Field("utf-8", alias="FILE_ENCODING")

    # Input format
    delimiter: str = Field(";", alias="DELIMITER")
    comment_marker: str = Field("--", alias="COMMENT_MARKER")
    date_format: str = Field("%d/%m/%Y", alias="DATE_FORMAT")

    # Import step
    chunk_size: int = Field(200, gt=0, alias="CHUNK_SIZE")
    row_error_threshold: int = Field(0, ge=0, alias="ROW_ERROR_THRESHOLD")
    malformed_line_policy: Literal["report", "abort"] = Field(
        "report", alias="MALFORMED_LINE_POLICY"
    )
    chunk_retry_attempts: int = Field(3, ge=1, alias="CHUNK_RETRY_ATTEMPTS")
    import_table: str = Field("importacao", alias="IMPORT_TABLE")

    # Business rules
    admin_fee_default: Decimal = Field(Decimal("80.00"), ge=0, alias="ADMIN_FEE_DEFAULT")
    admin_fee_by_ticket_type: Dict[str, Decimal] = Field(
        default_factory=lambda: {"vip": Decimal("130.00")},
        alias="ADMIN_FEE_BY_TICKET_TYPE",
    )

    # Orchestration
    skip_when_idle: bool = Field(True, alias="SKIP_WHEN_IDLE")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    @field_validator("delimiter")
    @classmethod
    def _single_char_delimiter(cls, value: str) -> str:
        # csv.reader only accepts one-character delimiters.
        if len(value) != 1:
            raise ValueError("delimiter must be exactly one character")
        return value

    @field_validator("import_table")
    @classmethod
    def _plain_identifier(cls, value: str) -> str:
        if not value.replace("_", "").isalnum():
            raise ValueError("import_table must be a plain SQL identifier")
        return value

    @model_validator(mode="after")
    def _check_format(self) -> "Settings":
        if self.comment_marker and self.comment_marker.startswith(self.delimiter):
            raise ValueError("comment_marker must not start with the delimiter")
        if self.db_pool_min_size > self.db_pool_max_size:
            raise ValueError("db_pool_min_size cannot exceed db_pool_max_size")
        return self

    @property
    def source_location(self) -> Path:
        """The single configured file, or the input directory to scan."""
        return self.source_file if self.source_file is not None else self.input_dir


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Retrieve a cached instance of Settings to avoid repeated env parsing.
    """
    return Settings()


__all__ = ["Settings", "get_settings"]
