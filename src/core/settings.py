"""
Runtime configuration loaded from environment variables.

An optional .env file is loaded first with python-dotenv; process
environment variables always win.
"""

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field

from .exceptions import ConfigurationError


class Settings(BaseModel):
    """
    Settings for the ingestion worker and its collaborators.

    Attributes:
        db_host: PostgreSQL host
        db_port: PostgreSQL port
        db_name: Database name
        db_user: Database user
        db_password: Database password (required)
        db_pool_min_size: Minimum async pool size
        db_pool_max_size: Maximum async pool size
        supabase_url: Base URL of the storage API
        supabase_service_role_key: Service key used for storage requests
        storage_bucket: Bucket holding uploaded statements
        openai_api_key: Key for the embedding service
        embedding_model: Embedding model name
        embedding_dimensions: Vector width of the rows.embedding column
        batch_size: Rows per embed/upsert batch
        error_message_max_length: Bound for persisted error messages
        stale_job_timeout_seconds: Age after which a processing job is swept
        column_map_path: Optional YAML file with extra column aliases
        value_metric: Metric copied into the generic value column
    """

    db_host: str = "localhost"
    db_port: int = 5432
    db_name: str = "royalties"
    db_user: str = "ingest"
    db_password: str = Field(..., min_length=1)
    db_pool_min_size: int = Field(default=1, ge=1)
    db_pool_max_size: int = Field(default=5, ge=1)

    supabase_url: str | None = None
    supabase_service_role_key: str | None = None
    storage_bucket: str = "royalty-files"

    openai_api_key: str | None = None
    embedding_model: str = "text-embedding-3-small"
    embedding_dimensions: int = Field(default=1536, gt=0)

    batch_size: int = Field(default=100, gt=0)
    error_message_max_length: int = Field(default=500, gt=0)
    stale_job_timeout_seconds: int = Field(default=900, gt=0)
    column_map_path: Path | None = None
    value_metric: str = "amount_collected"

    @classmethod
    def from_env(cls, env_file: str | Path | None = None) -> "Settings":
        """
        Build settings from the environment.

        Args:
            env_file: Optional .env path (defaults to env var INGEST_ENV_FILE)

        Returns:
            Settings instance

        Raises:
            ConfigurationError: If a required variable is missing
        """
        env_path = env_file or os.getenv("INGEST_ENV_FILE")
        if env_path and Path(env_path).exists():
            load_dotenv(env_path, override=False)
        else:
            load_dotenv(override=False)

        password = os.getenv("DB_PASSWORD")
        if not password:
            raise ConfigurationError(
                "Database password must be provided. "
                "Set DB_PASSWORD environment variable."
            )

        values = {
            "db_host": os.getenv("DB_HOST", "localhost"),
            "db_port": int(os.getenv("DB_PORT", "5432")),
            "db_name": os.getenv("DB_NAME", "royalties"),
            "db_user": os.getenv("DB_USER", "ingest"),
            "db_password": password,
            "db_pool_min_size": int(os.getenv("DB_POOL_MIN_SIZE", "1")),
            "db_pool_max_size": int(os.getenv("DB_POOL_MAX_SIZE", "5")),
            "supabase_url": os.getenv("SUPABASE_URL"),
            "supabase_service_role_key": os.getenv("SUPABASE_SERVICE_ROLE_KEY"),
            "storage_bucket": os.getenv("STORAGE_BUCKET", "royalty-files"),
            "openai_api_key": os.getenv("OPENAI_API_KEY"),
            "embedding_model": os.getenv("EMBEDDING_MODEL", "text-embedding-3-small"),
            "embedding_dimensions": int(os.getenv("EMBEDDING_DIMENSIONS", "1536")),
            "batch_size": int(os.getenv("INGEST_BATCH_SIZE", "100")),
            "error_message_max_length": int(os.getenv("ERROR_MESSAGE_MAX_LENGTH", "500")),
            "stale_job_timeout_seconds": int(os.getenv("STALE_JOB_TIMEOUT_SECONDS", "900")),
            "column_map_path": os.getenv("COLUMN_MAP_PATH") or None,
            "value_metric": os.getenv("VALUE_METRIC", "amount_collected"),
        }
        return cls(**values)

    def require_storage(self) -> tuple[str, str]:
        """Return (url, key) for the blob store or raise if unset."""
        if not self.supabase_url or not self.supabase_service_role_key:
            raise ConfigurationError(
                "Storage access requires SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY"
            )
        return self.supabase_url, self.supabase_service_role_key

    def require_embedding_key(self) -> str:
        """Return the embedding API key or raise if unset."""
        if not self.openai_api_key:
            raise ConfigurationError("Embedding service requires OPENAI_API_KEY")
        return self.openai_api_key
