"""
Application configuration using Pydantic Settings.

``Settings`` holds the environment fallbacks (process environment and a
``.env`` file). ``JobConfig`` is the explicit, immutable configuration that a
job builds once per invocation (command-line flag first, then environment,
then default) and hands to every component.
"""

from pathlib import Path
from typing import Optional, Dict, Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment variable fallbacks for every job"""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    # DX API
    API_URL: Optional[str] = None
    DX_BASE_URL: Optional[str] = None
    DX_TOKEN: Optional[str] = None
    DX_WEBHOOK_URL: Optional[str] = None

    # Throughput / behavior
    RPS: Optional[float] = None
    DRY_RUN: Optional[str] = None
    CHUNK_SIZE: Optional[int] = None

    # Input / output
    INPUT_FILE: Optional[str] = None
    DIRECTORY: Optional[str] = None
    FAILURE_LOG_FILE: Optional[str] = None
    OUTPUT_DIR: Optional[str] = None
    SPLIT_COLUMN: Optional[str] = None
    CSV_DELIMITER: Optional[str] = None
    SAFE_NAMES: Optional[str] = None
    OVERWRITE: Optional[str] = None

    # GitLab onboarding
    GITLAB_INSTANCE_URL: Optional[str] = None
    GITLAB_API_TOKEN: Optional[str] = None
    GITLAB_GROUPS: Optional[str] = None
    GITLAB_USERS: Optional[str] = None

    # Databases
    DX_DB_CONNECTION: Optional[str] = None
    DATABASE_URL: Optional[str] = None

    # Third-party APIs
    TABNINE_API_KEY: Optional[str] = None
    CONFLUENCE_BASE_URL: Optional[str] = None
    CONFLUENCE_EMAIL: Optional[str] = None
    CONFLUENCE_API_TOKEN: Optional[str] = None
    DX_PROXY_USER: Optional[str] = None
    DX_PROXY_PASS: Optional[str] = None

    # Environment
    LOG_LEVEL: str = "INFO"


def get_settings() -> Settings:
    """Read environment fallbacks; called once per job invocation"""
    return Settings()


class JobConfig(BaseModel):
    """
    Configuration for one job invocation.

    Constructed once by the job's entry point and passed by reference to the
    reader, sender, tracker and loggers. Nothing below the entry point reads
    the environment.
    """

    model_config = ConfigDict(frozen=True)

    job_kind: str

    # Delivery
    target_url: Optional[str] = None
    token: Optional[str] = None
    requests_per_second: float = Field(7.0, gt=0)
    timeout_seconds: float = Field(30.0, gt=0)
    max_attempts: int = Field(5, ge=1)
    dry_run: bool = False

    # Input
    input_path: Optional[Path] = None
    delimiter: str = ","

    # Persisted state
    failure_log_path: Optional[Path] = None
    success_log_path: Optional[Path] = None
    state_file: Optional[Path] = None
    auto_resume: bool = False

    # Concurrency / batching
    concurrency: int = Field(1, ge=1)
    chunk_size: int = Field(100, ge=1)

    # Database sinks/sources
    database_url: Optional[str] = None

    # Job-specific options (groups, users, column names, ...)
    options: Dict[str, Any] = Field(default_factory=dict)
