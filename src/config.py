"""
Application Configuration Module.

Manages application settings and environment variables using Pydantic for validation.
Provides centralized configuration management with type safety and validation.

Features:
- Environment variable loading and validation
- Secure credential management
- Remote API tuning (timeouts, retries, concurrency)
- Path normalization for output directories
"""

import os
from typing import Dict

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from logger import LogManager

DEFAULT_OPTIONAL_FILES: Dict[str, str] = {
    ".env.example": (
        "# Copy this file to .env and fill in the values\n"
        "DATABASE_URL=\n"
        "PORT=3000\n"
    ),
}


class Settings(BaseSettings):
    """
    Application configuration settings with validation.

    Manages and validates all application settings including:
    - Application identification
    - GitHub authentication and organization
    - Remote call timeouts, retries and blob fan-out
    - Repository readiness polling
    - Logging and data directories

    Attributes:
        app_name (str): Name of the application
        dev (bool): Debug mode flag
        log_dir (str): Directory for log files
        github_token (SecretStr): Organization-scoped GitHub token
        github_org (str): Organization that owns provisioned repositories
        default_branch (str): Branch whose ref is rewritten
        request_timeout (int): Per-request timeout in seconds
        max_retries (int): Attempts for transient remote failures
        blob_concurrency (int): Concurrent blob uploads within one commit
        readiness_timeout (float): Upper bound for readiness polling
        optional_files (Dict[str, str]): Well-known files synthesized when referenced
    """

    # Application settings
    app_name: str = Field(default="Repoforge", description="Application name")
    dev: bool = Field(default=False, description="Debug mode")
    log_dir: str = Field(default="logs", description="Logging directory")
    log_level: int = Field(default=20, description="Logging level, default info")
    data_dir: str = Field(default="data", description="Provisioning report directory")

    # GitHub configuration
    github_token: SecretStr = Field(..., description="GitHub token")
    github_org: str = Field(
        default="skillvee", description="Organization owning provisioned repos"
    )
    github_api_url: str = Field(
        default="https://api.github.com", description="GitHub API base URL"
    )
    default_branch: str = Field(default="main", description="Branch to rewrite")
    private_repos: bool = Field(default=True, description="Create private repos")

    # Remote call tuning
    request_timeout: int = Field(default=30, description="Request timeout seconds")
    max_retries: int = Field(default=3, description="Attempts for transient errors")
    blob_concurrency: int = Field(
        default=4, description="Concurrent blob uploads per commit"
    )

    # Readiness polling after template instantiation
    readiness_timeout: float = Field(
        default=30.0, description="Seconds to wait for template files"
    )
    readiness_interval: float = Field(
        default=1.0, description="Seconds between readiness checks"
    )
    settle_delay: float = Field(
        default=5.0, description="Fixed delay used when readiness is unknown"
    )

    optional_files: Dict[str, str] = Field(
        default_factory=lambda: dict(DEFAULT_OPTIONAL_FILES),
        description="Well-known optional files and their default content",
    )

    @field_validator("data_dir", "log_dir")
    def ensure_absolute_path(cls, v: str) -> str:
        """
        Ensure directory paths are absolute.

        Args:
            v (str): Directory path to validate

        Returns:
            str: Absolute path
        """
        if not os.path.isabs(v):
            return os.path.abspath(v)
        return v

    @field_validator("blob_concurrency", "max_retries")
    def ensure_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be at least 1")
        return v

    # Configure env file loading
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # Ignore extra fields in .env file
    )


# Create global settings instance
settings = Settings()

# Initialize logging configuration
logger = LogManager(
    app_name=settings.app_name.lower(),
    log_dir=settings.log_dir,
    development=settings.dev,
    level=settings.log_level,
).logger
