"""
# Configuration Module

Centralized, type-safe configuration for the RenderAPIs service, built on
**Pydantic Settings**.

## Loading Order

Settings are resolved once at import time:

1.  **Environment Variable**: `RENDERAPIS_CONFIG_PATH` pointing at a dotenv file.
2.  **Project Config**: `.renderapis` in the project root.
3.  **Dotenv Config**: `.env` in the project root.
4.  **Fallback**: plain environment variables only.

The chosen file is loaded with `python-dotenv` (overriding the process
environment) and then handed to `Settings.model_config.env_file`.

## Configuration Groups

- **Application**: name, version, description, environment.
- **Server**: host, port, debug/reload.
- **Database**: MongoDB URL, pool size, server-selection and socket timeouts,
  reconnection policy (fixed attempts and fixed delay).
- **HTTP**: CORS origins, request logging, static dashboard directory.
- **Observability**: log level, detailed health checks, Prometheus metrics.

## Usage

```python
from renderapis.config import settings

if settings.is_production:
    ...
client = AsyncIOMotorClient(settings.MONGODB_URL, maxPoolSize=settings.MONGODB_MAX_POOL_SIZE)
```
"""

import os
from pathlib import Path
from typing import Any, List, Optional

from dotenv import load_dotenv
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# --- Constants ---
PROJECT_FILENAME: str = ".renderapis"
DEFAULT_ENV_FILENAME: str = ".env"
CONFIG_ENV_VAR: str = "RENDERAPIS_CONFIG_PATH"
PROJECT_ROOT: Path = Path(__file__).resolve().parent.parent.parent

ENVIRONMENTS = ("development", "production", "test")


# --- Config file discovery (no logging) ---
def get_config_path() -> Optional[str]:
    """
    Determines the configuration file path based on a predefined precedence order.

    The explicit `RENDERAPIS_CONFIG_PATH` wins when it points at an existing file,
    then `.renderapis` and `.env` in the project root. `None` means the process
    environment is the only source.

    Returns:
        Optional[str]: The path to the configuration file, or `None` if not found.
    """
    env_path: Optional[str] = os.environ.get(CONFIG_ENV_VAR)
    if env_path and os.path.exists(env_path):
        return env_path
    project_path: Path = PROJECT_ROOT / PROJECT_FILENAME
    if project_path.exists():
        return str(project_path)
    env_path_file: Path = PROJECT_ROOT / DEFAULT_ENV_FILENAME
    if env_path_file.exists():
        return str(env_path_file)
    return None


CONFIG_PATH: Optional[str] = get_config_path()
if CONFIG_PATH:
    load_dotenv(dotenv_path=CONFIG_PATH, override=True)


class Settings(BaseSettings):
    """
    Application configuration settings model.

    Every value can be supplied through the environment or the discovered config
    file. Validators reject empty connection strings, unknown environments and
    non-positive pool/timeout/retry values at startup rather than at first use.
    """

    model_config = SettingsConfigDict(
        env_file=CONFIG_PATH if CONFIG_PATH else None,
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Application metadata
    APP_NAME: str = "RenderAPIs"
    APP_VERSION: str = "1.0.0"
    APP_DESCRIPTION: str = "CRUD API for Project Management"
    ENVIRONMENT: str = "development"

    # Server configuration
    HOST: str = "localhost"
    PORT: int = 3000
    DEBUG: bool = False

    # MongoDB configuration
    MONGODB_URL: str = "mongodb://localhost:27017/renderapis"
    MONGODB_DATABASE: str = "renderapis"  # Used when the URL carries no database path
    MONGODB_MAX_POOL_SIZE: int = 10
    MONGODB_SERVER_SELECTION_TIMEOUT: int = 5000  # ms
    MONGODB_SOCKET_TIMEOUT: int = 45000  # ms
    MONGODB_RECONNECT_MAX_ATTEMPTS: int = 5
    MONGODB_RECONNECT_DELAY_SECONDS: float = 5.0  # Fixed delay, not exponential
    PROJECTS_COLLECTION: str = "projects"

    # HTTP configuration
    CORS_ORIGINS: str = "*"  # Comma-separated allowed origins
    CORS_CREDENTIALS: bool = False
    API_VERSION: str = "v1"
    STATIC_DIR: Optional[str] = str(PROJECT_ROOT / "public")

    # Logging / observability
    LOG_LEVEL: str = "INFO"
    ENABLE_REQUEST_LOGGING: bool = True
    HEALTH_DETAILED_CHECKS: bool = True
    METRICS_ENABLED: bool = True

    # Build metadata
    GIT_COMMIT: str = "unknown"
    GIT_BRANCH: str = "unknown"

    @field_validator("MONGODB_URL", mode="before")
    @classmethod
    def no_empty_urls(cls, v: Any, info: Any) -> Any:
        """
        Validates that the MongoDB URL is not empty.

        Raises:
            ValueError: If the URL is empty or whitespace.
        """
        if not v or not str(v).strip():
            raise ValueError(f"{info.field_name} must be set via environment or .renderapis and not empty!")
        return str(v).strip()

    @field_validator("ENVIRONMENT", mode="before")
    @classmethod
    def validate_environment(cls, v: Any) -> str:
        """Normalizes the environment name and rejects unknown values."""
        value = str(v or "development").strip().lower()
        if value not in ENVIRONMENTS:
            raise ValueError(f"ENVIRONMENT must be one of {', '.join(ENVIRONMENTS)}")
        return value

    @field_validator(
        "MONGODB_MAX_POOL_SIZE",
        "MONGODB_SERVER_SELECTION_TIMEOUT",
        "MONGODB_SOCKET_TIMEOUT",
        "MONGODB_RECONNECT_MAX_ATTEMPTS",
        mode="before",
    )
    @classmethod
    def validate_positive_integers(cls, v: Any, info: Any) -> int:
        """
        Validates that numeric settings are positive integers.

        Raises:
            ValueError: If the value is not a positive integer.
        """
        value = int(v)
        if value <= 0:
            raise ValueError(f"{info.field_name} must be a positive integer")
        return value

    @field_validator("MONGODB_RECONNECT_DELAY_SECONDS", mode="before")
    @classmethod
    def validate_reconnect_delay(cls, v: Any) -> float:
        """Rejects negative reconnection delays."""
        delay = float(v)
        if delay < 0:
            raise ValueError("MONGODB_RECONNECT_DELAY_SECONDS must not be negative")
        return delay

    @property
    def is_production(self) -> bool:
        """
        Determine if the application is running in production mode.

        Production mode enables scheduled reconnection after a failed initial
        connect, HSTS headers, and hides diagnostic error details.
        """
        return self.ENVIRONMENT == "production"

    @property
    def is_development(self) -> bool:
        """Development mode exposes error messages and stack traces in error envelopes."""
        return self.ENVIRONMENT == "development"

    @property
    def is_test(self) -> bool:
        return self.ENVIRONMENT == "test"

    @property
    def cors_origins_list(self) -> List[str]:
        """
        Parse `CORS_ORIGINS` into a list.

        Returns:
            `list`: `["*"]` when unset, otherwise the stripped, non-empty origins.
        """
        if not self.CORS_ORIGINS:
            return ["*"]
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]


# Global settings instance
settings: Settings = Settings()
