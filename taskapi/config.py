"""Configuration for the task API service.

Uses taskapi.core.Config for environment variable override support.
Environment variables use the TASKAPI__ prefix (e.g., TASKAPI__URL=http://0.0.0.0:8000).
"""

from typing import Optional

from pydantic import BaseModel, SecretStr

from taskapi.core import Config, SettingsLike


class TaskApiSettings(BaseModel):
    """Task API service configuration settings."""

    # Service URL (host and port the HTTP listener binds to)
    URL: str = "http://0.0.0.0:8000"

    # MongoDB connection
    MONGO_URI: str = "mongodb://localhost:27017"
    MONGO_DB: str = "taskapi"

    # Tokens
    JWT_SECRET: SecretStr = SecretStr("dev-access-secret")
    JWT_REFRESH_SECRET: SecretStr = SecretStr("refresh_secret_key")
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRES_IN: int = 15 * 60  # seconds
    REFRESH_TOKEN_EXPIRES_IN: int = 7 * 24 * 60 * 60  # seconds

    # Comma-separated list of allowed origins
    CORS_ORIGINS: str = "*"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = "~/.cache/taskapi/logs"
    USE_STRUCTLOG: bool = True

    # Development mode: stack traces in 500 responses
    DEBUG: bool = False


class TaskApiConfig(Config):
    """Config with a TASKAPI section built from TaskApiSettings.

    Keyword arguments override individual TASKAPI settings and take precedence over
    environment variables.

    Example:
        ```python
        config = TaskApiConfig(DEBUG=True, MONGO_DB="taskapi_dev")
        config.TASKAPI.DEBUG  # "True"
        ```
    """

    def __init__(self, overrides: SettingsLike = None, **settings):
        if isinstance(overrides, TaskApiSettings):
            overrides = {"TASKAPI": overrides}
        layers = [overrides] if overrides is not None else []
        if settings:
            layers.append({"TASKAPI": settings})
        super().__init__({"TASKAPI": TaskApiSettings()}, overrides=layers)


# Module-level config cache
_config: Optional[Config] = None


def get_taskapi_config() -> Config:
    """Get the task API configuration singleton.

    Configuration is loaded once and cached. Supports environment variable
    overrides using the TASKAPI__ prefix.

    Examples:
        ```bash
        export TASKAPI__URL=http://0.0.0.0:8081
        export TASKAPI__JWT_SECRET=$(openssl rand -hex 32)
        ```

        ```python
        config = get_taskapi_config()
        print(config.TASKAPI.URL)  # http://0.0.0.0:8000
        ```
    """
    global _config
    if _config is None:
        _config = TaskApiConfig()
    return _config


def reset_taskapi_config() -> None:
    """Reset the config cache. Useful for testing."""
    global _config
    _config = None
