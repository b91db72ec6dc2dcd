"""Configuration schema using Pydantic.

Single data model and defaults for the runner client, persisted to
~/.validation-bridge/config.json.
"""

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_SERVER_MODULE = "validation_lib.jsonrpc_server"


class RunnerConfig(BaseModel):
    """How to launch the validation runner process. Immutable once built."""

    model_config = ConfigDict(frozen=True)

    python_executable: str = "python3"
    script_path: str  # Working directory of the runner (the validation-lib checkout)
    debug: bool = False  # Appends --debug to the launch command
    server_module: str = DEFAULT_SERVER_MODULE  # Target of `python -m`
    read_timeout_seconds: float | None = None  # None blocks until the runner answers
    terminate_grace_seconds: float = 5.0  # SIGTERM -> SIGKILL window on stop

    @field_validator("script_path")
    @classmethod
    def _script_path_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("script_path must not be empty")
        return value

    @field_validator("read_timeout_seconds")
    @classmethod
    def _timeout_positive(cls, value: float | None) -> float | None:
        if value is not None and value <= 0:
            raise ValueError("read_timeout_seconds must be positive")
        return value


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: str = "INFO"
    file: str = ""  # Rotating log file; empty logs to stderr only


class Config(BaseSettings):
    """Root configuration for validation-bridge."""
    runner: RunnerConfig | None = None
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    default_ruleset: str = "quick"

    model_config = SettingsConfigDict(
        env_prefix="VALIDATION_BRIDGE_",
        env_nested_delimiter="__",
    )
