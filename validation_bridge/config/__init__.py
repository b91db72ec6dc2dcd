"""Configuration module for validation-bridge."""

from validation_bridge.config.loader import get_config_path, load_config
from validation_bridge.config.schema import Config, LoggingConfig, RunnerConfig

__all__ = ["Config", "LoggingConfig", "RunnerConfig", "get_config_path", "load_config"]
