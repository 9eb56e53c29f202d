"""Configuration loading and management."""

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from ..utils.logging import ConfigurationError


class OrchestratorConfig(BaseModel):
    """Configuration model for Stack-Orchestrator."""

    # Stacks
    stacks_dir: str = Field(
        default="/opt/stacks", description="Directory holding one folder per stack"
    )
    compose_binary: str = Field(
        default="docker", description="Executable providing the compose subcommand"
    )
    enable_console: bool = Field(
        default=False, description="Allow the interactive main console"
    )

    # Terminal sessions
    buffer_capacity: int = Field(
        default=100, ge=1, description="Output chunks kept per session"
    )
    sweep_interval: float = Field(
        default=60.0,
        gt=0,
        description="Seconds between disconnected-viewer and keep-alive sweeps",
    )
    close_timeout: float | None = Field(
        default=None,
        description="Seconds after close() before a forced kill (None to never escalate)",
    )
    log_tail_lines: int = Field(
        default=100, ge=0, description="Log lines replayed when attaching"
    )

    # Web interface
    web_host: str = Field(default="localhost", description="Web interface host")
    web_port: int = Field(default=5001, description="Web interface port")

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_file: str | None = Field(default=None, description="Log file path")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {value}")
        return level

    @property
    def stacks_path(self) -> Path:
        return Path(self.stacks_dir).expanduser()


def find_config_file(custom_path: str | None = None) -> Path | None:
    """Find configuration file in standard locations."""
    if custom_path:
        path = Path(custom_path).expanduser()
        if path.exists():
            return path
        raise FileNotFoundError(f"Config file not found: {custom_path}")

    search_paths = [
        Path.cwd() / "stack-orchestrator.yaml",
        Path.cwd() / "stack-orchestrator.yml",
        Path.home() / ".config" / "stack-orchestrator" / "config.yaml",
    ]

    for path in search_paths:
        if path.exists():
            return path

    return None


def load_config_file(config_path: Path) -> dict[str, Any]:
    """Load configuration from YAML file."""
    try:
        with open(config_path) as f:
            return yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in config file {config_path}: {e}")
    except OSError as e:
        raise ConfigurationError(f"Failed to read config file {config_path}: {e}")


def load_env_vars() -> dict[str, Any]:
    """Load configuration from environment variables."""
    config: dict[str, Any] = {}
    prefix = "STACK_ORCHESTRATOR_"

    env_mappings = {
        f"{prefix}STACKS_DIR": "stacks_dir",
        f"{prefix}COMPOSE_BINARY": "compose_binary",
        f"{prefix}ENABLE_CONSOLE": "enable_console",
        f"{prefix}SWEEP_INTERVAL": "sweep_interval",
        f"{prefix}CLOSE_TIMEOUT": "close_timeout",
        f"{prefix}WEB_HOST": "web_host",
        f"{prefix}WEB_PORT": "web_port",
        f"{prefix}LOG_LEVEL": "log_level",
        f"{prefix}LOG_FILE": "log_file",
    }

    for env_var, config_key in env_mappings.items():
        if env_var in os.environ:
            env_value = os.environ[env_var]
            if config_key == "web_port":
                try:
                    config[config_key] = int(env_value)
                except ValueError:
                    continue
            elif config_key in ("sweep_interval", "close_timeout"):
                try:
                    config[config_key] = float(env_value)
                except ValueError:
                    continue
            elif config_key == "enable_console":
                config[config_key] = env_value.lower() in ("true", "1", "yes", "on")
            else:
                config[config_key] = env_value

    return config


def load_config(
    config_path: str | None = None,
    profile: str | None = None,
    cli_overrides: dict[str, Any] | None = None,
) -> OrchestratorConfig:
    """Load configuration from file and environment variables.

    Precedence order (highest to lowest):
    1. CLI flag overrides
    2. Environment variables
    3. Configuration file (with profile support)
    4. Default values
    """
    config_data: dict[str, Any] = {}

    config_file = find_config_file(config_path)
    if config_file:
        file_data = load_config_file(config_file)

        config_data.update({k: v for k, v in file_data.items() if k != "profiles"})
        if profile and profile in file_data.get("profiles", {}):
            config_data.update(file_data["profiles"][profile])

    config_data.update(load_env_vars())

    if cli_overrides:
        config_data.update(cli_overrides)

    try:
        return OrchestratorConfig(**config_data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}")
