"""Configuration management for the gpterm client."""

import os
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

CONFIG_PATH_ENV = "GPTERM_CONFIG"
DEFAULT_CONFIG_PATH = os.path.join(os.path.dirname(__file__), "config.yaml")

VALID_LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class Configuration:
    """Manages configuration and environment variables for the gpterm client."""

    def __init__(self, config_path: str | None = None) -> None:
        """Initialize configuration from YAML and environment variables.

        Args:
            config_path: YAML file to load. Falls back to $GPTERM_CONFIG,
                then to the config.yaml shipped with the package.
        """
        self.load_env()  # Load .env before resolving the config path
        self.config_path = (
            config_path or os.getenv(CONFIG_PATH_ENV) or DEFAULT_CONFIG_PATH
        )
        self._config = self._load_yaml_config(self.config_path)

    @staticmethod
    def load_env() -> None:
        """Load environment variables from .env file."""
        load_dotenv()

    @staticmethod
    def _load_yaml_config(config_path: str) -> dict[str, Any]:
        """Load configuration from YAML file."""
        with open(config_path) as file:
            config = yaml.safe_load(file)
            if not isinstance(config, dict):
                raise ValueError(
                    f"Config file must be YAML dict, got {type(config)}"
                )
            return config

    def get_llm_config(self) -> dict[str, Any]:
        """Get LLM endpoint configuration from YAML.

        Returns:
            LLM configuration dictionary.

        Raises:
            ValueError: If base_url or model is missing.
        """
        llm_config = self._config.get("llm", {})

        required_keys = ["base_url", "model"]
        for key in required_keys:
            if not llm_config.get(key):
                raise ValueError(
                    f"llm.{key} must be explicitly configured in config.yaml"
                )

        return llm_config

    def get_http_client_config(self) -> dict[str, Any]:
        """Get HTTP client timeouts for the LLM endpoint.

        Returns:
            HTTP client configuration dictionary with validated values.

        Raises:
            ValueError: If a timeout is missing or not positive.
        """
        http_config = self.get_llm_config().get("http_client", {})

        required_keys = [
            "connect_timeout", "read_timeout", "write_timeout", "pool_timeout"
        ]
        for key in required_keys:
            if key not in http_config:
                raise ValueError(
                    f"llm.http_client.{key} must be explicitly configured "
                    "in config.yaml"
                )
            if http_config[key] <= 0:
                raise ValueError(f"llm.http_client.{key} must be positive")

        return http_config

    def get_credentials_config(self) -> dict[str, Any]:
        """Get credential lookup configuration from YAML.

        Returns:
            Credentials configuration with app_folder expanded to a Path.

        Raises:
            ValueError: If a required key is missing.
        """
        credentials_config = self._config.get("credentials", {})

        required_keys = ["token_env_var", "app_folder", "token_file"]
        for key in required_keys:
            if not credentials_config.get(key):
                raise ValueError(
                    f"credentials.{key} must be explicitly configured "
                    "in config.yaml"
                )

        return {
            **credentials_config,
            "app_folder": Path(credentials_config["app_folder"]).expanduser(),
        }

    def get_streaming_config(self) -> dict[str, Any]:
        """Get streaming configuration from YAML.

        Returns:
            Streaming configuration dictionary.
        """
        streaming_config = self._config.get("streaming", {})
        halt = streaming_config.get("halt_on_decode_error", False)
        if not isinstance(halt, bool):
            raise ValueError("streaming.halt_on_decode_error must be a boolean")

        return {**streaming_config, "halt_on_decode_error": halt}

    def get_terminal_config(self) -> dict[str, Any]:
        """Get terminal prompt configuration from YAML.

        Returns:
            Terminal configuration dictionary.

        Raises:
            ValueError: If submit_marker is empty.
        """
        terminal_config = self._config.get("terminal", {})
        result_config = {
            "prompt": terminal_config.get("prompt", "> "),
            "submit_marker": terminal_config.get("submit_marker", ";;"),
        }
        if not result_config["submit_marker"]:
            raise ValueError("terminal.submit_marker must not be empty")

        return result_config

    def get_logging_config(self) -> dict[str, Any]:
        """Get logging configuration from YAML.

        Returns:
            Logging configuration dictionary.
        """
        logging_config = self._config.get("logging", {})
        level = str(logging_config.get("level", "WARNING")).upper()
        if level not in VALID_LOG_LEVELS:
            raise ValueError(f"logging.level must be one of: {VALID_LOG_LEVELS}")

        return {**logging_config, "level": level}
