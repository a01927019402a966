"""Configuration management for the chat streaming client."""

import os
from typing import Any

import yaml
from dotenv import load_dotenv

SELECTED_MODEL_ENV = "SELECTED_MODEL"
VALID_TRANSPORTS = ("fetch", "sse")


class Configuration:
    """Manages configuration and environment variables for the client."""

    def __init__(self, config_path: str | None = None) -> None:
        """Initialize configuration from YAML and environment variables."""
        self.load_env()  # Load .env for API keys
        self.config_path = config_path or os.path.join(
            os.path.dirname(__file__), "config.yaml"
        )
        self._config = self._load_yaml_config()

    @staticmethod
    def load_env() -> None:
        """Load environment variables from .env file."""
        load_dotenv()

    def _load_yaml_config(self) -> dict[str, Any]:
        """Load configuration from YAML file."""
        with open(self.config_path) as file:
            config = yaml.safe_load(file)
            if not isinstance(config, dict):
                raise ValueError(
                    f"Config file must be YAML dict, got {type(config)}"
                )
            return config

    @property
    def llm_api_key(self) -> str:
        """Get the API key for the active LLM provider.

        Returns:
            The API key as a string.

        Raises:
            ValueError: If the API key is not found in environment variables.
        """
        llm_config = self.get_llm_config()
        env_key = llm_config.get("api_key_env")
        if not env_key:
            raise ValueError(
                f"Provider '{llm_config['name']}' has no api_key_env configured"
            )

        api_key = os.getenv(env_key)
        if not api_key:
            raise ValueError(
                f"API key '{env_key}' not found in environment variables "
                f"for provider '{llm_config['name']}'"
            )

        return api_key

    @property
    def selected_model(self) -> str:
        """Model to request: SELECTED_MODEL from the environment, else config."""
        model = os.getenv(SELECTED_MODEL_ENV) or self.get_llm_config().get("model")
        if not model:
            raise ValueError(
                "No model configured: set SELECTED_MODEL or llm.providers.<active>.model"
            )
        return model

    def get_llm_config(self) -> dict[str, Any]:
        """Get active LLM provider configuration from YAML.

        Returns:
            Active provider configuration with its name under ``name``.
        """
        llm_config = self._config.get("llm", {})
        active_provider = llm_config.get("active")
        providers = llm_config.get("providers", {})

        if active_provider not in providers:
            raise ValueError(
                f"Active provider '{active_provider}' not found in providers config"
            )

        provider_config = providers[active_provider]
        if "base_url" not in provider_config:
            raise ValueError(
                f"llm.providers.{active_provider}.base_url must be explicitly "
                "configured in config.yaml"
            )

        return {"name": active_provider, **provider_config}

    def get_http_client_config(self) -> dict[str, Any]:
        """Get HTTP client timeouts for the active LLM provider.

        Raises:
            ValueError: If a timeout is missing or not positive.
        """
        llm_config = self.get_llm_config()
        http_config = llm_config.get("http_client", {})

        required_keys = [
            "connect_timeout", "read_timeout", "write_timeout", "pool_timeout"
        ]
        for key in required_keys:
            if key not in http_config:
                raise ValueError(
                    f"http_client.{key} must be explicitly configured "
                    f"for provider '{llm_config['name']}' in config.yaml"
                )
            if not isinstance(http_config[key], int | float) or http_config[key] <= 0:
                raise ValueError(f"http_client.{key} must be positive")

        return http_config

    def get_streaming_config(self) -> dict[str, Any]:
        """Get streaming configuration from YAML.

        Raises:
            ValueError: If required streaming parameters are missing or invalid.
        """
        streaming_config = self._config.get("streaming", {})

        required_keys = ["reasoning_models", "boundary_marker", "transport"]
        for key in required_keys:
            if key not in streaming_config:
                raise ValueError(
                    f"streaming.{key} must be explicitly configured in config.yaml"
                )

        if not isinstance(streaming_config["reasoning_models"], list):
            raise ValueError("streaming.reasoning_models must be a list")
        if not streaming_config["boundary_marker"]:
            raise ValueError("streaming.boundary_marker must not be empty")
        if streaming_config["transport"] not in VALID_TRANSPORTS:
            raise ValueError(
                f"streaming.transport must be one of: {list(VALID_TRANSPORTS)}"
            )

        return streaming_config

    def get_logging_config(self) -> dict[str, Any]:
        """Get logging configuration from YAML."""
        return self._config.get("logging", {})
