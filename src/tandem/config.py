"""Runtime settings for Tandem.

Settings are plain pydantic models. ``TandemSettings.from_env()`` reads
provider API keys and ``TANDEM_*`` overrides from the environment:

    TANDEM_DEFAULT_PROVIDER   openai | anthropic | gemini | mock
    TANDEM_DEFAULT_MODEL      model name for the default provider
    TANDEM_MAX_STEPS          loop step bound (default 10)
    TANDEM_TIMEOUT_SECONDS    loop wall-clock bound (default 120)
    TANDEM_TOOL_TIMEOUT       per tool call timeout (default 30)
    TANDEM_MAX_TOOL_WORKERS   tool batch concurrency cap (default 8)
    TANDEM_MAX_NESTING_DEPTH  nested workflow limit (default 3)
    TANDEM_EVENT_BUFFER       streaming event buffer size (default 100)
    TANDEM_LOG_LEVEL          logging level name
"""

import os
from typing import Any, Mapping

from pydantic import BaseModel, Field, ValidationError

from .exceptions import ConfigurationError
from .types import ModelProvider

_ENV_FIELDS: dict[str, str] = {
    "TANDEM_DEFAULT_PROVIDER": "default_provider",
    "TANDEM_DEFAULT_MODEL": "default_model",
    "TANDEM_MAX_STEPS": "max_steps",
    "TANDEM_TIMEOUT_SECONDS": "timeout_seconds",
    "TANDEM_TOOL_TIMEOUT": "tool_timeout_seconds",
    "TANDEM_MAX_TOOL_WORKERS": "max_tool_workers",
    "TANDEM_MAX_NESTING_DEPTH": "max_nesting_depth",
    "TANDEM_EVENT_BUFFER": "event_buffer_size",
    "TANDEM_LOG_LEVEL": "log_level",
}


class TandemSettings(BaseModel):
    """Defaults shared by the registry, executors and engine."""

    # Providers
    openai_api_key: str | None = Field(default=None, repr=False)
    anthropic_api_key: str | None = Field(default=None, repr=False)
    gemini_api_key: str | None = Field(default=None, repr=False)
    default_provider: ModelProvider | None = Field(
        default=None, description="None picks the first provider with a key, else mock"
    )
    default_model: str | None = None

    # Loop bounds
    max_steps: int = Field(default=10, ge=1)
    timeout_seconds: float = Field(default=120.0, ge=0.0)

    # Tools
    tool_timeout_seconds: float = Field(default=30.0, gt=0.0)
    max_tool_workers: int = Field(default=8, ge=1)

    # Engine
    max_nesting_depth: int = Field(default=3, ge=1)
    event_buffer_size: int = Field(default=100, ge=1)

    log_level: str = "WARNING"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None, **overrides: Any) -> "TandemSettings":
        """Build settings from environment variables.

        Explicit keyword overrides win over the environment.

        Raises:
            ConfigurationError: If a variable holds an invalid value.
        """
        env = os.environ if environ is None else environ
        values: dict[str, Any] = {
            "openai_api_key": env.get("OPENAI_API_KEY"),
            "anthropic_api_key": env.get("ANTHROPIC_API_KEY"),
            "gemini_api_key": env.get("GEMINI_API_KEY") or env.get("GOOGLE_API_KEY"),
        }
        for var, field_name in _ENV_FIELDS.items():
            raw = env.get(var)
            if raw not in (None, ""):
                values[field_name] = raw
        values.update({k: v for k, v in overrides.items() if v is not None})

        try:
            return cls(**values)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid Tandem settings: {e}") from e

    def resolve_default_provider(self) -> ModelProvider:
        """Explicit default, else the first provider with a key, else mock."""
        if self.default_provider is not None:
            return self.default_provider
        if self.openai_api_key:
            return ModelProvider.OPENAI
        if self.anthropic_api_key:
            return ModelProvider.ANTHROPIC
        if self.gemini_api_key:
            return ModelProvider.GEMINI
        return ModelProvider.MOCK

    def api_key_for(self, provider: ModelProvider) -> str | None:
        return {
            ModelProvider.OPENAI: self.openai_api_key,
            ModelProvider.ANTHROPIC: self.anthropic_api_key,
            ModelProvider.GEMINI: self.gemini_api_key,
        }.get(provider)
