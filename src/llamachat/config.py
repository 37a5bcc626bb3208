"""Configuration loading and persistence.

Settings are layered, later layers winning:

1. Built-in defaults (the Settings field defaults)
2. ``settings.json`` in the data home
3. ``.env`` in the data home, then the process environment; these
   supply credentials and custom router models only

Credentials are never written to settings.json. They go back to the
``.env`` file they were read from.
"""

import json
import logging
import os
from pathlib import Path
from typing import Any

from dotenv import dotenv_values, set_key
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .constants import (
    DEFAULT_GEMINI_MODEL,
    DEFAULT_HOME_DIRNAME,
    DEFAULT_OLLAMA_MODEL,
    DEFAULT_OLLAMA_URL,
    DEFAULT_OPENROUTER_MODEL,
    DEFAULT_TEMPERATURE,
    ENV_FILENAME,
    HOME_ENV_VAR,
    SETTINGS_FILENAME,
)
from .errors import ConfigError
from .llm.models import ProviderConfig, ProviderId

logger = logging.getLogger(__name__)

# Environment variable -> Settings field
CREDENTIAL_VARS = {
    "GEMINI_API_KEY": "gemini_api_key",
    "OPENROUTER_API_KEY": "openrouter_api_key",
}
CUSTOM_MODELS_VAR = "OPENROUTER_CUSTOM_MODELS"
ENV_ONLY_FIELDS = frozenset({*CREDENTIAL_VARS.values(), "custom_models"})


def resolve_home(home: str | Path | None = None) -> Path:
    """Data home: explicit argument, then $LLAMACHAT_HOME, then ~/.llamachat."""
    if home is not None:
        return Path(home).expanduser()
    env_home = os.getenv(HOME_ENV_VAR)
    if env_home:
        return Path(env_home).expanduser()
    return Path.home() / DEFAULT_HOME_DIRNAME


class CustomModel(BaseModel):
    """User-added router model shown alongside the built-in choices."""

    name: str
    value: str


class Settings(BaseModel):
    """User-editable settings for every provider."""

    model_config = ConfigDict(extra="ignore", protected_namespaces=())

    provider: str = ProviderId.OLLAMA.value
    ollama_url: str = DEFAULT_OLLAMA_URL
    model_name: str = DEFAULT_OLLAMA_MODEL
    gemini_api_key: str = Field(default="", repr=False)
    gemini_model: str = DEFAULT_GEMINI_MODEL
    openrouter_api_key: str = Field(default="", repr=False)
    openrouter_model: str = DEFAULT_OPENROUTER_MODEL
    temperature: float = Field(default=DEFAULT_TEMPERATURE, ge=0.0, le=1.0)
    custom_models: list[CustomModel] = Field(default_factory=list)

    def provider_config(self) -> ProviderConfig:
        """The ProviderConfig for the selected provider.

        An unrecognised provider is passed through as-is; dispatching it
        raises UnknownProviderError.
        """
        provider = self.provider.lower()
        if provider == ProviderId.GEMINI:
            return ProviderConfig(
                provider_id=provider,
                api_key=self.gemini_api_key or None,
                model_id=self.gemini_model,
                temperature=self.temperature,
            )
        if provider == ProviderId.OPENROUTER:
            return ProviderConfig(
                provider_id=provider,
                api_key=self.openrouter_api_key or None,
                model_id=self.openrouter_model,
                temperature=self.temperature,
            )
        return ProviderConfig(
            provider_id=self.provider,
            endpoint_url=self.ollama_url,
            model_id=self.model_name,
            temperature=self.temperature,
        )

    def redacted(self) -> dict[str, Any]:
        """Settings as a dict with credentials masked, for display."""
        data = self.model_dump(mode="json")
        for field_name in CREDENTIAL_VARS.values():
            if data[field_name]:
                data[field_name] = "****" + data[field_name][-4:]
        return data


class ConfigStore:
    """Reads and writes Settings under a data home directory.

    Hidden design decisions:
    - Which layer each setting comes from
    - File formats (JSON for settings, dotenv for credentials)
    """

    def __init__(self, home: str | Path | None = None):
        self._home = resolve_home(home)
        self._settings: Settings | None = None

    @property
    def home(self) -> Path:
        return self._home

    @property
    def settings_path(self) -> Path:
        return self._home / SETTINGS_FILENAME

    @property
    def env_path(self) -> Path:
        return self._home / ENV_FILENAME

    @property
    def settings(self) -> Settings:
        if self._settings is None:
            self._settings = self.load()
        return self._settings

    def _read_settings_file(self) -> dict[str, Any]:
        if not self.settings_path.exists():
            return {}
        try:
            data = json.loads(self.settings_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Ignoring unreadable %s: %s", self.settings_path, e)
            return {}
        if not isinstance(data, dict):
            logger.warning("Ignoring %s: expected a JSON object", self.settings_path)
            return {}
        # Credentials in settings.json are not honoured
        return {k: v for k, v in data.items() if k not in ENV_ONLY_FIELDS}

    def _read_environment(self) -> dict[str, Any]:
        values: dict[str, str | None] = {}
        if self.env_path.exists():
            values.update(dotenv_values(self.env_path))
        for var in (*CREDENTIAL_VARS, CUSTOM_MODELS_VAR):
            if var in os.environ:
                values[var] = os.environ[var]

        layer: dict[str, Any] = {}
        for var, field_name in CREDENTIAL_VARS.items():
            if values.get(var):
                layer[field_name] = values[var]

        raw_models = values.get(CUSTOM_MODELS_VAR)
        if raw_models:
            try:
                layer["custom_models"] = json.loads(raw_models)
            except json.JSONDecodeError as e:
                logger.warning("Ignoring malformed %s: %s", CUSTOM_MODELS_VAR, e)
        return layer

    def load(self) -> Settings:
        """Re-read every layer and return the merged Settings.

        Raises:
            ConfigError: If the merged values are invalid
        """
        merged = {**self._read_settings_file(), **self._read_environment()}
        try:
            self._settings = Settings.model_validate(merged)
        except ValidationError as e:
            raise ConfigError(f"Invalid settings: {e}") from e
        return self._settings

    def persist(self, changes: dict[str, Any]) -> Settings:
        """Merge changes into the current settings and write them back.

        Args:
            changes: Partial settings keyed by Settings field name

        Returns:
            The updated Settings

        Raises:
            ConfigError: If a field is unknown or a value is invalid
        """
        unknown = set(changes) - set(Settings.model_fields)
        if unknown:
            raise ConfigError(f"Unknown setting(s): {', '.join(sorted(unknown))}")

        try:
            updated = Settings.model_validate({**self.settings.model_dump(), **changes})
        except ValidationError as e:
            raise ConfigError(f"Invalid settings: {e}") from e

        self._home.mkdir(parents=True, exist_ok=True)

        plain = updated.model_dump(mode="json", exclude=set(ENV_ONLY_FIELDS))
        self.settings_path.write_text(json.dumps(plain, indent=2), encoding="utf-8")

        env_fields = ENV_ONLY_FIELDS & set(changes)
        if env_fields:
            self.env_path.touch(exist_ok=True)
            for var, field_name in CREDENTIAL_VARS.items():
                if field_name in env_fields:
                    set_key(self.env_path, var, getattr(updated, field_name))
            if "custom_models" in env_fields:
                models = json.dumps([m.model_dump() for m in updated.custom_models])
                set_key(self.env_path, CUSTOM_MODELS_VAR, models, quote_mode="always")
            logger.info("Saved credentials to %s", self.env_path)

        self._settings = updated
        return updated

    def active_config(self) -> ProviderConfig:
        """ProviderConfig for the currently selected provider."""
        return self.settings.provider_config()
