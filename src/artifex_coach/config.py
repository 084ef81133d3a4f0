"""Application configuration using pydantic-settings."""

import functools
from pathlib import Path
from typing import Any

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict


def _find_project_root() -> Path:
    """Find project root by locating pyproject.toml."""
    current = Path(__file__).resolve()
    for parent in [current] + list(current.parents):
        if (parent / "pyproject.toml").exists():
            return parent
    return Path(__file__).resolve().parent.parent.parent


class YamlSettingsSource(PydanticBaseSettingsSource):
    """Custom settings source that loads from settings.yaml."""

    def get_field_value(self, field_name: str) -> tuple[Any, str, bool]:
        """Not used - we implement __call__ instead."""
        return None, "", False

    def __call__(self) -> dict[str, Any]:
        """Load settings from YAML file."""
        yaml_path = _find_project_root() / "config" / "settings.yaml"
        if not yaml_path.exists():
            return {}

        with open(yaml_path, encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}

        # Flatten nested structure to match Settings field names
        flattened = {}
        if 'server' in data:
            flattened['host'] = data['server'].get('host')
            flattened['port'] = data['server'].get('port')
        if 'models' in data:
            models = data['models']
            flattened['fast_model'] = models.get('fast')
            flattened['reasoning_model'] = models.get('reasoning')
            flattened['image_model'] = models.get('image')
            flattened['reasoning_effort'] = models.get('reasoning_effort')
            flattened['image_size'] = models.get('image_size')
        if 'challenge' in data:
            flattened['hint_penalty_seconds'] = data['challenge'].get('hint_penalty_seconds')
            flattened['timer_tick_seconds'] = data['challenge'].get('tick_seconds')
        if 'progression' in data:
            flattened['default_step_xp'] = data['progression'].get('default_step_xp')

        # Remove None values
        return {k: v for k, v in flattened.items() if v is not None}


class Settings(BaseSettings):
    """Application settings loaded from environment and config files."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # OpenAI
    openai_api_key: str = Field(default="", description="OpenAI API key")
    fast_model: str = Field(default="gpt-4o-mini")
    reasoning_model: str = Field(default="o3")
    image_model: str = Field(default="gpt-image-1")
    reasoning_effort: str = Field(default="high")
    image_size: str = Field(default="1024x1024")

    # Authentication (optional: None disables auth)
    app_secret: str | None = Field(default=None)

    # Server
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000)

    # Engine
    hint_penalty_seconds: int = Field(default=120)
    timer_tick_seconds: float = Field(default=1.0)
    default_step_xp: int = Field(default=50)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Customise settings sources to include YAML file.

        Priority order (highest to lowest):
        1. init_settings (arguments passed to Settings())
        2. env_settings (environment variables)
        3. dotenv_settings (.env file)
        4. YamlSettingsSource (settings.yaml)
        5. file_secret_settings
        """
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            YamlSettingsSource(settings_cls),
            file_secret_settings,
        )


@functools.lru_cache
def get_settings() -> Settings:
    """Get application settings singleton."""
    return Settings()


def load_persona(persona_name: str = "default") -> dict:
    """Load mentor/reviewer persona configuration from YAML file."""
    persona_path = _find_project_root() / "config" / "personas" / f"{persona_name}.yaml"
    if not persona_path.exists():
        raise FileNotFoundError(f"Persona file not found: {persona_path}")
    with open(persona_path, encoding='utf-8') as f:
        data = yaml.safe_load(f)
    return data.get('persona', {})
