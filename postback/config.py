import os
import re
from functools import lru_cache
from pathlib import Path

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env file early so env vars are available for YAML interpolation
load_dotenv(Path.cwd() / ".env")

# Pattern to match $VAR_NAME environment variable references
ENV_VAR_PATTERN = re.compile(r"\$([A-Z_][A-Z0-9_]*)")

DEFAULT_MAX_CONTENT_LENGTH = 8 * 1024 * 1024


def interpolate_env_vars(value):
    """Recursively replace $VAR_NAME with os.environ values."""
    if isinstance(value, str):

        def replace(match):
            var = match.group(1)
            val = os.environ.get(var)
            if val is None:
                raise ValueError(f"Environment variable ${var} not set")
            return val

        return ENV_VAR_PATTERN.sub(replace, value)
    elif isinstance(value, dict):
        return {k: interpolate_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [interpolate_env_vars(item) for item in value]
    return value


def load_app_config(config_path: Path | None = None) -> dict:
    """Load and parse app.yaml with environment variable interpolation."""
    config_path = config_path or Path.cwd() / "app.yaml"

    if not config_path.exists():
        raise FileNotFoundError(f"app.yaml not found at {config_path}")

    with open(config_path, "r") as f:
        config = yaml.safe_load(f) or {}

    return interpolate_env_vars(config)


class SessionConfig(BaseModel):
    """Session namespaces used to carry form state across redirects.

    Expirations are in seconds, 0 keeps the namespace for the whole session.
    """

    values_namespace: str = "Form.Data"
    errors_namespace: str = "Form.Errors"
    csrf_namespace: str = "Form.Csrf"
    values_expiration: int = 0
    errors_expiration: int = 0
    csrf_expiration: int = 0


class LogfireConfig(BaseModel):
    """Optional Logfire tracing."""

    enabled: bool = False
    service_name: str = "postback"
    environment: str = ""
    console: bool = False


class FormSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="POSTBACK_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    csrf_enabled: bool = True
    default_required: bool = False

    # None disables the size limit; a missing length header is still reported
    max_content_length: int | None = DEFAULT_MAX_CONTENT_LENGTH
    post_like_methods: list[str] = ["POST", "PUT", "PATCH"]

    clear_session_on_success: bool = True

    session: SessionConfig = SessionConfig()
    logfire: LogfireConfig = LogfireConfig()


@lru_cache
def get_settings() -> FormSettings:
    """Load settings from the environment/.env and the ``forms`` section of app.yaml."""
    base_settings = FormSettings()

    try:
        app_config = load_app_config()
    except FileNotFoundError:
        return base_settings

    forms_config = app_config.get("forms") or {}
    if not forms_config:
        return base_settings

    updates = {}
    for key, value in forms_config.items():
        if key == "session":
            updates["session"] = SessionConfig(**value)
        elif key == "logfire":
            updates["logfire"] = LogfireConfig(**value)
        elif key in FormSettings.model_fields:
            updates[key] = value

    return base_settings.model_copy(update=updates)
