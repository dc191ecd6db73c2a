"""
Environment-sourced configuration for profile-sync.

Settings are read once at startup (a local .env file is honoured through
python-dotenv) and validated with Pydantic. Missing mandatory settings are
reported together in a single ConfigError before any network activity.
"""

import os
from datetime import datetime, timezone
from typing import Mapping

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator

from .core.errors import ConfigError
from .core.mappings import DEFAULT_KEY_FIELDS

MANDATORY_ENV_VARS = (
    "MIXPANEL_PROJECT_ID",
    "MIXPANEL_SERVICE_USERNAME",
    "MIXPANEL_SERVICE_SECRET",
    "MIXPANEL_TOKEN",
    "DB_URI",
    "DB_NAME",
    "DB_TABLE",
)


DEFAULT_AID_PROP_NAME = "Store Id (aid)"


def new_run_id(override: str | None = None) -> str:
    """
    Return the run identifier: the override if given, else the current UTC
    time as an ISO-8601 timestamp with millisecond precision.
    """
    if override:
        return override
    now = datetime.now(timezone.utc)
    return f"{now:%Y-%m-%dT%H:%M:%S}.{now.microsecond // 1000:03d}Z"


def _flag(env: Mapping[str, str], name: str, default: str, truthy: str = "true") -> bool:
    return env.get(name, default).strip().lower() == truthy


class Settings(BaseModel):
    """
    Validated runtime settings.

    See from_env() for the environment variable behind each field.
    """

    # Analytics platform
    project_id: str = Field(..., min_length=1)
    service_username: str = Field(..., min_length=1)
    service_secret: str = Field(..., min_length=1)
    token: str = Field(..., min_length=1)
    jql_url: str = "https://mixpanel.com/api/2.0/jql"
    engage_url: str = "https://api.mixpanel.com/engage"
    http_timeout_seconds: float = Field(default=120.0, gt=0)

    # Database
    db_uri: str = Field(..., min_length=1)
    db_name: str = Field(..., min_length=1)
    db_table: str = Field(..., min_length=1)
    db_key_fields: tuple[str, ...] = DEFAULT_KEY_FIELDS

    # Behaviour toggles
    distinct_equals_aid: bool = True
    dry_run: bool = False
    force_update_if_different: bool = False
    aid_prop_name: str = DEFAULT_AID_PROP_NAME
    fallback_aid_equals_distinct: bool = False

    # Run-scoped tunables
    max_jql_results: int = Field(default=0, ge=0)
    dry_run_limit: int = Field(default=0, ge=0)
    db_batch_size: int = Field(default=1000, gt=0)
    db_sample_limit: int = Field(default=0, ge=0)
    batch_update_size: int = Field(default=1000, gt=0)
    batch_update_pause_ms: int = Field(default=300, ge=0)
    run_id: str = Field(default_factory=new_run_id)

    @field_validator("db_key_fields", mode="before")
    @classmethod
    def _split_key_fields(cls, value):
        if isinstance(value, str):
            value = [part.strip() for part in value.split(",") if part.strip()]
        return value

    @field_validator("db_key_fields")
    @classmethod
    def _one_or_two_keys(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        if not 1 <= len(value) <= 2:
            raise ValueError("DB_KEY_FIELDS must name one or two columns")
        return value

    @property
    def pause_seconds(self) -> float:
        return self.batch_update_pause_ms / 1000

    @property
    def use_profile_id_fallback(self) -> bool:
        """
        Whether a profile without a join key may be looked up by its
        profile id. Requires the fallback toggle and that profile ids are
        known to be interchangeable with join keys.
        """
        return self.fallback_aid_equals_distinct and self.distinct_equals_aid

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None, load_dotenv_file: bool = True) -> "Settings":
        """
        Load settings from environment variables.

        Args:
            env: Mapping to read instead of os.environ (for tests)
            load_dotenv_file: Load a .env file into os.environ first

        Returns:
            Settings instance

        Raises:
            ConfigError: If mandatory variables are missing or a value is invalid
        """
        if env is None:
            if load_dotenv_file:
                load_dotenv()
            env = os.environ

        missing = [name for name in MANDATORY_ENV_VARS if not env.get(name)]
        if missing:
            raise ConfigError(f"Missing env var(s): {', '.join(missing)}", missing=missing)

        values = {
            "project_id": env["MIXPANEL_PROJECT_ID"],
            "service_username": env["MIXPANEL_SERVICE_USERNAME"],
            "service_secret": env["MIXPANEL_SERVICE_SECRET"],
            "token": env["MIXPANEL_TOKEN"],
            "db_uri": env["DB_URI"],
            "db_name": env["DB_NAME"],
            "db_table": env["DB_TABLE"],
            "distinct_equals_aid": _flag(env, "DISTINCT_EQUALS_AID", "true"),
            "dry_run": _flag(env, "DRY_RUN", "0", truthy="1"),
            "force_update_if_different": _flag(env, "FORCE_UPDATE_IF_DIFFERENT", "false"),
            "aid_prop_name": env.get("AID_PROP_NAME", DEFAULT_AID_PROP_NAME),
            "fallback_aid_equals_distinct": _flag(env, "FALLBACK_AID_EQUALS_DISTINCT", "false"),
            "run_id": new_run_id(env.get("SYNC_RUN_TAG")),
        }

        optional = {
            "MIXPANEL_JQL_URL": "jql_url",
            "MIXPANEL_ENGAGE_URL": "engage_url",
            "HTTP_TIMEOUT_SECONDS": "http_timeout_seconds",
            "DB_KEY_FIELDS": "db_key_fields",
            "MAX_JQL_RESULTS": "max_jql_results",
            "DRY_RUN_LIMIT": "dry_run_limit",
            "DB_BATCH_SIZE": "db_batch_size",
            "DB_SAMPLE_LIMIT": "db_sample_limit",
            "BATCH_UPDATE_SIZE": "batch_update_size",
            "BATCH_UPDATE_PAUSE_MS": "batch_update_pause_ms",
        }
        for env_name, field_name in optional.items():
            if env.get(env_name):
                values[field_name] = env[env_name]

        try:
            return cls(**values)
        except ValidationError as e:
            raise ConfigError(f"Invalid configuration: {e}") from e
