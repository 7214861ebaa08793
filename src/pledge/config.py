"""Settings schema and environment loading.

Settings only steer the ambient defaults (which scheduler a promise gets when
none is passed, how long a queue drain may run, whether settlements are
traced). Everything can also be passed explicitly, so library code never
needs to read the environment directly.
"""

from __future__ import annotations

from functools import cache
import os
from typing import Any, Literal

from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from pledge.errors import ConfigurationError

ENV_PREFIX = "PLEDGE_"

SchedulerName = Literal["auto", "queue", "asyncio"]


class Settings(BaseModel):
    """Validated, immutable library settings."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    scheduler: SchedulerName = "auto"
    #: Upper bound on callbacks run by one ``QueueScheduler.run_until_idle``.
    max_drain_steps: int = Field(default=1_000_000, ge=1)
    trace: bool = False


def _coerce_bool(v: str) -> bool:
    """Convert string to boolean using common conventions."""
    return v.strip().lower() in {"1", "true", "yes", "on"}


def _coerce_env_value(value: str, target_type: Any) -> Any:
    """Coerce env string to target type when possible.

    Falls back to the original string so pydantic reports the bad value.
    """
    if target_type is bool:
        return _coerce_bool(value)
    if target_type is int:
        try:
            return int(value.strip())
        except ValueError:
            return value
    return value.strip()


def load_env() -> dict[str, Any]:
    """Read ``PLEDGE_*`` variables into a plain dict keyed by field name.

    Unknown names are kept so validation rejects typos instead of ignoring
    them.
    """
    config: dict[str, Any] = {}
    for key, value in os.environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        field_name = key[len(ENV_PREFIX) :].lower()
        info = Settings.model_fields.get(field_name)
        target_type = info.annotation if info is not None else None
        config[field_name] = _coerce_env_value(value, target_type)
    return config


@cache
def load_settings(**overrides: Any) -> Settings:
    """Resolve settings from ``.env``, the environment, and overrides.

    Precedence (highest first): keyword *overrides*, process environment,
    ``.env`` (searched upward from the working directory).
    The result is cached; call ``load_settings.cache_clear()`` after changing
    the environment.

    Raises:
        ConfigurationError: When a value fails validation.
    """
    load_dotenv(find_dotenv(usecwd=True), override=False)
    merged = load_env()
    merged.update(overrides)
    try:
        return Settings(**merged)
    except ValidationError as e:
        first = e.errors()[0] if e.errors() else {}
        loc = ".".join(str(p) for p in first.get("loc", ())) or "settings"
        raise ConfigurationError(
            f"Invalid setting {loc!r}: {first.get('msg', 'validation failed')}",
            hint=f"Check {ENV_PREFIX}{loc.upper()} in your environment or .env file.",
        ) from e
