from __future__ import annotations

import os
from typing import Any, Literal, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError

load_dotenv()


class Settings(BaseModel):
    RATE_LIMIT_ENABLED: bool = Field(default=True)
    RATE_LIMIT_CAPACITY: float = Field(default=10.0, gt=0, description="max tokens per key")
    RATE_LIMIT_REFILL_RATE: float = Field(default=1.0, gt=0, description="tokens per second")
    RATE_LIMIT_RETRY_AFTER: int = Field(default=5, ge=0)
    RATE_LIMIT_RETRY_MODE: Literal["fixed", "deficit"] = Field(default="fixed")
    RATE_LIMIT_MAX_KEYS: Optional[int] = Field(default=None, ge=1)
    LOG_LEVEL: str = Field(default="INFO")


def _load_settings(existing: Settings | None = None) -> Settings:
    values: dict[str, Any] = {}
    for name, field in Settings.model_fields.items():
        env_value = os.getenv(name)
        if env_value is None or (env_value == "" and not field.is_required()):
            if existing is not None and hasattr(existing, name):
                values[name] = getattr(existing, name)
                continue
            values[name] = field.get_default(call_default_factory=True)
        else:
            values[name] = env_value

    try:
        return Settings(**values)
    except ValidationError as exc:
        invalid = sorted(
            {str(error["loc"][0]) for error in exc.errors() if error.get("loc")}
        )
        joined = ", ".join(invalid) or "unknown"
        raise RuntimeError(f"Invalid rate limit configuration: {joined}") from exc


settings = _load_settings()


def reload_settings() -> Settings:
    global settings
    fresh = _load_settings(settings)
    settings.__dict__.update(fresh.__dict__)
    return settings
