"""
config.py
---------
Clinical Trial Screener - Service Configuration
-----------------------------------------------
Single source of configuration for the relay service. Values come from the
environment (a local .env is loaded via python-dotenv) and are validated once
at load time by pydantic.

The upstream endpoint, API key, tweak node id and the timeout budget are all
injected here; nothing downstream carries a literal URL or deadline.

Timeout budget
--------------
Three nested deadlines, innermost first:

    client_deadline_s   outbound call to the workflow runner (default 280 s)
    relay_deadline_s    whole relay request, as enforced by the host (300 s)
    caller_deadline_s   browser / CLI caller waiting on the relay (320 s)

The client deadline must be strictly shorter than the relay deadline so the
relay always has time to answer with a 504 before the host kills it.

Environment variables:
    LANGFLOW_RUN_URL              Workflow runner "run" URL.
    LANGFLOW_API_KEY              Sent as x-api-key; omitted when empty.
    LANGFLOW_TWEAK_NODE_ID        Input node id for the tweaks envelope.
    SCREENER_CLIENT_TIMEOUT_S     client_deadline_s
    SCREENER_RELAY_TIMEOUT_S      relay_deadline_s
    SCREENER_CALLER_TIMEOUT_S     caller_deadline_s
    SCREENER_CORS_ORIGINS         Comma-separated list of allowed origins.
    SCREENER_LOG_LEVEL            Logging level name (default INFO).

Project: Clinical Trial Screener
"""

from __future__ import annotations

import os
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, model_validator

load_dotenv()

VERSION = "1.0.0"
SERVICE_NAME = "Clinical Trial Screener"

DEFAULT_LANGFLOW_RUN_URL = "http://localhost:7860/api/v1/run/clinical-trial-screener"
DEFAULT_USER_AGENT = "Clinical-Trial-Screener/1.0"
DEFAULT_CORS_ORIGINS = ["http://localhost:3000", "http://127.0.0.1:3000"]


class TimeoutBudget(BaseModel):
    """Nested deadlines, in seconds, from the outbound call up to the caller."""

    model_config = ConfigDict(frozen=True)

    client_deadline_s: float = Field(default=280.0, gt=0)
    relay_deadline_s: float = Field(default=300.0, gt=0)
    caller_deadline_s: float = Field(default=320.0, gt=0)

    @model_validator(mode="after")
    def _check_nesting(self) -> "TimeoutBudget":
        if not self.client_deadline_s < self.relay_deadline_s:
            raise ValueError(
                f"client_deadline_s ({self.client_deadline_s}) must be shorter than "
                f"relay_deadline_s ({self.relay_deadline_s})."
            )
        if not self.relay_deadline_s <= self.caller_deadline_s:
            raise ValueError(
                f"relay_deadline_s ({self.relay_deadline_s}) must not exceed "
                f"caller_deadline_s ({self.caller_deadline_s})."
            )
        return self


class Settings(BaseModel):
    """Runtime settings for the relay and its upstream client."""

    model_config = ConfigDict(frozen=True)

    langflow_url: str = DEFAULT_LANGFLOW_RUN_URL
    langflow_api_key: Optional[str] = None
    tweak_node_id: Optional[str] = None
    user_agent: str = DEFAULT_USER_AGENT
    cors_origins: List[str] = Field(default_factory=lambda: list(DEFAULT_CORS_ORIGINS))
    log_level: str = "INFO"
    timeouts: TimeoutBudget = Field(default_factory=TimeoutBudget)


def _env_str(name: str) -> Optional[str]:
    """Return the stripped env value, or None when unset or blank."""
    value = os.getenv(name, "").strip()
    return value or None


def _env_float(name: str, default: float) -> float:
    raw = _env_str(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number of seconds, got {raw!r}.") from exc


def load_settings() -> Settings:
    """
    Build Settings from the environment.

    Returns:
        Settings: validated, immutable settings.

    Raises:
        ValueError: if a timeout is not numeric or the budget is not nested
                    (pydantic.ValidationError is a ValueError subclass).
    """
    defaults = TimeoutBudget()
    timeouts = TimeoutBudget(
        client_deadline_s=_env_float("SCREENER_CLIENT_TIMEOUT_S", defaults.client_deadline_s),
        relay_deadline_s=_env_float("SCREENER_RELAY_TIMEOUT_S", defaults.relay_deadline_s),
        caller_deadline_s=_env_float("SCREENER_CALLER_TIMEOUT_S", defaults.caller_deadline_s),
    )

    origins_raw = _env_str("SCREENER_CORS_ORIGINS")
    origins = (
        [o.strip() for o in origins_raw.split(",") if o.strip()]
        if origins_raw
        else list(DEFAULT_CORS_ORIGINS)
    )

    return Settings(
        langflow_url=_env_str("LANGFLOW_RUN_URL") or DEFAULT_LANGFLOW_RUN_URL,
        langflow_api_key=_env_str("LANGFLOW_API_KEY"),
        tweak_node_id=_env_str("LANGFLOW_TWEAK_NODE_ID"),
        cors_origins=origins,
        log_level=(_env_str("SCREENER_LOG_LEVEL") or "INFO").upper(),
        timeouts=timeouts,
    )
