"""Settings for talking to the CMMS backend."""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import timedelta

from cmmsync.domain.reconciliation import SameKeyPolicy

from .env import env_float, require_env_vars
from .errors import ConfigurationError
from .http_resilience import RateLimit, ResilienceConfig

CMMS_TIMEOUT_SECONDS = 15.0
DEFAULT_STALE_SECONDS = 5.0
DEFAULT_POLL_SECONDS = 15.0


@dataclass(frozen=True)
class CmmsConfig:
    """Holds CMMS API and cache configuration values."""

    api_url: str
    api_token: str
    resilience: ResilienceConfig
    stale_after: timedelta = timedelta(seconds=DEFAULT_STALE_SECONDS)
    poll_interval: timedelta | None = timedelta(seconds=DEFAULT_POLL_SECONDS)
    same_key_policy: SameKeyPolicy = SameKeyPolicy.LAST_WRITE_WINS


def _parse_policy(raw: str | None) -> SameKeyPolicy:
    if raw is None or not raw.strip():
        return SameKeyPolicy.LAST_WRITE_WINS
    try:
        return SameKeyPolicy(raw.strip().lower())
    except ValueError as exc:
        choices = ", ".join(policy.value for policy in SameKeyPolicy)
        raise ConfigurationError(
            f"CMMS_SAME_KEY_POLICY must be one of: {choices} (got {raw!r})"
        ) from exc


def get_cmms_config(*, resilience: ResilienceConfig | None = None) -> CmmsConfig:
    values = require_env_vars(("CMMS_API_URL", "CMMS_API_TOKEN"))
    api_url = values["CMMS_API_URL"].rstrip("/")
    poll_seconds = env_float("CMMS_POLL_SECONDS", DEFAULT_POLL_SECONDS)
    return CmmsConfig(
        api_url=api_url,
        api_token=values["CMMS_API_TOKEN"],
        resilience=resilience
        or ResilienceConfig(
            name="cmms",
            base_url=api_url,
            timeout_seconds=CMMS_TIMEOUT_SECONDS,
            ratelimit=RateLimit(max_calls=10, per_seconds=1.0),
            default_headers={"Content-Type": "application/json"},
        ),
        stale_after=timedelta(seconds=env_float("CMMS_STALE_SECONDS", DEFAULT_STALE_SECONDS)),
        poll_interval=timedelta(seconds=poll_seconds) if poll_seconds > 0 else None,
        same_key_policy=_parse_policy(os.getenv("CMMS_SAME_KEY_POLICY")),
    )
