"""Runtime settings for a HyperRoom server, read from ``HYPERROOM_*`` variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional


def _int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


def _float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    return float(raw)


@dataclass(frozen=True)
class Settings:
    host: str = "0.0.0.0"
    port: int = 8000
    # 9 ** (max_depth + 1) leaf cells; depth 4 is already 59049.
    max_depth: int = 4
    challenge_ttl: float = 60 * 10
    game_retention: float = 10.0
    notification_limit: Optional[int] = None
    chat_history: int = 100
    chat_max_length: int = 2000
    log_level: str = "INFO"
    # Where verified claims arrive from: "header" (set by the auth proxy) or,
    # for local development only, "query".
    identity_source: str = "header"

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        """Build settings from the process environment (or ``env`` when given)."""

        env = os.environ if env is None else env
        limit = env.get("HYPERROOM_NOTIFICATION_LIMIT")
        return cls(
            host=env.get("HYPERROOM_HOST", "0.0.0.0"),
            port=_int(env, "HYPERROOM_PORT", 8000),
            max_depth=_int(env, "HYPERROOM_MAX_DEPTH", 4),
            challenge_ttl=_float(env, "HYPERROOM_CHALLENGE_TTL", 60 * 10),
            game_retention=_float(env, "HYPERROOM_GAME_RETENTION", 10.0),
            notification_limit=int(limit) if limit else None,
            chat_history=_int(env, "HYPERROOM_CHAT_HISTORY", 100),
            chat_max_length=_int(env, "HYPERROOM_CHAT_MAX_LENGTH", 2000),
            log_level=env.get("HYPERROOM_LOG_LEVEL", "INFO").upper(),
            identity_source=env.get("HYPERROOM_IDENTITY_SOURCE", "header").lower(),
        )
