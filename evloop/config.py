"""Runtime configuration read from environment variables.

Every setting has a default, so nothing needs to be exported for local runs.

Playback (`PlaybackConfig`):
- EVLOOP_SPEED: initial speed (default 1)
- EVLOOP_MIN_SPEED / EVLOOP_MAX_SPEED: accepted speed range (default 1..5)
- EVLOOP_BASE_INTERVAL_MS: tick interval before the speed discount (1200)
- EVLOOP_SPEED_STEP_MS: milliseconds removed per speed unit (200)
- EVLOOP_MIN_INTERVAL_MS: lower bound for the tick interval (200)
- EVLOOP_MATCH_BY_LABEL: match dequeued entries by label+class instead of
  task identity (default false)

Server (`ServerConfig`):
- EVLOOP_HOST / EVLOOP_PORT: bind address for the HTTP runtime
- EVLOOP_LOG_LEVEL: logging level name (INFO)
- EVLOOP_SOURCE_FILE: program loaded at startup (default: built-in demo)
- EVLOOP_API_URL: base URL the dashboard polls
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Mapping, Optional

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

_TRUE = {"1", "true", "yes", "on"}


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def _env_bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in _TRUE


@dataclass(frozen=True)
class PlaybackConfig:
    """Playback cadence and speed bounds for `ExecutionEngine`."""

    speed: int = 1
    min_speed: int = 1
    max_speed: int = 5
    base_interval_ms: int = 1200
    speed_step_ms: int = 200
    min_interval_ms: int = 200
    match_by_label: bool = False

    def clamp_speed(self, speed: int) -> int:
        return max(self.min_speed, min(self.max_speed, speed))

    def interval_ms(self, speed: int) -> int:
        """Tick interval for `speed`: faster speeds tick sooner, never below the floor."""
        return max(self.min_interval_ms, self.base_interval_ms - speed * self.speed_step_ms)

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "PlaybackConfig":
        env = os.environ if env is None else env
        defaults = cls()
        cfg = cls(
            speed=_env_int(env, "EVLOOP_SPEED", defaults.speed),
            min_speed=_env_int(env, "EVLOOP_MIN_SPEED", defaults.min_speed),
            max_speed=_env_int(env, "EVLOOP_MAX_SPEED", defaults.max_speed),
            base_interval_ms=_env_int(env, "EVLOOP_BASE_INTERVAL_MS", defaults.base_interval_ms),
            speed_step_ms=_env_int(env, "EVLOOP_SPEED_STEP_MS", defaults.speed_step_ms),
            min_interval_ms=_env_int(env, "EVLOOP_MIN_INTERVAL_MS", defaults.min_interval_ms),
            match_by_label=_env_bool(env, "EVLOOP_MATCH_BY_LABEL", defaults.match_by_label),
        )
        if cfg.min_speed > cfg.max_speed:
            raise ValueError(
                f"EVLOOP_MIN_SPEED ({cfg.min_speed}) is above EVLOOP_MAX_SPEED ({cfg.max_speed})"
            )
        return cfg


@dataclass(frozen=True)
class ServerConfig:
    """Settings for the HTTP runtime and the dashboard."""

    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "INFO"
    source_file: Optional[str] = None
    api_url: str = "http://localhost:8000"
    playback: PlaybackConfig = field(default_factory=PlaybackConfig)

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "ServerConfig":
        env = os.environ if env is None else env
        return cls(
            host=env.get("EVLOOP_HOST", "0.0.0.0"),
            port=_env_int(env, "EVLOOP_PORT", 8000),
            log_level=env.get("EVLOOP_LOG_LEVEL", "INFO").upper(),
            source_file=env.get("EVLOOP_SOURCE_FILE") or None,
            api_url=env.get("EVLOOP_API_URL", "http://localhost:8000").rstrip("/"),
            playback=PlaybackConfig.from_env(env),
        )


def configure_logging(level: str = "INFO") -> None:
    """Install the root handler used by the command-line entry points."""
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)
