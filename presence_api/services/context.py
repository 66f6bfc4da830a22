# presence_api/services/context.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Mapping

from flask import current_app

from presence_api.services.face_engine import FaceEngine
from presence_api.services.replay_cache import ReplayCache

SCHEMES = ("central", "self_describing")


def utcnow() -> datetime:
    """Naive UTC, the way timestamps are stored."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


@dataclass
class PresenceSettings:
    token_ttl: timedelta = timedelta(seconds=60)
    token_refresh: timedelta = timedelta(seconds=45)
    payload_freshness: timedelta = timedelta(seconds=15)
    replay_cache_size: int = 1024
    face_threshold: float = 0.55
    token_scheme: str = "central"
    issuer_roles: tuple = ("employee", "manager")
    reset_roles: tuple = ("owner", "manager")

    @classmethod
    def from_config(cls, config: Mapping) -> "PresenceSettings":
        s = cls(
            token_ttl=timedelta(seconds=int(config.get("PRESENCE_TOKEN_TTL_SECONDS", 60))),
            token_refresh=timedelta(seconds=int(config.get("PRESENCE_TOKEN_REFRESH_SECONDS", 45))),
            payload_freshness=timedelta(seconds=int(config.get("PRESENCE_PAYLOAD_FRESHNESS_SECONDS", 15))),
            replay_cache_size=int(config.get("PRESENCE_REPLAY_CACHE_SIZE", 1024)),
            face_threshold=float(config.get("PRESENCE_FACE_THRESHOLD", 0.55)),
            token_scheme=str(config.get("PRESENCE_TOKEN_SCHEME", "central")),
        )
        if s.token_scheme not in SCHEMES:
            raise ValueError(f"PRESENCE_TOKEN_SCHEME must be one of {SCHEMES}, got {s.token_scheme!r}")
        if s.token_refresh >= s.token_ttl:
            raise ValueError("PRESENCE_TOKEN_REFRESH_SECONDS must be shorter than the token TTL")
        if s.payload_freshness.total_seconds() > 15:
            raise ValueError("PRESENCE_PAYLOAD_FRESHNESS_SECONDS may not exceed 15")
        return s


@dataclass
class PresenceContext:
    """
    Long-lived collaborators of the verification flow. Built once in the app
    factory and handed to the services.
    """
    settings: PresenceSettings
    face_engine: FaceEngine
    replay_cache: ReplayCache
    clock: Callable[[], datetime] = field(default=utcnow)

    @classmethod
    def from_config(cls, config: Mapping) -> "PresenceContext":
        settings = PresenceSettings.from_config(config)
        return cls(
            settings=settings,
            face_engine=FaceEngine(threshold=settings.face_threshold),
            replay_cache=ReplayCache(
                capacity=settings.replay_cache_size,
                window=settings.payload_freshness,
            ),
        )

    def now(self) -> datetime:
        return self.clock()


def get_context() -> PresenceContext:
    return current_app.extensions["presence"]
