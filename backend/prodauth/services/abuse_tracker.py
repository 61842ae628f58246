"""In-memory failed-login tracking for the login endpoint."""

from __future__ import annotations

import logging
import math
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Tuple

from prodauth.config import Settings, settings
from prodauth.core.exceptions import LoginLockedError, OriginThrottledError

logger = logging.getLogger(__name__)

UNKNOWN = "unknown"


@dataclass
class FailedAttempt:
    timestamp: float
    reason: str
    user_agent: Optional[str] = None


@dataclass
class _Bucket:
    attempts: List[FailedAttempt] = field(default_factory=list)


def normalize_actor(actor_key: Optional[str]) -> str:
    key = (actor_key or "").strip().lower()
    return key or UNKNOWN


def normalize_origin(origin_key: Optional[str]) -> str:
    key = (origin_key or "").strip()
    return key or UNKNOWN


class AbuseTracker:
    """
    Sliding-window counter of failed logins per (actor, origin).

    State is process-local: each worker process enforces its own view.
    The clock is injectable so tests can move time without sleeping.
    """

    def __init__(
        self,
        *,
        max_attempts: int = 5,
        lockout_seconds: float = 15 * 60,
        retention_seconds: float = 10 * 60,
        origin_multiplier: int = 3,
        enabled: bool = True,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.max_attempts = max_attempts
        self.lockout_seconds = lockout_seconds
        self.retention_seconds = retention_seconds
        self.origin_multiplier = origin_multiplier
        self.enabled = enabled
        self._clock = clock
        self._lock = threading.Lock()
        self._buckets: Dict[Tuple[str, str], _Bucket] = {}

    @classmethod
    def from_settings(cls, settings: Settings, **overrides) -> "AbuseTracker":
        options = dict(
            max_attempts=settings.FAILED_LOGIN_MAX_ATTEMPTS,
            lockout_seconds=settings.FAILED_LOGIN_LOCKOUT_MINUTES * 60,
            retention_seconds=settings.FAILED_LOGIN_RETENTION_MINUTES * 60,
            origin_multiplier=settings.FAILED_LOGIN_ORIGIN_MULTIPLIER,
            enabled=settings.login_guard_enabled(),
        )
        options.update(overrides)
        return cls(**options)

    @property
    def origin_threshold(self) -> int:
        return self.max_attempts * self.origin_multiplier

    def gate(self, actor_key: Optional[str], origin_key: Optional[str]) -> None:
        """
        Reject a login attempt before the password is checked.

        Raises:
            LoginLockedError: the actor reached the threshold from this origin
                and the last failure is inside the lockout window
            OriginThrottledError: the origin reached the origin-wide threshold
        """
        if not self.enabled:
            return

        actor = normalize_actor(actor_key)
        origin = normalize_origin(origin_key)
        now = self._clock()

        with self._lock:
            bucket = self._buckets.get((actor, origin))
            count = len(bucket.attempts) if bucket else 0
            last = bucket.attempts[-1].timestamp if count else None

        if count >= self.max_attempts and last is not None:
            elapsed = now - last
            if elapsed < self.lockout_seconds:
                remaining_minutes = math.ceil((self.lockout_seconds - elapsed) / 60)
                locked_until = datetime.fromtimestamp(last + self.lockout_seconds, tz=timezone.utc)
                raise LoginLockedError(remaining_minutes, count, locked_until.isoformat())

        origin_total = self.attempts_from_origin(origin)
        if origin_total >= self.origin_threshold:
            raise OriginThrottledError(origin, origin_total)

    def record_failure(
        self,
        actor_key: Optional[str],
        origin_key: Optional[str],
        reason: str,
        user_agent: Optional[str] = None,
    ) -> int:
        """Append a failed attempt and return the bucket's attempt count."""
        key = (normalize_actor(actor_key), normalize_origin(origin_key))
        attempt = FailedAttempt(timestamp=self._clock(), reason=reason, user_agent=user_agent)
        with self._lock:
            bucket = self._buckets.setdefault(key, _Bucket())
            bucket.attempts.append(attempt)
            count = len(bucket.attempts)

        if count >= self.max_attempts:
            logger.warning(
                "Failed login threshold reached: actor=%s origin=%s attempts=%s",
                key[0],
                key[1],
                count,
            )
        return count

    def clear(self, actor_key: Optional[str], origin_key: Optional[str]) -> None:
        key = (normalize_actor(actor_key), normalize_origin(origin_key))
        with self._lock:
            self._buckets.pop(key, None)

    def get_attempts(self, actor_key: Optional[str], origin_key: Optional[str]) -> List[FailedAttempt]:
        key = (normalize_actor(actor_key), normalize_origin(origin_key))
        with self._lock:
            bucket = self._buckets.get(key)
            return list(bucket.attempts) if bucket else []

    def attempts_from_origin(self, origin_key: Optional[str]) -> int:
        origin = normalize_origin(origin_key)
        with self._lock:
            return sum(
                len(bucket.attempts)
                for (_, bucket_origin), bucket in self._buckets.items()
                if bucket_origin == origin
            )

    def sweep(self) -> int:
        """
        Drop attempts older than the retention window.

        The lock is taken per bucket so a long sweep never stalls gating.

        Returns:
            Number of buckets deleted because they became empty
        """
        cutoff = self._clock() - self.retention_seconds
        with self._lock:
            keys = list(self._buckets.keys())

        removed = 0
        for key in keys:
            with self._lock:
                bucket = self._buckets.get(key)
                if bucket is None:
                    continue
                bucket.attempts = [a for a in bucket.attempts if a.timestamp > cutoff]
                if not bucket.attempts:
                    del self._buckets[key]
                    removed += 1

        if removed:
            logger.debug("Failed-login sweep removed %s empty buckets", removed)
        return removed

    def reset(self) -> None:
        with self._lock:
            self._buckets.clear()

    def status(self) -> dict:
        with self._lock:
            buckets = len(self._buckets)
            attempts = sum(len(b.attempts) for b in self._buckets.values())
        return {
            "enabled": self.enabled,
            "buckets": buckets,
            "attempts": attempts,
            "max_attempts": self.max_attempts,
            "lockout_seconds": self.lockout_seconds,
            "origin_threshold": self.origin_threshold,
        }


abuse_tracker = AbuseTracker.from_settings(settings)
