"""Periodic background jobs: failed-login sweep and expired-token cleanup."""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Optional

from prodauth.config import settings
from prodauth.core.database import SessionLocal
from prodauth.services.abuse_tracker import AbuseTracker
from prodauth.services.token_service import token_service

logger = logging.getLogger(__name__)


class PeriodicWorker:
    """Runs a job on a daemon thread every ``interval_seconds`` until stopped."""

    def __init__(self, name: str, interval_seconds: float, job: Callable[[], object]) -> None:
        self.name = name
        self.interval_seconds = interval_seconds
        self._job = job
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._heartbeat: float = 0.0
        self._run_count: int = 0
        self._last_error: Optional[str] = None

    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.is_running():
            return
        self._stop_event.clear()
        # Daemon thread: never keeps the process alive on its own.
        self._thread = threading.Thread(target=self._run_loop, name=self.name, daemon=True)
        self._thread.start()
        logger.info("%s started (interval=%ss)", self.name, self.interval_seconds)

    def stop(self) -> None:
        self._stop_event.set()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=5)
        logger.info("%s stopped", self.name)

    def status(self) -> dict:
        return {
            "running": self.is_running(),
            "last_heartbeat": self._heartbeat,
            "run_count": self._run_count,
            "last_error": self._last_error,
        }

    def run_once(self) -> object:
        try:
            result = self._job()
            self._last_error = None
            return result
        except Exception as exc:
            self._last_error = str(exc)
            logger.exception("%s job failed: %s", self.name, exc)
            return None
        finally:
            self._run_count += 1
            self._heartbeat = time.time()

    def _run_loop(self) -> None:
        while not self._stop_event.wait(max(0.1, self.interval_seconds)):
            self.run_once()


def _cleanup_expired_tokens() -> int:
    db = SessionLocal()
    try:
        return token_service.cleanup_expired(db)
    finally:
        db.close()


def build_sweeper(tracker: AbuseTracker) -> PeriodicWorker:
    return PeriodicWorker(
        "failed-login-sweeper",
        settings.FAILED_LOGIN_SWEEP_INTERVAL_MINUTES * 60,
        tracker.sweep,
    )


def build_token_cleanup() -> PeriodicWorker:
    return PeriodicWorker(
        "refresh-token-cleanup",
        settings.TOKEN_CLEANUP_INTERVAL_MINUTES * 60,
        _cleanup_expired_tokens,
    )
