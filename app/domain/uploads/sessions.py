"""
Short-lived registry of staged uploads for the inspect-then-commit flow.

``inspect`` stages a file and registers a session under an opaque token;
``commit`` consumes the session exactly once. Sessions that are never
consumed are reaped by a timer after the TTL and their staged file deleted.
"""
from __future__ import annotations

from dataclasses import dataclass, field
import logging
import os
import threading
import time
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)


@dataclass
class UploadSession:
    token: str
    staged_file_path: str
    original_name: str
    file_size_bytes: int
    extension: str
    sheet_names: List[str] = field(default_factory=list)
    uploaded_by: Optional[str] = None
    created_at: float = 0.0
    expires_at: float = 0.0

    @property
    def expires_in_ms(self) -> int:
        return max(0, int((self.expires_at - time.time()) * 1000))


def remove_staged_file(path: Optional[str]) -> None:
    """Delete a staged upload, ignoring files that are already gone."""
    if not path:
        return
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError as exc:
        logger.warning("Could not remove staged file %s: %s", path, exc)


class UploadSessionStore:
    """Thread-safe token -> :class:`UploadSession` map with per-session eviction timers."""

    def __init__(self, ttl_seconds: float):
        self.ttl_seconds = ttl_seconds
        self._sessions: Dict[str, UploadSession] = {}
        self._timers: Dict[str, threading.Timer] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def create(
        self,
        token: str,
        *,
        staged_file_path: str,
        original_name: str,
        file_size_bytes: int,
        extension: str,
        sheet_names: List[str],
        uploaded_by: Optional[str] = None,
    ) -> UploadSession:
        now = time.time()
        session = UploadSession(
            token=token,
            staged_file_path=staged_file_path,
            original_name=original_name,
            file_size_bytes=file_size_bytes,
            extension=extension,
            sheet_names=list(sheet_names),
            uploaded_by=uploaded_by,
            created_at=now,
            expires_at=now + self.ttl_seconds,
        )
        timer = threading.Timer(self.ttl_seconds, self.expire, args=(token,))
        timer.daemon = True

        with self._lock:
            if token in self._sessions:
                raise KeyError(f"Upload session {token} already exists")
            self._sessions[token] = session
            self._timers[token] = timer
        timer.start()
        logger.info("Registered upload session %s for %s (%d bytes)", token, original_name, file_size_bytes)
        return session

    def get(self, token: str) -> Optional[UploadSession]:
        with self._lock:
            return self._sessions.get(token)

    def _pop(self, token: str) -> Optional[UploadSession]:
        with self._lock:
            session = self._sessions.pop(token, None)
            timer = self._timers.pop(token, None)
        if timer is not None:
            timer.cancel()
        return session

    def consume(self, token: str) -> Optional[UploadSession]:
        """Remove and return the session; a token can be consumed only once."""
        session = self._pop(token)
        if session is not None:
            logger.info("Consumed upload session %s", token)
        return session

    def expire(self, token: str, remove_file: bool = True) -> None:
        """Drop the session and, unless the caller reuses it, its staged file."""
        session = self._pop(token)
        if session is None:
            return
        if remove_file:
            remove_staged_file(session.staged_file_path)
        logger.info("Expired upload session %s (file removed: %s)", token, remove_file)

    def clear(self) -> None:
        """Expire every session; used on application shutdown."""
        with self._lock:
            tokens = list(self._sessions)
        for token in tokens:
            self.expire(token)
