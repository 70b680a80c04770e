"""
Named mutual-exclusion locks with a lease and a fencing token.

`NamedLock` is the abstract contract; `FileNamedLock` backs it with one lock
file per key in a directory (file name = sha256 of the key). Acquisition uses
an exclusive create, so exactly one contender wins. Every lock carries an
expiry: a holder that crashed without releasing is reclaimed by the next
contender once `expires_at` has passed. Release only removes the file when the
caller's token still matches, so a reclaimed holder can never release the lock
of the process that replaced it.

Usage:
    locks = FileNamedLock(Path("data/run-locks"), ttl_seconds=1800)

    handle = await locks.try_acquire("2026-03:carbon")      # None if held
    async with await locks.acquire("2026-03:carbon", wait_seconds=5):
        ...                                                 # LockTimeoutError if busy
"""

from __future__ import annotations

import abc
import asyncio
import hashlib
import json
import os
import time
import uuid
from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable, Optional

from pydantic import ValidationError as PydanticValidationError
from tenacity import AsyncRetrying, retry_if_result, stop_after_delay, wait_fixed

from regen_pool.domain.models import LockMetadata
from regen_pool.domain.units import utc_now
from regen_pool.errors import LockTimeoutError
from regen_pool.utils.logging import get_logger

log = get_logger(__name__)

DEFAULT_RETRY_INTERVAL_SECONDS = 0.025


class LockHandle:
    """A held lock. Release is idempotent; also usable as `async with`."""

    def __init__(self, owner: "NamedLock", metadata: LockMetadata) -> None:
        self._owner = owner
        self.metadata = metadata
        self._released = False

    @property
    def key(self) -> str:
        return self.metadata.lock_key

    @property
    def token(self) -> str:
        return self.metadata.token

    @property
    def released(self) -> bool:
        return self._released

    async def release(self) -> None:
        if self._released:
            return
        self._released = True
        await self._owner.release(self.key, self.token)

    async def __aenter__(self) -> "LockHandle":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.release()


class NamedLock(abc.ABC):
    """
    Named lock with TTL lease and fencing token.

    Subclasses implement `try_acquire` (non-blocking) and `release`; the
    bounded-wait `acquire` is shared.
    """

    retry_interval_seconds: float = DEFAULT_RETRY_INTERVAL_SECONDS

    @abc.abstractmethod
    async def try_acquire(self, key: str) -> Optional[LockHandle]:
        """Take the lock now or return None if someone else holds it."""
        raise NotImplementedError

    @abc.abstractmethod
    async def release(self, key: str, token: str) -> bool:
        """Drop the lock if `token` still owns it. Returns True if removed."""
        raise NotImplementedError

    async def acquire(
        self,
        key: str,
        wait_seconds: float = 0.0,
        retry_interval_seconds: Optional[float] = None,
    ) -> LockHandle:
        """
        Acquire `key`, retrying on an interval for up to `wait_seconds`.

        Raises
        ------
        LockTimeoutError
            When the lock is still held after the bounded wait.
        """
        interval = retry_interval_seconds or self.retry_interval_seconds
        started = time.monotonic()
        retrying = AsyncRetrying(
            stop=stop_after_delay(max(wait_seconds, 0.0)),
            wait=wait_fixed(interval),
            retry=retry_if_result(lambda handle: handle is None),
            retry_error_callback=lambda retry_state: None,
        )
        handle = await retrying(self.try_acquire, key)
        if handle is None:
            waited = time.monotonic() - started
            log.warning(
                f"[LOCK TIMEOUT] {key}",
                extra={"lock_key": key, "waited_seconds": round(waited, 3)},
            )
            raise LockTimeoutError(key, waited)
        return handle


class FileNamedLock(NamedLock):
    """
    Lock files in a single directory, created with O_CREAT | O_EXCL.

    Parameters
    ----------
    directory : Path
        Where lock files live. Created on first use.
    ttl_seconds : float
        Lease length written into each lock as `expires_at`.
    retry_interval_seconds : float
        Poll interval used by `acquire` while waiting.
    clock : callable
        Returns the current aware UTC datetime; injectable for tests.
    """

    def __init__(
        self,
        directory: Path | str,
        ttl_seconds: float,
        retry_interval_seconds: float = DEFAULT_RETRY_INTERVAL_SECONDS,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be > 0")
        self.directory = Path(directory)
        self.ttl_seconds = ttl_seconds
        self.retry_interval_seconds = retry_interval_seconds
        self._clock = clock

    def path_for(self, key: str) -> Path:
        digest = hashlib.sha256(key.encode("utf-8")).hexdigest()
        return self.directory / f"{digest}.lock"

    async def try_acquire(self, key: str) -> Optional[LockHandle]:
        metadata = await asyncio.to_thread(self._try_acquire_sync, key)
        if metadata is None:
            return None
        log.debug(f"[LOCK ACQUIRED] {key}", extra={"lock_key": key})
        return LockHandle(self, metadata)

    async def release(self, key: str, token: str) -> bool:
        removed = await asyncio.to_thread(self._release_sync, key, token)
        log.debug(f"[LOCK RELEASED] {key}", extra={"lock_key": key, "removed": removed})
        return removed

    async def read(self, key: str) -> Optional[LockMetadata]:
        return await asyncio.to_thread(self._read, self.path_for(key))

    # -- blocking helpers, run in worker threads --------------------------

    def _try_acquire_sync(self, key: str) -> Optional[LockMetadata]:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self.path_for(key)

        # One reclaim per call: a second conflict means a live contender won.
        for _ in range(2):
            now = self._clock()
            metadata = LockMetadata(
                lock_key=key,
                token=uuid.uuid4().hex,
                pid=os.getpid(),
                acquired_at=now,
                expires_at=now + timedelta(seconds=self.ttl_seconds),
            )
            if self._try_create(path, metadata):
                return metadata

            existing = self._read(path)
            if existing is None:
                if self._unreadable_is_fresh(path):
                    return None
            elif existing.expires_at > self._clock():
                return None

            log.info(
                f"[LOCK RECLAIM] {key}",
                extra={
                    "lock_key": key,
                    "stale_pid": existing.pid if existing else None,
                    "stale_expires_at": existing.expires_at.isoformat() if existing else None,
                },
            )
            self._reclaim(path, existing)
        return None

    def _try_create(self, path: Path, metadata: LockMetadata) -> bool:
        try:
            fd = os.open(path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            return False
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            json.dump(metadata.to_document(), handle, indent=2)
            handle.flush()
            os.fsync(handle.fileno())
        return True

    def _read(self, path: Path) -> Optional[LockMetadata]:
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        try:
            return LockMetadata.model_validate(json.loads(raw))
        except (json.JSONDecodeError, PydanticValidationError):
            return None

    def _unreadable_is_fresh(self, path: Path) -> bool:
        """A lock file mid-write has no metadata yet; judge it by mtime."""
        try:
            age = time.time() - path.stat().st_mtime
        except FileNotFoundError:
            return False
        return age < self.ttl_seconds

    def _reclaim(self, path: Path, observed: Optional[LockMetadata]) -> None:
        # Move the stale file aside first so a lock created in the meantime
        # by another contender is detected and restored instead of deleted.
        aside = path.with_name(f"{path.name}.{uuid.uuid4().hex}.stale")
        try:
            os.rename(path, aside)
        except FileNotFoundError:
            return
        current = self._read(aside)
        replaced = current is not None and (observed is None or current.token != observed.token)
        if replaced and current.expires_at > self._clock():
            try:
                os.link(aside, path)
            except FileExistsError:
                pass
        aside.unlink(missing_ok=True)

    def _release_sync(self, key: str, token: str) -> bool:
        path = self.path_for(key)
        current = self._read(path)
        if current is None or current.token != token:
            return False
        aside = path.with_name(f"{path.name}.{uuid.uuid4().hex}.release")
        try:
            os.rename(path, aside)
        except FileNotFoundError:
            return False
        moved = self._read(aside)
        if moved is not None and moved.token != token:
            # Reclaimed and re-created between the read and the rename.
            try:
                os.link(aside, path)
            except FileExistsError:
                pass
            aside.unlink(missing_ok=True)
            return False
        aside.unlink(missing_ok=True)
        return True


__all__ = ["NamedLock", "FileNamedLock", "LockHandle"]
