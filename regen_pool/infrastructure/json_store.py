"""
Versioned JSON document store shared by the contribution and execution ledgers.

A store owns one file shaped as ``{"version": 1, "records": [...]}`` where each
record is a camelCase document of a pydantic model. Writes are atomic: the
document is written to a temp file in the same directory, flushed and fsynced,
then moved over the target with ``os.replace``. Read-modify-write cycles run
under an advisory file lock (see `regen_pool.infrastructure.locks`) so two
processes sharing a data directory never lose each other's appends.
"""

from __future__ import annotations

import asyncio
import json
import os
import tempfile
from pathlib import Path
from typing import Any, Callable, Generic, List, Optional, Tuple, Type, TypeVar

from pydantic import ValidationError as PydanticValidationError

from regen_pool.domain.models import LedgerModel
from regen_pool.errors import StoreFormatError
from regen_pool.infrastructure.locks import FileNamedLock
from regen_pool.utils.logging import get_logger

log = get_logger(__name__)

STORE_VERSION = 1

RecordT = TypeVar("RecordT", bound=LedgerModel)
ResultT = TypeVar("ResultT")

# Updater contract: receives the current records and returns
# (new records to persist, or None to skip the write; value for the caller).
StateUpdater = Callable[[List[RecordT]], Tuple[Optional[List[RecordT]], ResultT]]


class JsonDocumentStore(Generic[RecordT]):
    """
    Parameters
    ----------
    path : Path
        Ledger file. Parent directories are created on first write.
    record_model : type
        Pydantic model used to parse and dump each record.
    lock_wait_seconds : float
        How long a writer waits for the store lock before LockTimeoutError.
    lock_retry_seconds : float
        Poll interval while waiting for the store lock.
    lock_stale_seconds : float
        Lease on the store lock; a crashed writer's lock is reclaimed after it.
    """

    def __init__(
        self,
        path: Path | str,
        record_model: Type[RecordT],
        lock_wait_seconds: float = 10.0,
        lock_retry_seconds: float = 0.025,
        lock_stale_seconds: float = 60.0,
    ) -> None:
        self.path = Path(path)
        self.record_model = record_model
        self.lock_wait_seconds = lock_wait_seconds
        self._lock = FileNamedLock(
            self.path.parent / ".locks",
            ttl_seconds=lock_stale_seconds,
            retry_interval_seconds=lock_retry_seconds,
        )

    @property
    def lock_key(self) -> str:
        return f"store:{self.path.resolve()}"

    async def read_state(self) -> List[RecordT]:
        return await asyncio.to_thread(self._load)

    async def write_state(self, records: List[RecordT]) -> None:
        await asyncio.to_thread(self._write, records)

    async def with_exclusive_state(self, updater: StateUpdater) -> Any:
        """
        Run `updater` against the current records while holding the store lock.

        The updater is a plain function; it must not await. When it returns a
        record list, that list is persisted before the lock is released.
        """
        async with await self._lock.acquire(self.lock_key, wait_seconds=self.lock_wait_seconds):
            records = await asyncio.to_thread(self._load)
            updated, result = updater(records)
            if updated is not None:
                await asyncio.to_thread(self._write, updated)
            return result

    # -- blocking helpers ---------------------------------------------------

    def _load(self) -> List[RecordT]:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return []
        if not raw.strip():
            return []
        try:
            document = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise StoreFormatError(f"{self.path} is not valid JSON: {exc}") from exc

        if (
            not isinstance(document, dict)
            or document.get("version") != STORE_VERSION
            or not isinstance(document.get("records"), list)
        ):
            raise StoreFormatError(
                f"{self.path} is not a version {STORE_VERSION} ledger document"
            )
        try:
            return [self.record_model.model_validate(item) for item in document["records"]]
        except PydanticValidationError as exc:
            raise StoreFormatError(f"{self.path} holds an invalid record: {exc}") from exc

    def _write(self, records: List[RecordT]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        document = {
            "version": STORE_VERSION,
            "records": [record.to_document() for record in records],
        }
        tmp = tempfile.NamedTemporaryFile(
            "w",
            encoding="utf-8",
            dir=self.path.parent,
            prefix=f".{self.path.name}.",
            suffix=".tmp",
            delete=False,
        )
        try:
            with tmp:
                json.dump(document, tmp, indent=2)
                tmp.write("\n")
                tmp.flush()
                os.fsync(tmp.fileno())
            os.replace(tmp.name, self.path)
        except BaseException:
            Path(tmp.name).unlink(missing_ok=True)
            raise
        log.debug(
            f"[STORE WRITE] {self.path.name}",
            extra={"path": str(self.path), "records": len(records)},
        )


__all__ = ["JsonDocumentStore", "StateUpdater", "STORE_VERSION"]
