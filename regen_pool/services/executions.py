"""
Execution ledger: one append-only record per monthly batch attempt.

A `success` record for (month, credit_type) is the idempotency key that stops
a month from being retired twice. Dry runs and failures are recorded too, so
the history doubles as an audit trail.
"""

from __future__ import annotations

from typing import List, Optional

from regen_pool.config import Settings
from regen_pool.domain.models import BatchExecutionRecord, BatchExecutionStatus, CreditType
from regen_pool.domain.units import validate_month
from regen_pool.infrastructure.json_store import JsonDocumentStore
from regen_pool.utils.logging import get_logger

log = get_logger(__name__)

DEFAULT_HISTORY_LIMIT = 50
MAX_HISTORY_LIMIT = 200


def normalize_limit(limit: Optional[int]) -> int:
    if not isinstance(limit, int) or isinstance(limit, bool):
        return DEFAULT_HISTORY_LIMIT
    return min(MAX_HISTORY_LIMIT, max(1, limit))


class ExecutionLedger:
    def __init__(self, store: JsonDocumentStore[BatchExecutionRecord]) -> None:
        self.store = store

    @classmethod
    def from_settings(cls, settings: Settings) -> "ExecutionLedger":
        store = JsonDocumentStore(
            settings.resolved_executions_path,
            BatchExecutionRecord,
            lock_wait_seconds=settings.store_lock_wait_seconds,
            lock_retry_seconds=settings.store_lock_retry_seconds,
            lock_stale_seconds=settings.store_lock_stale_seconds,
        )
        return cls(store)

    async def append(self, record: BatchExecutionRecord) -> BatchExecutionRecord:
        def apply(records: List[BatchExecutionRecord]):
            updated = sorted([*records, record], key=lambda item: item.executed_at)
            return updated, record

        await self.store.with_exclusive_state(apply)
        log.info(
            f"[EXECUTION RECORDED] {record.month} {record.status}",
            extra={
                "execution_id": record.id,
                "month": record.month,
                "credit_type": record.credit_type,
                "status": record.status,
            },
        )
        return record

    async def list_records(self) -> List[BatchExecutionRecord]:
        return await self.store.read_state()

    async def has_successful_execution(
        self, month: str, credit_type: Optional[CreditType] = None
    ) -> bool:
        return await self.latest(month, credit_type, status="success") is not None

    async def latest(
        self,
        month: str,
        credit_type: Optional[CreditType] = None,
        status: Optional[BatchExecutionStatus] = None,
    ) -> Optional[BatchExecutionRecord]:
        """Most recent record for exactly (month, credit_type), optionally of one status."""
        validate_month(month)
        records = await self.store.read_state()
        for record in reversed(records):
            if record.month != month or record.credit_type != credit_type:
                continue
            if status is not None and record.status != status:
                continue
            return record
        return None

    async def get_history(
        self,
        month: Optional[str] = None,
        status: Optional[BatchExecutionStatus] = None,
        credit_type: Optional[CreditType] = None,
        dry_run: Optional[bool] = None,
        limit: Optional[int] = DEFAULT_HISTORY_LIMIT,
        newest_first: bool = True,
    ) -> List[BatchExecutionRecord]:
        """
        Filtered execution history.

        Parameters
        ----------
        month, status, credit_type, dry_run : optional
            Filters; None means "any".
        limit : int
            Clamped to [1, 200]; non-integers fall back to 50.
        newest_first : bool
            Sort direction by `executed_at`.
        """
        if month is not None:
            validate_month(month)
        records = await self.store.read_state()
        filtered = [
            record
            for record in records
            if (month is None or record.month == month)
            and (status is None or record.status == status)
            and (credit_type is None or record.credit_type == credit_type)
            and (dry_run is None or record.dry_run == dry_run)
        ]
        filtered.sort(key=lambda record: record.executed_at, reverse=newest_first)
        return filtered[: normalize_limit(limit)]


__all__ = ["ExecutionLedger", "normalize_limit", "DEFAULT_HISTORY_LIMIT", "MAX_HISTORY_LIMIT"]
