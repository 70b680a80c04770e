"""
Reconciliation run ledger: an audit trail of guarded reconciliation attempts.

Each call to `MonthlyBatchExecutor.run_reconciliation` leaves one record. A
run that passes preflight is written `in_progress` before the batch starts and
finished as `completed` or `failed`; a run stopped by preflight is written
once, already `blocked`. Records stay sorted by `started_at`.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Callable, List, Literal, Optional

from regen_pool.config import Settings
from regen_pool.domain.models import (
    CreditType,
    ReconciliationRunRecord,
    ReconciliationRunStatus,
)
from regen_pool.domain.units import to_iso, utc_now, validate_month
from regen_pool.errors import ValidationError
from regen_pool.infrastructure.json_store import JsonDocumentStore
from regen_pool.services.executions import DEFAULT_HISTORY_LIMIT, normalize_limit
from regen_pool.utils.logging import get_logger

log = get_logger(__name__)

ExecutionMode = Literal["live", "dry_run"]
FinishedStatus = Literal["completed", "blocked", "failed"]


def _sorted(records: List[ReconciliationRunRecord]) -> List[ReconciliationRunRecord]:
    return sorted(records, key=lambda item: item.started_at)


class ReconciliationRunLedger:
    def __init__(
        self,
        store: JsonDocumentStore[ReconciliationRunRecord],
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.store = store
        self._clock = clock

    @classmethod
    def from_settings(cls, settings: Settings) -> "ReconciliationRunLedger":
        store = JsonDocumentStore(
            settings.resolved_reconciliation_runs_path,
            ReconciliationRunRecord,
            lock_wait_seconds=settings.store_lock_wait_seconds,
            lock_retry_seconds=settings.store_lock_retry_seconds,
            lock_stale_seconds=settings.store_lock_stale_seconds,
        )
        return cls(store)

    async def start_run(
        self,
        month: str,
        execution_mode: ExecutionMode,
        credit_type: Optional[CreditType] = None,
        preflight_only: bool = False,
        force: bool = False,
    ) -> ReconciliationRunRecord:
        validate_month(month)
        record = ReconciliationRunRecord(
            id=f"reconcile_{uuid.uuid4()}",
            month=month,
            credit_type=credit_type,
            execution_mode=execution_mode,
            preflight_only=preflight_only,
            force=force,
            status="in_progress",
            batch_status="in_progress",
            started_at=to_iso(self._clock()),
        )
        await self.store.with_exclusive_state(lambda records: (_sorted([*records, record]), record))
        log.info(f"[RUN STARTED] {month}", extra={"run_id": record.id, "month": month})
        return record

    async def finish_run(
        self,
        run_id: str,
        status: FinishedStatus,
        batch_status: str,
        message: Optional[str] = None,
        error: Optional[str] = None,
    ) -> ReconciliationRunRecord:
        finished_at = to_iso(self._clock())

        def apply(records: List[ReconciliationRunRecord]):
            for index, item in enumerate(records):
                if item.id == run_id:
                    break
            else:
                raise ValidationError(f"Unknown reconciliation run id: {run_id}")
            finished = item.model_copy(
                update={
                    "status": status,
                    "batch_status": batch_status,
                    "message": message,
                    "error": error,
                    "finished_at": finished_at,
                }
            )
            updated = list(records)
            updated[index] = finished
            return _sorted(updated), finished

        record = await self.store.with_exclusive_state(apply)
        log.info(
            f"[RUN FINISHED] {record.month} {status}",
            extra={"run_id": run_id, "month": record.month, "status": status, "batch_status": batch_status},
        )
        return record

    async def record_blocked_run(
        self,
        month: str,
        execution_mode: ExecutionMode,
        batch_status: str,
        message: str,
        credit_type: Optional[CreditType] = None,
        preflight_only: bool = False,
        force: bool = False,
    ) -> ReconciliationRunRecord:
        validate_month(month)
        now = to_iso(self._clock())
        record = ReconciliationRunRecord(
            id=f"reconcile_{uuid.uuid4()}",
            month=month,
            credit_type=credit_type,
            execution_mode=execution_mode,
            preflight_only=preflight_only,
            force=force,
            status="blocked",
            batch_status=batch_status,
            message=message,
            started_at=now,
            finished_at=now,
        )
        await self.store.with_exclusive_state(lambda records: (_sorted([*records, record]), record))
        log.info(
            f"[RUN BLOCKED] {month} {batch_status}",
            extra={"run_id": record.id, "month": month, "batch_status": batch_status},
        )
        return record

    async def list_records(self) -> List[ReconciliationRunRecord]:
        return await self.store.read_state()

    async def get_history(
        self,
        month: Optional[str] = None,
        status: Optional[ReconciliationRunStatus] = None,
        credit_type: Optional[CreditType] = None,
        limit: Optional[int] = DEFAULT_HISTORY_LIMIT,
        newest_first: bool = True,
    ) -> List[ReconciliationRunRecord]:
        """Filtered run history; `limit` is clamped like the execution history."""
        if month is not None:
            validate_month(month)
        records = await self.store.read_state()
        filtered = [
            record
            for record in records
            if (month is None or record.month == month)
            and (status is None or record.status == status)
            and (credit_type is None or record.credit_type == credit_type)
        ]
        filtered.sort(key=lambda record: record.started_at, reverse=newest_first)
        return filtered[: normalize_limit(limit)]


__all__ = ["ReconciliationRunLedger"]
