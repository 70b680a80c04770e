"""
Provider interfaces for converting the protocol fee into REGEN and burning it.

Concrete providers (disabled, simulated, live) implement the ABC helpers and
return the ledger records defined in `regen_pool.domain.models`, so the
orchestrator can store whatever a provider reports without translating it.
"""

from __future__ import annotations

import abc
from typing import Protocol, runtime_checkable

from regen_pool.domain.models import RegenAcquisitionRecord, RegenBurnRecord


@runtime_checkable
class AcquisitionProvider(Protocol):
    """
    Swaps a protocol fee (in the payment denom) for REGEN.

    Attributes
    ----------
    name : str
        Machine-friendly identifier recorded on every record.
    """

    name: str

    async def plan_acquisition(
        self, month: str, spend_micro: int, spend_denom: str
    ) -> RegenAcquisitionRecord:
        """
        Estimate the acquisition without touching external state.

        Returns
        -------
        RegenAcquisitionRecord
            `planned`, or `skipped` when there is nothing to spend.
        """
        ...

    async def execute_acquisition(
        self, month: str, spend_micro: int, spend_denom: str
    ) -> RegenAcquisitionRecord:
        """Perform the swap. Failures come back as a `failed` record."""
        ...


@runtime_checkable
class BurnProvider(Protocol):
    name: str

    async def plan_burn(self, month: str, amount_micro: int) -> RegenBurnRecord:
        ...

    async def execute_burn(self, month: str, amount_micro: int) -> RegenBurnRecord:
        ...


class AbstractAcquisitionProvider(abc.ABC):
    """
    Optional ABC helper for acquisition providers.

    Subclasses set `name` and implement `plan_acquisition`; the default
    `execute_acquisition` simply re-plans, which suits providers with no side effects.
    """

    name: str

    @abc.abstractmethod
    async def plan_acquisition(
        self, month: str, spend_micro: int, spend_denom: str
    ) -> RegenAcquisitionRecord:  # pragma: no cover - interface only
        raise NotImplementedError

    async def execute_acquisition(
        self, month: str, spend_micro: int, spend_denom: str
    ) -> RegenAcquisitionRecord:
        return await self.plan_acquisition(month, spend_micro, spend_denom)

    def skipped(
        self, spend_micro: int, spend_denom: str, message: str
    ) -> RegenAcquisitionRecord:
        return RegenAcquisitionRecord(
            provider=self.name,
            status="skipped",
            spend_micro=spend_micro,
            spend_denom=spend_denom,
            estimated_regen_micro=0,
            message=message,
        )


class AbstractBurnProvider(abc.ABC):
    """Optional ABC helper for burn providers; see `AbstractAcquisitionProvider`."""

    name: str

    @abc.abstractmethod
    async def plan_burn(
        self, month: str, amount_micro: int
    ) -> RegenBurnRecord:  # pragma: no cover - interface only
        raise NotImplementedError

    async def execute_burn(self, month: str, amount_micro: int) -> RegenBurnRecord:
        return await self.plan_burn(month, amount_micro)

    def skipped(self, amount_micro: int, message: str) -> RegenBurnRecord:
        return RegenBurnRecord(
            provider=self.name,
            status="skipped",
            amount_micro=amount_micro,
            message=message,
        )


__all__ = [
    "AcquisitionProvider",
    "BurnProvider",
    "AbstractAcquisitionProvider",
    "AbstractBurnProvider",
]
