"""Data models — all frozen (immutable)."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum


class Stage(str, Enum):
    """Linear state machine of a reinvestment run.

    A failed run keeps the stage it failed in; see PipelineRun.status.
    """

    IDLE = "idle"
    CLAIMING = "claiming"
    CHECKING = "checking"
    APPROVING = "approving"
    DEPOSITING = "depositing"
    DONE = "done"


class RunStatus(str, Enum):
    SUCCESS = "success"
    NOTHING_TO_REINVEST = "nothing_to_reinvest"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class Position:
    """One market the account has entered.

    ``market`` is the interest-bearing token; ``underlying`` is ``None`` when
    the market has no ERC-20 underlying or it could not be read. ``error``
    names every metadata read that failed, empty when all succeeded.
    """

    market: str
    underlying: str | None = None
    symbol: str = ""
    error: str = ""


@dataclass(frozen=True)
class RateQuote:
    """Annualized supply-rate estimate for a position, or the reason it failed."""

    position: Position
    annual_rate: Decimal | None = None
    error: str = ""

    @property
    def ok(self) -> bool:
        return self.annual_rate is not None


@dataclass(frozen=True)
class TxOutcome:
    """Result of one state-changing call."""

    ok: bool
    tx_hash: str | None = None
    reason: str = ""
    block_number: int | None = None

    @classmethod
    def success(cls, tx_hash: str, block_number: int | None = None) -> TxOutcome:
        return cls(ok=True, tx_hash=tx_hash, block_number=block_number)

    @classmethod
    def failure(cls, reason: str, tx_hash: str | None = None) -> TxOutcome:
        return cls(ok=False, tx_hash=tx_hash, reason=reason)


@dataclass(frozen=True)
class PipelineRun:
    """Summary of one claim → check → approve → deposit execution."""

    status: RunStatus
    stage: Stage
    amount: int = 0
    claim: TxOutcome | None = None
    approve: TxOutcome | None = None
    deposit: TxOutcome | None = None
    reason: str = ""
    started_at: datetime | None = None
    finished_at: datetime | None = None

    @property
    def failed(self) -> bool:
        return self.status is RunStatus.FAILED
