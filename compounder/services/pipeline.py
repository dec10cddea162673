"""Reinvestment pipeline: claim, check, approve, deposit."""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Sequence

from ..config import AppConfig
from ..interfaces.chain import ChainGateway
from ..models import PipelineRun, RunStatus, Stage, TxOutcome

logger = logging.getLogger(__name__)

CLAIM_METHOD = "claimComp(address)"
BALANCE_METHOD = "balanceOf(address)"
APPROVE_METHOD = "approve(address,uint256)"
DEPOSIT_METHOD = "mint(uint256)"


class ReinvestmentPipeline:
    """Harvests the reward token and deposits it into the interest-bearing token.

    Every step waits for the previous one to be confirmed and a failure at any
    step ends the run. Only one run may be in flight at a time; a concurrent
    call returns a ``skipped`` run without touching the chain.
    """

    def __init__(self, config: AppConfig, gateway: ChainGateway) -> None:
        self._gateway = gateway
        self._account = config.account.address
        self._contracts = config.contracts
        self._lock = asyncio.Lock()

    @property
    def in_flight(self) -> bool:
        return self._lock.locked()

    async def run_reinvestment(self) -> PipelineRun:
        """Execute one run; never raises for chain failures."""
        if self._lock.locked():
            logger.warning("Reinvestment already in progress, skipping this trigger")
            now = datetime.now(timezone.utc)
            return PipelineRun(
                status=RunStatus.SKIPPED,
                stage=Stage.IDLE,
                reason="run already in progress",
                started_at=now,
                finished_at=now,
            )

        async with self._lock:
            run = await self._run()

        if run.status is RunStatus.FAILED:
            logger.error("Reinvestment failed at %s: %s", run.stage.value, run.reason)
        else:
            logger.info("Reinvestment finished: %s", run.status.value)
        return run

    async def _run(self) -> PipelineRun:
        started_at = datetime.now(timezone.utc)
        reward = self._contracts.reward_token
        market = self._contracts.interest_bearing_token
        logger.info("Reinvestment run started")

        # Claiming
        claim = await self._send(
            Stage.CLAIMING, self._contracts.comptroller, CLAIM_METHOD, [self._account]
        )
        if not claim.ok:
            return self._failed(Stage.CLAIMING, claim.reason, started_at, claim=claim)

        # Claim receipt is confirmed, so the balance includes it.
        try:
            balance = int(
                await self._gateway.call(reward, BALANCE_METHOD, [self._account])
            )
        except Exception as e:
            return self._failed(
                Stage.CHECKING, f"balance read failed: {e}", started_at, claim=claim
            )

        if balance == 0:
            logger.info("No %s rewards to reinvest", self._contracts.reward_symbol)
            return PipelineRun(
                status=RunStatus.NOTHING_TO_REINVEST,
                stage=Stage.DONE,
                claim=claim,
                reason="nothing to reinvest",
                started_at=started_at,
                finished_at=datetime.now(timezone.utc),
            )
        logger.info(
            "%s balance after claim: %d base units", self._contracts.reward_symbol, balance
        )

        # Approving
        approve = await self._send(Stage.APPROVING, reward, APPROVE_METHOD, [market, balance])
        if not approve.ok:
            return self._failed(
                Stage.APPROVING, approve.reason, started_at,
                amount=balance, claim=claim, approve=approve,
            )

        # Depositing
        deposit = await self._send(Stage.DEPOSITING, market, DEPOSIT_METHOD, [balance])
        if not deposit.ok:
            return self._failed(
                Stage.DEPOSITING, deposit.reason, started_at,
                amount=balance, claim=claim, approve=approve, deposit=deposit,
            )

        logger.info("Interest reinvested successfully: %d base units", balance)
        return PipelineRun(
            status=RunStatus.SUCCESS,
            stage=Stage.DONE,
            amount=balance,
            claim=claim,
            approve=approve,
            deposit=deposit,
            started_at=started_at,
            finished_at=datetime.now(timezone.utc),
        )

    async def _send(
        self, stage: Stage, address: str, method: str, args: Sequence[Any]
    ) -> TxOutcome:
        logger.info("Stage %s: %s", stage.value, method)
        try:
            outcome = await self._gateway.send(address, method, args, self._account)
        except Exception as e:
            return TxOutcome.failure(str(e))

        if outcome.ok:
            logger.info("Stage %s confirmed: %s", stage.value, outcome.tx_hash)
        return outcome

    @staticmethod
    def _failed(
        stage: Stage, reason: str, started_at: datetime, **fields: Any
    ) -> PipelineRun:
        return PipelineRun(
            status=RunStatus.FAILED,
            stage=stage,
            reason=reason,
            started_at=started_at,
            finished_at=datetime.now(timezone.utc),
            **fields,
        )
