"""Farming orchestration — startup sequence and the recurring schedule."""
from __future__ import annotations

import logging

from ..chains.evm import EvmClient
from ..config import AppConfig
from ..interfaces.chain import ChainGateway
from ..models import PipelineRun, RateQuote, TxOutcome
from .pipeline import APPROVE_METHOD, DEPOSIT_METHOD, ReinvestmentPipeline
from .registry import PositionRegistry
from .scheduler import DailyScheduler

logger = logging.getLogger(__name__)


class Farmer:
    """Wires the gateway, registry, pipeline and scheduler for one account."""

    def __init__(self, config: AppConfig, gateway: ChainGateway | None = None) -> None:
        self._config = config
        self._account = config.account.address
        self._contracts = config.contracts

        self._gateway: ChainGateway = gateway or EvmClient(
            config.chain, config.account, config.token_decimals
        )
        self._registry = PositionRegistry(
            self._gateway, config.contracts, config.registry
        )
        self._pipeline = ReinvestmentPipeline(config, self._gateway)
        self._scheduler = DailyScheduler(config.schedule, self.reinvest)

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def report_positions(self) -> list[RateQuote]:
        """Log the account's entered markets and their estimated rates."""
        logger.info("Fetching positions for %s", self._account)
        return await self._registry.report_rates(self._account)

    async def reinvest(self) -> PipelineRun:
        return await self._pipeline.run_reinvestment()

    async def seed_deposit(self) -> bool:
        """Approve and deposit the configured seed amount of the underlying."""
        startup = self._config.startup
        try:
            amount = self._gateway.to_base_units(startup.seed_amount, startup.seed_symbol)
        except ValueError as e:
            logger.error("Invalid seed amount: %s", e)
            return False

        if amount == 0:
            logger.info("Seed amount is zero, skipping initial deposit")
            return True

        market = self._contracts.interest_bearing_token
        logger.info(
            "Seeding position with %s %s", startup.seed_amount, startup.seed_symbol
        )

        approve = await self._send(
            self._contracts.underlying, APPROVE_METHOD, [market, amount]
        )
        if not approve.ok:
            logger.error("Seed approval failed: %s", approve.reason)
            return False
        logger.info("Token transfer approved: %s", approve.tx_hash)

        deposit = await self._send(market, DEPOSIT_METHOD, [amount])
        if not deposit.ok:
            logger.error("Seed deposit failed: %s", deposit.reason)
            return False
        logger.info("Tokens deposited: %s", deposit.tx_hash)
        return True

    async def startup(self) -> PipelineRun:
        """Positions report, seed approve + deposit, then one reinvestment."""
        try:
            await self.report_positions()
        except Exception as e:
            logger.error("Position report failed: %s", e)

        await self.seed_deposit()
        return await self.reinvest()

    async def run_forever(self) -> None:
        """Run the startup sequence, then reinvest on schedule indefinitely."""
        await self.startup()
        logger.info(
            "Starting reinvestment schedule (cron \"%s\", %s)",
            self._scheduler.expression,
            self._config.schedule.timezone,
        )
        await self._scheduler.run()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _send(self, address: str, method: str, args: list) -> TxOutcome:
        try:
            return await self._gateway.send(address, method, args, self._account)
        except Exception as e:
            return TxOutcome.failure(str(e))
