"""Position registry — which markets the account holds and what they yield."""
from __future__ import annotations

import logging
from decimal import Decimal

from ..config import ContractsConfig, RegistryConfig
from ..interfaces.chain import ChainGateway, ChainReadError
from ..models import Position, RateQuote

logger = logging.getLogger(__name__)

RATE_SCALE = Decimal(10) ** 18


def annualize(rate_per_block: int, blocks_per_year: int) -> Decimal:
    """Scale a per-block supply rate (1e18 mantissa) to a yearly percentage.

    This is a simple extrapolation: ``rate * blocks_per_year``, without
    compounding. Its accuracy also depends on how closely the real block time
    matches ``blocks_per_year``, so treat the result as an estimate.
    """
    return Decimal(rate_per_block) / RATE_SCALE * blocks_per_year * 100


class PositionRegistry:
    """Read-only queries against the controller and its markets."""

    def __init__(
        self,
        gateway: ChainGateway,
        contracts: ContractsConfig,
        config: RegistryConfig,
    ) -> None:
        self._gateway = gateway
        self._comptroller = contracts.comptroller
        self._blocks_per_year = config.blocks_per_year

    async def list_positions(self, account: str) -> list[Position]:
        """Markets the account has entered, in chain order.

        Raises ChainReadError when the market list itself cannot be read.
        Unreadable per-market metadata is left empty and named in
        ``Position.error``.
        """
        markets = await self._gateway.call(
            self._comptroller, "getAssetsIn(address)", [account], returns=("address[]",)
        )
        logger.info("Account has entered %d market(s)", len(markets))

        positions: list[Position] = []
        for market in markets:
            positions.append(await self._describe_market(market))
        return positions

    async def estimate_annual_rate(self, position: Position) -> Decimal:
        """Annualized supply rate of ``position`` in percent (approximate)."""
        rate = await self._gateway.call(position.market, "supplyRatePerBlock()")
        return annualize(int(rate), self._blocks_per_year)

    async def report_rates(self, account: str) -> list[RateQuote]:
        """List positions and estimate each one's rate, logging every failure."""
        try:
            positions = await self.list_positions(account)
        except ChainReadError as e:
            logger.error("Could not list positions: %s", e)
            return []

        if not positions:
            logger.info("No entered markets found")
            return []

        quotes: list[RateQuote] = []
        for position in positions:
            try:
                rate = await self.estimate_annual_rate(position)
            except ChainReadError as e:
                logger.error("Rate unavailable for %s: %s", position.market, e)
                quotes.append(RateQuote(position=position, error=str(e)))
                continue

            logger.info(
                "  %s (%s): ~%.4f%% APY (simple estimate)",
                position.symbol or "?",
                position.market,
                rate,
            )
            quotes.append(RateQuote(position=position, annual_rate=rate))

        return quotes

    async def _describe_market(self, market: str) -> Position:
        underlying: str | None = None
        symbol = ""
        errors: list[str] = []

        try:
            underlying = await self._gateway.call(
                market, "underlying()", returns=("address",)
            )
        except ChainReadError as e:
            # Native-coin markets have no underlying() and land here as well.
            logger.warning("No underlying for market %s: %s", market, e)
            errors.append(f"underlying(): {e}")

        try:
            symbol = await self._gateway.call(market, "symbol()", returns=("string",))
        except ChainReadError as e:
            logger.warning("No symbol for market %s: %s", market, e)
            errors.append(f"symbol(): {e}")

        return Position(
            market=market, underlying=underlying, symbol=symbol, error="; ".join(errors)
        )
