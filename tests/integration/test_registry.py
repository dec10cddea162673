"""Integration tests for the position registry with a mocked gateway."""
from __future__ import annotations

from decimal import Decimal
from typing import Any
from unittest.mock import AsyncMock

import pytest

from compounder.config import AppConfig
from compounder.interfaces.chain import ChainReadError
from compounder.models import Position
from compounder.services.registry import PositionRegistry, annualize
from conftest import CDAI, COMPTROLLER, DAI, TEST_ADDRESS

CUSDC = "0x39AA39c021dfbaE8faC545936693aC917d5E7563"
CETH = "0x4Ddc2D193948926D02f9B1fE9e1daa0718270ED5"
USDC = "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48"


def _gateway(
    markets: list[str],
    underlying: dict[str, Any] | None = None,
    rates: dict[str, Any] | None = None,
    symbols: dict[str, str] | None = None,
) -> AsyncMock:
    underlying = underlying or {}
    rates = rates or {}
    symbols = symbols or {}

    async def call(address, method, args=(), returns=("uint256",)):
        if method == "getAssetsIn(address)":
            if isinstance(markets, Exception):
                raise markets
            return tuple(markets)
        table = {
            "underlying()": underlying,
            "supplyRatePerBlock()": rates,
            "symbol()": symbols,
        }[method]
        value = table.get(address)
        if value is None or isinstance(value, Exception):
            raise value or ChainReadError(f"{method} reverted")
        return value

    gateway = AsyncMock()
    gateway.call.side_effect = call
    return gateway


@pytest.fixture()
def registry_factory(sample_app_config: AppConfig):
    def factory(gateway) -> PositionRegistry:
        return PositionRegistry(
            gateway, sample_app_config.contracts, sample_app_config.registry
        )

    return factory


class TestAnnualize:
    def test_known_rate(self) -> None:
        # 1e-9 per block * 2 102 400 blocks = 0.21024%
        assert annualize(10**9, 2_102_400) == Decimal("0.2102400")

    def test_zero_rate(self) -> None:
        assert annualize(0, 2_102_400) == 0

    def test_monotonic(self) -> None:
        rates = [0, 1, 10**6, 10**9, 10**9 + 1, 3 * 10**10, 10**12]
        estimates = [annualize(r, 2_102_400) for r in rates]
        assert estimates == sorted(estimates)

    def test_blocks_per_year_is_a_parameter(self) -> None:
        assert annualize(10**9, 2_628_000) > annualize(10**9, 2_102_400)


class TestListPositions:
    @pytest.mark.asyncio
    async def test_no_entered_markets(self, registry_factory) -> None:
        gateway = _gateway(markets=[])
        positions = await registry_factory(gateway).list_positions(TEST_ADDRESS)
        assert positions == []

    @pytest.mark.asyncio
    async def test_markets_in_chain_order(self, registry_factory) -> None:
        gateway = _gateway(
            markets=[CUSDC, CDAI],
            underlying={CDAI: DAI, CUSDC: USDC},
            symbols={CDAI: "cDAI", CUSDC: "cUSDC"},
        )

        positions = await registry_factory(gateway).list_positions(TEST_ADDRESS)

        assert positions == [
            Position(market=CUSDC, underlying=USDC, symbol="cUSDC"),
            Position(market=CDAI, underlying=DAI, symbol="cDAI"),
        ]
        first_call = gateway.call.call_args_list[0]
        assert first_call.args[:3] == (COMPTROLLER, "getAssetsIn(address)", [TEST_ADDRESS])

    @pytest.mark.asyncio
    async def test_market_without_underlying_is_kept(self, registry_factory) -> None:
        gateway = _gateway(
            markets=[CETH, CDAI],
            underlying={CDAI: DAI},
            symbols={CETH: "cETH", CDAI: "cDAI"},
        )

        positions = await registry_factory(gateway).list_positions(TEST_ADDRESS)

        assert positions[0].market == CETH
        assert positions[0].underlying is None
        assert positions[0].symbol == "cETH"
        assert "underlying()" in positions[0].error
        assert positions[1].underlying == DAI
        assert positions[1].error == ""

    @pytest.mark.asyncio
    async def test_failed_metadata_reads_are_attributed(self, registry_factory) -> None:
        gateway = _gateway(
            markets=[CDAI, CUSDC],
            underlying={CDAI: ChainReadError("timeout"), CUSDC: USDC},
            symbols={CDAI: ChainReadError("timeout"), CUSDC: "cUSDC"},
        )

        failed, healthy = await registry_factory(gateway).list_positions(TEST_ADDRESS)

        assert failed.market == CDAI
        assert failed.error == "underlying(): timeout; symbol(): timeout"
        assert healthy == Position(market=CUSDC, underlying=USDC, symbol="cUSDC")

    @pytest.mark.asyncio
    async def test_listing_failure_propagates(self, registry_factory) -> None:
        gateway = _gateway(markets=ChainReadError("node unavailable"))  # type: ignore[arg-type]

        with pytest.raises(ChainReadError):
            await registry_factory(gateway).list_positions(TEST_ADDRESS)


class TestEstimateAnnualRate:
    @pytest.mark.asyncio
    async def test_reads_supply_rate(self, registry_factory) -> None:
        gateway = _gateway(markets=[CDAI], rates={CDAI: 10**9})
        rate = await registry_factory(gateway).estimate_annual_rate(Position(market=CDAI))
        assert rate == annualize(10**9, 2_102_400)


class TestReportRates:
    @pytest.mark.asyncio
    async def test_partial_failures_are_attributed(self, registry_factory) -> None:
        gateway = _gateway(
            markets=[CUSDC, CDAI],
            underlying={CDAI: DAI, CUSDC: USDC},
            rates={CDAI: 10**9},
            symbols={CDAI: "cDAI", CUSDC: "cUSDC"},
        )

        quotes = await registry_factory(gateway).report_rates(TEST_ADDRESS)

        assert len(quotes) == 2
        failed, ok = quotes
        assert failed.position.market == CUSDC
        assert not failed.ok
        assert "supplyRatePerBlock()" in failed.error
        assert ok.position.market == CDAI
        assert ok.annual_rate == annualize(10**9, 2_102_400)

    @pytest.mark.asyncio
    async def test_listing_failure_yields_empty_report(self, registry_factory) -> None:
        gateway = _gateway(markets=ChainReadError("timeout"))  # type: ignore[arg-type]
        assert await registry_factory(gateway).report_rates(TEST_ADDRESS) == []
