"""Shared test fixtures and sample data."""
from __future__ import annotations

import textwrap
from decimal import Decimal
from pathlib import Path
from typing import Any, Sequence

import pytest
from eth_account import Account

from compounder.config import (
    AccountConfig,
    AppConfig,
    ChainConfig,
    ContractsConfig,
    RegistryConfig,
    ScheduleConfig,
    StartupConfig,
)
from compounder.interfaces.chain import ChainReadError
from compounder.models import TxOutcome

TEST_PRIVATE_KEY = "0x4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"
TEST_ADDRESS = Account.from_key(TEST_PRIVATE_KEY).address

COMPTROLLER = "0x3d9819210A31b4961b30EF54bE2aeD79B9c9Cd3B"
CDAI = "0x5d3a536E4D6DbD6114cc1Ead35777bAB948E3643"
DAI = "0x6B175474E89094C44Da98b954EedeAC495271d0F"
COMP = "0xc00e94Cb662c07889123658ff3BC9De462497C29"


# ---------------------------------------------------------------------------
# Config fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def sample_chain_config() -> ChainConfig:
    return ChainConfig(
        rpc_endpoints=("https://rpc1.example.com", "https://rpc2.example.com"),
        rpc_timeout=10,
        chain_id=1,
        receipt_timeout=60,
        receipt_poll_interval=0.01,
    )


@pytest.fixture()
def sample_account_config() -> AccountConfig:
    return AccountConfig(address=TEST_ADDRESS, private_key=TEST_PRIVATE_KEY)


@pytest.fixture()
def sample_contracts() -> ContractsConfig:
    return ContractsConfig(
        comptroller=COMPTROLLER,
        interest_bearing_token=CDAI,
        underlying=DAI,
        reward_token=COMP,
        underlying_symbol="DAI",
        reward_symbol="COMP",
    )


@pytest.fixture()
def sample_app_config(
    sample_chain_config: ChainConfig,
    sample_account_config: AccountConfig,
    sample_contracts: ContractsConfig,
) -> AppConfig:
    return AppConfig(
        chain=sample_chain_config,
        account=sample_account_config,
        contracts=sample_contracts,
        token_decimals={"DAI": 18, "COMP": 18},
        registry=RegistryConfig(blocks_per_year=2_102_400),
        schedule=ScheduleConfig(run_at="00:00", interval_hours=24, timezone="UTC"),
        startup=StartupConfig(seed_amount="100", seed_symbol="DAI"),
    )


# ---------------------------------------------------------------------------
# Config YAML fixture
# ---------------------------------------------------------------------------

SAMPLE_YAML = textwrap.dedent(f"""\
    chain:
      rpc_endpoints: ["https://rpc.example.com"]
      rpc_timeout: 10
      chain_id: 1
    account:
      address: "{TEST_ADDRESS}"
      private_key: "{TEST_PRIVATE_KEY}"
    contracts:
      comptroller: "{COMPTROLLER}"
      interest_bearing_token: "{CDAI}"
      underlying: "{DAI}"
      reward_token: "{COMP}"
      underlying_symbol: DAI
      reward_symbol: COMP
    token_decimals: {{DAI: 18, COMP: 18}}
    registry:
      blocks_per_year: 2102400
    schedule:
      run_at: "00:00"
      interval_hours: 24
      timezone: UTC
    startup:
      seed_amount: "100"
      seed_symbol: DAI
""")


@pytest.fixture()
def sample_yaml_path(tmp_path: Path) -> Path:
    cfg_file = tmp_path / "config.yaml"
    cfg_file.write_text(SAMPLE_YAML)
    return cfg_file


# ---------------------------------------------------------------------------
# Recording gateway
# ---------------------------------------------------------------------------


class RecordingGateway:
    """In-memory chain gateway that records every call in order.

    ``balances`` is consumed one value per ``balanceOf`` read; ``reads`` maps
    other read methods to their results (an Exception value is raised).
    """

    def __init__(
        self,
        balances: Sequence[int] = (0,),
        fail_on: Sequence[str] = (),
        reads: dict[str, Any] | None = None,
    ) -> None:
        self.balances = list(balances)
        self.fail_on = set(fail_on)
        self.reads = dict(reads or {})
        self.calls: list[tuple[str, str, str, tuple[Any, ...]]] = []

    async def call(
        self,
        address: str,
        method: str,
        args: Sequence[Any] = (),
        returns: Sequence[str] = ("uint256",),
    ) -> Any:
        self.calls.append(("call", address, method, tuple(args)))
        if method == "balanceOf(address)":
            if not self.balances:
                raise ChainReadError("balanceOf reverted")
            return self.balances.pop(0)
        result = self.reads.get(method)
        if isinstance(result, Exception):
            raise result
        return result

    async def send(
        self,
        address: str,
        method: str,
        args: Sequence[Any],
        from_address: str,
    ) -> TxOutcome:
        self.calls.append(("send", address, method, tuple(args)))
        if method in self.fail_on:
            return TxOutcome.failure("execution reverted")
        return TxOutcome.success(f"0x{len(self.calls):064x}", block_number=100)

    def to_base_units(self, amount: Any, symbol: str) -> int:
        return int(Decimal(str(amount)) * 10**18)

    @property
    def sends(self) -> list[tuple[str, str, tuple[Any, ...]]]:
        return [(addr, method, args) for kind, addr, method, args in self.calls if kind == "send"]
