"""Configuration loader — reads config.yaml, interpolates env vars, validates."""
from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml
from croniter import croniter
from dotenv import load_dotenv
from eth_account import Account
from eth_utils import is_address, to_checksum_address

logger = logging.getLogger(__name__)

_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")
_PRIVATE_KEY_RE = re.compile(r"^(0x)?[0-9a-fA-F]{64}$")


class ConfigError(ValueError):
    """Raised when the configuration is missing or malformed."""


# ---------------------------------------------------------------------------
# Frozen config dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ChainConfig:
    rpc_endpoints: tuple[str, ...] = ()
    rpc_timeout: int = 30
    chain_id: int | None = None
    receipt_timeout: int = 300
    receipt_poll_interval: float = 5.0
    gas_limit_multiplier: float = 1.2


@dataclass(frozen=True)
class AccountConfig:
    address: str = ""
    private_key: str = field(default="", repr=False)


@dataclass(frozen=True)
class ContractsConfig:
    comptroller: str = ""
    interest_bearing_token: str = ""
    underlying: str = ""
    reward_token: str = ""
    underlying_symbol: str = "DAI"
    reward_symbol: str = "COMP"


@dataclass(frozen=True)
class RegistryConfig:
    # ~15 second blocks; simple extrapolation only
    blocks_per_year: int = 2_102_400


@dataclass(frozen=True)
class ScheduleConfig:
    run_at: str = "00:00"
    interval_hours: int = 24
    timezone: str = "UTC"
    # Overrides run_at/interval_hours when set
    cron: str = ""


@dataclass(frozen=True)
class StartupConfig:
    seed_amount: str = "100"
    seed_symbol: str = "DAI"


@dataclass(frozen=True)
class AppConfig:
    chain: ChainConfig = field(default_factory=ChainConfig)
    account: AccountConfig = field(default_factory=AccountConfig)
    contracts: ContractsConfig = field(default_factory=ContractsConfig)
    token_decimals: dict[str, int] = field(default_factory=dict)
    registry: RegistryConfig = field(default_factory=RegistryConfig)
    schedule: ScheduleConfig = field(default_factory=ScheduleConfig)
    startup: StartupConfig = field(default_factory=StartupConfig)


# ---------------------------------------------------------------------------
# Env interpolation
# ---------------------------------------------------------------------------

_ENV_VAR_RE = re.compile(r"\$\{([^}]+)}")


def _interpolate_env(value: Any) -> Any:
    """Recursively replace ${VAR} references with environment variable values."""
    if isinstance(value, str):
        return _ENV_VAR_RE.sub(lambda m: os.environ.get(m.group(1), ""), value)
    if isinstance(value, dict):
        return {k: _interpolate_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_interpolate_env(item) for item in value]
    return value


# ---------------------------------------------------------------------------
# YAML → dataclass builders
# ---------------------------------------------------------------------------


def _checksum(value: Any) -> str:
    """Checksum an address when it parses as one; leave it for _validate otherwise."""
    text = str(value or "").strip()
    if _ADDRESS_RE.match(text) and is_address(text.lower()):
        return to_checksum_address(text.lower())
    return text


def _section(raw: dict[str, Any], name: str) -> dict[str, Any]:
    """Return a top-level section; an empty or null section reads as {}."""
    value = raw.get(name) or {}
    if not isinstance(value, dict):
        raise ConfigError(f"Config section '{name}' must be a mapping")
    return value


def _build_chain(raw: dict[str, Any]) -> ChainConfig:
    chain_id = raw.get("chain_id")
    endpoints = raw.get("rpc_endpoints") or []
    if isinstance(endpoints, str):
        endpoints = [endpoints]
    return ChainConfig(
        rpc_endpoints=tuple(str(e).strip() for e in endpoints),
        rpc_timeout=int(raw.get("rpc_timeout", 30)),
        chain_id=int(chain_id) if chain_id not in (None, "") else None,
        receipt_timeout=int(raw.get("receipt_timeout", 300)),
        receipt_poll_interval=float(raw.get("receipt_poll_interval", 5.0)),
        gas_limit_multiplier=float(raw.get("gas_limit_multiplier", 1.2)),
    )


def _build_account(raw: dict[str, Any]) -> AccountConfig:
    return AccountConfig(
        address=_checksum(raw.get("address", "")),
        private_key=str(raw.get("private_key", "") or "").strip(),
    )


def _build_contracts(raw: dict[str, Any]) -> ContractsConfig:
    return ContractsConfig(
        comptroller=_checksum(raw.get("comptroller", "")),
        interest_bearing_token=_checksum(raw.get("interest_bearing_token", "")),
        underlying=_checksum(raw.get("underlying", "")),
        reward_token=_checksum(raw.get("reward_token", "")),
        underlying_symbol=str(raw.get("underlying_symbol", "DAI")),
        reward_symbol=str(raw.get("reward_symbol", "COMP")),
    )


def _build_schedule(raw: dict[str, Any]) -> ScheduleConfig:
    return ScheduleConfig(
        run_at=str(raw.get("run_at", "00:00")),
        interval_hours=int(raw.get("interval_hours", 24)),
        timezone=str(raw.get("timezone", "UTC")),
        cron=str(raw.get("cron", "") or "").strip(),
    )


def _build_startup(raw: dict[str, Any]) -> StartupConfig:
    return StartupConfig(
        seed_amount=str(raw.get("seed_amount", "100")),
        seed_symbol=str(raw.get("seed_symbol", "DAI")),
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(config_path: str | Path | None = None) -> AppConfig:
    """Load and validate application configuration from YAML + .env.

    Args:
        config_path: Path to config.yaml. Defaults to ``config.yaml`` in the
            project root (one level up from the package).

    Raises:
        FileNotFoundError: the config file does not exist.
        ConfigError: a required value is missing or malformed.
    """
    load_dotenv()

    if config_path is None:
        config_path = Path(__file__).resolve().parent.parent / "config.yaml"
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    try:
        with open(config_path) as f:
            raw = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Config file is not valid YAML: {e}") from e
    if not isinstance(raw, dict):
        raise ConfigError("Config file must contain a mapping at the top level")

    raw = _interpolate_env(raw)

    try:
        cfg = AppConfig(
            chain=_build_chain(_section(raw, "chain")),
            account=_build_account(_section(raw, "account")),
            contracts=_build_contracts(_section(raw, "contracts")),
            token_decimals={
                str(k): int(v) for k, v in _section(raw, "token_decimals").items()
            },
            registry=RegistryConfig(
                blocks_per_year=int(
                    _section(raw, "registry").get("blocks_per_year", 2_102_400)
                ),
            ),
            schedule=_build_schedule(_section(raw, "schedule")),
            startup=_build_startup(_section(raw, "startup")),
        )
    except ConfigError:
        raise
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Malformed configuration value: {e}") from e

    _validate(cfg)
    logger.info("Configuration loaded from %s", config_path)
    return cfg


def _validate(cfg: AppConfig) -> None:
    """Raise ConfigError on invalid configuration."""
    if not cfg.chain.rpc_endpoints or not all(cfg.chain.rpc_endpoints):
        raise ConfigError("At least one non-empty RPC endpoint must be configured")

    if not cfg.account.address:
        raise ConfigError("Account address is not configured")
    if not _ADDRESS_RE.match(cfg.account.address):
        raise ConfigError(f"Account address is malformed: {cfg.account.address!r}")

    if not cfg.account.private_key:
        raise ConfigError("Account private key is not configured")
    if not _PRIVATE_KEY_RE.match(cfg.account.private_key):
        raise ConfigError(
            "Invalid private key format: expected 64 hexadecimal characters (32 bytes)"
        )
    try:
        signer = Account.from_key(cfg.account.private_key).address
    except Exception as e:
        raise ConfigError(f"Private key is not a valid signing key: {e}") from e
    if signer.lower() != cfg.account.address.lower():
        raise ConfigError("Private key does not control the configured account address")

    for name in ("comptroller", "interest_bearing_token", "underlying", "reward_token"):
        value = getattr(cfg.contracts, name)
        if not value:
            raise ConfigError(f"Contract address '{name}' is not configured")
        if not _ADDRESS_RE.match(value):
            raise ConfigError(f"Contract address '{name}' is malformed: {value!r}")

    for symbol in (
        cfg.contracts.underlying_symbol,
        cfg.contracts.reward_symbol,
        cfg.startup.seed_symbol,
    ):
        if symbol not in cfg.token_decimals:
            raise ConfigError(f"No decimals configured for token '{symbol}'")

    try:
        seed = Decimal(cfg.startup.seed_amount)
    except InvalidOperation as e:
        raise ConfigError(
            f"startup.seed_amount is not a number: {cfg.startup.seed_amount!r}"
        ) from e
    if not seed.is_finite() or seed < 0:
        raise ConfigError("startup.seed_amount must be a non-negative number")

    if cfg.registry.blocks_per_year <= 0:
        raise ConfigError("registry.blocks_per_year must be positive")

    try:
        datetime.strptime(cfg.schedule.run_at, "%H:%M")
    except ValueError as e:
        raise ConfigError(
            f"schedule.run_at must be HH:MM, got {cfg.schedule.run_at!r}"
        ) from e
    if cfg.schedule.interval_hours <= 0:
        raise ConfigError("schedule.interval_hours must be positive")
    if not cfg.schedule.cron and 24 % cfg.schedule.interval_hours:
        raise ConfigError(
            "schedule.interval_hours must divide 24; use schedule.cron for other cadences"
        )
    if cfg.schedule.cron and not croniter.is_valid(cfg.schedule.cron):
        raise ConfigError(f"Invalid schedule.cron expression: {cfg.schedule.cron!r}")
    try:
        ZoneInfo(cfg.schedule.timezone)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ConfigError(f"Unknown time zone: {cfg.schedule.timezone!r}") from e
