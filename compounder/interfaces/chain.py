"""Chain gateway protocol — ledger node abstraction."""
from decimal import Decimal
from typing import Any, Protocol, Sequence

from ..models import TxOutcome


class ChainReadError(RuntimeError):
    """A read-only contract call failed or reverted."""


class ChainGateway(Protocol):
    """Read calls, signed state-changing calls and unit conversion.

    ``call`` raises ChainReadError on failure. ``send`` resolves only once the
    transaction is mined or has definitively failed, and reports failure
    through the returned TxOutcome instead of raising.
    """

    async def call(
        self,
        address: str,
        method: str,
        args: Sequence[Any] = (),
        returns: Sequence[str] = ("uint256",),
    ) -> Any: ...

    async def send(
        self,
        address: str,
        method: str,
        args: Sequence[Any],
        from_address: str,
    ) -> TxOutcome: ...

    def to_base_units(self, amount: Decimal | str | int, symbol: str) -> int: ...
