"""Pure ABI helpers for contract calls, no I/O."""
from __future__ import annotations

from typing import Any, Sequence

from eth_abi import decode, encode
from eth_utils import keccak


def argument_types(signature: str) -> list[str]:
    """Extract the argument types from a function signature.

    Examples:
        "claimComp(address)" → ["address"]
        "approve(address,uint256)" → ["address", "uint256"]
        "supplyRatePerBlock()" → []
    """
    if "(" not in signature or not signature.endswith(")"):
        raise ValueError(f"Malformed function signature: {signature!r}")
    inner = signature[signature.index("(") + 1 : -1].strip()
    if not inner:
        return []
    return [t.strip() for t in inner.split(",")]


def function_selector(signature: str) -> bytes:
    """First four bytes of the keccak hash of the canonical signature."""
    return keccak(text=signature.replace(" ", ""))[:4]


def encode_call(signature: str, args: Sequence[Any] = ()) -> str:
    """Build hex calldata for ``signature`` applied to ``args``."""
    types = argument_types(signature)
    if len(types) != len(args):
        raise ValueError(
            f"{signature} expects {len(types)} arguments, got {len(args)}"
        )
    payload = function_selector(signature) + encode(types, list(args))
    return "0x" + payload.hex()


def decode_result(types: Sequence[str], data: str) -> tuple[Any, ...]:
    """Decode hex return data into a tuple of Python values."""
    raw = bytes.fromhex(data[2:] if data.startswith("0x") else data)
    if not raw and types:
        raise ValueError("Empty return data (call reverted or target is not a contract)")
    return tuple(decode(list(types), raw))


def hex_to_int(value: str | int | None) -> int:
    """Parse a JSON-RPC quantity (``"0x1a"``) into an int."""
    if value is None:
        raise ValueError("Missing quantity in RPC response")
    if isinstance(value, int):
        return value
    return int(value, 16)
