"""Function selectors: first 4 bytes of Keccak-256 over a signature."""

from __future__ import annotations

from collections.abc import Sequence

from eth_utils import keccak

SELECTOR_SIZE = 4


def canonical_signature(name: str, type_names: Sequence[str]) -> str:
    """Build ``name(type1,type2,...)`` from declared type names."""
    return f"{name}({','.join(type_names)})"


def selector_of(signature: str) -> bytes:
    """Return the 4-byte selector of a canonical signature string."""
    return keccak(text=signature)[:SELECTOR_SIZE]
