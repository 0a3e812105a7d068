"""ABI parameter types and their random in-place encodings.

The full ABI value space is modelled as a closed family of frozen
dataclasses. Only a baseline of leaf kinds can be parsed from a type name
and only the static ones among those can be drawn at random; everything
else raises :class:`UnsupportedTypeKind` instead of being approximated.

::

    AbiValueKind
      ├── Address, Bytes, Bool, String
      ├── Int(bits), Uint(bits), FixedBytes(length)
      └── Array(element), FixedArray(element, length), Tuple(components)
"""

from __future__ import annotations

import abc
import random
import re
from dataclasses import dataclass

from invfuzz.core.errors import UnsupportedTypeKind

WORD_SIZE = 32
ADDRESS_SIZE = 20


# ── Kinds ────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class AbiValueKind(abc.ABC):
    """Base of every ABI parameter kind."""

    @property
    @abc.abstractmethod
    def canonical(self) -> str:
        """Canonical type name as used in function signatures."""


@dataclass(frozen=True)
class Address(AbiValueKind):
    @property
    def canonical(self) -> str:
        return "address"


@dataclass(frozen=True)
class Bytes(AbiValueKind):
    """Dynamic byte string."""

    @property
    def canonical(self) -> str:
        return "bytes"


@dataclass(frozen=True)
class Bool(AbiValueKind):
    @property
    def canonical(self) -> str:
        return "bool"


@dataclass(frozen=True)
class String(AbiValueKind):
    @property
    def canonical(self) -> str:
        return "string"


def _check_bits(bits: int) -> None:
    if bits <= 0 or bits > 256 or bits % 8:
        raise ValueError(f"integer width must be a multiple of 8 in 8..256, got {bits}")


@dataclass(frozen=True)
class Int(AbiValueKind):
    bits: int

    def __post_init__(self) -> None:
        _check_bits(self.bits)

    @property
    def canonical(self) -> str:
        return f"int{self.bits}"


@dataclass(frozen=True)
class Uint(AbiValueKind):
    bits: int

    def __post_init__(self) -> None:
        _check_bits(self.bits)

    @property
    def canonical(self) -> str:
        return f"uint{self.bits}"

    @property
    def byte_width(self) -> int:
        return self.bits // 8


@dataclass(frozen=True)
class FixedBytes(AbiValueKind):
    length: int

    def __post_init__(self) -> None:
        if not 1 <= self.length <= WORD_SIZE:
            raise ValueError(f"bytesN length must be in 1..32, got {self.length}")

    @property
    def canonical(self) -> str:
        return f"bytes{self.length}"


@dataclass(frozen=True)
class Array(AbiValueKind):
    """Dynamic-length array."""

    element: AbiValueKind

    @property
    def canonical(self) -> str:
        return f"{self.element.canonical}[]"


@dataclass(frozen=True)
class FixedArray(AbiValueKind):
    element: AbiValueKind
    length: int

    @property
    def canonical(self) -> str:
        return f"{self.element.canonical}[{self.length}]"


@dataclass(frozen=True)
class Tuple(AbiValueKind):
    components: tuple[AbiValueKind, ...]

    @property
    def canonical(self) -> str:
        return "(" + ",".join(c.canonical for c in self.components) + ")"


# ── Parsing ──────────────────────────────────────────────────────────────────


_BASELINE: dict[str, AbiValueKind] = {
    "address": Address(),
    "bytes": Bytes(),
    "uint8": Uint(8),
    "uint16": Uint(16),
    "uint32": Uint(32),
    "uint64": Uint(64),
    "uint128": Uint(128),
    "uint256": Uint(256),
}

SUPPORTED_TYPE_NAMES: tuple[str, ...] = tuple(_BASELINE)

_ARRAY_RE = re.compile(r"\[\d*\]$")
_INT_RE = re.compile(r"u?int\d*$")
_FIXED_BYTES_RE = re.compile(r"bytes\d+$")


def _unsupported_reason(type_name: str) -> str:
    if type_name.startswith("(") or type_name.startswith("tuple"):
        return "tuple types are not implemented"
    if _ARRAY_RE.search(type_name):
        return "array types are not implemented"
    if type_name.startswith("int") and _INT_RE.match(type_name):
        return "signed integers are not implemented"
    if _INT_RE.match(type_name):
        return "unsigned integer width is not implemented"
    if _FIXED_BYTES_RE.match(type_name):
        return "fixed-size byte vectors are not implemented"
    if type_name in ("bool", "string"):
        return f"{type_name} is not implemented"
    return "unknown type name"


def parse_type(type_name: str) -> AbiValueKind:
    """Parse a declared ABI type name such as ``"uint256"`` or ``"address"``.

    Raises:
        UnsupportedTypeKind: for any name outside the implemented baseline.
    """
    kind = _BASELINE.get(type_name)
    if kind is None:
        raise UnsupportedTypeKind(
            type_name,
            f"{_unsupported_reason(type_name)} (supported: {', '.join(SUPPORTED_TYPE_NAMES)})",
        )
    return kind


# ── Random encoding ──────────────────────────────────────────────────────────


def is_encodable(kind: AbiValueKind) -> bool:
    """Whether :func:`random_encoded_value` can draw values of ``kind``."""
    return isinstance(kind, (Address, Uint))


def random_encoded_value(kind: AbiValueKind, rng: random.Random) -> bytes:
    """Draw a random value of ``kind`` in its 32-byte in-place encoding.

    Values are right-aligned: a ``uint8`` is 31 zero bytes followed by one
    random byte, an ``address`` is 12 zero bytes followed by 20 random bytes.
    """
    if isinstance(kind, Uint):
        return bytes(WORD_SIZE - kind.byte_width) + rng.randbytes(kind.byte_width)
    if isinstance(kind, Address):
        return bytes(WORD_SIZE - ADDRESS_SIZE) + rng.randbytes(ADDRESS_SIZE)
    raise UnsupportedTypeKind(kind.canonical, "no random encoder for this kind")
