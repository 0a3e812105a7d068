"""Error taxonomy for fuzzing campaigns.

Every fatal condition raises a subclass of :class:`FuzzerError` carrying a
stable :class:`ErrorCode`. A detected crash is *not* an error; it is the
``crash_detected`` verdict of a campaign report.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Stable error codes surfaced by the CLI and logs."""

    # Setup-time
    UNSUPPORTED_TYPE_KIND = "UNSUPPORTED_TYPE_KIND"
    EMPTY_INTERFACE = "EMPTY_INTERFACE"
    CONTRACT_NOT_FOUND = "CONTRACT_NOT_FOUND"
    SETUP_FAILED = "SETUP_FAILED"
    COMPILATION_ERROR = "COMPILATION_ERROR"

    # Runtime
    INVARIANT_ENCODING_VIOLATION = "INVARIANT_ENCODING_VIOLATION"


class FuzzerError(Exception):
    """Fatal campaign error with structured code + message."""

    code: ErrorCode

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code.value, "message": self.message, "details": self.details}


class UnsupportedTypeKind(FuzzerError):
    """A parameter type the generator cannot parse or encode."""

    code = ErrorCode.UNSUPPORTED_TYPE_KIND

    def __init__(self, type_name: str, reason: str = "not supported") -> None:
        self.type_name = type_name
        super().__init__(
            f"Unsupported ABI type {type_name!r}: {reason}",
            {"type_name": type_name},
        )


class EmptyInterface(FuzzerError):
    """The target exposes no callable functions."""

    code = ErrorCode.EMPTY_INTERFACE


class ContractNotFound(FuzzerError):
    """Compiler output lacks an expected contract."""

    code = ErrorCode.CONTRACT_NOT_FOUND

    def __init__(self, name: str, available: list[str] | None = None) -> None:
        self.name = name
        self.available = sorted(available or [])
        super().__init__(
            f"Contract {name!r} not found in compiler output",
            {"name": name, "available": self.available},
        )


class SetupFailed(FuzzerError):
    """Deployment or an initialization call reverted or faulted."""

    code = ErrorCode.SETUP_FAILED


class CompilationFailed(FuzzerError):
    """The compiler collaborator reported errors."""

    code = ErrorCode.COMPILATION_ERROR

    def __init__(self, errors: list[str]) -> None:
        self.errors = errors
        summary = errors[0] if errors else "unknown compiler error"
        super().__init__(f"Compilation failed: {summary}", {"errors": errors})


class InvariantEncodingViolation(FuzzerError):
    """The invariant check returned something that is not an ABI bool."""

    code = ErrorCode.INVARIANT_ENCODING_VIOLATION

    def __init__(self, return_data: bytes) -> None:
        self.return_data = bytes(return_data)
        super().__init__(
            f"Invariant check returned a non-boolean word: 0x{self.return_data.hex()}",
            {"return_data": "0x" + self.return_data.hex()},
        )
