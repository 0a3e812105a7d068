"""Shared fixtures for the invfuzz test suite."""

from __future__ import annotations

import random
from collections.abc import Callable
from typing import Any

import pytest

from invfuzz.core.types import ExecutionStatus
from invfuzz.fuzzer.campaign import CampaignConfig
from invfuzz.fuzzer.evm_executor import ExecutionBackend, ExecutionResult
from invfuzz.fuzzer.selector import selector_of
from invfuzz.ingestion.solidity_compiler import CompilationResult, CompiledContract

SOURCE = "contract/contract.sol"
CHECKER_CODE = bytes.fromhex("6080604052")

SETUP = selector_of("setUp()")
INV = selector_of("inv()")
INVARIANT = selector_of("invariant_neverFalse()")


# ── Result helpers ───────────────────────────────────────────────────────────


def word(value: int) -> bytes:
    return value.to_bytes(32, "big")


def ok(data: bytes = b"") -> ExecutionResult:
    return ExecutionResult(status=ExecutionStatus.SUCCESS, gas_used=21_000, return_data=data)


def revert(reason: str = "0x") -> ExecutionResult:
    return ExecutionResult(status=ExecutionStatus.REVERT, gas_used=21_000, reason=reason)


def fault(reason: str = "InvalidInstruction") -> ExecutionResult:
    return ExecutionResult(status=ExecutionStatus.FAULT, gas_used=21_000, reason=reason)


# ── Scripted execution environment ───────────────────────────────────────────


class CounterTarget:
    """Target whose invariant breaks once it has handled ``flip_after`` calls."""

    def __init__(self, flip_after: int) -> None:
        self.flip_after = flip_after
        self.received: list[bytes] = []

    @property
    def healthy(self) -> bool:
        return len(self.received) < self.flip_after

    def handle(self, calldata: bytes) -> ExecutionResult:
        self.received.append(calldata)
        return ok()


class RevertingTarget(CounterTarget):
    def handle(self, calldata: bytes) -> ExecutionResult:
        super().handle(calldata)
        return revert("Error('nope')")


class FaultingTarget(CounterTarget):
    def handle(self, calldata: bytes) -> ExecutionResult:
        super().handle(calldata)
        return fault("InvalidInstruction: Invalid opcode 0xfe")


class CheckerContract:
    """Invariant checker: setUp() deploys the target, inv() returns it.

    ``overrides`` maps a selector to a canned result, replacing the default
    behaviour for that entry point.
    """

    def __init__(
        self,
        backend: ScriptedBackend,
        target_factory: Callable[[], CounterTarget],
        overrides: dict[bytes, ExecutionResult] | None = None,
    ) -> None:
        self.backend = backend
        self.target_factory = target_factory
        self.overrides = overrides or {}
        self.target: CounterTarget | None = None
        self.target_address: bytes | None = None

    def handle(self, calldata: bytes) -> ExecutionResult:
        selector = calldata[:4]
        if selector in self.overrides:
            return self.overrides[selector]
        if selector == SETUP:
            self.target = self.target_factory()
            self.target_address = self.backend.install(self.target)
            return ok()
        if selector == INV:
            return ok(bytes(12) + (self.target_address or bytes(20)))
        if selector == INVARIANT:
            assert self.target is not None
            return ok(word(int(self.target.healthy)))
        return revert("unknown selector")


class ScriptedBackend(ExecutionBackend):
    """In-memory backend dispatching calls to Python contract objects."""

    def __init__(self) -> None:
        self.factories: dict[bytes, Callable[[ScriptedBackend], Any]] = {}
        self.contracts: dict[bytes, Any] = {}
        self.deployments: list[bytes] = []
        self.calls: list[tuple[bytes, bytes]] = []
        self._next_address = 0x1000

    def register_code(self, code: bytes, factory: Callable[[ScriptedBackend], Any]) -> None:
        self.factories[code] = factory

    def install(self, contract: Any) -> bytes:
        address = self._next_address.to_bytes(20, "big")
        self._next_address += 1
        self.contracts[address] = contract
        return address

    def deploy(self, creation_code: bytes) -> ExecutionResult:
        self.deployments.append(creation_code)
        factory = self.factories.get(creation_code)
        if factory is None:
            return fault("InvalidInstruction: unknown creation code")
        result = ok()
        result.created_address = self.install(factory(self))
        return result

    def call(self, address: bytes, calldata: bytes) -> ExecutionResult:
        self.calls.append((address, calldata))
        contract = self.contracts.get(address)
        if contract is None:
            return ok()
        return contract.handle(calldata)

    def code_size(self, address: bytes) -> int:
        return 1 if address in self.contracts else 0


# ── ABI / compilation fixtures ───────────────────────────────────────────────


def abi_function(name: str, *types: str, **extra: Any) -> dict[str, Any]:
    entry = {
        "type": "function",
        "name": name,
        "inputs": [{"name": f"arg{i}", "type": t, "internalType": t} for i, t in enumerate(types)],
        "outputs": [],
        "stateMutability": "nonpayable",
    }
    entry.update(extra)
    return entry


def make_compilation(
    target_abi: list[dict[str, Any]],
    checker_code: bytes = CHECKER_CODE,
    include_target: bool = True,
    include_checker: bool = True,
) -> CompilationResult:
    contracts: dict[str, CompiledContract] = {}
    if include_target:
        contracts[f"{SOURCE}:InvariantBreaker"] = CompiledContract(
            name="InvariantBreaker", abi=target_abi, bytecode="6080",
        )
    if include_checker:
        contracts[f"{SOURCE}:InvariantTest"] = CompiledContract(
            name="InvariantTest",
            abi=[abi_function("setUp"), abi_function("inv"), abi_function("invariant_neverFalse")],
            bytecode=checker_code.hex(),
        )
    return CompilationResult(success=True, contracts=contracts)


@pytest.fixture
def rng() -> random.Random:
    return random.Random(1234)


@pytest.fixture
def target_abi() -> list[dict[str, Any]]:
    return [abi_function("increment", "uint8")]


@pytest.fixture
def compilation(target_abi: list[dict[str, Any]]) -> CompilationResult:
    return make_compilation(target_abi)


@pytest.fixture
def campaign_config() -> CampaignConfig:
    return CampaignConfig(source_path=SOURCE, seed=7, progress_interval=1_000)


TARGETS: dict[str, type[CounterTarget]] = {
    "counter": CounterTarget,
    "revert": RevertingTarget,
    "fault": FaultingTarget,
}


@pytest.fixture
def make_compilation_result() -> Callable[..., CompilationResult]:
    return make_compilation


@pytest.fixture
def make_backend() -> Callable[..., ScriptedBackend]:
    """Build a scripted backend whose checker deploys a flipping target.

    ``target`` picks the target behaviour: "counter" succeeds, "revert"
    always reverts, "fault" always faults.
    """

    def _make(
        flip_after: int = 5,
        target: str = "counter",
        overrides: dict[bytes, ExecutionResult] | None = None,
    ) -> ScriptedBackend:
        backend = ScriptedBackend()
        backend.register_code(
            CHECKER_CODE,
            lambda b: CheckerContract(b, lambda: TARGETS[target](flip_after), overrides),
        )
        return backend

    return _make
