"""Invariant fuzzing campaign: the call-then-check control loop.

Lifecycle
---------
::

    COMPILING ──setup()──▶ DEPLOYED ──run()──▶ RUNNING ──▶ REPORTED
        │                     │
        │                     └── checker deployed, setUp() called,
        │                         target address read from inv()
        └── target interface resolved to FunctionSpecs

Each iteration sends one random call to the target and then asks the
invariant checker for a verdict:

  - target faults                  → crash (``target_fault``)
  - target reverts, policy=crash   → crash (``target_revert``)
  - invariant call reverts/faults  → crash (``invariant_check_failed``)
  - invariant returns false        → crash (``invariant_false``)
  - invariant returns true         → next iteration

Setup problems raise :class:`~invfuzz.core.errors.FuzzerError` subclasses
and are never retried. A crash is the campaign's result, not an error.
"""

from __future__ import annotations

import logging
import random
import secrets
import time
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from eth_utils import to_checksum_address

from invfuzz.core.errors import EmptyInterface, InvariantEncodingViolation, SetupFailed
from invfuzz.core.types import CampaignReport, CampaignState, CrashKind, RevertPolicy, Verdict
from invfuzz.fuzzer.abi_types import WORD_SIZE
from invfuzz.fuzzer.calldata import CalldataGenerator, GeneratedCall
from invfuzz.fuzzer.evm_executor import ExecutionBackend, ExecutionResult
from invfuzz.fuzzer.function_spec import build_function_specs
from invfuzz.fuzzer.selector import selector_of
from invfuzz.ingestion.solidity_compiler import CompilationResult

logger = logging.getLogger(__name__)


# ── Configuration ────────────────────────────────────────────────────────────


@dataclass
class CampaignConfig:
    """Configuration for an invariant fuzzing campaign."""
    source_path: str = "contract/contract.sol"
    target_name: str = "InvariantBreaker"
    invariant_checker_name: str = "InvariantTest"
    setup_signature: str = "setUp()"
    target_getter_signature: str = "inv()"
    invariant_signature: str = "invariant_neverFalse()"
    seed: int | None = None
    progress_interval: int = 100_000
    max_iterations: int = 0  # 0 = until the first crash
    revert_policy: RevertPolicy = RevertPolicy.CHECK_INVARIANT

    @property
    def source_key(self) -> str:
        """Source path spelled the way the compiler keys its output."""
        return Path(self.source_path).as_posix()

    @property
    def target_qualified_name(self) -> str:
        return f"{self.source_key}:{self.target_name}"

    @property
    def checker_qualified_name(self) -> str:
        return f"{self.source_key}:{self.invariant_checker_name}"

    @classmethod
    def from_settings(cls, settings: Any) -> CampaignConfig:
        return cls(
            source_path=settings.contract_path,
            target_name=settings.target_name,
            invariant_checker_name=settings.invariant_checker_name,
            setup_signature=settings.setup_signature,
            target_getter_signature=settings.target_getter_signature,
            invariant_signature=settings.invariant_signature,
            seed=settings.seed,
            progress_interval=settings.progress_interval,
            max_iterations=settings.max_iterations,
            revert_policy=RevertPolicy(settings.revert_policy),
        )


@dataclass(frozen=True)
class Crash:
    """Classification of a failing iteration and the target call behind it."""
    kind: CrashKind
    reason: str
    target_result: ExecutionResult | None = None


# ── Return-word decoding ─────────────────────────────────────────────────────


def decode_bool_word(data: bytes) -> bool:
    """Decode an ABI ``bool`` return word without coercion.

    Raises:
        InvariantEncodingViolation: unless ``data`` is 31 zero bytes
            followed by 0x00 or 0x01.
    """
    if len(data) != WORD_SIZE or any(data[:WORD_SIZE - 1]) or data[-1] > 1:
        raise InvariantEncodingViolation(data)
    return data[-1] == 1


def decode_address_word(data: bytes) -> bytes:
    """Take the low 20 bytes of the first 32-byte return word."""
    if len(data) < WORD_SIZE:
        raise SetupFailed(
            f"Expected a 32-byte address word, got {len(data)} bytes: 0x{data.hex()}"
        )
    return bytes(data[12:WORD_SIZE])


# ── Campaign ─────────────────────────────────────────────────────────────────


class InvariantFuzzer:
    """Sequential single-target invariant fuzzer.

    Owns the backend exclusively for the lifetime of the campaign: no other
    component may issue calls against it while the loop runs.
    """

    def __init__(
        self,
        backend: ExecutionBackend,
        config: CampaignConfig | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.backend = backend
        self.config = config or CampaignConfig()
        if self.config.progress_interval <= 0:
            raise ValueError("progress_interval must be positive")
        # an injected rng has no seed that would replay the run
        self.seed: int | None
        if rng is not None:
            self.seed = None
            self._rng = rng
        else:
            self.seed = self.config.seed if self.config.seed is not None else secrets.randbits(64)
            self._rng = random.Random(self.seed)
        self.campaign_id = uuid.uuid4().hex

        self.state = CampaignState.COMPILING
        self.iterations = 0
        self.target_address: bytes | None = None
        self.invariant_checker_address: bytes | None = None
        self._generator: CalldataGenerator | None = None
        self._invariant_calldata = selector_of(self.config.invariant_signature)

    @property
    def generator(self) -> CalldataGenerator:
        if self._generator is None:
            raise RuntimeError("Target interface not resolved; call setup() first")
        return self._generator

    # ── Setup ────────────────────────────────────────────────────────

    def setup(self, compilation: CompilationResult) -> None:
        """Resolve the target interface and deploy the invariant checker."""
        if self.state is not CampaignState.COMPILING:
            raise RuntimeError(f"Campaign already set up (state={self.state.value})")

        compilation.require_success()
        target = compilation.get_contract(self.config.target_qualified_name)
        checker = compilation.get_contract(self.config.checker_qualified_name)

        specs = build_function_specs(target.abi)
        if not specs:
            raise EmptyInterface(f"{target.name} declares no callable functions")
        self._generator = CalldataGenerator(specs)
        logger.info(
            "Target %s exposes %d function(s): %s",
            target.name, len(specs), ", ".join(s.signature for s in specs),
        )

        deployed = self.backend.deploy(checker.creation_code)
        if not deployed.success or deployed.created_address is None:
            raise SetupFailed(f"Deploying {checker.name} failed: {deployed.describe()}")
        self.invariant_checker_address = deployed.created_address

        self._setup_call(self.config.setup_signature)
        getter = self._setup_call(self.config.target_getter_signature)
        target_address = decode_address_word(getter.return_data)
        if self.backend.code_size(target_address) == 0:
            raise SetupFailed(
                f"{self.config.target_getter_signature} returned "
                f"{to_checksum_address(target_address)}, which has no code"
            )
        self.target_address = target_address

        self.state = CampaignState.DEPLOYED
        logger.info(
            "Invariant checker %s at %s, target %s at %s",
            checker.name, to_checksum_address(self.invariant_checker_address),
            target.name, to_checksum_address(self.target_address),
            extra={"campaign_id": self.campaign_id},
        )

    def _setup_call(self, signature: str) -> ExecutionResult:
        assert self.invariant_checker_address is not None
        result = self.backend.call(self.invariant_checker_address, selector_of(signature))
        if not result.success:
            raise SetupFailed(f"{signature} on the invariant checker: {result.describe()}")
        return result

    # ── Loop ─────────────────────────────────────────────────────────

    def run(self) -> CampaignReport:
        """Fuzz until the first crash (or the iteration budget runs out)."""
        if self.state is not CampaignState.DEPLOYED:
            raise RuntimeError(f"Campaign is not deployed (state={self.state.value})")
        self.state = CampaignState.RUNNING
        start = time.monotonic()
        logger.info(
            "Fuzzing with seed %s (revert policy: %s)",
            self.seed, self.config.revert_policy.value,
            extra={"campaign_id": self.campaign_id, "seed": self.seed},
        )

        budget = self.config.max_iterations
        while not budget or self.iterations < budget:
            self.iterations += 1
            call = self.generator.next_call(self._rng)
            crash = self._execute_iteration(call)
            if crash is not None:
                return self._report(start, call, crash)

            if self.iterations % self.config.progress_interval == 0:
                logger.info(
                    "Tested %d iterations without a crash...", self.iterations,
                    extra={"campaign_id": self.campaign_id, "iteration": self.iterations},
                )

        return self._report(start)

    def _execute_iteration(self, call: GeneratedCall) -> Crash | None:
        assert self.target_address is not None
        result = self.backend.call(self.target_address, call.calldata)
        if result.faulted:
            return Crash(CrashKind.TARGET_FAULT, result.reason, result)
        if result.reverted and self.config.revert_policy is RevertPolicy.CRASH:
            return Crash(CrashKind.TARGET_REVERT, result.reason, result)
        crash = self._check_invariant()
        if crash is not None:
            return Crash(crash.kind, crash.reason, result)
        return None

    def _check_invariant(self) -> Crash | None:
        assert self.invariant_checker_address is not None
        result = self.backend.call(self.invariant_checker_address, self._invariant_calldata)
        if not result.success:
            return Crash(CrashKind.INVARIANT_CHECK_FAILED, result.describe())
        if not decode_bool_word(result.return_data):
            return Crash(CrashKind.INVARIANT_FALSE, f"{self.config.invariant_signature} returned false")
        return None

    # ── Reporting ────────────────────────────────────────────────────

    def _report(
        self,
        start: float,
        call: GeneratedCall | None = None,
        crash: Crash | None = None,
    ) -> CampaignReport:
        self.state = CampaignState.REPORTED
        report = CampaignReport(
            verdict=Verdict.CRASH_DETECTED if crash else Verdict.EXHAUSTED,
            iterations=self.iterations,
            crash_kind=crash.kind if crash else None,
            function=call.function.signature if call else None,
            selector="0x" + call.function.selector.hex() if call else None,
            calldata=call.hex if call else None,
            reason=crash.reason if crash else "",
            target_result=(
                crash.target_result.to_dict() if crash and crash.target_result else None
            ),
            seed=self.seed,
            duration_seconds=round(time.monotonic() - start, 3),
            target_address=to_checksum_address(self.target_address) if self.target_address else None,
            invariant_checker_address=(
                to_checksum_address(self.invariant_checker_address)
                if self.invariant_checker_address else None
            ),
        )

        extra = {"campaign_id": self.campaign_id, "iteration": self.iterations}
        if crash and call:
            logger.warning("Crash found after %d iterations!", self.iterations, extra=extra)
            logger.warning(
                "Crashing input: %s (%s, %s)", call.hex, call.function.signature, crash.kind.value,
                extra={**extra, "function": call.function.name, "calldata": call.hex},
            )
        else:
            logger.info("No crash found after %d iterations", self.iterations, extra=extra)
        return report

    def fuzz(self, compilation: CompilationResult) -> CampaignReport:
        """Set up and run in one step."""
        self.setup(compilation)
        return self.run()
