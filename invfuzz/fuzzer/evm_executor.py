"""EVM execution backends for invariant fuzzing.

The fuzz loop only talks to an :class:`ExecutionBackend`: deploy creation
bytecode, call a deployed contract, read code size. Every message yields an
explicit tri-state :class:`ExecutionResult` (success, revert, fault) so an
abnormal halt is never confused with a normal revert.

:class:`PyEvmBackend` runs messages in-process on py-evm:

  1. Build a single-block chain at genesis for the configured fork
  2. Apply create/call messages directly against its state
  3. Lock state changes after every message so calls are strictly ordered
  4. Classify the computation as success / revert / fault
"""

from __future__ import annotations

import abc
import logging
from dataclasses import dataclass, field
from typing import Any

import eth_abi
from eth import constants
from eth._utils.address import generate_contract_address
from eth.chains.base import Chain
from eth.db.atomic import AtomicDB
from eth.exceptions import Revert
from eth.vm.forks.london import LondonVM
from eth.vm.forks.paris import ParisVM
from eth.vm.forks.shanghai import ShanghaiVM
from eth.vm.message import Message
from eth_abi.exceptions import DecodingError
from eth_utils import to_canonical_address, to_checksum_address

from invfuzz.core.types import ExecutionStatus

logger = logging.getLogger(__name__)

ERROR_STRING_SELECTOR = bytes.fromhex("08c379a0")  # Error(string)
PANIC_SELECTOR = bytes.fromhex("4e487b71")  # Panic(uint256)

FORKS: dict[str, type] = {
    "london": LondonVM,
    "paris": ParisVM,
    "shanghai": ShanghaiVM,
}


# ── Configuration ────────────────────────────────────────────────────────────


@dataclass
class EvmConfig:
    """Configuration for the py-evm backend."""
    fork: str = "shanghai"
    gas_limit: int = 2**63 - 1  # per message; effectively unbounded
    caller: str = "0x1000000000000000000000000000000000000000"
    chain_id: int = 1337
    block_gas_limit: int = 30_000_000
    block_timestamp: int = 1_700_000_000

    @classmethod
    def from_settings(cls, settings: Any) -> EvmConfig:
        return cls(
            fork=settings.evm_version,
            gas_limit=settings.gas_limit,
            caller=settings.caller_address,
            chain_id=settings.chain_id,
        )


# ── Execution Results ────────────────────────────────────────────────────────


@dataclass
class ExecutionResult:
    """Outcome of one create or call message."""
    status: ExecutionStatus = ExecutionStatus.SUCCESS
    gas_used: int = 0
    return_data: bytes = b""
    reason: str = ""
    created_address: bytes | None = None
    logs: list[dict[str, Any]] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.status is ExecutionStatus.SUCCESS

    @property
    def reverted(self) -> bool:
        return self.status is ExecutionStatus.REVERT

    @property
    def faulted(self) -> bool:
        return self.status is ExecutionStatus.FAULT

    def describe(self) -> str:
        if self.success:
            return f"success (gas_used={self.gas_used})"
        return f"{self.status.value} (gas_used={self.gas_used}): {self.reason}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "gas_used": self.gas_used,
            "return_data": "0x" + self.return_data.hex(),
            "reason": self.reason,
            "created_address": (
                to_checksum_address(self.created_address) if self.created_address else None
            ),
            "logs": self.logs[:20],
        }


def decode_revert_reason(data: bytes) -> str:
    """Render revert data as ``Error(...)``/``Panic(...)`` or raw hex."""
    try:
        if data[:4] == ERROR_STRING_SELECTOR:
            # revert strings need not be valid UTF-8
            (raw,) = eth_abi.decode(["bytes"], data[4:])
            return f"Error({raw.decode('utf-8', 'replace')!r})"
        if data[:4] == PANIC_SELECTOR:
            (code,) = eth_abi.decode(["uint256"], data[4:])
            return f"Panic(0x{code:02x})"
    except DecodingError:
        pass
    return "0x" + data.hex() if data else "empty revert data"


# ── Backend Interface ────────────────────────────────────────────────────────


class ExecutionBackend(abc.ABC):
    """Deterministic, stateful contract-execution environment.

    Calls mutate shared account/storage state and must be issued strictly
    one after another by a single owner.
    """

    @abc.abstractmethod
    def deploy(self, creation_code: bytes) -> ExecutionResult:
        """Run creation bytecode; ``created_address`` is set on success."""

    @abc.abstractmethod
    def call(self, address: bytes, calldata: bytes) -> ExecutionResult:
        """Send ``calldata`` to the contract at ``address``."""

    @abc.abstractmethod
    def code_size(self, address: bytes) -> int:
        """Size of the runtime code at ``address`` (0 if none)."""


# ── py-evm Backend ───────────────────────────────────────────────────────────


class PyEvmBackend(ExecutionBackend):
    """In-process EVM on py-evm; every message is sent from one caller account."""

    def __init__(self, config: EvmConfig | None = None) -> None:
        self.config = config or EvmConfig()
        if self.config.fork not in FORKS:
            raise ValueError(
                f"Unsupported fork {self.config.fork!r}; expected one of {sorted(FORKS)}"
            )
        self._caller = to_canonical_address(self.config.caller)
        self._state = self._build_state()

    def _build_state(self) -> Any:
        vm_class = FORKS[self.config.fork]
        chain_class = Chain.configure(
            __name__="InvfuzzChain",
            vm_configuration=((constants.GENESIS_BLOCK_NUMBER, vm_class),),
            chain_id=self.config.chain_id,
        )
        genesis_params = {
            "coinbase": constants.ZERO_ADDRESS,
            "difficulty": 0,
            "gas_limit": self.config.block_gas_limit,
            "timestamp": self.config.block_timestamp,
        }
        chain = chain_class.from_genesis(AtomicDB(), genesis_params)
        logger.debug("Built %s genesis state (chain_id=%d)", vm_class.__name__, self.config.chain_id)
        return chain.get_vm().state

    def _transaction_context(self) -> Any:
        return self._state.get_transaction_context_class()(
            gas_price=0,
            origin=self._caller,
        )

    def deploy(self, creation_code: bytes) -> ExecutionResult:
        state = self._state
        nonce = state.get_nonce(self._caller)
        state.increment_nonce(self._caller)
        contract_address = generate_contract_address(self._caller, nonce)

        message = Message(
            gas=self.config.gas_limit,
            to=constants.CREATE_CONTRACT_ADDRESS,
            sender=self._caller,
            value=0,
            data=b"",
            code=bytes(creation_code),
            create_address=contract_address,
        )
        computation = state.computation_class.apply_create_message(
            state, message, self._transaction_context(),
        )
        result = self._finalize(computation)
        if result.success:
            result.created_address = contract_address
            logger.debug(
                "Deployed contract at %s (%d bytes runtime)",
                to_checksum_address(contract_address), len(state.get_code(contract_address)),
            )
        return result

    def call(self, address: bytes, calldata: bytes) -> ExecutionResult:
        state = self._state
        message = Message(
            gas=self.config.gas_limit,
            to=address,
            sender=self._caller,
            value=0,
            data=bytes(calldata),
            code=state.get_code(address),
        )
        computation = state.computation_class.apply_message(
            state, message, self._transaction_context(),
        )
        return self._finalize(computation)

    def code_size(self, address: bytes) -> int:
        return len(self._state.get_code(address))

    def _finalize(self, computation: Any) -> ExecutionResult:
        self._state.lock_changes()

        logs = [
            {
                "address": to_checksum_address(address),
                "topics": [f"0x{topic:064x}" for topic in topics],
                "data": "0x" + data.hex(),
            }
            for address, topics, data in computation.get_log_entries()
        ]
        if logs:
            logger.debug("--- %d logs from %s ---", len(logs), logs[0]["address"])
            for idx, entry in enumerate(logs):
                logger.debug("log#%d topics=%s data=%s", idx, entry["topics"], entry["data"])

        if computation.is_success:
            return ExecutionResult(
                status=ExecutionStatus.SUCCESS,
                gas_used=computation.get_gas_used(),
                return_data=computation.output,
                logs=logs,
            )

        error = computation.error
        if isinstance(error, Revert):
            return ExecutionResult(
                status=ExecutionStatus.REVERT,
                gas_used=computation.get_gas_used(),
                return_data=computation.output,
                reason=decode_revert_reason(computation.output),
            )
        return ExecutionResult(
            status=ExecutionStatus.FAULT,
            gas_used=computation.get_gas_used(),
            reason=f"{type(error).__name__}: {error}" if str(error) else type(error).__name__,
        )
