"""Random calldata generation over a target's function set."""

from __future__ import annotations

import logging
import random
from collections.abc import Sequence
from dataclasses import dataclass

from invfuzz.core.errors import EmptyInterface
from invfuzz.fuzzer.abi_types import WORD_SIZE, random_encoded_value
from invfuzz.fuzzer.function_spec import FunctionSpec
from invfuzz.fuzzer.selector import SELECTOR_SIZE

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GeneratedCall:
    """A function picked at random and its fully encoded payload."""

    function: FunctionSpec
    calldata: bytes

    @property
    def hex(self) -> str:
        return "0x" + self.calldata.hex()


class CalldataGenerator:
    """Emit ``selector ++ word*`` payloads for uniformly chosen functions.

    The generator owns its function set for the lifetime of a campaign.
    Randomness is always supplied by the caller so a seeded
    :class:`random.Random` reproduces the same call sequence.
    """

    def __init__(self, functions: Sequence[FunctionSpec]) -> None:
        self._functions = tuple(functions)

    @property
    def functions(self) -> tuple[FunctionSpec, ...]:
        return self._functions

    def next_call(self, rng: random.Random) -> GeneratedCall:
        if not self._functions:
            raise EmptyInterface("Target interface declares no callable functions")

        function = self._functions[rng.randrange(len(self._functions))]
        payload = bytearray(function.calldata_size)
        payload[:SELECTOR_SIZE] = function.selector
        for index, kind in enumerate(function.params):
            offset = SELECTOR_SIZE + WORD_SIZE * index
            payload[offset:offset + WORD_SIZE] = random_encoded_value(kind, rng)

        call = GeneratedCall(function=function, calldata=bytes(payload))
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(
                "Call function %s with input %s",
                function.name, call.hex,
                extra={"function": function.name, "calldata": call.hex},
            )
        return call

    def next(self, rng: random.Random) -> bytes:
        """Return the calldata of the next random call."""
        return self.next_call(rng).calldata
