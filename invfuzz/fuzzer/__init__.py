"""Invariant fuzzing engine.

Implements type-directed random fuzzing with:
  - ABI type parsing and random word encoding
  - Keccak-256 function selectors
  - Uniform random calldata generation over a target's interface
  - A sequential call-then-check invariant loop over an EVM backend
"""
