"""Property-based invariant fuzzer for EVM smart-contract bytecode."""

__version__ = "0.1.0"
