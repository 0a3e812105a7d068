"""Core configuration for the invfuzz engine."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="INVFUZZ_",
        case_sensitive=False,
    )

    # ── App ──────────────────────────────────────────────────────────────
    app_name: str = "invfuzz"
    app_env: Literal["development", "staging", "production"] = "development"
    log_level: str = "INFO"

    # ── Compilation ──────────────────────────────────────────────────────
    contract_path: str = "contract/contract.sol"
    solc_version: str = "0.8.24"
    evm_version: Literal["london", "paris", "shanghai"] = "shanghai"
    optimizer_runs: int = 200

    # ── Campaign ─────────────────────────────────────────────────────────
    target_name: str = "InvariantBreaker"
    invariant_checker_name: str = "InvariantTest"
    setup_signature: str = "setUp()"
    target_getter_signature: str = "inv()"
    invariant_signature: str = "invariant_neverFalse()"
    seed: int | None = None
    progress_interval: int = Field(default=100_000, gt=0)
    max_iterations: int = Field(default=0, ge=0)  # 0 = run until a crash
    revert_policy: Literal["check_invariant", "crash"] = "check_invariant"

    # ── Execution backend ────────────────────────────────────────────────
    gas_limit: int = Field(default=2**63 - 1, gt=0)
    caller_address: str = "0x1000000000000000000000000000000000000000"
    chain_id: int = 1337

    @field_validator("caller_address")
    @classmethod
    def _check_address(cls, value: str) -> str:
        body = value[2:] if value.startswith(("0x", "0X")) else value
        if len(body) != 40:
            raise ValueError("caller_address must be 20 bytes of hex")
        bytes.fromhex(body)
        return "0x" + body.lower()


@lru_cache
def get_settings() -> Settings:
    """Return cached settings singleton."""
    return Settings()
