"""Solidity compiler integration producing fuzzable contract artifacts."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from invfuzz.core.errors import CompilationFailed, ContractNotFound

logger = logging.getLogger(__name__)

DEFAULT_SOLC_VERSION = "0.8.24"


@dataclass
class CompiledContract:
    """A single compiled contract."""

    name: str
    abi: list[dict[str, Any]] = field(default_factory=list)
    bytecode: str = ""
    deployed_bytecode: str = ""

    @property
    def creation_code(self) -> bytes:
        """Creation bytecode as raw bytes."""
        code = self.bytecode[2:] if self.bytecode.startswith("0x") else self.bytecode
        if "__" in code:
            raise CompilationFailed([f"{self.name}: bytecode has unlinked library placeholders"])
        try:
            return bytes.fromhex(code)
        except ValueError as e:
            raise CompilationFailed([f"{self.name}: invalid hex in bytecode ({e})"]) from e


@dataclass
class CompilationResult:
    """Result of compiling Solidity source code."""

    success: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    contracts: dict[str, CompiledContract] = field(default_factory=dict)

    def require_success(self) -> CompilationResult:
        if not self.success:
            raise CompilationFailed(self.errors)
        return self

    def get_contract(self, qualified_name: str) -> CompiledContract:
        """Look up ``"<source path>:<ContractName>"``.

        Raises:
            ContractNotFound: if the name is absent.
        """
        contract = self.contracts.get(qualified_name)
        if contract is None:
            raise ContractNotFound(qualified_name, list(self.contracts))
        return contract


class SolidityCompiler:
    """Compile Solidity source code using solc."""

    def __init__(
        self,
        version: str | None = None,
        evm_version: str = "shanghai",
        optimization: bool = True,
        optimization_runs: int = 200,
    ) -> None:
        self.version = version
        self.evm_version = evm_version
        self.optimization = optimization
        self.optimization_runs = optimization_runs

    def compile_path(self, path: str | Path) -> CompilationResult:
        """Compile a single ``.sol`` file, keyed by the path as given."""
        path = Path(path)
        try:
            source = path.read_text(encoding="utf-8")
        except OSError as e:
            return CompilationResult(success=False, errors=[f"Cannot read {path}: {e}"])
        return self.compile_files({path.as_posix(): source})

    def compile_files(self, source_files: dict[str, str]) -> CompilationResult:
        """Compile multiple Solidity source files.

        Args:
            source_files: Mapping of filename -> source code

        Returns:
            CompilationResult
        """
        try:
            import solcx

            solc_version = self.version
            if not solc_version:
                for source in source_files.values():
                    solc_version = self._detect_version(source)
                    if solc_version:
                        break
            solc_version = solc_version or DEFAULT_SOLC_VERSION

            if solc_version not in {str(v) for v in solcx.get_installed_solc_versions()}:
                logger.info("Installing solc %s", solc_version)
                solcx.install_solc(solc_version)

            standard_input = {
                "language": "Solidity",
                "sources": {
                    name: {"content": code} for name, code in source_files.items()
                },
                "settings": {
                    "optimizer": {
                        "enabled": self.optimization,
                        "runs": self.optimization_runs,
                    },
                    "evmVersion": self.evm_version,
                    "outputSelection": {
                        "*": {
                            "*": [
                                "abi",
                                "evm.bytecode.object",
                                "evm.deployedBytecode.object",
                            ],
                        }
                    },
                },
            }

            output = solcx.compile_standard(
                standard_input,
                solc_version=solc_version,
                allow_paths=".",
            )
            logger.info("Compiled %d source file(s) with solc %s", len(source_files), solc_version)
            return self._parse_output(output)

        except Exception as e:
            return CompilationResult(
                success=False,
                errors=[str(e)],
            )

    def _parse_output(self, output: dict[str, Any]) -> CompilationResult:
        """Parse solc standard JSON output into CompilationResult."""
        errors: list[str] = []
        warnings: list[str] = []
        contracts: dict[str, CompiledContract] = {}

        for error in output.get("errors", []):
            if error.get("severity") == "error":
                errors.append(error.get("formattedMessage", error.get("message", "")))
            else:
                warnings.append(error.get("formattedMessage", error.get("message", "")))

        for source_name, file_contracts in output.get("contracts", {}).items():
            for contract_name, contract_data in file_contracts.items():
                evm = contract_data.get("evm", {})
                contracts[f"{source_name}:{contract_name}"] = CompiledContract(
                    name=contract_name,
                    abi=contract_data.get("abi", []),
                    bytecode=evm.get("bytecode", {}).get("object", ""),
                    deployed_bytecode=evm.get("deployedBytecode", {}).get("object", ""),
                )

        return CompilationResult(
            success=len(errors) == 0,
            errors=errors,
            warnings=warnings,
            contracts=contracts,
        )

    @staticmethod
    def _detect_version(source_code: str) -> str | None:
        """Detect Solidity compiler version from pragma statement."""
        match = re.search(r"pragma\s+solidity\s+[\^~>=<]*\s*([\d.]+)", source_code)
        if match:
            return match.group(1)
        return None


def load_combined_json(path: str | Path) -> CompilationResult:
    """Load the output of ``solc --combined-json bin,abi``.

    Contracts are keyed ``"<source path>:<ContractName>"`` exactly as solc
    writes them. Older solc releases encode ``abi`` as a JSON string.
    """
    path = Path(path)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        return CompilationResult(success=False, errors=[f"Cannot load {path}: {e}"])

    contracts: dict[str, CompiledContract] = {}
    for qualified_name, entry in data.get("contracts", {}).items():
        abi = entry.get("abi", [])
        if isinstance(abi, str):
            try:
                abi = json.loads(abi)
            except json.JSONDecodeError as e:
                return CompilationResult(
                    success=False, errors=[f"{qualified_name}: malformed ABI ({e})"],
                )
        contracts[qualified_name] = CompiledContract(
            name=qualified_name.rsplit(":", 1)[-1],
            abi=abi,
            bytecode=entry.get("bin", ""),
            deployed_bytecode=entry.get("bin-runtime", ""),
        )

    if not contracts:
        return CompilationResult(success=False, errors=[f"No contracts in {path}"])
    return CompilationResult(success=True, contracts=contracts)
