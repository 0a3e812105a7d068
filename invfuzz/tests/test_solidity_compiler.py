"""Tests for invfuzz.ingestion.solidity_compiler.

solc itself is never invoked; solcx entry points are patched.
"""

from __future__ import annotations

import json
from unittest.mock import patch

import pytest

from invfuzz.core.errors import CompilationFailed, ContractNotFound
from invfuzz.ingestion.solidity_compiler import (
    CompilationResult,
    CompiledContract,
    SolidityCompiler,
    load_combined_json,
)

SOURCE = "contract/contract.sol"

STANDARD_OUTPUT = {
    "errors": [
        {"severity": "warning", "formattedMessage": "Warning: unused variable"},
    ],
    "contracts": {
        SOURCE: {
            "InvariantBreaker": {
                "abi": [{"type": "function", "name": "set0", "inputs": [{"name": "val", "type": "uint256"}]}],
                "evm": {
                    "bytecode": {"object": "6080604052"},
                    "deployedBytecode": {"object": "60806040"},
                },
            },
            "InvariantTest": {
                "abi": [],
                "evm": {"bytecode": {"object": "6001"}, "deployedBytecode": {"object": ""}},
            },
        }
    },
}


# ── Artifacts ────────────────────────────────────────────────────────────────


class TestCompiledContract:
    def test_creation_code(self):
        assert CompiledContract(name="A", bytecode="6080").creation_code == b"\x60\x80"

    def test_creation_code_with_prefix(self):
        assert CompiledContract(name="A", bytecode="0x6080").creation_code == b"\x60\x80"

    def test_unlinked_library(self):
        contract = CompiledContract(name="A", bytecode="6080__$abcdef$__6080")
        with pytest.raises(CompilationFailed, match="unlinked"):
            _ = contract.creation_code

    def test_invalid_hex(self):
        with pytest.raises(CompilationFailed):
            _ = CompiledContract(name="A", bytecode="60zz").creation_code


class TestCompilationResult:
    def test_get_contract(self):
        contract = CompiledContract(name="A")
        result = CompilationResult(success=True, contracts={"a.sol:A": contract})
        assert result.get_contract("a.sol:A") is contract

    def test_get_contract_missing(self):
        result = CompilationResult(success=True, contracts={"a.sol:A": CompiledContract(name="A")})
        with pytest.raises(ContractNotFound) as exc_info:
            result.get_contract("a.sol:B")
        assert exc_info.value.available == ["a.sol:A"]

    def test_require_success(self):
        with pytest.raises(CompilationFailed) as exc_info:
            CompilationResult(success=False, errors=["TypeError: boom"]).require_success()
        assert exc_info.value.errors == ["TypeError: boom"]
        assert "TypeError: boom" in exc_info.value.message


# ── solc standard JSON ───────────────────────────────────────────────────────


class TestSolidityCompiler:
    def test_parse_output(self):
        result = SolidityCompiler()._parse_output(STANDARD_OUTPUT)
        assert result.success
        assert result.warnings == ["Warning: unused variable"]
        breaker = result.get_contract(f"{SOURCE}:InvariantBreaker")
        assert breaker.name == "InvariantBreaker"
        assert breaker.creation_code == bytes.fromhex("6080604052")
        assert breaker.deployed_bytecode == "60806040"
        assert breaker.abi[0]["name"] == "set0"

    def test_parse_output_errors(self):
        output = {"errors": [{"severity": "error", "message": "ParserError: expected ';'"}]}
        result = SolidityCompiler()._parse_output(output)
        assert not result.success
        assert result.errors == ["ParserError: expected ';'"]

    @pytest.mark.parametrize("source,expected", [
        ("pragma solidity ^0.8.19;", "0.8.19"),
        ("pragma solidity >=0.7.0 <0.9.0;", "0.7.0"),
        ("pragma solidity 0.8.24;", "0.8.24"),
        ("contract A {}", None),
    ])
    def test_detect_version(self, source, expected):
        assert SolidityCompiler._detect_version(source) == expected

    def test_compile_files_uses_standard_json(self):
        compiler = SolidityCompiler(version="0.8.24", evm_version="paris", optimization_runs=1)
        with patch("solcx.get_installed_solc_versions", return_value=["0.8.24"]), \
             patch("solcx.install_solc") as install, \
             patch("solcx.compile_standard", return_value=STANDARD_OUTPUT) as compile_standard:
            result = compiler.compile_files({SOURCE: "pragma solidity 0.8.24;"})

        assert result.success
        install.assert_not_called()
        standard_input = compile_standard.call_args.args[0]
        assert standard_input["settings"]["evmVersion"] == "paris"
        assert standard_input["settings"]["optimizer"] == {"enabled": True, "runs": 1}
        assert SOURCE in standard_input["sources"]
        assert compile_standard.call_args.kwargs["solc_version"] == "0.8.24"

    def test_compile_files_installs_missing_solc(self):
        with patch("solcx.get_installed_solc_versions", return_value=[]), \
             patch("solcx.install_solc") as install, \
             patch("solcx.compile_standard", return_value=STANDARD_OUTPUT):
            SolidityCompiler().compile_files({SOURCE: "pragma solidity ^0.8.20;"})
        install.assert_called_once_with("0.8.20")

    def test_compile_files_failure_is_result(self):
        with patch("solcx.get_installed_solc_versions", return_value=["0.8.24"]), \
             patch("solcx.compile_standard", side_effect=RuntimeError("solc crashed")):
            result = SolidityCompiler(version="0.8.24").compile_files({SOURCE: ""})
        assert not result.success
        assert result.errors == ["solc crashed"]

    def test_compile_path_keys_by_path(self, tmp_path):
        source = tmp_path / "Token.sol"
        source.write_text("pragma solidity 0.8.24;")
        compiler = SolidityCompiler(version="0.8.24")
        with patch.object(compiler, "compile_files", return_value=CompilationResult(True)) as cf:
            compiler.compile_path(source)
        assert list(cf.call_args.args[0]) == [source.as_posix()]

    def test_compile_path_missing_file(self, tmp_path):
        result = SolidityCompiler().compile_path(tmp_path / "missing.sol")
        assert not result.success
        assert "Cannot read" in result.errors[0]


# ── combined JSON ────────────────────────────────────────────────────────────


class TestLoadCombinedJson:
    def _write(self, tmp_path, data) -> str:
        path = tmp_path / "combined.json"
        path.write_text(json.dumps(data) if not isinstance(data, str) else data)
        return str(path)

    def test_list_abi(self, tmp_path):
        path = self._write(tmp_path, {
            "contracts": {
                f"{SOURCE}:InvariantTest": {"abi": [{"type": "function", "name": "inv"}], "bin": "6001"},
            },
            "version": "0.8.24",
        })
        result = load_combined_json(path)
        assert result.success
        contract = result.get_contract(f"{SOURCE}:InvariantTest")
        assert contract.name == "InvariantTest"
        assert contract.creation_code == b"\x60\x01"
        assert contract.abi[0]["name"] == "inv"

    def test_string_abi(self, tmp_path):
        abi = [{"type": "function", "name": "setUp", "inputs": []}]
        path = self._write(tmp_path, {
            "contracts": {f"{SOURCE}:InvariantTest": {"abi": json.dumps(abi), "bin": "00"}},
        })
        assert load_combined_json(path).get_contract(f"{SOURCE}:InvariantTest").abi == abi

    def test_malformed_abi(self, tmp_path):
        path = self._write(tmp_path, {"contracts": {"a.sol:A": {"abi": "[not json", "bin": "00"}}})
        result = load_combined_json(path)
        assert not result.success
        assert "malformed ABI" in result.errors[0]

    def test_no_contracts(self, tmp_path):
        assert not load_combined_json(self._write(tmp_path, {"contracts": {}})).success

    def test_invalid_json(self, tmp_path):
        assert not load_combined_json(self._write(tmp_path, "{oops")).success

    def test_missing_file(self, tmp_path):
        result = load_combined_json(tmp_path / "nope.json")
        assert not result.success
        assert "Cannot load" in result.errors[0]
