"""invfuzz CLI: invariant fuzzing for Solidity contracts.

Usage:
    invfuzz run [path]                      Compile and fuzz contract/contract.sol
    invfuzz run --combined-json out.json    Fuzz pre-built `solc --combined-json bin,abi` output
    invfuzz selector <signature>...         Print 4-byte function selectors
    invfuzz config                          Show current configuration
    invfuzz --version                       Print version

Examples:
    invfuzz run contract/contract.sol --seed 42
    invfuzz run --combined-json build.json --target Vault --checker VaultInvariants
    invfuzz run --max-iterations 50000 --format json -o report.json
    invfuzz selector "setUp()" "invariant_neverFalse()"
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from invfuzz import __version__
from invfuzz.core.types import CampaignReport

logger = logging.getLogger(__name__)


# ── Coloured output helpers ──────────────────────────────────────────────────

_RESET = "\033[0m"
_BOLD = "\033[1m"
_RED = "\033[91m"
_YELLOW = "\033[93m"
_GREEN = "\033[92m"
_CYAN = "\033[96m"
_DIM = "\033[2m"


def _c(text: str, code: str) -> str:
    return f"{code}{text}{_RESET}"


BANNER = f"{_BOLD}{_CYAN}invfuzz{_RESET} {_DIM}invariant fuzzer for EVM bytecode v{__version__}{_RESET}"


# ── CLI argument parser ─────────────────────────────────────────────────────


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="invfuzz",
        description="invfuzz: property-based invariant fuzzer for Solidity contracts",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--version", action="store_true", help="Print version and exit")
    parser.add_argument("--no-banner", action="store_true", help="Suppress the startup banner")
    parser.add_argument("--quiet", "-q", action="store_true", help="Minimal output")

    sub = parser.add_subparsers(dest="command")

    # ── run ──────────────────────────────────────────────────────────────────
    run_p = sub.add_parser("run", help="Compile, deploy and fuzz an invariant")
    run_p.add_argument(
        "path", nargs="?",
        help="Solidity source holding target and checker (default: settings.contract_path)",
    )
    run_p.add_argument(
        "--combined-json", "-j",
        help="Use `solc --combined-json bin,abi` output instead of compiling",
    )
    run_p.add_argument("--target", help="Target contract name (default: InvariantBreaker)")
    run_p.add_argument("--checker", help="Invariant checker contract name (default: InvariantTest)")
    run_p.add_argument("--invariant", help="Invariant signature (default: invariant_neverFalse())")
    run_p.add_argument("--seed", type=int, help="Seed for reproducible campaigns")
    run_p.add_argument(
        "--max-iterations", type=int,
        help="Stop after this many iterations without a crash (0 = never)",
    )
    run_p.add_argument("--progress-interval", type=int, help="Log progress every N iterations")
    run_p.add_argument(
        "--revert-policy",
        choices=["check_invariant", "crash"],
        help="Treat target reverts as crashes or keep checking the invariant",
    )
    run_p.add_argument(
        "--evm-version", choices=["london", "paris", "shanghai"],
        help="EVM fork for compilation and execution",
    )
    run_p.add_argument("--solc-version", help="solc version to compile with")
    run_p.add_argument("--log-level", help="Log level (DEBUG prints every generated call)")
    run_p.add_argument(
        "--format", "-f", default="text", choices=["text", "json"],
        help="Report format (default: text)",
    )
    run_p.add_argument("--output", "-o", help="Write the report to a file instead of stdout")

    # ── selector ─────────────────────────────────────────────────────────────
    sel_p = sub.add_parser("selector", help="Print the 4-byte selector of signatures")
    sel_p.add_argument("signatures", nargs="+", help="Canonical signatures, e.g. 'transfer(address,uint256)'")

    # ── config ───────────────────────────────────────────────────────────────
    sub.add_parser("config", help="Show current configuration")

    return parser


# ── Run command ──────────────────────────────────────────────────────────────


def _settings_overrides(args: argparse.Namespace) -> dict[str, Any]:
    overrides = {
        "contract_path": args.path,
        "target_name": args.target,
        "invariant_checker_name": args.checker,
        "invariant_signature": args.invariant,
        "seed": args.seed,
        "max_iterations": args.max_iterations,
        "progress_interval": args.progress_interval,
        "revert_policy": args.revert_policy,
        "evm_version": args.evm_version,
        "solc_version": args.solc_version,
        "log_level": args.log_level,
    }
    return {k: v for k, v in overrides.items() if v is not None}


def _format_report(report: CampaignReport, fmt: str) -> str:
    if fmt == "json":
        return report.model_dump_json(indent=2)
    return "\n".join(report.summary_lines())


def _run_campaign(args: argparse.Namespace) -> int:
    """Compile, deploy and fuzz; print the report."""
    from invfuzz.core.config import Settings
    from invfuzz.core.errors import FuzzerError
    from invfuzz.core.logging import setup_logging
    from invfuzz.fuzzer.campaign import CampaignConfig, InvariantFuzzer
    from invfuzz.fuzzer.evm_executor import EvmConfig, PyEvmBackend
    from invfuzz.ingestion.solidity_compiler import SolidityCompiler, load_combined_json

    try:
        settings = Settings(**_settings_overrides(args))
    except ValidationError as exc:
        print(_c(f"Invalid configuration:\n{exc}", _RED), file=sys.stderr)
        return 2

    setup_logging(settings.app_env, "WARNING" if args.quiet else settings.log_level)

    if args.combined_json:
        compilation = load_combined_json(args.combined_json)
    else:
        path = Path(settings.contract_path)
        if not path.exists():
            print(_c(f"Error: path '{path}' does not exist.", _RED), file=sys.stderr)
            return 1
        compiler = SolidityCompiler(
            version=settings.solc_version,
            evm_version=settings.evm_version,
            optimization_runs=settings.optimizer_runs,
        )
        compilation = compiler.compile_path(path)

    for warning in compilation.warnings:
        logger.debug("solc: %s", warning)

    try:
        fuzzer = InvariantFuzzer(
            PyEvmBackend(EvmConfig.from_settings(settings)),
            CampaignConfig.from_settings(settings),
        )
        report = fuzzer.fuzz(compilation)
    except FuzzerError as exc:
        logger.error("Campaign aborted: %s", exc.message)
        if args.format == "json":
            print(json.dumps({"error": exc.to_dict()}, indent=2), file=sys.stderr)
        else:
            print(_c(f"Error [{exc.code.value}]: {exc.message}", _RED), file=sys.stderr)
        return 1

    output = _format_report(report, args.format)
    if args.output:
        Path(args.output).write_text(output + "\n")
        if not args.quiet:
            print(f"  Report written to {_c(args.output, _CYAN)}")
    else:
        color = _RED if report.crashed else _GREEN
        print(_c(output, color) if args.format == "text" else output)
    return 0


# ── Selector command ─────────────────────────────────────────────────────────


def _run_selector(args: argparse.Namespace) -> int:
    from invfuzz.fuzzer.selector import selector_of

    for signature in args.signatures:
        print(f"0x{selector_of(signature).hex()}  {signature}")
    return 0


# ── Config command ───────────────────────────────────────────────────────────


def _run_config() -> int:
    """Print current settings."""
    from invfuzz.core.config import get_settings

    s = get_settings()
    print(f"\n{_BOLD}invfuzz Configuration{_RESET}\n")
    for field_name in sorted(type(s).model_fields.keys()):
        val = getattr(s, field_name, "")
        print(f"  {_DIM}{field_name}:{_RESET}  {val}")
    print()
    return 0


# ── Entrypoint ───────────────────────────────────────────────────────────────


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.version:
        print(f"invfuzz {__version__}")
        return 0

    if not args.no_banner and not args.quiet:
        print(BANNER, file=sys.stderr)

    if args.command == "config":
        return _run_config()

    if args.command == "selector":
        return _run_selector(args)

    if args.command == "run":
        return _run_campaign(args)

    parser.print_help()
    return 0


if __name__ == "__main__":
    sys.exit(main())
