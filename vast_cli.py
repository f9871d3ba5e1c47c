#!/usr/bin/env python3
"""
VAST - Command Line Interface

Usage:
    vast run <scenario|file.json> [--ticks N] [--format json|csv|golden] [-o FILE]
             [--sign-key-seed HEX --key-id ID]
                                        Run a scenario headless and export its audit trail
    vast validate-config <config.json>  Check a configuration file
    vast compare <actual.json> <golden.json>
                                        Compare a golden export against a baseline
    vast verify-signature <golden.json> --public-key KEY_ID=HEX
                                        Verify a signed golden log
    vast scenarios                      List built-in scenarios

Exit Codes:
    0   Success
    1   General error (unreadable file, bad arguments)
    2   Validation error (bad config, scenario or credence)
    3   Golden mismatch
    4   Signature failure
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Dict, List, Optional

from vast_core.audit_log import AuditLog
from vast_core.config import VASTConfig, apply_env_overrides, load_config, validate_config
from vast_core.errors import SignatureError, ValidationError, VASTError
from vast_core.runner import ScenarioRunner
from vast_core.scenarios import Scenario, builtin_scenario_ids, get_builtin_scenario, load_scenario
from vast_core.signing import Ed25519KeyPair, verify_golden_signature

logger = logging.getLogger("vast_core.cli")

EXIT_SUCCESS = 0
EXIT_ERROR = 1
EXIT_VALIDATION = 2
EXIT_GOLDEN_MISMATCH = 3
EXIT_SIGNATURE = 4


def setup_logging(verbose: bool = False):
    """Configure logging for CLI usage."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
    )
    logging.getLogger("vast_core").setLevel(level)


def _load_cli_config(config_path: Optional[Path]) -> VASTConfig:
    config = load_config(config_path)
    return apply_env_overrides(config)


def _resolve_scenario(target: str) -> Scenario:
    path = Path(target)
    if path.suffix == ".json" or path.exists():
        return load_scenario(path)
    return get_builtin_scenario(target)


def _write_output(text: str, output: Optional[str]) -> None:
    if output:
        Path(output).write_text(text + "\n", encoding="utf-8")
        logger.info("Wrote %s", output)
    else:
        print(text)


def _parse_public_keys(values: List[str]) -> Dict[str, str]:
    keys: Dict[str, str] = {}
    for raw in values:
        key_id, sep, hex_key = raw.partition("=")
        if not sep or not key_id or not hex_key:
            raise ValueError(f"--public-key expects KEY_ID=HEX, got {raw!r}")
        keys[key_id.strip()] = hex_key.strip()
    return keys


# ---------------------------
# Commands
# ---------------------------

def cmd_run(args) -> int:
    if args.sign_key_seed and args.format != "golden":
        print("ERROR: --sign-key-seed only applies to --format golden", file=sys.stderr)
        return EXIT_ERROR
    if args.sign_key_seed and not args.key_id:
        print("ERROR: --sign-key-seed requires --key-id", file=sys.stderr)
        return EXIT_ERROR

    config = _load_cli_config(args.config)
    scenario = _resolve_scenario(args.scenario)
    runner = ScenarioRunner(scenario, config)
    log = runner.run(args.ticks)

    if args.format == "golden":
        signer = Ed25519KeyPair.from_seed_hex(args.sign_key_seed, args.key_id) if args.sign_key_seed else None
        text = log.export_golden_log(signer)
    else:
        text = log.export(args.format)
    _write_output(text, args.output)

    stats = log.stats()
    logger.info(
        "Scenario %s: %d ticks, actions=%s, alerts=%d",
        scenario.id, stats["total_logs"], ",".join(stats["unique_actions"]), stats["total_alerts"],
    )
    return EXIT_SUCCESS


def cmd_validate_config(args) -> int:
    path = Path(args.config_file)
    if not path.exists():
        print(f"ERROR: File not found: {path}", file=sys.stderr)
        return EXIT_ERROR
    config = apply_env_overrides(load_config(path))
    errors = validate_config(config)
    if errors:
        print(f"✗ {path}: {len(errors)} problem(s)")
        for err in errors:
            print(f"  - {err}")
        return EXIT_VALIDATION
    print(f"✓ {path}: configuration OK")
    return EXIT_SUCCESS


def cmd_compare(args) -> int:
    actual_text = Path(args.actual).read_text(encoding="utf-8")
    golden_text = Path(args.golden).read_text(encoding="utf-8")
    actual = AuditLog.from_golden(actual_text)
    valid, differences = AuditLog.validate_against_golden(actual, golden_text)
    if valid:
        print(f"✓ {args.actual} matches {args.golden}")
        return EXIT_SUCCESS
    print(f"✗ {args.actual} differs from {args.golden}:")
    for diff in differences:
        print(f"  - {diff}")
    return EXIT_GOLDEN_MISMATCH


def cmd_verify_signature(args) -> int:
    try:
        keys = _parse_public_keys(args.public_key or [])
    except ValueError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return EXIT_ERROR
    golden_text = Path(args.golden).read_text(encoding="utf-8")
    ok, reason = verify_golden_signature(golden_text, keys)
    if ok:
        print(f"✓ {args.golden}: signature OK")
        return EXIT_SUCCESS
    print(f"✗ {args.golden}: {reason}")
    return EXIT_SIGNATURE


def cmd_scenarios(args) -> int:
    for scenario_id in builtin_scenario_ids():
        scenario = get_builtin_scenario(scenario_id)
        print(f"{scenario.id:<22} {scenario.title}")
    return EXIT_SUCCESS


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="vast",
        description="VAST decision-support CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose logging")
    parser.add_argument("--config", type=Path, help="Path to config JSON file")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    run_parser = subparsers.add_parser("run", help="Run a scenario and export its audit trail")
    run_parser.add_argument("scenario", help="Built-in scenario id or path to a scenario JSON file")
    run_parser.add_argument("--ticks", type=int, default=None, help="Number of ticks (default: config loop.max_ticks)")
    run_parser.add_argument("--format", default="json", choices=["json", "csv", "golden"], help="Export format")
    run_parser.add_argument("--output", "-o", help="Output file (default: stdout)")
    run_parser.add_argument("--sign-key-seed", help="Hex Ed25519 seed used to sign a golden export")
    run_parser.add_argument("--key-id", help="Key id recorded in the golden signature")
    run_parser.set_defaults(func=cmd_run)

    vc_parser = subparsers.add_parser("validate-config", help="Validate a configuration file")
    vc_parser.add_argument("config_file", help="Path to config JSON file")
    vc_parser.set_defaults(func=cmd_validate_config)

    compare_parser = subparsers.add_parser("compare", help="Compare a golden export against a baseline")
    compare_parser.add_argument("actual", help="Golden export of the run under test")
    compare_parser.add_argument("golden", help="Baseline golden log")
    compare_parser.set_defaults(func=cmd_compare)

    vs_parser = subparsers.add_parser("verify-signature", help="Verify a signed golden log")
    vs_parser.add_argument("golden", help="Golden log JSON file")
    vs_parser.add_argument(
        "--public-key",
        action="append",
        metavar="KEY_ID=HEX",
        help="Trusted public key (repeatable)",
    )
    vs_parser.set_defaults(func=cmd_verify_signature)

    sc_parser = subparsers.add_parser("scenarios", help="List built-in scenarios")
    sc_parser.set_defaults(func=cmd_scenarios)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return EXIT_ERROR

    setup_logging(args.verbose)
    try:
        return args.func(args)
    except ValidationError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return EXIT_VALIDATION
    except SignatureError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return EXIT_SIGNATURE
    except VASTError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return EXIT_ERROR
    except (OSError, json.JSONDecodeError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return EXIT_ERROR


if __name__ == "__main__":
    sys.exit(main())
