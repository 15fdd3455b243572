#!/usr/bin/env python3
"""
claimledger command line interface

Usage:
    claimledger demo --loss <amount> --risk <1|2|3>
    claimledger keygen --output <file>
    claimledger config
"""

import argparse
import json
import sys
from dataclasses import asdict, replace
from typing import List, Optional


def cmd_demo(args) -> int:
    """Submit, evaluate and decrypt one claim against the plaintext backend."""
    from .config import LedgerSettings
    from .errors import ClaimLedgerError
    from .ledger import build_ledger

    settings = replace(LedgerSettings.from_env(), db_path="")
    ledger = build_ledger(settings)
    backend = ledger.backend

    try:
        enc = backend.encrypt_input(ledger.address, args.submitter, args.loss, args.risk)
        claim_id = ledger.submit_claim(enc.handles[0], enc.handles[1], enc.proof, args.submitter)
        evaluator = args.evaluator or args.submitter
        ledger.evaluate_claim(claim_id, evaluator)
        view = ledger.get_claim(claim_id)
        payout = backend.decrypt(view.payout, evaluator)
    except ClaimLedgerError as e:
        print(f"✗ {e}", file=sys.stderr)
        return 1

    print(json.dumps({
        "claim_id": claim_id,
        "confidential_protocol_id": ledger.confidential_protocol_id,
        "loss_amount_handle": view.loss_amount.hex(),
        "risk_level_handle": view.risk_level.hex(),
        "payout_handle": view.payout.hex(),
        "payout_decrypted_by": evaluator,
        "payout": payout,
    }, indent=2))
    return 0


def cmd_keygen(args) -> int:
    """Generate an Ed25519 input-verifier key."""
    from .proofs import InputVerifier

    verifier = InputVerifier.generate(kid=args.key_id)
    if args.output:
        verifier.save_key_file(args.output)
        print(f"Input verifier key saved to: {args.output}", file=sys.stderr)
    print(json.dumps(verifier.describe(), indent=2))
    return 0


def cmd_config(args) -> int:
    """Print effective settings and their validation."""
    from .config import LedgerSettings, validate_config

    settings = LedgerSettings.from_env()
    checks = validate_config(settings)
    print(json.dumps({"settings": asdict(settings), "checks": checks}, indent=2))
    return 0 if all(checks.values()) else 1


def main(argv: Optional[List[str]] = None) -> int:
    from .config import default_log_level
    from .logging_config import configure_logging

    parser = argparse.ArgumentParser(
        prog="claimledger",
        description="Encrypted claim ledger CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  claimledger demo --loss 1000000000 --risk 2
  claimledger keygen -o secrets/input_verifier.json
  claimledger config
        """
    )
    parser.add_argument(
        "--log-level",
        default=default_log_level(),
        help="Log level (default: CLAIMLEDGER_LOG_LEVEL, or DEBUG with CLAIMLEDGER_DEBUG)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    demo_parser = subparsers.add_parser("demo", help="Run one claim end to end")
    demo_parser.add_argument("-l", "--loss", type=int, required=True, help="Loss amount (uint32)")
    demo_parser.add_argument("-r", "--risk", type=int, required=True, help="Risk level (1, 2 or 3)")
    demo_parser.add_argument("-s", "--submitter", default="claimant", help="Submitting principal")
    demo_parser.add_argument("-e", "--evaluator", help="Evaluating principal (default: submitter)")

    keygen_parser = subparsers.add_parser("keygen", help="Generate input-verifier key")
    keygen_parser.add_argument("-o", "--output", help="Output key file")
    keygen_parser.add_argument("-k", "--key-id", default="input-verifier-01", help="Key identifier")

    subparsers.add_parser("config", help="Show effective configuration")

    args = parser.parse_args(argv)
    configure_logging(level=args.log_level, json_format=True)

    if args.command == "demo":
        return cmd_demo(args)
    elif args.command == "keygen":
        return cmd_keygen(args)
    elif args.command == "config":
        return cmd_config(args)
    parser.print_help()
    return 2


if __name__ == "__main__":
    sys.exit(main())
