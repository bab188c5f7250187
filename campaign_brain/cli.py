#!/usr/bin/env python3
"""
CLI for campaign_brain.

Runs the optimization pipeline for one account, checks a saved reasoning
reply against the plan schema and the action validator, or serves the HTTP
API.
"""

import json
import sys
import argparse
from pathlib import Path
from typing import Any, Dict, List, Tuple

import anyio
from jsonschema import Draft202012Validator

from campaign_brain.core.actions import Plan, dump_actions
from campaign_brain.core.errors import CoreError
from campaign_brain.core.planner import parse_plan_reply
from campaign_brain.core.validation import validate_actions


class PlanValidatorCLI:
    """Validates reasoning-engine replies without calling any service."""

    def __init__(self):
        self.schema = Plan.model_json_schema(by_alias=True)

    def load_reply(self, input_path: str) -> str:
        """Load raw reply text from file or stdin."""
        if input_path == "-":
            return sys.stdin.read()
        file_path = Path(input_path)
        if not file_path.exists():
            raise ValueError(f"Input file not found: {input_path}")
        return file_path.read_text(encoding="utf-8")

    def validate_structure(self, payload: Dict[str, Any]) -> Tuple[bool, List[str]]:
        """Validate payload against the plan schema. Returns (is_valid, error_messages)."""
        validator = Draft202012Validator(self.schema)
        errors = []
        for error in validator.iter_errors(payload):
            path = (
                " -> ".join(str(p) for p in error.absolute_path) if error.absolute_path else "root"
            )
            errors.append(f"At '{path}': {error.message}")
        return len(errors) == 0, errors

    def run_validate(self, input_path: str, verbose: bool = False) -> int:
        """Run validation and return exit code."""
        try:
            text = self.load_reply(input_path)
            plan = parse_plan_reply(text)
            payload = plan.model_dump(by_alias=True)

            is_valid, errors = self.validate_structure(payload)
            if not is_valid:
                print("❌ Plan does not match schema:")
                for error in errors:
                    print(f"  • {error}")
                return 1

            if verbose:
                print(f"Plan note: {plan.plan_note or '—'}")
                print(f"Proposed actions: {len(plan.actions)}")

            actions = validate_actions(plan.actions)
            print("✅ Plan is valid")
            print(json.dumps(dump_actions(actions), indent=2, ensure_ascii=False))
            return 0

        except CoreError as e:
            print(f"❌ {e.error_code.value}: {e.message}", file=sys.stderr)
            return 1
        except ValueError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1


def run_account(account_id: str, dispatch: bool, idempotency_key: str = None) -> int:
    from campaign_brain.config import BrainSettings, build_orchestrator
    from campaign_brain.core.logging_config import configure_logging
    from campaign_brain.core.orchestrator import RunRequest

    settings = BrainSettings()
    configure_logging(settings.env, settings.log_level)
    try:
        orchestrator = build_orchestrator(settings)
        request = RunRequest(
            account_id=account_id, idempotency_key=idempotency_key, dispatch=dispatch
        )
        outcome = anyio.run(orchestrator.run, request)
    except CoreError as e:
        print(json.dumps({"error": "brain_run_failed", **e.to_dict()}, ensure_ascii=False, default=str))
        return 1
    print(outcome.model_dump_json(indent=2))
    return 0


def serve(port: int = None) -> int:
    import uvicorn

    from campaign_brain.config import BrainSettings
    from campaign_brain.core.logging_config import configure_logging
    from campaign_brain.service import create_app

    settings = BrainSettings()
    configure_logging(settings.env, settings.log_level)
    uvicorn.run(create_app(settings), host="0.0.0.0", port=port or settings.port)
    return 0


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="campaign-brain: LLM-planned ad campaign optimization",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Preview a plan without touching the account
  campaign-brain run --account 3f1c...

  # Plan and send actions to the executor
  campaign-brain run --account 3f1c... --dispatch

  # Check a saved reasoning reply
  cat reply.txt | campaign-brain validate --input -
        """,
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    run_parser = subparsers.add_parser("run", help="Run the optimization pipeline for one account")
    run_parser.add_argument("--account", dest="account_id", required=True, help="User account id")
    run_parser.add_argument(
        "--dispatch", action="store_true", help="Send validated actions to the executor"
    )
    run_parser.add_argument("--idempotency-key", dest="idempotency_key", default=None)

    validate_parser = subparsers.add_parser("validate", help="Validate a reasoning reply")
    validate_parser.add_argument(
        "--input",
        dest="input_path",
        default="-",
        help="Input file path or '-' for stdin (default: stdin)",
    )
    validate_parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")

    serve_parser = subparsers.add_parser("serve", help="Serve the HTTP API")
    serve_parser.add_argument("--port", type=int, default=None)

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return 1

    if args.command == "validate":
        return PlanValidatorCLI().run_validate(args.input_path, args.verbose)

    if args.command == "run":
        return run_account(args.account_id, args.dispatch, args.idempotency_key)

    if args.command == "serve":
        return serve(args.port)

    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
