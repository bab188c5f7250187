#!/usr/bin/env python3
"""
Export JSON schemas for the wire contracts of campaign_brain:

    plan.json              what the reasoning engine must reply with
    decision_payload.json  what the reasoning engine receives
    executor_request.json  what the executor service receives

Field names are the wire aliases (planNote, userAccountId, idempotencyKey).
"""

import json
import sys
from pathlib import Path
from typing import Optional

from campaign_brain.core.actions import ExecutorRequest, Plan
from campaign_brain.core.context import DecisionPayload

DRAFT = "https://json-schema.org/draft/2020-12/schema"

CONTRACTS = (
    (Plan, "plan.json"),
    (DecisionPayload, "decision_payload.json"),
    (ExecutorRequest, "executor_request.json"),
)


def generate_schema(model_class, output_path: Path) -> None:
    """Write the by-alias JSON schema of a pydantic model to output_path."""
    name = model_class.__name__
    schema = model_class.model_json_schema(by_alias=True)
    schema.update(
        {
            "$schema": DRAFT,
            "title": f"{name} Schema",
            "description": f"Wire contract for {name}",
        }
    )

    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(json.dumps(schema, indent=2, sort_keys=True) + "\n", encoding="utf-8")
    print(f"Generated schema: {output_path}")


def main(out_dir: Optional[Path] = None) -> int:
    out_dir = out_dir or Path(__file__).parent.parent / "schemas"
    failures = 0
    for model_class, filename in CONTRACTS:
        try:
            generate_schema(model_class, out_dir / filename)
        except Exception as e:
            failures += 1
            print(f"Error generating schema for {model_class.__name__}: {e}")

    print(f"\nSchemas written to: {out_dir}")
    return 1 if failures else 0


if __name__ == "__main__":
    sys.exit(main(Path(sys.argv[1]) if len(sys.argv) > 1 else None))
