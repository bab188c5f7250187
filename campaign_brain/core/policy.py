from __future__ import annotations
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import yaml
from jinja2 import StrictUndefined, Template

from .errors import ConfigurationError

DEFAULT_POLICY = Path(__file__).resolve().parent.parent / "policy" / "default.yaml"

_REQUIRED_KEYS = ("role", "tool", "rules", "actions", "reply_format")


class PolicyError(ConfigurationError):
    pass


def _usd(cents: Any) -> str:
    try:
        return f"${float(cents) / 100:,.0f}"
    except (TypeError, ValueError):
        return "n/a"


def _action_name(entry: str) -> str:
    parts = entry.split(maxsplit=1)
    return parts[0] if parts else ""


def _render(template_str: str, ctx: Dict[str, Any]) -> str:
    env = dict(ctx)
    env["usd"] = _usd
    return Template(template_str, undefined=StrictUndefined).render(**env).strip()


def _validate_policy(policy: Any, path: str) -> None:
    """Structural validation at load time."""
    if not isinstance(policy, dict):
        raise PolicyError(f"Policy file {path} must parse to a mapping")
    missing = [k for k in _REQUIRED_KEYS if k not in policy]
    if missing:
        raise PolicyError(f"Policy file {path} missing keys: {missing}")
    tool = policy["tool"]
    if not isinstance(tool, dict) or not tool.get("name") or not isinstance(tool.get("lines"), list):
        raise PolicyError(f"Policy file {path}: 'tool' needs 'name' and a 'lines' list")
    for key in ("rules", "actions"):
        if not isinstance(policy[key], list) or not all(isinstance(x, str) for x in policy[key]):
            raise PolicyError(f"Policy file {path}: '{key}' must be a list of strings")


@lru_cache(maxsize=8)
def load_policy(policy_path: str) -> Dict[str, Any]:
    with open(policy_path, "r", encoding="utf-8") as f:
        policy = yaml.safe_load(f)
    _validate_policy(policy, policy_path)
    return policy


def clear_policy_cache() -> None:
    load_policy.cache_clear()


def build_system_prompt(
    client_prompt: Optional[str],
    *,
    target_cpl_cents: int,
    default_daily_budget_cents: int,
    max_daily_budget_cents: int,
    source: str = "n8n",
    executor_url: Optional[str] = None,
    policy_path: Optional[str] = None,
    allowed_types: Optional[Iterable[str]] = None,
) -> str:
    """Account prompt fragment followed by the rendered house policy.

    Policy actions are listed by name (first word); when `allowed_types` is
    given, only those actions are offered.
    """
    policy = load_policy(policy_path or str(DEFAULT_POLICY))
    ctx = {
        "target_cpl_cents": target_cpl_cents,
        "default_daily_budget_cents": default_daily_budget_cents,
        "max_daily_budget_cents": max_daily_budget_cents,
        "review_budget_cents": max_daily_budget_cents // 2,
        "source": source,
        "executor_url": executor_url,
    }
    lines: List[str] = [(client_prompt or "").strip(), "", _render(policy["role"], ctx), ""]
    lines.append(f"Tool: {policy['tool']['name']}")
    lines.extend(f"- {_render(line, ctx)}" for line in policy["tool"]["lines"])
    lines.extend(["", "Rules:"])
    lines.extend(f"- {_render(rule, ctx)}" for rule in policy["rules"])
    lines.extend(["", "Available actions (exactly these):"])
    allowed = None if allowed_types is None else frozenset(allowed_types)
    lines.extend(
        f"- {a}" for a in policy["actions"] if allowed is None or _action_name(a) in allowed
    )
    lines.extend(["", _render(policy["reply_format"], ctx)])
    return "\n".join(lines)
