from __future__ import annotations
import json
from typing import Any, List, Optional, Sequence

PLACEHOLDER = "—"
NO_ACTIONS = "No action required"
HISTORY_LIMIT = 3


def _compact(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"), default=str)


def _status_line(account_status: Any) -> str:
    status = account_status if isinstance(account_status, dict) else {}
    if status.get("account_status") == 1:
        return f"Account active (ID: {status.get('id') or PLACEHOLDER})"
    reason = status.get("disable_reason")
    return f"Account inactive (reason: {PLACEHOLDER if reason is None else reason})"


def _action_line(index: int, action: Any) -> str:
    if hasattr(action, "model_dump"):
        action = action.model_dump()
    return f"{index}. {action.get('type')} — {_compact(action.get('params', {}))}"


def _history_entry(index: int, entry: Any) -> str:
    data = entry.get("report_data") if isinstance(entry, dict) else entry
    text = data if isinstance(data, str) else _compact(data)
    return f"Report {index}:\n{text}"


def build_report(
    date: str,
    account_status: Any,
    executed_actions: Optional[Sequence[Any]],
    report_history: Optional[Sequence[Any]],
) -> str:
    """Render the run report. Pure: identical inputs give identical text."""
    actions = list(executed_actions or [])
    executed = (
        "\n".join(_action_line(i, a) for i, a in enumerate(actions, start=1))
        if actions
        else NO_ACTIONS
    )
    history: List[str] = [
        _history_entry(i, r) for i, r in enumerate(list(report_history or [])[:HISTORY_LIMIT], start=1)
    ]

    return "\n".join(
        [
            f"*Report for {date}*",
            "",
            f"Account status: {_status_line(account_status)}",
            "",
            "Executed actions:",
            executed,
            "",
            f"Analytics (last {HISTORY_LIMIT} reports):",
            "\n\n".join(history) or PLACEHOLDER,
        ]
    )
