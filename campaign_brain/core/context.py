from __future__ import annotations
from datetime import date
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class FetchResult:
    """Outcome of one upstream read: either data or an error message."""

    __slots__ = ("ok", "data", "error")

    def __init__(self, ok: bool, data: Any = None, error: Optional[str] = None):
        self.ok = ok
        self.data = data
        self.error = error

    @classmethod
    def success(cls, data: Any) -> "FetchResult":
        return cls(True, data=data)

    @classmethod
    def failure(cls, message: str) -> "FetchResult":
        return cls(False, error=message)

    def placeholder(self) -> Dict[str, str]:
        return {"error": self.error or "unknown error"}

    def value(self) -> Any:
        """The fetched object, or the error placeholder."""
        return self.data if self.ok else self.placeholder()

    def rows(self) -> Any:
        """The `data` list of a platform list response, or the error placeholder."""
        if not self.ok:
            return self.placeholder()
        if isinstance(self.data, dict):
            return self.data.get("data") or []
        return []

    def __repr__(self) -> str:  # pragma: no cover - debugging aid
        if self.ok:
            return f"FetchResult.success({self.data!r})"
        return f"FetchResult.failure({self.error!r})"


class AccountRecord(BaseModel):
    id: str
    ad_account_id: str
    access_token: str
    page_id: Optional[str] = None
    messaging_identity: Optional[str] = None
    bot_token: Optional[str] = None
    username: Optional[str] = None
    policy_prompt: str = ""


class Defaults(BaseModel):
    model_config = ConfigDict(frozen=True)

    target_cpl_cents: int = 200
    default_daily_budget_cents: int = 2000


class DecisionPayload(BaseModel):
    """Read-only snapshot handed to the reasoning engine."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    user_account_id: str = Field(alias="userAccountId")
    account_status: Any = None
    adsets: Any = Field(default_factory=list)
    yesterday_insights: Any = Field(default_factory=list)
    last_reports: List[Any] = Field(default_factory=list)
    defaults: Defaults = Field(default_factory=Defaults)

    def to_prompt_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


def assemble_context(
    account_id: str,
    account_status: FetchResult,
    adsets: FetchResult,
    insights: FetchResult,
    report_history: List[Any],
    defaults: Defaults,
) -> DecisionPayload:
    return DecisionPayload(
        user_account_id=account_id,
        account_status=account_status.value(),
        adsets=adsets.rows(),
        yesterday_insights=insights.rows(),
        last_reports=list(report_history),
        defaults=defaults,
    )


def report_date(insights: FetchResult, today: date) -> str:
    """Date a report covers: the insights row date when present, else today."""
    if insights.ok and isinstance(insights.data, dict):
        rows = insights.data.get("data") or []
        if rows and isinstance(rows[0], dict) and rows[0].get("date_start"):
            return str(rows[0]["date_start"])
    return today.isoformat()
