"""In-memory fakes for every collaborator of the orchestrator."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import pytest

from campaign_brain.core.context import AccountRecord
from campaign_brain.core.dispatch import Dispatcher, ExecutorResponse
from campaign_brain.core.errors import NotFoundError, UpstreamFetchError
from campaign_brain.core.orchestrator import BrainConfig, BrainOrchestrator
from campaign_brain.core.planner import PlanRequester

FIXED_NOW = datetime(2026, 3, 14, 9, 26, tzinfo=timezone.utc)

ACCOUNT = AccountRecord(
    id="acc-1",
    ad_account_id="act_123",
    access_token="token-abc",
    page_id="page-9",
    messaging_identity="555001",
    bot_token="bot-token",
    username="shop",
    policy_prompt="Sell more shoes.",
)


class FakeAccounts:
    def __init__(self, accounts: Optional[Dict[str, AccountRecord]] = None):
        self.accounts = accounts if accounts is not None else {ACCOUNT.id: ACCOUNT}

    def get_account(self, account_id: str) -> AccountRecord:
        if account_id not in self.accounts:
            raise NotFoundError(f"User account {account_id} not found", entity_id=account_id)
        return self.accounts[account_id]


class FakeHistory:
    def __init__(self, reports: Optional[List[Dict[str, Any]]] = None, fail: bool = False):
        self.reports = reports or []
        self.fail = fail
        self.calls: List[tuple] = []

    def get_recent(self, identity, limit=3):
        self.calls.append((identity, limit))
        if self.fail:
            raise RuntimeError("history store down")
        return self.reports[:limit]


class FakePlatform:
    def __init__(self, fail: tuple = ()):
        self.fail = set(fail)
        self.calls: List[tuple] = []

    def _maybe_fail(self, name: str) -> None:
        if name in self.fail:
            raise UpstreamFetchError(f"FB 500: {name} unavailable", source=name, status_code=500)

    def fetch_account_status(self, ad_account_id, access_token):
        self.calls.append(("account_status", ad_account_id, access_token))
        self._maybe_fail("account_status")
        return {"id": ad_account_id, "account_status": 1}

    def fetch_adsets(self, ad_account_id, access_token):
        self.calls.append(("adsets", ad_account_id, access_token))
        self._maybe_fail("adsets")
        return {"data": [{"id": "as-1", "name": "Broad", "daily_budget": "2000"}]}

    def fetch_yesterday_insights(self, ad_account_id, access_token):
        self.calls.append(("insights", ad_account_id, access_token))
        self._maybe_fail("insights")
        return {"data": [{"date_start": "2026-03-13", "campaign_id": "c-1", "spend": "12.40"}]}


class FakeEngine:
    def __init__(self, reply: Any = None):
        if reply is None:
            reply = {
                "planNote": "Trim the broad ad set, pause the loser.",
                "actions": [
                    {"type": "UpdateAdSetDailyBudget", "params": {"adset_id": "as-1", "daily_budget": 1600}},
                    {"type": "PauseCampaign", "params": {"campaign_id": "c-2"}},
                ],
            }
        self.reply = reply if isinstance(reply, str) else json.dumps(reply)
        self.calls: List[tuple] = []

    def complete(self, system_prompt: str, user_content: str) -> str:
        self.calls.append((system_prompt, user_content))
        return self.reply


class FakeExecutor:
    def __init__(self, status_code: int = 200, raw: str = '{"ok": true}'):
        self.status_code = status_code
        self.raw = raw
        self.bodies: List[Dict[str, Any]] = []

    def submit(self, body: Dict[str, Any]) -> ExecutorResponse:
        self.bodies.append(body)
        return ExecutorResponse(self.status_code, self.raw)


class FakeMessaging:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent: List[tuple] = []

    def send(self, destination, text, bot_token=None):
        if self.fail:
            raise RuntimeError("telegram down")
        self.sent.append((destination, text, bot_token))
        return True


class FakePersistence:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.reports: List[tuple] = []
        self.executions: List[Dict[str, Any]] = []

    def save_report(self, identity, report_data):
        if self.fail:
            raise RuntimeError("insert failed")
        self.reports.append((identity, report_data))

    def save_execution(self, record):
        if self.fail:
            raise RuntimeError("insert failed")
        self.executions.append(record)


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def fakes():
    return {
        "accounts": FakeAccounts(),
        "history": FakeHistory([{"report_data": "yesterday was fine", "created_at": "2026-03-13"}]),
        "platform": FakePlatform(),
        "engine": FakeEngine(),
        "executor": FakeExecutor(),
        "messaging": FakeMessaging(),
        "persistence": FakePersistence(),
    }


@pytest.fixture
def make_orchestrator(fakes):
    def _make(config: Optional[BrainConfig] = None, **overrides) -> BrainOrchestrator:
        parts = {**fakes, **overrides}
        config = config or BrainConfig()
        return BrainOrchestrator(
            config,
            accounts=parts["accounts"],
            history=parts["history"],
            platform=parts["platform"],
            planner=PlanRequester(parts["engine"], use_llm=config.use_llm),
            dispatcher=Dispatcher(parts["executor"], source=config.source),
            messaging=parts["messaging"],
            persistence=parts["persistence"],
            clock=lambda: FIXED_NOW,
        )

    return _make
