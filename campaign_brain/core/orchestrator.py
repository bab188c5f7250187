"""Plan-validate-dispatch pipeline for one account.

A run moves through FETCHING -> PLANNING -> VALIDATING -> (DISPATCHING) ->
REPORTING -> DONE. Only FETCHING tolerates partial failure: each upstream read
degrades to an error placeholder. A failure while planning, validating or
dispatching moves the run to FAILED and is raised to the caller. Delivery
after REPORTING (archival, execution log, messaging) is best-effort.
"""

from __future__ import annotations
import logging
import secrets
import string
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Tuple

import anyio
from pydantic import BaseModel, ConfigDict, Field, field_validator

from .actions import ACTION_TYPES, MAX_DAILY_BUDGET_CENTS, Plan, dump_actions
from .context import AccountRecord, Defaults, FetchResult, assemble_context, report_date
from .dispatch import Dispatcher
from .errors import ConfigurationError, CoreError, UpstreamFetchError, to_core_error
from .interfaces import (
    AccountStore,
    MessagingChannel,
    Persistence,
    PlatformDataSource,
    ReportHistoryStore,
)
from .planner import PlanRequester
from .policy import build_system_prompt
from .report import build_report
from .validation import check_allowed_types, validate_actions

logger = logging.getLogger(__name__)

_KEY_ALPHABET = string.ascii_lowercase + string.digits


class RunState(str, Enum):
    FETCHING = "FETCHING"
    PLANNING = "PLANNING"
    VALIDATING = "VALIDATING"
    DISPATCHING = "DISPATCHING"
    REPORTING = "REPORTING"
    DONE = "DONE"
    FAILED = "FAILED"


_TRANSITIONS: Dict[Optional[RunState], FrozenSet[RunState]] = {
    None: frozenset({RunState.FETCHING}),
    RunState.FETCHING: frozenset({RunState.PLANNING}),
    RunState.PLANNING: frozenset({RunState.VALIDATING, RunState.FAILED}),
    RunState.VALIDATING: frozenset({RunState.DISPATCHING, RunState.REPORTING, RunState.FAILED}),
    RunState.DISPATCHING: frozenset({RunState.REPORTING, RunState.FAILED}),
    RunState.REPORTING: frozenset({RunState.DONE}),
    RunState.DONE: frozenset(),
    RunState.FAILED: frozenset(),
}


class RunTracker:
    """Records the state path of one run and rejects illegal transitions."""

    def __init__(self, idempotency_key: str, account_id: str):
        self.idempotency_key = idempotency_key
        self.account_id = account_id
        self.state: Optional[RunState] = None
        self.history: List[RunState] = []

    def advance(self, new_state: RunState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"Illegal run transition {self.state} -> {new_state}")
        self.state = new_state
        self.history.append(new_state)
        logger.debug(
            "run state",
            extra={
                "idempotency_key": self.idempotency_key,
                "account_id": self.account_id,
                "state": new_state.value,
            },
        )


def generate_idempotency_key(now: Optional[datetime] = None) -> str:
    """`think-YYYYMMDD-HHMM-xxxxxx` with six random [a-z0-9] characters."""
    now = now or datetime.now(timezone.utc)
    suffix = "".join(secrets.choice(_KEY_ALPHABET) for _ in range(6))
    return f"think-{now:%Y%m%d}-{now:%H%M}-{suffix}"


class BrainConfig(BaseModel):
    """Immutable pipeline configuration handed to the orchestrator."""

    model_config = ConfigDict(frozen=True)

    use_llm: bool = True
    target_cpl_cents: int = 200
    default_daily_budget_cents: int = 2000
    max_daily_budget_cents: int = Field(MAX_DAILY_BUDGET_CENTS, gt=0, le=MAX_DAILY_BUDGET_CENTS)
    allowed_types: FrozenSet[str] = ACTION_TYPES
    source: str = "n8n"
    history_limit: int = Field(3, ge=0, le=3)
    serialize_same_account: bool = True
    executor_url: Optional[str] = None
    policy_path: Optional[str] = None

    @field_validator("allowed_types")
    @classmethod
    def _narrow_only(cls, v: FrozenSet[str]) -> FrozenSet[str]:
        return check_allowed_types(v)

    @property
    def defaults(self) -> Defaults:
        return Defaults(
            target_cpl_cents=self.target_cpl_cents,
            default_daily_budget_cents=self.default_daily_budget_cents,
        )

    def system_prompt(self, client_prompt: Optional[str]) -> str:
        return build_system_prompt(
            client_prompt,
            target_cpl_cents=self.target_cpl_cents,
            default_daily_budget_cents=self.default_daily_budget_cents,
            max_daily_budget_cents=self.max_daily_budget_cents,
            source=self.source,
            executor_url=self.executor_url,
            policy_path=self.policy_path,
            allowed_types=self.allowed_types,
        )


class RunRequest(BaseModel):
    account_id: str = Field(min_length=1)
    idempotency_key: Optional[str] = None
    dispatch: bool = False


class RunOutcome(BaseModel):
    idempotency_key: str
    plan_note: Optional[str] = None
    actions: List[Dict[str, Any]] = Field(default_factory=list)
    dispatched: bool = False
    executor_response: Any = None
    report_text: str = ""
    message_sent: bool = False
    states: List[RunState] = Field(default_factory=list)
    duration_ms: int = 0


class DecideOutcome(BaseModel):
    plan_note: Optional[str] = None
    actions: List[Dict[str, Any]] = Field(default_factory=list)
    dispatched: bool = False


class _AccountLock:
    """Lock for one account, dropped once no run holds or awaits it."""

    __slots__ = ("lock", "users")

    def __init__(self):
        self.lock = anyio.Lock()
        self.users = 0


class BrainOrchestrator:
    def __init__(
        self,
        config: BrainConfig,
        *,
        accounts: AccountStore,
        history: ReportHistoryStore,
        platform: PlatformDataSource,
        planner: PlanRequester,
        dispatcher: Optional[Dispatcher] = None,
        messaging: Optional[MessagingChannel] = None,
        persistence: Optional[Persistence] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.config = config
        self.accounts = accounts
        self.history = history
        self.platform = platform
        self.planner = planner
        self.dispatcher = dispatcher
        self.messaging = messaging
        self.persistence = persistence
        self.clock = clock
        self._account_locks: Dict[str, _AccountLock] = {}

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def run(self, request: RunRequest) -> RunOutcome:
        if not self.config.serialize_same_account:
            return await self._run(request)
        holder = self._account_locks.get(request.account_id)
        if holder is None:
            holder = self._account_locks[request.account_id] = _AccountLock()
        holder.users += 1
        try:
            async with holder.lock:
                return await self._run(request)
        finally:
            holder.users -= 1
            if holder.users == 0:
                del self._account_locks[request.account_id]

    async def decide(
        self, account_id: str, goal: Any = None, inputs: Optional[Dict[str, Any]] = None
    ) -> DecideOutcome:
        """Plan only: no platform reads, no dispatch, no report."""
        inputs = inputs or {}
        system = self.config.system_prompt(inputs.get("client_prompt"))
        plan = await anyio.to_thread.run_sync(
            self.planner.request_plan, system, {"goal": goal, "inputs": inputs}
        )
        actions = self._validate(plan)
        return DecideOutcome(plan_note=plan.plan_note, actions=dump_actions(actions))

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    async def _run(self, request: RunRequest) -> RunOutcome:
        started = time.monotonic()
        key = request.idempotency_key or generate_idempotency_key(self.clock())
        log_extra = {"idempotency_key": key, "account_id": request.account_id}
        logger.info("brain run started", extra={**log_extra, "dispatch": request.dispatch})

        account: AccountRecord = await anyio.to_thread.run_sync(
            self.accounts.get_account, request.account_id
        )
        tracker = RunTracker(key, request.account_id)

        tracker.advance(RunState.FETCHING)
        status, adsets, insights, reports = await self._fetch_all(account, log_extra)
        payload = assemble_context(
            request.account_id, status, adsets, insights, reports, self.config.defaults
        )
        date = report_date(insights, self.clock().date())

        plan: Optional[Plan] = None
        actions: List[Any] = []
        executor_response: Any = None
        try:
            tracker.advance(RunState.PLANNING)
            system = self.config.system_prompt(account.policy_prompt)
            plan = await anyio.to_thread.run_sync(self.planner.request_plan, system, payload)

            tracker.advance(RunState.VALIDATING)
            actions = self._validate(plan)

            if request.dispatch:
                tracker.advance(RunState.DISPATCHING)
                if self.dispatcher is None:
                    raise ConfigurationError("Dispatch requested but no executor is configured")
                executor_response = await anyio.to_thread.run_sync(
                    self.dispatcher.dispatch, key, request.account_id, actions
                )
        except Exception as exc:
            err = to_core_error(exc)
            failed_in = tracker.state
            tracker.advance(RunState.FAILED)
            logger.error(
                "brain run failed",
                extra={
                    **log_extra,
                    "state": failed_in.value if failed_in else None,
                    "error_code": err.error_code.value,
                },
            )
            err.context.setdefault("state", failed_in.value if failed_in else None)
            err.context.setdefault("idempotency_key", key)
            await self._record_execution(
                key, request.account_id, plan, actions, executor_response, None,
                "failed", started, error=err,
            )
            if err is exc:
                raise
            raise err from exc

        tracker.advance(RunState.REPORTING)
        executed = actions if request.dispatch else []
        report_text = build_report(
            date, status.value(), executed, reports[: self.config.history_limit]
        )

        await self._archive_report(account, report_text, date, plan, actions, log_extra)
        await self._record_execution(
            key, request.account_id, plan, actions, executor_response, report_text,
            "success", started,
        )
        sent = await self._deliver(account, report_text, log_extra)

        tracker.advance(RunState.DONE)
        duration_ms = int((time.monotonic() - started) * 1000)
        logger.info("brain run finished", extra={**log_extra, "duration_ms": duration_ms})
        return RunOutcome(
            idempotency_key=key,
            plan_note=plan.plan_note,
            actions=dump_actions(actions),
            dispatched=request.dispatch,
            executor_response=executor_response,
            report_text=report_text,
            message_sent=sent,
            states=list(tracker.history),
            duration_ms=duration_ms,
        )

    def _validate(self, plan: Plan) -> List[Any]:
        return validate_actions(
            plan.actions,
            allowed_types=self.config.allowed_types,
            max_daily_budget_cents=self.config.max_daily_budget_cents,
        )

    async def _fetch_all(
        self, account: AccountRecord, log_extra: Dict[str, Any]
    ) -> Tuple[FetchResult, FetchResult, FetchResult, List[Dict[str, Any]]]:
        results: Dict[str, FetchResult] = {}
        reports: List[Dict[str, Any]] = []

        async def fetch(name: str, fn: Callable[[str, str], Dict[str, Any]]) -> None:
            try:
                data = await anyio.to_thread.run_sync(
                    fn, account.ad_account_id, account.access_token
                )
                results[name] = FetchResult.success(data)
            except Exception as exc:
                logger.warning(
                    "upstream fetch failed",
                    extra={**log_extra, "source": name, "error": str(exc)},
                )
                if isinstance(exc, UpstreamFetchError):
                    results[name] = FetchResult.failure(exc.message)
                else:
                    results[name] = FetchResult.failure(f"{type(exc).__name__}: {exc}")

        async def fetch_history() -> None:
            nonlocal reports
            try:
                reports = await anyio.to_thread.run_sync(
                    self.history.get_recent, account.messaging_identity, self.config.history_limit
                )
            except Exception as exc:
                logger.warning("load_last_reports_failed", extra={**log_extra, "error": str(exc)})
                reports = []

        async with anyio.create_task_group() as tg:
            tg.start_soon(fetch, "account_status", self.platform.fetch_account_status)
            tg.start_soon(fetch, "adsets", self.platform.fetch_adsets)
            tg.start_soon(fetch, "insights", self.platform.fetch_yesterday_insights)
            tg.start_soon(fetch_history)

        return results["account_status"], results["adsets"], results["insights"], list(reports or [])

    # ------------------------------------------------------------------
    # Best-effort delivery
    # ------------------------------------------------------------------

    async def _archive_report(
        self,
        account: AccountRecord,
        report_text: str,
        date: str,
        plan: Optional[Plan],
        actions: List[Any],
        log_extra: Dict[str, Any],
    ) -> None:
        if self.persistence is None:
            return
        report_data = {
            "text": report_text,
            "date": date,
            "planNote": plan.plan_note if plan else None,
            "actions": dump_actions(actions),
        }
        try:
            await anyio.to_thread.run_sync(
                self.persistence.save_report, account.messaging_identity, report_data
            )
        except Exception as exc:
            logger.warning("save_campaign_report_failed", extra={**log_extra, "error": str(exc)})

    async def _record_execution(
        self,
        key: str,
        account_id: str,
        plan: Optional[Plan],
        actions: List[Any],
        executor_response: Any,
        report_text: Optional[str],
        status: str,
        started: float,
        error: Optional[CoreError] = None,
    ) -> None:
        if self.persistence is None:
            return
        record = {
            "user_account_id": account_id,
            "idempotency_key": key,
            "plan_json": plan.model_dump(by_alias=True) if plan else None,
            "actions_json": dump_actions(actions),
            "executor_response_json": executor_response,
            "report_text": report_text,
            "status": status,
            "duration_ms": int((time.monotonic() - started) * 1000),
        }
        if error is not None:
            record["error_json"] = error.to_dict()
        try:
            await anyio.to_thread.run_sync(self.persistence.save_execution, record)
        except Exception as exc:
            logger.warning(
                "save_brain_execution_failed",
                extra={"idempotency_key": key, "account_id": account_id, "error": str(exc)},
            )

    async def _deliver(
        self, account: AccountRecord, report_text: str, log_extra: Dict[str, Any]
    ) -> bool:
        if self.messaging is None:
            return False
        try:
            return bool(
                await anyio.to_thread.run_sync(
                    self.messaging.send, account.messaging_identity, report_text, account.bot_token
                )
            )
        except Exception as exc:
            logger.warning("send_report_failed", extra={**log_extra, "error": str(exc)})
            return False


__all__ = [
    "BrainConfig",
    "BrainOrchestrator",
    "DecideOutcome",
    "RunOutcome",
    "RunRequest",
    "RunState",
    "RunTracker",
    "generate_idempotency_key",
]
