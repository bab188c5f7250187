from __future__ import annotations
import json
import logging
from typing import Any, Dict, List, Optional

import requests
from requests import Session

from .actions import AccountRef, ExecutorRequest
from .errors import DispatchError
from .interfaces import Executor

logger = logging.getLogger(__name__)


class ExecutorResponse:
    def __init__(self, status_code: int, raw: str):
        self.status_code = status_code
        self.raw = raw
        try:
            self.body: Any = json.loads(raw)
        except ValueError:
            self.body = {"raw": raw}

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


class HttpExecutor:
    """Posts action batches to the executor service."""

    def __init__(self, base_url: str, timeout: float = 60, session: Optional[Session] = None):
        if not base_url:
            raise ValueError("Executor base URL is required")
        self.url = base_url.rstrip("/") + "/api/agent/actions"
        self.timeout = timeout
        self.session = session or requests.Session()

    def submit(self, body: Dict[str, Any]) -> ExecutorResponse:
        r = self.session.post(self.url, json=body, timeout=self.timeout)
        return ExecutorResponse(r.status_code, r.text)


class Dispatcher:
    """Submits a validated batch exactly once per call. Never retries."""

    def __init__(self, executor: Executor, source: str = "n8n"):
        self.executor = executor
        self.source = source

    def dispatch(self, idempotency_key: str, account_id: str, actions: List[Any]) -> Any:
        request = ExecutorRequest(
            idempotency_key=idempotency_key,
            source=self.source,
            account=AccountRef(user_account_id=account_id),
            actions=actions,
        )
        try:
            response = self.executor.submit(request.to_wire())
        except requests.RequestException as e:
            raise DispatchError(f"executor unreachable: {e}", original_error=e) from e

        if not (200 <= response.status_code < 300):
            raise DispatchError(
                f"executor {response.status_code}: {response.raw}",
                status_code=response.status_code,
                body=response.raw,
            )
        logger.info(
            "actions dispatched",
            extra={"idempotency_key": idempotency_key, "action_count": len(actions)},
        )
        return response.body
