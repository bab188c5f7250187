"""Capability interfaces for the collaborators the pipeline depends on.

Implementations live in `campaign_brain.integrations`; tests use in-memory
fakes. All calls are blocking; the orchestrator offloads them to worker
threads.
"""

from __future__ import annotations
from typing import Any, Dict, List, Optional, Protocol

from .context import AccountRecord


class AccountStore(Protocol):
    def get_account(self, account_id: str) -> AccountRecord:
        """Raises NotFoundError when the account does not exist."""
        ...


class ReportHistoryStore(Protocol):
    def get_recent(self, identity: Optional[str], limit: int = 3) -> List[Dict[str, Any]]:
        """Most recent reports first."""
        ...


class PlatformDataSource(Protocol):
    def fetch_account_status(self, ad_account_id: str, access_token: str) -> Dict[str, Any]: ...

    def fetch_adsets(self, ad_account_id: str, access_token: str) -> Dict[str, Any]: ...

    def fetch_yesterday_insights(self, ad_account_id: str, access_token: str) -> Dict[str, Any]: ...


class ReasoningEngine(Protocol):
    def complete(self, system_prompt: str, user_content: str) -> str: ...


class ExecutorResponseLike(Protocol):
    status_code: int
    body: Any
    raw: str


class Executor(Protocol):
    def submit(self, body: Dict[str, Any]) -> ExecutorResponseLike: ...


class MessagingChannel(Protocol):
    def send(self, destination: Optional[str], text: str, bot_token: Optional[str] = None) -> bool:
        """Returns False without sending when no destination/credentials are configured."""
        ...


class Persistence(Protocol):
    def save_report(self, identity: Optional[str], report_data: Dict[str, Any]) -> None: ...

    def save_execution(self, record: Dict[str, Any]) -> None: ...
