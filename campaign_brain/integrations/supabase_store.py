"""
Supabase-backed account store, report history and execution log.

Tables (columns used):
    user_accounts      id, access_token, ad_account_id, page_id, telegram_id,
                       telegram_bot_token, username, prompt3
    campaign_reports   telegram_id, report_data, created_at
    brain_executions   user_account_id, idempotency_key, plan_json, actions_json,
                       executor_response_json, report_text, status, duration_ms
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from supabase import Client, create_client

from ..core.context import AccountRecord
from ..core.errors import NotFoundError, PersistenceError

logger = logging.getLogger(__name__)

ACCOUNT_COLUMNS = (
    "id, access_token, ad_account_id, page_id, telegram_id, "
    "telegram_bot_token, username, prompt3"
)


class SupabaseStore:
    """Implements AccountStore, ReportHistoryStore and Persistence."""

    def __init__(self, client: Client):
        self.client = client

    @classmethod
    def from_credentials(cls, url: str, key: str) -> "SupabaseStore":
        return cls(create_client(url, key))

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    def get_account(self, account_id: str) -> AccountRecord:
        result = (
            self.client.table("user_accounts")
            .select(ACCOUNT_COLUMNS)
            .eq("id", account_id)
            .limit(1)
            .execute()
        )
        if not result.data:
            raise NotFoundError(f"User account {account_id} not found", entity_id=account_id)
        row = result.data[0]
        telegram_id = row.get("telegram_id")
        return AccountRecord(
            id=str(row["id"]),
            ad_account_id=row.get("ad_account_id") or "",
            access_token=row.get("access_token") or "",
            page_id=row.get("page_id"),
            messaging_identity=str(telegram_id) if telegram_id else None,
            bot_token=row.get("telegram_bot_token"),
            username=row.get("username"),
            policy_prompt=row.get("prompt3") or "",
        )

    # ------------------------------------------------------------------
    # Report history
    # ------------------------------------------------------------------

    def get_recent(self, identity: Optional[str], limit: int = 3) -> list[dict[str, Any]]:
        """Most recent reports first; any failure degrades to an empty list."""
        if not identity or limit <= 0:
            return []
        try:
            result = (
                self.client.table("campaign_reports")
                .select("report_data, created_at")
                .eq("telegram_id", str(identity))
                .order("created_at", desc=True)
                .limit(limit)
                .execute()
            )
        except Exception as e:
            logger.warning("load_last_reports_failed", extra={"error": str(e)})
            return []
        return result.data or []

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save_report(self, identity: Optional[str], report_data: dict[str, Any]) -> None:
        self._insert(
            "campaign_reports",
            {"telegram_id": str(identity or ""), "report_data": report_data},
        )

    def save_execution(self, record: dict[str, Any]) -> None:
        self._insert("brain_executions", record)

    def _insert(self, table: str, row: dict[str, Any]) -> None:
        try:
            self.client.table(table).insert(row).execute()
        except Exception as e:
            raise PersistenceError(f"insert into {table} failed: {e}", table=table, original_error=e) from e
