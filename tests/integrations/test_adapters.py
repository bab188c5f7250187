"""Adapters exercised against mocked transports; nothing leaves the process."""

from unittest.mock import MagicMock, Mock

import pytest
import requests

from campaign_brain.core.errors import (
    MessagingError,
    NotFoundError,
    PersistenceError,
    UpstreamFetchError,
)
from campaign_brain.integrations.meta_ads import GraphApiClient
from campaign_brain.integrations.supabase_store import SupabaseStore
from campaign_brain.integrations.telegram import TelegramChannel


def http_response(status_code=200, text="{}"):
    return Mock(status_code=status_code, text=text, ok=200 <= status_code < 300)


class TestGraphApiClient:
    def test_account_status_request(self):
        session = Mock()
        session.get.return_value = http_response(text='{"id": "act_1", "account_status": 1}')
        client = GraphApiClient(timeout=9, session=session)

        assert client.fetch_account_status("act_1", "tok") == {"id": "act_1", "account_status": 1}
        session.get.assert_called_once_with(
            "https://graph.facebook.com/v20.0/act_1",
            params={"fields": "account_status,disable_reason", "access_token": "tok"},
            timeout=9,
        )

    def test_insights_are_yesterday_at_ad_level(self):
        session = Mock()
        session.get.return_value = http_response(text='{"data": []}')
        GraphApiClient(session=session).fetch_yesterday_insights("act_1", "tok")

        url = session.get.call_args[0][0]
        params = session.get.call_args[1]["params"]
        assert url.endswith("/v20.0/act_1/insights")
        assert params["date_preset"] == "yesterday"
        assert params["level"] == "ad"
        assert "spend" in params["fields"]

    def test_adsets_path(self):
        session = Mock()
        session.get.return_value = http_response(text='{"data": [{"id": "as-1"}]}')
        assert GraphApiClient(session=session).fetch_adsets("act_1", "tok")["data"][0]["id"] == "as-1"
        assert session.get.call_args[0][0].endswith("/act_1/adsets")

    def test_http_error_becomes_upstream_error(self):
        session = Mock()
        session.get.return_value = http_response(400, '{"error": {"message": "bad token"}}')
        with pytest.raises(UpstreamFetchError) as exc:
            GraphApiClient(session=session).fetch_adsets("act_1", "tok")
        assert exc.value.status_code == 400
        assert exc.value.source == "adsets"
        assert exc.value.message.startswith("FB 400:")
        assert exc.value.fatal is False

    def test_transport_error(self):
        session = Mock()
        session.get.side_effect = requests.Timeout("slow")
        with pytest.raises(UpstreamFetchError, match="FB request failed"):
            GraphApiClient(session=session).fetch_account_status("act_1", "tok")

    def test_non_json_body_kept(self):
        session = Mock()
        session.get.return_value = http_response(text="<html>")
        assert GraphApiClient(session=session).fetch_account_status("a", "t") == {"raw": "<html>"}


class TestTelegramChannel:
    def test_sends_markdown_message(self):
        session = Mock()
        session.post.return_value = http_response()
        channel = TelegramChannel("fallback", timeout=4, session=session)

        assert channel.send("555001", "*Report*", bot_token="bot-token") is True
        session.post.assert_called_once_with(
            "https://api.telegram.org/botbot-token/sendMessage",
            json={
                "chat_id": "555001",
                "text": "*Report*",
                "parse_mode": "Markdown",
                "disable_web_page_preview": True,
            },
            timeout=4,
        )

    def test_fallback_token(self):
        session = Mock()
        session.post.return_value = http_response()
        TelegramChannel("fallback", session=session).send("555001", "hi")
        assert "/botfallback/" in session.post.call_args[0][0]

    def test_nothing_to_send_to(self):
        session = Mock()
        assert TelegramChannel("fallback", session=session).send(None, "hi") is False
        assert TelegramChannel(None, session=session).send("555001", "hi") is False
        session.post.assert_not_called()

    def test_rejection(self):
        session = Mock()
        session.post.return_value = http_response(403, "Forbidden: bot was blocked")
        with pytest.raises(MessagingError) as exc:
            TelegramChannel("t", session=session).send("1", "hi")
        assert exc.value.fatal is False


def supabase_client(data=None, error=None):
    """MagicMock whose fluent query chain ends in execute()."""
    client = MagicMock()
    query = client.table.return_value
    for method in ("select", "eq", "order", "limit", "insert"):
        getattr(query, method).return_value = query
    if error is not None:
        query.execute.side_effect = error
    else:
        query.execute.return_value = Mock(data=data)
    return client, query


class TestSupabaseStore:
    def test_get_account_maps_columns(self):
        row = {
            "id": "acc-1",
            "access_token": "tok",
            "ad_account_id": "act_1",
            "page_id": "p1",
            "telegram_id": 555001,
            "telegram_bot_token": "bot",
            "username": "shop",
            "prompt3": "Sell shoes.",
        }
        client, query = supabase_client([row])
        account = SupabaseStore(client).get_account("acc-1")

        client.table.assert_called_with("user_accounts")
        query.eq.assert_called_with("id", "acc-1")
        assert account.messaging_identity == "555001"
        assert account.bot_token == "bot"
        assert account.policy_prompt == "Sell shoes."

    def test_missing_account(self):
        client, _ = supabase_client([])
        with pytest.raises(NotFoundError):
            SupabaseStore(client).get_account("nope")

    def test_recent_reports_newest_first(self):
        client, query = supabase_client([{"report_data": "r1"}])
        assert SupabaseStore(client).get_recent("555001", 3) == [{"report_data": "r1"}]
        query.order.assert_called_with("created_at", desc=True)
        query.limit.assert_called_with(3)

    def test_recent_reports_degrade(self):
        client, _ = supabase_client(error=RuntimeError("timeout"))
        assert SupabaseStore(client).get_recent("555001") == []

    def test_recent_reports_without_identity(self):
        client, _ = supabase_client([{"report_data": "r1"}])
        assert SupabaseStore(client).get_recent(None) == []
        client.table.assert_not_called()

    def test_save_report_row(self):
        client, query = supabase_client([])
        SupabaseStore(client).save_report("555001", {"text": "t"})
        client.table.assert_called_with("campaign_reports")
        query.insert.assert_called_with({"telegram_id": "555001", "report_data": {"text": "t"}})

    def test_insert_failure(self):
        client, _ = supabase_client(error=RuntimeError("permission denied"))
        with pytest.raises(PersistenceError) as exc:
            SupabaseStore(client).save_execution({"status": "success"})
        assert exc.value.context == {"table": "brain_executions"}
