import json
from unittest.mock import Mock

import pytest
import requests

from campaign_brain.core.actions import Plan
from campaign_brain.core.context import DecisionPayload
from campaign_brain.core.errors import PlanParseError, ReasoningError
from campaign_brain.core.planner import ChatCompletionsClient, PlanRequester, parse_plan_reply

from conftest import FakeEngine


class TestParsePlanReply:
    def test_strict_json(self):
        plan = parse_plan_reply('{"planNote": "hold", "actions": []}')
        assert plan.plan_note == "hold"
        assert plan.actions == []

    def test_json_wrapped_in_prose(self):
        reply = 'Here is the plan: {"planNote": "pause", "actions": [{"type": "PauseCampaign", "params": {"campaign_id": "c-1"}}]} Let me know!'
        plan = parse_plan_reply(reply)
        assert plan.plan_note == "pause"
        assert plan.actions[0]["params"]["campaign_id"] == "c-1"

    def test_markdown_fenced_json(self):
        reply = '```json\n{"planNote": "x", "actions": [{"type": "GetCampaignStatus"}]}\n```'
        assert len(parse_plan_reply(reply).actions) == 1

    def test_skips_non_json_braces(self):
        reply = 'Thinking {not json} ... {"planNote": "ok", "actions": []}'
        assert parse_plan_reply(reply).plan_note == "ok"

    def test_no_json_at_all(self):
        with pytest.raises(PlanParseError):
            parse_plan_reply("I cannot help with that.")

    def test_actions_not_a_list(self):
        with pytest.raises(PlanParseError, match="'actions' must be a list"):
            parse_plan_reply('{"planNote": "x", "actions": {"type": "PauseCampaign"}}')

    def test_actions_missing(self):
        with pytest.raises(PlanParseError):
            parse_plan_reply('{"planNote": "x"}')

    def test_top_level_array_rejected(self):
        with pytest.raises(PlanParseError):
            parse_plan_reply('[{"type": "PauseCampaign"}]')

    def test_non_string_note_dropped(self):
        assert parse_plan_reply('{"planNote": 5, "actions": []}').plan_note is None


class TestPlanRequester:
    def test_sends_payload_as_json(self):
        engine = FakeEngine()
        payload = DecisionPayload(user_account_id="acc-1", adsets=[{"id": "as-1"}])
        plan = PlanRequester(engine).request_plan("SYSTEM", payload)

        system, user = engine.calls[0]
        assert system == "SYSTEM"
        body = json.loads(user)
        assert body["userAccountId"] == "acc-1"
        assert body["adsets"] == [{"id": "as-1"}]
        assert body["defaults"] == {"target_cpl_cents": 200, "default_daily_budget_cents": 2000}
        assert len(plan.actions) == 2

    def test_disabled_mode_skips_engine(self):
        engine = FakeEngine()
        plan = PlanRequester(engine, use_llm=False).request_plan("SYSTEM", {"goal": None})
        assert engine.calls == []
        assert plan == Plan.disabled()
        assert plan.plan_note is None
        assert plan.actions == []

    def test_disabled_mode_needs_no_engine(self):
        assert PlanRequester(None, use_llm=False).request_plan("S", {}).actions == []

    def test_engine_required_when_enabled(self):
        with pytest.raises(ValueError):
            PlanRequester(None)


class TestChatCompletionsClient:
    def _session(self, content="{}", status_error=None):
        response = Mock()
        response.json.return_value = {"choices": [{"message": {"content": content}}]}
        if status_error:
            response.raise_for_status.side_effect = status_error
        session = Mock()
        session.post.return_value = response
        return session

    def test_request_shape(self):
        session = self._session('{"actions": []}')
        client = ChatCompletionsClient(
            base_url="http://llm.local/v1/", model="m", api_key="sk-1", timeout=5, session=session
        )
        assert client.complete("sys", "user") == '{"actions": []}'

        url = session.post.call_args[0][0]
        kwargs = session.post.call_args[1]
        assert url == "http://llm.local/v1/chat/completions"
        assert kwargs["json"]["temperature"] == 0
        assert kwargs["json"]["response_format"] == {"type": "json_object"}
        assert kwargs["json"]["messages"][0] == {"role": "system", "content": "sys"}
        assert kwargs["headers"] == {"Authorization": "Bearer sk-1"}
        assert kwargs["timeout"] == 5

    def test_json_mode_off(self):
        session = self._session()
        ChatCompletionsClient(session=session, json_mode=False).complete("s", "u")
        assert "response_format" not in session.post.call_args[1]["json"]

    def test_http_error_becomes_reasoning_error(self):
        session = self._session(status_error=requests.HTTPError("429 Too Many Requests"))
        with pytest.raises(ReasoningError):
            ChatCompletionsClient(session=session).complete("s", "u")
