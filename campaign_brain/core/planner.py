from __future__ import annotations
import json
import logging
from typing import Any, Dict, Optional, Sequence

import requests
from requests import Session

from .actions import Plan
from .context import DecisionPayload
from .errors import PlanParseError, ReasoningError
from .interfaces import ReasoningEngine

logger = logging.getLogger(__name__)


class ChatCompletionsClient:
    """OpenAI-compatible chat completions client used as the reasoning engine."""

    def __init__(
        self,
        base_url: str = "https://api.openai.com/v1",
        model: str = "gpt-4.1",
        api_key: Optional[str] = None,
        timeout: float = 120,
        json_mode: bool = True,
        session: Optional[Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.api_key = api_key
        self.timeout = timeout
        self.json_mode = json_mode
        self.session = session or requests.Session()

    def _chat(
        self,
        messages: Sequence[Dict[str, str]],
        temperature: float = 0,
        response_format: Optional[Dict[str, Any]] = None,
    ) -> str:
        url = f"{self.base_url}/chat/completions"
        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": list(messages),
            "temperature": temperature,
        }
        if response_format is not None:
            payload["response_format"] = response_format
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}
        r = self.session.post(url, json=payload, headers=headers, timeout=self.timeout)
        r.raise_for_status()
        data = r.json()
        return data["choices"][0]["message"]["content"] or ""

    def complete(self, system_prompt: str, user_content: str) -> str:
        messages = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_content},
        ]
        try:
            return self._chat(
                messages,
                temperature=0,
                response_format={"type": "json_object"} if self.json_mode else None,
            )
        except (requests.RequestException, KeyError, IndexError, TypeError, ValueError) as e:
            raise ReasoningError(f"Reasoning engine call failed: {e}", original_error=e) from e


def _first_json_object(text: str) -> Optional[Dict[str, Any]]:
    """Decode the first top-level {...} object embedded in `text`."""
    decoder = json.JSONDecoder()
    start = text.find("{")
    while start != -1:
        try:
            obj, _ = decoder.raw_decode(text, start)
        except json.JSONDecodeError:
            start = text.find("{", start + 1)
            continue
        if isinstance(obj, dict):
            return obj
        start = text.find("{", start + 1)
    return None


def parse_plan_reply(text: str) -> Plan:
    """Parse a reasoning reply into a Plan.

    Strict JSON first; if the engine wrapped the object in prose, the first
    embedded object that decodes is used instead.
    """
    parsed: Any
    try:
        parsed = json.loads(text)
    except (json.JSONDecodeError, TypeError):
        parsed = _first_json_object(text or "")
        if parsed is None:
            raise PlanParseError("LLM invalid output: no JSON object found", raw_reply=text)

    if not isinstance(parsed, dict) or not isinstance(parsed.get("actions"), list):
        raise PlanParseError("LLM invalid output: 'actions' must be a list", raw_reply=text)

    note = parsed.get("planNote")
    return Plan(plan_note=note if isinstance(note, str) else None, actions=parsed["actions"])


class PlanRequester:
    """Asks the reasoning engine for a plan. Performs no safety validation."""

    def __init__(self, engine: Optional[ReasoningEngine], use_llm: bool = True):
        if use_llm and engine is None:
            raise ValueError("A reasoning engine is required when use_llm is enabled")
        self.engine = engine
        self.use_llm = use_llm

    def request_plan(self, system_prompt: str, payload: DecisionPayload | Dict[str, Any]) -> Plan:
        if not self.use_llm:
            logger.info("reasoning disabled, returning empty plan")
            return Plan.disabled()

        body = payload.to_prompt_dict() if isinstance(payload, DecisionPayload) else payload
        reply = self.engine.complete(system_prompt, json.dumps(body, ensure_ascii=False, default=str))
        plan = parse_plan_reply(reply)
        logger.info("plan received", extra={"proposed_actions": len(plan.actions)})
        return plan
