from __future__ import annotations
from typing import Optional

import requests
from requests import Session

from ..core.errors import MessagingError

TELEGRAM_API = "https://api.telegram.org"


class TelegramChannel:
    """Pushes report text to a Telegram chat through the Bot API."""

    def __init__(
        self,
        fallback_bot_token: Optional[str] = None,
        timeout: float = 15,
        base_url: str = TELEGRAM_API,
        session: Optional[Session] = None,
    ):
        self.fallback_bot_token = fallback_bot_token
        self.timeout = timeout
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()

    def send(self, destination: Optional[str], text: str, bot_token: Optional[str] = None) -> bool:
        if not destination:
            return False
        token = bot_token or self.fallback_bot_token
        if not token:
            return False
        try:
            r = self.session.post(
                f"{self.base_url}/bot{token}/sendMessage",
                json={
                    "chat_id": str(destination),
                    "text": text,
                    "parse_mode": "Markdown",
                    "disable_web_page_preview": True,
                },
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise MessagingError(f"telegram request failed: {e}", original_error=e) from e
        if not r.ok:
            raise MessagingError(f"telegram {r.status_code}: {r.text}", status_code=r.status_code)
        return True
