"""Read-only Facebook Graph API client for account state and yesterday's performance."""

from __future__ import annotations
import json
from typing import Any, Dict, Optional

import requests
from requests import Session

from ..core.errors import UpstreamFetchError

GRAPH_URL = "https://graph.facebook.com"
FB_API_VERSION = "v20.0"

ACCOUNT_FIELDS = "account_status,disable_reason"
ADSET_FIELDS = "id,name,daily_budget"
INSIGHT_FIELDS = (
    "campaign_name,campaign_id,adset_name,adset_id,ad_name,ad_id,"
    "spend,actions,cpm,ctr,video_thruplay_watched_actions"
)


class GraphApiClient:
    def __init__(
        self,
        api_version: str = FB_API_VERSION,
        timeout: float = 30,
        base_url: str = GRAPH_URL,
        session: Optional[Session] = None,
    ):
        self.base_url = f"{base_url.rstrip('/')}/{api_version}"
        self.timeout = timeout
        self.session = session or requests.Session()

    def _get(self, source: str, path: str, params: Dict[str, str]) -> Dict[str, Any]:
        url = f"{self.base_url}/{path.lstrip('/')}"
        try:
            r = self.session.get(url, params=params, timeout=self.timeout)
        except requests.RequestException as e:
            raise UpstreamFetchError(f"FB request failed: {e}", source=source, original_error=e) from e
        text = r.text
        if not r.ok:
            raise UpstreamFetchError(f"FB {r.status_code}: {text}", source=source, status_code=r.status_code)
        try:
            return json.loads(text)
        except ValueError:
            return {"raw": text}

    def fetch_account_status(self, ad_account_id: str, access_token: str) -> Dict[str, Any]:
        return self._get(
            "account_status",
            ad_account_id,
            {"fields": ACCOUNT_FIELDS, "access_token": access_token},
        )

    def fetch_adsets(self, ad_account_id: str, access_token: str) -> Dict[str, Any]:
        return self._get(
            "adsets",
            f"{ad_account_id}/adsets",
            {"fields": ADSET_FIELDS, "access_token": access_token},
        )

    def fetch_yesterday_insights(self, ad_account_id: str, access_token: str) -> Dict[str, Any]:
        return self._get(
            "insights",
            f"{ad_account_id}/insights",
            {
                "fields": INSIGHT_FIELDS,
                "date_preset": "yesterday",
                "level": "ad",
                "access_token": access_token,
            },
        )
