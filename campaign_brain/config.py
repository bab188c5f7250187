from __future__ import annotations
from typing import Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from campaign_brain.core.dispatch import Dispatcher, HttpExecutor
from campaign_brain.core.errors import ConfigurationError
from campaign_brain.core.orchestrator import BrainConfig, BrainOrchestrator
from campaign_brain.core.planner import ChatCompletionsClient, PlanRequester
from campaign_brain.integrations.meta_ads import FB_API_VERSION, GraphApiClient
from campaign_brain.integrations.supabase_store import SupabaseStore
from campaign_brain.integrations.telegram import TelegramChannel


def _env(name: str, *fallbacks: str) -> AliasChoices:
    return AliasChoices(f"BRAIN_{name}", *fallbacks)


class BrainSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="BRAIN_",
        env_file=".env",
        extra="ignore",
        case_sensitive=False,
        populate_by_name=True,
    )

    # Reasoning engine
    model: str = "gpt-4.1"
    use_llm: bool = True
    openai_api_key: Optional[str] = Field(default=None, validation_alias=_env("OPENAI_API_KEY", "OPENAI_API_KEY"))
    openai_base_url: str = "https://api.openai.com/v1"
    reasoning_timeout: float = 120
    json_mode: bool = True

    # Collaborators
    supabase_url: Optional[str] = Field(default=None, validation_alias=_env("SUPABASE_URL", "SUPABASE_URL"))
    supabase_service_role_key: Optional[str] = Field(
        default=None, validation_alias=_env("SUPABASE_SERVICE_ROLE_KEY", "SUPABASE_SERVICE_ROLE_KEY")
    )
    agent_service_url: Optional[str] = Field(
        default=None, validation_alias=_env("AGENT_SERVICE_URL", "AGENT_SERVICE_URL")
    )
    telegram_fallback_bot_token: Optional[str] = Field(
        default=None,
        validation_alias=_env("TELEGRAM_FALLBACK_BOT_TOKEN", "TELEGRAM_FALLBACK_BOT_TOKEN"),
    )
    fb_api_version: str = FB_API_VERSION

    # Timeouts (seconds); no call is retried
    fetch_timeout: float = 30
    executor_timeout: float = 60
    messaging_timeout: float = 15

    # Policy
    target_cpl_cents: int = 200
    default_daily_budget_cents: int = 2000
    max_daily_budget_cents: int = 10000
    source: str = "n8n"
    serialize_same_account: bool = True
    policy_path: Optional[str] = None

    # HTTP service
    port: int = 7080
    max_request_bytes: int = 1_000_000
    rate_limit_per_minute: int = 60

    # Logging
    env: str = "development"
    log_level: str = "INFO"

    def to_config(self) -> BrainConfig:
        executor_url = (
            self.agent_service_url.rstrip("/") + "/api/agent/actions" if self.agent_service_url else None
        )
        return BrainConfig(
            use_llm=self.use_llm,
            target_cpl_cents=self.target_cpl_cents,
            default_daily_budget_cents=self.default_daily_budget_cents,
            max_daily_budget_cents=self.max_daily_budget_cents,
            source=self.source,
            serialize_same_account=self.serialize_same_account,
            executor_url=executor_url,
            policy_path=self.policy_path,
        )


def build_orchestrator(settings: BrainSettings) -> BrainOrchestrator:
    """Wire the production adapters."""
    if not (settings.supabase_url and settings.supabase_service_role_key):
        raise ConfigurationError("supabase not configured")
    store = SupabaseStore.from_credentials(settings.supabase_url, settings.supabase_service_role_key)

    engine = None
    if settings.use_llm:
        engine = ChatCompletionsClient(
            base_url=settings.openai_base_url,
            model=settings.model,
            api_key=settings.openai_api_key,
            timeout=settings.reasoning_timeout,
            json_mode=settings.json_mode,
        )

    dispatcher = None
    if settings.agent_service_url:
        dispatcher = Dispatcher(
            HttpExecutor(settings.agent_service_url, timeout=settings.executor_timeout),
            source=settings.source,
        )

    return BrainOrchestrator(
        settings.to_config(),
        accounts=store,
        history=store,
        platform=GraphApiClient(api_version=settings.fb_api_version, timeout=settings.fetch_timeout),
        planner=PlanRequester(engine, use_llm=settings.use_llm),
        dispatcher=dispatcher,
        messaging=TelegramChannel(
            settings.telegram_fallback_bot_token, timeout=settings.messaging_timeout
        ),
        persistence=store,
    )
