from __future__ import annotations
import logging
import time
from collections import defaultdict, deque
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from campaign_brain.config import BrainSettings, build_orchestrator
from campaign_brain.core.errors import CoreError, ErrorCode, InvalidRequestError, to_core_error
from campaign_brain.core.orchestrator import BrainOrchestrator, RunRequest

logger = logging.getLogger(__name__)

_STATUS_BY_CODE = {
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.INVALID_REQUEST: 400,
}


class RunInputs(BaseModel):
    model_config = ConfigDict(extra="allow")

    dispatch: bool = False


class BrainRunRequest(BaseModel):
    idempotency_key: Optional[str] = Field(default=None, alias="idempotencyKey")
    user_account_id: Optional[str] = Field(default=None, alias="userAccountId")
    inputs: Optional[RunInputs] = None


class BrainDecideRequest(BaseModel):
    idempotency_key: Optional[str] = Field(default=None, alias="idempotencyKey")
    user_account_id: Optional[str] = Field(default=None, alias="userAccountId")
    goal: Any = None
    inputs: Optional[Dict[str, Any]] = None


def _error_response(err: CoreError, error: str) -> JSONResponse:
    return JSONResponse(
        status_code=_STATUS_BY_CODE.get(err.error_code, 500),
        content={"error": error, "error_code": err.error_code.value, "details": err.message},
    )


def _missing_account() -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": "userAccountId required"})


def get_orchestrator(request: Request) -> BrainOrchestrator:
    """Built lazily so the app can start (and be tested) without credentials."""
    state = request.app.state
    if getattr(state, "orchestrator", None) is None:
        state.orchestrator = build_orchestrator(state.settings)
    return state.orchestrator


def create_app(settings: Optional[BrainSettings] = None) -> FastAPI:
    settings = settings or BrainSettings()
    app = FastAPI(title="campaign_brain", version="0.1.0")
    app.state.settings = settings
    app.state.orchestrator = None

    # Simple request size limit
    @app.middleware("http")
    async def limit_upload_size(request: Request, call_next):
        cl = request.headers.get("content-length")
        if cl and cl.isdigit() and int(cl) > settings.max_request_bytes:
            return JSONResponse(status_code=413, content={"error": "Request too large"})
        return await call_next(request)

    # Simple in-memory rate limiting (per-IP, sliding window 60s)
    buckets: dict[str, deque] = defaultdict(deque)

    @app.middleware("http")
    async def rate_limit(request: Request, call_next):
        client = request.client.host if request.client else "unknown"
        bucket = buckets[client]
        now = time.monotonic()
        window = 60.0
        # drop stale
        while bucket and (now - bucket[0]) > window:
            bucket.popleft()
        if len(bucket) >= settings.rate_limit_per_minute:
            return JSONResponse(status_code=429, content={"error": "Rate limit exceeded"})
        bucket.append(now)
        return await call_next(request)

    # e.g. missing credentials while building the orchestrator
    @app.exception_handler(CoreError)
    async def core_error_handler(request: Request, exc: CoreError):
        logger.error("request_failed", extra={"error_code": exc.error_code.value})
        return _error_response(exc, "brain_run_failed")

    @app.exception_handler(RequestValidationError)
    async def body_error_handler(request: Request, exc: RequestValidationError):
        first = exc.errors()[0] if exc.errors() else {}
        field = ".".join(str(p) for p in first.get("loc", ()) if p != "body") or None
        err = InvalidRequestError(f"Malformed request body: {first.get('msg', 'invalid')}", field_name=field)
        return _error_response(err, "invalid_request")

    @app.get("/health")
    async def health():
        return {"ok": True}

    @app.post("/api/brain/run")
    async def brain_run(
        body: BrainRunRequest, orchestrator: BrainOrchestrator = Depends(get_orchestrator)
    ):
        if not body.user_account_id:
            return _missing_account()
        run = RunRequest(
            account_id=body.user_account_id,
            idempotency_key=body.idempotency_key,
            dispatch=bool(body.inputs and body.inputs.dispatch),
        )
        try:
            outcome = await orchestrator.run(run)
        except Exception as exc:
            err = to_core_error(exc)
            logger.exception("brain_run_failed", extra={"error_code": err.error_code.value})
            return _error_response(err, "brain_run_failed")
        return {
            "idempotencyKey": outcome.idempotency_key,
            "planNote": outcome.plan_note,
            "actions": outcome.actions,
            "dispatched": outcome.dispatched,
            "agentResponse": outcome.executor_response,
            "telegramSent": outcome.message_sent,
        }

    # Compatibility endpoint: plan only, without platform reads
    @app.post("/api/brain/decide")
    async def brain_decide(
        body: BrainDecideRequest, orchestrator: BrainOrchestrator = Depends(get_orchestrator)
    ):
        if not body.user_account_id:
            return _missing_account()
        try:
            outcome = await orchestrator.decide(body.user_account_id, body.goal, body.inputs)
        except Exception as exc:
            err = to_core_error(exc)
            logger.exception("brain_decide_failed", extra={"error_code": err.error_code.value})
            return _error_response(err, "brain_decide_failed")
        return {"planNote": outcome.plan_note, "actions": outcome.actions, "dispatched": False}

    return app

