"""FastAPI server for the Prophet betting platform.

Identity comes from trusted upstream headers (X-User-Id, X-User-Email,
X-User-Role); session handling lives in the gateway in front of this app.
The system AI principal is never taken from a request.

Run with: python -m prophet serve
"""

import hmac
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import Depends, FastAPI, Header, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from prophet import __version__
from prophet.agents.arbitrator import ReasoningService, create_reasoning_service
from prophet.config import Settings, get_settings
from prophet.errors import ProphetError, UnauthenticatedError
from prophet.observability import initialize_logfire
from prophet.pipeline import AISettlement, arbitrate_and_settle
from prophet.services.search import WebSearchService, create_search_service
from prophet.settlement.appeals import AppealService
from prophet.settlement.engine import SettlementEngine
from prophet.settlement.models import AppealStatus, MarketDraft, PaymentCompleted, Principal
from prophet.storage.database import dispose_engine, get_ledger_store

from .schemas import (
    AdminCreditRequest,
    CreateMarketRequest,
    FileAppealRequest,
    PlaceStakeRequest,
    ResolveMarketRequest,
    ReviewAppealRequest,
)

logger = logging.getLogger(__name__)


def _ok(data: Any) -> dict[str, Any]:
    if isinstance(data, BaseModel):
        data = data.model_dump(mode="json")
    elif isinstance(data, list):
        data = [d.model_dump(mode="json") if isinstance(d, BaseModel) else d for d in data]
    return {"success": True, "data": data}


def _error(status: int, error: dict[str, Any]) -> JSONResponse:
    return JSONResponse(status_code=status, content={"success": False, "error": error})


# =============================================================================
# Dependencies
# =============================================================================


def get_engine(request: Request) -> SettlementEngine:
    return request.app.state.engine


def get_appeals(request: Request) -> AppealService:
    return request.app.state.appeals


async def get_principal(
    request: Request,
    x_user_id: str | None = Header(default=None),
    x_user_email: str | None = Header(default=None),
    x_user_role: str | None = Header(default=None),
) -> Principal:
    """Caller identity from gateway headers; first sight provisions the account."""
    if not x_user_id:
        raise UnauthenticatedError()
    engine: SettlementEngine = request.app.state.engine
    await engine.ensure_user(x_user_id, x_user_email)
    return Principal(
        user_id=x_user_id,
        email=x_user_email,
        is_admin=(x_user_role or "").lower() == "admin",
    )


def verify_payment_caller(
    request: Request, x_webhook_secret: str | None = Header(default=None)
) -> None:
    """Only the payments gateway, holding the shared secret, may report payments."""
    expected = request.app.state.settings.payments_webhook_secret
    if not expected or not x_webhook_secret:
        raise UnauthenticatedError()
    if not hmac.compare_digest(x_webhook_secret.encode(), expected.encode()):
        logger.warning("Rejected payment notification with an invalid webhook secret")
        raise UnauthenticatedError()


# =============================================================================
# App factory
# =============================================================================


def create_app(
    settings: Settings | None = None,
    engine: SettlementEngine | None = None,
    appeals: AppealService | None = None,
    reasoning_service: ReasoningService | None = None,
    search_service: WebSearchService | None = None,
) -> FastAPI:
    """Build the API. Services default to the SQL store and configured providers."""
    settings = settings or get_settings()
    owns_database = engine is None
    if engine is None:
        engine = SettlementEngine(
            get_ledger_store(settings), settings.settlement, payments=settings.payments
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        if owns_database:
            await dispose_engine()

    app = FastAPI(title="Prophet Betting API", version=__version__, lifespan=lifespan)
    app.state.settings = settings
    app.state.engine = engine
    app.state.appeals = appeals or AppealService(engine.store, clock=engine.clock)
    app.state.reasoning_service = reasoning_service
    app.state.search_service = search_service

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:3000", "http://localhost:3001"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ProphetError)
    async def prophet_error_handler(request: Request, exc: ProphetError) -> JSONResponse:
        error = exc.to_dict()
        fields = getattr(exc, "fields", None)
        if fields:
            error["fields"] = fields
        return _error(exc.http_status, error)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        fields = {
            ".".join(str(p) for p in err["loc"][1:]) or "body": err["msg"] for err in exc.errors()
        }
        return _error(
            400,
            {
                "code": "VALIDATION_ERROR",
                "message": "Invalid request",
                "kind": "validation",
                "fields": fields,
            },
        )

    _register_routes(app)

    if settings.logfire_token:
        initialize_logfire(settings, app)

    return app


async def _run_arbitration(app: FastAPI, engine: SettlementEngine, market_id: str) -> AISettlement:
    settings: Settings = app.state.settings
    reasoning_service = app.state.reasoning_service or create_reasoning_service(settings)
    if app.state.search_service is not None:
        return await arbitrate_and_settle(
            engine, market_id, reasoning_service, app.state.search_service, settings.arbitration
        )
    async with create_search_service(settings) as search_service:
        return await arbitrate_and_settle(
            engine, market_id, reasoning_service, search_service, settings.arbitration
        )


def _register_routes(app: FastAPI) -> None:
    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok", "version": __version__}

    # --- Markets ---

    @app.post("/api/markets", status_code=201)
    async def create_market(
        body: CreateMarketRequest,
        principal: Principal = Depends(get_principal),
        engine: SettlementEngine = Depends(get_engine),
    ):
        market = await engine.create_market(MarketDraft(**body.model_dump()), principal)
        return _ok(market)

    @app.get("/api/markets/{market_id}")
    async def get_market(market_id: str, engine: SettlementEngine = Depends(get_engine)):
        return _ok(await engine.get_market(market_id))

    @app.post("/api/markets/{market_id}/stakes", status_code=201)
    async def place_stake(
        market_id: str,
        body: PlaceStakeRequest,
        principal: Principal = Depends(get_principal),
        engine: SettlementEngine = Depends(get_engine),
    ):
        result = await engine.place_stake(market_id, principal.user_id, body.side, body.amount)
        return _ok(result)

    @app.post("/api/markets/{market_id}/resolve")
    async def resolve_market(
        market_id: str,
        body: ResolveMarketRequest,
        principal: Principal = Depends(get_principal),
        engine: SettlementEngine = Depends(get_engine),
    ):
        result = await engine.resolve_market(market_id, body.outcome, principal, body.reasoning)
        return _ok(result)

    @app.post("/api/markets/{market_id}/cancel")
    async def cancel_market(
        market_id: str,
        principal: Principal = Depends(get_principal),
        engine: SettlementEngine = Depends(get_engine),
    ):
        return _ok(await engine.cancel_market(market_id, principal))

    @app.post("/api/markets/{market_id}/arbitrate")
    async def arbitrate_market(
        market_id: str,
        request: Request,
        principal: Principal = Depends(get_principal),
        engine: SettlementEngine = Depends(get_engine),
    ):
        logger.info(f"AI arbitration of {market_id} requested by {principal.user_id}")
        settled = await _run_arbitration(request.app, engine, market_id)
        return _ok(
            {
                "ai_decision": settled.arbitration.outcome.value,
                "reasoning": settled.arbitration.reasoning,
                "decision_id": settled.resolution.decision_id,
                "total_payout": str(settled.resolution.total_payout),
                "winners_count": settled.resolution.winners_count,
                "sources_consulted": [
                    s.model_dump(mode="json") for s in settled.arbitration.sources
                ],
                "searches_performed": settled.arbitration.searches_performed,
            }
        )

    # --- Credits ---

    @app.post("/api/payments/completed", dependencies=[Depends(verify_payment_caller)])
    async def payment_completed(
        event: PaymentCompleted, engine: SettlementEngine = Depends(get_engine)
    ):
        engine.validate_payment(event)
        await engine.ensure_user(event.user_id, event.customer_email)
        return _ok(await engine.record_payment(event))

    @app.post("/api/admin/credits")
    async def admin_credit(
        body: AdminCreditRequest,
        principal: Principal = Depends(get_principal),
        engine: SettlementEngine = Depends(get_engine),
    ):
        new_balance = await engine.adjust_balance(principal, body.user_id, body.amount, body.reason)
        return _ok({"user_id": body.user_id, "new_balance": str(new_balance)})

    @app.get("/api/users/me/balance")
    async def my_balance(
        principal: Principal = Depends(get_principal),
        engine: SettlementEngine = Depends(get_engine),
    ):
        balance = await engine.get_balance(principal.user_id)
        return _ok({"user_id": principal.user_id, "balance": str(balance)})

    @app.get("/api/users/me/audit")
    async def my_audit(
        principal: Principal = Depends(get_principal),
        engine: SettlementEngine = Depends(get_engine),
    ):
        audit = await engine.audit_balance(principal.user_id)
        return _ok({**audit.model_dump(mode="json"), "consistent": audit.consistent})

    # --- Appeals ---

    @app.post("/api/appeals", status_code=201)
    async def file_appeal(
        body: FileAppealRequest,
        principal: Principal = Depends(get_principal),
        appeals: AppealService = Depends(get_appeals),
    ):
        return _ok(await appeals.file_appeal(body.market_id, principal, body.reason))

    @app.get("/api/appeals")
    async def list_appeals(
        status: AppealStatus | None = None,
        principal: Principal = Depends(get_principal),
        appeals: AppealService = Depends(get_appeals),
    ):
        return _ok(await appeals.list_appeals(principal, status))

    @app.get("/api/appeals/{appeal_id}")
    async def get_appeal(
        appeal_id: str,
        principal: Principal = Depends(get_principal),
        appeals: AppealService = Depends(get_appeals),
    ):
        return _ok(await appeals.get_appeal(appeal_id, principal))

    @app.post("/api/appeals/{appeal_id}/resolve")
    async def review_appeal(
        appeal_id: str,
        body: ReviewAppealRequest,
        principal: Principal = Depends(get_principal),
        appeals: AppealService = Depends(get_appeals),
    ):
        appeal = await appeals.review_appeal(appeal_id, principal, body.status, body.admin_notes)
        return _ok(appeal)
