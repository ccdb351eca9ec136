"""Lead Assignment Router API: CRM webhook, dashboard reads, health."""

import json
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import FastAPI, Query, Request
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError

from engine import AssignmentEngine, build_engine
from models import AgentStats, DashboardStats, LedgerEntry
from webhook import handle_crm_webhook, handle_manual_trigger
from worker import PollingOrchestrator

logger = logging.getLogger(__name__)


def create_app(
    engine: Optional[AssignmentEngine] = None,
    orchestrator: Optional[PollingOrchestrator] = None,
    start_polling: bool = True,
) -> FastAPI:
    engine = engine or build_engine()
    orchestrator = orchestrator or PollingOrchestrator(engine)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if start_polling:
            orchestrator.start()
        try:
            yield
        finally:
            if start_polling:
                await orchestrator.stop()

    app = FastAPI(title="Lead Assignment Router", version="1.0.0", lifespan=lifespan)
    app.state.engine = engine
    app.state.orchestrator = orchestrator

    @app.post("/api/webhook")
    async def crm_webhook(request: Request) -> JSONResponse:
        """CRM outbound webhook. Only ONCRMDEALADD is handled."""
        try:
            payload = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            return JSONResponse({"error": "Malformed webhook payload"}, status_code=400)
        try:
            status, body = await handle_crm_webhook(engine, payload)
        except Exception:
            logger.exception("Webhook error")
            status, body = 500, {"error": "Internal server error"}
        return JSONResponse(body, status_code=status)

    @app.get("/api/webhook")
    async def manual_trigger() -> JSONResponse:
        """Assign a dummy deal through the live pipeline (smoke test)."""
        try:
            status, body = await handle_manual_trigger(engine)
        except Exception:
            logger.exception("Manual trigger error")
            status, body = 500, {"error": "Internal server error"}
        return JSONResponse(body, status_code=status)

    @app.get("/agents", response_model=List[AgentStats])
    async def list_agents() -> List[AgentStats]:
        """Online agents with their open-work counts from the latest refresh."""
        return [AgentStats.from_agent(a) for a in orchestrator.agent_snapshot]

    @app.get("/assignments/recent", response_model=List[LedgerEntry])
    async def recent_assignments(limit: int = Query(10, ge=1, le=100)) -> List[LedgerEntry]:
        return await engine.ledger.recent(limit)

    @app.get("/stats", response_model=DashboardStats)
    async def stats() -> DashboardStats:
        try:
            recent = await engine.ledger.recent(5)
            assigned_today = await engine.ledger.count_assigned_on(datetime.now(timezone.utc).date())
        except RedisError as e:
            logger.warning("Ledger unavailable for stats: %s", e)
            recent, assigned_today = [], 0
        agents = orchestrator.agent_snapshot
        return DashboardStats(
            active_agents=len(agents),
            assigned_today=assigned_today,
            pending_records=len(orchestrator.pending_records),
            agents=[AgentStats.from_agent(a) for a in agents],
            recent_assignments=recent,
        )

    @app.get("/health")
    def health() -> dict:
        """Health check."""
        return {"status": "ok"}

    return app
