"""Health check endpoint."""

import logging

from fastapi import APIRouter, Request
from sqlalchemy import text

from buildergraph.api.models import HealthResponse
from buildergraph.errors import TransportError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health(request: Request):
    """Check database connectivity, ledger node reachability and LLM availability."""
    state = request.app.state
    db_ok = False
    ledger_ok = False

    # Database check
    try:
        with state.database.session() as s:
            db_ok = s.execute(text("SELECT 1")).scalar() == 1
    except Exception:
        logger.warning("Database health check failed")

    # Ledger node check
    try:
        await state.ledger.node_info()
        ledger_ok = True
    except TransportError as exc:
        logger.warning("Ledger node health check failed: %s", exc)

    llm_ok = state.orchestrator.analyzer.available

    status = "healthy"
    if not ledger_ok:
        status = "degraded"
    if not db_ok:
        status = "offline"

    return HealthResponse(
        status=status,
        database_connected=db_ok,
        ledger_reachable=ledger_ok,
        llm_available=llm_ok,
        in_flight_operations=state.orchestrator.in_flight,
    )
