import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from intervia.api.routes import metrics, ping, tickets
from intervia.core.config import get_settings
from intervia.core.logging import configure_logging, init_tracer, shutdown_tracer
from intervia.gateways import StardogGraphGateway, Web3LedgerGateway
from intervia.tickets.audit import TicketAuditRepository
from intervia.tickets.lifecycle import TicketLifecycle

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):  # pragma: no cover - executed by framework
    settings = get_settings()
    app.state.logger = configure_logging(settings)
    tracer_provider = init_tracer(settings)

    graph = StardogGraphGateway.from_settings(settings)
    ledger: Web3LedgerGateway | None = None
    try:
        ledger = Web3LedgerGateway.from_settings(settings)
    except (OSError, ValueError):
        logger.exception("Ledger gateway could not be configured; ticket operations are disabled")
    audit: TicketAuditRepository | None = None
    if settings.audit_postgres_dsn:
        try:
            audit = await TicketAuditRepository.connect(settings.audit_postgres_dsn)
            await audit.ensure_schema()
        except Exception:  # audit log is optional
            logger.exception("Audit log unavailable, continuing without it")
            audit = None

    app.state.graph_gateway = graph
    app.state.ledger_gateway = ledger
    app.state.audit_repository = audit
    app.state.ticket_lifecycle = TicketLifecycle(ledger, graph, audit=audit) if ledger is not None else None
    try:
        yield
    finally:
        if audit is not None:
            await audit.close()
        if ledger is not None:
            await ledger.close()
        await graph.close()
        shutdown_tracer(tracer_provider)


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.include_router(ping.router)
    app.include_router(metrics.router)
    app.include_router(tickets.router)
    return app


app = create_app()
