import asyncio

from fastapi import APIRouter, Request, Response, status

from intervia.tickets.errors import GatewayUnavailable

router = APIRouter(prefix="/ping", tags=["health"])


@router.get("", summary="Public health probe")
async def ping() -> dict[str, str]:
    return {"status": "ok"}


async def _probe(gateway: object | None) -> str:
    if gateway is None:
        return "unconfigured"
    try:
        reachable = await gateway.test_connection()  # type: ignore[attr-defined]
    except GatewayUnavailable:
        return "unavailable"
    return "ok" if reachable else "unavailable"


@router.get("/ready", summary="Ledger and knowledge graph reachability")
async def ready(request: Request, response: Response) -> dict[str, str]:
    ledger, graph = await asyncio.gather(
        _probe(getattr(request.app.state, "ledger_gateway", None)),
        _probe(getattr(request.app.state, "graph_gateway", None)),
    )
    if ledger != "ok" or graph != "ok":
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return {"ledger": ledger, "graph": graph}
