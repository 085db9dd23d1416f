"""``GET /api/data``: the instrumented pipeline endpoint."""

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from observable_api.pipeline.orchestrator import RequestOrchestrator

router = APIRouter()


@router.get("/api/data")
async def get_data(request: Request) -> JSONResponse:
    """Run the pipeline and return its payload or a generic error."""
    orchestrator: RequestOrchestrator = request.app.state.orchestrator
    route = request.scope["route"].path
    result = await orchestrator.handle(request.method, route)
    return JSONResponse(
        content=result.body,
        status_code=result.status_code,
        headers={"X-Request-ID": result.request_id},
    )
