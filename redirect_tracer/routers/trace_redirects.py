# redirect_tracer/routers/trace_redirects.py
import logging

from fastapi import APIRouter, Response
from fastapi.responses import JSONResponse

from redirect_tracer.config import settings
from redirect_tracer.exceptions import InvalidInput
from redirect_tracer.schemas import ErrorResponse, RedirectChain, TraceRequest
from redirect_tracer.services.redirect_chain_service import get_redirect_chain

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["trace"])

TRACE_PATH = "/trace-redirects"


def cors_headers() -> dict:
    origins = settings.cors_origins
    return {
        "Access-Control-Allow-Origin": "*" if not origins or "*" in origins else origins[0],
        "Access-Control-Allow-Headers": "Content-Type",
        "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    }


@router.post(
    TRACE_PATH,
    response_model=RedirectChain,
    response_model_by_alias=True,
    response_model_exclude_none=True,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def trace_redirects(payload: TraceRequest, response: Response):
    """
    Trace the redirect chain of a URL.
    Hop failures (DNS, refused connections, TLS problems, timeouts) are part
    of the returned chain; only bad input and internal faults are errors.
    """
    response.headers.update(cors_headers())
    try:
        return await get_redirect_chain(payload.url)
    except InvalidInput as e:
        return JSONResponse(status_code=400, content={"error": e.message}, headers=cors_headers())
    except Exception as e:
        logger.exception(f"Error tracing redirects for {payload.url}")
        return JSONResponse(
            status_code=500,
            content={"error": "Failed to trace redirects", "details": type(e).__name__},
            headers=cors_headers(),
        )


@router.options(TRACE_PATH)
async def trace_redirects_preflight():
    # Browser preflights of any shape end here with an empty body
    return Response(status_code=200, headers=cors_headers())


@router.api_route(TRACE_PATH, methods=["GET", "PUT", "PATCH", "DELETE"], include_in_schema=False)
async def trace_redirects_method_not_allowed():
    return JSONResponse(status_code=405, content={"error": "Method not allowed"}, headers=cors_headers())
