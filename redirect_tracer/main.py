import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from redirect_tracer.config import settings
from redirect_tracer.routers.trace_redirects import cors_headers, router as trace_router

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(
    title="Redirect Tracer API",
    version="0.1.0",
    description="Trace HTTP, meta refresh and JavaScript redirect chains",
)


@app.exception_handler(RequestValidationError)
async def invalid_body_handler(request: Request, exc: RequestValidationError):
    # Malformed JSON or a body that is not an object
    return JSONResponse(status_code=400, content={"error": "URL is required"}, headers=cors_headers())


@app.get("/health")
async def health_check():
    return {"status": "ok"}


# Include the routers
app.include_router(trace_router)
