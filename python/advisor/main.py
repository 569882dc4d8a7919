"""
FastAPI gateway for the academic advisory core
Course recommendations, scholarship discovery, transcript summaries and grounded chat
"""

import logging

import httpx
import redis.asyncio as redis
import uvicorn
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from . import dependencies
from .config import Settings
from .errors import AdvisorError
from .models import HealthResponse, utc_now
from .routes import chat as chat_router
from .routes import recommendations as recommendations_router
from .routes import scholarships as scholarships_router
from .routes import summaries as summaries_router
from .routes import websearch as websearch_router
from .services.inference_client import InferenceClient
from .services.redis_store import RedisAdvisorStore
from .services.search_client import SearchClient
from .services.store import InMemoryAdvisorStore
from .utils.metrics import http_requests_total

settings = Settings.from_env()

logging.basicConfig(level=getattr(logging, settings.log_level, logging.INFO))
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Academic Advisor Gateway",
    description="Recommendation, scholarship and chat orchestration over an inference service",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def http_request_counter_middleware(request, call_next):
    """Count all HTTP requests with method, route template, and status labels"""
    response = await call_next(request)

    route = request.url.path
    if request.scope.get("route"):
        route = request.scope["route"].path

    http_requests_total.labels(
        method=request.method,
        route=route,
        status=str(response.status_code),
    ).inc()
    return response


@app.on_event("startup")
async def startup_event():
    """Create the pooled HTTP clients and the store once per process"""
    logger.info("Starting Academic Advisor Gateway...")

    inference = InferenceClient(
        api_key=settings.openai_api_key,
        base_url=settings.openai_base_url,
        default_model=settings.openai_model,
        timeout_s=settings.openai_timeout_s,
    )
    search = SearchClient(
        api_key=settings.brave_api_key,
        base_url=settings.brave_api_url,
        max_results=settings.web_search_max_results,
        timeout_s=settings.search_timeout_s,
        enabled=settings.web_search_enabled,
    )

    if settings.redis_url:
        store = RedisAdvisorStore(redis.from_url(settings.redis_url, decode_responses=True))
        if await store.health_check():
            logger.info("Redis store connected")
        else:
            logger.warning("Redis store not reachable yet, requests will fail until it is")
    else:
        store = InMemoryAdvisorStore()
        logger.info("REDIS_URL not set, using in-memory store")

    if not settings.openai_api_key:
        logger.warning("OPENAI_API_KEY not set, generation and chat will fail")
    if settings.web_search_enabled and not settings.brave_api_key:
        logger.warning("BRAVE_API_KEY not set, scholarship generation will run without web grounding")

    dependencies.configure(settings, store, inference, search)
    logger.info("All services initialized successfully")


@app.on_event("shutdown")
async def shutdown_event():
    """Close pooled connections"""
    logger.info("Shutting down Academic Advisor Gateway...")

    for name, svc in (
        ("Inference client", dependencies.inference_client),
        ("Search client", dependencies.search_client),
        ("Store", dependencies.store),
    ):
        if svc is None:
            continue
        try:
            await svc.close()
            logger.info(f"{name} closed")
        except (httpx.HTTPError, AdvisorError, OSError) as e:
            logger.error(f"Error closing {name.lower()}: {e}")

    dependencies.reset()
    logger.info("Shutdown complete")


@app.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint"""
    services = {
        "store": False,
        "inference_configured": bool(dependencies.inference_client and dependencies.inference_client.api_key),
        "search_configured": bool(dependencies.search_client and dependencies.search_client.api_key),
    }
    overall_status = "healthy"

    if dependencies.store is None:
        overall_status = "unhealthy"
    else:
        services["store"] = await dependencies.store.health_check()
        if not services["store"]:
            overall_status = "unhealthy"
        elif not services["inference_configured"]:
            overall_status = "degraded"

    return HealthResponse(
        status=overall_status,
        services=services,
        timestamp=utc_now().isoformat(),
    )


@app.get("/metrics")
def metrics():
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


app.include_router(recommendations_router.router)
app.include_router(scholarships_router.router)
app.include_router(summaries_router.router)
app.include_router(chat_router.router)
app.include_router(websearch_router.router)


@app.exception_handler(AdvisorError)
async def advisor_exception_handler(request, exc: AdvisorError):
    """Map core errors to the standard error envelope"""
    if exc.status_code >= 500:
        logger.error(f"{exc.code} on {request.method} {request.url.path}: {exc.message}")
    else:
        logger.info(f"{exc.code} on {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "error": {
                "code": exc.code,
                "message": exc.message,
                "details": exc.details,
            },
        },
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request, exc: RequestValidationError):
    """Handle request validation errors with structured 422 responses"""
    error_details = []
    for error in exc.errors():
        error_details.append({
            "field": " -> ".join(str(loc) for loc in error["loc"]),
            "message": error["msg"],
            "type": error["type"],
        })

    logger.warning(f"Request validation failed: {error_details}")

    return JSONResponse(
        status_code=422,
        content={
            "success": False,
            "error": {
                "code": "VALIDATION_ERROR",
                "message": "Request validation failed",
                "details": {
                    "validation_errors": error_details,
                    "error_count": len(error_details),
                },
            },
        },
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request, exc):
    """Custom HTTP exception handler"""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "error": {
                "code": "HTTP_ERROR",
                "message": exc.detail,
                "details": {"status_code": exc.status_code},
            },
        },
    )


@app.exception_handler(Exception)
async def general_exception_handler(request, exc):
    """General exception handler for unhandled errors"""
    logger.exception(f"Unhandled exception: {exc}")
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": {
                "code": "INTERNAL_SERVER_ERROR",
                "message": "An unexpected error occurred",
                "details": {"error": str(exc)},
            },
        },
    )


if __name__ == "__main__":
    uvicorn.run(
        "advisor.main:app",
        host="0.0.0.0",
        port=8000,
        log_level=settings.log_level.lower(),
    )
