"""
FastAPI server for the discovery matching service.

Exposes:
  - GET /health - Health check
  - GET /profiles/{viewer_id}/discovery - One page of the discovery feed
  - POST /swipes/like, POST /swipes/pass - Record a swipe
  - POST /matches/unmatch - End an active match
  - GET /profiles/{viewer_id}/explain/{candidate_id} - Visibility diagnostics
  - GET /docs - Interactive API documentation (Swagger UI)
"""

from dotenv import load_dotenv
load_dotenv()

from fastapi import Depends, FastAPI, HTTPException, Query, Request, status, Header
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from typing import Dict, Any, Optional, Annotated
import time

# Import configuration (loads .env automatically)
from src.config import config, validate_config

# Import logging setup
from src.utils.logging_config import logger, setup_logging

from src.engine import MatchingEngine
from src.utils.errors import (
    InvalidCursorError,
    InvalidInputError,
    MatchingError,
    ProfileNotFoundError,
    StoreUnavailableError,
)

# Setup logging
setup_logging(debug=config.DEBUG, log_file=config.LOG_FILE or None)

# ============================================================
# VALIDATE CONFIGURATION AT STARTUP
# ============================================================
try:
    config_status = validate_config()
    logger.info("Configuration validated successfully")
    for key, value in config_status.items():
        logger.info("  %s: %s", key, value)
except ValueError as e:
    logger.error("Configuration error: %s", e)
    raise SystemExit(1)

# ============================================================
# FASTAPI APPLICATION
# ============================================================
app = FastAPI(
    title="Discovery Matching Service",
    description="Discovery feed ranking, swipes and match creation for dating profiles",
    version="1.0.0",
)

_engine: Optional[MatchingEngine] = None


def get_engine() -> MatchingEngine:
    """Return the process-wide engine, built on first use."""
    global _engine
    if _engine is None:
        _engine = MatchingEngine()
    return _engine


def verify_token(authorization: Annotated[Optional[str], Header()] = None) -> None:
    """Check the shared service token when one is configured."""
    if config.SERVICE_TOKEN:
        expected = f"Bearer {config.SERVICE_TOKEN}"
        if authorization != expected:
            logger.warning("Unauthorized request: invalid or missing token")
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Unauthorized",
            )


# ============================================================
# REQUEST MODELS
# ============================================================
class SwipeRequest(BaseModel):
    """
    Request body for the swipe and unmatch endpoints.

    Attributes:
        actor_id (str): Profile performing the action
        target_id (str): Profile the action is about
    """
    actor_id: str
    target_id: str


# ============================================================
# MIDDLEWARE
# ============================================================
@app.middleware("http")
async def add_process_time_header(request: Request, call_next):
    """Add an X-Process-Time header with the request duration in seconds."""
    start_time = time.time()
    response = await call_next(request)
    process_time = time.time() - start_time
    response.headers["X-Process-Time"] = str(process_time)
    return response


# ============================================================
# ROUTES
# ============================================================

@app.get("/health", tags=["System"])
async def health_check() -> Dict[str, str]:
    """
    Health check endpoint.

    Called by load balancers and monitoring systems.
    """
    return {"status": "healthy"}


@app.get("/", tags=["System"])
async def root() -> Dict[str, str]:
    """Service information and where to find the docs."""
    return {
        "service": "Discovery Matching Service",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
    }


@app.get(
    "/profiles/{viewer_id}/discovery",
    tags=["Discovery"],
    dependencies=[Depends(verify_token)],
)
def discovery_feed(
    viewer_id: str,
    page_size: Optional[int] = Query(default=None),
    cursor: Optional[str] = Query(default=None),
    engine: MatchingEngine = Depends(get_engine),
) -> Dict[str, Any]:
    """
    Return one page of the viewer's discovery feed.

    Pass the returned ``next_cursor`` back as ``cursor`` to fetch the next
    page. A missing ``next_cursor`` means the feed is exhausted.
    """
    start_time = time.time()
    page = engine.get_discovery_feed(viewer_id, page_size=page_size, cursor=cursor)
    logger.info(
        "discovery summary: returned=%s more=%s time=%.3fs",
        len(page.profiles),
        page.next_cursor is not None,
        time.time() - start_time,
    )
    return {"success": True, "data": page.model_dump(mode="json"), "error": None}


@app.post("/swipes/like", tags=["Swipes"], dependencies=[Depends(verify_token)])
def like(request: SwipeRequest, engine: MatchingEngine = Depends(get_engine)) -> Dict[str, Any]:
    """Record a like; the response says whether it produced a match."""
    outcome = engine.record_like(request.actor_id, request.target_id)
    return {"success": True, "data": outcome.model_dump(mode="json"), "error": None}


@app.post("/swipes/pass", tags=["Swipes"], dependencies=[Depends(verify_token)])
def pass_(request: SwipeRequest, engine: MatchingEngine = Depends(get_engine)) -> Dict[str, Any]:
    """Record a pass."""
    outcome = engine.record_pass(request.actor_id, request.target_id)
    return {"success": True, "data": outcome.model_dump(mode="json"), "error": None}


@app.post("/matches/unmatch", tags=["Swipes"], dependencies=[Depends(verify_token)])
def unmatch(request: SwipeRequest, engine: MatchingEngine = Depends(get_engine)) -> Dict[str, Any]:
    """End the match between actor and target."""
    match = engine.unmatch(request.actor_id, request.target_id)
    return {"success": True, "data": match.model_dump(mode="json"), "error": None}


@app.get(
    "/profiles/{viewer_id}/explain/{candidate_id}",
    tags=["Discovery"],
    dependencies=[Depends(verify_token)],
)
def explain(
    viewer_id: str,
    candidate_id: str,
    engine: MatchingEngine = Depends(get_engine),
) -> Dict[str, Any]:
    """Explain why a candidate is or is not in the viewer's feed."""
    report = engine.explain_visibility(viewer_id, candidate_id)
    return {"success": True, "data": report, "error": None}


# ============================================================
# ERROR HANDLERS
# ============================================================

def _error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "error": message,
            "status_code": status_code,
        },
    )


def _status_for(exc: MatchingError) -> int:
    if isinstance(exc, ProfileNotFoundError):
        return status.HTTP_404_NOT_FOUND
    if isinstance(exc, (InvalidCursorError, InvalidInputError)):
        return status.HTTP_400_BAD_REQUEST
    if isinstance(exc, StoreUnavailableError):
        return status.HTTP_503_SERVICE_UNAVAILABLE
    return status.HTTP_500_INTERNAL_SERVER_ERROR


@app.exception_handler(MatchingError)
async def matching_exception_handler(request: Request, exc: MatchingError):
    """Map domain errors to HTTP status codes."""
    status_code = _status_for(exc)
    if status_code >= 500:
        logger.error("Matching error on %s: %s", request.url.path, exc)
        message = "Store unavailable" if status_code == 503 else "Internal server error"
        return _error_response(status_code, message)

    logger.warning("Rejected request on %s: %s", request.url.path, exc)
    return _error_response(status_code, str(exc))


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Return HTTP exceptions in the common error format."""
    logger.error("HTTP Exception: %s - %s", exc.status_code, exc.detail)
    return _error_response(exc.status_code, exc.detail)


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """
    Handle unexpected exceptions.

    Never returns the exception message to the client; it is logged instead.
    """
    logger.exception("Unhandled exception: %s", exc)
    return _error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")


# ============================================================
# STARTUP EVENTS
# ============================================================

@app.on_event("startup")
async def startup_event():
    """Log the effective configuration."""
    logger.info("=" * 60)
    logger.info("Discovery Matching Service Starting Up")
    logger.info("=" * 60)
    logger.info("Store backend: %s", config.STORE_BACKEND)
    logger.info("Firebase Project: %s", config.FIREBASE_PROJECT_ID)
    logger.info("Debug Mode: %s", config.DEBUG)
    logger.info("Feed Timeout: %ss", config.FEED_TIMEOUT)
    logger.info("Max Candidate Pool: %s", config.MAX_CANDIDATE_POOL)
    logger.info("=" * 60)


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Discovery Matching Service Shutting Down")


# ============================================================
# ENTRY POINT
# ============================================================

if __name__ == "__main__":
    # Standard way: python -m uvicorn src.server:app --reload
    import uvicorn
    uvicorn.run(
        app,
        host=config.HOST,
        port=config.PORT,
        log_level="info" if not config.DEBUG else "debug"
    )
