"""
FastAPI application for the matchmaking service.
"""

import os
import asyncio
import time
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
import uvicorn
import sentry_sdk
from sentry_sdk.integrations.starlette import StarletteIntegration
from sentry_sdk.integrations.fastapi import FastApiIntegration

from utils.common_utils import get_logger
from service.models import (
    RecommendationRequest,
    RelationRequest,
    RelationResponse,
    RespondRequest,
    WeeklyBatchRequest,
    create_safe_response,
    validate_and_sanitize_response,
)
from service.connection_service import ConnectionService

# Initialize Sentry for error monitoring; DSN comes from SENTRY_DSN
sentry_sdk.init(
    integrations=[
        StarletteIntegration(
            transaction_style="endpoint",
            failed_request_status_codes={403, *range(500, 599)},
            http_methods_to_capture=("GET", "POST"),
        ),
        FastApiIntegration(
            transaction_style="endpoint",
            failed_request_status_codes={403, *range(500, 599)},
            http_methods_to_capture=("GET", "POST"),
        ),
    ],
    traces_sample_rate=float(os.environ.get("SENTRY_TRACES_SAMPLE_RATE", 1.0)),
    profiles_sample_rate=0,
)

logger = get_logger(__name__)

# Upper bound on one recommendation request; work already started keeps running
REQUEST_TIMEOUT_SECONDS = float(os.environ.get("REQUEST_TIMEOUT_SECONDS", 30))

RELATION_ACTIONS = ("accept", "decline")

# Create FastAPI app
app = FastAPI(
    title="Matchmaking Engine API",
    description="API for serving connection suggestions and weekly drops",
    version="1.0.0",
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Global service instance
connection_service: Optional[ConnectionService] = None


@app.on_event("startup")
async def startup_event():
    """Initialize connection service on startup."""
    global connection_service

    logger.info("Starting up matchmaking service")
    try:
        connection_service = ConnectionService.get_instance()
        logger.info("Connection service initialized")
    except Exception as e:
        logger.error(f"Failed to initialize connection service: {e}")
        raise


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle request validation errors."""
    logger.error(f"Request validation error: {exc}")
    return JSONResponse(
        status_code=422,
        content={"detail": jsonable_encoder(exc.errors())},
    )


def _require_service() -> ConnectionService:
    if connection_service is None:
        raise HTTPException(status_code=503, detail="Service not initialized")
    return connection_service


@app.get("/", tags=["Health"])
async def health_check():
    """Health check endpoint."""
    return {"status": "ok", "message": "Matchmaking service is running"}


@app.post("/recommendations", tags=["Recommendations"])
async def get_recommendations(request: RecommendationRequest):
    """
    Get connection recommendations for a user.

    Returns suggestions (up to three, each with a reason) or this week's single
    drop, depending on how established the user is.
    """
    logger.info(f"Received recommendation request for user {request.user_id}")
    service = _require_service()
    start_time = time.time()

    try:
        # Process in thread pool to avoid blocking the event loop
        loop = asyncio.get_event_loop()
        response = await asyncio.wait_for(
            loop.run_in_executor(None, service.get_recommendations, request.user_id),
            timeout=REQUEST_TIMEOUT_SECONDS,
        )
        safe_response = validate_and_sanitize_response(response)
        return JSONResponse(content=safe_response)
    except asyncio.TimeoutError:
        processing_time = (time.time() - start_time) * 1000
        logger.error(
            f"Recommendation request for user {request.user_id} timed out after {processing_time:.2f}ms"
        )
        return JSONResponse(
            content=create_safe_response(processing_time_ms=processing_time, error="timeout"),
            status_code=504,
        )
    except Exception as e:
        logger.error(f"Error getting recommendations: {e}", exc_info=True)
        return JSONResponse(content=create_safe_response(error=str(e)), status_code=500)


@app.post("/recommendations/respond", tags=["Recommendations"])
async def respond_to_recommendation(request: RespondRequest):
    """Record that the user connected with, skipped or hid a candidate."""
    logger.info(
        f"User {request.user_id} responded {request.action.value} to {request.candidate_id}"
    )
    service = _require_service()
    loop = asyncio.get_event_loop()
    await loop.run_in_executor(
        None,
        service.record_response,
        request.user_id,
        request.candidate_id,
        request.action.value,
    )
    return {"status": "ok"}


@app.post("/relations/requests", tags=["Relations"], response_model=RelationResponse)
async def send_connection_request(request: RelationRequest):
    """Send a connection request; an existing live relation is returned unchanged."""
    if request.sender_id == request.receiver_id:
        raise HTTPException(status_code=400, detail="Cannot connect a user with themselves")
    service = _require_service()
    try:
        loop = asyncio.get_event_loop()
        relation = await loop.run_in_executor(
            None, service.send_request, request.sender_id, request.receiver_id
        )
    except Exception as e:
        logger.error(f"Error sending connection request: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))
    return RelationResponse(**relation.model_dump(include={"sender_id", "receiver_id", "status"}))


@app.post("/relations/{action}", tags=["Relations"], response_model=RelationResponse)
async def update_connection_request(action: str, request: RelationRequest):
    """Accept or decline a pending connection request."""
    if action not in RELATION_ACTIONS:
        raise HTTPException(status_code=404, detail=f"Unknown relation action: {action}")
    service = _require_service()
    handler = service.accept_request if action == "accept" else service.decline_request
    try:
        loop = asyncio.get_event_loop()
        relation = await loop.run_in_executor(
            None, handler, request.sender_id, request.receiver_id
        )
    except Exception as e:
        logger.error(f"Error updating connection request: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))
    if relation is None:
        raise HTTPException(status_code=404, detail="Connection request not found")
    return RelationResponse(**relation.model_dump(include={"sender_id", "receiver_id", "status"}))


@app.post("/weekly-drops/batch", tags=["Weekly Drops"])
async def run_weekly_batch(request: WeeklyBatchRequest):
    """Materialise this week's drop for every eligible user."""
    service = _require_service()
    start_time = time.time()
    loop = asyncio.get_event_loop()
    results = await loop.run_in_executor(None, service.run_weekly_batch, request.user_ids)
    processing_time = (time.time() - start_time) * 1000
    logger.info(f"Weekly batch over {len(results)} users took {processing_time:.2f}ms")
    return {"processed": len(results), "results": results, "processing_time_ms": processing_time}


def start():
    """Start the FastAPI application."""
    port = int(os.environ.get("PORT", 8000))
    uvicorn.run(
        "service.app:app",
        host="0.0.0.0",
        port=port,
        reload=False,
        log_level="info",
        workers=int(os.environ.get("WORKERS", 4)),
        access_log=False,
    )


if __name__ == "__main__":
    start()
