"""
HTTP API Routes - transport webhook, health and queue status.
"""

from fastapi import APIRouter, Depends, HTTPException

from event_ingest.dependencies.context import AppContext, get_app_context
from event_ingest.schemas import (
    HealthResponse,
    IncomingMessageRequest,
    IntakeResponse,
    QueueStatusResponse,
)
from event_ingest.utils.logger import setup_logger

logger = setup_logger("api")

router = APIRouter(prefix="/api")


@router.get("/")
async def read_root():
    """API liveness endpoint."""
    return {"message": "Event ingest API is running!"}


@router.post("/messages", response_model=IntakeResponse, status_code=202)
async def receive_message(
    request: IncomingMessageRequest,
    context: AppContext = Depends(get_app_context),
):
    """
    Transport webhook: accept one chat message for processing.

    Returns as soon as the message is queued (or rejected at intake); the
    pipeline outcome is reported through confirmations.
    """
    try:
        return await context.intake.handle_incoming_message(request)
    except Exception as e:
        logger.error(f"Error accepting message {request.message_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to accept message: {str(e)}") from e


@router.get("/health", response_model=HealthResponse)
async def health(context: AppContext = Depends(get_app_context)):
    database_ok = await context.store.ping()
    return HealthResponse(
        status="ok" if database_ok else "degraded",
        database=database_ok,
        queue_pending=context.queue.pending,
    )


@router.get("/queue", response_model=QueueStatusResponse)
async def queue_status(context: AppContext = Depends(get_app_context)):
    return context.queue.status()
