"""
Queue and token management API routes.
"""

import asyncio
import logging
from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect, status

from ..config import get_settings
from ..models.queue import (
    AllocateRequest,
    AllocationResult,
    QueueAction,
    QueueScope,
    QueueSnapshot,
    QueueToken,
    StatusUpdateRequest,
    WaitEstimate
)
from ..services.publisher import QueueSubscription
from ..services.queue_service import QueueService
from .dependencies import get_queue_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/queue", tags=["Queue & Tokens"])


@router.post("/tokens", response_model=AllocationResult, response_model_by_alias=False, status_code=status.HTTP_201_CREATED)
async def allocate_token(
    request: AllocateRequest,
    service: QueueService = Depends(get_queue_service)
):
    """Issue a queue token for a confirmed appointment."""
    return await service.allocate(
        provider_id=request.provider_id,
        appointment_id=request.appointment_id,
        queue_date=request.queue_date,
        is_emergency=request.is_emergency,
        slot_time=request.slot_time
    )


@router.get("/tokens/{token_id}", response_model=QueueToken, response_model_by_alias=False)
async def get_token(
    token_id: str,
    service: QueueService = Depends(get_queue_service)
):
    """Get token by ID."""
    return await service.get_token(token_id)


@router.get("/appointments/{appointment_id}/token", response_model=QueueToken, response_model_by_alias=False)
async def get_token_by_appointment(
    appointment_id: str,
    service: QueueService = Depends(get_queue_service)
):
    """Get the token issued for an appointment."""
    return await service.get_token_by_appointment(appointment_id)


@router.get("/tokens/{token_id}/estimate", response_model=WaitEstimate)
async def get_live_estimate(
    token_id: str,
    service: QueueService = Depends(get_queue_service)
):
    """Current wait estimate for a token."""
    return await service.live_estimate(token_id)


@router.put("/tokens/{token_id}/status", response_model=QueueToken, response_model_by_alias=False)
async def update_token_status(
    token_id: str,
    request: StatusUpdateRequest,
    service: QueueService = Depends(get_queue_service)
):
    """Update token status."""
    return await service.transition(token_id, request.status)


@router.post("/tokens/{token_id}/{action}", response_model=QueueToken, response_model_by_alias=False)
async def apply_action(
    token_id: str,
    action: QueueAction,
    service: QueueService = Depends(get_queue_service)
):
    """Console shortcut: call, complete, skip or no-show a token."""
    return await service.transition(token_id, action.target_status)


@router.post("/{provider_id}/{queue_date}/call-next", response_model=QueueToken, response_model_by_alias=False)
async def call_next_patient(
    provider_id: str,
    queue_date: str,
    service: QueueService = Depends(get_queue_service)
):
    """Call the next patient in line."""
    return await service.call_next(provider_id, queue_date)


@router.get("/{provider_id}/{queue_date}/snapshot", response_model=QueueSnapshot, response_model_by_alias=False)
async def get_snapshot(
    provider_id: str,
    queue_date: str,
    service: QueueService = Depends(get_queue_service)
):
    """Current queue status for live displays."""
    return await service.current_snapshot(provider_id, queue_date)


@router.websocket("/{provider_id}/{queue_date}/events")
async def queue_events(
    websocket: WebSocket,
    provider_id: str,
    queue_date: str,
    service: QueueService = Depends(get_queue_service)
):
    """Stream change events for one provider's queue."""
    scope = QueueScope(provider_id=provider_id, queue_date=queue_date)
    subscription = service.publisher.subscribe(
        QueueSubscription(scope, maxsize=get_settings().EVENT_BUFFER_SIZE)
    )
    disconnected = next_event = None
    try:
        await websocket.accept()
        disconnected = asyncio.ensure_future(_wait_for_disconnect(websocket))
        while True:
            next_event = asyncio.ensure_future(subscription.next_event())
            await asyncio.wait({next_event, disconnected}, return_when=asyncio.FIRST_COMPLETED)
            if disconnected.done():
                break
            await websocket.send_text(next_event.result().model_dump_json())
    except WebSocketDisconnect:
        logger.debug("Client left %s during send", scope)
    finally:
        service.publisher.unsubscribe(subscription)
        for pending in (disconnected, next_event):
            if pending is not None:
                pending.cancel()
        logger.info("Event stream for %s closed", scope)


async def _wait_for_disconnect(websocket: WebSocket) -> None:
    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            return
