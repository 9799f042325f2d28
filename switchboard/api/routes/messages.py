"""Messages API endpoints."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status

from switchboard.api.deps import get_pipeline
from switchboard.api.schemas.message import (
    InboundMessageRequest,
    MessageResponse,
    StatusUpdateRequest,
)
from switchboard.core.exceptions import MessageNotFoundError, MessageStateError
from switchboard.domain.services.delivery_pipeline import MessageDeliveryPipeline

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/inbound", response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
async def receive_message(
    request: InboundMessageRequest,
    pipeline: Annotated[MessageDeliveryPipeline, Depends(get_pipeline)],
) -> MessageResponse:
    """Ingest a message pushed by the backend. Safe to repeat."""
    message = await pipeline.receive(
        message_id=request.id,
        conversation_id=request.conversation_id,
        sender_id=request.sender_id,
        body=request.body,
        type=request.type,
        created_at=request.created_at,
        server_id=request.server_id,
    )
    return MessageResponse.model_validate(message)


@router.post("/{message_id}/status", response_model=MessageResponse)
async def update_status(
    message_id: str,
    request: StatusUpdateRequest,
    pipeline: Annotated[MessageDeliveryPipeline, Depends(get_pipeline)],
) -> MessageResponse:
    """Apply a delivery receipt to an outbound message."""
    try:
        message = await pipeline.apply_status_update(
            message_id, request.status, server_id=request.server_id
        )
    except MessageNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    return MessageResponse.model_validate(message)


@router.post("/{message_id}/resend", response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
async def resend_message(
    message_id: str,
    pipeline: Annotated[MessageDeliveryPipeline, Depends(get_pipeline)],
) -> MessageResponse:
    """Send a failed message again."""
    try:
        message = await pipeline.resend(message_id)
    except MessageNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except MessageStateError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    return MessageResponse.model_validate(message)


@router.post("/{message_id}/cancel", response_model=MessageResponse)
async def cancel_message(
    message_id: str,
    pipeline: Annotated[MessageDeliveryPipeline, Depends(get_pipeline)],
) -> MessageResponse:
    """Stop delivering a message."""
    try:
        message = await pipeline.cancel(message_id)
    except MessageNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    return MessageResponse.model_validate(message)


@router.delete("/{message_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_message(
    message_id: str,
    pipeline: Annotated[MessageDeliveryPipeline, Depends(get_pipeline)],
) -> None:
    if not await pipeline.delete_message(message_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Message not found")
