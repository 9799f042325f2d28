"""Conversations API endpoints."""

import logging
from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status

from switchboard.api.deps import get_pipeline, get_services
from switchboard.api.schemas.message import (
    ConversationResponse,
    MarkReadRequest,
    MarkReadResponse,
    MessageResponse,
    SendFileMessageRequest,
    SendLocationMessageRequest,
    SendMediaMessageRequest,
    SendMessageRequest,
    SendVoiceMessageRequest,
    TypingIndicatorRequest,
    TypingIndicatorResponse,
)
from switchboard.bootstrap import Services
from switchboard.domain.services.delivery_pipeline import MessageDeliveryPipeline

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("", response_model=list[ConversationResponse])
async def list_conversations(
    services: Annotated[Services, Depends(get_services)],
    limit: int = Query(100, ge=1, le=500),
) -> list[ConversationResponse]:
    """List conversations, most recent activity first."""
    conversations = await services.conversation_store.list_conversations(
        services.settings.local_participant_id, limit=limit
    )
    return [ConversationResponse.model_validate(c) for c in conversations]


@router.get("/{conversation_id}/messages", response_model=list[MessageResponse])
async def list_messages(
    conversation_id: str,
    services: Annotated[Services, Depends(get_services)],
    limit: int = Query(100, ge=1, le=500),
    before: datetime | None = Query(None, description="Only messages created before this time"),
) -> list[MessageResponse]:
    """List messages of a conversation in chronological order."""
    messages = await services.conversation_store.list_messages(
        conversation_id, limit=limit, before=before
    )
    return [MessageResponse.model_validate(m) for m in messages]


@router.post(
    "/{conversation_id}/messages",
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
)
async def send_message(
    conversation_id: str,
    request: SendMessageRequest,
    pipeline: Annotated[MessageDeliveryPipeline, Depends(get_pipeline)],
) -> MessageResponse:
    """Send a message. It is returned in ``sending`` state and delivered in the background."""
    try:
        message = await pipeline.send(conversation_id, request.content, request.type)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))
    return MessageResponse.model_validate(message)


@router.post(
    "/{conversation_id}/voice-messages",
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
)
async def send_voice_message(
    conversation_id: str,
    request: SendVoiceMessageRequest,
    pipeline: Annotated[MessageDeliveryPipeline, Depends(get_pipeline)],
) -> MessageResponse:
    message = await pipeline.send_voice_message(
        conversation_id, request.audio_uri, request.duration
    )
    return MessageResponse.model_validate(message)


@router.post(
    "/{conversation_id}/media-messages",
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
)
async def send_media_message(
    conversation_id: str,
    request: SendMediaMessageRequest,
    pipeline: Annotated[MessageDeliveryPipeline, Depends(get_pipeline)],
) -> MessageResponse:
    try:
        message = await pipeline.send_media_message(
            conversation_id, request.media_uri, request.media_type, caption=request.caption
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))
    return MessageResponse.model_validate(message)


@router.post(
    "/{conversation_id}/file-messages",
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
)
async def send_file_message(
    conversation_id: str,
    request: SendFileMessageRequest,
    pipeline: Annotated[MessageDeliveryPipeline, Depends(get_pipeline)],
) -> MessageResponse:
    message = await pipeline.send_file_message(
        conversation_id,
        request.file_uri,
        request.file_name,
        file_size=request.file_size,
        mime_type=request.mime_type,
    )
    return MessageResponse.model_validate(message)


@router.post("/{conversation_id}/read", response_model=MarkReadResponse)
async def mark_read(
    conversation_id: str,
    pipeline: Annotated[MessageDeliveryPipeline, Depends(get_pipeline)],
    request: MarkReadRequest | None = None,
) -> MarkReadResponse:
    """Mark inbound messages read, up to a time or everything."""
    marked = await pipeline.mark_read(conversation_id, up_to=request.up_to if request else None)
    return MarkReadResponse(marked=marked)


@router.post(
    "/{conversation_id}/location-messages",
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
)
async def send_location_message(
    conversation_id: str,
    request: SendLocationMessageRequest,
    pipeline: Annotated[MessageDeliveryPipeline, Depends(get_pipeline)],
) -> MessageResponse:
    message = await pipeline.send_location_message(
        conversation_id,
        request.latitude,
        request.longitude,
        address=request.address,
        name=request.name,
    )
    return MessageResponse.model_validate(message)


@router.post("/{conversation_id}/typing", response_model=TypingIndicatorResponse)
async def send_typing_indicator(
    conversation_id: str,
    pipeline: Annotated[MessageDeliveryPipeline, Depends(get_pipeline)],
    request: TypingIndicatorRequest | None = None,
) -> TypingIndicatorResponse:
    """Publish a typing indicator. ``sent`` is false when offline or not delivered."""
    sent = await pipeline.send_typing_indicator(
        conversation_id, is_typing=request.is_typing if request else True
    )
    return TypingIndicatorResponse(sent=sent)
