"""Calls API endpoints."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status

from switchboard.api.deps import get_coordinator, get_services
from switchboard.api.schemas.call import (
    CallHistoryResponse,
    CallResponse,
    EndCallRequest,
    IceCandidateRequest,
    MediaEventRequest,
    StartCallRequest,
    ToggleResponse,
)
from switchboard.bootstrap import Services
from switchboard.core.exceptions import (
    CallNotFoundError,
    CallStateError,
    SignalingUnavailableError,
)
from switchboard.domain.services.call_coordinator import CallCoordinator

logger = logging.getLogger(__name__)

router = APIRouter()


def _not_found(e: CallNotFoundError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.post("", response_model=CallResponse, status_code=status.HTTP_201_CREATED)
async def start_call(
    request: StartCallRequest,
    coordinator: Annotated[CallCoordinator, Depends(get_coordinator)],
) -> CallResponse:
    """Place a call to another participant."""
    try:
        call = await coordinator.start_call(request.remote_participant_id, request.call_type)
    except SignalingUnavailableError as e:
        logger.error(f"Cannot start call: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Signaling is unavailable",
        )
    return CallResponse.model_validate(call)


@router.get("/active", response_model=CallResponse)
async def get_active_call(
    coordinator: Annotated[CallCoordinator, Depends(get_coordinator)],
) -> CallResponse:
    """Get the call currently in progress."""
    call = coordinator.active_call
    if call is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No active call")
    return CallResponse.model_validate(call)


@router.get("/history", response_model=list[CallHistoryResponse])
async def list_call_history(
    services: Annotated[Services, Depends(get_services)],
    limit: int | None = Query(None, ge=1, le=200, description="Page size"),
    offset: int = Query(0, ge=0, description="Entries to skip"),
) -> list[CallHistoryResponse]:
    """List the local participant's call history, newest first."""
    entries = await services.call_history_store.list_for_participant(
        services.settings.local_participant_id, limit=limit, offset=offset
    )
    return [CallHistoryResponse.model_validate(entry) for entry in entries]


@router.delete("/history/{entry_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_call_history_entry(
    entry_id: str,
    services: Annotated[Services, Depends(get_services)],
) -> None:
    """Delete one call history entry."""
    deleted = await services.call_history_store.delete(
        entry_id, services.settings.local_participant_id
    )
    if not deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Entry not found")


@router.get("/{call_id}", response_model=CallResponse)
async def get_call(
    call_id: str,
    coordinator: Annotated[CallCoordinator, Depends(get_coordinator)],
) -> CallResponse:
    """Get a call in progress."""
    call = coordinator.get_call(call_id)
    if call is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Call not found")
    return CallResponse.model_validate(call)


@router.post("/{call_id}/answer", response_model=CallResponse)
async def answer_call(
    call_id: str,
    coordinator: Annotated[CallCoordinator, Depends(get_coordinator)],
) -> CallResponse:
    """Answer an incoming call."""
    try:
        call = await coordinator.answer_call(call_id)
    except CallNotFoundError as e:
        raise _not_found(e)
    except CallStateError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    return CallResponse.model_validate(call)


@router.post("/{call_id}/decline", response_model=CallHistoryResponse)
async def decline_call(
    call_id: str,
    coordinator: Annotated[CallCoordinator, Depends(get_coordinator)],
) -> CallHistoryResponse:
    """Decline an incoming call."""
    try:
        entry = await coordinator.decline_call(call_id)
    except CallNotFoundError as e:
        raise _not_found(e)
    except CallStateError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    return CallHistoryResponse.model_validate(entry)


@router.post("/{call_id}/end", response_model=CallHistoryResponse)
async def end_call(
    call_id: str,
    coordinator: Annotated[CallCoordinator, Depends(get_coordinator)],
    request: EndCallRequest | None = None,
) -> CallHistoryResponse:
    """Hang up a call and return its history entry."""
    override = request.override_status if request else None
    try:
        entry = await coordinator.end_call(call_id, override_status=override)
    except CallNotFoundError as e:
        raise _not_found(e)
    return CallHistoryResponse.model_validate(entry)


@router.post("/{call_id}/mute", response_model=ToggleResponse)
async def toggle_mute(
    call_id: str,
    coordinator: Annotated[CallCoordinator, Depends(get_coordinator)],
) -> ToggleResponse:
    return ToggleResponse(enabled=await coordinator.toggle_mute(call_id))


@router.post("/{call_id}/speaker", response_model=ToggleResponse)
async def toggle_speaker(
    call_id: str,
    coordinator: Annotated[CallCoordinator, Depends(get_coordinator)],
) -> ToggleResponse:
    return ToggleResponse(enabled=await coordinator.toggle_speaker(call_id))


@router.post("/{call_id}/video", response_model=ToggleResponse)
async def toggle_video(
    call_id: str,
    coordinator: Annotated[CallCoordinator, Depends(get_coordinator)],
) -> ToggleResponse:
    return ToggleResponse(enabled=await coordinator.toggle_video(call_id))


@router.post("/{call_id}/media-events", status_code=status.HTTP_202_ACCEPTED)
async def report_media_event(
    call_id: str,
    request: MediaEventRequest,
    coordinator: Annotated[CallCoordinator, Depends(get_coordinator)],
) -> dict[str, str]:
    """Report a peer-connection event for a call."""
    await coordinator.report_media_event(call_id, request.event)
    return {"status": "accepted"}


@router.post("/{call_id}/ice-candidates", status_code=status.HTTP_202_ACCEPTED)
async def send_ice_candidate(
    call_id: str,
    request: IceCandidateRequest,
    coordinator: Annotated[CallCoordinator, Depends(get_coordinator)],
) -> dict[str, bool]:
    """Relay a local ICE candidate to the remote peer."""
    try:
        sent = await coordinator.send_ice_candidate(call_id, request.candidate)
    except CallNotFoundError as e:
        raise _not_found(e)
    return {"sent": sent}
