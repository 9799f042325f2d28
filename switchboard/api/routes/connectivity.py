"""Connectivity API endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends

from switchboard.api.deps import get_services
from switchboard.api.schemas.message import ConnectionStatusResponse, ConnectivityUpdate
from switchboard.bootstrap import Services

router = APIRouter()


@router.get("", response_model=ConnectionStatusResponse)
async def get_connection_status(
    services: Annotated[Services, Depends(get_services)],
) -> ConnectionStatusResponse:
    """Online state and number of messages waiting for delivery."""
    return ConnectionStatusResponse(**await services.pipeline.connection_status())


@router.put("", response_model=ConnectionStatusResponse)
async def report_connectivity(
    update: ConnectivityUpdate,
    services: Annotated[Services, Depends(get_services)],
) -> ConnectionStatusResponse:
    """Report network or backend reachability; coming online flushes the queue."""
    if update.network_online is not None:
        services.connectivity.set_network_online(update.network_online)
    if update.backend_connected is not None:
        services.connectivity.set_backend_connected(update.backend_connected)
    return ConnectionStatusResponse(**await services.pipeline.connection_status())
