"""FastAPI dependencies resolving the service graph."""

from typing import Annotated

from fastapi import Depends, Request

from switchboard.bootstrap import Services
from switchboard.domain.services.call_coordinator import CallCoordinator
from switchboard.domain.services.delivery_pipeline import MessageDeliveryPipeline


def get_services(request: Request) -> Services:
    """Services built at startup by the application lifespan."""
    return request.app.state.services


def get_coordinator(
    services: Annotated[Services, Depends(get_services)],
) -> CallCoordinator:
    return services.coordinator


def get_pipeline(
    services: Annotated[Services, Depends(get_services)],
) -> MessageDeliveryPipeline:
    return services.pipeline
