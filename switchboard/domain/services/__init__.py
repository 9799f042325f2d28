"""Domain services."""

from switchboard.domain.services.call_coordinator import CallCoordinator
from switchboard.domain.services.call_session import CallSession
from switchboard.domain.services.delivery_pipeline import MessageDeliveryPipeline
from switchboard.domain.services.retry_policy import RetryPolicy

__all__ = ["CallCoordinator", "CallSession", "MessageDeliveryPipeline", "RetryPolicy"]
