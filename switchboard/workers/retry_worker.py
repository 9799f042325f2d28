"""Retry worker for flushing the message retry queue on demand."""

import logging
from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, status

from switchboard.api.deps import get_pipeline
from switchboard.domain.services.delivery_pipeline import MessageDeliveryPipeline

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/retry-flush")
async def flush_retry_queue(
    pipeline: Annotated[MessageDeliveryPipeline, Depends(get_pipeline)],
) -> dict[str, Any]:
    """Attempt every due retry entry now.

    Called by a scheduler (cron, Cloud Tasks) as a backstop for the in-process
    timers, e.g. after the process was suspended.

    Returns:
        Processing result
    """
    try:
        attempted = await pipeline.flush()
        status_info = await pipeline.connection_status()
    except Exception as e:
        logger.error(f"Error flushing retry queue: {e}", exc_info=True)
        # Return error so the scheduler can retry
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Retry flush failed: {str(e)}",
        )

    logger.info(f"Retry flush attempted {attempted} messages")
    return {
        "status": "success",
        "attempted": attempted,
        "queued_messages": status_info["queued_messages"],
    }
