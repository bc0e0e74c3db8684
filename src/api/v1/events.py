"""
Events Endpoint - Inbound messaging events

POST /api/v1/events - Hand an inbound message to the intake controller.
The transport calls this for every message it receives; the response
tells it what happened, and any user-visible reply goes out through the
delivery webhook.
"""

from fastapi import APIRouter, Depends, status

from src.api.dependencies import get_intake_controller
from src.core.logging import get_logger
from src.modules.stickers.models import InboundEvent, IntakeResponse
from src.services.intake import IntakeController

logger = get_logger(__name__)
router = APIRouter()


@router.post("", response_model=IntakeResponse, status_code=status.HTTP_202_ACCEPTED)
def receive_event(
    event: InboundEvent,
    intake: IntakeController = Depends(get_intake_controller)
):
    # Sync handler: FastAPI runs it in the threadpool (intake does blocking I/O)
    outcome = intake.handle(event)
    return IntakeResponse(event_id=event.event_id, outcome=outcome)
