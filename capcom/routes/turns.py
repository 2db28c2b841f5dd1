"""Turn submission and cancellation."""

from fastapi import APIRouter, Depends, HTTPException

from capcom.errors import TurnInProgressError
from capcom.models import TurnOutcome
from capcom.orchestrator import Orchestrator

from .deps import require_orchestrator
from .models import CancelResult, TurnBody

router = APIRouter()


@router.post("/turns", response_model=TurnOutcome)
async def submit_turn(body: TurnBody, orchestrator: Orchestrator = Depends(require_orchestrator)):
    """Run one conversational turn and return its outcome."""
    try:
        return await orchestrator.submit(body.text)
    except TurnInProgressError as e:
        raise HTTPException(409, str(e)) from e


@router.post("/turns/cancel", response_model=CancelResult)
async def cancel_turn(orchestrator: Orchestrator = Depends(require_orchestrator)):
    """Cancel the turn in flight, if any."""
    return CancelResult(canceled=orchestrator.cancel())
