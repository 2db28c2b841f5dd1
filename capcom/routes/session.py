"""Session state, operator reset, and transition status."""

from fastapi import APIRouter, Depends

from capcom.runtime import Simulation

from .deps import get_simulation
from .models import ExchangeView, SessionView, TransitionStatus

router = APIRouter()


def _session_view(sim: Simulation) -> SessionView:
    session = sim.session
    return SessionView(
        current_location=session.current_location,
        routing_rationale=session.routing_rationale,
        visited=sorted(session.visited),
        history=[
            ExchangeView(
                user_text=ex.user_text,
                assistant_text=ex.assistant_text,
                command_executed=ex.command_executed,
                location=ex.location,
                timestamp=ex.timestamp.isoformat(),
            )
            for ex in session.history
        ],
        persona=sim.orchestrator.persona if sim.orchestrator else None,
    )


@router.get("/session", response_model=SessionView)
async def get_session(sim: Simulation = Depends(get_simulation)):
    """Current location, routing rationale, visited missions, and history."""
    return _session_view(sim)


@router.post("/session/reset", response_model=SessionView)
async def reset_session(sim: Simulation = Depends(get_simulation)):
    """Operator reset: clear history, orbit and clock, back to Mission Control."""
    sim.reset()
    return _session_view(sim)


@router.get("/transition", response_model=TransitionStatus)
async def get_transition(sim: Simulation = Depends(get_simulation)):
    """Current transition phase and target."""
    machine = sim.transitions
    return TransitionStatus(
        state=machine.state.value,
        target=machine.target.value if machine.target else None,
        last_error=str(machine.last_error) if machine.last_error else None,
    )
