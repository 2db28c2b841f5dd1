"""Request-scoped access to the running Simulation."""

from fastapi import HTTPException, Request

from capcom.orchestrator import Orchestrator
from capcom.runtime import Simulation


def get_simulation(request: Request) -> Simulation:
    return request.app.state.simulation


def require_orchestrator(request: Request) -> Orchestrator:
    """The orchestrator, or 503 when the command catalog failed to load."""
    sim = get_simulation(request)
    if sim.orchestrator is None:
        raise HTTPException(503, f"Command catalog unavailable: {sim.load_error}")
    return sim.orchestrator
