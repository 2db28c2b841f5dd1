"""Health check and command catalog endpoints."""

from fastapi import APIRouter, Depends, HTTPException

from capcom.runtime import Simulation

from .deps import get_simulation

router = APIRouter()


@router.get("/health")
async def health(sim: Simulation = Depends(get_simulation)):
    """Health check. Reports whether turns can be accepted."""
    return {"status": "ok", "ready": sim.ready, "error": sim.load_error}


@router.get("/commands")
async def list_commands(sim: Simulation = Depends(get_simulation)):
    """The loaded command catalog, its presets, and the prompt summary."""
    if sim.registry is None:
        raise HTTPException(503, f"Command catalog unavailable: {sim.load_error}")
    return {
        "commands": [c.model_dump() for c in sim.registry.all()],
        "presets": [p.model_dump() for p in sim.registry.presets()],
        "summary": sim.registry.describe_for_prompt(),
    }
