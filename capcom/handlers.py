"""Concrete command handlers, one per executable command id.

Each handler receives arguments that the dispatcher has already validated
and default-filled, plus a HandlerContext giving it the physical model and
the user's current location. Handlers never start environment transitions;
routing handlers only name a target and a rationale, which the orchestrator
acts on after narration playback.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from capcom.models import MISSIONS, Environment
from capcom.physics import PhysicalModel, eccentricity


MODEL_UNAVAILABLE = "The orbit control system is not available."
CLOCK_UNAVAILABLE = "The simulation clock is not available."


@dataclass
class HandlerContext:
    model: PhysicalModel | None
    current_location: str = Environment.HUB.value


@dataclass
class HandlerOutcome:
    ok: bool
    reason: str = ""
    facts: dict[str, Any] = field(default_factory=dict)
    transition_target: Environment | None = None
    routing_rationale: str = ""

    @classmethod
    def fail(cls, reason: str) -> HandlerOutcome:
        return cls(ok=False, reason=reason)


Handler = Callable[[dict[str, Any], HandlerContext], HandlerOutcome]


# ---------------------------------------------------------------------------
# Orbit commands
# ---------------------------------------------------------------------------

def create_circular_orbit(args: dict[str, Any], ctx: HandlerContext) -> HandlerOutcome:
    if ctx.model is None:
        return HandlerOutcome.fail(MODEL_UNAVAILABLE)

    altitude = float(args["altitude_km"])
    inclination = float(args.get("inclination_deg") or 0.0)
    update = ctx.model.orbit.create_circular_orbit(altitude, inclination)
    return HandlerOutcome(
        ok=update.updated,
        reason=update.reason,
        facts={
            "orbit_type": "circular",
            "altitude_km": update.altitude_km if update.altitude_km is not None else altitude,
            "inclination_deg": inclination,
            "orbital_velocity_kmps": round(update.speed_kmps or 0.0, 2),
        },
    )


def create_elliptical_orbit(args: dict[str, Any], ctx: HandlerContext) -> HandlerOutcome:
    if ctx.model is None:
        return HandlerOutcome.fail(MODEL_UNAVAILABLE)

    periapsis = float(args["periapsis_km"])
    apoapsis = float(args["apoapsis_km"])
    inclination = float(args.get("inclination_deg") or 0.0)
    if periapsis >= apoapsis:
        return HandlerOutcome.fail(
            f"Periapsis ({periapsis:g}km) must be less than apoapsis ({apoapsis:g}km)"
        )

    update = ctx.model.orbit.create_elliptical_orbit(periapsis, apoapsis, inclination)
    return HandlerOutcome(
        ok=update.updated,
        reason=update.reason,
        facts={
            "orbit_type": "elliptical",
            "periapsis_km": periapsis,
            "apoapsis_km": apoapsis,
            "inclination_deg": inclination,
            "eccentricity": round(eccentricity(periapsis, apoapsis), 3),
            "orbital_velocity_kmps": round(update.speed_kmps or 0.0, 2),
        },
    )


def clear_orbit(args: dict[str, Any], ctx: HandlerContext) -> HandlerOutcome:
    if ctx.model is None:
        return HandlerOutcome.fail(MODEL_UNAVAILABLE)

    update = ctx.model.orbit.clear_orbit()
    return HandlerOutcome(
        ok=update.updated,
        reason=update.reason,
        facts={"workspace_status": "cleared", "ready_for_new_orbit": True},
    )


# ---------------------------------------------------------------------------
# Time control
# ---------------------------------------------------------------------------

def set_simulation_speed(args: dict[str, Any], ctx: HandlerContext) -> HandlerOutcome:
    if ctx.model is None:
        return HandlerOutcome.fail(CLOCK_UNAVAILABLE)

    clock = ctx.model.clock
    speed = clock.set_speed(float(args["speed_multiplier"]))
    return HandlerOutcome(
        ok=True,
        reason=f"Simulation speed set to {speed:g}x (Time acceleration: {clock.speed_description()})",
        facts={
            "speed_multiplier": speed,
            "speed_description": clock.speed_description(),
            "is_paused": clock.paused,
        },
    )


def pause_simulation(args: dict[str, Any], ctx: HandlerContext) -> HandlerOutcome:
    if ctx.model is None:
        return HandlerOutcome.fail(CLOCK_UNAVAILABLE)

    clock = ctx.model.clock
    if args["pause"]:
        clock.pause()
        reason = "Simulation PAUSED - Time is frozen"
    else:
        clock.resume()
        reason = f"Simulation RESUMED at {clock.speed:g}x speed"
    return HandlerOutcome(
        ok=True,
        reason=reason,
        facts={
            "is_paused": clock.paused,
            "current_speed": clock.speed,
            "simulation_time": clock.formatted_time(),
        },
    )


def reset_simulation_time(args: dict[str, Any], ctx: HandlerContext) -> HandlerOutcome:
    if ctx.model is None:
        return HandlerOutcome.fail(CLOCK_UNAVAILABLE)

    clock = ctx.model.clock
    clock.reset()
    return HandlerOutcome(
        ok=True,
        reason="Mission clock reset to 00:00:00",
        facts={
            "simulation_time": clock.formatted_time(),
            "is_paused": clock.paused,
            "current_speed": clock.speed,
        },
    )


# ---------------------------------------------------------------------------
# Routing
# ---------------------------------------------------------------------------

def route_to_mission(args: dict[str, Any], ctx: HandlerContext) -> HandlerOutcome:
    mission = Environment.parse(args.get("mission", ""))
    if mission not in MISSIONS:
        valid = ", ".join(m.value for m in MISSIONS)
        return HandlerOutcome.fail(f"Unknown mission: {args.get('mission')}. Valid missions: {valid}")

    rationale = str(args.get("context_for_specialist", "")).strip()
    return HandlerOutcome(
        ok=True,
        reason=f"Routing to {mission.value} Mission Space...",
        facts={"mission": mission.value, "context": rationale},
        transition_target=mission,
        routing_rationale=rationale,
    )


def return_to_hub(args: dict[str, Any], ctx: HandlerContext) -> HandlerOutcome:
    departing = ctx.current_location or "mission space"
    return HandlerOutcome(
        ok=True,
        reason="Returning to Mission Control Hub...",
        facts={"departing_from": departing},
        transition_target=Environment.HUB,
        routing_rationale=f"Returning from {departing}",
    )


HANDLERS: dict[str, Handler] = {
    "create_circular_orbit": create_circular_orbit,
    "create_elliptical_orbit": create_elliptical_orbit,
    "clear_orbit": clear_orbit,
    "set_simulation_speed": set_simulation_speed,
    "pause_simulation": pause_simulation,
    "reset_simulation_time": reset_simulation_time,
    "route_to_mission": route_to_mission,
    "return_to_hub": return_to_hub,
}
