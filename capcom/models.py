"""Core domain models.

All pipeline stages operate on these types. Pydantic is used for validation
and serialisation at every data boundary; schema records are frozen once
loaded.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

ParameterType = Literal["number", "boolean", "string"]


class Environment(str, Enum):
    """Every environment the transition state machine can move the user to."""

    HUB = "Hub"
    ISS = "ISS"
    GPS = "GPS"
    VOYAGER = "Voyager"
    HUBBLE = "Hubble"

    @classmethod
    def parse(cls, value: str) -> Environment | None:
        """Case-insensitive lookup; returns None for unknown names."""
        for env in cls:
            if env.value.lower() == str(value).strip().lower():
                return env
        return None


MISSIONS: tuple[Environment, ...] = (
    Environment.ISS,
    Environment.GPS,
    Environment.VOYAGER,
    Environment.HUBBLE,
)


class TransitionPhase(str, Enum):
    IDLE = "idle"
    FADING_OUT = "fading_out"
    SHOWING_MARKER = "showing_marker"
    LOADING_TARGET = "loading_target"
    FADING_IN = "fading_in"


# ---------------------------------------------------------------------------
# Command catalog
# ---------------------------------------------------------------------------

class CommandParameter(BaseModel):
    """One declared parameter of a command."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str
    type: ParameterType
    description: str = ""
    required: bool = False
    min: float | None = None
    max: float | None = None
    choices: tuple[str, ...] | None = None  # string parameters only
    default: Any = None


class CommandSchema(BaseModel):
    """A command the orchestrator can dispatch. Immutable once loaded."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    display_name: str
    description: str = ""
    parameters: tuple[CommandParameter, ...] = ()
    # Routing metadata: which specialist team owns it and which handler runs it
    specialist_persona: str = ""
    specialist_team: str = ""
    handler: str = ""

    def parameter(self, name: str) -> CommandParameter | None:
        for param in self.parameters:
            if param.name == name:
                return param
        return None


class CommandPreset(BaseModel):
    """A named bundle of pre-filled arguments, e.g. the ISS orbit."""

    model_config = ConfigDict(frozen=True)

    name: str
    command: str
    arguments: dict[str, Any] = Field(default_factory=dict)
    description: str = ""


# ---------------------------------------------------------------------------
# Per-turn records
# ---------------------------------------------------------------------------

class CommandCall(BaseModel):
    """Structured intent extracted from one user message."""

    intent: Literal["execute", "none"] = "none"
    command_id: str | None = None
    arguments: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def no_action(cls) -> CommandCall:
        return cls(intent="none")


class CommandResult(BaseModel):
    """Outcome of one dispatch, consumed by narration and the transition trigger."""

    command_id: str
    succeeded: bool
    error_message: str | None = None
    message: str = ""  # handler's own one-line account of what happened
    narration_facts: dict[str, Any] = Field(default_factory=dict)
    requires_transition: bool = False
    transition_target: Environment | None = None
    routing_rationale: str = ""  # briefs the destination's specialist

    @classmethod
    def failure(cls, command_id: str, error_message: str) -> CommandResult:
        return cls(command_id=command_id, succeeded=False, error_message=error_message)


class Exchange(BaseModel):
    """One recorded user/assistant exchange in the session history."""

    user_text: str
    assistant_text: str
    command_executed: str | None = None
    location: str
    timestamp: datetime = Field(default_factory=datetime.now)


TurnStatus = Literal["completed", "canceled"]


class TurnOutcome(BaseModel):
    """What a finished (or canceled) turn reports back to the UI."""

    status: TurnStatus
    user_text: str
    narration: str = ""
    spoken: bool = False
    call: CommandCall | None = None
    result: CommandResult | None = None
    transition_started: bool = False
