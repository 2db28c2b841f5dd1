"""Pydantic request/response models for API endpoints."""

from pydantic import BaseModel, Field


class TurnBody(BaseModel):
    text: str = Field(min_length=1)


class CancelResult(BaseModel):
    canceled: bool


class ExchangeView(BaseModel):
    user_text: str
    assistant_text: str
    command_executed: str | None = None
    location: str
    timestamp: str


class SessionView(BaseModel):
    current_location: str
    routing_rationale: str
    visited: list[str]
    history: list[ExchangeView]
    persona: str | None = None


class TransitionStatus(BaseModel):
    state: str
    target: str | None = None
    last_error: str | None = None
