"""Conversation memory shared across environments.

One SessionState lives for the whole process. The orchestrator is its only
writer; environments read it on arrival to brief their specialist.
"""

from __future__ import annotations

import logging
from collections import deque

from capcom.models import Environment, Exchange

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 10
SPECIALIST_SNIPPET_CHARS = 100


class SessionState:
    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self.current_location: str = Environment.HUB.value
        self.routing_rationale: str = ""
        self.previous_location: str | None = None
        self.visited: set[str] = set()
        self.pending_route: tuple[str, str] | None = None  # (destination, reason)
        self._history: deque[Exchange] = deque(maxlen=capacity)

    # ------------------------------------------------------------------
    # Mutation (orchestrator only)
    # ------------------------------------------------------------------

    def add_exchange(
        self,
        user_text: str,
        assistant_text: str,
        command_executed: str | None = None,
    ) -> Exchange:
        exchange = Exchange(
            user_text=user_text,
            assistant_text=assistant_text,
            command_executed=command_executed,
            location=self.current_location,
        )
        self._history.append(exchange)
        logger.debug(
            "Recorded exchange at %s (command=%s, history=%d)",
            exchange.location, command_executed, len(self._history),
        )
        return exchange

    def set_routing_context(self, destination: str, reason: str) -> None:
        self.routing_rationale = reason
        self.previous_location = self.current_location
        self.current_location = destination
        if destination != Environment.HUB.value:
            self.visited.add(destination)
        logger.info("Routing context: -> %s (%s)", destination, reason)

    def begin_routing(self, destination: str, reason: str) -> None:
        """Remember an accepted transition. Nothing moves until `arrive`."""
        self.pending_route = (destination, reason)

    def arrive(self, destination: str) -> bool:
        """Apply the pending route once its environment is active."""
        if self.pending_route is None or self.pending_route[0] != destination:
            return False
        _, reason = self.pending_route
        self.pending_route = None
        self.set_routing_context(destination, reason)
        return True

    def abandon_routing(self) -> None:
        """Drop a pending route whose transition never activated its target."""
        if self.pending_route is not None:
            logger.warning("Route to %s abandoned, staying at %s", self.pending_route[0], self.current_location)
            self.pending_route = None

    def clear(self) -> None:
        """Operator reset: forget everything and return to the Hub."""
        self._history.clear()
        self.current_location = Environment.HUB.value
        self.routing_rationale = ""
        self.previous_location = None
        self.visited.clear()
        self.pending_route = None
        logger.info("Session state cleared")

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @property
    def history(self) -> list[Exchange]:
        return list(self._history)

    @property
    def exchange_count(self) -> int:
        return len(self._history)

    @property
    def last_user_message(self) -> str:
        return self._history[-1].user_text if self._history else ""

    def has_visited(self, environment: str) -> bool:
        return environment in self.visited

    def recent(self, count: int) -> list[Exchange]:
        if count <= 0:
            return []
        return list(self._history)[-count:]

    def formatted_history(self, count: int = 5) -> str:
        lines = []
        for ex in self.recent(count):
            lines.append(f"[{ex.location}] User: {ex.user_text}")
            lines.append(f"[{ex.location}] Assistant: {ex.assistant_text}")
        return "\n".join(lines)

    def context_summary(self, count: int = 3) -> str:
        """Condensed recent history used when classifying a new message."""
        recent = self.recent(count)
        if not recent:
            return ""
        lines = ["Recent conversation:"]
        for ex in recent:
            line = f"- User: {ex.user_text}"
            if ex.command_executed:
                line += f" (executed {ex.command_executed})"
            lines.append(line)
        return "\n".join(lines)

    def context_for_specialist(self) -> str:
        parts = []
        if self.routing_rationale:
            parts.append(f"User was routed here because: {self.routing_rationale}")
        recent = self.recent(3)
        if recent:
            parts.append("Recent conversation:")
            for ex in recent:
                parts.append(f"- User: {_truncate(ex.user_text)}")
                parts.append(f"- Assistant: {_truncate(ex.assistant_text)}")
        return "\n".join(parts)

    def context_for_mission_control(self) -> str:
        if not self.visited:
            return "The user has not visited any mission spaces yet."
        return "Mission spaces visited this session: " + ", ".join(sorted(self.visited))

    def return_context(self) -> str:
        """Briefing for Mission Control once the user is back at the Hub."""
        if self.current_location != Environment.HUB.value:
            return ""
        if not self.previous_location or self.previous_location == Environment.HUB.value:
            return ""
        return f"The user has returned from the {self.previous_location} mission space."


def _truncate(text: str, limit: int = SPECIALIST_SNIPPET_CHARS) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + "..."
