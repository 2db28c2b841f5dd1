"""Command validation and dispatch.

Validation walks the schema's declared parameters:

  - a required parameter that is absent fails with a named-field error;
  - a present parameter must match its declared type;
  - numbers are range-checked against min/max (both inclusive);
  - strings with declared choices must be one of them.

Unknown supplied keys are ignored. `execute` re-validates, fills defaults,
and calls the single handler bound to the command id. Every failure, including
an exception raised inside a handler, comes back as a CommandResult with
succeeded=False; nothing is thrown past this module.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Mapping
from typing import Any

from capcom.errors import (
    CommandNotImplementedError,
    CommandValidationError,
    UnknownCommandError,
)
from capcom.handlers import HANDLERS, Handler, HandlerContext
from capcom.models import CommandParameter, CommandResult, CommandSchema, Environment
from capcom.physics import PhysicalModel
from capcom.registry import CommandRegistry

logger = logging.getLogger(__name__)


class CommandDispatcher:
    """Validates arguments against the registry and runs the bound handler.

    Handlers are bound at construction by each schema's `handler` routing
    key. Declared commands with no bound handler are reported immediately;
    with strict=True they abort construction instead.
    """

    def __init__(
        self,
        registry: CommandRegistry,
        model: PhysicalModel | None = None,
        handlers: Mapping[str, Handler] = HANDLERS,
        strict: bool = False,
    ) -> None:
        self._registry = registry
        self._model = model
        self._bound: dict[str, Handler] = {}
        self.unbound: list[str] = []

        for schema in registry.all():
            handler = handlers.get(schema.handler or schema.id)
            if handler is None:
                self.unbound.append(schema.id)
                logger.error(
                    "Command %r is declared but has no handler %r", schema.id, schema.handler
                )
            else:
                self._bound[schema.id] = handler

        if strict and self.unbound:
            raise CommandNotImplementedError(
                f"No handler bound for: {', '.join(self.unbound)}"
            )

    @property
    def registry(self) -> CommandRegistry:
        return self._registry

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate(self, command_id: str | None, arguments: Mapping[str, Any] | None) -> tuple[bool, str | None]:
        """Return (ok, error_message) without running anything."""
        try:
            self.check(command_id, arguments)
        except CommandValidationError as e:
            return False, str(e)
        return True, None

    def check(self, command_id: str | None, arguments: Mapping[str, Any] | None) -> CommandSchema:
        """Raise CommandValidationError (or a subclass) if the call is invalid."""
        schema = self._registry.get(command_id)
        if schema is None:
            raise UnknownCommandError(f"Unknown command: {command_id}")
        if arguments is None:
            arguments = {}
        if not isinstance(arguments, Mapping):
            raise CommandValidationError(
                f"Arguments for {command_id} must be an object, got {type(arguments).__name__}"
            )

        for param in schema.parameters:
            if param.name not in arguments:
                if param.required:
                    raise CommandValidationError(f"Missing required parameter: {param.name}")
                continue
            _check_value(param, arguments[param.name])
        return schema

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def execute(
        self,
        command_id: str | None,
        arguments: Mapping[str, Any] | None = None,
        *,
        location: str = Environment.HUB.value,
    ) -> CommandResult:
        """Validate and run a command. Never raises."""
        result_id = command_id or "<none>"
        try:
            schema = self.check(command_id, arguments)
        except CommandValidationError as e:
            logger.warning("Validation failed for %s: %s", result_id, e)
            return CommandResult.failure(result_id, str(e))
        except Exception as e:
            logger.exception("Validation of %s raised", result_id)
            return CommandResult.failure(result_id, f"Invalid arguments: {e}")

        handler = self._bound.get(schema.id)
        if handler is None:
            message = f"Command {schema.id} is defined but not implemented"
            logger.error(message)
            return CommandResult.failure(schema.id, message)

        args = _with_defaults(schema, arguments or {})
        ctx = HandlerContext(model=self._model, current_location=location)
        try:
            outcome = handler(args, ctx)
        except Exception as e:
            logger.exception("Handler for %s raised", schema.id)
            return CommandResult.failure(schema.id, f"Execution error: {e}")

        if not outcome.ok:
            logger.warning("Command %s failed: %s", schema.id, outcome.reason)
            return CommandResult.failure(schema.id, outcome.reason or "Command failed")

        target = outcome.transition_target
        if target is not None and not isinstance(target, Environment):
            logger.error("Handler for %s named unknown environment %r", schema.id, target)
            return CommandResult.failure(schema.id, f"Unknown environment: {target}")

        logger.info("Executed %s: %s", schema.id, outcome.reason)
        return CommandResult(
            command_id=schema.id,
            succeeded=True,
            message=outcome.reason,
            narration_facts=outcome.facts,
            requires_transition=target is not None,
            transition_target=target,
            routing_rationale=outcome.routing_rationale,
        )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _check_value(param: CommandParameter, value: Any) -> None:
    if param.type == "number":
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise CommandValidationError(f"Parameter {param.name} must be numeric")
        try:
            number = float(value)
        except OverflowError:
            raise CommandValidationError(f"Parameter {param.name} must be a finite number") from None
        if not math.isfinite(number):
            raise CommandValidationError(f"Parameter {param.name} must be a finite number")
        if param.min is not None and number < param.min:
            raise CommandValidationError(
                f"Parameter {param.name} ({number:g}) is below minimum ({param.min:g})"
            )
        if param.max is not None and number > param.max:
            raise CommandValidationError(
                f"Parameter {param.name} ({number:g}) exceeds maximum ({param.max:g})"
            )

    elif param.type == "boolean":
        if not isinstance(value, bool):
            raise CommandValidationError(f"Parameter {param.name} must be true or false")

    elif param.type == "string":
        if not isinstance(value, str):
            raise CommandValidationError(f"Parameter {param.name} must be a string")
        if param.choices and value not in param.choices:
            raise CommandValidationError(
                f"Parameter {param.name} must be one of {', '.join(param.choices)} (got {value!r})"
            )


def _with_defaults(schema: CommandSchema, arguments: Mapping[str, Any]) -> dict[str, Any]:
    args = dict(arguments)
    for param in schema.parameters:
        if param.name not in args and param.default is not None:
            args[param.name] = param.default
    return args
