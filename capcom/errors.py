"""Error taxonomy.

Validation and dispatch errors never escape the dispatcher; they are turned
into CommandResult fields. Service errors are caught by the orchestrator at
each stage and replaced by a local fallback. Transition errors are contained
inside the transition state machine.
"""


class CapcomError(Exception):
    """Base class for all errors raised by this package."""


class SchemaLoadError(CapcomError):
    """The command catalog is missing, unreadable, or holds no usable command."""


class CommandValidationError(CapcomError):
    """Supplied arguments do not satisfy a command's declared parameters."""


class UnknownCommandError(CommandValidationError):
    """The requested command id is not in the registry."""


class CommandNotImplementedError(CommandValidationError):
    """The registry declares a command that has no bound handler."""


class CompletionServiceError(CapcomError):
    """The language-completion backend could not be reached or returned an error."""


class SynthesisServiceError(CapcomError):
    """The speech-synthesis backend could not be reached or returned an error."""


class TransitionLoadError(CapcomError):
    """Loading or activating a target environment failed or timed out."""


class TurnInProgressError(CapcomError):
    """A turn was submitted while another turn is still in flight."""
