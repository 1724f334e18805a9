"""Error taxonomy for the Config Engine.

Builder, loader and parser errors are local and raised synchronously.
Executor errors are attached to ``ExecuteResult.error`` together with the
transcript collected up to the failure.
"""
from typing import Optional


class EngineError(Exception):
    """Base class for all engine errors."""

    kind = "engine"
    user_message = "Configuration engine error"

    def __init__(self, message: str, transcript: str = ""):
        super().__init__(message)
        self.transcript = transcript


# --- Local (caller-correctable) errors ---

class BuildError(EngineError, ValueError):
    """Model is structurally malformed and cannot be turned into statements."""

    kind = "build"
    user_message = "Invalid configuration model"

    def __init__(self, field: str, message: str):
        super().__init__(f"{field}: {message}")
        self.field = field


class ParseError(EngineError, ValueError):
    """Configuration text could not be parsed under the selected policy."""

    kind = "parse"
    user_message = "Failed to parse device configuration"


class ModelLoadError(EngineError, ValueError):
    """A dict/YAML document could not be converted into a model."""

    kind = "load"
    user_message = "Invalid configuration document"


# --- Executor errors ---

class TransportError(EngineError):
    """Connection, authentication or channel failure."""

    kind = "transport"
    user_message = "Could not talk to the device"


class SessionTimeout(TransportError):
    """The session exceeded its time budget."""

    kind = "timeout"
    user_message = "Device did not respond in time; change reverted"


class CommandError(EngineError):
    """An error marker appeared in the response to a statement."""

    kind = "command"
    user_message = "Change rejected and reverted"

    def __init__(self, message: str, statement: str = "", transcript: str = ""):
        super().__init__(message, transcript)
        self.statement = statement


class CommitError(CommandError):
    """A commit-failure marker appeared after the commit statement."""

    kind = "commit"
    user_message = "Change rejected and reverted"


class ExecutionCancelled(EngineError):
    """The caller cancelled the execution before it closed."""

    kind = "cancelled"
    user_message = "Change cancelled and reverted"


class RollbackError(EngineError):
    """The compensating rollback itself failed.

    Device state is unknown; no further automated recovery is attempted.
    """

    kind = "rollback"
    user_message = "Change may be partially applied - verify device manually"

    def __init__(
        self,
        original: EngineError,
        rollback_cause: Optional[Exception],
        transcript: str = "",
    ):
        super().__init__(
            f"Rollback failed after {original.kind} error: {original}; "
            f"rollback cause: {rollback_cause}",
            transcript,
        )
        self.original = original
        self.rollback_cause = rollback_cause
