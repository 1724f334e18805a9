"""Executor for applying command batches to devices.

Drives one interactive shell per batch through a prompt-synchronized
protocol: each statement is written only after the CLI prompt reappears,
and the output collected in between is scanned for error markers. Any
failure (transport, timeout, error marker, cancellation) triggers a
compensating ``rollback 0`` over a fresh channel, unless the batch opts
out with ``compensate=False``.

Session states::

    IDLE -> SHELL_STARTING -> AWAITING_PROMPT <-> (SENDING -> COLLECTING) -> CLOSED
    any non-terminal state -> FAILED -> ROLLING_BACK -> CLOSED | FAILED_FATAL
"""
import asyncio
import logging
import re
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from dataclasses import dataclass
from enum import Enum
from typing import AsyncIterator, Awaitable, Callable, Optional

from ..devices.base import ShellChannel
from ..utils.audit_log import record_execution
from ..utils.logging_config import timed_section
from .errors import (
    CommandError,
    CommitError,
    EngineError,
    ExecutionCancelled,
    RollbackError,
    SessionTimeout,
    TransportError,
)
from .sanitizer import mask_secrets
from .schema import COMMIT, COMMIT_CONFIRM, ROLLBACK_SEQUENCE, CommandBatch, ExecuteResult

logger = logging.getLogger(__name__)

OpenChannel = Callable[[], Awaitable[ShellChannel]]


# Markers the device prints when a statement is rejected
DEFAULT_ERROR_MARKERS = (
    "Error:",
    "Invalid",
    "Failed",
    "Configuration path:",
    "No commit confirmation pending",
)
DEFAULT_ERROR_PATTERNS = (
    r"\[.*\]\s*ERROR",
)

# Markers the device prints when a commit does not go through
DEFAULT_COMMIT_MARKERS = (
    "Commit failed",
    "Configuration commit aborted",
    "Pre-commit check failed",
    "Error: Configuration path",
    "Validation failed",
)

# Operational ($) and configuration (#) mode prompts
DEFAULT_PROMPT_PATTERN = r"[$#]\s*$"


class SessionState(str, Enum):
    """States of one execution session."""
    IDLE = "idle"
    SHELL_STARTING = "shell_starting"
    AWAITING_PROMPT = "awaiting_prompt"
    SENDING = "sending"
    COLLECTING = "collecting"
    CLOSED = "closed"
    FAILED = "failed"
    ROLLING_BACK = "rolling_back"
    FAILED_FATAL = "failed_fatal"


TRANSITIONS: dict[SessionState, frozenset[SessionState]] = {
    SessionState.IDLE: frozenset({SessionState.SHELL_STARTING, SessionState.FAILED}),
    SessionState.SHELL_STARTING: frozenset({SessionState.AWAITING_PROMPT, SessionState.FAILED}),
    SessionState.AWAITING_PROMPT: frozenset({
        SessionState.SENDING, SessionState.CLOSED, SessionState.FAILED,
    }),
    SessionState.SENDING: frozenset({SessionState.COLLECTING, SessionState.FAILED}),
    SessionState.COLLECTING: frozenset({SessionState.AWAITING_PROMPT, SessionState.FAILED}),
    # FAILED -> CLOSED when nothing was sent, so there is nothing to undo
    SessionState.FAILED: frozenset({SessionState.ROLLING_BACK, SessionState.CLOSED}),
    SessionState.ROLLING_BACK: frozenset({SessionState.CLOSED, SessionState.FAILED_FATAL}),
    SessionState.CLOSED: frozenset(),
    SessionState.FAILED_FATAL: frozenset(),
}

TERMINAL_STATES = frozenset({SessionState.CLOSED, SessionState.FAILED_FATAL})


@dataclass
class ExecutorSettings:
    """Tunables for the executor, overridable from the inventory ``engine:`` block."""
    rollback_timeout_ms: int = 30_000
    poll_interval: float = 0.05
    prompt_pattern: str = DEFAULT_PROMPT_PATTERN
    error_markers: tuple[str, ...] = DEFAULT_ERROR_MARKERS
    error_patterns: tuple[str, ...] = DEFAULT_ERROR_PATTERNS
    commit_markers: tuple[str, ...] = DEFAULT_COMMIT_MARKERS

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "ExecutorSettings":
        """Build settings from a config mapping, ignoring unknown keys."""
        settings = cls()
        for key, value in (data or {}).items():
            if not hasattr(settings, key):
                logger.warning(f"Ignoring unknown engine setting: {key}")
                continue
            if isinstance(value, list):
                value = tuple(value)
            setattr(settings, key, value)
        return settings


# --- Detection ---

class PromptDetector:
    """Recognize the CLI prompt at the end of accumulated output."""

    def __init__(self, pattern: str = DEFAULT_PROMPT_PATTERN):
        self._pattern = re.compile(pattern)

    def found(self, buffer: str) -> bool:
        return bool(self._pattern.search(buffer))


class ErrorDetector(ABC):
    """Decide whether a statement's response reports a failure."""

    @abstractmethod
    def find_error(self, output: str) -> Optional[str]:
        """Return the offending line if ``output`` contains an error marker."""

    @abstractmethod
    def find_commit_failure(self, output: str) -> Optional[str]:
        """Return the offending line if ``output`` reports a failed commit."""


class MarkerErrorDetector(ErrorDetector):
    """Substring and regex marker matching over free-form output.

    Matching is a heuristic: a user value that happens to contain a marker
    will be reported as an error. The echoed statement line is never passed
    in, so the values a statement itself carries do not trigger it.
    """

    def __init__(
        self,
        error_markers: tuple[str, ...] = DEFAULT_ERROR_MARKERS,
        commit_markers: tuple[str, ...] = DEFAULT_COMMIT_MARKERS,
        error_patterns: tuple[str, ...] = DEFAULT_ERROR_PATTERNS,
    ):
        self.error_markers = tuple(error_markers)
        self.commit_markers = tuple(commit_markers)
        self.error_patterns = tuple(re.compile(p) for p in error_patterns)

    @classmethod
    def from_settings(cls, settings: ExecutorSettings) -> "MarkerErrorDetector":
        return cls(settings.error_markers, settings.commit_markers, settings.error_patterns)

    def find_error(self, output: str) -> Optional[str]:
        for line in output.splitlines():
            if any(marker in line for marker in self.error_markers):
                return line.strip()
            if any(pattern.search(line) for pattern in self.error_patterns):
                return line.strip()
        return None

    def find_commit_failure(self, output: str) -> Optional[str]:
        for line in output.splitlines():
            if any(marker in line for marker in self.commit_markers):
                return line.strip()
        return None


# --- Per-device serialization ---

class DeviceLockTable:
    """Keyed lock table: at most one session per device id at a time.

    An entry is dropped once no session holds or waits for its device.
    """

    def __init__(self):
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    def get(self, device_id: str) -> asyncio.Lock:
        if device_id not in self._locks:
            self._locks[device_id] = asyncio.Lock()
        return self._locks[device_id]

    def locked(self, device_id: str) -> bool:
        lock = self._locks.get(device_id)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def hold(self, device_id: str) -> AsyncIterator[None]:
        lock = self.get(device_id)
        self._users[device_id] = self._users.get(device_id, 0) + 1
        try:
            if lock.locked():
                logger.info(f"Waiting for running session on {device_id}")
            async with lock:
                yield
        finally:
            self._users[device_id] -= 1
            if not self._users[device_id]:
                del self._users[device_id]
                del self._locks[device_id]


# Process-wide table used when no table is injected
device_locks = DeviceLockTable()


# --- Session ---

def _strip_echo(statement: str, output: str) -> str:
    """Drop the echoed statement line so its own values are not scanned."""
    lines = output.splitlines()
    if lines and lines[0].strip().endswith(statement):
        lines = lines[1:]
    return "\n".join(lines)


def _drop_prompt(response: str) -> str:
    """Drop the trailing prompt line from a statement's response."""
    lines = response.splitlines()
    if lines:
        lines = lines[:-1]
    return "\n".join(lines).strip("\n")


def _is_commit(statement: str) -> bool:
    return statement == COMMIT or statement.startswith(f"{COMMIT_CONFIRM} ")


class ExecutionSession:
    """State machine for one batch on one device."""

    def __init__(
        self,
        device_id: str,
        prompt_detector: PromptDetector,
        error_detector: ErrorDetector,
        poll_interval: float = 0.05,
    ):
        self.device_id = device_id
        self.prompt_detector = prompt_detector
        self.error_detector = error_detector
        self.poll_interval = poll_interval
        self.state = SessionState.IDLE
        self.channel: Optional[ShellChannel] = None
        self.statements_sent: list[str] = []
        self.responses: list[tuple[str, str]] = []
        self.rollback_completed = False
        self._transcript: list[str] = []
        self._rollback_transcript: list[str] = []

    @property
    def transcript(self) -> str:
        return "".join(self._transcript)

    @property
    def rollback_transcript(self) -> str:
        return "".join(self._rollback_transcript)

    def transition(self, new_state: SessionState) -> None:
        """Move to ``new_state``; raises RuntimeError if the table forbids it."""
        if new_state not in TRANSITIONS[self.state]:
            raise RuntimeError(
                f"Illegal session transition {self.state.value} -> {new_state.value} "
                f"on {self.device_id}"
            )
        logger.debug(f"{self.device_id}: {self.state.value} -> {new_state.value}")
        self.state = new_state

    def fail(self) -> None:
        """Enter FAILED from wherever the session currently is."""
        if self.state not in (SessionState.FAILED, *TERMINAL_STATES):
            self.transition(SessionState.FAILED)

    async def run(self, open_channel: OpenChannel, statements: list[str]) -> None:
        """
        Send ``statements`` one at a time, each after the prompt reappears.

        Raises:
            TransportError: If the channel fails
            CommandError: If a response carries an error marker
            CommitError: If the commit response carries a commit marker
        """
        self.transition(SessionState.SHELL_STARTING)
        self.channel = await self._open(open_channel)
        await self._read_until_prompt(self.channel, self._transcript)
        self.transition(SessionState.AWAITING_PROMPT)

        for statement in statements:
            self.transition(SessionState.SENDING)
            await self._send(self.channel, statement)
            self.statements_sent.append(statement)

            self.transition(SessionState.COLLECTING)
            output = await self._read_until_prompt(self.channel, self._transcript)
            self._check(statement, output, self.transcript)
            self.responses.append((statement, _drop_prompt(_strip_echo(statement, output))))
            self.transition(SessionState.AWAITING_PROMPT)

        await self.abort()
        self.transition(SessionState.CLOSED)

    async def rollback(self, open_channel: OpenChannel) -> None:
        """Issue the fixed rollback sequence over a fresh channel.

        Raises:
            TransportError: If the rollback channel fails
            CommandError: If a rollback response carries an error marker
        """
        self.transition(SessionState.ROLLING_BACK)
        channel = await self._open(open_channel)
        try:
            await self._read_until_prompt(channel, self._rollback_transcript)
            for statement in ROLLBACK_SEQUENCE:
                await self._send(channel, statement)
                output = await self._read_until_prompt(channel, self._rollback_transcript)
                self._check(statement, output, self.rollback_transcript)
            self.rollback_completed = True
        finally:
            await self._close(channel)

    async def abort(self) -> None:
        """Close the main channel, if one is open."""
        if self.channel is not None:
            channel, self.channel = self.channel, None
            await self._close(channel)

    def _check(self, statement: str, output: str, transcript: str) -> None:
        response = _strip_echo(statement, output)

        if _is_commit(statement):
            marker = self.error_detector.find_commit_failure(response)
            if marker:
                raise CommitError(f"Commit failed: {marker}", statement, transcript)

        marker = self.error_detector.find_error(response)
        if marker:
            raise CommandError(f"'{statement}' rejected: {marker}", statement, transcript)

    async def _open(self, open_channel: OpenChannel) -> ShellChannel:
        try:
            return await open_channel()
        except EngineError:
            raise
        except (OSError, EOFError) as e:
            raise TransportError(f"Cannot open shell on {self.device_id}: {e}")

    async def _send(self, channel: ShellChannel, statement: str) -> None:
        logger.debug(f"{self.device_id} >> {mask_secrets(statement)}")
        try:
            await channel.send(statement + "\n")
        except EngineError:
            raise
        except (OSError, EOFError) as e:
            raise TransportError(f"Send failed on {self.device_id}: {e}")

    async def _read_until_prompt(self, channel: ShellChannel, sink: list[str]) -> str:
        buffer = ""
        while True:
            try:
                chunk = await channel.recv()
            except EngineError:
                raise
            except (OSError, EOFError) as e:
                raise TransportError(f"Read failed on {self.device_id}: {e}")

            if chunk:
                buffer += chunk
                sink.append(chunk)
                if self.prompt_detector.found(buffer):
                    return buffer
            else:
                await asyncio.sleep(self.poll_interval)

    async def _close(self, channel: ShellChannel) -> None:
        try:
            await channel.close()
        except (OSError, EOFError, EngineError) as e:
            logger.warning(f"Error closing shell on {self.device_id}: {e}")


# --- Executor ---

class ConfigExecutor:
    """Execute command batches on devices with rollback on failure."""

    def __init__(
        self,
        settings: Optional[ExecutorSettings] = None,
        error_detector: Optional[ErrorDetector] = None,
        prompt_detector: Optional[PromptDetector] = None,
        locks: Optional[DeviceLockTable] = None,
    ):
        """
        Initialize executor.

        Args:
            settings: Executor tunables (defaults when omitted)
            error_detector: Error marker strategy (marker lists from settings when omitted)
            prompt_detector: Prompt strategy (pattern from settings when omitted)
            locks: Per-device lock table (process-wide table when omitted)
        """
        self.settings = settings or ExecutorSettings()
        self.error_detector = error_detector or MarkerErrorDetector.from_settings(self.settings)
        self.prompt_detector = prompt_detector or PromptDetector(self.settings.prompt_pattern)
        self.locks = locks if locks is not None else device_locks

    async def execute(
        self,
        device_id: str,
        open_channel: OpenChannel,
        batch: CommandBatch,
        operation: str = "execute",
    ) -> ExecuteResult:
        """
        Execute a batch on a device.

        Failures are reported on the result, never raised. Cancellation
        rolls back first and then propagates.

        Args:
            device_id: Device identifier (serialization key)
            open_channel: Coroutine factory returning a fresh interactive shell
            batch: Statements and execution options
            operation: Label recorded in the audit log

        Returns:
            ExecuteResult with success/failure, transcripts, and the error
        """
        result = ExecuteResult(device_id=device_id)
        session = ExecutionSession(
            device_id,
            self.prompt_detector,
            self.error_detector,
            self.settings.poll_interval,
        )
        statements = batch.lifecycle_statements()
        error: Optional[EngineError] = None
        cancelled = False

        async with self.locks.hold(device_id):
            logger.info(
                f"Executing {len(batch.statements)} statements on {device_id}"
                + (f" ({batch.description})" if batch.description else "")
            )
            async with timed_section("execute_batch", device_id=device_id, statements=len(statements)):
                try:
                    await asyncio.wait_for(
                        session.run(open_channel, statements),
                        timeout=batch.timeout_ms / 1000,
                    )
                except asyncio.TimeoutError:
                    error = SessionTimeout(
                        f"Session on {device_id} exceeded {batch.timeout_ms} ms",
                        session.transcript,
                    )
                except asyncio.CancelledError:
                    cancelled = True
                    error = ExecutionCancelled(
                        f"Execution on {device_id} cancelled", session.transcript
                    )
                except EngineError as e:
                    error = e

                if session.state == SessionState.CLOSED:
                    # Completed, even if a timer or cancel landed after CLOSED
                    error = None
                elif error is not None:
                    session.fail()
                    await session.abort()
                    error = await self._recover(session, open_channel, error, batch.compensate)

        result.success = error is None
        result.state = session.state.value
        result.transcript = session.transcript
        result.rollback_transcript = session.rollback_transcript
        result.statements_sent = list(session.statements_sent)
        result.rollback_performed = session.rollback_completed
        result.responses = list(session.responses)
        result.error = error
        if error is not None and not error.transcript:
            error.transcript = session.transcript

        self._log_outcome(result)
        record_execution(result, batch, operation=operation)

        if cancelled:
            raise asyncio.CancelledError()
        return result

    async def _recover(
        self,
        session: ExecutionSession,
        open_channel: OpenChannel,
        error: EngineError,
        compensate: bool = True,
    ) -> EngineError:
        """Roll back after ``error``; returns the error to report."""
        if not session.statements_sent:
            # Never reached configure mode, nothing to undo
            session.transition(SessionState.CLOSED)
            return error
        if not compensate:
            # Uncommitted edits die with the closed channel
            logger.info(f"No rollback for {session.device_id}: batch does not compensate")
            session.transition(SessionState.CLOSED)
            return error

        logger.warning(
            f"Rolling back {session.device_id} after {error.kind} error: {mask_secrets(str(error))}"
        )
        timeout_s = self.settings.rollback_timeout_ms / 1000
        try:
            await asyncio.wait_for(session.rollback(open_channel), timeout=timeout_s)
        except asyncio.TimeoutError:
            cause = SessionTimeout(
                f"Rollback on {session.device_id} exceeded {self.settings.rollback_timeout_ms} ms",
                session.rollback_transcript,
            )
            session.transition(SessionState.FAILED_FATAL)
            return RollbackError(error, cause, session.transcript)
        except EngineError as cause:
            session.transition(SessionState.FAILED_FATAL)
            return RollbackError(error, cause, session.transcript)

        session.transition(SessionState.CLOSED)
        logger.info(f"Rollback on {session.device_id} completed")
        return error

    @staticmethod
    def _log_outcome(result: ExecuteResult) -> None:
        if result.success:
            logger.info(f"Batch applied on {result.device_id}")
        elif result.state == SessionState.FAILED_FATAL.value:
            logger.error(
                f"Rollback failed on {result.device_id}; device state unknown: {mask_secrets(str(result.error))}"
            )
        else:
            logger.warning(
                f"Batch failed on {result.device_id}: {mask_secrets(str(result.error))}"
            )
