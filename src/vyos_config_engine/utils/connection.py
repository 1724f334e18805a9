"""Connection stability utilities with retry logic."""
import asyncio
import logging
from functools import wraps
from typing import Any, Callable, TypeVar

import paramiko
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
    retry_if_not_exception_type,
    before_sleep_log,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


# Common network exceptions to retry on
RETRYABLE_EXCEPTIONS = (
    ConnectionRefusedError,
    ConnectionResetError,
    TimeoutError,
    OSError,
    EOFError,
    paramiko.SSHException,
)


def with_retry(
    max_attempts: int = 3,
    min_wait: float = 1,
    max_wait: float = 10,
    exceptions: tuple = RETRYABLE_EXCEPTIONS,
    no_retry: tuple = (paramiko.AuthenticationException,),
) -> Callable:
    """Decorator factory for retry logic with exponential backoff.

    Only used for connects and one-shot reads, never inside a batch.

    Args:
        max_attempts: Maximum number of retry attempts
        min_wait: Minimum wait time between retries (seconds)
        max_wait: Maximum wait time between retries (seconds)
        exceptions: Tuple of exception types to retry on
        no_retry: Subclasses of ``exceptions`` that fail immediately (bad credentials)
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        policy = dict(
            stop=stop_after_attempt(max_attempts),
            wait=wait_exponential(multiplier=1, min=min_wait, max=max_wait),
            retry=retry_if_exception_type(exceptions) & retry_if_not_exception_type(no_retry),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )

        @retry(**policy)
        @wraps(func)
        async def async_wrapper(*args: Any, **kwargs: Any) -> T:
            return await func(*args, **kwargs)  # type: ignore[misc]

        @retry(**policy)
        @wraps(func)
        def sync_wrapper(*args: Any, **kwargs: Any) -> T:
            return func(*args, **kwargs)

        if asyncio.iscoroutinefunction(func):
            return async_wrapper  # type: ignore[return-value]
        return sync_wrapper

    return decorator


class CommandResult:
    """Result of a one-shot command execution on a device."""

    def __init__(
        self,
        success: bool,
        output: str = "",
        error: str = "",
        device_id: str = "",
        command: str = "",
        exit_code: int = 0,
    ):
        self.success = success
        self.output = output
        self.error = error
        self.device_id = device_id
        self.command = command
        self.exit_code = exit_code

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "output": self.output,
            "error": self.error,
            "device_id": self.device_id,
            "command": self.command,
            "exit_code": self.exit_code,
        }

    def __repr__(self) -> str:
        status = "OK" if self.success else "FAILED"
        return f"CommandResult({status}, device={self.device_id}, exit={self.exit_code})"
