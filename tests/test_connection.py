"""Tests for connection utilities."""
import paramiko
import pytest

from vyos_config_engine.utils.connection import (
    with_retry,
    CommandResult,
    RETRYABLE_EXCEPTIONS,
)


class TestWithRetry:
    """Tests for retry decorator."""

    @pytest.mark.asyncio
    async def test_async_success_no_retry(self):
        """Successful async function doesn't retry."""
        call_count = 0

        @with_retry(max_attempts=3)
        async def succeeding_func():
            nonlocal call_count
            call_count += 1
            return "success"

        result = await succeeding_func()
        assert result == "success"
        assert call_count == 1

    @pytest.mark.asyncio
    async def test_async_retry_then_success(self):
        """Async function retries on failure then succeeds."""
        call_count = 0

        @with_retry(max_attempts=3, min_wait=0.01, max_wait=0.1)
        async def failing_then_succeeding():
            nonlocal call_count
            call_count += 1
            if call_count < 2:
                raise ConnectionRefusedError("Connection refused")
            return "success"

        result = await failing_then_succeeding()
        assert result == "success"
        assert call_count == 2

    @pytest.mark.asyncio
    async def test_async_max_retries_exceeded(self):
        """Async function raises after max retries."""
        call_count = 0

        @with_retry(max_attempts=3, min_wait=0.01, max_wait=0.1)
        async def always_failing():
            nonlocal call_count
            call_count += 1
            raise TimeoutError("Always times out")

        with pytest.raises(TimeoutError):
            await always_failing()
        assert call_count == 3

    @pytest.mark.asyncio
    async def test_ssh_exception_retried(self):
        """Transient SSH negotiation errors are retried."""
        call_count = 0

        @with_retry(max_attempts=2, min_wait=0.01, max_wait=0.1)
        async def flaky_handshake():
            nonlocal call_count
            call_count += 1
            raise paramiko.SSHException("Error reading SSH protocol banner")

        with pytest.raises(paramiko.SSHException):
            await flaky_handshake()
        assert call_count == 2

    @pytest.mark.asyncio
    async def test_authentication_failure_not_retried(self):
        """Bad credentials fail immediately."""
        call_count = 0

        @with_retry(max_attempts=3, min_wait=0.01, max_wait=0.1)
        async def bad_password():
            nonlocal call_count
            call_count += 1
            raise paramiko.AuthenticationException("Authentication failed")

        with pytest.raises(paramiko.AuthenticationException):
            await bad_password()
        assert call_count == 1

    def test_sync_success_no_retry(self):
        """Successful sync function doesn't retry."""
        call_count = 0

        @with_retry(max_attempts=3)
        def succeeding_func():
            nonlocal call_count
            call_count += 1
            return "success"

        result = succeeding_func()
        assert result == "success"
        assert call_count == 1

    @pytest.mark.asyncio
    async def test_non_retryable_exception(self):
        """Non-retryable exceptions are not retried."""
        call_count = 0

        @with_retry(max_attempts=3, exceptions=(ConnectionRefusedError,))
        async def raising_value_error():
            nonlocal call_count
            call_count += 1
            raise ValueError("Not retryable")

        with pytest.raises(ValueError):
            await raising_value_error()
        assert call_count == 1


class TestRetryableExceptions:
    """Tests for retryable exceptions list."""

    @pytest.mark.parametrize("exc", [
        ConnectionRefusedError,
        TimeoutError,
        ConnectionResetError,
        OSError,
        EOFError,
        paramiko.SSHException,
    ])
    def test_retryable(self, exc):
        assert exc in RETRYABLE_EXCEPTIONS


class TestCommandResult:
    """Tests for CommandResult class."""

    def test_successful_result(self):
        """Successful command result."""
        result = CommandResult(
            success=True,
            output="Version:          VyOS 1.4.0",
            device_id="edge-1",
            command="show version",
        )
        assert result.success is True
        assert result.error == ""
        assert result.exit_code == 0
        assert "OK" in repr(result)

    def test_failed_result(self):
        """Failed command result."""
        result = CommandResult(
            success=False,
            error="Invalid command: [show bogus]",
            device_id="edge-1",
            command="show bogus",
            exit_code=1,
        )
        assert result.success is False
        assert "FAILED" in repr(result)

    def test_to_dict(self):
        """Result can be converted to dict."""
        d = CommandResult(success=True, output="edge-1", device_id="edge-1", command="hostname").to_dict()
        assert d == {
            "success": True,
            "output": "edge-1",
            "error": "",
            "device_id": "edge-1",
            "command": "hostname",
            "exit_code": 0,
        }
