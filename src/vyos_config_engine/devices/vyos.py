"""VyOS router handler.

This handler supports:
- SSH connection with password or private-key auth
- One-shot operational commands via exec_command (show version, hostname,
  show configuration commands)
- Interactive shells via invoke_shell() for configuration sessions; the
  prompt-synchronized protocol itself lives in the config engine executor
"""
import asyncio
import logging
import re
from typing import Optional

import paramiko

from .base import NetworkDevice, DeviceConfig, ShellChannel
from ..config_engine.errors import TransportError
from ..utils.connection import CommandResult, with_retry
from ..utils.logging_config import timed

logger = logging.getLogger(__name__)

# Operational-mode commands need the op-mode wrapper outside a login shell
OP_CMD_WRAPPER = "/opt/vyatta/bin/vyatta-op-cmd-wrapper"

VERSION_PATTERN = re.compile(r"Version:\s+VyOS\s+([\w.\-]+)", re.IGNORECASE)

# Terminal control sequences emitted by the interactive shell
ANSI_ESCAPE = re.compile(r"\x1b\[[0-9;?]*[a-zA-Z]")


def parse_version(output: str) -> Optional[str]:
    """Extract the VyOS version from ``show version`` output."""
    match = VERSION_PATTERN.search(output)
    return match.group(1) if match else None


class VyOSShellChannel(ShellChannel):
    """Interactive shell over a paramiko channel."""

    def __init__(self, device_id: str, channel: paramiko.Channel, read_size: int = 65535):
        self.device_id = device_id
        self._channel = channel
        self._read_size = read_size

    async def send(self, data: str) -> None:
        loop = asyncio.get_event_loop()
        try:
            await loop.run_in_executor(None, self._channel.sendall, data.encode("utf-8"))
        except (OSError, paramiko.SSHException) as e:
            raise TransportError(f"Shell write failed on {self.device_id}: {e}")

    async def recv(self) -> str:
        channel = self._channel
        loop = asyncio.get_event_loop()

        def _recv() -> Optional[bytes]:
            if channel.recv_ready():
                return channel.recv(self._read_size)
            if channel.closed or channel.exit_status_ready():
                return None
            return b""

        try:
            data = await loop.run_in_executor(None, _recv)
        except (OSError, paramiko.SSHException) as e:
            raise TransportError(f"Shell read failed on {self.device_id}: {e}")

        if data is None:
            raise TransportError(f"Shell on {self.device_id} closed by peer")

        text = data.decode("utf-8", errors="ignore")
        return ANSI_ESCAPE.sub("", text)

    async def close(self) -> None:
        self._channel.close()


class VyOSDevice(NetworkDevice):
    """VyOS router handler."""

    def __init__(self, device_id: str, config: DeviceConfig):
        super().__init__(device_id, config)
        self._ssh: Optional[paramiko.SSHClient] = None

    @with_retry(max_attempts=3, min_wait=1, max_wait=10)
    @timed("connect")
    async def connect(self) -> bool:
        """Connect to the router via SSH."""
        logger.info(f"Connecting to VyOS {self.device_id} at {self.host}:{self.config.port}")

        loop = asyncio.get_event_loop()

        def _connect():
            ssh = paramiko.SSHClient()
            ssh.set_missing_host_key_policy(paramiko.AutoAddPolicy())
            ssh.connect(
                hostname=self.host,
                port=self.config.port,
                username=self.config.username,
                password=self.config.get_password() or None,
                key_filename=self.config.key_path,
                timeout=self.config.timeout,
                allow_agent=False,
                look_for_keys=False,
            )
            return ssh

        self._ssh = await loop.run_in_executor(None, _connect)
        self._connected = True
        logger.info(f"Connected to {self.device_id}")
        return True

    async def disconnect(self) -> None:
        """Disconnect from the router."""
        if self._ssh:
            self._ssh.close()
            self._ssh = None
        self._connected = False
        logger.info(f"Disconnected from {self.device_id}")

    def _require_client(self) -> paramiko.SSHClient:
        if not self._ssh:
            raise TransportError(f"Not connected to {self.device_id}")
        return self._ssh

    @with_retry(max_attempts=2, min_wait=1, max_wait=5)
    async def run_command(self, command: str) -> CommandResult:
        """Run a one-shot command via SSH exec."""
        ssh = self._require_client()
        loop = asyncio.get_event_loop()

        remote = f"{OP_CMD_WRAPPER} {command}" if command.startswith("show ") else command

        def _exec():
            stdin, stdout, stderr = ssh.exec_command(remote, timeout=self.config.timeout)
            out = stdout.read().decode("utf-8", errors="ignore")
            err = stderr.read().decode("utf-8", errors="ignore")
            exit_code = stdout.channel.recv_exit_status()
            return exit_code, out, err

        exit_code, out, err = await loop.run_in_executor(None, _exec)

        if exit_code != 0:
            logger.debug(f"Command '{command}' failed (exit {exit_code}): {err}")
        return CommandResult(
            success=exit_code == 0,
            output=out.strip(),
            error=err.strip(),
            device_id=self.device_id,
            command=command,
            exit_code=exit_code,
        )

    async def open_shell(self) -> ShellChannel:
        """Open a fresh interactive shell."""
        ssh = self._require_client()
        loop = asyncio.get_event_loop()

        def _get_shell():
            # Wide terminal so long statements are echoed on one line
            return ssh.invoke_shell(width=511, height=0)

        try:
            channel = await loop.run_in_executor(None, _get_shell)
        except (OSError, paramiko.SSHException) as e:
            raise TransportError(f"Cannot open shell on {self.device_id}: {e}")

        return VyOSShellChannel(self.device_id, channel)

    async def get_configuration(self) -> str:
        """Get the active configuration as ``set`` statements."""
        result = await self.run_command("show configuration commands")
        if not result.success:
            raise TransportError(
                f"show configuration commands failed on {self.device_id}: {result.error}"
            )
        return result.output

    async def get_version(self) -> Optional[str]:
        """Get the VyOS version string, if it can be read."""
        result = await self.run_command("show version")
        return parse_version(result.output) if result.success else None

    async def get_hostname(self) -> Optional[str]:
        """Get the router's host name."""
        result = await self.run_command("hostname")
        return result.output.strip() if result.success else None
