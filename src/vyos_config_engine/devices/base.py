"""Base device abstraction for configurable routers."""
import os
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional

from ..utils.connection import CommandResult

logger = logging.getLogger(__name__)


@dataclass
class DeviceConfig:
    """Connection parameters for a device, treated as opaque by the engine."""
    type: str
    name: str
    host: str
    username: str
    port: int = 22
    protocol: str = "ssh"
    password: Optional[str] = None
    password_env: str = "VYOS_PASSWORD"
    key_path: Optional[str] = None
    timeout: int = 30
    retries: int = 3
    retry_delay: float = 2

    def get_password(self) -> str:
        """Get password from config or environment variable."""
        if self.password:
            return self.password
        return os.environ.get(self.password_env, "")


class ShellChannel(ABC):
    """An interactive shell on a device.

    ``recv`` never blocks waiting for data: it returns whatever output is
    available, or an empty string when there is none yet.
    """

    @abstractmethod
    async def send(self, data: str) -> None:
        """Write raw text to the shell."""
        pass

    @abstractmethod
    async def recv(self) -> str:
        """Read the output available so far.

        Raises:
            TransportError: If the shell has been closed by the peer
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """Close the shell."""
        pass


class NetworkDevice(ABC):
    """Abstract base class for device handlers."""

    def __init__(self, device_id: str, config: DeviceConfig):
        self.device_id = device_id
        self.config = config
        self._connected = False
        self._connection: Any = None

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def host(self) -> str:
        return self.config.host

    @property
    def is_connected(self) -> bool:
        return self._connected

    # Connection management
    @abstractmethod
    async def connect(self) -> bool:
        """Establish connection to the device."""
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        """Close connection to the device."""
        pass

    # Command execution
    @abstractmethod
    async def run_command(self, command: str) -> CommandResult:
        """Run a one-shot, read-only command outside any configure session."""
        pass

    @abstractmethod
    async def open_shell(self) -> ShellChannel:
        """Open a fresh interactive shell for a configuration session."""
        pass

    # Configuration retrieval
    @abstractmethod
    async def get_configuration(self) -> str:
        """Get the active configuration as ``set`` statements."""
        pass

    @abstractmethod
    async def get_version(self) -> Optional[str]:
        """Get the firmware version, None if it cannot be read."""
        pass

    @abstractmethod
    async def get_hostname(self) -> Optional[str]:
        """Get the device's host name, None if it cannot be read."""
        pass

    # Context manager support
    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.disconnect()
        return False
