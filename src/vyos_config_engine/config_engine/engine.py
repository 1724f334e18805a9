"""Main Config Engine - orchestrates the apply workflow.

Provides a single entry point for:
1. Building statements from configuration models
2. Validating models before anything touches a device
3. Backing up the active configuration
4. Executing batches with rollback on failure
5. Re-reading and parsing the configuration after a change
6. Device-side lifecycle: commit-confirm, confirm, rollback, compare,
   discard and restoring a backup
"""
import logging
import time
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any, AsyncIterator, Optional

import paramiko

from ..config_store.backup import BackupSink
from ..devices.base import NetworkDevice
from .errors import BuildError, EngineError, TransportError
from .executor import ConfigExecutor, ExecutorSettings
from .generator import CommandBuilder
from .parser import ConfigParser, parse_raw
from .sanitizer import quote
from .schema import (
    COMPARE,
    CONFIRM,
    DEFAULT_TIMEOUT_MS,
    DISCARD,
    ROLLBACK,
    CommandBatch,
    ConnectionTestResult,
    ExecuteResult,
    ModelKind,
    ParsedConfiguration,
    ValidationResult,
)
from .validator import ConfigValidator

if TYPE_CHECKING:
    from ..config.inventory import DeviceInventory

logger = logging.getLogger(__name__)

# Failures raised by paramiko/sockets while connecting or reading
CONNECT_ERRORS = (OSError, EOFError, paramiko.SSHException)

# Minutes before an unconfirmed commit is reverted
DEFAULT_CONFIRM_MINUTES = 10


class ConfigEngine:
    """
    Main Config Engine for applying configuration models to routers.

    Usage:
        engine = ConfigEngine(inventory, backup_sink=FileBackupSink())
        result = await engine.apply("edge-1", ModelKind.INTERFACE, iface)
    """

    def __init__(
        self,
        inventory: "DeviceInventory",
        executor: Optional[ConfigExecutor] = None,
        backup_sink: Optional[BackupSink] = None,
        builder: Optional[CommandBuilder] = None,
        parser: Optional[ConfigParser] = None,
        validator: Optional[ConfigValidator] = None,
    ):
        """
        Initialize the Config Engine.

        Args:
            inventory: Device inventory for looking up devices
            executor: Batch executor (built from the inventory ``engine:`` block when omitted)
            backup_sink: Where pre-change backups go (no backups when omitted)
            builder: Command builder
            parser: Configuration parser
            validator: Model validator
        """
        self.inventory = inventory
        self.executor = executor or ConfigExecutor(
            ExecutorSettings.from_dict(inventory.get_engine_settings())
        )
        self.backup_sink = backup_sink
        self.builder = builder or CommandBuilder()
        self.parser = parser or ConfigParser()
        self.validator = validator or ConfigValidator()

    # === Pure operations ===

    def build(self, kind: ModelKind | str, model: Any) -> list[str]:
        """Build the ``set`` statements for a model."""
        return self.builder.build(kind, model)

    def preview(
        self,
        kind: ModelKind | str,
        model: Any,
        commit: bool = True,
        save: bool = True,
    ) -> list[str]:
        """Full statement list as it would be sent, lifecycle commands included."""
        batch = CommandBatch(statements=self.build(kind, model), commit=commit, save=save)
        return batch.lifecycle_statements()

    def parse_configuration(self, text: str) -> ParsedConfiguration:
        """Parse ``show configuration commands`` output."""
        return self.parser.parse(text)

    def validate(self, kind: ModelKind | str, model: Any) -> ValidationResult:
        """Validate a model (for external use)."""
        return self.validator.validate(kind, model)

    # === Device operations ===

    @asynccontextmanager
    async def _connected(self, device_id: str) -> AsyncIterator[NetworkDevice]:
        """Yield a connected device, disconnecting only if we connected it."""
        device = self.inventory.get_device(device_id)
        opened = False
        if not device.is_connected:
            try:
                await device.connect()
            except CONNECT_ERRORS as e:
                raise TransportError(f"Cannot connect to {device_id}: {e}") from e
            opened = True
        try:
            yield device
        finally:
            if opened:
                await device.disconnect()

    async def execute(self, device_id: str, batch: CommandBatch) -> ExecuteResult:
        """
        Execute a prepared batch on a device.

        Connection failures are reported on the result like any other
        executor failure.

        Args:
            device_id: Inventory device identifier
            batch: Statements and execution options

        Returns:
            ExecuteResult with success/failure and transcripts
        """
        try:
            async with self._connected(device_id) as device:
                return await self.executor.execute(device_id, device.open_shell, batch)
        except TransportError as e:
            logger.error(f"Execution on {device_id} not started: {e}")
            return ExecuteResult(device_id=device_id, state="failed", error=e)

    async def apply(
        self,
        device_id: str,
        kind: ModelKind | str,
        model: Any,
        commit: bool = True,
        save: bool = True,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
    ) -> ExecuteResult:
        """
        Apply a configuration model to a device.

        This is the main entry point. It:
        1. Validates the model
        2. Builds the statements
        3. Backs up the active configuration (when a sink is configured)
        4. Executes the batch
        5. Re-reads and parses the configuration into ``result.refreshed``

        Args:
            device_id: Inventory device identifier
            kind: Model kind
            model: Configuration model
            commit: Commit the change
            save: Save the committed configuration
            timeout_ms: Time budget for the whole session

        Returns:
            ExecuteResult with success/failure and details

        Raises:
            BuildError: If the model fails validation or cannot be built
        """
        validation = self.validate(kind, model)
        if not validation.valid:
            raise BuildError("model", "; ".join(validation.errors))
        for warning in validation.warnings:
            logger.warning(f"{device_id}: {warning}")

        batch = CommandBatch(
            statements=self.build(kind, model),
            commit=commit,
            save=save,
            timeout_ms=timeout_ms,
            description=f"apply {ModelKind(kind).value}",
        )
        return await self._run(device_id, batch, "apply", refresh=True)

    async def remove(
        self,
        device_id: str,
        kind: ModelKind | str,
        model: Any,
        commit: bool = True,
        save: bool = True,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
    ) -> ExecuteResult:
        """Delete the configuration subtree(s) a model owns."""
        batch = CommandBatch(
            statements=self.builder.build_delete_commands(kind, model),
            commit=commit,
            save=save,
            timeout_ms=timeout_ms,
            description=f"remove {ModelKind(kind).value}",
        )
        return await self._run(device_id, batch, "remove", refresh=True)

    async def commit_confirm(
        self,
        device_id: str,
        kind: ModelKind | str,
        model: Any,
        minutes: int = DEFAULT_CONFIRM_MINUTES,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
    ) -> ExecuteResult:
        """
        Apply a model with ``commit-confirm``: the device reverts the change
        unless :meth:`confirm` is called within ``minutes``.

        The change is not saved; ``confirm(save=True)`` saves it once it has
        proven itself. Configuration sessions are per shell, so the change and
        its commit-confirm are sent in the same session.

        Raises:
            BuildError: If the model fails validation or ``minutes`` is not positive
        """
        if not isinstance(minutes, int) or minutes < 1:
            raise BuildError("minutes", "must be a positive integer")
        validation = self.validate(kind, model)
        if not validation.valid:
            raise BuildError("model", "; ".join(validation.errors))

        batch = CommandBatch(
            statements=self.build(kind, model),
            save=False,
            timeout_ms=timeout_ms,
            description=f"apply {ModelKind(kind).value} (confirm within {minutes} min)",
            confirm_minutes=minutes,
        )
        return await self._run(device_id, batch, "commit_confirm", refresh=True)

    async def confirm(self, device_id: str, save: bool = True) -> ExecuteResult:
        """Confirm a pending commit-confirm, then save unless told not to.

        Fails with a ``CommandError`` when no confirmation is pending.
        """
        batch = CommandBatch(
            statements=[CONFIRM],
            commit=False,
            save=save,
            description="confirm commit",
            compensate=False,
        )
        return await self._run(device_id, batch, "confirm", refresh=False, backup=False)

    async def rollback(
        self,
        device_id: str,
        revision: int = 0,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
    ) -> ExecuteResult:
        """
        Load a committed revision from the device's commit archive, then
        commit and save it.

        Args:
            device_id: Inventory device identifier
            revision: Archive revision, 0 being the active configuration
            timeout_ms: Time budget for the whole session

        Raises:
            BuildError: If ``revision`` is not a non-negative integer
        """
        if not isinstance(revision, int) or revision < 0:
            raise BuildError("revision", "must be a non-negative integer")
        batch = CommandBatch(
            statements=[f"{ROLLBACK} {revision}"],
            timeout_ms=timeout_ms,
            description=f"rollback to revision {revision}",
            compensate=False,
        )
        return await self._run(device_id, batch, "rollback", refresh=True)

    async def compare(self, device_id: str, revision: Optional[int] = None) -> str:
        """
        Show what differs from the active configuration.

        Without ``revision`` the device compares its working configuration,
        which in a fresh session has no pending edits. With one it compares
        against that archived revision.

        Raises:
            BuildError: If ``revision`` is negative
            EngineError: If the session fails
        """
        statement = COMPARE
        if revision is not None:
            if not isinstance(revision, int) or revision < 0:
                raise BuildError("revision", "must be a non-negative integer")
            statement = f"{COMPARE} {revision}"

        batch = CommandBatch(
            statements=[statement],
            commit=False,
            save=False,
            description="compare",
            compensate=False,
        )
        result = await self._run(device_id, batch, "compare", refresh=False, backup=False)
        if not result.success:
            raise result.error
        return result.response_for(statement) or ""

    async def discard(self, device_id: str) -> ExecuteResult:
        """Discard uncommitted changes in the device's working configuration."""
        batch = CommandBatch(
            statements=[DISCARD],
            commit=False,
            save=False,
            description="discard",
            compensate=False,
        )
        return await self._run(device_id, batch, "discard", refresh=False, backup=False)

    async def restore(
        self,
        device_id: str,
        content: str,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
    ) -> ExecuteResult:
        """
        Replace the active configuration with a backup.

        Every top-level node of the active configuration is deleted and the
        backup's ``set`` statements are sent in its place, all in one commit.

        Args:
            device_id: Inventory device identifier
            content: Backup as ``show configuration commands`` output
            timeout_ms: Time budget for the whole session

        Raises:
            BuildError: If the backup holds no ``set`` statements
        """
        statements = [line.strip() for line in content.splitlines() if line.strip().startswith("set ")]
        if not statements:
            raise BuildError("backup", "contains no set statements")

        try:
            async with self._connected(device_id) as device:
                active = await self._read_active(device)
                if self.backup_sink is not None:
                    self._store_backup(device_id, active)

                deletes = [f"delete {quote(node)}" for node, _ in parse_raw(active).items()]
                batch = CommandBatch(
                    statements=deletes + statements,
                    timeout_ms=timeout_ms,
                    description="restore backup",
                )
                result = await self.executor.execute(
                    device_id, device.open_shell, batch, operation="restore"
                )
                if result.success:
                    result.refreshed = await self._refresh(device)
                return result
        except TransportError as e:
            logger.error(f"Restore on {device_id} not started: {e}")
            return ExecuteResult(device_id=device_id, state="failed", error=e)

    async def _run(
        self,
        device_id: str,
        batch: CommandBatch,
        operation: str,
        refresh: bool,
        backup: bool = True,
    ) -> ExecuteResult:
        """Backup, execute and optionally refresh within one connection."""
        try:
            async with self._connected(device_id) as device:
                if backup and self.backup_sink is not None:
                    self._store_backup(device_id, await self._read_active(device))

                result = await self.executor.execute(
                    device_id, device.open_shell, batch, operation=operation
                )

                if result.success and refresh:
                    result.refreshed = await self._refresh(device)
                return result
        except TransportError as e:
            logger.error(f"{batch.description or 'Batch'} on {device_id} not started: {e}")
            return ExecuteResult(device_id=device_id, state="failed", error=e)

    async def _read_active(self, device: NetworkDevice) -> str:
        """Read the active configuration ahead of a change."""
        try:
            return await device.get_configuration()
        except CONNECT_ERRORS as e:
            raise TransportError(f"Backup read failed on {device.device_id}: {e}") from e

    def _store_backup(self, device_id: str, content: str) -> None:
        location = self.backup_sink.save(device_id, content)
        logger.info(f"Backup of {device_id} stored at {location}")

    async def _refresh(self, device: NetworkDevice) -> Optional[ParsedConfiguration]:
        """Re-read the configuration after a change; None if that fails."""
        try:
            text = await device.get_configuration()
            return self.parse_configuration(text)
        except (EngineError, *CONNECT_ERRORS) as e:
            logger.warning(f"Could not refresh configuration of {device.device_id}: {e}")
            return None

    async def get_configuration(self, device_id: str) -> str:
        """Get the active configuration as ``set`` statements."""
        async with self._connected(device_id) as device:
            try:
                return await device.get_configuration()
            except CONNECT_ERRORS as e:
                raise TransportError(f"Configuration read failed on {device_id}: {e}") from e

    async def get_parsed_configuration(self, device_id: str) -> ParsedConfiguration:
        """Read and parse the active configuration."""
        return self.parse_configuration(await self.get_configuration(device_id))

    async def test_connection(self, device_id: str) -> ConnectionTestResult:
        """
        Check a device: connect, read version and host name.

        Returns:
            ConnectionTestResult; failures are reported, never raised
        """
        start = time.perf_counter()
        try:
            async with self._connected(device_id) as device:
                version = await device.get_version()
                hostname = await device.get_hostname()
        except (EngineError, *CONNECT_ERRORS) as e:
            logger.warning(f"Connection test for {device_id} failed: {e}")
            return ConnectionTestResult(success=False, error=str(e))

        latency_ms = round((time.perf_counter() - start) * 1000, 1)
        logger.info(f"{device_id}: VyOS {version or 'unknown'} ({hostname}), {latency_ms} ms")
        return ConnectionTestResult(
            success=True,
            version=version,
            hostname=hostname,
            latency_ms=latency_ms,
        )
