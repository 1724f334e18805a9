"""Tests for the Config Engine facade."""
import pytest

from fakes import ChannelFactory, FakeChannel, FakeDevice, FakeInventory
from vyos_config_engine.config_engine import (
    BuildError,
    CommandBatch,
    CommandError,
    CommitError,
    ConfigEngine,
    ConfigExecutor,
    DeviceLockTable,
    ExecutorSettings,
    TransportError,
)
from vyos_config_engine.config_engine import executor as executor_module
from vyos_config_engine.config_engine.schema import (
    ROLLBACK_SEQUENCE,
    AddressConfig,
    InterfaceType,
    ModelKind,
    NetworkInterface,
    StaticRoute,
)
from vyos_config_engine.config_store import FileBackupSink

EXISTING_CONFIG = """\
set interfaces ethernet eth0 address 'dhcp'
set system host-name 'edge-1'
"""

UPDATED_CONFIG = EXISTING_CONFIG + """\
set interfaces ethernet eth1 address '192.168.1.1/24'
set interfaces ethernet eth1 description 'LAN Interface'
"""


def lan_interface():
    return NetworkInterface(
        name="eth1",
        type=InterfaceType.ETHERNET,
        description="LAN Interface",
        addresses=AddressConfig(ipv4=["192.168.1.1/24"]),
    )


def make_engine(device, backup_sink=None):
    executor = ConfigExecutor(
        ExecutorSettings(rollback_timeout_ms=2000, poll_interval=0.005),
        locks=DeviceLockTable(),
    )
    return ConfigEngine(FakeInventory(device), executor=executor, backup_sink=backup_sink)


class TestPureOperations:
    """Operations that never touch a device."""

    def test_preview(self):
        engine = make_engine(FakeDevice())
        assert engine.preview(ModelKind.INTERFACE, lan_interface()) == [
            "configure",
            "set interfaces ethernet eth1 description 'LAN Interface'",
            "set interfaces ethernet eth1 address '192.168.1.1/24'",
            "delete interfaces ethernet eth1 disable",
            "commit",
            "save",
            "exit",
        ]

    def test_preview_without_commit(self):
        engine = make_engine(FakeDevice())
        statements = engine.preview("route", StaticRoute(network="0.0.0.0/0", next_hop="192.0.2.1"),
                                    commit=False, save=False)
        assert statements == [
            "configure",
            "set protocols static route 0.0.0.0/0 next-hop 192.0.2.1",
            "exit",
        ]

    def test_parse_configuration(self):
        engine = make_engine(FakeDevice())
        parsed = engine.parse_configuration(UPDATED_CONFIG)
        assert [i.name for i in parsed.interfaces] == ["eth0", "eth1"]
        assert parsed.system.host_name == "edge-1"

    def test_executor_settings_from_inventory(self):
        inventory = FakeInventory(FakeDevice(), engine={"rollback_timeout_ms": 1234})
        engine = ConfigEngine(inventory)
        assert engine.executor.settings.rollback_timeout_ms == 1234


class TestApply:
    """Tests for apply/remove against a scripted device."""

    @pytest.mark.asyncio
    async def test_apply_success(self, tmp_path):
        """Backup, execute, refresh."""
        channel = FakeChannel()
        device = FakeDevice(configuration=EXISTING_CONFIG, channels=ChannelFactory(channel))
        sink = FileBackupSink(tmp_path)
        engine = make_engine(device, backup_sink=sink)

        async def updated_after_commit():
            device.configuration = UPDATED_CONFIG if "commit" in channel.sent else EXISTING_CONFIG
            device.config_reads += 1
            return device.configuration

        device.get_configuration = updated_after_commit

        result = await engine.apply("edge-1", ModelKind.INTERFACE, lan_interface())

        assert result.success is True
        assert channel.sent[0] == "configure"
        assert channel.sent[-3:] == ["commit", "save", "exit"]

        backups = sink.list_backups("edge-1")
        assert len(backups) == 1
        assert backups[0].read_text() == EXISTING_CONFIG

        assert result.refreshed is not None
        eth1 = next(i for i in result.refreshed.interfaces if i.name == "eth1")
        assert eth1 == lan_interface()
        assert device.config_reads == 2
        assert device.is_connected is False

    @pytest.mark.asyncio
    async def test_apply_failure_not_refreshed(self):
        """A failed batch is rolled back and not re-read."""
        main = FakeChannel(responses={"commit": "Commit failed"})
        device = FakeDevice(channels=ChannelFactory(main, FakeChannel()))
        engine = make_engine(device)

        result = await engine.apply("edge-1", ModelKind.INTERFACE, lan_interface())

        assert result.success is False
        assert result.rollback_performed is True
        assert result.refreshed is None
        assert device.config_reads == 0

    @pytest.mark.asyncio
    async def test_apply_invalid_model(self):
        """Validation errors are raised before connecting."""
        device = FakeDevice()
        engine = make_engine(device)
        bad = NetworkInterface(name="eth1", type=InterfaceType.ETHERNET, mtu=50)

        with pytest.raises(BuildError):
            await engine.apply("edge-1", ModelKind.INTERFACE, bad)
        assert device.connect_calls == 0

    @pytest.mark.asyncio
    async def test_connect_failure_reported(self):
        """A device that cannot be reached yields a failed result."""
        device = FakeDevice()

        async def refuse():
            raise ConnectionRefusedError("refused")

        device.connect = refuse
        engine = make_engine(device)

        result = await engine.apply("edge-1", ModelKind.INTERFACE, lan_interface())

        assert result.success is False
        assert isinstance(result.error, TransportError)
        assert result.statements_sent == []

    @pytest.mark.asyncio
    async def test_remove(self):
        channel = FakeChannel()
        device = FakeDevice(channels=ChannelFactory(channel))
        engine = make_engine(device)

        result = await engine.remove("edge-1", ModelKind.INTERFACE, lan_interface())

        assert result.success is True
        assert channel.sent == ["configure", "delete interfaces ethernet eth1", "commit", "save", "exit"]

    @pytest.mark.asyncio
    async def test_execute_prepared_batch(self):
        channel = FakeChannel()
        device = FakeDevice(channels=ChannelFactory(channel))
        engine = make_engine(device)

        batch = CommandBatch(statements=["set system host-name 'edge-2'"], save=False)
        result = await engine.execute("edge-1", batch)

        assert result.success is True
        assert channel.sent == ["configure", "set system host-name 'edge-2'", "commit", "exit"]

    @pytest.mark.asyncio
    async def test_existing_connection_kept(self):
        """A device the caller connected stays connected."""
        device = FakeDevice(configuration=EXISTING_CONFIG)
        await device.connect()
        engine = make_engine(device)

        await engine.get_configuration("edge-1")

        assert device.is_connected is True
        assert device.connect_calls == 1


class TestDeviceQueries:
    """Tests for read-only device operations."""

    @pytest.mark.asyncio
    async def test_get_parsed_configuration(self):
        engine = make_engine(FakeDevice(configuration=UPDATED_CONFIG))
        parsed = await engine.get_parsed_configuration("edge-1")
        assert parsed.interfaces[1].description == "LAN Interface"

    @pytest.mark.asyncio
    async def test_test_connection(self):
        engine = make_engine(FakeDevice(version="1.4.0", hostname="edge-1"))
        result = await engine.test_connection("edge-1")
        assert result.success is True
        assert result.version == "1.4.0"
        assert result.hostname == "edge-1"
        assert result.latency_ms >= 0

    @pytest.mark.asyncio
    async def test_test_connection_failure(self):
        device = FakeDevice()

        async def refuse():
            raise OSError("no route to host")

        device.connect = refuse
        result = await make_engine(device).test_connection("edge-1")
        assert result.success is False
        assert "no route to host" in result.error


class TestLifecycleOperations:
    """Tests for commit-confirm, confirm, rollback, compare, discard and restore."""

    @pytest.mark.asyncio
    async def test_commit_confirm(self):
        """The change is committed with a revert timer and not saved."""
        channel = FakeChannel()
        device = FakeDevice(configuration=EXISTING_CONFIG, channels=ChannelFactory(channel))
        engine = make_engine(device)

        result = await engine.commit_confirm("edge-1", ModelKind.INTERFACE, lan_interface(), minutes=5)

        assert result.success is True
        assert channel.sent[-2:] == ["commit-confirm 5", "exit"]
        assert "save" not in channel.sent
        assert "commit" not in channel.sent

    @pytest.mark.parametrize("minutes", [0, -1])
    @pytest.mark.asyncio
    async def test_commit_confirm_bad_minutes(self, minutes):
        device = FakeDevice()
        with pytest.raises(BuildError):
            await make_engine(device).commit_confirm("edge-1", ModelKind.INTERFACE, lan_interface(),
                                                     minutes=minutes)
        assert device.connect_calls == 0

    @pytest.mark.asyncio
    async def test_confirm(self):
        channel = FakeChannel()
        device = FakeDevice(channels=ChannelFactory(channel))

        result = await make_engine(device).confirm("edge-1")

        assert result.success is True
        assert channel.sent == ["configure", "confirm", "save", "exit"]

    @pytest.mark.asyncio
    async def test_confirm_nothing_pending(self):
        """Confirming with no pending commit fails without a rollback."""
        channel = FakeChannel(responses={"confirm": "No commit confirmation pending"})
        factory = ChannelFactory(channel)
        device = FakeDevice(channels=factory)

        result = await make_engine(device).confirm("edge-1", save=False)

        assert result.success is False
        assert isinstance(result.error, CommandError)
        assert result.rollback_performed is False
        assert len(factory.opened) == 1

    @pytest.mark.asyncio
    async def test_rollback(self, tmp_path):
        """Rollback backs up first, commits, saves and refreshes."""
        channel = FakeChannel()
        device = FakeDevice(configuration=EXISTING_CONFIG, channels=ChannelFactory(channel))
        sink = FileBackupSink(tmp_path)

        result = await make_engine(device, backup_sink=sink).rollback("edge-1", 3)

        assert result.success is True
        assert channel.sent == ["configure", "rollback 3", "commit", "save", "exit"]
        assert len(sink.list_backups("edge-1")) == 1
        assert result.refreshed is not None
        assert result.refreshed.system.host_name == "edge-1"

    @pytest.mark.asyncio
    async def test_rollback_failure_not_compensated(self):
        channel = FakeChannel(responses={"commit": "Commit failed"})
        factory = ChannelFactory(channel)
        device = FakeDevice(channels=factory)

        result = await make_engine(device).rollback("edge-1", 1)

        assert result.success is False
        assert isinstance(result.error, CommitError)
        assert result.rollback_performed is False
        assert len(factory.opened) == 1

    @pytest.mark.asyncio
    async def test_rollback_negative_revision(self):
        device = FakeDevice()
        with pytest.raises(BuildError):
            await make_engine(device).rollback("edge-1", -1)
        assert device.connect_calls == 0

    @pytest.mark.asyncio
    async def test_compare(self):
        diff = "[edit system]\n-host-name 'edge-0'\n+host-name 'edge-1'"
        channel = FakeChannel(responses={"compare 2": diff})
        device = FakeDevice(channels=ChannelFactory(channel))

        assert await make_engine(device).compare("edge-1", revision=2) == diff
        assert channel.sent == ["configure", "compare 2", "exit"]

    @pytest.mark.asyncio
    async def test_compare_nothing_pending(self):
        device = FakeDevice(channels=ChannelFactory(FakeChannel()))
        assert await make_engine(device).compare("edge-1") == ""

    @pytest.mark.asyncio
    async def test_compare_unreachable(self):
        device = FakeDevice()

        async def refuse():
            raise ConnectionRefusedError("refused")

        device.connect = refuse
        with pytest.raises(TransportError):
            await make_engine(device).compare("edge-1")

    @pytest.mark.asyncio
    async def test_discard(self, tmp_path):
        """Discard sends no commit and takes no backup."""
        channel = FakeChannel()
        device = FakeDevice(configuration=EXISTING_CONFIG, channels=ChannelFactory(channel))
        sink = FileBackupSink(tmp_path)

        result = await make_engine(device, backup_sink=sink).discard("edge-1")

        assert result.success is True
        assert channel.sent == ["configure", "discard", "exit"]
        assert device.config_reads == 0
        assert sink.list_backups("edge-1") == []

    @pytest.mark.asyncio
    async def test_restore(self, tmp_path):
        """Active top-level nodes are deleted and the backup set in one commit."""
        backup = "set interfaces ethernet eth0 address 'dhcp'\nset system host-name 'edge-0'\n"
        channel = FakeChannel()
        device = FakeDevice(configuration=EXISTING_CONFIG, channels=ChannelFactory(channel))
        sink = FileBackupSink(tmp_path)

        result = await make_engine(device, backup_sink=sink).restore("edge-1", backup)

        assert result.success is True
        assert channel.sent == [
            "configure",
            "delete interfaces",
            "delete system",
            "set interfaces ethernet eth0 address 'dhcp'",
            "set system host-name 'edge-0'",
            "commit",
            "save",
            "exit",
        ]
        backups = sink.list_backups("edge-1")
        assert len(backups) == 1
        assert backups[0].read_text() == EXISTING_CONFIG

    @pytest.mark.asyncio
    async def test_restore_failure_rolled_back(self):
        main = FakeChannel(responses={"commit": "Commit failed"})
        rollback = FakeChannel()
        device = FakeDevice(configuration=EXISTING_CONFIG, channels=ChannelFactory(main, rollback))

        result = await make_engine(device).restore("edge-1", "set system host-name 'edge-0'\n")

        assert result.success is False
        assert result.rollback_performed is True
        assert rollback.sent == list(ROLLBACK_SEQUENCE)

    @pytest.mark.asyncio
    async def test_restore_empty_backup(self):
        device = FakeDevice()
        with pytest.raises(BuildError):
            await make_engine(device).restore("edge-1", "# nothing here\n")
        assert device.connect_calls == 0

    @pytest.mark.asyncio
    async def test_operations_audited(self, monkeypatch):
        """Each operation reaches the audit log under its own name."""
        recorded = []
        monkeypatch.setattr(
            executor_module, "record_execution",
            lambda result, batch, operation: recorded.append(operation),
        )
        engine = make_engine(FakeDevice(configuration=EXISTING_CONFIG))

        await engine.apply("edge-1", ModelKind.INTERFACE, lan_interface())
        await engine.remove("edge-1", ModelKind.INTERFACE, lan_interface())
        await engine.rollback("edge-1")
        await engine.discard("edge-1")
        await engine.compare("edge-1")
        await engine.confirm("edge-1")
        await engine.restore("edge-1", EXISTING_CONFIG)

        assert recorded == ["apply", "remove", "rollback", "discard", "compare", "confirm", "restore"]
