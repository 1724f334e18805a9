"""Tests for the vyos-engine command line."""
import json

import pytest

from vyos_config_engine import cli

ETH1_MODEL = """\
kind: interface
name: eth1
type: ethernet
description: LAN Interface
addresses:
  ipv4:
    - 192.168.1.1/24
"""


@pytest.fixture(autouse=True)
def quiet_logging(monkeypatch):
    """Keep CLI runs from touching log files under $HOME."""
    monkeypatch.setattr(cli, "setup_logging", lambda: None)
    monkeypatch.setattr(cli, "setup_audit_logging", lambda: None)


@pytest.fixture
def model_file(tmp_path):
    path = tmp_path / "eth1.yaml"
    path.write_text(ETH1_MODEL)
    return path


class TestPreview:
    """Tests for the preview command."""

    def test_preview(self, model_file, capsys):
        assert cli.main(["preview", str(model_file)]) == 0
        assert capsys.readouterr().out.splitlines() == [
            "configure",
            "set interfaces ethernet eth1 description 'LAN Interface'",
            "set interfaces ethernet eth1 address '192.168.1.1/24'",
            "delete interfaces ethernet eth1 disable",
            "commit",
            "save",
            "exit",
        ]

    def test_preview_delete_no_commit(self, model_file, capsys):
        assert cli.main(["preview", str(model_file), "--delete", "--no-commit"]) == 0
        assert capsys.readouterr().out.splitlines() == [
            "configure",
            "delete interfaces ethernet eth1",
            "exit",
        ]

    def test_missing_model(self, tmp_path):
        assert cli.main(["preview", str(tmp_path / "missing.yaml")]) == 1

    def test_unknown_kind(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("kind: vlan\nname: x\n")
        assert cli.main(["preview", str(path)]) == 1


class TestParse:
    """Tests for the parse command."""

    def test_parse(self, tmp_path, capsys):
        path = tmp_path / "running.conf"
        path.write_text(
            "set interfaces ethernet eth1 address '192.168.1.1/24'\n"
            "set system host-name 'edge-1'\n"
        )
        assert cli.main(["parse", str(path)]) == 0
        parsed = json.loads(capsys.readouterr().out)
        assert parsed["interfaces"][0]["name"] == "eth1"
        assert parsed["system"]["host_name"] == "edge-1"

    def test_parse_strict_conflict(self, tmp_path):
        path = tmp_path / "running.conf"
        path.write_text(
            "set system host-name 'edge-1'\n"
            "set system host-name edge-1 extra\n"
        )
        assert cli.main(["parse", str(path), "--strict"]) == 1


class TestLifecycleArguments:
    """Tests for the lifecycle subcommand arguments."""

    def test_rollback_revision_default(self):
        args = cli.build_parser().parse_args(["rollback", "edge-1"])
        assert args.revision == 0

    def test_rollback_revision(self):
        args = cli.build_parser().parse_args(["rollback", "edge-1", "3"])
        assert args.revision == 3

    def test_compare_revision(self):
        args = cli.build_parser().parse_args(["compare", "edge-1", "--revision", "2"])
        assert args.revision == 2

    def test_apply_confirm_minutes(self, model_file):
        args = cli.build_parser().parse_args(["apply", "edge-1", str(model_file), "--confirm-minutes", "5"])
        assert args.confirm_minutes == 5

    def test_restore_needs_backup_dir(self):
        with pytest.raises(SystemExit):
            cli.build_parser().parse_args(["restore", "edge-1"])
