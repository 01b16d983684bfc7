"""
Command-line front end tests.
"""

import json

import pytest

import emu_cli
from emu_core import RuntimeContext, SystemIdentity, SystemInfoError


@pytest.fixture
def host(monkeypatch, make_provider):
    """Point the CLI at a fake host; returns a setter for context and provider."""
    state = {"ctx": RuntimeContext(is_packaged=True, env={}, platform="linux"), "provider": make_provider()}
    def from_process(is_packaged=None):
        state["is_packaged"] = is_packaged
        return state["ctx"]

    monkeypatch.setattr(emu_cli.RuntimeContext, "from_process", from_process)
    monkeypatch.setattr(emu_cli, "HostInfoProvider", lambda platform: state["provider"])
    return state


class TestCli:
    def test_raw_json_clean(self, host, capsys):
        assert emu_cli.main(["--raw-json"]) == 0
        out = json.loads(capsys.readouterr().out)
        assert out == {"is_emulator": False, "evidences": [], "os": "linux"}

    def test_raw_json_vm(self, host, make_provider, capsys):
        host["provider"] = make_provider(identity=SystemIdentity("VMware, Inc.", "VMware7,1"))
        emu_cli.main(["--raw-json", "--parallel"])
        out = json.loads(capsys.readouterr().out)
        assert out["is_emulator"] is True
        assert len(out["evidences"]) == 2

    def test_exit_code(self, host, make_provider):
        host["provider"] = make_provider(bios="innotek GmbH VirtualBox")
        assert emu_cli.main(["--raw-json", "--exit-code"]) == 1
        assert emu_cli.main(["--raw-json"]) == 0

    def test_summary_view(self, host, make_provider, capsys):
        host["provider"] = make_provider(cpu="QEMU Virtual CPU", chassis=SystemInfoError("denied"))
        emu_cli.main(["--no-color"])
        out = capsys.readouterr().out
        assert "EMULATOR DETECTION RESULTS" in out
        assert "Emulated / virtualized environment" in out
        assert 'CPU brand indicates virtualization: "QEMU Virtual CPU"' in out
        assert "1 source(s) could not be queried" in out

    def test_summary_view_clean(self, host, capsys):
        emu_cli.main([])
        out = capsys.readouterr().out
        assert "Physical host (no indicators)" in out
        assert "No virtualization indicators found" in out

    def test_is_error_text(self):
        assert emu_cli.is_error_text("Error retrieving BIOS information: x")
        assert emu_cli.is_error_text("Timed out waiting for CPU probe")
        assert not emu_cli.is_error_text('UUID indicates virtualization: "vbox"')

    def test_packaged_flag(self, host, capsys):
        emu_cli.main(["--raw-json", "--packaged"])
        assert host["is_packaged"] is True
        emu_cli.main(["--raw-json"])
        assert host["is_packaged"] is None

    def test_timeout_help_mentions_exit_wait(self):
        parser = emu_cli.build_parser()
        timeout = next(a for a in parser._actions if a.dest == "timeout")
        assert "waits for them before exiting" in timeout.help
