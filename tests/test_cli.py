from __future__ import annotations

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from dbusctl import cli
from dbusctl.core.client import DbusClient
from dbusctl.core.config import BusChoice, BusKind
from dbusctl.core.convert import decode
from dbusctl.core.errors import NotFound, PropertyNotWritable
from dbusctl.core.signature import parse_single


class FakeClient:
    instances: list[FakeClient] = []

    def __init__(self, config=None) -> None:
        self.config = config
        self.calls: list[tuple] = []
        self.closed = False
        self.call_result: list = []
        FakeClient.instances.append(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc_info) -> None:
        self.closed = True

    def introspect(self, dest, path):
        self.calls.append(("introspect", dest, path))
        return {"children": ["Inhibitor"], "interfaces": [{"name": "org.example.Iface"}]}

    def call(self, dest, path, interface, method, args, *, signature=None, no_introspect=None):
        self.calls.append(("call", dest, path, interface, method, args, signature, no_introspect))
        return self.call_result

    def get(self, dest, path, interface, prop):
        self.calls.append(("get", dest, path, interface, prop))
        return {"xesam:title": "Birdie", "art": b"\xca\xfe"}

    def get_all(self, dest, path, interface):
        self.calls.append(("get_all", dest, path, interface))
        return {"CanPlay": True, "Volume": 0.43}

    def set(self, dest, path, interface, prop, value, *, signature=None, no_introspect=None):
        self.calls.append(("set", dest, path, interface, prop, value, signature, no_introspect))

    def list(self, pattern=None):
        self.calls.append(("list", pattern))
        return ["org.freedesktop.DBus", "org.freedesktop.Notifications"]


runner = CliRunner()


@pytest.fixture(autouse=True)
def fake_client(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "cfg"))
    FakeClient.instances = []
    monkeypatch.setattr(cli, "DbusClient", FakeClient)
    return FakeClient


def _last() -> FakeClient:
    return FakeClient.instances[-1]


def test_list_command() -> None:
    result = runner.invoke(cli.app, ["list", "org.freedesktop.*"])
    assert result.exit_code == 0
    assert result.stdout.splitlines() == ["org.freedesktop.DBus", "org.freedesktop.Notifications"]
    assert _last().calls == [("list", "org.freedesktop.*")]
    assert _last().closed


def test_introspect_command_prints_json() -> None:
    result = runner.invoke(cli.app, ["introspect", "--dest", "org.example", "/org/example"])
    assert result.exit_code == 0
    assert json.loads(result.stdout)["children"] == ["Inhibitor"]


def test_call_parses_arguments() -> None:
    result = runner.invoke(
        cli.app,
        [
            "call",
            "--dest=org.freedesktop.Notifications",
            "/org/freedesktop/Notifications",
            "org.freedesktop.Notifications",
            "Notify",
            "Floppy disks",
            "0",
            "media-floppy",
            "Rarely seen",
            "But sometimes still used",
            "[]",
            "{}",
            "5000",
        ],
    )
    assert result.exit_code == 0
    call = _last().calls[0]
    assert call[5] == ["Floppy disks", 0, "media-floppy", "Rarely seen", "But sometimes still used", [], {}, 5000]
    assert call[6] is None
    assert call[7] is None


def test_call_flattens_results(monkeypatch: pytest.MonkeyPatch) -> None:
    def with_result(values):
        class Client(FakeClient):
            def __init__(self, config=None) -> None:
                super().__init__(config)
                self.call_result = values

        monkeypatch.setattr(cli, "DbusClient", Client)

    args = ["call", "--dest", "a.b", "/", "a.b.C", "M"]

    with_result([])
    assert runner.invoke(cli.app, args).stdout == ""

    with_result([42])
    assert json.loads(runner.invoke(cli.app, args).stdout) == 42

    with_result([1, "two"])
    assert json.loads(runner.invoke(cli.app, args).stdout) == [1, "two"]

    with_result([42])
    assert json.loads(runner.invoke(cli.app, args + ["--no-flatten"]).stdout) == [42]


def test_call_passes_signature_and_no_introspect() -> None:
    result = runner.invoke(
        cli.app,
        ["call", "--dest", "a.b", "/", "a.b.C", "M", "1", "--signature", "u", "--no-introspect"],
    )
    assert result.exit_code == 0
    call = _last().calls[0]
    assert call[5:] == ([1], "u", True)


def test_get_prints_bytes_as_hex() -> None:
    result = runner.invoke(
        cli.app,
        ["get", "--dest", "org.mpris.MediaPlayer2.spotify", "/org/mpris/MediaPlayer2", "org.mpris.MediaPlayer2.Player", "Metadata"],
    )
    assert result.exit_code == 0
    assert json.loads(result.stdout) == {"xesam:title": "Birdie", "art": "cafe"}


def test_get_all_command() -> None:
    result = runner.invoke(cli.app, ["get-all", "--dest", "a.b", "/", "a.b.C"])
    assert result.exit_code == 0
    assert json.loads(result.stdout) == {"CanPlay": True, "Volume": 0.43}


def test_set_command_parses_value() -> None:
    result = runner.invoke(
        cli.app,
        ["set", "--dest", "org.mpris.MediaPlayer2.spotify", "/org/mpris/MediaPlayer2", "org.mpris.MediaPlayer2.Player", "Volume", "0.5"],
    )
    assert result.exit_code == 0
    assert result.stdout == ""
    assert _last().calls[0][5] == 0.5


def test_bus_options_select_bus() -> None:
    runner.invoke(cli.app, ["list", "--system"])
    assert _last().config.bus == BusChoice(BusKind.SYSTEM)

    runner.invoke(cli.app, ["list", "--system", "--peer", "unix:path=/run/peer"])
    assert _last().config.bus == BusChoice(BusKind.PEER, "unix:path=/run/peer")

    runner.invoke(cli.app, ["list", "--timeout", "7.5"])
    assert _last().config.bus == BusChoice(BusKind.SESSION)
    assert _last().config.timeout_s == 7.5


def test_config_file_provides_defaults(tmp_path: Path) -> None:
    path = tmp_path / "cfg" / "dbusctl" / "config.yaml"
    path.parent.mkdir(parents=True)
    path.write_text("bus: system\ntimeout_s: 9\n", encoding="utf-8")

    runner.invoke(cli.app, ["list"])
    assert _last().config.bus == BusChoice(BusKind.SYSTEM)
    assert _last().config.timeout_s == 9.0

    runner.invoke(cli.app, ["list", "--session"])
    assert _last().config.bus == BusChoice(BusKind.SESSION)


def test_error_is_clean(monkeypatch: pytest.MonkeyPatch) -> None:
    class FailingClient(FakeClient):
        def set(self, *args, **kwargs):
            raise PropertyNotWritable("Property a.b.C.Position is read-only")

    monkeypatch.setattr(cli, "DbusClient", FailingClient)
    result = runner.invoke(cli.app, ["set", "--dest", "a.b", "/", "a.b.C", "Position", "5"])
    assert result.exit_code == 1
    assert "Error: Property a.b.C.Position is read-only" in result.output
    assert "Traceback" not in result.stdout
    assert "Traceback" not in result.output


def test_resolution_error_exit_code(monkeypatch: pytest.MonkeyPatch) -> None:
    class FailingClient(FakeClient):
        def call(self, *args, **kwargs):
            raise NotFound("Interface 'a.b.C' is not introspected on this object. Available: none")

    monkeypatch.setattr(cli, "DbusClient", FailingClient)
    result = runner.invoke(cli.app, ["call", "--dest", "a.b", "/", "a.b.C", "M"])
    assert result.exit_code == 1
    assert "not introspected" in result.output


def test_bad_argument_is_reported() -> None:
    result = runner.invoke(cli.app, ["call", "--dest", "a.b", "/", "a.b.C", "M", "{a: 1, a: 2}"])
    assert result.exit_code == 1
    assert "Error: Could not parse argument" in result.output
    assert FakeClient.instances == []


def test_bad_config_is_reported(tmp_path: Path) -> None:
    path = tmp_path / "cfg" / "dbusctl" / "config.yaml"
    path.parent.mkdir(parents=True)
    path.write_text("bus: nowhere\n", encoding="utf-8")
    result = runner.invoke(cli.app, ["list"])
    assert result.exit_code == 1
    assert "Schema validation failed" in result.output


def test_call_sends_numeric_record_keys_as_text(monkeypatch: pytest.MonkeyPatch) -> None:
    sent: list[tuple] = []

    class RecordingTransport:
        def send_call(self, destination, path, interface, member, args, *, timeout_s):
            sent.append(tuple(args))
            return []

        def close(self) -> None:
            pass

    monkeypatch.setattr(
        cli, "DbusClient", lambda config: DbusClient(config, transport=RecordingTransport())
    )
    result = runner.invoke(
        cli.app,
        ["call", "--dest", "a.b", "/", "a.b.C", "M", "{1: one}", "--signature", "a{ss}"],
    )
    assert result.exit_code == 0, result.output
    (wire,) = sent[0]
    assert wire.signature == parse_single("a{ss}")
    assert decode(wire) == {"1": "one"}
