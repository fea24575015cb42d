"""Bus selection and user configuration for dbusctl."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from enum import Enum
from importlib import resources
from pathlib import Path
from typing import Any

import yaml
from jsonschema import ValidationError, validators

from dbusctl.core.arguments import UniqueKeyLoader
from dbusctl.core.errors import ConfigError

DEFAULT_TIMEOUT_S = 2.0


class BusKind(str, Enum):
    SESSION = "session"
    SYSTEM = "system"
    STARTED = "started"
    BUS = "bus"
    PEER = "peer"


@dataclass(frozen=True)
class BusChoice:
    kind: BusKind = BusKind.SESSION
    address: str | None = None

    def __post_init__(self) -> None:
        needs_address = self.kind in (BusKind.BUS, BusKind.PEER)
        if needs_address and not self.address:
            raise ConfigError(f"Bus kind '{self.kind.value}' requires an address")
        if not needs_address and self.address:
            raise ConfigError(f"Bus kind '{self.kind.value}' does not take an address")

    def describe(self) -> str:
        if self.kind is BusKind.PEER:
            return f"peer at {self.address}"
        if self.kind is BusKind.BUS:
            return f"bus at {self.address}"
        return f"{self.kind.value} bus"


@dataclass(frozen=True)
class DbusClientConfig:
    bus: BusChoice = field(default_factory=BusChoice)
    timeout_s: float = DEFAULT_TIMEOUT_S
    introspect: bool = True


def select_bus(
    *,
    session: bool = False,
    system: bool = False,
    started: bool = False,
    bus: str | None = None,
    peer: str | None = None,
    default: BusChoice | None = None,
) -> BusChoice:
    """Pick one bus from command-line style options.

    When several are given the most specific wins: peer, then bus address,
    then started, then system, then session.
    """
    if peer:
        return BusChoice(BusKind.PEER, peer)
    if bus:
        return BusChoice(BusKind.BUS, bus)
    if started:
        return BusChoice(BusKind.STARTED)
    if system:
        return BusChoice(BusKind.SYSTEM)
    if session:
        return BusChoice(BusKind.SESSION)
    return default or BusChoice()


def config_path() -> Path:
    xdg_config = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    return xdg_config / "dbusctl/config.yaml"


def _load_schema_validator() -> Any:
    schema_text = resources.files("dbusctl.schemas").joinpath("config.schema.json").read_text(
        encoding="utf-8"
    )
    schema = json.loads(schema_text)
    validator_cls = validators.validator_for(schema)
    validator_cls.check_schema(schema)
    return validator_cls(schema)


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Could not read config file {path}: {exc}") from exc

    try:
        loaded = yaml.load(content, Loader=UniqueKeyLoader)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc

    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise ConfigError(f"Config file {path} must contain a mapping at root")
    return loaded


def load_config(path: Path | None = None) -> DbusClientConfig:
    path = path or config_path()
    if not path.is_file():
        return DbusClientConfig()

    doc = _read_yaml(path)
    try:
        _load_schema_validator().validate(doc)
    except ValidationError as exc:
        where = ".".join(str(p) for p in exc.path)
        where = f" ({where})" if where else ""
        raise ConfigError(f"Schema validation failed for {path}{where}: {exc.message}") from exc

    bus = BusChoice(BusKind(doc.get("bus", BusKind.SESSION.value)), doc.get("address"))
    return DbusClientConfig(
        bus=bus,
        timeout_s=float(doc.get("timeout_s", DEFAULT_TIMEOUT_S)),
        introspect=bool(doc.get("introspect", True)),
    )
