"""Core data models used across conversion, introspection, client, and CLI."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from dbusctl.core.signature import Signature


@dataclass(frozen=True)
class WireValue:
    """A value tagged with the wire type it will be marshalled as.

    The payload shape depends on the signature: a Python scalar for basic
    types, a tuple of `WireValue` for arrays and structs, a tuple of
    ``(key, value)`` `WireValue` pairs for dicts, and a single `WireValue`
    (carrying its own signature) for variants.
    """

    signature: Signature
    value: Any


class PropertyAccess(str, Enum):
    READ = "read"
    WRITE = "write"
    READWRITE = "readwrite"

    @property
    def readable(self) -> bool:
        return self is not PropertyAccess.WRITE

    @property
    def writable(self) -> bool:
        return self is not PropertyAccess.READ


@dataclass(frozen=True)
class Arg:
    name: str | None
    signature: Signature


@dataclass(frozen=True)
class Method:
    name: str
    in_args: tuple[Arg, ...] = ()
    out_args: tuple[Arg, ...] = ()
    annotations: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class Signal:
    name: str
    args: tuple[Arg, ...] = ()
    annotations: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class Property:
    name: str
    signature: Signature
    access: PropertyAccess
    annotations: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class Interface:
    name: str
    methods: dict[str, Method] = field(default_factory=dict)
    signals: dict[str, Signal] = field(default_factory=dict)
    properties: dict[str, Property] = field(default_factory=dict)
    annotations: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class Node:
    """Introspection description of one object path."""

    children: tuple[str, ...] = ()
    interfaces: dict[str, Interface] = field(default_factory=dict)
