"""Bus client orchestrating resolution, conversion, and transport calls."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from dbusctl.core.config import DbusClientConfig
from dbusctl.core.convert import decode, encode, encode_variant, guess_signature, infer_signature
from dbusctl.core.errors import ArgumentCountMismatch, MalformedReply, NotFound, PropertyNotWritable
from dbusctl.core.introspection import (
    introspect,
    node_to_value,
    resolve_method_signature,
    resolve_property_signature,
)
from dbusctl.core.model import Node, WireValue
from dbusctl.core.pattern import compile_pattern
from dbusctl.core.signature import STRING, Dict, Signature, parse, parse_single, to_text, to_text_all
from dbusctl.transports.base import Transport
from dbusctl.transports.jeepney_bus import JeepneyTransport

BUS_NAME = "org.freedesktop.DBus"
BUS_PATH = "/org/freedesktop/DBus"
PROPERTIES_INTERFACE = "org.freedesktop.DBus.Properties"
LOGGER = logging.getLogger(__name__)


def _strings(*values: str) -> tuple[WireValue, ...]:
    return tuple(WireValue(STRING, value) for value in values)


def _shape(reply: Sequence[WireValue]) -> str:
    return to_text_all(value.signature for value in reply) or "nothing"


class DbusClient:
    def __init__(
        self,
        config: DbusClientConfig | None = None,
        *,
        transport: Transport | None = None,
    ) -> None:
        self.config = config or DbusClientConfig()
        self.transport = transport or JeepneyTransport(self.config.bus)

    def __enter__(self) -> DbusClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        self.transport.close()

    def _timeout(self, timeout_s: float | None) -> float:
        return self.config.timeout_s if timeout_s is None else timeout_s

    def _no_introspect(self, no_introspect: bool | None) -> bool:
        return not self.config.introspect if no_introspect is None else no_introspect

    def introspect_node(self, dest: str, path: str, *, timeout_s: float | None = None) -> Node:
        return introspect(self.transport, dest, path, timeout_s=self._timeout(timeout_s))

    def introspect(self, dest: str, path: str, *, timeout_s: float | None = None) -> dict[str, Any]:
        return node_to_value(self.introspect_node(dest, path, timeout_s=timeout_s))

    def _call_signature(
        self,
        dest: str,
        path: str,
        interface: str,
        method: str,
        signature: str | None,
        args: Sequence[Any],
        no_introspect: bool,
        timeout_s: float,
    ) -> tuple[Signature, ...]:
        if signature is not None:
            LOGGER.debug("Using explicit signature '%s' for %s.%s", signature, interface, method)
            return parse(signature)
        if not no_introspect:
            node = introspect(self.transport, dest, path, timeout_s=timeout_s)
            resolved = resolve_method_signature(node, interface, method)
            LOGGER.debug(
                "Introspected signature '%s' for %s.%s", to_text_all(resolved), interface, method
            )
            return resolved
        guessed = guess_signature(args)
        LOGGER.debug("Guessed signature '%s' for %s.%s", to_text_all(guessed), interface, method)
        return guessed

    def call(
        self,
        dest: str,
        path: str,
        interface: str,
        method: str,
        args: Sequence[Any] = (),
        *,
        signature: str | None = None,
        no_introspect: bool | None = None,
        timeout_s: float | None = None,
    ) -> list[Any]:
        """Call a method and return every out-argument as a dynamic value.

        The argument signature comes from `signature` when given, otherwise
        from introspecting the object, otherwise (with `no_introspect`) it is
        guessed from the argument values.
        """
        timeout = self._timeout(timeout_s)
        types = self._call_signature(
            dest, path, interface, method, signature, args, self._no_introspect(no_introspect), timeout
        )
        if len(types) != len(args):
            raise ArgumentCountMismatch(
                f"{interface}.{method} takes {len(types)} argument(s) "
                f"('{to_text_all(types)}'), got {len(args)}"
            )
        wire_args = [
            encode(value, sig, where=f"argument {index + 1}")
            for index, (value, sig) in enumerate(zip(args, types))
        ]
        reply = self.transport.send_call(dest, path, interface, method, wire_args, timeout_s=timeout)
        return [decode(value) for value in reply]

    def get(
        self,
        dest: str,
        path: str,
        interface: str,
        prop: str,
        *,
        timeout_s: float | None = None,
    ) -> Any:
        reply = self.transport.send_call(
            dest,
            path,
            PROPERTIES_INTERFACE,
            "Get",
            _strings(interface, prop),
            timeout_s=self._timeout(timeout_s),
        )
        if len(reply) != 1:
            raise MalformedReply(f"Get returned '{_shape(reply)}', expected 'v'")
        return decode(reply[0])

    def get_all(
        self,
        dest: str,
        path: str,
        interface: str,
        *,
        timeout_s: float | None = None,
    ) -> dict[str, Any]:
        reply = self.transport.send_call(
            dest,
            path,
            PROPERTIES_INTERFACE,
            "GetAll",
            _strings(interface),
            timeout_s=self._timeout(timeout_s),
        )
        if len(reply) != 1 or not isinstance(reply[0].signature, Dict):
            raise MalformedReply(f"GetAll returned '{_shape(reply)}', expected 'a{{sv}}'")
        return decode(reply[0])

    def _set_signature(
        self,
        dest: str,
        path: str,
        interface: str,
        prop: str,
        signature: str | None,
        value: Any,
        no_introspect: bool,
        timeout_s: float,
    ) -> Signature:
        explicit = parse_single(signature) if signature is not None else None
        if no_introspect:
            if explicit is not None:
                return explicit
            guessed = infer_signature(value, where=prop)
            LOGGER.debug("Guessed signature '%s' for property %s", to_text(guessed), prop)
            return guessed

        node = introspect(self.transport, dest, path, timeout_s=timeout_s)
        try:
            resolved, access = resolve_property_signature(node, interface, prop)
        except NotFound:
            if explicit is None:
                raise
            LOGGER.debug("Property %s.%s not introspected; using explicit signature", interface, prop)
            return explicit
        if not access.writable:
            raise PropertyNotWritable(f"Property {interface}.{prop} is {access.value}-only")
        return explicit if explicit is not None else resolved

    def set(
        self,
        dest: str,
        path: str,
        interface: str,
        prop: str,
        value: Any,
        *,
        signature: str | None = None,
        no_introspect: bool | None = None,
        timeout_s: float | None = None,
    ) -> None:
        """Write a property.

        Whenever introspection is consulted the property must be writable,
        even if an explicit `signature` was given.
        """
        timeout = self._timeout(timeout_s)
        inner = self._set_signature(
            dest, path, interface, prop, signature, value, self._no_introspect(no_introspect), timeout
        )
        wire_value = encode_variant(value, inner, where=prop)
        reply = self.transport.send_call(
            dest,
            path,
            PROPERTIES_INTERFACE,
            "Set",
            _strings(interface, prop) + (wire_value,),
            timeout_s=timeout,
        )
        if reply:
            LOGGER.debug("Ignoring unexpected '%s' reply to Set", _shape(reply))

    def list(self, pattern: str | None = None, *, timeout_s: float | None = None) -> list[str]:
        """List the names on the bus, optionally filtered by a glob pattern."""
        compiled = compile_pattern(pattern) if pattern is not None else None
        reply = self.transport.send_call(
            BUS_NAME,
            BUS_PATH,
            BUS_NAME,
            "ListNames",
            (),
            timeout_s=self._timeout(timeout_s),
        )
        if len(reply) != 1 or to_text(reply[0].signature) != "as":
            raise MalformedReply(f"ListNames returned '{_shape(reply)}', expected 'as'")
        names = decode(reply[0])
        if compiled is None:
            return names
        return [name for name in names if compiled.matches(name)]
