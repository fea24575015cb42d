"""D-Bus transport implementation using jeepney's blocking connection."""

from __future__ import annotations

import logging
import os
from collections.abc import Sequence
from typing import Any

from jeepney.auth import AuthenticationError
from jeepney.bus import get_bus
from jeepney.io.blocking import DBusConnection, open_dbus_connection, prep_socket
from jeepney.low_level import HeaderFields, Message, MessageType
from jeepney.wrappers import DBusAddress, new_method_call

from dbusctl.core.config import DEFAULT_TIMEOUT_S, BusChoice, BusKind
from dbusctl.core.errors import (
    BusError,
    MalformedSignature,
    TransportConnectError,
    TransportSendError,
    TransportTimeoutError,
)
from dbusctl.core.model import WireValue
from dbusctl.core.signature import (
    BYTE,
    VARIANT,
    Array,
    Scalar,
    Signature,
    Struct,
    parse,
    parse_single,
    to_text,
    to_text_all,
)

LOGGER = logging.getLogger(__name__)


def to_native(wire: WireValue) -> Any:
    """Convert a `WireValue` into the plain values jeepney marshals."""
    signature = wire.signature
    if isinstance(signature, Scalar):
        if signature.code == "v":
            inner = wire.value
            return (to_text(inner.signature), to_native(inner))
        return wire.value
    if isinstance(signature, Array):
        if signature.element == BYTE:
            return bytes(item.value for item in wire.value)
        return [to_native(item) for item in wire.value]
    if isinstance(signature, Struct):
        return tuple(to_native(item) for item in wire.value)
    return {to_native(key): to_native(item) for key, item in wire.value}


def from_native(signature: Signature, data: Any) -> WireValue:
    """Tag a value unmarshalled by jeepney with its wire type."""
    if isinstance(signature, Scalar):
        if signature.code == "v":
            inner_text, inner_data = data
            return WireValue(VARIANT, from_native(parse_single(inner_text), inner_data))
        if signature.code == "h" and hasattr(data, "to_raw_fd"):
            data = data.to_raw_fd()
        return WireValue(signature, data)
    if isinstance(signature, Array):
        return WireValue(signature, tuple(from_native(signature.element, item) for item in data))
    if isinstance(signature, Struct):
        return WireValue(
            signature,
            tuple(from_native(member, item) for member, item in zip(signature.members, data)),
        )
    return WireValue(
        signature,
        tuple(
            (from_native(signature.key, key), from_native(signature.value, item))
            for key, item in data.items()
        ),
    )


def _reply_values(reply: Message) -> list[WireValue]:
    signature_text = reply.header.fields.get(HeaderFields.signature, "")
    try:
        types = parse(signature_text)
    except MalformedSignature as exc:
        raise TransportSendError(f"Reply carries an invalid signature: {exc}") from exc
    return [from_native(sig, data) for sig, data in zip(types, reply.body)]


def _starter_address() -> str:
    address = os.environ.get("DBUS_STARTER_ADDRESS")
    if address:
        return address
    bus_type = os.environ.get("DBUS_STARTER_BUS_TYPE", "").lower()
    if bus_type in ("session", "system"):
        return bus_type.upper()
    raise TransportConnectError(
        "No starter bus: DBUS_STARTER_ADDRESS and DBUS_STARTER_BUS_TYPE are not set"
    )


def _open_peer(address: str) -> DBusConnection:
    try:
        path = get_bus(address)
    except (ValueError, RuntimeError) as exc:
        raise TransportConnectError(f"Unsupported peer address {address!r}: {exc}") from exc

    try:
        sock = prep_socket(path, enable_fds=False, timeout=DEFAULT_TIMEOUT_S)
    except (OSError, AuthenticationError) as exc:
        raise TransportConnectError(f"Could not connect to peer at {address}: {exc}") from exc
    return DBusConnection(sock)


class JeepneyTransport:
    """Blocking transport that opens its connection on first use."""

    def __init__(self, bus: BusChoice | None = None) -> None:
        self.bus = bus or BusChoice()
        self._connection: DBusConnection | None = None

    def connect(self) -> DBusConnection:
        if self._connection is not None:
            return self._connection

        LOGGER.debug("Connecting to %s", self.bus.describe())
        if self.bus.kind is BusKind.PEER:
            self._connection = _open_peer(self.bus.address or "")
            return self._connection

        if self.bus.kind is BusKind.SESSION:
            address = "SESSION"
        elif self.bus.kind is BusKind.SYSTEM:
            address = "SYSTEM"
        elif self.bus.kind is BusKind.STARTED:
            address = _starter_address()
        else:
            address = self.bus.address or ""

        try:
            self._connection = open_dbus_connection(bus=address)
        except (OSError, ValueError, KeyError, RuntimeError, AuthenticationError) as exc:
            raise TransportConnectError(f"Could not connect to {self.bus.describe()}: {exc}") from exc
        LOGGER.debug("Connected as %s", self._connection.unique_name)
        return self._connection

    def send_call(
        self,
        destination: str | None,
        path: str,
        interface: str | None,
        member: str,
        args: Sequence[WireValue],
        *,
        timeout_s: float,
    ) -> list[WireValue]:
        connection = self.connect()
        signature = to_text_all(arg.signature for arg in args)
        message = new_method_call(
            DBusAddress(path, bus_name=destination, interface=interface),
            member,
            signature or None,
            tuple(to_native(arg) for arg in args),
        )
        LOGGER.debug("Calling %s %s %s.%s (%s)", destination, path, interface, member, signature)

        try:
            reply = connection.send_and_get_reply(message, timeout=timeout_s)
        except TimeoutError as exc:
            raise TransportTimeoutError(
                f"No reply to {interface}.{member} from {destination} within {timeout_s}s"
            ) from exc
        except (OSError, ValueError, TypeError, RuntimeError) as exc:
            raise TransportSendError(f"D-Bus call {interface}.{member} failed: {exc}") from exc

        if reply.header.message_type == MessageType.error:
            name = reply.header.fields.get(HeaderFields.error_name, "org.freedesktop.DBus.Error.Failed")
            text = reply.body[0] if reply.body and isinstance(reply.body[0], str) else ""
            raise BusError(name, text)
        return _reply_values(reply)

    def close(self) -> None:
        if self._connection is not None:
            self._connection.close()
            self._connection = None
