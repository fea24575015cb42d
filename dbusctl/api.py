"""Names other programs can import to talk D-Bus the way the dbusctl CLI does.

Everything listed in `__all__` keeps its signature across minor releases;
the `dbusctl.core` and `dbusctl.transports` modules may change freely.
"""

from __future__ import annotations

from dbusctl.core.client import DbusClient
from dbusctl.core.config import BusChoice, BusKind, DbusClientConfig, select_bus
from dbusctl.core.convert import decode, encode, encode_variant, guess_signature, infer_signature
from dbusctl.core.errors import (
    AmbiguousVariant,
    ArgumentCountMismatch,
    ArgumentParseError,
    ArityMismatch,
    BusError,
    ConfigError,
    DbusctlError,
    EncodeError,
    IntrospectionUnavailable,
    InvalidPattern,
    MalformedIntrospection,
    MalformedReply,
    MalformedSignature,
    NotFound,
    OutOfRange,
    ParseError,
    PropertyNotWritable,
    ResolutionError,
    TransportConnectError,
    TransportError,
    TransportSendError,
    TransportTimeoutError,
    TypeMismatch,
)
from dbusctl.core.introspection import (
    node_to_value,
    parse_introspection,
    resolve_method_signature,
    resolve_property_signature,
)
from dbusctl.core.model import Node, PropertyAccess, WireValue
from dbusctl.core.pattern import BusNamePattern, compile_pattern, matches
from dbusctl.core.signature import Signature, parse, parse_single, to_text, to_text_all
from dbusctl.transports.base import Transport
from dbusctl.transports.jeepney_bus import JeepneyTransport

__all__ = [
    "DbusctlError",
    "ConfigError",
    "ParseError",
    "MalformedSignature",
    "InvalidPattern",
    "ArgumentParseError",
    "EncodeError",
    "TypeMismatch",
    "OutOfRange",
    "ArityMismatch",
    "AmbiguousVariant",
    "ArgumentCountMismatch",
    "ResolutionError",
    "IntrospectionUnavailable",
    "MalformedIntrospection",
    "NotFound",
    "PropertyNotWritable",
    "TransportError",
    "TransportConnectError",
    "TransportSendError",
    "TransportTimeoutError",
    "BusError",
    "MalformedReply",
    "BusChoice",
    "BusKind",
    "DbusClientConfig",
    "select_bus",
    "DbusClient",
    "Transport",
    "JeepneyTransport",
    "Signature",
    "parse",
    "parse_single",
    "to_text",
    "to_text_all",
    "WireValue",
    "encode",
    "encode_variant",
    "decode",
    "infer_signature",
    "guess_signature",
    "Node",
    "PropertyAccess",
    "parse_introspection",
    "resolve_method_signature",
    "resolve_property_signature",
    "node_to_value",
    "BusNamePattern",
    "compile_pattern",
    "matches",
]
