"""Introspection XML parsing and signature resolution."""

from __future__ import annotations

import logging
from typing import Any
from xml.etree import ElementTree

from dbusctl.core.errors import (
    BusError,
    IntrospectionUnavailable,
    MalformedIntrospection,
    MalformedSignature,
    NotFound,
)
from dbusctl.core.model import (
    Arg,
    Interface,
    Method,
    Node,
    Property,
    PropertyAccess,
    Signal,
)
from dbusctl.core.signature import STRING, Signature, parse_single, to_text
from dbusctl.transports.base import Transport

INTROSPECTABLE_INTERFACE = "org.freedesktop.DBus.Introspectable"
_UNAVAILABLE_ERRORS = frozenset(
    {
        "org.freedesktop.DBus.Error.UnknownMethod",
        "org.freedesktop.DBus.Error.UnknownInterface",
    }
)
LOGGER = logging.getLogger(__name__)


def _skip(element: ElementTree.Element, owner: str, reason: str) -> None:
    LOGGER.warning("Skipping <%s> in %s: %s", element.tag, owner, reason)


def _parse_type(element: ElementTree.Element, owner: str) -> Signature | None:
    text = element.get("type")
    if text is None:
        _skip(element, owner, "missing 'type' attribute")
        return None
    try:
        return parse_single(text)
    except MalformedSignature as exc:
        _skip(element, owner, str(exc))
        return None


def _parse_annotations(element: ElementTree.Element, owner: str) -> dict[str, str]:
    annotations: dict[str, str] = {}
    for child in element.findall("annotation"):
        name = child.get("name")
        if name is None:
            _skip(child, owner, "missing 'name' attribute")
            continue
        annotations[name] = child.get("value", "")
    return annotations


def _parse_args(
    element: ElementTree.Element, owner: str, *, signal: bool
) -> tuple[list[Arg], list[Arg]] | None:
    in_args: list[Arg] = []
    out_args: list[Arg] = []
    for child in element.findall("arg"):
        signature = _parse_type(child, owner)
        if signature is None:
            return None
        direction = "out" if signal else child.get("direction", "in")
        if direction not in ("in", "out"):
            _skip(child, owner, f"unknown direction {direction!r}")
            return None
        arg = Arg(name=child.get("name"), signature=signature)
        (in_args if direction == "in" else out_args).append(arg)
    return in_args, out_args


def _parse_interface(element: ElementTree.Element) -> Interface | None:
    name = element.get("name")
    if not name:
        _skip(element, "node", "missing 'name' attribute")
        return None

    methods: dict[str, Method] = {}
    signals: dict[str, Signal] = {}
    properties: dict[str, Property] = {}

    for child in element:
        member = child.get("name")
        if child.tag not in ("method", "signal", "property"):
            continue
        if not member:
            _skip(child, name, "missing 'name' attribute")
            continue
        owner = f"{name}.{member}"

        if child.tag == "method":
            args = _parse_args(child, owner, signal=False)
            if args is None:
                continue
            methods[member] = Method(
                name=member,
                in_args=tuple(args[0]),
                out_args=tuple(args[1]),
                annotations=_parse_annotations(child, owner),
            )
        elif child.tag == "signal":
            args = _parse_args(child, owner, signal=True)
            if args is None:
                continue
            signals[member] = Signal(
                name=member,
                args=tuple(args[1]),
                annotations=_parse_annotations(child, owner),
            )
        else:
            signature = _parse_type(child, owner)
            if signature is None:
                continue
            try:
                access = PropertyAccess(child.get("access", ""))
            except ValueError:
                _skip(child, owner, f"invalid access {child.get('access')!r}")
                continue
            properties[member] = Property(
                name=member,
                signature=signature,
                access=access,
                annotations=_parse_annotations(child, owner),
            )

    return Interface(
        name=name,
        methods=methods,
        signals=signals,
        properties=properties,
        annotations=_parse_annotations(element, name),
    )


def parse_introspection(xml_text: str) -> Node:
    """Parse introspection XML into a `Node`.

    Unknown elements are ignored. Elements missing required attributes (or
    carrying an unparsable type) are dropped with a warning and the rest of
    the document is still returned.
    """
    try:
        root = ElementTree.fromstring(xml_text)
    except ElementTree.ParseError as exc:
        raise MalformedIntrospection(f"Invalid introspection XML: {exc}") from exc
    if root.tag != "node":
        raise MalformedIntrospection(
            f"Introspection root element must be <node>, found <{root.tag}>"
        )

    children: list[str] = []
    interfaces: dict[str, Interface] = {}
    for element in root:
        if element.tag == "node":
            child_name = element.get("name")
            if not child_name:
                _skip(element, "node", "missing 'name' attribute")
                continue
            children.append(child_name)
        elif element.tag == "interface":
            interface = _parse_interface(element)
            if interface is not None:
                interfaces[interface.name] = interface
    return Node(children=tuple(children), interfaces=interfaces)


def introspect(transport: Transport, destination: str, path: str, *, timeout_s: float) -> Node:
    try:
        reply = transport.send_call(
            destination,
            path,
            INTROSPECTABLE_INTERFACE,
            "Introspect",
            (),
            timeout_s=timeout_s,
        )
    except BusError as exc:
        if exc.name in _UNAVAILABLE_ERRORS:
            raise IntrospectionUnavailable(
                f"{destination} does not support introspection on {path}: {exc}"
            ) from exc
        raise
    if len(reply) != 1 or reply[0].signature != STRING:
        raise MalformedIntrospection(
            f"Introspect on {destination} {path} returned "
            f"'{''.join(to_text(v.signature) for v in reply)}', expected 's'"
        )
    return parse_introspection(reply[0].value)


def _interface(node: Node, interface_name: str) -> Interface:
    interface = node.interfaces.get(interface_name)
    if interface is None:
        available = ", ".join(sorted(node.interfaces)) or "none"
        raise NotFound(
            f"Interface '{interface_name}' is not introspected on this object. Available: {available}"
        )
    return interface


def resolve_method_signature(node: Node, interface_name: str, method_name: str) -> tuple[Signature, ...]:
    interface = _interface(node, interface_name)
    method = interface.methods.get(method_name)
    if method is None:
        available = ", ".join(sorted(interface.methods)) or "none"
        raise NotFound(
            f"Interface '{interface_name}' has no method '{method_name}'. Available: {available}"
        )
    return tuple(arg.signature for arg in method.in_args)


def resolve_property_signature(
    node: Node, interface_name: str, property_name: str
) -> tuple[Signature, PropertyAccess]:
    interface = _interface(node, interface_name)
    prop = interface.properties.get(property_name)
    if prop is None:
        available = ", ".join(sorted(interface.properties)) or "none"
        raise NotFound(
            f"Interface '{interface_name}' has no property '{property_name}'. Available: {available}"
        )
    return prop.signature, prop.access


def _args_to_value(args: tuple[Arg, ...]) -> list[dict[str, Any]]:
    return [{"name": arg.name, "type": to_text(arg.signature)} for arg in args]


def node_to_value(node: Node) -> dict[str, Any]:
    """Convert an introspection tree into plain records and lists."""
    return {
        "children": list(node.children),
        "interfaces": [
            {
                "name": interface.name,
                "methods": [
                    {
                        "name": method.name,
                        "in_args": _args_to_value(method.in_args),
                        "out_args": _args_to_value(method.out_args),
                        "annotations": dict(method.annotations),
                    }
                    for method in interface.methods.values()
                ],
                "signals": [
                    {
                        "name": signal.name,
                        "args": _args_to_value(signal.args),
                        "annotations": dict(signal.annotations),
                    }
                    for signal in interface.signals.values()
                ],
                "properties": [
                    {
                        "name": prop.name,
                        "type": to_text(prop.signature),
                        "access": prop.access.value,
                        "annotations": dict(prop.annotations),
                    }
                    for prop in interface.properties.values()
                ],
                "annotations": dict(interface.annotations),
            }
            for interface in node.interfaces.values()
        ],
    }
