from __future__ import annotations

import logging

import pytest

from dbusctl.core.errors import BusError, IntrospectionUnavailable, MalformedIntrospection, NotFound
from dbusctl.core.introspection import (
    introspect,
    node_to_value,
    parse_introspection,
    resolve_method_signature,
    resolve_property_signature,
)
from dbusctl.core.model import PropertyAccess, WireValue
from dbusctl.core.signature import STRING, parse, parse_single

NOTIFICATIONS_XML = """<!DOCTYPE node PUBLIC "-//freedesktop//DTD D-BUS Object Introspection 1.0//EN"
 "http://www.freedesktop.org/standards/dbus/1.0/introspect.dtd">
<node name="/org/freedesktop/Notifications">
  <interface name="org.freedesktop.Notifications">
    <method name="Notify">
      <arg name="app_name" type="s" direction="in"/>
      <arg name="replaces_id" type="u" direction="in"/>
      <arg name="app_icon" type="s" direction="in"/>
      <arg name="summary" type="s" direction="in"/>
      <arg name="body" type="s" direction="in"/>
      <arg name="actions" type="as" direction="in"/>
      <arg name="hints" type="a{sv}" direction="in"/>
      <arg name="timeout" type="i" direction="in"/>
      <arg name="id" type="u" direction="out"/>
    </method>
    <method name="GetServerInformation">
      <arg type="s" direction="out"/>
      <arg type="s" direction="out"/>
    </method>
    <signal name="NotificationClosed">
      <arg name="id" type="u"/>
      <arg name="reason" type="u"/>
    </signal>
    <property name="Inhibited" type="b" access="read">
      <annotation name="org.freedesktop.DBus.Property.EmitsChangedSignal" value="true"/>
    </property>
    <property name="Volume" type="d" access="readwrite"/>
    <frobnicate name="Unknown"/>
  </interface>
  <node name="Inhibitor"/>
  <node name="Extra"/>
</node>
"""


class FakeTransport:
    def __init__(self, reply=None, error: BusError | None = None) -> None:
        self.reply = reply if reply is not None else [WireValue(STRING, NOTIFICATIONS_XML)]
        self.error = error
        self.calls: list[tuple] = []

    def send_call(self, destination, path, interface, member, args, *, timeout_s):
        self.calls.append((destination, path, interface, member, tuple(args), timeout_s))
        if self.error is not None:
            raise self.error
        return self.reply

    def close(self) -> None:
        pass


def test_parse_builds_tree() -> None:
    node = parse_introspection(NOTIFICATIONS_XML)
    assert node.children == ("Inhibitor", "Extra")
    interface = node.interfaces["org.freedesktop.Notifications"]
    assert list(interface.methods) == ["Notify", "GetServerInformation"]
    notify = interface.methods["Notify"]
    assert [arg.name for arg in notify.in_args][:2] == ["app_name", "replaces_id"]
    assert [arg.signature for arg in notify.out_args] == [parse_single("u")]
    assert interface.methods["GetServerInformation"].out_args[0].name is None
    assert [arg.name for arg in interface.signals["NotificationClosed"].args] == ["id", "reason"]
    inhibited = interface.properties["Inhibited"]
    assert inhibited.access is PropertyAccess.READ
    assert inhibited.annotations == {"org.freedesktop.DBus.Property.EmitsChangedSignal": "true"}


def test_resolve_method_signature_in_declared_order() -> None:
    node = parse_introspection(NOTIFICATIONS_XML)
    assert resolve_method_signature(node, "org.freedesktop.Notifications", "Notify") == parse("susssasa{sv}i")
    assert resolve_method_signature(node, "org.freedesktop.Notifications", "GetServerInformation") == ()


def test_missing_interface_is_not_found() -> None:
    node = parse_introspection(NOTIFICATIONS_XML)
    with pytest.raises(NotFound) as exc:
        resolve_method_signature(node, "org.freedesktop.DBus.Peer", "Ping")
    assert "org.freedesktop.Notifications" in str(exc.value)
    with pytest.raises(NotFound):
        resolve_method_signature(node, "org.freedesktop.Notifications", "CloseAll")


def test_resolve_property_signature() -> None:
    node = parse_introspection(NOTIFICATIONS_XML)
    signature, access = resolve_property_signature(node, "org.freedesktop.Notifications", "Volume")
    assert signature == parse_single("d")
    assert access.writable
    with pytest.raises(NotFound):
        resolve_property_signature(node, "org.freedesktop.Notifications", "Missing")


def test_broken_elements_are_skipped(caplog: pytest.LogCaptureFixture) -> None:
    xml = """<node>
      <interface name="org.example.Broken">
        <method name="NoType"><arg name="x" direction="in"/></method>
        <method name="BadType"><arg type="a{vs}" direction="in"/></method>
        <method><arg type="s"/></method>
        <method name="Fine"><arg type="s" direction="in"/></method>
        <property name="NoAccess" type="s"/>
        <property name="Good" type="s" access="write"/>
      </interface>
      <interface><method name="Orphan"/></interface>
      <node/>
    </node>"""
    with caplog.at_level(logging.WARNING):
        node = parse_introspection(xml)
    interface = node.interfaces["org.example.Broken"]
    assert list(interface.methods) == ["Fine"]
    assert list(interface.properties) == ["Good"]
    assert list(node.interfaces) == ["org.example.Broken"]
    assert node.children == ()
    assert "NoType" in caplog.text


@pytest.mark.parametrize("xml", ["<node><interface></node>", "<interface name='x'/>", "not xml"])
def test_malformed_xml(xml: str) -> None:
    with pytest.raises(MalformedIntrospection):
        parse_introspection(xml)


def test_introspect_calls_introspectable() -> None:
    transport = FakeTransport()
    node = introspect(transport, "org.freedesktop.Notifications", "/org/freedesktop/Notifications", timeout_s=2.0)
    assert "org.freedesktop.Notifications" in node.interfaces
    assert transport.calls == [
        (
            "org.freedesktop.Notifications",
            "/org/freedesktop/Notifications",
            "org.freedesktop.DBus.Introspectable",
            "Introspect",
            (),
            2.0,
        )
    ]


def test_introspect_unavailable() -> None:
    transport = FakeTransport(error=BusError("org.freedesktop.DBus.Error.UnknownMethod", "No such method"))
    with pytest.raises(IntrospectionUnavailable):
        introspect(transport, "org.example", "/", timeout_s=1.0)


def test_introspect_other_bus_errors_propagate() -> None:
    transport = FakeTransport(error=BusError("org.freedesktop.DBus.Error.ServiceUnknown"))
    with pytest.raises(BusError) as exc:
        introspect(transport, "org.example", "/", timeout_s=1.0)
    assert not isinstance(exc.value, IntrospectionUnavailable)


def test_introspect_rejects_unexpected_reply() -> None:
    transport = FakeTransport(reply=[])
    with pytest.raises(MalformedIntrospection):
        introspect(transport, "org.example", "/", timeout_s=1.0)


def test_node_to_value_shape() -> None:
    value = node_to_value(parse_introspection(NOTIFICATIONS_XML))
    assert value["children"] == ["Inhibitor", "Extra"]
    (interface,) = value["interfaces"]
    assert interface["name"] == "org.freedesktop.Notifications"
    notify = interface["methods"][0]
    assert notify["name"] == "Notify"
    assert notify["in_args"][6] == {"name": "hints", "type": "a{sv}"}
    assert notify["out_args"] == [{"name": "id", "type": "u"}]
    assert interface["signals"][0]["args"][1] == {"name": "reason", "type": "u"}
    assert interface["properties"][1] == {
        "name": "Volume",
        "type": "d",
        "access": "readwrite",
        "annotations": {},
    }
