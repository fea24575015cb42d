"""Typer CLI entrypoint."""

from __future__ import annotations

import json
import logging
from dataclasses import replace
from datetime import timedelta
from typing import Any

import typer

from dbusctl.core.arguments import parse_argument, parse_arguments
from dbusctl.core.client import DbusClient
from dbusctl.core.config import load_config, select_bus
from dbusctl.core.errors import DbusctlError

app = typer.Typer(help="Introspect D-Bus objects, call methods, and read or write properties")

_SESSION = typer.Option(False, "--session", help="Send to the session message bus (default)")
_SYSTEM = typer.Option(False, "--system", help="Send to the system message bus")
_STARTED = typer.Option(False, "--started", help="Send to the bus that started this process")
_BUS = typer.Option(None, "--bus", help="Send to the bus server at the given address")
_PEER = typer.Option(
    None,
    "--peer",
    help="Send to a non-bus D-Bus server at the given address (no Hello call)",
)
_TIMEOUT = typer.Option(None, "--timeout", help="Seconds to wait for a response")
_SIGNATURE = typer.Option(
    None,
    "--signature",
    help="D-Bus signature of the values to send. Determined by introspection if omitted, "
    "or guessed (poorly) with --no-introspect",
)
_NO_INTROSPECT = typer.Option(
    False,
    "--no-introspect",
    help="Don't use introspection to determine the signature",
)


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Log debug output")) -> None:
    if verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(name)s: %(message)s")


def _build_client(
    *,
    session: bool,
    system: bool,
    started: bool,
    bus: str | None,
    peer: str | None,
    timeout: float | None,
) -> DbusClient:
    config = load_config()
    config = replace(
        config,
        bus=select_bus(
            session=session,
            system=system,
            started=started,
            bus=bus,
            peer=peer,
            default=config.bus,
        ),
    )
    if timeout is not None:
        config = replace(config, timeout_s=timeout)
    return DbusClient(config)


def _json_default(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray)):
        return value.hex()
    if isinstance(value, timedelta):
        return value.total_seconds()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _echo_value(value: Any) -> None:
    typer.echo(json.dumps(value, indent=2, ensure_ascii=False, default=_json_default))


def _fail(exc: DbusctlError) -> typer.Exit:
    typer.echo(f"Error: {exc}", err=True)
    return typer.Exit(code=1)


@app.command("introspect")
def introspect(
    object_path: str = typer.Argument(..., metavar="OBJECT", help="The path to the object"),
    dest: str = typer.Option(..., "--dest", help="The name of the connection that owns the object"),
    session: bool = _SESSION,
    system: bool = _SYSTEM,
    started: bool = _STARTED,
    bus: str | None = _BUS,
    peer: str | None = _PEER,
    timeout: float | None = _TIMEOUT,
) -> None:
    """Introspect a D-Bus object: child nodes, interfaces, methods, signals, and properties."""
    try:
        with _build_client(
            session=session, system=system, started=started, bus=bus, peer=peer, timeout=timeout
        ) as client:
            _echo_value(client.introspect(dest, object_path))
    except DbusctlError as exc:
        raise _fail(exc) from None


@app.command("call")
def call(
    object_path: str = typer.Argument(..., metavar="OBJECT", help="The path to the object"),
    interface: str = typer.Argument(..., help="The interface the method belongs to"),
    method: str = typer.Argument(..., help="The method to call"),
    args: list[str] | None = typer.Argument(None, help="Arguments, written as YAML values"),
    dest: str = typer.Option(..., "--dest", help="The name of the connection to send to"),
    signature: str | None = _SIGNATURE,
    no_introspect: bool = _NO_INTROSPECT,
    no_flatten: bool = typer.Option(False, "--no-flatten", help="Always print a list of all return values"),
    session: bool = _SESSION,
    system: bool = _SYSTEM,
    started: bool = _STARTED,
    bus: str | None = _BUS,
    peer: str | None = _PEER,
    timeout: float | None = _TIMEOUT,
) -> None:
    """Call a method and print its response.

    Prints a list only if the method returns more than one value, unless --no-flatten is given.
    """
    try:
        values = parse_arguments(args or [])
        with _build_client(
            session=session, system=system, started=started, bus=bus, peer=peer, timeout=timeout
        ) as client:
            result = client.call(
                dest,
                object_path,
                interface,
                method,
                values,
                signature=signature,
                no_introspect=no_introspect or None,
            )
    except DbusctlError as exc:
        raise _fail(exc) from None

    if no_flatten or len(result) > 1:
        _echo_value(result)
    elif result:
        _echo_value(result[0])


@app.command("get")
def get(
    object_path: str = typer.Argument(..., metavar="OBJECT", help="The path to the object"),
    interface: str = typer.Argument(..., help="The interface the property belongs to"),
    prop: str = typer.Argument(..., metavar="PROPERTY", help="The property to read"),
    dest: str = typer.Option(..., "--dest", help="The name of the connection to read from"),
    session: bool = _SESSION,
    system: bool = _SYSTEM,
    started: bool = _STARTED,
    bus: str | None = _BUS,
    peer: str | None = _PEER,
    timeout: float | None = _TIMEOUT,
) -> None:
    """Get a D-Bus property."""
    try:
        with _build_client(
            session=session, system=system, started=started, bus=bus, peer=peer, timeout=timeout
        ) as client:
            _echo_value(client.get(dest, object_path, interface, prop))
    except DbusctlError as exc:
        raise _fail(exc) from None


@app.command("get-all")
def get_all(
    object_path: str = typer.Argument(..., metavar="OBJECT", help="The path to the object"),
    interface: str = typer.Argument(..., help="The interface to read properties of"),
    dest: str = typer.Option(..., "--dest", help="The name of the connection to read from"),
    session: bool = _SESSION,
    system: bool = _SYSTEM,
    started: bool = _STARTED,
    bus: str | None = _BUS,
    peer: str | None = _PEER,
    timeout: float | None = _TIMEOUT,
) -> None:
    """Get all D-Bus properties of an interface on the given object."""
    try:
        with _build_client(
            session=session, system=system, started=started, bus=bus, peer=peer, timeout=timeout
        ) as client:
            _echo_value(client.get_all(dest, object_path, interface))
    except DbusctlError as exc:
        raise _fail(exc) from None


@app.command("set")
def set_property(
    object_path: str = typer.Argument(..., metavar="OBJECT", help="The path to the object"),
    interface: str = typer.Argument(..., help="The interface the property belongs to"),
    prop: str = typer.Argument(..., metavar="PROPERTY", help="The property to write"),
    value: str = typer.Argument(..., help="The value to write, as YAML"),
    dest: str = typer.Option(..., "--dest", help="The name of the connection to write to"),
    signature: str | None = _SIGNATURE,
    no_introspect: bool = _NO_INTROSPECT,
    session: bool = _SESSION,
    system: bool = _SYSTEM,
    started: bool = _STARTED,
    bus: str | None = _BUS,
    peer: str | None = _PEER,
    timeout: float | None = _TIMEOUT,
) -> None:
    """Set a D-Bus property."""
    try:
        parsed = parse_argument(value)
        with _build_client(
            session=session, system=system, started=started, bus=bus, peer=peer, timeout=timeout
        ) as client:
            client.set(
                dest,
                object_path,
                interface,
                prop,
                parsed,
                signature=signature,
                no_introspect=no_introspect or None,
            )
    except DbusctlError as exc:
        raise _fail(exc) from None


@app.command("list")
def list_names(
    pattern: str | None = typer.Argument(
        None, help="Glob-like filter: '*' matches one name segment, a trailing '**' any number"
    ),
    session: bool = _SESSION,
    system: bool = _SYSTEM,
    started: bool = _STARTED,
    bus: str | None = _BUS,
    peer: str | None = _PEER,
    timeout: float | None = _TIMEOUT,
) -> None:
    """List the connection names on the bus, usable as --dest for other commands."""
    try:
        with _build_client(
            session=session, system=system, started=started, bus=bus, peer=peer, timeout=timeout
        ) as client:
            names = client.list(pattern)
    except DbusctlError as exc:
        raise _fail(exc) from None

    for name in names:
        typer.echo(name)


def run() -> None:
    app()


if __name__ == "__main__":
    run()
