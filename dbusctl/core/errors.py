"""Domain-specific errors for dbusctl."""


class DbusctlError(Exception):
    """Base error for dbusctl."""


class ConfigError(DbusctlError):
    """Raised when configuration files or options cannot be used."""


class ParseError(DbusctlError):
    """Raised when signature, pattern, or argument text is malformed."""


class MalformedSignature(ParseError):
    """Raised on unknown type codes, unmatched brackets, or bad dict entries."""


class InvalidPattern(ParseError):
    """Raised when a bus name pattern cannot be compiled."""


class ArgumentParseError(ParseError):
    """Raised when command-line argument text is not a valid value."""


class EncodeError(DbusctlError):
    """Base error for values that cannot be converted to a wire value."""

    def __init__(self, message: str, *, where: str = "") -> None:
        super().__init__(f"{where}: {message}" if where else message)
        self.where = where
        self.reason = message


class TypeMismatch(EncodeError):
    """Raised when a value's kind does not fit the wire type."""


class OutOfRange(EncodeError):
    """Raised when a number cannot be represented exactly in the wire type."""


class ArityMismatch(EncodeError):
    """Raised when a list's length differs from a struct's member count."""


class AmbiguousVariant(EncodeError):
    """Raised when no single signature can be inferred for a variant."""


class ArgumentCountMismatch(EncodeError):
    """Raised when the number of arguments differs from the signature."""


class ResolutionError(DbusctlError):
    """Base error for introspection-based signature resolution."""


class IntrospectionUnavailable(ResolutionError):
    """Raised when the target object does not implement introspection."""


class MalformedIntrospection(ResolutionError):
    """Raised when introspection XML cannot be parsed."""


class NotFound(ResolutionError):
    """Raised when an interface, method, or property is not introspected."""


class PropertyNotWritable(ResolutionError):
    """Raised when setting a property whose access does not permit writing."""


class TransportError(DbusctlError):
    """Base transport error."""


class TransportConnectError(TransportError):
    """Raised when a bus connection cannot be established."""


class TransportSendError(TransportError):
    """Raised when a message cannot be sent or its reply cannot be read."""


class TransportTimeoutError(TransportError):
    """Raised when no reply arrives within the timeout."""


class BusError(TransportError):
    """Raised when the bus or the remote object replies with an error."""

    def __init__(self, name: str, message: str = "") -> None:
        super().__init__(f"{name}: {message}" if message else name)
        self.name = name
        self.message = message


class MalformedReply(BusError):
    """Raised when a reply does not have the expected shape."""

    def __init__(self, message: str) -> None:
        super().__init__("org.freedesktop.DBus.Error.InvalidSignature", message)
