"""Conversion between dynamic Python values and typed wire values.

`encode` coerces a value into the shape a signature demands and fails with a
specific `EncodeError` subclass when it cannot. `decode` is the inverse and
never fails for a well-formed `WireValue`. `infer_signature` is the shape
mapping used for variants without an explicit type and for guessing call
signatures when introspection is disabled.
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from datetime import timedelta
from typing import Any

from dbusctl.core.errors import (
    AmbiguousVariant,
    ArityMismatch,
    MalformedSignature,
    OutOfRange,
    TypeMismatch,
)
from dbusctl.core.model import WireValue
from dbusctl.core.signature import (
    BOOLEAN,
    BYTE,
    DOUBLE,
    INT64,
    INTEGER_CODES,
    STRING,
    UINT64,
    VARIANT,
    Array,
    Dict,
    Scalar,
    Signature,
    Struct,
    describe,
    parse,
)

_INTEGER_RANGES = {
    "y": (0, 2**8 - 1),
    "n": (-(2**15), 2**15 - 1),
    "q": (0, 2**16 - 1),
    "i": (-(2**31), 2**31 - 1),
    "u": (0, 2**32 - 1),
    "x": (-(2**63), 2**63 - 1),
    "t": (0, 2**64 - 1),
    "h": (0, 2**32 - 1),
}
_OBJECT_PATH_RE = re.compile(r"^/([A-Za-z0-9_]+(/[A-Za-z0-9_]+)*)?$")


def _kind(value: Any) -> str:
    if value is None:
        return "nothing"
    if isinstance(value, bool):
        return "bool"
    if isinstance(value, int):
        return "int"
    if isinstance(value, float):
        return "float"
    if isinstance(value, str):
        return "string"
    if isinstance(value, (bytes, bytearray)):
        return "binary"
    if isinstance(value, (list, tuple)):
        return "list"
    if isinstance(value, Mapping):
        return "record"
    if isinstance(value, timedelta):
        return "duration"
    return type(value).__name__


def _mismatch(signature: Signature, value: Any, where: str) -> TypeMismatch:
    return TypeMismatch(f"expected {describe(signature)}, got {_kind(value)}", where=where)


def _child(where: str, suffix: str) -> str:
    return f"{where}{suffix}" if where else suffix.lstrip(".")


def _is_list(value: Any) -> bool:
    return isinstance(value, (list, tuple))


def _nanoseconds(value: timedelta) -> int:
    return (value.days * 86_400 + value.seconds) * 1_000_000_000 + value.microseconds * 1_000


def _number(value: Any, signature: Scalar, where: str) -> int | float:
    if isinstance(value, bool) or not isinstance(value, (int, float, timedelta)):
        raise _mismatch(signature, value, where)
    if isinstance(value, timedelta):
        return _nanoseconds(value)
    return value


def _encode_integer(value: Any, signature: Scalar, where: str) -> int:
    number = _number(value, signature, where)
    if isinstance(number, float):
        if not number.is_integer():
            raise OutOfRange(f"{number!r} is not an integer ({describe(signature)})", where=where)
        number = int(number)
    low, high = _INTEGER_RANGES[signature.code]
    if not low <= number <= high:
        raise OutOfRange(
            f"{number} does not fit in {describe(signature)} ({low}..{high})", where=where
        )
    return number


def _encode_double(value: Any, signature: Scalar, where: str) -> float:
    number = _number(value, signature, where)
    if isinstance(number, float):
        return number
    try:
        converted = float(number)
    except OverflowError as exc:
        raise OutOfRange(f"{number} does not fit in a double", where=where) from exc
    if int(converted) != number:
        raise OutOfRange(f"{number} cannot be represented exactly as a double", where=where)
    return converted


def _encode_scalar(value: Any, signature: Scalar, where: str) -> Any:
    code = signature.code
    if code in INTEGER_CODES:
        return _encode_integer(value, signature, where)
    if code == "d":
        return _encode_double(value, signature, where)
    if code == "b":
        if not isinstance(value, bool):
            raise _mismatch(signature, value, where)
        return value

    if not isinstance(value, str):
        raise _mismatch(signature, value, where)
    if "\0" in value:
        raise TypeMismatch(f"{describe(signature)} must not contain NUL characters", where=where)
    if code == "o" and not _OBJECT_PATH_RE.match(value):
        raise TypeMismatch(f"{value!r} is not a valid object path", where=where)
    if code == "g":
        try:
            parse(value)
        except MalformedSignature as exc:
            raise TypeMismatch(str(exc), where=where) from exc
    return value


def _scalar_text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _parse_key_text(key: str, signature: Scalar, where: str) -> Any:
    code = signature.code
    try:
        if code == "b":
            if key not in ("true", "false"):
                raise ValueError(key)
            return key == "true"
        if code == "d":
            return float(key)
        return int(key, 10)
    except ValueError as exc:
        raise TypeMismatch(
            f"record key {key!r} cannot be read as {describe(signature)}", where=where
        ) from exc


def _encode_key(key: Any, signature: Scalar, where: str) -> WireValue:
    if signature.code in "sog":
        if isinstance(key, (bool, int, float)):
            key = _scalar_text(key)
    elif isinstance(key, str):
        key = _parse_key_text(key, signature, where)
    return WireValue(signature, _encode_scalar(key, signature, where))


def encode(value: Any, signature: Signature, *, where: str = "") -> WireValue:
    """Convert `value` into a `WireValue` of type `signature`.

    `where` names the position being encoded (for example ``argument 2``) and
    is extended with list indexes and record keys while recursing, so errors
    point at the exact offending element.
    """
    if isinstance(signature, Scalar):
        if signature.code == "v":
            return encode_variant(value, where=where)
        return WireValue(signature, _encode_scalar(value, signature, where))

    if isinstance(signature, Array):
        if signature.element == BYTE and isinstance(value, (bytes, bytearray)):
            return WireValue(signature, tuple(WireValue(BYTE, b) for b in value))
        if not _is_list(value):
            raise _mismatch(signature, value, where)
        return WireValue(
            signature,
            tuple(
                encode(item, signature.element, where=_child(where, f"[{index}]"))
                for index, item in enumerate(value)
            ),
        )

    if isinstance(signature, Struct):
        if not _is_list(value):
            raise _mismatch(signature, value, where)
        if len(value) != len(signature.members):
            raise ArityMismatch(
                f"{describe(signature)} has {len(signature.members)} members, "
                f"got a list of {len(value)}",
                where=where,
            )
        return WireValue(
            signature,
            tuple(
                encode(item, member, where=_child(where, f"[{index}]"))
                for index, (item, member) in enumerate(zip(value, signature.members))
            ),
        )

    if not isinstance(value, Mapping):
        raise _mismatch(signature, value, where)
    entries = []
    for key, item in value.items():
        entry_where = _child(where, f".{key}")
        entries.append(
            (
                _encode_key(key, signature.key, entry_where),
                encode(item, signature.value, where=entry_where),
            )
        )
    return WireValue(signature, tuple(entries))


def encode_variant(value: Any, inner: Signature | None = None, *, where: str = "") -> WireValue:
    """Wrap `value` in a variant, inferring the inner signature when not given."""
    if inner is None:
        inner = infer_signature(value, where=where)
    return WireValue(VARIANT, encode(value, inner, where=where))


def _unify(
    signatures: Sequence[Signature], values: Sequence[Any], what: str, where: str
) -> Signature:
    first = signatures[0]
    if all(s == first for s in signatures):
        return first
    if all(s in (INT64, UINT64) for s in signatures) and all(
        isinstance(v, int) and not isinstance(v, bool) and v >= 0 for v in values
    ):
        return UINT64
    if all(s in (INT64, DOUBLE) for s in signatures):
        return DOUBLE
    kinds = ", ".join(sorted({describe(s) for s in signatures}))
    raise AmbiguousVariant(
        f"{what} mixes {kinds}; give an explicit signature", where=where
    )


def infer_signature(value: Any, *, where: str = "") -> Signature:
    """Infer a wire type from the shape of a dynamic value.

    bool -> b, int -> x (t above the int64 range), duration -> x, float -> d,
    str -> s, bytes -> ay, list -> array of the unified element type (av when
    empty), record -> a{s...} of the unified value type (a{sv} when empty).
    """
    if value is None:
        raise TypeMismatch("cannot infer a D-Bus type for nothing", where=where)
    if isinstance(value, bool):
        return BOOLEAN
    if isinstance(value, int):
        return UINT64 if value > _INTEGER_RANGES["x"][1] else INT64
    if isinstance(value, timedelta):
        return INT64
    if isinstance(value, float):
        return DOUBLE
    if isinstance(value, str):
        return STRING
    if isinstance(value, (bytes, bytearray)):
        return Array(BYTE)
    if _is_list(value):
        if not value:
            return Array(VARIANT)
        elements = [
            infer_signature(item, where=_child(where, f"[{index}]"))
            for index, item in enumerate(value)
        ]
        return Array(_unify(elements, value, "list", where))
    if isinstance(value, Mapping):
        if not value:
            return Dict(STRING, VARIANT)
        if all(isinstance(key, str) for key in value):
            key_signature: Signature = STRING
        else:
            key_signature = _unify(
                [infer_signature(key, where=where) for key in value],
                list(value),
                "record keys",
                where,
            )
            if not isinstance(key_signature, Scalar) or not key_signature.is_basic:
                raise TypeMismatch(
                    f"record keys must be a basic type, not {describe(key_signature)}",
                    where=where,
                )
        values = [
            infer_signature(item, where=_child(where, f".{key}")) for key, item in value.items()
        ]
        return Dict(key_signature, _unify(values, list(value.values()), "record", where))
    raise TypeMismatch(f"cannot infer a D-Bus type for {_kind(value)}", where=where)


def guess_signature(values: Sequence[Any]) -> tuple[Signature, ...]:
    """Best-effort signature for call arguments when introspection is off.

    Every integer becomes an int64, so methods expecting narrower integer
    types will reject the call; pass an explicit signature for those.
    """
    return tuple(
        infer_signature(value, where=f"argument {index + 1}")
        for index, value in enumerate(values)
    )


def _key_text(key: WireValue) -> str:
    return _scalar_text(key.value)


def decode(wire: WireValue) -> Any:
    """Convert a `WireValue` back into a dynamic Python value.

    Structs become lists, dicts become records with string keys, byte arrays
    become `bytes`, and variants are transparent.
    """
    signature = wire.signature
    if isinstance(signature, Scalar):
        if signature.code == "v" and isinstance(wire.value, WireValue):
            return decode(wire.value)
        return wire.value
    if isinstance(signature, Array):
        if signature.element == BYTE:
            return bytes(item.value for item in wire.value)
        return [decode(item) for item in wire.value]
    if isinstance(signature, Struct):
        return [decode(item) for item in wire.value]
    return {_key_text(key): decode(item) for key, item in wire.value}
