"""D-Bus type signature parsing and formatting.

A signature is parsed into a tree of frozen records: `Scalar` for the single
character codes (including the variant `v`), `Array`, `Struct`, and `Dict`
for the `a{..}` dictionary form. `parse` accepts any number of complete
types; `parse_single` requires exactly one.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from dbusctl.core.errors import MalformedSignature

BASIC_CODES = "ybnqiuxtdsogh"
SCALAR_CODES = BASIC_CODES + "v"
INTEGER_CODES = "ynqiuxth"

_MAX_SIGNATURE_LENGTH = 255
_MAX_NESTING = 32

_TYPE_NAMES = {
    "y": "byte",
    "b": "boolean",
    "n": "int16",
    "q": "uint16",
    "i": "int32",
    "u": "uint32",
    "x": "int64",
    "t": "uint64",
    "d": "double",
    "s": "string",
    "o": "object path",
    "g": "signature",
    "h": "unix fd",
    "v": "variant",
}


@dataclass(frozen=True)
class Scalar:
    code: str

    @property
    def is_basic(self) -> bool:
        return self.code in BASIC_CODES


@dataclass(frozen=True)
class Array:
    element: Signature


@dataclass(frozen=True)
class Struct:
    members: tuple[Signature, ...]


@dataclass(frozen=True)
class Dict:
    key: Scalar
    value: Signature


Signature = Scalar | Array | Struct | Dict

BYTE = Scalar("y")
BOOLEAN = Scalar("b")
INT16 = Scalar("n")
UINT16 = Scalar("q")
INT32 = Scalar("i")
UINT32 = Scalar("u")
INT64 = Scalar("x")
UINT64 = Scalar("t")
DOUBLE = Scalar("d")
STRING = Scalar("s")
OBJECT_PATH = Scalar("o")
SIGNATURE = Scalar("g")
UNIX_FD = Scalar("h")
VARIANT = Scalar("v")


class _Cursor:
    def __init__(self, text: str) -> None:
        self.text = text
        self.pos = 0

    @property
    def done(self) -> bool:
        return self.pos >= len(self.text)

    def peek(self) -> str | None:
        return None if self.done else self.text[self.pos]

    def take(self) -> str:
        char = self.text[self.pos]
        self.pos += 1
        return char

    def fail(self, reason: str) -> MalformedSignature:
        return MalformedSignature(f"{reason} at position {self.pos} in signature {self.text!r}")


def _parse_one(cursor: _Cursor, arrays: int, structs: int) -> Signature:
    if cursor.done:
        raise cursor.fail("unexpected end")
    code = cursor.take()

    if code in SCALAR_CODES:
        return Scalar(code)

    if code == "a":
        if arrays >= _MAX_NESTING:
            raise cursor.fail("arrays nested too deeply")
        if cursor.peek() != "{":
            return Array(_parse_one(cursor, arrays + 1, structs))
        cursor.take()
        key = _parse_one(cursor, arrays + 1, structs)
        if not isinstance(key, Scalar) or not key.is_basic:
            raise cursor.fail("dict key must be a basic type")
        value = _parse_one(cursor, arrays + 1, structs)
        if cursor.peek() != "}":
            if cursor.done:
                raise cursor.fail("unterminated dict entry")
            raise cursor.fail("dict entry must hold exactly one key and one value")
        cursor.take()
        return Dict(key, value)

    if code == "(":
        if structs >= _MAX_NESTING:
            raise cursor.fail("structs nested too deeply")
        members: list[Signature] = []
        while cursor.peek() != ")":
            if cursor.done:
                raise cursor.fail("unterminated struct")
            members.append(_parse_one(cursor, arrays, structs + 1))
        cursor.take()
        if not members:
            raise cursor.fail("empty struct")
        return Struct(tuple(members))

    if code == "{":
        raise cursor.fail("dict entry outside of an array")
    if code in ")}":
        raise cursor.fail(f"unmatched {code!r}")
    raise cursor.fail(f"unknown type code {code!r}")


def parse(text: str) -> tuple[Signature, ...]:
    """Parse a signature made of zero or more complete types."""
    if len(text) > _MAX_SIGNATURE_LENGTH:
        raise MalformedSignature(
            f"signature exceeds {_MAX_SIGNATURE_LENGTH} characters: {text[:32]!r}..."
        )
    cursor = _Cursor(text)
    types: list[Signature] = []
    while not cursor.done:
        types.append(_parse_one(cursor, 0, 0))
    return tuple(types)


def parse_single(text: str) -> Signature:
    """Parse a signature that must contain exactly one complete type."""
    types = parse(text)
    if len(types) != 1:
        raise MalformedSignature(
            f"expected a single complete type, found {len(types)} in signature {text!r}"
        )
    return types[0]


def to_text(signature: Signature) -> str:
    if isinstance(signature, Scalar):
        return signature.code
    if isinstance(signature, Array):
        return "a" + to_text(signature.element)
    if isinstance(signature, Struct):
        return "(" + "".join(to_text(m) for m in signature.members) + ")"
    return "a{" + to_text(signature.key) + to_text(signature.value) + "}"


def to_text_all(signatures: Iterable[Signature]) -> str:
    return "".join(to_text(s) for s in signatures)


def describe(signature: Signature) -> str:
    """Human-readable name used in error messages, e.g. ``int32`` or ``array 'as'``."""
    if isinstance(signature, Scalar):
        return _TYPE_NAMES[signature.code]
    if isinstance(signature, Array):
        kind = "array"
    elif isinstance(signature, Struct):
        kind = "struct"
    else:
        kind = "dict"
    return f"{kind} '{to_text(signature)}'"
