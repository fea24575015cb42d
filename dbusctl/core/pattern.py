"""Glob-style matching of dot-separated bus names.

``*`` matches exactly one non-empty segment and ``**`` matches any number of
trailing segments (including none), so ``org.freedesktop.*`` matches
``org.freedesktop.DBus`` but not ``org.freedesktop.Management.Inhibit``.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from dbusctl.core.errors import InvalidPattern

SEPARATOR = "."
_ONE = "*"
_MANY = "**"


class SegmentKind(str, Enum):
    LITERAL = "literal"
    ONE = "one"
    MANY = "many"


@dataclass(frozen=True)
class SegmentMatcher:
    kind: SegmentKind
    text: str = ""


@dataclass(frozen=True)
class BusNamePattern:
    source: str
    matchers: tuple[SegmentMatcher, ...]

    def matches(self, name: str) -> bool:
        return matches(self, name)


def compile_pattern(text: str, separator: str = SEPARATOR) -> BusNamePattern:
    matchers: list[SegmentMatcher] = []
    segments = text.split(separator)
    for index, segment in enumerate(segments):
        if segment == _MANY:
            if index != len(segments) - 1:
                raise InvalidPattern(
                    f"'{_MANY}' may only appear as the last segment of pattern {text!r}"
                )
            matchers.append(SegmentMatcher(SegmentKind.MANY))
        elif segment == _ONE:
            matchers.append(SegmentMatcher(SegmentKind.ONE))
        else:
            matchers.append(SegmentMatcher(SegmentKind.LITERAL, segment))
    return BusNamePattern(source=text, matchers=tuple(matchers))


def matches(pattern: BusNamePattern, name: str, separator: str = SEPARATOR) -> bool:
    segments = name.split(separator)
    for index, matcher in enumerate(pattern.matchers):
        if matcher.kind is SegmentKind.MANY:
            return True
        if index >= len(segments):
            return False
        segment = segments[index]
        if matcher.kind is SegmentKind.ONE:
            if not segment:
                return False
        elif segment != matcher.text:
            return False
    return len(segments) == len(pattern.matchers)
