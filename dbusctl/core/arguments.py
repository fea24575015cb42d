"""Parsing of command-line argument text into dynamic values."""

from __future__ import annotations

import re
from collections.abc import Hashable
from typing import Any

import yaml

from dbusctl.core.errors import ArgumentParseError

_DROPPED_TAGS = {"tag:yaml.org,2002:bool", "tag:yaml.org,2002:timestamp"}


class UniqueKeyLoader(yaml.SafeLoader):
    """YAML loader that rejects duplicate mapping keys.

    Only ``true``/``false`` resolve to booleans, and dates stay strings, so
    values like ``no`` or ``2024-01-01`` reach the bus as written.
    """


UniqueKeyLoader.yaml_implicit_resolvers = {
    first_char: [(tag, regexp) for tag, regexp in mappings if tag not in _DROPPED_TAGS]
    for first_char, mappings in yaml.SafeLoader.yaml_implicit_resolvers.items()
}
UniqueKeyLoader.add_implicit_resolver(
    "tag:yaml.org,2002:bool",
    re.compile(r"^(?:true|false)$"),
    list("tf"),
)


def _construct_mapping(loader: UniqueKeyLoader, node: yaml.Node, deep: bool = False) -> dict[Any, Any]:
    mapping: dict[Any, Any] = {}
    for key_node, value_node in node.value:
        key = loader.construct_object(key_node, deep=deep)
        if not isinstance(key, Hashable):
            raise yaml.constructor.ConstructorError(
                None, None, "found unhashable mapping key", key_node.start_mark
            )
        if key in mapping:
            raise yaml.constructor.ConstructorError(
                None, None, f"found duplicate key {key!r}", key_node.start_mark
            )
        mapping[key] = loader.construct_object(value_node, deep=deep)
    return mapping


UniqueKeyLoader.add_constructor(
    yaml.resolver.BaseResolver.DEFAULT_MAPPING_TAG,
    _construct_mapping,
)


def parse_argument(text: str) -> Any:
    """Read one argument: ``5000`` is an int, ``[a, b]`` a list, ``{}`` a record.

    Anything that is not a YAML number, boolean, null, list or mapping stays a
    string. Blank text is kept as the empty string.
    """
    if not text.strip():
        return text
    try:
        return yaml.load(text, Loader=UniqueKeyLoader)
    except yaml.YAMLError as exc:
        raise ArgumentParseError(f"Could not parse argument {text!r}: {exc}") from exc


def parse_arguments(texts: list[str]) -> list[Any]:
    return [parse_argument(text) for text in texts]
