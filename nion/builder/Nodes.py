"""
    Parsed node trees.

    A node is one element of a declarative description: a type name, an ordered mapping of properties, and an
    ordered list of children. Nodes are produced by a document parser (or built directly) and never change
    afterwards.
"""

from __future__ import annotations

# standard libraries
import dataclasses
import types
import typing

# third party libraries
# none

# local libraries
# none


NodeDescription = typing.Mapping[str, typing.Any]

NAME_PROPERTY = "name"
BIND_NODE_TYPE = "bind"
VALIDATE_NODE_TYPE = "validate"

# node types which do not create objects; they are processed after the tree has been built.
RESERVED_NODE_TYPES = frozenset({BIND_NODE_TYPE, VALIDATE_NODE_TYPE})


@dataclasses.dataclass(frozen=True)
class Reference:
    """A symbolic reference to a named object or a caller attribute, e.g. ``Reference("model.title")``."""
    path: str

    def __str__(self) -> str:
        return self.path


@dataclasses.dataclass(frozen=True)
class Node:
    type_name: str
    properties: typing.Mapping[str, typing.Any] = dataclasses.field(default_factory=dict)
    children: typing.Sequence[Node] = dataclasses.field(default_factory=tuple)

    def __post_init__(self) -> None:
        # freeze the containers so the parsed tree cannot be changed by accident during a build.
        object.__setattr__(self, "properties", types.MappingProxyType(dict(self.properties)))
        object.__setattr__(self, "children", tuple(self.children))

    @property
    def name(self) -> typing.Optional[str]:
        name = self.properties.get(NAME_PROPERTY)
        return str(name) if name is not None else None

    @property
    def is_reserved(self) -> bool:
        return self.type_name in RESERVED_NODE_TYPES

    def label(self) -> str:
        name = self.name
        return f"{self.type_name}[{name}]" if name else self.type_name

    def walk(self) -> typing.Iterator[Node]:
        yield self
        for child in self.children:
            yield from child.walk()


def create_node(type_name: str, *children: Node, **properties: typing.Any) -> Node:
    """Create a node with children and properties.

    Property order follows keyword order, which is the order in which properties get applied.
    """
    return Node(type_name, properties, children)


def node_from_description(d: NodeDescription) -> Node:
    """Convert a dictionary description into a node tree.

    The dictionary form is ``{"type": "panel", "name": "main", "children": [...]}``; every key other than ``type``
    and ``children`` is a property, in dictionary order.
    """
    type_name = d.get("type")
    if not isinstance(type_name, str) or not type_name:
        raise ValueError(f"Description is missing a 'type': {d!r}")
    properties = {k: v for k, v in d.items() if k not in ("type", "children")}
    children = [node_from_description(child) for child in d.get("children", list())]
    return Node(type_name, properties, children)
