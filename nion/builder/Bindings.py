"""
    Data binding for ``bind`` nodes.

    A bind node maps target paths to source paths, e.g. ``{"name_field.text": "model.name, converter=int"}``.
    Targets are named objects of the build; sources are attribute paths on the caller. The
    ``@binding(model.name)`` form is accepted as well.
"""

from __future__ import annotations

# standard libraries
import re
import typing

# third party libraries
from nion.utils import Binding
from nion.utils import Converter

# local libraries
from nion.builder import Errors
from nion.builder import Validation

_BINDING_PATTERN = re.compile(r"^@binding\((.+)\)$")

NAMED_CONVERTERS: typing.Mapping[str, typing.Callable[[], typing.Any]] = {
    "int": Converter.IntegerToStringConverter,
    "float": Converter.FloatToStringConverter,
}


class Closeable(typing.Protocol):
    def close(self) -> None: ...


def parse_property_path(property_path: str, base: typing.Any) -> typing.Tuple[typing.Any, str, typing.Any]:
    """Follow a dotted path from base. Returns the object holding the last component, its name, and its value."""
    property_path_components = property_path.split('.')
    source = base
    for p in property_path_components[:-1]:
        source = getattr(source, p.strip())
    last_property_path_component = property_path_components[-1].strip()
    return source, last_property_path_component, getattr(source, last_property_path_component)


def parse_binding_expression(expression: str) -> typing.Tuple[str, typing.Optional[str]]:
    """Split ``"model.value, converter=name"`` (optionally wrapped in ``@binding(...)``) into path and converter."""
    m = _BINDING_PATTERN.match(expression.strip())
    if m:
        expression = m.group(1)
    parts = [p.strip() for p in expression.split(',')]
    converter_name = None
    for part in parts[1:]:
        if part.startswith("converter="):
            converter_name = part[len("converter="):].strip()
    return parts[0], converter_name


class _PropertyListener:
    """Copy a source property to a target attribute whenever the source reports a change."""

    def __init__(self, source: typing.Any, source_property: str, target: typing.Any, target_property: str,
                 converter: typing.Any) -> None:
        self.__source_property = source_property

        def property_changed(key: str) -> None:
            if key == self.__source_property:
                value = getattr(source, source_property)
                setattr(target, target_property, converter.convert(value) if converter else value)

        self.__listener = source.property_changed_event.listen(property_changed)

    def close(self) -> None:
        self.__listener.close()
        self.__listener = None


class _Unbinder:

    def __init__(self, target: typing.Any, target_property: str) -> None:
        self.__unbind_fn = getattr(target, "unbind_" + target_property, None)

    def close(self) -> None:
        if callable(self.__unbind_fn):
            self.__unbind_fn()
        self.__unbind_fn = None


def bind(target: typing.Any, target_property: str, caller: typing.Any, expression: str,
         node_path: typing.Optional[str] = None) -> typing.Optional[Closeable]:
    """Connect a target property to a source path on the caller.

    If the source is observable and the target has ``bind_<property>``, a ``PropertyBinding`` is handed to the
    target. If the source is observable otherwise, the value is copied now and on every change. A plain source
    value is copied once. Returns an object to close when the build result closes, if any.
    """
    source_path, converter_name = parse_binding_expression(expression)
    try:
        source, source_property, value = parse_property_path(source_path, caller)
    except AttributeError as e:
        raise Errors.ResolutionError(f"Cannot resolve binding source '{source_path}'", node_path=node_path,
                                     property_name=target_property) from e
    converter = None
    if converter_name:
        if converter_name in NAMED_CONVERTERS:
            converter = NAMED_CONVERTERS[converter_name]()
        else:
            converter = getattr(caller, converter_name, None)
            if converter is None:
                raise Errors.ResolutionError(f"Unknown converter '{converter_name}'", node_path=node_path,
                                             property_name=target_property)
    if hasattr(source, "property_changed_event"):
        if callable(getattr(target, "bind_" + target_property, None)):
            binding = Binding.PropertyBinding(source, source_property, converter=converter)
            getattr(target, "bind_" + target_property)(binding)
            return _Unbinder(target, target_property)
        setattr(target, target_property, converter.convert(value) if converter else value)
        return _PropertyListener(source, source_property, target, target_property, converter)
    setattr(target, target_property, converter.convert(value) if converter else value)
    return None


def process_bind_properties(properties: typing.Mapping[str, typing.Any], objects_by_name: typing.Mapping[str, typing.Any],
                            caller: typing.Any, node_path: typing.Optional[str] = None) -> typing.List[Closeable]:
    closeables: typing.List[Closeable] = list()
    for target_path, expression in properties.items():
        parts = target_path.split(".", 1)
        target_name = parts[0].strip()
        target_property = parts[1].strip() if len(parts) > 1 else Validation.DEFAULT_PROPERTY
        if target_name not in objects_by_name:
            raise Errors.ResolutionError(f"Unknown binding target '{target_name}'", node_path=node_path,
                                         property_name=target_path)
        closeable = bind(objects_by_name[target_name], target_property, caller, str(expression), node_path)
        if closeable:
            closeables.append(closeable)
    return closeables
