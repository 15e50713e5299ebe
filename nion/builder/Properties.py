"""
    Property binding.

    Applies the properties of a node to a newly constructed object: virtual properties expand into real ones,
    event properties are handed to the handler resolver, everything else is coerced to the setter's type and set.
"""

from __future__ import annotations

# standard libraries
import collections.abc
import enum
import re
import types
import typing

# third party libraries
from nion.utils import Converter
from nion.utils import Geometry

# local libraries
from nion.builder import Errors
from nion.builder import Nodes
from nion.builder import TypeRegistry

LocalizeFn = typing.Callable[[str], str]
ConnectEventFn = typing.Callable[[typing.Any, TypeRegistry.EventSpec, typing.Any, str, str], None]
ResolveReferenceFn = typing.Callable[[str], typing.Any]

_TRUE_STRINGS = ("true", "yes", "on", "1")
_FALSE_STRINGS = ("false", "no", "off", "0")


def _pair(value: typing.Any, property_name: str) -> typing.Tuple[int, int]:
    if isinstance(value, str):
        parts = [p for p in re.split(r"[x,\s]+", value.strip()) if p]
    else:
        parts = list(value)
    if len(parts) != 2:
        raise ValueError(f"'{property_name}' requires two values, got {value!r}")
    return int(parts[0]), int(parts[1])


def expand_size(value: typing.Any) -> typing.Mapping[str, typing.Any]:
    """Expand ``"200x100"``, ``[200, 100]``, a mapping or an ``IntSize`` into width and height."""
    if isinstance(value, Geometry.IntSize):
        return {"width": value.width, "height": value.height}
    if isinstance(value, collections.abc.Mapping):
        return {"width": int(value["width"]), "height": int(value["height"])}
    width, height = _pair(value, "size")
    return {"width": width, "height": height}


def expand_position(value: typing.Any) -> typing.Mapping[str, typing.Any]:
    """Expand ``"10,20"``, ``[10, 20]``, a mapping or an ``IntPoint`` into x and y."""
    if isinstance(value, Geometry.IntPoint):
        return {"x": value.x, "y": value.y}
    if isinstance(value, collections.abc.Mapping):
        return {"x": int(value["x"]), "y": int(value["y"])}
    x, y = _pair(value, "position")
    return {"x": x, "y": y}


DEFAULT_VIRTUAL_PROPERTIES: typing.Mapping[str, TypeRegistry.Expansion] = {
    "size": expand_size,
    "position": expand_position,
}


class PropertyBinder:
    """Apply node properties to an object described by a type descriptor.

    Properties are applied in declaration order. A property value that is a :py:class:`Nodes.Reference` resolves
    through ``resolve_reference``, which only sees objects that have already been built.
    """

    def __init__(self, type_registry: TypeRegistry.TypeRegistry, *, localize: LocalizeFn,
                 connect_event: ConnectEventFn, resolve_reference: ResolveReferenceFn) -> None:
        self.__type_registry = type_registry
        self.__localize = localize
        self.__connect_event = connect_event
        self.__resolve_reference = resolve_reference

    def apply(self, target: typing.Any, descriptor: TypeRegistry.TypeDescriptor,
              properties: typing.Mapping[str, typing.Any], node_path: str) -> None:
        for property_name, value in properties.items():
            if property_name == Nodes.NAME_PROPERTY and not descriptor.find_setter(property_name):
                continue
            virtual_property = descriptor.find_virtual_property(property_name)
            if virtual_property and not descriptor.find_setter(property_name):
                try:
                    expanded = virtual_property.expand(value)
                except (ValueError, TypeError, KeyError) as e:
                    raise Errors.CoercionError(f"Cannot expand {value!r}: {e}", node_path=node_path,
                                               property_name=property_name) from e
                for expanded_name, expanded_value in expanded.items():
                    self.apply_one(target, descriptor, expanded_name, expanded_value, node_path)
                continue
            self.apply_one(target, descriptor, property_name, value, node_path)

    def apply_one(self, target: typing.Any, descriptor: TypeRegistry.TypeDescriptor, property_name: str,
                  value: typing.Any, node_path: str) -> None:
        event_spec = descriptor.find_event(property_name)
        if event_spec:
            self.__connect_event(target, event_spec, value, property_name, node_path)
            return
        setter = descriptor.find_setter(property_name)
        if not setter:
            raise Errors.ResolutionError(f"Unknown property for type '{descriptor.type_name}'",
                                         node_path=node_path, property_name=property_name)
        setter.apply(target, self.coerce(value, setter, node_path))

    def coerce(self, value: typing.Any, setter: TypeRegistry.PropertySetter, node_path: str) -> typing.Any:
        if isinstance(value, Nodes.Reference):
            return self.__resolve_reference(value.path)
        if setter.constants is not None:
            if isinstance(value, list):
                return [self.__type_registry.resolve_constant(setter.constants, v, node_path, setter.name) for v in value]
            return self.__type_registry.resolve_constant(setter.constants, value, node_path, setter.name)
        try:
            return self.coerce_value(value, setter.value_type, setter.localizable)
        except Errors.CoercionError as e:
            raise Errors.CoercionError(e.message, node_path=node_path, property_name=setter.name) from e

    def coerce_value(self, value: typing.Any, value_type: typing.Any, localizable: bool = False) -> typing.Any:
        if value is None:
            return None
        if value_type is None or value_type is typing.Any or value_type is object or isinstance(value_type, str):
            return self.__localize(value) if localizable and isinstance(value, str) else value
        origin = typing.get_origin(value_type)
        if origin is typing.Union or origin is types.UnionType:
            return self.__coerce_union(value, value_type, localizable)
        if origin in (list, tuple, collections.abc.Sequence, collections.abc.MutableSequence, set, frozenset):
            args = typing.get_args(value_type)
            item_type = args[0] if args else None
            items = value if isinstance(value, (list, tuple, set, frozenset)) else [value]
            coerced = [self.coerce_value(item, item_type, localizable) for item in items]
            return tuple(coerced) if origin is tuple else (origin(coerced) if origin in (set, frozenset) else coerced)
        if origin is not None:
            return value
        if value_type is str:
            return self.__localize(str(value)) if localizable else str(value)
        if value_type is bool:
            return self.__coerce_bool(value)
        if value_type is int:
            return self.__coerce_int(value)
        if value_type is float:
            return self.__coerce_float(value)
        if isinstance(value_type, type) and issubclass(value_type, enum.Enum):
            return self.__type_registry.resolve_constant(TypeRegistry.ConstantTable.from_source(value_type), value)
        if isinstance(value_type, type) and isinstance(value, value_type):
            return value
        if isinstance(value, collections.abc.Mapping):
            return self.__construct_value_object(value, value_type)
        try:
            return value_type(value)
        except (TypeError, ValueError) as e:
            raise Errors.CoercionError(f"Cannot convert {value!r} to {getattr(value_type, '__name__', value_type)}") from e

    def __coerce_union(self, value: typing.Any, value_type: typing.Any, localizable: bool) -> typing.Any:
        args = [a for a in typing.get_args(value_type) if a is not type(None)]
        for arg in args:
            if isinstance(arg, type) and isinstance(value, arg):
                return value
        for arg in args:
            try:
                return self.coerce_value(value, arg, localizable)
            except Errors.CoercionError:
                continue
        raise Errors.CoercionError(f"Cannot convert {value!r} to {value_type}")

    def __coerce_bool(self, value: typing.Any) -> bool:
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            if value.strip().lower() in _TRUE_STRINGS:
                return True
            if value.strip().lower() in _FALSE_STRINGS:
                return False
        elif isinstance(value, int) and value in (0, 1):
            return bool(value)
        raise Errors.CoercionError(f"Cannot convert {value!r} to bool")

    def __coerce_int(self, value: typing.Any) -> int:
        if isinstance(value, bool):
            raise Errors.CoercionError(f"Cannot convert {value!r} to int")
        if isinstance(value, int):
            return value
        if isinstance(value, float) and value.is_integer():
            return int(value)
        try:
            return int(Converter.IntegerToStringConverter(fuzzy=False).convert_back(str(value).strip()))
        except ValueError as e:
            raise Errors.CoercionError(f"Cannot convert {value!r} to int") from e

    def __coerce_float(self, value: typing.Any) -> float:
        if isinstance(value, bool):
            raise Errors.CoercionError(f"Cannot convert {value!r} to float")
        if isinstance(value, (int, float)):
            return float(value)
        try:
            return float(Converter.FloatToStringConverter(fuzzy=False).convert_back(str(value).strip()))
        except (ValueError, TypeError) as e:
            raise Errors.CoercionError(f"Cannot convert {value!r} to float") from e

    def __construct_value_object(self, value: typing.Mapping[str, typing.Any], value_type: typing.Any) -> typing.Any:
        # nested value objects are constructed from keyword arguments, each coerced to the constructor's hints.
        hints = TypeRegistry.type_hints(value_type.__init__) if isinstance(value_type, type) else dict()
        kwargs = {k: self.coerce_value(v, hints.get(k)) for k, v in value.items()}
        try:
            return value_type(**kwargs)
        except TypeError as e:
            raise Errors.CoercionError(f"Cannot construct {getattr(value_type, '__name__', value_type)} from {dict(value)!r}") from e
