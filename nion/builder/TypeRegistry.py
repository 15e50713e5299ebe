"""
    Type registry.

    Maps declared type names to type descriptors. A descriptor knows how to construct an object, which properties
    it accepts, which of them are events, and how children get added to it.

    Descriptors are computed by introspecting a class once; the result is cached process-wide. Registration is
    expected to happen before builds start; lookups may happen concurrently from any thread.
"""

from __future__ import annotations

# standard libraries
import collections.abc
import dataclasses
import enum
import functools
import inspect
import re
import threading
import types
import typing

# third party libraries
from nion.utils import Registry

# local libraries
from nion.builder import Errors

ConstantSource = typing.Union[typing.Type[enum.Enum], typing.Mapping[str, typing.Any]]
Setter = typing.Callable[[typing.Any, typing.Any], None]
Expansion = typing.Callable[[typing.Any], typing.Mapping[str, typing.Any]]
AddChildFn = typing.Callable[[typing.Any, typing.Any], None]

TYPE_PROVIDER_COMPONENT = "builder_type_provider"


def normalize_name(name: str) -> str:
    """Return the lookup form of a property name: lower case, no separators.

    ``toolTip``, ``tool_tip`` and ``Tool-Tip`` all normalize to ``tooltip``.
    """
    return re.sub(r"[_\-\s]", "", name).lower()


def lower_camel_case(name: str) -> str:
    """Return the lowerCamelCase form of a constant name, e.g. ``ALIGN_LEFT`` becomes ``alignLeft``."""
    parts = [p for p in name.split("_") if p]
    if not parts:
        return name
    return parts[0].lower() + "".join(p[:1].upper() + p[1:].lower() for p in parts[1:])


class ConstantTable:
    """Named constants (enum members or integer constants) accepting exact or lowerCamelCase names.

    Two different constants normalizing to the same token are rejected when the table is created.
    """

    def __init__(self, name: str, constants: typing.Mapping[str, typing.Any]) -> None:
        self.name = name
        self.__exact: typing.Dict[str, typing.Any] = dict(constants)
        self.__normalized: typing.Dict[str, typing.Tuple[str, typing.Any]] = dict()
        for constant_name, value in constants.items():
            token = lower_camel_case(constant_name)
            existing = self.__normalized.get(token)
            if existing is not None and existing[1] != value:
                raise Errors.ConfigurationError(
                    f"Constants '{existing[0]}' and '{constant_name}' of {name} both normalize to '{token}'")
            self.__normalized[token] = (constant_name, value)

    @classmethod
    def from_source(cls, source: ConstantSource, name: typing.Optional[str] = None) -> ConstantTable:
        if isinstance(source, type) and issubclass(source, enum.Enum):
            # __members__ includes aliases, which map to the same value and so never conflict.
            return cls(name or source.__name__, dict(source.__members__))
        return cls(name or "constants", typing.cast(typing.Mapping[str, typing.Any], source))

    @property
    def names(self) -> typing.Sequence[str]:
        return list(self.__exact.keys())

    def lookup(self, token: str) -> typing.Any:
        if token in self.__exact:
            return self.__exact[token]
        entry = self.__normalized.get(token)
        if entry is None:
            entry = self.__normalized.get(lower_camel_case(token))
        if entry is None:
            raise KeyError(token)
        return entry[1]

    def __contains__(self, token: str) -> bool:
        try:
            self.lookup(token)
            return True
        except KeyError:
            return False


@dataclasses.dataclass
class PropertySetter:
    name: str
    value_type: typing.Any = None
    setter: typing.Optional[Setter] = None
    localizable: bool = False
    constants: typing.Optional[ConstantTable] = None

    def apply(self, target: typing.Any, value: typing.Any) -> None:
        if self.setter:
            self.setter(target, value)
        else:
            setattr(target, self.name, value)


@dataclasses.dataclass
class VirtualProperty:
    """A property that expands into one or more real property assignments."""
    name: str
    expand: Expansion


@dataclasses.dataclass
class EventSpec:
    name: str
    event_type: type = object


@dataclasses.dataclass
class TypeDescriptor:
    type_name: str
    python_type: type
    constructor: typing.Callable[[], typing.Any]
    property_setters: typing.Dict[str, PropertySetter] = dataclasses.field(default_factory=dict)
    virtual_properties: typing.Dict[str, VirtualProperty] = dataclasses.field(default_factory=dict)
    events: typing.Dict[str, EventSpec] = dataclasses.field(default_factory=dict)
    add_child: typing.Optional[AddChildFn] = None
    existing: bool = False
    caller_field: typing.Optional[str] = None

    def __post_init__(self) -> None:
        self.__normalized_setters = {normalize_name(k): v for k, v in self.property_setters.items()}
        self.__normalized_events = {normalize_name(k): v for k, v in self.events.items()}

    def find_setter(self, property_name: str) -> typing.Optional[PropertySetter]:
        setter = self.property_setters.get(property_name)
        return setter if setter else self.__normalized_setters.get(normalize_name(property_name))

    def find_event(self, property_name: str) -> typing.Optional[EventSpec]:
        event_spec = self.events.get(property_name)
        return event_spec if event_spec else self.__normalized_events.get(normalize_name(property_name))

    def find_virtual_property(self, property_name: str) -> typing.Optional[VirtualProperty]:
        virtual_property = self.virtual_properties.get(property_name)
        if virtual_property:
            return virtual_property
        normalized = normalize_name(property_name)
        for name, virtual_property in self.virtual_properties.items():
            if normalize_name(name) == normalized:
                return virtual_property
        return None

    def with_virtual_properties(self, virtual_properties: typing.Mapping[str, VirtualProperty]) -> TypeDescriptor:
        merged = dict(virtual_properties)
        merged.update(self.virtual_properties)
        return dataclasses.replace(self, virtual_properties=merged)


class TypeProvider(typing.Protocol):
    def resolve_type(self, type_name: str) -> typing.Optional[TypeDescriptor]: ...


def type_hints(o: typing.Any) -> typing.Dict[str, typing.Any]:
    # annotations that cannot be evaluated (unknown forward references) are treated as missing.
    try:
        return typing.get_type_hints(o)
    except (NameError, TypeError, AttributeError):
        return dict(getattr(o, "__annotations__", dict()))


def _unwrap_optional(value_type: typing.Any) -> typing.Any:
    if typing.get_origin(value_type) in (typing.Union, types.UnionType):
        args = [a for a in typing.get_args(value_type) if a is not type(None)]
        if len(args) == 1:
            return args[0]
    return value_type


def _is_event_type(value_type: typing.Any) -> bool:
    if isinstance(value_type, str):
        return "Callable" in value_type
    return typing.get_origin(_unwrap_optional(value_type)) is collections.abc.Callable


_field_cache: typing.Dict[type, typing.Dict[str, typing.Any]] = dict()
_field_cache_lock = threading.RLock()


def declared_fields(cls: type) -> typing.Mapping[str, typing.Any]:
    """Return the annotated attributes of a class and its bases, name to declared type. Cached per class."""
    fields = _field_cache.get(cls)
    if fields is None:
        fields = dict()
        for base in reversed(cls.__mro__):
            if base is object:
                continue
            hints = type_hints(base)
            for name in inspect.get_annotations(base).keys():
                fields[name] = hints.get(name, typing.Any)
            for name, attribute in vars(base).items():
                if isinstance(attribute, property):
                    fields[name] = type_hints(attribute.fget).get("return", typing.Any) if attribute.fget else typing.Any
        with _field_cache_lock:
            _field_cache[cls] = fields
    return fields


def describe_type(cls: type, *, type_name: typing.Optional[str] = None,
                  constructor: typing.Optional[typing.Callable[[], typing.Any]] = None,
                  localizable: typing.Iterable[str] = (),
                  constants: typing.Optional[typing.Mapping[str, ConstantSource]] = None,
                  events: typing.Optional[typing.Mapping[str, type]] = None,
                  virtual_properties: typing.Optional[typing.Mapping[str, Expansion]] = None,
                  add_child: typing.Optional[AddChildFn] = None) -> TypeDescriptor:
    """Build a type descriptor by introspecting a class.

    Settable properties are the writable ``property`` objects and the annotated attributes of the class and its
    bases. Names starting with ``on_`` whose annotation is a callable type are events; ``events`` supplies their
    event types. Properties annotated with an enum type resolve enum member names; ``constants`` attaches named
    integer constants to a property.

    If the class defines an ``add`` method, it is used to add children unless ``add_child`` is given.
    """
    localizable = set(localizable)
    constants = constants or dict()
    events = events or dict()
    setters: typing.Dict[str, PropertySetter] = dict()
    event_specs: typing.Dict[str, EventSpec] = dict()
    for name, value_type in declared_fields(cls).items():
        if name.startswith("_"):
            continue
        attribute = inspect.getattr_static(cls, name, None)
        if isinstance(attribute, property):
            if attribute.fset is None:
                continue
            parameters = list(inspect.signature(attribute.fset).parameters.values())
            if len(parameters) == 2:
                value_type = type_hints(attribute.fset).get(parameters[1].name, value_type)
        value_type = _unwrap_optional(value_type)
        if name in events or (name.startswith("on_") and _is_event_type(value_type)):
            event_specs[name] = EventSpec(name, events.get(name, object))
            continue
        constant_table = None
        if name in constants:
            constant_table = ConstantTable.from_source(constants[name], f"{cls.__name__}.{name}")
        elif isinstance(value_type, type) and issubclass(value_type, enum.Enum):
            constant_table = _enum_table(value_type)
        setters[name] = PropertySetter(name, value_type, None, name in localizable, constant_table)
    for name in events:
        event_specs.setdefault(name, EventSpec(name, events[name]))
    if add_child is None and callable(getattr(cls, "add", None)):
        def add_child(parent: typing.Any, child: typing.Any) -> None:
            parent.add(child)
    return TypeDescriptor(
        type_name=type_name or cls.__name__,
        python_type=cls,
        constructor=constructor or cls,
        property_setters=setters,
        virtual_properties={k: VirtualProperty(k, v) for k, v in (virtual_properties or dict()).items()},
        events=event_specs,
        add_child=add_child
    )


@functools.lru_cache(maxsize=None)
def _enum_table(enum_type: typing.Type[enum.Enum]) -> ConstantTable:
    return ConstantTable.from_source(enum_type)


class TypeRegistry:
    """Registered type names and their descriptors.

    Resolution order for a type name: exact registered name, then a caller attribute of the same name (the object
    it holds, or a new object of its declared class when unset), then registered type providers
    (``builder_type_provider`` components).
    """

    def __init__(self) -> None:
        self.__descriptors: typing.Dict[str, TypeDescriptor] = dict()
        self.__virtual_properties: typing.Dict[str, VirtualProperty] = dict()
        self.__lock = threading.RLock()

    def register(self, cls: type, type_name: typing.Optional[str] = None, **kwargs: typing.Any) -> TypeDescriptor:
        """Register a class under a type name (default: the class name). See :py:func:`describe_type`."""
        descriptor = describe_type(cls, type_name=type_name, **kwargs)
        return self.register_descriptor(descriptor)

    def register_descriptor(self, descriptor: TypeDescriptor) -> TypeDescriptor:
        with self.__lock:
            self.__descriptors[descriptor.type_name] = descriptor
        return descriptor

    def register_virtual_property(self, name: str, expand: Expansion) -> None:
        """Register a virtual property available on every type which does not define its own."""
        with self.__lock:
            self.__virtual_properties[name] = VirtualProperty(name, expand)

    @property
    def type_names(self) -> typing.Sequence[str]:
        return list(self.__descriptors.keys())

    def get_descriptor(self, type_name: str) -> typing.Optional[TypeDescriptor]:
        descriptor = self.__descriptors.get(type_name)
        return descriptor.with_virtual_properties(self.__virtual_properties) if descriptor else None

    def find_descriptor_for_type(self, python_type: type) -> typing.Optional[TypeDescriptor]:
        with self.__lock:
            descriptors = list(self.__descriptors.values())
        for descriptor in descriptors:
            if descriptor.python_type is python_type:
                return descriptor
        return None

    def resolve(self, type_name: str, callers: typing.Sequence[typing.Any] = (),
                node_path: typing.Optional[str] = None) -> TypeDescriptor:
        descriptor = self.get_descriptor(type_name)
        if descriptor:
            return descriptor
        for caller in callers:
            if type_name not in declared_fields(type(caller)) and type_name not in getattr(caller, "__dict__", dict()):
                continue
            existing = getattr(caller, type_name, None)
            if existing is not None:
                # an object the caller already holds is configured in place, with its registered setters if any.
                registered = self.find_descriptor_for_type(type(existing))
                if registered:
                    descriptor = dataclasses.replace(registered, type_name=type_name, constructor=lambda existing=existing: existing)
                else:
                    descriptor = describe_type(type(existing), type_name=type_name, constructor=lambda existing=existing: existing)
                descriptor.existing = True
                descriptor.caller_field = type_name
                return descriptor.with_virtual_properties(self.__virtual_properties)
            # an unset field constructs a new object of its declared class; reference binding assigns it later.
            declared_type = _unwrap_optional(declared_fields(type(caller)).get(type_name))
            if isinstance(declared_type, type) and declared_type is not object:
                registered = self.find_descriptor_for_type(declared_type)
                if registered:
                    descriptor = dataclasses.replace(registered, type_name=type_name)
                else:
                    descriptor = describe_type(declared_type, type_name=type_name)
                descriptor.caller_field = type_name
                return descriptor.with_virtual_properties(self.__virtual_properties)
        for type_provider in typing.cast(typing.Sequence[TypeProvider], Registry.get_components_by_type(TYPE_PROVIDER_COMPONENT)):
            descriptor = type_provider.resolve_type(type_name)
            if descriptor:
                return descriptor.with_virtual_properties(self.__virtual_properties)
        raise Errors.ResolutionError(f"Unknown type '{type_name}'", node_path=node_path)

    def resolve_constant(self, constant_table: ConstantTable, token: typing.Any, node_path: typing.Optional[str] = None,
                         property_name: typing.Optional[str] = None) -> typing.Any:
        if not isinstance(token, str):
            return token
        try:
            return constant_table.lookup(token)
        except KeyError:
            raise Errors.CoercionError(
                f"'{token}' is not one of {', '.join(constant_table.names)} ({constant_table.name})",
                node_path=node_path, property_name=property_name) from None
