"""
    Reference binding.

    After a named object is built, it is assigned to the matching attribute of the caller. Nested builds search
    the enclosing callers too, innermost first. An attribute matches by name; its declared type must accept the
    object.
"""

from __future__ import annotations

# standard libraries
import inspect
import re
import types
import typing

# third party libraries
# none

# local libraries
from nion.builder import Errors
from nion.builder import TypeRegistry

_IGNORED_ANNOTATION_NAMES = frozenset({"typing", "Optional", "Union", "None", "ClassVar"})


def is_assignable(value: typing.Any, declared_type: typing.Any) -> bool:
    """Return whether value may be stored in an attribute declared with declared_type.

    String annotations (unevaluated forward references) match by class name against the value's type and bases.
    """
    if declared_type is None or declared_type is typing.Any or declared_type is object:
        return True
    if isinstance(declared_type, str):
        names = {t.split(".")[-1] for t in re.findall(r"[A-Za-z_][\w.]*", declared_type)} - _IGNORED_ANNOTATION_NAMES
        return "Any" in names or any(base.__name__ in names for base in type(value).__mro__)
    origin = typing.get_origin(declared_type)
    if origin is typing.Union or origin is types.UnionType:
        return any(is_assignable(value, arg) for arg in typing.get_args(declared_type) if arg is not type(None))
    if origin is not None:
        return isinstance(origin, type) and isinstance(value, origin)
    if isinstance(declared_type, type):
        if getattr(declared_type, "_is_protocol", False) and not getattr(declared_type, "_is_runtime_protocol", False):
            # plain protocols cannot be checked at runtime.
            return True
        return isinstance(value, declared_type)
    return True


class ReferenceBinder:

    def bind(self, built_object: typing.Any, name: str, callers: typing.Sequence[typing.Any],
             node_path: typing.Optional[str] = None) -> typing.Optional[typing.Any]:
        """Assign built_object to the first caller declaring an attribute called name.

        Returns the caller that received the object or None if no caller declares such an attribute. Raises a
        resolution error if the attribute's declared type does not accept the object.
        """
        for caller in callers:
            fields = TypeRegistry.declared_fields(type(caller))
            if name in fields:
                declared_type = fields[name]
                attribute = inspect.getattr_static(type(caller), name, None)
                if isinstance(attribute, property) and attribute.fset is None:
                    raise Errors.ResolutionError(
                        f"Attribute '{name}' of {type(caller).__name__} is read-only", node_path=node_path)
                if not is_assignable(built_object, declared_type):
                    raise Errors.ResolutionError(
                        f"Cannot assign {type(built_object).__name__} to '{name}' of {type(caller).__name__} "
                        f"declared as {getattr(declared_type, '__name__', declared_type)}", node_path=node_path)
                setattr(caller, name, built_object)
                return caller
            if name in getattr(caller, "__dict__", dict()):
                setattr(caller, name, built_object)
                return caller
        return None
