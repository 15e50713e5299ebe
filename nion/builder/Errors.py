"""
    Build errors.

    Resolution and coercion errors abort the whole build. Validation problems are never raised; see Validation.
"""

from __future__ import annotations

# standard libraries
import typing

# third party libraries
# none

# local libraries
# none


class BuildError(Exception):
    """Base class for errors raised while building an object graph.

    The node path identifies the offending node, e.g. ``panel/button[ok]``.
    """

    def __init__(self, message: str, *, node_path: typing.Optional[str] = None,
                 property_name: typing.Optional[str] = None, token: typing.Optional[str] = None) -> None:
        self.message = message
        self.node_path = node_path
        self.property_name = property_name
        self.token = token
        super().__init__(self.__format())

    def __format(self) -> str:
        parts = [self.message]
        if self.node_path:
            parts.append(f"node: {self.node_path}")
        if self.property_name:
            parts.append(f"property: {self.property_name}")
        if self.token:
            parts.append(f"token: {self.token}")
        return " | ".join(parts)


class ResolutionError(BuildError):
    """A type, property, handler, command or reference could not be resolved."""
    pass


class CoercionError(BuildError):
    """A value could not be converted to the type required by its target."""
    pass


class ConfigurationError(Exception):
    """Registry content is inconsistent, e.g. two constants normalize to the same token."""
    pass


class BackgroundTaskError(Exception):
    """Raised to abort a handler chain when a background handler fails.

    The original exception is available as ``__cause__`` and as ``error``.
    """

    def __init__(self, token: str, error: BaseException) -> None:
        self.token = token
        self.error = error
        super().__init__(f"Background handler '{token}' failed: {error!r}")
