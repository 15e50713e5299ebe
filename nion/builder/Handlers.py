"""
    Handler resolution and handler chains.

    An event property names one or more handlers, e.g. ``"$validate, save, close"``. Each token is resolved when
    the object is built, not when the event fires, so wiring mistakes surface immediately.

    A plain token names a method on the caller (or an enclosing caller). When several methods can serve a token
    (the method named like the token plus methods decorated with :py:func:`handles`), the signature is chosen in
    this order:

    1. ``(source, event)``
    2. ``(event)``
    3. ``(source)``
    4. ``()``

    A parameter accepts a source or event when it has no annotation or when the annotation is the type of the
    source/event or one of its bases. A ``$name`` token resolves to a command.

    Chain steps run strictly in order. A step returning ``False`` stops the chain. A background step resumes the
    chain on the initiating context after its worker completes.
"""

from __future__ import annotations

# standard libraries
import concurrent.futures
import dataclasses
import enum
import inspect
import logging
import re
import threading
import types
import typing

# third party libraries
# none

# local libraries
from nion.builder import Background
from nion.builder import Errors
from nion.builder import TypeRegistry

if typing.TYPE_CHECKING:
    from nion.builder import Builder
    from nion.builder import Commands

_F = typing.TypeVar("_F", bound=typing.Callable[..., typing.Any])

COMMAND_PREFIX = "$"


class SignatureShape(enum.IntEnum):
    """Supported handler signatures, in order of preference."""
    SOURCE_AND_EVENT = 1
    EVENT = 2
    SOURCE = 3
    NONE = 4


def handles(*tokens: str) -> typing.Callable[[_F], _F]:
    """Make a method a candidate for the given handler tokens in addition to its own name."""
    def decorator(fn: _F) -> _F:
        existing = getattr(fn, "handler_tokens", frozenset())
        setattr(fn, "handler_tokens", frozenset(existing) | frozenset(tokens))
        return fn
    return decorator


def _accepts(annotation: typing.Any, value_type: type) -> bool:
    if annotation is inspect.Parameter.empty or annotation is typing.Any or annotation is object:
        return True
    if isinstance(annotation, str):
        names = {t.split(".")[-1] for t in re.findall(r"[A-Za-z_][\w.]*", annotation)}
        return "Any" in names or any(base.__name__ in names for base in value_type.__mro__)
    origin = typing.get_origin(annotation)
    if origin is typing.Union or origin is types.UnionType:
        return any(_accepts(arg, value_type) for arg in typing.get_args(annotation))
    if origin is not None:
        annotation = origin
    if isinstance(annotation, type):
        if getattr(annotation, "_is_protocol", False) and not getattr(annotation, "_is_runtime_protocol", False):
            return True
        try:
            return issubclass(value_type, annotation)
        except TypeError:
            # runtime protocols with data members do not support issubclass.
            return True
    return False


def signature_shapes(fn: typing.Callable[..., typing.Any], source_type: type,
                     event_type: type) -> typing.List[SignatureShape]:
    """Return the shapes fn can be called with, in order of preference. The first parameter (self) is skipped."""
    parameters = [p for p in inspect.signature(fn).parameters.values()
                  if p.kind in (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD)][1:]
    hints = TypeRegistry.type_hints(fn)
    annotations = [hints.get(p.name, p.annotation) for p in parameters]
    required = len([p for p in parameters if p.default is inspect.Parameter.empty])
    shapes = list()
    if required <= 2 <= len(parameters) and _accepts(annotations[0], source_type) and _accepts(annotations[1], event_type):
        shapes.append(SignatureShape.SOURCE_AND_EVENT)
    if required <= 1 <= len(parameters):
        if _accepts(annotations[0], event_type):
            shapes.append(SignatureShape.EVENT)
        if _accepts(annotations[0], source_type):
            shapes.append(SignatureShape.SOURCE)
    if required == 0:
        shapes.append(SignatureShape.NONE)
    return shapes


@dataclasses.dataclass(frozen=True)
class Invocable:
    """One resolved chain step: a method with a chosen signature, or a command."""
    token: str
    function: typing.Optional[typing.Callable[..., typing.Any]] = None
    shape: typing.Optional[SignatureShape] = None
    target: typing.Any = None
    command: typing.Optional[Commands.Command] = None
    background: typing.Optional[Background.BackgroundTaskDescriptor] = None

    @property
    def is_command(self) -> bool:
        return self.command is not None

    def invoke(self, source: typing.Any, event: typing.Any, build_result: typing.Optional[Builder.BuildResult]) -> typing.Any:
        if self.command is not None:
            return self.command.execute(build_result, source)
        assert self.function is not None
        if self.shape == SignatureShape.SOURCE_AND_EVENT:
            return self.function(self.target, source, event)
        if self.shape == SignatureShape.EVENT:
            return self.function(self.target, event)
        if self.shape == SignatureShape.SOURCE:
            return self.function(self.target, source)
        return self.function(self.target)


class HandlerChain:
    """An ordered list of resolved handler steps attached to one event of one object."""

    def __init__(self, steps: typing.Sequence[Invocable], property_name: typing.Optional[str] = None) -> None:
        self.steps = list(steps)
        self.property_name = property_name

    @property
    def tokens(self) -> typing.Sequence[str]:
        return [step.token for step in self.steps]

    def invoke(self, source: typing.Any, event: typing.Any = None,
               build_result: typing.Optional[Builder.BuildResult] = None,
               dispatcher: typing.Optional[Background.Dispatcher] = None,
               listeners: typing.Optional[typing.Sequence[typing.Any]] = None) -> concurrent.futures.Future[bool]:
        """Run the chain. The returned future resolves to True if every step ran, False if a step stopped it.

        Steps before the first background step run synchronously on the calling thread, so for chains without
        background steps the future is already done when this returns. A failing step sets the future's
        exception.
        """
        future: concurrent.futures.Future[bool] = concurrent.futures.Future()
        if dispatcher is None:
            dispatcher = build_result.dispatcher if build_result is not None else Background.ImmediateDispatcher()
        if listeners is None:
            listeners = build_result.get_background_event_listeners() if build_result is not None else list()
        self.__run(0, source, event, build_result, dispatcher, listeners, future)
        return future

    def __run(self, index: int, source: typing.Any, event: typing.Any,
              build_result: typing.Optional[Builder.BuildResult], dispatcher: Background.Dispatcher,
              listeners: typing.Sequence[typing.Any], future: concurrent.futures.Future[bool]) -> None:
        while index < len(self.steps):
            step = self.steps[index]
            if step.background is not None:
                self.__run_background(index, source, event, build_result, dispatcher, listeners, future)
                return
            try:
                result = step.invoke(source, event, build_result)
            except Exception as e:
                future.set_exception(e)
                return
            if result is False:
                logging.debug("Handler chain stopped at '%s'", step.token)
                future.set_result(False)
                return
            index += 1
        future.set_result(True)

    def __run_background(self, index: int, source: typing.Any, event: typing.Any,
                         build_result: typing.Optional[Builder.BuildResult], dispatcher: Background.Dispatcher,
                         listeners: typing.Sequence[typing.Any], future: concurrent.futures.Future[bool]) -> None:
        step = self.steps[index]
        descriptor = step.background
        assert descriptor is not None
        progress_message = build_result.get_string(descriptor.progress_message) if build_result is not None else None
        background_event = Background.BackgroundEvent(descriptor, source, event, build_result, progress_message, listeners)

        def done(background_event: Background.BackgroundEvent, result: typing.Any) -> None:
            # runs on the initiating context, after the ended notification.
            if background_event.error is not None:
                error = Errors.BackgroundTaskError(step.token, background_event.error)
                error.__cause__ = background_event.error
                future.set_exception(error)
            elif background_event.task_state == Background.TaskState.CANCELLED or result is False:
                future.set_result(False)
            else:
                self.__run(index + 1, source, event, build_result, dispatcher, listeners, future)

        Background.run_in_background(background_event, lambda e: step.invoke(source, e, build_result),
                                     dispatcher, listeners, done)


class HandlerResolver:
    """Resolves handler tokens against caller objects.

    The choice of function and signature is cached per (caller type, token, source type, event type) for the
    lifetime of the resolver.
    """

    def __init__(self, command_registry: typing.Optional[Commands.CommandRegistry] = None) -> None:
        self.command_registry = command_registry
        self.__cache: typing.Dict[typing.Tuple[type, str, type, type], typing.Optional[typing.Tuple[typing.Callable[..., typing.Any], SignatureShape]]] = dict()
        self.__lock = threading.RLock()

    @staticmethod
    def split_tokens(value: typing.Any) -> typing.List[str]:
        """Flatten a handler property value into tokens. Strings may hold several comma separated tokens."""
        if isinstance(value, str):
            return [t.strip() for t in value.split(",") if t.strip()]
        if isinstance(value, (list, tuple)):
            tokens: typing.List[str] = list()
            for item in value:
                tokens.extend(HandlerResolver.split_tokens(item))
            return tokens
        raise Errors.ResolutionError(f"Handler value {value!r} is not a token or list of tokens")

    def resolve_chain(self, value: typing.Any, targets: typing.Sequence[typing.Any], source: typing.Any,
                      event_type: type = object, node_path: typing.Optional[str] = None,
                      property_name: typing.Optional[str] = None) -> HandlerChain:
        try:
            tokens = self.split_tokens(value)
        except Errors.ResolutionError as e:
            raise Errors.ResolutionError(e.message, node_path=node_path, property_name=property_name) from None
        steps = [self.resolve(token, targets, source, event_type, node_path, property_name) for token in tokens]
        return HandlerChain(steps, property_name)

    def resolve(self, token: str, targets: typing.Sequence[typing.Any], source: typing.Any, event_type: type = object,
                node_path: typing.Optional[str] = None, property_name: typing.Optional[str] = None) -> Invocable:
        if token.startswith(COMMAND_PREFIX):
            command = self.command_registry.get(token) if self.command_registry else None
            if command is None:
                raise Errors.ResolutionError("Unknown command", node_path=node_path, property_name=property_name, token=token)
            return Invocable(token, command=command)
        for target in targets:
            match = self.find_handler(type(target), token, type(source), event_type)
            if match:
                function, shape = match
                return Invocable(token, function, shape, target, background=Background.get_background_task_descriptor(function))
        searched = ", ".join(type(target).__name__ for target in targets) or "no caller"
        raise Errors.ResolutionError(
            f"No handler for '{token}' accepting ({type(source).__name__}, {event_type.__name__}), "
            f"({event_type.__name__}), ({type(source).__name__}) or () in {searched}",
            node_path=node_path, property_name=property_name, token=token)

    def find_handler(self, target_type: type, token: str, source_type: type,
                     event_type: type) -> typing.Optional[typing.Tuple[typing.Callable[..., typing.Any], SignatureShape]]:
        key = (target_type, token, source_type, event_type)
        if key in self.__cache:
            return self.__cache[key]
        best: typing.Optional[typing.Tuple[typing.Callable[..., typing.Any], SignatureShape]] = None
        for function in self.candidates(target_type, token):
            descriptor = Background.get_background_task_descriptor(function)
            # background handlers receive the background event in place of the original event.
            shapes = signature_shapes(function, source_type, Background.BackgroundEvent if descriptor else event_type)
            if shapes and (best is None or shapes[0] < best[1]):
                best = function, shapes[0]
        with self.__lock:
            self.__cache[key] = best
        return best

    @staticmethod
    def candidates(target_type: type, token: str) -> typing.List[typing.Callable[..., typing.Any]]:
        """Return the functions of a class that can serve a token: the one named token, then decorated ones."""
        functions: typing.List[typing.Callable[..., typing.Any]] = list()
        named = inspect.getattr_static(target_type, token, None)
        if inspect.isfunction(named):
            functions.append(named)
        seen = {token}
        for base in target_type.__mro__:
            for name, attribute in vars(base).items():
                # only the most derived definition of a name counts.
                if name in seen:
                    continue
                seen.add(name)
                if inspect.isfunction(attribute) and token in getattr(attribute, "handler_tokens", ()):
                    functions.append(attribute)
        return functions
