"""
    Build orchestration.

    ``build(caller, tree)`` walks a node tree top-down. For each node it resolves the type, constructs the object,
    records its name, applies its properties, builds its children, and finally assigns the object to the caller
    attribute of the same name. Event properties resolve their handlers immediately.

    After the tree is built, ``bind`` nodes connect data bindings and ``validate`` nodes register validation rules,
    both against the completed name map.

    Any resolution or coercion problem aborts the whole build with a :py:class:`Errors.BuildError`.
"""

from __future__ import annotations

# standard libraries
import collections.abc
import concurrent.futures
import logging
import threading
import types
import typing

# third party libraries
# none

# local libraries
from nion.builder import Background
from nion.builder import Bindings
from nion.builder import Configuration
from nion.builder import Errors
from nion.builder import Handlers
from nion.builder import Nodes
from nion.builder import Properties
from nion.builder import References
from nion.builder import Resources
from nion.builder import TypeRegistry
from nion.builder import Validation

Tree = typing.Union[Nodes.Node, Nodes.NodeDescription]

_build_stack = threading.local()


def _caller_stack() -> typing.List[typing.Any]:
    stack = getattr(_build_stack, "callers", None)
    if stack is None:
        stack = list()
        _build_stack.callers = stack
    return stack


class BuildResult:
    """The product of one build: the root object, named objects, validators and background listeners.

    Lives as long as the caller keeps it. ``close`` releases data bindings.
    """

    def __init__(self, caller: typing.Any, configuration: Configuration.BuilderConfiguration,
                 resource_bundles: typing.Sequence[Resources.ResourceBundle] = ()) -> None:
        self.__caller = caller
        self.__configuration = configuration
        self.__root: typing.Any = None
        self.__objects_by_name: typing.Dict[str, typing.Any] = dict()
        self.__validators: typing.List[Validation.Validatable] = list()
        self.__background_event_listeners: typing.List[Background.BackgroundEventListener] = list()
        self.__resource_bundles = list(resource_bundles)
        self.__handler_chains: typing.List[typing.Tuple[typing.Any, str, Handlers.HandlerChain]] = list()
        self.__closeables: typing.List[Bindings.Closeable] = list()

    def close(self) -> None:
        for closeable in reversed(self.__closeables):
            closeable.close()
        self.__closeables = list()

    @property
    def root(self) -> typing.Any:
        return self.__root

    @property
    def caller(self) -> typing.Any:
        return self.__caller

    @property
    def configuration(self) -> Configuration.BuilderConfiguration:
        return self.__configuration

    @property
    def dispatcher(self) -> Background.Dispatcher:
        return self.__configuration.dispatcher

    @property
    def objects_by_name(self) -> typing.Mapping[str, typing.Any]:
        return types.MappingProxyType(self.__objects_by_name)

    @property
    def names(self) -> typing.Sequence[str]:
        return list(self.__objects_by_name.keys())

    def get(self, name: str) -> typing.Any:
        return self.__objects_by_name.get(name)

    def __getitem__(self, name: str) -> typing.Any:
        return self.__objects_by_name[name]

    def __contains__(self, name: str) -> bool:
        return name in self.__objects_by_name

    @property
    def validators(self) -> typing.List[Validation.Validatable]:
        """The validation rules of this build. Callers may append their own rules or rule-like objects."""
        return self.__validators

    def get_validators(self) -> typing.List[Validation.Validatable]:
        return self.__validators

    def validate(self) -> typing.List[Validation.ValidationMessage]:
        return Validation.validate(self.__objects_by_name, self.__validators, self.get_string)

    def is_valid(self) -> bool:
        return len(self.validate()) == 0

    def add_background_event_listener(self, listener: Background.BackgroundEventListener) -> None:
        self.__background_event_listeners.append(listener)

    def remove_background_event_listener(self, listener: Background.BackgroundEventListener) -> None:
        self.__background_event_listeners.remove(listener)

    def get_background_event_listeners(self) -> typing.List[Background.BackgroundEventListener]:
        """Global listeners first, then the listeners of this build."""
        return list(self.__configuration.background_event_listeners) + list(self.__background_event_listeners)

    def get_string(self, key: str, *args: typing.Any) -> str:
        """Resolve a resource key for the caller and format it with positional arguments."""
        return self.__configuration.resource_resolver.get_string(key, *args, caller=self.__caller,
                                                                 extra_bundles=self.__resource_bundles)

    def get_handler_chain(self, o: typing.Any, event_name: str) -> typing.Optional[Handlers.HandlerChain]:
        for target, name, chain in self.__handler_chains:
            if target is o and TypeRegistry.normalize_name(name) == TypeRegistry.normalize_name(event_name):
                return chain
        return None

    def _set_root(self, root: typing.Any) -> None:
        self.__root = root

    def _register_name(self, name: str, o: typing.Any, node_path: str) -> None:
        if name in self.__objects_by_name:
            raise Errors.ResolutionError(f"Duplicate name '{name}'", node_path=node_path)
        self.__objects_by_name[name] = o

    def _add_handler_chain(self, o: typing.Any, event_name: str, chain: Handlers.HandlerChain) -> None:
        self.__handler_chains.append((o, event_name, chain))

    def _add_closeable(self, closeable: Bindings.Closeable) -> None:
        self.__closeables.append(closeable)


class _BuildProcess:
    """State of a single build invocation."""

    def __init__(self, configuration: Configuration.BuilderConfiguration, result: BuildResult,
                 callers: typing.Sequence[typing.Any]) -> None:
        self.__configuration = configuration
        self.__result = result
        self.__callers = list(callers)
        self.__reserved_nodes: typing.List[typing.Tuple[Nodes.Node, str]] = list()
        self.__reference_binder = References.ReferenceBinder()
        self.__property_binder = Properties.PropertyBinder(
            configuration.type_registry,
            localize=lambda key: result.get_string(key),
            connect_event=self.__connect_event,
            resolve_reference=self.__resolve_reference)

    def build(self, node: Nodes.Node) -> typing.Any:
        if node.is_reserved:
            raise Errors.ResolutionError(f"'{node.type_name}' cannot be the root node", node_path=node.label())
        root = self.__build_node(node, "")
        self.__result._set_root(root)
        for reserved_node, node_path in self.__reserved_nodes:
            if reserved_node.type_name == Nodes.BIND_NODE_TYPE:
                self.__process_bind_node(reserved_node, node_path)
        for reserved_node, node_path in self.__reserved_nodes:
            if reserved_node.type_name == Nodes.VALIDATE_NODE_TYPE:
                self.__process_validate_node(reserved_node, node_path)
        return root

    def __build_node(self, node: Nodes.Node, parent_path: str) -> typing.Any:
        node_path = f"{parent_path}/{node.label()}" if parent_path else node.label()
        if node.is_reserved:
            self.__reserved_nodes.append((node, node_path))
            return None
        descriptor = self.__configuration.type_registry.resolve(node.type_name, self.__callers, node_path)
        try:
            o = descriptor.constructor()
        except Exception as e:
            raise Errors.BuildError(f"Cannot construct '{node.type_name}': {e}", node_path=node_path) from e
        name = node.name or descriptor.caller_field
        if name:
            # register before applying properties so handlers may refer to the object by name.
            self.__result._register_name(name, o, node_path)
        self.__property_binder.apply(o, descriptor, node.properties, node_path)
        for child_node in node.children:
            child = self.__build_node(child_node, node_path)
            if child is None:
                continue
            if descriptor.add_child is None:
                raise Errors.ResolutionError(f"Type '{descriptor.type_name}' does not accept children",
                                             node_path=node_path)
            descriptor.add_child(o, child)
        if name and not descriptor.existing:
            self.__reference_binder.bind(o, name, self.__callers, node_path)
        return o

    def __connect_event(self, target: typing.Any, event_spec: TypeRegistry.EventSpec, value: typing.Any,
                        property_name: str, node_path: str) -> None:
        chain = self.__configuration.handler_resolver.resolve_chain(
            value, self.__callers, target, event_spec.event_type, node_path, property_name)
        result = self.__result
        result._add_handler_chain(target, event_spec.name, chain)

        def trampoline(*args: typing.Any, **kwargs: typing.Any) -> concurrent.futures.Future[bool]:
            event = args[0] if args else kwargs.get("event")
            future = chain.invoke(target, event, result)
            if future.done() and future.exception() is not None:
                raise typing.cast(BaseException, future.exception())
            return future

        setattr(target, event_spec.name, trampoline)

    def __resolve_reference(self, path: str) -> typing.Any:
        name, _, remainder = path.partition(".")
        if name in self.__result:
            o = self.__result[name]
            try:
                for part in remainder.split(".") if remainder else list():
                    o = getattr(o, part.strip())
            except AttributeError as e:
                raise Errors.ResolutionError(f"Cannot resolve reference '{path}'") from e
            return o
        for caller in self.__callers:
            try:
                value = Bindings.parse_property_path(path, caller)[2]
            except AttributeError:
                continue
            # an unassigned caller field is not a reference target.
            if value is not None:
                return value
        raise Errors.ResolutionError(f"Unknown reference '{path}'; references may only name objects built earlier")

    def __process_bind_node(self, node: Nodes.Node, node_path: str) -> None:
        for closeable in Bindings.process_bind_properties(node.properties, self.__result.objects_by_name,
                                                          self.__result.caller, node_path):
            self.__result._add_closeable(closeable)

    def __process_validate_node(self, node: Nodes.Node, node_path: str) -> None:
        for target_path, d in node.properties.items():
            if not isinstance(d, collections.abc.Mapping):
                raise Errors.ResolutionError("Validation constraints must be a mapping", node_path=node_path,
                                             property_name=target_path)
            try:
                rule = Validation.ValidationRule.from_description(target_path, d)
            except Errors.ResolutionError as e:
                raise Errors.ResolutionError(e.message, node_path=node_path, property_name=target_path) from None
            if rule.object_name not in self.__result:
                raise Errors.ResolutionError(f"Unknown validation target '{rule.object_name}'", node_path=node_path,
                                             property_name=target_path)
            try:
                rule.read_value(self.__result.objects_by_name)
            except AttributeError as e:
                raise Errors.ResolutionError(f"Validation target has no property '{rule.property_name}'",
                                             node_path=node_path, property_name=target_path) from e
            self.__result.validators.append(rule)


class Builder:
    """Builds object graphs from node trees using a configuration."""

    def __init__(self, configuration: typing.Optional[Configuration.BuilderConfiguration] = None) -> None:
        self.configuration = configuration if configuration is not None else Configuration.get_default_configuration()

    def build(self, caller: typing.Any, tree: Tree,
              resource_bundles: typing.Optional[typing.Sequence[Resources.ResourceBundle]] = None) -> BuildResult:
        node = tree if isinstance(tree, Nodes.Node) else Nodes.node_from_description(tree)
        stack = _caller_stack()
        # innermost caller first; enclosing builds on this thread are searched after it.
        callers = [caller] + list(reversed(stack))
        result = BuildResult(caller, self.configuration, resource_bundles or ())
        logging.debug("Build started for %s", type(caller).__name__)
        for listener in self.configuration.build_process_listeners:
            listener.build_started(caller)
        stack.append(caller)
        try:
            root = _BuildProcess(self.configuration, result, callers).build(node)
        except Exception:
            result.close()
            raise
        finally:
            stack.pop()
        for listener in self.configuration.build_process_listeners:
            listener.build_ended(root)
        logging.debug("Build ended for %s", type(caller).__name__)
        return result


def build(caller: typing.Any, tree: Tree,
          resource_bundles: typing.Optional[typing.Sequence[Resources.ResourceBundle]] = None, *,
          configuration: typing.Optional[Configuration.BuilderConfiguration] = None) -> BuildResult:
    """Build the object graph described by tree for caller. See :py:class:`Builder`."""
    return Builder(configuration).build(caller, tree, resource_bundles)
