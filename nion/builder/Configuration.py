"""
    Builder configuration.

    A configuration holds the process-wide registries used by builds: types, resources, handlers, commands, the
    dispatcher used to hand background results back to the initiating context, and global listeners.

    Configure before the first build. Registries tolerate concurrent reads; writes are synchronized but are not
    expected while builds are running.
"""

from __future__ import annotations

# standard libraries
import threading
import typing

# third party libraries
# none

# local libraries
from nion.builder import Background
from nion.builder import Commands
from nion.builder import Handlers
from nion.builder import Properties
from nion.builder import Resources
from nion.builder import TypeRegistry


class BuildProcessListener(typing.Protocol):
    def build_started(self, caller: typing.Any) -> None: ...
    def build_ended(self, root: typing.Any) -> None: ...


class BuilderConfiguration:
    """Registries, dispatcher and listeners shared by builds.

    The dispatcher decides where background "ended" notifications and the rest of a handler chain run. The default
    :py:class:`Background.ImmediateDispatcher` runs them on the worker thread. A UI host must install a
    :py:class:`Background.TaskQueueDispatcher` or :py:class:`Background.EventLoopDispatcher` so that they run on
    the UI thread.
    """

    def __init__(self, *, type_registry: typing.Optional[TypeRegistry.TypeRegistry] = None,
                 resource_resolver: typing.Optional[Resources.ResourceResolver] = None,
                 command_registry: typing.Optional[Commands.CommandRegistry] = None,
                 dispatcher: typing.Optional[Background.Dispatcher] = None,
                 confirmation_prompt: typing.Optional[Commands.ConfirmationPrompt] = None,
                 validation_message_handler: typing.Optional[Commands.ValidationMessageHandler] = None) -> None:
        self.type_registry = type_registry if type_registry is not None else TypeRegistry.TypeRegistry()
        self.resource_resolver = resource_resolver if resource_resolver is not None else Resources.ResourceResolver()
        self.command_registry = command_registry if command_registry is not None else Commands.CommandRegistry()
        self.handler_resolver = Handlers.HandlerResolver(self.command_registry)
        self.dispatcher: Background.Dispatcher = dispatcher if dispatcher is not None else Background.ImmediateDispatcher()
        self.confirmation_prompt = confirmation_prompt
        self.validation_message_handler: Commands.ValidationMessageHandler = validation_message_handler or Commands.LoggingValidationMessageHandler()
        self.__build_process_listeners: typing.List[BuildProcessListener] = list()
        self.__background_event_listeners: typing.List[Background.BackgroundEventListener] = list()
        self.__lock = threading.RLock()
        if type_registry is None:
            for name, expand in Properties.DEFAULT_VIRTUAL_PROPERTIES.items():
                self.type_registry.register_virtual_property(name, expand)

    @property
    def mark_invalid_resource_keys(self) -> bool:
        return self.resource_resolver.mark_invalid

    @mark_invalid_resource_keys.setter
    def mark_invalid_resource_keys(self, value: bool) -> None:
        self.resource_resolver.mark_invalid = value

    def register_type(self, cls: type, type_name: typing.Optional[str] = None, **kwargs: typing.Any) -> TypeRegistry.TypeDescriptor:
        return self.type_registry.register(cls, type_name, **kwargs)

    def register_command(self, token: str, command: typing.Any) -> None:
        self.command_registry.register(token, command)

    def add_resource_bundle(self, bundle: Resources.ResourceBundle) -> None:
        self.resource_resolver.add_bundle(bundle)

    def add_build_process_listener(self, listener: BuildProcessListener) -> None:
        with self.__lock:
            self.__build_process_listeners.append(listener)

    def remove_build_process_listener(self, listener: BuildProcessListener) -> None:
        with self.__lock:
            self.__build_process_listeners.remove(listener)

    @property
    def build_process_listeners(self) -> typing.Sequence[BuildProcessListener]:
        return list(self.__build_process_listeners)

    def add_background_event_listener(self, listener: Background.BackgroundEventListener) -> None:
        with self.__lock:
            self.__background_event_listeners.append(listener)

    def remove_background_event_listener(self, listener: Background.BackgroundEventListener) -> None:
        with self.__lock:
            self.__background_event_listeners.remove(listener)

    @property
    def background_event_listeners(self) -> typing.Sequence[Background.BackgroundEventListener]:
        return list(self.__background_event_listeners)


_default_configuration: typing.Optional[BuilderConfiguration] = None
_default_configuration_lock = threading.Lock()


def get_default_configuration() -> BuilderConfiguration:
    global _default_configuration
    with _default_configuration_lock:
        if _default_configuration is None:
            _default_configuration = BuilderConfiguration()
        return _default_configuration


def set_default_configuration(configuration: typing.Optional[BuilderConfiguration]) -> None:
    """Replace the process-wide configuration. Passing None makes the next access create a fresh one."""
    global _default_configuration
    with _default_configuration_lock:
        _default_configuration = configuration
