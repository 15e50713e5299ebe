"""
    Commands invoked inline from handler chains with a ``$name`` token.

    ``$validate`` validates the whole build and stops the chain if there are messages. ``$confirm`` asks the
    configured prompt a yes/no question and stops the chain on "no".
"""

from __future__ import annotations

# standard libraries
import logging
import threading
import typing

# third party libraries
# none

# local libraries
from nion.builder import Validation

if typing.TYPE_CHECKING:
    from nion.builder import Builder

VALIDATE_COMMAND = "$validate"
CONFIRM_COMMAND = "$confirm"


class Command(typing.Protocol):
    def execute(self, build_result: typing.Optional[Builder.BuildResult], source: typing.Any) -> bool: ...


class ConfirmationPrompt(typing.Protocol):
    def confirm(self, title: str, message: str, source: typing.Any) -> bool: ...


class ValidationMessageHandler(typing.Protocol):
    def handle_validation_messages(self, build_result: Builder.BuildResult,
                                   messages: typing.Sequence[Validation.ValidationMessage]) -> None: ...


class LoggingValidationMessageHandler:

    def handle_validation_messages(self, build_result: Builder.BuildResult,
                                   messages: typing.Sequence[Validation.ValidationMessage]) -> None:
        for message in messages:
            logging.warning("%s: %s", build_result.get_string("title.validationErrors"), message.message)


class FunctionCommand:
    """Adapt a plain function ``fn(build_result, source) -> bool`` to a command."""

    def __init__(self, fn: typing.Callable[[typing.Optional[Builder.BuildResult], typing.Any], typing.Any]) -> None:
        self.__fn = fn

    def execute(self, build_result: typing.Optional[Builder.BuildResult], source: typing.Any) -> bool:
        return self.__fn(build_result, source) is not False


class ValidateCommand:

    def execute(self, build_result: typing.Optional[Builder.BuildResult], source: typing.Any) -> bool:
        assert build_result is not None
        messages = build_result.validate()
        if messages:
            build_result.configuration.validation_message_handler.handle_validation_messages(build_result, messages)
        return not messages


class ConfirmCommand:

    def __init__(self, question_key: str = "question.confirm", title_key: str = "title.confirmation") -> None:
        self.question_key = question_key
        self.title_key = title_key

    def execute(self, build_result: typing.Optional[Builder.BuildResult], source: typing.Any) -> bool:
        assert build_result is not None
        prompt = build_result.configuration.confirmation_prompt
        if prompt is None:
            logging.warning("No confirmation prompt configured; '%s' declines.", CONFIRM_COMMAND)
            return False
        return bool(prompt.confirm(build_result.get_string(self.title_key), build_result.get_string(self.question_key), source))


class CommandRegistry:
    """Maps ``$name`` tokens to commands. The validate and confirm commands are registered by default."""

    def __init__(self, *, include_defaults: bool = True) -> None:
        self.__commands: typing.Dict[str, Command] = dict()
        self.__lock = threading.RLock()
        if include_defaults:
            self.register(VALIDATE_COMMAND, ValidateCommand())
            self.register(CONFIRM_COMMAND, ConfirmCommand())

    @staticmethod
    def __key(token: str) -> str:
        return token if token.startswith("$") else "$" + token

    def register(self, token: str, command: typing.Any) -> None:
        if not callable(getattr(command, "execute", None)):
            command = FunctionCommand(command)
        with self.__lock:
            self.__commands[self.__key(token)] = command

    def unregister(self, token: str) -> None:
        with self.__lock:
            self.__commands.pop(self.__key(token), None)

    def get(self, token: str) -> typing.Optional[Command]:
        return self.__commands.get(self.__key(token))

    @property
    def tokens(self) -> typing.Sequence[str]:
        return list(self.__commands.keys())

    def invoke(self, token: str, build_result: typing.Optional[Builder.BuildResult], source: typing.Any) -> bool:
        command = self.get(token)
        if command is None:
            raise KeyError(token)
        return bool(command.execute(build_result, source))
