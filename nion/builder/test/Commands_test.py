# standard libraries
import typing
import unittest

# third party libraries
# None

# local libraries
from nion.builder import Builder
from nion.builder import Commands
from nion.builder import Nodes
from nion.builder import TestObjects
from nion.builder import Validation


class Prompt:

    def __init__(self, answer: bool) -> None:
        self.answer = answer
        self.questions: typing.List[typing.Tuple[str, str, typing.Any]] = list()

    def confirm(self, title: str, message: str, source: typing.Any) -> bool:
        self.questions.append((title, message, source))
        return self.answer


class CollectingMessageHandler:

    def __init__(self) -> None:
        self.messages: typing.List[Validation.ValidationMessage] = list()

    def handle_validation_messages(self, build_result: Builder.BuildResult,
                                   messages: typing.Sequence[Validation.ValidationMessage]) -> None:
        self.messages.extend(messages)


class Form:

    def __init__(self) -> None:
        self.saved = 0

    def save(self) -> None:
        self.saved += 1


def make_tree() -> Nodes.Node:
    return Nodes.create_node(
        "panel",
        Nodes.create_node("text_field", name="name_field"),
        Nodes.create_node("button", name="ok_button", onClicked="$validate, $confirm, save"),
        Nodes.create_node("validate", name_field={"mandatory": True}))


class TestCommandsClass(unittest.TestCase):

    def setUp(self) -> None:
        self.message_handler = CollectingMessageHandler()
        self.prompt = Prompt(True)
        self.configuration = TestObjects.create_configuration(confirmation_prompt=self.prompt,
                                                              validation_message_handler=self.message_handler)
        self.form = Form()
        self.result = Builder.build(self.form, make_tree(), configuration=self.configuration)

    def tearDown(self) -> None:
        self.result.close()

    def test_default_commands_are_registered(self) -> None:
        registry = Commands.CommandRegistry()
        self.assertIn(Commands.VALIDATE_COMMAND, registry.tokens)
        self.assertIn(Commands.CONFIRM_COMMAND, registry.tokens)
        self.assertIsNotNone(registry.get("validate"))
        self.assertEqual(list(), Commands.CommandRegistry(include_defaults=False).tokens)

    def test_validation_failure_stops_chain_and_reports_messages(self) -> None:
        self.assertFalse(self.result["ok_button"].click().result(timeout=5))
        self.assertEqual(0, self.form.saved)
        self.assertEqual(0, len(self.prompt.questions))
        self.assertEqual([Validation.MANDATORY], [m.kind for m in self.message_handler.messages])

    def test_confirmed_chain_runs_to_the_end(self) -> None:
        self.result["name_field"].text = "Ada"
        self.assertTrue(self.result["ok_button"].click().result(timeout=5))
        self.assertEqual(1, self.form.saved)
        self.assertEqual([("Confirmation", "Are you sure?", self.result["ok_button"])], self.prompt.questions)

    def test_declined_confirmation_stops_chain(self) -> None:
        self.prompt.answer = False
        self.result["name_field"].text = "Ada"
        self.assertFalse(self.result["ok_button"].click().result(timeout=5))
        self.assertEqual(0, self.form.saved)

    def test_confirmation_without_prompt_declines(self) -> None:
        self.configuration.confirmation_prompt = None
        self.result["name_field"].text = "Ada"
        with self.assertLogs(level="WARNING"):
            self.assertFalse(self.result["ok_button"].click().result(timeout=5))
        self.assertEqual(0, self.form.saved)

    def test_custom_command_receives_build_result_and_source(self) -> None:
        calls: typing.List[typing.Tuple[typing.Any, typing.Any]] = list()
        self.configuration.register_command("record", lambda build_result, source: calls.append((build_result, source)))
        result = Builder.build(self.form, Nodes.create_node("button", name="go", onClicked="$record, save"),
                               configuration=self.configuration)
        self.assertTrue(result["go"].click().result(timeout=5))
        self.assertEqual([(result, result["go"])], calls)
        self.assertEqual(1, self.form.saved)

    def test_function_command_returning_false_stops_chain(self) -> None:
        self.configuration.register_command("$never", lambda build_result, source: False)
        result = Builder.build(self.form, Nodes.create_node("button", name="go", onClicked="$never, save"),
                               configuration=self.configuration)
        self.assertFalse(result["go"].click().result(timeout=5))
        self.assertEqual(0, self.form.saved)

    def test_logging_message_handler_logs_each_message(self) -> None:
        handler = Commands.LoggingValidationMessageHandler()
        messages = self.result.validate()
        with self.assertLogs(level="WARNING") as logs:
            handler.handle_validation_messages(self.result, messages)
        self.assertEqual(1, len(logs.output))
