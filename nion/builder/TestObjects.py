"""
    A small headless object library for tests and demos.

    The objects behave like simple user interface widgets: they hold properties, accept children, fire events
    through ``on_*`` callables and accept bindings through ``bind_*`` methods.
"""

from __future__ import annotations

# standard libraries
import dataclasses
import enum
import typing

# third party libraries
from nion.utils import Binding
from nion.utils import Geometry

# local libraries
from nion.builder import Configuration
from nion.builder import TypeRegistry


ALIGNMENT_CONSTANTS = {"ALIGN_LEFT": 0, "ALIGN_CENTER": 1, "ALIGN_RIGHT": 2}


class Orientation(enum.Enum):
    HORIZONTAL = "horizontal"
    VERTICAL = "vertical"


@dataclasses.dataclass
class ActionEvent:
    source: typing.Any
    command: typing.Optional[str] = None


@dataclasses.dataclass
class Insets:
    top: int = 0
    left: int = 0
    bottom: int = 0
    right: int = 0


class Widget:
    name: typing.Optional[str]
    enabled: bool
    visible: bool
    tool_tip: typing.Optional[str]
    x: int
    y: int
    width: int
    height: int

    def __init__(self) -> None:
        self.name = None
        self.enabled = True
        self.visible = True
        self.tool_tip = None
        self.x = 0
        self.y = 0
        self.width = 0
        self.height = 0
        self.parent: typing.Optional[Widget] = None

    @property
    def size(self) -> Geometry.IntSize:
        return Geometry.IntSize(width=self.width, height=self.height)

    @property
    def position(self) -> Geometry.IntPoint:
        return Geometry.IntPoint(x=self.x, y=self.y)


class Label(Widget):
    text: typing.Optional[str]
    alignment: int
    buddy: typing.Optional[Widget]

    def __init__(self) -> None:
        super().__init__()
        self.text = None
        self.buddy = None
        self.alignment = ALIGNMENT_CONSTANTS["ALIGN_LEFT"]


class TextField(Widget):
    on_text_edited: typing.Optional[typing.Callable[..., typing.Any]]

    def __init__(self) -> None:
        super().__init__()
        self.__text: typing.Optional[str] = None
        self.__binding: typing.Optional[Binding.Binding] = None
        self.on_text_edited = None

    @property
    def text(self) -> typing.Optional[str]:
        return self.__text

    @text.setter
    def text(self, value: typing.Optional[str]) -> None:
        self.__text = value

    def edit_text(self, value: str) -> None:
        """Simulate the user typing: update the text, the binding source and fire the edited event."""
        self.__text = value
        if self.__binding:
            self.__binding.update_source(value)
        if callable(self.on_text_edited):
            self.on_text_edited(ActionEvent(self, "edited"))

    def bind_text(self, binding: Binding.Binding) -> None:
        self.unbind_text()
        self.__text = binding.get_target_value()
        self.__binding = binding

        def update_text(value: typing.Optional[str]) -> None:
            self.__text = value

        self.__binding.target_setter = update_text

    def unbind_text(self) -> None:
        if self.__binding:
            self.__binding.close()
            self.__binding = None


class Button(Widget):
    text: typing.Optional[str]
    alignment: int
    on_clicked: typing.Optional[typing.Callable[..., typing.Any]]

    def __init__(self) -> None:
        super().__init__()
        self.text = None
        self.alignment = ALIGNMENT_CONSTANTS["ALIGN_CENTER"]
        self.on_clicked = None

    def click(self) -> typing.Any:
        if callable(self.on_clicked):
            return self.on_clicked(ActionEvent(self, "clicked"))
        return None


class CheckBox(Widget):
    text: typing.Optional[str]
    checked: bool
    on_checked_changed: typing.Optional[typing.Callable[..., typing.Any]]

    def __init__(self) -> None:
        super().__init__()
        self.text = None
        self.checked = False
        self.on_checked_changed = None


class ProgressBar(Widget):
    minimum: int
    maximum: int
    value: int

    def __init__(self) -> None:
        super().__init__()
        self.minimum = 0
        self.maximum = 100
        self.value = 0


class Panel(Widget):
    title: typing.Optional[str]
    orientation: Orientation
    spacing: int
    margins: Insets
    tags: typing.List[str]

    def __init__(self) -> None:
        super().__init__()
        self.title = None
        self.orientation = Orientation.VERTICAL
        self.spacing = 0
        self.margins = Insets()
        self.tags = list()
        self.children: typing.List[Widget] = list()

    def add(self, child: Widget) -> None:
        child.parent = self
        self.children.append(child)


def register_types(type_registry: TypeRegistry.TypeRegistry) -> None:
    """Register the objects of this module under lower case type names."""
    localizable = ("text", "title", "tool_tip")
    type_registry.register(Label, "label", localizable=localizable, constants={"alignment": ALIGNMENT_CONSTANTS})
    type_registry.register(TextField, "text_field", localizable=localizable, events={"on_text_edited": ActionEvent})
    type_registry.register(Button, "button", localizable=localizable, constants={"alignment": ALIGNMENT_CONSTANTS},
                           events={"on_clicked": ActionEvent})
    type_registry.register(CheckBox, "check_box", localizable=localizable, events={"on_checked_changed": ActionEvent})
    type_registry.register(ProgressBar, "progress_bar", localizable=localizable)
    type_registry.register(Panel, "panel", localizable=localizable)


def create_configuration(**kwargs: typing.Any) -> Configuration.BuilderConfiguration:
    """Create a configuration with the objects of this module registered."""
    configuration = Configuration.BuilderConfiguration(**kwargs)
    register_types(configuration.type_registry)
    return configuration
