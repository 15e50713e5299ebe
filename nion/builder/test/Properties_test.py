# standard libraries
import typing
import unittest

# third party libraries
from nion.utils import Geometry

# local libraries
from nion.builder import Errors
from nion.builder import Nodes
from nion.builder import Properties
from nion.builder import TestObjects
from nion.builder import TypeRegistry


class TestPropertiesClass(unittest.TestCase):

    def setUp(self) -> None:
        self.type_registry = TestObjects.create_configuration().type_registry
        self.connected_events: typing.List[typing.Tuple[typing.Any, str, typing.Any]] = list()
        self.strings = {"greeting": "Hello"}

        def connect_event(target: typing.Any, event_spec: TypeRegistry.EventSpec, value: typing.Any,
                          property_name: str, node_path: str) -> None:
            self.connected_events.append((target, event_spec.name, value))

        def resolve_reference(path: str) -> typing.Any:
            if path == "other":
                return self.other
            raise Errors.ResolutionError(f"Unknown reference '{path}'")

        self.other = TestObjects.TextField()
        self.binder = Properties.PropertyBinder(self.type_registry, localize=lambda key: self.strings.get(key, key),
                                                connect_event=connect_event, resolve_reference=resolve_reference)

    def tearDown(self) -> None:
        pass

    def __apply(self, type_name: str, **properties: typing.Any) -> typing.Any:
        descriptor = self.type_registry.resolve(type_name)
        o = descriptor.constructor()
        self.binder.apply(o, descriptor, properties, type_name)
        return o

    def test_string_values_are_converted_to_setter_types(self) -> None:
        progress_bar = self.__apply("progress_bar", minimum="5", maximum=50.0, enabled="no", visible="TRUE")
        self.assertEqual(5, progress_bar.minimum)
        self.assertEqual(50, progress_bar.maximum)
        self.assertFalse(progress_bar.enabled)
        self.assertTrue(progress_bar.visible)

    def test_float_strings_must_be_exact(self) -> None:
        self.assertEqual(1.5, self.binder.coerce_value("1.5", float))
        with self.assertRaises(Errors.CoercionError):
            self.binder.coerce_value("1.5 units", float)

    def test_int_strings_must_be_exact(self) -> None:
        self.assertEqual(12, self.__apply("panel", spacing=" 12 ").spacing)
        for value in ("abc", "12.7", "10px20"):
            with self.assertRaises(Errors.CoercionError) as context:
                self.__apply("panel", spacing=value)
            self.assertEqual("spacing", context.exception.property_name)

    def test_unconvertible_value_names_node_and_property(self) -> None:
        with self.assertRaises(Errors.CoercionError) as context:
            self.__apply("progress_bar", maximum="lots")
        self.assertEqual("progress_bar", context.exception.node_path)
        self.assertEqual("maximum", context.exception.property_name)

    def test_bool_rejects_unknown_words(self) -> None:
        with self.assertRaises(Errors.CoercionError):
            self.__apply("check_box", checked="maybe")

    def test_camel_case_property_names_find_snake_case_setters(self) -> None:
        button = self.__apply("button", toolTip="Press")
        self.assertEqual("Press", button.tool_tip)

    def test_constants_resolve_by_name(self) -> None:
        label = self.__apply("label", alignment="alignRight")
        self.assertEqual(2, label.alignment)
        label = self.__apply("label", alignment="ALIGN_CENTER")
        self.assertEqual(1, label.alignment)

    def test_unknown_constant_is_a_coercion_error(self) -> None:
        with self.assertRaises(Errors.CoercionError):
            self.__apply("label", alignment="alignMiddle")

    def test_enum_properties_resolve_by_name(self) -> None:
        panel = self.__apply("panel", orientation="HORIZONTAL")
        self.assertEqual(TestObjects.Orientation.HORIZONTAL, panel.orientation)

    def test_scalar_assigned_to_list_property_becomes_single_element_list(self) -> None:
        panel = self.__apply("panel", tags="main")
        self.assertEqual(["main"], panel.tags)
        panel = self.__apply("panel", tags=("a", "b"))
        self.assertEqual(["a", "b"], panel.tags)

    def test_mapping_constructs_value_object(self) -> None:
        panel = self.__apply("panel", margins={"top": 5, "left": 2})
        self.assertEqual(TestObjects.Insets(top=5, left=2), panel.margins)

    def test_localizable_properties_are_looked_up(self) -> None:
        label = self.__apply("label", text="greeting", name="greeting")
        self.assertEqual("Hello", label.text)
        self.assertEqual("greeting", label.name)

    def test_size_and_position_expand_into_real_properties(self) -> None:
        label = self.__apply("label", size="200x100", position=[10, 20])
        self.assertEqual(Geometry.IntSize(width=200, height=100), label.size)
        self.assertEqual(Geometry.IntPoint(x=10, y=20), label.position)
        label = self.__apply("label", size=Geometry.IntSize(width=3, height=4))
        self.assertEqual(4, label.height)

    def test_malformed_size_is_a_coercion_error(self) -> None:
        with self.assertRaises(Errors.CoercionError) as context:
            self.__apply("label", size="200")
        self.assertEqual("size", context.exception.property_name)

    def test_unknown_property_is_a_resolution_error(self) -> None:
        with self.assertRaises(Errors.ResolutionError) as context:
            self.__apply("label", colour="red")
        self.assertEqual("colour", context.exception.property_name)

    def test_reference_values_resolve_to_built_objects(self) -> None:
        label = self.__apply("label", buddy=Nodes.Reference("other"))
        self.assertIs(self.other, label.buddy)

    def test_event_properties_are_connected_not_set(self) -> None:
        button = self.__apply("button", onClicked="save")
        self.assertEqual([(button, "on_clicked", "save")], self.connected_events)
        self.assertIsNone(button.on_clicked)
