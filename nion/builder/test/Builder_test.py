# standard libraries
import typing
import unittest

# third party libraries
from nion.utils import Geometry
from nion.utils import Model

# local libraries
from nion.builder import Builder
from nion.builder import Errors
from nion.builder import Nodes
from nion.builder import TestObjects


class Form:
    title_label: typing.Optional[TestObjects.Label]
    name_field: typing.Optional[TestObjects.TextField]
    ok_button: typing.Optional[TestObjects.Button]
    status_label: typing.Optional[TestObjects.Label]

    def __init__(self) -> None:
        self.title_label = None
        self.name_field = None
        self.ok_button = None
        self.status_label = None
        self.header = TestObjects.Label()
        self.model = Model.PropertyModel("Ada")
        self.count_model = Model.PropertyModel(5)
        self.calls: typing.List[str] = list()
        self.sources: typing.List[typing.Any] = list()

    def save(self, source: TestObjects.Button, event: TestObjects.ActionEvent) -> None:
        self.calls.append("save")
        self.sources.append(source)

    def close(self) -> None:
        self.calls.append("close")

    def name_edited(self, event: TestObjects.ActionEvent) -> None:
        self.calls.append("name_edited")

    def refresh(self) -> None:
        self.calls.append("refresh")


class WrongTypes:
    ok_button: typing.Optional[TestObjects.Label] = None


class Banner(TestObjects.Label):
    pass


class BannerForm:
    banner: typing.Optional[Banner] = None


class SubForm:
    pass


class Listener:

    def __init__(self) -> None:
        self.log: typing.List[typing.Tuple[str, typing.Any]] = list()

    def build_started(self, caller: typing.Any) -> None:
        self.log.append(("started", caller))

    def build_ended(self, root: typing.Any) -> None:
        self.log.append(("ended", root))


def make_form_tree() -> Nodes.Node:
    return Nodes.create_node(
        "panel",
        Nodes.create_node("label", name="title_label", text="Title", alignment="alignCenter"),
        Nodes.create_node("text_field", name="name_field", onTextEdited="name_edited"),
        Nodes.create_node("button", name="ok_button", text="button.ok", onClicked="save, close"),
        name="main", orientation="horizontal")


class TestBuilderClass(unittest.TestCase):

    def setUp(self) -> None:
        self.configuration = TestObjects.create_configuration()
        self.form = Form()

    def tearDown(self) -> None:
        pass

    def __build(self, tree: Builder.Tree, caller: typing.Any = None, **kwargs: typing.Any) -> Builder.BuildResult:
        return Builder.build(caller if caller is not None else self.form, tree, configuration=self.configuration, **kwargs)

    def test_build_creates_tree_and_assigns_caller_fields(self) -> None:
        result = self.__build(make_form_tree())
        root = result.root
        self.assertIsInstance(root, TestObjects.Panel)
        self.assertEqual(TestObjects.Orientation.HORIZONTAL, root.orientation)
        self.assertEqual(3, len(root.children))
        self.assertIs(root, result["main"])
        self.assertIs(self.form.title_label, result["title_label"])
        self.assertIs(self.form.name_field, result["name_field"])
        self.assertIs(self.form.ok_button, root.children[2])
        self.assertIs(root, self.form.ok_button.parent)
        self.assertEqual(1, self.form.title_label.alignment)
        self.assertEqual("OK", self.form.ok_button.text)
        self.assertEqual(["main", "title_label", "name_field", "ok_button"], result.names)

    def test_lookup_by_name_is_repeatable(self) -> None:
        result = self.__build(make_form_tree())
        self.assertIs(result.get("ok_button"), result.get("ok_button"))
        self.assertIn("ok_button", result)
        self.assertNotIn("cancel_button", result)
        self.assertIsNone(result.get("cancel_button"))
        with self.assertRaises(KeyError):
            result["cancel_button"]

    def test_build_from_description(self) -> None:
        description = {"type": "panel", "children": [{"type": "label", "name": "status_label", "text": "Ready"}]}
        result = self.__build(description)
        self.assertEqual("Ready", self.form.status_label.text)
        self.assertIs(result.root, self.form.status_label.parent)

    def test_handler_chain_runs_in_order_with_source(self) -> None:
        result = self.__build(make_form_tree())
        self.assertTrue(self.form.ok_button.click().result(timeout=5))
        self.assertEqual(["save", "close"], self.form.calls)
        self.assertEqual([self.form.ok_button], self.form.sources)
        self.assertEqual(["save", "close"], result.get_handler_chain(self.form.ok_button, "onClicked").tokens)

    def test_event_from_edited_text_reaches_handler(self) -> None:
        self.__build(make_form_tree())
        self.form.name_field.edit_text("Bob")
        self.assertEqual(["name_edited"], self.form.calls)

    def test_unknown_handler_fails_at_build_time(self) -> None:
        tree = Nodes.create_node("button", name="ok_button", onClicked="save, launch")
        with self.assertRaises(Errors.ResolutionError) as context:
            self.__build(tree)
        self.assertEqual("launch", context.exception.token)
        self.assertEqual("button[ok_button]", context.exception.node_path)

    def test_unknown_type_error_names_node_path(self) -> None:
        tree = Nodes.create_node("panel", Nodes.create_node("slider", name="volume"), name="main")
        with self.assertRaises(Errors.ResolutionError) as context:
            self.__build(tree)
        self.assertEqual("panel[main]/slider[volume]", context.exception.node_path)

    def test_duplicate_names_are_rejected(self) -> None:
        tree = Nodes.create_node("panel", Nodes.create_node("label", name="a"), Nodes.create_node("button", name="a"))
        with self.assertRaises(Errors.ResolutionError):
            self.__build(tree)

    def test_children_require_a_container(self) -> None:
        tree = Nodes.create_node("label", Nodes.create_node("label"))
        with self.assertRaises(Errors.ResolutionError):
            self.__build(tree)

    def test_reserved_node_cannot_be_root(self) -> None:
        with self.assertRaises(Errors.ResolutionError):
            self.__build(Nodes.create_node("bind", name_field="model.value"))

    def test_incompatible_caller_field_fails_build(self) -> None:
        with self.assertRaises(Errors.ResolutionError):
            self.__build(Nodes.create_node("button", name="ok_button"), WrongTypes())

    def test_references_resolve_to_earlier_objects_only(self) -> None:
        tree = Nodes.create_node("panel",
                                 Nodes.create_node("text_field", name="name_field"),
                                 Nodes.create_node("label", name="title_label", buddy=Nodes.Reference("name_field")))
        self.__build(tree)
        self.assertIs(self.form.name_field, self.form.title_label.buddy)
        tree = Nodes.create_node("panel",
                                 Nodes.create_node("label", name="title_label", buddy=Nodes.Reference("name_field")),
                                 Nodes.create_node("text_field", name="name_field"))
        with self.assertRaises(Errors.ResolutionError):
            self.__build(tree, Form())

    def test_references_may_name_caller_attributes(self) -> None:
        tree = Nodes.create_node("label", name="title_label", buddy=Nodes.Reference("header"))
        self.__build(tree)
        self.assertIs(self.form.header, self.form.title_label.buddy)

    def test_existing_caller_object_is_configured_in_place(self) -> None:
        header = self.form.header
        tree = Nodes.create_node("panel", Nodes.create_node("header", text="Welcome", alignment="alignRight"))
        result = self.__build(tree)
        self.assertIs(header, self.form.header)
        self.assertEqual("Welcome", header.text)
        self.assertEqual(2, header.alignment)
        self.assertIs(header, result["header"])
        self.assertIs(result.root, header.parent)

    def test_unset_caller_field_builds_its_declared_type(self) -> None:
        form = BannerForm()
        result = self.__build(Nodes.create_node("panel", Nodes.create_node("banner", text="hi")), form)
        self.assertIsInstance(form.banner, Banner)
        self.assertEqual("hi", form.banner.text)
        self.assertIs(form.banner, result["banner"])
        self.assertIs(result.root, form.banner.parent)

    def test_virtual_properties_expand(self) -> None:
        self.__build(Nodes.create_node("label", name="title_label", size="20x10", position="3,4"))
        self.assertEqual(Geometry.IntSize(width=20, height=10), self.form.title_label.size)
        self.assertEqual(Geometry.IntPoint(x=3, y=4), self.form.title_label.position)

    def test_build_resource_bundles_localize_properties(self) -> None:
        self.configuration.resource_resolver.add_class_bundle(Form, {"title.form": "Form", "title.main": "Class"})
        tree = Nodes.create_node("panel", Nodes.create_node("label", name="title_label", text="title.form"), title="title.main")
        result = self.__build(tree, resource_bundles=[{"title.main": "Main"}])
        self.assertEqual("Main", result.root.title)
        self.assertEqual("Form", self.form.title_label.text)
        self.assertEqual("Main", result.get_string("title.main"))

    def test_nested_builds_assign_and_resolve_in_enclosing_callers(self) -> None:
        configuration = self.configuration

        def make_sub_panel() -> typing.Any:
            sub_tree = Nodes.create_node("panel",
                                         Nodes.create_node("label", name="status_label", text="Idle"),
                                         Nodes.create_node("button", name="refresh_button", onClicked="refresh"))
            return Builder.build(SubForm(), sub_tree, configuration=configuration).root

        configuration.register_type(TestObjects.Panel, "sub_panel", constructor=make_sub_panel)
        result = self.__build(Nodes.create_node("panel", Nodes.create_node("sub_panel"), name="main"))
        self.assertEqual("Idle", self.form.status_label.text)
        self.assertIs(result.root, self.form.status_label.parent.parent)
        self.form.status_label.parent.children[1].click()
        self.assertEqual(["refresh"], self.form.calls)
        self.assertNotIn("status_label", result)
        self.assertEqual(list(), Builder._caller_stack())

    def test_build_process_listeners(self) -> None:
        listener = Listener()
        self.configuration.add_build_process_listener(listener)
        result = self.__build(make_form_tree())
        self.configuration.remove_build_process_listener(listener)
        self.assertEqual([("started", self.form), ("ended", result.root)], listener.log)

    def test_failed_build_clears_caller_stack(self) -> None:
        with self.assertRaises(Errors.BuildError):
            self.__build(Nodes.create_node("slider"))
        self.assertEqual(list(), Builder._caller_stack())

    def test_bind_node_binds_observable_source_both_ways(self) -> None:
        tree = Nodes.create_node("panel",
                                 Nodes.create_node("text_field", name="name_field"),
                                 Nodes.create_node("bind", name_field="model.value"))
        result = self.__build(tree)
        self.assertEqual("Ada", self.form.name_field.text)
        self.form.model.value = "Grace"
        self.assertEqual("Grace", self.form.name_field.text)
        self.form.name_field.edit_text("Hedy")
        self.assertEqual("Hedy", self.form.model.value)
        result.close()

    def test_bind_node_with_converter(self) -> None:
        tree = Nodes.create_node("panel",
                                 Nodes.create_node("text_field", name="name_field"),
                                 Nodes.create_node("bind", **{"name_field.text": "@binding(count_model.value, converter=int)"}))
        result = self.__build(tree)
        self.assertEqual("5", self.form.name_field.text)
        self.form.name_field.edit_text("7")
        self.assertEqual(7, self.form.count_model.value)
        result.close()

    def test_bind_node_copies_into_plain_properties(self) -> None:
        tree = Nodes.create_node("panel",
                                 Nodes.create_node("label", name="title_label"),
                                 Nodes.create_node("bind", **{"title_label.text": "model.value"}))
        result = self.__build(tree)
        self.assertEqual("Ada", self.form.title_label.text)
        self.form.model.value = "Grace"
        self.assertEqual("Grace", self.form.title_label.text)
        result.close()
        self.form.model.value = "Hedy"
        self.assertEqual("Grace", self.form.title_label.text)

    def test_bind_node_with_unknown_source_fails(self) -> None:
        tree = Nodes.create_node("panel",
                                 Nodes.create_node("label", name="title_label"),
                                 Nodes.create_node("bind", **{"title_label.text": "model.missing"}))
        with self.assertRaises(Errors.ResolutionError):
            self.__build(tree)

    def test_validate_node_registers_rules(self) -> None:
        tree = Nodes.create_node("panel",
                                 Nodes.create_node("text_field", name="name_field"),
                                 Nodes.create_node("validate", name_field={"mandatory": True, "min_length": 3}))
        result = self.__build(tree)
        self.assertEqual(1, len(result.get_validators()))
        self.assertFalse(result.is_valid())
        self.form.name_field.text = "Al"
        self.assertEqual(["minLength"], [m.kind for m in result.validate()])
        self.form.name_field.text = "Alan"
        self.assertTrue(result.is_valid())

    def test_validate_node_with_unknown_target_fails(self) -> None:
        tree = Nodes.create_node("panel", Nodes.create_node("validate", missing_field={"mandatory": True}))
        with self.assertRaises(Errors.ResolutionError):
            self.__build(tree)

    def test_background_event_listeners_include_global_listeners_first(self) -> None:
        global_listener = Listener()
        build_listener = Listener()
        self.configuration.add_background_event_listener(global_listener)
        result = self.__build(make_form_tree())
        result.add_background_event_listener(build_listener)
        self.assertEqual([global_listener, build_listener], result.get_background_event_listeners())
        result.remove_background_event_listener(build_listener)
        self.configuration.remove_background_event_listener(global_listener)
        self.assertEqual(list(), result.get_background_event_listeners())
