"""
    Resource lookup.

    Strings are looked up by key in class-scoped bundles first, then in global bundles, then in the built-in
    defaults. A key found nowhere resolves to itself (or ``#key#`` when invalid keys are marked) and fires
    ``resource_missing_event``; lookups never raise.
"""

from __future__ import annotations

# standard libraries
import gettext
import logging
import re
import threading
import typing

# third party libraries
from nion.utils import Event

# local libraries
# none


_ = gettext.gettext


class ResourceBundle(typing.Protocol):
    def get(self, key: str) -> typing.Optional[str]: ...


class GettextBundle:
    """Adapt a ``gettext`` translations object to a resource bundle.

    Keys that the catalog does not translate are treated as missing.
    """

    def __init__(self, translations: gettext.NullTranslations) -> None:
        self.__translations = translations

    def get(self, key: str) -> typing.Optional[str]:
        value = self.__translations.gettext(key)
        return value if value != key else None


# built-in defaults. the values pass through gettext so an installed catalog localizes them.
DEFAULT_RESOURCES: typing.Dict[str, str] = {
    "button.ok": _("OK"),
    "button.cancel": _("Cancel"),
    "button.close": _("Close"),
    "button.yes": _("Yes"),
    "button.no": _("No"),
    "title.confirmation": _("Confirmation"),
    "title.validationErrors": _("Validation Errors"),
    "question.confirm": _("Are you sure?"),
    "label.processing": _("Processing..."),
    "label.cancelling": _("Cancelling..."),
    "message.validation.mandatory": _("{0} is mandatory."),
    "message.validation.minLength": _("{0} must be at least {1} characters long."),
    "message.validation.maxLength": _("{0} must be at most {1} characters long."),
    "message.validation.regex": _("{0} is not in the expected format."),
    "message.validation.minValue": _("{0} must be at least {1}."),
    "message.validation.maxValue": _("{0} must be at most {1}."),
    "message.validation.dateFormat": _("{0} is not a valid date (expected format: {1})."),
    "message.validation.emailAddress": _("{0} is not a valid email address."),
    "message.validation.numeric": _("{0} must be a number."),
}


_PLACEHOLDER_PATTERN = re.compile(r"\{(\d+)\}")


def format_resource(value: str, *args: typing.Any) -> str:
    """Substitute positional ``{0}`` style placeholders.

    Other braces, and placeholders without a matching argument, are left as they are.
    """
    if not args:
        return value

    def substitute(m: typing.Match[str]) -> str:
        index = int(m.group(1))
        return str(args[index]) if index < len(args) else m.group(0)

    return _PLACEHOLDER_PATTERN.sub(substitute, value)


class ResourceResolver:
    """Ordered resource bundles in two scopes, class and global.

    Class-scoped bundles are registered per class and apply to instances of subclasses too. Within a scope,
    bundles are searched in registration order; the first hit wins.
    """

    def __init__(self, *, mark_invalid: bool = False, defaults: typing.Optional[typing.Mapping[str, str]] = None) -> None:
        self.mark_invalid = mark_invalid
        self.__global_bundles: typing.List[ResourceBundle] = list()
        self.__class_bundles: typing.Dict[type, typing.List[ResourceBundle]] = dict()
        self.__defaults = dict(defaults) if defaults is not None else dict(DEFAULT_RESOURCES)
        self.__lock = threading.RLock()
        self.resource_missing_event = Event.Event()

    def add_bundle(self, bundle: ResourceBundle) -> None:
        with self.__lock:
            self.__global_bundles.append(bundle)

    def remove_bundle(self, bundle: ResourceBundle) -> None:
        with self.__lock:
            self.__global_bundles.remove(bundle)

    def add_class_bundle(self, cls: type, bundle: ResourceBundle) -> None:
        with self.__lock:
            self.__class_bundles.setdefault(cls, list()).append(bundle)

    @property
    def global_bundles(self) -> typing.Sequence[ResourceBundle]:
        return list(self.__global_bundles)

    def class_bundles(self, cls: typing.Optional[type]) -> typing.Sequence[ResourceBundle]:
        """Return the bundles registered for the class and its bases, most specific class first."""
        bundles: typing.List[ResourceBundle] = list()
        if cls is not None:
            for base in cls.__mro__:
                bundles.extend(self.__class_bundles.get(base, list()))
        return bundles

    def lookup(self, key: str, class_bundles: typing.Sequence[ResourceBundle] = (),
               global_bundles: typing.Optional[typing.Sequence[ResourceBundle]] = None) -> str:
        """Return the string for key, searching class bundles, global bundles and defaults in that order."""
        global_bundles = global_bundles if global_bundles is not None else self.__global_bundles
        for bundle in list(class_bundles) + list(global_bundles):
            value = bundle.get(key)
            if value is not None:
                return value
        value = self.__defaults.get(key)
        if value is not None:
            return value
        logging.debug("Missing resource '%s'", key)
        self.resource_missing_event.fire(key)
        return f"#{key}#" if self.mark_invalid else key

    def has_key(self, key: str, class_bundles: typing.Sequence[ResourceBundle] = ()) -> bool:
        for bundle in list(class_bundles) + list(self.__global_bundles):
            if bundle.get(key) is not None:
                return True
        return key in self.__defaults

    def get_string(self, key: str, *args: typing.Any, caller: typing.Any = None,
                   extra_bundles: typing.Sequence[ResourceBundle] = ()) -> str:
        """Look up key for a caller and format it with positional arguments.

        Extra bundles (supplied with a build) are searched before the caller's class bundles.
        """
        class_bundles = list(extra_bundles) + list(self.class_bundles(type(caller) if caller is not None else None))
        return format_resource(self.lookup(key, class_bundles), *args)
