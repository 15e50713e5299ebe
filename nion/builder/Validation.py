"""
    Validation of built objects.

    A validation rule targets one property of one named object (``"name_field.text"``) and declares a set of
    constraints. Evaluating a rule reads the current value and produces one message per failing constraint.

    ``mandatory`` is checked first; when it fails, or when the value is empty and not mandatory, the other
    constraints are skipped. Custom validators still see an empty value that is not mandatory. All other
    constraints are evaluated independently, so one value may produce several messages.
"""

from __future__ import annotations

# standard libraries
import collections.abc
import dataclasses
import datetime
import re
import typing

# third party libraries
# none

# local libraries
from nion.builder import Errors
from nion.builder import TypeRegistry

LocalizeFn = typing.Callable[..., str]

DEFAULT_PROPERTY = "text"

MANDATORY = "mandatory"
MIN_LENGTH = "minLength"
MAX_LENGTH = "maxLength"
REGEX = "regex"
MIN_VALUE = "minValue"
MAX_VALUE = "maxValue"
DATE_FORMAT = "dateFormat"
EMAIL_ADDRESS = "emailAddress"

CONSTRAINT_KINDS = (MANDATORY, MIN_LENGTH, MAX_LENGTH, REGEX, MIN_VALUE, MAX_VALUE, DATE_FORMAT, EMAIL_ADDRESS)

LABEL_KEY = "label"
REGEX_MESSAGE_KEY = "regexMessage"

_NORMALIZED_KEYS = {TypeRegistry.normalize_name(k): k for k in CONSTRAINT_KINDS + (LABEL_KEY, REGEX_MESSAGE_KEY)}

_EMAIL_PATTERN = re.compile(r"^[A-Za-z0-9._%+\-]+@[A-Za-z0-9\-]+(\.[A-Za-z0-9\-]+)*\.[A-Za-z]{2,}$")

# java style date patterns are accepted and translated; longest tokens first.
_DATE_TOKENS = (("yyyy", "%Y"), ("yy", "%y"), ("MMMM", "%B"), ("MMM", "%b"), ("MM", "%m"), ("dd", "%d"),
                ("HH", "%H"), ("hh", "%I"), ("mm", "%M"), ("ss", "%S"), ("a", "%p"))


def message_key(kind: str) -> str:
    return f"message.validation.{kind}"


def to_strptime_format(date_format: str) -> str:
    """Return a ``strptime`` format. Formats containing ``%`` are returned unchanged."""
    if "%" in date_format:
        return date_format
    pattern = "|".join(re.escape(token) for token, _ in _DATE_TOKENS)
    return re.sub(pattern, lambda m: dict(_DATE_TOKENS)[m.group(0)], date_format)


@dataclasses.dataclass(frozen=True)
class ValidationMessage:
    object_name: str
    property_name: str
    label: str
    kind: str
    message: str

    def __str__(self) -> str:
        return self.message


class ValueValidator(typing.Protocol):
    """A custom validator for a single value. Returns a message, or None when the value is valid."""
    def validate(self, value: typing.Any, label: str) -> typing.Optional[str]: ...


class Validatable(typing.Protocol):
    def evaluate(self, objects_by_name: typing.Mapping[str, typing.Any], localize: LocalizeFn) -> typing.List[ValidationMessage]: ...


def _is_empty(value: typing.Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return len(value.strip()) == 0
    if isinstance(value, collections.abc.Sized):
        return len(value) == 0
    return False


def _to_number(value: typing.Any) -> typing.Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(str(value).strip())
    except ValueError:
        return None


class ValidationRule:
    """Constraints for one target property, with an optional label (a resource key or literal text)."""

    def __init__(self, target_path: str, constraints: typing.Optional[typing.Mapping[str, typing.Any]] = None,
                 label: typing.Optional[str] = None, regex_message: typing.Optional[str] = None) -> None:
        parts = target_path.split(".", 1)
        self.target_path = target_path
        self.object_name = parts[0].strip()
        self.property_name = parts[1].strip() if len(parts) > 1 else DEFAULT_PROPERTY
        self.label = label
        self.regex_message = regex_message
        self.constraints: typing.Dict[str, typing.Any] = dict()
        self.validators: typing.List[ValueValidator] = list()
        for kind, args in (constraints or dict()).items():
            self.add_constraint(kind, args)

    @classmethod
    def from_description(cls, target_path: str, d: typing.Mapping[str, typing.Any]) -> ValidationRule:
        """Create a rule from a mapping of constraint names (snake_case or lowerCamelCase) to arguments."""
        rule = cls(target_path)
        for key, value in d.items():
            canonical = _NORMALIZED_KEYS.get(TypeRegistry.normalize_name(key))
            if canonical == LABEL_KEY:
                rule.label = str(value)
            elif canonical == REGEX_MESSAGE_KEY:
                rule.regex_message = str(value)
            else:
                rule.add_constraint(key, value)
        return rule

    def add_constraint(self, kind: str, args: typing.Any) -> None:
        canonical = _NORMALIZED_KEYS.get(TypeRegistry.normalize_name(kind))
        if canonical not in CONSTRAINT_KINDS:
            raise Errors.ResolutionError(f"Unknown validation constraint '{kind}' for '{self.target_path}'")
        if canonical == REGEX:
            args = re.compile(args) if isinstance(args, str) else args
        self.constraints[canonical] = args

    def add_validator(self, validator: ValueValidator) -> None:
        self.validators.append(validator)

    def read_value(self, objects_by_name: typing.Mapping[str, typing.Any]) -> typing.Any:
        target = objects_by_name[self.object_name]
        for part in self.property_name.split("."):
            target = getattr(target, part.strip())
        return target

    def evaluate(self, objects_by_name: typing.Mapping[str, typing.Any], localize: LocalizeFn) -> typing.List[ValidationMessage]:
        value = self.read_value(objects_by_name)
        label = localize(self.label) if self.label else self.object_name
        messages: typing.List[ValidationMessage] = list()

        def add(kind: str, key: str, *args: typing.Any) -> None:
            messages.append(ValidationMessage(self.object_name, self.property_name, label, kind, localize(key, label, *args)))

        if _is_empty(value):
            if self.constraints.get(MANDATORY):
                add(MANDATORY, message_key(MANDATORY))
            else:
                self.__run_validators(value, label, messages)
            return messages

        text = value if isinstance(value, str) else str(value)
        if MIN_LENGTH in self.constraints and len(text) < int(self.constraints[MIN_LENGTH]):
            add(MIN_LENGTH, message_key(MIN_LENGTH), self.constraints[MIN_LENGTH])
        if MAX_LENGTH in self.constraints and len(text) > int(self.constraints[MAX_LENGTH]):
            add(MAX_LENGTH, message_key(MAX_LENGTH), self.constraints[MAX_LENGTH])
        if REGEX in self.constraints:
            pattern = self.constraints[REGEX]
            if not pattern.fullmatch(text):
                add(REGEX, self.regex_message or message_key(REGEX), pattern.pattern)
        if MIN_VALUE in self.constraints or MAX_VALUE in self.constraints:
            number = _to_number(value)
            if number is None:
                add("numeric", message_key("numeric"))
            else:
                if MIN_VALUE in self.constraints and number < float(self.constraints[MIN_VALUE]):
                    add(MIN_VALUE, message_key(MIN_VALUE), self.constraints[MIN_VALUE])
                if MAX_VALUE in self.constraints and number > float(self.constraints[MAX_VALUE]):
                    add(MAX_VALUE, message_key(MAX_VALUE), self.constraints[MAX_VALUE])
        if DATE_FORMAT in self.constraints and not isinstance(value, (datetime.date, datetime.datetime)):
            date_format = str(self.constraints[DATE_FORMAT])
            try:
                datetime.datetime.strptime(text.strip(), to_strptime_format(date_format))
            except ValueError:
                add(DATE_FORMAT, message_key(DATE_FORMAT), date_format)
        if self.constraints.get(EMAIL_ADDRESS) and not _EMAIL_PATTERN.match(text.strip()):
            add(EMAIL_ADDRESS, message_key(EMAIL_ADDRESS))
        self.__run_validators(value, label, messages)
        return messages

    def __run_validators(self, value: typing.Any, label: str, messages: typing.List[ValidationMessage]) -> None:
        for validator in self.validators:
            message = validator.validate(value, label)
            if message:
                messages.append(ValidationMessage(self.object_name, self.property_name, label, "custom", message))


def validate(objects_by_name: typing.Mapping[str, typing.Any], rules: typing.Sequence[Validatable],
             localize: LocalizeFn) -> typing.List[ValidationMessage]:
    """Evaluate rules in order and concatenate their messages. An empty list means everything is valid."""
    messages: typing.List[ValidationMessage] = list()
    for rule in rules:
        messages.extend(rule.evaluate(objects_by_name, localize))
    return messages
