"""
Rule-based Input Validation

Default validation collaborator for controllers. A ValidationFactory builds
a Validator from (data, rules, messages, attributes); the validator evaluates
lazily and exposes failures through a MessageBag.

Rules are given per field either as a list of descriptors or as a single
"rule|rule:param" string. A descriptor is a rule name with optional
comma-separated parameters ("max:255", "in:draft,published") or a callable
rule object invoked as rule(attribute, value, fail).

Scalar type checks (integer, numeric, boolean) use pydantic's lax-mode
coercion, so "12" is an integer and "yes" is a boolean.
"""

import re
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from pydantic import TypeAdapter, ValidationError

from routekit.errors import ValidationFailed


RuleDescriptor = Union[str, Callable[..., Any]]
RuleSet = Mapping[str, Union[str, Sequence[RuleDescriptor]]]
Extension = Callable[[str, Any, List[str], "Validator"], bool]

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s.]+$")

# Rules that run even when the attribute is missing or blank
IMPLICIT_RULES = {"required", "present"}

# Markers that change how other rules run but never fail on their own
MARKER_RULES = {"nullable", "sometimes"}

NUMERIC_RULES = {"numeric", "integer"}

DEFAULT_MESSAGES: Dict[str, Union[str, Dict[str, str]]] = {
    "required": "The :attribute field is required.",
    "present": "The :attribute field must be present.",
    "string": "The :attribute must be a string.",
    "integer": "The :attribute must be an integer.",
    "numeric": "The :attribute must be a number.",
    "boolean": "The :attribute field must be true or false.",
    "array": "The :attribute must be an array.",
    "email": "The :attribute must be a valid email address.",
    "min": {
        "numeric": "The :attribute must be at least :min.",
        "string": "The :attribute must be at least :min characters.",
        "array": "The :attribute must have at least :min items.",
    },
    "max": {
        "numeric": "The :attribute may not be greater than :max.",
        "string": "The :attribute may not be greater than :max characters.",
        "array": "The :attribute may not have more than :max items.",
    },
    "between": {
        "numeric": "The :attribute must be between :min and :max.",
        "string": "The :attribute must be between :min and :max characters.",
        "array": "The :attribute must have between :min and :max items.",
    },
    "in": "The selected :attribute is invalid.",
    "not_in": "The selected :attribute is invalid.",
    "regex": "The :attribute format is invalid.",
    "confirmed": "The :attribute confirmation does not match.",
    "same": "The :attribute and :other must match.",
}

_INT = TypeAdapter(int)
_FLOAT = TypeAdapter(float)
_BOOL = TypeAdapter(bool)


def _coerces(adapter: TypeAdapter, value: Any) -> bool:
    try:
        adapter.validate_python(value)
    except ValidationError:
        return False
    return True


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, (list, tuple, dict, set)):
        return len(value) == 0
    return False


def _compile_regex(pattern: str) -> "re.Pattern[str]":
    """Accept both bare patterns and /delimited/flags patterns."""
    flags = 0
    if len(pattern) >= 2 and pattern.startswith("/") and pattern.rfind("/") > 0:
        end = pattern.rfind("/")
        modifiers = pattern[end + 1 :]
        pattern = pattern[1:end]
        if "i" in modifiers:
            flags |= re.IGNORECASE
        if "m" in modifiers:
            flags |= re.MULTILINE
        if "s" in modifiers:
            flags |= re.DOTALL
    return re.compile(pattern, flags)


def parse_rule(rule: str) -> Tuple[str, List[str]]:
    """
    Split a rule string into (name, parameters).

    "max:255" -> ("max", ["255"]); "regex:/a,b/" keeps its pattern whole.
    """
    name, _, raw = rule.partition(":")
    name = name.strip().lower()
    if not raw:
        return name, []
    if name == "regex":
        return name, [raw]
    return name, [p.strip() for p in raw.split(",")]


def normalize_rules(rules: Union[str, Sequence[RuleDescriptor]]) -> List[RuleDescriptor]:
    if isinstance(rules, str):
        return [r for r in rules.split("|") if r]
    return list(rules)


class MessageBag:
    """Ordered mapping of field name -> list of messages"""

    def __init__(self, messages: Optional[Mapping[str, Iterable[str]]] = None):
        self._messages: Dict[str, List[str]] = {}
        for key, values in (messages or {}).items():
            for message in values:
                self.add(key, message)

    def add(self, key: str, message: str) -> "MessageBag":
        bucket = self._messages.setdefault(key, [])
        if message not in bucket:
            bucket.append(message)
        return self

    def has(self, key: str) -> bool:
        return bool(self._messages.get(key))

    def get(self, key: str) -> List[str]:
        return list(self._messages.get(key, []))

    def first(self, key: Optional[str] = None) -> Optional[str]:
        if key is not None:
            messages = self._messages.get(key) or []
            return messages[0] if messages else None
        for messages in self._messages.values():
            if messages:
                return messages[0]
        return None

    def all(self) -> List[str]:
        return [m for messages in self._messages.values() for m in messages]

    def keys(self) -> List[str]:
        return list(self._messages.keys())

    def get_messages(self) -> Dict[str, List[str]]:
        return {key: list(messages) for key, messages in self._messages.items()}

    def is_empty(self) -> bool:
        return len(self) == 0

    def __len__(self) -> int:
        return sum(len(messages) for messages in self._messages.values())

    def __repr__(self) -> str:
        return f"MessageBag({self._messages!r})"


class Validator:
    """
    Evaluates a rule set against a data mapping.

    Evaluation happens once, on the first call to fails(), passes(),
    errors() or validated().
    """

    def __init__(
        self,
        data: Mapping[str, Any],
        rules: RuleSet,
        messages: Optional[Mapping[str, str]] = None,
        attributes: Optional[Mapping[str, str]] = None,
        extensions: Optional[Mapping[str, Extension]] = None,
        extension_messages: Optional[Mapping[str, str]] = None,
    ):
        self.data = dict(data)
        self.rules = {attribute: normalize_rules(r) for attribute, r in rules.items()}
        self.custom_messages = dict(messages or {})
        self.custom_attributes = dict(attributes or {})
        self._extensions = dict(extensions or {})
        self._extension_messages = dict(extension_messages or {})
        self._errors: Optional[MessageBag] = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def passes(self) -> bool:
        if self._errors is None:
            self._errors = MessageBag()
            for attribute, rules in self.rules.items():
                self._validate_attribute(attribute, rules)
        return self._errors.is_empty()

    def fails(self) -> bool:
        return not self.passes()

    def errors(self) -> MessageBag:
        self.passes()
        return self._errors

    def validated(self) -> Dict[str, Any]:
        """
        Return the input restricted to the fields named in the rules.

        Raises:
            ValidationFailed: If the data does not pass
        """
        if self.fails():
            raise ValidationFailed(self)
        return {attribute: self.data[attribute] for attribute in self.rules if attribute in self.data}

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def _validate_attribute(self, attribute: str, rules: List[RuleDescriptor]) -> None:
        names = {parse_rule(r)[0] for r in rules if isinstance(r, str)}
        if "sometimes" in names and attribute not in self.data:
            return

        value = self.data.get(attribute)
        for rule in rules:
            if callable(rule):
                if self._is_validatable(attribute, value, None, names):
                    rule(attribute, value, lambda message, a=attribute: self._add_error(a, message))
                continue

            name, parameters = parse_rule(rule)
            if name in MARKER_RULES or not self._is_validatable(attribute, value, name, names):
                continue

            if not self._check(attribute, value, name, parameters, names):
                self._add_failure(attribute, name, parameters, value, names)

    def _is_validatable(self, attribute: str, value: Any, name: Optional[str], names: set) -> bool:
        if name in IMPLICIT_RULES:
            return True
        if attribute not in self.data:
            return False
        if isinstance(value, str) and value.strip() == "":
            return False
        if value is None and "nullable" in names:
            return False
        return True

    def _check(self, attribute: str, value: Any, name: str, parameters: List[str], names: set) -> bool:
        if name in self._extensions:
            return bool(self._extensions[name](attribute, value, parameters, self))

        if name == "required":
            return not _is_blank(value)
        if name == "present":
            return attribute in self.data
        if name == "string":
            return isinstance(value, str)
        if name == "integer":
            return not isinstance(value, bool) and _coerces(_INT, value)
        if name == "numeric":
            return not isinstance(value, bool) and _coerces(_FLOAT, value)
        if name == "boolean":
            return _coerces(_BOOL, value)
        if name == "array":
            return isinstance(value, (list, dict))
        if name == "email":
            return isinstance(value, str) and EMAIL_PATTERN.match(value) is not None
        if name in ("min", "max", "between"):
            return self._check_size(name, value, parameters, names)
        if name == "in":
            return str(value) in parameters
        if name == "not_in":
            return str(value) not in parameters
        if name == "regex":
            self._require_parameters(name, parameters, 1)
            return isinstance(value, (str, int, float)) and _compile_regex(parameters[0]).search(str(value)) is not None
        if name == "confirmed":
            return self.data.get(f"{attribute}_confirmation") == value
        if name == "same":
            self._require_parameters(name, parameters, 1)
            return self.data.get(parameters[0]) == value

        raise ValueError(f"Unknown validation rule: '{name}'")

    def _check_size(self, name: str, value: Any, parameters: List[str], names: set) -> bool:
        self._require_parameters(name, parameters, 2 if name == "between" else 1)
        size = self._size(value, names)
        if size is None:
            return False
        bounds = [float(p) for p in parameters]
        if name == "min":
            return size >= bounds[0]
        if name == "max":
            return size <= bounds[0]
        return bounds[0] <= size <= bounds[1]

    def _size(self, value: Any, names: set) -> Optional[float]:
        if isinstance(value, (list, tuple, dict, set)):
            return len(value)
        if names & NUMERIC_RULES and not isinstance(value, bool) and _coerces(_FLOAT, value):
            return float(_FLOAT.validate_python(value))
        if isinstance(value, str):
            return len(value)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return value
        return None

    @staticmethod
    def _require_parameters(name: str, parameters: List[str], count: int) -> None:
        if len(parameters) < count:
            raise ValueError(f"Validation rule '{name}' requires at least {count} parameter(s)")

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    def _add_failure(self, attribute: str, name: str, parameters: List[str], value: Any, names: set) -> None:
        message = self._find_message(attribute, name, value, names)
        message = self._replace_placeholders(message, name, parameters)
        self._add_error(attribute, message)

    def _add_error(self, attribute: str, message: str) -> None:
        self._errors.add(attribute, message.replace(":attribute", self.display_name(attribute)))

    def _find_message(self, attribute: str, name: str, value: Any, names: set) -> str:
        for key in (f"{attribute}.{name}", name):
            if key in self.custom_messages:
                return self.custom_messages[key]

        if name in self._extension_messages:
            return self._extension_messages[name]

        message = DEFAULT_MESSAGES.get(name, "The :attribute is invalid.")
        if isinstance(message, dict):
            if isinstance(value, (list, tuple, dict, set)):
                return message["array"]
            if names & NUMERIC_RULES:
                return message["numeric"]
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                return message["numeric"]
            return message["string"]
        return message

    def _replace_placeholders(self, message: str, name: str, parameters: List[str]) -> str:
        if name in ("min", "between") and parameters:
            message = message.replace(":min", parameters[0])
        if name == "max" and parameters:
            message = message.replace(":max", parameters[0])
        if name == "between" and len(parameters) > 1:
            message = message.replace(":max", parameters[1])
        if name in ("in", "not_in"):
            message = message.replace(":values", ", ".join(parameters))
        if name == "same" and parameters:
            message = message.replace(":other", self.display_name(parameters[0]))
        return message

    def display_name(self, attribute: str) -> str:
        if attribute in self.custom_attributes:
            return self.custom_attributes[attribute]
        return attribute.replace("_", " ")


class ValidationFactory:
    """Creates validators and holds application-wide custom rules"""

    def __init__(self):
        self._extensions: Dict[str, Extension] = {}
        self._extension_messages: Dict[str, str] = {}

    def extend(self, rule: str, callback: Extension, message: Optional[str] = None) -> None:
        """
        Register a named rule.

        The callback receives (attribute, value, parameters, validator) and
        returns True when the value passes.
        """
        self._extensions[rule.lower()] = callback
        if message is not None:
            self._extension_messages[rule.lower()] = message

    def make(
        self,
        data: Mapping[str, Any],
        rules: RuleSet,
        messages: Optional[Mapping[str, str]] = None,
        attributes: Optional[Mapping[str, str]] = None,
    ) -> Validator:
        return Validator(
            data,
            rules,
            messages,
            attributes,
            extensions=self._extensions,
            extension_messages=self._extension_messages,
        )
