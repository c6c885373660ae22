"""Condition expressions for rule matching.

Conditions are written as S-expressions::

    CONDITION_EXP := (OPERATOR CONDITION_LIST) | (MATCHER STRING) |
                     (header HEADER_NAME STRING) |
                     (thread SUBTYPE_STRING STRING) | (thread SUBTYPE_BOOL)
    OPERATOR := and | or | not
    MATCHER := subject | from | to | cc | bcc | list | sender | receiver | body
    SUBTYPE_STRING := first_message_subject | label
    SUBTYPE_BOOL := is_starred | is_important | is_in_inbox |
                    is_in_priority_inbox | is_in_spam | is_in_trash | is_unread
    CONDITION_LIST := CONDITION_EXP | CONDITION_EXP CONDITION_LIST

A pattern is one of ``/regex/flags``, ``"exact value"`` or a bare value.
"""

import re
from enum import Enum
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field

from mail_automata.errors import RuleSyntaxError

if TYPE_CHECKING:
    from mail_automata.mail.messages import MessageData

RE_FLAG_PATTERN = re.compile(r"^/(.*)/([gimsuy]*)$", re.DOTALL)
RE_KEYWORD = re.compile(r"\s*([^\s()]*)")

# JavaScript-style flags; g, u and y have no effect on a single search.
REGEX_FLAGS = {
    "i": re.IGNORECASE,
    "m": re.MULTILINE,
    "s": re.DOTALL,
    "g": 0,
    "u": 0,
    "y": 0,
}


class ConditionType(str, Enum):
    """Node types of a condition tree."""

    AND = "and"
    OR = "or"
    NOT = "not"

    SUBJECT = "subject"
    FROM = "from"
    TO = "to"
    CC = "cc"
    BCC = "bcc"
    LIST = "list"
    SENDER = "sender"
    RECEIVER = "receiver"
    BODY = "body"

    HEADER = "header"
    THREAD = "thread"


class ThreadSubType(str, Enum):
    """Thread-level properties a ``thread`` condition can test."""

    FIRST_MESSAGE_SUBJECT = "first_message_subject"
    LABEL = "label"
    IS_STARRED = "is_starred"
    IS_IMPORTANT = "is_important"
    IS_IN_INBOX = "is_in_inbox"
    IS_IN_PRIORITY_INBOX = "is_in_priority_inbox"
    IS_IN_SPAM = "is_in_spam"
    IS_IN_TRASH = "is_in_trash"
    IS_UNREAD = "is_unread"


CONDITION_TYPES: dict[str, ConditionType] = {t.value.upper(): t for t in ConditionType}
THREAD_SUBTYPES: dict[str, ThreadSubType] = {t.value.upper(): t for t in ThreadSubType}

OPERATOR_TYPES = (ConditionType.AND, ConditionType.OR, ConditionType.NOT)
ADDRESS_TYPES = (
    ConditionType.FROM,
    ConditionType.TO,
    ConditionType.CC,
    ConditionType.BCC,
    ConditionType.LIST,
    ConditionType.SENDER,
    ConditionType.RECEIVER,
)
PATTERN_SUBTYPES = (ThreadSubType.FIRST_MESSAGE_SUBJECT, ThreadSubType.LABEL)

# Thread flag subtype -> MessageData attribute
THREAD_FLAG_FIELDS: dict[ThreadSubType, str] = {
    ThreadSubType.IS_STARRED: "thread_is_starred",
    ThreadSubType.IS_IMPORTANT: "thread_is_important",
    ThreadSubType.IS_IN_INBOX: "thread_is_in_inbox",
    ThreadSubType.IS_IN_PRIORITY_INBOX: "thread_is_in_priority_inbox",
    ThreadSubType.IS_IN_SPAM: "thread_is_in_spam",
    ThreadSubType.IS_IN_TRASH: "thread_is_in_trash",
    ThreadSubType.IS_UNREAD: "thread_is_unread",
}


def compile_pattern(pattern: str, is_address: bool) -> re.Pattern[str]:
    """
    Compile a condition pattern into a regular expression.

    Args:
        pattern: ``/regex/flags``, ``"exact value"`` or a bare value.
        is_address: Whether the pattern is tested against email addresses.
            Bare address patterns ignore a ``+label`` suffix before the
            ``@`` and are case-insensitive; bare text patterns are
            case-sensitive substring matches.

    Returns:
        The compiled pattern, to be used with ``search``.

    Raises:
        RuleSyntaxError: If the pattern is empty or not a valid regex.
    """
    if not pattern:
        raise RuleSyntaxError("Condition should have value but not found")

    match = RE_FLAG_PATTERN.match(pattern)
    if match is not None:
        body, flag_chars = match.groups()
        flags = 0
        for char in flag_chars:
            flags |= REGEX_FLAGS[char]
        return _compile(body, flags, pattern)

    if len(pattern) >= 2 and pattern.startswith('"') and pattern.endswith('"'):
        # Exact matching, optionally wrapped in <...> or preceded by a name
        return _compile(f"(^|<){re.escape(pattern[1:-1])}($|>)", re.IGNORECASE, pattern)

    if is_address:
        # Ignore a +label in the address unless the pattern specifies one
        escaped = re.escape(pattern).replace("@", r"(\+[^@]+)?@", 1)
        return _compile(f"(^|<){escaped}($|>)", re.IGNORECASE, pattern)

    return _compile(re.escape(pattern), 0, pattern)


def _compile(expression: str, flags: int, pattern: str) -> re.Pattern[str]:
    try:
        return re.compile(expression, flags)
    except re.error as e:
        raise RuleSyntaxError(f"Invalid pattern {pattern}: {e}", source=pattern) from e


def _closing_index(text: str) -> int:
    """Index of the parenthesis closing the one at ``text[0]``, or -1."""
    level = 0
    for index, char in enumerate(text):
        if char == "(":
            level += 1
        elif char == ")":
            level -= 1
            if level == 0:
                return index
    return -1


def _split_first(rest: str) -> tuple[str, str]:
    """Split off the first whitespace-delimited token."""
    parts = rest.split(None, 1)
    if not parts:
        return "", ""
    if len(parts) == 1:
        return parts[0], ""
    return parts[0], parts[1].strip()


def _split_sub_conditions(rest: str, condition_str: str) -> list[str]:
    """Split the body of an operator into top-level ``(...)`` expressions."""
    result = []
    start = 0
    level = 0
    for end, char in enumerate(rest):
        if level == 0 and char != "(" and not char.isspace():
            raise RuleSyntaxError(
                f"Condition {condition_str} has text outside of its sub-conditions: "
                f"{rest[end:].strip()}",
                source=condition_str,
            )
        if char == "(":
            level += 1
        elif char == ")":
            level -= 1
            if level < 0:
                raise RuleSyntaxError(
                    f"Condition {condition_str} has non-balanced parentheses",
                    source=condition_str,
                )
            if level == 0:
                sub_str = rest[start : end + 1].strip()
                if sub_str:
                    result.append(sub_str)
                start = end + 1
    if level != 0:
        raise RuleSyntaxError(
            f"Condition {condition_str} has non-balanced parentheses overall.",
            source=condition_str,
        )
    return result


class Condition(BaseModel):
    """A node of a parsed condition expression."""

    model_config = ConfigDict(frozen=True)

    type: ConditionType
    header: str | None = Field(default=None, description="Header name for header conditions")
    thread_subtype: ThreadSubType | None = Field(
        default=None, description="Tested property for thread conditions"
    )
    value: str | None = Field(default=None, description="Pattern as written in the rule")
    pattern: re.Pattern[str] | None = Field(default=None, description="Compiled pattern")
    children: tuple["Condition", ...] = Field(default=(), description="Sub-conditions")

    @classmethod
    def parse(cls, condition_str: str) -> "Condition":
        """
        Parse a condition expression.

        Args:
            condition_str: The S-expression text.

        Returns:
            The root of the condition tree.

        Raises:
            RuleSyntaxError: If the expression is malformed.
        """
        condition_str = condition_str.strip()
        if not (condition_str.startswith("(") and condition_str.endswith(")")):
            raise RuleSyntaxError(
                f"Condition {condition_str} should be surrounded by ().",
                source=condition_str,
            )
        closing = _closing_index(condition_str)
        if 0 <= closing < len(condition_str) - 1:
            raise RuleSyntaxError(
                f"Condition {condition_str} should be a single expression surrounded by ().",
                source=condition_str,
            )

        inner = condition_str[1:-1]
        keyword_match = RE_KEYWORD.match(inner)
        type_str = keyword_match.group(1).upper()
        rest = inner[keyword_match.end() :].strip()

        condition_type = CONDITION_TYPES.get(type_str)
        if condition_type is None:
            raise RuleSyntaxError(
                f"Unexpected condition type {type_str} from {condition_str}.",
                source=condition_str,
            )

        match condition_type:
            case ConditionType.AND | ConditionType.OR:
                children = tuple(
                    cls.parse(sub) for sub in _split_sub_conditions(rest, condition_str)
                )
                return cls(type=condition_type, children=children)

            case ConditionType.NOT:
                children = tuple(
                    cls.parse(sub) for sub in _split_sub_conditions(rest, condition_str)
                )
                if len(children) != 1:
                    raise RuleSyntaxError(
                        f"Conditions of type {type_str} must have exactly one "
                        f"sub-condition, but found {len(children)}: {rest}",
                        source=condition_str,
                    )
                return cls(type=condition_type, children=children)

            case ConditionType.HEADER:
                header, value = _split_first(rest)
                if not header:
                    raise RuleSyntaxError(
                        f"Condition {condition_str} should name a header", source=condition_str
                    )
                return cls(
                    type=condition_type,
                    header=header,
                    value=value,
                    pattern=cls._pattern(value, True, condition_str),
                )

            case ConditionType.THREAD:
                subtype_str, value = _split_first(rest)
                subtype = THREAD_SUBTYPES.get(subtype_str.upper())
                if subtype is None:
                    raise RuleSyntaxError(
                        f"Invalid 'thread' subtype: \"{condition_str}\"", source=condition_str
                    )
                if subtype not in PATTERN_SUBTYPES:
                    return cls(type=condition_type, thread_subtype=subtype)
                is_address = subtype == ThreadSubType.LABEL
                return cls(
                    type=condition_type,
                    thread_subtype=subtype,
                    value=value,
                    pattern=cls._pattern(value, is_address, condition_str),
                )

            case _:
                is_address = condition_type in ADDRESS_TYPES
                return cls(
                    type=condition_type,
                    value=rest,
                    pattern=cls._pattern(rest, is_address, condition_str),
                )

    @staticmethod
    def _pattern(value: str, is_address: bool, condition_str: str) -> re.Pattern[str]:
        if not value:
            raise RuleSyntaxError(
                f"Condition {condition_str} should have value but not found",
                source=condition_str,
            )
        try:
            return compile_pattern(value, is_address)
        except RuleSyntaxError as e:
            raise RuleSyntaxError(f"Condition {condition_str}: {e}", source=condition_str) from e

    def matches(self, message: "MessageData") -> bool:
        """
        Check if the message matches this condition.

        Args:
            message: The normalized message to check.

        Returns:
            True if the condition matches.
        """
        match self.type:
            case ConditionType.AND:
                return all(c.matches(message) for c in self.children)

            case ConditionType.OR:
                return any(c.matches(message) for c in self.children)

            case ConditionType.NOT:
                return not self.children[0].matches(message)

            case ConditionType.FROM:
                return self._match_any([message.from_])

            case ConditionType.TO:
                return self._match_any(message.to)

            case ConditionType.CC:
                return self._match_any(message.cc)

            case ConditionType.BCC:
                return self._match_any(message.bcc)

            case ConditionType.LIST:
                return self._match_any([message.list_id])

            case ConditionType.SENDER:
                return self._match_any(message.sender)

            case ConditionType.RECEIVER:
                return self._match_any(message.receivers)

            case ConditionType.SUBJECT:
                return self._search(message.subject)

            case ConditionType.BODY:
                return self._search(message.body)

            case ConditionType.HEADER:
                value = message.headers.get(self.header)
                if value is None:
                    return False
                return self._search(value)

            case ConditionType.THREAD:
                return self._match_thread(message)

            case _:
                return False

    def _match_thread(self, message: "MessageData") -> bool:
        match self.thread_subtype:
            case ThreadSubType.FIRST_MESSAGE_SUBJECT:
                return self._search(message.thread_first_message_subject)
            case ThreadSubType.LABEL:
                return self._match_any(message.thread_labels)
            case _:
                return bool(getattr(message, THREAD_FLAG_FIELDS[self.thread_subtype]))

    def _search(self, text: str) -> bool:
        return self.pattern.search(text) is not None

    def _match_any(self, values: list[str]) -> bool:
        return any(self._search(value) for value in values)

    def headers(self) -> list[str]:
        """Names of all custom headers referenced in this condition tree."""
        result = []
        if self.type == ConditionType.HEADER:
            result.append(self.header)
        for child in self.children:
            result.extend(child.headers())
        return result

    def to_expression(self) -> str:
        """Serialize back to condition text that parses to an equivalent tree."""
        keyword = self.type.value
        if self.type in OPERATOR_TYPES:
            return f"({' '.join([keyword, *(c.to_expression() for c in self.children)])})"
        if self.type == ConditionType.HEADER:
            return f"({keyword} {self.header} {self.value})"
        if self.type == ConditionType.THREAD:
            if self.thread_subtype in PATTERN_SUBTYPES:
                return f"({keyword} {self.thread_subtype.value} {self.value})"
            return f"({keyword} {self.thread_subtype.value})"
        return f"({keyword} {self.value})"

    def __str__(self) -> str:
        return self.to_expression()
