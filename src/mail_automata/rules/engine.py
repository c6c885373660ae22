"""Rule table parsing and staged rule evaluation."""

import logging
import re
import sys
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field

from mail_automata.errors import RuleSyntaxError
from mail_automata.rules.actions import (
    ActionAfterMatchType,
    BooleanActionType,
    InboxActionType,
    ThreadAction,
)
from mail_automata.rules.conditions import Condition

if TYPE_CHECKING:
    from mail_automata.config import ProcessingConfig
    from mail_automata.mail.messages import MessageData
    from mail_automata.mail.threads import ThreadData

logger = logging.getLogger(__name__)

# Stage assigned to rules whose stage cell is empty or not a number
RUN_LAST_STAGE = sys.maxsize

RULE_HEADERS = (
    "conditions",
    "add_labels",
    "move_to",
    "mark_important",
    "mark_read",
    "stage",
    "auto_label",
    "disabled",
    "action_after_match",
)

FALSE_VALUES = frozenset({"-1", "0", "no", "n", "false", "f"})
RE_LEADING_INT = re.compile(r"^[+-]?\d+")

INBOX_ACTIONS: dict[str, InboxActionType] = {t.name: t for t in InboxActionType}
AFTER_MATCH_ACTIONS: dict[str, ActionAfterMatchType] = {t.name: t for t in ActionAfterMatchType}


def parse_boolean_value(value: str) -> bool:
    """Empty or one of -1/0/no/n/false/f (any case) is False, anything else True."""
    value = value.strip()
    if not value:
        return False
    return value.lower() not in FALSE_VALUES


def parse_stage(value: str) -> int:
    """Parse a leading integer; anything else sorts the rule last."""
    match = RE_LEADING_INT.match(value.strip())
    if match is None:
        return RUN_LAST_STAGE
    return int(match.group(0))


def parse_string_list(value: str, delimiter: str = ",") -> list[str]:
    """Split a delimited cell, dropping empty entries."""
    return [item.strip() for item in value.split(delimiter) if item.strip()]


def parse_boolean_action(value: str) -> BooleanActionType:
    if not value.strip():
        return BooleanActionType.DEFAULT
    if parse_boolean_value(value):
        return BooleanActionType.ENABLE
    return BooleanActionType.DISABLE


def parse_inbox_action(value: str) -> InboxActionType:
    value = value.strip()
    if not value:
        return InboxActionType.DEFAULT
    result = INBOX_ACTIONS.get(value.upper())
    if result is None:
        raise RuleSyntaxError(f"Can't parse inbox action value {value}.", source=value)
    return result


def parse_action_after_match(value: str) -> ActionAfterMatchType:
    value = value.strip()
    if not value:
        return ActionAfterMatchType.DEFAULT
    result = AFTER_MATCH_ACTIONS.get(value.upper())
    if result is None:
        raise RuleSyntaxError(f"Can't parse action_after_match value {value}.", source=value)
    return result


class Rule(BaseModel):
    """A condition with the action to merge into a thread when it matches."""

    model_config = ConfigDict(frozen=True)

    condition: Condition
    thread_action: ThreadAction = Field(description="Action template merged on match")
    stage: int = Field(default=RUN_LAST_STAGE, description="Lower stages are evaluated first")

    @classmethod
    def from_condition(
        cls, condition_str: str, thread_action: ThreadAction, stage: int
    ) -> "Rule":
        """Build a rule from condition text."""
        return cls(
            condition=Condition.parse(condition_str),
            thread_action=thread_action,
            stage=stage,
        )

    def matches(self, message: "MessageData") -> bool:
        return self.condition.matches(message)

    def __str__(self) -> str:
        return f"[{self.stage}] {self.condition} => {self.thread_action}"


def parse_rules(rows: list[list[str]], config: "ProcessingConfig") -> list[Rule]:
    """
    Parse a rule table into rules ordered by stage.

    Args:
        rows: Table rows; the first row names the columns.
        config: Processing config; ``parent_labeling`` controls whether
            nested labels also add their parents.

    Returns:
        Enabled rules, stable-sorted by ascending stage.

    Raises:
        RuleSyntaxError: If a header is unknown or missing, or any cell of
            an enabled rule cannot be parsed.
    """
    if not rows:
        return []

    header_map: dict[str, int] = {}
    for column, name in enumerate(rows[0]):
        name = name.strip()
        if name not in RULE_HEADERS:
            raise RuleSyntaxError(f'Invalid rule header:"{name}"', source=name)
        header_map[name] = column

    missing = [name for name in RULE_HEADERS if name not in header_map]
    if missing:
        raise RuleSyntaxError(f"Missing rule headers: {', '.join(missing)}")

    rules = []
    for row_number, row in enumerate(rows[1:], start=2):
        # Short rows are padded with empty cells
        row = [*row, *([""] * (len(rows[0]) - len(row)))]
        values = {name: row[column].strip() for name, column in header_map.items()}

        condition_str = values["conditions"]
        if not condition_str:
            continue
        if parse_boolean_value(values["disabled"]):
            continue

        try:
            thread_action = ThreadAction(
                move_to=parse_inbox_action(values["move_to"]),
                important=parse_boolean_action(values["mark_important"]),
                read=parse_boolean_action(values["mark_read"]),
                auto_label=parse_boolean_action(values["auto_label"]),
                action_after_match=parse_action_after_match(values["action_after_match"]),
            )
            thread_action.add_labels(
                parse_string_list(values["add_labels"]),
                expand_parents=config.parent_labeling,
            )
            rule = Rule.from_condition(condition_str, thread_action, parse_stage(values["stage"]))
        except RuleSyntaxError as e:
            raise RuleSyntaxError(f"Rule in row {row_number}: {e}", source=e.source) from e

        # Evaluation starts at stage 0
        if rule.stage < 0:
            logger.warning(
                "Rule in row %d has negative stage %d and will never run: %s",
                row_number,
                rule.stage,
                rule.condition,
            )
        rules.append(rule)

    # sorted() is stable, so rules in the same stage keep table order
    rules = sorted(rules, key=lambda r: r.stage)

    logger.debug("Parsed rules:\n%s", "\n---\n".join(str(rule) for rule in rules))
    return rules


class RuleEngine:
    """Engine evaluating messages against rules in stage order."""

    def __init__(
        self,
        rules: list[Rule] | None = None,
        config: "ProcessingConfig | None" = None,
    ) -> None:
        """
        Initialize the rule engine.

        Args:
            rules: Rules to evaluate; re-sorted by stage, keeping ties in order.
            config: Processing config for automatic list labels (default: none).
        """
        self.rules = sorted(rules or [], key=lambda r: r.stage)
        self.config = config

    def evaluate_message(
        self, message: "MessageData", thread_action: ThreadAction | None = None
    ) -> list[Rule]:
        """
        Evaluate one message against the rules.

        Walks rules by ascending stage. A match merges the rule's action into
        ``thread_action`` and then, depending on the rule's
        ``action_after_match``:

        - DONE stops immediately;
        - FINISH_STAGE or DEFAULT finishes the rules of the current stage
          and then stops;
        - NEXT_STAGE skips the rest of the current stage and continues with
          later stages.

        Args:
            message: The message to evaluate.
            thread_action: Accumulated action for the thread, if any.

        Returns:
            Matched rules in evaluation order.
        """
        matched = []
        min_stage = 0
        stopping_stage: float = float("inf")
        for rule in self.rules:
            if rule.stage < min_stage:
                continue
            if rule.stage > stopping_stage:
                break
            if not rule.matches(message):
                continue

            logger.debug(
                "rule %s matches message %s, apply action %s", rule, message, rule.thread_action
            )
            matched.append(rule)
            if thread_action is not None:
                thread_action.merge_from(rule.thread_action)

            match rule.thread_action.action_after_match:
                case ActionAfterMatchType.DONE:
                    break
                case ActionAfterMatchType.NEXT_STAGE:
                    min_stage = rule.stage + 1
                    stopping_stage = float("inf")
                case _:
                    stopping_stage = rule.stage
        return matched

    def process_thread(self, thread_data: "ThreadData") -> ThreadAction:
        """
        Evaluate every message of a thread and validate the merged action.

        Returns:
            The thread's accumulated action.

        Raises:
            UnmatchedThreadError: If the thread ends with no effective action.
        """
        for message_data in thread_data.message_data_list:
            self.evaluate_message(message_data, thread_data.thread_action)
            self._auto_label(message_data, thread_data.thread_action)
        thread_data.validate_actions()
        return thread_data.thread_action

    def _auto_label(self, message: "MessageData", thread_action: ThreadAction) -> None:
        """Label a mailing list message by its list address when auto_label is on."""
        if thread_action.auto_label != BooleanActionType.ENABLE or not message.list_id:
            return
        parent = self.config.auto_labeling_parent_label.strip("/") if self.config else ""
        name = f"{parent}/{message.list_id}" if parent else message.list_id
        expand_parents = self.config.parent_labeling if self.config else True
        thread_action.add_labels([name], expand_parents=expand_parents)
