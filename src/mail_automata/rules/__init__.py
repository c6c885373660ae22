"""Rule engine for mail thread processing."""

from mail_automata.rules.actions import (
    ActionAfterMatchType,
    BooleanActionType,
    InboxActionType,
    ThreadAction,
)
from mail_automata.rules.conditions import (
    Condition,
    ConditionType,
    ThreadSubType,
    compile_pattern,
)
from mail_automata.rules.engine import Rule, RuleEngine, parse_rules

__all__ = [
    "ActionAfterMatchType",
    "BooleanActionType",
    "Condition",
    "ConditionType",
    "InboxActionType",
    "Rule",
    "RuleEngine",
    "ThreadAction",
    "ThreadSubType",
    "compile_pattern",
    "parse_rules",
]
