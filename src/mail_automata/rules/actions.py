"""Thread actions accumulated while rules are evaluated."""

from enum import Enum

from pydantic import BaseModel, Field


class BooleanActionType(str, Enum):
    """Tri-state directive for a boolean thread property."""

    DEFAULT = "default"
    ENABLE = "enable"
    DISABLE = "disable"


class InboxActionType(str, Enum):
    """Where to move a thread."""

    DEFAULT = "default"
    INBOX = "inbox"
    ARCHIVE = "archive"
    TRASH = "trash"
    NOTHING = "nothing"  # explicit no-op, satisfies validation


class ActionAfterMatchType(str, Enum):
    """What the engine does after a rule matches."""

    DEFAULT = "default"
    DONE = "done"
    FINISH_STAGE = "finish_stage"
    NEXT_STAGE = "next_stage"


BOOLEAN_ACTION_FIELDS = ("important", "read", "auto_label")


class ThreadAction(BaseModel):
    """Pending changes for a thread, merged from every matching rule."""

    label_names: set[str] = Field(default_factory=set, description="Labels to add")
    move_to: InboxActionType = Field(default=InboxActionType.DEFAULT)
    important: BooleanActionType = Field(default=BooleanActionType.DEFAULT)
    read: BooleanActionType = Field(default=BooleanActionType.DEFAULT)
    auto_label: BooleanActionType = Field(default=BooleanActionType.DEFAULT)
    action_after_match: ActionAfterMatchType = Field(default=ActionAfterMatchType.DEFAULT)

    def has_any_action(self) -> bool:
        """Check if applying this action would change the thread."""
        return (
            len(self.label_names) > 0
            or self.move_to != InboxActionType.DEFAULT
            or self.important != BooleanActionType.DEFAULT
            or self.read != BooleanActionType.DEFAULT
        )

    def add_labels(self, names: list[str], expand_parents: bool = True) -> None:
        """
        Add labels to the action.

        Args:
            names: Label names, ``/`` separating nested levels.
            expand_parents: Also add every parent of a nested label, so
                ``a/b/c`` adds ``a/b/c``, ``a/b`` and ``a``.
        """
        for label in names:
            if not expand_parents:
                self.label_names.add(label)
                continue
            remaining = label
            while remaining:
                self.label_names.add(remaining)
                remaining = remaining.rpartition("/")[0]

    def merge_from(self, other: "ThreadAction") -> "ThreadAction":
        """
        Merge another action into this one.

        Labels are unioned; every other field is overwritten only when the
        other action sets a non-default value, so the last rule wins.

        Returns:
            This action, for chaining.
        """
        self.label_names.update(other.label_names)
        if other.move_to != InboxActionType.DEFAULT:
            self.move_to = other.move_to
        for name in BOOLEAN_ACTION_FIELDS:
            value = getattr(other, name)
            if value != BooleanActionType.DEFAULT:
                setattr(self, name, value)
        if other.action_after_match != ActionAfterMatchType.DEFAULT:
            self.action_after_match = other.action_after_match
        return self

    def __str__(self) -> str:
        result = f">{self.move_to.name} +L[{', '.join(sorted(self.label_names))}]"
        for name in BOOLEAN_ACTION_FIELDS:
            match getattr(self, name):
                case BooleanActionType.ENABLE:
                    result += f" +{name[0].upper()}"
                case BooleanActionType.DISABLE:
                    result += f" -{name[0].upper()}"
        return result
