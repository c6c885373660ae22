"""Batch application of thread actions to a mail store."""

import logging
from typing import TYPE_CHECKING

from mail_automata.logging import timed
from mail_automata.mail.messages import RawThread
from mail_automata.rules.actions import BooleanActionType, InboxActionType

if TYPE_CHECKING:
    from mail_automata.mail.store import MailStore
    from mail_automata.mail.threads import ThreadData
    from mail_automata.session import SessionData

logger = logging.getLogger(__name__)


class ActionPlan:
    """Threads grouped by the store operation to apply to them."""

    def __init__(self) -> None:
        self.labels: dict[str, list[RawThread]] = {}
        self.moves: dict[InboxActionType, list[RawThread]] = {t: [] for t in InboxActionType}
        self.important: dict[BooleanActionType, list[RawThread]] = {
            t: [] for t in BooleanActionType
        }
        self.read: dict[BooleanActionType, list[RawThread]] = {t: [] for t in BooleanActionType}

    @classmethod
    def from_threads(cls, all_thread_data: list["ThreadData"]) -> "ActionPlan":
        plan = cls()
        for thread_data in all_thread_data:
            thread = thread_data.raw
            action = thread_data.thread_action
            logger.debug(
                "apply action %s to thread '%s'", action, thread.first_message_subject
            )
            for label_name in sorted(action.label_names):
                plan.labels.setdefault(label_name, []).append(thread)
            plan.moves[action.move_to].append(thread)
            plan.important[action.important].append(thread)
            plan.read[action.read].append(thread)
        return plan


def apply_all_actions(
    session_data: "SessionData",
    all_thread_data: list["ThreadData"],
    store: "MailStore",
) -> ActionPlan:
    """
    Apply the collected actions of all threads in batches.

    Labels are created when missing. Afterwards every thread gets the
    processed label and loses the unprocessed label.

    Returns:
        The plan that was applied.
    """
    plan = ActionPlan.from_threads(all_thread_data)

    with timed("BatchApply"):
        for label_name, threads in plan.labels.items():
            store.add_label(session_data.labels.get_or_create(label_name), threads)
            logger.debug("add label %s to %d threads", label_name, len(threads))
        logger.info("Updated labels: %s.", ", ".join(plan.labels))

        for move_to, threads in plan.moves.items():
            if not threads:
                continue
            match move_to:
                case InboxActionType.INBOX:
                    store.move_to_inbox(threads)
                case InboxActionType.ARCHIVE:
                    store.move_to_archive(threads)
                case InboxActionType.TRASH:
                    store.move_to_trash(threads)

        for important, threads in plan.important.items():
            if not threads:
                continue
            match important:
                case BooleanActionType.ENABLE:
                    store.mark_important(threads)
                case BooleanActionType.DISABLE:
                    store.mark_unimportant(threads)

        for read, threads in plan.read.items():
            if not threads:
                continue
            match read:
                case BooleanActionType.ENABLE:
                    store.mark_read(threads)
                case BooleanActionType.DISABLE:
                    store.mark_unread(threads)
        logger.info("Updated threads status.")

        all_threads = [thread_data.raw for thread_data in all_thread_data]
        if all_threads:
            config = session_data.config
            if config.processed_label:
                processed_label = session_data.labels.get_or_create(config.processed_label)
                store.add_label(processed_label, all_threads)
            store.remove_label(config.unprocessed_label, all_threads)
        logger.info("Mark as processed.")

    return plan
