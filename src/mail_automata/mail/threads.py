"""Thread state during processing and loading threads from YAML."""

import logging
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

import yaml

from mail_automata.errors import ConfigError, UnmatchedThreadError
from mail_automata.mail.messages import MessageData, RawMessage, RawThread
from mail_automata.rules.actions import InboxActionType, ThreadAction

if TYPE_CHECKING:
    from mail_automata.session import SessionData

logger = logging.getLogger(__name__)


def _is_newer(date: datetime | None, oldest: datetime) -> bool:
    """Compare a message date to the window start; undated messages are kept."""
    if date is None:
        return True
    # Compare aware dates in local time against a naive window start
    if date.tzinfo is not None and oldest.tzinfo is None:
        date = date.astimezone().replace(tzinfo=None)
    elif date.tzinfo is None and oldest.tzinfo is not None:
        oldest = oldest.astimezone().replace(tzinfo=None)
    return date > oldest


class ThreadData:
    """A thread, the messages to evaluate and the action collected for it."""

    def __init__(self, session_data: "SessionData", thread: RawThread) -> None:
        """
        Select the messages of a thread to evaluate.

        Only messages received after ``session_data.oldest_to_process`` are
        kept, but at least the last message is always evaluated.

        Args:
            session_data: Session holding the processing window and headers.
            thread: The raw thread.
        """
        self.raw = thread
        self.thread_action = ThreadAction()

        messages = thread.messages
        new_messages = [
            message
            for message in messages
            if _is_newer(message.date, session_data.oldest_to_process)
        ]
        if not new_messages and messages:
            new_messages = [messages[-1]]

        self.message_data_list = [
            MessageData.from_raw(message, thread, session_data.requested_headers)
            for message in new_messages
        ]

        num_dropped = len(messages) - len(new_messages)
        if num_dropped > 0:
            logger.info(
                'Ignoring oldest %d messages in thread "%s"',
                num_dropped,
                thread.first_message_subject,
            )

    def validate_actions(self) -> None:
        """
        Check that the collected action does something.

        Raises:
            UnmatchedThreadError: If there is no effective action and the
                thread was not explicitly moved to NOTHING.
        """
        if self.thread_action.has_any_action():
            return
        if self.thread_action.move_to == InboxActionType.NOTHING:
            return
        last_message = self.raw.messages[-1] if self.raw.messages else RawMessage(from_="")
        raise UnmatchedThreadError(
            subject=self.raw.first_message_subject,
            sender=last_message.from_,
            receiver=last_message.to,
            action=self.thread_action,
        )

    def mark_failed(self, failed_label: str) -> None:
        """Replace the action so the thread shows up in the inbox under ``failed_label``."""
        self.thread_action.move_to = InboxActionType.INBOX
        self.thread_action.label_names.clear()
        self.thread_action.label_names.add(failed_label)

    def __str__(self) -> str:
        return self.raw.first_message_subject


def _parse_date(value: Any) -> datetime | None:
    """Parse a YAML date value into a datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value))
    except ValueError as e:
        raise ConfigError(f"Invalid message date: {value}") from e


def _text(value: Any) -> str:
    """YAML nulls, as in an empty `cc:`, read as empty text."""
    return "" if value is None else str(value)


def _parse_message(data: dict[str, Any]) -> RawMessage:
    headers = data.get("headers") or {}
    return RawMessage(
        from_=_text(data.get("from")),
        to=_text(data.get("to")),
        cc=_text(data.get("cc")),
        bcc=_text(data.get("bcc")),
        reply_to=_text(data.get("reply_to")),
        subject=_text(data.get("subject")),
        body=_text(data.get("body")),
        date=_parse_date(data.get("date")),
        headers={str(k): _text(v) for k, v in headers.items()},
        raw_content=_text(data.get("raw")),
    )


def parse_threads(data: dict[str, Any]) -> list[RawThread]:
    """
    Build raw threads from a ``threads`` document.

    Each thread maps ``id``, ``labels``, the flags ``important``,
    ``in_inbox``, ``in_priority_inbox``, ``in_spam``, ``in_trash``,
    ``starred``, ``unread`` and a list of ``messages``.

    Raises:
        ConfigError: If a thread has no messages or a date is invalid.
    """
    threads = []
    for index, item in enumerate(data.get("threads") or [], start=1):
        messages = [_parse_message(m) for m in item.get("messages") or []]
        if not messages:
            raise ConfigError(f"Thread #{index} has no messages")
        threads.append(
            RawThread(
                id=str(item.get("id", index)),
                messages=messages,
                labels=[str(label) for label in item.get("labels") or []],
                is_important=bool(item.get("important", False)),
                is_in_inbox=bool(item.get("in_inbox", True)),
                is_in_priority_inbox=bool(item.get("in_priority_inbox", False)),
                is_in_spam=bool(item.get("in_spam", False)),
                is_in_trash=bool(item.get("in_trash", False)),
                is_starred=bool(item.get("starred", False)),
                is_unread=bool(item.get("unread", True)),
            )
        )
    return threads


def load_threads(path: Path) -> list[RawThread]:
    """Load raw threads from a YAML file."""
    with open(path) as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        raise ConfigError(f"Threads file {path} should contain a mapping")

    return parse_threads(data)
