"""Raw mail store records and their normalized view for rule matching."""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime

logger = logging.getLogger(__name__)

MAX_BODY_PROCESSING_LENGTH = 65535

# e.g. "Mailing-list: list xyz@gmail.com; contact xyz-admin@gmail.com"
RE_MAILING_LIST = re.compile(r"^\s*mailing-list:(.*)$", re.IGNORECASE | re.MULTILINE)


@dataclass
class RawMessage:
    """A message as provided by the mail store."""

    from_: str
    to: str = ""
    cc: str = ""
    bcc: str = ""
    reply_to: str = ""
    subject: str = ""
    body: str = ""
    date: datetime | None = None
    headers: dict[str, str] = field(default_factory=dict)
    raw_content: str = ""

    def get_header(self, name: str) -> str | None:
        """Get a header value by its exact name."""
        return self.headers.get(name)


@dataclass
class RawThread:
    """A thread as provided by the mail store."""

    id: str
    messages: list[RawMessage]
    labels: list[str] = field(default_factory=list)
    is_important: bool = False
    is_in_inbox: bool = True
    is_in_priority_inbox: bool = False
    is_in_spam: bool = False
    is_in_trash: bool = False
    is_starred: bool = False
    is_unread: bool = True

    @property
    def first_message_subject(self) -> str:
        return self.messages[0].subject if self.messages else ""


def parse_addresses(value: str) -> list[str]:
    """Split a comma-separated address header into lowercased entries."""
    if not value:
        return []
    return [address.strip() for address in value.lower().split(",") if address.strip()]


def parse_list_id(raw_content: str) -> str:
    """
    Extract the list address from the ``Mailing-list`` header.

    Only the header section of the raw message (up to the first blank
    line) is searched.

    Returns:
        The ``list`` address, or an empty string if there is none.
    """
    raw_headers = re.split(r"\r?\n\r?\n", raw_content, maxsplit=1)[0]
    match = RE_MAILING_LIST.search(raw_headers)
    if match is None or not match.group(1).strip():
        return ""
    for part in match.group(1).strip().split(";"):
        tokens = part.split()
        if len(tokens) >= 2 and tokens[0] == "list":
            return tokens[1]
    return ""


@dataclass(frozen=True)
class MessageData:
    """Read-only view of a message and its thread used by conditions."""

    from_: str
    to: list[str]
    cc: list[str]
    bcc: list[str]
    list_id: str
    reply_to: list[str]
    subject: str
    body: str
    headers: dict[str, str] = field(default_factory=dict)

    thread_is_important: bool = False
    thread_is_in_inbox: bool = False
    thread_is_in_priority_inbox: bool = False
    thread_is_in_spam: bool = False
    thread_is_in_trash: bool = False
    thread_is_starred: bool = False
    thread_is_unread: bool = False
    thread_first_message_subject: str = ""
    thread_labels: list[str] = field(default_factory=list)

    @property
    def sender(self) -> list[str]:
        """From address followed by reply-to addresses."""
        return [self.from_, *self.reply_to]

    @property
    def receivers(self) -> list[str]:
        """All to, cc and bcc addresses plus the mailing list, if any."""
        receivers = [*self.to, *self.cc, *self.bcc]
        if self.list_id:
            receivers.append(self.list_id)
        return receivers

    @classmethod
    def from_raw(
        cls,
        message: RawMessage,
        thread: RawThread,
        requested_headers: list[str] | None = None,
    ) -> "MessageData":
        """
        Build the normalized view of a message.

        Args:
            message: The raw message.
            thread: The thread the message belongs to.
            requested_headers: Custom header names referenced by rules, or
                None to keep every header of the message.

        Returns:
            MessageData with a body truncated to MAX_BODY_PROCESSING_LENGTH.
        """
        body = message.body
        if len(body) > MAX_BODY_PROCESSING_LENGTH:
            logger.info('Ignoring the end of long message with subject "%s"', message.subject)
            body = body[:MAX_BODY_PROCESSING_LENGTH]

        if requested_headers is None:
            headers = dict(message.headers)
        else:
            headers = {}
            for name in requested_headers:
                value = message.get_header(name)
                if value is not None:
                    headers[name] = value

        return cls(
            from_=message.from_,
            to=parse_addresses(message.to),
            cc=parse_addresses(message.cc),
            bcc=parse_addresses(message.bcc),
            list_id=parse_list_id(message.raw_content),
            reply_to=parse_addresses(message.reply_to),
            subject=message.subject,
            body=body,
            headers=headers,
            thread_is_important=thread.is_important,
            thread_is_in_inbox=thread.is_in_inbox,
            thread_is_in_priority_inbox=thread.is_in_priority_inbox,
            thread_is_in_spam=thread.is_in_spam,
            thread_is_in_trash=thread.is_in_trash,
            thread_is_starred=thread.is_starred,
            thread_is_unread=thread.is_unread,
            thread_first_message_subject=thread.first_message_subject,
            thread_labels=list(thread.labels),
        )

    def __str__(self) -> str:
        return self.subject
