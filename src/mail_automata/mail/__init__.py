"""Mail store records, thread state and action application."""

from mail_automata.mail.messages import MessageData, RawMessage, RawThread
from mail_automata.mail.store import MailStore, MemoryMailStore
from mail_automata.mail.threads import ThreadData, load_threads

__all__ = [
    "MailStore",
    "MemoryMailStore",
    "MessageData",
    "RawMessage",
    "RawThread",
    "ThreadData",
    "load_threads",
]
