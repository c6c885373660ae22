"""Error classes for rule loading and thread processing."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from mail_automata.rules.actions import ThreadAction


class MailAutomataError(Exception):
    """Base class for all mail-automata errors."""


class RuleSyntaxError(MailAutomataError):
    """Raised when a condition or rule table cell cannot be parsed."""

    def __init__(self, message: str, source: str | None = None) -> None:
        super().__init__(message)
        self.source = source


class ConfigError(MailAutomataError):
    """Raised when the processing configuration is invalid."""


class UnmatchedThreadError(MailAutomataError):
    """Raised when a thread ends processing without any effective action."""

    def __init__(
        self,
        subject: str,
        sender: str,
        receiver: str,
        action: "ThreadAction",
    ) -> None:
        super().__init__(
            f'Thread "{subject}" from {sender} to {receiver} has default action '
            f"({action}), does it match any rule?"
        )
        self.subject = subject
        self.sender = sender
        self.receiver = receiver
        self.action = action


class ProcessingFailedError(MailAutomataError):
    """Raised after a batch run in which at least one thread failed."""

    def __init__(self, failures: list[str]) -> None:
        super().__init__(
            f"Processing failed for {len(failures)} thread(s), check emails"
        )
        self.failures = failures
