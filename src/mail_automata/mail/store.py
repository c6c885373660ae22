"""Mail store interface and an in-memory implementation."""

from typing import Protocol

from mail_automata.mail.messages import RawThread


class MailStore(Protocol):
    """Operations the processor needs from a mail store."""

    def search_unprocessed(self, label: str, limit: int) -> list[RawThread]: ...

    def get_user_labels(self) -> list[str]: ...

    def create_label(self, name: str) -> None: ...

    def add_label(self, name: str, threads: list[RawThread]) -> None: ...

    def remove_label(self, name: str, threads: list[RawThread]) -> None: ...

    def move_to_inbox(self, threads: list[RawThread]) -> None: ...

    def move_to_archive(self, threads: list[RawThread]) -> None: ...

    def move_to_trash(self, threads: list[RawThread]) -> None: ...

    def mark_important(self, threads: list[RawThread]) -> None: ...

    def mark_unimportant(self, threads: list[RawThread]) -> None: ...

    def mark_read(self, threads: list[RawThread]) -> None: ...

    def mark_unread(self, threads: list[RawThread]) -> None: ...


class MemoryMailStore:
    """
    Mail store keeping threads in memory.

    Every operation updates the thread flags and is recorded in
    ``operations`` as ``(operation, argument, thread ids)``.
    """

    def __init__(self, threads: list[RawThread] | None = None, labels: list[str] | None = None):
        self.threads = list(threads or [])
        self.labels: set[str] = set(labels or [])
        for thread in self.threads:
            self.labels.update(thread.labels)
        self.operations: list[tuple[str, str | None, list[str]]] = []

    def _record(self, operation: str, argument: str | None, threads: list[RawThread]) -> None:
        self.operations.append((operation, argument, [t.id for t in threads]))

    def search_unprocessed(self, label: str, limit: int) -> list[RawThread]:
        return [t for t in self.threads if label in t.labels][:limit]

    def get_user_labels(self) -> list[str]:
        return sorted(self.labels)

    def create_label(self, name: str) -> None:
        self.labels.add(name)
        self._record("create_label", name, [])

    def add_label(self, name: str, threads: list[RawThread]) -> None:
        for thread in threads:
            if name not in thread.labels:
                thread.labels.append(name)
        self._record("add_label", name, threads)

    def remove_label(self, name: str, threads: list[RawThread]) -> None:
        for thread in threads:
            if name in thread.labels:
                thread.labels.remove(name)
        self._record("remove_label", name, threads)

    def move_to_inbox(self, threads: list[RawThread]) -> None:
        for thread in threads:
            thread.is_in_inbox = True
            thread.is_in_trash = False
        self._record("move_to_inbox", None, threads)

    def move_to_archive(self, threads: list[RawThread]) -> None:
        for thread in threads:
            thread.is_in_inbox = False
        self._record("move_to_archive", None, threads)

    def move_to_trash(self, threads: list[RawThread]) -> None:
        for thread in threads:
            thread.is_in_inbox = False
            thread.is_in_trash = True
        self._record("move_to_trash", None, threads)

    def mark_important(self, threads: list[RawThread]) -> None:
        for thread in threads:
            thread.is_important = True
        self._record("mark_important", None, threads)

    def mark_unimportant(self, threads: list[RawThread]) -> None:
        for thread in threads:
            thread.is_important = False
        self._record("mark_unimportant", None, threads)

    def mark_read(self, threads: list[RawThread]) -> None:
        for thread in threads:
            thread.is_unread = False
        self._record("mark_read", None, threads)

    def mark_unread(self, threads: list[RawThread]) -> None:
        for thread in threads:
            thread.is_unread = True
        self._record("mark_unread", None, threads)
