"""Pytest fixtures for mail-automata tests."""

from collections.abc import Callable
from datetime import datetime, timedelta
from itertools import count

import pytest

from mail_automata.config import ProcessingConfig
from mail_automata.logging import reset_logging
from mail_automata.mail.messages import MessageData, RawMessage, RawThread
from mail_automata.mail.store import MemoryMailStore
from mail_automata.rules.engine import RULE_HEADERS, parse_rules
from mail_automata.session import SessionData

# Start of the simulated processing run; default message dates fall inside its window
PROCESSING_START = datetime(2024, 3, 1, 12, 0, 0)


@pytest.fixture(autouse=True)
def clean_logging():
    """Start and end every test without mail_automata log handlers."""
    reset_logging()
    yield
    reset_logging()


@pytest.fixture
def processing_start() -> datetime:
    """Start of the simulated processing run."""
    return PROCESSING_START


@pytest.fixture
def processing_config() -> ProcessingConfig:
    """Create a processing config with predictable labels."""
    return ProcessingConfig(
        unprocessed_label="unprocessed",
        processed_label="processed",
        processing_failed_label="error",
        processing_frequency_in_minutes=5,
    )


@pytest.fixture
def make_raw_message() -> Callable[..., RawMessage]:
    """Factory for raw messages received one minute before the run."""

    def _make(**fields) -> RawMessage:
        fields.setdefault("from_", "sender@example.com")
        fields.setdefault("date", PROCESSING_START - timedelta(minutes=1))
        return RawMessage(**fields)

    return _make


@pytest.fixture
def make_thread(make_raw_message) -> Callable[..., RawThread]:
    """Factory for unprocessed threads; builds one default message if none given."""
    ids = count(1)

    def _make(*messages: RawMessage, labels: list[str] | None = None, **flags) -> RawThread:
        return RawThread(
            id=f"thread-{next(ids)}",
            messages=list(messages) or [make_raw_message()],
            labels=list(labels) if labels is not None else ["unprocessed"],
            **flags,
        )

    return _make


@pytest.fixture
def make_message_data(make_raw_message) -> Callable[..., MessageData]:
    """Factory for the normalized view of a single-message thread."""

    def _make(
        thread_labels: list[str] | None = None,
        thread_flags: dict[str, bool] | None = None,
        requested_headers: list[str] | None = None,
        **message_fields,
    ) -> MessageData:
        message = make_raw_message(**message_fields)
        thread = RawThread(
            id="thread-1",
            messages=[message],
            labels=list(thread_labels or []),
            **(thread_flags or {}),
        )
        return MessageData.from_raw(message, thread, requested_headers)

    return _make


@pytest.fixture
def sample_message(make_message_data) -> MessageData:
    """Create a sample message for testing."""
    return make_message_data(
        from_="Alice Smith <alice+news@example.com>",
        to="Bob <bob@corp.com>, carol@corp.com",
        cc="team+tag@corp.com",
        reply_to="Support <support@example.com>",
        subject="Weekly Report - March",
        body="Numbers are up.\nSee the attached summary.",
        headers={"X-Priority": "1", "Precedence": "bulk list"},
        raw_content=(
            "Mailing-list: list reports@corp.com; contact reports-admin@corp.com\r\n"
            "Subject: Weekly Report - March\r\n"
            "\r\n"
            "Numbers are up."
        ),
    )


@pytest.fixture
def make_rule_rows() -> Callable[..., list[list[str]]]:
    """Factory for rule tables; each rule is a dict of column name to cell."""

    def _make(*rules: dict[str, str]) -> list[list[str]]:
        return [list(RULE_HEADERS), *([rule.get(name, "") for name in RULE_HEADERS] for rule in rules)]

    return _make


@pytest.fixture
def make_session(processing_config) -> Callable[..., SessionData]:
    """Factory for sessions starting at PROCESSING_START."""

    def _make(
        rule_rows: list[list[str]],
        store: MemoryMailStore | None = None,
        config: ProcessingConfig | None = None,
    ) -> SessionData:
        config = config or processing_config
        return SessionData(
            config,
            parse_rules(rule_rows, config),
            store or MemoryMailStore(),
            processing_start_time=PROCESSING_START,
        )

    return _make
