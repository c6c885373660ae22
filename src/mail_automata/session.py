"""Per-run session state shared by thread processing."""

import logging
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from mail_automata.config import (
    ProcessingConfig,
    Settings,
    load_processing_config,
    load_rule_rows,
)
from mail_automata.logging import timed
from mail_automata.rules.engine import Rule, parse_rules

if TYPE_CHECKING:
    from mail_automata.mail.store import MailStore

logger = logging.getLogger(__name__)


class LabelCache:
    """Existing labels of a mail store, creating missing ones on demand."""

    def __init__(self, store: "MailStore") -> None:
        self.store = store
        self._labels: set[str] = set(store.get_user_labels())

    def __contains__(self, name: str) -> bool:
        return name in self._labels

    def get_or_create(self, name: str) -> str:
        """
        Make sure a label exists, creating its parents first if needed.

        Returns:
            The trimmed label name.

        Raises:
            ValueError: If the name is empty.
        """
        name = name.strip()
        if not name:
            raise ValueError("Can't get empty label!")

        if name not in self._labels:
            parent, separator, _ = name.rpartition("/")
            if separator:
                self.get_or_create(parent)
            logger.info("Creating missing label %s...", name)
            self.store.create_label(name)
            self._labels.add(name)
        return name


class SessionData:
    """Config, rules and label state for one processing run."""

    def __init__(
        self,
        config: ProcessingConfig,
        rules: list[Rule],
        store: "MailStore",
        processing_start_time: datetime | None = None,
    ) -> None:
        """
        Initialize the session.

        Args:
            config: Processing configuration.
            rules: Rules sorted by stage.
            store: Mail store the labels live in.
            processing_start_time: Start of this run (default: now).
        """
        self.config = config
        self.rules = rules
        self.labels = LabelCache(store)
        self.processing_start_time = processing_start_time or datetime.now()
        # Look back two processing intervals so no message in a thread is missed
        self.oldest_to_process = self.processing_start_time - timedelta(
            minutes=2 * config.processing_frequency_in_minutes
        )

        headers: list[str] = []
        for rule in rules:
            for header in rule.condition.headers():
                if header not in headers:
                    headers.append(header)
        self.requested_headers = headers

    @classmethod
    def load(cls, settings: Settings, store: "MailStore") -> "SessionData":
        """
        Load config and rules from the files named by the settings.

        Raises:
            ConfigError: If the processing config is invalid.
            RuleSyntaxError: If any rule cannot be parsed.
        """
        with timed("getConfigs"):
            config = load_processing_config(settings.config_path)
        with timed("getRules"):
            rules = parse_rules(load_rule_rows(settings.rules_path), config)
        return cls(config, rules, store)
