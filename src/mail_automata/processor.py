"""Batch driver processing every unprocessed thread."""

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

from mail_automata.errors import ProcessingFailedError
from mail_automata.logging import timed
from mail_automata.mail.actions import apply_all_actions
from mail_automata.mail.threads import ThreadData
from mail_automata.rules.engine import RuleEngine

if TYPE_CHECKING:
    from mail_automata.mail.store import MailStore
    from mail_automata.session import SessionData
    from mail_automata.storage.stats import StatsDatabase

logger = logging.getLogger(__name__)


class ThreadResult(BaseModel):
    """Outcome of processing one thread."""

    thread_id: str = Field(description="Mail store thread ID")
    subject: str = Field(description="First message subject")
    action: str = Field(description="Summary of the action applied")
    message_count: int = Field(default=0, description="Messages evaluated")
    success: bool = Field(default=True, description="Whether processing succeeded")
    error: str | None = Field(default=None, description="Error message if failed")


class ProcessRunResult(BaseModel):
    """Summary of a processing run."""

    started_at: datetime = Field(description="When run started")
    completed_at: datetime = Field(description="When run completed")
    threads_fetched: int = Field(default=0, description="Unprocessed threads found")
    threads_processed: int = Field(default=0, description="Threads processed successfully")
    messages_processed: int = Field(default=0, description="Messages in processed threads")
    dry_run: bool = Field(default=False, description="Was this a dry run")
    threads: list[ThreadResult] = Field(default_factory=list)

    @property
    def failures(self) -> list[ThreadResult]:
        return [t for t in self.threads if not t.success]

    @property
    def all_pass(self) -> bool:
        return not self.failures

    @property
    def duration_seconds(self) -> float:
        """Get run duration in seconds."""
        return (self.completed_at - self.started_at).total_seconds()


def process_all_unprocessed_threads(
    session_data: "SessionData",
    store: "MailStore",
    *,
    stats: "StatsDatabase | None" = None,
    dry_run: bool = False,
    raise_on_failure: bool = True,
) -> ProcessRunResult:
    """
    Process every thread carrying the unprocessed label.

    A thread that fails is moved to the inbox with only the processing
    failed label, and the rest of the batch continues.

    Args:
        session_data: Session with config and rules.
        store: Mail store to read threads from and apply actions to.
        stats: Statistics database to record the run in, if any.
        dry_run: If True, collect actions without applying them.
        raise_on_failure: Raise after the run if any thread failed.

    Returns:
        ProcessRunResult with one entry per thread.

    Raises:
        ProcessingFailedError: If any thread failed and raise_on_failure is set.
    """
    started_at = datetime.now()
    config = session_data.config
    engine = RuleEngine(session_data.rules, config)

    with timed("fetchUnprocessedThreads"):
        unprocessed_threads = store.search_unprocessed(
            config.unprocessed_label, config.max_threads
        )
    logger.info("Found %d unprocessed threads.", len(unprocessed_threads))

    result = ProcessRunResult(
        started_at=started_at,
        completed_at=started_at,
        threads_fetched=len(unprocessed_threads),
        dry_run=dry_run,
    )
    if not unprocessed_threads:
        logger.info("All emails are processed, skip.")
        result.completed_at = datetime.now()
        return result

    with timed("transformIntoThreadData"):
        all_thread_data = [ThreadData(session_data, thread) for thread in unprocessed_threads]

    with timed("collectActions"):
        for thread_data in all_thread_data:
            try:
                engine.process_thread(thread_data)
            except Exception as e:
                logger.error("Process email failed: %s", e)
                thread_data.mark_failed(config.processing_failed_label)
                result.threads.append(_thread_result(thread_data, error=str(e)))
                continue
            result.threads_processed += 1
            result.messages_processed += len(thread_data.message_data_list)
            result.threads.append(_thread_result(thread_data))
    logger.info("Processed %d out of %d.", result.threads_processed, len(unprocessed_threads))

    if not dry_run:
        with timed("applyAllActions"):
            apply_all_actions(session_data, all_thread_data, store)
        if stats is not None:
            with timed("addStatRecord"):
                stats.add_stat_record(
                    started_at, result.threads_processed, result.messages_processed
                )

    result.completed_at = datetime.now()

    if raise_on_failure and not result.all_pass:
        raise ProcessingFailedError([t.error or t.subject for t in result.failures])
    return result


def _thread_result(thread_data: ThreadData, error: str | None = None) -> ThreadResult:
    return ThreadResult(
        thread_id=thread_data.raw.id,
        subject=thread_data.raw.first_message_subject,
        action=str(thread_data.thread_action),
        message_count=len(thread_data.message_data_list),
        success=error is None,
        error=error,
    )
