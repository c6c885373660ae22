"""SQLite database for processing run statistics."""

import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Generator


class StatsDatabase:
    """Per-run statistics and their daily summaries."""

    def __init__(self, db_path: Path) -> None:
        """
        Initialize the database connection.

        Args:
            db_path: Path to the SQLite database file.
        """
        self.db_path = db_path
        self._ensure_schema()

    @contextmanager
    def _connection(self) -> Generator[sqlite3.Connection, None, None]:
        """Context manager for database connections."""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _ensure_schema(self) -> None:
        """Create database tables if they don't exist."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        with self._connection() as conn:
            conn.executescript("""
                -- One row per processing run
                CREATE TABLE IF NOT EXISTS statistics (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    start_time TEXT NOT NULL,
                    thread_count INTEGER NOT NULL,
                    message_count INTEGER NOT NULL,
                    duration_ms INTEGER NOT NULL
                );

                -- Collapsed statistics, one row per sanity check
                CREATE TABLE IF NOT EXISTS daily_stats (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    day TEXT NOT NULL,
                    execution_count INTEGER NOT NULL,
                    thread_total INTEGER NOT NULL,
                    thread_min INTEGER NOT NULL,
                    thread_max INTEGER NOT NULL,
                    thread_avg REAL NOT NULL,
                    message_total INTEGER NOT NULL,
                    message_min INTEGER NOT NULL,
                    message_max INTEGER NOT NULL,
                    message_avg REAL NOT NULL,
                    duration_total INTEGER NOT NULL,
                    duration_min INTEGER NOT NULL,
                    duration_max INTEGER NOT NULL,
                    duration_avg_per_execution REAL NOT NULL,
                    duration_avg_per_thread REAL,
                    duration_avg_per_message REAL
                );
            """)

    def add_stat_record(
        self,
        start_time: datetime,
        thread_count: int,
        message_count: int,
        end_time: datetime | None = None,
    ) -> None:
        """
        Record a processing run.

        Args:
            start_time: When the run started.
            thread_count: Threads processed successfully.
            message_count: Messages in those threads.
            end_time: When the run ended (default: now).
        """
        end_time = end_time or datetime.now()
        duration_ms = int((end_time - start_time).total_seconds() * 1000)
        with self._connection() as conn:
            conn.execute(
                """
                INSERT INTO statistics (start_time, thread_count, message_count, duration_ms)
                VALUES (?, ?, ?, ?)
                """,
                (start_time.isoformat(), thread_count, message_count, duration_ms),
            )

    def get_stat_records(self) -> list[dict[str, Any]]:
        """Get all uncollapsed run records, oldest first."""
        with self._connection() as conn:
            cursor = conn.execute("SELECT * FROM statistics ORDER BY id")
            return [dict(row) for row in cursor.fetchall()]

    def get_daily_stats(self, limit: int = 30) -> list[dict[str, Any]]:
        """Get the most recent daily summaries, newest first."""
        with self._connection() as conn:
            cursor = conn.execute(
                "SELECT * FROM daily_stats ORDER BY id DESC LIMIT ?", (limit,)
            )
            return [dict(row) for row in cursor.fetchall()]

    def collapse_stat_records(self, now: datetime | None = None) -> dict[str, Any] | None:
        """
        Summarize all run records into one daily row and clear them.

        Args:
            now: Date recorded for the summary (default: now).

        Returns:
            The summary row, or None if there were no records.
        """
        now = now or datetime.now()
        with self._connection() as conn:
            rows = conn.execute(
                "SELECT thread_count, message_count, duration_ms FROM statistics"
            ).fetchall()
            if not rows:
                return None

            threads = [row["thread_count"] for row in rows]
            messages = [row["message_count"] for row in rows]
            durations = [row["duration_ms"] for row in rows]
            execution_count = len(rows)
            thread_total = sum(threads)
            message_total = sum(messages)
            duration_total = sum(durations)

            summary = {
                "day": now.date().isoformat(),
                "execution_count": execution_count,
                "thread_total": thread_total,
                "thread_min": min(threads),
                "thread_max": max(threads),
                "thread_avg": thread_total / execution_count,
                "message_total": message_total,
                "message_min": min(messages),
                "message_max": max(messages),
                "message_avg": message_total / execution_count,
                "duration_total": duration_total,
                "duration_min": min(durations),
                "duration_max": max(durations),
                "duration_avg_per_execution": duration_total / execution_count,
                "duration_avg_per_thread": (
                    duration_total / thread_total if thread_total else None
                ),
                "duration_avg_per_message": (
                    duration_total / message_total if message_total else None
                ),
            }

            columns = ", ".join(summary)
            placeholders = ", ".join("?" for _ in summary)
            conn.execute(
                f"INSERT INTO daily_stats ({columns}) VALUES ({placeholders})",
                tuple(summary.values()),
            )
            conn.execute("DELETE FROM statistics")

        return summary
