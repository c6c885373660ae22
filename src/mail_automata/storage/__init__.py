"""Persistent storage for processing statistics."""

from mail_automata.storage.stats import StatsDatabase

__all__ = ["StatsDatabase"]
