"""Reporting module for incident tracking."""

from .incident_journal import JOURNAL_CAPACITY, IncidentEntry, IncidentJournal, IncidentKind

__all__ = ["IncidentJournal", "IncidentEntry", "IncidentKind", "JOURNAL_CAPACITY"]
