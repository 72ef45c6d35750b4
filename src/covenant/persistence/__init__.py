"""Persistence layer — event log and state storage."""

from covenant.persistence.event_log import EventLog, EventRecord, EventKind
from covenant.persistence.state_store import StateStore

__all__ = ["EventLog", "EventRecord", "EventKind", "StateStore"]
