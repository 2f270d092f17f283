"""Audit persistence: the append-only protocol event log."""

from giftswap.persistence.event_log import EventKind, EventLog, EventRecord

__all__ = ["EventKind", "EventLog", "EventRecord"]
