"""Append-only event log: the audit trail of every protocol action.

Registry changes, round creation, phase transitions, commits, sender
determinations and receiver disclosures each append one immutable record.
The log is for outside observers; no protocol decision ever reads it
back. Records never carry secrets: disclosures log the SHA-256 of the
encrypted payload, not the payload itself.
"""

from __future__ import annotations

import enum
import hashlib
import json
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional, Sequence


class EventKind(str, enum.Enum):
    """Classification of protocol events."""
    PARTICIPANT_REGISTERED = "participant_registered"
    REGISTRY_FROZEN = "registry_frozen"
    REGISTRY_UNFROZEN = "registry_unfrozen"
    ROUND_CREATED = "round_created"
    PHASE_TRANSITION = "phase_transition"
    COMMITMENT_SUBMITTED = "commitment_submitted"
    SENDER_DETERMINED = "sender_determined"
    RECEIVER_DISCLOSED = "receiver_disclosed"


def _canonical_hash(
    event_id: str,
    event_kind: str,
    timestamp_utc: str,
    actor_id: str,
    payload: dict[str, Any],
) -> str:
    canonical = json.dumps(
        {
            "event_id": event_id,
            "event_kind": event_kind,
            "timestamp_utc": timestamp_utc,
            "actor_id": actor_id,
            "payload": payload,
        },
        sort_keys=True,
        ensure_ascii=False,
    ).encode("utf-8")
    return f"sha256:{hashlib.sha256(canonical).hexdigest()}"


@dataclass(frozen=True)
class EventRecord:
    """A single immutable protocol event.

    event_hash is SHA-256 over the canonical JSON of every other field,
    computed once at creation.
    """
    event_id: str
    event_kind: EventKind
    timestamp_utc: str
    actor_id: str
    payload: dict[str, Any]
    event_hash: str

    @staticmethod
    def create(
        event_id: str,
        event_kind: EventKind,
        actor_id: str,
        payload: dict[str, Any],
        timestamp_utc: Optional[datetime] = None,
    ) -> EventRecord:
        """Create a new event record with computed hash."""
        ts = timestamp_utc or datetime.now(timezone.utc)
        ts_str = ts.strftime("%Y-%m-%dT%H:%M:%SZ")
        return EventRecord(
            event_id=event_id,
            event_kind=event_kind,
            timestamp_utc=ts_str,
            actor_id=actor_id,
            payload=payload,
            event_hash=_canonical_hash(
                event_id, event_kind.value, ts_str, actor_id, payload
            ),
        )


class EventLog:
    """Append-only event log with optional JSONL persistence.

    One log may be shared by a registry, a factory and every round it
    creates; event IDs are allocated by the log so they stay unique
    across all of them.

    Usage:
        log = EventLog(storage_path=Path("data/events.jsonl"))
        log.record(EventKind.REGISTRY_FROZEN, actor_id="0xab...", payload={...})
        frozen = log.events(EventKind.REGISTRY_FROZEN)
    """

    def __init__(self, storage_path: Optional[Path] = None) -> None:
        self._events: list[EventRecord] = []
        self._storage_path = storage_path
        self._event_ids: set[str] = set()

        if storage_path and storage_path.exists():
            self._load_from_file(storage_path)

    def next_event_id(self) -> str:
        return f"EVT-{self.count + 1:08d}"

    def record(
        self,
        kind: EventKind,
        actor_id: str,
        payload: dict[str, Any],
        timestamp_utc: Optional[datetime] = None,
    ) -> EventRecord:
        """Create an event with the next sequential ID and append it."""
        event = EventRecord.create(
            event_id=self.next_event_id(),
            event_kind=kind,
            actor_id=actor_id,
            payload=payload,
            timestamp_utc=timestamp_utc,
        )
        self.append(event)
        return event

    def record_batch(
        self,
        entries: Sequence[tuple[EventKind, str, dict[str, Any]]],
        timestamp_utc: Optional[datetime] = None,
    ) -> list[EventRecord]:
        """Record several (kind, actor_id, payload) events, all or none."""
        events = [
            EventRecord.create(
                event_id=f"EVT-{self.count + offset:08d}",
                event_kind=kind,
                actor_id=actor_id,
                payload=payload,
                timestamp_utc=timestamp_utc,
            )
            for offset, (kind, actor_id, payload) in enumerate(entries, 1)
        ]
        self._append_all(events)
        return events

    def append(self, event: EventRecord) -> None:
        """Append an event to the log.

        Raises ValueError if event_id is a duplicate (replay protection).
        A failed file write leaves the log unchanged.
        """
        self._append_all([event])

    def _append_all(self, events: list[EventRecord]) -> None:
        incoming: set[str] = set()
        for event in events:
            if event.event_id in self._event_ids or event.event_id in incoming:
                raise ValueError(f"Duplicate event ID: {event.event_id}")
            incoming.add(event.event_id)

        if self._storage_path:
            self._append_to_file(events)

        self._events.extend(events)
        self._event_ids.update(incoming)

    def events(self, kind: Optional[EventKind] = None) -> list[EventRecord]:
        """Return events, optionally filtered by kind."""
        if kind is None:
            return list(self._events)
        return [e for e in self._events if e.event_kind == kind]

    def event_hashes(self, kind: Optional[EventKind] = None) -> list[str]:
        return [e.event_hash for e in self.events(kind)]

    @property
    def count(self) -> int:
        return len(self._events)

    @property
    def last_event(self) -> Optional[EventRecord]:
        return self._events[-1] if self._events else None

    def _append_to_file(self, events: list[EventRecord]) -> None:
        lines = []
        for event in events:
            record = {
                "event_id": event.event_id,
                "event_kind": event.event_kind.value,
                "timestamp_utc": event.timestamp_utc,
                "actor_id": event.actor_id,
                "payload": event.payload,
                "event_hash": event.event_hash,
            }
            lines.append(json.dumps(record, sort_keys=True, ensure_ascii=False) + "\n")
        self._storage_path.parent.mkdir(parents=True, exist_ok=True)
        with self._storage_path.open("a", encoding="utf-8") as f:
            f.write("".join(lines))

    def _load_from_file(self, path: Path) -> None:
        """Load events from a JSONL file with integrity verification.

        Fail-closed: rejects tampered records (hash mismatch) and
        duplicate event IDs.
        """
        with path.open("r", encoding="utf-8") as f:
            for line_num, line in enumerate(f, 1):
                line = line.strip()
                if not line:
                    continue
                data = json.loads(line)
                event_id = data["event_id"]

                if event_id in self._event_ids:
                    raise ValueError(
                        f"Duplicate event ID on recovery (line {line_num}): {event_id}"
                    )

                expected_hash = _canonical_hash(
                    data["event_id"],
                    data["event_kind"],
                    data["timestamp_utc"],
                    data["actor_id"],
                    data["payload"],
                )
                if data["event_hash"] != expected_hash:
                    raise ValueError(
                        f"Integrity check failed (line {line_num}): event {event_id} "
                        f"stored hash {data['event_hash']} != computed {expected_hash}"
                    )

                event = EventRecord(
                    event_id=event_id,
                    event_kind=EventKind(data["event_kind"]),
                    timestamp_utc=data["timestamp_utc"],
                    actor_id=data["actor_id"],
                    payload=data["payload"],
                    event_hash=data["event_hash"],
                )
                self._events.append(event)
                self._event_ids.add(event_id)
