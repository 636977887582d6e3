"""Session store for devx.

All sessions live in one JSON document (``sessions.json``) resolved by the
storage locator:

    {"version": 1, "sessions": {"<name>": {...record...}},
     "numbered_slots": {"1": "<name>"}}

Every mutation rewrites the whole document atomically. The store assumes a
single writer process; concurrent invocations race and the last write wins.
"""

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Iterator

import orjson

from devx.core.errors import NotFound, StoreCorruption, ValidationError
from devx.core.fsutil import atomic_write_bytes
from devx.core.session import Session

STORE_VERSION = 1

# Default reason recorded when a flag is set without one
DEFAULT_ATTENTION_REASON = "manual"

# Quick-access slots are numbered 1..MAX_SLOTS
MAX_SLOTS = 9

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def dumps_document(document: dict[str, Any]) -> bytes:
    """Serialize with stable key ordering so equal stores give equal bytes."""
    return orjson.dumps(document, option=orjson.OPT_INDENT_2 | orjson.OPT_SORT_KEYS)


def _parse_slots(raw: Any) -> dict[int, str]:
    if not isinstance(raw, dict):
        raise TypeError("numbered_slots is not an object")
    slots: dict[int, str] = {}
    for key, name in raw.items():
        if not isinstance(name, str):
            raise TypeError(f"slot {key} is not a session name")
        slots[int(key)] = name
    return slots


class SessionStore:
    """Persistent mapping of session name to Session.

    Args:
        path: File the store is saved to.
        sessions: Initial records.
        clock: Source of the current instant.
        extra: Unknown top-level document keys, preserved on save.
        slots: Quick-access slot number to session name.
    """

    def __init__(
        self,
        path: Path,
        sessions: dict[str, Session] | None = None,
        clock: Callable[[], datetime] = utcnow,
        extra: dict[str, Any] | None = None,
        slots: dict[int, str] | None = None,
    ) -> None:
        self.path = path
        self.sessions: dict[str, Session] = sessions or {}
        self.clock = clock
        self.extra = extra or {}
        self.slots: dict[int, str] = slots or {}

    @classmethod
    def load(cls, path: Path, clock: Callable[[], datetime] = utcnow) -> "SessionStore":
        """Load the store from path.

        A missing or empty file is an empty store. Slots pointing at missing
        sessions are dropped.

        Raises:
            StoreCorruption: If the file does not parse. Nothing is changed.
        """
        if not path.exists():
            return cls(path, clock=clock)
        content = path.read_bytes()
        if not content.strip():
            return cls(path, clock=clock)
        try:
            document = orjson.loads(content)
        except orjson.JSONDecodeError as e:
            raise StoreCorruption(f"failed to parse sessions file {path}: {e}") from e
        if not isinstance(document, dict):
            raise StoreCorruption(
                f"failed to parse sessions file {path}: not an object"
            )

        version = document.get("version", STORE_VERSION)
        if version != STORE_VERSION:
            raise StoreCorruption(
                f"sessions file {path} has unsupported version {version}"
            )

        sessions: dict[str, Session] = {}
        try:
            for name, record in (document.get("sessions") or {}).items():
                record.setdefault("name", name)
                sessions[name] = Session.from_dict(record)
            slots = _parse_slots(document.get("numbered_slots") or {})
        except (AttributeError, KeyError, TypeError, ValueError, ValidationError) as e:
            raise StoreCorruption(
                f"failed to parse sessions file {path}: bad record: {e}"
            ) from e

        extra = {
            k: v
            for k, v in document.items()
            if k not in ("version", "sessions", "numbered_slots")
        }
        store = cls(path, sessions, clock=clock, extra=extra, slots=slots)
        store.reconcile_slots()
        return store

    def to_document(self) -> dict[str, Any]:
        document = dict(self.extra)
        document["version"] = STORE_VERSION
        document["sessions"] = {
            name: session.to_dict() for name, session in self.sessions.items()
        }
        if self.slots:
            document["numbered_slots"] = {
                str(slot): name for slot, name in self.slots.items()
            }
        return document

    def save(self) -> None:
        atomic_write_bytes(self.path, dumps_document(self.to_document()))

    def __contains__(self, name: str) -> bool:
        return name in self.sessions

    def __len__(self) -> int:
        return len(self.sessions)

    def __iter__(self) -> Iterator[Session]:
        """Iterate sessions sorted by name."""
        for name in sorted(self.sessions):
            yield self.sessions[name]

    def get(self, name: str) -> Session | None:
        return self.sessions.get(name)

    def require(self, name: str) -> Session:
        """Get a session or raise NotFound."""
        session = self.sessions.get(name)
        if session is None:
            raise NotFound(f"session '{name}' not found")
        return session

    def add(self, session: Session) -> Session:
        """Add a new record, give it a slot and save.

        Raises:
            ValidationError: If a session with the same name exists.
        """
        if session.name in self.sessions:
            raise ValidationError(f"session '{session.name}' already exists")
        self.sessions[session.name] = session
        self._assign_slot(session.name)
        self.save()
        return session

    def remove(self, name: str) -> Session:
        """Delete a record, free its slot and save.

        Raises:
            NotFound: If no such session.
        """
        session = self.require(name)
        del self.sessions[name]
        self.slots = {k: v for k, v in self.slots.items() if v != name}
        self.save()
        return session

    def _advance(self, session: Session) -> datetime:
        now = self.clock()
        if now <= session.updated_at:
            now = session.updated_at + timedelta(microseconds=1)
        session.updated_at = now
        return now

    def update(self, name: str, mutator: Callable[[Session], None]) -> Session:
        """Apply mutator to a record, advance updated_at and save.

        Raises:
            NotFound: If no such session.
        """
        session = self.require(name)
        mutator(session)
        self._advance(session)
        self.save()
        return session

    def record_attach(self, name: str) -> Session:
        """Stamp last_attached, clear the attention flag and hold a slot."""

        def mutate(session: Session) -> None:
            self._assign_slot(name)
            session.last_attached = self.clock()
            _clear_attention(session)

        return self.update(name, mutate)

    def set_attention(
        self, name: str, reason: str = DEFAULT_ATTENTION_REASON
    ) -> Session:
        def mutate(session: Session) -> None:
            session.attention_flag = True
            session.attention_reason = reason or DEFAULT_ATTENTION_REASON
            session.attention_time = self.clock()

        return self.update(name, mutate)

    def clear_attention(self, name: str) -> Session:
        """Clear the attention flag. Clearing an unflagged session is a no-op."""
        return self.update(name, _clear_attention)

    def clear(self) -> list[str]:
        """Remove every record and save. Returns the removed names."""
        names = sorted(self.sessions)
        self.sessions.clear()
        self.slots.clear()
        self.save()
        return names

    def slot_for(self, name: str) -> int:
        """Slot held by a session, or 0 if it has none."""
        for slot, holder in self.slots.items():
            if holder == name:
                return slot
        return 0

    def session_for_slot(self, slot: int) -> str:
        """Session holding a slot, or "" if the slot is free."""
        return self.slots.get(slot, "")

    def assign_slot(self, name: str) -> int:
        """Give a session a quick-access slot and save.

        A session keeps the slot it already holds. Otherwise it takes the
        lowest free slot; when all are taken, a slot naming a missing
        session is reused, else the least recently attached holder loses
        its slot.

        Raises:
            NotFound: If no such session.
        """
        self.require(name)
        slot = self._assign_slot(name)
        self.save()
        return slot

    def _assign_slot(self, name: str) -> int:
        if slot := self.slot_for(name):
            return slot
        for slot in range(1, MAX_SLOTS + 1):
            if slot not in self.slots:
                self.slots[slot] = name
                return slot

        victim, oldest = 0, None
        for slot in sorted(self.slots):
            holder = self.sessions.get(self.slots[slot])
            if holder is None:
                victim = slot
                break
            attached = holder.last_attached or _EPOCH
            if oldest is None or attached < oldest:
                victim, oldest = slot, attached
        self.slots[victim] = name
        return victim

    def reconcile_slots(self) -> list[int]:
        """Drop slots that are out of range or name a missing session.

        Returns:
            The freed slot numbers. The store is not saved.
        """
        freed = sorted(
            slot
            for slot, name in self.slots.items()
            if name not in self.sessions or not 1 <= slot <= MAX_SLOTS
        )
        for slot in freed:
            del self.slots[slot]
        return freed


def _clear_attention(session: Session) -> None:
    session.attention_flag = False
    session.attention_reason = ""
    session.attention_time = None
