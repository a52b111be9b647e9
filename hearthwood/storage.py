"""JSON file storage.

All state is stored in flat JSON files under a configurable base directory.
There is no database or ORM — reads and writes go through plain helper
methods that load and dump JSON. Updates are last-write-wins.

Directory layout:

    {base}/
      world.json        ← World singleton
      locations.json    ← list of Location objects
      characters.json   ← list of Character objects
      events.json       ← list of Event objects
      journal.json      ← list of JournalEntry objects, one per day
      locks.json        ← list of CycleLock objects

Uniqueness guards (the conditional inserts the cycle relies on):
  insert_lock     — at most one lock in state "running" per day
  insert_journal  — at most one journal entry per day

Every read-modify-write holds an exclusive flock on {base}/.storage.lock
(plus a re-entrant mutex for threads sharing one Storage), so a
check-then-insert is atomic across handles and processes on the same directory.
"""

from __future__ import annotations

import fcntl
import json
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from pydantic import BaseModel

from hearthwood.errors import DuplicateJournalError, DuplicateLockError, NotFoundError
from hearthwood.models import (
    Character,
    CycleLock,
    Event,
    JournalEntry,
    Location,
    World,
)

LOCK_FILE = ".storage.lock"


class Storage:
    def __init__(self, base_path: Path) -> None:
        self._base = Path(base_path)
        self._base.mkdir(parents=True, exist_ok=True)
        self._mutex = threading.RLock()
        self._depth = 0

    @property
    def base_path(self) -> Path:
        return self._base

    # ------------------------------------------------------------------
    # Internal path helpers
    # ------------------------------------------------------------------

    @contextmanager
    def _exclusive(self) -> Iterator[None]:
        """Hold the directory lock; nested calls reuse the outer flock."""
        with self._mutex:
            if self._depth:
                self._depth += 1
                try:
                    yield
                finally:
                    self._depth -= 1
                return
            with open(self._base / LOCK_FILE, "a") as f:
                fcntl.flock(f.fileno(), fcntl.LOCK_EX)
                self._depth = 1
                try:
                    yield
                finally:
                    self._depth = 0
                    fcntl.flock(f.fileno(), fcntl.LOCK_UN)

    def _path(self, name: str) -> Path:
        return self._base / f"{name}.json"

    def _read_json(self, path: Path, default: Any) -> Any:
        if not path.exists():
            return default
        return json.loads(path.read_text())

    def _write_json(self, path: Path, data: Any) -> None:
        tmp = path.with_suffix(".tmp")
        tmp.write_text(json.dumps(data, indent=2))
        tmp.replace(path)

    def _load_list(self, name: str, model: type[BaseModel]) -> list[Any]:
        return [model.model_validate(d) for d in self._read_json(self._path(name), [])]

    def _save_list(self, name: str, items: list[BaseModel]) -> None:
        self._write_json(self._path(name), [i.model_dump(mode="json") for i in items])

    def _upsert(self, name: str, model: type[BaseModel], item: Any, key: str = "id") -> None:
        with self._exclusive():
            items = self._load_list(name, model)
            for i, existing in enumerate(items):
                if getattr(existing, key) == getattr(item, key):
                    items[i] = item
                    break
            else:
                items.append(item)
            self._save_list(name, items)

    # ------------------------------------------------------------------
    # World
    # ------------------------------------------------------------------

    def get_world(self) -> World:
        path = self._path("world")
        if not path.exists():
            raise NotFoundError("World", "singleton")
        return World.model_validate_json(path.read_text())

    def save_world(self, world: World) -> World:
        with self._exclusive():
            self._write_json(self._path("world"), world.model_dump(mode="json"))
        return world

    def init_world(self) -> World:
        """Create the world record if missing and return it."""
        with self._exclusive():
            try:
                return self.get_world()
            except NotFoundError:
                return self.save_world(World())

    # ------------------------------------------------------------------
    # Locations
    # ------------------------------------------------------------------

    def get_locations(self) -> list[Location]:
        return sorted(self._load_list("locations", Location), key=lambda loc: loc.name)

    def get_location_map(self) -> dict[str, Location]:
        return {loc.name: loc for loc in self.get_locations()}

    def get_location(self, name: str) -> Location:
        for loc in self._load_list("locations", Location):
            if loc.name == name:
                return loc
        raise NotFoundError("Location", name)

    def save_location(self, location: Location) -> None:
        """Upsert a location by name."""
        self._upsert("locations", Location, location, key="name")

    def get_reachable(self, name: str) -> list[str]:
        return self.get_location(name).reachable()

    # ------------------------------------------------------------------
    # Characters
    # ------------------------------------------------------------------

    def get_characters(self) -> list[Character]:
        return sorted(self._load_list("characters", Character), key=lambda c: c.created_at)

    def get_living_characters(self) -> list[Character]:
        return sorted(
            (c for c in self._load_list("characters", Character) if c.alive),
            key=lambda c: c.name,
        )

    def get_character(self, character_id: str) -> Character:
        for c in self._load_list("characters", Character):
            if c.id == character_id:
                return c
        raise NotFoundError("Character", character_id)

    def find_character_by_name(self, name: str) -> Character | None:
        wanted = name.strip().lower()
        for c in self._load_list("characters", Character):
            if c.name.lower() == wanted:
                return c
        return None

    def get_characters_at(self, location: str) -> list[Character]:
        return [
            c for c in self._load_list("characters", Character)
            if c.alive and c.location == location
        ]

    def save_character(self, character: Character) -> Character:
        """Upsert a character by id."""
        self._upsert("characters", Character, character)
        return character

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def get_events(self) -> list[Event]:
        return self._load_list("events", Event)

    def get_event(self, event_id: str) -> Event:
        for e in self._load_list("events", Event):
            if e.id == event_id:
                return e
        raise NotFoundError("Event", event_id)

    def get_active_events(self) -> list[Event]:
        return sorted(
            (e for e in self._load_list("events", Event) if e.active),
            key=lambda e: e.start_day,
        )

    def get_events_at(self, location: str) -> list[Event]:
        return [e for e in self.get_active_events() if location in e.locations]

    def save_event(self, event: Event) -> Event:
        self._upsert("events", Event, event)
        return event

    # ------------------------------------------------------------------
    # Journal
    # ------------------------------------------------------------------

    def get_journal_entry(self, day: int) -> JournalEntry | None:
        for entry in self._load_list("journal", JournalEntry):
            if entry.day == day:
                return entry
        return None

    def journal_exists(self, day: int) -> bool:
        return self.get_journal_entry(day) is not None

    def get_recent_journal(self, limit: int = 5) -> list[JournalEntry]:
        entries = sorted(self._load_list("journal", JournalEntry), key=lambda e: e.day, reverse=True)
        return entries[:limit]

    def insert_journal(self, entry: JournalEntry) -> JournalEntry:
        with self._exclusive():
            entries = self._load_list("journal", JournalEntry)
            if any(e.day == entry.day for e in entries):
                raise DuplicateJournalError(f"Journal entry for day {entry.day} already exists")
            entries.append(entry)
            self._save_list("journal", entries)
        return entry

    # ------------------------------------------------------------------
    # Cycle locks
    # ------------------------------------------------------------------

    def get_running_lock(self, day: int) -> CycleLock | None:
        for lock in self._load_list("locks", CycleLock):
            if lock.day == day and lock.state == "running":
                return lock
        return None

    def get_lock(self, lock_id: str) -> CycleLock:
        for lock in self._load_list("locks", CycleLock):
            if lock.id == lock_id:
                return lock
        raise NotFoundError("CycleLock", lock_id)

    def get_locks(self, day: int | None = None) -> list[CycleLock]:
        locks = self._load_list("locks", CycleLock)
        if day is None:
            return locks
        return [lock for lock in locks if lock.day == day]

    def insert_lock(self, lock: CycleLock) -> CycleLock:
        """Conditional insert: fails if a running lock already exists for the day."""
        with self._exclusive():
            locks = self._load_list("locks", CycleLock)
            if lock.state == "running" and any(
                existing.day == lock.day and existing.state == "running" for existing in locks
            ):
                raise DuplicateLockError(f"A running lock already exists for day {lock.day}")
            locks.append(lock)
            self._save_list("locks", locks)
        return lock

    def save_lock(self, lock: CycleLock) -> CycleLock:
        with self._exclusive():
            self.get_lock(lock.id)
            self._upsert("locks", CycleLock, lock)
        return lock
