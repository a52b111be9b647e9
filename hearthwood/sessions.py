"""Conversation sessions.

A chat front-end talking to a character owns that character's
`in_conversation` flag; the day cycle only reads it. This module is the
seam such a front-end uses:

  SessionStore          key → value with TTL eviction (get / put / delete / expire)
  ConversationSessions  start / end / sweep a conversation, keeping the
                        character's flag in step with the session
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

from pydantic import BaseModel

from hearthwood.models import Character, utcnow
from hearthwood.storage import Storage

logger = logging.getLogger(__name__)

V = TypeVar("V")

CONVERSATION_TTL = 30 * 60  # seconds


@dataclass
class _Entry(Generic[V]):
    value: V
    expires_at: float


class SessionStore(Generic[V]):
    """In-memory sessions that expire `ttl` seconds after their last put()."""

    def __init__(self, ttl: float, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl = ttl
        self.clock = clock
        self._entries: dict[str, _Entry[V]] = {}

    def get(self, key: str) -> V | None:
        entry = self._entries.get(key)
        if entry is None or entry.expires_at <= self.clock():
            return None
        return entry.value

    def put(self, key: str, value: V) -> None:
        self._entries[key] = _Entry(value, self.clock() + self.ttl)

    def delete(self, key: str) -> V | None:
        entry = self._entries.pop(key, None)
        return entry.value if entry else None

    def expire(self) -> list[tuple[str, V]]:
        """Evict every expired entry and return what was evicted."""
        now = self.clock()
        expired = [(k, e.value) for k, e in self._entries.items() if e.expires_at <= now]
        for key, _ in expired:
            del self._entries[key]
        return expired

    def __len__(self) -> int:
        return len(self._entries)


class Conversation(BaseModel):
    character_id: str
    user_id: str
    messages: int = 0


class ConversationSessions:
    def __init__(self, storage: Storage, store: SessionStore[Conversation] | None = None) -> None:
        self.storage = storage
        self.store = store if store is not None else SessionStore(CONVERSATION_TTL)

    def start(self, character_id: str, user_id: str) -> Conversation:
        character = self.storage.get_character(character_id)
        if not character.alive:
            raise ValueError(f"{character.name} is dead")
        existing = self.store.get(character_id)
        if existing is not None and existing.user_id != user_id:
            raise ValueError(f"{character.name} is already in a conversation")

        conversation = existing or Conversation(character_id=character_id, user_id=user_id)
        self.store.put(character_id, conversation)
        self._set_flag(character, True)
        logger.info("Conversation with %s started by %s", character.name, user_id)
        return conversation

    def touch(self, character_id: str) -> Conversation | None:
        """Count one exchanged message and push back the expiry."""
        conversation = self.store.get(character_id)
        if conversation is None:
            return None
        conversation.messages += 1
        self.store.put(character_id, conversation)
        return conversation

    def end(self, character_id: str) -> Conversation | None:
        conversation = self.store.delete(character_id)
        self._set_flag(self.storage.get_character(character_id), False)
        return conversation

    def sweep(self) -> list[str]:
        """Close expired conversations; returns the affected character ids."""
        ids = [key for key, _ in self.store.expire()]
        for character_id in ids:
            self._set_flag(self.storage.get_character(character_id), False)
            logger.info("Conversation with %s expired", character_id)
        return ids

    def _set_flag(self, character: Character, engaged: bool) -> None:
        character.in_conversation = engaged
        character.in_conversation_since = utcnow() if engaged else None
        self.storage.save_character(character)
