"""Error taxonomy shared by storage, collaborators, and the engine.

  ConfigurationError      — missing credentials; fatal at startup
  NotFoundError           — storage lookup miss
  ResponseValidationError — generative output broke its contract
  TransportError          — a collaborator call failed (LLMError, NotifyError)
  DuplicateLockError      — a running lock already exists for the day
  DuplicateJournalError   — a journal entry already exists for the day

A busy cycle lock is not an error: CycleLockManager.acquire() returns None.
"""

from __future__ import annotations

from typing import Any


class SimulationError(Exception):
    """Base class for all domain errors."""


class ConfigurationError(SimulationError):
    """Raised when a required collaborator setting is missing."""


class NotFoundError(SimulationError):
    def __init__(self, entity: str, key: str) -> None:
        super().__init__(f"{entity} not found: {key}")
        self.entity = entity
        self.key = key


class ResponseValidationError(SimulationError):
    """Raised when generated output violates its expected shape."""

    def __init__(self, message: str, violations: list[str] | None = None, raw: Any = None) -> None:
        super().__init__(message)
        self.violations = violations or []
        self.raw = raw

    def __str__(self) -> str:
        base = super().__str__()
        if not self.violations:
            return base
        return f"{base}: {'; '.join(self.violations)}"


class TransportError(SimulationError):
    """Raised when an external collaborator cannot be reached or errors out."""


class DuplicateLockError(SimulationError):
    """Raised by storage when inserting a second running lock for a day."""


class DuplicateJournalError(SimulationError):
    """Raised by storage when inserting a second journal entry for a day."""
