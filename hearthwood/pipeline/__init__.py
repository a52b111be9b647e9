"""The day cycle: per-day lock, phase outputs, and the orchestrator."""

from .lock import STALE_AFTER, CycleLockManager  # noqa: F401
from .orchestrator import Orchestrator  # noqa: F401
from .results import CycleResult  # noqa: F401
