"""Persistence adapters for run state."""

from .json_store import STATE_FILE_NAME, RunStateStore
from .persisted import PersistedState, StateEnvelope

__all__ = ["STATE_FILE_NAME", "PersistedState", "RunStateStore", "StateEnvelope"]
