"""Exception hierarchy shared by content loading, generation and persistence."""

from __future__ import annotations

from pathlib import Path


class RunforgeError(Exception):
    """Base class for every error raised by the library."""


# --- Content loading ------------------------------------------------------------


class ContentError(RunforgeError):
    """A rule file (or the content tree itself) is unusable.

    ``path`` and ``field`` identify where the defect is so operators can fix the
    file without re-running with extra logging.
    """

    def __init__(
        self,
        message: str,
        *,
        path: Path | str | None = None,
        field: str | None = None,
    ) -> None:
        self.message = message
        self.path = Path(path) if path is not None else None
        self.field = field
        super().__init__(self._render())

    def _render(self) -> str:
        parts: list[str] = []
        if self.path is not None:
            parts.append(str(self.path))
        if self.field:
            parts.append(self.field)
        parts.append(self.message)
        return ": ".join(parts)


class MalformedFile(ContentError):
    """Unparseable or structurally invalid file."""


class MissingReference(ContentError):
    """A referenced id (or a required coverage entry) does not exist."""


# --- Run state persistence ------------------------------------------------------


class PersistenceError(RunforgeError):
    """Persisted run state could not be recovered."""

    def __init__(self, message: str, *, path: Path | str | None = None) -> None:
        self.path = Path(path) if path is not None else None
        super().__init__(f"{self.path}: {message}" if self.path is not None else message)


class SchemaMismatch(PersistenceError):
    """The persisted envelope was written by an incompatible schema version."""

    def __init__(self, found: object, expected: int, *, path: Path | str | None = None) -> None:
        self.found = found
        self.expected = expected
        super().__init__(
            f"unsupported schema_version={found!r} (expected {expected})",
            path=path,
        )


class CorruptPersistence(PersistenceError):
    """Neither the primary state file nor its backup could be read."""


# --- Generation -----------------------------------------------------------------


class GenerationError(RunforgeError):
    """Objective generation could not produce a result."""


class RegenerationConflict(GenerationError):
    """Generation was invoked against an already-populated objective set."""


class GenerationExhausted(GenerationError):
    """A retry budget ran out while resolving a slot."""

    def __init__(self, phase: int, slot: str, attempts: int, budget: str) -> None:
        self.phase = phase
        self.slot = slot
        self.attempts = attempts
        self.budget = budget
        super().__init__(
            f"phase {phase} slot {slot}: {budget} retry budget exhausted after {attempts} attempts"
        )


class NoMatchingQuantityRule(GenerationError):
    """No quantity rule exists for a (phase, category, action) triple."""

    def __init__(self, phase: int, category: str, action: str, *, template_id: str) -> None:
        self.phase = phase
        self.category = category
        self.action = action
        self.template_id = template_id
        super().__init__(
            f"no quantity rule for phase {phase} and {category}|{action} (template {template_id})"
        )


# --- Orchestration --------------------------------------------------------------


class LifecycleError(RunforgeError):
    """An operation was requested in a lifecycle state that does not allow it."""
