"""Crash-safe JSON persistence for the run state.

A session root holds at most three files::

    run_state.json       primary
    run_state.json.tmp   write in progress (stray after a failed save)
    run_state.json.bak   previous primary, one generation only

``save`` never writes the primary in place: the new envelope is written and
fsynced to ``.tmp``, the current primary is rotated to ``.bak`` and ``.tmp``
is renamed over the primary.  ``load`` prefers the primary, falls back to the
backup and always hands back a PAUSED state.
"""

from __future__ import annotations

import copy
import json
import logging
import os
import shutil
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from runforge.domain.enums import LifecycleState
from runforge.domain.errors import CorruptPersistence, MalformedFile, SchemaMismatch
from runforge.domain.models import EXPECTED_SCHEMA_VERSION, RunState

from .persisted import PersistedState, envelope_for

logger = logging.getLogger(__name__)

STATE_FILE_NAME = "run_state.json"


class RunStateStore:
    """Persist :class:`RunState` snapshots under a session root."""

    def __init__(self, base_path: Path | str, *, expected_version: int = EXPECTED_SCHEMA_VERSION) -> None:
        self.base_path = Path(base_path)
        self.expected_version = expected_version
        self._mirror: RunState | None = None

    @property
    def primary_path(self) -> Path:
        return self.base_path / STATE_FILE_NAME

    @property
    def temp_path(self) -> Path:
        return self.base_path / f"{STATE_FILE_NAME}.tmp"

    @property
    def backup_path(self) -> Path:
        return self.base_path / f"{STATE_FILE_NAME}.bak"

    def cached(self) -> RunState | None:
        """Return a copy of the last state written or loaded by this store."""

        return copy.deepcopy(self._mirror)

    def save(self, state: RunState) -> Path:
        """Durably write ``state`` and return the primary path.

        ``state.schema_version`` is stamped to the expected version.  Filesystem
        errors propagate; at worst they leave a stray ``.tmp`` behind.
        """

        state.schema_version = self.expected_version
        payload = envelope_for(state).to_json().encode("utf-8")

        self.base_path.mkdir(parents=True, exist_ok=True)
        with self.temp_path.open("wb") as handle:
            handle.write(payload)
            handle.flush()
            os.fsync(handle.fileno())

        if self.primary_path.exists():
            os.replace(self.primary_path, self.backup_path)

        try:
            os.replace(self.temp_path, self.primary_path)
        except OSError:
            logger.warning("atomic rename unavailable, copying %s into place", self.temp_path)
            shutil.copyfile(self.temp_path, self.primary_path)
            self.temp_path.unlink()

        self._mirror = copy.deepcopy(state)
        logger.info("saved run state to %s (run_id=%s)", self.primary_path, state.run_id)
        return self.primary_path

    def load(self) -> RunState | None:
        """Recover the persisted state.

        Returns ``None`` when neither the primary nor the backup exists.

        Raises:
            SchemaMismatch: No file was usable and at least one was written by
                another schema version.
            CorruptPersistence: No file was usable.
        """

        candidates = [path for path in (self.primary_path, self.backup_path) if path.exists()]
        if not candidates:
            logger.info("no persisted run state under %s", self.base_path)
            return None

        failures: list[MalformedFile | SchemaMismatch] = []
        for path in candidates:
            try:
                state = self._read(path)
            except (MalformedFile, SchemaMismatch) as exc:
                logger.warning("cannot load run state from %s: %s", path, exc)
                failures.append(exc)
                continue

            if path == self.backup_path:
                logger.warning("recovered run state from backup %s", path)
            if state.lifecycle_state != LifecycleState.PAUSED:
                logger.warning(
                    "persisted lifecycle %s forced to %s on load",
                    state.lifecycle_state,
                    LifecycleState.PAUSED,
                )
            state.lifecycle_state = LifecycleState.PAUSED
            self._mirror = copy.deepcopy(state)
            logger.info("loaded run state from %s (run_id=%s)", path, state.run_id)
            return state

        for failure in failures:
            if isinstance(failure, SchemaMismatch):
                raise failure
        raise CorruptPersistence(
            "neither the primary state file nor its backup could be loaded",
            path=self.primary_path,
        ) from failures[-1]

    def _read(self, path: Path) -> RunState:
        try:
            payload: Any = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise MalformedFile(f"cannot parse JSON ({exc})", path=path) from exc
        if not isinstance(payload, dict):
            raise MalformedFile("envelope must be a JSON object", path=path)

        found = payload.get("schema_version")
        if not isinstance(found, int) or isinstance(found, bool):
            raise MalformedFile("missing or non-integer schema_version", path=path, field="schema_version")
        if found != self.expected_version:
            raise SchemaMismatch(found, self.expected_version, path=path)

        raw_state = payload.get("state")
        if not isinstance(raw_state, dict):
            raise MalformedFile("missing state object", path=path, field="state")
        try:
            persisted = PersistedState.model_validate(raw_state)
        except ValidationError as exc:
            first = exc.errors()[0]
            field = ".".join(["state", *(str(part) for part in first["loc"])])
            raise MalformedFile(first["msg"], path=path, field=field) from exc
        return persisted.to_domain(found)
