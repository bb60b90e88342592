"""Run orchestration: lifecycle transitions, teams and objective listings.

The service owns the active content snapshot (through
:class:`~runforge.content.ContentRepository`) and the in-memory run state;
every mutation is written through :class:`~runforge.repository.RunStateStore`
and only becomes the in-memory state once that write succeeded.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from pathlib import Path
from uuid import UUID, uuid4

from runforge.config import Settings, get_settings
from runforge.content.repository import ContentRepository, ContentSnapshot
from runforge.domain.constraints import ConstraintValidationEngine, ConstraintViolation
from runforge.domain.enums import LifecycleState
from runforge.domain.errors import ContentError, LifecycleError
from runforge.domain.generation import ObjectiveGenerationEngine
from runforge.domain.models import (
    FIRST_PHASE,
    PHASES,
    ObjectiveDefinition,
    ObjectiveMap,
    PlayerID,
    RunState,
    TeamIndex,
    TeamObjectiveState,
    ordered_objectives,
)
from runforge.repository.json_store import RunStateStore

logger = logging.getLogger(__name__)

MIN_TEAM_COUNT = 2


@dataclass(slots=True)
class RunStart:
    """Result of :meth:`RunService.begin_run`."""

    state: RunState
    violations: dict[int, list[ConstraintViolation]] = field(default_factory=dict)

    @property
    def clean(self) -> bool:
        return not any(self.violations.values())


class RunService:
    """High level operations invoked by the command surface."""

    def __init__(
        self,
        content: ContentRepository,
        store: RunStateStore,
        *,
        enforce_constraints: bool = False,
        max_team_count: int = 8,
        constraints: ConstraintValidationEngine | None = None,
    ) -> None:
        self.content = content
        self.store = store
        self.enforce_constraints = enforce_constraints
        self.max_team_count = max_team_count
        self.constraints = constraints or ConstraintValidationEngine()
        self._state: RunState | None = None

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> RunService:
        settings = settings or get_settings()
        return cls(
            ContentRepository(settings.content_root),
            RunStateStore(settings.state_dir),
            enforce_constraints=settings.enforce_constraints,
            max_team_count=settings.max_team_count,
        )

    # -- state -------------------------------------------------------------------

    def recover(self) -> RunState:
        """Load persisted state (always PAUSED) or start from an empty IDLE state."""

        state = self.store.load()
        self._state = state if state is not None else RunState()
        return self._state

    def current_state(self) -> RunState:
        if self._state is None:
            return self.recover()
        return self._state

    def persist(self, state: RunState | None = None) -> Path:
        """Write ``state`` (or the current state) and make it the current state.

        The in-memory state only changes once the write succeeded.
        """

        target = state if state is not None else self.current_state()
        path = self.store.save(target)
        self._state = target
        return path

    def _draft(self) -> RunState:
        return copy.deepcopy(self.current_state())

    # -- lifecycle ---------------------------------------------------------------

    def begin_run(self, seed: UUID | None = None) -> RunStart:
        """Start a new run from IDLE and generate every phase's objectives.

        Constraint violations are logged and returned but do not block the
        run; with ``enforce_constraints`` they are re-rolled during
        generation instead.
        """

        state = self._draft()
        if state.lifecycle_state != LifecycleState.IDLE:
            raise LifecycleError(
                f"a run is already {state.lifecycle_state}; reset it before starting a new one"
            )

        run_id = seed if seed is not None else uuid4()
        snapshot = self.content.snapshot
        rules = snapshot.enabled_constraints()
        slot_check = self.constraints.slot_check(rules) if self.enforce_constraints else None
        engine = ObjectiveGenerationEngine(snapshot, slot_check=slot_check)
        definitions = engine.generate(run_id, state.objective_definitions)

        violations = self._validate_all(snapshot, definitions)

        state.run_id = run_id
        state.lifecycle_state = LifecycleState.RUNNING
        state.phase = FIRST_PHASE
        state.episode_number = 1
        state.objective_definitions = definitions
        state.team_objective_states = {}
        self._sync_team_states(state)

        self.persist(state)
        logger.info("run %s started (phase %d, episode %d)", run_id, state.phase, state.episode_number)
        return RunStart(state=state, violations=violations)

    def start_episode(self) -> RunState:
        state = self._draft()
        if state.lifecycle_state != LifecycleState.PAUSED:
            raise LifecycleError(f"cannot start an episode while {state.lifecycle_state}")
        state.lifecycle_state = LifecycleState.RUNNING
        self.persist(state)
        return state

    def end_episode(self) -> RunState:
        state = self._draft()
        if state.lifecycle_state != LifecycleState.RUNNING:
            raise LifecycleError(f"cannot end an episode while {state.lifecycle_state}")
        state.lifecycle_state = LifecycleState.PAUSED
        self.persist(state)
        return state

    def reset(self) -> RunState:
        """Return to IDLE, dropping the run and its objectives (teams are kept)."""

        state = self._draft()
        state.run_id = None
        state.lifecycle_state = LifecycleState.IDLE
        state.phase = 0
        state.episode_number = 0
        state.objective_definitions = {}
        state.team_objective_states = {}
        self.persist(state)
        logger.info("run state reset to %s", LifecycleState.IDLE)
        return state

    # -- teams -------------------------------------------------------------------

    def configure_teams(self, count: int) -> RunState:
        if not MIN_TEAM_COUNT <= count <= self.max_team_count:
            raise ValueError(f"team count must be within {MIN_TEAM_COUNT}..{self.max_team_count}")
        state = self._draft()
        state.team_config.enabled = True
        state.team_config.count = count
        state.team_config.player_teams.clear()
        self._sync_team_states(state)
        self.persist(state)
        return state

    def assign_player(self, player_id: UUID, team: int) -> RunState:
        state = self._draft()
        self._require_teams(state)
        if not 1 <= team <= state.team_config.count:
            raise ValueError(f"team index must be within 1..{state.team_config.count}, got {team}")
        state.team_config.player_teams[PlayerID(player_id)] = TeamIndex(team)
        self.persist(state)
        return state

    def unassign_player(self, player_id: UUID) -> bool:
        state = self._draft()
        self._require_teams(state)
        removed = state.team_config.player_teams.pop(PlayerID(player_id), None) is not None
        if removed:
            self.persist(state)
        return removed

    # -- content & objectives ----------------------------------------------------

    def reload_content(self) -> ContentSnapshot:
        """Swap in a freshly validated snapshot; on failure the old one stays active."""

        try:
            snapshot = self.content.reload()
        except ContentError as exc:
            logger.warning("content reload failed, keeping the previous snapshot: %s", exc)
            raise
        logger.info("content reloaded: %s", snapshot.summary())
        return snapshot

    def generated_objectives(self, phase: int | None = None) -> list[ObjectiveDefinition]:
        """Stored objectives, phase ascending then PRIMARY, SECONDARY_n, TASK_n."""

        if phase is not None and phase not in PHASES:
            raise ValueError(f"phase must be within {PHASES[0]}..{PHASES[-1]}, got {phase}")
        return ordered_objectives(self.current_state().objective_definitions, phase)

    def validate_phase(self, phase: int) -> list[ConstraintViolation]:
        """Re-run the constraint checks against a phase's stored objectives."""

        objectives = self.generated_objectives(phase)
        return self.constraints.validate(phase, self.content.snapshot.enabled_constraints(), objectives)

    # -- helpers -----------------------------------------------------------------

    def _validate_all(
        self, snapshot: ContentSnapshot, definitions: ObjectiveMap
    ) -> dict[int, list[ConstraintViolation]]:
        rules = snapshot.enabled_constraints()
        report: dict[int, list[ConstraintViolation]] = {}
        for phase in sorted(definitions):
            found = self.constraints.validate(phase, rules, definitions[phase].values())
            for violation in found:
                logger.warning("constraint violation: %s", violation)
            report[phase] = found
        return report

    @staticmethod
    def _require_teams(state: RunState) -> None:
        if not state.team_config.enabled:
            raise LifecycleError("teams are not configured")

    @staticmethod
    def _sync_team_states(state: RunState) -> None:
        """Give every configured team an AVAILABLE state per objective; drop extra teams."""

        if not state.team_config.enabled:
            return
        teams = range(1, state.team_config.count + 1)
        for team in list(state.team_objective_states):
            if team not in teams:
                del state.team_objective_states[team]
        for team in teams:
            by_phase = state.team_objective_states.setdefault(team, {})
            for phase, slots in state.objective_definitions.items():
                phase_states = by_phase.setdefault(phase, {})
                for slot in slots:
                    phase_states.setdefault(slot, TeamObjectiveState())
