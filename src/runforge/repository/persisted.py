"""On-disk representation of :class:`~runforge.domain.models.RunState`.

Nested ``phase -> slot`` maps are flattened into ``"<phase>:<SLOT>"`` keys
(see :class:`~runforge.domain.models.ObjectiveKey`).  Every key is decoded
and cross-checked while validating, so a damaged file fails here instead of
producing a subtly wrong state.
"""

from __future__ import annotations

import json
from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from runforge.domain import models as dm
from runforge.domain.enums import (
    CohesionMode,
    LifecycleState,
    ObjectiveAction,
    ObjectiveCategory,
    ObjectiveStatus,
)


class PersistedModel(BaseModel):
    model_config = ConfigDict(extra="forbid")


class PersistedCohesion(PersistedModel):
    mode: CohesionMode
    radius: int = Field(ge=1)


class PersistedProvenance(PersistedModel):
    template_id: str
    pool_id: str
    quantity_rule_id: str
    constraint_ids_applied: list[str] = Field(default_factory=list)


class PersistedObjective(PersistedModel):
    """A stored objective definition."""

    runtime_id: int = Field(ge=1)
    phase: int = Field(ge=dm.FIRST_PHASE, le=dm.LAST_PHASE)
    slot_key: str
    category: ObjectiveCategory
    action: ObjectiveAction
    item_id: str = Field(min_length=1)
    quantity_required: int = Field(ge=1)
    cohesion: PersistedCohesion | None = None
    provenance: PersistedProvenance

    @field_validator("slot_key")
    @classmethod
    def _known_slot(cls, value: str) -> str:
        dm.ObjectiveSlot.parse(value)
        return value

    @classmethod
    def from_domain(cls, definition: dm.ObjectiveDefinition) -> PersistedObjective:
        cohesion = definition.cohesion
        provenance = definition.provenance
        return cls(
            runtime_id=definition.runtime_id,
            phase=definition.phase,
            slot_key=definition.slot_key.name,
            category=definition.category,
            action=definition.action,
            item_id=definition.item_id,
            quantity_required=definition.quantity_required,
            cohesion=(
                None
                if cohesion is None
                else PersistedCohesion(mode=cohesion.mode, radius=cohesion.radius)
            ),
            provenance=PersistedProvenance(
                template_id=provenance.template_id,
                pool_id=provenance.pool_id,
                quantity_rule_id=provenance.quantity_rule_id,
                constraint_ids_applied=list(provenance.constraint_ids_applied),
            ),
        )

    def to_domain(self) -> dm.ObjectiveDefinition:
        return dm.ObjectiveDefinition(
            runtime_id=self.runtime_id,
            phase=self.phase,
            slot_key=dm.ObjectiveSlot.parse(self.slot_key),
            category=self.category,
            action=self.action,
            item_id=self.item_id,
            quantity_required=self.quantity_required,
            provenance=dm.Provenance(
                template_id=self.provenance.template_id,
                pool_id=self.provenance.pool_id,
                quantity_rule_id=self.provenance.quantity_rule_id,
                constraint_ids_applied=tuple(self.provenance.constraint_ids_applied),
            ),
            cohesion=(
                None
                if self.cohesion is None
                else dm.Cohesion(mode=self.cohesion.mode, radius=self.cohesion.radius)
            ),
        )


class PersistedProgress(PersistedModel):
    deposited_count: int = Field(default=0, ge=0)


class PersistedTeamState(PersistedModel):
    status: ObjectiveStatus = ObjectiveStatus.AVAILABLE
    progress: PersistedProgress = Field(default_factory=PersistedProgress)
    completed_at: datetime | None = None


class PersistedState(PersistedModel):
    """The ``state`` member of the envelope."""

    run_id: UUID | None = None
    lifecycle_state: LifecycleState = LifecycleState.IDLE
    phase: int = Field(default=0, ge=0, le=dm.LAST_PHASE)
    episode_number: int = Field(default=0, ge=0)
    teams_enabled: bool = False
    team_count: int = Field(default=0, ge=0)
    player_teams: dict[UUID, int] = Field(default_factory=dict)
    objective_definitions: dict[str, PersistedObjective] = Field(default_factory=dict)
    team_objective_states: dict[int, dict[str, PersistedTeamState]] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _references(self) -> PersistedState:
        for raw_key, definition in self.objective_definitions.items():
            key = dm.ObjectiveKey.decode(raw_key)
            if key.phase != definition.phase or key.slot.name != definition.slot_key:
                raise ValueError(
                    f"objective key {raw_key!r} does not match its definition "
                    f"({definition.phase}:{definition.slot_key})"
                )

        for team, states in self.team_objective_states.items():
            for raw_key in states:
                dm.ObjectiveKey.decode(raw_key)
                if raw_key not in self.objective_definitions:
                    raise ValueError(
                        f"team {team} state references unknown objective {raw_key!r}"
                    )

        if self.teams_enabled:
            for player, team in self.player_teams.items():
                if not 1 <= team <= self.team_count:
                    raise ValueError(
                        f"player {player} assigned to team {team} outside 1..{self.team_count}"
                    )
        return self

    @classmethod
    def from_domain(cls, state: dm.RunState) -> PersistedState:
        definitions = {
            definition.key.encode(): PersistedObjective.from_domain(definition)
            for definition in dm.ordered_objectives(state.objective_definitions)
        }

        team_states: dict[int, dict[str, PersistedTeamState]] = {}
        for team, phases in state.team_objective_states.items():
            flat: dict[str, PersistedTeamState] = {}
            for phase, slots in phases.items():
                for slot, team_state in slots.items():
                    flat[dm.ObjectiveKey(phase, slot).encode()] = PersistedTeamState(
                        status=team_state.status,
                        progress=PersistedProgress(
                            deposited_count=team_state.progress.deposited_count
                        ),
                        completed_at=team_state.completed_at,
                    )
            team_states[int(team)] = flat

        return cls(
            run_id=state.run_id,
            lifecycle_state=state.lifecycle_state,
            phase=state.phase,
            episode_number=state.episode_number,
            teams_enabled=state.team_config.enabled,
            team_count=state.team_config.count,
            player_teams={player: int(team) for player, team in state.team_config.player_teams.items()},
            objective_definitions=definitions,
            team_objective_states=team_states,
        )

    def to_domain(self, schema_version: int) -> dm.RunState:
        definitions: dm.ObjectiveMap = {}
        for raw_key in sorted(self.objective_definitions):
            key = dm.ObjectiveKey.decode(raw_key)
            definitions.setdefault(key.phase, {})[key.slot] = self.objective_definitions[
                raw_key
            ].to_domain()

        team_states: dict[int, dict[int, dict[dm.ObjectiveSlot, dm.TeamObjectiveState]]] = {}
        for team, states in self.team_objective_states.items():
            by_phase = team_states.setdefault(team, {})
            for raw_key, stored in states.items():
                key = dm.ObjectiveKey.decode(raw_key)
                by_phase.setdefault(key.phase, {})[key.slot] = dm.TeamObjectiveState(
                    status=stored.status,
                    progress=dm.Progress(deposited_count=stored.progress.deposited_count),
                    completed_at=stored.completed_at,
                )

        return dm.RunState(
            schema_version=schema_version,
            run_id=self.run_id,
            lifecycle_state=self.lifecycle_state,
            phase=self.phase,
            episode_number=self.episode_number,
            team_config=dm.TeamConfig(
                enabled=self.teams_enabled,
                count=self.team_count,
                player_teams={
                    dm.PlayerID(player): dm.TeamIndex(team)
                    for player, team in self.player_teams.items()
                },
            ),
            objective_definitions=definitions,
            team_objective_states=team_states,
        )


class StateEnvelope(PersistedModel):
    """Versioned wrapper around the persisted state."""

    schema_version: int
    state: PersistedState

    def to_json(self) -> str:
        return json.dumps(self.model_dump(mode="json"), indent=2, sort_keys=True) + "\n"


def envelope_for(state: dm.RunState) -> StateEnvelope:
    return StateEnvelope(schema_version=state.schema_version, state=PersistedState.from_domain(state))


