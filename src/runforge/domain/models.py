"""Dataclasses describing generated objectives and the authoritative run state.

Rule files are parsed into pydantic schemas (see :mod:`runforge.content`),
but everything that is generated for a run, persisted, or handed to callers
lives here as plain dataclasses.  ``ObjectiveDefinition`` is frozen: once a
run's objectives exist they are never re-derived from rules, only loaded
back verbatim.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import NewType
from uuid import UUID

from .enums import (
    CohesionMode,
    LifecycleState,
    ObjectiveAction,
    ObjectiveCategory,
    ObjectiveStatus,
    SlotTier,
)

# Bump whenever the persisted layout changes.
EXPECTED_SCHEMA_VERSION = 1

FIRST_PHASE = 1
LAST_PHASE = 5
PHASES: tuple[int, ...] = tuple(range(FIRST_PHASE, LAST_PHASE + 1))

# Highest SECONDARY_n / TASK_n index in the closed slot set.
MAX_SLOT_INDEX = 5

PlayerID = NewType("PlayerID", UUID)
TeamIndex = NewType("TeamIndex", int)


# --- Slots ----------------------------------------------------------------------

_TIER_ORDER: dict[SlotTier, int] = {
    SlotTier.PRIMARY: 0,
    SlotTier.SECONDARY: 1,
    SlotTier.TASK: 2,
}

_SLOT_NAME = re.compile(r"^(PRIMARY|SECONDARY_([1-9]\d*)|TASK_([1-9]\d*))$")


@dataclass(frozen=True, slots=True)
class ObjectiveSlot:
    """Stable identifier of one objective position within a phase.

    ``PRIMARY`` has no index; ``SECONDARY_n`` and ``TASK_n`` carry ``n`` in
    ``1..MAX_SLOT_INDEX``.  Identity is the (tier, index) pair, never the
    position in some container.
    """

    tier: SlotTier
    index: int = 0

    def __post_init__(self) -> None:
        if self.tier == SlotTier.PRIMARY:
            if self.index != 0:
                raise ValueError(f"PRIMARY slot takes no index, got {self.index}")
        elif not 1 <= self.index <= MAX_SLOT_INDEX:
            raise ValueError(
                f"{self.tier} slot index must be within 1..{MAX_SLOT_INDEX}, got {self.index}"
            )

    @classmethod
    def primary(cls) -> ObjectiveSlot:
        return cls(SlotTier.PRIMARY)

    @classmethod
    def secondary(cls, index: int) -> ObjectiveSlot:
        return cls(SlotTier.SECONDARY, index)

    @classmethod
    def task(cls, index: int) -> ObjectiveSlot:
        return cls(SlotTier.TASK, index)

    @classmethod
    def parse(cls, name: str) -> ObjectiveSlot:
        """Parse ``PRIMARY`` / ``SECONDARY_n`` / ``TASK_n``.

        Raises:
            ValueError: If ``name`` is not a member of the closed slot set.
        """

        match = _SLOT_NAME.match(name)
        if match is None:
            raise ValueError(f"unknown objective slot: {name!r}")
        if match.group(2) is not None:
            return cls.secondary(int(match.group(2)))
        if match.group(3) is not None:
            return cls.task(int(match.group(3)))
        return cls.primary()

    @property
    def name(self) -> str:
        if self.tier == SlotTier.PRIMARY:
            return "PRIMARY"
        return f"{self.tier}_{self.index}"

    @property
    def sort_key(self) -> tuple[int, int]:
        """PRIMARY first, then SECONDARY_n, then TASK_n (numeric within a tier)."""

        return (_TIER_ORDER[SlotTier(self.tier)], self.index)

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True, slots=True)
class ObjectiveKey:
    """Structured ``(phase, slot)`` key used to flatten nested maps for storage."""

    phase: int
    slot: ObjectiveSlot

    def encode(self) -> str:
        return f"{self.phase}:{self.slot.name}"

    @classmethod
    def decode(cls, text: str) -> ObjectiveKey:
        """Parse ``"<phase>:<SLOT_NAME>"``, e.g. ``"3:SECONDARY_2"``.

        Raises:
            ValueError: If the phase is not an integer or the slot is unknown.
        """

        phase_text, sep, slot_text = text.partition(":")
        if not sep:
            raise ValueError(f"invalid objective key (expected phase:SLOT): {text!r}")
        try:
            phase = int(phase_text)
        except ValueError as exc:
            raise ValueError(f"invalid objective key phase: {text!r}") from exc
        return cls(phase, ObjectiveSlot.parse(slot_text))


# --- Objective definitions -------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Cohesion:
    """Spatial coordination settings (delivery chest or gather radius)."""

    mode: CohesionMode
    radius: int


@dataclass(frozen=True, slots=True)
class Provenance:
    """Which rules produced an objective."""

    template_id: str
    pool_id: str
    quantity_rule_id: str
    constraint_ids_applied: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class ObjectiveDefinition:
    """Fully resolved objective for one (phase, slot) of a run."""

    runtime_id: int
    phase: int
    slot_key: ObjectiveSlot
    category: ObjectiveCategory
    action: ObjectiveAction
    item_id: str
    quantity_required: int
    provenance: Provenance
    cohesion: Cohesion | None = None

    @property
    def key(self) -> ObjectiveKey:
        return ObjectiveKey(self.phase, self.slot_key)

    def describe(self) -> str:
        """One-line human readable summary used by listings."""

        cohesion = (
            "none" if self.cohesion is None else f"{self.cohesion.mode} r={self.cohesion.radius}"
        )
        constraints = ",".join(self.provenance.constraint_ids_applied) or "-"
        return (
            f"{self.slot_key} | {self.category} | {self.action} | "
            f"{self.item_id} x{self.quantity_required} | cohesion={cohesion} | "
            f"template={self.provenance.template_id} | pool={self.provenance.pool_id} | "
            f"qty_rule={self.provenance.quantity_rule_id} | constraints={constraints}"
        )


PhaseObjectives = dict[ObjectiveSlot, ObjectiveDefinition]
ObjectiveMap = dict[int, PhaseObjectives]


def ordered_objectives(
    definitions: Mapping[int, Mapping[ObjectiveSlot, ObjectiveDefinition]],
    phase: int | None = None,
) -> list[ObjectiveDefinition]:
    """Flatten objectives into phase-ascending, slot-ordered listing."""

    result: list[ObjectiveDefinition] = []
    for current in sorted(definitions):
        if phase is not None and current != phase:
            continue
        by_slot = definitions[current]
        for slot in sorted(by_slot, key=lambda s: s.sort_key):
            result.append(by_slot[slot])
    return result


# --- Team progress ----------------------------------------------------------------


@dataclass(slots=True)
class Progress:
    """Progress counters; only deliveries are tracked so far."""

    deposited_count: int = 0


@dataclass(slots=True)
class TeamObjectiveState:
    """A team's state for a single objective definition."""

    status: ObjectiveStatus = ObjectiveStatus.AVAILABLE
    progress: Progress = field(default_factory=Progress)
    completed_at: datetime | None = None


@dataclass(slots=True)
class TeamConfig:
    """Team setup and player assignments (team indices start at 1)."""

    enabled: bool = False
    count: int = 0
    player_teams: dict[PlayerID, TeamIndex] = field(default_factory=dict)


# --- Run state -------------------------------------------------------------------


@dataclass(slots=True)
class RunState:
    """Authoritative session record.

    ``phase`` and ``episode_number`` are 0 while no run exists.
    """

    schema_version: int = EXPECTED_SCHEMA_VERSION
    run_id: UUID | None = None
    lifecycle_state: LifecycleState = LifecycleState.IDLE
    phase: int = 0
    episode_number: int = 0
    team_config: TeamConfig = field(default_factory=TeamConfig)
    objective_definitions: ObjectiveMap = field(default_factory=dict)
    team_objective_states: dict[int, dict[int, dict[ObjectiveSlot, TeamObjectiveState]]] = field(
        default_factory=dict
    )
