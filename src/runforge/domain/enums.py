"""Enumerations for the objective and run-state domain."""

from __future__ import annotations

from enum import StrEnum


class ObjectiveCategory(StrEnum):
    """Tier an objective belongs to."""

    PRIMARY = "PRIMARY"
    SECONDARY = "SECONDARY"
    TASK = "TASK"


class ObjectiveAction(StrEnum):
    """What a team has to do to satisfy an objective."""

    DELIVER = "DELIVER"
    TEAM_GATHER = "TEAM_GATHER"
    CRAFT = "CRAFT"
    SMELT = "SMELT"


class CohesionMode(StrEnum):
    """Spatial coordination required by an objective."""

    DELIVERY_CHEST = "DELIVERY_CHEST"
    GATHER_CLUSTER = "GATHER_CLUSTER"


class RollMode(StrEnum):
    """Supported quantity roll modes."""

    RANGE = "RANGE"


class LifecycleState(StrEnum):
    """Run lifecycle states."""

    IDLE = "IDLE"
    RUNNING = "RUNNING"
    PAUSED = "PAUSED"


class ObjectiveStatus(StrEnum):
    """Per-team status of a single objective."""

    AVAILABLE = "AVAILABLE"
    COMPLETED = "COMPLETED"


class SlotTier(StrEnum):
    """Slot families; the slot index is only meaningful for SECONDARY and TASK."""

    PRIMARY = "PRIMARY"
    SECONDARY = "SECONDARY"
    TASK = "TASK"


class ConstraintType(StrEnum):
    """Hard-constraint types the engines know how to interpret."""

    NO_ITEM_OVERLAP_ACROSS_TIERS = "no_item_overlap_across_tiers"
    COHESION = "cohesion"


# Legal (category, action) pairings.
ALLOWED_ACTIONS: dict[ObjectiveCategory, frozenset[ObjectiveAction]] = {
    ObjectiveCategory.PRIMARY: frozenset({ObjectiveAction.DELIVER}),
    ObjectiveCategory.SECONDARY: frozenset(
        {ObjectiveAction.DELIVER, ObjectiveAction.TEAM_GATHER}
    ),
    ObjectiveCategory.TASK: frozenset({ObjectiveAction.CRAFT, ObjectiveAction.SMELT}),
}

# Every phase needs exactly one quantity rule for each of these pairs.
REQUIRED_QUANTITY_PAIRS: tuple[tuple[ObjectiveCategory, ObjectiveAction], ...] = (
    (ObjectiveCategory.PRIMARY, ObjectiveAction.DELIVER),
    (ObjectiveCategory.SECONDARY, ObjectiveAction.DELIVER),
    (ObjectiveCategory.SECONDARY, ObjectiveAction.TEAM_GATHER),
    (ObjectiveCategory.TASK, ObjectiveAction.CRAFT),
    (ObjectiveCategory.TASK, ObjectiveAction.SMELT),
)


def is_legal_pair(category: ObjectiveCategory, action: ObjectiveAction) -> bool:
    """Return whether ``action`` may be used by objectives of ``category``."""

    return action in ALLOWED_ACTIONS[category]
