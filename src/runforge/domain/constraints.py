"""Hard-constraint checks over a phase's generated objectives.

Violations are reported, never raised: the engine is read-only and keeps no
state between calls.  Rules whose ``type`` is unknown (or that are disabled)
are skipped so newer content keeps loading on older builds.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from typing import Protocol

from .enums import ConstraintType, ObjectiveCategory
from .models import ObjectiveDefinition


class ConstraintRule(Protocol):
    """Shape of a constraint rule as seen by the engine."""

    @property
    def id(self) -> str | None: ...

    @property
    def type(self) -> str | None: ...

    @property
    def enabled(self) -> bool: ...


@dataclass(frozen=True, slots=True)
class ConstraintViolation:
    rule_id: str
    message: str

    def __str__(self) -> str:
        return f"[{self.rule_id}] {self.message}"


SlotCheck = Callable[[int, Sequence[ObjectiveDefinition]], list[ConstraintViolation]]
_Check = Callable[[str, int, Sequence[ObjectiveDefinition]], list[ConstraintViolation]]


def normalize_item_id(item_id: str) -> str:
    """Trim and case-fold an item id for comparisons."""

    return item_id.strip().casefold()


def _items_by_tier(objectives: Iterable[ObjectiveDefinition]) -> dict[ObjectiveCategory, set[str]]:
    tiers: dict[ObjectiveCategory, set[str]] = {category: set() for category in ObjectiveCategory}
    for objective in objectives:
        tiers[ObjectiveCategory(objective.category)].add(normalize_item_id(objective.item_id))
    return tiers


def check_no_item_overlap_across_tiers(
    rule_id: str, phase: int, objectives: Sequence[ObjectiveDefinition]
) -> list[ConstraintViolation]:
    """Flag items shared by PRIMARY and SECONDARY, or by TASK and either of them.

    Tiers come from each objective's own category.  Every offending item is
    reported once.
    """

    tiers = _items_by_tier(objectives)
    primary = tiers[ObjectiveCategory.PRIMARY]
    secondary = tiers[ObjectiveCategory.SECONDARY]
    tasks = tiers[ObjectiveCategory.TASK]

    violations: list[ConstraintViolation] = []
    for item in sorted(primary & secondary):
        violations.append(
            ConstraintViolation(
                rule_id,
                f"phase {phase}: item '{item}' appears in both PRIMARY and SECONDARY",
            )
        )
    for item in sorted(tasks & (primary | secondary)):
        violations.append(
            ConstraintViolation(
                rule_id,
                f"phase {phase}: item '{item}' appears in TASK and in PRIMARY/SECONDARY",
            )
        )
    return violations


_CHECKS: dict[str, _Check] = {
    ConstraintType.NO_ITEM_OVERLAP_ACROSS_TIERS: check_no_item_overlap_across_tiers,
}


class ConstraintValidationEngine:
    """Run the recognised constraint rules against one phase."""

    def validate(
        self,
        phase: int,
        rules: Iterable[ConstraintRule],
        objectives: Iterable[ObjectiveDefinition],
    ) -> list[ConstraintViolation]:
        snapshot = tuple(objectives)
        violations: list[ConstraintViolation] = []
        for rule in rules:
            if not rule.enabled or rule.type is None:
                continue
            check = _CHECKS.get(rule.type)
            if check is None:
                continue
            violations.extend(check(rule.id or str(rule.type), phase, snapshot))
        return violations

    def slot_check(self, rules: Iterable[ConstraintRule]) -> SlotCheck:
        """Bind ``rules`` into a callable suitable for re-rolling slots during generation."""

        bound = tuple(rules)

        def check(phase: int, objectives: Sequence[ObjectiveDefinition]) -> list[ConstraintViolation]:
            return self.validate(phase, bound, objectives)

        return check
