"""Deterministic objective generation.

A run's objectives are a pure function of the content snapshot and the run
id: the id is folded into a seed, a single ``random.Random`` is created, and
it is consumed in a fixed order (phase ascending; per phase the task count
first, then PRIMARY, SECONDARY_1..n, TASK_1..m; per slot template, pool,
item and quantity).  Collections are always sorted before a draw.
"""

from __future__ import annotations

import logging
import random
from collections.abc import Mapping
from dataclasses import dataclass
from uuid import UUID

from runforge.content.repository import ContentSnapshot
from runforge.content.schemas import GeneratorPhaseRule
from runforge.utils.rng import draw_in_range, draw_stepped, make_rng, pick_sorted, seed_from_run_id

from .constraints import ConstraintViolation, SlotCheck
from .errors import GenerationExhausted, NoMatchingQuantityRule, RegenerationConflict
from .models import (
    PHASES,
    ObjectiveDefinition,
    ObjectiveMap,
    ObjectiveSlot,
    PhaseObjectives,
    Provenance,
    RunState,
)

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class _Budget:
    """Retry accounting for one phase."""

    phase: int
    total: int
    per_slot: int
    used: int = 0

    def spend(self, slot: ObjectiveSlot, attempts: int) -> None:
        if attempts > self.per_slot:
            raise GenerationExhausted(self.phase, slot.name, attempts, "per-slot")
        self.used += 1
        if self.used > self.total:
            raise GenerationExhausted(self.phase, slot.name, attempts, "total")


def phase_slots(rule: GeneratorPhaseRule, task_count: int) -> list[tuple[ObjectiveSlot, tuple[str, ...]]]:
    """Slots of a phase in construction order, paired with their eligible templates."""

    slots = [(ObjectiveSlot.primary(), rule.primary.eligible_templates)]
    slots.extend(
        (ObjectiveSlot.secondary(index), rule.secondary.eligible_templates)
        for index in range(1, rule.secondary.count + 1)
    )
    slots.extend(
        (ObjectiveSlot.task(index), rule.tasks.eligible_templates)
        for index in range(1, task_count + 1)
    )
    return slots


class ObjectiveGenerationEngine:
    """Compute the full phase/slot objective map for a run.

    ``slot_check`` is consulted after every candidate with the phase's
    accepted objectives plus the candidate; a non-empty result re-rolls the
    slot.  Re-rolls are bounded by the phase's ``retry_budget_per_slot`` and
    ``retry_budget_total``.
    """

    def __init__(self, snapshot: ContentSnapshot, *, slot_check: SlotCheck | None = None) -> None:
        self.snapshot = snapshot
        self.slot_check = slot_check

    def generate(
        self,
        run_id: UUID,
        existing: Mapping[int, Mapping[ObjectiveSlot, ObjectiveDefinition]] | None = None,
    ) -> ObjectiveMap:
        """Generate objectives for every phase.

        Raises:
            RegenerationConflict: ``existing`` already holds objectives.
            NoMatchingQuantityRule: A template has no quantity rule for a phase.
            GenerationExhausted: A retry budget ran out.
        """

        if existing:
            raise RegenerationConflict(
                f"objective definitions already populated for run {run_id}; refusing to regenerate"
            )

        rng = make_rng(seed_from_run_id(run_id))
        next_runtime_id = 1
        result: ObjectiveMap = {}

        for phase in PHASES:
            rule = self.snapshot.generator_rules[phase]
            task_count = draw_in_range(rng, rule.tasks.count.min, rule.tasks.count.max)
            budget = _Budget(
                phase,
                total=rule.generation.retry_budget_total,
                per_slot=rule.generation.retry_budget_per_slot,
            )

            accepted: PhaseObjectives = {}
            for slot, eligible in phase_slots(rule, task_count):
                definition = self._resolve_slot(rng, phase, slot, eligible, next_runtime_id, accepted, budget)
                accepted[slot] = definition
                next_runtime_id += 1

            result[phase] = accepted
            logger.info(
                "generated %d objectives for phase %d (%d tasks, %d re-rolls)",
                len(accepted),
                phase,
                task_count,
                budget.used,
            )
        return result

    def populate(self, state: RunState) -> ObjectiveMap:
        """Generate into ``state.objective_definitions`` for the state's run id."""

        if state.run_id is None:
            raise ValueError("cannot generate objectives without a run id")
        state.objective_definitions = self.generate(state.run_id, state.objective_definitions)
        return state.objective_definitions

    def _resolve_slot(
        self,
        rng: random.Random,
        phase: int,
        slot: ObjectiveSlot,
        eligible: tuple[str, ...],
        runtime_id: int,
        accepted: PhaseObjectives,
        budget: _Budget,
    ) -> ObjectiveDefinition:
        attempts = 0
        while True:
            candidate = self._roll(rng, phase, slot, eligible, runtime_id)
            violations = self._check(phase, accepted, candidate)
            if not violations:
                return candidate
            attempts += 1
            logger.debug(
                "re-rolling phase %d %s (attempt %d): %s",
                phase,
                slot,
                attempts,
                "; ".join(str(v) for v in violations),
            )
            budget.spend(slot, attempts)

    def _check(
        self, phase: int, accepted: PhaseObjectives, candidate: ObjectiveDefinition
    ) -> list[ConstraintViolation]:
        if self.slot_check is None:
            return []
        return self.slot_check(phase, [*accepted.values(), candidate])

    def _roll(
        self,
        rng: random.Random,
        phase: int,
        slot: ObjectiveSlot,
        eligible: tuple[str, ...],
        runtime_id: int,
    ) -> ObjectiveDefinition:
        snapshot = self.snapshot
        template = snapshot.templates[pick_sorted(rng, eligible)]
        pool_id = pick_sorted(rng, template.pool_refs)
        item_id = pick_sorted(rng, snapshot.pools[pool_id].items)

        quantity_rule = snapshot.quantity_rule_for(phase, template.category, template.action)
        if quantity_rule is None:
            raise NoMatchingQuantityRule(
                phase, template.category, template.action, template_id=template.id
            )
        quantity = draw_stepped(rng, quantity_rule.min, quantity_rule.max, quantity_rule.step)

        return ObjectiveDefinition(
            runtime_id=runtime_id,
            phase=phase,
            slot_key=slot,
            category=template.category,
            action=template.action,
            item_id=item_id,
            quantity_required=quantity,
            provenance=Provenance(
                template_id=template.id,
                pool_id=pool_id,
                quantity_rule_id=quantity_rule.id,
                constraint_ids_applied=tuple(template.constraints),
            ),
            cohesion=snapshot.cohesion_for(template),
        )
