"""Tests for the hard-constraint validation engine."""

from __future__ import annotations

import copy

from runforge.content.schemas import HardConstraintRule
from runforge.domain.constraints import ConstraintValidationEngine, normalize_item_id
from runforge.domain.enums import ObjectiveAction, ObjectiveCategory
from runforge.domain.models import ObjectiveDefinition, ObjectiveSlot, Provenance

OVERLAP = HardConstraintRule.model_validate({"id": "no_overlap", "type": "no_item_overlap_across_tiers"})

_ACTIONS = {
    ObjectiveCategory.PRIMARY: ObjectiveAction.DELIVER,
    ObjectiveCategory.SECONDARY: ObjectiveAction.DELIVER,
    ObjectiveCategory.TASK: ObjectiveAction.SMELT,
}


def _objective(slot: str, item_id: str, category: ObjectiveCategory | None = None) -> ObjectiveDefinition:
    parsed = ObjectiveSlot.parse(slot)
    category = category or ObjectiveCategory(parsed.tier)
    return ObjectiveDefinition(
        runtime_id=1,
        phase=1,
        slot_key=parsed,
        category=category,
        action=_ACTIONS[category],
        item_id=item_id,
        quantity_required=1,
        provenance=Provenance("t", "p", "q"),
    )


def test_normalize_item_id():
    assert normalize_item_id("  Minecraft:Stone \t") == "minecraft:stone"


def test_clean_phase_has_no_violations():
    objectives = [
        _objective("PRIMARY", "minecraft:diamond_block"),
        _objective("SECONDARY_1", "minecraft:iron_block"),
        _objective("TASK_1", "minecraft:glass"),
    ]
    assert ConstraintValidationEngine().validate(1, [OVERLAP], objectives) == []


def test_primary_secondary_overlap_is_case_and_space_insensitive():
    objectives = [
        _objective("PRIMARY", "minecraft:stone"),
        _objective("SECONDARY_1", "  MINECRAFT:Stone "),
    ]
    violations = ConstraintValidationEngine().validate(3, [OVERLAP], objectives)

    assert len(violations) == 1
    assert violations[0].rule_id == "no_overlap"
    assert "minecraft:stone" in violations[0].message
    assert "PRIMARY and SECONDARY" in violations[0].message


def test_reported_once_per_item():
    objectives = [
        _objective("PRIMARY", "minecraft:stone"),
        _objective("SECONDARY_1", "minecraft:stone"),
        _objective("SECONDARY_2", "minecraft:STONE"),
    ]
    assert len(ConstraintValidationEngine().validate(1, [OVERLAP], objectives)) == 1


def test_task_overlap_with_either_tier():
    objectives = [
        _objective("PRIMARY", "minecraft:gold_block"),
        _objective("SECONDARY_1", "minecraft:oak_log"),
        _objective("TASK_1", "minecraft:gold_block"),
        _objective("TASK_2", "minecraft:oak_log"),
        _objective("TASK_3", "minecraft:oak_log"),
    ]
    violations = ConstraintValidationEngine().validate(2, [OVERLAP], objectives)
    assert len(violations) == 2
    assert all("TASK" in v.message for v in violations)


def test_tasks_sharing_an_item_are_fine():
    objectives = [_objective("TASK_1", "minecraft:glass"), _objective("TASK_2", "minecraft:glass")]
    assert ConstraintValidationEngine().validate(1, [OVERLAP], objectives) == []


def test_tier_comes_from_category_not_slot():
    objectives = [
        _objective("PRIMARY", "minecraft:stone"),
        _objective("TASK_1", "minecraft:stone", category=ObjectiveCategory.SECONDARY),
    ]
    violations = ConstraintValidationEngine().validate(1, [OVERLAP], objectives)
    assert len(violations) == 1
    assert "PRIMARY and SECONDARY" in violations[0].message


def test_disabled_and_unknown_rules_are_skipped():
    rules = [
        HardConstraintRule.model_validate(
            {"id": "off", "type": "no_item_overlap_across_tiers", "enabled": False}
        ),
        HardConstraintRule.model_validate({"id": "future", "type": "max_distance", "blocks": 64}),
        HardConstraintRule.model_validate({"id": "untyped"}),
    ]
    objectives = [_objective("PRIMARY", "minecraft:stone"), _objective("SECONDARY_1", "minecraft:stone")]
    assert ConstraintValidationEngine().validate(1, rules, objectives) == []


def test_validation_does_not_mutate_input():
    objectives = [_objective("PRIMARY", "minecraft:stone"), _objective("SECONDARY_1", "minecraft:stone")]
    before = copy.deepcopy(objectives)
    ConstraintValidationEngine().validate(1, [OVERLAP], objectives)
    assert objectives == before


def test_slot_check_binds_rules():
    check = ConstraintValidationEngine().slot_check([OVERLAP])
    assert check(1, [_objective("PRIMARY", "minecraft:a:b")]) == []
    assert len(check(1, [_objective("PRIMARY", "x:y"), _objective("SECONDARY_1", "x:y")])) == 1
