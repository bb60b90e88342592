"""Tests for the rule file schemas."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from runforge.content.schemas import (
    GenerationBudget,
    HardConstraintRule,
    ItemPool,
    ObjectiveTemplate,
    QuantityRule,
    item_id_problem,
)
from runforge.domain.enums import CohesionMode, ObjectiveAction, ObjectiveCategory


def _template(**overrides) -> dict:
    payload = {
        "template_id": "primary_deliver",
        "category": "PRIMARY",
        "type": "DELIVER",
        "pool_refs": ["blocks"],
        "pick": {"min": 1, "max": 1},
        "constraints": [],
    }
    payload.update(overrides)
    return payload


def _quantity(**overrides) -> dict:
    payload = {
        "rule_id": "p1_primary_deliver",
        "phase": 1,
        "category": "PRIMARY",
        "type": "DELIVER",
        "roll_mode": "RANGE",
        "min": 16,
        "max": 64,
        "step": 16,
    }
    payload.update(overrides)
    return payload


class TestItemIds:
    @pytest.mark.parametrize("item_id", ["minecraft:stone", "mod:deep:thing", "a:b"])
    def test_valid(self, item_id):
        assert item_id_problem(item_id) is None

    @pytest.mark.parametrize(
        "item_id", ["", "   ", "stone", ":stone", "minecraft:", "#minecraft:logs", "minecraft: stone"]
    )
    def test_invalid(self, item_id):
        assert item_id_problem(item_id) is not None

    def test_pool_rejects_duplicates(self):
        with pytest.raises(ValidationError, match="duplicate item id"):
            ItemPool.model_validate({"id": "p", "items": ["minecraft:a", "minecraft:a"]})

    def test_pool_rejects_empty(self):
        with pytest.raises(ValidationError):
            ItemPool.model_validate({"id": "p", "items": []})

    def test_pool_rejects_tags(self):
        with pytest.raises(ValidationError, match="tags are not allowed"):
            ItemPool.model_validate({"id": "p", "items": ["#minecraft:logs"]})


class TestObjectiveTemplate:
    def test_parses_type_as_action(self):
        template = ObjectiveTemplate.model_validate(_template())
        assert template.id == "primary_deliver"
        assert template.action == ObjectiveAction.DELIVER
        assert template.category == ObjectiveCategory.PRIMARY
        assert template.pool_refs == ("blocks",)

    def test_template_id_wins_over_id(self):
        template = ObjectiveTemplate.model_validate(_template(id="other"))
        assert template.id == "primary_deliver"

    def test_plain_id_accepted(self):
        payload = _template()
        payload["id"] = payload.pop("template_id")
        assert ObjectiveTemplate.model_validate(payload).id == "primary_deliver"

    @pytest.mark.parametrize(
        ("category", "action"),
        [("PRIMARY", "TEAM_GATHER"), ("SECONDARY", "CRAFT"), ("TASK", "DELIVER")],
    )
    def test_illegal_pairs(self, category, action):
        with pytest.raises(ValidationError, match="objectives must be"):
            ObjectiveTemplate.model_validate(_template(category=category, type=action))

    def test_constraints_required(self):
        payload = _template()
        del payload["constraints"]
        with pytest.raises(ValidationError):
            ObjectiveTemplate.model_validate(payload)

    def test_inverted_pick_range(self):
        with pytest.raises(ValidationError, match="invalid pick range"):
            ObjectiveTemplate.model_validate(_template(pick={"min": 3, "max": 2}))

    def test_duplicate_pool_refs(self):
        with pytest.raises(ValidationError, match="duplicate pool reference"):
            ObjectiveTemplate.model_validate(_template(pool_refs=["a", "a"]))


class TestQuantityRule:
    def test_step_must_divide_span(self):
        with pytest.raises(ValidationError, match="not divisible by step"):
            QuantityRule.model_validate(_quantity(max=60))

    def test_min_above_max(self):
        with pytest.raises(ValidationError, match="invalid min/max"):
            QuantityRule.model_validate(_quantity(min=80))

    def test_unknown_roll_mode(self):
        with pytest.raises(ValidationError):
            QuantityRule.model_validate(_quantity(roll_mode="WEIGHTED"))

    def test_phase_out_of_range(self):
        with pytest.raises(ValidationError):
            QuantityRule.model_validate(_quantity(phase=6))


def test_budget_per_slot_cannot_exceed_total():
    with pytest.raises(ValidationError, match="cannot exceed"):
        GenerationBudget.model_validate({"retry_budget_total": 2, "retry_budget_per_slot": 3})


class TestHardConstraintRule:
    def test_keeps_unknown_parameters(self):
        rule = HardConstraintRule.model_validate({"type": "future_rule", "weight": 3})
        assert rule.enabled is True
        assert rule.params == {"weight": 3}
        assert not rule.is_cohesion
        assert rule.cohesion() is None

    def test_unknown_type_may_reuse_cohesion_keys(self):
        rule = HardConstraintRule.model_validate(
            {"type": "future_rule", "mode": "NETHER_ONLY", "radius": 0}
        )
        assert rule.params == {"mode": "NETHER_ONLY", "radius": 0}
        assert rule.cohesion() is None

    def test_cohesion_requires_radius(self):
        with pytest.raises(ValidationError, match="cohesion radius"):
            HardConstraintRule.model_validate({"type": "cohesion", "mode": "DELIVERY_CHEST"})

    def test_cohesion_rejects_unknown_mode(self):
        with pytest.raises(ValidationError, match="cohesion mode"):
            HardConstraintRule.model_validate({"type": "cohesion", "mode": "NETHER_ONLY", "radius": 4})

    def test_cohesion_by_prefix(self):
        rule = HardConstraintRule.model_validate({"id": "cohesion_anything"})
        assert rule.is_cohesion

    def test_cohesion_parameters(self):
        rule = HardConstraintRule.model_validate({"type": "cohesion", "mode": "GATHER_CLUSTER", "radius": 4})
        params = rule.cohesion()
        assert params is not None
        assert params.mode == CohesionMode.GATHER_CLUSTER
        assert params.radius == 4
