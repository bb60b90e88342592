"""Pydantic schemas for the declarative rule files.

These models only check what can be decided from a single file (types,
ranges, legal category/action pairs).  Cross-file references and the locked
per-phase constants are validated by :mod:`runforge.content.repository`.
"""

from __future__ import annotations

from typing import Any

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from runforge.domain.enums import (
    ALLOWED_ACTIONS,
    CohesionMode,
    ConstraintType,
    ObjectiveAction,
    ObjectiveCategory,
    RollMode,
    is_legal_pair,
)

COHESION_PREFIX = "cohesion_"


def item_id_problem(item_id: str) -> str | None:
    """Return why ``item_id`` is not an exact ``namespace:name`` id, or ``None``."""

    if not item_id or not item_id.strip():
        return "blank item id"
    if "#" in item_id:
        return "tags are not allowed"
    if any(ch.isspace() for ch in item_id):
        return "whitespace is not allowed in item ids"
    colon = item_id.find(":")
    if colon <= 0 or colon == len(item_id) - 1:
        return "item id must be 'namespace:name'"
    return None


def _unique(values: tuple[str, ...], what: str) -> tuple[str, ...]:
    seen: set[str] = set()
    for value in values:
        if value in seen:
            raise ValueError(f"duplicate {what}: {value!r}")
        seen.add(value)
    return values


def _check_pair(category: ObjectiveCategory, action: ObjectiveAction) -> None:
    if not is_legal_pair(category, action):
        allowed = " or ".join(sorted(ALLOWED_ACTIONS[category]))
        raise ValueError(f"{category} objectives must be {allowed}, got {action}")


class RuleFile(BaseModel):
    """Common configuration for rule file models."""

    model_config = ConfigDict(frozen=True, extra="ignore")


class ItemPool(RuleFile):
    """Named set of exact item ids."""

    id: str = Field(min_length=1)
    items: tuple[str, ...] = Field(min_length=1)

    @field_validator("items")
    @classmethod
    def _exact_ids(cls, items: tuple[str, ...]) -> tuple[str, ...]:
        for item in items:
            problem = item_id_problem(item)
            if problem is not None:
                raise ValueError(f"{problem}: {item!r}")
        return _unique(items, "item id")


class PickRange(RuleFile):
    min: int = Field(ge=1)
    max: int = Field(ge=1)

    @model_validator(mode="after")
    def _ordered(self) -> PickRange:
        if self.min > self.max:
            raise ValueError(f"invalid pick range {self.min}..{self.max}")
        return self


class ObjectiveTemplate(RuleFile):
    """Which pools, action and pick range apply to a category of objective."""

    id: str = Field(min_length=1, validation_alias=AliasChoices("template_id", "id"))
    category: ObjectiveCategory
    action: ObjectiveAction = Field(validation_alias=AliasChoices("type", "action"))
    pool_refs: tuple[str, ...] = Field(min_length=1)
    pick: PickRange
    constraints: tuple[str, ...]

    @field_validator("pool_refs")
    @classmethod
    def _unique_pools(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        return _unique(value, "pool reference")

    @field_validator("constraints")
    @classmethod
    def _unique_constraints(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        return _unique(value, "constraint reference")

    @model_validator(mode="after")
    def _legal_pair(self) -> ObjectiveTemplate:
        _check_pair(self.category, self.action)
        return self


class QuantityRule(RuleFile):
    """Legal numeric range/step for how many of an item are required."""

    id: str = Field(min_length=1, validation_alias=AliasChoices("rule_id", "id"))
    phase: int = Field(ge=1, le=5)
    category: ObjectiveCategory
    action: ObjectiveAction = Field(validation_alias=AliasChoices("type", "action"))
    roll_mode: RollMode
    min: int = Field(ge=1)
    max: int = Field(ge=1)
    step: int = Field(ge=1)

    @model_validator(mode="after")
    def _legal(self) -> QuantityRule:
        _check_pair(self.category, self.action)
        if self.min > self.max:
            raise ValueError(f"invalid min/max {self.min}..{self.max}")
        if (self.max - self.min) % self.step != 0:
            raise ValueError(
                f"range {self.min}..{self.max} is not divisible by step {self.step}"
            )
        return self


class SlotBlock(RuleFile):
    count: int = Field(ge=0)
    eligible_templates: tuple[str, ...] = ()


class CountRange(RuleFile):
    min: int = Field(ge=0)
    max: int = Field(ge=0)

    @model_validator(mode="after")
    def _ordered(self) -> CountRange:
        if self.min > self.max:
            raise ValueError(f"invalid count range {self.min}..{self.max}")
        return self


class TaskBlock(RuleFile):
    count: CountRange
    eligible_templates: tuple[str, ...] = ()
    cap_per_team: int = Field(ge=0)


class GenerationBudget(RuleFile):
    retry_budget_total: int = Field(ge=1)
    retry_budget_per_slot: int = Field(ge=1)

    @model_validator(mode="after")
    def _per_slot_within_total(self) -> GenerationBudget:
        if self.retry_budget_per_slot > self.retry_budget_total:
            raise ValueError("retry_budget_per_slot cannot exceed retry_budget_total")
        return self


class GeneratorPhaseRule(RuleFile):
    """Slot counts, eligible templates and retry budgets for one phase."""

    phase: int = Field(ge=1, le=5)
    primary: SlotBlock
    secondary: SlotBlock
    tasks: TaskBlock
    generation: GenerationBudget


class CohesionParams(RuleFile):
    """Parameters of a ``cohesion`` constraint."""

    mode: CohesionMode
    radius: int = Field(ge=1)


class HardConstraintRule(RuleFile):
    """A constraint file.

    Only ``id``/``type``/``enabled`` are interpreted generically; every other
    key is kept untouched as a parameter, so rule types this engine does not
    know may use any keys they like.  ``cohesion`` constraints must declare a
    valid ``mode`` and ``radius``.
    """

    model_config = ConfigDict(frozen=True, extra="allow")

    id: str | None = None
    type: str | None = None
    enabled: bool = True

    @model_validator(mode="after")
    def _cohesion_params(self) -> HardConstraintRule:
        if self.type == ConstraintType.COHESION:
            try:
                CohesionParams.model_validate(self.params)
            except ValidationError as exc:
                first = exc.errors()[0]
                where = ".".join(str(part) for part in first["loc"])
                raise ValueError(f"cohesion {where}: {first['msg']}") from exc
        return self

    @property
    def params(self) -> dict[str, Any]:
        return dict(self.model_extra or {})

    @property
    def is_cohesion(self) -> bool:
        return self.type == ConstraintType.COHESION or (self.id or "").startswith(COHESION_PREFIX)

    def cohesion(self) -> CohesionParams | None:
        """Parsed cohesion parameters, or ``None`` for other rule types."""

        if self.type != ConstraintType.COHESION:
            return None
        return CohesionParams.model_validate(self.params)
