"""Load, validate and index the rule files under a content root.

The content root holds five subdirectories, each with one JSON document per
entity::

    item_pools/<pool_id>.json
    objective_templates/<template_id>.json
    quantity_rules/<rule_id>.json
    generator_rules/phase<N>.json
    constraints/<constraint_id>.json

Validation runs in dependency order (pools, constraints, templates, quantity
rules, generator rules) and any single defect aborts the whole load.  There
is no partial snapshot.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from runforge.content.schemas import (
    GeneratorPhaseRule,
    HardConstraintRule,
    ItemPool,
    ObjectiveTemplate,
    QuantityRule,
)
from runforge.domain.enums import (
    REQUIRED_QUANTITY_PAIRS,
    ConstraintType,
    ObjectiveAction,
    ObjectiveCategory,
)
from runforge.domain.errors import MalformedFile, MissingReference
from runforge.domain.models import LAST_PHASE, MAX_SLOT_INDEX, PHASES, Cohesion

logger = logging.getLogger(__name__)

ITEM_POOLS = "item_pools"
OBJECTIVE_TEMPLATES = "objective_templates"
QUANTITY_RULES = "quantity_rules"
GENERATOR_RULES = "generator_rules"
CONSTRAINTS = "constraints"

REQUIRED_SUBDIRECTORIES: tuple[str, ...] = (
    ITEM_POOLS,
    OBJECTIVE_TEMPLATES,
    QUANTITY_RULES,
    GENERATOR_RULES,
    CONSTRAINTS,
)

# Locked structure: PRIMARY is always a single slot, SECONDARY has two slots
# in phases 1-4 and none in the final phase, which also has no tasks.
PRIMARY_COUNT = 1
SECONDARY_COUNT = 2

_GENERATOR_STEM = re.compile(r"^(?:phase)?([1-9]\d*)$")

QuantityKey = tuple[int, ObjectiveCategory, ObjectiveAction]
ModelT = TypeVar("ModelT", bound=BaseModel)


@dataclass(frozen=True, slots=True)
class ContentSnapshot:
    """Immutable, validated view of every rule file under a content root."""

    root: Path
    pools: Mapping[str, ItemPool]
    templates: Mapping[str, ObjectiveTemplate]
    quantity_rules: Mapping[str, QuantityRule]
    quantity_index: Mapping[QuantityKey, QuantityRule]
    generator_rules: Mapping[int, GeneratorPhaseRule]
    constraints: Mapping[str, HardConstraintRule]

    def quantity_rule_for(
        self, phase: int, category: ObjectiveCategory, action: ObjectiveAction
    ) -> QuantityRule | None:
        return self.quantity_index.get((phase, ObjectiveCategory(category), ObjectiveAction(action)))

    def enabled_constraints(self) -> list[HardConstraintRule]:
        """Enabled constraint rules ordered by id."""

        return [self.constraints[cid] for cid in sorted(self.constraints) if self.constraints[cid].enabled]

    def cohesion_for(self, template: ObjectiveTemplate) -> Cohesion | None:
        """Resolve the first enabled ``cohesion`` constraint a template references."""

        for constraint_id in sorted(template.constraints):
            rule = self.constraints.get(constraint_id)
            if rule is None or not rule.enabled:
                continue
            params = rule.cohesion()
            if params is not None:
                return Cohesion(mode=params.mode, radius=params.radius)
        return None

    def summary(self) -> dict[str, int]:
        return {
            ITEM_POOLS: len(self.pools),
            OBJECTIVE_TEMPLATES: len(self.templates),
            QUANTITY_RULES: len(self.quantity_rules),
            GENERATOR_RULES: len(self.generator_rules),
            CONSTRAINTS: len(self.constraints),
        }


class ContentRepository:
    """Own the active content snapshot for a content root.

    ``reload`` builds a brand-new snapshot and only swaps it in after the
    whole tree validated; a failed reload raises and leaves the previous
    snapshot active.
    """

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root)
        self._snapshot: ContentSnapshot | None = None

    @property
    def is_loaded(self) -> bool:
        return self._snapshot is not None

    @property
    def snapshot(self) -> ContentSnapshot:
        """Return the active snapshot, loading it on first access."""

        if self._snapshot is None:
            return self.load()
        return self._snapshot

    def load(self) -> ContentSnapshot:
        self._snapshot = load_content(self.root)
        return self._snapshot

    def reload(self) -> ContentSnapshot:
        candidate = load_content(self.root)
        self._snapshot = candidate
        return candidate


def load_content(root: Path | str) -> ContentSnapshot:
    """Load and validate a content root.

    Raises:
        MissingReference: A required directory, file, reference or coverage
            entry is missing.
        MalformedFile: A file cannot be parsed or breaks a structural rule.
    """

    content_root = Path(root)
    logger.info("loading objective content from %s", content_root)

    files = _scan(content_root)
    pools = _load_pools(files[ITEM_POOLS])
    constraints = _index_constraints(files[CONSTRAINTS])
    templates = _load_templates(files[OBJECTIVE_TEMPLATES], pools, constraints)
    quantity_rules, quantity_index = _load_quantity_rules(
        files[QUANTITY_RULES], content_root / QUANTITY_RULES
    )
    generator_rules = _load_generator_rules(
        files[GENERATOR_RULES], content_root / GENERATOR_RULES, templates
    )

    snapshot = ContentSnapshot(
        root=content_root,
        pools=MappingProxyType(pools),
        templates=MappingProxyType(templates),
        quantity_rules=MappingProxyType(quantity_rules),
        quantity_index=MappingProxyType(quantity_index),
        generator_rules=MappingProxyType(generator_rules),
        constraints=MappingProxyType(constraints),
    )
    logger.info("objective content OK: %s", snapshot.summary())
    return snapshot


# --- File helpers -----------------------------------------------------------------


def _scan(root: Path) -> dict[str, list[Path]]:
    if not root.is_dir():
        raise MissingReference("content root does not exist or is not a directory", path=root)

    files: dict[str, list[Path]] = {}
    for name in REQUIRED_SUBDIRECTORIES:
        directory = root / name
        if not directory.is_dir():
            raise MissingReference("missing required content subdirectory", path=directory)
        found = sorted(p for p in directory.iterdir() if p.is_file() and p.suffix == ".json")
        if not found:
            raise MissingReference("content subdirectory has no .json files", path=directory)
        files[name] = found
    return files


def _read_json_value(path: Path) -> Any:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise MalformedFile(f"cannot parse JSON ({exc})", path=path) from exc


def _read_json(path: Path) -> dict[str, Any]:
    data = _read_json_value(path)
    if not isinstance(data, dict):
        raise MalformedFile("top-level JSON value must be an object", path=path)
    return data


def _parse(model: type[ModelT], path: Path, data: dict[str, Any]) -> ModelT:
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        first = exc.errors()[0]
        field = ".".join(str(part) for part in first["loc"]) or None
        raise MalformedFile(first["msg"], path=path, field=field) from exc


def _require_stem(path: Path, declared: str | None) -> None:
    if declared != path.stem:
        raise MalformedFile(
            f"id mismatch (expected {path.stem!r}, got {declared!r})", path=path, field="id"
        )


# --- Per-category loaders ----------------------------------------------------------


def _load_pools(paths: list[Path]) -> dict[str, ItemPool]:
    pools: dict[str, ItemPool] = {}
    for path in paths:
        pool = _parse(ItemPool, path, _read_json(path))
        _require_stem(path, pool.id)
        if pool.id in pools:
            raise MalformedFile(f"duplicate pool id {pool.id!r}", path=path, field="id")
        pools[pool.id] = pool
    logger.info("loaded %d item pools", len(pools))
    return pools


def _index_constraints(paths: list[Path]) -> dict[str, HardConstraintRule]:
    """Index every constraint file by its stem.

    Only rule types listed in :class:`ConstraintType` are parsed strictly.
    Any other document, including one that is not a JSON object, is kept as
    an inert, disabled rule so templates may still reference it.
    """

    constraints: dict[str, HardConstraintRule] = {}
    for path in paths:
        data = _read_json_value(path)
        if isinstance(data, dict) and _is_known_type(data.get("type")):
            rule = _parse(HardConstraintRule, path, data)
        else:
            rule = _lenient_constraint(path, data)
        if rule.id is None:
            rule = rule.model_copy(update={"id": path.stem})
        _require_stem(path, rule.id)
        constraints[path.stem] = rule
    logger.info("indexed %d constraint files", len(constraints))
    return constraints


def _is_known_type(value: Any) -> bool:
    return isinstance(value, str) and value in {t.value for t in ConstraintType}


def _lenient_constraint(path: Path, data: Any) -> HardConstraintRule:
    if isinstance(data, dict):
        try:
            return HardConstraintRule.model_validate(data)
        except ValidationError as exc:
            logger.warning("constraint %s has an unrecognised shape, ignoring it: %s", path.name, exc)
    else:
        logger.warning("constraint %s is not a JSON object, ignoring it", path.name)
    return HardConstraintRule(id=path.stem, enabled=False)


def _load_templates(
    paths: list[Path],
    pools: Mapping[str, ItemPool],
    constraints: Mapping[str, HardConstraintRule],
) -> dict[str, ObjectiveTemplate]:
    templates: dict[str, ObjectiveTemplate] = {}
    for path in paths:
        template = _parse(ObjectiveTemplate, path, _read_json(path))
        _require_stem(path, template.id)

        for position, pool_id in enumerate(template.pool_refs):
            if pool_id not in pools:
                raise MissingReference(
                    f"template references missing pool {pool_id!r}",
                    path=path,
                    field=f"pool_refs[{position}]",
                )

        for position, constraint_id in enumerate(template.constraints):
            rule = constraints.get(constraint_id)
            if rule is None:
                raise MissingReference(
                    f"template references missing constraint {constraint_id!r}",
                    path=path,
                    field=f"constraints[{position}]",
                )
            if template.category == ObjectiveCategory.TASK and rule.is_cohesion:
                raise MalformedFile(
                    f"tasks cannot carry cohesion constraints ({constraint_id!r})",
                    path=path,
                    field=f"constraints[{position}]",
                )

        if template.id in templates:
            raise MalformedFile(f"duplicate template id {template.id!r}", path=path, field="id")
        templates[template.id] = template
    logger.info("loaded %d objective templates", len(templates))
    return templates


def _load_quantity_rules(
    paths: list[Path], directory: Path
) -> tuple[dict[str, QuantityRule], dict[QuantityKey, QuantityRule]]:
    rules: dict[str, QuantityRule] = {}
    index: dict[QuantityKey, QuantityRule] = {}
    for path in paths:
        rule = _parse(QuantityRule, path, _read_json(path))
        _require_stem(path, rule.id)
        if rule.id in rules:
            raise MalformedFile(f"duplicate quantity rule id {rule.id!r}", path=path, field="id")

        key = (rule.phase, rule.category, rule.action)
        existing = index.get(key)
        if existing is not None:
            raise MalformedFile(
                f"duplicate quantity rule for phase {rule.phase} and "
                f"{rule.category}|{rule.action} (already defined by {existing.id!r})",
                path=path,
            )
        rules[rule.id] = rule
        index[key] = rule

    for phase in PHASES:
        for category, action in REQUIRED_QUANTITY_PAIRS:
            if (phase, category, action) not in index:
                raise MissingReference(
                    f"missing quantity rule for phase {phase} and {category}|{action}",
                    path=directory,
                )
    logger.info("loaded %d quantity rules (coverage OK for phases 1-%d)", len(rules), LAST_PHASE)
    return rules, index


def _load_generator_rules(
    paths: list[Path],
    directory: Path,
    templates: Mapping[str, ObjectiveTemplate],
) -> dict[int, GeneratorPhaseRule]:
    rules: dict[int, GeneratorPhaseRule] = {}
    for path in paths:
        match = _GENERATOR_STEM.match(path.stem)
        if match is None:
            raise MalformedFile("generator rule files must be named phase<N>.json", path=path)
        expected_phase = int(match.group(1))

        rule = _parse(GeneratorPhaseRule, path, _read_json(path))
        if rule.phase != expected_phase:
            raise MalformedFile(
                f"phase mismatch (expected {expected_phase}, got {rule.phase})",
                path=path,
                field="phase",
            )
        _check_locked_structure(rule, path)
        _check_eligible(rule, path, templates)

        if rule.phase in rules:
            raise MalformedFile(f"duplicate generator rule for phase {rule.phase}", path=path)
        rules[rule.phase] = rule

    for phase in PHASES:
        if phase not in rules:
            raise MissingReference(
                f"missing generator rule for phase {phase} (phase{phase}.json)", path=directory
            )
    logger.info("loaded generator rules for phases 1-%d", LAST_PHASE)
    return rules


def _check_locked_structure(rule: GeneratorPhaseRule, path: Path) -> None:
    final = rule.phase == LAST_PHASE

    if rule.primary.count != PRIMARY_COUNT:
        raise MalformedFile(
            f"primary count is locked to {PRIMARY_COUNT}", path=path, field="primary.count"
        )

    if final:
        if rule.secondary.count != 0:
            raise MalformedFile(
                f"phase {LAST_PHASE} secondary count must be 0", path=path, field="secondary.count"
            )
        if rule.secondary.eligible_templates:
            raise MalformedFile(
                f"phase {LAST_PHASE} secondary eligible templates must be empty",
                path=path,
                field="secondary.eligible_templates",
            )
        if rule.tasks.count.min != 0 or rule.tasks.count.max != 0:
            raise MalformedFile(
                f"phase {LAST_PHASE} task count must be 0..0", path=path, field="tasks.count"
            )
        if rule.tasks.cap_per_team != 0:
            raise MalformedFile(
                f"phase {LAST_PHASE} cap_per_team must be 0", path=path, field="tasks.cap_per_team"
            )
        if rule.tasks.eligible_templates:
            raise MalformedFile(
                f"phase {LAST_PHASE} task eligible templates must be empty",
                path=path,
                field="tasks.eligible_templates",
            )
        return

    if rule.secondary.count != SECONDARY_COUNT:
        raise MalformedFile(
            f"secondary count is locked to {SECONDARY_COUNT} for phases 1-{LAST_PHASE - 1}",
            path=path,
            field="secondary.count",
        )
    if rule.tasks.count.max > MAX_SLOT_INDEX:
        raise MalformedFile(
            f"task count cannot exceed {MAX_SLOT_INDEX} slots",
            path=path,
            field="tasks.count.max",
        )


def _check_eligible(
    rule: GeneratorPhaseRule,
    path: Path,
    templates: Mapping[str, ObjectiveTemplate],
) -> None:
    blocks: list[tuple[str, tuple[str, ...], ObjectiveCategory]] = [
        ("primary", rule.primary.eligible_templates, ObjectiveCategory.PRIMARY),
    ]
    if rule.phase != LAST_PHASE:
        blocks.append(("secondary", rule.secondary.eligible_templates, ObjectiveCategory.SECONDARY))
        blocks.append(("tasks", rule.tasks.eligible_templates, ObjectiveCategory.TASK))

    for block, eligible, category in blocks:
        field = f"{block}.eligible_templates"
        if not eligible:
            raise MalformedFile("eligible templates cannot be empty", path=path, field=field)
        for position, template_id in enumerate(eligible):
            template = templates.get(template_id)
            if template is None:
                raise MissingReference(
                    f"references missing template {template_id!r}",
                    path=path,
                    field=f"{field}[{position}]",
                )
            if template.category != category:
                raise MalformedFile(
                    f"template {template_id!r} is {template.category}, expected {category}",
                    path=path,
                    field=f"{field}[{position}]",
                )
