"""Pytest configuration to ensure the `src` package layout is importable.

This adds the `src/` directory to `sys.path` so tests can import the
`runforge` package without requiring an editable install in CI.  It also
provides fixtures that write a complete, valid content root.
"""

import json
import sys
from pathlib import Path

import pytest

SRC_PATH = Path(__file__).resolve().parents[1] / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

POOLS = {
    "primary_blocks": ["minecraft:diamond_block", "minecraft:gold_block", "minecraft:emerald_block"],
    "secondary_materials": ["minecraft:iron_block", "minecraft:copper_block"],
    "gather_resources": ["minecraft:oak_log", "minecraft:wheat"],
    "craftables": ["minecraft:torch", "minecraft:chest"],
    "smeltables": ["minecraft:glass", "minecraft:iron_ingot"],
}

TEMPLATES = {
    "primary_deliver": ("PRIMARY", "DELIVER", ["primary_blocks"], ["cohesion_delivery_chest", "no_overlap"]),
    "secondary_deliver": ("SECONDARY", "DELIVER", ["secondary_materials"], ["cohesion_delivery_chest", "no_overlap"]),
    "secondary_gather": ("SECONDARY", "TEAM_GATHER", ["gather_resources"], ["cohesion_gather_cluster", "no_overlap"]),
    "task_craft": ("TASK", "CRAFT", ["craftables"], ["no_overlap"]),
    "task_smelt": ("TASK", "SMELT", ["smeltables"], []),
}

CONSTRAINTS = {
    "no_overlap": {"id": "no_overlap", "type": "no_item_overlap_across_tiers", "enabled": True},
    "cohesion_delivery_chest": {"type": "cohesion", "mode": "DELIVERY_CHEST", "radius": 8},
    "cohesion_gather_cluster": {"type": "cohesion", "mode": "GATHER_CLUSTER", "radius": 16},
}

QUANTITIES = (
    ("PRIMARY", "DELIVER", 16, 64, 16),
    ("SECONDARY", "DELIVER", 8, 32, 8),
    ("SECONDARY", "TEAM_GATHER", 10, 30, 10),
    ("TASK", "CRAFT", 1, 4, 1),
    ("TASK", "SMELT", 4, 16, 4),
)


def quantity_rule_id(phase: int, category: str, action: str) -> str:
    return f"p{phase}_{category.lower()}_{action.lower()}"


def generator_rule(phase: int) -> dict:
    if phase == 5:
        return {
            "phase": 5,
            "primary": {"count": 1, "eligible_templates": ["primary_deliver"]},
            "secondary": {"count": 0, "eligible_templates": []},
            "tasks": {"count": {"min": 0, "max": 0}, "eligible_templates": [], "cap_per_team": 0},
            "generation": {"retry_budget_total": 20, "retry_budget_per_slot": 5},
        }
    return {
        "phase": phase,
        "primary": {"count": 1, "eligible_templates": ["primary_deliver"]},
        "secondary": {"count": 2, "eligible_templates": ["secondary_gather", "secondary_deliver"]},
        "tasks": {
            "count": {"min": 1, "max": 3},
            "eligible_templates": ["task_smelt", "task_craft"],
            "cap_per_team": 2,
        },
        "generation": {"retry_budget_total": 20, "retry_budget_per_slot": 5},
    }


def write_json(path: Path, payload: object) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
    return path


def build_content(root: Path) -> Path:
    """Write a complete, valid content tree under ``root``."""

    for pool_id, items in POOLS.items():
        write_json(root / "item_pools" / f"{pool_id}.json", {"id": pool_id, "items": items})

    for template_id, (category, action, pools, constraints) in TEMPLATES.items():
        write_json(
            root / "objective_templates" / f"{template_id}.json",
            {
                "template_id": template_id,
                "category": category,
                "type": action,
                "pool_refs": pools,
                "pick": {"min": 1, "max": 1},
                "constraints": constraints,
            },
        )

    for constraint_id, payload in CONSTRAINTS.items():
        write_json(root / "constraints" / f"{constraint_id}.json", payload)

    for phase in range(1, 6):
        for category, action, minimum, maximum, step in QUANTITIES:
            rule_id = quantity_rule_id(phase, category, action)
            write_json(
                root / "quantity_rules" / f"{rule_id}.json",
                {
                    "rule_id": rule_id,
                    "phase": phase,
                    "category": category,
                    "type": action,
                    "roll_mode": "RANGE",
                    "min": minimum * phase,
                    "max": maximum * phase,
                    "step": step * phase,
                },
            )
        write_json(root / "generator_rules" / f"phase{phase}.json", generator_rule(phase))
    return root


@pytest.fixture
def content_root(tmp_path: Path) -> Path:
    """A freshly written, valid content root that tests may mutate."""

    return build_content(tmp_path / "content")


@pytest.fixture(scope="session")
def content_snapshot(tmp_path_factory: pytest.TempPathFactory):
    """A loaded snapshot of the default content, shared across tests."""

    from runforge.content.repository import load_content

    return load_content(build_content(tmp_path_factory.mktemp("shared") / "content"))


@pytest.fixture
def edit_rule(content_root: Path):
    """Return a helper that rewrites one rule file of ``content_root`` in place.

    ``mutate`` receives the decoded payload and may modify it or return a
    replacement.
    """

    def _edit(relative: str, mutate) -> Path:
        path = content_root / relative
        payload = json.loads(path.read_text(encoding="utf-8"))
        replaced = mutate(payload)
        return write_json(path, payload if replaced is None else replaced)

    return _edit


@pytest.fixture
def write_rule(content_root: Path):
    """Return a helper that writes a new rule file under ``content_root``."""

    def _write(relative: str, payload: object) -> Path:
        return write_json(content_root / relative, payload)

    return _write
