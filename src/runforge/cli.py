"""Development entrypoint: validate content and preview or begin runs."""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from uuid import UUID

from runforge.config import Settings, get_settings
from runforge.content.repository import load_content
from runforge.domain.constraints import ConstraintValidationEngine
from runforge.domain.errors import RunforgeError
from runforge.domain.generation import ObjectiveGenerationEngine
from runforge.domain.models import ordered_objectives
from runforge.services.run_service import RunService

logger = logging.getLogger("runforge")


def _validate(settings: Settings, args: argparse.Namespace) -> int:
    snapshot = load_content(settings.content_root)
    for category, count in snapshot.summary().items():
        print(f"{category}: {count}")
    return 0


def _preview(settings: Settings, args: argparse.Namespace) -> int:
    snapshot = load_content(settings.content_root)
    engine = ObjectiveGenerationEngine(snapshot)
    definitions = engine.generate(args.seed)
    checker = ConstraintValidationEngine()
    for phase in sorted(definitions):
        print(f"phase {phase}")
        for definition in ordered_objectives(definitions, phase):
            print(f"  {definition.describe()}")
        for violation in checker.validate(phase, snapshot.enabled_constraints(), definitions[phase].values()):
            print(f"  ! {violation}")
    return 0


def _begin(settings: Settings, args: argparse.Namespace) -> int:
    service = RunService.from_settings(settings)
    result = service.begin_run(args.seed)
    print(f"run {result.state.run_id} started, {len(service.generated_objectives())} objectives")
    return 0 if result.clean else 2


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Runforge objective engine tools")
    parser.add_argument("--content-root", type=Path, help="Override the content root")
    parser.add_argument("--state-dir", type=Path, help="Override the session root")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("validate", help="Load and validate the content root")
    preview = commands.add_parser("preview", help="Print the objectives a run id would generate")
    preview.add_argument("seed", type=UUID, help="Run id to generate for")
    begin = commands.add_parser("begin", help="Begin a new run and persist it")
    begin.add_argument("--seed", type=UUID, default=None, help="Explicit run id")

    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    settings = get_settings()
    overrides = {
        key: value
        for key, value in (("content_root", args.content_root), ("state_dir", args.state_dir))
        if value is not None
    }
    if overrides:
        settings = settings.model_copy(update=overrides)

    handlers = {"validate": _validate, "preview": _preview, "begin": _begin}
    try:
        return handlers[args.command](settings, args)
    except RunforgeError as exc:
        logger.error("%s", exc)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
