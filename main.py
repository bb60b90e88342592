"""Development entrypoint for the runforge tools."""

from __future__ import annotations

from runforge.cli import main

if __name__ == "__main__":
    raise SystemExit(main())
