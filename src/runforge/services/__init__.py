"""Service layer for runforge."""

from .run_service import RunService, RunStart

__all__ = ["RunService", "RunStart"]
