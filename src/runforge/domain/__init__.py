"""Domain model for the runforge objective engine.

This package hosts everything that does not touch the filesystem:

* Enumerations for the closed rule vocabulary (see :mod:`enums`).
* Dataclasses for generated objectives and the run state (see :mod:`models`).
* The error taxonomy shared by all layers (see :mod:`errors`).
* The constraint validation engine (see :mod:`constraints`).

The generation engine lives in :mod:`runforge.domain.generation`; it depends
on the content snapshot and is imported explicitly by callers.
"""

from . import constraints, enums, errors, models

__all__ = [
    "constraints",
    "enums",
    "errors",
    "models",
]
