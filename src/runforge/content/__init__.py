"""Declarative rule content: file schemas and the validated snapshot."""

from .repository import ContentRepository, ContentSnapshot, load_content
from .schemas import (
    GeneratorPhaseRule,
    HardConstraintRule,
    ItemPool,
    ObjectiveTemplate,
    QuantityRule,
)

__all__ = [
    "ContentRepository",
    "ContentSnapshot",
    "GeneratorPhaseRule",
    "HardConstraintRule",
    "ItemPool",
    "ObjectiveTemplate",
    "QuantityRule",
    "load_content",
]
