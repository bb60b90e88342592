"""Deterministic, rule-driven objective generation for multi-phase team runs."""

__version__ = "0.1.0"
