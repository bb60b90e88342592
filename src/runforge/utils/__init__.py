"""Utility functions for the runforge engine."""

from runforge.utils.rng import (
    draw_in_range,
    draw_index,
    draw_stepped,
    make_rng,
    pick_sorted,
    seed_from_run_id,
)

__all__ = [
    "draw_in_range",
    "draw_index",
    "draw_stepped",
    "make_rng",
    "pick_sorted",
    "seed_from_run_id",
]
