"""
Dominance filter used as a progress-acceptance mechanism by the barrier update.

The filter stores points in an m-dimensional measure space (for the barrier
update m = 2: objective value f and constraint violation θ), each tagged with
the iteration that produced it.

    acceptable(v)  : True iff no stored entry dominates v, i.e. for every
                     entry e there is a coordinate k with v_k < e_k.
    add_entry(v, t): drops every stored entry that v weakly dominates
                     (v_k <= e_k for all k), then stores (v, t).

Both operations assume minimization in every coordinate.

Notes
-----
- The stored entries always form a mutually non-dominated set as long as new
  entries are only added after passing `acceptable`.
- Non-finite candidates are never acceptable and are never stored.
"""

from __future__ import annotations

import logging
from typing import List, Sequence, Tuple

import numpy as np


class Filter:
    """
    Multi-dimensional dominance filter.

    Parameters
    ----------
    dim : int
        Number of measures per entry (≥ 1).

    Attributes
    ----------
    entries : List[Tuple[np.ndarray, int]]
        Stored (values, iteration tag) pairs.
    """

    def __init__(self, dim: int = 2):
        if int(dim) < 1:
            raise ValueError(f"Filter dimension must be positive, got {dim}")
        self.dim = int(dim)
        self.entries: List[Tuple[np.ndarray, int]] = []

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    def _as_point(self, vals: Sequence[float]) -> np.ndarray:
        v = np.asarray(vals, dtype=float).ravel()
        if v.size != self.dim:
            raise ValueError(f"Filter expects {self.dim} values, got {v.size}")
        return v

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #

    def acceptable(self, *vals: float) -> bool:
        """
        Check whether the point is outside the region dominated by every entry.

        Returns
        -------
        bool
            True if acceptable, False otherwise.
        """
        v = self._as_point(vals)
        if not np.all(np.isfinite(v)):
            logging.warning(f"[Filter] invalid point: {v}")
            return False
        for e, tag in self.entries:
            if not np.any(v < e):
                logging.debug(f"[Filter] reject {v} dominated by {e} (iter {tag})")
                return False
        return True

    def add_entry(self, *vals: float, iteration: int) -> None:
        """Insert a point, pruning the entries it dominates."""
        v = self._as_point(vals)
        if not np.all(np.isfinite(v)):
            logging.warning(f"[Filter] refusing to store invalid point: {v}")
            return
        kept = [(e, tag) for e, tag in self.entries if not np.all(v <= e)]
        n_pruned = len(self.entries) - len(kept)
        kept.append((v, int(iteration)))
        self.entries = kept
        logging.debug(f"[Filter] add {v} (iter {iteration}); pruned={n_pruned}, size={len(self.entries)}")

    def __len__(self) -> int:
        return len(self.entries)

    def reset(self) -> None:
        """Clear all entries."""
        self.entries = []
        logging.info("[Filter] reset")
