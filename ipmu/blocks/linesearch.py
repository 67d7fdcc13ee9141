import logging
from collections import deque
from typing import Callable, Optional, Tuple

import numpy as np

from .filter import Filter


class LineSearcher:
    """Backtracking line search on the barrier merit φ with filter support.

    - Armijo test against a nonmonotone reference: the max of φ0 and the last
      `ls_nonmonotone_M` accepted merit values.
    - Optional dominance filter on (f, θ) for acceptability.
    - `reset()` drops the merit history and the filter; the barrier update
      calls it whenever μ or the μ-mode changes.
    """

    def __init__(
        self,
        ls_backtrack: float = 0.5,
        ls_armijo_f: float = 1e-4,
        ls_max_iter: int = 25,
        ls_min_alpha: float = 1e-12,
        ls_nonmonotone_M: int = 0,
        flt: Optional[Filter] = None,
    ):
        self.filter = flt
        # basic param guards
        self.ls_backtrack = float(max(1e-4, min(0.99, ls_backtrack)))
        self.ls_armijo_f = float(max(1e-12, ls_armijo_f))
        self.ls_max_iter = int(max(1, ls_max_iter))
        self.ls_min_alpha = float(max(0.0, ls_min_alpha))
        self.phi_hist = deque(maxlen=max(0, int(ls_nonmonotone_M)))
        self.n_resets = 0
        self._iter = 0

    def reset(self) -> None:
        """Forget accepted merit values and filter entries."""
        self.phi_hist.clear()
        if self.filter is not None:
            self.filter.reset()
        self.n_resets += 1
        logging.debug(f"[LineSearch] reset (#{self.n_resets})")

    def search(
        self,
        merit: Callable[[float], Tuple[float, float, float]],
        phi0: float,
        d_phi: float,
        alpha_max: float = 1.0,
    ) -> Tuple[float, int, bool]:
        """
        Backtrack from `alpha_max`.

        `merit(alpha)` returns (φ, f, θ) at the trial point. Returns
        (alpha, iterations, failed).
        """
        if d_phi >= -1e-12:
            # non-descent direction for barrier
            return 1.0, 0, True

        ref = max([phi0, *self.phi_hist]) if self.phi_hist else phi0
        alpha = float(min(1.0, max(alpha_max, 1e-16)))
        flt = self.filter
        it = 0

        while it < self.ls_max_iter and alpha >= self.ls_min_alpha:
            phi_t, f_t, theta_t = merit(alpha)
            if not (np.isfinite(phi_t) and np.isfinite(f_t) and np.isfinite(theta_t)):
                alpha *= self.ls_backtrack
                it += 1
                continue

            if phi_t <= ref + self.ls_armijo_f * alpha * d_phi:
                if flt is None or flt.acceptable(f_t, theta_t):
                    self.phi_hist.append(phi_t)
                    if flt is not None:
                        flt.add_entry(f_t, theta_t, iteration=self._iter)
                    self._iter += 1
                    return alpha, it, False

            alpha *= self.ls_backtrack
            it += 1

        logging.debug(f"Line search failed after {it} iters (alpha={alpha:.2e})")
        return 1.0, it, True
