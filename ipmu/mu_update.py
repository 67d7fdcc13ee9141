# mu_update.py
# Nonmonotone (adaptive) barrier parameter update for the interior-point method.
# - Free mode: mu recomputed every iteration by an oracle, safeguarded
# - Fixed mode: mu held (or reduced monotonically once the barrier problem is
#   solved well enough) until sufficient progress resumes
# - Progress measured against a sliding window of scaled KKT residuals or a
#   (f, theta) dominance filter
from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from typing import Any, Mapping, Optional

import numpy as np

from .blocks.aux import (
    AcceptanceStrategy,
    MuOracleInitError,
    MuUpdateConfig,
)
from .blocks.filter import Filter
from .blocks.linesearch import LineSearcher
from .ip_state import CalculatedQuantities, IPData
from .mu_oracle import MuOracle

FILTER_MARGIN = 1e-5
FILTER_MAX_REF = 1e20


def compute_tau(mu: float, tau_min: float, tau_max: float) -> float:
    """Fraction-to-boundary parameter: clip(1 - mu, [tau_min, tau_max])."""
    return max(tau_min, min(1.0 - mu, tau_max))


# ------------------ progress window ------------------
class ProgressWindow:
    """
    Bounded FIFO of reference residual values (oldest evicted first).

    A new residual is acceptable if the window is not yet full, or if it is
    at most `red_fact` times *some* stored reference.
    """

    def __init__(self, capacity: int):
        if capacity < 0:
            raise ValueError(f"capacity must be non-negative, got {capacity}")
        self.capacity = int(capacity)
        self._vals: deque = deque(maxlen=self.capacity)

    def __len__(self) -> int:
        return len(self._vals)

    def __iter__(self):
        return iter(self._vals)

    @property
    def is_full(self) -> bool:
        return len(self._vals) >= self.capacity

    def push(self, value: float) -> None:
        self._vals.append(float(value))

    def accepts(self, value: float, red_fact: float) -> bool:
        if not self.is_full:
            return True
        return any(value <= red_fact * ref for ref in self._vals)

    def min_ref(self) -> float:
        return min(self._vals)

    def max_ref(self) -> float:
        return max(self._vals)

    def clear(self) -> None:
        self._vals.clear()


# ------------------ scaled measures ------------------
@dataclass
class ScaledInfeasibility:
    dual: float
    primal: float
    compl: float = 0.0

    @property
    def total(self) -> float:
        return self.primal + self.dual + self.compl


def scaled_infeasibility(data: IPData, cq: CalculatedQuantities, with_compl: bool = True) -> ScaledInfeasibility:
    """Average (1-norm / dimension) dual, primal and complementarity residuals."""
    it = data.curr
    n_dual, n_pri, n_comp = it.n_dual, it.n_pri, it.n_bounds
    dual = cq.dual_infeasibility("1") / n_dual if n_dual > 0 else 0.0
    primal = cq.primal_infeasibility("1") / n_pri if n_pri > 0 else 0.0
    compl = 0.0
    if with_compl and n_comp > 0:
        compl = cq.complementarity(0.0, "1") / n_comp
    return ScaledInfeasibility(dual=dual, primal=primal, compl=compl)


# ------------------ safeguard ------------------
class SafeguardCalculator:
    """
    Lower bound on mu relative to the infeasibility at the first evaluation.

    Baselines max(1, dual_inf_0) and max(1, primal_inf_0) are frozen the first
    time the bound is requested.
    """

    def __init__(self, factor: float):
        self.factor = float(factor)
        self.init_dual_inf: Optional[float] = None
        self.init_primal_inf: Optional[float] = None

    @property
    def baselines_captured(self) -> bool:
        return self.init_dual_inf is not None

    def lower_bound(self, data: IPData, cq: CalculatedQuantities, window: Optional[ProgressWindow] = None) -> float:
        inf = scaled_infeasibility(data, cq, with_compl=False)
        if not self.baselines_captured:
            self.init_dual_inf = max(1.0, inf.dual)
            self.init_primal_inf = max(1.0, inf.primal)
            logging.debug(
                f"[MuUpdate] safeguard baselines: dual={self.init_dual_inf:.6e}, "
                f"primal={self.init_primal_inf:.6e}"
            )
        bound = max(
            self.factor * (inf.dual / self.init_dual_inf),
            self.factor * (inf.primal / self.init_primal_inf),
        )
        if window is not None and len(window) > 0:
            bound = min(bound, window.min_ref())
        return bound


# ------------------ controller ------------------
class NonmonotoneMuUpdate:
    """
    Adaptive barrier update switching between free and fixed mu modes.

    Collaborators are bound at construction; options are bound by
    `initialize`. `update_barrier_parameter` is then called once per outer
    iteration with the current solver data.
    """

    def __init__(
        self,
        line_search: LineSearcher,
        free_mu_oracle: MuOracle,
        fix_mu_oracle: Optional[MuOracle] = None,
    ):
        if line_search is None:
            raise ValueError("line_search is required")
        if free_mu_oracle is None:
            raise ValueError("free_mu_oracle is required")
        self.linesearch = line_search
        self.free_mu_oracle = free_mu_oracle
        self.fix_mu_oracle = fix_mu_oracle

        self.cfg: Optional[MuUpdateConfig] = None
        self.window: Optional[ProgressWindow] = None
        self.filter: Optional[Filter] = None
        self.safeguard: Optional[SafeguardCalculator] = None
        self.no_bounds: Optional[bool] = None  # None until the first update

    # ---------- setup ----------
    def initialize(
        self,
        data: IPData,
        cq: CalculatedQuantities,
        options: Optional[Mapping[str, Any]] = None,
        prefix: str = "",
        config: Optional[MuUpdateConfig] = None,
    ) -> None:
        """
        Validate options and initialize the oracles. Raises
        OptionOutOfRangeError / MuOracleInitError; on failure no state is kept.
        """
        cfg = config if config is not None else MuUpdateConfig.from_options(options, prefix)
        cfg = cfg.validate(data.epsilon_tol)

        if not self.free_mu_oracle.initialize(data, cq, options, prefix):
            raise MuOracleInitError("free mu oracle failed to initialize")
        if self.fix_mu_oracle is not None:
            if not self.fix_mu_oracle.initialize(data, cq, options, prefix):
                raise MuOracleInitError("fixed mu oracle failed to initialize")

        self.cfg = cfg
        self.window = ProgressWindow(cfg.nonmonotone_mu_max_refs)
        self.filter = Filter(2)
        self.safeguard = SafeguardCalculator(cfg.mu_safeguard_factor)
        self.no_bounds = None
        data.set_free_mu_mode(True)

    # ---------- main entry ----------
    def update_barrier_parameter(self, data: IPData, cq: CalculatedQuantities) -> None:
        if self.cfg is None:
            raise RuntimeError("NonmonotoneMuUpdate.initialize() must be called first")
        cfg = self.cfg

        if self.no_bounds is None:
            self._check_no_bounds(data)
        if self.no_bounds:
            return

        if not data.free_mu_mode:
            # fixed mode: go back to free mode if the iterate is good enough
            if self.check_sufficient_progress(data, cq):
                logging.debug("[MuUpdate] Switching back to free mu mode.")
                data.set_free_mu_mode(True)
                self.remember_current_point_as_accepted(data, cq)
            else:
                logging.debug("[MuUpdate] Remaining in fixed mu mode.")
                mu = data.mu
                if cq.barrier_error() <= cfg.kappa_epsilon * mu:
                    # barrier problem solved well enough: monotone decrease
                    new_mu = min(cfg.kappa_mu * mu, mu ** cfg.theta_mu)
                    new_mu = max(new_mu, data.epsilon_tol / 10.0, cfg.mu_min)
                    new_mu = min(new_mu, cfg.mu_max)
                    new_tau = self.compute_tau(new_mu)
                    data.set_mu(new_mu)
                    data.set_tau(new_tau)
                    logging.debug(
                        f"[MuUpdate] Reducing mu to {new_mu:.6e} in fixed mu mode. Tau becomes {new_tau:.6e}"
                    )
                    self.linesearch.reset()
        else:
            if self.check_sufficient_progress(data, cq):
                logging.debug("[MuUpdate] Staying in free mu mode.")
                self.remember_current_point_as_accepted(data, cq)
            else:
                data.set_free_mu_mode(False)
                mu = self.new_fixed_mu(data, cq)
                tau = self.compute_tau(mu)
                data.set_mu(mu)
                data.set_tau(tau)
                logging.debug(f"[MuUpdate] Switching to fixed mu mode with mu = {mu:.6e} and tau = {tau:.6e}.")
                self.linesearch.reset()

        if data.free_mu_mode:
            mu = self._oracle_mu(self.free_mu_oracle, data, cq)
            mu = max(mu, cfg.mu_min)
            mu_lower_safe = self.lower_mu_safeguard(data, cq)
            if mu < mu_lower_safe:
                logging.debug(
                    f"[MuUpdate] mu = {mu:.6e} smaller than safeguard = {mu_lower_safe:.6e}. Increasing mu."
                )
                mu = mu_lower_safe
                data.append_info_string("m")
            logging.debug(f"[MuUpdate] Barrier parameter mu computed by oracle is {mu:.6e}")

            mu = min(mu, cfg.mu_max)
            logging.debug(f"[MuUpdate] Barrier parameter mu after safeguards is {mu:.6e}")

            tau = self.compute_tau(mu)
            logging.debug(f"[MuUpdate] Fraction-to-the-boundary parameter tau is {tau:.6e}")

            data.set_mu(mu)
            data.set_tau(tau)
            self.linesearch.reset()
        else:
            data.append_info_string("F")

    def _check_no_bounds(self, data: IPData) -> None:
        self.no_bounds = data.curr.n_bounds == 0
        if self.no_bounds:
            data.set_mu(self.cfg.mu_min)
            data.set_tau(self.cfg.tau_min)
            logging.info(
                f"[MuUpdate] problem has no bounds; mu fixed at {self.cfg.mu_min:.3e}, "
                f"tau at {self.cfg.tau_min:.4f}"
            )

    def _oracle_mu(self, oracle: MuOracle, data: IPData, cq: CalculatedQuantities) -> float:
        mu = float(oracle.calculate_mu(data, cq))
        if not np.isfinite(mu):
            logging.warning(f"[MuUpdate] oracle returned non-finite mu={mu}; using mu_min")
            return self.cfg.mu_min
        if mu < 0.0:
            logging.warning(f"[MuUpdate] oracle returned negative mu={mu:.6e}; using mu_min")
            return self.cfg.mu_min
        return mu

    # ---------- progress check ----------
    def check_sufficient_progress(self, data: IPData, cq: CalculatedQuantities) -> bool:
        cfg = self.cfg
        if cfg.mu_never_fix:
            return True

        strategy = cfg.adaptive_globalization
        if strategy is AcceptanceStrategy.WINDOW:
            if not self.window.is_full:
                return True
            return self.window.accepts(self.curr_norm_pd_system(data, cq), cfg.nonmonotone_mu_refs_redfact)
        if strategy is AcceptanceStrategy.FILTER:
            return self.filter.acceptable(cq.objective(), cq.constraint_violation())
        raise AssertionError(f"unhandled acceptance strategy {strategy!r}")

    def remember_current_point_as_accepted(self, data: IPData, cq: CalculatedQuantities) -> None:
        strategy = self.cfg.adaptive_globalization
        if strategy is AcceptanceStrategy.WINDOW:
            self.window.push(self.curr_norm_pd_system(data, cq))
            for k, ref in enumerate(self.window, start=1):
                logging.debug(f"[MuUpdate] pd system reference[{k:2d}] = {ref:.6e}")
        elif strategy is AcceptanceStrategy.FILTER:
            theta = cq.constraint_violation()
            self.filter.add_entry(
                cq.objective() - FILTER_MARGIN * theta,
                theta - FILTER_MARGIN * theta,
                iteration=data.iter_count,
            )
        else:
            raise AssertionError(f"unhandled acceptance strategy {strategy!r}")

    # ---------- mu / tau ----------
    def compute_tau(self, mu: float) -> float:
        return compute_tau(mu, self.cfg.tau_min, self.cfg.tau_max)

    def new_fixed_mu(self, data: IPData, cq: CalculatedQuantities) -> float:
        cfg = self.cfg
        if cfg.adaptive_globalization is AcceptanceStrategy.WINDOW and len(self.window) > 0:
            max_ref = self.window.max_ref()
        else:
            max_ref = FILTER_MAX_REF

        if self.fix_mu_oracle is not None:
            new_mu = self._oracle_mu(self.fix_mu_oracle, data, cq)
        else:
            new_mu = cq.avrg_compl()

        new_mu = max(new_mu, self.lower_mu_safeguard(data, cq))
        new_mu = min(new_mu, 0.1 * max_ref)

        new_mu = max(new_mu, cfg.mu_min)
        new_mu = min(new_mu, cfg.mu_max)
        return new_mu

    def lower_mu_safeguard(self, data: IPData, cq: CalculatedQuantities) -> float:
        window = self.window if self.cfg.adaptive_globalization is AcceptanceStrategy.WINDOW else None
        return self.safeguard.lower_bound(data, cq, window)

    def curr_norm_pd_system(self, data: IPData, cq: CalculatedQuantities) -> float:
        inf = scaled_infeasibility(data, cq)
        logging.debug(
            "[MuUpdate] In barrier update check:\n"
            f"  average primal infeasibility: {inf.primal:15.6e}\n"
            f"    average dual infeasibility: {inf.dual:15.6e}\n"
            f"       average complementarity: {inf.compl:15.6e}\n"
            f"   scaled norm of pd equations: {inf.total:15.6e}"
        )
        return inf.total
