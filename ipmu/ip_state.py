# ip_state.py
# Iterate container, per-run solver data, and derived measures for the
# barrier update. Vectors follow the slack formulation
#   min f(x)  s.t.  c(x) = 0,  d(x) - s = 0,  x_L <= x <= x_U,  d_L <= s <= d_U
# with multipliers y_c, y_d (equalities) and z_L, z_U, v_L, v_U (bounds).
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

import numpy as np
import scipy.sparse as sp

from .blocks.aux import MuMode

S_MAX = 100.0


# ------------------ tiny numerics ------------------
def _vec(v) -> np.ndarray:
    if v is None:
        return np.zeros(0, float)
    return np.asarray(v, float).ravel()


def _cat(*parts) -> np.ndarray:
    parts = [_vec(p) for p in parts]
    return np.concatenate(parts) if parts else np.zeros(0, float)


def _norm(v: np.ndarray, norm: str) -> float:
    if v.size == 0:
        return 0.0
    if norm == "1":
        return float(np.add.reduce(np.abs(v)))
    if norm == "max":
        return float(np.max(np.abs(v)))
    raise ValueError(f"Unknown norm {norm!r}; expected '1' or 'max'")


def _expansion(n: int, idx: np.ndarray) -> sp.csr_matrix:
    """n x len(idx) selection matrix P with P[idx[j], j] = 1."""
    k = idx.size
    return sp.csr_matrix((np.ones(k), (idx, np.arange(k))), shape=(n, k))


def _bound_indices(bounds, n: int, default: float) -> tuple:
    b = np.full(n, default) if bounds is None else np.asarray(bounds, float).ravel()
    return b, np.flatnonzero(np.isfinite(b))


# ------------------ iterate ------------------
@dataclass
class IPIterate:
    """Primal-dual iterate together with the residuals evaluated at it."""

    x: np.ndarray
    s: np.ndarray = field(default_factory=lambda: np.zeros(0))
    y_c: np.ndarray = field(default_factory=lambda: np.zeros(0))
    y_d: np.ndarray = field(default_factory=lambda: np.zeros(0))
    z_L: np.ndarray = field(default_factory=lambda: np.zeros(0))
    z_U: np.ndarray = field(default_factory=lambda: np.zeros(0))
    v_L: np.ndarray = field(default_factory=lambda: np.zeros(0))
    v_U: np.ndarray = field(default_factory=lambda: np.zeros(0))
    # residuals
    f: float = 0.0
    grad_lag_x: Optional[np.ndarray] = None
    grad_lag_s: Optional[np.ndarray] = None
    c: Optional[np.ndarray] = None
    d_minus_s: Optional[np.ndarray] = None
    slack_x_L: Optional[np.ndarray] = None
    slack_x_U: Optional[np.ndarray] = None
    slack_s_L: Optional[np.ndarray] = None
    slack_s_U: Optional[np.ndarray] = None

    def __post_init__(self):
        for name in ("x", "s", "y_c", "y_d", "z_L", "z_U", "v_L", "v_U"):
            setattr(self, name, _vec(getattr(self, name)))
        self.f = float(self.f)
        self.grad_lag_x = np.zeros(self.x.size) if self.grad_lag_x is None else _vec(self.grad_lag_x)
        self.grad_lag_s = np.zeros(self.s.size) if self.grad_lag_s is None else _vec(self.grad_lag_s)
        self.c = np.zeros(self.y_c.size) if self.c is None else _vec(self.c)
        self.d_minus_s = np.zeros(self.y_d.size) if self.d_minus_s is None else _vec(self.d_minus_s)
        self.slack_x_L = np.ones(self.z_L.size) if self.slack_x_L is None else _vec(self.slack_x_L)
        self.slack_x_U = np.ones(self.z_U.size) if self.slack_x_U is None else _vec(self.slack_x_U)
        self.slack_s_L = np.ones(self.v_L.size) if self.slack_s_L is None else _vec(self.slack_s_L)
        self.slack_s_U = np.ones(self.v_U.size) if self.slack_s_U is None else _vec(self.slack_s_U)
        pairs = (
            ("slack_x_L", "z_L"), ("slack_x_U", "z_U"),
            ("slack_s_L", "v_L"), ("slack_s_U", "v_U"),
        )
        for sl, mult in pairs:
            if getattr(self, sl).size != getattr(self, mult).size:
                raise ValueError(f"{sl} and {mult} must have the same size")

    # ---------- dimensions ----------
    @property
    def n_dual(self) -> int:
        return self.x.size + self.s.size

    @property
    def n_pri(self) -> int:
        return self.y_c.size + self.y_d.size

    @property
    def n_bounds(self) -> int:
        return self.z_L.size + self.z_U.size + self.v_L.size + self.v_U.size

    @staticmethod
    def from_problem(
        x, *, f: float, grad_f, s=None,
        c=None, J_c=None, d=None, J_d=None,
        y_c=None, y_d=None,
        x_L=None, x_U=None, d_L=None, d_U=None,
        z_L=None, z_U=None, v_L=None, v_U=None,
    ) -> "IPIterate":
        """
        Assemble an iterate from problem evaluations.

        Bounds are full-length arrays with ±inf where absent; bound multipliers
        are given only for the finite entries (in index order). Jacobians may be
        dense or scipy.sparse.
        """
        x = _vec(x)
        n = x.size
        c, d, s = _vec(c), _vec(d), _vec(s)
        if s.size != d.size:
            raise ValueError(f"slack size {s.size} does not match d size {d.size}")
        y_c = np.zeros(c.size) if y_c is None else _vec(y_c)
        y_d = np.zeros(d.size) if y_d is None else _vec(y_d)

        xL, iL = _bound_indices(x_L, n, -np.inf)
        xU, iU = _bound_indices(x_U, n, +np.inf)
        dL, jL = _bound_indices(d_L, d.size, -np.inf)
        dU, jU = _bound_indices(d_U, d.size, +np.inf)
        z_L = np.zeros(iL.size) if z_L is None else _vec(z_L)
        z_U = np.zeros(iU.size) if z_U is None else _vec(z_U)
        v_L = np.zeros(jL.size) if v_L is None else _vec(v_L)
        v_U = np.zeros(jU.size) if v_U is None else _vec(v_U)

        # ∇_x L = ∇f + J_c^T y_c + J_d^T y_d - P_L z_L + P_U z_U
        r_x = _vec(grad_f).copy()
        if c.size:
            r_x += sp.csr_matrix(J_c).T @ y_c
        if d.size:
            r_x += sp.csr_matrix(J_d).T @ y_d
        r_x += -(_expansion(n, iL) @ z_L) + _expansion(n, iU) @ z_U

        # ∇_s L = -y_d - P_dL v_L + P_dU v_U
        r_s = -y_d - _expansion(d.size, jL) @ v_L + _expansion(d.size, jU) @ v_U

        return IPIterate(
            x=x, s=s, y_c=y_c, y_d=y_d, z_L=z_L, z_U=z_U, v_L=v_L, v_U=v_U,
            f=f, grad_lag_x=r_x, grad_lag_s=r_s, c=c, d_minus_s=d - s,
            slack_x_L=x[iL] - xL[iL], slack_x_U=xU[iU] - x[iU],
            slack_s_L=s[jL] - dL[jL], slack_s_U=dU[jU] - s[jU],
        )


# ------------------ solver data ------------------
@dataclass
class IPData:
    """Shared per-run solver data the barrier update reads and writes."""

    curr: IPIterate
    mu: float = 0.1
    tau: float = 0.99
    epsilon_tol: float = 1e-8
    iter_count: int = 0
    free_mu_mode: bool = True
    info_string: str = ""

    @property
    def mu_mode(self) -> MuMode:
        return MuMode.FREE if self.free_mu_mode else MuMode.FIXED

    def set_mu(self, mu: float) -> None:
        self.mu = float(mu)

    def set_tau(self, tau: float) -> None:
        self.tau = float(tau)

    def set_free_mu_mode(self, free: bool) -> None:
        self.free_mu_mode = bool(free)

    def append_info_string(self, tag: str) -> None:
        self.info_string += tag


class CalculatedQuantities:
    """Measures derived from the current iterate of an `IPData`."""

    def __init__(self, data: IPData):
        self.data = data

    @property
    def it(self) -> IPIterate:
        return self.data.curr

    def objective(self) -> float:
        return self.it.f

    def dual_infeasibility(self, norm: str = "1") -> float:
        return _norm(_cat(self.it.grad_lag_x, self.it.grad_lag_s), norm)

    def primal_infeasibility(self, norm: str = "1") -> float:
        return _norm(_cat(self.it.c, self.it.d_minus_s), norm)

    def constraint_violation(self) -> float:
        return self.primal_infeasibility("1")

    def _compl_products(self) -> np.ndarray:
        it = self.it
        return _cat(
            it.slack_x_L * it.z_L, it.slack_x_U * it.z_U,
            it.slack_s_L * it.v_L, it.slack_s_U * it.v_U,
        )

    def complementarity(self, mu: float = 0.0, norm: str = "1") -> float:
        return _norm(self._compl_products() - mu, norm)

    def avrg_compl(self) -> float:
        prods = self._compl_products()
        if prods.size == 0:
            return 0.0
        return float(np.mean(prods))

    def min_compl(self) -> float:
        prods = self._compl_products()
        if prods.size == 0:
            return 0.0
        return float(np.min(prods))

    def barrier_error(self) -> float:
        """Scaled max-norm optimality error of the barrier problem at the current mu."""
        it = self.it
        mults = _cat(it.y_c, it.y_d, it.z_L, it.z_U, it.v_L, it.v_U)
        bound_mults = _cat(it.z_L, it.z_U, it.v_L, it.v_U)
        s_d = max(S_MAX, float(np.sum(np.abs(mults))) / max(1, mults.size)) / S_MAX
        s_c = max(S_MAX, float(np.sum(np.abs(bound_mults))) / max(1, bound_mults.size)) / S_MAX
        return float(max(
            self.dual_infeasibility("max") / s_d,
            self.primal_infeasibility("max"),
            self.complementarity(self.data.mu, "max") / s_c,
        ))
