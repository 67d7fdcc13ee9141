# mu_oracle.py
# Oracles proposing a barrier parameter from the current iterate.
from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

from .ip_state import CalculatedQuantities, IPData


def _get_option(options: Optional[Mapping[str, Any]], name: str, prefix: str, default):
    options = options or {}
    if prefix and (prefix + name) in options:
        return options[prefix + name]
    return options.get(name, default)


class MuOracle:
    """
    Base contract for mu-oracles.

    `initialize` is called once at setup and returns False on failure.
    `calculate_mu` is called once per free-mode (or fixed-mode) update.
    """

    def initialize(
        self, data: IPData, cq: CalculatedQuantities,
        options: Optional[Mapping[str, Any]] = None, prefix: str = "",
    ) -> bool:
        return True

    def calculate_mu(self, data: IPData, cq: CalculatedQuantities) -> float:
        raise NotImplementedError


class AverageComplementarityMuOracle(MuOracle):
    """mu = sigma * (average complementarity)."""

    def __init__(self, sigma: float = 0.1):
        self.sigma = float(sigma)

    def initialize(self, data, cq, options=None, prefix="") -> bool:
        sigma = float(_get_option(options, "avrg_compl_sigma", prefix, self.sigma))
        if not (0.0 < sigma <= 1.0):
            logging.error(f"[Oracle] avrg_compl_sigma={sigma} must be in (0, 1]")
            return False
        self.sigma = sigma
        return True

    def calculate_mu(self, data, cq) -> float:
        mu = self.sigma * cq.avrg_compl()
        logging.debug(f"[Oracle] average-complementarity mu = {mu:.6e}")
        return mu


class LoqoMuOracle(MuOracle):
    """
    LOQO centrality rule (Vanderbei–Shanno):

        xi    = min_i(s_i z_i) / avg(s z)
        sigma = scale * min(0.05 * (1 - xi) / xi, 2)^3
        mu    = sigma * avg(s z)
    """

    def __init__(self, scale: float = 0.1):
        self.scale = float(scale)

    def initialize(self, data, cq, options=None, prefix="") -> bool:
        scale = float(_get_option(options, "loqo_mu_scale", prefix, self.scale))
        if not scale > 0.0:
            logging.error(f"[Oracle] loqo_mu_scale={scale} must be positive")
            return False
        self.scale = scale
        return True

    def calculate_mu(self, data, cq) -> float:
        avrg = cq.avrg_compl()
        if avrg <= 0.0:
            return 0.0
        xi = cq.min_compl() / avrg
        if xi <= 0.0:
            sigma = self.scale * 8.0  # min(.,2)^3 saturates
        else:
            sigma = self.scale * min(0.05 * (1.0 - xi) / xi, 2.0) ** 3
        mu = sigma * avrg
        logging.debug(f"[Oracle] LOQO xi={xi:.3e}, sigma={sigma:.3e}, mu={mu:.6e}")
        return mu
