# aux.py
# Shared configuration and error types for the barrier-parameter update.

from __future__ import annotations

# =========================
# Standard library
# =========================
import logging
from dataclasses import dataclass, fields, replace
from enum import Enum
from typing import Any, Dict, Mapping, Optional

# =========================
# Third-party
# =========================
import numpy as np


# ======================================
# Errors
# ======================================
class OptionOutOfRangeError(ValueError):
    """Raised at setup when an option value lies outside its valid range."""

    def __init__(self, option: str, value: Any, message: str):
        self.option = option
        self.value = value
        super().__init__(f'Option "{option}" = {value!r}: {message}')


class MuOracleInitError(RuntimeError):
    """Raised when a mu-oracle fails to initialize."""


# ======================================
# Enums
# ======================================
class AcceptanceStrategy(Enum):
    """Progress-acceptance mechanisms for the nonmonotone mu update."""

    WINDOW = "window"
    FILTER = "filter"

    @classmethod
    def parse(cls, value) -> "AcceptanceStrategy":
        if isinstance(value, cls):
            return value
        # legacy integer codes
        if isinstance(value, (int, np.integer)) and not isinstance(value, bool):
            codes = {1: cls.WINDOW, 2: cls.FILTER}
            if int(value) in codes:
                return codes[int(value)]
        elif isinstance(value, str):
            key = value.strip().lower()
            for member in cls:
                if member.value == key:
                    return member
        raise OptionOutOfRangeError(
            "adaptive_globalization", value, 'Must be one of "window", "filter" (or 1, 2).'
        )


_TRUE_FLAGS = ("1", "yes", "true")
_FALSE_FLAGS = ("0", "no", "false")

_FLOAT_OPTIONS = (
    "mu_max", "mu_min", "tau_min", "tau_max", "mu_safeguard_exp", "mu_safeguard_factor",
    "nonmonotone_mu_refs_redfact", "kappa_epsilon", "kappa_mu", "theta_mu",
)


def parse_flag(option: str, value) -> bool:
    """Boolean option: bool, 0/1, or yes/no/true/false/0/1 (any case)."""
    if isinstance(value, (bool, np.bool_)):
        return bool(value)
    if isinstance(value, (int, np.integer)) and int(value) in (0, 1):
        return bool(value)
    if isinstance(value, str):
        key = value.strip().lower()
        if key in _TRUE_FLAGS:
            return True
        if key in _FALSE_FLAGS:
            return False
    raise OptionOutOfRangeError(option, value, 'Must be one of "yes", "no", "true", "false", 0, 1.')


class MuMode(Enum):
    FREE = "free"
    FIXED = "fixed"


# ======================================
# Configuration
# ======================================
@dataclass
class MuUpdateConfig:
    """
    Options of the nonmonotone barrier update.

    Notes
    -----
    • ``mu_min=None`` means 0.1 * epsilon_tol, resolved in ``validate``.
    • ``tau_max=None`` means tau_max = tau_min.
    • ``mu_safeguard_exp`` is validated but not used by the safeguard.
    """

    # ---------------- Barrier bounds ----------------
    mu_max: float = 1e10
    mu_min: Optional[float] = None

    # ---------------- Fraction-to-boundary ----------------
    tau_min: float = 0.99
    tau_max: Optional[float] = None

    # ---------------- Safeguard ----------------
    mu_safeguard_exp: float = 0.0
    mu_safeguard_factor: float = 0.0

    # ---------------- Globalization ----------------
    nonmonotone_mu_refs_redfact: float = 0.9999
    nonmonotone_mu_max_refs: int = 4
    mu_never_fix: bool = False
    adaptive_globalization: AcceptanceStrategy = AcceptanceStrategy.WINDOW

    # ---------------- Fixed-mode decrease ----------------
    kappa_epsilon: float = 10.0
    kappa_mu: float = 0.2
    theta_mu: float = 1.5

    def __post_init__(self):
        self.adaptive_globalization = AcceptanceStrategy.parse(self.adaptive_globalization)
        self.mu_never_fix = parse_flag("mu_never_fix", self.mu_never_fix)

    @classmethod
    def from_options(cls, options: Optional[Mapping[str, Any]] = None, prefix: str = "") -> "MuUpdateConfig":
        """Build a config from a flat option dict; ``prefix`` entries take precedence."""
        options = dict(options or {})
        kwargs: Dict[str, Any] = {}
        for f in fields(cls):
            if prefix and (prefix + f.name) in options:
                kwargs[f.name] = options[prefix + f.name]
            elif f.name in options:
                kwargs[f.name] = options[f.name]
        return cls(**kwargs)

    def validate(self, epsilon_tol: float) -> "MuUpdateConfig":
        """
        Check every option range and return a resolved copy (mu_min, tau_max
        filled in). Raises OptionOutOfRangeError on the first violation.
        """
        numeric: Dict[str, float] = {}
        for name in _FLOAT_OPTIONS:
            value = getattr(self, name)
            if value is None:
                continue
            try:
                numeric[name] = float(value)
            except (TypeError, ValueError):
                raise OptionOutOfRangeError(name, value, "This value must be a number.") from None
        return replace(self, **numeric)._check_ranges(float(epsilon_tol))

    def _check_ranges(self, epsilon_tol: float) -> "MuUpdateConfig":
        if not self.mu_max > 0.0:
            raise OptionOutOfRangeError("mu_max", self.mu_max, "This value must be larger than 0.")

        mu_min = 0.1 * float(epsilon_tol) if self.mu_min is None else self.mu_min
        if not (0.0 < mu_min < self.mu_max):
            raise OptionOutOfRangeError(
                "mu_min", mu_min, "This value must be larger than 0 and less than mu_max."
            )

        if not (0.0 < self.tau_min < 1.0):
            raise OptionOutOfRangeError("tau_min", self.tau_min, "This value must be between 0 and 1.")

        tau_max = self.tau_min if self.tau_max is None else self.tau_max
        if not (self.tau_min <= tau_max <= 1.0):
            raise OptionOutOfRangeError(
                "tau_max", tau_max, "This value must be at least tau_min and at most 1."
            )

        if not self.mu_safeguard_exp >= 0.0:
            raise OptionOutOfRangeError(
                "mu_safeguard_exp", self.mu_safeguard_exp, "This value must be non-negative."
            )
        if not self.mu_safeguard_factor >= 0.0:
            raise OptionOutOfRangeError(
                "mu_safeguard_factor", self.mu_safeguard_factor, "This value must be non-negative."
            )

        if not (0.0 < self.nonmonotone_mu_refs_redfact < 1.0):
            raise OptionOutOfRangeError(
                "nonmonotone_mu_refs_redfact",
                self.nonmonotone_mu_refs_redfact,
                "This value must be between 0 and 1.",
            )

        refs = self.nonmonotone_mu_max_refs
        if isinstance(refs, bool) or not isinstance(refs, (int, np.integer)) or refs < 0:
            raise OptionOutOfRangeError(
                "nonmonotone_mu_max_refs", refs, "This value must be a non-negative integer."
            )

        if not self.kappa_epsilon > 0.0:
            raise OptionOutOfRangeError("kappa_epsilon", self.kappa_epsilon, "This value must be larger than 0.")
        if not (0.0 < self.kappa_mu < 1.0):
            raise OptionOutOfRangeError("kappa_mu", self.kappa_mu, "This value must be between 0 and 1.")
        if not (1.0 < self.theta_mu < 2.0):
            raise OptionOutOfRangeError("theta_mu", self.theta_mu, "This value must be between 1 and 2.")

        resolved = replace(
            self,
            mu_min=float(mu_min),
            tau_max=float(tau_max),
            nonmonotone_mu_max_refs=int(refs),
        )
        logging.debug(
            f"[MuUpdate] options: mu in [{resolved.mu_min:.3e}, {resolved.mu_max:.3e}], "
            f"tau in [{resolved.tau_min:.4f}, {resolved.tau_max:.4f}], "
            f"strategy={resolved.adaptive_globalization.value}"
        )
        return resolved
