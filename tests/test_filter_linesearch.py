import numpy as np
import pytest

from ipmu.blocks.filter import Filter
from ipmu.blocks.linesearch import LineSearcher


# ------------------ filter ------------------
def test_empty_filter_accepts_everything():
    flt = Filter(2)
    assert flt.acceptable(1e10, 1e10)
    assert flt.acceptable(-5.0, 0.0)


def test_filter_dominance():
    flt = Filter(2)
    flt.add_entry(1.0, 1.0, iteration=0)
    assert not flt.acceptable(1.0, 1.0)
    assert not flt.acceptable(2.0, 1.5)
    assert flt.acceptable(0.5, 3.0)
    assert flt.acceptable(3.0, 0.5)


def test_filter_prunes_dominated_entries():
    flt = Filter(2)
    flt.add_entry(2.0, 1.0, iteration=0)
    flt.add_entry(1.0, 2.0, iteration=1)
    assert len(flt) == 2
    flt.add_entry(0.5, 0.5, iteration=2)
    assert len(flt) == 1
    vals, tag = flt.entries[0]
    assert np.allclose(vals, [0.5, 0.5])
    assert tag == 2


def test_filter_keeps_incomparable_entries():
    flt = Filter(2)
    flt.add_entry(2.0, 1.0, iteration=0)
    flt.add_entry(1.0, 2.0, iteration=1)
    flt.add_entry(1.5, 1.5, iteration=2)
    assert len(flt) == 3


def test_filter_rejects_non_finite():
    flt = Filter(2)
    assert not flt.acceptable(np.nan, 0.0)
    flt.add_entry(np.inf, 0.0, iteration=0)
    assert len(flt) == 0


def test_filter_dimension_checked():
    with pytest.raises(ValueError):
        Filter(0)
    with pytest.raises(ValueError):
        Filter(2).acceptable(1.0)


def test_filter_reset():
    flt = Filter(2)
    flt.add_entry(1.0, 1.0, iteration=0)
    flt.reset()
    assert len(flt) == 0
    assert flt.acceptable(1.0, 1.0)


# ------------------ line search ------------------
def _quadratic_merit(alpha):
    # phi(alpha) = (1 - alpha)^2, f = phi, theta = 0
    phi = (1.0 - alpha) ** 2
    return phi, phi, 0.0


def test_search_accepts_full_step_on_descent():
    ls = LineSearcher()
    alpha, it, failed = ls.search(_quadratic_merit, phi0=1.0, d_phi=-2.0)
    assert not failed
    assert alpha == 1.0
    assert it == 0
    assert list(ls.phi_hist) == []  # M = 0 keeps no history


def test_search_rejects_non_descent():
    ls = LineSearcher()
    assert ls.search(_quadratic_merit, phi0=1.0, d_phi=0.0) == (1.0, 0, True)


def test_search_backtracks_past_overshoot():
    ls = LineSearcher(ls_backtrack=0.5)

    def merit(alpha):
        # minimum at alpha = 0.25
        phi = (1.0 - 4.0 * alpha) ** 2
        return phi, phi, 0.0

    alpha, it, failed = ls.search(merit, phi0=1.0, d_phi=-8.0)
    assert not failed
    assert alpha == 0.25
    assert it == 2


def test_nonmonotone_reference_allows_increase():
    ls = LineSearcher(ls_nonmonotone_M=3)
    ls.phi_hist.extend([5.0, 2.0])

    def merit(alpha):
        return 3.0, 3.0, 0.0

    alpha, _, failed = ls.search(merit, phi0=1.0, d_phi=-1.0)
    assert not failed
    assert list(ls.phi_hist) == [5.0, 2.0, 3.0]


def test_reset_clears_history_and_filter():
    flt = Filter(2)
    ls = LineSearcher(ls_nonmonotone_M=4, flt=flt)
    ls.search(_quadratic_merit, phi0=1.0, d_phi=-2.0)
    assert len(ls.phi_hist) == 1
    assert len(flt) == 1

    ls.reset()
    assert len(ls.phi_hist) == 0
    assert len(flt) == 0
    assert ls.n_resets == 1


def test_search_with_filter_rejection_fails():
    flt = Filter(2)
    flt.add_entry(-1.0, -1.0, iteration=0)
    ls = LineSearcher(ls_max_iter=5, flt=flt)
    alpha, it, failed = ls.search(_quadratic_merit, phi0=1.0, d_phi=-2.0)
    assert failed
    assert it == 5
