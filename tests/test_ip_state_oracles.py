import numpy as np
import pytest
import scipy.sparse as sp

from ipmu.blocks.aux import MuMode
from ipmu.ip_state import CalculatedQuantities, IPData, IPIterate
from ipmu.mu_oracle import AverageComplementarityMuOracle, LoqoMuOracle


def _problem_iterate():
    # min f(x) s.t. x0 + x1 = 1 (c), x0 - x1 - s = 0 (d), x >= 0, s <= 2
    x = np.array([0.25, 0.5])
    return IPIterate.from_problem(
        x,
        f=1.5,
        grad_f=[1.0, 2.0],
        c=[x[0] + x[1] - 1.0],
        J_c=sp.csr_matrix([[1.0, 1.0]]),
        d=[x[0] - x[1]],
        J_d=np.array([[1.0, -1.0]]),
        s=[-0.3],
        y_c=[0.5],
        y_d=[-1.0],
        x_L=[0.0, 0.0],
        z_L=[0.2, 0.4],
        d_U=[2.0],
        v_U=[0.1],
    )


def test_from_problem_residuals():
    it = _problem_iterate()
    # grad_f + J_c^T y_c + J_d^T y_d - z_L
    assert np.allclose(it.grad_lag_x, [1.0 + 0.5 - 1.0 - 0.2, 2.0 + 0.5 + 1.0 - 0.4])
    # -y_d + v_U
    assert np.allclose(it.grad_lag_s, [1.0 + 0.1])
    assert np.allclose(it.c, [-0.25])
    assert np.allclose(it.d_minus_s, [0.05])
    assert np.allclose(it.slack_x_L, [0.25, 0.5])
    assert np.allclose(it.slack_s_U, [2.3])
    assert it.slack_x_U.size == 0 and it.slack_s_L.size == 0
    assert (it.n_dual, it.n_pri, it.n_bounds) == (3, 2, 3)


def test_from_problem_rejects_mismatched_slacks():
    with pytest.raises(ValueError):
        IPIterate.from_problem([0.0], f=0.0, grad_f=[0.0], d=[1.0, 2.0], J_d=np.ones((2, 1)), s=[1.0])


def test_iterate_checks_slack_sizes():
    with pytest.raises(ValueError):
        IPIterate(x=[0.0], z_L=[1.0, 2.0], slack_x_L=[1.0])


def test_calculated_quantities():
    data = IPData(curr=_problem_iterate(), mu=0.05)
    cq = CalculatedQuantities(data)
    assert cq.objective() == 1.5
    assert cq.dual_infeasibility("1") == pytest.approx(0.3 + 3.1 + 1.1)
    assert cq.dual_infeasibility("max") == pytest.approx(3.1)
    assert cq.primal_infeasibility("1") == pytest.approx(0.3)
    assert cq.constraint_violation() == pytest.approx(0.3)
    prods = np.array([0.25 * 0.2, 0.5 * 0.4, 2.3 * 0.1])
    assert cq.avrg_compl() == pytest.approx(prods.mean())
    assert cq.min_compl() == pytest.approx(prods.min())
    assert cq.complementarity(0.05, "max") == pytest.approx(np.max(np.abs(prods - 0.05)))
    assert cq.barrier_error() == pytest.approx(3.1)


def test_no_bounds_measures_are_zero():
    data = IPData(curr=IPIterate(x=[1.0]))
    cq = CalculatedQuantities(data)
    assert cq.avrg_compl() == 0.0
    assert cq.complementarity(0.1) == 0.0
    assert cq.primal_infeasibility() == 0.0


def test_unknown_norm():
    cq = CalculatedQuantities(IPData(curr=IPIterate(x=[1.0])))
    with pytest.raises(ValueError):
        cq.dual_infeasibility("2")


def test_data_setters():
    data = IPData(curr=IPIterate(x=[1.0]))
    data.set_mu(1e-3)
    data.set_tau(0.995)
    data.set_free_mu_mode(False)
    data.append_info_string("F")
    data.append_info_string("m")
    assert (data.mu, data.tau, data.info_string) == (1e-3, 0.995, "Fm")
    assert data.mu_mode is MuMode.FIXED


# ------------------ oracles ------------------
def _compl_data(products):
    k = len(products)
    it = IPIterate(x=np.zeros(k), z_L=products, slack_x_L=np.ones(k))
    data = IPData(curr=it)
    return data, CalculatedQuantities(data)


def test_loqo_oracle():
    data, cq = _compl_data([1.0, 0.5])
    oracle = LoqoMuOracle()
    assert oracle.initialize(data, cq)
    # xi = 2/3, sigma = 0.1 * 0.025^3
    assert oracle.calculate_mu(data, cq) == pytest.approx(0.1 * 0.025 ** 3 * 0.75)


def test_loqo_oracle_well_centered_gives_zero():
    data, cq = _compl_data([0.3, 0.3])
    assert LoqoMuOracle().calculate_mu(data, cq) == pytest.approx(0.0)


def test_loqo_oracle_saturates_when_off_center():
    data, cq = _compl_data([1.0, 1e-9])
    mu = LoqoMuOracle(scale=0.1).calculate_mu(data, cq)
    assert mu == pytest.approx(0.8 * cq.avrg_compl())


def test_average_complementarity_oracle():
    data, cq = _compl_data([1.0, 3.0])
    oracle = AverageComplementarityMuOracle()
    assert oracle.initialize(data, cq, {"avrg_compl_sigma": 0.5})
    assert oracle.calculate_mu(data, cq) == pytest.approx(1.0)


def test_oracle_initialize_rejects_bad_options():
    data, cq = _compl_data([1.0])
    assert not AverageComplementarityMuOracle().initialize(data, cq, {"avrg_compl_sigma": 2.0})
    assert not LoqoMuOracle().initialize(data, cq, {"loqo_mu_scale": 0.0})
