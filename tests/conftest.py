import numpy as np
import pytest

from ipmu.blocks.linesearch import LineSearcher
from ipmu.ip_state import CalculatedQuantities, IPData, IPIterate
from ipmu.mu_oracle import MuOracle


class ConstantOracle(MuOracle):
    """Oracle returning a preset value; records how often it was asked."""

    def __init__(self, value: float, init_ok: bool = True):
        self.value = value
        self.init_ok = init_ok
        self.calls = 0

    def initialize(self, data, cq, options=None, prefix=""):
        return self.init_ok

    def calculate_mu(self, data, cq):
        self.calls += 1
        return self.value


def make_iterate(dual=0.0, primal=0.0, compl=1.0, f=0.0, bounds=True):
    """
    One variable, one equality constraint, optionally one lower bound.

    Scaled residual = dual + primal + compl (all dimensions are 1).
    """
    if bounds:
        return IPIterate(
            x=[0.0], y_c=[0.0], z_L=[compl], slack_x_L=[1.0],
            grad_lag_x=[dual], c=[primal], f=f,
        )
    return IPIterate(x=[0.0], y_c=[0.0], grad_lag_x=[dual], c=[primal], f=f)


class Solver:
    """Minimal driver holding data, measures and the update's collaborators."""

    def __init__(self, update, data):
        self.update = update
        self.data = data
        self.cq = CalculatedQuantities(data)

    def step(self, iterate):
        self.data.curr = iterate
        self.data.iter_count += 1
        self.update.update_barrier_parameter(self.data, self.cq)
        return self.data


@pytest.fixture
def line_search():
    return LineSearcher()


@pytest.fixture
def data():
    return IPData(curr=make_iterate(), mu=0.1, tau=0.99, epsilon_tol=1e-8)


@pytest.fixture
def rng():
    return np.random.default_rng(1234)
