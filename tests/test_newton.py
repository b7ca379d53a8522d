#
# Copyright 2025 Christoph Huber
#
# ### MIT License
#
# Permission is hereby granted, free of charge, to any person obtaining a copy
# of this software and associated documentation files (the "Software"), to deal
# in the Software without restriction, including without limitation the rights
# to use, copy, modify, merge, publish, distribute, sublicense, and/or sell
# copies of the Software, and to permit persons to whom the Software is
# furnished to do so, subject to the following conditions:
#
# The above copyright notice and this permission notice shall be included in all
# copies or substantial portions of the Software.
#
# THE SOFTWARE IS PROVIDED "AS IS", WITHOUT WARRANTY OF ANY KIND, EXPRESS OR
# IMPLIED, INCLUDING BUT NOT LIMITED TO THE WARRANTIES OF MERCHANTABILITY,
# FITNESS FOR A PARTICULAR PURPOSE AND NONINFRINGEMENT. IN NO EVENT SHALL THE
# AUTHORS OR COPYRIGHT HOLDERS BE LIABLE FOR ANY CLAIM, DAMAGES OR OTHER
# LIABILITY, WHETHER IN AN ACTION OF CONTRACT, TORT OR OTHERWISE, ARISING FROM,
# OUT OF OR IN CONNECTION WITH THE SOFTWARE OR THE USE OR OTHER DEALINGS IN THE
# SOFTWARE.
#
import os
import pytest
import numpy as np
import pandas as pd
from mpi4py import MPI

from HaNoSim.io import history_to_csv
from HaNoSim.linalg import ScipySystem
from HaNoSim.newton import NewtonSolver
from HaNoSim.system import SimulationSystem

from HaNoSim.demo import B, C, H, DIRICHLET

pytestmark = pytest.mark.skipif(MPI.COMM_WORLD.size > 1,
                                reason="Serial SciPy backend")

SOLVER_CFG = {'max_iter': 60, 'R_norm_tol': 1e-10, 'backend': 'scipy', 'linear_solver': 'direct'}
DAMPING_CFG = {'potential_threshold': 1e-6, 'density_floor': 1e-10,
               'bank_rose_delta': 0.1, 'bank_rose_max_trials': 20, 'bounds': {}, 'T_external': 300.}


@pytest.mark.parametrize("damping", ['none', 'potential', 'bankrose'])
@pytest.mark.parametrize("linear_solver", ['direct', 'iterative'])
def test_constraint_holds_after_solve(region, bulk, damping, linear_solver):
    system = SimulationSystem([region])
    linear = ScipySystem(8, solver_type=linear_solver)
    cfg = dict(SOLVER_CFG, damping=damping, R_norm_tol=1e-9)

    result = NewtonSolver(system, bulk, linear, cfg, DAMPING_CFG).solve(np.zeros(8))
    x = result.x

    assert result.converged
    assert abs(x[H] - 0.5 * (x[B] + x[C])) < 1e-9
    np.testing.assert_allclose(x[[B, C, H]], [0.6, 0.6, 0.6], atol=1e-9)
    for node, value in DIRICHLET.items():
        assert x[node] == pytest.approx(value, abs=1e-9)


def test_linear_problem_converges_in_one_step(region, bulk):
    system = SimulationSystem([region])
    cfg = dict(SOLVER_CFG, damping='none')

    result = NewtonSolver(system, bulk, ScipySystem(8), cfg, DAMPING_CFG).solve(np.zeros(8))

    assert result.converged
    assert result.iterations == 1
    assert [h['iteration'] for h in result.history] == [0, 1]


def test_potential_damping_limits_first_step(region, bulk):
    system = SimulationSystem([region])
    cfg = dict(SOLVER_CFG, damping='potential')

    result = NewtonSolver(system, bulk, ScipySystem(8), cfg, DAMPING_CFG).solve(np.zeros(8))

    first = result.history[0]
    assert first['changed_y']
    assert result.iterations > 1
    assert result.converged


def test_not_converged_is_reported(region, bulk):
    system = SimulationSystem([region])
    cfg = dict(SOLVER_CFG, damping='potential', max_iter=2)

    result = NewtonSolver(system, bulk, ScipySystem(8), cfg, DAMPING_CFG).solve(np.zeros(8))

    assert not result.converged
    assert result.iterations == 2


def test_ghost_callback_and_history_export(tmp_path, region, bulk):
    calls = []

    def communicate_ghosts(x):
        calls.append(x.copy())

    system = SimulationSystem([region])
    cfg = dict(SOLVER_CFG, damping='none')
    result = NewtonSolver(system, bulk, ScipySystem(8), cfg, DAMPING_CFG,
                          communicate_ghosts=communicate_ghosts).solve(np.zeros(8))

    assert len(calls) == result.iterations

    fname = os.path.join(tmp_path, 'history.csv')
    history_to_csv(fname, result.history)
    df = pd.read_csv(fname)

    assert list(df.columns) == ['iteration', 'residual_norm', 'changed_y', 'changed_w', 'linear_converged']
    assert len(df) == len(result.history)
