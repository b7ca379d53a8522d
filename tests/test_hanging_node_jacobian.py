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
import pytest
import numpy as np

from HaNoSim.assembly import InsertMode
from HaNoSim.linalg import ScipySystem
from HaNoSim.mesh import Elem, ElemType, HangingNodeMap, renumber_nodes
from HaNoSim.region import RegionType, SimulationRegion, Variable
from HaNoSim.system import SimulationSystem


NB_DOFS = 2          # potential, lattice temperature
FACE_H = 20          # on face 5 = (4, 5, 6, 7)
EDGE_H = 21          # on edge 0 = (0, 1)
NODE_IDS = list(range(8)) + [FACE_H, EDGE_H]
N = NB_DOFS * len(NODE_IDS)


# =============================================================================
# Helper Functions
# =============================================================================

def row(node, var=0):
    return NB_DOFS * NODE_IDS.index(node) + var


def hex_system():
    hex8 = Elem(0, ElemType.HEX8, tuple(range(8)))
    hmap = HangingNodeMap.from_mapping(on_side={FACE_H: (hex8, 5)},
                                       on_edge={EDGE_H: (hex8, 0)})
    region = SimulationRegion('box', RegionType.METAL, renumber_nodes(NODE_IDS, NB_DOFS),
                              hmap, enable_Tl=True)
    assert region.variables == (Variable.POTENTIAL, Variable.TEMPERATURE)
    return SimulationSystem([region])


def nonlinear_bulk(seed=0):
    A = np.random.default_rng(seed).normal(size=(N, N))

    def residual(x):
        return A @ x + 0.1 * x**3

    def jacobian(x):
        return A + np.diag(0.3 * x**2)

    return residual, jacobian


def initial_guess(face_potential, seed=1):
    x = np.random.default_rng(seed).normal(size=N)
    for node, v in zip((4, 5, 6, 7), face_potential):
        x[row(node)] = v
    return x


def flushed_residual(system, residual, x):
    linear = ScipySystem(N)
    linear.load(np.zeros((N, N)), residual(x))
    mode = system.hanging_node_function(x, linear, InsertMode.ADD_VALUES)
    assert mode is InsertMode.INSERT_VALUES
    return linear.residual.copy()


def flushed_jacobian(system, jacobian, x):
    linear = ScipySystem(N)
    linear.load(jacobian(x), np.zeros(N))
    mode = system.hanging_node_jacobian(x, linear, InsertMode.ADD_VALUES)
    assert mode is InsertMode.INSERT_VALUES
    return linear.matrix.toarray()


def central_differences(func, x, eps=1e-6):
    cols = []
    for k in range(x.size):
        dx = np.zeros_like(x)
        dx[k] = eps
        cols.append((func(x + dx) - func(x - dx)) / (2. * eps))
    return np.column_stack(cols)


# =============================================================================
# Tests
# =============================================================================

@pytest.mark.parametrize("face_potential", [[0., 1., 0.1, 2.], [0., 1., 2., 1.1]])
def test_flushed_jacobian_matches_finite_differences(face_potential):
    system = hex_system()
    residual, jacobian = nonlinear_bulk()
    x = initial_guess(face_potential)

    J = flushed_jacobian(system, jacobian, x)
    J_fd = central_differences(lambda xx: flushed_residual(system, residual, xx), x)

    np.testing.assert_allclose(J, J_fd, rtol=1e-6, atol=1e-6)


# corners 4..7 cyclic on face 5: the diagonal with the smaller jump is used
@pytest.mark.parametrize("face_potential,face_supports", [([0., 1., 0.1, 2.], (4, 6)),
                                                          ([0., 1., 2., 1.1], (5, 7))])
def test_flushed_constraint_rows(face_potential, face_supports):
    system = hex_system()
    residual, jacobian = nonlinear_bulk()
    x = initial_guess(face_potential)

    J = flushed_jacobian(system, jacobian, x)
    F = flushed_residual(system, residual, x)

    for var in range(NB_DOFS):
        for hanging, (p1, p2) in ((FACE_H, face_supports), (EDGE_H, (0, 1))):
            r = row(hanging, var)
            expected = np.zeros(N)
            expected[r] = 1.
            expected[row(p1, var)] = -0.5
            expected[row(p2, var)] = -0.5
            np.testing.assert_array_equal(J[r], expected)
            assert F[r] == pytest.approx(x[r] - 0.5 * (x[row(p1, var)] + x[row(p2, var)]))


def test_flushed_transfer_weights():
    system = hex_system()
    residual, jacobian = nonlinear_bulk()
    x = initial_guess([0., 1., 0.1, 2.])

    R = residual(x)
    J_bulk = jacobian(x)
    F = flushed_residual(system, residual, x)
    J = flushed_jacobian(system, jacobian, x)

    for var in range(NB_DOFS):
        face_row = row(FACE_H, var)
        edge_row = row(EDGE_H, var)

        # four face corners receive a quarter each
        for corner in (4, 5, 6, 7):
            r = row(corner, var)
            assert F[r] == pytest.approx(R[r] + 0.25 * R[face_row])
            np.testing.assert_allclose(J[r], J_bulk[r] + 0.25 * J_bulk[face_row])

        # two edge ends receive half each
        for corner in (0, 1):
            r = row(corner, var)
            assert F[r] == pytest.approx(R[r] + 0.5 * R[edge_row])
            np.testing.assert_allclose(J[r], J_bulk[r] + 0.5 * J_bulk[edge_row])

        # untouched corners
        for corner in (2, 3):
            r = row(corner, var)
            assert F[r] == R[r]
            np.testing.assert_array_equal(J[r], J_bulk[r])
