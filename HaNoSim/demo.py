#
# Copyright 2026 Hannes Holey
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
"""
Reference problem: Laplace equation on a coarse/fine quad mesh with one
hanging node.

Node ids in brackets::

    d[3]-----------c[2]-----g[6]
     |              |  R2    |
     |      L       h[7]----f[5]
     |              |  R1    |
    a[0]-----------b[1]-----e[4]

The coarse quad L shares its side (b, c) with the refined quads R1, R2;
node h hangs on side 1 of L. The bulk residual is the graph Laplacian over
element sides with Dirichlet values on a, d (0 V) and e, f, g (1 V).
"""
import os
import logging

import numpy as np
from scipy.sparse import csr_matrix

from .io import history_to_csv
from .linalg import create_system
from .mesh import Elem, ElemType, HangingNodeMap, renumber_nodes
from .newton import NewtonSolver
from .region import REGION_VARIABLES, RegionType, SimulationRegion, Variable
from .system import SimulationSystem

logger = logging.getLogger('hanosim.demo')

A, B, C, D, E, F, G, H = range(8)
NB_NODES = 8

DIRICHLET = {A: 0., D: 0., E: 1., F: 1., G: 1.}


def make_elements():
    L = Elem(0, ElemType.QUAD4, (A, B, C, D))
    R1 = Elem(1, ElemType.QUAD4, (B, E, F, H))
    R2 = Elem(2, ElemType.QUAD4, (H, F, G, C))
    return L, R1, R2


def element_edges(elems):
    edges = set()
    for elem in elems:
        for i in range(elem.n_sides):
            n0, n1 = elem.side_nodes(i)
            edges.add((min(n0, n1), max(n0, n1)))
    return sorted(edges)


def laplace_bulk(elems, n_nodes=NB_NODES, dirichlet=None, nb_dofs=1):
    """Graph Laplacian over element sides with Dirichlet rows ``x_i - value``.

    With ``nb_dofs > 1`` every variable of the node block gets the same
    decoupled equation.
    """
    dirichlet = DIRICHLET if dirichlet is None else dirichlet
    edges = element_edges(elems)

    K = np.zeros((n_nodes, n_nodes))
    for i, j in edges:
        K[i, i] += 1.
        K[j, j] += 1.
        K[i, j] -= 1.
        K[j, i] -= 1.
    for i in dirichlet:
        K[i, :] = 0.
        K[i, i] = 1.

    b = np.zeros(n_nodes)
    for i, v in dirichlet.items():
        b[i] = v

    J = np.kron(K, np.eye(nb_dofs))
    rhs = np.repeat(b, nb_dofs)
    n = n_nodes * nb_dofs

    def bulk(x):
        R = J @ x[:n] - rhs
        return R, csr_matrix(J)

    return bulk


def make_region(region_type=RegionType.INSULATOR, enable_Tl=False, processor_id=0, hanging=True):
    L, R1, R2 = make_elements()
    nb_dofs = len(REGION_VARIABLES[region_type]) + int(enable_Tl)
    nodes = renumber_nodes(range(NB_NODES), nb_dofs, processor_id=processor_id)
    hanging_nodes = HangingNodeMap.from_mapping(on_side={H: (L, 1)}) if hanging else HangingNodeMap()
    return SimulationRegion('device', region_type, nodes, hanging_nodes, enable_Tl)


def run(config: dict):
    """Solve the reference problem with a sanitized configuration.

    Returns
    -------
    NewtonResult
    """
    model = config['model']
    solver = config['solver']
    options = config['options']

    region = make_region(enable_Tl=model['enable_Tl'])
    system = SimulationSystem([region], options=options)
    bulk = laplace_bulk(make_elements(), nb_dofs=region.node_dofs)

    n = system.n_local_dofs
    linear = create_system(solver['backend'], n, system.n_global_dofs,
                           solver_type=solver['linear_solver'])

    damping_cfg = dict(config['damping'], T_external=model['T_external'])
    result = NewtonSolver(system, bulk, linear, solver, damping_cfg).solve(np.zeros(n))

    x = result.x
    pot = region.variable_offset(Variable.POTENTIAL) + region.node_dofs * np.array([B, C, H])
    logger.info(f"V(b) = {x[pot[0]]:.6f}, V(c) = {x[pot[1]]:.6f}, V(h) = {x[pot[2]]:.6f}")

    if options['output'] is not None:
        os.makedirs(options['output'], exist_ok=True)
        history_to_csv(os.path.join(options['output'], 'history.csv'), result.history)

    return result
