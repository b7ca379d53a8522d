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
Simulation system: the hooks the nonlinear solver calls every iteration.
"""
import logging
from typing import Callable, Optional, Sequence, Tuple

import numpy as np
import numpy.typing as npt

from .assembly import AssemblyBatch, InsertMode
from .damping import BankRoseState, DampingController, DampingPolicy, DofLayout
from .hanging_node import HangingNodeResolver
from .parallel import ProcessorGroup
from .region import DENSITY_VARIABLES, SimulationRegion, Variable

NDArray = npt.NDArray[np.floating]

logger = logging.getLogger('hanosim.system')


class SimulationSystem:
    """
    Collection of simulation regions sharing one nonlinear system.

    Parameters
    ----------
    regions : sequence of SimulationRegion
        Regions of the device.
    comm : MPI.Comm, optional
        MPI communicator (default: MPI.COMM_WORLD).
    options : dict, optional
        Sanitized ``options`` section (``debug_fpe``).
    """

    def __init__(self, regions: Sequence[SimulationRegion], comm=None, options: dict = None):
        self.regions = list(regions)
        self.group = ProcessorGroup(comm)
        self.options = {} if options is None else dict(options)
        self.debug_fpe = bool(self.options.get('debug_fpe', False))
        self._damping: Optional[DampingController] = None

    @property
    def processor_id(self) -> int:
        return self.group.rank

    @property
    def has_hanging_node(self) -> bool:
        """True if any region on any rank has hanging nodes (collective)."""
        local = any(r.has_hanging_node for r in self.regions)
        return self.group.global_any(local)

    @property
    def n_local_dofs(self) -> int:
        pid = self.processor_id
        return sum(len(r.owned_nodes(pid)) * r.node_dofs for r in self.regions)

    @property
    def n_global_dofs(self) -> int:
        return int(self.group.global_sum(self.n_local_dofs))

    def dof_layout(self) -> DofLayout:
        """Local indices of the owned DOFs per variable class."""
        pid = self.processor_id
        potential, density, temperature = [], [], []

        for region in self.regions:
            for node in region.owned_nodes(pid):
                for var in region.variables:
                    idx = node.local_offset + region.variable_offset(var)
                    if var is Variable.POTENTIAL:
                        potential.append(idx)
                    elif var in DENSITY_VARIABLES:
                        density.append(idx)
                    elif var is Variable.TEMPERATURE:
                        temperature.append(idx)

        return DofLayout(potential=np.unique(potential).astype(np.int64),
                         density=np.unique(density).astype(np.int64),
                         temperature=np.unique(temperature).astype(np.int64))

    def _collect(self, x: NDArray, jacobian: bool) -> AssemblyBatch:
        batch = AssemblyBatch()
        for region in self.regions:
            if not region.has_hanging_node:
                continue
            resolver = HangingNodeResolver(region, self.processor_id, self.debug_fpe)
            batch.extend(resolver.resolve(x), x, jacobian=jacobian)
        return batch

    def hanging_node_function(self, x: NDArray, linear, add_value_flag: InsertMode) -> InsertMode:
        """
        Fold the hanging-node constraints into the residual.

        Parameters
        ----------
        x : NDArray
            Local solution array (owned and ghost DOFs).
        linear : ScipySystem or PETScSystem
            Linear system holding the bulk residual.
        add_value_flag : InsertMode
            Pending-operation state of the residual.

        Returns
        -------
        InsertMode
            ``add_value_flag`` unchanged if there are no hanging nodes,
            INSERT_VALUES otherwise.
        """
        if not self.has_hanging_node:
            return add_value_flag
        return self._collect(x, jacobian=False).flush_vector(linear)

    def hanging_node_jacobian(self, x: NDArray, linear, add_value_flag: InsertMode) -> InsertMode:
        """Fold the hanging-node constraints into the Jacobian, see ``hanging_node_function``."""
        if not self.has_hanging_node:
            return add_value_flag
        return self._collect(x, jacobian=True).flush_matrix(linear)

    def configure_damping(self, policy, cfg: dict = None,
                          residual_norm_at: Optional[Callable[[NDArray], float]] = None) -> DampingController:
        self._damping = DampingController(policy, self.dof_layout(), cfg, self.group, residual_norm_at)
        return self._damping

    @property
    def damping(self) -> DampingController:
        if self._damping is None:
            self._damping = DampingController(DampingPolicy.NONE, self.dof_layout(), None, self.group)
        return self._damping

    def line_search_post_check(self, x: NDArray, y: NDArray, w: NDArray,
                               residual_norm: Optional[float] = None,
                               state: Optional[BankRoseState] = None) -> Tuple[bool, bool]:
        """Damping hook of the nonlinear solver, returns ``(changed_y, changed_w)``."""
        return self.damping.post_check(x, y, w, residual_norm, state)
