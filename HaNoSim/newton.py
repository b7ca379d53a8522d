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
Reference Newton driver around the hanging-node and damping hooks.

The local solution array ``x`` stores the owned DOFs first (positions
``0 .. n_local - 1``) followed by ghost DOFs; ghosts are refreshed through
the ``communicate_ghosts`` callback after every update.
"""
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple

import numpy as np
import numpy.typing as npt

from .assembly import InsertMode
from .system import SimulationSystem

NDArray = npt.NDArray[np.floating]

logger = logging.getLogger('hanosim.newton')


@dataclass
class NewtonResult:
    x: NDArray
    converged: bool
    iterations: int
    history: List[dict] = field(default_factory=list)


class NewtonSolver:
    """
    Damped Newton iteration ``x <- x - y`` with ``J y = R``.

    Parameters
    ----------
    system : SimulationSystem
        Provides the hanging-node hooks and the damping post-check.
    bulk : callable
        ``bulk(x) -> (R, J)``, the bulk residual and Jacobian of the owned rows.
    linear : ScipySystem or PETScSystem
        Linear system the contributions are assembled into.
    solver_cfg : dict
        Sanitized ``solver`` section.
    damping_cfg : dict
        Sanitized ``damping`` section (``T_external`` included).
    communicate_ghosts : callable, optional
        ``communicate_ghosts(x)`` refreshes ghost entries in place.
    """

    def __init__(self,
                 system: SimulationSystem,
                 bulk: Callable[[NDArray], Tuple[NDArray, object]],
                 linear,
                 solver_cfg: dict,
                 damping_cfg: dict = None,
                 communicate_ghosts: Optional[Callable[[NDArray], None]] = None):
        self.system = system
        self.bulk = bulk
        self.linear = linear
        self.max_iter = int(solver_cfg.get('max_iter', 30))
        self.tol = float(solver_cfg.get('R_norm_tol', 1e-10))
        self.communicate_ghosts = communicate_ghosts

        self.damping = system.configure_damping(solver_cfg.get('damping', 'potential'),
                                                damping_cfg,
                                                residual_norm_at=self.residual_norm_at)

    def _assemble(self, x: NDArray):
        R, J = self.bulk(x)
        self.linear.load(J, R)
        self.system.hanging_node_function(x, self.linear, InsertMode.NOT_SET_VALUES)
        self.system.hanging_node_jacobian(x, self.linear, InsertMode.NOT_SET_VALUES)

    def residual_norm_at(self, x: NDArray) -> float:
        """Global residual norm at a trial iterate (collective)."""
        trial = np.array(x, dtype=float)
        if self.communicate_ghosts is not None:
            self.communicate_ghosts(trial)
        R, J = self.bulk(trial)
        self.linear.load(J, R)
        self.system.hanging_node_function(trial, self.linear, InsertMode.NOT_SET_VALUES)
        return self.linear.residual_norm()

    def solve(self, x0: NDArray) -> NewtonResult:
        """Run the Newton iteration from ``x0``.

        Returns
        -------
        NewtonResult
        """
        x = np.array(x0, dtype=float)
        history = []
        converged = False

        logger.info(61 * '-')
        logger.info(f"{'Iteration':<10s} {'Residual':<12s} {'changed_y':<10s} {'changed_w':<10s}")
        logger.info(61 * '-')

        tic = time.time()
        it = 0

        for it in range(self.max_iter + 1):
            self._assemble(x)
            R_norm = self.linear.residual_norm()

            if R_norm < self.tol:
                converged = True
                history.append(dict(iteration=it, residual_norm=R_norm,
                                    changed_y=False, changed_w=False, linear_converged=True))
                logger.info(f"{it:<10d} {R_norm:<12.4e}")
                break

            if it == self.max_iter:
                history.append(dict(iteration=it, residual_norm=R_norm,
                                    changed_y=False, changed_w=False, linear_converged=True))
                logger.info(f"{it:<10d} {R_norm:<12.4e}")
                break

            y_owned = self.linear.solve()
            linear_converged = bool(self.linear.get_convergence_info()['converged'])

            y = np.zeros_like(x)
            y[:y_owned.shape[0]] = y_owned
            w = x - y

            changed_y, changed_w = self.system.line_search_post_check(x, y, w, R_norm)
            if changed_y:
                w = x - y
                self.damping.enforce_bounds(w)
            self.damping.commit()

            history.append(dict(iteration=it, residual_norm=R_norm, changed_y=changed_y,
                                changed_w=changed_w, linear_converged=linear_converged))
            logger.info(f"{it:<10d} {R_norm:<12.4e} {str(changed_y):<10s} {str(changed_w):<10s}")

            x = w
            if self.communicate_ghosts is not None:
                self.communicate_ghosts(x)

        toc = time.time()
        if converged:
            logger.info(f"Converged in {it} iterations. Solving took {toc - tic:.2f} seconds.")
        else:
            logger.warning(f"Did not converge after {self.max_iter} iterations.")

        return NewtonResult(x=x, converged=converged, iterations=it, history=history)
