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
# The above copyright notice and this permission notice shall be included in
# all copies or substantial portions of the Software.
#
# THE SOFTWARE IS PROVIDED "AS IS", WITHOUT WARRANTY OF ANY KIND, EXPRESS OR
# IMPLIED, INCLUDING BUT NOT LIMITED TO THE WARRANTIES OF MERCHANTABILITY,
# FITNESS FOR A PARTICULAR PURPOSE AND NONINFRINGEMENT. IN NO EVENT SHALL THE
# AUTHORS OR COPYRIGHT HOLDERS BE LIABLE FOR ANY CLAIM, DAMAGES OR OTHER
# LIABILITY, WHETHER IN AN ACTION OF CONTRACT, TORT OR OTHERWISE, ARISING FROM,
# OUT OF OR IN CONNECTION WITH THE SOFTWARE OR THE USE OR OTHER DEALINGS IN THE
# SOFTWARE.
#
"""PETSc-based distributed linear system with global row operations."""

import logging

import numpy as np
import numpy.typing as npt
from scipy.sparse import csr_matrix

from .. import HAS_PETSC

if not HAS_PETSC:
    raise ImportError(
        "petsc4py is required for the PETSc backend but is not installed.\n"
        "Use backend: scipy for serial runs."
    )

from petsc4py import PETSc

NDArray = npt.NDArray[np.floating]
IntArray = npt.NDArray[np.integer]

logger = logging.getLogger('hanosim.linalg')


class PETScSystem:
    """Manages the distributed residual/Jacobian pair and its solves.

    1. AIJ matrix and vectors over the owned row range of this rank
    2. Row-to-row transfers, row zeroing and row insertion
    3. KSP solver configuration and execution

    Parameters
    ----------
    n_local : int
        Number of rows owned by this rank.
    n_global : int, optional
        Global number of rows (default: n_local, i.e. serial).
    solver_type : str, optional
        "direct" (MUMPS LU) or "iterative" (BiCGSTAB + ILU). Default: "direct".
    comm : MPI.Comm, optional
        mpi4py communicator (default: COMM_WORLD).
    """

    # Threshold for switching from ILU(1) to ILU(2)
    _ILU2_THRESHOLD = 110000

    def __init__(self, n_local: int, n_global: int = None, solver_type: str = "direct", comm=None):
        self._n_local = n_local
        self._n_global = n_local if n_global is None else n_global
        self._solver_type = solver_type
        self.comm = PETSc.COMM_WORLD if comm is None else PETSc.Comm(comm)
        self.mat = None
        self._create_petsc_objects()

    def _create_petsc_objects(self):
        """Create distributed PETSc vectors and KSP objects."""
        sizes = (self._n_local, self._n_global)

        self.vec_rhs = PETSc.Vec().createMPI(sizes, comm=self.comm)
        self.vec_sol = self.vec_rhs.duplicate()

        self.ksp = PETSc.KSP().create(self.comm)

        if self._solver_type == "iterative":
            self.ksp.setType('bcgs')
            self.ksp.setTolerances(rtol=1e-8, atol=1e-12, max_it=1000)
            pc = self.ksp.getPC()
            pc.setType('ilu')
            fill_level = 2 if self._n_global > self._ILU2_THRESHOLD else 1
            pc.setFactorLevels(fill_level)
        else:
            logger.debug("Using MUMPS direct solver for PETSc KSP.")
            self.ksp.setType('preonly')
            pc = self.ksp.getPC()
            pc.setType('lu')
            pc.setFactorSolverType('mumps')

        self.ksp.setFromOptions()

    @property
    def ownership_range(self):
        return self.vec_rhs.getOwnershipRange()

    @property
    def residual(self) -> NDArray:
        return self.vec_rhs.getArray(readonly=True).copy()

    def load(self, J, R: NDArray):
        """Load the bulk Jacobian and residual of the owned rows.

        Parameters
        ----------
        J : PETSc.Mat or sparse matrix
            Either an assembled PETSc matrix (duplicated) or the owned rows
            with global column indices, shape (n_local, n_global).
        R : NDArray
            Owned part of the residual, shape (n_local,).
        """
        if isinstance(J, PETSc.Mat):
            mat = J.duplicate(copy=True)
        else:
            local = csr_matrix(J, dtype=float)
            local.sort_indices()
            mat = PETSc.Mat().createAIJ(
                size=((self._n_local, self._n_global), (self._n_local, self._n_global)),
                csr=(local.indptr.astype(PETSc.IntType),
                     local.indices.astype(PETSc.IntType),
                     local.data),
                comm=self.comm)

        # Transfers write outside the bulk stencil, zeroing keeps the pattern
        mat.setOption(PETSc.Mat.Option.NEW_NONZERO_ALLOCATION_ERR, False)
        mat.setOption(PETSc.Mat.Option.KEEP_NONZERO_PATTERN, True)
        mat.assemblyBegin(PETSc.Mat.AssemblyType.FINAL)
        mat.assemblyEnd(PETSc.Mat.AssemblyType.FINAL)

        if self.mat is not None:
            self.mat.destroy()
        self.mat = mat

        rstart, rend = self.ownership_range
        self.vec_rhs.setValues(np.arange(rstart, rend, dtype=PETSc.IntType),
                               np.asarray(R, dtype=float).ravel(),
                               PETSc.InsertMode.INSERT_VALUES)
        self.assemble_vector()

    # Vector row operations

    def vec_add_row_to_row(self, src: IntArray, dst: IntArray, alpha: NDArray):
        """``f[dst] += alpha * f[src]``; sources must be owned rows."""
        if len(src) > 0:
            vals = np.asarray(alpha) * self.vec_rhs.getValues(np.asarray(src, dtype=PETSc.IntType))
            self.vec_rhs.setValues(np.asarray(dst, dtype=PETSc.IntType), vals,
                                   PETSc.InsertMode.ADD_VALUES)

    def vec_set_values(self, rows: IntArray, values: NDArray):
        if len(rows) > 0:
            self.vec_rhs.setValues(np.asarray(rows, dtype=PETSc.IntType),
                                   np.asarray(values, dtype=float),
                                   PETSc.InsertMode.INSERT_VALUES)

    def assemble_vector(self):
        self.vec_rhs.assemblyBegin()
        self.vec_rhs.assemblyEnd()

    # Matrix row operations

    def mat_add_row_to_row(self, src: IntArray, dst: IntArray, alpha: NDArray):
        """``J[dst, :] += alpha * J[src, :]``; sources must be owned rows."""
        # read every source row before the first write
        rows = [self.mat.getRow(int(s)) for s in src]
        for (cols, vals), d, a in zip(rows, dst, alpha):
            self.mat.setValues([int(d)], cols, a * vals, addv=PETSc.InsertMode.ADD_VALUES)

    def mat_zero_rows(self, rows: IntArray):
        """Collective; every rank must call it, possibly with no rows."""
        self.mat.zeroRows(np.asarray(rows, dtype=PETSc.IntType), diag=0.0)

    def mat_set_values(self, rows: IntArray, cols: IntArray, values: NDArray):
        if len(rows) == 0:
            return
        cols = np.asarray(cols, dtype=PETSc.IntType).reshape(len(rows), -1)
        values = np.asarray(values, dtype=float).reshape(cols.shape)
        for r, c, v in zip(rows, cols, values):
            self.mat.setValues([int(r)], c, v, addv=PETSc.InsertMode.INSERT_VALUES)

    def assemble_matrix(self):
        self.mat.assemblyBegin(PETSc.Mat.AssemblyType.FINAL)
        self.mat.assemblyEnd(PETSc.Mat.AssemblyType.FINAL)

    # Solve

    def residual_norm(self) -> float:
        return float(self.vec_rhs.norm())

    def solve(self) -> NDArray:
        """Solve ``J y = R``, return the owned part of y."""
        self.ksp.setOperators(self.mat)
        self.ksp.solve(self.vec_rhs, self.vec_sol)
        return self.vec_sol.getArray(readonly=True).copy()

    def get_convergence_info(self) -> dict:
        """
        Get information about the last solve.

        Returns
        -------
        dict
            Dictionary with convergence info:
            - converged: bool
            - iterations: int
            - residual_norm: float
            - reason: int (PETSc convergence reason code)
        """
        reason = self.ksp.getConvergedReason()
        return {
            'converged': reason > 0,
            'iterations': self.ksp.getIterationNumber(),
            'residual_norm': self.ksp.getResidualNorm(),
            'reason': reason,
        }
