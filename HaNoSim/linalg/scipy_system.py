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
"""SciPy-based linear system for serial execution without PETSc."""

import numpy as np
import numpy.typing as npt

from scipy.sparse import coo_matrix, csr_matrix, diags
from scipy.sparse.linalg import spsolve, gmres

NDArray = npt.NDArray[np.floating]
IntArray = npt.NDArray[np.integer]


class ScipySystem:
    """Serial residual/Jacobian pair with global row operations.

    Provides the same interface as PETScSystem for drop-in replacement.
    Newton convention: ``solve`` returns y with ``J y = R``, the update is
    ``x - y``.

    Parameters
    ----------
    n : int
        Number of DOFs (local = global in serial).
    solver_type : str, optional
        "direct" (SuperLU) or "iterative" (GMRES). Default: "direct".
    """

    def __init__(self, n: int, solver_type: str = "direct"):
        self._size = n
        self._solver_type = solver_type

        # Stored after load()
        self._mat: csr_matrix | None = None
        self._rhs: NDArray | None = None

        # Convergence info (for iterative solver)
        self._iterations = 0
        self._converged = True

    @property
    def size(self) -> int:
        return self._size

    @property
    def matrix(self) -> csr_matrix:
        return self._mat

    @property
    def residual(self) -> NDArray:
        return self._rhs

    def load(self, J, R: NDArray):
        """Take copies of the bulk Jacobian and residual.

        Parameters
        ----------
        J : sparse matrix or array_like
            Jacobian, shape (n, n).
        R : NDArray
            Residual, shape (n,).
        """
        mat = csr_matrix(J, dtype=float, copy=True)
        if mat.shape != (self._size, self._size):
            raise ValueError(f"Jacobian shape {mat.shape} does not match system size {self._size}")
        rhs = np.array(R, dtype=float).ravel()
        if rhs.shape != (self._size,):
            raise ValueError(f"Residual shape {rhs.shape} does not match system size {self._size}")
        self._mat = mat
        self._rhs = rhs

    def _require_loaded(self):
        if self._mat is None or self._rhs is None:
            raise RuntimeError("Must call load() before operating on the system")

    # Vector row operations

    def vec_add_row_to_row(self, src: IntArray, dst: IntArray, alpha: NDArray):
        """``f[dst] += alpha * f[src]``, all sources read before any write."""
        self._require_loaded()
        if len(src) == 0:
            return
        vals = alpha * self._rhs[src]
        np.add.at(self._rhs, dst, vals)

    def vec_set_values(self, rows: IntArray, values: NDArray):
        self._require_loaded()
        if len(rows) == 0:
            return
        self._rhs[rows] = values

    def assemble_vector(self):
        # Nothing pending in serial
        self._require_loaded()

    # Matrix row operations

    def mat_add_row_to_row(self, src: IntArray, dst: IntArray, alpha: NDArray):
        """``J[dst, :] += alpha * J[src, :]`` as ``J + T @ J`` with ``T[dst, src] = alpha``."""
        self._require_loaded()
        if len(src) == 0:
            return
        T = coo_matrix((alpha, (dst, src)), shape=(self._size, self._size)).tocsr()
        self._mat = (self._mat + T @ self._mat).tocsr()

    def mat_zero_rows(self, rows: IntArray):
        self._require_loaded()
        if len(rows) == 0:
            return
        keep = np.ones(self._size)
        keep[rows] = 0.
        self._mat = (diags(keep) @ self._mat).tocsr()
        self._mat.eliminate_zeros()

    def mat_set_values(self, rows: IntArray, cols: IntArray, values: NDArray):
        """``J[rows[i], cols[i, k]] = values[i, k]``."""
        self._require_loaded()
        if len(rows) == 0:
            return
        cols = np.asarray(cols).reshape(len(rows), -1)
        r = np.repeat(rows, cols.shape[1])
        lil = self._mat.tolil()
        lil[r, cols.ravel()] = np.asarray(values, dtype=float).ravel()
        self._mat = lil.tocsr()

    def assemble_matrix(self):
        self._require_loaded()
        self._mat.sum_duplicates()

    # Solve

    def residual_norm(self) -> float:
        self._require_loaded()
        return float(np.linalg.norm(self._rhs))

    def solve(self) -> NDArray:
        """Solve ``J y = R``."""
        self._require_loaded()

        if self._solver_type == "iterative":
            sol, info = gmres(self._mat, self._rhs, rtol=1e-8, atol=1e-12, maxiter=1000)
            self._converged = (info == 0)
            self._iterations = info if info > 0 else 0
        else:
            # Direct solver (SuperLU)
            sol = spsolve(self._mat.tocsc(), self._rhs)
            self._converged = bool(np.all(np.isfinite(sol)))
            self._iterations = 0

        return np.asarray(sol, dtype=float)

    def get_convergence_info(self) -> dict:
        """Get information about the last solve.

        Returns
        -------
        dict
            Dictionary with convergence info:
            - converged: bool
            - iterations: int (0 for direct solver)
            - residual_norm: float (0.0, not computed for scipy)
            - reason: int (1 if converged, -1 if not)
        """
        return {
            'converged': self._converged,
            'iterations': self._iterations,
            'residual_norm': 0.0,  # Not computed for scipy
            'reason': 1 if self._converged else -1,
        }
