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
Deferred, collective mutation of the global residual and Jacobian.

Hanging-node passes only collect; an :class:`AssemblyBatch` then applies
everything to the linear system in a fixed order:

    1. flux transfers (row-to-row weighted accumulation)
    2. zeroing of the constraint rows (matrix only)
    3. insertion of the constraint rows with set semantics

Every phase is closed by a collective assembly, so every rank has to flush,
also with an empty batch.
"""
import logging
from enum import Enum
from typing import TYPE_CHECKING, Optional

import numpy as np
import numpy.typing as npt

if TYPE_CHECKING:
    from .hanging_node import ConstraintBatch

NDArray = npt.NDArray[np.floating]

logger = logging.getLogger('hanosim.assembly')


class InsertMode(Enum):
    """Pending-operation state of a global object, as in PETSc."""
    NOT_SET_VALUES = 0
    INSERT_VALUES = 1
    ADD_VALUES = 2


class AssemblyBatch:
    """Collect transfers and overwrites, then apply them once."""

    def __init__(self):
        self._src = []
        self._dst = []
        self._alpha = []
        self._vec_rows = []
        self._vec_vals = []
        self._mat_rows = []
        self._mat_cols = []
        self._mat_vals = []
        self._spent = False

    @property
    def spent(self) -> bool:
        return self._spent

    @property
    def n_transfers(self) -> int:
        return int(sum(len(s) for s in self._src))

    def _check_open(self):
        if self._spent:
            raise RuntimeError("AssemblyBatch has already been flushed")

    def add_transfers(self, src_rows, dst_rows, alpha):
        """Queue ``row[dst] += alpha * row[src]`` for every entry."""
        self._check_open()
        src = np.asarray(src_rows, dtype=np.int64).ravel()
        dst = np.asarray(dst_rows, dtype=np.int64).ravel()
        alpha = np.broadcast_to(np.asarray(alpha, dtype=float), src.shape)
        if dst.shape != src.shape:
            raise ValueError("Transfer source and destination rows differ in length")
        self._src.append(src)
        self._dst.append(dst)
        self._alpha.append(np.array(alpha))

    def add_vector_values(self, rows, values):
        """Queue ``f[rows] = values``."""
        self._check_open()
        rows = np.asarray(rows, dtype=np.int64).ravel()
        values = np.asarray(values, dtype=float).ravel()
        if rows.shape != values.shape:
            raise ValueError("Vector rows and values differ in length")
        self._vec_rows.append(rows)
        self._vec_vals.append(values)

    def add_matrix_rows(self, rows, cols, values):
        """Queue replacement of whole rows: ``J[rows[i], :] = 0; J[rows[i], cols[i]] = values[i]``.

        Parameters
        ----------
        rows : array_like
            shape (n,)
        cols : array_like
            shape (n, k)
        values : array_like
            shape (n, k)
        """
        self._check_open()
        rows = np.asarray(rows, dtype=np.int64).ravel()
        cols = np.asarray(cols, dtype=np.int64)
        if cols.ndim != 2:
            cols = cols.reshape(rows.shape[0], -1)
        if cols.shape[0] != rows.shape[0]:
            raise ValueError("Matrix rows and columns differ in length")
        values = np.asarray(values, dtype=float).reshape(cols.shape)
        self._mat_rows.append(rows)
        self._mat_cols.append(cols)
        self._mat_vals.append(values)

    def extend(self, constraints: "ConstraintBatch", x: NDArray, jacobian: bool = False) -> "AssemblyBatch":
        """Queue the transfers and constraint rows of a resolver pass.

        Parameters
        ----------
        constraints : ConstraintBatch
            Output of a hanging-node pass.
        x : NDArray
            Local solution array (owned and ghost DOFs).
        jacobian : bool, optional
            Queue Jacobian rows instead of residual values (default False).
        """
        self._check_open()
        self.add_transfers(*constraints.transfer_arrays())
        if jacobian:
            self.add_matrix_rows(constraints.rows, constraints.column_array(),
                                 constraints.jacobian_values(x))
        else:
            self.add_vector_values(constraints.rows, constraints.residual_values(x))
        return self

    @staticmethod
    def _cat(parts, dtype, width: Optional[int] = None):
        if parts:
            return np.concatenate(parts)
        if width is None:
            return np.zeros(0, dtype=dtype)
        return np.zeros((0, width), dtype=dtype)

    def _transfers(self):
        return (self._cat(self._src, np.int64),
                self._cat(self._dst, np.int64),
                self._cat(self._alpha, float))

    def flush_vector(self, system) -> InsertMode:
        """Apply transfers, then overwrite the constraint entries of the residual."""
        self._check_open()
        self._spent = True

        src, dst, alpha = self._transfers()
        system.vec_add_row_to_row(src, dst, alpha)
        system.assemble_vector()

        system.vec_set_values(self._cat(self._vec_rows, np.int64),
                              self._cat(self._vec_vals, float))
        system.assemble_vector()

        logger.debug(f"Residual flush: {src.size} transfers, "
                     f"{sum(r.size for r in self._vec_rows)} constraint rows")

        return InsertMode.INSERT_VALUES

    def flush_matrix(self, system) -> InsertMode:
        """Apply transfers, zero the constraint rows, then insert them."""
        self._check_open()
        self._spent = True

        src, dst, alpha = self._transfers()
        system.mat_add_row_to_row(src, dst, alpha)
        system.assemble_matrix()

        rows = self._cat(self._mat_rows, np.int64)
        width = self._mat_cols[0].shape[1] if self._mat_cols else 3
        system.mat_zero_rows(rows)
        system.assemble_matrix()

        system.mat_set_values(rows,
                              self._cat(self._mat_cols, np.int64, width),
                              self._cat(self._mat_vals, float, width))
        system.assemble_matrix()

        logger.debug(f"Jacobian flush: {src.size} transfers, {rows.size} constraint rows")

        return InsertMode.INSERT_VALUES
