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
Hanging-node constraint resolver.

A hanging node H sits on a side (or edge) of a coarser neighbour element
without being one of its corners. Per region variable v the resolver emits

* flux transfers ``row(H, v) -> row(corner, v)`` with weight ``1/n_corners``,
  so the flux assembled at H is redistributed onto the coarse corners, and
* the constraint equation ``v(H) - (v(P1) + v(P2)) / 2 = 0`` replacing the
  row of H, where P1, P2 are the two interpolation supports.

The resolver only collects; applying the batch to the global system is the
job of :class:`HaNoSim.assembly.AssemblyBatch`.
"""
import logging
from dataclasses import dataclass, field
from typing import List, Sequence, Tuple

import numpy as np
import numpy.typing as npt

from .ad import constraint_jacobian, constraint_residual
from .mesh import FVMNode, HangingNodeRecord, MeshConsistencyError
from .region import SimulationRegion, Variable

NDArray = npt.NDArray[np.floating]
IntArray = npt.NDArray[np.integer]

logger = logging.getLogger('hanosim.hanging_node')

__all__ = ["MeshConsistencyError", "ConstraintBatch", "HangingNodeResolver",
           "select_interpolation_supports"]


def select_interpolation_supports(values: Sequence[float]) -> Tuple[int, int]:
    """Pick the face diagonal used for interpolation on a 4-corner side.

    Parameters
    ----------
    values : sequence of float
        Primary variable at the corners n0..n3 (cyclic order).

    Returns
    -------
    tuple of int
        ``(0, 2)`` if ``|v0 - v2| < |v1 - v3|``, else ``(1, 3)``.
    """
    dv02 = abs(values[0] - values[2])
    dv13 = abs(values[1] - values[3])
    if dv02 < dv13:
        return (0, 2)
    return (1, 3)


@dataclass
class ConstraintBatch:
    """Transfers and constraint equations collected by one or more passes.

    Rows and columns are global system indices, ``x_idx`` are positions in
    the local solution array for the same DOFs (H, P1, P2).
    """
    src_rows: List[int] = field(default_factory=list)
    dst_rows: List[int] = field(default_factory=list)
    alpha: List[float] = field(default_factory=list)
    rows: List[int] = field(default_factory=list)
    cols: List[Tuple[int, int, int]] = field(default_factory=list)
    x_idx: List[Tuple[int, int, int]] = field(default_factory=list)

    @property
    def n_transfers(self) -> int:
        return len(self.src_rows)

    @property
    def n_constraints(self) -> int:
        return len(self.rows)

    def __bool__(self) -> bool:
        return self.n_transfers > 0 or self.n_constraints > 0

    def add_transfer(self, src: int, dst: int, alpha: float):
        self.src_rows.append(src)
        self.dst_rows.append(dst)
        self.alpha.append(alpha)

    def add_constraint(self, row: int, cols: Tuple[int, int, int], x_idx: Tuple[int, int, int]):
        self.rows.append(row)
        self.cols.append(tuple(cols))
        self.x_idx.append(tuple(x_idx))

    def extend(self, other: "ConstraintBatch") -> "ConstraintBatch":
        self.src_rows.extend(other.src_rows)
        self.dst_rows.extend(other.dst_rows)
        self.alpha.extend(other.alpha)
        self.rows.extend(other.rows)
        self.cols.extend(other.cols)
        self.x_idx.extend(other.x_idx)
        return self

    def transfer_arrays(self) -> Tuple[IntArray, IntArray, NDArray]:
        return (np.asarray(self.src_rows, dtype=np.int64),
                np.asarray(self.dst_rows, dtype=np.int64),
                np.asarray(self.alpha, dtype=float))

    def _local_values(self, x: NDArray) -> NDArray:
        if not self.x_idx:
            return np.zeros((0, 3))
        return np.asarray(x)[np.asarray(self.x_idx, dtype=np.int64)]

    def residual_values(self, x: NDArray) -> NDArray:
        """Constraint residuals, shape (n_constraints,)."""
        u = self._local_values(x)
        return constraint_residual(u[:, 0], u[:, 1], u[:, 2])

    def jacobian_values(self, x: NDArray) -> NDArray:
        """Constraint Jacobian rows for columns (H, P1, P2), shape (n_constraints, 3)."""
        return constraint_jacobian(self._local_values(x)).derivs

    def column_array(self) -> IntArray:
        return np.asarray(self.cols, dtype=np.int64).reshape(-1, 3)


class HangingNodeResolver:
    """
    Build the hanging-node part of the system for one region.

    Parameters
    ----------
    region : SimulationRegion
        Region whose hanging nodes are resolved.
    processor_id : int, optional
        Local MPI rank; only hanging nodes owned by this rank are processed.
    debug_fpe : bool, optional
        Trap invalid operations and non-finite constraint values (default False).
    """

    def __init__(self, region: SimulationRegion, processor_id: int = 0, debug_fpe: bool = False):
        self.region = region
        self.processor_id = processor_id
        self.debug_fpe = debug_fpe

    def side_pass(self, x: NDArray) -> ConstraintBatch:
        """Hanging nodes located on element sides."""
        return self._run('side', self.region.hanging_nodes.on_side, x)

    def edge_pass(self, x: NDArray) -> ConstraintBatch:
        """Hanging nodes located on element edges (3D)."""
        return self._run('edge', self.region.hanging_nodes.on_edge, x)

    def resolve(self, x: NDArray) -> ConstraintBatch:
        return self.side_pass(x).extend(self.edge_pass(x))

    def _run(self, kind: str, records: Sequence[HangingNodeRecord], x: NDArray) -> ConstraintBatch:
        batch = ConstraintBatch()

        if self.debug_fpe:
            with np.errstate(invalid='raise', divide='raise'):
                self._collect(kind, records, x, batch)
            self._check_finite(kind, batch, x)
        else:
            self._collect(kind, records, x, batch)

        logger.debug(f"{self.region.name}: {kind} pass, "
                     f"{batch.n_constraints} constraints, {batch.n_transfers} transfers")

        return batch

    def _collect(self, kind, records, x, batch):
        region = self.region
        pot = region.variable_offset(Variable.POTENTIAL)

        for rec in records:
            hanging = region.fvm_node(rec.node)

            if hanging.processor_id != self.processor_id:
                continue

            try:
                if kind == 'side':
                    corner_ids = rec.elem.side_nodes(rec.local_index)
                else:
                    corner_ids = rec.elem.edge_nodes(rec.local_index)
            except MeshConsistencyError as err:
                logger.error(f"Hanging node {rec.node}: {err}")
                raise

            corners = [region.fvm_node(n) for n in corner_ids]

            if len(corners) == 2:
                supports = (corners[0], corners[1])
            elif len(corners) == 4 and kind == 'side':
                values = [x[c.local_offset + pot] for c in corners]
                i, j = select_interpolation_supports(values)
                supports = (corners[i], corners[j])
            else:
                msg = (f"Hanging node {rec.node} on {kind} {rec.local_index} of element "
                       f"{rec.elem.id} ({rec.elem.type.value}) has {len(corners)} corner nodes")
                logger.error(msg)
                raise MeshConsistencyError(msg)

            self._append(batch, hanging, corners, supports)

    def _append(self, batch: ConstraintBatch, hanging: FVMNode,
                corners: Sequence[FVMNode], supports: Tuple[FVMNode, FVMNode]):
        alpha = 1. / len(corners)
        p1, p2 = supports

        for var in self.region.variables:
            off = self.region.variable_offset(var)
            row = hanging.global_offset + off

            for c in corners:
                batch.add_transfer(row, c.global_offset + off, alpha)

            batch.add_constraint(row,
                                 (row, p1.global_offset + off, p2.global_offset + off),
                                 (hanging.local_offset + off, p1.local_offset + off, p2.local_offset + off))

    def _check_finite(self, kind: str, batch: ConstraintBatch, x: NDArray):
        with np.errstate(invalid='raise', divide='raise'):
            values = batch.residual_values(x)
        if not np.all(np.isfinite(values)):
            bad = [batch.rows[i] for i in np.flatnonzero(~np.isfinite(values))]
            msg = f"{self.region.name}: non-finite hanging-node constraint ({kind} pass) in rows {bad}"
            logger.error(msg)
            raise FloatingPointError(msg)
