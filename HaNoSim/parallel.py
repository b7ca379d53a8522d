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
from typing import Optional

from mpi4py import MPI


class ProcessorGroup:
    """
    Thin wrapper around the MPI communicator shared by the nonlinear solve.

    The node ownership partition is fixed by the mesh distribution; this
    class only answers who we are and performs the few global reductions
    the damping and convergence logic needs.

    Parameters
    ----------
    comm : MPI.Comm, optional
        MPI communicator (default: MPI.COMM_WORLD)
    """

    def __init__(self, comm: Optional[MPI.Comm] = None):
        self._comm = MPI.COMM_WORLD if comm is None else comm

    @property
    def comm(self) -> MPI.Comm:
        return self._comm

    @property
    def rank(self) -> int:
        """MPI rank of this process (the local processor id)."""
        return self._comm.Get_rank()

    @property
    def size(self) -> int:
        """Total number of MPI processes."""
        return self._comm.Get_size()

    def global_max(self, value: float) -> float:
        """Maximum of ``value`` over all processes."""
        return float(self._comm.allreduce(float(value), op=MPI.MAX))

    def global_sum(self, value: float) -> float:
        """Sum of ``value`` over all processes."""
        return float(self._comm.allreduce(float(value), op=MPI.SUM))

    def global_any(self, flag: bool) -> bool:
        """True if ``flag`` is set on at least one process."""
        return bool(self._comm.allreduce(bool(flag), op=MPI.LOR))
