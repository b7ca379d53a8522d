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
"""Linear-system adapters with a common row-operation interface."""
from .scipy_system import ScipySystem

__all__ = ["ScipySystem", "create_system"]


def create_system(backend: str, n_local: int, n_global: int = None,
                  solver_type: str = "direct", comm=None):
    """Instantiate the linear system for ``backend`` ('scipy' or 'petsc')."""
    if backend == "petsc":
        from .petsc_system import PETScSystem
        return PETScSystem(n_local, n_global, solver_type=solver_type, comm=comm)
    if backend == "scipy":
        return ScipySystem(n_local, solver_type=solver_type)
    raise ValueError(f"Unknown linear algebra backend '{backend}'")
