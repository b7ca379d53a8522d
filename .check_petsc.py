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
Verify PETSc and petsc4py installation for HaNoSim.

Usage:
    python3 .check_petsc.py
"""
import sys

import numpy as np


def check_ksp(PETSc, ksp_type, pc_type, factor_solver=None):
    mat = PETSc.Mat().createAIJ([4, 4])
    mat.setUp()
    for i in range(4):
        mat.setValue(i, i, 2.)
    mat.assemble()

    ksp = PETSc.KSP().create()
    ksp.setOperators(mat)
    ksp.setType(ksp_type)
    pc = ksp.getPC()
    pc.setType(pc_type)
    if factor_solver is not None:
        pc.setFactorSolverType(factor_solver)
    ksp.setFromOptions()

    b = mat.createVecLeft()
    b.set(1.)
    x = mat.createVecRight()
    ksp.solve(b, x)
    ok = np.allclose(x.getArray(), 0.5)

    ksp.destroy()
    mat.destroy()
    return ok


def check_row_operations():
    """Transfer, zero and insert one row through HaNoSim's PETSc system."""
    from HaNoSim.linalg.petsc_system import PETScSystem

    J = np.array([[2., 1., 0.], [1., 2., 1.], [0., 1., 2.]])
    system = PETScSystem(3, solver_type="iterative")
    system.load(J, np.ones(3))

    system.mat_add_row_to_row(np.array([1]), np.array([0]), np.array([0.5]))
    system.assemble_matrix()
    system.mat_zero_rows(np.array([1]))
    system.assemble_matrix()
    system.mat_set_values(np.array([1]), np.array([[1, 0, 2]]), np.array([[1., -0.5, -0.5]]))
    system.assemble_matrix()

    cols, vals = system.mat.getRow(1)
    row = np.zeros(3)
    row[cols] = vals
    return np.allclose(row, [-0.5, 1., -0.5])


def check_petsc():
    """Check PETSc installation and print diagnostic info."""
    print("PETSc Installation Check")
    print("=" * 40)

    try:
        import petsc4py
        from petsc4py import PETSc
        print("petsc4py:      OK")
    except ImportError as e:
        print(f"petsc4py:      FAILED ({e})")
        print("\nPETSc is not installed; HaNoSim falls back to the SciPy backend.")
        return False

    version = PETSc.Sys.getVersion()
    print(f"PETSc version: {version[0]}.{version[1]}.{version[2]}")
    print(f"petsc4py ver:  {petsc4py.__version__}")

    comm = PETSc.COMM_WORLD
    print(f"MPI size:      {comm.getSize()}")
    print(f"MPI rank:      {comm.getRank()}")

    print()
    print("Linear Solvers")
    print("-" * 40)

    try:
        status = "OK" if check_ksp(PETSc, 'preonly', 'lu', 'mumps') else "WRONG RESULT"
        print(f"MUMPS solver:  {status}")
    except PETSc.Error as e:
        print(f"MUMPS solver:  NOT AVAILABLE ({e})")
        print("  (use linear_solver: iterative)")

    try:
        status = "OK" if check_ksp(PETSc, 'bcgs', 'ilu') else "WRONG RESULT"
        print(f"BiCGSTAB+ILU:  {status}")
    except PETSc.Error as e:
        print(f"BiCGSTAB+ILU:  FAILED ({e})")
        return False

    print()
    print("Row operations")
    print("-" * 40)

    try:
        ok = check_row_operations()
    except ImportError as e:
        print(f"HaNoSim not installed in this environment ({e})")
        return True

    print(f"Transfer/zero/insert: {'OK' if ok else 'WRONG RESULT'}")

    print()
    print("=" * 40)

    return ok


if __name__ == "__main__":
    success = check_petsc()
    sys.exit(0 if success else 1)
