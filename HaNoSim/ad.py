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
Forward-mode derivative rows for the constraint rows of the Jacobian.

The number of derivative directions is a property of each call and each
value, never a module-wide setting: constraint rows use 3 directions
(hanging node, first support, second support) while other callers are free
to use a different width concurrently.
"""
from dataclasses import dataclass
from functools import lru_cache
from typing import Callable

import jax
import jax.numpy as jnp
import numpy as np
import numpy.typing as npt

jax.config.update("jax_enable_x64", True)

NDArray = npt.NDArray[np.floating]

CONSTRAINT_DIRS = 3


def constraint_residual(v, v1, v2):
    """Hanging-node constraint ``v(H) - (v(P1) + v(P2)) / 2``.

    Works on floats, numpy arrays and jax tracers alike, so the residual and
    the Jacobian are derived from this single expression.
    """
    return v - 0.5 * (v1 + v2)


def _constraint(u):
    return constraint_residual(u[0], u[1], u[2])


@dataclass(frozen=True)
class ADBatch:
    """Values and derivative rows of a batch of function evaluations.

    Attributes
    ----------
    values : NDArray
        shape (n,)
    derivs : NDArray
        shape (n, num_dirs)
    """
    values: NDArray
    derivs: NDArray

    @property
    def num_dirs(self) -> int:
        return self.derivs.shape[1]

    def __len__(self) -> int:
        return self.values.shape[0]


@lru_cache(maxsize=None)
def _batched_jvp(func: Callable, num_dirs: int):
    seeds = jnp.eye(num_dirs)

    def single(u):
        vals, tangents = jax.vmap(lambda t: jax.jvp(func, (u,), (t,)))(seeds)
        return vals[0], tangents

    return jax.jit(jax.vmap(single))


def forward_ad(func: Callable, primals, num_dirs: int) -> ADBatch:
    """
    Evaluate ``func`` and its derivative rows for a batch of inputs.

    Direction ``k`` is seeded on ``primals[..., k]``; all directions are
    pushed through ``func`` at once.

    Parameters
    ----------
    func : callable
        Scalar function of a 1D input of length ``num_dirs``. Pass a
        module-level function; compiled kernels are cached per
        ``(func, num_dirs)``.
    primals : array_like
        shape (n, num_dirs) or (num_dirs,)
    num_dirs : int
        Number of derivative directions.

    Returns
    -------
    ADBatch
        Values, shape (n,), and derivative rows, shape (n, num_dirs).

    Raises
    ------
    ValueError
        If ``num_dirs`` does not match the number of seeded inputs.
    """
    u = np.atleast_2d(np.asarray(primals, dtype=np.float64))

    if num_dirs < 1 or u.shape[1] != num_dirs:
        raise ValueError(f"num_dirs={num_dirs} does not match {u.shape[1]} seeded inputs")

    if u.shape[0] == 0:
        return ADBatch(np.zeros(0), np.zeros((0, num_dirs)))

    vals, tangents = _batched_jvp(func, num_dirs)(jnp.asarray(u))

    return ADBatch(np.asarray(vals, dtype=float), np.asarray(tangents, dtype=float))


def constraint_jacobian(primals) -> ADBatch:
    """Constraint values and Jacobian rows for columns (H, P1, P2)."""
    return forward_ad(_constraint, primals, CONSTRAINT_DIRS)
