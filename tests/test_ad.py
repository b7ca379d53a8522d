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
import pytest
import numpy as np

from HaNoSim.ad import constraint_jacobian, constraint_residual, forward_ad


def _product(u):
    return u[0] * u[1]


def test_constraint_row_is_exact():
    batch = constraint_jacobian([1., 2., 4.])

    assert batch.num_dirs == 3
    assert batch.values[0] == -2.
    np.testing.assert_array_equal(batch.derivs[0], [1., -0.5, -0.5])
    assert constraint_residual(1., 2., 4.) == -2.


def test_batched_directions():
    u = np.array([[2., 3.], [-1., 5.]])
    batch = forward_ad(_product, u, num_dirs=2)

    np.testing.assert_allclose(batch.values, [6., -5.])
    np.testing.assert_allclose(batch.derivs, [[3., 2.], [5., -1.]])
    assert batch.num_dirs == 2
    assert len(batch) == 2


def test_direction_count_mismatch():
    with pytest.raises(ValueError):
        forward_ad(_product, np.ones((4, 3)), num_dirs=2)


def test_empty_batch():
    batch = constraint_jacobian(np.zeros((0, 3)))
    assert len(batch) == 0
    assert batch.derivs.shape == (0, 3)

