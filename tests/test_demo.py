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
import io
import os
import sys
import pytest
import numpy as np
from mpi4py import MPI

from HaNoSim.__main__ import main
from HaNoSim.demo import B, C, H, run
from HaNoSim.io import read_yaml_input
from HaNoSim.logging import get_logger

pytestmark = pytest.mark.skipif(MPI.COMM_WORLD.size > 1,
                                reason="Serial SciPy backend")


CONFIG_TEMPLATE = """
options:
    output: {output}

model:
    enable_Tl: {enable_Tl}

solver:
    damping: {damping}
    max_iter: 60
    R_norm_tol: 1e-10
    backend: scipy
"""


@pytest.mark.parametrize("enable_Tl", [False, True])
@pytest.mark.parametrize("damping", ['potential', 'none'])
def test_reference_problem(tmp_path, enable_Tl, damping):
    config = read_yaml_input(io.StringIO(
        CONFIG_TEMPLATE.format(output=tmp_path, enable_Tl=enable_Tl, damping=damping)))

    result = run(config)
    nb_dofs = 2 if enable_Tl else 1
    x = result.x.reshape(8, nb_dofs)

    assert result.converged
    np.testing.assert_allclose(x[H], 0.5 * (x[B] + x[C]), atol=1e-10)
    assert os.path.exists(os.path.join(tmp_path, 'history.csv'))


def test_main(tmp_path, monkeypatch):
    fname = os.path.join(tmp_path, 'input.yaml')
    with open(fname, 'w') as f:
        f.write(CONFIG_TEMPLATE.format(output=os.path.join(tmp_path, 'out'),
                                       enable_Tl=False, damping='bankrose'))

    monkeypatch.setattr(sys, 'argv', ['HaNoSim', '-i', fname])

    assert main() == 0
    assert os.path.exists(os.path.join(tmp_path, 'out', 'history.csv'))

    # setup summary is logged after the file handler is attached
    with open(os.path.join(tmp_path, 'out', 'hanosim.log')) as f:
        log = f.read()
    assert 'PROBLEM SETUP' in log
    assert 'bankrose' in log

    # restore default logging for the remaining tests
    get_logger('hanosim', force=True)
