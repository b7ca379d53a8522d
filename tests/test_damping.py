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
from scipy import constants

from HaNoSim.damping import (BankRoseState, DampingController, DampingPolicy, DofLayout,
                             bank_rose_damping, clip_to_bounds, positive_density_damping,
                             potential_damping, thermal_voltage)
from HaNoSim.parallel import ProcessorGroup
from HaNoSim.region import RegionType
from HaNoSim.system import SimulationSystem

from HaNoSim.demo import make_region


# Semiconductor block layout: (psi, n, p) per node
LAYOUT = DofLayout(potential=[0, 3], density=[1, 2, 4, 5])


@pytest.mark.parametrize("name,policy", [("potential", DampingPolicy.POTENTIAL),
                                         ("BankRose", DampingPolicy.BANK_ROSE),
                                         ("bank_rose", DampingPolicy.BANK_ROSE),
                                         ("none", DampingPolicy.NONE),
                                         ("positive_density", DampingPolicy.NONE),
                                         ("trust_region", DampingPolicy.NONE)])
def test_policy_from_string(name, policy):
    assert DampingPolicy.from_string(name) is policy


def test_potential_damping_factor():
    T = 300.
    Vt = constants.k * T / constants.e
    assert thermal_voltage(T) == pytest.approx(0.025852, rel=1e-4)

    y = np.array([2., 1e3, 1e3, -1., 1e3, 1e3])
    y0 = y.copy()
    changed = potential_damping(y, LAYOUT, T, 1e-6, ProcessorGroup())

    r = 2. / Vt
    assert changed
    np.testing.assert_allclose(y, y0 * np.log(1. + r) / r)


def test_potential_damping_below_threshold():
    y = np.array([1e-7, 5., 5., -1e-7, 5., 5.])
    y0 = y.copy()

    assert not potential_damping(y, LAYOUT, 300., 1e-6)
    np.testing.assert_array_equal(y, y0)


def test_positive_density_damping():
    w = np.array([-3., -1e5, 2., 0.1, 4., -1e-20])
    assert positive_density_damping(w, LAYOUT, 1e-10)

    assert np.all(w[LAYOUT.density] >= 0.)
    np.testing.assert_array_equal(w, [-3., 1e-10, 2., 0.1, 4., 1e-10])
    assert not positive_density_damping(w, LAYOUT, 1e-10)


def test_clip_to_bounds():
    layout = DofLayout(potential=[0], temperature=[1, 2])
    w = np.array([5., 0.5, 400.])

    assert clip_to_bounds(w, layout, {'temperature': (1., None), 'potential': (None, 10.)})
    np.testing.assert_array_equal(w, [5., 1., 400.])
    assert not clip_to_bounds(w, layout, {'temperature': (1., None)})


# =============================================================================
# Bank-Rose
# =============================================================================

def quadratic_norm(x):
    """|F(x)| for F(x) = x**2 - 1, root at 1."""
    return float(np.linalg.norm(x ** 2 - 1.))


def test_bank_rose_accepts_full_newton_step():
    x = np.array([2.])
    y = np.array([(4. - 1.) / 4.])    # F / F'
    w = x - y
    state = BankRoseState()

    changed = bank_rose_damping(x, y, w, quadratic_norm(x), quadratic_norm, state)

    assert not changed
    np.testing.assert_allclose(w, x - y)
    assert state.K == 0.


def test_bank_rose_shortens_overshooting_step():
    x = np.array([2.])
    y = np.array([10.])                # overshoots far past the root
    w = x - y
    state = BankRoseState()
    f_norm = quadratic_norm(x)

    changed = bank_rose_damping(x, y, w, f_norm, quadratic_norm, state, delta=0.1)

    t = (x - w)[0] / y[0]
    assert changed
    assert t < 1.
    assert 1. - quadratic_norm(w) / f_norm >= 0.1 * t
    assert state.K > 0.


# =============================================================================
# Controller
# =============================================================================

def test_controller_dispatch_and_bounds():
    cfg = {'density_floor': 1e-10, 'bounds': {'potential': (-1., 1.)}}
    controller = DampingController('none', LAYOUT, cfg, ProcessorGroup())

    x = np.zeros(6)
    y = np.array([-5., 1., 0., 0., 0., 1.])
    w = x - y

    changed_y, changed_w = controller.post_check(x, y, w)
    assert not changed_y
    assert changed_w
    np.testing.assert_array_equal(w, [1., 1e-10, 0., 0., 0., 1e-10])


def test_controller_potential_changes_y():
    controller = DampingController(DampingPolicy.POTENTIAL, LAYOUT, {'T_external': 300.})

    x = np.zeros(6)
    y = np.array([1., 0., 0., 0., 0., 0.])
    w = x - y

    changed_y, changed_w = controller.post_check(x, y, w)
    assert changed_y
    assert not changed_w
    assert y[0] < 1.


def test_controller_bank_rose_needs_callback():
    with pytest.raises(ValueError):
        DampingController('bankrose', LAYOUT, {})


def test_system_layout_and_default_hook():
    system = SimulationSystem([make_region(RegionType.SEMICONDUCTOR, enable_Tl=True)])
    layout = system.dof_layout()

    np.testing.assert_array_equal(layout.potential, np.arange(8) * 4)
    np.testing.assert_array_equal(layout.temperature, np.arange(8) * 4 + 3)
    assert layout.density.size == 16

    x = np.ones(32)
    y = np.full(32, 2.)
    w = x - y
    changed_y, changed_w = system.line_search_post_check(x, y, w)

    assert not changed_y
    assert changed_w
    assert np.all(w[layout.density] >= 0.)


def test_bank_rose_post_check_is_repeatable():
    layout = DofLayout(potential=[0])
    controller = DampingController('bankrose', layout, {}, residual_norm_at=quadratic_norm)

    x = np.array([2.])
    y = np.array([4.])
    candidates = []
    for _ in range(3):
        w = x - y
        controller.post_check(x, y, w)
        candidates.append(w.copy())

    np.testing.assert_array_equal(candidates[0], [1.])
    for w in candidates[1:]:
        np.testing.assert_array_equal(w, candidates[0])
    assert controller.state.K == 0.

    controller.commit()
    assert controller.state.K == pytest.approx(0.1)
    assert controller.proposed_state is None


def test_bank_rose_caller_owned_state():
    controller = DampingController('bankrose', DofLayout(potential=[0]), {},
                                   residual_norm_at=quadratic_norm)
    state = BankRoseState(K=0.)

    x = np.array([2.])
    y = np.array([4.])
    w = x - y
    changed_y, changed_w = controller.post_check(x, y, w, state=state)

    assert not changed_y
    assert changed_w
    assert state.K == pytest.approx(0.1)
    assert controller.state.K == 0.
