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
Newton step damping.

The nonlinear solver proposes ``w = x - lambda * y``; the post-check may
rescale the search direction ``y`` or modify the candidate ``w`` directly and
reports which of the two it changed. All functions operate on the owned
part of the local arrays in place.
"""
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Optional, Tuple

import numpy as np
import numpy.typing as npt
from scipy import constants

from .parallel import ProcessorGroup

NDArray = npt.NDArray[np.floating]
IntArray = npt.NDArray[np.integer]

logger = logging.getLogger('hanosim.damping')

DENSITY_FLOOR = 1e-10


class DampingPolicy(Enum):
    POTENTIAL = 'potential'
    BANK_ROSE = 'bankrose'
    NONE = 'none'

    @classmethod
    def from_string(cls, name: str) -> "DampingPolicy":
        """Parse a policy name; unknown names fall back to positive density damping."""
        key = str(name).strip().lower().replace('-', '_')
        aliases = {
            'potential': cls.POTENTIAL,
            'bankrose': cls.BANK_ROSE,
            'bank_rose': cls.BANK_ROSE,
            'none': cls.NONE,
            'no': cls.NONE,
            'positive_density': cls.NONE,
        }
        if key not in aliases:
            logger.warning(f"Unknown damping '{name}', using positive density damping")
            return cls.NONE
        return aliases[key]


def _index(a) -> IntArray:
    return np.asarray(a, dtype=np.int64).ravel()


@dataclass(frozen=True)
class DofLayout:
    """Local indices of owned DOFs per variable class."""
    potential: IntArray = field(default_factory=lambda: np.zeros(0, dtype=np.int64))
    density: IntArray = field(default_factory=lambda: np.zeros(0, dtype=np.int64))
    temperature: IntArray = field(default_factory=lambda: np.zeros(0, dtype=np.int64))

    def __post_init__(self):
        for name in ('potential', 'density', 'temperature'):
            object.__setattr__(self, name, _index(getattr(self, name)))

    def indices(self, kind: str) -> IntArray:
        if kind not in ('potential', 'density', 'temperature'):
            raise KeyError(f"Unknown variable class '{kind}'")
        return getattr(self, kind)


@dataclass
class BankRoseState:
    """Damping parameter K carried from one Newton step to the next."""
    K: float = 0.


def thermal_voltage(T: float) -> float:
    """k_B T / q in volts."""
    return constants.k * T / constants.e


def potential_damping(y: NDArray, layout: DofLayout, T_external: float = 300.,
                      threshold: float = 1e-6, group: Optional[ProcessorGroup] = None) -> bool:
    """Logarithmic damping of large potential updates.

    With ``dV = max |y[potential]|`` over all ranks and ``Vt = k_B T / q``,
    the whole direction is scaled by ``log(1 + dV/Vt) / (dV/Vt)`` when
    ``dV > threshold``.

    Returns
    -------
    bool
        True if ``y`` was modified.
    """
    idx = layout.potential
    local = float(np.max(np.abs(y[idx]))) if idx.size > 0 else 0.
    dV = local if group is None else group.global_max(local)

    if dV <= threshold:
        return False

    r = dV / thermal_voltage(T_external)
    f = np.log1p(r) / r
    y *= f

    logger.debug(f"Potential damping: dV = {dV:.3e} V, factor {f:.3e}")

    return True


def bank_rose_damping(x: NDArray, y: NDArray, w: NDArray, f_norm: float,
                      residual_norm_at: Callable[[NDArray], float], state: BankRoseState,
                      delta: float = 0.1, max_trials: int = 20) -> bool:
    """
    Bank-Rose step length control.

    Parameters
    ----------
    x, y, w : NDArray
        Current iterate, search direction and candidate (written in place).
    f_norm : float
        Residual norm at ``x``.
    residual_norm_at : callable
        Residual norm of a trial iterate; collective in parallel runs.
    state : BankRoseState
        Caller-owned damping parameter.
    delta : float, optional
        Sufficient decrease parameter.
    max_trials : int, optional
        Maximum number of step lengths tried.

    Returns
    -------
    bool
        True if ``w`` was changed (step length below one).
    """
    if f_norm <= 0.:
        return False

    for _ in range(max_trials):
        t = 1. / (1. + state.K * f_norm)
        trial = x - t * y
        if 1. - residual_norm_at(trial) / f_norm >= delta * t:
            break
        state.K = 1. if state.K == 0. else 10. * state.K
    else:
        logger.warning(f"Bank-Rose damping: no sufficient decrease after {max_trials} trials, t = {t:.3e}")

    w[:] = trial
    state.K /= 10.

    return t < 1.


def positive_density_damping(w: NDArray, layout: DofLayout, density_floor: float = DENSITY_FLOOR) -> bool:
    """Clip negative carrier densities of the candidate to ``density_floor``."""
    idx = layout.density
    if idx.size == 0:
        return False
    negative = idx[w[idx] < 0.]
    if negative.size == 0:
        return False
    w[negative] = density_floor
    return True


def clip_to_bounds(w: NDArray, layout: DofLayout, bounds: Dict[str, Tuple[Optional[float], Optional[float]]]) -> bool:
    """Generic bound check, ``bounds = {variable class: (lower, upper)}``; None means unbounded."""
    changed = False
    for kind, (lo, hi) in bounds.items():
        idx = layout.indices(kind)
        if idx.size == 0:
            continue
        vals = w[idx]
        clipped = np.clip(vals,
                          -np.inf if lo is None else lo,
                          np.inf if hi is None else hi)
        if np.any(clipped != vals):
            w[idx] = clipped
            changed = True
    return changed


class DampingController:
    """
    Line-search post-check of the nonlinear solver.

    Parameters
    ----------
    policy : DampingPolicy or str
        Damping policy.
    layout : DofLayout
        Owned DOF indices per variable class.
    cfg : dict
        Sanitized ``damping`` section merged with ``T_external``.
    group : ProcessorGroup, optional
        Communicator for global reductions (default COMM_WORLD).
    residual_norm_at : callable, optional
        Residual norm of a trial iterate, required for Bank-Rose damping.
    """

    def __init__(self, policy, layout: DofLayout, cfg: dict = None,
                 group: Optional[ProcessorGroup] = None,
                 residual_norm_at: Optional[Callable[[NDArray], float]] = None):
        if not isinstance(policy, DampingPolicy):
            policy = DampingPolicy.from_string(policy)
        cfg = {} if cfg is None else cfg

        self.policy = policy
        self.layout = layout
        self.group = ProcessorGroup() if group is None else group
        self.residual_norm_at = residual_norm_at

        # K of the last accepted step; post_check only works on copies
        self.state = BankRoseState()
        self.proposed_state: Optional[BankRoseState] = None

        self.T_external = float(cfg.get('T_external', 300.))
        self.potential_threshold = float(cfg.get('potential_threshold', 1e-6))
        self.density_floor = float(cfg.get('density_floor', DENSITY_FLOOR))
        self.bank_rose_delta = float(cfg.get('bank_rose_delta', 0.1))
        self.bank_rose_max_trials = int(cfg.get('bank_rose_max_trials', 20))
        self.bounds = dict(cfg.get('bounds', {}))

        if self.policy is DampingPolicy.BANK_ROSE and residual_norm_at is None:
            raise ValueError("Bank-Rose damping needs a residual norm callback")

    def post_check(self, x: NDArray, y: NDArray, w: NDArray,
                   residual_norm: Optional[float] = None,
                   state: Optional[BankRoseState] = None) -> Tuple[bool, bool]:
        """Apply the policy, then the generic bound check.

        Repeated calls with the same arguments give the same result. Bank-Rose
        damping updates ``state`` if given, otherwise a copy of the committed
        state which is kept as ``proposed_state`` until ``commit``.

        Parameters
        ----------
        x, y, w : NDArray
            Current iterate, search direction and candidate ``x - y``.
        residual_norm : float, optional
            Residual norm at ``x`` (evaluated if not given).
        state : BankRoseState, optional
            Caller-owned Bank-Rose parameter.

        Returns
        -------
        tuple of bool
            ``(changed_y, changed_w)``. If ``changed_y`` the caller recomputes ``w``.
        """
        changed_y = False
        changed_w = False

        if self.policy is DampingPolicy.POTENTIAL:
            changed_y = potential_damping(y, self.layout, self.T_external,
                                          self.potential_threshold, self.group)
        elif self.policy is DampingPolicy.BANK_ROSE:
            f_norm = self.residual_norm_at(x) if residual_norm is None else residual_norm
            trial_state = BankRoseState(self.state.K) if state is None else state
            changed_w = bank_rose_damping(x, y, w, f_norm, self.residual_norm_at, trial_state,
                                          self.bank_rose_delta, self.bank_rose_max_trials)
            self.proposed_state = trial_state
        else:
            changed_w = positive_density_damping(w, self.layout, self.density_floor)

        changed_w = self.enforce_bounds(w) or changed_w

        return changed_y, changed_w

    def commit(self):
        """Keep the Bank-Rose parameter of the last post-check for the next step."""
        if self.proposed_state is not None:
            self.state = self.proposed_state
            self.proposed_state = None

    def enforce_bounds(self, w: NDArray) -> bool:
        """Generic bound check alone, for a candidate recomputed after ``changed_y``."""
        return clip_to_bounds(w, self.layout, self.bounds)
