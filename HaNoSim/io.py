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
import logging

import yaml
import pandas as pd

from .damping import DampingPolicy
from .logging import configure

logger = logging.getLogger('hanosim.io')

BACKENDS = ('scipy', 'petsc')
LINEAR_SOLVERS = ('direct', 'iterative')
VARIABLE_CLASSES = ('potential', 'density', 'temperature')


def log_header(s, n=60, f0='*', f1=' '):

    if len(s) > n:
        n = len(s) + 4

    w = n + len(s) % 2
    b = (w - len(s)) // 2 - 1
    logger.info(w * f0)
    logger.info(f0 + b * f1 + s + b * f1 + f0)
    logger.info(w * f0)


def log_dict(d):
    for k, v in d.items():
        if not isinstance(v, dict):
            logger.info(f'  - {k:<25s}: {v}')
        else:
            logger.info(f'  - {k}:')
            for kk, vv in v.items():
                logger.info(f'    - {kk:<23s}: {vv}')


def write_yaml(output_dict, fname):

    with open(fname, 'w') as FILE:
        yaml.dump(output_dict, FILE)


def history_to_csv(fname, out):
    df = pd.DataFrame(data=out)
    df.to_csv(fname, index=False)


def read_yaml_input(file, setup_logging=False):
    """Read and sanitize a YAML input stream.

    Missing sections are filled with their defaults, unknown sections are
    ignored. With ``setup_logging`` the package logger is configured from
    the ``options`` section before anything is logged, so the setup summary
    ends up in the log file as well.
    """

    sanitizing_functions = {'options': sanitize_options,
                            'model': sanitize_model,
                            'solver': sanitize_solver,
                            'damping': sanitize_damping}

    sanitized_dict = {}

    raw_dict = yaml.full_load(file)

    if raw_dict is None:
        raw_dict = {}

    if not isinstance(raw_dict, dict):
        raise IOError("Input must be a mapping of sections")

    if setup_logging:
        configure(_parse_options(raw_dict.get('options') or {}))

    log_header("PROBLEM SETUP")

    for key in raw_dict.keys():
        if key not in sanitizing_functions:
            logger.warning(f"Ignoring unknown input section '{key}'")

    for key, func in sanitizing_functions.items():
        logger.info(f'- {key}:')
        sanitized_dict[key] = func(raw_dict.get(key) or {})

    log_header("PROBLEM SETUP COMPLETED")

    return sanitized_dict


def _parse_options(d):
    out = {}
    out['log_level'] = str(d.get('log_level', 'INFO')).upper()
    out['output'] = None if d.get('output') is None else str(d['output'])
    out['debug_fpe'] = bool(d.get('debug_fpe', False))

    if not isinstance(logging.getLevelName(out['log_level']), int):
        raise IOError(f"Unknown log level '{out['log_level']}'")

    return out


def sanitize_options(d):
    out = _parse_options(d)

    log_dict(out)

    return out


def sanitize_model(d):
    out = {}
    out['enable_Tl'] = bool(d.get('enable_Tl', False))
    out['T_external'] = float(d.get('T_external', 300.))

    if out['T_external'] <= 0.:
        raise IOError("External temperature must be positive")

    log_dict(out)

    return out


def sanitize_solver(d):

    out = {}

    # Unknown names fall back to positive density damping
    out['damping'] = DampingPolicy.from_string(d.get('damping', 'potential')).value
    out['max_iter'] = int(d.get('max_iter', 30))
    out['R_norm_tol'] = float(d.get('R_norm_tol', 1e-10))
    out['backend'] = str(d.get('backend', 'scipy')).lower()
    out['linear_solver'] = str(d.get('linear_solver', 'direct')).lower()

    if out['max_iter'] < 1:
        raise IOError("Specify a positive number of Newton iterations (max_iter)")

    if out['R_norm_tol'] <= 0.:
        raise IOError("Specify a positive residual tolerance (R_norm_tol)")

    if out['backend'] not in BACKENDS:
        raise IOError(f"Specify a valid linear algebra backend {BACKENDS}")

    if out['linear_solver'] not in LINEAR_SOLVERS:
        raise IOError(f"Specify a valid linear solver {LINEAR_SOLVERS}")

    log_dict(out)

    return out


def sanitize_damping(d):

    out = {}

    out['potential_threshold'] = float(d.get('potential_threshold', 1e-6))
    out['density_floor'] = float(d.get('density_floor', 1e-10))
    out['bank_rose_delta'] = float(d.get('bank_rose_delta', 0.1))
    out['bank_rose_max_trials'] = int(d.get('bank_rose_max_trials', 20))

    if out['potential_threshold'] <= 0.:
        raise IOError("Specify a positive potential damping threshold")

    if out['density_floor'] < 0.:
        raise IOError("Density floor must be non-negative")

    if not 0. < out['bank_rose_delta'] < 1.:
        raise IOError("Bank-Rose delta must lie in (0, 1)")

    if out['bank_rose_max_trials'] < 1:
        raise IOError("Specify a positive number of Bank-Rose trials")

    bounds = {}
    for kind, pair in (d.get('bounds') or {}).items():
        if kind not in VARIABLE_CLASSES:
            raise IOError(f"Unknown variable class '{kind}' in bounds, use one of {VARIABLE_CLASSES}")
        try:
            lo, hi = pair
        except (TypeError, ValueError):
            raise IOError(f"Bounds of '{kind}' must be a [lower, upper] pair") from None
        lo = None if lo is None else float(lo)
        hi = None if hi is None else float(hi)
        if lo is not None and hi is not None and lo > hi:
            raise IOError(f"Lower bound of '{kind}' exceeds upper bound")
        bounds[kind] = (lo, hi)
    out['bounds'] = bounds

    log_dict(out)

    return out
