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
from __future__ import annotations

import logging
import os
import sys
from typing import Optional, Union

from mpi4py import MPI


class RankFilter(logging.Filter):
    """Drop records on every MPI rank except ``rank``."""

    def __init__(self, rank: int = 0) -> None:
        super().__init__()
        self.rank = rank

    def filter(self, record: logging.LogRecord) -> bool:
        return MPI.COMM_WORLD.Get_rank() == self.rank


def _default_filename_for(name: str) -> str:
    # map logger names like 'hanosim.newton' -> 'hanosim_newton.log'
    base = name.replace('.', '_')
    return f"{base}.log"


def _as_level(level: Union[int, str]) -> int:
    if isinstance(level, str):
        return logging.getLevelName(level.upper())
    return level


def get_logger(name: str,
               outdir: Optional[str] = None,
               filename: Optional[str] = None,
               level: Union[int, str] = logging.INFO,
               all_ranks: bool = False,
               force: bool = False) -> logging.Logger:
    """Return a standardised logger for HaNoSim modules.

    Parameters
    ----------
    name : str
        Name of the logger.
    outdir : str, optional
        Output directory to write logfiles (the default is None, which only writes to stdout)
    filename : str, optional
        Output filename of the logger (the default is None, which uses a default filename)
    level : int or str, optional
        Log level (the default is logging.INFO)
    all_ranks : bool, optional
        If true, every MPI rank emits records, otherwise only rank 0 (the default is False)
    force : bool, optional
        If true, replace existing handlers to allow reconfiguration (the default is False)

    Returns
    -------
    logging.Logger
        The logger object
    """

    logger = logging.getLogger(name)

    if filename is None:
        filename = _default_filename_for(name)

    filepath = None if outdir is None else os.path.join(outdir, filename)

    if force:
        for h in list(logger.handlers):
            logger.removeHandler(h)
            h.close()

    if logger.handlers and not force:
        return logger

    logger.setLevel(_as_level(level))

    sh = logging.StreamHandler(sys.stdout)
    sh.setFormatter(logging.Formatter('%(message)s'))
    if not all_ranks:
        sh.addFilter(RankFilter(0))
    logger.addHandler(sh)

    if filepath is not None:
        os.makedirs(outdir, exist_ok=True)
        fh = logging.FileHandler(filepath)
        fh.setFormatter(logging.Formatter('%(message)s'))
        if not all_ranks:
            fh.addFilter(RankFilter(0))
        logger.addHandler(fh)

    logger.propagate = False

    return logger


def configure(options: dict) -> logging.Logger:
    """(Re)configure the package root logger from sanitized ``options``."""
    return get_logger('hanosim',
                      outdir=options.get('output'),
                      level=options.get('log_level', 'INFO'),
                      force=True)
