"""
Logging helpers for the cohort dashboard.

Library modules only call ``get_logger(__name__)``. Notebooks and scripts may
call ``configure_logging()`` once to see output; it touches the
``cgm_dashboard`` logger only, never the root logger.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Optional, Union

LOGGER_NAME = "cgm_dashboard"
DEFAULT_FMT = "%(asctime)s [%(levelname)s] %(name)s:%(lineno)d:%(funcName)s: %(message)s"
DEFAULT_DATEFMT = "%Y-%m-%d %H:%M:%S"


def configure_logging(level: Optional[Union[str, int]] = None,
                      *,
                      fmt: Optional[str] = None,
                      force: bool = False) -> None:
    """
    Attach a stderr handler to the dashboard logger.

    Parameters
    ----------
    level : str or int or None, default None
        Logging level. Falls back to ``CGM_DASHBOARD_LOG_LEVEL`` and then "INFO".
    fmt : str or None, default None
        Record format; ``DEFAULT_FMT`` when omitted.
    force : bool, default False
        Replace existing handlers instead of keeping the first one installed.
    """
    if level is None:
        level = os.environ.get("CGM_DASHBOARD_LOG_LEVEL", "INFO")
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)

    if force:
        for h in logger.handlers[:]:
            h.close()
            logger.removeHandler(h)
    else:
        for h in logger.handlers:
            if isinstance(h, logging.StreamHandler) and h.stream is sys.stderr:
                return

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(level)
    console.setFormatter(logging.Formatter(fmt=fmt or DEFAULT_FMT, datefmt=DEFAULT_DATEFMT))
    logger.addHandler(console)


def get_logger(name: Optional[str] = None) -> logging.Logger:
    # Flat modules are re-parented under the dashboard logger so one
    # configure_logging() call covers all of them.
    if name is None:
        return logging.getLogger(LOGGER_NAME)
    if name.startswith(LOGGER_NAME):
        return logging.getLogger(name)
    return logging.getLogger(f"{LOGGER_NAME}.{name}")
