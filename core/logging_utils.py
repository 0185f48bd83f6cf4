from __future__ import annotations

import logging
import os
from typing import Optional


_TRUTHY = {"1", "true", "yes", "on"}
_LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def _is_truthy(value: Optional[str]) -> bool:
    if value is None:
        return False
    return str(value).strip().lower() in _TRUTHY


def _parse_level(value, default_level: int) -> int:
    if value is None:
        return default_level
    if isinstance(value, int):
        return int(value)
    text = str(value).strip().upper()
    if not text:
        return default_level
    if text.isdigit():
        return int(text)
    resolved = logging.getLevelName(text)
    if isinstance(resolved, int):
        return resolved
    return default_level


def is_root_rank(comm=None) -> bool:
    """
    Return True on rank 0 when mpi4py is available; otherwise default True.

    Only used to decide who prints construction summaries; the fluid models
    themselves carry no rank state.
    """
    if comm is not None and hasattr(comm, "Get_rank"):
        return int(comm.Get_rank()) == 0

    try:
        from mpi4py import MPI
    except ImportError:
        return True
    return int(MPI.COMM_WORLD.Get_rank()) == 0


def get_log_level_from_env(default: str | int = "INFO") -> int:
    """
    Resolve log level from env (FLUID_LOG_LEVEL, or FLUID_DEBUG=1 for DEBUG).
    """
    default_level = _parse_level(default, logging.INFO)
    env_level = os.environ.get("FLUID_LOG_LEVEL")
    if env_level:
        return _parse_level(env_level, default_level)
    if _is_truthy(os.environ.get("FLUID_DEBUG")):
        return logging.DEBUG
    return default_level


def setup_logging(rank: int = 0, *, level: int | str = logging.INFO, quiet_nonroot: bool = True) -> None:
    """
    Configure root logging once and quiet non-root console handlers by default.
    """
    level = _parse_level(level, logging.INFO)
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=level, format=_LOG_FORMAT)
    root.setLevel(level)

    console_level = max(level, logging.WARNING) if (quiet_nonroot and rank != 0) else level
    for handler in root.handlers:
        if isinstance(handler, logging.FileHandler):
            continue
        handler.setLevel(console_level)


def log_on_root(logger: logging.Logger, msg: str, *args, level: int = logging.INFO) -> None:
    """Log ``msg`` only on the root rank."""
    if is_root_rank():
        logger.log(level, msg, *args)
