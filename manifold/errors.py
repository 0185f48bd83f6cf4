"""
Manifold error types.

Configuration-time failures are fatal and raised immediately; numerical
domain problems (extrapolation, zero derivatives) are never raised here.
"""

from __future__ import annotations

from typing import Sequence


class ManifoldConfigError(ValueError):
    """Unsupported backend, malformed backend file or output/slot count mismatch."""


class ManifoldCapabilityError(ManifoldConfigError):
    """A manifold cannot supply outputs that a consumer declared it needs."""

    def __init__(self, missing: Sequence[str], consumer: str = "", available: Sequence[str] = ()):
        self.missing = tuple(missing)
        self.consumer = consumer
        who = f" required by {consumer}" if consumer else ""
        msg = f"Manifold cannot supply outputs {list(self.missing)}{who}."
        if available:
            msg += f" Available outputs: {sorted(available)}"
        super().__init__(msg)
