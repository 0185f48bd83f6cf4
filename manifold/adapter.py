"""
Manifold adapter: one uniform call pattern over the active backend.

Responsibilities:
- Forward a control-variable vector and an ordered list of output names to
  the backend and return values in the same order plus the extrapolation flag.
- Guard caller buffers against size mismatches (fatal configuration error).
- Capability check: consumers declare the outputs they need at construction.

Backends are duck-typed (see ``ManifoldBackend``); callers never branch on
backend kind.
"""

from __future__ import annotations

from typing import Protocol, Sequence, Tuple, runtime_checkable

import numpy as np

from manifold.errors import ManifoldCapabilityError, ManifoldConfigError
from manifold.output_map import OutputMap


@runtime_checkable
class ManifoldBackend(Protocol):
    """Interface every manifold backend satisfies."""

    @property
    def input_names(self) -> Tuple[str, ...]: ...

    @property
    def output_names(self) -> Tuple[str, ...]: ...

    def evaluate(self, inputs: Sequence[float], output_names: Sequence[str]) -> Tuple[np.ndarray, bool]: ...


class ManifoldAdapter:
    """Uniform access to a single manifold backend."""

    def __init__(self, backend: ManifoldBackend):
        if not isinstance(backend, ManifoldBackend):
            raise ManifoldConfigError(
                f"Object of type {type(backend).__name__} does not implement the manifold interface."
            )
        self._backend = backend

    @property
    def backend(self) -> ManifoldBackend:
        return self._backend

    @property
    def input_names(self) -> Tuple[str, ...]:
        return tuple(self._backend.input_names)

    @property
    def output_names(self) -> Tuple[str, ...]:
        return tuple(self._backend.output_names)

    def supports(self, name: str) -> bool:
        return name in self._backend.output_names

    def require(self, names: Sequence[str], consumer: str = "") -> None:
        """Raise ManifoldCapabilityError if any of ``names`` is not provided."""
        available = set(self._backend.output_names)
        missing = [n for n in names if n not in available]
        if missing:
            raise ManifoldCapabilityError(missing, consumer=consumer, available=available)

    def evaluate(self, control_vars: Sequence[float], requested_outputs: Sequence[str]) -> Tuple[np.ndarray, bool]:
        values, extrapolated = self._backend.evaluate(control_vars, requested_outputs)
        values = np.asarray(values, dtype=np.float64)
        if values.shape != (len(requested_outputs),):
            raise ManifoldConfigError(
                f"Backend returned {values.shape} values for {len(requested_outputs)} requested outputs."
            )
        return values, bool(extrapolated)

    def evaluate_into(
        self,
        control_vars: Sequence[float],
        requested_outputs: Sequence[str],
        out: np.ndarray,
    ) -> bool:
        """Fill ``out`` in request order and return the extrapolation flag."""
        if len(out) != len(requested_outputs):
            raise ManifoldConfigError("Output vector size incompatible with manifold lookup operation.")
        values, extrapolated = self.evaluate(control_vars, requested_outputs)
        out[:] = values
        return extrapolated

    def evaluate_map(self, control_vars: Sequence[float], output_map: OutputMap, out: np.ndarray) -> bool:
        return self.evaluate_into(control_vars, output_map.native_names, out)
