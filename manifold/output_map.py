"""
Output mapping table: symbolic output names -> (manifold-native name, slot).

Built once at fluid-model construction and read-only afterwards. Consumers
allocate a float64 buffer of length ``size`` and let the adapter fill it in
slot order.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, Mapping, Optional, Tuple

import numpy as np

from manifold.errors import ManifoldConfigError

# Entropy potential and its derivatives w.r.t. (energy, density).
ENTROPY_OUTPUTS: Tuple[Tuple[str, str], ...] = (
    ("entropy", "s"),
    ("dsde_rho", "dsde_rho"),
    ("dsdrho_e", "dsdrho_e"),
    ("d2sde2", "d2sde2"),
    ("d2sdedrho", "d2sdedrho"),
    ("d2sdrho2", "d2sdrho2"),
)


@dataclass(frozen=True, slots=True)
class OutputMap:
    """Ordered registry of manifold outputs.

    Attributes
    ----------
    symbolic_names : tuple of str
        Names used by the consuming code (slot order).
    native_names : tuple of str
        Names as they appear in the manifold (same order).
    """

    symbolic_names: Tuple[str, ...]
    native_names: Tuple[str, ...]
    _slots: Mapping[str, int] = field(default_factory=dict, repr=False)

    def __post_init__(self) -> None:
        if len(self.symbolic_names) != len(self.native_names):
            raise ManifoldConfigError(
                f"Output map size mismatch: {len(self.symbolic_names)} symbolic names "
                f"vs {len(self.native_names)} native names."
            )
        slots: Dict[str, int] = {}
        for i, name in enumerate(self.symbolic_names):
            if name in slots:
                raise ManifoldConfigError(f"Duplicate output name in output map: {name!r}")
            slots[name] = i
        object.__setattr__(self, "_slots", slots)

    @classmethod
    def from_pairs(
        cls,
        pairs: Iterable[Tuple[str, str]],
        overrides: Optional[Mapping[str, str]] = None,
    ) -> "OutputMap":
        """Build from (symbolic, native) pairs; ``overrides`` renames natives by symbolic key."""
        pairs = list(pairs)
        overrides = dict(overrides or {})
        known = {sym for sym, _ in pairs}
        unknown = set(overrides) - known
        if unknown:
            raise ManifoldConfigError(
                f"Output name overrides for unknown outputs: {sorted(unknown)}. Known: {sorted(known)}"
            )
        symbolic = tuple(sym for sym, _ in pairs)
        native = tuple(str(overrides.get(sym, nat)) for sym, nat in pairs)
        return cls(symbolic_names=symbolic, native_names=native)

    @classmethod
    def from_names(cls, names: Iterable[str]) -> "OutputMap":
        """Identity map where symbolic and native names coincide."""
        names = tuple(str(n) for n in names)
        return cls(symbolic_names=names, native_names=names)

    @property
    def size(self) -> int:
        return len(self.symbolic_names)

    def slot(self, symbolic: str) -> int:
        try:
            return self._slots[symbolic]
        except KeyError:
            raise KeyError(f"Output {symbolic!r} not in output map {list(self.symbolic_names)}") from None

    def allocate(self) -> np.ndarray:
        return np.zeros(self.size, dtype=np.float64)

    def unpack(self, values: np.ndarray) -> Dict[str, float]:
        values = np.asarray(values, dtype=np.float64)
        if values.shape != (self.size,):
            raise ManifoldConfigError(
                f"Output vector shape {values.shape} incompatible with output map of size {self.size}."
            )
        return {name: values[i] for i, name in enumerate(self.symbolic_names)}
