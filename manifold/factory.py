"""
Manifold backend selection.

Exactly two backend kinds are recognized: trained multilayer perceptrons
("mlp") and regular-grid lookup tables ("lut"). Anything else is a fatal
configuration error.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Sequence

from manifold.adapter import ManifoldAdapter
from manifold.errors import ManifoldConfigError


class ManifoldMethod(str, Enum):
    MLP = "mlp"
    LUT = "lut"


_METHOD_ALIAS = {
    "mlp": ManifoldMethod.MLP,
    "ann": ManifoldMethod.MLP,
    "lut": ManifoldMethod.LUT,
    "table": ManifoldMethod.LUT,
    "lookup_table": ManifoldMethod.LUT,
}


def normalize_method(method: str | ManifoldMethod) -> ManifoldMethod:
    """Map a configured method name to ManifoldMethod (case-insensitive)."""
    if isinstance(method, ManifoldMethod):
        return method
    key = str(method).strip().lower()
    if key not in _METHOD_ALIAS:
        raise ManifoldConfigError(
            f"Unsupported data-driven method: {method!r}. Available: 'mlp', 'lut'"
        )
    return _METHOD_ALIAS[key]


def load_manifold(
    method: str | ManifoldMethod,
    filename: str | Path,
    input_names: Sequence[str],
) -> ManifoldAdapter:
    """
    Construct the manifold backend for ``method`` and wrap it in an adapter.

    Args:
        method: "mlp" or "lut" (aliases accepted)
        filename: Network parameter file (YAML) or lookup table (CSV)
        input_names: Control-variable names in the order callers pass them

    Returns:
        ManifoldAdapter over the loaded backend

    Raises:
        ManifoldConfigError: Unsupported method or malformed file
        FileNotFoundError: If the backing file does not exist
    """
    kind = normalize_method(method)
    if kind is ManifoldMethod.MLP:
        from manifold.mlp import MLPCollection

        backend = MLPCollection.from_file(filename, input_names)
    else:
        from manifold.lut import LookUpTable

        backend = LookUpTable.from_csv(filename, input_names)
    return ManifoldAdapter(backend)
