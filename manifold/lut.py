"""
Tabulated manifold backend on a regular (tensor-product) grid.

File format: CSV with a header row. The control-variable columns must span a
full regular grid (every combination present exactly once); every other column
is a tabulated output. Interpolation is multilinear through SciPy's
RegularGridInterpolator with linear extrapolation outside the grid; the
extrapolation flag is raised whenever any control variable leaves its axis
range.
"""

from __future__ import annotations

import csv
import logging
from pathlib import Path
from typing import Dict, List, Mapping, Sequence, Tuple

import numpy as np
from scipy.interpolate import RegularGridInterpolator

from manifold.errors import ManifoldCapabilityError, ManifoldConfigError

logger = logging.getLogger(__name__)


def _read_csv_columns(path: Path) -> Dict[str, np.ndarray]:
    with open(path, "r", newline="", encoding="utf-8-sig") as f:
        reader = csv.reader(f)
        try:
            header = [h.strip() for h in next(reader)]
        except StopIteration:
            raise ManifoldConfigError(f"Lookup table file is empty: {path}") from None
        rows: List[List[float]] = []
        for lineno, row in enumerate(reader, start=2):
            if not row or all(not c.strip() for c in row):
                continue
            if len(row) != len(header):
                raise ManifoldConfigError(
                    f"{path}:{lineno}: expected {len(header)} columns, got {len(row)}"
                )
            try:
                rows.append([float(c) for c in row])
            except ValueError as exc:
                raise ManifoldConfigError(f"{path}:{lineno}: non-numeric entry ({exc})") from exc
    if len(set(header)) != len(header):
        raise ManifoldConfigError(f"Duplicate column names in {path}: {header}")
    if not rows:
        raise ManifoldConfigError(f"Lookup table has no data rows: {path}")
    data = np.asarray(rows, dtype=np.float64)
    return {name: data[:, j] for j, name in enumerate(header)}


class LookUpTable:
    """Regular-grid lookup table indexed by 2 or 3 control variables."""

    def __init__(
        self,
        axes: Sequence[np.ndarray],
        fields: Mapping[str, np.ndarray],
        input_names: Sequence[str],
        *,
        source: str = "<memory>",
    ):
        self._input_names = tuple(str(n) for n in input_names)
        if len(self._input_names) not in (2, 3):
            raise ManifoldConfigError(
                f"Lookup tables support 2 or 3 control variables, got {list(self._input_names)}"
            )
        if len(axes) != len(self._input_names):
            raise ManifoldConfigError("Number of table axes must match number of control variables.")

        self._axes = tuple(np.asarray(a, dtype=np.float64) for a in axes)
        shape = tuple(a.size for a in self._axes)
        for name, a in zip(self._input_names, self._axes):
            if a.ndim != 1 or a.size < 2:
                raise ManifoldConfigError(f"Axis {name!r} needs at least two points.")
            if not np.all(np.diff(a) > 0.0):
                raise ManifoldConfigError(f"Axis {name!r} must be strictly increasing.")

        self._lower = np.array([a[0] for a in self._axes])
        self._upper = np.array([a[-1] for a in self._axes])
        self._source = source
        self._interp: Dict[str, RegularGridInterpolator] = {}
        for name, values in fields.items():
            values = np.asarray(values, dtype=np.float64)
            if values.shape != shape:
                raise ManifoldConfigError(
                    f"Table field {name!r} has shape {values.shape}, expected {shape}."
                )
            self._interp[str(name)] = RegularGridInterpolator(
                self._axes, values, method="linear", bounds_error=False, fill_value=None
            )

    @classmethod
    def from_csv(cls, path: str | Path, input_names: Sequence[str]) -> "LookUpTable":
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Lookup table file not found: {path}")
        columns = _read_csv_columns(path)
        missing = [n for n in input_names if n not in columns]
        if missing:
            raise ManifoldConfigError(
                f"Control variables {missing} not found in {path}; columns: {list(columns)}"
            )

        axes = [np.unique(columns[n]) for n in input_names]
        shape = tuple(a.size for a in axes)
        n_rows = columns[input_names[0]].size
        if int(np.prod(shape)) != n_rows:
            raise ManifoldConfigError(
                f"Table {path} is not a regular grid: {n_rows} rows for axis sizes {shape}."
            )

        idx = tuple(np.searchsorted(a, columns[n]) for a, n in zip(axes, input_names))
        flat = np.ravel_multi_index(idx, shape)
        if np.unique(flat).size != n_rows:
            raise ManifoldConfigError(f"Table {path} has duplicate grid points.")

        fields: Dict[str, np.ndarray] = {}
        for name, col in columns.items():
            if name in input_names:
                continue
            grid = np.empty(n_rows, dtype=np.float64)
            grid[flat] = col
            fields[name] = grid.reshape(shape)

        logger.info(
            "Loaded lookup table %s: axes=%s shape=%s outputs=%d",
            path,
            list(input_names),
            shape,
            len(fields),
        )
        return cls(axes, fields, input_names, source=str(path))

    @property
    def input_names(self) -> Tuple[str, ...]:
        return self._input_names

    @property
    def output_names(self) -> Tuple[str, ...]:
        return tuple(self._interp)

    def bounds(self) -> Tuple[np.ndarray, np.ndarray]:
        return self._lower.copy(), self._upper.copy()

    def is_inside(self, inputs: Sequence[float]) -> bool:
        x = np.asarray(inputs, dtype=np.float64)
        return bool(np.all(x >= self._lower) and np.all(x <= self._upper))

    def evaluate(self, inputs: Sequence[float], output_names: Sequence[str]) -> Tuple[np.ndarray, bool]:
        x = np.asarray(inputs, dtype=np.float64)
        if x.shape != (len(self._input_names),):
            raise ManifoldConfigError(
                f"Table {self._source} expects {len(self._input_names)} control variables, got {x.shape}"
            )
        missing = [n for n in output_names if n not in self._interp]
        if missing:
            raise ManifoldCapabilityError(missing, consumer=f"lookup in {self._source}", available=self._interp)

        point = x.reshape(1, -1)
        out = np.empty(len(output_names), dtype=np.float64)
        for i, name in enumerate(output_names):
            out[i] = self._interp[name](point)[0]
        return out, not self.is_inside(x)
