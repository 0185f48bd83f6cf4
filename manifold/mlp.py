"""
Multilayer-perceptron manifold backend.

Network parameter files are YAML documents with a top-level ``networks`` list.
Each network entry holds:

- ``inputs`` / ``outputs``: variable names (manifold-native naming)
- ``input_min`` / ``input_max``: training range, used for min-max input scaling
  and as the validity domain (outside it the query is flagged as extrapolated)
- ``output_min`` / ``output_max``: min-max output scaling
- ``layers``: list of ``{weights, biases, activation}``; weights are stored
  row-major as (n_out, n_in)

When several networks provide the same output, the first one in the file wins
(input/output map); one forward pass is done per network involved in a query.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Sequence, Tuple

import numpy as np
import yaml

from manifold.errors import ManifoldCapabilityError, ManifoldConfigError

logger = logging.getLogger(__name__)


def _sigmoid(x: np.ndarray) -> np.ndarray:
    return 1.0 / (1.0 + np.exp(-x))


ACTIVATIONS: Dict[str, Callable[[np.ndarray], np.ndarray]] = {
    "linear": lambda x: x,
    "relu": lambda x: np.maximum(x, 0.0),
    "elu": lambda x: np.where(x > 0.0, x, np.expm1(np.minimum(x, 0.0))),
    "tanh": np.tanh,
    "sigmoid": _sigmoid,
    "swish": lambda x: x * _sigmoid(x),
    "exponential": np.exp,
    "gelu": lambda x: 0.5 * x * (1.0 + np.tanh(np.sqrt(2.0 / np.pi) * (x + 0.044715 * x**3))),
}


@dataclass(slots=True)
class DenseLayer:
    weights: np.ndarray  # (n_out, n_in)
    biases: np.ndarray  # (n_out,)
    activation: str = "linear"

    def __post_init__(self) -> None:
        self.weights = np.atleast_2d(np.asarray(self.weights, dtype=np.float64))
        self.biases = np.asarray(self.biases, dtype=np.float64).reshape(-1)
        if self.biases.shape != (self.weights.shape[0],):
            raise ManifoldConfigError(
                f"Layer biases shape {self.biases.shape} != ({self.weights.shape[0]},)"
            )
        if self.activation not in ACTIVATIONS:
            raise ManifoldConfigError(
                f"Unknown activation function {self.activation!r}. Available: {sorted(ACTIVATIONS)}"
            )

    def __call__(self, x: np.ndarray) -> np.ndarray:
        return ACTIVATIONS[self.activation](self.weights @ x + self.biases)


@dataclass(slots=True)
class MLPNetwork:
    """Single feed-forward network with min-max input/output scaling."""

    name: str
    inputs: Tuple[str, ...]
    outputs: Tuple[str, ...]
    input_min: np.ndarray
    input_max: np.ndarray
    output_min: np.ndarray
    output_max: np.ndarray
    layers: List[DenseLayer]

    def __post_init__(self) -> None:
        n_in, n_out = len(self.inputs), len(self.outputs)
        for attr, n in (("input_min", n_in), ("input_max", n_in), ("output_min", n_out), ("output_max", n_out)):
            arr = np.asarray(getattr(self, attr), dtype=np.float64).reshape(-1)
            if arr.shape != (n,):
                raise ManifoldConfigError(f"Network {self.name!r}: {attr} has shape {arr.shape}, expected ({n},)")
            setattr(self, attr, arr)
        if np.any(self.input_max <= self.input_min):
            raise ManifoldConfigError(f"Network {self.name!r}: input_max must exceed input_min.")
        if not self.layers:
            raise ManifoldConfigError(f"Network {self.name!r} has no layers.")

        width = n_in
        for i, layer in enumerate(self.layers):
            if layer.weights.shape[1] != width:
                raise ManifoldConfigError(
                    f"Network {self.name!r}: layer {i} expects {layer.weights.shape[1]} inputs, previous width is {width}."
                )
            width = layer.weights.shape[0]
        if width != n_out:
            raise ManifoldConfigError(f"Network {self.name!r}: last layer width {width} != {n_out} outputs.")

    def is_inside(self, x: np.ndarray) -> bool:
        return bool(np.all(x >= self.input_min) and np.all(x <= self.input_max))

    def predict(self, x: np.ndarray) -> np.ndarray:
        y = (x - self.input_min) / (self.input_max - self.input_min)
        for layer in self.layers:
            y = layer(y)
        return self.output_min + y * (self.output_max - self.output_min)


def _build_network(entry: Mapping[str, Any], index: int) -> MLPNetwork:
    required = ("inputs", "outputs", "input_min", "input_max", "output_min", "output_max", "layers")
    for key in required:
        if key not in entry:
            raise ManifoldConfigError(f"Network #{index}: missing required key {key!r}.")
    layers = [
        DenseLayer(
            weights=layer["weights"],
            biases=layer["biases"],
            activation=str(layer.get("activation", "linear")).lower(),
        )
        for layer in entry["layers"]
    ]
    return MLPNetwork(
        name=str(entry.get("name", f"network_{index}")),
        inputs=tuple(str(n) for n in entry["inputs"]),
        outputs=tuple(str(n) for n in entry["outputs"]),
        input_min=entry["input_min"],
        input_max=entry["input_max"],
        output_min=entry["output_min"],
        output_max=entry["output_max"],
        layers=layers,
    )


class MLPCollection:
    """Set of networks sharing the same control variables."""

    def __init__(self, networks: Sequence[MLPNetwork], input_names: Sequence[str], *, source: str = "<memory>"):
        self._input_names = tuple(str(n) for n in input_names)
        self._source = source
        self._networks: List[MLPNetwork] = []
        self._perm: List[np.ndarray] = []
        for net in networks:
            if set(net.inputs) != set(self._input_names) or len(net.inputs) != len(self._input_names):
                logger.debug(
                    "Skipping network %s in %s: inputs %s do not match %s",
                    net.name,
                    source,
                    list(net.inputs),
                    list(self._input_names),
                )
                continue
            self._networks.append(net)
            self._perm.append(np.array([self._input_names.index(n) for n in net.inputs], dtype=int))
        if not self._networks:
            raise ManifoldConfigError(
                f"No network in {source} takes control variables {list(self._input_names)}."
            )

        # output name -> (network index, output index); first provider wins
        self._io_map: Dict[str, Tuple[int, int]] = {}
        for i_net, net in enumerate(self._networks):
            for i_out, name in enumerate(net.outputs):
                self._io_map.setdefault(name, (i_net, i_out))

    @classmethod
    def from_file(cls, path: str | Path, input_names: Sequence[str]) -> "MLPCollection":
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"MLP parameter file not found: {path}")
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
        if not isinstance(data, dict) or not isinstance(data.get("networks"), list):
            raise ManifoldConfigError(f"Invalid MLP file {path}: expected top-level 'networks' list")
        networks = [_build_network(entry, i) for i, entry in enumerate(data["networks"])]
        coll = cls(networks, input_names, source=str(path))
        logger.info(
            "Loaded %d MLP(s) from %s: inputs=%s outputs=%d",
            len(coll._networks),
            path,
            list(input_names),
            len(coll.output_names),
        )
        return coll

    @property
    def input_names(self) -> Tuple[str, ...]:
        return self._input_names

    @property
    def output_names(self) -> Tuple[str, ...]:
        return tuple(self._io_map)

    def evaluate(self, inputs: Sequence[float], output_names: Sequence[str]) -> Tuple[np.ndarray, bool]:
        x = np.asarray(inputs, dtype=np.float64)
        if x.shape != (len(self._input_names),):
            raise ManifoldConfigError(
                f"MLP {self._source} expects {len(self._input_names)} inputs, got {x.shape}"
            )
        missing = [n for n in output_names if n not in self._io_map]
        if missing:
            raise ManifoldCapabilityError(missing, consumer=f"MLP {self._source}", available=self._io_map)

        out = np.empty(len(output_names), dtype=np.float64)
        predictions: Dict[int, np.ndarray] = {}
        extrapolated = False
        for i, name in enumerate(output_names):
            i_net, i_out = self._io_map[name]
            if i_net not in predictions:
                net = self._networks[i_net]
                x_net = x[self._perm[i_net]]
                predictions[i_net] = net.predict(x_net)
                extrapolated = extrapolated or not net.is_inside(x_net)
            out[i] = predictions[i_net][i_out]
        return out, extrapolated
