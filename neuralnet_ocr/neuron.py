"""
neuron.py
~~~~~~~~~

A single fully-connected unit: incoming weights, bias, and the per-pass state
that backpropagation reads back.
"""

from typing import List, Optional, Sequence, Union

import numpy as np

Vector = Union[Sequence[float], np.ndarray]


class Neuron:
    """
    One unit of a layer.

    Weights are stored fan-in: ``weights[k]`` is the connection from input
    ``k`` of the previous layer to this neuron. ``last_inputs``,
    ``last_weighted_sum`` and ``delta`` describe the example currently being
    processed and must be produced by a forward (or backward) pass before
    they are read.
    """

    def __init__(
        self,
        identity: int,
        weights: Vector,
        bias: float,
        input_width: Optional[int] = None
    ):
        """
        Args:
            identity: Class label for output neurons, position for hidden ones
            weights: Initial incoming weights
            bias: Initial bias
            input_width: Expected number of weights; checked when given

        Raises:
            ValueError: If the weights are not a 1-D vector of input_width
        """
        self._identity = int(identity)
        weights = np.array(weights, dtype=np.float64)
        if weights.ndim != 1:
            raise ValueError(
                f"Neuron {identity}: weights must be a 1-D vector, "
                f"got shape {weights.shape}"
            )
        if input_width is not None and weights.shape[0] != input_width:
            raise ValueError(
                f"Neuron {identity}: expected {input_width} weights, "
                f"got {weights.shape[0]}"
            )
        self.weights = weights
        self.bias = float(bias)
        self.reset()

    @property
    def identity(self) -> int:
        return self._identity

    @property
    def input_width(self) -> int:
        return self.weights.shape[0]

    def set_weights(self, weights: Vector) -> None:
        """Replace the weight vector. Its length may not change."""
        weights = np.array(weights, dtype=np.float64)
        if weights.shape != self.weights.shape:
            raise ValueError(
                f"Neuron {self._identity}: expected {self.input_width} "
                f"weights, got shape {weights.shape}"
            )
        self.weights = weights

    def weighted_sum(self, inputs: Vector) -> float:
        """
        Compute Σ(weight·input) + bias and cache it with its inputs.

        Clears the delta, so a backward pass must follow before it is read.

        The activation function is applied by the caller.
        """
        inputs = np.asarray(inputs, dtype=np.float64)
        if inputs.shape != self.weights.shape:
            raise ValueError(
                f"Neuron {self._identity}: expected {self.input_width} "
                f"inputs, got shape {inputs.shape}"
            )
        total = float(np.dot(self.weights, inputs) + self.bias)
        self._last_inputs = inputs
        self._last_weighted_sum = total
        # any delta belongs to the previous example
        self._delta = None
        return total

    def reset(self) -> None:
        """Forget all per-pass state."""
        self._last_inputs: Optional[np.ndarray] = None
        self._last_weighted_sum: Optional[float] = None
        self._delta: Optional[float] = None

    @property
    def last_inputs(self) -> np.ndarray:
        if self._last_inputs is None:
            raise RuntimeError(
                f"Neuron {self._identity} has not seen a forward pass"
            )
        return self._last_inputs

    @property
    def last_weighted_sum(self) -> float:
        if self._last_weighted_sum is None:
            raise RuntimeError(
                f"Neuron {self._identity} has not seen a forward pass"
            )
        return self._last_weighted_sum

    @property
    def delta(self) -> float:
        if self._delta is None:
            raise RuntimeError(
                f"Neuron {self._identity} has no delta for this example"
            )
        return self._delta

    @delta.setter
    def delta(self, value: float) -> None:
        self._delta = float(value)

    def __repr__(self) -> str:
        return (
            f"Neuron(identity={self._identity}, inputs={self.input_width}, "
            f"bias={self.bias:.4f})"
        )


# A layer is an ordered list of neurons sharing one input vector
Layer = List[Neuron]
