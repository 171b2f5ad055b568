"""
network.py
~~~~~~~~~~

Fully-connected feedforward network for digit recognition.

The network is built from a fixed topology: hidden layers whose neurons are
identified by position, and an output layer whose neurons are identified by
the class label they stand for. Training is online backpropagation, one
example at a time, with the logistic sigmoid as the only activation.

Not safe for concurrent training: every neuron caches the state of the
example currently being processed.
"""

import math
import logging
from typing import List, Sequence, Tuple

import numpy as np

from neuralnet_ocr import config
from neuralnet_ocr.activation import sigmoid, sigmoid_prime
from neuralnet_ocr.neuron import Layer, Neuron, Vector
from neuralnet_ocr.weight_store import WeightManager

logger = logging.getLogger(__name__)

# Weight update multipliers. The default re-applies the sigmoid to each raw
# cached input, reproducing the rule the recognizer was originally trained
# with; RAW_INPUTS is the textbook gradient.
SIGMOID_INPUTS = 'sigmoid_inputs'
RAW_INPUTS = 'raw_inputs'
UPDATE_RULES = (SIGMOID_INPUTS, RAW_INPUTS)

# How many candidates guess() reports at debug level
REPORTED_GUESSES = 5


class NumericalInstabilityError(ArithmeticError):
    """Raised when a pass produces NaN or infinite values."""


class NeuralNetwork:
    """
    Layered network of sigmoid neurons backed by a weight store.

    The weight store is any object offering ``get_weights``, ``get_bias``,
    ``set_weights``, ``set_bias`` and ``save``, keyed by (layer index,
    neuron identity). ``WeightManager`` is the SQLite implementation.
    """

    def __init__(
        self,
        weight_manager=None,
        input_size: int = config.IMAGE_SIZE,
        hidden_layers: Sequence[int] = config.HIDDEN_LAYERS,
        labels: Sequence[int] = config.LABELS,
        learning_rate: float = config.ETA,
        update_rule: str = SIGMOID_INPUTS
    ):
        """
        Build the topology and pull initial parameters from the store.

        Args:
            weight_manager: Weight store; a WeightManager on the default
                database is opened when omitted
            input_size: Length of an input vector
            hidden_layers: Width of each hidden layer
            labels: Class labels, one output neuron each, in output order
            learning_rate: Step size for every weight and bias update
            update_rule: SIGMOID_INPUTS or RAW_INPUTS

        Raises:
            ValueError: On invalid configuration or weights of the wrong length
        """
        self.input_size = _positive_int(input_size, 'input_size')
        self.hidden_layers = [
            _positive_int(width, 'hidden layer width') for width in hidden_layers
        ]
        self.labels = [int(label) for label in labels]
        if not self.labels:
            raise ValueError("At least one class label is required")
        if len(set(self.labels)) != len(self.labels):
            raise ValueError(f"Class labels must be unique, got {self.labels}")
        if not (math.isfinite(learning_rate) and learning_rate > 0):
            raise ValueError(
                f"learning_rate must be a positive number, got {learning_rate}"
            )
        if update_rule not in UPDATE_RULES:
            raise ValueError(
                f"update_rule must be one of {UPDATE_RULES}, got {update_rule!r}"
            )
        self.learning_rate = float(learning_rate)
        self.update_rule = update_rule

        if weight_manager is None:
            weight_manager = WeightManager(
                self.input_size, self.hidden_layers, self.labels
            )
        self.weight_manager = weight_manager

        self.layers: List[Layer] = []
        widths = self.hidden_layers + [len(self.labels)]
        for j, width in enumerate(widths):
            fan_in = self.input_size if j == 0 else widths[j - 1]
            is_output = j == len(widths) - 1
            layer: Layer = []
            for k in range(width):
                # output neurons are identified by their label, not position
                neuron_id = self.labels[k] if is_output else k
                layer.append(Neuron(
                    neuron_id,
                    self.weight_manager.get_weights(j, neuron_id),
                    self.weight_manager.get_bias(j, neuron_id),
                    input_width=fan_in
                ))
            self.layers.append(layer)

        logger.info(
            f"Built network {self.sizes} with labels {self.labels}, "
            f"eta={self.learning_rate}, update_rule={self.update_rule}"
        )

    @property
    def sizes(self) -> List[int]:
        """Layer widths, input first."""
        return [self.input_size] + [len(layer) for layer in self.layers]

    @property
    def output_layer(self) -> Layer:
        return self.layers[-1]

    # ------------------------------------------------------------------
    # Forward propagation
    # ------------------------------------------------------------------

    def forward(self, input_vector: Vector) -> np.ndarray:
        """
        Propagate the input through the network.

        Every neuron caches its inputs and weighted sum as a side effect.

        Args:
            input_vector: Values for the first layer, length input_size

        Returns:
            Activated outputs of the last layer, in output-neuron order

        Raises:
            ValueError: If the input has the wrong length
            NumericalInstabilityError: If any weighted sum or output is not finite
        """
        last_output = np.array(input_vector, dtype=np.float64)
        if last_output.shape != (self.input_size,):
            raise ValueError(
                f"Expected an input vector of length {self.input_size}, "
                f"got shape {last_output.shape}"
            )

        for i, layer in enumerate(self.layers):
            weighted_sums = np.array(
                [neuron.weighted_sum(last_output) for neuron in layer]
            )
            if not np.all(np.isfinite(weighted_sums)):
                raise NumericalInstabilityError(
                    f"Non-finite weighted sum in layer {i}"
                )
            last_output = sigmoid(weighted_sums)

        if not np.all(np.isfinite(last_output)):
            raise NumericalInstabilityError("Non-finite network output")
        return last_output

    # ------------------------------------------------------------------
    # Training
    # ------------------------------------------------------------------

    def train(self, input_vector: Vector, correct_label: int) -> np.ndarray:
        """
        Run one online backpropagation step on a single labeled example.

        Updated weights and biases are written to the weight store, but not
        saved; call save_weights() to persist them.

        Args:
            input_vector: The example, length input_size
            correct_label: One of the configured labels

        Returns:
            The output vector computed before the update

        Raises:
            ValueError: On a wrong-length input or an unknown label
            NumericalInstabilityError: If the pass or update is not finite
        """
        if correct_label not in self.labels:
            raise ValueError(
                f"Unknown label {correct_label!r}, expected one of {self.labels}"
            )

        # Always a fresh pass: cached neuron state must belong to this example
        outputs = self.forward(input_vector)

        self._output_deltas(outputs, correct_label)
        self._hidden_deltas()
        self._update_parameters()

        logger.debug(
            f"Trained on label {correct_label}: "
            f"output {outputs[self.labels.index(correct_label)]:.4f}"
        )
        return outputs

    def _output_deltas(self, outputs: np.ndarray, correct_label: int) -> None:
        for neuron, output in zip(self.output_layer, outputs):
            target = 1.0 if neuron.identity == correct_label else 0.0
            neuron.delta = (
                sigmoid_prime(neuron.last_weighted_sum) * (target - output)
            )

    def _hidden_deltas(self) -> None:
        # going backwards, for each layer except the output layer
        for i in range(len(self.layers) - 2, -1, -1):
            next_layer = self.layers[i + 1]
            for j, neuron in enumerate(self.layers[i]):
                # the weight from neuron j lives on each downstream neuron
                weight_delta_sum = 0.0
                for downstream in next_layer:
                    weight_delta_sum += downstream.delta * downstream.weights[j]
                neuron.delta = (
                    sigmoid_prime(neuron.last_weighted_sum) * weight_delta_sum
                )

    def _update_parameters(self) -> None:
        updated: List[Tuple[int, Neuron, np.ndarray, float]] = []
        for i, layer in enumerate(self.layers):
            for neuron in layer:
                if self.update_rule == SIGMOID_INPUTS:
                    multipliers = sigmoid(neuron.last_inputs)
                else:
                    multipliers = neuron.last_inputs
                weights = neuron.weights + (
                    self.learning_rate * multipliers * neuron.delta
                )
                bias = neuron.bias + self.learning_rate * 1.0 * neuron.delta
                if not (np.all(np.isfinite(weights)) and math.isfinite(bias)):
                    raise NumericalInstabilityError(
                        f"Non-finite update for neuron {neuron.identity} "
                        f"in layer {i}"
                    )
                updated.append((i, neuron, weights, bias))

        # Only touch neurons and the store once the whole update is finite
        for i, neuron, weights, bias in updated:
            neuron.set_weights(weights)
            neuron.bias = bias
            self.weight_manager.set_weights(i, neuron.identity, weights)
            self.weight_manager.set_bias(i, neuron.identity, bias)

    def save_weights(self):
        """Flush the weight store to durable storage."""
        return self.weight_manager.save()

    # ------------------------------------------------------------------
    # Inference
    # ------------------------------------------------------------------

    def rank(self, input_vector: Vector) -> List[Tuple[int, float]]:
        """
        Rank every label by its output activation, best first.

        Exact ties are broken in favour of the greater label.

        Returns:
            List of (label, activation) pairs
        """
        outputs = self.forward(input_vector)
        pairs = [
            (neuron.identity, float(output))
            for neuron, output in zip(self.output_layer, outputs)
        ]
        return sorted(pairs, key=lambda pair: (pair[1], pair[0]), reverse=True)

    def guess(self, input_vector: Vector) -> int:
        """Return the label whose output neuron is most active."""
        ranking = self.rank(input_vector)
        for place, (label, activation) in enumerate(
            ranking[:REPORTED_GUESSES], start=1
        ):
            logger.debug(f"Guess {place}: {label} ({activation:.4f})")
        return ranking[0][0]


def _positive_int(value, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, np.integer)):
        raise ValueError(f"{name} must be an integer, got {value!r}")
    if value < 1:
        raise ValueError(f"{name} must be positive, got {value}")
    return int(value)
