"""
neuralnet_ocr package
~~~~~~~~~~~~~~~~~~~~~

Feedforward neural network for handwritten digit recognition.
Contains the neuron and network implementation, the SQLite weight store,
and image preprocessing utilities.
"""

from neuralnet_ocr.network import NeuralNetwork, NumericalInstabilityError
from neuralnet_ocr.neuron import Neuron
from neuralnet_ocr.weight_store import WeightManager

__version__ = "1.0.0"

__all__ = [
    "NeuralNetwork",
    "NumericalInstabilityError",
    "Neuron",
    "WeightManager",
]
