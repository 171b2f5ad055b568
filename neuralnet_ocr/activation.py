"""
activation.py
~~~~~~~~~~~~~

Logistic sigmoid activation and its derivative.

Both functions accept Python scalars or numpy arrays.
"""

import numpy as np

# np.exp overflows float64 just above 709
_CLIP = 500.0

# Closest float64 values inside (0, 1); 1/(1+e^-x) rounds to 1.0 from x ~ 37
_LOWEST = np.nextafter(0.0, 1.0)
_HIGHEST = np.nextafter(1.0, 0.0)


def sigmoid(x):
    """The sigmoid function converts weighted sums into neuron outputs."""
    s = 1.0 / (1.0 + np.exp(-np.clip(x, -_CLIP, _CLIP)))
    return np.clip(s, _LOWEST, _HIGHEST)


def sigmoid_prime(x):
    """Derivative of the sigmoid function, evaluated at ``x``."""
    s = sigmoid(x)
    return s * (1.0 - s)
