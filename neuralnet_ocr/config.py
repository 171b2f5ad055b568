"""
config.py
~~~~~~~~~

Fixed network architecture and environment-driven settings.

The architecture is configuration, not a design variable: the defaults below
describe the 28x28 digit recognizer, and ``NeuralNetwork`` /
``WeightManager`` accept overrides for smaller test topologies.
"""

import os
import logging

# ============================================================================
# ARCHITECTURE
# ============================================================================

# Side length of the square input image, in pixels
IMAGE_SIDE = 28

# The number of pixels in the image
IMAGE_SIZE = IMAGE_SIDE * IMAGE_SIDE

# Each number is the width of a hidden layer
HIDDEN_LAYERS = (300,)

# Class labels recognized by the output layer, in output-neuron order
LABELS = tuple(range(10))

# Learning rate
ETA = 0.2

# ============================================================================
# ENVIRONMENT
# ============================================================================

FALLBACK_DB_PATH = 'models/weights.db'


def default_db_path() -> str:
    """Database path for weight stores opened without an explicit one."""
    return os.getenv('OCR_WEIGHTS_DB', FALLBACK_DB_PATH)


def configure_logging() -> None:
    """
    Set up logging based on environment.

    - In production: silence noisy third-party logs, keep ours at INFO
    - In development: use LOG_LEVEL for everything
    """
    log_level_str = os.getenv('LOG_LEVEL', 'INFO').upper()
    log_level = getattr(logging, log_level_str, logging.INFO)
    is_production = os.getenv('OCR_ENV') == 'production'

    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    if is_production:
        for logger_name in ['matplotlib', 'PIL']:
            logging.getLogger(logger_name).setLevel(logging.WARNING)
        logging.getLogger('neuralnet_ocr').setLevel(logging.INFO)
    else:
        logging.getLogger('neuralnet_ocr').setLevel(log_level)
