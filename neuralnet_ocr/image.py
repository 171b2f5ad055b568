"""
image.py
~~~~~~~~

Turn bitmaps into input vectors for the network.

Images are reduced to grayscale in [0, 1], resampled to a square of
``IMAGE_SIDE`` pixels and flattened row by row.
"""

import logging
from typing import Optional

import numpy as np

# Use non-GUI backend for matplotlib (required for server environments)
import matplotlib
matplotlib.use('Agg')
import matplotlib.image as mpimg
import matplotlib.pyplot as plt

from neuralnet_ocr.config import IMAGE_SIDE

logger = logging.getLogger(__name__)

# ITU-R 601 luma coefficients
_LUMA = np.array([0.299, 0.587, 0.114])


def load_image(path: str) -> np.ndarray:
    """Read an image file into a pixel array."""
    pixels = mpimg.imread(path)
    logger.debug(f"Loaded image {path} with shape {pixels.shape}")
    return pixels


def to_grayscale(pixels: np.ndarray) -> np.ndarray:
    """
    Convert a bitmap to a 2-D float array in [0, 1].

    Accepts 2-D grayscale, RGB or RGBA arrays. Integer pixels are divided by
    the maximum of their dtype; alpha is ignored.
    """
    pixels = np.asarray(pixels)
    if np.issubdtype(pixels.dtype, np.integer):
        pixels = pixels / np.iinfo(pixels.dtype).max
    else:
        pixels = pixels.astype(np.float64)

    if pixels.ndim == 2:
        return pixels
    if pixels.ndim == 3 and pixels.shape[2] in (3, 4):
        return pixels[:, :, :3] @ _LUMA
    raise ValueError(f"Unsupported image shape {pixels.shape}")


def scale_image(pixels: np.ndarray, side: int = IMAGE_SIDE) -> np.ndarray:
    """Resample a 2-D image to ``side`` x ``side`` (nearest neighbour)."""
    pixels = np.asarray(pixels)
    if pixels.ndim != 2 or 0 in pixels.shape:
        raise ValueError(f"Expected a non-empty 2-D image, got {pixels.shape}")
    if side < 1:
        raise ValueError(f"side must be positive, got {side}")

    height, width = pixels.shape
    rows = (np.arange(side) * height) // side
    cols = (np.arange(side) * width) // side
    return pixels[np.ix_(rows, cols)]


def image_to_vector(
    pixels: np.ndarray,
    side: int = IMAGE_SIDE,
    invert: bool = False
) -> np.ndarray:
    """
    Produce the network's input vector from a bitmap.

    Args:
        pixels: Grayscale, RGB or RGBA pixel array
        side: Side length of the square the image is resampled to
        invert: Flip intensities, for dark digits on a light background

    Returns:
        Float64 vector of length side * side
    """
    gray = scale_image(to_grayscale(pixels), side)
    if invert:
        gray = 1.0 - gray
    return gray.reshape(-1).astype(np.float64)


def save_image(
    vector: np.ndarray,
    path: str,
    title: Optional[str] = None
) -> None:
    """
    Write an input vector back out as a picture. Used for debugging.

    Args:
        vector: Square number of pixel values, row by row
        path: Output file; the format follows the extension
        title: Optional caption drawn above the image
    """
    vector = np.asarray(vector, dtype=np.float64)
    side = int(round(np.sqrt(vector.size)))
    if side * side != vector.size:
        raise ValueError(f"Cannot reshape {vector.size} values into a square")

    plt.figure(figsize=(3, 3))
    plt.imshow(vector.reshape(side, side), cmap='gray')
    if title:
        plt.title(title)
    plt.axis('off')
    plt.savefig(path, bbox_inches='tight')
    plt.close()
    logger.debug(f"Saved debug image {path}")
