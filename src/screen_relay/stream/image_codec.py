"""
Image Codec
===========

Downscaling, JPEG encoding and JPEG decoding of captured surfaces.

Design Rules:
    - This is the ONLY place in the codebase that touches image bytes
    - Images are BGR uint8 numpy arrays (OpenCV convention)
    - Fails fast with ImageCodecError on corrupt input
"""

import base64
import binascii
import logging
from typing import Union

import cv2
import numpy as np


logger = logging.getLogger(__name__)

DEFAULT_MAX_WIDTH = 640
DEFAULT_JPEG_QUALITY = 60


class ImageCodecError(Exception):
    """Raised when encoding or decoding an image fails."""
    pass


def downscale(image: np.ndarray, max_width: int = DEFAULT_MAX_WIDTH) -> np.ndarray:
    """
    Shrink an image to ``max_width`` preserving aspect ratio.

    Uses nearest-neighbour resampling to keep the per-frame cost low.
    Images already within the ceiling are returned unchanged.

    Args:
        image: BGR image (H, W, 3)
        max_width: Width ceiling in pixels

    Returns:
        The original array or a downscaled copy
    """
    height, width = image.shape[:2]
    if width <= max_width:
        return image

    scale = max_width / width
    new_height = max(1, int(height * scale))
    return cv2.resize(image, (max_width, new_height), interpolation=cv2.INTER_NEAREST)


def encode_jpeg(
    image: np.ndarray,
    quality: int = DEFAULT_JPEG_QUALITY,
    max_width: int = DEFAULT_MAX_WIDTH,
) -> bytes:
    """
    Downscale if needed and encode to JPEG.

    Args:
        image: BGR image (H, W, 3) or grayscale (H, W), dtype=uint8
        quality: JPEG quality factor 1..100
        max_width: Width ceiling applied before encoding

    Returns:
        Raw JPEG bytes

    Raises:
        ImageCodecError: If the image is invalid or encoding fails
    """
    if not isinstance(image, np.ndarray) or image.ndim not in (2, 3) or image.size == 0:
        raise ImageCodecError(f"Invalid image for encoding: {getattr(image, 'shape', None)}")
    if image.dtype != np.uint8:
        raise ImageCodecError(f"Invalid dtype for encoding: {image.dtype}")

    prepared = downscale(image, max_width)
    ok, buffer = cv2.imencode(".jpg", prepared, [int(cv2.IMWRITE_JPEG_QUALITY), int(quality)])
    if not ok:
        raise ImageCodecError("cv2.imencode failed")
    return buffer.tobytes()


def decode_jpeg(data: Union[str, bytes]) -> np.ndarray:
    """
    Decode a JPEG payload to a BGR numpy array.

    Args:
        data: Base64 text (as sent by the relay) or raw JPEG bytes

    Returns:
        BGR image as np.ndarray (H, W, 3), dtype=uint8

    Raises:
        ImageCodecError: If decoding fails or the image is invalid
    """
    if isinstance(data, str):
        try:
            image_bytes = base64.b64decode(data, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ImageCodecError(f"Base64 decode failed: {e}")
    else:
        image_bytes = bytes(data)

    if not image_bytes:
        raise ImageCodecError("Empty image payload")

    nparr = np.frombuffer(image_bytes, np.uint8)
    bgr = cv2.imdecode(nparr, cv2.IMREAD_COLOR)

    if bgr is None:
        raise ImageCodecError("cv2.imdecode returned None")

    if len(bgr.shape) != 3 or bgr.shape[2] != 3:
        raise ImageCodecError(f"Invalid image shape: {bgr.shape}")

    return bgr
