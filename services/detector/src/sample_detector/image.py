"""Decode FrameMessages into numpy images (BGR, OpenCV channel order)."""
from __future__ import annotations

import base64
import binascii
from io import BytesIO

import cv2
import numpy as np
from PIL import Image, UnidentifiedImageError

from objdet_shared.events.schemas import COMPRESSED_ENCODINGS, RAW_ENCODINGS, FrameMessage


class FrameDecodeError(ValueError):
    """The frame payload could not be turned into an image."""


def decode_frame(frame: FrameMessage) -> np.ndarray:
    """Decode a frame into an HxWx3 BGR array (HxW for ``mono8``).

    Raises:
        FrameDecodeError: on bad base64, an unknown encoding, a corrupt
            compressed image or a raw buffer of the wrong size.
    """
    try:
        data = base64.b64decode(frame.data_b64, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise FrameDecodeError(f"invalid base64 payload: {exc}") from exc

    if frame.encoding in COMPRESSED_ENCODINGS:
        try:
            img = Image.open(BytesIO(data)).convert("RGB")
        except (UnidentifiedImageError, OSError) as exc:
            raise FrameDecodeError(f"cannot decode {frame.encoding} image: {exc}") from exc
        return cv2.cvtColor(np.array(img), cv2.COLOR_RGB2BGR)

    channels = RAW_ENCODINGS.get(frame.encoding)
    if channels is None:
        raise FrameDecodeError(f"unsupported encoding {frame.encoding!r}")

    expected = frame.width * frame.height * channels
    if frame.width <= 0 or frame.height <= 0 or len(data) != expected:
        raise FrameDecodeError(
            f"{frame.encoding} buffer holds {len(data)} bytes, "
            f"expected {expected} for {frame.width}x{frame.height}"
        )

    pixels = np.frombuffer(data, dtype=np.uint8)
    if channels == 1:
        return pixels.reshape(frame.height, frame.width).copy()
    img = pixels.reshape(frame.height, frame.width, channels)
    if frame.encoding == "rgb8":
        return cv2.cvtColor(img, cv2.COLOR_RGB2BGR)
    return img.copy()
