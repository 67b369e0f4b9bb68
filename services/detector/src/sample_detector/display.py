"""Optional debug window showing frames with their detections."""
from __future__ import annotations

from typing import Sequence

import cv2
import numpy as np

from sample_detector.detector import Detection

WINDOW_NAME = "Sample detector"

_WHITE = (255, 255, 255)


def draw_detections(image: np.ndarray, detections: Sequence[Detection]) -> np.ndarray:
    """Draw each detection's box and object id onto ``image`` (in-place)."""
    for det in detections:
        b = det.bbox
        cv2.rectangle(image, (b.x, b.y), (b.x + b.width, b.y + b.height), _WHITE, 1)
        cv2.putText(
            image,
            str(det.object_id),
            (b.x, max(b.y - 4, 10)),
            cv2.FONT_HERSHEY_SIMPLEX,
            0.4,
            _WHITE,
            1,
        )
    return image


class FrameDisplay:
    """HighGUI window; needs a display, so only created when enabled."""

    def __init__(self, window_name: str = WINDOW_NAME) -> None:
        self._window = window_name
        cv2.namedWindow(self._window, cv2.WINDOW_AUTOSIZE)

    def show(self, image: np.ndarray, detections: Sequence[Detection]) -> None:
        cv2.imshow(self._window, draw_detections(image, detections))
        cv2.waitKey(1)  # process window events

    def close(self) -> None:
        cv2.destroyWindow(self._window)
