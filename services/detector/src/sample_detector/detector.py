"""Sample detector that always reports one fixed bounding box.

Stands in for a real model so the surrounding plumbing (predictions,
matching, identity assignment, publishing) can be exercised end to end.
"""
from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from objdet_shared.events.schemas import UNKNOWN_CLASS, BoundingBox
from objdet_shared.logging import get_logger

log = get_logger(__name__)

# Geometry of the fake detection, in pixels
_FAKE_BOX = (100, 100, 100, 100)


@dataclass
class Detection:
    """One detected object in a frame. ``object_id`` is 0 until assigned."""

    bbox: BoundingBox
    class_id: int = UNKNOWN_CLASS
    object_id: int = 0
    score: float = 1.0


@dataclass(frozen=True)
class Prediction:
    """Where the tracker expects an already known object to be."""

    bbox: BoundingBox
    object_id: int
    class_id: int = UNKNOWN_CLASS
    score: float = 1.0


def _clip_box(box: tuple[int, int, int, int], width: int, height: int) -> BoundingBox:
    x, y, w, h = box
    x1, y1 = min(max(x, 0), width), min(max(y, 0), height)
    x2, y2 = min(max(x + w, 0), width), min(max(y + h, 0), height)
    return BoundingBox(x=x1, y=y1, width=x2 - x1, height=y2 - y1)


class SampleDetector:
    """Placeholder detector.

    Real detectors may use the tracker's predictions to focus the search;
    this one only remembers them.
    """

    def __init__(self, box: tuple[int, int, int, int] = _FAKE_BOX) -> None:
        self._box = box
        self._predictions: list[Prediction] = []
        log.info("detector_ready", kind="sample", box=list(box))

    @property
    def predictions(self) -> list[Prediction]:
        return self._predictions

    def prediction(self, predictions: list[Prediction]) -> None:
        """Provide the tracker's predictions for the upcoming frame."""
        self._predictions = list(predictions)

    def detect(self, frame: np.ndarray) -> list[Detection]:
        """Return exactly one fake detection, clipped to the frame.

        Args:
            frame: HxWx3 (or HxW) uint8 image.
        Returns:
            A single-element list of Detection with an unassigned object id.
        """
        h, w = frame.shape[:2]
        return [Detection(bbox=_clip_box(self._box, w, h), class_id=UNKNOWN_CLASS)]
