"""Object identity allocation and assignment."""
from __future__ import annotations

import threading
from typing import Sequence

from sample_detector.detector import Detection, Prediction
from sample_detector.matcher import Match

# Identities run 1..MAX_OBJECT_ID and then start over at 1
MAX_OBJECT_ID = 100_000


class ObjectIdAllocator:
    """Hands out object identities, wrapping back to 1 after ``ceiling``.

    Safe to share between pipelines running on different threads.
    """

    def __init__(self, ceiling: int = MAX_OBJECT_ID) -> None:
        if ceiling < 1:
            raise ValueError(f"ceiling must be positive, got {ceiling}")
        self._ceiling = ceiling
        self._last = 0
        self._lock = threading.Lock()

    def next_id(self) -> int:
        with self._lock:
            if self._last >= self._ceiling:
                self._last = 0
            self._last += 1
            return self._last

    def peek(self) -> int:
        """Last identity handed out (0 if none yet)."""
        with self._lock:
            return self._last


def assign_object_ids(
    detections: Sequence[Detection],
    predictions: Sequence[Prediction],
    matches: Sequence[Match],
    allocator: ObjectIdAllocator,
) -> int:
    """Set ``object_id`` on every detection covered by ``matches``.

    Matched detections inherit the prediction's identity; unmatched ones are
    new objects and get a fresh identity from ``allocator``.

    Returns:
        Number of freshly minted identities.
    """
    minted = 0
    for m in matches:
        det = detections[m.det_index]
        if m.pred_index is not None:
            det.object_id = predictions[m.pred_index].object_id
        else:
            det.object_id = allocator.next_id()
            minted += 1
    return minted
