"""Overlap-based matching of detections to tracker predictions.

A detection and a prediction of the same class qualify as a pair when
their intersection covers at least ``min_overlap`` percent of BOTH boxes.
Among qualifying pairs the largest intersection wins. Each prediction is
assigned to at most one detection.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, Sequence

import numpy as np
from scipy.optimize import linear_sum_assignment

from objdet_shared.events.schemas import BoundingBox

STRATEGIES = ("greedy", "optimal")


class _Boxed(Protocol):
    bbox: BoundingBox
    class_id: int


@dataclass(frozen=True)
class Match:
    """Pairing for one detection; ``pred_index`` is None when nothing matched."""

    det_index: int
    pred_index: int | None = None

    @property
    def matched(self) -> bool:
        return self.pred_index is not None


def intersection_area(a: BoundingBox, b: BoundingBox) -> int:
    """Area of the intersection rectangle of two boxes (0 if disjoint)."""
    w = min(a.x + a.width, b.x + b.width) - max(a.x, b.x)
    h = min(a.y + a.height, b.y + b.height) - max(a.y, b.y)
    if w <= 0 or h <= 0:
        return 0
    return w * h


def qualifying_overlap(a: BoundingBox, b: BoundingBox, min_overlap: float) -> int:
    """Intersection area if it covers ``min_overlap`` percent of both boxes, else 0.

    Zero-area boxes and disjoint boxes never qualify.
    """
    area_a, area_b = a.area, b.area
    if area_a == 0 or area_b == 0:
        return 0
    inter = intersection_area(a, b)
    if inter == 0:
        return 0
    # inter / area >= min_overlap / 100, without the division
    if inter * 100 < min_overlap * area_a or inter * 100 < min_overlap * area_b:
        return 0
    return inter


def overlap_matrix(
    detections: Sequence[_Boxed],
    predictions: Sequence[_Boxed],
    min_overlap: float,
) -> np.ndarray:
    """(n_detections, n_predictions) matrix of qualifying intersection areas."""
    scores = np.zeros((len(detections), len(predictions)), dtype=np.int64)
    for i, det in enumerate(detections):
        for j, pred in enumerate(predictions):
            if det.class_id != pred.class_id:
                continue
            scores[i, j] = qualifying_overlap(det.bbox, pred.bbox, min_overlap)
    return scores


def _greedy(scores: np.ndarray) -> list[int | None]:
    # Detections claim predictions in order; the first detection wins.
    claimed: set[int] = set()
    assignment: list[int | None] = []
    for row in scores:
        best, best_area = None, 0
        for j, area in enumerate(row):
            if area > best_area and j not in claimed:
                best, best_area = j, area
        if best is not None:
            claimed.add(best)
        assignment.append(best)
    return assignment


def _optimal(scores: np.ndarray) -> list[int | None]:
    assignment: list[int | None] = [None] * scores.shape[0]
    if scores.size == 0:
        return assignment
    rows, cols = linear_sum_assignment(scores, maximize=True)
    for i, j in zip(rows, cols):
        if scores[i, j] > 0:
            assignment[int(i)] = int(j)
    return assignment


def match(
    detections: Sequence[_Boxed],
    predictions: Sequence[_Boxed],
    min_overlap_percent: float,
    strategy: str = "greedy",
) -> list[Match]:
    """Pair each detection with at most one prediction.

    Args:
        detections: New detections of the current frame.
        predictions: Tracker predictions for the same instant.
        min_overlap_percent: Required coverage of both boxes, in [0, 100].
        strategy: "greedy" visits detections in order and lets each take
            the largest free qualifying prediction (ties go to the lowest
            prediction index); "optimal" maximises the total overlap.
    Returns:
        One Match per detection, in detection order.
    """
    if not 0.0 <= min_overlap_percent <= 100.0:
        raise ValueError(f"min_overlap_percent must be within [0, 100], got {min_overlap_percent}")
    if strategy not in STRATEGIES:
        raise ValueError(f"unknown match strategy {strategy!r}")

    scores = overlap_matrix(detections, predictions, min_overlap_percent)
    assign = _greedy(scores) if strategy == "greedy" else _optimal(scores)
    return [Match(det_index=i, pred_index=j) for i, j in enumerate(assign)]


class MatcherOverlap:
    """Stateful wrapper holding the overlap threshold and strategy."""

    def __init__(self, min_overlap: float = 50.0, strategy: str = "greedy") -> None:
        if strategy not in STRATEGIES:
            raise ValueError(f"unknown match strategy {strategy!r}")
        self._strategy = strategy
        self._min_overlap = 0.0
        self.set_min_overlap(min_overlap)

    @property
    def min_overlap(self) -> float:
        return self._min_overlap

    @property
    def strategy(self) -> str:
        return self._strategy

    def set_min_overlap(self, percent: float) -> None:
        if not 0.0 <= percent <= 100.0:
            raise ValueError(f"min_overlap must be within [0, 100], got {percent}")
        self._min_overlap = float(percent)

    def match(
        self, detections: Sequence[_Boxed], predictions: Sequence[_Boxed]
    ) -> list[Match]:
        return match(detections, predictions, self._min_overlap, self._strategy)
