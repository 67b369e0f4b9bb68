"""Translation between bus messages and detector-side values."""
from __future__ import annotations

from typing import Iterable

from objdet_shared.events.schemas import DetectionArray, DetectionHeader, DetectionMsg, FrameMessage
from objdet_shared.logging import get_logger

from sample_detector.detector import Detection, Prediction

log = get_logger(__name__)


def header_from_frame(frame: FrameMessage) -> DetectionHeader:
    return DetectionHeader(
        camera_id=frame.camera_id,
        timestamp_ns=frame.timestamp_ns,
        frame_seq=frame.frame_seq,
    )


def messages_to_predictions(messages: Iterable[DetectionMsg]) -> list[Prediction]:
    """Convert tracker output to Predictions.

    Predictions without a valid identity (< 1) cannot be inherited by a
    detection and are dropped.
    """
    predictions: list[Prediction] = []
    for msg in messages:
        if msg.object_id < 1:
            log.warning("prediction_without_identity", object_id=msg.object_id)
            continue
        predictions.append(
            Prediction(
                bbox=msg.bbox,
                object_id=msg.object_id,
                class_id=msg.class_id,
                score=msg.score,
            )
        )
    return predictions


def detections_to_messages(detections: Iterable[Detection]) -> list[DetectionMsg]:
    return [
        DetectionMsg(
            object_id=det.object_id,
            class_id=det.class_id,
            score=det.score,
            bbox=det.bbox,
        )
        for det in detections
    ]


def detection_array(header: DetectionHeader, detections: Iterable[Detection]) -> DetectionArray:
    return DetectionArray(header=header, detections=detections_to_messages(detections))
