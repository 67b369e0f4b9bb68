"""Pydantic v2 schemas for every message exchanged over Redis.

Stream naming convention: {domain}:{camera_id}
  frames:cam3d          — raw or compressed camera frames
  detections            — detections from every detector node (DetectionArray)
  predict_detections    — prediction requests to the tracker (PredictRequest)

Replies to prediction requests are pushed onto the list named by
``PredictRequest.reply_to`` (one PredictResponse per request).
"""
from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

# Class id carried by detections whose category is not known
UNKNOWN_CLASS = -1

# Frame encodings understood by the detector
COMPRESSED_ENCODINGS = ("jpeg", "png")
RAW_ENCODINGS = {"rgb8": 3, "bgr8": 3, "mono8": 1}


class _FrozenModel(BaseModel):
    model_config = ConfigDict(frozen=True)


# ── Camera → Detector ────────────────────────────────────────────────────────

class FrameMessage(_FrozenModel):
    """A single camera frame.

    Stream: frames:{camera_id}
    """

    camera_id: str
    timestamp_ns: int = Field(description="Capture time in nanoseconds")
    frame_seq: int = Field(description="Monotonically increasing frame counter per camera")
    encoding: str = Field(
        default="jpeg",
        description="'jpeg' | 'png' (compressed) or 'rgb8' | 'bgr8' | 'mono8' (raw)",
    )
    data_b64: str = Field(description="Base64-encoded image bytes")
    width: int
    height: int


# ── Detector ↔ Tracker ───────────────────────────────────────────────────────

class BoundingBox(_FrozenModel):
    """Axis-aligned box in image pixel coordinates."""

    x: int
    y: int
    width: int
    height: int

    @property
    def area(self) -> int:
        if self.width <= 0 or self.height <= 0:
            return 0
        return self.width * self.height


class DetectionHeader(_FrozenModel):
    """Identifies the frame a set of detections was produced from."""

    camera_id: str
    timestamp_ns: int
    frame_seq: int


class DetectionMsg(_FrozenModel):
    """One located, classified object (a detection or a prediction)."""

    object_id: int = Field(description="Object identity; 0 means not yet assigned")
    class_id: int = Field(default=UNKNOWN_CLASS, description="Category id, -1 if unknown")
    score: float = Field(default=1.0)
    bbox: BoundingBox


class DetectionArray(_FrozenModel):
    """All detections produced for one frame.

    Stream: detections
    """

    header: DetectionHeader
    detections: list[DetectionMsg] = Field(default_factory=list)


class PredictRequest(_FrozenModel):
    """Ask the tracker where known objects should be at ``timestamp_ns``.

    Stream: predict_detections
    """

    request_id: str
    timestamp_ns: int
    object_id: int | None = Field(default=None, description="Only this object, None for all")
    class_id: int | None = Field(default=None, description="Only this class, None for all")
    reply_to: str = Field(description="Redis list key the tracker pushes the reply onto")


class PredictResponse(_FrozenModel):
    """Tracker reply to a PredictRequest."""

    request_id: str
    predictions: list[DetectionMsg] = Field(default_factory=list)
