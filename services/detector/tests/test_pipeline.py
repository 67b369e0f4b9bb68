"""Tests for FrameProcessor and DetectorPipeline (Redis is mocked)."""
from __future__ import annotations

import asyncio
import base64
import json
from unittest.mock import AsyncMock, MagicMock

import cv2
import numpy as np
import pytest

from objdet_shared.events.publisher import GROUP_DETECTOR, STREAM_DETECTIONS
from objdet_shared.events.schemas import UNKNOWN_CLASS, BoundingBox, DetectionArray, FrameMessage
from sample_detector.config import DetectorConfig
from sample_detector.detector import Prediction, SampleDetector
from sample_detector.identity import ObjectIdAllocator
from sample_detector.matcher import MatcherOverlap
from sample_detector.pipeline import DetectorPipeline, FrameProcessor

_FRAME = np.zeros((120, 160, 3), dtype=np.uint8)


def _processor(box=(10, 10, 20, 20), allocator=None) -> FrameProcessor:
    return FrameProcessor(
        SampleDetector(box=box),
        MatcherOverlap(50.0),
        allocator or ObjectIdAllocator(),
    )


def _pred(x, y, w, h, object_id, class_id=UNKNOWN_CLASS) -> Prediction:
    return Prediction(
        bbox=BoundingBox(x=x, y=y, width=w, height=h),
        object_id=object_id,
        class_id=class_id,
    )


def _frame_message(seq: int = 0) -> FrameMessage:
    ok, buf = cv2.imencode(".jpg", _FRAME)
    assert ok
    return FrameMessage(
        camera_id="cam-test",
        timestamp_ns=1_000 + seq,
        frame_seq=seq,
        encoding="jpeg",
        data_b64=base64.b64encode(bytes(buf)).decode("ascii"),
        width=160,
        height=120,
    )


# ── FrameProcessor ────────────────────────────────────────────────────────────

def test_detection_inherits_identity_of_overlapping_prediction():
    detections = _processor().process(_FRAME, [_pred(10, 10, 20, 20, object_id=77)])
    assert len(detections) == 1
    assert detections[0].object_id == 77


def test_weak_overlap_gets_fresh_identity():
    processor = _processor(box=(0, 0, 10, 10))
    detections = processor.process(_FRAME, [_pred(5, 5, 10, 10, object_id=77)])
    assert detections[0].object_id == 1


def test_other_class_prediction_is_ignored():
    detections = _processor().process(_FRAME, [_pred(10, 10, 20, 20, object_id=77, class_id=3)])
    assert detections[0].object_id == 1


def test_consecutive_frames_without_predictions_mint_sequential_ids():
    processor = _processor()
    first = processor.process(_FRAME, [])
    second = processor.process(_FRAME, [])
    assert first[0].object_id == 1
    assert second[0].object_id == first[0].object_id + 1


def test_predictions_are_handed_to_detector():
    detector = SampleDetector()
    processor = FrameProcessor(detector, MatcherOverlap(), ObjectIdAllocator())
    preds = [_pred(0, 0, 5, 5, object_id=2)]
    processor.process(_FRAME, preds)
    assert detector.predictions == preds


def test_sample_detector_clips_box_to_frame():
    small = np.zeros((50, 60, 3), dtype=np.uint8)
    (det,) = SampleDetector(box=(40, 30, 100, 100)).detect(small)
    assert det.bbox == BoundingBox(x=40, y=30, width=20, height=20)
    assert det.object_id == 0
    assert det.class_id == UNKNOWN_CLASS


# ── DetectorPipeline ──────────────────────────────────────────────────────────

def _pipeline(predictions=None, processor=None):
    config = DetectorConfig(camera_ids=["cam-test"], log_interval=1)
    predictor = MagicMock()
    predictor.predict = AsyncMock(return_value=predictions or [])
    clock = MagicMock()
    clock.now_ns = AsyncMock(return_value=123_456)
    pipeline = DetectorPipeline(
        "cam-test", config, processor or _processor(), predictor, clock
    )
    return pipeline, predictor, clock


def _redis() -> AsyncMock:
    redis = AsyncMock()
    redis.xadd.return_value = b"1700000000000-0"
    return redis


def _published(redis: AsyncMock) -> DetectionArray:
    stream, payload = redis.xadd.call_args.args
    assert stream == STREAM_DETECTIONS
    return DetectionArray.model_validate_json(payload["data"])


def test_process_message_publishes_detections_with_frame_header():
    pipeline, predictor, clock = _pipeline(predictions=[_pred(10, 10, 20, 20, object_id=5)])
    redis = _redis()
    msg = _frame_message(seq=7)

    asyncio.run(pipeline._process_message(redis, "1-0", {"data": msg.model_dump_json()}))

    predictor.predict.assert_awaited_once_with(123_456)
    out = _published(redis)
    assert out.header.camera_id == "cam-test"
    assert out.header.frame_seq == 7
    assert out.header.timestamp_ns == msg.timestamp_ns
    assert [d.object_id for d in out.detections] == [5]
    redis.xack.assert_awaited_once_with("frames:cam-test", GROUP_DETECTOR, "1-0")
    assert pipeline.frame_count == 1


def test_prediction_service_down_treats_detection_as_new():
    # PredictionClient reports failure as an empty list
    pipeline, _, _ = _pipeline(predictions=[])
    redis = _redis()

    asyncio.run(
        pipeline._process_message(redis, "1-0", {"data": _frame_message().model_dump_json()})
    )

    out = _published(redis)
    assert out.detections[0].object_id == 1


def test_undecodable_frame_is_skipped_and_acked():
    pipeline, predictor, _ = _pipeline()
    redis = _redis()
    bad = _frame_message().model_copy(update={"data_b64": base64.b64encode(b"nope").decode()})

    asyncio.run(pipeline._process_message(redis, "2-0", {"data": bad.model_dump_json()}))

    redis.xadd.assert_not_awaited()
    predictor.predict.assert_not_awaited()
    redis.xack.assert_awaited_once_with("frames:cam-test", GROUP_DETECTOR, "2-0")
    assert pipeline.frame_count == 0


def test_malformed_message_is_skipped_and_acked():
    pipeline, _, _ = _pipeline()
    redis = _redis()

    asyncio.run(pipeline._process_message(redis, "3-0", {"data": json.dumps({"foo": 1})}))

    redis.xadd.assert_not_awaited()
    redis.xack.assert_awaited_once()


class _StopLoop(Exception):
    pass


def test_run_loop_survives_detector_failure():
    processor = MagicMock()
    processor.process.side_effect = RuntimeError("model exploded")
    pipeline, _, _ = _pipeline(processor=processor)
    redis = _redis()
    msg = _frame_message()
    redis.xreadgroup.side_effect = [
        [(b"frames:cam-test", [(b"5-0", {b"data": msg.model_dump_json().encode()})])],
        _StopLoop(),
    ]

    with pytest.raises(_StopLoop):
        asyncio.run(pipeline.run(redis))

    redis.xgroup_create.assert_awaited_once()
    redis.xadd.assert_not_awaited()
    redis.xack.assert_awaited_once_with("frames:cam-test", GROUP_DETECTOR, "5-0")


def test_display_receives_frame_and_detections():
    pipeline, _, _ = _pipeline()
    display = MagicMock()
    pipeline._display = display
    redis = _redis()

    asyncio.run(
        pipeline._process_message(redis, "1-0", {"data": _frame_message().model_dump_json()})
    )

    display.show.assert_called_once()
    frame, detections = display.show.call_args.args
    assert frame.shape == _FRAME.shape
    assert detections[0].object_id == 1
