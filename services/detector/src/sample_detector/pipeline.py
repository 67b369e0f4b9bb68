"""Detector pipeline: consume frames → predict → detect → match → publish.

For each camera:
1. XREADGROUP from `frames:{camera_id}` (consumer group: detector-workers)
2. Decode FrameMessage → numpy array (undecodable frames are skipped)
3. Ask the tracker for predictions (empty on failure)
4. Run SampleDetector → MatcherOverlap → identity assignment
5. Publish one DetectionArray per frame to `detections`
6. XACK the processed message
"""
from __future__ import annotations

import asyncio
import time
from typing import Sequence

import numpy as np
import redis.asyncio as aioredis
from pydantic import ValidationError

from objdet_shared.events.publisher import (
    GROUP_DETECTOR,
    STREAM_DETECTIONS,
    ack,
    ensure_consumer_group,
    frames_stream,
    publish,
    read_group,
)
from objdet_shared.events.schemas import FrameMessage
from objdet_shared.logging import get_logger

from sample_detector.clock import RedisClock, SystemClock
from sample_detector.config import DetectorConfig
from sample_detector.convert import detection_array, header_from_frame
from sample_detector.detector import Detection, Prediction, SampleDetector
from sample_detector.display import FrameDisplay
from sample_detector.identity import ObjectIdAllocator, assign_object_ids
from sample_detector.image import FrameDecodeError, decode_frame
from sample_detector.matcher import MatcherOverlap
from sample_detector.prediction_client import PredictionClient

log = get_logger(__name__)


def _decode_frame(msg_data: dict) -> tuple[np.ndarray, FrameMessage]:
    """Parse a Redis Stream message dict into a numpy frame + FrameMessage."""
    try:
        event = FrameMessage.model_validate_json(msg_data.get("data", ""))
    except ValidationError as exc:
        raise FrameDecodeError(f"invalid frame message: {exc}") from exc
    return decode_frame(event), event


class FrameProcessor:
    """Detects objects in one frame and gives each an identity.

    Args:
        detector: Detection source.
        matcher: Overlap matcher pairing detections with predictions.
        allocator: Source of fresh identities for unmatched detections.
    """

    def __init__(
        self,
        detector: SampleDetector,
        matcher: MatcherOverlap,
        allocator: ObjectIdAllocator,
    ) -> None:
        self._detector = detector
        self._matcher = matcher
        self._allocator = allocator

    def process(self, frame: np.ndarray, predictions: Sequence[Prediction]) -> list[Detection]:
        """Return the frame's detections with ``object_id`` set, ready to publish."""
        self._detector.prediction(list(predictions))
        detections = self._detector.detect(frame)
        matches = self._matcher.match(detections, predictions)
        minted = assign_object_ids(detections, predictions, matches, self._allocator)
        log.debug(
            "frame_matched",
            detections=len(detections),
            predictions=len(predictions),
            new_objects=minted,
        )
        return detections


class DetectorPipeline:
    """Runs the detector pipeline for a single camera.

    Args:
        camera_id: Camera identifier (used for stream names).
        config: Detector configuration.
        processor: Frame processor (may be shared between cameras).
        predictor: Client for the tracker's prediction service.
        clock: Time source used to stamp prediction requests.
        display: Debug window, or None when running headless.
    """

    def __init__(
        self,
        camera_id: str,
        config: DetectorConfig,
        processor: FrameProcessor,
        predictor: PredictionClient,
        clock: SystemClock | RedisClock,
        display: FrameDisplay | None = None,
    ) -> None:
        self._camera_id = camera_id
        self._cfg = config
        self._processor = processor
        self._predictor = predictor
        self._clock = clock
        self._display = display
        self._in_stream = frames_stream(camera_id)
        self._frame_count = 0
        self._t_start = time.monotonic()

    @property
    def frame_count(self) -> int:
        return self._frame_count

    async def run(self, redis: aioredis.Redis) -> None:
        """Main loop, processes frames until cancelled."""
        await ensure_consumer_group(redis, self._in_stream, GROUP_DETECTOR)

        log.info(
            "pipeline_starting",
            camera_id=self._camera_id,
            in_stream=self._in_stream,
            out_stream=STREAM_DETECTIONS,
            min_overlap=self._cfg.min_overlap_percent,
            strategy=self._cfg.match_strategy,
        )

        while True:
            messages = await read_group(
                redis,
                self._in_stream,
                GROUP_DETECTOR,
                self._cfg.consumer_name,
                count=self._cfg.read_batch,
                block_ms=self._cfg.block_ms,
            )

            for msg_id, msg_data in messages:
                try:
                    await self._process_message(redis, msg_id, msg_data)
                except Exception as exc:
                    log.error(
                        "pipeline_frame_error",
                        camera_id=self._camera_id,
                        msg_id=msg_id,
                        error=str(exc),
                        exc_info=True,
                    )
                    # Abandon the frame; ACK so it is not redelivered
                    await ack(redis, self._in_stream, GROUP_DETECTOR, msg_id)

    async def _process_message(
        self, redis: aioredis.Redis, msg_id: str, msg_data: dict
    ) -> None:
        loop = asyncio.get_running_loop()

        try:
            frame, event = await loop.run_in_executor(None, _decode_frame, msg_data)
        except FrameDecodeError as exc:
            log.error(
                "frame_decode_failed",
                camera_id=self._camera_id,
                msg_id=msg_id,
                error=str(exc),
            )
            await ack(redis, self._in_stream, GROUP_DETECTOR, msg_id)
            return

        stamp_ns = await self._clock.now_ns()
        predictions = await self._predictor.predict(stamp_ns)

        detections = self._processor.process(frame, predictions)

        out = detection_array(header_from_frame(event), detections)
        await publish(redis, STREAM_DETECTIONS, out, maxlen=self._cfg.detections_maxlen)

        if self._display is not None:
            self._display.show(frame, detections)

        await ack(redis, self._in_stream, GROUP_DETECTOR, msg_id)

        self._frame_count += 1
        if self._frame_count % self._cfg.log_interval == 0:
            elapsed = time.monotonic() - self._t_start
            fps = self._frame_count / elapsed if elapsed > 0 else 0
            log.info(
                "pipeline_throughput",
                camera_id=self._camera_id,
                frames=self._frame_count,
                fps=round(fps, 1),
                detections_this_frame=len(detections),
                predictions_this_frame=len(predictions),
            )
