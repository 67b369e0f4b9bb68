"""Detector service entry point."""
from __future__ import annotations

import asyncio
import signal

import redis.asyncio as aioredis

from objdet_shared.logging import configure_logging, get_logger
from objdet_shared.settings import settings

from sample_detector.clock import ClockNotReadyError, RedisClock, SystemClock, wait_until_ready
from sample_detector.config import build_config
from sample_detector.detector import SampleDetector
from sample_detector.display import FrameDisplay
from sample_detector.identity import ObjectIdAllocator
from sample_detector.matcher import MatcherOverlap
from sample_detector.pipeline import DetectorPipeline, FrameProcessor
from sample_detector.prediction_client import PredictionClient

log = get_logger(__name__)


async def run() -> None:
    configure_logging(settings.log_format, settings.log_level, service="sample-detector")
    config = build_config(settings)

    log.info(
        "detector_service_starting",
        cameras=config.camera_ids,
        min_overlap=config.min_overlap_percent,
        strategy=config.match_strategy,
        sim_time=config.use_sim_time,
    )

    redis = aioredis.from_url(config.redis_url, decode_responses=False)

    clock = RedisClock(redis, config.clock_key) if config.use_sim_time else SystemClock()
    display = FrameDisplay() if config.display_enabled else None

    # One processor (and so one identity counter) shared by all cameras
    processor = FrameProcessor(
        SampleDetector(),
        MatcherOverlap(config.min_overlap_percent, config.match_strategy),
        ObjectIdAllocator(),
    )
    predictor = PredictionClient(redis, timeout_s=config.predict_timeout_s)

    pipelines = [
        DetectorPipeline(cam_id, config, processor, predictor, clock, display)
        for cam_id in config.camera_ids
    ]

    loop = asyncio.get_running_loop()

    def _shutdown(sig, frame):
        log.info("shutdown_signal_received", signal=sig)
        for task in asyncio.all_tasks(loop):
            task.cancel()

    signal.signal(signal.SIGTERM, _shutdown)
    signal.signal(signal.SIGINT, _shutdown)

    try:
        await wait_until_ready(
            clock,
            poll_interval_s=config.clock_poll_interval_s,
            timeout_s=config.clock_wait_timeout_s,
        )
        await asyncio.gather(*[p.run(redis) for p in pipelines])
    except ClockNotReadyError as exc:
        log.error("clock_not_ready", error=str(exc), key=config.clock_key)
        raise
    except asyncio.CancelledError:
        pass
    finally:
        if display is not None:
            display.close()
        await redis.aclose()
        log.info("detector_service_stopped")


def main() -> None:
    asyncio.run(run())


if __name__ == "__main__":
    main()
