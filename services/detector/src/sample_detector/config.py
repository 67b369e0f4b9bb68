"""Detector service configuration."""
from __future__ import annotations

import os
from dataclasses import dataclass, field

from sample_detector.matcher import STRATEGIES


@dataclass(frozen=True)
class DetectorConfig:
    """Configuration for the sample detector pipeline."""

    camera_ids: list[str] = field(default_factory=list)
    redis_url: str = "redis://localhost:6379/0"

    # Matching
    min_overlap_percent: float = 50.0
    match_strategy: str = "greedy"

    # Prediction service
    predict_timeout_s: float = 1.0

    # Clock
    use_sim_time: bool = False
    clock_key: str = "clock:ns"
    clock_wait_timeout_s: float = 30.0
    clock_poll_interval_s: float = 0.1

    # Stream settings
    consumer_name: str = "detector-0"
    read_batch: int = 1
    block_ms: int = 500
    detections_maxlen: int = 1000

    display_enabled: bool = False

    # Throughput logging interval (frames)
    log_interval: int = 100

    def __post_init__(self) -> None:
        if not 0.0 <= self.min_overlap_percent <= 100.0:
            raise ValueError(
                f"min_overlap_percent must be within [0, 100], got {self.min_overlap_percent}"
            )
        if self.match_strategy not in STRATEGIES:
            raise ValueError(
                f"match_strategy must be one of {STRATEGIES}, got {self.match_strategy!r}"
            )


def build_config(settings) -> DetectorConfig:
    """Build DetectorConfig from shared Settings."""
    consumer_name = os.environ.get("DETECTOR_CONSUMER_NAME", "detector-0")

    return DetectorConfig(
        camera_ids=settings.camera_id_list,
        redis_url=settings.redis_url,
        min_overlap_percent=settings.min_overlap_percent,
        match_strategy=settings.match_strategy,
        predict_timeout_s=settings.predict_timeout_s,
        use_sim_time=settings.use_sim_time,
        clock_key=settings.clock_key,
        clock_wait_timeout_s=settings.clock_wait_timeout_s,
        consumer_name=consumer_name,
        detections_maxlen=settings.detections_maxlen,
        display_enabled=settings.display_enabled,
    )
