#!/usr/bin/env python3
"""Feed a video file (or webcam) into the detector's frame stream.

Each frame is JPEG-compressed and XADDed to frames:{camera_id} as a
FrameMessage, paced to the requested FPS.

Usage:
    python scripts/publish_frames.py input.mp4 --camera-id cam3d

    # Webcam 0, looping forever:
    python scripts/publish_frames.py 0 --fps 10
"""
from __future__ import annotations

import argparse
import asyncio
import base64
import time

import cv2
import redis.asyncio as aioredis

from objdet_shared.events.publisher import frames_stream, publish
from objdet_shared.events.schemas import FrameMessage
from objdet_shared.logging import configure_logging, get_logger

log = get_logger("publish_frames")


def _open(source: str) -> cv2.VideoCapture:
    cap = cv2.VideoCapture(int(source) if source.isdigit() else source)
    if not cap.isOpened():
        raise SystemExit(f"cannot open video source {source!r}")
    return cap


async def run(args: argparse.Namespace) -> None:
    redis = aioredis.from_url(args.redis_url, decode_responses=False)
    stream = frames_stream(args.camera_id)
    cap = _open(args.source)
    period = 1.0 / args.fps
    seq = 0

    log.info("publish_frames_starting", source=args.source, stream=stream, fps=args.fps)
    try:
        while True:
            ok, frame = cap.read()
            if not ok:
                break
            ok, buf = cv2.imencode(".jpg", frame, [cv2.IMWRITE_JPEG_QUALITY, args.quality])
            if not ok:
                log.warning("jpeg_encode_failed", frame_seq=seq)
                continue
            h, w = frame.shape[:2]
            msg = FrameMessage(
                camera_id=args.camera_id,
                timestamp_ns=time.time_ns(),
                frame_seq=seq,
                encoding="jpeg",
                data_b64=base64.b64encode(bytes(buf)).decode("ascii"),
                width=w,
                height=h,
            )
            await publish(redis, stream, msg, maxlen=100)
            seq += 1
            await asyncio.sleep(period)
    finally:
        cap.release()
        await redis.aclose()
        log.info("publish_frames_stopped", frames=seq)


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("source", help="Video file path or webcam index")
    parser.add_argument("--camera-id", default="cam3d")
    parser.add_argument("--redis-url", default="redis://localhost:6379/0")
    parser.add_argument("--fps", type=float, default=15.0)
    parser.add_argument("--quality", type=int, default=85, help="JPEG quality")
    args = parser.parse_args()

    configure_logging()
    asyncio.run(run(args))


if __name__ == "__main__":
    main()
