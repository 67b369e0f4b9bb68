"""Unit tests for frame decoding, drawing and the startup clock wait."""
from __future__ import annotations

import asyncio
import base64
from unittest.mock import AsyncMock

import cv2
import numpy as np
import pytest

from objdet_shared.events.schemas import BoundingBox, FrameMessage
from sample_detector.clock import ClockNotReadyError, RedisClock, SystemClock, wait_until_ready
from sample_detector.detector import Detection
from sample_detector.display import draw_detections
from sample_detector.image import FrameDecodeError, decode_frame


def _frame(data: bytes, encoding: str, width: int = 4, height: int = 2) -> FrameMessage:
    return FrameMessage(
        camera_id="cam-test",
        timestamp_ns=1,
        frame_seq=0,
        encoding=encoding,
        data_b64=base64.b64encode(data).decode("ascii"),
        width=width,
        height=height,
    )


# ── Decoding ──────────────────────────────────────────────────────────────────

def test_decode_png_keeps_bgr_order():
    img = np.zeros((2, 4, 3), dtype=np.uint8)
    img[:, :, 0] = 200  # blue in OpenCV order
    ok, buf = cv2.imencode(".png", img)
    assert ok

    out = decode_frame(_frame(bytes(buf), "png"))

    assert out.shape == (2, 4, 3)
    assert (out[:, :, 0] == 200).all()
    assert (out[:, :, 2] == 0).all()


def test_decode_raw_rgb8_converts_to_bgr():
    rgb = np.zeros((2, 4, 3), dtype=np.uint8)
    rgb[:, :, 0] = 255  # red
    out = decode_frame(_frame(rgb.tobytes(), "rgb8"))
    assert out.shape == (2, 4, 3)
    assert (out[:, :, 2] == 255).all()
    assert (out[:, :, 0] == 0).all()


def test_decode_raw_mono8():
    gray = np.arange(8, dtype=np.uint8)
    out = decode_frame(_frame(gray.tobytes(), "mono8"))
    assert out.shape == (2, 4)
    assert out[1, 3] == 7


def test_raw_buffer_of_wrong_size_fails():
    with pytest.raises(FrameDecodeError, match="expected 24"):
        decode_frame(_frame(b"\x00" * 10, "bgr8"))


def test_unknown_encoding_fails():
    with pytest.raises(FrameDecodeError, match="unsupported encoding"):
        decode_frame(_frame(b"\x00" * 8, "yuv422"))


def test_non_image_payload_fails():
    with pytest.raises(FrameDecodeError, match="cannot decode jpeg"):
        decode_frame(_frame(b"definitely not an image", "jpeg"))


def test_invalid_base64_fails():
    msg = _frame(b"", "jpeg").model_copy(update={"data_b64": "!!not base64!!"})
    with pytest.raises(FrameDecodeError, match="base64"):
        decode_frame(msg)


# ── Drawing ───────────────────────────────────────────────────────────────────

def test_draw_detections_outlines_box_in_white():
    img = np.zeros((60, 60, 3), dtype=np.uint8)
    det = Detection(bbox=BoundingBox(x=10, y=20, width=30, height=20), object_id=3)

    out = draw_detections(img, [det])

    assert out is img
    assert tuple(img[20, 25]) == (255, 255, 255)  # top edge
    assert tuple(img[30, 25]) == (0, 0, 0)  # interior untouched


# ── Clock ─────────────────────────────────────────────────────────────────────

def test_system_clock_is_ready_immediately():
    assert asyncio.run(wait_until_ready(SystemClock(), timeout_s=0.1)) > 0


def test_wait_until_ready_polls_until_first_tick():
    clock = AsyncMock()
    clock.now_ns.side_effect = [0, 0, 42]
    assert asyncio.run(wait_until_ready(clock, poll_interval_s=0.001, timeout_s=1.0)) == 42
    assert clock.now_ns.await_count == 3


def test_wait_until_ready_times_out():
    clock = AsyncMock()
    clock.now_ns.return_value = 0
    with pytest.raises(ClockNotReadyError):
        asyncio.run(wait_until_ready(clock, poll_interval_s=0.001, timeout_s=0.01))


def test_redis_clock_reads_key():
    redis = AsyncMock()
    redis.get.return_value = b"1500000000"
    assert asyncio.run(RedisClock(redis, "sim:clock").now_ns()) == 1_500_000_000
    redis.get.assert_awaited_once_with("sim:clock")


def test_redis_clock_missing_key_reads_zero():
    redis = AsyncMock()
    redis.get.return_value = None
    assert asyncio.run(RedisClock(redis).now_ns()) == 0
