"""Client for the tracker's prediction service.

A request is XADDed to the ``predict_detections`` stream; the tracker
answers by pushing a PredictResponse onto the list named in ``reply_to``.
Any failure (timeout, Redis error, malformed reply) degrades to "no
predictions available" so the frame is still processed.
"""
from __future__ import annotations

import asyncio
import uuid

import redis.asyncio as aioredis
from pydantic import ValidationError
from redis.exceptions import RedisError

from objdet_shared.events.publisher import (
    STREAM_PREDICT_REQUESTS,
    publish,
    reply_key,
    wait_reply,
)
from objdet_shared.events.schemas import PredictRequest, PredictResponse
from objdet_shared.logging import get_logger

from sample_detector.convert import messages_to_predictions
from sample_detector.detector import Prediction

log = get_logger(__name__)

# Extra time on top of the BLPOP timeout before the call is abandoned client-side
_GRACE_S = 0.5


class PredictionClient:
    """Requests predicted detections from the tracker.

    Args:
        redis: Async Redis client.
        timeout_s: How long to wait for the tracker's reply.
        stream: Request stream name.
    """

    def __init__(
        self,
        redis: aioredis.Redis,
        timeout_s: float = 1.0,
        stream: str = STREAM_PREDICT_REQUESTS,
    ) -> None:
        self._redis = redis
        self._timeout_s = timeout_s
        self._stream = stream

    async def predict(
        self,
        timestamp_ns: int,
        object_id: int | None = None,
        class_id: int | None = None,
    ) -> list[Prediction]:
        """Return the tracker's predictions for ``timestamp_ns``.

        Args:
            timestamp_ns: Time the predictions should be valid for.
            object_id: Restrict to one object identity (None for all).
            class_id: Restrict to one class (None for all).
        Returns:
            Predictions, or an empty list if the service could not be reached.
        """
        request_id = uuid.uuid4().hex
        request = PredictRequest(
            request_id=request_id,
            timestamp_ns=timestamp_ns,
            object_id=object_id,
            class_id=class_id,
            reply_to=reply_key(request_id),
        )

        try:
            await publish(self._redis, self._stream, request, maxlen=100)
            raw = await asyncio.wait_for(
                wait_reply(self._redis, request.reply_to, self._timeout_s),
                timeout=self._timeout_s + _GRACE_S,
            )
        except (RedisError, OSError, asyncio.TimeoutError) as exc:
            log.error(
                "predict_call_failed",
                stream=self._stream,
                request_id=request_id,
                error=str(exc) or type(exc).__name__,
            )
            return []

        if raw is None:
            log.error(
                "predict_call_timeout",
                stream=self._stream,
                request_id=request_id,
                timeout_s=self._timeout_s,
            )
            return []

        try:
            response = PredictResponse.model_validate_json(raw)
        except ValidationError as exc:
            log.error("predict_reply_invalid", request_id=request_id, error=str(exc))
            return []

        if response.request_id != request_id:
            log.warning(
                "predict_reply_mismatch",
                request_id=request_id,
                reply_request_id=response.request_id,
            )
            return []

        predictions = messages_to_predictions(response.predictions)
        log.debug("predictions_received", request_id=request_id, count=len(predictions))
        return predictions
