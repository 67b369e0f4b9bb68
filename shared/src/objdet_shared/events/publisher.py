"""Redis Streams publisher, consumer and request/reply helpers."""
from __future__ import annotations

from redis.asyncio import Redis
from redis.exceptions import ResponseError

from objdet_shared.events.schemas import _FrozenModel

# Stream name constants
STREAM_FRAMES = "frames:{camera_id}"
STREAM_DETECTIONS = "detections"
STREAM_PREDICT_REQUESTS = "predict_detections"

# Consumer group names
GROUP_DETECTOR = "detector-workers"
GROUP_TRACKER = "tracker-workers"

# Replies that nobody collects expire after this many seconds
REPLY_TTL_S = 30


def frames_stream(camera_id: str) -> str:
    return f"frames:{camera_id}"


def reply_key(request_id: str) -> str:
    return f"{STREAM_PREDICT_REQUESTS}:reply:{request_id}"


async def publish(
    redis: Redis,
    stream: str,
    event: _FrozenModel,
    maxlen: int = 1000,
) -> str:
    """Serialize a Pydantic message and XADD it to a Redis Stream.

    Args:
        redis: Async Redis client.
        stream: Stream name.
        event: A frozen Pydantic model instance.
        maxlen: Approximate max stream length (MAXLEN ~).

    Returns:
        The Redis message ID of the newly added entry.
    """
    payload = {"data": event.model_dump_json()}
    msg_id = await redis.xadd(stream, payload, maxlen=maxlen, approximate=True)
    return msg_id.decode() if isinstance(msg_id, bytes) else msg_id


async def ensure_consumer_group(
    redis: Redis,
    stream: str,
    group: str,
) -> None:
    """Create a consumer group if it does not exist, creating the stream too."""
    try:
        await redis.xgroup_create(stream, group, id="0", mkstream=True)
    except ResponseError as exc:
        # BUSYGROUP: the group already exists
        if "BUSYGROUP" not in str(exc):
            raise


async def read_group(
    redis: Redis,
    stream: str,
    group: str,
    consumer: str,
    count: int = 10,
    block_ms: int = 1000,
) -> list[tuple[str, dict]]:
    """Read messages from a consumer group.

    Returns a list of (message_id, data_dict) tuples.
    """
    results = await redis.xreadgroup(
        groupname=group,
        consumername=consumer,
        streams={stream: ">"},
        count=count,
        block=block_ms,
    )
    if not results:
        return []
    messages = []
    for _stream, entries in results:
        for msg_id, fields in entries:
            msg_id_str = msg_id.decode() if isinstance(msg_id, bytes) else msg_id
            decoded = {
                k.decode() if isinstance(k, bytes) else k: (
                    v.decode() if isinstance(v, bytes) else v
                )
                for k, v in fields.items()
            }
            messages.append((msg_id_str, decoded))
    return messages


async def ack(redis: Redis, stream: str, group: str, *msg_ids: str) -> None:
    """Acknowledge processed messages."""
    await redis.xack(stream, group, *msg_ids)


async def send_reply(
    redis: Redis,
    key: str,
    reply: _FrozenModel,
    ttl_s: int = REPLY_TTL_S,
) -> None:
    """Push a reply onto the caller's reply list.

    Used by services answering requests such as PredictRequest. The list
    expires so that replies to callers that already gave up do not pile up.
    """
    async with redis.pipeline(transaction=True) as pipe:
        pipe.rpush(key, reply.model_dump_json())
        pipe.expire(key, ttl_s)
        await pipe.execute()


async def wait_reply(redis: Redis, key: str, timeout_s: float) -> str | None:
    """Block until a reply arrives on ``key`` or ``timeout_s`` elapses.

    Returns the raw JSON payload, or None on timeout.
    """
    result = await redis.blpop([key], timeout=timeout_s)
    if result is None:
        return None
    _key, value = result
    return value.decode() if isinstance(value, bytes) else value
