import asyncio
import json
import logging

from quart import Blueprint, Response

from ..common import redis_client
from ..common.config import settings

_logger = logging.getLogger(__name__)

bp = Blueprint("realtime", __name__)

MAX_BACKOFF = 15.0


def format_event(payload: dict) -> str:
    return f"event: stock\ndata: {json.dumps(payload)}\n\n"


async def _close_pubsub(pubsub) -> None:
    if pubsub is None:
        return
    try:
        await pubsub.unsubscribe(settings.REDIS_STOCK_CHANNEL)
        await pubsub.aclose()
    except Exception as e:
        _logger.debug("Ignoring pubsub close error | err=%s", e)


async def stock_events():
    """Yield SSE frames for every stock update published on the stock channel."""
    pubsub = None
    backoff = 1.0
    yield "retry: 3000\n\n"
    try:
        while True:
            try:
                if pubsub is None:
                    r = await redis_client.get_redis()
                    pubsub = r.pubsub(ignore_subscribe_messages=True)
                    await pubsub.subscribe(settings.REDIS_STOCK_CHANNEL)
                message = await pubsub.get_message(timeout=5.0)
                if message:
                    data = message.get("data")
                    try:
                        payload = json.loads(data)
                    except (TypeError, ValueError):
                        payload = {"stock": data}
                    yield format_event(payload)
                else:
                    # keep-alive for proxies
                    yield ": keep-alive\n\n"
                backoff = 1.0
            except asyncio.CancelledError:
                raise
            except Exception as e:
                _logger.warning("Stock stream lost Redis, retrying | backoff=%s err=%s", backoff, e)
                yield f": redis-error, retrying in {int(backoff)}s\n\n"
                await _close_pubsub(pubsub)
                pubsub = None
                await asyncio.sleep(backoff)
                backoff = min(backoff * 2, MAX_BACKOFF)
    finally:
        await _close_pubsub(pubsub)


@bp.get("/events")
async def sse_events():
    headers = {
        "Cache-Control": "no-cache",
        "X-Accel-Buffering": "no",
        "Connection": "keep-alive",
    }
    return Response(stock_events(), mimetype="text/event-stream", headers=headers)
