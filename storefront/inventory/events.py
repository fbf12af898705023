import logging

from ..common import redis_client
from ..common.config import settings

_logger = logging.getLogger(__name__)


async def publish_stock_update(product_id: int, stock: int) -> None:
    """Notify realtime subscribers of a committed stock level.

    Redis being unavailable never fails the caller; the change is already committed.
    """
    try:
        await redis_client.publish_json(settings.REDIS_STOCK_CHANNEL, {"product_id": product_id, "stock": stock})
    except Exception as e:
        _logger.warning("Stock update not published | product_id=%s stock=%s err=%s", product_id, stock, e)
        return
    _logger.info("Published stock update via Redis | product_id=%s stock=%s channel=%s",
                 product_id, stock, settings.REDIS_STOCK_CHANNEL)
