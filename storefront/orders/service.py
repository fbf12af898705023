import logging
from typing import Any, Dict, List, Optional

from .model import OrderStatus
from ..common.config import settings
from ..common.database import fetch_order, fetch_orders, fetch_user, insert_order, unit_of_work, update_order_status
from ..common.errors import (
    InsufficientStock,
    InvalidRequest,
    InvalidState,
    NotFound,
    Unauthenticated,
    Unauthorized,
)
from ..common.http import as_int, as_str
from ..common.metrics import ORDER_FAILURES, ORDERS_CANCELLED, ORDERS_PLACED
from ..identity.service import is_admin, require_admin
from ..inventory.service import InventoryLedger

_logger = logging.getLogger(__name__)


def _clean_items(items: Any) -> List[Dict[str, int]]:
    if not isinstance(items, list) or not items:
        raise InvalidRequest("items must be a non-empty list")
    if len(items) > settings.MAX_ORDER_ITEMS:
        raise InvalidRequest(f"An order holds at most {settings.MAX_ORDER_ITEMS} items")
    cleaned = []
    for item in items:
        if not isinstance(item, dict):
            raise InvalidRequest("Each item must be an object")
        product_id = as_int(item.get("product_id"), "product_id")
        quantity = as_int(item.get("quantity"), "quantity")
        if quantity < 1:
            raise InvalidRequest("quantity must be at least 1")
        cleaned.append({"product_id": product_id, "quantity": quantity})
    return cleaned


async def place_order(caller: Optional[int], items: Any, shipping_address: Any) -> int:
    """Reserve stock for every item and record a pending order.

    All reservations and the order row share one transaction: if any item
    cannot be reserved nothing is decremented.
    """
    if caller is None:
        raise Unauthenticated("Must be logged in to create order")
    user = await fetch_user(caller)
    if user is None:
        raise NotFound("User not found")
    requested = _clean_items(items)
    address = as_str(shipping_address, "shipping_address")

    try:
        async with unit_of_work() as session:
            ledger = InventoryLedger(session)
            total = 0.0
            line_items = []
            for item in requested:
                price = await ledger.reserve(item["product_id"], item["quantity"])
                total += price * item["quantity"]
                line_items.append({"product_id": item["product_id"], "quantity": item["quantity"], "price": price})
            order_id = await insert_order(
                session,
                user_id=caller,
                items=line_items,
                total=total,
                customer_email=user.get("email") or "",
                shipping_address=address,
                status=OrderStatus.PENDING.value,
            )
    except (NotFound, InsufficientStock) as e:
        ORDER_FAILURES.labels(reason=e.code).inc()
        _logger.warning("Order refused | user_id=%s reason=%s detail=%s", caller, e.code, e.message)
        raise

    await ledger.publish()
    ORDERS_PLACED.inc()
    _logger.info("Order placed | order_id=%s user_id=%s items=%s total=%s", order_id, caller, len(line_items), total)
    return order_id


async def list_own_orders(caller: Optional[int]) -> List[Dict[str, Any]]:
    if caller is None:
        return []
    return await fetch_orders(user_id=caller)


async def list_all_orders(caller: Optional[int]) -> List[Dict[str, Any]]:
    await require_admin(caller)
    return await fetch_orders()


async def _check_access(caller: int, order: Dict[str, Any]) -> None:
    if order["user_id"] != caller and not await is_admin(caller):
        _logger.warning("Order access refused | order_id=%s user_id=%s", order["id"], caller)
        raise Unauthorized("Unauthorized")


async def get_order(caller: Optional[int], order_id: int) -> Dict[str, Any]:
    if caller is None:
        raise Unauthenticated("Must be logged in")
    order = await fetch_order(order_id)
    if order is None:
        raise NotFound("Order not found")
    await _check_access(caller, order)
    return order


async def cancel_order(caller: Optional[int], order_id: int) -> None:
    """Cancel a pending order and put its line item quantities back in stock.

    Stock is restored even for products deactivated since the order was placed.
    """
    if caller is None:
        raise Unauthenticated("Must be logged in")
    async with unit_of_work() as session:
        order = await fetch_order(order_id, session=session)
        if order is None:
            raise NotFound("Order not found")
        await _check_access(caller, order)
        flipped = await update_order_status(
            order_id,
            OrderStatus.CANCELLED.value,
            expected=OrderStatus.PENDING.value,
            session=session,
        )
        if not flipped:
            raise InvalidState("Can only cancel pending orders")
        ledger = InventoryLedger(session)
        for item in order["items"]:
            await ledger.release(item["product_id"], item["quantity"])

    await ledger.publish()
    ORDERS_CANCELLED.inc()
    _logger.info("Order cancelled | order_id=%s by=%s", order_id, caller)
