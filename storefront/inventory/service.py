import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from .events import publish_stock_update
from ..common.database import (
    fetch_product,
    fetch_products,
    insert_product,
    patch_product,
    release_stock,
    try_reserve_stock,
)
from ..common.errors import InsufficientStock, InvalidRequest, NotFound
from ..common.http import as_bool, as_float, as_int, as_str
from ..identity.service import require_admin

_logger = logging.getLogger(__name__)


class InventoryLedger:
    """Stock movements made inside one transaction.

    ``reserve`` and ``release`` run against the caller's session, so they commit
    or roll back together with the rest of the unit of work. Call ``publish``
    once the transaction has committed.
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.changes: Dict[int, int] = {}

    async def reserve(self, product_id: int, quantity: int) -> float:
        """Take ``quantity`` units out of stock and return the current unit price."""
        reserved = await try_reserve_stock(self.session, product_id, quantity)
        if reserved is None:
            product = await fetch_product(product_id, session=self.session)
            if product is None or not product["is_active"]:
                raise NotFound(f"Product not found: {product_id}")
            raise InsufficientStock(f"Insufficient stock for {product['name']}")
        price, new_stock = reserved
        self.changes[product_id] = new_stock
        _logger.info("Stock reserved | product_id=%s qty=%s new_stock=%s", product_id, quantity, new_stock)
        return price

    async def release(self, product_id: int, quantity: int) -> None:
        """Put ``quantity`` units back. A product that no longer exists is skipped."""
        new_stock = await release_stock(self.session, product_id, quantity)
        if new_stock is None:
            _logger.info("Stock release skipped, product missing | product_id=%s qty=%s", product_id, quantity)
            return
        self.changes[product_id] = new_stock
        _logger.info("Stock released | product_id=%s qty=%s new_stock=%s", product_id, quantity, new_stock)

    async def publish(self) -> None:
        for product_id, stock in self.changes.items():
            await publish_stock_update(product_id, stock)
        self.changes.clear()


_PRODUCT_FIELDS = {
    "name": as_str,
    "description": as_str,
    "price": as_float,
    "image_url": as_str,
    "stock": as_int,
    "is_active": as_bool,
}


def _clean_product_fields(data: Dict[str, Any], partial: bool) -> Dict[str, Any]:
    unknown = set(data) - set(_PRODUCT_FIELDS)
    if unknown:
        raise InvalidRequest(f"Unknown product fields: {', '.join(sorted(unknown))}")
    if not partial:
        missing = [key for key in ("name", "description", "price", "stock") if key not in data]
        if missing:
            raise InvalidRequest(f"Missing product fields: {', '.join(missing)}")

    fields: Dict[str, Any] = {}
    for key, value in data.items():
        if key == "image_url" and value is None:
            fields[key] = None
            continue
        fields[key] = _PRODUCT_FIELDS[key](value, key)

    if "name" in fields and not fields["name"].strip():
        raise InvalidRequest("name must not be empty")
    if fields.get("price", 0) < 0:
        raise InvalidRequest("price must be non-negative")
    if fields.get("stock", 0) < 0:
        raise InvalidRequest("stock must be non-negative")
    return fields


async def list_products() -> List[Dict[str, Any]]:
    return await fetch_products(active_only=True)


async def list_all_products(caller: Optional[int]) -> List[Dict[str, Any]]:
    await require_admin(caller)
    return await fetch_products(active_only=False)


async def get_product(product_id: int) -> Dict[str, Any]:
    product = await fetch_product(product_id)
    if product is None:
        raise NotFound(f"Product not found: {product_id}")
    return product


async def add_product(caller: Optional[int], data: Dict[str, Any]) -> int:
    await require_admin(caller)
    fields = _clean_product_fields(data, partial=False)
    fields["is_active"] = True
    product_id = await insert_product(fields)
    _logger.info("Product added | by=%s product_id=%s name=%s stock=%s", caller, product_id, fields["name"], fields["stock"])
    return product_id


async def update_product(caller: Optional[int], product_id: int, data: Dict[str, Any]) -> Dict[str, Any]:
    await require_admin(caller)
    fields = _clean_product_fields(data, partial=True)
    product = await patch_product(product_id, fields)
    if product is None:
        raise NotFound(f"Product not found: {product_id}")
    _logger.info("Product updated | by=%s product_id=%s fields=%s", caller, product_id, sorted(fields))
    if "stock" in fields:
        await publish_stock_update(product_id, product["stock"])
    return product


async def delete_product(caller: Optional[int], product_id: int) -> None:
    await require_admin(caller)
    if await patch_product(product_id, {"is_active": False}) is None:
        raise NotFound(f"Product not found: {product_id}")
    _logger.info("Product deactivated | by=%s product_id=%s", caller, product_id)
