from quart import Blueprint, jsonify

from .service import cancel_order, get_order, list_all_orders, list_own_orders, place_order
from ..common.http import read_json
from ..identity.service import resolve_caller

bp = Blueprint("orders", __name__)


@bp.post("/orders")
async def order_create():
    data = await read_json()
    order_id = await place_order(resolve_caller(), data.get("items"), data.get("shipping_address", ""))
    return jsonify({"order_id": order_id}), 201


@bp.get("/orders")
async def orders_own():
    orders = await list_own_orders(resolve_caller())
    return jsonify({"orders": orders})


@bp.get("/orders/all")
async def orders_all():
    orders = await list_all_orders(resolve_caller())
    return jsonify({"orders": orders})


@bp.get("/orders/<int:order_id>")
async def order_detail(order_id: int):
    order = await get_order(resolve_caller(), order_id)
    return jsonify({"order": order})


@bp.post("/orders/<int:order_id>/cancel")
async def order_cancel(order_id: int):
    await cancel_order(resolve_caller(), order_id)
    return jsonify({"order_id": order_id, "status": "cancelled"})
