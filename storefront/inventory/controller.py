from quart import Blueprint, jsonify

from .service import add_product, delete_product, get_product, list_all_products, list_products, update_product
from ..common.http import read_json
from ..identity.service import resolve_caller

bp = Blueprint("inventory", __name__)


@bp.get("/products")
async def products_list():
    items = await list_products()
    return jsonify({"products": items})


@bp.get("/products/all")
async def products_list_all():
    items = await list_all_products(resolve_caller())
    return jsonify({"products": items})


@bp.get("/products/<int:product_id>")
async def product_detail(product_id: int):
    product = await get_product(product_id)
    return jsonify({"product": product})


@bp.post("/products")
async def product_create():
    data = await read_json()
    product_id = await add_product(resolve_caller(), data)
    return jsonify({"product_id": product_id}), 201


@bp.patch("/products/<int:product_id>")
async def product_update(product_id: int):
    data = await read_json()
    product = await update_product(resolve_caller(), product_id, data)
    return jsonify({"product": product})


@bp.delete("/products/<int:product_id>")
async def product_delete(product_id: int):
    await delete_product(resolve_caller(), product_id)
    return jsonify({"product_id": product_id, "is_active": False})
