from quart import Blueprint, jsonify

from .service import get_caller_role, initialize_admin, parse_role, resolve_caller, set_role
from ..common.http import read_json

bp = Blueprint("identity", __name__)


@bp.get("/me/role")
async def my_role():
    role = await get_caller_role(resolve_caller())
    return jsonify({"role": role.value if role else None})


@bp.put("/users/<int:user_id>/role")
async def user_role_put(user_id: int):
    data = await read_json()
    role = parse_role(data.get("role"))
    await set_role(resolve_caller(), user_id, role)
    return jsonify({"user_id": user_id, "role": role.value})


@bp.post("/admin/initialize")
async def admin_initialize():
    await initialize_admin(resolve_caller())
    return jsonify({"ok": True})
