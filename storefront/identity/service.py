"""Caller identity and role checks.

Identity comes from the upstream auth layer as a request header; roles live in
``user_roles``. Lookups are never cached so a role change applies to the next
request.
"""
import logging
from typing import Optional

from quart import request

from .model import Role
from ..common.config import settings
from ..common.database import fetch_role, fetch_user, grant_first_admin, unit_of_work, upsert_role
from ..common.errors import AlreadyInitialized, InvalidRequest, NotFound, Unauthenticated, Unauthorized

_logger = logging.getLogger(__name__)


def resolve_caller() -> Optional[int]:
    """Return the authenticated user id of the current request, or None."""
    raw = request.headers.get(settings.AUTH_HEADER, "").strip()
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError:
        _logger.warning("Ignoring malformed identity header | value=%r", raw)
        return None


def parse_role(value) -> Role:
    try:
        return Role(value)
    except ValueError:
        raise InvalidRequest(f"Unknown role: {value!r}")


async def get_role(user_id: int) -> Role:
    role = await fetch_role(user_id)
    # no record means customer
    return Role(role) if role else Role.CUSTOMER


async def is_admin(user_id: Optional[int]) -> bool:
    if user_id is None:
        return False
    return await get_role(user_id) is Role.ADMIN


async def require_admin(user_id: Optional[int]) -> None:
    if not await is_admin(user_id):
        _logger.warning("Admin access refused | user_id=%s", user_id)
        raise Unauthorized("Admin access required")


async def get_caller_role(caller: Optional[int]) -> Optional[Role]:
    if caller is None:
        return None
    return await get_role(caller)


async def set_role(caller: Optional[int], user_id: int, role: Role) -> None:
    if caller is None:
        raise Unauthenticated("Must be logged in")
    await require_admin(caller)
    if await fetch_user(user_id) is None:
        raise NotFound(f"User not found: {user_id}")
    await upsert_role(user_id, role.value)
    _logger.info("Role updated | by=%s user_id=%s role=%s", caller, user_id, role.value)


async def initialize_admin(caller: Optional[int]) -> None:
    """Grant admin to the caller if no admin exists yet."""
    if caller is None:
        raise Unauthenticated("Must be logged in")
    async with unit_of_work() as session:
        if not await grant_first_admin(session, caller):
            raise AlreadyInitialized("Admin already exists")
    _logger.info("Admin bootstrapped | user_id=%s", caller)
