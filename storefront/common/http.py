import math
from typing import Any, Dict

from quart import request

from .errors import InvalidRequest

# SQLite INTEGER is a signed 64-bit value
INT_MIN = -(2 ** 63)
INT_MAX = 2 ** 63 - 1


async def read_json() -> Dict[str, Any]:
    data = await request.get_json(force=True, silent=True)
    if not isinstance(data, dict):
        raise InvalidRequest("Request body must be a JSON object")
    return data


def as_int(value: Any, field: str) -> int:
    number = _to_int(value, field)
    if not INT_MIN <= number <= INT_MAX:
        raise InvalidRequest(f"{field} is out of range")
    return number


def _to_int(value: Any, field: str) -> int:
    # bool is an int subclass but never a valid id or quantity
    if isinstance(value, bool):
        raise InvalidRequest(f"{field} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            pass
    raise InvalidRequest(f"{field} must be an integer")


def as_float(value: Any, field: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise InvalidRequest(f"{field} must be a number")
    try:
        number = float(value)
    except ValueError:
        raise InvalidRequest(f"{field} must be a number")
    if not math.isfinite(number):
        raise InvalidRequest(f"{field} must be a finite number")
    return number


def as_str(value: Any, field: str) -> str:
    if not isinstance(value, str):
        raise InvalidRequest(f"{field} must be a string")
    return value


def as_bool(value: Any, field: str) -> bool:
    if not isinstance(value, bool):
        raise InvalidRequest(f"{field} must be a boolean")
    return value
