from prometheus_client import Counter, Histogram

REQUEST_COUNT = Counter("http_requests_total", "Total HTTP requests", ["method", "endpoint", "status"])
REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["endpoint"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.075, 0.1, 0.25, 0.5, 0.75, 1.0, 2.5, 5.0, 7.5, 10.0, float("inf"))
)

ORDERS_PLACED = Counter("storefront_orders_placed_total", "Orders placed")
ORDERS_CANCELLED = Counter("storefront_orders_cancelled_total", "Orders cancelled")
ORDER_FAILURES = Counter("storefront_order_failures_total", "Order placements refused", ["reason"])


def normalize_endpoint(path: str) -> str:
    """Collapse dynamic path segments so metric labels stay bounded."""
    parts = path.strip("/").split("/")
    if not parts or parts == [""]:
        return "/"
    if parts[0] == "static":
        return "/static/*"
    return "/" + "/".join("<id>" if part.isdigit() else part for part in parts)
