import logging
import time

from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from quart import Quart, jsonify, request

from .common.config import settings
from .common.database import init_db
from .common.errors import StorefrontError
from .common.metrics import REQUEST_COUNT, REQUEST_LATENCY, normalize_endpoint
from .common.redis_client import close_redis
from .identity.controller import bp as identity_bp
from .inventory.controller import bp as inventory_bp
from .orders.controller import bp as orders_bp
from .realtime.controller import bp as realtime_bp


log = logging.getLogger(__name__)


def create_app() -> Quart:
    app = Quart(__name__)

    # Blueprints
    app.register_blueprint(identity_bp)
    app.register_blueprint(inventory_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(realtime_bp)

    @app.errorhandler(StorefrontError)
    async def handle_storefront_error(error: StorefrontError):
        return jsonify(error.to_dict()), error.status_code

    @app.before_request
    async def before_request():
        request._start_time = time.time()
        log.info("[Instance %s] %s %s", settings.INSTANCE_ID, request.method, request.path)

    @app.after_request
    async def after_request(response):
        try:
            if hasattr(request, "_start_time"):
                duration = time.time() - request._start_time
                endpoint = normalize_endpoint(request.path)
                REQUEST_LATENCY.labels(endpoint=endpoint).observe(duration)
                REQUEST_COUNT.labels(
                    method=request.method,
                    endpoint=endpoint,
                    status=str(response.status_code)
                ).inc()
        except Exception as e:
            log.error("Error recording metrics | err=%s", e)
        response.headers["X-Instance-ID"] = settings.INSTANCE_ID
        return response

    @app.get("/metrics")
    async def metrics():
        data = generate_latest()
        return app.response_class(data, mimetype=CONTENT_TYPE_LATEST)

    @app.get("/health")
    async def health():
        return jsonify({"status": "ok"})

    @app.before_serving
    async def startup():
        logging.basicConfig(level=settings.LOG_LEVEL.upper())
        log.info("Initializing database...")
        await init_db()
        if settings.SEED_ON_STARTUP:
            from .seed import seed_catalogue

            added = await seed_catalogue()
            log.info("Seeded catalogue | added=%s", added)
        log.info("Database ready.")

    @app.after_serving
    async def shutdown():
        await close_redis()
        log.info("Shutdown complete.")

    return app
