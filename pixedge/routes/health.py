import logging
import os

from flask import Blueprint, jsonify

logger = logging.getLogger("pixedge.health")

VERSION = os.environ.get("PIXEDGE_VERSION", "0.1.0-dev")


def create_health_blueprint(deps: dict):
    store = deps["store"]
    telegram = deps["telegram"]

    bp = Blueprint("health", __name__)

    @bp.route("/health")
    def health_check():
        status = {"status": "healthy", "services": {}}
        overall_healthy = True

        try:
            if store.ping():
                status["services"][store.backend] = "ok"
            else:
                status["services"][store.backend] = "disconnected"
                overall_healthy = False
        except Exception as exc:
            logger.warning("Store health check failed: %s", exc)
            status["services"][store.backend] = "error"
            overall_healthy = False

        status["services"]["rate_limiting"] = "enabled" if store.counters is not None else "disabled"
        status["services"]["telegram"] = "configured" if telegram.configured else "unconfigured"

        if not overall_healthy:
            status["status"] = "unhealthy"
            return jsonify(status), 503

        return jsonify(status)

    @bp.route("/version")
    def version():
        return jsonify(
            {
                "version": VERSION,
                "release": os.environ.get("PIXEDGE_RELEASE", "none"),
                "environment": os.environ.get("PIXEDGE_ENV", "production"),
            }
        )

    return bp
