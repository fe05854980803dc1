"""Dashboard for inspecting relay stats and editing its configuration."""

from typing import Any

import structlog
from flask import Blueprint, Flask, Response, current_app, jsonify, render_template, request
from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, generate_latest

from console_ext.api.health import health_bp, register_health_check
from console_ext.config import ConfigError
from console_ext.relay import NotificationRelay

log = structlog.get_logger()

dashboard_bp = Blueprint("dashboard", __name__)

_EXTENSION_KEY = "console_ext.relay"


def _relay() -> NotificationRelay:
    return current_app.extensions[_EXTENSION_KEY]


@dashboard_bp.route("/")
@dashboard_bp.route("/dashboard")
def dashboard() -> str:
    relay = _relay()
    return render_template(
        "dashboard.html",
        stats=relay.stats().to_dict(),
        relay_config=relay.config.public_view(),
        intercepting=relay.intercepting,
    )


@dashboard_bp.get("/api/stats")
def get_stats() -> Any:
    return jsonify(_relay().stats().to_dict())


@dashboard_bp.get("/api/config")
def get_config() -> Any:
    return jsonify(_relay().config.public_view())


@dashboard_bp.post("/api/config")
def update_config() -> Any:
    """Overwrite config fields from a JSON object body."""
    data = request.get_json(silent=True)
    if data is None:
        return jsonify({"error": "Invalid JSON"}), 400
    if not isinstance(data, dict):
        return jsonify({"error": "Expected a JSON object"}), 400

    try:
        _relay().update_config(data)
    except ConfigError as e:
        log.warning("Rejected dashboard config update", error=str(e), relay_internal=True)
        return jsonify({"error": str(e)}), 400

    return jsonify({"success": True})


@dashboard_bp.post("/api/clear-stats")
def clear_stats() -> Any:
    _relay().clear_stats()
    return jsonify({"success": True})


@dashboard_bp.get("/metrics")
def metrics() -> Response:
    """Prometheus exposition of the relay counters."""
    return Response(generate_latest(REGISTRY), content_type=CONTENT_TYPE_LATEST)


def create_dashboard(
    relay: NotificationRelay,
    service_name: str = "console-ext",
    *,
    enable_health: bool = True,
) -> Flask:
    """Create the dashboard application for a relay.

    Args:
        relay: Relay whose stats and config are exposed
        service_name: Name reported by /health
        enable_health: Whether to register the /health endpoint

    Returns:
        Configured Flask application
    """
    app = Flask(__name__)
    app.config["SERVICE_NAME"] = service_name
    app.extensions[_EXTENSION_KEY] = relay

    app.register_blueprint(dashboard_bp)

    if enable_health:
        app.register_blueprint(health_bp)
        register_health_check(app, lambda: ("delivery_pool", not relay.closed))

    return app


def run_dashboard(app: Flask, host: str = "127.0.0.1", port: int = 3000, debug: bool = False) -> None:
    """Serve the dashboard with the Flask development server."""
    app.run(host=host, port=port, debug=debug)
