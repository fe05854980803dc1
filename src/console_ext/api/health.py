"""Health check blueprint for the dashboard."""

from collections.abc import Callable
from typing import Any

from flask import Blueprint, current_app, jsonify

health_bp = Blueprint("health", __name__)


@health_bp.route("/health")
def health_check() -> tuple[Any, int]:
    """Report registered checks; 503 if any of them fails."""
    checks = {}
    all_healthy = True

    for check in current_app.extensions.get("health_checks", []):
        try:
            name, healthy = check()
        except Exception:
            name, healthy = getattr(check, "__name__", "check"), False
        checks[name] = healthy
        all_healthy = all_healthy and healthy

    status = "ok" if all_healthy else "degraded"
    service_name = current_app.config.get("SERVICE_NAME", current_app.name)

    return jsonify({"status": status, "service": service_name, "checks": checks}), (
        200 if all_healthy else 503
    )


def register_health_check(app: Any, check: Callable[[], tuple[str, bool]]) -> None:
    """Register a health check function.

    Args:
        app: Flask application
        check: Function returning (name, is_healthy) tuple
    """
    app.extensions.setdefault("health_checks", []).append(check)
