"""Flask dashboard for console-ext."""

from console_ext.api.app import create_dashboard, run_dashboard
from console_ext.api.health import health_bp, register_health_check

__all__ = ["create_dashboard", "run_dashboard", "health_bp", "register_health_check"]
