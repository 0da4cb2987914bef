"""
REST API server module.

This module provides a Flask-based REST API for sysmon, allowing remote
querying of the current snapshot and the session's capabilities.

Endpoints:
    GET /status - Returns the snapshot the sinks last received
    GET /health - Returns the health level of the latest snapshot
    GET /capabilities - Returns the platform and capability set
    POST /capabilities/refresh - Re-probes capabilities

Authentication:
    Supports Bearer token and query parameter authentication via [api] auth_token.
"""

# Standard library imports
import logging
import secrets
import threading
from functools import wraps
from typing import Optional

# Third-party imports
from flask import Flask, current_app, jsonify, request
from werkzeug.serving import make_server

# Local imports
from sysmon.core.capabilities import CapabilityMatrix
from sysmon.monitors.system import SystemMonitor

# Configure logger
logger = logging.getLogger(__name__)


# ----------------------------
# Authentication
# ----------------------------

UNAUTHORIZED_MESSAGE = (
    "Send the configured token as 'Authorization: Bearer <token>' "
    "or as the '?auth_token=<token>' query parameter."
)


def _presented_token() -> str:
    """Token from the Authorization header, else from the query string."""
    scheme, _, credentials = request.headers.get("Authorization", "").partition(" ")
    if scheme == "Bearer" and credentials:
        return credentials
    return request.args.get("auth_token", "")


def require_auth(f):
    """Reject the request with 401 unless it carries the app's token.

    Tokens are compared with ``secrets.compare_digest``. Rejections are
    logged with the caller's address.
    """
    @wraps(f)
    def guarded(*args, **kwargs):
        expected = current_app.config.get("SYSMON_AUTH_TOKEN", "")
        if not expected:
            # Only reachable for apps built in code; settings refuse it
            logger.warning(f"Serving '{request.path}' without authentication: no auth_token set")
            return f(*args, **kwargs)

        presented = _presented_token()
        if presented and secrets.compare_digest(presented, expected):
            return f(*args, **kwargs)

        logger.warning(f"Rejected unauthenticated request to '{request.path}' from {request.remote_addr}")
        return jsonify({"error": "Unauthorized", "message": UNAUTHORIZED_MESSAGE}), 401

    return guarded


def add_security_headers(response):
    """Attach the security headers to every response."""
    for header, value in (
        ("X-Content-Type-Options", "nosniff"),
        ("X-Frame-Options", "DENY"),
        ("Cache-Control", "no-store"),
    ):
        response.headers[header] = value
    return response


# ----------------------------
# API endpoints
# ----------------------------

def status():
    """
    GET /status
    Returns the monitor's latest snapshot, CPU history included, so the API
    agrees with the dashboard file and MQTT state. Before the first tick the
    request triggers one poll.

    Example:
        >>> curl -H "Authorization: Bearer token123" http://localhost:5555/status
        {"timestamp": "2024-01-01 12:00:00", "health": "Good", "cpu": {...}, ...}
    """
    try:
        snapshot = current_app.config["SYSMON_MONITOR"].current()
        return jsonify(snapshot.to_dict())
    except Exception as e:
        logger.error(f"Error assembling snapshot: {e}", exc_info=True)
        return jsonify({"error": "Internal server error"}), 500


def health():
    """
    GET /health
    Returns the health level of the monitor's latest snapshot.
    """
    try:
        snapshot = current_app.config["SYSMON_MONITOR"].current()
        return jsonify({"health": snapshot.health, "timestamp": snapshot.timestamp})
    except Exception as e:
        logger.error(f"Error reading health: {e}", exc_info=True)
        return jsonify({"error": "Internal server error"}), 500


def _capabilities_payload(matrix: CapabilityMatrix) -> dict:
    platform = matrix.platform
    return {
        "platform": {
            "class": platform.platform_class.value,
            "kernel": platform.kernel,
            "architecture": platform.architecture,
        },
        "capabilities": matrix.capabilities.to_dict(),
    }


def capabilities():
    """
    GET /capabilities
    Returns the detected platform class and every capability flag.
    """
    return jsonify(_capabilities_payload(current_app.config["SYSMON_MATRIX"]))


def refresh_capabilities():
    """
    POST /capabilities/refresh
    Re-runs every capability probe; later snapshots use the new set.
    """
    matrix = current_app.config["SYSMON_MATRIX"]
    try:
        matrix.refresh()
    except Exception as e:
        logger.error(f"Error refreshing capabilities: {e}", exc_info=True)
        return jsonify({"error": "Internal server error"}), 500
    logger.info(f"Capabilities refreshed by {request.remote_addr}")
    return jsonify(_capabilities_payload(matrix))


def create_app(
    monitor: SystemMonitor,
    matrix: Optional[CapabilityMatrix] = None,
    auth_token: str = "",
) -> Flask:
    """
    Build the Flask application bound to one polling session.

    Args:
        monitor: Snapshot source for /status and /health.
        matrix: Capability matrix (defaults to the monitor assembler's).
        auth_token: Required bearer token.

    Returns:
        Configured Flask app.
    """
    app = Flask(__name__)
    app.config["SYSMON_MONITOR"] = monitor
    app.config["SYSMON_MATRIX"] = matrix or monitor.assembler.matrix
    app.config["SYSMON_AUTH_TOKEN"] = auth_token

    app.after_request(add_security_headers)
    app.add_url_rule("/status", "status", require_auth(status))
    app.add_url_rule("/health", "health", require_auth(health))
    app.add_url_rule("/capabilities", "capabilities", require_auth(capabilities))
    app.add_url_rule(
        "/capabilities/refresh",
        "refresh_capabilities",
        require_auth(refresh_capabilities),
        methods=["POST"],
    )
    return app


def start_api(app: Flask, port: int, stop_event: threading.Event, host: str = "0.0.0.0") -> None:
    """
    Serve the API until stop_event is set.

    Args:
        app: Application from create_app().
        port: Port number to listen on.
        stop_event: Threading event for shutdown signaling.
        host: Interface to bind.
    """
    logger.info(f"Starting API server on port {port}")

    # Suppress werkzeug's per-request logging
    logging.getLogger('werkzeug').setLevel(logging.ERROR)

    try:
        server = make_server(host, port, app, threaded=True)
    except OSError as e:
        logger.error(f"API server could not bind to port {port}: {e}")
        return

    thread = threading.Thread(target=server.serve_forever, name="api-server", daemon=True)
    thread.start()
    try:
        stop_event.wait()
    finally:
        server.shutdown()
        thread.join(timeout=5)
        logger.info("API server stopped")
