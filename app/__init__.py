from __future__ import annotations

import atexit
import contextlib
import logging
import signal
import threading
from typing import Any

from flask import Flask, request
from werkzeug.exceptions import HTTPException

from app.blueprints.api.devices import devices_api
from app.config import load_config, setup_logging


def create_app(
    config_overrides: dict[str, Any] | None = None,
    *,
    container=None,
    bootstrap_runtime: bool = False,
) -> Flask:
    """
    Application factory.

    Args:
        config_overrides: AppConfig field overrides (keys are lower-cased).
        container: Prebuilt ServiceContainer; tests pass one wired with fakes.
        bootstrap_runtime: Open the serial port and start queue, timers,
            MQTT and pollers.
    """
    if container is not None:
        config = container.config
    else:
        config = load_config()
        if config_overrides:
            for key, value in config_overrides.items():
                setattr(config, key.lower(), value)

    # Configure logging early so serial and MQTT startup is visible in the terminal and station.log.
    setup_logging(debug=config.DEBUG, log_path=config.log_path)

    flask_app = Flask(__name__)
    flask_app.config.update(config.as_flask_config())

    if container is None:
        from app.services.container import ServiceContainer

        container = ServiceContainer.build(config)
    flask_app.config["CONTAINER"] = container

    # ── Graceful shutdown handlers ──────────────────────────────────
    _shutdown_lock = threading.Lock()
    _shutdown_done = False

    def _graceful_shutdown(reason: str = "unknown") -> None:
        nonlocal _shutdown_done
        with _shutdown_lock:
            if _shutdown_done:
                return
            _shutdown_done = True
        logging.info("Graceful shutdown initiated (%s)", reason)
        try:
            container.shutdown()
        except Exception as exc:
            logging.warning("Error during graceful shutdown: %s", exc)

    def _signal_handler(signum: int, _frame: object) -> None:
        sig_name = signal.Signals(signum).name
        logging.info("Received %s, shutting down", sig_name)
        _graceful_shutdown(sig_name)
        raise SystemExit(0)

    if bootstrap_runtime:
        # Register atexit (covers normal interpreter exit)
        atexit.register(_graceful_shutdown, "atexit")

        # Register OS signal handlers (SIGINT=Ctrl-C, SIGTERM=container/systemd stop)
        for sig in (signal.SIGINT, signal.SIGTERM):
            with contextlib.suppress(OSError, ValueError):
                signal.signal(sig, _signal_handler)

    # Global JSON error handler: domain exceptions carry their own ``http_status``.
    @flask_app.errorhandler(Exception)
    def _handle_unhandled(exc):
        from app.domain.exceptions import StationError
        from app.utils.http import error_response, safe_error

        if isinstance(exc, HTTPException):
            status = int(exc.code or 500)
            if status >= 500:
                return safe_error(exc, status, context="http-exception")
            return error_response(exc.description or "Request failed", status)

        if isinstance(exc, StationError):
            status = exc.http_status
            if status >= 500:
                return safe_error(exc, status, context=type(exc).__name__)
            return error_response(str(exc) or "Request failed", status)

        return safe_error(exc, 500, context=f"unhandled {request.path}")

    flask_app.register_blueprint(devices_api, url_prefix="/deviceOperation")

    for bp_name, _bp in flask_app.blueprints.items():
        logging.info(" Registered blueprint: %s", bp_name)

    if bootstrap_runtime:
        container.start()
    else:
        logging.info("Skipping hardware bootstrap (bootstrap_runtime=False)")

    logger = logging.getLogger(__name__)
    logger.info("Station application initialized successfully.")
    logging.getLogger("werkzeug").setLevel(logging.INFO)

    return flask_app


__all__ = ["create_app"]
