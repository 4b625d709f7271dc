"""Entry point for the station core.

Builds the Flask app with the hardware runtime started (serial port,
command queue, timers, MQTT, pollers) and serves the device operation API.
"""
from __future__ import annotations

import logging

from app import create_app
from app.config import load_config


def main() -> int:
    config = load_config()
    app = create_app(bootstrap_runtime=True)

    logging.info("Starting server on %s:%s", config.http_host, config.http_port)
    try:
        app.run(host=config.http_host, port=config.http_port, debug=False, use_reloader=False)
        logging.info("Server stopped.")
        return 0
    except KeyboardInterrupt:
        logging.info("Server stopped by user.")
        return 0
    except Exception as exc:  # pragma: no cover - top-level runtime errors
        logging.exception("ERROR: Failed to start server: %s", exc)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
