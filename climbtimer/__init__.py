# climbtimer/__init__.py
import logging
import signal

from flask import Flask
from flask_socketio import SocketIO

from .rooms import RoomRegistry
from .socket import SyncGateway
from .utils.storage import RoomStore

logger = logging.getLogger(__name__)

DEFAULT_CONFIG = {
    "SECRET_KEY": "dev-secret-key",
    "DATA_DIR": "data/rooms",
    "DEFAULT_ROOM": "default",
    "ROOM_IDLE_TIMEOUT": 3600,
    "ROOM_REAP_INTERVAL": 60,
    "CLOCK_INTERVAL": 1.0,
    "SOCKETIO_ASYNC_MODE": "threading",
    "CORS_ALLOWED_ORIGINS": "*",
}


def create_app(config=None):
    app = Flask(__name__)
    app.config.from_mapping(DEFAULT_CONFIG)
    # e.g. CLIMBTIMER_DATA_DIR=/var/lib/climbtimer
    app.config.from_prefixed_env("CLIMBTIMER")
    if config:
        app.config.update(config)

    socketio = SocketIO(
        app,
        async_mode=app.config["SOCKETIO_ASYNC_MODE"],
        cors_allowed_origins=app.config["CORS_ALLOWED_ORIGINS"],
        ping_timeout=60,
        ping_interval=25,
    )

    registry = RoomRegistry(
        RoomStore(app.config["DATA_DIR"]),
        socketio,
        idle_timeout=float(app.config["ROOM_IDLE_TIMEOUT"]),
        default_room_id=app.config["DEFAULT_ROOM"],
        clock_interval=float(app.config["CLOCK_INTERVAL"]),
    )
    # the default room always exists
    registry.get_or_create(registry.default_room_id)

    gateway = SyncGateway(socketio, registry)
    gateway.register()

    app.extensions["room_registry"] = registry
    app.extensions["sync_gateway"] = gateway

    # --- Register blueprints ---
    from .routes import api

    app.register_blueprint(api)

    if not app.config.get("TESTING"):
        registry.start_reaper(float(app.config["ROOM_REAP_INTERVAL"]))
    return app


def install_shutdown_handlers(registry, signals=(signal.SIGTERM,)):
    """
    Drain and persist every room when the process is told to stop.

    SIGINT already arrives as KeyboardInterrupt; an unhandled SIGTERM kills
    the process before ``run.py``'s ``finally`` block runs. Must be called
    from the main thread.
    """

    def handle(signum, frame):
        logger.info("%s received, shutting down", signal.Signals(signum).name)
        registry.shutdown()
        raise SystemExit(0)

    for sig in signals:
        signal.signal(sig, handle)
    return handle
