# run.py

import logging
import os

from climbtimer import create_app, install_shutdown_handlers

logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    format="[%(asctime)s] %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("climbtimer")

app = create_app()
socketio = app.extensions["socketio"]
registry = app.extensions["room_registry"]

port = int(os.environ.get("PORT", 3000))
host = os.environ.get("HOST", "0.0.0.0")

if __name__ == "__main__":
    install_shutdown_handlers(registry)
    logger.info("Climbing timer server listening on %s:%s", host, port)
    try:
        socketio.run(app, host=host, port=port, allow_unsafe_werkzeug=True)
    except Exception:
        logger.exception("Server crashed; shutting down")
        raise
    finally:
        registry.shutdown()
