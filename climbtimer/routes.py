# climbtimer/routes.py
import logging
import time
from datetime import datetime, timezone

from flask import Blueprint, current_app, jsonify, request

from climbtimer.exceptions import ImportRejected, RoomDeletionDenied, RoomNotFound
from climbtimer.utils.importer import parse_sheets, read_workbook

logger = logging.getLogger(__name__)

api = Blueprint("api", __name__)

_started_at = time.monotonic()


def _registry():
    return current_app.extensions["room_registry"]


def _gateway():
    return current_app.extensions["sync_gateway"]


@api.route("/health")
def health():
    """Liveness probe for hosting platforms."""
    rooms = _registry().list_rooms()
    return jsonify({
        "status": "healthy",
        "uptime": round(time.monotonic() - _started_at, 1),
        "rooms": len(rooms),
        "connectedClients": sum(r["viewers"] for r in rooms),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    })


@api.route("/api/state")
def state():
    room = _registry().get_or_create(request.args.get("room"))
    with room.lock:
        return jsonify({
            "room": room.room_id,
            "timer": room.state.timer_snapshot(),
            "config": room.state.config_snapshot(),
            "rounds": room.state.rounds_summary(),
            "categories": room.state.categories_snapshot(),
            "connectedClients": room.viewers,
        })


# --- Room administration ---


@api.route("/api/rooms", methods=["GET"])
def list_rooms():
    return jsonify({"rooms": _registry().list_rooms()})


@api.route("/api/rooms", methods=["POST"])
def create_room():
    data = request.get_json(silent=True) or {}
    room_id = data.get("id")
    if not room_id:
        return jsonify({"error": "Room id required."}), 400
    room = _registry().create_room(room_id)
    return jsonify(room.summary()), 201


@api.route("/api/rooms/<room_id>", methods=["DELETE"])
def delete_room(room_id):
    try:
        _registry().delete_room(room_id)
    except RoomNotFound as e:
        return jsonify({"error": str(e)}), 404
    except RoomDeletionDenied as e:
        return jsonify({"error": str(e), "reason": e.reason}), 409
    return "", 204


@api.route("/api/rooms/<room_id>/import", methods=["POST"])
def import_rounds(room_id):
    upload = request.files.get("file")
    if upload is None or not upload.filename:
        return jsonify({"error": "Spreadsheet file required."}), 400

    registry = _registry()
    room = registry.get_or_create(room_id)
    try:
        sheets = read_workbook(upload.stream, upload.filename)
        rounds, next_id = parse_sheets(sheets, room.state.next_category_id)
    except ImportRejected as e:
        logger.warning("Import into room %s rejected: %s", room.room_id, e.reason)
        return jsonify({"error": e.reason, "sheet": e.sheet}), 400

    registry.import_rounds(room.room_id, rounds, next_id)
    _gateway().broadcast_state(room.room_id)
    return jsonify({
        "room": room.room_id,
        "rounds": room.state.rounds_summary()["rounds"],
    })
