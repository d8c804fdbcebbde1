# climbtimer/socket.py
import logging

from flask import request
from flask_socketio import emit, join_room, leave_room
from pydantic import ValidationError

from climbtimer.commands import COMMAND_EVENTS, CommandOutcome, parse_command
from climbtimer.exceptions import RoomNotFound

logger = logging.getLogger(__name__)


class SyncGateway:
    """
    Socket.IO side of the server. Each connection is bound to one room (the
    ``room`` query argument); every command it sends is applied to that room
    and the resulting snapshots go to every member of the room, sender
    included.
    """

    def __init__(self, socketio, registry):
        self.socketio = socketio
        self.registry = registry
        # sid -> room id
        self.connections = {}

    def register(self):
        self.socketio.on_event("connect", self.on_connect)
        self.socketio.on_event("disconnect", self.on_disconnect)
        for event in COMMAND_EVENTS:
            self.socketio.on_event(event, self._command_handler(event))
        self.registry.set_step_listener(self.on_clock_step)

    def _command_handler(self, event):
        def handler(data=None):
            self.handle_command(event, data)
        handler.__name__ = "on_" + event.replace("-", "_")
        return handler

    # --- Connection lifecycle ---

    def on_connect(self, auth=None):
        room = self.registry.attach(request.args.get("room"))
        self.connections[request.sid] = room.room_id
        join_room(room.room_id)
        logger.info("Client %s connected to room %s. Viewers: %d", request.sid[:8], room.room_id, room.viewers)

        with room.lock:
            state = room.state
            emit("timer-sync", state.timer_snapshot())
            emit("config-sync", state.config_snapshot())
            emit("rounds-sync", state.rounds_summary())
            emit("categories-sync", state.categories_snapshot())
        self.broadcast_viewers(room.room_id)

    def on_disconnect(self, reason=None):
        room_id = self.connections.pop(request.sid, None)
        if room_id is None:
            return
        leave_room(room_id)
        room = self.registry.detach(room_id)
        if room is None:
            return
        logger.info("Client %s left room %s. Viewers: %d", request.sid[:8], room_id, room.viewers)
        self.broadcast_viewers(room_id)

    # --- Commands ---

    def handle_command(self, event, data):
        room_id = self.connections.get(request.sid)
        if room_id is None:
            logger.warning("Dropping %s from unbound client %s", event, request.sid[:8])
            return
        try:
            command = parse_command(event, data)
        except ValidationError as e:
            logger.warning("Dropping malformed %s in room %s: %s", event, room_id, e.errors(include_url=False))
            return

        outcome = self.registry.apply(room_id, command)
        if outcome.changed:
            logger.info("%s applied in room %s by %s", event, room_id, request.sid[:8])
        self.broadcast(room_id, outcome)

    # --- Broadcasting ---

    def _live_room(self, room_id):
        try:
            return self.registry.get(room_id)
        except RoomNotFound:
            # deleted or evicted since the message was queued
            logger.debug("Not broadcasting to missing room %s", room_id)
            return None

    def broadcast(self, room_id, outcome: CommandOutcome):
        room = self._live_room(room_id)
        if room is None:
            return
        with room.lock:
            state = room.state
            messages = []
            if outcome.timer:
                messages.append(("timer-sync", state.timer_snapshot()))
            if outcome.config:
                messages.append(("config-sync", state.config_snapshot()))
            if outcome.rounds:
                messages.append(("rounds-sync", state.rounds_summary()))
            if outcome.categories:
                messages.append(("categories-sync", state.categories_snapshot()))
        for event, payload in messages:
            self.socketio.emit(event, payload, to=room_id)

    def broadcast_state(self, room_id):
        self.broadcast(room_id, CommandOutcome(timer=True, config=True, rounds=True, categories=True))

    def broadcast_viewers(self, room_id):
        room = self._live_room(room_id)
        if room is None:
            return
        self.socketio.emit("client-count", room.viewers, to=room_id)

    def on_clock_step(self, room, step):
        self.broadcast(room.room_id, CommandOutcome(timer=True, categories=step.roster_changed))
        if step.crossed_zero:
            logger.info("Room %s phase advanced to %s", room.room_id, step.phase.value)
