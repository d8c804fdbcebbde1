# climbtimer/rooms.py
"""
Room registry: owns every live room, its lifecycle and command routing.

One registry is created per app in ``create_app`` and handed to the Socket.IO
gateway and the HTTP routes; there is no module-level room map.
"""
import logging
import re
import threading
import time
from typing import Callable, Dict, List, Optional

from climbtimer.commands import CommandOutcome, SwitchRound, apply_command
from climbtimer.competition.models import Round, TimerState
from climbtimer.competition.phase_clock import ClockStep, ClockTask, PhaseClock
from climbtimer.exceptions import RoomDeletionDenied, RoomNotFound

logger = logging.getLogger(__name__)

DEFAULT_ROOM_ID = "default"
MAX_ROOM_ID_LENGTH = 50

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_-]")


def sanitize_room_id(raw, default: str = DEFAULT_ROOM_ID) -> str:
    """Keep letters, digits, '-' and '_', at most 50 chars. Empty -> default room."""
    if raw is None:
        return default
    cleaned = _UNSAFE_CHARS.sub("", str(raw))[:MAX_ROOM_ID_LENGTH]
    return cleaned or default


class Room:
    def __init__(self, room_id: str, state: TimerState, scheduler, on_step: Callable, clock_interval: float = 1.0):
        self.room_id = room_id
        self.state = state
        self.viewers = 0
        # set once removed; pending background saves for it are dropped
        self.deleted = False
        self.last_activity = time.time()
        # serializes handler threads and the clock loop
        self.lock = threading.RLock()
        self.phase_clock = PhaseClock(state)
        self.clock = ClockTask(scheduler, lambda: on_step(self), interval=clock_interval, name=room_id)

    def touch(self):
        self.last_activity = time.time()

    def sync_clock(self):
        if self.state.running:
            self.clock.start()
        else:
            self.clock.stop()

    def step(self) -> Optional[ClockStep]:
        """Advance the clock one second, or stop it if the room was paused."""
        with self.lock:
            if not self.state.running:
                self.clock.stop()
                return None
            return self.phase_clock.step()

    def summary(self) -> dict:
        return {
            "id": self.room_id,
            "viewers": self.viewers,
            "phase": self.state.phase.value,
            "running": self.state.running,
            "categoryCount": len(self.state.categories),
            "roundCount": len(self.state.rounds),
        }


class RoomRegistry:
    """
    Maps sanitized room ids to rooms.

    Rooms are created lazily from persisted rounds the first time they are
    referenced. The default room is never deleted or evicted.
    """

    def __init__(self, store, scheduler, idle_timeout: float = 3600, default_room_id: str = DEFAULT_ROOM_ID,
                 clock_interval: float = 1.0):
        self.store = store
        self.scheduler = scheduler
        self.idle_timeout = idle_timeout
        self.default_room_id = sanitize_room_id(default_room_id)
        self.clock_interval = clock_interval
        self.rooms: Dict[str, Room] = {}
        self._lock = threading.RLock()
        self._step_listener: Optional[Callable[[Room, ClockStep], None]] = None
        self._reaper_running = False
        self._shut_down = False

    # -------------------------
    # Lookup / lifecycle
    # -------------------------
    def sanitize(self, raw) -> str:
        return sanitize_room_id(raw, self.default_room_id)

    def _load_state(self, room_id: str) -> TimerState:
        state = TimerState()
        payload = self.store.load(room_id)
        if payload:
            try:
                state.restore(payload)
            except Exception as e:
                logger.error("Stored rounds for room %s are unreadable, starting empty: %s", room_id, e)
                state = TimerState()
        return state

    def get_or_create(self, raw_id) -> Room:
        room_id = self.sanitize(raw_id)
        with self._lock:
            room = self.rooms.get(room_id)
            if room is None:
                room = Room(room_id, self._load_state(room_id), self.scheduler, self._on_room_step,
                            clock_interval=self.clock_interval)
                self.rooms[room_id] = room
                logger.info("Room %s created (%d rounds loaded)", room_id, len(room.state.rounds))
            return room

    def get(self, raw_id) -> Room:
        room_id = self.sanitize(raw_id)
        room = self.rooms.get(room_id)
        if room is None:
            raise RoomNotFound(room_id)
        return room

    def create_room(self, raw_id) -> Room:
        return self.get_or_create(raw_id)

    def delete_room(self, raw_id):
        room_id = self.sanitize(raw_id)
        with self._lock:
            room = self.rooms.get(room_id)
            if room is None:
                raise RoomNotFound(room_id)
            if room_id == self.default_room_id:
                raise RoomDeletionDenied(room_id, "the default room cannot be deleted")
            if len(self.rooms) <= 1:
                raise RoomDeletionDenied(room_id, "it is the last room")
            if room.viewers > 0:
                raise RoomDeletionDenied(room_id, f"{room.viewers} viewer(s) connected")
            if room.state.running or room.clock.running:
                raise RoomDeletionDenied(room_id, "its timer is running")
            room.clock.stop()
            del self.rooms[room_id]
            room.deleted = True
            self.store.delete(room_id)
        logger.info("Room %s deleted", room_id)

    def list_rooms(self) -> List[dict]:
        with self._lock:
            return [room.summary() for room in self.rooms.values()]

    def attach(self, raw_id) -> Room:
        room = self.get_or_create(raw_id)
        with room.lock:
            room.viewers += 1
            room.touch()
        return room

    def detach(self, room_id: str) -> Optional[Room]:
        room = self.rooms.get(room_id)
        if room is None:
            return None
        with room.lock:
            room.viewers = max(room.viewers - 1, 0)
            room.touch()
        return room

    def evict_idle(self, now: Optional[float] = None) -> List[str]:
        now = time.time() if now is None else now
        evicted = []
        with self._lock:
            for room_id, room in list(self.rooms.items()):
                if room_id == self.default_room_id:
                    continue
                if room.viewers or room.state.running or room.clock.running:
                    continue
                if now - room.last_activity < self.idle_timeout:
                    continue
                del self.rooms[room_id]
                evicted.append(room_id)
        for room_id in evicted:
            logger.info("Room %s evicted after %ss idle", room_id, self.idle_timeout)
        return evicted

    # -------------------------
    # Commands
    # -------------------------
    def apply(self, room_id: str, command) -> CommandOutcome:
        if isinstance(command, SwitchRound):
            return self.switch_round(room_id, command.index)
        return self._apply(room_id, command)

    def _apply(self, room_id: str, command) -> CommandOutcome:
        room = self.get_or_create(room_id)
        with room.lock:
            outcome = apply_command(room.state, command)
            room.sync_clock()
            room.touch()
        if outcome.persist:
            self.save(room)
        return outcome

    def switch_round(self, room_id: str, index: int) -> CommandOutcome:
        """Activate round ``index`` with every category hard-reset. The clock keeps running."""
        outcome = self._apply(room_id, SwitchRound(index=index))
        if outcome.changed:
            logger.info("Room %s switched to round %d", self.sanitize(room_id), index)
        return outcome

    def import_rounds(self, room_id: str, rounds: List[Round], next_category_id: int) -> Room:
        room = self.get_or_create(room_id)
        with room.lock:
            room.state.rounds = rounds
            room.state.active_round_index = 0
            room.state.next_category_id = max(room.state.next_category_id, next_category_id)
            room.touch()
        self.save(room)
        logger.info("Imported %d round(s) into room %s", len(rounds), room.room_id)
        return room

    # -------------------------
    # Clock
    # -------------------------
    def set_step_listener(self, listener: Callable[[Room, ClockStep], None]):
        self._step_listener = listener

    def _on_room_step(self, room: Room):
        step = room.step()
        if step is None:
            return
        if step.roster_changed:
            self.save(room)
        if self._step_listener is not None:
            self._step_listener(room, step)

    # -------------------------
    # Persistence
    # -------------------------
    def save(self, room: Room):
        """Fire-and-forget write of the room's rounds."""
        with room.lock:
            payload = room.state.persisted()
        self.scheduler.start_background_task(self._persist, room, payload)

    def _persist(self, room: Room, payload: dict):
        # same lock as delete_room, so a late write cannot recreate the file
        with self._lock:
            if room.deleted:
                logger.debug("Dropping save for deleted room %s", room.room_id)
                return False
            return self.store.save(room.room_id, payload)

    def shutdown(self):
        """Stop every clock and write every room before the process exits."""
        with self._lock:
            if self._shut_down:
                return
            self._shut_down = True
            rooms = list(self.rooms.values())
        self.stop_reaper()
        for room in rooms:
            room.clock.stop()
            with room.lock:
                self.store.save(room.room_id, room.state.persisted())
        logger.info("Registry shut down; %d room(s) persisted", len(rooms))

    def start_reaper(self, interval: float):
        if self._reaper_running or interval <= 0:
            return
        self._reaper_running = True
        self.scheduler.start_background_task(self._reap_loop, interval)

    def _reap_loop(self, interval: float):
        while self._reaper_running:
            self.scheduler.sleep(interval)
            self.evict_idle()

    def stop_reaper(self):
        self._reaper_running = False
