import pytest

from climbtimer import create_app
from climbtimer.competition.models import Category, Round, TimerState
from climbtimer.rooms import RoomRegistry


class FakeScheduler:
    """Records background tasks instead of running them."""

    def __init__(self):
        self.tasks = []

    def start_background_task(self, target, *args, **kwargs):
        self.tasks.append((target, args, kwargs))

    def sleep(self, seconds):
        pass


class MemoryStore:
    def __init__(self, rooms=None):
        self.rooms = dict(rooms or {})
        self.deleted = []

    def load(self, room_id):
        return self.rooms.get(room_id)

    def save(self, room_id, payload):
        self.rooms[room_id] = payload
        return True

    def delete(self, room_id):
        self.deleted.append(room_id)
        self.rooms.pop(room_id, None)


@pytest.fixture
def scheduler():
    return FakeScheduler()


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def registry(store, scheduler):
    reg = RoomRegistry(store, scheduler, idle_timeout=60)
    reg.get_or_create("default")
    return reg


@pytest.fixture
def app(tmp_path):
    return create_app({
        "TESTING": True,
        "DATA_DIR": str(tmp_path / "rooms"),
        # keep real clock threads asleep for the whole test
        "CLOCK_INTERVAL": 3600,
    })


@pytest.fixture
def socketio(app):
    return app.extensions["socketio"]


def make_category(climbers, category_id=1, name="Women Open"):
    return Category.create(category_id, name, list(climbers))


def make_state(*categories, round_name="Qualifiers"):
    state = TimerState()
    state.rounds = [Round(name=round_name, categories=list(categories))]
    state.next_category_id = max((c.id for c in categories), default=0) + 1
    return state
