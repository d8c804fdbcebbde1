# climbtimer/competition/models.py
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

BOULDERS_PER_CATEGORY = 4

DEFAULT_CLIMB_SECONDS = 240
DEFAULT_TRANSITION_SECONDS = 60


class Phase(str, Enum):
    STOPPED = "stopped"
    CLIMB = "climb"
    TRANSITION = "transition"


@dataclass
class Boulder:
    boulder_id: int
    climbers: List[str] = field(default_factory=list)
    current_climber_index: int = 0
    has_started: bool = False
    # pending empty slot, flows to the next boulder on the next advance
    skip_next: bool = False

    def current_climber(self) -> Optional[str]:
        if not self.climbers or not 0 <= self.current_climber_index < len(self.climbers):
            return None
        return self.climbers[self.current_climber_index]

    def reset(self):
        self.current_climber_index = 0
        self.has_started = False
        self.skip_next = False

    def to_dict(self) -> dict:
        return {
            "boulderId": self.boulder_id,
            "climbers": list(self.climbers),
            "currentClimberIndex": self.current_climber_index,
            "hasStarted": self.has_started,
            "skipNext": self.skip_next,
        }

    @classmethod
    def from_dict(cls, data: dict, boulder_id: int) -> "Boulder":
        climbers = [str(c).strip() for c in data.get("climbers") or [] if str(c).strip()]
        index = int(data.get("currentClimberIndex") or 0)
        if not 0 <= index < max(len(climbers), 1):
            index = 0
        return cls(
            boulder_id=boulder_id,
            climbers=climbers,
            current_climber_index=index,
            has_started=bool(data.get("hasStarted", False)),
            skip_next=bool(data.get("skipNext", False)),
        )


@dataclass
class Category:
    id: int
    name: str
    boulders: List[Boulder] = field(default_factory=list)
    # climber name -> sorted boulder ids climbed
    climber_progress: Dict[str, List[int]] = field(default_factory=dict)

    @classmethod
    def create(cls, category_id: int, name: str, climbers: List[str]) -> "Category":
        """New category with four boulders sharing the same starting roster."""
        return cls(
            id=category_id,
            name=name,
            boulders=[Boulder(boulder_id=i, climbers=list(climbers)) for i in range(1, BOULDERS_PER_CATEGORY + 1)],
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "boulders": [b.to_dict() for b in self.boulders],
            "climberProgress": {name: list(ids) for name, ids in self.climber_progress.items()},
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Category":
        raw_boulders = list(data.get("boulders") or [])[:BOULDERS_PER_CATEGORY]
        # the four slots are fixed; pad short payloads with empty boulders
        raw_boulders += [{}] * (BOULDERS_PER_CATEGORY - len(raw_boulders))
        progress = {}
        for name, ids in (data.get("climberProgress") or {}).items():
            progress[str(name)] = sorted({int(i) for i in ids if 1 <= int(i) <= BOULDERS_PER_CATEGORY})
        return cls(
            id=int(data["id"]),
            name=str(data.get("name", "")),
            boulders=[Boulder.from_dict(b, boulder_id=i + 1) for i, b in enumerate(raw_boulders)],
            climber_progress=progress,
        )


@dataclass
class Round:
    name: str
    categories: List[Category] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"name": self.name, "categories": [c.to_dict() for c in self.categories]}

    @classmethod
    def from_dict(cls, data: dict) -> "Round":
        return cls(
            name=str(data.get("name", "")),
            categories=[Category.from_dict(c) for c in data.get("categories") or []],
        )


@dataclass
class TimerState:
    climb_seconds: int = DEFAULT_CLIMB_SECONDS
    transition_seconds: int = DEFAULT_TRANSITION_SECONDS
    phase: Phase = Phase.STOPPED
    running: bool = False
    remaining: int = DEFAULT_CLIMB_SECONDS
    show_names: bool = True
    rounds: List[Round] = field(default_factory=list)
    active_round_index: int = 0
    next_category_id: int = 1

    @property
    def categories(self) -> List[Category]:
        # always the active round's list, so writes land in the round itself
        active = self.active_round()
        return active.categories if active else []

    def active_round(self) -> Optional[Round]:
        if 0 <= self.active_round_index < len(self.rounds):
            return self.rounds[self.active_round_index]
        return None

    def ensure_active_round(self) -> Round:
        active = self.active_round()
        if active is None:
            self.rounds.append(Round(name=f"Round {len(self.rounds) + 1}"))
            self.active_round_index = len(self.rounds) - 1
            active = self.rounds[-1]
        return active

    def find_category(self, category_id) -> Optional[Category]:
        for category in self.categories:
            if category.id == category_id:
                return category
        return None

    def allocate_category_id(self) -> int:
        category_id = self.next_category_id
        self.next_category_id += 1
        return category_id

    def _highest_category_id(self) -> int:
        return max((c.id for r in self.rounds for c in r.categories), default=0)

    # -------------------------
    # Persistence
    # -------------------------
    def persisted(self) -> dict:
        return {
            "rounds": [r.to_dict() for r in self.rounds],
            "activeRoundIndex": self.active_round_index,
            "nextCategoryId": self.next_category_id,
        }

    def restore(self, payload: dict):
        self.rounds = [Round.from_dict(r) for r in payload.get("rounds") or []]
        index = int(payload.get("activeRoundIndex") or 0)
        self.active_round_index = index if 0 <= index < len(self.rounds) else 0
        self.next_category_id = max(int(payload.get("nextCategoryId") or 1), self._highest_category_id() + 1)

    # -------------------------
    # Snapshots
    # -------------------------
    def timer_snapshot(self) -> dict:
        return {
            "climbSeconds": self.climb_seconds,
            "transitionSeconds": self.transition_seconds,
            "phase": self.phase.value,
            "running": self.running,
            "remaining": self.remaining,
            "showNames": self.show_names,
            "activeRoundIndex": self.active_round_index,
        }

    def config_snapshot(self) -> dict:
        return {
            "climbMin": self.climb_seconds // 60,
            "climbSec": self.climb_seconds % 60,
            "transMin": self.transition_seconds // 60,
            "transSec": self.transition_seconds % 60,
        }

    def rounds_summary(self) -> dict:
        return {
            "rounds": [
                {"index": i, "name": r.name, "categoryCount": len(r.categories)}
                for i, r in enumerate(self.rounds)
            ],
            "activeRoundIndex": self.active_round_index,
        }

    def categories_snapshot(self) -> List[dict]:
        from .rotation import display_name

        snapshot = []
        for category in self.categories:
            data = category.to_dict()
            for boulder, boulder_data in zip(category.boulders, data["boulders"]):
                boulder_data["currentClimber"] = display_name(category, boulder)
            snapshot.append(data)
        return snapshot
