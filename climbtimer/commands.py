# climbtimer/commands.py
"""
Client commands and how they change a room's TimerState.

Every Socket.IO command event has exactly one pydantic model here, tagged by
its event name. ``parse_command`` rejects anything else with a
``pydantic.ValidationError``; ``apply_command`` mutates the state and reports
which snapshots have to go out.
"""
import logging
from dataclasses import dataclass
from typing import Annotated, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter

from climbtimer.competition import rotation
from climbtimer.competition.models import BOULDERS_PER_CATEGORY, Boulder, Category, Phase, TimerState

logger = logging.getLogger(__name__)

BoulderId = Annotated[int, Field(ge=1, le=BOULDERS_PER_CATEGORY)]


# ==================== COMMAND MODELS ====================


class TimerPatch(BaseModel):
    type: Literal["timer-update"] = "timer-update"
    running: Optional[bool] = None
    remaining: Optional[int] = Field(None, ge=0, le=99 * 60 + 59)
    phase: Optional[Phase] = None
    showNames: Optional[bool] = None


class ConfigPatch(BaseModel):
    type: Literal["config-update"] = "config-update"
    climbMin: Optional[int] = Field(None, ge=0, le=99)
    climbSec: Optional[int] = Field(None, ge=0, le=59)
    transMin: Optional[int] = Field(None, ge=0, le=99)
    transSec: Optional[int] = Field(None, ge=0, le=59)


class BoulderPayload(BaseModel):
    climbers: List[str] = Field(default_factory=list)
    currentClimberIndex: int = Field(0, ge=0)
    hasStarted: bool = False
    skipNext: bool = False


class UpsertCategory(BaseModel):
    type: Literal["category-update"] = "category-update"
    id: Optional[int] = None
    name: str = Field(..., min_length=1, max_length=100)
    climbers: Optional[List[str]] = None
    boulders: Optional[List[BoulderPayload]] = Field(
        None, min_length=BOULDERS_PER_CATEGORY, max_length=BOULDERS_PER_CATEGORY
    )
    climberProgress: Optional[Dict[str, List[BoulderId]]] = None


class DeleteCategory(BaseModel):
    type: Literal["category-delete"] = "category-delete"
    categoryId: int


class AdvanceOne(BaseModel):
    type: Literal["advance-climber"] = "advance-climber"
    categoryId: int
    boulderId: BoulderId


class AdvanceBoulder(BaseModel):
    type: Literal["advance-boulder"] = "advance-boulder"
    boulderId: BoulderId


class AdvanceCategory(BaseModel):
    type: Literal["advance-category"] = "advance-category"
    categoryId: int


class AdvanceAll(BaseModel):
    type: Literal["advance-all-climbers"] = "advance-all-climbers"


class SkipClimber(BaseModel):
    type: Literal["skip-climber"] = "skip-climber"
    categoryId: int
    boulderId: BoulderId


class ResetCategoryProgress(BaseModel):
    type: Literal["reset-category-progress"] = "reset-category-progress"
    categoryId: int


class SwitchRound(BaseModel):
    type: Literal["switch-round"] = "switch-round"
    index: int


Command = Annotated[
    Union[
        TimerPatch,
        ConfigPatch,
        UpsertCategory,
        DeleteCategory,
        AdvanceOne,
        AdvanceBoulder,
        AdvanceCategory,
        AdvanceAll,
        SkipClimber,
        ResetCategoryProgress,
        SwitchRound,
    ],
    Field(discriminator="type"),
]

_command_adapter = TypeAdapter(Command)

COMMAND_EVENTS = (
    "timer-update",
    "config-update",
    "category-update",
    "category-delete",
    "advance-climber",
    "advance-boulder",
    "advance-category",
    "advance-all-climbers",
    "skip-climber",
    "reset-category-progress",
    "switch-round",
)


# commands whose clients may send the bare value instead of an object
_BARE_PAYLOAD_FIELDS = {
    "category-delete": "categoryId",
    "advance-boulder": "boulderId",
    "advance-category": "categoryId",
}


def parse_command(event: str, payload=None):
    """Build the command for ``event``. Raises pydantic.ValidationError."""
    if payload is None:
        payload = {}
    if not isinstance(payload, dict) and event in _BARE_PAYLOAD_FIELDS:
        payload = {_BARE_PAYLOAD_FIELDS[event]: payload}
    if isinstance(payload, dict):
        payload = {**payload, "type": event}
    # non-object payloads fail tag extraction
    return _command_adapter.validate_python(payload)


# ==================== APPLYING ====================


@dataclass
class CommandOutcome:
    """Which snapshots a command changed, and whether rounds need saving."""

    timer: bool = False
    config: bool = False
    rounds: bool = False
    categories: bool = False
    persist: bool = False

    @property
    def changed(self) -> bool:
        return self.timer or self.config or self.rounds or self.categories


def _category_or_none(state: TimerState, category_id: int) -> Optional[Category]:
    category = state.find_category(category_id)
    if category is None:
        logger.warning("Dropping command: unknown category %s", category_id)
    return category


def _apply_timer_patch(state: TimerState, cmd: TimerPatch) -> CommandOutcome:
    if cmd.remaining is not None:
        state.remaining = cmd.remaining
    if cmd.phase is not None:
        state.phase = cmd.phase
    if cmd.showNames is not None:
        state.show_names = cmd.showNames
    if cmd.running is not None:
        state.running = cmd.running
    if state.running and state.phase == Phase.STOPPED:
        state.phase = Phase.CLIMB
        if state.remaining <= 0:
            state.remaining = state.climb_seconds
    return CommandOutcome(timer=True)


def _apply_config_patch(state: TimerState, cmd: ConfigPatch) -> CommandOutcome:
    current = state.config_snapshot()
    values = {key: getattr(cmd, key) if getattr(cmd, key) is not None else current[key] for key in current}
    state.climb_seconds = values["climbMin"] * 60 + values["climbSec"]
    state.transition_seconds = values["transMin"] * 60 + values["transSec"]
    # an idle clock shows the configured climb time
    if not state.running and state.phase == Phase.STOPPED:
        state.remaining = state.climb_seconds
    return CommandOutcome(timer=True, config=True)


def _boulders_from_payload(cmd: UpsertCategory) -> List[Boulder]:
    boulders = []
    for i, payload in enumerate(cmd.boulders, start=1):
        climbers = [c.strip() for c in payload.climbers if c.strip()]
        index = payload.currentClimberIndex if payload.currentClimberIndex < max(len(climbers), 1) else 0
        boulders.append(Boulder(i, climbers, index, payload.hasStarted, payload.skipNext))
    return boulders


def _apply_upsert_category(state: TimerState, cmd: UpsertCategory) -> CommandOutcome:
    name = cmd.name.strip()
    climbers = [c.strip() for c in cmd.climbers or [] if c.strip()]
    category = state.find_category(cmd.id) if cmd.id is not None else None

    if category is None:
        round_ = state.ensure_active_round()
        category = Category.create(state.allocate_category_id(), name, climbers)
        round_.categories.append(category)
        logger.info("Category added: %s (id %s)", name, category.id)
    else:
        category.name = name
        if cmd.climbers is not None:
            for boulder in category.boulders:
                boulder.climbers = list(climbers)
                boulder.reset()
            # every boulder restarts, so nobody has climbed anything yet
            category.climber_progress = {}
        logger.info("Category updated: %s (id %s)", name, category.id)

    if cmd.boulders is not None:
        category.boulders = _boulders_from_payload(cmd)
    if cmd.climberProgress is not None:
        category.climber_progress = {n: sorted(set(ids)) for n, ids in cmd.climberProgress.items()}

    return CommandOutcome(rounds=True, categories=True, persist=True)


def _apply_delete_category(state: TimerState, cmd: DeleteCategory) -> CommandOutcome:
    category = _category_or_none(state, cmd.categoryId)
    if category is None:
        return CommandOutcome()
    state.active_round().categories.remove(category)
    logger.info("Category deleted: %s (id %s)", category.name, category.id)
    return CommandOutcome(rounds=True, categories=True, persist=True)


def _apply_advance_one(state: TimerState, cmd: AdvanceOne) -> CommandOutcome:
    category = _category_or_none(state, cmd.categoryId)
    if category is None:
        return CommandOutcome()
    rotation.advance(category, cmd.boulderId - 1)
    return CommandOutcome(categories=True, persist=True)


def _apply_advance_boulder(state: TimerState, cmd: AdvanceBoulder) -> CommandOutcome:
    rotation.advance_boulder(state.categories, cmd.boulderId)
    return CommandOutcome(categories=True, persist=True)


def _apply_advance_category(state: TimerState, cmd: AdvanceCategory) -> CommandOutcome:
    category = _category_or_none(state, cmd.categoryId)
    if category is None:
        return CommandOutcome()
    rotation.advance_category(category)
    return CommandOutcome(categories=True, persist=True)


def _apply_advance_all(state: TimerState, cmd: AdvanceAll) -> CommandOutcome:
    rotation.advance_all(state.categories)
    return CommandOutcome(categories=True, persist=True)


def _apply_skip_climber(state: TimerState, cmd: SkipClimber) -> CommandOutcome:
    category = _category_or_none(state, cmd.categoryId)
    if category is None:
        return CommandOutcome()
    if not rotation.skip_climber(category, cmd.boulderId - 1):
        logger.warning("Dropping skip: boulder %s of category %s has no climbers", cmd.boulderId, cmd.categoryId)
        return CommandOutcome()
    return CommandOutcome(categories=True, persist=True)


def _apply_reset_category_progress(state: TimerState, cmd: ResetCategoryProgress) -> CommandOutcome:
    category = _category_or_none(state, cmd.categoryId)
    if category is None:
        return CommandOutcome()
    rotation.reset_category(category)
    return CommandOutcome(categories=True, persist=True)


def _apply_switch_round(state: TimerState, cmd: SwitchRound) -> CommandOutcome:
    if not 0 <= cmd.index < len(state.rounds):
        logger.warning("Dropping switch-round: index %s out of range (%d rounds)", cmd.index, len(state.rounds))
        return CommandOutcome()
    state.active_round_index = cmd.index
    # switching is a hard reset, never a resume
    rotation.reset_round(state.rounds[cmd.index])
    logger.debug("Round %d (%s) reset and active", cmd.index, state.rounds[cmd.index].name)
    return CommandOutcome(timer=True, rounds=True, categories=True, persist=True)


_HANDLERS = {
    TimerPatch: _apply_timer_patch,
    ConfigPatch: _apply_config_patch,
    UpsertCategory: _apply_upsert_category,
    DeleteCategory: _apply_delete_category,
    AdvanceOne: _apply_advance_one,
    AdvanceBoulder: _apply_advance_boulder,
    AdvanceCategory: _apply_advance_category,
    AdvanceAll: _apply_advance_all,
    SkipClimber: _apply_skip_climber,
    ResetCategoryProgress: _apply_reset_category_progress,
    SwitchRound: _apply_switch_round,
}


def apply_command(state: TimerState, command) -> CommandOutcome:
    handler = _HANDLERS.get(type(command))
    if handler is None:
        logger.warning("Dropping unknown command %r", command)
        return CommandOutcome()
    return handler(state, command)
