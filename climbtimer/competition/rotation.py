# climbtimer/competition/rotation.py
"""
Rotation engine: decides which climber is up on each boulder.

Every function here is a no-op on bad input (unknown boulder index, empty
roster) and never raises.

Batched advances walk boulders left to right in a single pass: boulder i's
start gate depends on boulder i-1's state *after* it advanced in the same
pass. Empty slots only move one boulder per pass.
"""
from typing import Iterable, Optional

from .models import BOULDERS_PER_CATEGORY, Boulder, Category, Round

BOULDER_IDS = tuple(range(1, BOULDERS_PER_CATEGORY + 1))
COMPLETE = frozenset(BOULDER_IDS)

SKIP_LABEL = "SKIP"
DONE_LABEL = "DONE"


# -------------------------
# Progress ledger
# -------------------------
def record_progress(category: Category, climber: str, boulder_id: int):
    """Mark climber as having climbed boulder_id. Idempotent."""
    if climber is None or boulder_id not in BOULDER_IDS:
        return
    climbed = category.climber_progress.setdefault(climber, [])
    if boulder_id not in climbed:
        climbed.append(boulder_id)
        climbed.sort()


def is_complete(category: Category, climber: str) -> bool:
    return set(category.climber_progress.get(climber, ())) == COMPLETE


# -------------------------
# Single boulder
# -------------------------
def can_start(category: Category, boulder_index: int) -> bool:
    """
    Boulder 0 may always start. Any later boulder waits until the previous one
    has started and moved its pointer past index 1, which gives every climber
    one rest period before reaching the next boulder.
    """
    if boulder_index == 0:
        return True
    if not 0 < boulder_index < len(category.boulders):
        return False
    previous = category.boulders[boulder_index - 1]
    return previous.has_started and previous.current_climber_index > 1


def _next_index(category: Category, boulder: Boulder) -> int:
    size = len(boulder.climbers)
    naive = (boulder.current_climber_index + 1) % size
    for offset in range(size):
        candidate = (naive + offset) % size
        if not is_complete(category, boulder.climbers[candidate]):
            return candidate
    # everyone is done; the display renders DONE
    return naive


def advance(category: Category, boulder_index: int, honor_skip: bool = True) -> bool:
    """
    Advance one boulder. Returns True when a boulder started or a climber
    moved, False for skip propagation and no-ops.

    With ``honor_skip`` False a pending empty slot is left in place and the
    boulder advances normally; batched passes use this for slots that arrived
    earlier in the same pass.
    """
    if not 0 <= boulder_index < len(category.boulders):
        return False
    boulder = category.boulders[boulder_index]
    if not boulder.climbers:
        return False

    if honor_skip and boulder.skip_next:
        boulder.skip_next = False
        if boulder_index + 1 < len(category.boulders):
            category.boulders[boulder_index + 1].skip_next = True
        return False

    if not boulder.has_started:
        if not can_start(category, boulder_index):
            return False
        boulder.has_started = True
        record_progress(category, boulder.current_climber(), boulder.boulder_id)
        return True

    record_progress(category, boulder.current_climber(), boulder.boulder_id)
    boulder.current_climber_index = _next_index(category, boulder)
    return True


def skip_climber(category: Category, boulder_index: int) -> bool:
    """Inject an empty slot on a boulder."""
    if not 0 <= boulder_index < len(category.boulders):
        return False
    boulder = category.boulders[boulder_index]
    if not boulder.climbers:
        return False
    boulder.skip_next = True
    return True


# -------------------------
# Batched advances
# -------------------------
def advance_category(category: Category) -> bool:
    # an empty slot moves one boulder per pass
    pending = [boulder.skip_next for boulder in category.boulders]
    moved = False
    for index, skip in enumerate(pending):
        moved = advance(category, index, honor_skip=skip) or moved
    return moved


def advance_boulder(categories: Iterable[Category], boulder_id: int) -> bool:
    """Advance boulder_id in every category."""
    moved = False
    for category in categories:
        moved = advance(category, boulder_id - 1) or moved
    return moved


def advance_all(categories: Iterable[Category]) -> bool:
    moved = False
    for category in categories:
        moved = advance_category(category) or moved
    return moved


# -------------------------
# Resets
# -------------------------
def reset_category(category: Category):
    category.climber_progress.clear()
    for boulder in category.boulders:
        boulder.reset()


def reset_round(round_: Round):
    for category in round_.categories:
        reset_category(category)


def display_name(category: Category, boulder: Boulder) -> Optional[str]:
    """What a viewer should see as the active climber on a boulder."""
    if boulder.skip_next:
        return SKIP_LABEL
    if not boulder.has_started:
        return None
    current = boulder.current_climber()
    if current is None:
        return None
    if all(is_complete(category, c) for c in boulder.climbers):
        return DONE_LABEL
    return current
