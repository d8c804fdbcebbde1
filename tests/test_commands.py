import pytest
from pydantic import ValidationError

from climbtimer.commands import (
    AdvanceAll,
    AdvanceOne,
    ConfigPatch,
    SwitchRound,
    TimerPatch,
    UpsertCategory,
    apply_command,
    parse_command,
)
from climbtimer.competition import rotation
from climbtimer.competition.models import Phase, Round, TimerState

from conftest import make_category, make_state


def test_parse_command_picks_model_by_event():
    cmd = parse_command("advance-climber", {"categoryId": 2, "boulderId": 3})
    assert isinstance(cmd, AdvanceOne)
    assert (cmd.categoryId, cmd.boulderId) == (2, 3)
    assert isinstance(parse_command("advance-all-climbers"), AdvanceAll)


def test_parse_command_ignores_payload_type_field():
    cmd = parse_command("switch-round", {"type": "advance-all-climbers", "index": 1})
    assert isinstance(cmd, SwitchRound)


@pytest.mark.parametrize(
    "event,payload",
    [
        ("no-such-command", {}),
        ("advance-climber", {"categoryId": 1}),
        ("advance-climber", {"categoryId": 1, "boulderId": 5}),
        ("advance-boulder", {"boulderId": 0}),
        ("category-delete", [7]),
        ("advance-climber", 1),
        ("config-update", "not a dict"),
        ("config-update", {"climbSec": 75}),
        ("timer-update", {"remaining": -1}),
        ("timer-update", {"phase": "warmup"}),
        ("category-update", {"name": ""}),
        ("category-update", {"name": "Youth", "boulders": [{"climbers": []}] * 3}),
    ],
)
def test_parse_command_rejects_malformed_payloads(event, payload):
    with pytest.raises(ValidationError):
        parse_command(event, payload)


@pytest.mark.parametrize(
    "event,payload,field,expected",
    [
        ("category-delete", 3, "categoryId", 3),
        ("advance-category", "2", "categoryId", 2),
        ("advance-boulder", 4, "boulderId", 4),
    ],
)
def test_parse_command_accepts_bare_ids(event, payload, field, expected):
    assert getattr(parse_command(event, payload), field) == expected


def test_bare_boulder_id_is_still_range_checked():
    with pytest.raises(ValidationError):
        parse_command("advance-boulder", 5)


def test_timer_patch_starting_from_stopped_enters_climb():
    state = TimerState(climb_seconds=90, remaining=0)
    outcome = apply_command(state, TimerPatch(running=True))
    assert outcome.timer and not outcome.persist
    assert state.running is True
    assert state.phase == Phase.CLIMB
    assert state.remaining == 90


def test_timer_patch_pause_keeps_remaining_and_phase():
    state = TimerState(phase=Phase.TRANSITION, running=True, remaining=17)
    apply_command(state, TimerPatch(running=False))
    assert state.running is False
    assert state.phase == Phase.TRANSITION
    assert state.remaining == 17


def test_timer_patch_never_rotates_climbers():
    state = make_state(make_category(["A", "B"]))
    state.phase = Phase.CLIMB
    apply_command(state, TimerPatch(remaining=0, phase=Phase.TRANSITION, running=True))
    assert not state.categories[0].boulders[0].has_started


def test_config_patch_sets_durations_and_idle_display():
    state = TimerState()
    outcome = apply_command(state, ConfigPatch(climbMin=5, climbSec=30, transMin=0, transSec=0))
    assert outcome.config and outcome.timer
    assert state.climb_seconds == 330
    assert state.transition_seconds == 0
    assert state.remaining == 330
    assert state.config_snapshot() == {"climbMin": 5, "climbSec": 30, "transMin": 0, "transSec": 0}


def test_config_patch_keeps_unspecified_fields_and_running_countdown():
    state = TimerState(climb_seconds=240, transition_seconds=60, phase=Phase.CLIMB, running=True, remaining=12)
    apply_command(state, ConfigPatch(transSec=30))
    assert state.climb_seconds == 240
    assert state.transition_seconds == 90
    assert state.remaining == 12


def test_upsert_creates_round_lazily_and_allocates_ids():
    state = TimerState()
    outcome = apply_command(state, UpsertCategory(name="Women Open", climbers=["A", " B ", ""]))
    assert outcome.persist and outcome.categories and outcome.rounds
    assert len(state.rounds) == 1
    category = state.categories[0]
    assert category.id == 1
    assert category.boulders[3].climbers == ["A", "B"]

    apply_command(state, UpsertCategory(name="Men Open"))
    assert [c.id for c in state.categories] == [1, 2]
    assert state.next_category_id == 3


def test_upsert_existing_category_updates_in_active_round():
    state = make_state(make_category(["A"], category_id=4))
    apply_command(state, UpsertCategory(id=4, name="Renamed", climbers=["X", "Y"]))
    category = state.rounds[0].categories[0]
    assert category.name == "Renamed"
    assert category.boulders[0].climbers == ["X", "Y"]
    assert len(state.categories) == 1


def test_upsert_with_full_boulders_payload():
    state = make_state(make_category(["A"], category_id=1))
    boulders = [{"climbers": ["A", "B", "C"], "currentClimberIndex": 2, "hasStarted": True}] + [{"climbers": ["A"]}] * 3
    cmd = parse_command("category-update", {
        "id": 1, "name": "Youth", "boulders": boulders, "climberProgress": {"A": [3, 1, 1]},
    })
    apply_command(state, cmd)
    category = state.categories[0]
    assert category.boulders[0].current_climber() == "C"
    assert category.boulders[0].has_started is True
    assert category.climber_progress == {"A": [1, 3]}


def test_deleted_category_id_is_not_reused():
    state = TimerState()
    apply_command(state, UpsertCategory(name="One"))
    apply_command(state, parse_command("category-delete", {"categoryId": 1}))
    assert state.categories == []
    apply_command(state, UpsertCategory(name="Two"))
    assert state.categories[0].id == 2


def test_unknown_category_is_dropped_without_broadcast():
    state = make_state(make_category(["A"]))
    for event, payload in [
        ("category-delete", {"categoryId": 99}),
        ("advance-climber", {"categoryId": 99, "boulderId": 1}),
        ("advance-category", {"categoryId": 99}),
        ("skip-climber", {"categoryId": 99, "boulderId": 1}),
        ("reset-category-progress", {"categoryId": 99}),
    ]:
        outcome = apply_command(state, parse_command(event, payload))
        assert not outcome.changed
        assert not outcome.persist


def test_advance_commands_mutate_active_round():
    state = make_state(make_category(["A", "B", "C"]))
    apply_command(state, parse_command("advance-category", {"categoryId": 1}))
    apply_command(state, parse_command("advance-climber", {"categoryId": 1, "boulderId": 1}))
    assert state.rounds[0].categories[0].boulders[0].current_climber() == "B"
    apply_command(state, parse_command("advance-boulder", {"boulderId": 1}))
    assert state.rounds[0].categories[0].boulders[0].current_climber() == "C"


def test_skip_command_marks_boulder():
    state = make_state(make_category(["A", "B"]))
    outcome = apply_command(state, parse_command("skip-climber", {"categoryId": 1, "boulderId": 2}))
    assert outcome.categories
    assert state.categories[0].boulders[1].skip_next is True


def test_switch_round_hard_resets_target_round():
    first = make_category(["A", "B", "C"], category_id=1)
    second = make_category(["X", "Y", "Z"], category_id=2)
    for _ in range(5):
        rotation.advance_category(second)
    second.boulders[0].skip_next = True
    state = TimerState(rounds=[Round("Qualifiers", [first]), Round("Finals", [second])], next_category_id=3)

    outcome = apply_command(state, SwitchRound(index=1))

    assert outcome.rounds and outcome.categories and outcome.persist
    assert state.active_round_index == 1
    assert state.categories == [second]
    assert second.climber_progress == {}
    for boulder in second.boulders:
        assert (boulder.current_climber_index, boulder.has_started, boulder.skip_next) == (0, False, False)


def test_switch_round_out_of_range_is_dropped():
    state = make_state(make_category(["A"]))
    outcome = apply_command(state, SwitchRound(index=3))
    assert not outcome.changed
    assert state.active_round_index == 0


def test_roster_replacement_clears_progress_ledger():
    category = make_category(["A", "B", "C"])
    category.climber_progress = {"A": [1, 2, 3, 4], "B": [1]}
    state = make_state(category)

    apply_command(state, UpsertCategory(id=1, name="Women Open", climbers=["A", "B"]))
    rotation.advance(category, 0)

    assert category.climber_progress == {"A": [1]}
    assert not rotation.is_complete(category, "A")
    assert rotation.display_name(category, category.boulders[0]) == "A"


def test_rename_without_climbers_keeps_progress():
    category = make_category(["A", "B"])
    category.climber_progress = {"A": [1, 2]}
    state = make_state(category)
    apply_command(state, UpsertCategory(id=1, name="Renamed"))
    assert category.climber_progress == {"A": [1, 2]}
