"""Tests for deterministic adaptation proposals and lock safety."""

from itertools import combinations

import pytest

from plan_builder.schemas.diff import (
    AddSessionNoteOp,
    AddWeekNoteOp,
    AdjustWeekVolumeOp,
    SwapSessionTypeOp,
    UpdateSessionOp,
)
from plan_builder.services.proposal_diff import (
    TRIGGER_ORDER,
    downgrade_intensity_type,
    finalize_proposal,
    op_violates_locks,
    ordered_triggers,
    snapshot_from_plan,
    suggest_proposal_diffs,
)

from conftest import lock_sessions, lock_weeks


def _ops(result):
    return [(op.op, getattr(op, "draft_session_id", None), getattr(op, "week_index", None)) for op in result.diff]


def test_ordered_triggers_dedupes_and_sorts():
    assert ordered_triggers(["HIGH_COMPLIANCE", "SORENESS", "SORENESS", "MISSED_KEY"]) == [
        "SORENESS",
        "MISSED_KEY",
        "HIGH_COMPLIANCE",
    ]


def test_downgrade_intensity_type():
    assert downgrade_intensity_type("threshold") == "tempo"
    assert downgrade_intensity_type("tempo") == "endurance"


def test_snapshot_from_plan(base_plan):
    snapshot = snapshot_from_plan(base_plan)
    assert len(snapshot.weeks) == 8
    assert snapshot.sessions[1].id == "0:1"
    assert snapshot.sessions[1].type == "tempo"


def test_soreness_converts_next_intensity_and_cuts_next_week(base_plan):
    result = suggest_proposal_diffs(["SORENESS"], snapshot_from_plan(base_plan))
    assert _ops(result) == [
        ("SWAP_SESSION_TYPE", "0:1", None),
        ("ADD_NOTE", "0:1", None),
        ("ADJUST_WEEK_VOLUME", None, 1),
        ("ADD_NOTE", None, 1),
    ]
    assert result.diff[0].new_type == "recovery"
    assert result.diff[2].pct_delta == pytest.approx(-0.1)
    assert result.diff[3].text == "Volume adjustment -10% (SORENESS)."
    assert result.respects_locks
    assert result.rationale_text.splitlines()[0] == "Trigger SORENESS: soreness reported recently."


def test_too_hard_downgrades_one_level(base_plan):
    result = suggest_proposal_diffs(["TOO_HARD"], snapshot_from_plan(base_plan))
    swap = result.diff[0]
    assert isinstance(swap, SwapSessionTypeOp)
    assert (swap.draft_session_id, swap.new_type) == ("0:1", "endurance")
    assert result.diff[1].text == "TOO_HARD: downgraded intensity (tempo -> endurance)."


def test_locked_intensity_session_is_skipped(base_plan):
    plan = lock_sessions(base_plan, "0:1")
    result = suggest_proposal_diffs(["SORENESS"], snapshot_from_plan(plan))
    assert result.diff[0].draft_session_id == "2:1"


def test_no_unlocked_intensity_adds_rationale_only(base_plan):
    plan = lock_sessions(base_plan, "0:1", "2:1", "4:1", "6:1")
    result = suggest_proposal_diffs(["TOO_HARD"], snapshot_from_plan(plan))
    assert result.diff == []
    assert "Blocked by lock: no unlocked intensity session found to downgrade for TOO_HARD." in result.rationale_text


def test_locked_next_week_blocks_volume_change(base_plan):
    plan = lock_weeks(base_plan, 1)
    result = suggest_proposal_diffs(["LOW_COMPLIANCE"], snapshot_from_plan(plan))
    assert result.diff == []
    assert "Blocked by lock: weekIndex=1 is locked (cannot adjust week volume)." in result.rationale_text


def test_missed_key_targets_the_following_week(base_plan):
    result = suggest_proposal_diffs(["MISSED_KEY"], snapshot_from_plan(base_plan), current_week_index=1)
    assert _ops(result) == [
        ("ADJUST_WEEK_VOLUME", None, 2),
        ("ADD_NOTE", None, 2),
        ("SWAP_SESSION_TYPE", "2:1", None),
        ("ADD_NOTE", "2:1", None),
    ]
    assert result.diff[0].pct_delta == pytest.approx(-0.15)


def test_missed_key_without_intensity_next_week(base_plan):
    """Odd weeks carry no intensity session, so only the volume cut is proposed."""
    result = suggest_proposal_diffs(["MISSED_KEY"], snapshot_from_plan(base_plan))
    assert [op.op for op in result.diff] == ["ADJUST_WEEK_VOLUME", "ADD_NOTE"]
    assert "no unlocked intensity session found in next week" in result.rationale_text


def test_high_compliance_extends_longest_session(base_plan):
    result = suggest_proposal_diffs(["HIGH_COMPLIANCE"], snapshot_from_plan(base_plan))
    update = result.diff[0]
    assert isinstance(update, UpdateSessionOp)
    assert update.draft_session_id == "1:3"
    assert update.patch.duration_minutes == 140


def test_high_compliance_skips_locked_longest(base_plan):
    plan = lock_sessions(base_plan, "1:3")
    update = suggest_proposal_diffs(["HIGH_COMPLIANCE"], snapshot_from_plan(plan)).diff[0]
    assert (update.draft_session_id, update.patch.duration_minutes) == ("1:1", 80)


def test_high_compliance_falls_back_to_week_volume(base_plan):
    plan = lock_sessions(base_plan, "1:0", "1:1", "1:2", "1:3")
    result = suggest_proposal_diffs(["HIGH_COMPLIANCE"], snapshot_from_plan(plan))
    assert isinstance(result.diff[0], AdjustWeekVolumeOp)
    assert result.diff[0].pct_delta == pytest.approx(0.05)
    assert result.diff[1].text == "Volume adjustment +5% (HIGH_COMPLIANCE)."


def test_finalize_drops_locked_ops(base_plan):
    plan = lock_weeks(lock_sessions(base_plan, "0:1"), 2)
    snapshot = snapshot_from_plan(plan)
    ops = [
        SwapSessionTypeOp(draft_session_id="0:1", new_type="recovery"),
        AdjustWeekVolumeOp(week_index=2, pct_delta=-0.1),
        AddWeekNoteOp(week_index=3, text="Easy week"),
        AddSessionNoteOp(draft_session_id="2:0", text="Locked week"),
        AddSessionNoteOp(draft_session_id="0:2", text="Keep it easy"),
    ]
    assert op_violates_locks(ops[0], snapshot)
    result = finalize_proposal(ops, "why", snapshot)
    assert result.diff == [ops[2], ops[4]]
    assert result.respects_locks


LOCK_SCENARIOS = [
    ((), ()),
    (("0:1", "1:3"), ()),
    (("0:1", "2:1", "4:1", "6:1"), (1,)),
    ((), (0, 1, 2)),
    (("1:0", "1:1", "1:2", "1:3"), (2,)),
]


@pytest.mark.parametrize("locked_sessions,locked_weeks", LOCK_SCENARIOS)
@pytest.mark.parametrize("current_week", [0, 1, 5])
def test_no_trigger_combination_touches_a_lock(base_plan, locked_sessions, locked_weeks, current_week):
    plan = base_plan
    if locked_sessions:
        plan = lock_sessions(plan, *locked_sessions)
    if locked_weeks:
        plan = lock_weeks(plan, *locked_weeks)
    snapshot = snapshot_from_plan(plan)
    for size in range(1, len(TRIGGER_ORDER) + 1):
        for triggers in combinations(TRIGGER_ORDER, size):
            result = suggest_proposal_diffs(list(triggers), snapshot, current_week_index=current_week)
            assert result.respects_locks
            assert not any(op_violates_locks(op, snapshot) for op in result.diff)
