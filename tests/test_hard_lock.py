import numpy as np
import pytest

from surf_tracking.config import HardLockConfig, ScoringConfig
from surf_tracking.hard_lock import HardLockSelector
from surf_tracking.scoring import DetectionEngine

from conftest import person

RED = np.array([0.9, 0.1, 0.1])
BLUE = np.array([0.1, 0.1, 0.9])


def make_selector(grace_frames: int = 3) -> HardLockSelector:
    return HardLockSelector(DetectionEngine(ScoringConfig()), HardLockConfig(grace_frames=grace_frames))


def color_table(table):
    return lambda det: table.get(det.id)


def test_lock_on_commits_identity_and_color():
    selector = make_selector()
    assert selector.lock_on(person(4, x=0.3), RED)
    assert selector.state.hard_locked
    assert selector.state.locked_id == 4
    assert selector.state.color_strength == 1.0
    assert selector.state.color_signature == pytest.approx(RED)


def test_lock_dropped_without_color():
    selector = make_selector()
    assert not selector.lock_on(person(4), None)
    assert not selector.state.hard_locked
    assert selector.state.locked_id is None


def test_locked_id_wins_over_better_candidate():
    selector = make_selector()
    selector.lock_on(person(1), RED)
    small = person(1, x=0.9, w=0.02, h=0.05)
    big_aligned = person(2, x=0.5, w=0.1, h=0.3)
    choice = selector.process([big_aligned, small], 0.5, color_table({1: RED, 2: RED}))
    assert choice.chosen.id == 1
    assert not choice.reacquiring


def test_reacquire_by_color_within_grace():
    selector = make_selector(grace_frames=3)
    selector.lock_on(person(1), RED)
    table = color_table({5: BLUE, 6: RED})
    choice = selector.process([person(5, x=0.3), person(6, x=0.7)], None, table)
    assert choice.reacquiring
    assert choice.chosen.id == 6
    # Re-acquisition does not re-target the lock
    assert selector.state.locked_id == 1
    assert selector.state.frames_since_locked_seen == 1


def test_lock_expires_after_grace():
    selector = make_selector(grace_frames=2)
    selector.lock_on(person(1), RED)
    others = [person(5)]
    selector.process(others, None, None)
    selector.process(others, None, None)
    assert selector.state.hard_locked
    choice = selector.process(others, None, None)
    assert not selector.state.hard_locked
    assert not choice.reacquiring
    assert choice.chosen.id == 5


def test_empty_frames_count_toward_expiry():
    selector = make_selector(grace_frames=2)
    selector.lock_on(person(1), RED)
    for _ in range(2):
        choice = selector.process([], None, None)
        assert choice.chosen is None and choice.center is None
    assert selector.state.hard_locked
    selector.note_empty_frame()
    assert not selector.state.hard_locked


def test_seen_again_resets_counter():
    selector = make_selector(grace_frames=2)
    selector.lock_on(person(1), RED)
    selector.process([person(5)], None, None)
    selector.process([person(1), person(5)], None, None)
    assert selector.state.frames_since_locked_seen == 0


def test_release_and_reset():
    selector = make_selector()
    selector.lock_on(person(1), RED)
    selector.release()
    assert not selector.state.hard_locked
    selector.lock_on(person(1), RED)
    selector.reset()
    choice = selector.process([person(2)], None, color_table({2: RED}))
    assert choice.chosen.id == 2
    assert not selector.state.hard_locked
