"""Tests for the playback queue."""

import pytest

from module.guild_player import LoopMode, Queue
from fakes import make_track


# ─── Fixtures ───────────────────────────────────────────────────────────────

@pytest.fixture
def tracks():
    return [make_track(n) for n in range(1, 6)]


@pytest.fixture
def queue(tracks):
    q = Queue()
    q.add_multiple(tracks)
    return q


# ─── Adding / removing ──────────────────────────────────────────────────────

class TestEditing:
    def test_add_keeps_order(self, queue, tracks):
        assert queue.get_tracks() == tracks
        assert queue.size == 5
        assert len(queue) == 5
        assert queue.next_track == tracks[0]

    def test_insert_clamps_index(self, queue, tracks):
        front, back = make_track("front"), make_track("back")
        queue.insert(front, -3)
        queue.insert(back, 99)
        assert queue.get_tracks()[0] == front
        assert queue.get_tracks()[-1] == back

    def test_insert_multiple_at_position(self, queue, tracks):
        extra = [make_track("a"), make_track("b")]
        queue.insert_multiple(extra, 2)
        assert queue.get_tracks()[2:4] == extra
        assert queue.size == 7

    def test_remove_returns_track(self, queue, tracks):
        assert queue.remove(1) == tracks[1]
        assert tracks[1] not in queue.get_tracks()

    @pytest.mark.parametrize("index", [-1, 5, 100])
    def test_remove_invalid_index(self, queue, index):
        assert queue.remove(index) is None
        assert queue.size == 5

    def test_clear_only_touches_upcoming(self, queue, tracks):
        queue.next()
        queue.next()
        queue.clear()
        assert queue.is_empty
        assert queue.current_track == tracks[1]
        assert queue.previous_tracks == [tracks[0]]

    def test_shuffle_keeps_tracks(self, queue, tracks):
        queue.next()
        queue.shuffle()
        assert sorted(t.id for t in queue.get_tracks()) == sorted(t.id for t in tracks[1:])
        assert queue.current_track == tracks[0]

    def test_get_track(self, queue, tracks):
        assert queue.get_track(0) == tracks[0]
        assert queue.get_track(10) is None


# ─── Advancing ──────────────────────────────────────────────────────────────

class TestAdvance:
    def test_next_moves_current_into_history(self, queue, tracks):
        assert queue.next() == tracks[0]
        assert queue.next() == tracks[1]
        assert queue.current_track == tracks[1]
        assert queue.previous_tracks == [tracks[0]]

    def test_next_on_empty_queue(self):
        q = Queue()
        assert q.next() is None
        assert q.current_track is None

    def test_track_loop_repeats_current(self, queue, tracks):
        queue.loop(LoopMode.TRACK)
        queue.next()
        assert queue.next() == tracks[0]
        assert queue.next() == tracks[0]
        assert queue.previous_tracks == []

    def test_track_loop_ignored_on_skip(self, queue, tracks):
        queue.loop(LoopMode.TRACK)
        queue.next()
        assert queue.next(ignore_loop=True) == tracks[1]

    def test_queue_loop_refills_from_history(self, tracks):
        q = Queue()
        q.add_multiple(tracks[:3])
        q.loop("queue")
        played = [q.next() for _ in range(5)]
        assert played == [tracks[0], tracks[1], tracks[2], tracks[0], tracks[1]]

    def test_history_is_bounded(self):
        q = Queue(history_limit=3)
        q.add_multiple([make_track(n) for n in range(6)])
        for _ in range(6):
            q.next()
        assert [t.id for t in q.previous_tracks] == ["2", "3", "4"]

    def test_previous_pops_history(self, queue, tracks):
        queue.next()
        queue.next()
        assert queue.previous() == tracks[0]
        assert queue.current_track == tracks[0]
        assert queue.previous_tracks == []
        assert queue.previous() is None


# ─── Modes ──────────────────────────────────────────────────────────────────

class TestModes:
    def test_loop_getter_and_setter(self, queue):
        assert queue.loop() is LoopMode.OFF
        assert queue.loop(LoopMode.QUEUE) is LoopMode.QUEUE
        assert queue.loop_mode is LoopMode.QUEUE

    def test_invalid_loop_mode(self, queue):
        with pytest.raises(ValueError):
            queue.loop("sometimes")

    def test_auto_play_toggle(self, queue):
        assert queue.auto_play() is False
        assert queue.auto_play(True) is True
        assert queue.auto_play() is True

    def test_will_next_is_taken_once(self, queue):
        upcoming = make_track("auto")
        queue.will_next_track(upcoming)
        assert queue.will_next_track() == upcoming
        assert queue.take_will_next() == upcoming
        assert queue.take_will_next() is None

    def test_related_tracks(self, queue, tracks):
        assert queue.related_tracks() == []
        queue.related_tracks(tracks[:2])
        assert queue.related_tracks() == tracks[:2]
