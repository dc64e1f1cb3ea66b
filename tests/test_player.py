"""
Player behaviour tests.

Playback runs on the in-memory AudioEngine; timers use ManualScheduler so
leave / fade timing is advanced explicitly.
"""

import asyncio

import pytest

from module.guild_player import (
    AudioEngine,
    EngineStatus,
    Extension,
    ExtensionPlayResponse,
    LoopMode,
    ManualScheduler,
    Player,
    PlayerState,
    PlaybackError,
    ResolutionError,
    StreamAcquisitionError,
    StreamInfo,
    VoiceConnection,
    VoiceConnectionError,
)
from fakes import (
    FakePlugin,
    FallbackPlugin,
    Recorder,
    RelatedPlugin,
    SlowPlugin,
    connect,
    make_player,
    make_track,
    wait_until,
)

EVENTS = (
    "trackStart", "trackEnd", "queueEnd", "queueAdd", "queueAddList", "queueRemove",
    "willPlay", "playerPause", "playerResume", "playerStop", "playerDestroy",
    "volumeChange", "playerError", "connectionError",
)


class StaticExtension(Extension):
    def __init__(self, name="static"):
        self.name = name
        self.payloads = []

    def active(self, context):
        return True

    def after_play(self, context, payload):
        self.payloads.append(payload)


async def start_player(*tracks, scheduler=None, **options):
    """Player with a connection and a plugin serving `tracks` for query "song"."""
    scheduler = scheduler or ManualScheduler()
    player = make_player(scheduler, **options)
    connection = connect(player)
    plugin = FakePlugin()
    player.add_plugin(plugin)
    recorder = Recorder().on(player, *EVENTS)
    for track in tracks:
        plugin.add(f"song {track.id}", track)
    return player, connection, plugin, recorder, scheduler


# ─── Starting playback ──────────────────────────────────────────────────────

class TestPlay:
    @pytest.mark.asyncio
    async def test_first_track_starts(self):
        track = make_track(1)
        player, _, _, events, _ = await start_player(track)

        assert await player.play("song 1", "tester") is True
        assert player.current_track == track
        assert player.is_playing
        assert player.status is PlayerState.PLAYING
        assert events["queueAdd"] == [(track,)]
        assert events["trackStart"] == [(track,)]

    @pytest.mark.asyncio
    async def test_second_track_is_queued(self):
        first, second = make_track(1), make_track(2)
        player, _, _, events, _ = await start_player(first, second)

        await player.play("song 1")
        assert await player.play("song 2") is True
        assert player.current_track == first
        assert player.upcoming_tracks == [second]
        assert len(events["trackStart"]) == 1

    @pytest.mark.asyncio
    async def test_playlist_is_queued_as_list(self):
        tracks = [make_track(n) for n in range(3)]
        player, _, plugin, events, _ = await start_player()
        plugin.add("mix", *tracks, playlist=True)

        assert await player.play("mix") is True
        assert events["queueAddList"] == [(tracks,)]
        assert player.current_track == tracks[0]
        assert player.upcoming_tracks == tracks[1:]

    @pytest.mark.asyncio
    async def test_play_track_object_skips_search(self):
        track = make_track(1)
        player, _, plugin, _, _ = await start_player()

        assert await player.play(track) is True
        assert plugin.search_calls == []
        assert player.current_track == track

    @pytest.mark.asyncio
    async def test_nothing_found_emits_error(self):
        player, _, _, events, _ = await start_player()

        assert await player.play("unknown") is False
        error = events["playerError"][0][0]
        assert isinstance(error, ResolutionError)
        assert player.current_track is None

    @pytest.mark.asyncio
    async def test_search_falls_through_slow_plugin(self):
        track = make_track(1)
        player = make_player(extractor_timeout=50)
        connect(player)
        slow, fast = SlowPlugin(), FakePlugin()
        fast.add("song", track)
        player.add_plugin(slow)
        player.add_plugin(fast)

        loop = asyncio.get_running_loop()
        started = loop.time()
        assert await player.play("song") is True
        assert loop.time() - started < 2 * 0.05
        assert slow.search_calls == ["song"]
        assert player.current_track == track


# ─── Natural progression ────────────────────────────────────────────────────

class TestProgression:
    @pytest.mark.asyncio
    async def test_track_end_advances(self):
        first, second = make_track(1), make_track(2)
        player, _, _, events, _ = await start_player(first, second)
        await player.play("song 1")
        await player.play("song 2")

        player.audio_engine.finish()
        await wait_until(lambda: player.current_track == second and len(events["trackStart"]) == 2)
        assert events["trackEnd"] == [(first,)]
        assert player.previous_track == first

    @pytest.mark.asyncio
    async def test_queue_end_schedules_leave(self):
        track = make_track(1)
        player, connection, _, events, scheduler = await start_player(track, leave_timeout=5000)
        await player.play("song 1")

        player.audio_engine.finish()
        await wait_until(lambda: events["queueEnd"])
        assert not player.is_playing
        assert scheduler.pending == 1

        scheduler.advance(4999)
        assert not player.is_destroyed
        scheduler.advance(1)
        assert player.is_destroyed
        assert connection.destroyed

    @pytest.mark.asyncio
    async def test_leave_on_end_disabled(self):
        track = make_track(1)
        player, _, _, events, scheduler = await start_player(track, leave_on_end=False)
        await player.play("song 1")

        player.audio_engine.finish()
        await wait_until(lambda: events["queueEnd"])
        assert scheduler.pending == 0

    @pytest.mark.asyncio
    async def test_new_play_cancels_leave(self):
        first, second = make_track(1), make_track(2)
        player, _, _, events, scheduler = await start_player(first, second)
        await player.play("song 1")
        player.audio_engine.finish()
        await wait_until(lambda: events["queueEnd"])

        await player.play("song 2")
        assert scheduler.pending == 0
        scheduler.advance(player.options.leave_timeout)
        assert not player.is_destroyed
        assert player.current_track == second

    @pytest.mark.asyncio
    async def test_track_loop_replays(self):
        track = make_track(1)
        player, _, _, events, _ = await start_player(track)
        await player.play("song 1")
        player.loop(LoopMode.TRACK)

        player.audio_engine.finish()
        await wait_until(lambda: len(events["trackStart"]) == 2)
        assert player.current_track == track

    @pytest.mark.asyncio
    async def test_engine_error_reports_then_advances(self):
        first, second = make_track(1), make_track(2)
        player, _, _, events, _ = await start_player(first, second)
        await player.play("song 1")
        await player.play("song 2")

        player.audio_engine.fail(RuntimeError("decoder died"))
        await wait_until(lambda: player.current_track == second)
        assert len(events["playerError"]) == 1
        assert events["playerError"][0][1] == first


# ─── Failure handling ───────────────────────────────────────────────────────

class TestStreamFailures:
    @pytest.mark.asyncio
    async def test_fallback_plugin_used(self):
        track = make_track(1)
        player, _, plugin, _, _ = await start_player(track)
        plugin.broken.add("1")
        backup = FallbackPlugin()
        player.add_plugin(backup)

        assert await player.play("song 1") is True
        assert backup.fallback_calls == [track]
        assert player.audio_engine.resource.stream == "fallback://1"

    @pytest.mark.asyncio
    async def test_other_plugin_stream_used(self):
        track = make_track(1)
        player, _, plugin, _, _ = await start_player(track)
        plugin.broken.add("1")
        mirror = FakePlugin("mirror", handles="mirror:")
        player.add_plugin(mirror)

        assert await player.play("song 1") is True
        assert mirror.stream_calls == [track]
        assert player.audio_engine.resource.stream == "stream://1"

    @pytest.mark.asyncio
    async def test_other_plugin_stream_tried_before_later_fallback(self):
        track = make_track(1)
        player, _, plugin, _, _ = await start_player(track)
        plugin.broken.add("1")
        mirror = FakePlugin("mirror", handles="mirror:")
        backup = FallbackPlugin()
        player.add_plugin(mirror)
        player.add_plugin(backup)

        assert await player.play("song 1") is True
        assert player.audio_engine.resource.stream == "stream://1"
        assert backup.fallback_calls == []

    @pytest.mark.asyncio
    async def test_failed_track_is_skipped(self):
        broken, healthy = make_track(1), make_track(2)
        player, _, plugin, events, _ = await start_player()
        plugin.add("mix", broken, healthy, playlist=True)
        plugin.broken.add("1")
        player.add_plugin(FallbackPlugin(fail=True))

        assert await player.play("mix") is True
        assert player.current_track == healthy
        error, failed = events["playerError"][0]
        assert isinstance(error, StreamAcquisitionError)
        assert failed == broken

    @pytest.mark.asyncio
    async def test_advance_attempts_are_bounded(self):
        tracks = [make_track(n) for n in range(5)]
        player, _, plugin, events, _ = await start_player(max_advance_attempts=3)
        plugin.add("mix", *tracks, playlist=True)
        plugin.broken.update(t.id for t in tracks)

        assert await player.play("mix") is False
        errors = [args[0] for args in events["playerError"]]
        assert [type(e) for e in errors] == [StreamAcquisitionError] * 3 + [PlaybackError]
        assert player.queue_size == 2
        assert not player.is_playing

    @pytest.mark.asyncio
    async def test_plugin_cache_is_used(self):
        player, _, _, _, _ = await start_player(make_track(1))
        player.loop(LoopMode.TRACK)
        await player.play("song 1")
        player.audio_engine.finish()
        await wait_until(lambda: player.plugin_cache_stats().hits == 1)

        assert player.clear_plugin_cache() == 1


# ─── Controls ───────────────────────────────────────────────────────────────

class TestControls:
    @pytest.mark.asyncio
    async def test_pause_and_resume(self):
        track = make_track(1)
        player, _, _, events, _ = await start_player(track)
        await player.play("song 1")

        assert player.pause() is True
        assert player.is_paused
        assert player.status is PlayerState.PAUSED
        assert events["playerPause"] == [(track,)]

        assert player.resume() is True
        assert not player.is_paused
        assert events["playerResume"] == [(track,)]
        assert len(events["trackStart"]) == 1

    @pytest.mark.asyncio
    async def test_skip_ignores_track_loop(self):
        first, second = make_track(1), make_track(2)
        player, _, _, _, _ = await start_player(first, second)
        await player.play("song 1")
        await player.play("song 2")
        player.loop(LoopMode.TRACK)

        assert player.skip() is True
        await wait_until(lambda: player.current_track == second)

    @pytest.mark.asyncio
    async def test_skip_with_nothing_to_do(self):
        player, _, _, _, _ = await start_player()
        assert player.skip() is False

    @pytest.mark.asyncio
    async def test_previous_requeues_interrupted_track(self):
        first, second = make_track(1), make_track(2)
        player, _, _, events, _ = await start_player(first, second)
        await player.play("song 1")
        await player.play("song 2")
        player.audio_engine.finish()
        await wait_until(lambda: player.current_track == second)

        assert await player.previous() is True
        assert player.current_track == first
        assert player.upcoming_tracks == [second]
        assert events["trackStart"][-1] == (first,)

    @pytest.mark.asyncio
    async def test_previous_without_history(self):
        player, _, _, _, _ = await start_player()
        assert await player.previous() is False

    @pytest.mark.asyncio
    async def test_stop_clears_queue(self):
        first, second = make_track(1), make_track(2)
        player, _, _, events, _ = await start_player(first, second)
        await player.play("song 1")
        await player.play("song 2")

        assert player.stop() is True
        assert player.queue_size == 0
        assert events["playerStop"] == [()]
        await wait_until(lambda: events["queueEnd"])
        assert not player.is_playing

    @pytest.mark.asyncio
    async def test_insert_does_not_start_playback(self):
        first, second = make_track(1), make_track(2)
        player, _, _, events, _ = await start_player(first, second)

        assert await player.insert("song 1") is True
        assert await player.insert(second, 0) is True
        assert player.upcoming_tracks == [second, first]
        assert player.audio_engine.status is EngineStatus.IDLE
        assert len(events["queueAdd"]) == 2

    @pytest.mark.asyncio
    async def test_insert_unknown_query(self):
        player, _, _, events, _ = await start_player()
        assert await player.insert("nothing") is False
        assert isinstance(events["playerError"][0][0], ResolutionError)

    @pytest.mark.asyncio
    async def test_remove(self):
        player, _, _, events, _ = await start_player()
        track = make_track(1)
        await player.insert(track)

        assert player.remove(0) == track
        assert events["queueRemove"] == [(track, 0)]
        assert player.remove(0) is None


# ─── Volume ─────────────────────────────────────────────────────────────────

class TestVolume:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("volume", [-1, 201, "50", True])
    async def test_rejects_invalid_volume(self, volume):
        player, _, _, events, _ = await start_player()
        assert player.set_volume(volume) is False
        assert player.volume == 100
        assert events["volumeChange"] == []

    @pytest.mark.asyncio
    async def test_volume_fades_in_ten_steps(self):
        track = make_track(1)
        player, _, _, events, scheduler = await start_player(track)
        await player.play("song 1")
        resource = player.audio_engine.resource

        assert player.set_volume(50) is True
        assert events["volumeChange"] == [(100, 50)]
        assert resource.volume == 1.0

        scheduler.advance(300)
        assert resource.volume == pytest.approx(0.95)
        scheduler.advance(300 * 9)
        assert resource.volume == 0.5
        assert scheduler.pending == 0

    @pytest.mark.asyncio
    async def test_new_track_uses_player_volume(self):
        first, second = make_track(1), make_track(2)
        player, _, _, _, _ = await start_player(first, second, volume=40)
        await player.play("song 1")
        assert player.audio_engine.resource.volume == pytest.approx(0.4)


# ─── Progress ───────────────────────────────────────────────────────────────

class TestProgress:
    @pytest.mark.parametrize("ms, expected", [
        (0, "00:00"),
        (65_000, "01:05"),
        (3_725_000, "01:02:05"),
        (-10, "00:00"),
    ])
    def test_format_time(self, ms, expected):
        assert Player.format_time(ms) == expected

    @pytest.mark.asyncio
    async def test_progress_bar_when_idle(self):
        player, _, _, _, _ = await start_player()
        bar = player.get_progress_bar(size=5)
        assert bar == "00:00 | 🔘▬▬▬▬ | 00:00"

    @pytest.mark.asyncio
    async def test_get_time(self):
        track = make_track(1, duration=200_000)
        player, _, _, _, _ = await start_player(track)
        await player.play("song 1")

        progress = player.get_time()
        assert progress["total"] == 200_000
        assert progress["format"] == "03:20"
        assert 0 <= progress["current"] < 1000


# ─── Autoplay ───────────────────────────────────────────────────────────────

class TestAutoplay:
    @pytest.mark.asyncio
    async def test_related_track_plays_after_queue_end(self):
        track, related = make_track(1), make_track("r")
        player = make_player()
        connect(player)
        plugin = RelatedPlugin([related])
        plugin.add("song", track)
        player.add_plugin(plugin)
        events = Recorder().on(player, "willPlay", "queueEnd")

        await player.play("song")
        await wait_until(lambda: events["willPlay"])
        assert events["willPlay"][0] == (related, [related])
        assert player.related_tracks == [related]

        player.auto_play(True)
        player.audio_engine.finish()
        await wait_until(lambda: player.current_track == related)
        assert events["queueEnd"] == []


# ─── Extensions ─────────────────────────────────────────────────────────────

class TestExtensions:
    @pytest.mark.asyncio
    async def test_handled_request_skips_search(self):
        player, _, plugin, _, _ = await start_player()
        ext = StaticExtension()
        ext.before_play = lambda context, request: ExtensionPlayResponse(handled=True, success=False)
        player.attach_extension(ext)

        assert await player.play("anything") is False
        assert plugin.search_calls == []
        assert ext.payloads[0].success is False

    @pytest.mark.asyncio
    async def test_handled_request_cancels_leave(self):
        track = make_track(1)
        player, _, _, events, scheduler = await start_player(track)
        await player.play("song 1")
        player.audio_engine.finish()
        await wait_until(lambda: events["queueEnd"])
        assert scheduler.pending == 1

        ext = StaticExtension()
        ext.before_play = lambda context, request: ExtensionPlayResponse(handled=True)
        player.attach_extension(ext)

        assert await player.play("anything") is True
        assert scheduler.pending == 0
        scheduler.advance(player.options.leave_timeout)
        assert not player.is_destroyed

    @pytest.mark.asyncio
    async def test_after_play_reports_success(self):
        track = make_track(1)
        player, _, _, _, _ = await start_player(track)
        ext = StaticExtension()
        player.attach_extension(ext)

        await player.play("song 1", "tester")
        payload = ext.payloads[0]
        assert payload.success is True
        assert payload.tracks == (track,)
        assert payload.requested_by == "tester"

    @pytest.mark.asyncio
    async def test_extension_stream_wins(self):
        track = make_track(1)
        player, _, plugin, _, _ = await start_player(track)
        ext = StaticExtension()
        ext.provide_stream = lambda context, request: StreamInfo(stream="ext://stream")
        player.attach_extension(ext)

        await player.play("song 1")
        assert plugin.stream_calls == []
        assert player.audio_engine.resource.stream == "ext://stream"

    @pytest.mark.asyncio
    async def test_external_stream_counts_as_playing(self):
        track = make_track(1)
        player, _, _, events, _ = await start_player(track)
        ext = StaticExtension()
        ext.provide_stream = lambda context, request: StreamInfo(stream=None)
        player.attach_extension(ext)

        assert await player.play("song 1") is True
        assert events["trackStart"] == [(track,)]
        assert player.audio_engine.status is EngineStatus.IDLE
        assert player.status is PlayerState.PLAYING


# ─── Connection / lifecycle ─────────────────────────────────────────────────

class TestLifecycle:
    @pytest.mark.asyncio
    async def test_connect_uses_factory(self):
        calls = []

        async def factory(channel, self_deaf, self_mute):
            calls.append((channel, self_deaf, self_mute))
            return VoiceConnection()

        player = Player("1", engine_factory=AudioEngine, connection_factory=factory, scheduler=ManualScheduler())
        connection = await player.connect("voice-channel")

        assert calls == [("voice-channel", True, False)]
        assert player.connection is connection
        assert connection.subscription is player.audio_engine
        assert player.is_connected

    @pytest.mark.asyncio
    async def test_connect_failure(self):
        async def factory(channel, self_deaf, self_mute):
            raise OSError("no route")

        player = Player("1", engine_factory=AudioEngine, connection_factory=factory, scheduler=ManualScheduler())
        events = Recorder().on(player, "connectionError")

        with pytest.raises(VoiceConnectionError):
            await player.connect("voice-channel")
        assert isinstance(events["connectionError"][0][0], OSError)
        assert player.status is PlayerState.IDLE

    @pytest.mark.asyncio
    async def test_destroy_cleans_everything(self):
        first, second = make_track(1), make_track(2)
        player, connection, _, events, scheduler = await start_player(first, second)
        await player.play("song 1")
        await player.play("song 2")
        player.schedule_leave()

        player.destroy()
        assert player.is_destroyed
        assert player.status is PlayerState.DESTROYED
        assert connection.destroyed
        assert player.queue_size == 0
        assert scheduler.pending == 0
        assert events["playerDestroy"] == [()]
        assert events["trackEnd"] == []

        player.destroy()
        assert player.available_plugins == []

    @pytest.mark.asyncio
    async def test_disconnect_destroys_player(self):
        player, connection, _, events, _ = await start_player()
        connection.signal_disconnected()
        assert player.is_destroyed
        assert events["playerDestroy"] == [()]

    @pytest.mark.asyncio
    async def test_connect_after_destroy_fails(self):
        player = make_player()
        player.destroy()
        with pytest.raises(VoiceConnectionError):
            await player.connect("voice-channel")

    @pytest.mark.asyncio
    async def test_empty_channel_leave(self):
        player, _, _, _, scheduler = await start_player(leave_timeout=1000)
        player.handle_channel_empty()
        assert scheduler.pending == 1
        player.cancel_leave()
        assert scheduler.pending == 0

        player.handle_channel_empty()
        scheduler.advance(1000)
        assert player.is_destroyed

    @pytest.mark.asyncio
    async def test_leave_on_empty_disabled(self):
        player, _, _, _, scheduler = await start_player(leave_on_empty=False)
        player.handle_channel_empty()
        assert scheduler.pending == 0

    @pytest.mark.asyncio
    async def test_remove_plugin(self):
        player, _, _, _, _ = await start_player()
        assert player.available_plugins == ["fake"]
        assert player.remove_plugin("fake") is True
        assert player.available_plugins == []
