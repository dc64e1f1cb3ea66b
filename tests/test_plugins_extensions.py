"""Tests for the plugin registry and the extension pipeline."""

import asyncio
from unittest.mock import MagicMock

import pytest

from module.guild_player import (
    Extension,
    ExtensionAfterPlayPayload,
    ExtensionContext,
    ExtensionPlayRequest,
    ExtensionPlayResponse,
    PluginManager,
    SearchResult,
    StreamInfo,
)
from module.guild_player.extensions import ExtensionPipeline
from fakes import FakePlugin, FallbackPlugin, RelatedPlugin, make_track


class ValidatingPlugin(FakePlugin):
    def validate(self, url):
        return url.endswith(".ok")


class BrokenMatcher(FakePlugin):
    def can_handle(self, query):
        raise RuntimeError("matcher exploded")


class RecordingExtension(Extension):
    """Records every hook call; individual hooks are set per test."""

    def __init__(self, name="recorder"):
        self.name = name
        self.calls = []

    def active(self, context):
        return True


# ─── Fixtures ───────────────────────────────────────────────────────────────

@pytest.fixture
def plugins():
    return PluginManager()


@pytest.fixture
def pipeline():
    debug = MagicMock()
    return ExtensionPipeline(ExtensionContext(player=MagicMock()), timeout_ms=50, debug=debug)


# ─── PluginManager ──────────────────────────────────────────────────────────

class TestPluginManager:
    def test_register_requires_name(self, plugins):
        with pytest.raises(TypeError):
            plugins.register(FakePlugin(name=""))

    def test_register_requires_members(self, plugins):
        incomplete = MagicMock(spec=["name", "can_handle", "search"])
        incomplete.name = "partial"
        with pytest.raises(TypeError, match="get_stream"):
            plugins.register(incomplete)

    def test_same_name_replaces(self, plugins):
        first, second = FakePlugin("yt"), FakePlugin("yt")
        plugins.register(first)
        plugins.register(second)
        assert len(plugins) == 1
        assert plugins.get("yt") is second

    def test_unregister(self, plugins):
        plugins.register(FakePlugin("yt"))
        assert plugins.unregister("yt") is True
        assert plugins.unregister("yt") is False
        assert "yt" not in plugins

    def test_find_plugin_in_registration_order(self, plugins):
        first = FakePlugin("a", handles="https://")
        second = FakePlugin("b", handles="https://")
        plugins.register(first)
        plugins.register(second)
        assert plugins.find_plugin("https://x") is first
        assert plugins.find_plugin("spotify:x") is None

    def test_raising_matcher_is_skipped(self, plugins):
        good = FakePlugin("good", handles=None)
        plugins.register(BrokenMatcher("broken"))
        plugins.register(good)
        assert plugins.find_plugin("anything") is good

    def test_find_for_track_prefers_validate(self, plugins):
        validating = ValidatingPlugin("validating", handles=None)
        plugins.register(validating)
        plugins.register(FakePlugin("generic", handles="https://"))

        assert plugins.find_for_track(make_track(1, url="https://x/song.ok")) is validating
        assert plugins.find_for_track(make_track(2)).name == "generic"

    def test_find_for_track_falls_back_to_source(self, plugins):
        local = FakePlugin("local", handles="file://")
        plugins.register(local)
        track = make_track(1, source="local", url="odd-scheme:1")
        assert plugins.find_for_track(track) is local

    def test_capabilities(self, plugins):
        plugins.register(FakePlugin("plain"))
        plugins.register(FallbackPlugin("backup"))
        plugins.register(RelatedPlugin([], name="related"))

        assert plugins.capabilities("plain").fallback is False
        assert plugins.capabilities("backup").fallback is True
        assert [p.name for p in plugins.with_capability("fallback")] == ["backup"]
        assert [p.name for p in plugins.with_capability("related")] == ["related"]


# ─── ExtensionPipeline ──────────────────────────────────────────────────────

class TestExtensionPipeline:
    def test_attach_is_idempotent_and_fires_on_register(self, pipeline):
        ext = RecordingExtension()
        ext.on_register = lambda context: ext.calls.append("register")
        ext.on_destroy = lambda context: ext.calls.append("destroy")

        assert pipeline.attach(ext) is True
        assert pipeline.attach(ext) is False
        assert ext.player is pipeline.context.player
        assert pipeline.detach(ext) is True
        assert pipeline.detach(ext) is False
        assert ext.calls == ["register", "destroy"]
        assert ext.player is None

    def test_shared_extension_keeps_first_player(self, pipeline):
        other = ExtensionPipeline(ExtensionContext(player=MagicMock()), timeout_ms=50, debug=MagicMock())
        ext = RecordingExtension()

        pipeline.attach(ext)
        other.attach(ext)
        assert ext.player is pipeline.context.player

        other.detach(ext)
        assert ext.player is pipeline.context.player

    def test_get_by_name(self, pipeline):
        ext = RecordingExtension("lyrics")
        pipeline.attach(ext)
        assert pipeline.get("lyrics") is ext
        assert pipeline.get("missing") is None

    @pytest.mark.asyncio
    async def test_before_play_chains_rewrites(self, pipeline):
        first, second = RecordingExtension("first"), RecordingExtension("second")

        async def rewrite(context, request):
            return ExtensionPlayResponse(query=request.query + " remix")

        def record(context, request):
            second.calls.append(request.query)
            return {"requested_by": "bot"}

        first.before_play = rewrite
        second.before_play = record
        pipeline.attach(first)
        pipeline.attach(second)

        request, response = await pipeline.run_before_play(ExtensionPlayRequest("song", "user"))
        assert second.calls == ["song remix"]
        assert request.query == "song remix"
        assert request.requested_by == "bot"
        assert response.handled is None

    @pytest.mark.asyncio
    async def test_handled_stops_chain(self, pipeline):
        first, second = RecordingExtension("first"), RecordingExtension("second")
        first.before_play = lambda context, request: ExtensionPlayResponse(handled=True, success=True)
        second.before_play = lambda context, request: second.calls.append("called")
        pipeline.attach(first)
        pipeline.attach(second)

        _, response = await pipeline.run_before_play(ExtensionPlayRequest("song"))
        assert response.handled is True
        assert response.success is True
        assert second.calls == []

    @pytest.mark.asyncio
    async def test_hook_timeout_is_reported_not_raised(self, pipeline):
        slow, after = RecordingExtension("slow"), RecordingExtension("after")

        async def hang(context, request):
            await asyncio.sleep(10)

        slow.before_play = hang
        after.before_play = lambda context, request: ExtensionPlayResponse(query="rewritten")
        pipeline.attach(slow)
        pipeline.attach(after)

        request, _ = await pipeline.run_before_play(ExtensionPlayRequest("song"))
        assert request.query == "rewritten"
        reported = [call.args[0] for call in pipeline._debug.call_args_list]
        assert any("slow.before_play" in message for message in reported)

    @pytest.mark.asyncio
    async def test_after_play_failures_are_isolated(self, pipeline):
        broken, healthy = RecordingExtension("broken"), RecordingExtension("healthy")

        async def explode(context, payload):
            raise RuntimeError("boom")

        async def record(context, payload):
            healthy.calls.append(payload)

        broken.after_play = explode
        healthy.after_play = record
        pipeline.attach(broken)
        pipeline.attach(healthy)

        payload = ExtensionAfterPlayPayload(success=True, query="song", requested_by="user")
        await pipeline.run_after_play(payload)
        assert healthy.calls == [payload]

    @pytest.mark.asyncio
    async def test_provide_search_first_non_empty_wins(self, pipeline):
        empty, provider = RecordingExtension("empty"), RecordingExtension("provider")
        track = make_track(1)
        empty.provide_search = lambda context, request: SearchResult()
        provider.provide_search = lambda context, request: SearchResult(tracks=[track])
        pipeline.attach(empty)
        pipeline.attach(provider)

        result = await pipeline.provide_search("song", "user")
        assert result.tracks == [track]

    @pytest.mark.asyncio
    async def test_provide_stream(self, pipeline):
        assert await pipeline.provide_stream(make_track(1)) is None

        ext = RecordingExtension()
        ext.provide_stream = lambda context, request: StreamInfo(stream=f"ext://{request.track.id}")
        pipeline.attach(ext)

        info = await pipeline.provide_stream(make_track(1))
        assert info.stream == "ext://1"

    @pytest.mark.asyncio
    async def test_hooks_are_captured_at_attach_time(self, pipeline):
        ext = RecordingExtension()
        pipeline.attach(ext)
        ext.provide_stream = lambda context, request: StreamInfo(stream="late")

        assert await pipeline.provide_stream(make_track(1)) is None
