"""Tests for the compression orchestrator state machine

Run with pytest from project root:
    pytest tests/test_orchestrator.py -v
"""

import asyncio

import pytest

from conftest import ImmediateCodec, make_image_bytes
from managers.compression_orchestrator import CompressionOrchestrator
from managers.preview_registry import PreviewRegistry
from models.asset import OrchestratorState
from models.errors import CodecError, InvalidAssetType, ResourceError, ValidationError


async def _start(orchestrator, options=None):
    """Start a compression and let it run until it awaits the codec"""
    task = asyncio.create_task(orchestrator.start_compression(options))
    await asyncio.sleep(0)
    return task


class TestTransitions:
    """Tests for the basic state transitions"""

    def test_initial_state_is_idle(self, orchestrator):
        """Test a new orchestrator is Idle"""
        assert orchestrator.state is OrchestratorState.IDLE
        assert orchestrator.asset is None
        assert orchestrator.result is None
        assert orchestrator.compression_ratio == 0.0

    def test_select_asset_moves_to_ready(self, orchestrator):
        """Test select_asset moves to Ready"""
        asset = orchestrator.ingest(b"x" * 100, "image/png", "photo.png")
        assert orchestrator.state is OrchestratorState.READY
        assert orchestrator.asset is asset
        assert orchestrator.original_preview is not None
        assert orchestrator.original_preview.generation == asset.generation

    def test_start_from_idle_is_ignored(self):
        """Test start_compression from Idle is ignored"""
        codec = ImmediateCodec()
        orchestrator = CompressionOrchestrator(codec)
        assert asyncio.run(orchestrator.start_compression()) is None
        assert orchestrator.state is OrchestratorState.IDLE
        assert codec.calls == 0

    def test_successful_compression_completes(self):
        """Test a successful compression reaches Completed"""
        codec = ImmediateCodec(data=b"y" * 40)
        orchestrator = CompressionOrchestrator(codec)
        orchestrator.ingest(b"x" * 100, "image/png", "photo.png")

        state = asyncio.run(orchestrator.start_compression({"format": "jpeg"}))

        assert state is OrchestratorState.COMPLETED
        assert orchestrator.result.bytes_size == 40
        assert orchestrator.result.mime_type == "image/jpeg"
        assert orchestrator.result_preview is not None
        assert orchestrator.compression_ratio == 60.0

    def test_start_from_completed_is_ignored(self):
        """Test start_compression from Completed is ignored"""
        codec = ImmediateCodec()
        orchestrator = CompressionOrchestrator(codec)
        orchestrator.ingest(b"x" * 100, "image/png", "photo.png")
        asyncio.run(orchestrator.start_compression())

        assert asyncio.run(orchestrator.start_compression()) is None
        assert orchestrator.state is OrchestratorState.COMPLETED
        assert codec.calls == 1

    def test_select_clears_completed_result_and_preview(self):
        """Test select_asset clears the previous result and its preview"""
        registry = PreviewRegistry()
        orchestrator = CompressionOrchestrator(ImmediateCodec(), previews=registry)
        orchestrator.ingest(b"x" * 100, "image/png", "one.png")
        asyncio.run(orchestrator.start_compression())
        old_result_preview = orchestrator.result_preview
        old_original_preview = orchestrator.original_preview

        orchestrator.ingest(b"z" * 10, "image/jpeg", "two.jpg")

        assert orchestrator.state is OrchestratorState.READY
        assert orchestrator.result is None
        assert orchestrator.result_preview is None
        assert not registry.is_live(old_result_preview)
        assert not registry.is_live(old_original_preview)
        assert registry.is_live(orchestrator.original_preview)

    def test_select_rejects_older_generation(self, orchestrator):
        """Test select_asset rejects an older generation"""
        first = orchestrator.ingestion.ingest(b"a", "image/png", "a.png")
        second = orchestrator.ingestion.ingest(b"b", "image/png", "b.png")
        orchestrator.select_asset(second)
        with pytest.raises(ValueError):
            orchestrator.select_asset(first)
        assert orchestrator.asset is second


class TestCompressionRatio:
    """Tests for the derived compression ratio"""

    @pytest.mark.parametrize("original,compressed,expected", [
        (1_000_000, 400_000, 60.0),
        (100, 150, -50.0),
        (3, 1, 66.7),
    ])
    def test_ratio(self, original, compressed, expected):
        """Test the compression ratio of a result"""
        orchestrator = CompressionOrchestrator(ImmediateCodec(data=b"c" * compressed))
        orchestrator.ingest(b"o" * original, "image/png", "big.png")
        asyncio.run(orchestrator.start_compression())
        assert orchestrator.compression_ratio == expected

    def test_ratio_zero_for_empty_original(self):
        """Test the ratio is zero for an empty original"""
        orchestrator = CompressionOrchestrator(ImmediateCodec(data=b"anything"))
        orchestrator.ingest(b"", "image/png", "empty.png")
        asyncio.run(orchestrator.start_compression())
        assert orchestrator.state is OrchestratorState.COMPLETED
        assert orchestrator.compression_ratio == 0

    def test_ratio_zero_without_result(self, orchestrator):
        """Test the ratio is zero without a result"""
        orchestrator.ingest(b"x" * 100, "image/png", "photo.png")
        assert orchestrator.compression_ratio == 0.0


class TestSingleFlight:
    """Tests that only one codec call runs at a time"""

    def test_repeated_start_while_compressing_is_ignored(self, orchestrator, gated_codec):
        """Test a second start while compressing makes no codec call"""
        async def scenario():
            orchestrator.ingest(b"x" * 100, "image/png", "photo.png")
            task = await _start(orchestrator)
            assert orchestrator.state is OrchestratorState.COMPRESSING

            ignored = await asyncio.gather(*(orchestrator.start_compression() for _ in range(5)))
            assert ignored == [None] * 5
            assert len(gated_codec.calls) == 1
            assert gated_codec.in_flight == 1

            gated_codec.release(0)
            return await task

        assert asyncio.run(scenario()) is OrchestratorState.COMPLETED
        assert orchestrator.codec_calls == 1


class TestStaleResults:
    """Tests for generation checks on asynchronous completions"""

    def test_success_for_replaced_asset_is_discarded(self, orchestrator, gated_codec, registry):
        """Test a result for a replaced asset is discarded"""
        async def scenario():
            orchestrator.ingest(b"x" * 100, "image/png", "first.png")
            task = await _start(orchestrator)
            second = orchestrator.ingest(b"y" * 50, "image/png", "second.png")
            assert orchestrator.state is OrchestratorState.READY

            gated_codec.release(0, data=b"tiny")
            state = await task
            return second, state

        second, state = asyncio.run(scenario())
        assert state is OrchestratorState.READY
        assert orchestrator.state is OrchestratorState.READY
        assert orchestrator.asset is second
        assert orchestrator.result is None
        assert orchestrator.result_preview is None
        assert [handle.slot for handle in registry.live_handles()] == ["original"]

    def test_failure_for_replaced_asset_is_discarded(self, orchestrator, gated_codec):
        """Test a failure for a replaced asset is discarded"""
        async def scenario():
            orchestrator.ingest(b"x" * 100, "image/png", "first.png")
            task = await _start(orchestrator)
            orchestrator.ingest(b"y" * 50, "image/png", "second.png")
            gated_codec.release(0, error=CodecError("boom"))
            await task

        asyncio.run(scenario())
        assert orchestrator.state is OrchestratorState.READY
        assert orchestrator.error is None

    def test_stale_result_does_not_overwrite_newer_compression(self, orchestrator, gated_codec):
        """Test a stale result does not overwrite a newer compression"""
        async def scenario():
            orchestrator.ingest(b"x" * 100, "image/png", "first.png")
            first_task = await _start(orchestrator)
            orchestrator.ingest(b"y" * 80, "image/png", "second.png")
            second_task = await _start(orchestrator)
            assert orchestrator.state is OrchestratorState.COMPRESSING

            gated_codec.release(0, data=b"stale")
            await first_task
            assert orchestrator.state is OrchestratorState.COMPRESSING

            gated_codec.release(1, data=b"f" * 20)
            await second_task

        asyncio.run(scenario())
        assert orchestrator.state is OrchestratorState.COMPLETED
        assert orchestrator.result.source_name == "second.png"
        assert orchestrator.result.generation == orchestrator.asset.generation
        assert orchestrator.compression_ratio == 75.0

    def test_direct_callback_with_old_generation_is_ignored(self, orchestrator, gated_codec):
        """Test compression callbacks with an old generation are ignored"""
        async def scenario():
            orchestrator.ingest(b"x" * 100, "image/png", "first.png")
            task = await _start(orchestrator)
            old_generation = orchestrator.current_generation
            orchestrator.ingest(b"y" * 50, "image/png", "second.png")
            orchestrator.compression_failed(CodecError("late"), old_generation)
            assert orchestrator.state is OrchestratorState.READY
            gated_codec.release(0)
            await task

        asyncio.run(scenario())


class TestFailures:
    """Tests for failure handling and retry"""

    def test_codec_error_moves_to_failed_and_keeps_asset(self):
        """Test a codec error moves to Failed and keeps the asset"""
        codec = ImmediateCodec(error=CodecError("unsupported"))
        orchestrator = CompressionOrchestrator(codec)
        asset = orchestrator.ingest(b"x" * 100, "image/png", "photo.png")

        state = asyncio.run(orchestrator.start_compression())

        assert state is OrchestratorState.FAILED
        assert isinstance(orchestrator.error, CodecError)
        assert orchestrator.asset is asset
        assert orchestrator.result is None

    def test_unexpected_exception_is_wrapped(self):
        """Test an unexpected codec exception becomes a CodecError"""
        orchestrator = CompressionOrchestrator(ImmediateCodec(error=RuntimeError("disk on fire")))
        orchestrator.ingest(b"x" * 100, "image/png", "photo.png")

        asyncio.run(orchestrator.start_compression())

        assert orchestrator.state is OrchestratorState.FAILED
        assert isinstance(orchestrator.error, CodecError)
        assert "disk on fire" in str(orchestrator.error)

    def test_retry_from_failed(self):
        """Test start_compression retries from Failed"""
        codec = ImmediateCodec(error=CodecError("flaky"))
        orchestrator = CompressionOrchestrator(codec)
        orchestrator.ingest(b"x" * 100, "image/png", "photo.png")
        asyncio.run(orchestrator.start_compression())
        assert orchestrator.state is OrchestratorState.FAILED

        codec.error = None
        state = asyncio.run(orchestrator.start_compression())

        assert state is OrchestratorState.COMPLETED
        assert orchestrator.error is None
        assert codec.calls == 2

    def test_failure_is_not_retried_automatically(self):
        """Test a failure does not trigger another codec call"""
        codec = ImmediateCodec(error=CodecError("nope"))
        orchestrator = CompressionOrchestrator(codec)
        orchestrator.ingest(b"x" * 100, "image/png", "photo.png")
        asyncio.run(orchestrator.start_compression())
        assert codec.calls == 1

    def test_mime_mismatch_fails(self, orchestrator, gated_codec):
        """Test a result in the wrong format fails"""
        async def scenario():
            orchestrator.ingest(b"x" * 100, "image/png", "photo.png")
            task = await _start(orchestrator, {"format": "png"})
            gated_codec.release(0, mime_type="image/webp")
            return await task

        assert asyncio.run(scenario()) is OrchestratorState.FAILED
        assert "expected image/png" in str(orchestrator.error)

    def test_cancellation_settles_to_failed(self, orchestrator, gated_codec):
        """Test cancellation settles to Failed and re-raises"""
        async def scenario():
            orchestrator.ingest(b"x" * 100, "image/png", "photo.png")
            task = await _start(orchestrator)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        asyncio.run(scenario())
        assert orchestrator.state is OrchestratorState.FAILED
        assert "cancelled" in str(orchestrator.error)

    def test_every_start_settles(self):
        """Each pass ends in Completed or Failed, never stuck in Compressing"""
        outcomes = [None, CodecError("a"), RuntimeError("b"), None]
        codec = ImmediateCodec()
        orchestrator = CompressionOrchestrator(codec)
        for outcome in outcomes:
            orchestrator.ingest(b"x" * 100, "image/png", "photo.png")
            codec.error = outcome
            state = asyncio.run(orchestrator.start_compression())
            assert state in (OrchestratorState.COMPLETED, OrchestratorState.FAILED)


class TestSynchronousRejections:
    """Tests that rejected input never mutates orchestrator state"""

    def test_invalid_upload_keeps_completed_state(self):
        """Test a rejected upload keeps the completed result"""
        orchestrator = CompressionOrchestrator(ImmediateCodec())
        asset = orchestrator.ingest(b"x" * 100, "image/png", "photo.png")
        asyncio.run(orchestrator.start_compression())
        result = orchestrator.result
        preview = orchestrator.result_preview

        with pytest.raises(InvalidAssetType):
            orchestrator.ingest(b"hello", "text/plain", "notes.txt")

        assert orchestrator.state is OrchestratorState.COMPLETED
        assert orchestrator.asset is asset
        assert orchestrator.result is result
        assert orchestrator.result_preview is preview
        assert orchestrator.previews.is_live(preview)

    def test_invalid_options_keep_ready_state(self, orchestrator, gated_codec):
        """Test invalid options keep the Ready state"""
        orchestrator.ingest(b"x" * 100, "image/png", "photo.png")

        with pytest.raises(ValidationError) as exc_info:
            asyncio.run(orchestrator.start_compression({"quality": 5, "max_width": 10}))

        assert set(exc_info.value.fields) == {"quality", "max_width"}
        assert orchestrator.state is OrchestratorState.READY
        assert orchestrator.options is None
        assert gated_codec.calls == []


class TestTeardownAndDownload:
    """Tests for close() and download()"""

    def test_close_revokes_every_preview_once(self):
        """Test close revokes every preview exactly once"""
        registry = PreviewRegistry()
        orchestrator = CompressionOrchestrator(ImmediateCodec(), previews=registry)
        for name in ("a.png", "b.png", "c.png"):
            orchestrator.ingest(b"x" * 100, "image/png", name)
            asyncio.run(orchestrator.start_compression())

        orchestrator.close()

        assert orchestrator.state is OrchestratorState.IDLE
        assert registry.live_handles() == []
        assert registry.created_count == registry.revoked_count == 6

    def test_completion_after_close_is_discarded(self, orchestrator, gated_codec, registry):
        """Test a completion after close is discarded"""
        async def scenario():
            orchestrator.ingest(b"x" * 100, "image/png", "photo.png")
            task = await _start(orchestrator)
            orchestrator.close()
            gated_codec.release(0)
            await task

        asyncio.run(scenario())
        assert orchestrator.state is OrchestratorState.IDLE
        assert registry.live_handles() == []

    def test_download_without_result_raises(self, orchestrator):
        """Test download without a result raises ResourceError"""
        orchestrator.ingest(b"x" * 100, "image/png", "photo.png")
        with pytest.raises(ResourceError):
            orchestrator.download(emitter=None)

    def test_snapshot_reports_sizes(self):
        """Test snapshot reports human-readable sizes"""
        orchestrator = CompressionOrchestrator(ImmediateCodec(data=b"c" * 1536))
        orchestrator.ingest(b"o" * 1_048_576, "image/png", "big.png")
        asyncio.run(orchestrator.start_compression())

        snapshot = orchestrator.snapshot()

        assert snapshot["state"] == "Completed"
        assert snapshot["original"]["size"] == "1 MB"
        assert snapshot["compressed"]["size"] == "1.5 KB"
        assert snapshot["compressed"]["preview_url"].startswith("preview://result/")
        assert snapshot["options"]["format"] == "webp"
        assert snapshot["error"] is None

    def test_snapshot_reports_original_dimensions(self):
        """Test snapshot carries the original width and height"""
        orchestrator = CompressionOrchestrator(ImmediateCodec())
        orchestrator.ingest(make_image_bytes(size=(320, 240)), "image/png", "photo.png")

        original = orchestrator.snapshot()["original"]

        assert (original["width"], original["height"]) == (320, 240)


class TestCodecContract:
    """Tests for codecs that break their contract"""

    def test_non_result_return_value_fails(self):
        """Test a codec returning a non-result moves to Failed"""
        class NoneCodec:
            async def compress(self, asset, options):
                return None

        orchestrator = CompressionOrchestrator(NoneCodec())
        orchestrator.ingest(b"x" * 10, "image/png", "photo.png")
        assert asyncio.run(orchestrator.start_compression()) is OrchestratorState.FAILED
        assert isinstance(orchestrator.error, CodecError)
