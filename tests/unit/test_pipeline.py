"""
Tests for the submission pipeline.

The pipeline runs against an in-memory store and a pass-through
transcoder. Every test that ends in a terminal state also checks that
no temporary artifact survived the submission.
"""

import asyncio
import io

import pytest

from clip_archive.core.archive.errors import (
    AbortedError,
    FolderInitError,
    ListError,
    TranscodeError,
    UploadError,
    ValidationError,
)
from clip_archive.core.archive.models import FolderStatus, Submission, SubmissionState
from clip_archive.core.archive.naming import FixedNaming
from clip_archive.core.archive.pipeline import PipelineConfig, SubmissionPipeline
from clip_archive.infrastructure.storage.client import MockRemoteStore

from conftest import FailingTranscoder, leftovers, make_mp3, make_wav, seed, submit


class TestSuccessfulSubmission:
    """The happy path from upload to committed clip."""

    def test_wav_is_transcoded_named_and_committed(self, pipeline, store, transcoder, upload_dir):
        """A WAV into an empty archive becomes Clip #0001.mp3."""
        submission = Submission(original_name="take.wav", declared_mime_type="audio/wav")

        committed = submit(pipeline, make_wav(), "take.wav", "audio/wav", submission=submission)

        assert committed.path == "/audio/Clip #0001.mp3"
        assert committed.metadata["name"] == "Clip #0001.mp3"
        assert len(transcoder.calls) == 1
        assert transcoder.calls[0][1].name == "mp3"
        assert submission.state == SubmissionState.DONE
        assert submission.remote_path == "/audio/Clip #0001.mp3"
        assert submission.encoding.name == "mp3"
        assert leftovers(upload_dir) == []

    def test_mp3_skips_transcoding(self, pipeline, store, transcoder, upload_dir):
        """Uploads already in the target format are committed as-is."""
        data = make_mp3()

        committed = submit(pipeline, data, "take.mp3", "audio/mpeg")

        assert transcoder.calls == []
        assert store.read(committed.path) == data
        assert leftovers(upload_dir) == []

    def test_store_calls_run_in_stage_order(self, pipeline, store):
        submit(pipeline, make_wav(), "take.wav", "audio/wav")

        assert store.calls == ["ensure_folder", "list_folder", "commit"]

    def test_ordinal_follows_highest_existing(self, pipeline, store):
        """Given ordinals {1, 2, 5} the next clip is #0006."""
        seed(store, "/audio", ["Clip #0001.mp3", "Clip #0002.mp3", "Clip #0005.mp3"])

        committed = submit(pipeline, make_wav(), "take.wav", "audio/wav")

        assert committed.name == "Clip #0006.mp3"

    def test_unparsable_names_start_at_one(self, pipeline, store):
        seed(store, "/audio", ["Fart.mp3", "notes.mp3"])

        committed = submit(pipeline, make_wav(), "take.wav", "audio/wav")

        assert committed.name == "Clip #0001.mp3"

    def test_consecutive_submissions_increment(self, pipeline):
        first = submit(pipeline, make_wav(), "a.wav", "audio/wav")
        second = submit(pipeline, make_wav(), "b.wav", "audio/wav")

        assert first.name == "Clip #0001.mp3"
        assert second.name == "Clip #0002.mp3"

    def test_unknown_audio_type_is_transcoded(self, pipeline, transcoder):
        """An audio/* type we can't identify still goes through FFmpeg."""
        submit(pipeline, b"\x1a\x45\xdf\xa3" * 64, "blob", "audio/x-unknown")

        assert len(transcoder.calls) == 1

    def test_round_trip_preserves_mpeg_bytes(self, pipeline, store):
        """What gets committed as audio/mpeg reads back byte-for-byte."""
        data = make_mp3()

        committed = submit(pipeline, data, "take.mp3", "audio/mpeg")
        link = asyncio.run(store.resolve_link(committed.path))

        fetched = store.read(link)
        assert fetched == data
        assert fetched.startswith(b"ID3")


class TestFolderInitialization:
    """The archive folder is created on first use and reused after."""

    def test_ensure_folder_is_idempotent(self):
        store = MockRemoteStore()

        first = asyncio.run(store.ensure_folder("/audio"))
        second = asyncio.run(store.ensure_folder("/audio"))

        assert first == FolderStatus.CREATED
        assert second == FolderStatus.ALREADY_EXISTS

    def test_existing_folder_does_not_fail_submission(self, pipeline, store):
        seed(store, "/audio", [])

        committed = submit(pipeline, make_wav(), "take.wav", "audio/wav")

        assert committed.path == "/audio/Clip #0001.mp3"


class TestRejection:
    """Invalid input fails before any remote call."""

    def test_text_plain_is_rejected_without_remote_calls(self, pipeline, store, transcoder, upload_dir):
        submission = Submission(original_name="notes.txt", declared_mime_type="text/plain")

        with pytest.raises(ValidationError):
            submit(pipeline, b"hello", "notes.txt", "text/plain", submission=submission)

        assert store.calls == []
        assert transcoder.calls == []
        assert submission.state == SubmissionState.FAILED
        assert isinstance(submission.error, ValidationError)
        assert submission.local_path is None
        assert leftovers(upload_dir) == []

    def test_missing_mime_type_is_rejected(self, pipeline, store):
        with pytest.raises(ValidationError):
            submit(pipeline, make_wav(), "take.wav", "")

        assert store.calls == []

    def test_empty_file_is_rejected(self, pipeline, store, upload_dir):
        with pytest.raises(ValidationError, match="empty"):
            submit(pipeline, b"", "take.wav", "audio/wav")

        assert store.calls == []
        assert leftovers(upload_dir) == []

    def test_oversized_file_is_rejected(self, store, transcoder, upload_dir):
        config = PipelineConfig(upload_dir=upload_dir, max_upload_bytes=1024)
        pipeline = SubmissionPipeline(store=store, transcoder=transcoder, config=config)

        with pytest.raises(ValidationError, match="too large"):
            submit(pipeline, make_wav(4096), "take.wav", "audio/wav")

        assert store.calls == []
        assert leftovers(upload_dir) == []


class TestFailureCleanup:
    """Every failed stage still removes every temporary artifact."""

    @pytest.mark.parametrize(
        "operation, error",
        [
            ("ensure_folder", FolderInitError("insufficient_space")),
            ("list_folder", ListError("listing refused")),
            ("commit", UploadError("too_many_write_operations", payload={"error": "x"})),
        ],
    )
    def test_remote_failure_cleans_up(self, pipeline, store, upload_dir, operation, error):
        store.fail_on[operation] = error
        submission = Submission(original_name="take.wav", declared_mime_type="audio/wav")

        with pytest.raises(type(error)):
            submit(pipeline, make_wav(), "take.wav", "audio/wav", submission=submission)

        assert submission.state == SubmissionState.FAILED
        assert submission.error is error
        assert leftovers(upload_dir) == []

    def test_unexpected_error_fails_submission_and_propagates(self, pipeline, store, upload_dir):
        store.fail_on["commit"] = RuntimeError("socket closed")
        submission = Submission(original_name="take.wav", declared_mime_type="audio/wav")

        with pytest.raises(RuntimeError, match="socket closed"):
            submit(pipeline, make_wav(), "take.wav", "audio/wav", submission=submission)

        assert submission.state == SubmissionState.FAILED
        assert leftovers(upload_dir) == []

    def test_upload_failure_keeps_payload(self, pipeline, store):
        store.fail_on["commit"] = UploadError("rejected", payload={"error_summary": "path/disallowed_name/"})

        with pytest.raises(UploadError) as exc_info:
            submit(pipeline, make_wav(), "take.wav", "audio/wav")

        assert exc_info.value.payload == {"error_summary": "path/disallowed_name/"}

    def test_transcode_failure_cleans_up_both_artifacts(self, store, pipeline_config, upload_dir):
        transcoder = FailingTranscoder()
        pipeline = SubmissionPipeline(store=store, transcoder=transcoder, config=pipeline_config)

        with pytest.raises(TranscodeError):
            submit(pipeline, make_wav(), "take.wav", "audio/wav")

        assert len(transcoder.outputs) == 1
        assert not transcoder.outputs[0].exists()
        assert store.calls == []
        assert leftovers(upload_dir) == []

    def test_client_disconnect_aborts_and_cleans_up(self, pipeline, store, upload_dir):
        async def disconnected() -> bool:
            return True

        submission = Submission(original_name="take.wav", declared_mime_type="audio/wav")

        with pytest.raises(AbortedError):
            submit(pipeline, make_wav(), "take.wav", "audio/wav",
                   submission=submission, is_aborted=disconnected)

        assert submission.state == SubmissionState.FAILED
        assert "commit" not in store.calls
        assert leftovers(upload_dir) == []

    def test_cancellation_cleans_up(self, transcoder, pipeline_config, upload_dir):
        """A cancelled request still releases its artifacts."""
        commit_started = asyncio.Event()

        class HangingStore(MockRemoteStore):
            async def commit(self, path, data):
                commit_started.set()
                await asyncio.sleep(60)

        pipeline = SubmissionPipeline(store=HangingStore(), transcoder=transcoder, config=pipeline_config)
        submission = Submission(original_name="take.wav", declared_mime_type="audio/wav")

        async def scenario():
            task = asyncio.create_task(
                pipeline.submit(io.BytesIO(make_wav()), "take.wav", "audio/wav", submission=submission)
            )
            await commit_started.wait()
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        asyncio.run(scenario())

        assert submission.state == SubmissionState.FAILED
        assert isinstance(submission.error, AbortedError)
        assert leftovers(upload_dir) == []

    def test_slow_remote_call_times_out_as_stage_error(self, transcoder, upload_dir):
        class SlowFolderStore(MockRemoteStore):
            async def ensure_folder(self, path):
                await asyncio.sleep(5)

        config = PipelineConfig(upload_dir=upload_dir, remote_timeout_seconds=0.05)
        pipeline = SubmissionPipeline(store=SlowFolderStore(), transcoder=transcoder, config=config)

        with pytest.raises(FolderInitError, match="timed out"):
            submit(pipeline, make_wav(), "take.wav", "audio/wav")

        assert leftovers(upload_dir) == []


class TestStoreAutorename:
    """Name collisions are resolved by the store, never by overwriting."""

    def test_fixed_name_skips_listing_and_store_renames(self, store, transcoder, pipeline_config):
        pipeline = SubmissionPipeline(
            store=store,
            transcoder=transcoder,
            config=pipeline_config,
            naming=FixedNaming(pipeline_config.target_format, base_name="Fart"),
        )

        first = submit(pipeline, make_wav(), "a.wav", "audio/wav")
        second = submit(pipeline, make_wav(), "b.wav", "audio/wav")

        assert first.path == "/audio/Fart.mp3"
        assert second.path == "/audio/Fart (1).mp3"
        assert "list_folder" not in store.calls

    def test_stale_listing_is_renamed_not_overwritten(self, transcoder, pipeline_config):
        """A name taken since the listing was read still doesn't overwrite."""

        class StaleStore(MockRemoteStore):
            async def list_folder(self, folder):
                return []

        store = StaleStore()
        seed(store, "/audio", ["Clip #0001.mp3"])
        pipeline = SubmissionPipeline(store=store, transcoder=transcoder, config=pipeline_config)

        committed = submit(pipeline, make_mp3(), "take.mp3", "audio/mpeg")

        assert committed.path == "/audio/Clip #0001 (1).mp3"
        assert store.read("/audio/Clip #0001.mp3") == b"seed"
