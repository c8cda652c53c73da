"""
Tests for the media worker, its polling loop and the Lambda entry point.
"""

import io
import json

import pytest
from PIL import Image

from conftest import FakeEncoder, make_image_bytes
from mediamirror.core.retry import NO_RETRY_POLICY, DeadLetterQueue, RetryManager
from mediamirror.exceptions import ConfigurationError, QueueError
from mediamirror.media.classifier import MediaKind
from mediamirror.queue import InMemoryJobQueue, Job, QueueMessage
from mediamirror.storage import IMMUTABLE_CACHE_CONTROL
from mediamirror.worker import handler
from mediamirror.worker.media import BatchResult, MediaWorker


async def no_sleep(delay):
    return None


def image_job(remote_id="id:img", path="/0 US/alice/trip/photo.png", widths=(16, 32)):
    return Job(remote_id=remote_id, path=path, kind=MediaKind.IMAGE, owner_folder="alice", image_widths=widths)


def video_job(remote_id="id:vid", path="/0 US/alice/clips/run.mp4"):
    return Job(remote_id=remote_id, path=path, kind=MediaKind.VIDEO, owner_folder="alice")


def message(job, message_id="m1"):
    return QueueMessage(message_id=message_id, body=job.to_message(), receipt_handle=f"rh-{message_id}")


@pytest.fixture
def dlq(metrics):
    return DeadLetterQueue(metrics=metrics)


@pytest.fixture
def worker(origin, storage, encoder, dlq, metrics):
    return MediaWorker(
        origin,
        storage,
        encoder,
        dlq=dlq,
        retry_manager=RetryManager(metrics=metrics, sleep=no_sleep),
        metrics=metrics,
    )


class TestImageJobs:
    """Tests for process_image()."""

    @pytest.mark.asyncio
    async def test_writes_canonical_and_width_renditions(self, worker, origin, storage, metrics):
        origin.add_file("id:img", make_image_bytes(size=(64, 48)))

        keys = await worker.process_job(image_job())

        assert keys == [
            "0 US/alice/trip/photo.jpg",
            "0 US/alice/trip/photo_w16.jpg",
            "0 US/alice/trip/photo_w32.jpg",
        ]
        for key in keys:
            assert storage.objects[key]["content_type"] == "image/jpeg"
            assert storage.objects[key]["cache_control"] == IMMUTABLE_CACHE_CONTROL
        assert Image.open(io.BytesIO(storage.objects["0 US/alice/trip/photo_w16.jpg"]["body"])).size == (16, 12)
        assert metrics.get_metrics()["renditions_uploaded_total"] == {"image": 3}

    @pytest.mark.asyncio
    async def test_default_widths(self, worker, origin, storage):
        origin.add_file("id:img", make_image_bytes(size=(64, 48)))

        keys = await worker.process_image(image_job(widths=None))

        assert [k.rsplit("/", 1)[1] for k in keys] == [
            "photo.jpg",
            "photo_w480.jpg",
            "photo_w960.jpg",
            "photo_w1600.jpg",
        ]

    @pytest.mark.asyncio
    async def test_reprocessing_overwrites_same_keys(self, worker, origin, storage):
        origin.add_file("id:img", make_image_bytes(size=(64, 48)))
        first = await worker.process_image(image_job())
        second = await worker.process_image(image_job())
        assert first == second
        assert len(storage.objects) == 3


class TestVideoJobs:
    """Tests for process_video()."""

    @pytest.mark.asyncio
    async def test_streams_original_and_submits_ladder(self, worker, origin, storage, encoder, metrics):
        origin.add_video("id:vid", [b"a" * 10, b"b" * 5])

        keys = await worker.process_job(video_job())

        assert keys == ["0 US/alice/clips/run.mp4"]
        stored = storage.objects["0 US/alice/clips/run.mp4"]
        assert stored["body"] == b"a" * 10 + b"b" * 5
        assert stored["content_type"] == "video/mp4"

        spec = encoder.submitted[0]
        assert spec.input_key == "0 US/alice/clips/run.mp4"
        assert spec.destination_prefix == "0 US/alice/clips/outputs/run/"
        assert metrics.get_metrics()["renditions_uploaded_total"] == {"video": 1}

    @pytest.mark.asyncio
    async def test_requires_encoder(self, origin, storage, metrics):
        worker = MediaWorker(origin, storage, metrics=metrics)
        with pytest.raises(ConfigurationError, match="needs an encoder"):
            await worker.process_video(video_job())
        assert origin.calls == []


class TestHandleMessage:
    """Retry and dead-letter behaviour per message."""

    @pytest.mark.asyncio
    async def test_success(self, worker, origin, metrics):
        origin.add_file("id:img", make_image_bytes())
        assert await worker.handle_message(message(image_job())) is True
        assert metrics.get_metrics()["jobs_total"] == {("image", "success"): 1}

    @pytest.mark.asyncio
    async def test_transient_download_failure_is_retried(self, worker, origin, dlq, metrics):
        origin.add_file("id:img", make_image_bytes())
        origin.download_failures["id:img"] = 2

        assert await worker.handle_message(message(image_job())) is True
        assert [c for c in origin.calls if c[0] == "download"] == [("download", "id:img")] * 3
        assert len(dlq) == 0
        assert metrics.get_metrics()["retry_total"] == {"retried": 2}

    @pytest.mark.asyncio
    async def test_unsupported_payload_is_dead_lettered_without_retry(self, worker, origin, dlq, metrics):
        # nothing registered for the id: the origin answers without content
        assert await worker.handle_message(message(image_job())) is False

        entry = dlq.get_recent()[0]
        assert entry.exception_type == "UnsupportedPayloadError"
        assert entry.remote_id == "id:img"
        assert entry.kind == "image"
        assert entry.total_attempts == 1
        assert metrics.get_metrics()["jobs_total"] == {("image", "failure"): 1}

    @pytest.mark.asyncio
    async def test_exhausted_upload_retries_are_dead_lettered(self, worker, origin, storage, dlq):
        origin.add_file("id:img", make_image_bytes())
        storage.put_failures["0 US/alice/trip/photo.jpg"] = 100

        assert await worker.handle_message(message(image_job())) is False

        entry = dlq.get_recent()[0]
        assert entry.exception_type == "StorageError"
        assert entry.total_attempts == 4
        assert len(entry.retry_history) == 4
        assert json.loads(entry.body)["remoteId"] == "id:img"

    @pytest.mark.asyncio
    async def test_failures_are_dead_lettered_under_any_policy(self, origin, storage, dlq, metrics):
        worker = MediaWorker(origin, storage, dlq=dlq, retry_policy=NO_RETRY_POLICY, metrics=metrics)
        origin.add_file("id:img", make_image_bytes())
        storage.put_failures["0 US/alice/trip/photo.jpg"] = 1

        assert await worker.handle_message(message(image_job())) is False
        assert len(dlq) == 1
        assert dlq.get_recent()[0].total_attempts == 1

    @pytest.mark.asyncio
    async def test_encoder_rejection_is_retried(self, origin, storage, dlq, metrics):
        worker = MediaWorker(
            origin,
            storage,
            FakeEncoder(failures=1),
            dlq=dlq,
            retry_manager=RetryManager(metrics=metrics, sleep=no_sleep),
            metrics=metrics,
        )
        origin.add_video("id:vid", [b"video"])

        assert await worker.handle_message(message(video_job())) is True
        assert len(worker.encoder.submitted) == 1

    @pytest.mark.asyncio
    async def test_malformed_message(self, worker, dlq, metrics):
        bad = QueueMessage(message_id="m9", body='{"remoteId": "id:1"}')

        assert await worker.handle_message(bad) is False

        entry = dlq.get_recent()[0]
        assert entry.message_id == "m9"
        assert entry.exception_type == "InvalidJobError"
        assert metrics.get_metrics()["jobs_total"] == {("unknown", "invalid"): 1}


class TestHandleBatch:
    @pytest.mark.asyncio
    async def test_reports_only_failed_ids(self, worker, origin):
        origin.add_file("id:ok", make_image_bytes())
        batch = [
            message(image_job(remote_id="id:ok"), "m1"),
            message(image_job(remote_id="id:missing", path="/0 US/alice/b.png"), "m2"),
            message(video_job(), "m3"),
        ]
        origin.add_video("id:vid", [b"v"])

        result = await worker.handle_batch(batch)

        assert result.succeeded == ["m1", "m3"]
        assert result.failed_ids == ["m2"]
        assert result.to_lambda_response() == {"batchItemFailures": [{"itemIdentifier": "m2"}]}

    def test_empty_response(self):
        assert BatchResult().to_lambda_response() == {"batchItemFailures": []}


class TestRunLoop:
    """Tests for MediaWorker.run() against the in-memory queue."""

    @pytest.mark.asyncio
    async def test_deletes_successes_and_leaves_failures(self, worker, origin):
        queue = InMemoryJobQueue()
        origin.add_file("id:img", make_image_bytes())
        await queue.send(image_job())
        await queue.send_raw("not json")

        processed = await worker.run(queue, wait_seconds=0, max_batches=1)

        assert processed == 1
        assert [m.body for m in queue.in_flight] == ["not json"]

    @pytest.mark.asyncio
    async def test_receive_errors_back_off(self, worker, monkeypatch):
        sleeps = []

        async def fake_sleep(delay):
            sleeps.append(delay)

        class BrokenQueue(InMemoryJobQueue):
            async def receive(self, *, max_messages=10, wait_seconds=20):
                raise QueueError("throttled")

        monkeypatch.setattr("mediamirror.worker.media.asyncio.sleep", fake_sleep)

        assert await worker.run(BrokenQueue(), max_batches=2) == 0
        assert sleeps == [5.0, 5.0]

    @pytest.mark.asyncio
    async def test_delete_failure_does_not_stop_the_loop(self, worker, origin):
        class FlakyDeleteQueue(InMemoryJobQueue):
            async def delete(self, message):
                raise QueueError("delete failed")

        queue = FlakyDeleteQueue()
        origin.add_file("id:a", make_image_bytes())
        origin.add_file("id:b", make_image_bytes())
        await queue.send(image_job(remote_id="id:a"))
        await queue.send(image_job(remote_id="id:b", path="/0 US/alice/trip/other.png"))

        processed = await worker.run(queue, wait_seconds=0, max_batches=2)

        assert processed == 2
        assert len(queue.in_flight) == 2

    @pytest.mark.asyncio
    async def test_retry_state_is_not_kept_per_job(self, worker, origin):
        queue = InMemoryJobQueue()
        for i in range(20):
            origin.add_file(f"id:{i}", make_image_bytes(size=(8, 8)))
            await queue.send(image_job(remote_id=f"id:{i}", path=f"/0 US/alice/trip/p{i}.png"))
        await queue.send(image_job(remote_id="id:missing", path="/0 US/alice/trip/gone.png"))

        processed = await worker.run(queue, wait_seconds=0, max_batches=3)

        assert processed == 20
        assert len(worker.dlq) == 1
        assert worker.retry_manager.get_state("image:id:0") is None
        assert worker.retry_manager.get_state("image:id:missing") is None


class TestLambdaHandler:
    def test_records_to_messages(self):
        event = {
            "Records": [
                {
                    "messageId": "m1",
                    "body": "{}",
                    "receiptHandle": "rh1",
                    "attributes": {"ApproximateReceiveCount": "2"},
                }
            ]
        }
        assert handler.records_to_messages(event) == [
            QueueMessage(message_id="m1", body="{}", receipt_handle="rh1", receive_count=2)
        ]

    def test_empty_event(self):
        assert handler.records_to_messages({}) == []

    def test_handler_returns_partial_batch_response_and_closes_origin(self, worker, origin):
        origin.add_file("id:img", make_image_bytes())
        event = {
            "Records": [
                {"messageId": "m1", "body": image_job().to_message()},
                {"messageId": "m2", "body": "garbage"},
            ]
        }
        handler.set_worker(worker)
        try:
            response = handler.lambda_handler(event, None)
        finally:
            handler.set_worker(None)

        assert response == {"batchItemFailures": [{"itemIdentifier": "m2"}]}
        assert origin.closed == 1
