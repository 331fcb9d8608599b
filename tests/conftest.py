"""Pytest configuration and shared fixtures."""

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from vidforge.errors import TranscodeError
from vidforge.jobs.models import Job, JobType, RenderEpisodePayload
from vidforge.jobs.producer import JobProducer
from vidforge.jobs.progress import ProgressReporter
from vidforge.jobs.queue import QueueClient
from vidforge.jobs.store import MemoryJobStore
from vidforge.jobs.worker import JobContext
from vidforge.render.transcoder import ProbeResult, TranscodeRequest
from vidforge.schemas.models import (
    Brand,
    Episode,
    EpisodeStatus,
    Render,
    RenderStatus,
    Scene,
    Series,
)
from vidforge.storage.base import ASSETS_BUCKET
from vidforge.storage.local import LocalStorage
from vidforge.store.memory import MemoryContentStore


class FakeClock:
    """Settable clock for code that takes ``clock=`` or ``now=``."""

    def __init__(self, start: datetime | None = None):
        # just ahead of wall time so freshly enqueued jobs are leasable
        self.now = start or datetime.now(timezone.utc) + timedelta(seconds=1)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class RecordingSink:
    """Job log sink that keeps entries in memory."""

    def __init__(self):
        self.entries = []

    def append(self, entry):
        self.entries.append(entry)

    def progress_values(self, job_id=None):
        return [
            e.progress for e in self.entries
            if e.progress is not None and (job_id is None or e.job_id == job_id)
        ]


class FakeTranscoder:
    """Writes a small output file instead of running ffmpeg."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.requests: list[TranscodeRequest] = []

    def transcode(self, request, on_progress=None):
        self.requests.append(request)
        # inputs must exist while the transcoder runs
        assert all(Path(p).exists() for p in request.inputs)
        if on_progress:
            for pct in (0.0, 25.0, 50.0, 50.2, 100.0):
                on_progress(pct)
        if self.fail:
            raise TranscodeError("ffmpeg exited with code 1", returncode=1, log_tail="boom")
        request.output_path.write_bytes(b"\x00" * 2048)
        return request.output_path

    def probe(self, path):
        return ProbeResult(bitrate=4_500_000, duration=9.0, size_bytes=Path(path).stat().st_size)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def log_sink():
    return RecordingSink()


@pytest.fixture
def job_store():
    return MemoryJobStore()


@pytest.fixture
def queue(job_store, log_sink):
    client = QueueClient(job_store, log_sink=log_sink).init()
    yield client
    client.shutdown()


@pytest.fixture
def producer(queue):
    return JobProducer(queue)


@pytest.fixture
def content():
    """Brand b1 (user u1) → series s1 → episode e1 with three scenes and pending render r1."""
    store = MemoryContentStore()
    store.add(
        Brand(id="b1", user_id="u1", name="Acme"),
        Series(id="s1", brand_id="b1", title="Daily Tips", topic="productivity"),
        Episode(id="e1", series_id="s1", title="Inbox Zero", topic="email", status=EpisodeStatus.COMPLETED),
        Render(id="r1", episode_id="e1", status=RenderStatus.PENDING),
    )
    for i in range(3):
        store.add(
            Scene(
                id=f"sc{i}",
                episode_id="e1",
                idx=i,
                start_time=i * 3.0,
                end_time=(i + 1) * 3.0,
                src=f"e1/clip{i}.mp4",
            )
        )
    return store


@pytest.fixture
def storage(tmp_path):
    """Local storage with the three scene clips of episode e1 uploaded."""
    store = LocalStorage(tmp_path / "storage")
    for i in range(3):
        clip = tmp_path / f"clip{i}.mp4"
        clip.write_bytes(b"clip" * 16)
        store.upload(ASSETS_BUCKET, f"e1/clip{i}.mp4", clip, "video/mp4")
    return store


@pytest.fixture
def make_ctx(log_sink):
    """Build a JobContext for calling a handler directly."""

    def _make(payload=None, job_type=JobType.RENDER_EPISODE):
        job = Job(id="job_test", name=job_type, payload=payload or RenderEpisodePayload(render_id="r1"))
        return JobContext(job=job, progress=ProgressReporter(log_sink, job.id, job_type.value))

    return _make
