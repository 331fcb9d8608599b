"""Tests for the publish-video handler and platform adapters."""

import json
from datetime import timedelta

import httpx
import pytest

from vidforge.errors import (
    AccountNotConnected,
    PublishError,
    RateLimitExceeded,
    RecordNotFound,
    RenderNotReady,
    UnsupportedPlatform,
)
from vidforge.jobs.models import JobType, Platform, PublishVideoPayload
from vidforge.publish import build_adapters, youtube_credentials
from vidforge.publish.base import PublishOptions, RateLimit
from vidforge.publish.handler import PublishHandler
from vidforge.publish.instagram import InstagramAdapter
from vidforge.publish.tiktok import TikTokAdapter
from vidforge.publish.twitter import TwitterAdapter
from vidforge.publish.youtube import CHUNK_SIZE, YouTubeAdapter
from vidforge.config import Settings
from vidforge.schemas.models import PublishRecord, Render, RenderStatus


class RecordingAdapter:
    def __init__(self, platform, ceiling=5):
        self.platform = platform
        self.limits = RateLimit(ceiling)
        self.calls = []

    def upload(self, render_url, title, description, options):
        self.calls.append((render_url, title, description, options))
        return f"{self.platform.value}_123"


@pytest.fixture
def published_render(content, clock):
    content.add(
        Render(
            id="r0",
            episode_id="e1",
            status=RenderStatus.COMPLETED,
            url="https://cdn.example/renders/u1/e1.mp4",
            created_at=clock.now - timedelta(hours=1),
        )
    )
    return content


def _payload(platform="instagram"):
    return PublishVideoPayload(episode_id="e1", platform=platform)


def _ctx(make_ctx, platform="instagram"):
    return make_ctx(_payload(platform), JobType.PUBLISH_VIDEO)


class TestPublishHandler:
    def test_publishes_latest_render_and_records_event(self, published_render, make_ctx, clock):
        adapter = RecordingAdapter(Platform.INSTAGRAM)
        published_render.add_social_account("u1", "instagram", {"access_token": "t", "account_id": "a"})
        handler = PublishHandler(published_render, {Platform.INSTAGRAM: adapter}, clock=clock)

        handler(_payload(), _ctx(make_ctx))

        render_url, title, _, options = adapter.calls[0]
        assert render_url == "https://cdn.example/renders/u1/e1.mp4"
        assert title == "Inbox Zero"
        assert options.visibility == "private"
        assert options.credentials == {"access_token": "t", "account_id": "a"}
        record = published_render.publish_records[0]
        assert (record.episode_id, record.platform, record.video_id) == ("e1", "instagram", "instagram_123")
        assert record.created_at == clock.now

    def test_at_ceiling_rejected_before_upload(self, published_render, make_ctx, clock):
        adapter = RecordingAdapter(Platform.INSTAGRAM, ceiling=25)
        published_render.add_social_account("u1", "instagram", {"access_token": "t", "account_id": "a"})
        for i in range(25):
            published_render.record_publish(
                PublishRecord(episode_id=f"x{i}", platform="instagram", video_id=str(i), created_at=clock.now - timedelta(hours=2))
            )
        handler = PublishHandler(published_render, {Platform.INSTAGRAM: adapter}, clock=clock)

        with pytest.raises(RateLimitExceeded) as exc:
            handler(_payload(), _ctx(make_ctx))
        assert exc.value.count == 25
        assert adapter.calls == []

    def test_records_outside_window_not_counted(self, published_render, make_ctx, clock):
        adapter = RecordingAdapter(Platform.INSTAGRAM, ceiling=1)
        published_render.add_social_account("u1", "instagram", {"access_token": "t", "account_id": "a"})
        published_render.record_publish(
            PublishRecord(episode_id="old", platform="instagram", video_id="1", created_at=clock.now - timedelta(hours=25))
        )
        published_render.record_publish(
            PublishRecord(episode_id="other", platform="youtube", video_id="2", created_at=clock.now)
        )
        PublishHandler(published_render, {Platform.INSTAGRAM: adapter}, clock=clock)(_payload(), _ctx(make_ctx))
        assert len(adapter.calls) == 1

    def test_no_publishable_render_is_retryable(self, content, make_ctx, clock):
        adapter = RecordingAdapter(Platform.INSTAGRAM)
        with pytest.raises(RenderNotReady):
            PublishHandler(content, {Platform.INSTAGRAM: adapter}, clock=clock)(_payload(), _ctx(make_ctx))
        assert adapter.calls == []

    def test_unconfigured_platform_is_permanent(self, published_render, make_ctx):
        with pytest.raises(UnsupportedPlatform):
            PublishHandler(published_render, {})(_payload("twitter"), _ctx(make_ctx, "twitter"))

    def test_missing_episode_is_permanent(self, content, make_ctx):
        payload = PublishVideoPayload(episode_id="missing", platform="youtube")
        with pytest.raises(RecordNotFound):
            PublishHandler(content, {})(payload, make_ctx(payload, JobType.PUBLISH_VIDEO))

    def test_account_not_connected(self, published_render, make_ctx):
        handler = PublishHandler(published_render, {Platform.TIKTOK: RecordingAdapter(Platform.TIKTOK)})
        with pytest.raises(AccountNotConnected):
            handler(_payload("tiktok"), _ctx(make_ctx, "tiktok"))

    def test_youtube_uses_channel_credentials(self, published_render, make_ctx):
        adapter = RecordingAdapter(Platform.YOUTUBE)
        creds = {"client_id": "id", "client_secret": "secret", "refresh_token": "rt"}
        handler = PublishHandler(published_render, {Platform.YOUTUBE: adapter}, youtube_credentials=creds)
        handler(_payload("youtube"), _ctx(make_ctx, "youtube"))
        assert adapter.calls[0][3].credentials == creds


def test_build_adapters_uses_configured_ceilings():
    adapters = build_adapters(Settings(instagram_daily_limit=3))
    assert set(adapters) == set(Platform)
    assert adapters[Platform.INSTAGRAM].limits.ceiling == 3
    assert adapters[Platform.YOUTUBE].limits.ceiling == 6
    assert adapters[Platform.TIKTOK].limits.window == timedelta(hours=24)


def test_youtube_credentials_require_all_fields():
    assert youtube_credentials(Settings(youtube_client_id="a", youtube_client_secret="b")) is None
    creds = youtube_credentials(Settings(youtube_client_id="a", youtube_client_secret="b", youtube_refresh_token="c"))
    assert creds["refresh_token"] == "c"


@pytest.fixture
def video_file(tmp_path):
    def _make(size):
        path = tmp_path / "render.mp4"
        path.write_bytes(b"\x00" * size)
        return path.as_uri()

    return _make


class TestYouTubeAdapter:
    OPTIONS = PublishOptions(
        tags=["tips"],
        credentials={"client_id": "id", "client_secret": "secret", "refresh_token": "rt"},
    )

    def test_resumable_upload(self, video_file):
        requests = []

        def handler(request):
            requests.append(request)
            if request.url.host == "oauth2.googleapis.com":
                return httpx.Response(200, json={"access_token": "tok"})
            if request.method == "POST":
                return httpx.Response(200, headers={"Location": "https://upload.example/session/1"})
            return httpx.Response(200, json={"id": "vid123"})

        adapter = YouTubeAdapter(client=httpx.Client(transport=httpx.MockTransport(handler)))
        assert adapter.upload(video_file(1000), "Title", "Desc", self.OPTIONS) == "vid123"

        init = requests[1]
        assert init.url.params["uploadType"] == "resumable"
        assert init.headers["Authorization"] == "Bearer tok"
        assert init.headers["X-Upload-Content-Length"] == "1000"
        body = json.loads(init.content)
        assert body["status"]["privacyStatus"] == "private"
        assert body["snippet"]["tags"] == ["tips"]
        assert requests[2].headers["Content-Range"] == "bytes 0-999/1000"

    def test_resumes_from_reported_range(self, video_file):
        ranges = []

        def handler(request):
            if request.url.host == "oauth2.googleapis.com":
                return httpx.Response(200, json={"access_token": "tok"})
            if request.method == "POST":
                return httpx.Response(200, headers={"Location": "https://upload.example/session/1"})
            ranges.append(request.headers["Content-Range"])
            if len(ranges) == 1:
                return httpx.Response(308, headers={"Range": f"bytes=0-{CHUNK_SIZE - 1}"})
            return httpx.Response(201, json={"id": "vid456"})

        total = CHUNK_SIZE + 100
        adapter = YouTubeAdapter(client=httpx.Client(transport=httpx.MockTransport(handler)))
        assert adapter.upload(video_file(total), "T", "", self.OPTIONS) == "vid456"
        assert ranges == [f"bytes 0-{CHUNK_SIZE - 1}/{total}", f"bytes {CHUNK_SIZE}-{total - 1}/{total}"]

    def test_token_failure_raises_publish_error(self, video_file):
        client = httpx.Client(transport=httpx.MockTransport(lambda r: httpx.Response(401, text="invalid_grant")))
        with pytest.raises(PublishError, match="token refresh"):
            YouTubeAdapter(client=client).upload(video_file(10), "T", "", self.OPTIONS)

    def test_missing_credentials(self, video_file):
        client = httpx.Client(transport=httpx.MockTransport(lambda r: httpx.Response(500)))
        with pytest.raises(PublishError, match="refresh_token"):
            YouTubeAdapter(client=client).upload(
                video_file(10), "T", "", PublishOptions(credentials={"client_id": "a", "client_secret": "b"})
            )


class TestTikTokAdapter:
    def test_pull_from_url(self):
        seen = {}

        def handler(request):
            seen["body"] = json.loads(request.content)
            seen["auth"] = request.headers["Authorization"]
            return httpx.Response(200, json={"data": {"publish_id": "p_1"}, "error": {"code": "ok"}})

        adapter = TikTokAdapter(client=httpx.Client(transport=httpx.MockTransport(handler)))
        options = PublishOptions(credentials={"access_token": "tt"}, visibility="public")
        assert adapter.upload("https://cdn.example/v.mp4", "Title", "Desc", options) == "p_1"
        assert seen["auth"] == "Bearer tt"
        assert seen["body"]["source_info"] == {"source": "PULL_FROM_URL", "video_url": "https://cdn.example/v.mp4"}
        assert seen["body"]["post_info"]["privacy_level"] == "PUBLIC_TO_EVERYONE"

    def test_api_error(self):
        def handler(request):
            return httpx.Response(200, json={"data": {}, "error": {"code": "spam_risk_too_many_posts", "message": "slow down"}})

        adapter = TikTokAdapter(client=httpx.Client(transport=httpx.MockTransport(handler)))
        with pytest.raises(PublishError, match="spam_risk"):
            adapter.upload("https://cdn.example/v.mp4", "T", "", PublishOptions(credentials={"access_token": "tt"}))


class TestInstagramAdapter:
    OPTIONS = PublishOptions(credentials={"access_token": "ig", "account_id": "17841"})

    def test_container_poll_publish(self):
        statuses = iter(["IN_PROGRESS", "FINISHED"])
        paths = []

        def handler(request):
            paths.append((request.method, request.url.path))
            if request.url.path.endswith("/17841/media"):
                return httpx.Response(200, json={"id": "c_9"})
            if request.url.path.endswith("/c_9"):
                return httpx.Response(200, json={"status_code": next(statuses)})
            if request.url.path.endswith("/media_publish"):
                return httpx.Response(200, json={"id": "post_7"})
            return httpx.Response(404)

        sleeps = []
        adapter = InstagramAdapter(
            client=httpx.Client(transport=httpx.MockTransport(handler)),
            sleep=sleeps.append,
        )
        assert adapter.upload("https://cdn.example/v.mp4", "T", "D", self.OPTIONS) == "post_7"
        assert [m for m, _ in paths] == ["POST", "GET", "GET", "POST"]
        assert len(sleeps) == 1

    def test_container_error(self):
        def handler(request):
            if request.method == "POST":
                return httpx.Response(200, json={"id": "c_9"})
            return httpx.Response(200, json={"status_code": "ERROR"})

        adapter = InstagramAdapter(client=httpx.Client(transport=httpx.MockTransport(handler)), sleep=lambda s: None)
        with pytest.raises(PublishError, match="ERROR"):
            adapter.upload("https://cdn.example/v.mp4", "T", "", self.OPTIONS)


class TestTwitterAdapter:
    def test_chunked_upload_then_tweet(self, video_file):
        commands = []

        def handler(request):
            if request.url.host == "api.twitter.com":
                body = json.loads(request.content)
                assert body["media"] == {"media_ids": ["m_1"]}
                return httpx.Response(201, json={"data": {"id": "t_1"}})
            content = request.content
            for command in ("INIT", "APPEND", "FINALIZE"):
                if command.encode() in content:
                    commands.append(command)
                    break
            if commands[-1] == "INIT":
                return httpx.Response(202, json={"media_id_string": "m_1"})
            if commands[-1] == "APPEND":
                return httpx.Response(204)
            return httpx.Response(200, json={"media_id_string": "m_1"})

        adapter = TwitterAdapter(client=httpx.Client(transport=httpx.MockTransport(handler)), sleep=lambda s: None)
        options = PublishOptions(credentials={"access_token": "tw"})
        assert adapter.upload(video_file(100), "Title", "", options) == "t_1"
        assert commands == ["INIT", "APPEND", "FINALIZE"]
