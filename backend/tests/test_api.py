"""
Tests for the HTTP API (routers/videos.py, routers/config.py, main.py).

Tests:
  - POST /api/videos starts the pipeline and returns the video id.
  - Wait endpoint maps READY / TIMED_OUT / FAILED to 200 / 202 / 409.
  - Unknown videos and chapters are 404, invalid plans 400, duplicates 409.
  - Ids that could act as paths are rejected before anything is stored.
  - Config endpoints read and persist the JSON config file.
"""
from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

import chapter_studio.main as main
from chapter_studio.utils import config_file

from fakes import FakeClock, build_fake_orchestrator


def _chapters(count=3, duration=5.0):
    return [
        {"id": f"ch{i + 1}", "order": i, "duration": duration, "narration": f"Chapter {i + 1} about the Nile river."}
        for i in range(count)
    ]


@pytest.fixture
def make_client(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(config_file, "CONFIG_FILE", tmp_path / "config.json")

    def factory(**kwargs):
        clock = FakeClock()
        monkeypatch.setattr(
            main,
            "build_orchestrator",
            lambda config: build_fake_orchestrator(tmp_path, clock, **kwargs),
        )
        return TestClient(main.app)

    return factory


class TestVideos:

    def test_create_and_follow_video(self, make_client):
        with make_client() as client:
            response = client.post("/api/videos", json={
                "title": "The Nile",
                "topic": "nile river",
                "video_id": "nile-1",
                "chapters": _chapters(),
            })
            assert response.status_code == 200
            body = response.json()
            assert body == {
                "video_id": "nile-1",
                "status": "processing",
                "message": body["message"],
                "chapter_count": 3,
            }

            wait = client.get("/api/videos/nile-1/chapters/ch3/wait")
            assert wait.status_code == 200
            assert wait.json()["outcome"] == "ready"
            assert wait.json()["url"] == "memory://nile-1/ch3.mp4"

            video = client.get("/api/videos/nile-1").json()
            assert video["video"]["chapter_count"] == 3
            assert set(video["chapters"].values()) == {"ready"}

            chapter = client.get("/api/videos/nile-1/chapters/ch1").json()
            assert chapter["ready"] is True
            assert chapter["url"] == "memory://nile-1/ch1.mp4"

    def test_generated_id_and_total_duration(self, make_client):
        with make_client() as client:
            response = client.post("/api/videos", json={"title": "Auto", "chapters": _chapters(2, 4.0)})
            video_id = response.json()["video_id"]
            video = client.get(f"/api/videos/{video_id}").json()
            assert video["video"]["total_duration"] == 8.0

    def test_failed_chapter_and_blocked_successor(self, make_client):
        with make_client(fail={"ch2"}) as client:
            client.post("/api/videos", json={"title": "Nile", "video_id": "v", "chapters": _chapters()})

            failed = client.get("/api/videos/v/chapters/ch2/wait")
            assert failed.status_code == 409
            assert failed.json()["outcome"] == "failed"

            pending = client.get("/api/videos/v/chapters/ch3/wait", params={"timeout": 2})
            assert pending.status_code == 202
            assert pending.json()["outcome"] == "timed_out"

            status = client.get("/api/videos/v").json()
            assert status["stuck"] is True
            assert status["failed_chapter"] == "ch2"
            assert status["video"]["status"] == "processing"

            chapter = client.get("/api/videos/v/chapters/ch2").json()
            assert chapter["state"] == "failed"
            assert chapter["error"] == "encoder crashed"

    def test_invalid_plan_is_400(self, make_client):
        with make_client() as client:
            response = client.post("/api/videos", json={"title": "Bad", "chapters": _chapters(2, 0.0)})
            assert response.status_code == 400
            empty = client.post("/api/videos", json={"title": "Empty", "chapters": []})
            assert empty.status_code == 400

    def test_path_like_ids_rejected(self, make_client):
        with make_client() as client:
            video = client.post("/api/videos", json={"title": "Nile", "video_id": "..", "chapters": _chapters(1)})
            assert video.status_code == 422

            chapters = _chapters(1)
            chapters[0]["id"] = ".."
            chapter = client.post("/api/videos", json={"title": "Nile", "video_id": "ok-1", "chapters": chapters})
            assert chapter.status_code == 400
            assert client.get("/api/videos/ok-1").status_code == 404

    def test_duplicate_video_is_409(self, make_client):
        with make_client() as client:
            payload = {"title": "Nile", "video_id": "dup", "chapters": _chapters(1)}
            assert client.post("/api/videos", json=payload).status_code == 200
            assert client.post("/api/videos", json=payload).status_code == 409

    def test_unknown_ids_are_404(self, make_client):
        with make_client() as client:
            assert client.get("/api/videos/missing").status_code == 404
            assert client.get("/api/videos/missing/chapters/ch1/wait").status_code == 404

            client.post("/api/videos", json={"title": "Nile", "video_id": "known", "chapters": _chapters(1)})
            assert client.get("/api/videos/known/chapters/ch9").status_code == 404
            assert client.get("/api/videos/known/chapters/ch9/wait").status_code == 404

    def test_wait_timeout_is_validated(self, make_client):
        with make_client() as client:
            assert client.get("/api/videos/x/chapters/ch1/wait", params={"timeout": 0}).status_code == 422
            assert client.get("/api/videos/x/chapters/ch1/wait", params={"timeout": 301}).status_code == 422


class TestConfig:

    def test_defaults_and_patch_persist(self, make_client, tmp_path):
        with make_client() as client:
            config = client.get("/api/config").json()
            assert config["scheduler"]["wait_timeout_seconds"] == 90.0

            patched = client.patch("/api/config/scheduler", json={
                "cooldown_seconds": 1.0,
                "wait_timeout_seconds": 60.0,
                "poll_interval_seconds": 0.25,
            })
            assert patched.status_code == 200
            assert client.get("/api/config").json()["scheduler"]["wait_timeout_seconds"] == 60.0
            assert (tmp_path / "config.json").exists()

    def test_invalid_patch_rejected(self, make_client):
        with make_client() as client:
            response = client.patch("/api/config/render", json={"fps": 500})
            assert response.status_code == 422

    def test_api_test_without_key(self, make_client):
        with make_client() as client:
            response = client.post("/api/config/test-api", json={"api": "brave"})
            assert response.json() == {"connected": False, "error": "API key não configurada", "details": None}


class TestMeta:

    def test_health_and_root(self, make_client):
        with make_client() as client:
            assert client.get("/health").json() == {"status": "healthy"}
            assert client.get("/").json()["name"] == "Chapter Studio API"
            assert "videos" in client.get("/api").json()["endpoints"]
