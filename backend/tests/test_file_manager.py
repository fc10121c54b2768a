"""
Tests for utils/file_manager.py.

Tests:
  - Chapter directories live under storage/temp/{video_id}/{chapter_id}.
  - Dot-only and separator-bearing ids never leave the temp directory.
  - Cleanup with hostile ids leaves sibling storage (uploaded outputs) alone.
  - A scheduler run with a ".." video id cannot delete other videos' outputs.
"""
from __future__ import annotations

import asyncio

import pytest

from chapter_studio.models.records import ChapterState, VideoRecord
from chapter_studio.services.background_scheduler import BackgroundScheduler
from chapter_studio.services.metadata_store import JsonMetadataStore
from chapter_studio.services.object_storage import LocalObjectStorage
from chapter_studio.utils.file_manager import FileManager

from fakes import FakeCompositor, make_descriptor


@pytest.fixture
def other_output(storage_root):
    other = storage_root / "outputs" / "other-video" / "ch1.mp4"
    other.parent.mkdir(parents=True)
    other.write_bytes(b"someone else's chapter")
    return other


class TestChapterDir:

    def test_layout(self, file_manager):
        path = file_manager.chapter_dir("vid-1", "ch2")
        assert path == file_manager.temp_dir / "vid-1" / "ch2"
        assert path.is_dir()

    @pytest.mark.parametrize("video_id, chapter_id", [
        ("..", "outputs"),
        (".", ".."),
        ("", "ch1"),
        ("../..", "etc"),
        ("vid/../..", "ch1"),
    ])
    def test_hostile_ids_stay_inside_temp(self, file_manager, video_id, chapter_id):
        path = file_manager.chapter_dir(video_id, chapter_id)
        assert file_manager.temp_dir.resolve() in path.resolve().parents


class TestCleanup:

    def test_chapter_cleanup_with_dotdot_keeps_outputs(self, file_manager, other_output):
        file_manager.cleanup_chapter("..", "outputs")
        assert other_output.exists()

    def test_video_cleanup_with_dotdot_keeps_storage(self, file_manager, storage_root, other_output):
        file_manager.cleanup_video("..")
        file_manager.cleanup_video(".")
        assert storage_root.is_dir()
        assert file_manager.temp_dir.is_dir()
        assert other_output.exists()

    def test_video_cleanup_removes_its_tree(self, file_manager):
        file_manager.chapter_dir("vid-1", "ch1")
        file_manager.cleanup_video("vid-1")
        assert not (file_manager.temp_dir / "vid-1").exists()


def test_scheduler_with_dotdot_video_keeps_other_outputs(tmp_path, storage_root, file_manager, other_output, clock):
    scheduler = BackgroundScheduler(
        FakeCompositor(tmp_path),
        LocalObjectStorage(str(storage_root / "outputs")),
        JsonMetadataStore(str(tmp_path / "metadata")),
        clock=clock,
        file_manager=file_manager,
    )
    video = VideoRecord(id="..", title="Hostile", chapter_count=1, total_duration=2.0)

    asyncio.run(scheduler.start(video, [make_descriptor(chapter_id="outputs")]))

    assert scheduler.chapter_state("outputs") == ChapterState.FAILED
    assert other_output.read_bytes() == b"someone else's chapter"
    assert (storage_root / "outputs").is_dir()
