"""
Tests for services/metadata_store.py.

Tests:
  - Chapter upserts replace the row with the same (video_id, chapter_id).
  - Marking a video ready stamps completed_at.
  - Records survive a new store instance on the same directory.
"""
from __future__ import annotations

import asyncio

from chapter_studio.models.records import ChapterRecord, ChapterState, VideoRecord, VideoStatus
from chapter_studio.services.metadata_store import JsonMetadataStore


def _video(video_id="vid-1", owner=None):
    return VideoRecord(id=video_id, title="Ancient Egypt", chapter_count=2, total_duration=10.0, owner=owner)


def _chapter(chapter_id, order, status=ChapterState.READY, url=None):
    return ChapterRecord(
        video_id="vid-1",
        chapter_id=chapter_id,
        order_index=order,
        duration=5.0,
        storage_url=url,
        status=status,
    )


def test_upsert_replaces_same_key(tmp_path):
    store = JsonMetadataStore(str(tmp_path))

    async def scenario():
        await store.create_video(_video())
        await store.upsert_chapter(_chapter("ch2", 1, ChapterState.FAILED))
        await store.upsert_chapter(_chapter("ch1", 0, url="/outputs/vid-1/ch1.mp4"))
        await store.upsert_chapter(_chapter("ch2", 1, url="/outputs/vid-1/ch2.mp4"))
        return await store.list_chapters("vid-1")

    chapters = asyncio.run(scenario())
    assert [c.chapter_id for c in chapters] == ["ch1", "ch2"]
    assert chapters[1].status == ChapterState.READY
    assert chapters[1].storage_url == "/outputs/vid-1/ch2.mp4"


def test_ready_status_sets_completed_at(tmp_path):
    store = JsonMetadataStore(str(tmp_path))

    async def scenario():
        await store.create_video(_video())
        return await store.update_video_status("vid-1", VideoStatus.READY)

    video = asyncio.run(scenario())
    assert video.status == VideoStatus.READY
    assert video.completed_at is not None


def test_unknown_video_update_returns_none(tmp_path):
    store = JsonMetadataStore(str(tmp_path))
    assert asyncio.run(store.update_video_status("missing", VideoStatus.FAILED)) is None
    assert asyncio.run(store.get_video("missing")) is None


def test_records_persist_across_instances(tmp_path):
    asyncio.run(JsonMetadataStore(str(tmp_path)).create_video(_video(owner="user-1")))
    asyncio.run(JsonMetadataStore(str(tmp_path)).upsert_chapter(_chapter("ch1", 0)))

    store = JsonMetadataStore(str(tmp_path))
    video = asyncio.run(store.get_video("vid-1"))
    assert video.owner == "user-1"
    assert asyncio.run(store.get_chapter("vid-1", "ch1")).order_index == 0
    assert [v.id for v in asyncio.run(store.list_videos(owner="user-1"))] == ["vid-1"]
    assert asyncio.run(store.list_videos(owner="other")) == []


def test_corrupt_file_reads_as_empty(tmp_path):
    store = JsonMetadataStore(str(tmp_path))
    store.videos_file.write_text("{not json")
    assert asyncio.run(store.get_video("vid-1")) is None
