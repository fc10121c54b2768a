"""
Tests for services/chapter_assembler.py.

Tests:
  - Narration falls back primary -> secondary -> silence, never absent.
  - Background video lookup records which fallback level was reached.
  - Assigned images are used first, then per-chapter search, then placeholders.
  - Plans are validated before anything is fetched.
  - Video and chapter ids that could act as paths are rejected.
  - Every chapter gets at least one image window spanning its duration.
"""
from __future__ import annotations

import asyncio

import pytest
from pydantic import ValidationError

from chapter_studio.models.assignment import AssignmentOutcome, AssignmentResult
from chapter_studio.models.chapter import AudioSource, ChapterInfo, ChapterPlan, TimelineAction
from chapter_studio.models.config import RenderConfig
from chapter_studio.services.chapter_assembler import ChapterAssembler, validate_plan
from chapter_studio.services.errors import PlanValidationError, SearchError
from chapter_studio.services.tts import NarrationService

from fakes import FakeImageSearch, FakeStockVideo, FakeSynthesizer, build_plan, make_candidate


def _assembler(primary_fails=False, secondary_fails=False, stock=None, search=None, min_images=1):
    narration = NarrationService(
        FakeSynthesizer("eleven", fail=primary_fails, source=AudioSource.PRIMARY),
        FakeSynthesizer("openai", fail=secondary_fails, source=AudioSource.SECONDARY),
    )
    return ChapterAssembler(
        narration,
        stock_video=stock,
        image_search=search,
        render_config=RenderConfig(min_images_per_chapter=min_images),
    )


def _info(keywords=(), duration=5.0):
    return ChapterInfo(
        id="ch1",
        order=0,
        duration=duration,
        narration="The ancient pyramids of Egypt stand along the Nile.",
        keywords=list(keywords),
    )


class TestNarration:

    def test_primary_used_when_available(self):
        descriptor = asyncio.run(_assembler().assemble(_info(), ["https://img/1.jpg"]))
        assert descriptor.assets.audio.source == AudioSource.PRIMARY
        assert not any(d.startswith("tts_") for d in descriptor.degradations)

    def test_primary_failure_uses_secondary(self):
        descriptor = asyncio.run(_assembler(primary_fails=True).assemble(_info(), ["https://img/1.jpg"]))
        assert descriptor.assets.audio.source == AudioSource.SECONDARY
        assert "tts_primary_failed" in descriptor.degradations

    def test_both_failing_gives_silence(self):
        assembler = _assembler(primary_fails=True, secondary_fails=True)
        descriptor = asyncio.run(assembler.assemble(_info(), ["https://img/1.jpg"]))
        audio = descriptor.assets.audio
        assert audio.source == AudioSource.SILENCE
        assert audio.format == "wav"
        assert audio.duration_seconds >= 1.0
        assert descriptor.degradations[-3:] == ["tts_primary_failed", "tts_secondary_failed", "tts_silence"]

    def test_no_providers_configured(self):
        audio, degradations = asyncio.run(NarrationService().narrate("one two three"))
        assert audio.source == AudioSource.SILENCE
        assert degradations == ["tts_not_configured", "tts_silence"]


class TestBackground:

    def test_keyword_hit(self):
        stock = FakeStockVideo(url="https://videos.example.com/nile.mp4")
        descriptor = asyncio.run(_assembler(stock=stock).assemble(_info(["pyramids", "nile"]), ["https://img/1.jpg"]))
        assert descriptor.assets.background_video == "https://videos.example.com/nile.mp4"
        assert stock.queries == ["pyramids nile"]
        assert descriptor.timeline[0].action == TimelineAction.SHOW_VIDEO

    def test_no_results_records_each_level(self):
        stock = FakeStockVideo(url=None)
        descriptor = asyncio.run(_assembler(stock=stock).assemble(_info(["pyramids"]), ["https://img/1.jpg"]))
        assert descriptor.assets.background_video is None
        assert descriptor.degradations[:3] == [
            "background_video_keywords_miss",
            "background_video_narration_miss",
            "background_video_none",
        ]
        assert len(stock.queries) == 2

    def test_search_error_is_not_fatal(self):
        stock = FakeStockVideo(error=SearchError("pexels down"))
        descriptor = asyncio.run(_assembler(stock=stock).assemble(_info(), ["https://img/1.jpg"]))
        assert descriptor.assets.background_video is None
        assert "background_video_error" in descriptor.degradations


class TestImages:

    def test_assigned_urls_used_in_order(self):
        descriptor = asyncio.run(_assembler().assemble(_info(), ["https://img/1.jpg", "https://img/2.jpg"]))
        images = descriptor.assets.images
        assert [i.url for i in images] == ["https://img/1.jpg", "https://img/2.jpg"]
        assert [i.position.value for i in images] == ["full", "center"]

    def test_search_fallback_when_unassigned(self):
        search = FakeImageSearch([make_candidate("https://found.example.com/a/1.jpg", "Pyramids")])
        descriptor = asyncio.run(_assembler(search=search).assemble(_info(), []))
        assert [i.url for i in descriptor.assets.images] == ["https://found.example.com/a/1.jpg"]
        assert "images_search_fallback" in descriptor.degradations

    def test_placeholder_when_nothing_found(self):
        descriptor = asyncio.run(_assembler(search=FakeImageSearch([])).assemble(_info(), None))
        images = descriptor.assets.images
        assert len(images) == 1
        assert images[0].url.startswith("data:image/png;base64,")
        assert "images_placeholder" in descriptor.degradations

    def test_zero_minimum_rejected(self):
        with pytest.raises(ValidationError):
            RenderConfig(min_images_per_chapter=0)

    def test_image_windows_cover_chapter_without_assignments(self):
        descriptor = asyncio.run(_assembler(search=FakeImageSearch([])).assemble(_info(duration=7.0), None))
        windows = [e.duration for e in descriptor.timeline if e.action == TimelineAction.SHOW_IMAGE]
        assert windows
        assert sum(windows) == pytest.approx(7.0)


class TestPlan:

    def test_validate_plan_rejects_empty(self):
        plan = ChapterPlan(video_id="v", title="t", total_duration=0, chapters=[])
        with pytest.raises(PlanValidationError):
            validate_plan(plan)

    def test_validate_plan_rejects_bad_duration_and_duplicates(self):
        zero = build_plan([5.0, 0.0])
        with pytest.raises(PlanValidationError):
            validate_plan(zero)

        plan = build_plan([5.0, 5.0])
        duplicated = plan.model_copy(update={"chapters": [plan.chapters[0], plan.chapters[0]]})
        with pytest.raises(PlanValidationError):
            validate_plan(duplicated)

    @pytest.mark.parametrize("video_id, chapter_id", [
        ("..", "ch1"),
        (".", "ch1"),
        ("vid/..", "ch1"),
        ("vid-1", ".."),
        ("vid-1", "../outputs"),
        ("vid-1", ""),
    ])
    def test_validate_plan_rejects_path_like_ids(self, video_id, chapter_id):
        plan = build_plan([5.0], video_id=video_id)
        chapter = plan.chapters[0].model_copy(update={"id": chapter_id})
        with pytest.raises(PlanValidationError):
            validate_plan(plan.model_copy(update={"chapters": [chapter]}))

    def test_validate_plan_accepts_usual_ids(self):
        validate_plan(build_plan([5.0], video_id="3f2c9a1e-7b4d-4c1a-9e2f-1a2b3c4d5e6f"))
        validate_plan(build_plan([5.0], video_id="nile_river.v2"))

    def test_assemble_all_with_mapping(self):
        plan = build_plan([3.0, 4.0])
        assignments = {"ch1": ["https://img/a.jpg"], "ch2": ["https://img/b.jpg", "https://img/c.jpg"]}
        descriptors = asyncio.run(_assembler().assemble_all(plan, assignments))
        assert [d.id for d in descriptors] == ["ch1", "ch2"]
        assert [len(d.assets.images) for d in descriptors] == [1, 2]
        assert [d.duration for d in descriptors] == [3.0, 4.0]

    def test_assemble_all_with_outcome(self):
        plan = build_plan([3.0])
        candidate = make_candidate("https://img.example.com/a/1.jpg", "Pyramids")
        outcome = AssignmentOutcome(
            results=[AssignmentResult(chapter_id="ch1", image_ids=[candidate.id])],
            candidates={candidate.id: candidate},
        )
        descriptors = asyncio.run(_assembler().assemble_all(plan, outcome))
        assert descriptors[0].assets.images[0].url == candidate.url

    def test_assemble_all_rejects_invalid_plan(self):
        with pytest.raises(PlanValidationError):
            asyncio.run(_assembler().assemble_all(build_plan([0.0])))
