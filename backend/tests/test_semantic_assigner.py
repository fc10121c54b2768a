"""
Tests for services/semantic_assigner.py.

Tests:
  - Model output parses into a structured or malformed variant.
  - Structured assignments respect the cap and image exclusivity.
  - Malformed output, model errors and a missing model fall back to round-robin.
  - A secondary search runs when too few candidates survive the filter.
"""
from __future__ import annotations

import asyncio
import json
from collections import Counter

from chapter_studio.models.assignment import MalformedAssignment, StructuredAssignment
from chapter_studio.services.semantic_assigner import (
    SemanticImageAssigner,
    apply_structured,
    build_assignment_prompt,
    parse_model_response,
    round_robin,
)

from fakes import FakeImageSearch, build_plan, make_candidate

CANDIDATES = [
    make_candidate(f"https://img{i}.example.com/p/{i}.jpg", title)
    for i, title in enumerate([
        "Pyramids at Giza",
        "Golden pharaoh mask",
        "Desert temple ruins",
        "Nile river boats",
        "Hieroglyph wall carving",
        "Mummy in a museum",
        "Sandstone statue",
    ])
]


def _completion(payload):
    async def complete(prompt: str) -> str:
        return payload if isinstance(payload, str) else json.dumps(payload)
    return complete


class TestParse:

    def test_camel_case_response(self):
        text = json.dumps({"assignments": [{"chapterId": "ch1", "imageIndices": [0, 2], "reasoning": "fits"}]})
        response = parse_model_response(text)
        assert isinstance(response, StructuredAssignment)
        assert response.assignments[0].image_indices == [0, 2]

    def test_fenced_snake_case_response(self):
        text = '```json\n{"assignments": [{"chapter_id": "ch2", "image_indices": [1]}]}\n```'
        response = parse_model_response(text)
        assert isinstance(response, StructuredAssignment)
        assert response.assignments[0].chapter_id == "ch2"

    def test_invalid_json_is_malformed(self):
        response = parse_model_response("Sure! Here are the assignments: ch1 -> 0")
        assert isinstance(response, MalformedAssignment)
        assert "invalid JSON" in response.reason

    def test_missing_list_is_malformed(self):
        assert isinstance(parse_model_response('{"result": []}'), MalformedAssignment)
        assert isinstance(parse_model_response(""), MalformedAssignment)


class TestApply:

    def test_cap_and_exclusivity(self):
        chapters = build_plan([5.0, 5.0]).chapters
        response = StructuredAssignment.model_validate({"assignments": [
            {"chapter_id": "ch1", "image_indices": [0, 1, 2, 3]},
            {"chapter_id": "ch2", "image_indices": [0, 4, 99, -1]},
            {"chapter_id": "unknown", "image_indices": [5]},
        ]})
        results = apply_structured(response, chapters, CANDIDATES, max_per_chapter=3)
        by_chapter = {r.chapter_id: r.image_ids for r in results}
        assert by_chapter["ch1"] == [c.id for c in CANDIDATES[:3]]
        assert by_chapter["ch2"] == [CANDIDATES[4].id]

    def test_round_robin_consumes_in_order(self):
        chapters = build_plan([5.0, 5.0, 5.0, 5.0]).chapters
        results = round_robin(chapters, CANDIDATES, per_chapter=2)
        assert [len(r.image_ids) for r in results] == [2, 2, 2, 1]
        counts = Counter(i for r in results for i in r.image_ids)
        assert all(n == 1 for n in counts.values())

    def test_prompt_lists_chapters_and_images(self):
        chapters = build_plan([5.0]).chapters
        prompt = build_assignment_prompt(chapters, CANDIDATES[:2], max_per_chapter=3)
        assert "ID: ch1" in prompt
        assert "[1] Golden pharaoh mask" in prompt


class TestAssigner:

    def test_uses_model_answer(self):
        plan = build_plan([5.0, 5.0])
        completion = _completion({"assignments": [
            {"chapterId": "ch1", "imageIndices": [0, 3]},
            {"chapterId": "ch2", "imageIndices": [1]},
        ]})
        assigner = SemanticImageAssigner(FakeImageSearch(CANDIDATES), completion=completion)
        outcome = asyncio.run(assigner.run(plan.topic, plan.chapters))
        assert outcome.strategy == "semantic"
        assert outcome.urls_for("ch1") == [CANDIDATES[0].url, CANDIDATES[3].url]

    def test_malformed_answer_falls_back_to_round_robin(self):
        plan = build_plan([5.0, 5.0])
        assigner = SemanticImageAssigner(FakeImageSearch(CANDIDATES), completion=_completion("not json"))
        outcome = asyncio.run(assigner.run(plan.topic, plan.chapters))
        assert outcome.strategy == "round_robin"
        assert [len(r.image_ids) for r in outcome.results] == [2, 2]
        assert outcome.warnings

    def test_model_error_falls_back(self):
        async def broken(prompt):
            raise ConnectionError("network unreachable")

        plan = build_plan([5.0])
        assigner = SemanticImageAssigner(FakeImageSearch(CANDIDATES), completion=broken)
        outcome = asyncio.run(assigner.run(plan.topic, plan.chapters))
        assert outcome.strategy == "round_robin"

    def test_no_model_configured_falls_back(self):
        plan = build_plan([5.0])
        outcome = asyncio.run(SemanticImageAssigner(FakeImageSearch(CANDIDATES)).run(plan.topic, plan.chapters))
        assert outcome.strategy == "round_robin"

    def test_secondary_search_when_few_candidates(self):
        plan = build_plan([5.0, 5.0])
        primary = FakeImageSearch(CANDIDATES[:2])
        secondary = FakeImageSearch(CANDIDATES[2:])
        assigner = SemanticImageAssigner(primary, secondary_search=secondary)
        images = asyncio.run(assigner.search_global(plan.topic, plan.chapters))
        assert len(secondary.queries) == 1
        assert len(images) == len(CANDIDATES)

    def test_no_candidates_gives_empty_results(self):
        plan = build_plan([5.0, 5.0])
        outcome = asyncio.run(SemanticImageAssigner(FakeImageSearch([])).run(plan.topic, plan.chapters))
        assert all(r.image_ids == [] for r in outcome.results)
