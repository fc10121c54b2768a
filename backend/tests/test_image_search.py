"""
Tests for services/image_search.py and services/video_search.py.

Tests:
  - Brave results map to candidates, original URL preferred over thumbnail.
  - Google pages until the requested count.
  - Pexels picks the MP4 closest to the preferred width.
  - Client errors are not retried.
"""
from __future__ import annotations

import asyncio

import httpx
import pytest

from chapter_studio.models.config import Orientation
from chapter_studio.services.errors import NonRetryableError, SearchError
from chapter_studio.services.image_search import BraveImageSearch, GoogleImageSearch, candidate_id
from chapter_studio.services.video_search import PexelsVideoSearch


def _json_transport(payloads, status=200):
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        payload = payloads[min(len(requests), len(payloads)) - 1]
        return httpx.Response(status, json=payload)

    return httpx.MockTransport(handler), requests


class TestBrave:

    def test_results_mapped(self):
        transport, requests = _json_transport([{
            "results": [
                {
                    "title": "Pyramids of Giza",
                    "url": "https://site.example.com/page",
                    "properties": {"url": "https://cdn.example.com/giza.jpg", "width": 1600, "height": 900},
                    "thumbnail": {"src": "https://thumb.example.com/giza.jpg"},
                },
                {"title": "Thumbnail only", "thumbnail": {"src": "https://thumb.example.com/only.jpg"}},
                {"title": "No url at all"},
            ]
        }])
        client = BraveImageSearch("token", transport=transport)

        candidates = asyncio.run(client.search("egypt pyramids", count=500, safesearch="strict"))

        assert [c.url for c in candidates] == [
            "https://cdn.example.com/giza.jpg",
            "https://thumb.example.com/only.jpg",
        ]
        first = candidates[0]
        assert first.id == candidate_id(first.url)
        assert (first.width, first.height) == (1600, 900)
        assert first.source == "https://site.example.com/page"

        params = requests[0].url.params
        assert params["count"] == "100"
        assert params["safesearch"] == "strict"
        assert requests[0].headers["X-Subscription-Token"] == "token"

    def test_unauthorized_not_retried(self):
        transport, requests = _json_transport([{"error": "bad token"}], status=401)
        client = BraveImageSearch("token", transport=transport)

        with pytest.raises(NonRetryableError):
            asyncio.run(client.search("anything"))
        assert len(requests) == 1

    def test_missing_key(self):
        with pytest.raises(SearchError):
            asyncio.run(BraveImageSearch("").search("anything"))


class TestGoogle:

    def test_pages_until_count(self):
        page = {"items": [
            {"link": f"https://img.example.com/{i}.jpg", "title": f"Image {i}",
             "image": {"width": 800, "height": 600, "contextLink": "https://ctx.example.com"}}
            for i in range(10)
        ]}
        transport, requests = _json_transport([page, page])
        client = GoogleImageSearch("key", "engine", transport=transport)

        candidates = asyncio.run(client.search("nile", count=15))

        assert len(candidates) == 15
        assert [r.url.params["start"] for r in requests] == ["1", "11"]
        assert requests[1].url.params["num"] == "5"
        assert requests[0].url.params["safe"] == "active"


class TestPexels:

    VIDEO = {
        "id": 42,
        "video_files": [
            {"file_type": "video/mp4", "width": 1920, "link": "https://v.example.com/hd.mp4"},
            {"file_type": "video/mp4", "width": 640, "link": "https://v.example.com/sd.mp4"},
            {"file_type": "video/webm", "width": 720, "link": "https://v.example.com/720.webm"},
        ],
    }

    def test_best_file_closest_width(self):
        client = PexelsVideoSearch("key", preferred_width=720)
        assert client.best_video_file(self.VIDEO) == "https://v.example.com/sd.mp4"
        assert client.best_video_file(self.VIDEO, preferred_width=1800) == "https://v.example.com/hd.mp4"
        assert client.best_video_file({"video_files": []}) is None

    def test_search_for_chapter(self):
        transport, requests = _json_transport([{"videos": [self.VIDEO]}])
        client = PexelsVideoSearch("key", transport=transport)

        url = asyncio.run(client.search_for_chapter(
            "The ancient pyramids of Egypt and the desert", Orientation.LANDSCAPE,
        ))

        assert url == "https://v.example.com/sd.mp4"
        params = requests[0].url.params
        assert params["query"] == "ancient pyramids egypt"
        assert params["orientation"] == "landscape"
        assert requests[0].headers["Authorization"] == "key"

    def test_no_keywords_skips_request(self):
        transport, requests = _json_transport([{"videos": []}])
        client = PexelsVideoSearch("key", transport=transport)
        assert asyncio.run(client.search_for_chapter("a an the")) is None
        assert requests == []

    def test_no_videos(self):
        transport, _ = _json_transport([{"videos": []}])
        client = PexelsVideoSearch("key", transport=transport)
        assert asyncio.run(client.search_for_chapter("volcano eruption lava")) is None
