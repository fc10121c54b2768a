"""
Tests for services/tts.py.

Tests:
  - Auth errors are not retried; 5xx and 429 are retried with backoff.
  - Request payloads carry the voice and model.
  - Silence is generated with the estimated narration length.
"""
from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from chapter_studio.models.chapter import AudioSource
from chapter_studio.services.errors import SynthesisError
from chapter_studio.services.tts import (
    ElevenLabsSynthesizer,
    OpenAISpeechSynthesizer,
    estimate_speech_duration,
    silent_audio,
)


def _transport(responses):
    """MockTransport replaying (status, body) pairs and recording requests."""
    requests = []
    queue = list(responses)

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        status, body = queue.pop(0) if len(queue) > 1 else queue[0]
        return httpx.Response(status, content=body)

    return httpx.MockTransport(handler), requests


class TestRetry:

    def test_unauthorized_is_not_retried(self):
        transport, requests = _transport([(401, b"invalid key")])
        tts = ElevenLabsSynthesizer("key", "voice-1", retry_delay=0, transport=transport)

        with pytest.raises(SynthesisError) as excinfo:
            asyncio.run(tts.synthesize("hello"))

        assert excinfo.value.status_code == 401
        assert len(requests) == 1

    def test_server_error_then_success(self):
        transport, requests = _transport([(503, b"busy"), (200, b"ID3-audio-bytes")])
        tts = ElevenLabsSynthesizer("key", "voice-1", retry_delay=0, transport=transport)

        asset = asyncio.run(tts.synthesize("hello world"))

        assert len(requests) == 2
        assert asset.data == b"ID3-audio-bytes"
        assert asset.source == AudioSource.PRIMARY
        assert asset.duration_seconds >= 1.0

    def test_rate_limit_exhausts_attempts(self):
        transport, requests = _transport([(429, b"slow down")])
        tts = OpenAISpeechSynthesizer("key", retry_delay=0, max_attempts=3, transport=transport)

        with pytest.raises(SynthesisError) as excinfo:
            asyncio.run(tts.synthesize("hello"))

        assert excinfo.value.status_code == 429
        assert len(requests) == 3

    def test_missing_key_fails_fast(self):
        with pytest.raises(SynthesisError):
            asyncio.run(OpenAISpeechSynthesizer("").synthesize("hello"))


class TestPayloads:

    def test_elevenlabs_request(self):
        transport, requests = _transport([(200, b"ID3")])
        tts = ElevenLabsSynthesizer("secret", "voice-1", model_id="eleven_turbo", transport=transport)
        asyncio.run(tts.synthesize("Olá mundo", voice="voice-2"))

        request = requests[0]
        assert request.url.path.endswith("/text-to-speech/voice-2")
        assert request.headers["xi-api-key"] == "secret"
        assert json.loads(request.content)["model_id"] == "eleven_turbo"

    def test_openai_request(self):
        transport, requests = _transport([(200, b"ID3")])
        tts = OpenAISpeechSynthesizer("secret", voice="alloy", speed=1.25, transport=transport)
        asset = asyncio.run(tts.synthesize("Olá mundo"))

        body = json.loads(requests[0].content)
        assert body["voice"] == "alloy"
        assert body["speed"] == 1.25
        assert requests[0].headers["Authorization"] == "Bearer secret"
        assert asset.source == AudioSource.SECONDARY


class TestSilence:

    def test_estimate_has_floor(self):
        assert estimate_speech_duration("") == 1.0
        assert estimate_speech_duration("word " * 150) == pytest.approx(66.0)
        assert estimate_speech_duration("word " * 150, speed=2.0) == pytest.approx(33.0)

    def test_silent_audio_is_wav(self):
        asset = silent_audio(1.5)
        assert asset.format == "wav"
        assert asset.source == AudioSource.SILENCE
        assert asset.data[:4] == b"RIFF"
        assert asset.duration_seconds == 1.5
