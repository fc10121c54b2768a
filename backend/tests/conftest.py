"""
Shared pytest fixtures for backend/tests/.

Provides:
  - clock: manual FakeClock
  - plan: three 5-second chapters about one topic
  - small_render_config: tiny frame size so composition stays fast
  - storage_root / file_manager: isolated storage tree under tmp_path
  - require_ffmpeg: skip-marker for tests that need the ffmpeg binary
"""
from __future__ import annotations

import shutil
import subprocess
from pathlib import Path

import pytest

from chapter_studio.models.chapter import ChapterPlan
from chapter_studio.models.config import RenderConfig, Resolution, TextOverlayConfig
from chapter_studio.utils.file_manager import FileManager

from fakes import FakeClock, FakeEncoder, build_plan


@pytest.fixture(autouse=True)
def _reset_fake_encoders():
    FakeEncoder.instances.clear()
    yield
    FakeEncoder.instances.clear()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def storage_root(tmp_path: Path) -> Path:
    root = tmp_path / "storage"
    root.mkdir()
    return root


@pytest.fixture
def file_manager(storage_root: Path) -> FileManager:
    return FileManager(base_path=str(storage_root))


@pytest.fixture
def small_render_config() -> RenderConfig:
    return RenderConfig(
        resolution=Resolution(width=64, height=96, preset=None),
        fps=10,
        progress_every_frames=5,
        text=TextOverlayConfig(font_size=10, line_height=12, side_margin=4, edge_offset=8),
    )


@pytest.fixture
def plan() -> ChapterPlan:
    return build_plan([5.0, 5.0, 5.0])


def _ffmpeg_available() -> bool:
    if shutil.which("ffmpeg") is None:
        return False
    try:
        subprocess.run(["ffmpeg", "-version"], capture_output=True, check=True, timeout=10)
    except (OSError, subprocess.SubprocessError):
        return False
    return True


@pytest.fixture
def require_ffmpeg():
    """Skip the test when the ffmpeg binary is not on PATH."""
    if not _ffmpeg_available():
        pytest.skip("ffmpeg not installed")
