"""
Construção e validação da timeline de um capítulo.
"""

from typing import List, Optional, Sequence

from .errors import InvalidDescriptorError
from ..models.chapter import ImageAsset, ImagePosition, TextPosition, TimelineAction, TimelineEntry

FADE_DURATION = 0.5
TEXT_MARGIN = 1.0
ZOOM_FROM = 1.0
ZOOM_TO = 1.1
EPSILON = 1e-6

_POSITION_CYCLE = [ImagePosition.CENTER, ImagePosition.TOP, ImagePosition.BOTTOM]


def image_position(index: int) -> ImagePosition:
    """Primeira imagem em tela cheia, depois center/top/bottom em ciclo."""
    if index == 0:
        return ImagePosition.FULL
    return _POSITION_CYCLE[(index - 1) % len(_POSITION_CYCLE)]


def fade_duration(duration: float) -> float:
    return min(FADE_DURATION, duration / 2)


def text_margin(duration: float) -> float:
    return TEXT_MARGIN if duration > 2 * TEXT_MARGIN else duration / 4


def build_timeline(
    duration: float,
    images: Sequence[ImageAsset],
    text: str,
    background_video: Optional[str] = None,
    text_position: TextPosition = TextPosition.BOTTOM
) -> List[TimelineEntry]:
    """
    Deriva a timeline de forma determinística.

    As janelas das imagens dividem o capítulo em partes iguais e a última
    fecha exatamente em ``duration``.
    """
    if duration <= 0:
        raise InvalidDescriptorError(f"Chapter duration must be positive, got {duration}")

    fade = fade_duration(duration)
    entries: List[TimelineEntry] = []

    if background_video:
        entries.append(TimelineEntry(
            timestamp=0.0,
            action=TimelineAction.SHOW_VIDEO,
            data={"url": background_video},
            duration=duration,
        ))

    entries.append(TimelineEntry(timestamp=0.0, action=TimelineAction.FADE_IN, duration=fade))

    count = len(images)
    slot = duration / max(count, 1)
    for i in range(count):
        start = i * slot
        end = duration if i == count - 1 else (i + 1) * slot
        entries.append(TimelineEntry(
            timestamp=start,
            action=TimelineAction.SHOW_IMAGE,
            data={"image_index": i, "position": images[i].position.value},
            duration=end - start,
        ))
        entries.append(TimelineEntry(
            timestamp=start,
            action=TimelineAction.ZOOM,
            data={"image_index": i, "from": ZOOM_FROM, "to": ZOOM_TO},
            duration=end - start,
        ))

    entries.append(TimelineEntry(timestamp=duration - fade, action=TimelineAction.FADE_OUT, duration=fade))

    if text.strip():
        margin = text_margin(duration)
        entries.append(TimelineEntry(
            timestamp=margin,
            action=TimelineAction.SHOW_TEXT,
            data={"text": text, "position": text_position.value},
            duration=duration - 2 * margin,
        ))

    return entries


def validate_timeline(timeline: Sequence[TimelineEntry], duration: float, image_count: int) -> None:
    """
    Raises:
        InvalidDescriptorError: janela fora de [0, duration] ou imagem inexistente
    """
    if duration <= 0:
        raise InvalidDescriptorError(f"Chapter duration must be positive, got {duration}")
    for entry in timeline:
        if entry.timestamp < -EPSILON or entry.end > duration + EPSILON:
            raise InvalidDescriptorError(
                f"{entry.action.value} window [{entry.timestamp:.3f}, {entry.end:.3f}] "
                f"outside [0, {duration:.3f}]"
            )
        if entry.duration is not None and entry.duration < 0:
            raise InvalidDescriptorError(f"{entry.action.value} has negative duration")
        if entry.action in (TimelineAction.SHOW_IMAGE, TimelineAction.ZOOM):
            index = entry.data.get("image_index")
            if not isinstance(index, int) or not 0 <= index < image_count:
                raise InvalidDescriptorError(f"{entry.action.value} references missing image {index}")
