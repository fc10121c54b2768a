"""
Composição de frames com Pillow.

Cada frame: fundo (vídeo ou cor sólida) → imagem ativa com zoom e
opacidade → texto com contorno e sombra.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from PIL import Image, ImageColor, ImageDraw, ImageOps

from ..models.chapter import TimelineAction, TimelineEntry
from ..models.config import TextOverlayConfig
from ..utils.fonts import load_font

# Ordem fixa de aplicação das entradas ativas
ACTION_PRIORITY = {
    TimelineAction.SHOW_VIDEO: 0,
    TimelineAction.SHOW_IMAGE: 1,
    TimelineAction.ZOOM: 2,
    TimelineAction.FADE_IN: 3,
    TimelineAction.FADE_OUT: 4,
    TimelineAction.SHOW_TEXT: 5,
}


@dataclass
class FrameState:
    show_video: bool = False
    image_index: Optional[int] = None
    position: str = "full"
    zoom: float = 1.0
    opacity: float = 1.0
    text: Optional[str] = None
    text_position: str = "bottom"


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def lerp(start: float, end: float, progress: float) -> float:
    return start + (end - start) * clamp(progress)


def entry_progress(entry: TimelineEntry, t: float) -> float:
    if not entry.duration:
        return 1.0
    return clamp((t - entry.timestamp) / entry.duration)


def resolve_state(timeline: Sequence[TimelineEntry], t: float) -> FrameState:
    """Aplica as entradas ativas em t, em ordem fixa de prioridade."""
    active = [e for e in timeline if e.is_active(t)]
    active.sort(key=lambda e: (ACTION_PRIORITY[e.action], e.timestamp))

    state = FrameState()
    for entry in active:
        p = entry_progress(entry, t)
        if entry.action == TimelineAction.SHOW_VIDEO:
            state.show_video = True
        elif entry.action == TimelineAction.SHOW_IMAGE:
            state.image_index = entry.data.get("image_index")
            state.position = entry.data.get("position", "full")
        elif entry.action == TimelineAction.ZOOM:
            if entry.data.get("image_index", state.image_index) == state.image_index:
                state.zoom = lerp(entry.data.get("from", 1.0), entry.data.get("to", 1.0), p)
        elif entry.action == TimelineAction.FADE_IN:
            state.opacity = min(state.opacity, lerp(0.0, 1.0, p))
        elif entry.action == TimelineAction.FADE_OUT:
            state.opacity = min(state.opacity, lerp(1.0, 0.0, p))
        elif entry.action == TimelineAction.SHOW_TEXT:
            state.text = entry.data.get("text")
            state.text_position = entry.data.get("position", "bottom")
    return state


def wrap_text(draw: ImageDraw.ImageDraw, text: str, font, max_width: int) -> List[str]:
    """Quebra o texto por palavras para caber em max_width."""
    lines: List[str] = []
    current = ""
    for word in text.split():
        candidate = f"{current} {word}".strip()
        if current and draw.textlength(candidate, font=font) > max_width:
            lines.append(current)
            current = word
        else:
            current = candidate
    if current:
        lines.append(current)
    return lines


class FrameComposer:
    """
    Compõe frames RGB de tamanho fixo.

    Imagens base e camadas de texto são preparadas uma vez e reutilizadas
    em todos os frames.
    """

    def __init__(
        self,
        width: int = 720,
        height: int = 1280,
        background_color: str = "#000000",
        text_config: Optional[TextOverlayConfig] = None
    ):
        self.width = width
        self.height = height
        self.background_color = ImageColor.getrgb(background_color)
        self.text_config = text_config or TextOverlayConfig()
        self._images: List[Image.Image] = []
        self._prepared: Dict[Tuple[int, str], Image.Image] = {}
        self._text_layers: Dict[Tuple[str, str], Image.Image] = {}
        self._solid = Image.new("RGB", (width, height), self.background_color)

    @property
    def size(self) -> Tuple[int, int]:
        return self.width, self.height

    def set_images(self, images: Sequence[Image.Image]) -> None:
        self._images = [img.convert("RGBA") for img in images]
        self._prepared.clear()

    # ============== IMAGENS ==============

    def _prepare(self, index: int, position: str) -> Optional[Image.Image]:
        key = (index, position)
        if key in self._prepared:
            return self._prepared[key]
        if index is None or not 0 <= index < len(self._images):
            return None

        source = self._images[index]
        if position == "full":
            prepared = ImageOps.fit(source, self.size, method=Image.Resampling.BILINEAR)
        else:
            scale = self.width / source.width
            prepared = source.resize(
                (self.width, max(1, int(source.height * scale))),
                Image.Resampling.BILINEAR,
            )
            if prepared.height > self.height:
                prepared = ImageOps.fit(prepared, self.size, method=Image.Resampling.BILINEAR)
        self._prepared[key] = prepared
        return prepared

    def _place_image(self, frame: Image.Image, state: FrameState) -> None:
        base = self._prepare(state.image_index, state.position)
        if base is None or state.opacity <= 0:
            return

        if abs(state.zoom - 1.0) > 1e-3:
            scaled = base.resize(
                (max(1, int(base.width * state.zoom)), max(1, int(base.height * state.zoom))),
                Image.Resampling.BILINEAR,
            )
        else:
            scaled = base

        x = (self.width - scaled.width) // 2
        if state.position == "top":
            y = 0 - (scaled.height - base.height) // 2
        elif state.position == "bottom":
            y = self.height - base.height - (scaled.height - base.height) // 2
        else:
            y = (self.height - scaled.height) // 2

        if state.opacity < 1.0:
            alpha = scaled.getchannel("A").point(lambda a: int(a * state.opacity))
            scaled = scaled.copy()
            scaled.putalpha(alpha)
        frame.paste(scaled, (x, y), scaled)

    # ============== TEXTO ==============

    def _text_layer(self, text: str, position: str) -> Image.Image:
        key = (text, position)
        if key in self._text_layers:
            return self._text_layers[key]

        cfg = self.text_config
        layer = Image.new("RGBA", self.size, (0, 0, 0, 0))
        draw = ImageDraw.Draw(layer)
        font = load_font(cfg.font_size, cfg.font_path)
        lines = wrap_text(draw, text, font, self.width - 2 * cfg.side_margin)
        block_height = len(lines) * cfg.line_height

        if position == "top":
            y = cfg.edge_offset
        elif position == "center":
            y = (self.height - block_height) // 2
        else:
            y = self.height - cfg.edge_offset - block_height

        fill = ImageColor.getrgb(cfg.color)
        outline = ImageColor.getrgb(cfg.outline_color)
        for line in lines:
            line_width = draw.textlength(line, font=font)
            x = int((self.width - line_width) // 2)
            if cfg.shadow_offset:
                draw.text(
                    (x + cfg.shadow_offset, y + cfg.shadow_offset),
                    line, font=font, fill=(0, 0, 0, 160),
                )
            draw.text(
                (x, y), line, font=font, fill=fill,
                stroke_width=cfg.outline_width, stroke_fill=outline,
            )
            y += cfg.line_height

        self._text_layers[key] = layer
        return layer

    # ============== FRAME ==============

    def compose(self, state: FrameState, background: Optional[Image.Image] = None) -> Image.Image:
        if state.show_video and background is not None:
            frame = background.convert("RGB").copy()
        else:
            frame = self._solid.copy()

        self._place_image(frame, state)

        if state.text:
            layer = self._text_layer(state.text, state.text_position)
            frame.paste(layer, (0, 0), layer)
        return frame

    def compose_at(
        self,
        timeline: Sequence[TimelineEntry],
        t: float,
        background: Optional[Image.Image] = None
    ) -> Image.Image:
        return self.compose(resolve_state(timeline, t), background)
