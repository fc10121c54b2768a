"""
Imagens placeholder geradas localmente (sem rede).
"""

import base64
import io
import logging
from typing import Tuple

from PIL import Image, ImageDraw

from ..utils.fonts import load_font

logger = logging.getLogger(__name__)

PLACEHOLDER_COLORS = [
    (0, 149, 255),    # 0095FF
    (59, 130, 246),   # 3b82f6
    (96, 165, 250),   # 60a5fa
    (37, 99, 235),    # 2563eb
    (30, 64, 175),    # 1e40af
]


def placeholder_color(index: int) -> Tuple[int, int, int]:
    return PLACEHOLDER_COLORS[index % len(PLACEHOLDER_COLORS)]


def render_placeholder(index: int, width: int = 720, height: int = 1280, label: str = "") -> Image.Image:
    """Cria imagem de cor sólida com o rótulo centralizado."""
    bg_color = placeholder_color(index)
    img = Image.new("RGB", (width, height), bg_color)
    draw = ImageDraw.Draw(img)

    text = label or f"Image {index + 1}"
    font = load_font(max(16, min(width, height) // 15))

    bbox = draw.textbbox((0, 0), text, font=font)
    text_width = bbox[2] - bbox[0]
    text_height = bbox[3] - bbox[1]
    x = (width - text_width) // 2
    y = (height - text_height) // 2

    text_color = (255, 255, 255) if sum(bg_color) < 400 else (0, 0, 0)
    draw.text((x, y), text, fill=text_color, font=font)
    return img


def placeholder_png(index: int, width: int = 720, height: int = 1280, label: str = "") -> bytes:
    buffer = io.BytesIO()
    render_placeholder(index, width, height, label).save(buffer, format="PNG")
    return buffer.getvalue()


def placeholder_data_uri(index: int, width: int = 720, height: int = 1280, label: str = "") -> str:
    """Placeholder autocontido como data: URI (PNG em base64)."""
    encoded = base64.b64encode(placeholder_png(index, width, height, label)).decode("ascii")
    return f"data:image/png;base64,{encoded}"
