"""
等距投影 PNG 写出器 (只写格式)

每个非空气方块画三个面：顶面 (原色)、左面 (×0.8)、右面 (×0.6)。
绘制顺序按 x + y + z 升序，远处先画，近处覆盖。
"""

from __future__ import annotations

import logging
from typing import BinaryIO, Callable, Optional

import numpy as np
from PIL import Image, ImageDraw

from schem_core.block_registry import RGBA, BlockRegistry
from schem_core.clipboard import Clipboard
from schem_core.errors import FormatError
from schem_io.clipboard_format import ClipboardFormat, ClipboardWriter

logger = logging.getLogger(__name__)

DEFAULT_SCALE = 8
MAX_IMAGE_SIZE = 8192
LEFT_SHADE = 0.8
RIGHT_SHADE = 0.6


class PngWriter(ClipboardWriter):
    """
    Usage::

        with PNG.get_writer(open("house.png", "wb")) as writer:
            writer.write(clipboard)
    """

    def __init__(
        self,
        stream: BinaryIO,
        scale: int = DEFAULT_SCALE,
        progress_callback: Optional[Callable[[float, str], None]] = None,
    ) -> None:
        super().__init__(stream)
        self.scale = max(2, scale - scale % 2)
        self.progress_callback = progress_callback

    def _report(self, pct: float, msg: str) -> None:
        if self.progress_callback:
            self.progress_callback(pct, msg)

    def _fit_scale(self, clipboard: Clipboard) -> int:
        """缩小比例直到图像不超过 MAX_IMAGE_SIZE"""
        scale = self.scale
        while scale > 2:
            w, h = image_size(clipboard, scale)
            if w <= MAX_IMAGE_SIZE and h <= MAX_IMAGE_SIZE:
                break
            scale -= 2
        w, h = image_size(clipboard, scale)
        if w > MAX_IMAGE_SIZE or h > MAX_IMAGE_SIZE:
            raise FormatError(
                f"Clipboard {clipboard.width}×{clipboard.height}×{clipboard.length} is too large for a "
                f"PNG preview ({w}×{h} px at the minimum scale, limit {MAX_IMAGE_SIZE})"
            )
        return scale

    def write(self, clipboard: Clipboard, context: Optional[BlockRegistry] = None) -> None:
        registry = context or BlockRegistry.default()
        scale = self._fit_scale(clipboard)
        half = scale // 2
        img_w, img_h = image_size(clipboard, scale)
        self._report(0.0, f"Rendering {img_w}×{img_h} isometric preview")

        img = Image.new("RGBA", (img_w, img_h), (0, 0, 0, 0))
        draw = ImageDraw.Draw(img, "RGBA")

        cells = np.argwhere(clipboard.ids != 0)     # 行为 (z, y, x)
        order = np.argsort(cells.sum(axis=1), kind="stable")
        ox = clipboard.length * scale
        oy = (clipboard.height - 1) * scale

        total = len(order)
        for n, i in enumerate(order):
            z, y, x = (int(v) for v in cells[i])
            color = registry.color_of(int(clipboard.ids[z, y, x]))
            px = ox + (x - z) * scale
            py = oy + (x + z) * half - y * scale
            draw.polygon(
                [(px, py), (px + scale, py + half), (px, py + 2 * half), (px - scale, py + half)],
                fill=color,
            )
            draw.polygon(
                [(px - scale, py + half), (px, py + 2 * half), (px, py + 2 * half + scale),
                 (px - scale, py + half + scale)],
                fill=_shade(color, LEFT_SHADE),
            )
            draw.polygon(
                [(px, py + 2 * half), (px + scale, py + half), (px + scale, py + half + scale),
                 (px, py + 2 * half + scale)],
                fill=_shade(color, RIGHT_SHADE),
            )
            if total and n % 4096 == 0:
                self._report(n / total * 90.0, f"Drawn {n}/{total} blocks")

        img.save(self.stream, format="PNG")
        logger.info("Rendered isometric PNG %d×%d (%d blocks, scale %d)", img_w, img_h, total, scale)
        self._report(100.0, "PNG written")


class PngFormat(ClipboardFormat):
    """只写的等距投影图片"""

    def __init__(self) -> None:
        super().__init__(
            "PNG",
            aliases=("png", "image"),
            extension="png",
            extensions=("png", "image"),
        )

    @property
    def readable(self) -> bool:
        return False

    def get_writer(self, stream: BinaryIO, scale: int = DEFAULT_SCALE) -> PngWriter:
        return PngWriter(stream, scale=scale)


def image_size(clipboard: Clipboard, scale: int) -> tuple:
    """(宽, 高) 像素"""
    half = scale // 2
    width = (clipboard.width + clipboard.length) * scale
    height = clipboard.height * scale + (clipboard.width + clipboard.length) * half
    return width, height


def _shade(color: RGBA, factor: float) -> RGBA:
    r, g, b, a = color
    return (int(r * factor), int(g * factor), int(b * factor), a)
