"""
Schematic — 带名称与描述的剪贴板包装
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Optional

from schem_core.clipboard import Clipboard, Coord

if TYPE_CHECKING:
    from schem_core.block_registry import BlockRegistry
    from schem_io.clipboard_format import ClipboardFormat

logger = logging.getLogger(__name__)


class Schematic:
    """
    解码后的剪贴板 + 元数据，供下游消费。

    Usage::

        schematic = SCHEMATIC.load("castle.schematic")
        schematic.dimensions          # -> (32, 20, 48)
        schematic.save("castle.fawe", FAWE)
    """

    def __init__(self, clipboard: Clipboard, name: str = "", description: str = "") -> None:
        self.clipboard = clipboard
        self.name = name
        self.description = description

    @property
    def origin(self) -> Coord:
        return self.clipboard.origin

    @property
    def dimensions(self) -> Coord:
        return self.clipboard.dimensions

    @property
    def minimum_point(self) -> Coord:
        return self.clipboard.minimum_point

    @property
    def maximum_point(self) -> Coord:
        return self.clipboard.maximum_point

    @property
    def volume(self) -> int:
        return self.clipboard.volume

    @property
    def block_count(self) -> int:
        return self.clipboard.block_count

    def save(
        self,
        path: str | Path,
        fmt: "ClipboardFormat",
        context: Optional["BlockRegistry"] = None,
    ) -> Path:
        """用指定格式写入文件"""
        path = Path(path)
        with open(path, "wb") as f:
            fmt.write_clipboard(f, self.clipboard, context)
        logger.info("Saved schematic %s as %s (%d blocks)", path.name, fmt.name, self.block_count)
        return path

    def __repr__(self) -> str:
        width, height, length = self.dimensions
        return f"Schematic(name={self.name!r}, size={width}×{height}×{length})"
