"""
DiskOptimizedClipboard — 未压缩 FAWE 文件的随机读写

只支持 compression = 0 且 index_mode = 0 的文件：
单元 (x, y, z) 的字节偏移固定为 raster_offset()，
读取或写入一个方块只触及该偏移处的 2 个字节。
"""

from __future__ import annotations

import logging
import struct
from pathlib import Path
from typing import BinaryIO, Tuple

from schem_core.byte_streamer import ByteVisitor, stream_payload_ids
from schem_core.clipboard import Clipboard, Coord
from schem_core.errors import FormatError, UnsupportedOperationError
from schem_io.compact_format import (
    ENTRY_SIZE, MODE_RASTER, RASTER_DATA_OFFSET, RASTER_HEADER, SELECTOR_FORMAT,
    FaweReader, raster_offset,
)

logger = logging.getLogger(__name__)


class DiskOptimizedClipboard:
    """
    Usage::

        with DiskOptimizedClipboard.create("big.fawe", 512, 256, 512) as disk:
            disk.set_block(10, 64, 10, 1)
            disk.get_block(10, 64, 10)          # -> (1, 0)
    """

    def __init__(self, stream: BinaryIO) -> None:
        self.stream = stream
        stream.seek(0)
        raw = stream.read(RASTER_DATA_OFFSET)
        if len(raw) != RASTER_DATA_OFFSET:
            raise FormatError("File too short for a FAWE raster header")
        compression, index_mode = struct.unpack_from(SELECTOR_FORMAT, raw)
        if compression != 0 or index_mode != MODE_RASTER:
            raise UnsupportedOperationError(
                f"Random access needs compression 0 / mode 0, got {compression} / {index_mode}"
            )
        values = RASTER_HEADER.unpack_from(raw, struct.calcsize(SELECTOR_FORMAT))
        self.width, self.height, self.length = values[:3]
        self.origin: Coord = tuple(values[3:6])
        self.offset: Coord = tuple(values[6:9])

    # ── 构造 ────────────────────────────────────────────────────

    @classmethod
    def open(cls, path: str | Path, writable: bool = False) -> "DiskOptimizedClipboard":
        f = open(path, "r+b" if writable else "rb")
        try:
            return cls(f)
        except BaseException:
            f.close()
            raise

    @classmethod
    def create(
        cls,
        path: str | Path,
        width: int,
        height: int,
        length: int,
        origin: Coord = (0, 0, 0),
        offset: Coord = (0, 0, 0),
    ) -> "DiskOptimizedClipboard":
        """创建全空气的未压缩文件"""
        if width <= 0 or height <= 0 or length <= 0:
            raise ValueError(f"Invalid clipboard dimensions: {width}×{height}×{length}")
        f = open(path, "w+b")
        try:
            f.write(struct.pack(SELECTOR_FORMAT, 0, MODE_RASTER))
            f.write(RASTER_HEADER.pack(width, height, length, *origin, *offset))
            f.truncate(RASTER_DATA_OFFSET + width * height * length * ENTRY_SIZE)
            f.flush()
            logger.info("Created disk clipboard %s (%d×%d×%d)", Path(path).name, width, height, length)
            return cls(f)
        except BaseException:
            f.close()
            raise

    # ── 单块访问 ────────────────────────────────────────────────

    @property
    def dimensions(self) -> Coord:
        return (self.width, self.height, self.length)

    def _seek(self, x: int, y: int, z: int) -> None:
        if not (0 <= x < self.width and 0 <= y < self.height and 0 <= z < self.length):
            raise IndexError(f"({x}, {y}, {z}) outside {self.width}×{self.height}×{self.length}")
        self.stream.seek(raster_offset(self.width, self.height, x, y, z))

    def get_block(self, x: int, y: int, z: int) -> Tuple[int, int]:
        self._seek(x, y, z)
        raw = self.stream.read(ENTRY_SIZE)
        if len(raw) != ENTRY_SIZE:
            raise FormatError(f"Raster truncated at ({x}, {y}, {z})")
        return raw[0], raw[1] & 0xF

    def set_block(self, x: int, y: int, z: int, block_id: int, data: int = 0) -> None:
        self._seek(x, y, z)
        self.stream.write(bytes((block_id, data & 0xF)))

    # ── 整体访问 ────────────────────────────────────────────────

    def stream_ids(self, visitor: ByteVisitor) -> int:
        """按光栅顺序遍历磁盘上的 id，不读入整个体积"""
        self.stream.seek(RASTER_DATA_OFFSET)
        return stream_payload_ids(self.stream, self.width * self.height * self.length, visitor, ENTRY_SIZE)

    def to_clipboard(self) -> Clipboard:
        return FaweReader._read_raster(_skip_selector(self.stream))

    def flush(self) -> None:
        self.stream.flush()

    def close(self) -> None:
        self.stream.close()

    def __enter__(self) -> "DiskOptimizedClipboard":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"DiskOptimizedClipboard(size={self.width}×{self.height}×{self.length})"


def _skip_selector(stream: BinaryIO) -> BinaryIO:
    stream.seek(struct.calcsize(SELECTOR_FORMAT))
    return stream
