"""
FAWE 自定义格式 (.fawe / .bd)

文件头:
    [compression: u8][index_mode: u8][主体...]

compression: 0 = 不压缩, 1-9 = 主体为 zlib 流 (对应压缩等级)
index_mode:
    0 — 平铺光栅, u32 尺寸, 尺寸不受限, 可流式读写
    1 — 稀疏记录, u8 坐标, 每维 ≤ 256
    2 — 稀疏记录, u16 坐标, 每维 ≤ 65535
    3 — 平铺光栅 + 增量方块变更日志

模式 0/3 主体:
    width, height, length (u32) | origin xyz (i32) | offset xyz (i32)
    光栅: 每单元 (id u8, data u8)，单元 (x, y, z) 位于 2 * (x + width * (y + height * z))
    模式 3 追加: count (u32) + count × (x, y, z i32, id u8, data u8)
模式 1/2 主体:
    尺寸 (模式 1 存 dim - 1 的 u8, 模式 2 存 u16) | origin | offset
    count (u32) + count × (x, y, z u8|u16, id u8, data u8)

compression 0 + index_mode 0 时可 O(1) 随机访问单个方块 (见 disk_clipboard)。
"""

from __future__ import annotations

import logging
import struct
from pathlib import Path
from typing import BinaryIO, Iterable, List, Optional, Tuple

import numpy as np

from schem_core.block_registry import BlockRegistry
from schem_core.clipboard import BlockChange, Clipboard
from schem_core.errors import FormatError
from schem_io.clipboard_format import ClipboardFormat, ClipboardReader, ClipboardWriter
from schem_io.streams import DeflateSink, InflateInput, is_compressed_sink

logger = logging.getLogger(__name__)

DEFAULT_COMPRESSION = 8
MAX_COMPRESSION = 9

MODE_RASTER = 0
MODE_SPARSE_BYTE = 1
MODE_SPARSE_SHORT = 2
MODE_RASTER_CHANGES = 3

SELECTOR_FORMAT = ">BB"
RASTER_HEADER = struct.Struct(">III iii iii")
CHANGE_RECORD = struct.Struct(">iiiBB")
COUNT = struct.Struct(">I")
ENTRY_SIZE = 2

# 模式 → (尺寸格式, 记录格式, 每维上限)
_SPARSE_LAYOUTS = {
    MODE_SPARSE_BYTE: (struct.Struct(">BBB iii iii"), struct.Struct(">BBBBB"), 256),
    MODE_SPARSE_SHORT: (struct.Struct(">HHH iii iii"), struct.Struct(">HHHBB"), 65535),
}

# 整个头部 (选择字节 + 光栅尺寸) 的长度，O(1) 访问的偏移基准
RASTER_DATA_OFFSET = struct.calcsize(SELECTOR_FORMAT) + RASTER_HEADER.size


def raster_offset(width: int, height: int, x: int, y: int, z: int) -> int:
    """单元 (x, y, z) 在未压缩模式 0 文件中的字节偏移"""
    return RASTER_DATA_OFFSET + ENTRY_SIZE * (x + width * (y + height * z))


class FaweReader(ClipboardReader):
    """签名校验推迟到 read()"""

    def __init__(self, stream: BinaryIO) -> None:
        super().__init__(stream)
        self.compression: Optional[int] = None
        self.index_mode: Optional[int] = None
        self.changes: List[BlockChange] = []

    def read_header(self) -> Tuple[int, int]:
        """读取两个选择字节，返回 (compression, index_mode)"""
        if self.compression is None:
            compression, index_mode = _unpack(self.stream, struct.Struct(SELECTOR_FORMAT))
            if compression > MAX_COMPRESSION:
                raise FormatError(f"Invalid compression level: {compression}")
            if index_mode not in (MODE_RASTER, MODE_SPARSE_BYTE, MODE_SPARSE_SHORT, MODE_RASTER_CHANGES):
                raise FormatError(f"Invalid index mode: {index_mode}")
            self.compression = compression
            self.index_mode = index_mode
        return self.compression, self.index_mode

    def read(self, context: Optional[BlockRegistry] = None) -> Clipboard:
        compression, index_mode = self.read_header()
        body = self._own(InflateInput(self.stream)) if compression else self.stream

        if index_mode in _SPARSE_LAYOUTS:
            clipboard = self._read_sparse(body, index_mode)
        else:
            clipboard = self._read_raster(body)
            if index_mode == MODE_RASTER_CHANGES:
                (count,) = _unpack(body, COUNT)
                self.changes = [BlockChange(*_unpack(body, CHANGE_RECORD)) for _ in range(count)]
                for change in self.changes:
                    if not clipboard.contains(change.x, change.y, change.z):
                        raise FormatError(f"Change record outside clipboard: {change}")
                    clipboard.apply_change(change)

        logger.debug("Decoded FAWE clipboard (compression=%d, mode=%d): %r", compression, index_mode, clipboard)
        return clipboard

    @staticmethod
    def _read_raster(body: BinaryIO) -> Clipboard:
        width, height, length, *rest = _unpack(body, RASTER_HEADER)
        if width <= 0 or height <= 0 or length <= 0:
            raise FormatError(f"Invalid FAWE dimensions: {width}×{height}×{length}")
        clipboard = Clipboard(width, height, length, origin=tuple(rest[:3]), offset=tuple(rest[3:]))
        ids = clipboard.flat_ids()
        data = clipboard.flat_data()
        # 按 Z 层读取，缓冲区大小与单层成正比
        layer = width * height
        for z in range(length):
            raw = np.frombuffer(_read_exact(body, layer * ENTRY_SIZE), dtype=np.uint8)
            ids[z * layer:(z + 1) * layer] = raw[0::2]
            data[z * layer:(z + 1) * layer] = raw[1::2] & 0xF
        return clipboard

    @staticmethod
    def _read_sparse(body: BinaryIO, index_mode: int) -> Clipboard:
        dims_struct, record_struct, _ = _SPARSE_LAYOUTS[index_mode]
        width, height, length, *rest = _unpack(body, dims_struct)
        if index_mode == MODE_SPARSE_BYTE:
            width, height, length = width + 1, height + 1, length + 1
        if width <= 0 or height <= 0 or length <= 0:
            raise FormatError(f"Invalid FAWE dimensions: {width}×{height}×{length}")
        clipboard = Clipboard(width, height, length, origin=tuple(rest[:3]), offset=tuple(rest[3:]))
        (count,) = _unpack(body, COUNT)
        for _ in range(count):
            x, y, z, block_id, data = _unpack(body, record_struct)
            if not clipboard.contains(x, y, z):
                raise FormatError(f"Block record ({x}, {y}, {z}) outside clipboard")
            clipboard.set_block(x, y, z, block_id, data)
        return clipboard


class FaweWriter(ClipboardWriter):
    """
    FAWE 写出器

    下层流已经是压缩流时 (gzip / zlib)，文件头记录 compression = 0，
    不再追加第二层压缩。
    """

    def __init__(
        self,
        stream: BinaryIO,
        compression: int = DEFAULT_COMPRESSION,
        index_mode: int = MODE_RASTER,
    ) -> None:
        super().__init__(stream)
        if not 0 <= compression <= MAX_COMPRESSION:
            self.close()
            raise ValueError(f"Compression level must be 0-{MAX_COMPRESSION}, got {compression}")
        if index_mode not in (MODE_RASTER, MODE_SPARSE_BYTE, MODE_SPARSE_SHORT, MODE_RASTER_CHANGES):
            self.close()
            raise ValueError(f"Unknown index mode: {index_mode}")
        if compression and is_compressed_sink(stream):
            logger.debug("Sink already compressed, skipping FAWE compression")
            compression = 0
        self.compression = compression
        self.index_mode = index_mode

    def compress(self, level: int) -> None:
        """写入前调整压缩等级"""
        if not 0 <= level <= MAX_COMPRESSION:
            raise ValueError(f"Compression level must be 0-{MAX_COMPRESSION}, got {level}")
        self.compression = 0 if is_compressed_sink(self.stream) else level

    def write(
        self,
        clipboard: Clipboard,
        context: Optional[BlockRegistry] = None,
        changes: Iterable[BlockChange] = (),
    ) -> None:
        changes = list(changes)
        if changes and self.index_mode != MODE_RASTER_CHANGES:
            raise ValueError("Block changes can only be written with index mode 3")

        self.stream.write(struct.pack(SELECTOR_FORMAT, self.compression, self.index_mode))
        body = self._own(DeflateSink(self.stream, self.compression)) if self.compression else self.stream

        if self.index_mode in _SPARSE_LAYOUTS:
            self._write_sparse(body, clipboard)
        else:
            self._write_raster(body, clipboard)
            if self.index_mode == MODE_RASTER_CHANGES:
                body.write(COUNT.pack(len(changes)))
                for change in changes:
                    body.write(CHANGE_RECORD.pack(change.x, change.y, change.z, change.block_id, change.data))

        logger.debug(
            "Encoded FAWE clipboard (compression=%d, mode=%d): %r",
            self.compression, self.index_mode, clipboard,
        )

    @staticmethod
    def _write_raster(body: BinaryIO, clipboard: Clipboard) -> None:
        body.write(RASTER_HEADER.pack(*clipboard.dimensions, *clipboard.origin, *clipboard.offset))
        layer = clipboard.width * clipboard.height
        buf = np.empty(layer * ENTRY_SIZE, dtype=np.uint8)
        for z in range(clipboard.length):
            buf[0::2] = clipboard.ids[z].reshape(-1)
            buf[1::2] = clipboard.data[z].reshape(-1)
            body.write(buf.tobytes())

    def _write_sparse(self, body: BinaryIO, clipboard: Clipboard) -> None:
        dims_struct, record_struct, limit = _SPARSE_LAYOUTS[self.index_mode]
        width, height, length = clipboard.dimensions
        if max(width, height, length) > limit:
            raise FormatError(
                f"Index mode {self.index_mode} supports at most {limit} per axis, "
                f"got {width}×{height}×{length}"
            )
        if self.index_mode == MODE_SPARSE_BYTE:
            width, height, length = width - 1, height - 1, length - 1
        body.write(dims_struct.pack(width, height, length, *clipboard.origin, *clipboard.offset))
        body.write(COUNT.pack(clipboard.stored_count))
        for x, y, z, block_id, data in clipboard.iter_blocks():
            body.write(record_struct.pack(x, y, z, block_id, data))


class FaweFormat(ClipboardFormat):
    """
    FAWE 流式压缩格式

    compression / index_mode 是 get_writer() 未显式指定时的默认值，
    通常来自 settings.yaml 的 clipboard 段 (见 from_settings)。
    """

    def __init__(self, compression: int = DEFAULT_COMPRESSION, index_mode: int = MODE_RASTER) -> None:
        super().__init__(
            "FAWE",
            aliases=("fawe", "bd"),
            extension="fawe",
            extensions=("fawe", "bd"),
        )
        self.compression = compression
        self.index_mode = index_mode

    @classmethod
    def from_settings(cls, settings) -> "FaweFormat":
        return cls(compression=settings.compression_level, index_mode=settings.index_mode)

    def get_reader(self, stream: BinaryIO) -> FaweReader:
        return FaweReader(stream)

    def get_writer(
        self,
        stream: BinaryIO,
        compression: Optional[int] = None,
        index_mode: Optional[int] = None,
    ) -> FaweWriter:
        return FaweWriter(
            stream,
            compression=self.compression if compression is None else compression,
            index_mode=self.index_mode if index_mode is None else index_mode,
        )

    def open_random_access(self, stream: BinaryIO):
        """包装未压缩模式 0 的可 seek 流，按偏移读写单个方块"""
        from schem_io.disk_clipboard import DiskOptimizedClipboard
        return DiskOptimizedClipboard(stream)

    def get_uncompressed_read_write(self, path: str | Path):
        from schem_io.disk_clipboard import DiskOptimizedClipboard
        return DiskOptimizedClipboard.open(path, writable=True)

    def create_uncompressed_read_write(self, width: int, height: int, length: int, path: str | Path):
        from schem_io.disk_clipboard import DiskOptimizedClipboard
        return DiskOptimizedClipboard.create(path, width, height, length)


# ── 底层读取工具 ────────────────────────────────────────────────

def _read_exact(buf: BinaryIO, n: int) -> bytes:
    data = buf.read(n)
    if len(data) != n:
        raise FormatError(f"Unexpected end of FAWE data (wanted {n} bytes, got {len(data)})")
    return data


def _unpack(buf: BinaryIO, fmt: struct.Struct) -> tuple:
    return fmt.unpack(_read_exact(buf, fmt.size))
