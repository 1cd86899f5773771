"""
旧版 Schematic 格式 (MCEdit / WorldEdit .schematic)

Schematic (Compound, gzip 压缩)
├── Width / Height / Length (Short)
├── Materials: "Alpha" (String)
├── Blocks (Byte Array)   — 下标 (y * Length + z) * Width + x
├── Data (Byte Array)     — 低 4 位方块数据
├── WEOriginX/Y/Z (Int)
├── WEOffsetX/Y/Z (Int)
├── Entities (List)
└── TileEntities (List)

格式探测读取 gzip 后的第一个标签：类型必须是 TAG_Compound，名称必须是 "Schematic"。
"""

from __future__ import annotations

import gzip
import logging
import struct
import zlib
from pathlib import Path
from typing import BinaryIO, Optional

import numpy as np

from schem_core.block_registry import BlockRegistry
from schem_core.clipboard import Clipboard
from schem_core.errors import FormatError
from schem_io.clipboard_format import ClipboardFormat, ClipboardReader, ClipboardWriter, SourceLike
from schem_io.nbt_codec import (
    NBTDecoder, NBTEncoder,
    TAG_BYTE_ARRAY, TAG_COMPOUND, TAG_INT, TAG_SHORT,
    nbt_byte_array, nbt_int, nbt_list, nbt_short, nbt_string, require,
)
from schem_io.streams import ensure_resettable, is_compressed_sink

logger = logging.getLogger(__name__)

ROOT_NAME = "Schematic"
MAX_DIMENSION = 32767
GZIP_LEVEL = 6


def has_schematic_header(stream: BinaryIO) -> bool:
    """读取 gzip 后的根标签名称并与 "Schematic" 比较 (不关闭 stream)"""
    try:
        with gzip.GzipFile(fileobj=stream, mode="rb") as gz:
            return NBTDecoder.read_root_name(gz) == ROOT_NAME
    except (OSError, EOFError, FormatError, zlib.error, struct.error):
        return False


class SchematicReader(ClipboardReader):
    """构造时立即校验签名，然后回到起点等待 read()"""

    def __init__(self, stream: BinaryIO) -> None:
        stream = ensure_resettable(stream)
        super().__init__(stream)
        try:
            start = stream.tell()
            if not has_schematic_header(stream):
                raise FormatError("Not a schematic: root tag is not 'Schematic'")
            stream.seek(start)
            self._gzip = self._own(gzip.GzipFile(fileobj=stream, mode="rb"))
        except BaseException:
            self.close()
            raise

    def read(self, context: Optional[BlockRegistry] = None) -> Clipboard:
        _, root = NBTDecoder.read_root(self._gzip)

        width = require(root, "Width", TAG_SHORT)
        height = require(root, "Height", TAG_SHORT)
        length = require(root, "Length", TAG_SHORT)
        if width <= 0 or height <= 0 or length <= 0:
            raise FormatError(f"Invalid schematic dimensions: {width}×{height}×{length}")

        volume = width * height * length
        blocks = require(root, "Blocks", TAG_BYTE_ARRAY)
        if len(blocks) != volume:
            raise FormatError(f"Blocks has {len(blocks)} entries, expected {volume}")
        add_blocks = root.get("AddBlocks")
        if add_blocks is not None and any(add_blocks.value):
            raise FormatError("Block ids above 255 (AddBlocks) are not supported")

        if "Data" in root:
            data = require(root, "Data", TAG_BYTE_ARRAY)
            if len(data) != volume:
                raise FormatError(f"Data has {len(data)} entries, expected {volume}")
        else:
            data = bytes(volume)

        # 旧版顺序 (Y, Z, X) → 内部顺序 (Z, Y, X)
        ids = np.frombuffer(blocks, dtype=np.uint8).reshape(height, length, width).transpose(1, 0, 2)
        meta = np.frombuffer(data, dtype=np.uint8).reshape(height, length, width).transpose(1, 0, 2) & 0xF

        origin = tuple(_optional_int(root, f"WEOrigin{axis}") for axis in "XYZ")
        offset = tuple(_optional_int(root, f"WEOffset{axis}") for axis in "XYZ")

        clipboard = Clipboard(width, height, length, origin=origin, offset=offset, ids=ids, data=meta)
        logger.debug("Decoded schematic %d×%d×%d", width, height, length)
        return clipboard


class SchematicWriter(ClipboardWriter):
    """已经是 gzip 流时不再包一层压缩"""

    def __init__(self, stream: BinaryIO, compresslevel: int = GZIP_LEVEL) -> None:
        super().__init__(stream)
        if is_compressed_sink(stream):
            self._out = stream
        else:
            self._out = self._own(gzip.GzipFile(fileobj=stream, mode="wb", compresslevel=compresslevel))

    def write(self, clipboard: Clipboard, context: Optional[BlockRegistry] = None) -> None:
        width, height, length = clipboard.dimensions
        if width > MAX_DIMENSION or height > MAX_DIMENSION or length > MAX_DIMENSION:
            raise FormatError(f"Dimensions exceed Short limit: {width}×{height}×{length}")

        # 内部顺序 (Z, Y, X) → 旧版顺序 (Y, Z, X)
        blocks = clipboard.ids.transpose(1, 0, 2).tobytes()
        data = clipboard.data.transpose(1, 0, 2).tobytes()
        ox, oy, oz = clipboard.origin
        dx, dy, dz = clipboard.offset

        root_tags = {
            "Width": nbt_short(width),
            "Height": nbt_short(height),
            "Length": nbt_short(length),
            "Materials": nbt_string("Alpha"),
            "WEOriginX": nbt_int(ox),
            "WEOriginY": nbt_int(oy),
            "WEOriginZ": nbt_int(oz),
            "WEOffsetX": nbt_int(dx),
            "WEOffsetY": nbt_int(dy),
            "WEOffsetZ": nbt_int(dz),
            "Blocks": nbt_byte_array(blocks),
            "Data": nbt_byte_array(data),
            "Entities": nbt_list(TAG_COMPOUND, []),
            "TileEntities": nbt_list(TAG_COMPOUND, []),
        }
        NBTEncoder.write_root(self._out, ROOT_NAME, root_tags)
        logger.debug("Encoded schematic %d×%d×%d (%d blocks)", width, height, length, clipboard.block_count)


class SchematicFormat(ClipboardFormat):
    """MCEdit .schematic"""

    def __init__(self) -> None:
        super().__init__(
            "SCHEMATIC",
            aliases=("mcedit", "mce", "schematic"),
            extension="schematic",
            extensions=("schematic", "mce", "mcedit"),
        )

    def get_reader(self, stream: BinaryIO) -> SchematicReader:
        return SchematicReader(stream)

    def get_writer(self, stream: BinaryIO) -> SchematicWriter:
        return SchematicWriter(stream)

    def is_format(self, source: SourceLike) -> bool:
        """只看文件头，不看后缀"""
        if isinstance(source, (str, Path)):
            try:
                with open(source, "rb") as f:
                    return has_schematic_header(f)
            except OSError:
                return False
        try:
            start = source.tell()
        except (OSError, ValueError, AttributeError):
            return False
        try:
            return has_schematic_header(source)
        finally:
            source.seek(start)


def _optional_int(root, key: str) -> int:
    tag = root.get(key)
    if tag is None:
        return 0
    if tag.tag_type != TAG_INT:
        raise FormatError(f"NBT field {key} has type {tag.tag_type}, expected {TAG_INT}")
    return tag.value
