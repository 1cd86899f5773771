"""
结构方块格式 (.nbt)

"" (Compound, gzip 压缩)
├── DataVersion (Int)
├── author (String)
├── size: [X, Y, Z] (List<Int>)
├── palette (List<Compound>)
│   └── {Name: "minecraft:stone", Properties: {data: "3"}}
├── blocks (List<Compound>)
│   └── {pos: [x, y, z], state: 调色板下标}
└── entities (List<Compound>)

空气不写入 blocks。方块名称通过世界上下文 (BlockRegistry) 与数字 id 互转，
因此读写都需要上下文。格式探测只看文件后缀。
"""

from __future__ import annotations

import gzip
import logging
from typing import BinaryIO, Dict, List, Optional, Tuple

from schem_core.block_registry import BlockRegistry
from schem_core.clipboard import Clipboard
from schem_core.errors import FormatError
from schem_io.clipboard_format import ClipboardFormat, ClipboardReader, ClipboardWriter
from schem_io.nbt_codec import (
    NBTDecoder, NBTEncoder, NBTTag,
    TAG_COMPOUND, TAG_INT, TAG_LIST, TAG_STRING,
    nbt_compound, nbt_int, nbt_list, nbt_string, require,
)
from schem_io.streams import is_compressed_sink

logger = logging.getLogger(__name__)

# MC 1.20.4 data version
DEFAULT_DATA_VERSION = 3700
AUTHOR = "SchemForge"
SKIPPED_BLOCKS = {"minecraft:structure_void"}


class StructureReader(ClipboardReader):
    """签名校验推迟到 read()"""

    def __init__(self, stream: BinaryIO) -> None:
        super().__init__(stream)
        self._gzip: Optional[gzip.GzipFile] = None

    def read(self, context: Optional[BlockRegistry] = None) -> Clipboard:
        registry = context or BlockRegistry.default()
        if self._gzip is None:
            self._gzip = self._own(gzip.GzipFile(fileobj=self.stream, mode="rb"))
        _, root = NBTDecoder.read_root(self._gzip)

        width, height, length = _int_triple(require(root, "size", TAG_LIST), "size")
        if width <= 0 or height <= 0 or length <= 0:
            raise FormatError(f"Invalid structure size: {width}×{height}×{length}")

        palette = [_decode_state(entry, registry) for entry in _compound_list(root, "palette")]

        clipboard = Clipboard(width, height, length)
        for entry in _compound_list(root, "blocks"):
            x, y, z = _int_triple(require(entry, "pos", TAG_LIST), "pos")
            state = require(entry, "state", TAG_INT)
            if not 0 <= state < len(palette):
                raise FormatError(f"Block state {state} outside palette of {len(palette)}")
            if palette[state] is None:
                continue
            if not clipboard.contains(x, y, z):
                raise FormatError(f"Block position ({x}, {y}, {z}) outside structure size")
            block_id, data = palette[state]
            clipboard.set_block(x, y, z, block_id, data)

        logger.debug("Decoded structure %d×%d×%d (%d palette entries)", width, height, length, len(palette))
        return clipboard


class StructureWriter(ClipboardWriter):

    def __init__(self, stream: BinaryIO, data_version: int = DEFAULT_DATA_VERSION) -> None:
        super().__init__(stream)
        self.data_version = data_version
        if is_compressed_sink(stream):
            self._out = stream
        else:
            self._out = self._own(gzip.GzipFile(fileobj=stream, mode="wb"))

    def write(self, clipboard: Clipboard, context: Optional[BlockRegistry] = None) -> None:
        registry = context or BlockRegistry.default()

        palette_map: Dict[Tuple[int, int], int] = {}
        blocks: List[Dict[str, NBTTag]] = []
        for x, y, z, block_id, data in clipboard.iter_blocks():
            key = (block_id, data)
            if key not in palette_map:
                palette_map[key] = len(palette_map)
            blocks.append({
                "pos": nbt_list(TAG_INT, [x, y, z]),
                "state": nbt_int(palette_map[key]),
            })

        palette = []
        for block_id, data in palette_map:
            entry = {"Name": nbt_string(registry.name_of(block_id))}
            if data:
                entry["Properties"] = nbt_compound({"data": nbt_string(str(data))})
            palette.append(entry)

        root_tags = {
            "DataVersion": nbt_int(self.data_version),
            "author": nbt_string(AUTHOR),
            "size": nbt_list(TAG_INT, list(clipboard.dimensions)),
            "palette": nbt_list(TAG_COMPOUND, palette),
            "blocks": nbt_list(TAG_COMPOUND, blocks),
            "entities": nbt_list(TAG_COMPOUND, []),
        }
        NBTEncoder.write_root(self._out, "", root_tags)
        logger.debug("Encoded structure: %d blocks, %d palette entries", len(blocks), len(palette))


class StructureFormat(ClipboardFormat):
    """原版结构方块 .nbt"""

    def __init__(self) -> None:
        super().__init__(
            "STRUCTURE",
            aliases=("structure", "nbt"),
            extension="nbt",
            extensions=("nbt", "structure"),
            requires_context=True,
        )

    def get_reader(self, stream: BinaryIO) -> StructureReader:
        return StructureReader(stream)

    def get_writer(self, stream: BinaryIO) -> StructureWriter:
        return StructureWriter(stream)


# ── 解码工具 ────────────────────────────────────────────────────

def _compound_list(root: Dict[str, NBTTag], key: str) -> list:
    elem_type, elements = require(root, key, TAG_LIST)
    if elements and elem_type != TAG_COMPOUND:
        raise FormatError(f"{key} must be a list of compounds")
    return elements


def _int_triple(value, label: str) -> Tuple[int, int, int]:
    elem_type, elements = value
    if elem_type != TAG_INT or len(elements) != 3:
        raise FormatError(f"{label} must be a list of 3 ints")
    return elements[0], elements[1], elements[2]


def _decode_state(entry: Dict[str, NBTTag], registry: BlockRegistry) -> Optional[Tuple[int, int]]:
    name = require(entry, "Name", TAG_STRING)
    if name in SKIPPED_BLOCKS:
        return None
    try:
        block_id = registry.id_of(name)
    except KeyError as exc:
        raise FormatError(f"Unknown block in palette: {name}") from exc
    data = 0
    props = entry.get("Properties")
    if props is not None and props.tag_type == TAG_COMPOUND and "data" in props.value:
        raw = props.value["data"].value
        if not str(raw).isdigit():
            raise FormatError(f"Invalid data property {raw!r} for {name}")
        data = int(raw) & 0xF
    return block_id, data
