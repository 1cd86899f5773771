"""SchemForge core — 剪贴板数据模型包"""

from schem_core.block_registry import BlockRegistry
from schem_core.byte_source import ByteSource, BytesSource, FileSource
from schem_core.byte_streamer import block_histogram, stream_block_ids, stream_payload_ids
from schem_core.clipboard import BlockChange, Clipboard
from schem_core.errors import (
    DuplicateAliasError,
    FormatError,
    NotFoundError,
    SchematicError,
    UnauthorizedError,
    UnsupportedOperationError,
)
from schem_core.schematic import Schematic

__all__ = [
    "BlockRegistry",
    "ByteSource",
    "BytesSource",
    "FileSource",
    "block_histogram",
    "stream_block_ids",
    "stream_payload_ids",
    "BlockChange",
    "Clipboard",
    "DuplicateAliasError",
    "FormatError",
    "NotFoundError",
    "SchematicError",
    "UnauthorizedError",
    "UnsupportedOperationError",
    "Schematic",
]
