"""SchemForge schem_io — 剪贴板格式与编解码包

内置格式 (注册顺序即探测顺序):
    SCHEMATIC — MCEdit .schematic
    STRUCTURE — 结构方块 .nbt
    PNG       — 等距投影图片 (只写)
    FAWE      — 流式压缩自定义格式 .fawe / .bd
"""

from schem_io.clipboard_format import ClipboardFormat, ClipboardReader, ClipboardWriter
from schem_io.compact_format import FaweFormat
from schem_io.format_registry import (
    FormatRegistry,
    add_format,
    find_by_alias,
    find_by_file,
    get_registry,
)
from schem_io.png_writer import PngFormat
from schem_io.schematic_format import SchematicFormat
from schem_io.structure_format import StructureFormat

SCHEMATIC = SchematicFormat()
STRUCTURE = StructureFormat()
PNG = PngFormat()
FAWE = FaweFormat()


def builtin_formats():
    return (SCHEMATIC, STRUCTURE, PNG, FAWE)


__all__ = [
    "ClipboardFormat",
    "ClipboardReader",
    "ClipboardWriter",
    "FormatRegistry",
    "add_format",
    "find_by_alias",
    "find_by_file",
    "get_registry",
    "SCHEMATIC",
    "STRUCTURE",
    "PNG",
    "FAWE",
    "builtin_formats",
]
