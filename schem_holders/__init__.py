"""SchemForge schem_holders — 剪贴板持有者与加载流程"""

from schem_holders.discovery import load_all_from_directory, load_all_from_url
from schem_holders.holders import (
    ClipboardHolder,
    HolderState,
    LazyClipboardHolder,
    MultiClipboardHolder,
    hold,
)
from schem_holders.input_resolver import ClipboardLoader, load_schematic

__all__ = [
    "load_all_from_directory",
    "load_all_from_url",
    "ClipboardHolder",
    "HolderState",
    "LazyClipboardHolder",
    "MultiClipboardHolder",
    "hold",
    "ClipboardLoader",
    "load_schematic",
]
