"""
字节流遍历器 — 逐单元回调方块 id，不复制整个体积

遍历顺序固定为光栅顺序 (x 最快，然后 y，最后 z)，
与 FAWE 格式的平铺载荷和变更日志的坐标约定一致。
"""

from __future__ import annotations

import logging
from typing import BinaryIO, Callable

import numpy as np

from schem_core.clipboard import Clipboard

logger = logging.getLogger(__name__)

ByteVisitor = Callable[[int, int], None]

DEFAULT_CHUNK_SIZE = 4096


def stream_block_ids(
    clipboard: Clipboard,
    visitor: ByteVisitor,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> int:
    """
    对每个单元调用 visitor(index, block_id_byte)。

    Returns
    -------
    int: 访问的单元数
    """
    flat = clipboard.flat_ids()
    total = flat.shape[0]
    for start in range(0, total, chunk_size):
        chunk = flat[start:start + chunk_size].tolist()
        for i, value in enumerate(chunk):
            visitor(start + i, value)
    return total


def stream_payload_ids(
    stream: BinaryIO,
    cell_count: int,
    visitor: ByteVisitor,
    entry_size: int = 2,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> int:
    """
    遍历未压缩 FAWE 平铺载荷中的 id 字节 (每个条目首字节)。

    stream 需定位在载荷起点；每次只读取 chunk_size 个条目。
    """
    index = 0
    while index < cell_count:
        n = min(chunk_size, cell_count - index)
        raw = stream.read(n * entry_size)
        if len(raw) != n * entry_size:
            raise EOFError(f"Payload truncated at cell {index + len(raw) // entry_size} of {cell_count}")
        for value in raw[::entry_size]:
            visitor(index, value)
            index += 1
    return index


def block_histogram(clipboard: Clipboard) -> np.ndarray:
    """通过 stream_block_ids 统计 256 个 id 桶的频次"""
    counts = np.zeros(256, dtype=np.int64)

    def visit(_index: int, value: int) -> None:
        counts[value] += 1

    stream_block_ids(clipboard, visit)
    return counts
