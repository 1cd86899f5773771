"""
Clipboard — 剪贴板体积 (稠密方块网格)

核心数据结构：
- ids / data 两个 uint8 numpy 数组，形状 (length, height, width) 即 (Z, Y, X)
- C 顺序展平后，单元 (x, y, z) 的下标为 x + width * (y + height * z)
- origin: 复制时的世界坐标；offset: origin 相对最小角的偏移
- 解码后视为不可变，编辑属于上层
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, Iterator, Optional, Tuple

import numpy as np

logger = logging.getLogger(__name__)

# 类型别名
Coord = Tuple[int, int, int]

AIR = 0


@dataclass(frozen=True)
class BlockChange:
    """增量方块变更记录 (相对剪贴板最小角的坐标)"""
    x: int
    y: int
    z: int
    block_id: int
    data: int = 0


class Clipboard:
    """
    稠密方块剪贴板

    Usage::

        clip = Clipboard(4, 3, 2, origin=(100, 64, -20))
        clip.set_block(1, 2, 0, 35, 14)      # 红色羊毛
        clip.get_block(1, 2, 0)               # -> (35, 14)
        clip.index_of(1, 2, 0)                # -> 9
    """

    def __init__(
        self,
        width: int,
        height: int,
        length: int,
        origin: Coord = (0, 0, 0),
        offset: Coord = (0, 0, 0),
        ids: Optional[np.ndarray] = None,
        data: Optional[np.ndarray] = None,
    ) -> None:
        if width <= 0 or height <= 0 or length <= 0:
            raise ValueError(f"Invalid clipboard dimensions: {width}×{height}×{length}")
        shape = (length, height, width)
        self.width = int(width)
        self.height = int(height)
        self.length = int(length)
        self.origin: Coord = tuple(int(v) for v in origin)
        self.offset: Coord = tuple(int(v) for v in offset)
        self.ids = self._coerce(ids, shape, "ids")
        self.data = self._coerce(data, shape, "data")

    @staticmethod
    def _coerce(arr: Optional[np.ndarray], shape: Tuple[int, int, int], label: str) -> np.ndarray:
        if arr is None:
            return np.zeros(shape, dtype=np.uint8)
        arr = np.ascontiguousarray(arr, dtype=np.uint8)
        if arr.size != shape[0] * shape[1] * shape[2]:
            raise ValueError(f"{label} has {arr.size} cells, expected {shape[0] * shape[1] * shape[2]}")
        return arr.reshape(shape)

    # ── 基本操作 ────────────────────────────────────────────────

    @property
    def dimensions(self) -> Coord:
        """(width_x, height_y, length_z)"""
        return (self.width, self.height, self.length)

    @property
    def volume(self) -> int:
        return self.width * self.height * self.length

    def contains(self, x: int, y: int, z: int) -> bool:
        return 0 <= x < self.width and 0 <= y < self.height and 0 <= z < self.length

    def index_of(self, x: int, y: int, z: int) -> int:
        """光栅下标 x + width * (y + height * z)"""
        if not self.contains(x, y, z):
            raise IndexError(f"({x}, {y}, {z}) outside {self.width}×{self.height}×{self.length}")
        return x + self.width * (y + self.height * z)

    def get_block(self, x: int, y: int, z: int) -> Tuple[int, int]:
        """返回 (block_id, data)"""
        self.index_of(x, y, z)
        return int(self.ids[z, y, x]), int(self.data[z, y, x])

    def set_block(self, x: int, y: int, z: int, block_id: int, data: int = 0) -> None:
        """构建阶段写入方块，解码完成后不应再调用"""
        self.index_of(x, y, z)
        self.ids[z, y, x] = block_id
        self.data[z, y, x] = data & 0xF

    def apply_change(self, change: BlockChange) -> None:
        self.set_block(change.x, change.y, change.z, change.block_id, change.data)

    # ── 批量视图 ────────────────────────────────────────────────

    def flat_ids(self) -> np.ndarray:
        """光栅顺序的 id 视图 (不复制)"""
        return self.ids.reshape(-1)

    def flat_data(self) -> np.ndarray:
        return self.data.reshape(-1)

    def iter_blocks(self, include_air: bool = False) -> Iterator[Tuple[int, int, int, int, int]]:
        """
        按光栅顺序遍历 (x, y, z, id, data)

        默认只跳过 id 与 data 都为 0 的单元；带 data 的空气仍会产出，
        否则稀疏写出时会丢失这部分信息。
        """
        if include_air:
            coords = np.ndindex(self.length, self.height, self.width)
        else:
            coords = (tuple(c) for c in np.argwhere(self._stored_mask()))
        for z, y, x in coords:
            yield int(x), int(y), int(z), int(self.ids[z, y, x]), int(self.data[z, y, x])

    def _stored_mask(self) -> np.ndarray:
        return (self.ids != AIR) | (self.data != 0)

    @property
    def block_count(self) -> int:
        """非空气方块数量"""
        return int(np.count_nonzero(self.ids))

    @property
    def stored_count(self) -> int:
        """iter_blocks() 默认产出的单元数"""
        return int(np.count_nonzero(self._stored_mask()))

    @property
    def minimum_point(self) -> Coord:
        ox, oy, oz = self.origin
        dx, dy, dz = self.offset
        return (ox + dx, oy + dy, oz + dz)

    @property
    def maximum_point(self) -> Coord:
        mx, my, mz = self.minimum_point
        return (mx + self.width - 1, my + self.height - 1, mz + self.length - 1)

    # ── 构造 ────────────────────────────────────────────────────

    @classmethod
    def from_blocks(
        cls,
        blocks: Dict[Coord, Tuple[int, int]],
        origin: Coord = (0, 0, 0),
    ) -> "Clipboard":
        """
        从 {(x, y, z): (id, data)} 字典创建，尺寸取包围盒。

        坐标为世界坐标；返回的剪贴板 offset 指向包围盒最小角。
        """
        if not blocks:
            raise ValueError("Empty block map, nothing to build")
        coords = np.array(list(blocks.keys()), dtype=np.int64)
        bmin = coords.min(axis=0)
        bmax = coords.max(axis=0)
        d = bmax - bmin + 1
        ox, oy, oz = origin
        clip = cls(
            int(d[0]), int(d[1]), int(d[2]),
            origin=origin,
            offset=(int(bmin[0]) - ox, int(bmin[1]) - oy, int(bmin[2]) - oz),
        )
        for (x, y, z), (block_id, data) in blocks.items():
            clip.set_block(x - int(bmin[0]), y - int(bmin[1]), z - int(bmin[2]), block_id, data)
        return clip

    def copy(self) -> "Clipboard":
        return Clipboard(
            self.width, self.height, self.length,
            origin=self.origin, offset=self.offset,
            ids=self.ids.copy(), data=self.data.copy(),
        )

    # ── 统计信息 ────────────────────────────────────────────────

    def block_statistics(self) -> Dict[int, int]:
        """统计各种方块 id 的数量 (不含空气)"""
        stats: Dict[int, int] = defaultdict(int)
        values, counts = np.unique(self.ids, return_counts=True)
        for value, count in zip(values, counts):
            if value != AIR:
                stats[int(value)] += int(count)
        return dict(sorted(stats.items(), key=lambda x: -x[1]))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Clipboard):
            return NotImplemented
        return (
            self.dimensions == other.dimensions
            and np.array_equal(self.ids, other.ids)
            and np.array_equal(self.data, other.data)
        )

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return (
            f"Clipboard(size={self.width}×{self.height}×{self.length}, "
            f"blocks={self.block_count}, origin={self.origin})"
        )
