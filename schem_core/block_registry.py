"""
BlockRegistry — 世界上下文令牌

宿主世界的方块注册表在这里只保留编解码需要的部分：
- 旧版数字 id ↔ 命名空间方块名 (结构方块格式使用名称调色板)
- 每个 id 的预览颜色 (PNG 等距投影写出器使用)

未知 id 映射为 "minecraft:legacy_<id>"，保证名称往返不丢信息。
"""

from __future__ import annotations

import logging
from typing import Dict, Optional, Tuple

logger = logging.getLogger(__name__)

RGBA = Tuple[int, int, int, int]

LEGACY_PREFIX = "minecraft:legacy_"

# 旧版 id → 方块名
DEFAULT_BLOCK_NAMES: Dict[int, str] = {
    0: "minecraft:air",
    1: "minecraft:stone",
    2: "minecraft:grass_block",
    3: "minecraft:dirt",
    4: "minecraft:cobblestone",
    5: "minecraft:oak_planks",
    7: "minecraft:bedrock",
    8: "minecraft:water",
    10: "minecraft:lava",
    12: "minecraft:sand",
    13: "minecraft:gravel",
    14: "minecraft:gold_ore",
    15: "minecraft:iron_ore",
    16: "minecraft:coal_ore",
    17: "minecraft:oak_log",
    18: "minecraft:oak_leaves",
    20: "minecraft:glass",
    24: "minecraft:sandstone",
    35: "minecraft:white_wool",
    41: "minecraft:gold_block",
    42: "minecraft:iron_block",
    45: "minecraft:bricks",
    46: "minecraft:tnt",
    47: "minecraft:bookshelf",
    48: "minecraft:mossy_cobblestone",
    49: "minecraft:obsidian",
    57: "minecraft:diamond_block",
    79: "minecraft:ice",
    80: "minecraft:snow_block",
    82: "minecraft:clay",
    87: "minecraft:netherrack",
    89: "minecraft:glowstone",
    98: "minecraft:stone_bricks",
    112: "minecraft:nether_bricks",
    121: "minecraft:end_stone",
    133: "minecraft:emerald_block",
    152: "minecraft:redstone_block",
    155: "minecraft:quartz_block",
    159: "minecraft:terracotta",
    173: "minecraft:coal_block",
    201: "minecraft:purpur_block",
    251: "minecraft:white_concrete",
}

# 旧版 id → 预览颜色
DEFAULT_BLOCK_COLORS: Dict[int, RGBA] = {
    1: (125, 125, 125, 255),   # Stone
    2: (118, 179, 76, 255),    # Grass
    3: (134, 96, 67, 255),     # Dirt
    4: (155, 155, 155, 255),   # Cobblestone
    5: (188, 152, 98, 255),    # Oak Planks
    7: (50, 50, 50, 255),      # Bedrock
    8: (64, 64, 255, 128),     # Water
    10: (255, 128, 0, 255),    # Lava
    12: (219, 211, 160, 255),  # Sand
    13: (128, 128, 128, 255),  # Gravel
    17: (102, 81, 51, 255),    # Oak Log
    18: (60, 192, 41, 255),    # Oak Leaves
    20: (200, 220, 255, 80),   # Glass
    24: (194, 178, 128, 255),  # Sandstone
    35: (221, 221, 221, 255),  # White Wool
    41: (255, 230, 70, 255),   # Gold Block
    42: (220, 220, 220, 255),  # Iron Block
    45: (155, 105, 95, 255),   # Brick
    46: (200, 50, 50, 255),    # TNT
    49: (30, 20, 40, 255),     # Obsidian
    57: (120, 225, 240, 255),  # Diamond Block
    79: (140, 180, 255, 200),  # Ice
    80: (250, 250, 255, 255),  # Snow Block
    87: (130, 60, 60, 255),    # Netherrack
    89: (220, 180, 50, 255),   # Glowstone
    98: (90, 90, 90, 255),     # Stone Bricks
    112: (55, 30, 35, 255),    # Nether Brick
    121: (225, 225, 200, 255), # End Stone
    133: (75, 220, 115, 255),  # Emerald Block
    152: (175, 35, 25, 255),   # Redstone Block
    155: (235, 230, 220, 255), # Quartz Block
    159: (200, 180, 165, 255), # Terracotta
    173: (20, 20, 20, 255),    # Coal Block
    201: (190, 105, 190, 255), # Purpur Block
    251: (255, 255, 255, 255), # White Concrete
}

FALLBACK_COLOR: RGBA = (255, 0, 255, 255)


class BlockRegistry:
    """
    方块 id / 名称 / 颜色查询表

    Usage::

        registry = BlockRegistry.default()
        registry.name_of(1)                       # -> "minecraft:stone"
        registry.id_of("minecraft:stone")          # -> 1
        registry.id_of("minecraft:legacy_200")     # -> 200
    """

    _default: Optional["BlockRegistry"] = None

    def __init__(
        self,
        names: Optional[Dict[int, str]] = None,
        colors: Optional[Dict[int, RGBA]] = None,
        world_name: str = "world",
    ) -> None:
        self.world_name = world_name
        self._names: Dict[int, str] = dict(DEFAULT_BLOCK_NAMES if names is None else names)
        self._ids: Dict[str, int] = {name: bid for bid, name in self._names.items()}
        self._colors: Dict[int, RGBA] = dict(DEFAULT_BLOCK_COLORS if colors is None else colors)

    @classmethod
    def default(cls) -> "BlockRegistry":
        """进程内共享的默认注册表 (宿主未提供世界时使用)"""
        if cls._default is None:
            cls._default = cls()
        return cls._default

    def name_of(self, block_id: int) -> str:
        return self._names.get(block_id, f"{LEGACY_PREFIX}{block_id}")

    def id_of(self, name: str) -> int:
        if name in self._ids:
            return self._ids[name]
        if name.startswith(LEGACY_PREFIX):
            suffix = name[len(LEGACY_PREFIX):]
            if suffix.isdigit() and int(suffix) < 256:
                return int(suffix)
        raise KeyError(f"Unknown block name: {name}")

    def color_of(self, block_id: int) -> RGBA:
        return self._colors.get(block_id, FALLBACK_COLOR)

    def __repr__(self) -> str:
        return f"BlockRegistry(world={self.world_name!r}, names={len(self._names)})"
