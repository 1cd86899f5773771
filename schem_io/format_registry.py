"""
FormatRegistry — 进程级格式注册表

- 格式列表只追加不删除，注册顺序即探测顺序
- 别名表按格式整批发布：写入方在锁内复制并替换引用，
  读取方不加锁，永远看不到只插入了一半的别名集合
- 内置格式顺序: SCHEMATIC, STRUCTURE, PNG, FAWE
  (.nbt 文件如果带有 "Schematic" 文件头，会先被 SCHEMATIC 认领)
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from schem_core.errors import DuplicateAliasError
from schem_io.clipboard_format import ClipboardFormat, SourceLike

logger = logging.getLogger(__name__)


class FormatRegistry:
    """
    Usage::

        registry = FormatRegistry()
        registry.register(SchematicFormat())
        registry.lookup_by_alias(" MCEdit ")     # -> SCHEMATIC
        registry.detect("house.nbt")             # -> 第一个认领该文件的格式
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._formats: Tuple[ClipboardFormat, ...] = ()
        self._aliases: Dict[str, ClipboardFormat] = {}

    # ── 注册 ────────────────────────────────────────────────────

    def register(self, fmt: ClipboardFormat) -> ClipboardFormat:
        """注册格式；任一别名已属于其他格式时抛出 DuplicateAliasError"""
        with self._lock:
            for alias in fmt.aliases:
                existing = self._aliases.get(alias)
                if existing is not None and existing is not fmt:
                    raise DuplicateAliasError(alias, existing.name, fmt.name)
            self._publish(fmt, fmt.aliases)
        logger.debug("Registered format %s (aliases: %s)", fmt.name, ", ".join(fmt.aliases))
        return fmt

    def add_format(self, fmt: ClipboardFormat) -> ClipboardFormat:
        """
        运行时动态注册。

        冲突的别名记录警告后跳过，其余别名照常注册；
        所有别名都冲突时不注册，返回第一个别名的现有所有者。
        """
        with self._lock:
            free: List[str] = []
            for alias in fmt.aliases:
                existing = self._aliases.get(alias)
                if existing is not None and existing is not fmt:
                    logger.warning(
                        "Alias %r already registered to %s, skipping for %s",
                        alias, existing.name, fmt.name,
                    )
                else:
                    free.append(alias)
            if fmt.aliases and not free:
                return self._aliases[fmt.aliases[0]]
            self._publish(fmt, tuple(free))
        logger.info("Added format %s", fmt.name)
        return fmt

    def _publish(self, fmt: ClipboardFormat, aliases: Tuple[str, ...]) -> None:
        """在锁内调用：复制后整体替换"""
        aliases_map = dict(self._aliases)
        for alias in aliases:
            aliases_map[alias] = fmt
        if fmt not in self._formats:
            self._formats = self._formats + (fmt,)
        self._aliases = aliases_map

    # ── 查询 (无锁) ─────────────────────────────────────────────

    def lookup_by_alias(self, text: str) -> Optional[ClipboardFormat]:
        if text is None:
            raise TypeError("alias must not be None")
        return self._aliases.get(text.strip().lower())

    def find_by_extension(self, name_or_ext: str) -> Optional[ClipboardFormat]:
        """按后缀查找 (接受 "fawe"、".fawe" 或 "castle.fawe")"""
        ext = Path(name_or_ext).suffix if "." in name_or_ext.strip(".") else name_or_ext
        ext = ext.lower().lstrip(".")
        for fmt in self._formats:
            if ext in fmt.extensions:
                return fmt
        return None

    def detect(self, source: SourceLike) -> Optional[ClipboardFormat]:
        """按注册顺序依次调用 is_format，第一个匹配的获胜"""
        for fmt in self._formats:
            if fmt.is_format(source):
                return fmt
        return None

    def formats(self) -> Tuple[ClipboardFormat, ...]:
        return self._formats

    def aliases(self) -> Dict[str, ClipboardFormat]:
        return dict(self._aliases)

    def __len__(self) -> int:
        return len(self._formats)

    def __iter__(self):
        return iter(self._formats)


# ── 进程级默认注册表 ────────────────────────────────────────────

_registry: Optional[FormatRegistry] = None
_registry_lock = threading.Lock()


def get_registry() -> FormatRegistry:
    """首次调用时注册内置格式 (只执行一次)"""
    global _registry
    if _registry is None:
        with _registry_lock:
            if _registry is None:
                from schem_io import builtin_formats
                registry = FormatRegistry()
                for fmt in builtin_formats():
                    registry.register(fmt)
                _registry = registry
    return _registry


def find_by_alias(alias: str) -> Optional[ClipboardFormat]:
    return get_registry().lookup_by_alias(alias)


def find_by_file(source: SourceLike) -> Optional[ClipboardFormat]:
    return get_registry().detect(source)


def add_format(fmt: ClipboardFormat) -> ClipboardFormat:
    return get_registry().add_format(fmt)
