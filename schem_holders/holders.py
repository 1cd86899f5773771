"""
剪贴板持有者

- ClipboardHolder: URI + 已解码的剪贴板
- LazyClipboardHolder: URI + 字节源 + 格式 + 世界上下文，首次访问时解码
- MultiClipboardHolder: 同一发现来源 (目录 / 压缩包) 下的有序持有者列表

LazyClipboardHolder 状态机:
    UNRESOLVED → RESOLVING → RESOLVED
                           ↘ FAILED → (重试) RESOLVING
每个持有者一把锁，同一时间只执行一次解码；并发访问者等待并拿到缓存结果。
"""

from __future__ import annotations

import logging
import threading
from enum import Enum
from typing import BinaryIO, Iterator, List, Optional

from schem_core.block_registry import BlockRegistry
from schem_core.byte_source import ByteSource
from schem_core.clipboard import Clipboard
from schem_io.clipboard_format import ClipboardFormat

logger = logging.getLogger(__name__)


class HolderState(Enum):
    UNRESOLVED = "unresolved"
    RESOLVING = "resolving"
    RESOLVED = "resolved"
    FAILED = "failed"


class ClipboardHolder:
    """URI 与已解码剪贴板的绑定"""

    def __init__(
        self,
        uri: str,
        clipboard: Optional[Clipboard] = None,
        context: Optional[BlockRegistry] = None,
    ) -> None:
        self.uri = uri
        self.context = context
        self._clipboard = clipboard

    def get_clipboard(self) -> Clipboard:
        if self._clipboard is None:
            raise ValueError(f"No clipboard held for {self.uri}")
        return self._clipboard

    def contains(self, uri: str) -> bool:
        return self.uri == uri

    def close(self) -> None:
        self._clipboard = None

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.uri!r})"


class LazyClipboardHolder(ClipboardHolder):
    """
    延迟解码的持有者

    Usage::

        holder = LazyClipboardHolder(uri, FileSource(path), SCHEMATIC)
        holder.state                 # -> HolderState.UNRESOLVED
        clip = holder.get_clipboard()
        holder.state                 # -> HolderState.RESOLVED
    """

    def __init__(
        self,
        uri: str,
        source: ByteSource,
        fmt: ClipboardFormat,
        context: Optional[BlockRegistry] = None,
    ) -> None:
        super().__init__(uri, None, context)
        self.source = source
        self.format = fmt
        self._lock = threading.Lock()
        self._state = HolderState.UNRESOLVED
        self.last_error: Optional[BaseException] = None

    @property
    def state(self) -> HolderState:
        return self._state

    @property
    def is_resolved(self) -> bool:
        return self._state is HolderState.RESOLVED

    def get_clipboard(self) -> Clipboard:
        clipboard = self._clipboard
        if clipboard is not None:
            return clipboard
        with self._lock:
            # 等锁期间可能已被其他线程解码
            if self._clipboard is not None:
                return self._clipboard
            self._state = HolderState.RESOLVING
            try:
                clipboard = self._decode()
            except BaseException as exc:
                self._state = HolderState.FAILED
                self.last_error = exc
                logger.warning("Failed to load %s as %s: %s", self.uri, self.format.name, exc)
                raise
            self._clipboard = clipboard
            self.last_error = None
            self._state = HolderState.RESOLVED
            return clipboard

    def _decode(self) -> Clipboard:
        context = self.context
        if self.format.requires_context and context is None:
            context = BlockRegistry.default()
        clipboard = self.format.read_clipboard(self.source.open_stream(), context)
        logger.debug("Resolved %s: %r", self.uri, clipboard)
        return clipboard

    def close(self) -> None:
        """丢弃缓存，下次访问重新解码"""
        with self._lock:
            self._clipboard = None
            self._state = HolderState.UNRESOLVED


class MultiClipboardHolder(ClipboardHolder):
    """
    同一来源的多个持有者，只追加。

    空集合是合法状态；"找不到" 由发现流程以 NotFoundError 表达。
    """

    def __init__(
        self,
        uri: str,
        context: Optional[BlockRegistry] = None,
        holders: Optional[List[ClipboardHolder]] = None,
    ) -> None:
        super().__init__(uri, None, context)
        self._holders: List[ClipboardHolder] = list(holders or [])

    def add(self, holder: ClipboardHolder) -> None:
        self._holders.append(holder)

    @property
    def holders(self) -> List[ClipboardHolder]:
        return list(self._holders)

    def get_clipboards(self) -> List[Clipboard]:
        """解码并返回全部剪贴板"""
        return [h.get_clipboard() for h in self._holders]

    def get_clipboard(self) -> Clipboard:
        """单个剪贴板时返回它，否则报错"""
        if len(self._holders) != 1:
            raise ValueError(f"{self.uri} holds {len(self._holders)} clipboards, expected exactly one")
        return self._holders[0].get_clipboard()

    def contains(self, uri: str) -> bool:
        return self.uri == uri or any(h.contains(uri) for h in self._holders)

    def close(self) -> None:
        for h in self._holders:
            h.close()

    def __len__(self) -> int:
        return len(self._holders)

    def __iter__(self) -> Iterator[ClipboardHolder]:
        return iter(list(self._holders))

    def __repr__(self) -> str:
        return f"MultiClipboardHolder({self.uri!r}, holders={len(self._holders)})"


def hold(
    fmt: ClipboardFormat,
    uri: str,
    stream: BinaryIO,
    context: Optional[BlockRegistry] = None,
) -> ClipboardHolder:
    """立即解码 stream 并返回持有者"""
    if fmt.requires_context and context is None:
        context = BlockRegistry.default()
    clipboard = fmt.read_clipboard(stream, context)
    return ClipboardHolder(uri, clipboard, context)
