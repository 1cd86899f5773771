"""
剪贴板格式基类 — 格式身份 + 读写器工厂

每种格式是一个无状态对象：
- 身份: name / aliases / extension / extensions
- 能力: requires_context (完整解码需要世界上下文)、readable
- 工厂: get_reader(stream) / get_writer(stream) 每次返回新的读写器
- 探测: is_format(path 或已打开的二进制句柄)

读写器拥有传入的流，close() 按包装顺序的逆序关闭
(压缩层先刷新，传输层后关闭)，写入失败时同样执行。
"""

from __future__ import annotations

import logging
from contextlib import ExitStack
from pathlib import Path
from typing import Any, BinaryIO, Optional, Tuple, Union

from schem_core.block_registry import BlockRegistry
from schem_core.clipboard import Clipboard
from schem_core.errors import UnsupportedOperationError
from schem_core.schematic import Schematic
from schem_io.streams import CaptureBuffer

logger = logging.getLogger(__name__)

SourceLike = Union[str, Path, BinaryIO]


class _StreamOwner:
    """持有关闭栈的读写器公共部分"""

    def __init__(self, stream: BinaryIO) -> None:
        self._stack = ExitStack()
        # 传输流最先入栈，最后关闭
        self._stack.callback(stream.close)
        self.stream = stream

    def _own(self, wrapper: Any) -> Any:
        """登记一个包装流，关闭时先于已登记的流关闭"""
        return self._stack.enter_context(wrapper)

    def close(self) -> None:
        self._stack.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class ClipboardReader(_StreamOwner):
    """读取器基类"""

    def read(self, context: Optional[BlockRegistry] = None) -> Clipboard:
        raise NotImplementedError


class ClipboardWriter(_StreamOwner):
    """写出器基类"""

    def write(self, clipboard: Clipboard, context: Optional[BlockRegistry] = None) -> None:
        raise NotImplementedError


class ClipboardFormat:
    """
    剪贴板格式基类

    Usage::

        fmt = find_by_alias("mcedit")
        with open("house.schematic", "rb") as f:
            clip = fmt.read_clipboard(f)
        data = FAWE.to_bytes(clip)
    """

    def __init__(
        self,
        name: str,
        aliases: Tuple[str, ...],
        extension: str,
        extensions: Optional[Tuple[str, ...]] = None,
        requires_context: bool = False,
    ) -> None:
        self.name = name
        self.aliases: Tuple[str, ...] = tuple(dict.fromkeys(a.strip().lower() for a in aliases))
        self.extension = extension.lower().lstrip(".")
        self.extensions: Tuple[str, ...] = tuple(
            e.lower().lstrip(".") for e in (extensions or (self.extension,))
        )
        self.requires_context = requires_context

    # ── 工厂 ────────────────────────────────────────────────────

    @property
    def readable(self) -> bool:
        return True

    def get_reader(self, stream: BinaryIO) -> ClipboardReader:
        raise UnsupportedOperationError(f"{self.name} does not support reading")

    def get_writer(self, stream: BinaryIO) -> ClipboardWriter:
        raise UnsupportedOperationError(f"{self.name} does not support writing")

    # ── 探测 ────────────────────────────────────────────────────

    def matches_extension(self, source: SourceLike) -> bool:
        name = source_name(source).lower()
        return any(name.endswith("." + ext) for ext in self.extensions)

    def is_format(self, source: SourceLike) -> bool:
        """默认按文件后缀判断"""
        return self.matches_extension(source)

    # ── 便捷方法 ────────────────────────────────────────────────

    def read_clipboard(self, stream: BinaryIO, context: Optional[BlockRegistry] = None) -> Clipboard:
        """读取并关闭流"""
        if self.requires_context and context is None:
            context = BlockRegistry.default()
        try:
            reader = self.get_reader(stream)
        except BaseException:
            stream.close()
            raise
        with reader:
            return reader.read(context)

    def write_clipboard(
        self,
        stream: BinaryIO,
        clipboard: Clipboard,
        context: Optional[BlockRegistry] = None,
    ) -> None:
        """写入并关闭流 (失败时同样关闭)"""
        if self.requires_context and context is None:
            context = BlockRegistry.default()
        try:
            writer = self.get_writer(stream)
        except BaseException:
            stream.close()
            raise
        with writer:
            writer.write(clipboard, context)

    def to_bytes(self, clipboard: Clipboard, context: Optional[BlockRegistry] = None) -> bytes:
        buf = CaptureBuffer()
        self.write_clipboard(buf, clipboard, context)
        return buf.value

    def load(self, source: SourceLike, context: Optional[BlockRegistry] = None) -> Schematic:
        """从路径或流加载为 Schematic"""
        if isinstance(source, (str, Path)):
            path = Path(source)
            clipboard = self.read_clipboard(open(path, "rb"), context)
            logger.info("Loaded %s as %s: %r", path.name, self.name, clipboard)
            return Schematic(clipboard, name=path.stem)
        return Schematic(self.read_clipboard(source, context))

    def __repr__(self) -> str:
        return f"ClipboardFormat({self.name}, aliases={list(self.aliases)})"


def source_name(source: SourceLike) -> str:
    """路径或句柄的文件名 (句柄没有 name 时返回空串)"""
    if isinstance(source, (str, Path)):
        return Path(source).name
    name = getattr(source, "name", "")
    return Path(name).name if isinstance(name, (str, Path)) else ""
