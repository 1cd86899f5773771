"""
字节源 — 可重复打开的只读字节流

LazyClipboardHolder 只保存字节源，解码时才调用 open_stream()。
"""

from __future__ import annotations

import io
from pathlib import Path
from typing import BinaryIO


class ByteSource:
    """字节源基类"""

    def open_stream(self) -> BinaryIO:
        raise NotImplementedError

    def size(self) -> int:
        raise NotImplementedError

    def read(self) -> bytes:
        with self.open_stream() as f:
            return f.read()


class FileSource(ByteSource):
    """文件字节源"""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def open_stream(self) -> BinaryIO:
        return open(self.path, "rb")

    def size(self) -> int:
        return self.path.stat().st_size

    def __repr__(self) -> str:
        return f"FileSource({str(self.path)!r})"


class BytesSource(ByteSource):
    """内存字节源 (压缩包条目解压后使用)"""

    def __init__(self, payload: bytes) -> None:
        self._payload = bytes(payload)

    def open_stream(self) -> BinaryIO:
        return io.BytesIO(self._payload)

    def size(self) -> int:
        return len(self._payload)

    def read(self) -> bytes:
        return self._payload

    def __repr__(self) -> str:
        return f"BytesSource({len(self._payload)} bytes)"
