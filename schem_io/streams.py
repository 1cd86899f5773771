"""
流工具 — 可重置输入、压缩输出、压缩汇检测

- ResettableInput: 为不可 seek 的输入缓存已读字节，允许回到偏移 0 重新嗅探
- DeflateSink / InflateInput: zlib 压缩输出 / 解压输入包装，都不关闭下层流
- is_compressed_sink: 双重压缩保护的判定
- CaptureBuffer: 关闭时保留内容的 BytesIO (to_bytes 使用)
"""

from __future__ import annotations

import gzip
import io
import logging
import zlib
from typing import BinaryIO, Optional

from schem_core.errors import FormatError

logger = logging.getLogger(__name__)


class ResettableInput(io.BufferedIOBase):
    """
    不可 seek 输入流的可回退包装。

    读过的字节全部缓存在内存里，seek() 可以回到任何已读位置；
    向前 seek 会从下层流继续读取。
    """

    def __init__(self, raw: BinaryIO) -> None:
        super().__init__()
        self._raw = raw
        self._buffer = bytearray()
        self._pos = 0
        self._eof = False

    def readable(self) -> bool:
        return True

    def seekable(self) -> bool:
        return True

    def tell(self) -> int:
        return self._pos

    def _fill(self, upto: Optional[int]) -> None:
        while not self._eof and (upto is None or len(self._buffer) < upto):
            want = 65536 if upto is None else max(upto - len(self._buffer), 8192)
            chunk = self._raw.read(want)
            if not chunk:
                self._eof = True
                break
            self._buffer.extend(chunk)

    def read(self, size: Optional[int] = -1) -> bytes:
        if self.closed:
            raise ValueError("I/O operation on closed stream")
        if size is None or size < 0:
            self._fill(None)
            end = len(self._buffer)
        else:
            self._fill(self._pos + size)
            end = min(self._pos + size, len(self._buffer))
        data = bytes(self._buffer[self._pos:end])
        self._pos = end
        return data

    def read1(self, size: int = -1) -> bytes:
        return self.read(size)

    def readinto(self, b) -> int:
        data = self.read(len(b))
        b[:len(data)] = data
        return len(data)

    def seek(self, offset: int, whence: int = io.SEEK_SET) -> int:
        if whence == io.SEEK_SET:
            target = offset
        elif whence == io.SEEK_CUR:
            target = self._pos + offset
        else:
            self._fill(None)
            target = len(self._buffer) + offset
        if target < 0:
            raise ValueError(f"Negative seek position {target}")
        self._fill(target)
        self._pos = min(target, len(self._buffer))
        return self._pos

    def close(self) -> None:
        if not self.closed:
            try:
                self._raw.close()
            finally:
                super().close()


def ensure_resettable(stream: BinaryIO) -> BinaryIO:
    """可 seek 的流原样返回，否则包装为 ResettableInput"""
    try:
        if stream.seekable():
            return stream
    except (AttributeError, ValueError):
        pass
    return ResettableInput(stream)


class DeflateSink(io.RawIOBase):
    """
    zlib 压缩输出包装。

    close() 刷新压缩器的剩余输出，但不关闭下层流；
    下层流由写出器的关闭栈在之后关闭。
    """

    def __init__(self, raw: BinaryIO, level: int = 8) -> None:
        super().__init__()
        self._raw = raw
        self._compressor = zlib.compressobj(level)
        self.level = level

    def writable(self) -> bool:
        return True

    def write(self, b) -> int:
        if self.closed:
            raise ValueError("write to closed DeflateSink")
        data = bytes(b)
        self._raw.write(self._compressor.compress(data))
        return len(data)

    def close(self) -> None:
        if not self.closed:
            try:
                self._raw.write(self._compressor.flush())
                self._raw.flush()
            finally:
                super().close()


class InflateInput(io.BufferedIOBase):
    """
    zlib 解压输入包装，按需解压。

    close() 不关闭下层流。
    """

    def __init__(self, raw: BinaryIO, chunk_size: int = 65536) -> None:
        super().__init__()
        self._raw = raw
        self._decompressor = zlib.decompressobj()
        self._pending = bytearray()
        self._chunk_size = chunk_size

    def readable(self) -> bool:
        return True

    def _inflate_more(self) -> bool:
        if self._decompressor.eof:
            return False
        chunk = self._raw.read(self._chunk_size)
        try:
            if not chunk:
                self._pending.extend(self._decompressor.flush())
            else:
                self._pending.extend(self._decompressor.decompress(chunk))
        except zlib.error as exc:
            raise FormatError(f"Corrupt compressed data: {exc}") from exc
        if not chunk:
            if not self._decompressor.eof:
                raise FormatError("Compressed stream ended before the end-of-stream marker")
            return False
        return True

    def read(self, size: Optional[int] = -1) -> bytes:
        if self.closed:
            raise ValueError("I/O operation on closed stream")
        if size is None or size < 0:
            while self._inflate_more():
                pass
            size = len(self._pending)
        while len(self._pending) < size and self._inflate_more():
            pass
        data = bytes(self._pending[:size])
        del self._pending[:size]
        return data

    def read1(self, size: int = -1) -> bytes:
        return self.read(size)


def is_compressed_sink(stream: BinaryIO) -> bool:
    """输出流本身是否已经是压缩流"""
    return isinstance(stream, (gzip.GzipFile, DeflateSink))


class CaptureBuffer(io.BytesIO):
    """关闭时把内容保存在 value 属性中的 BytesIO"""

    value: bytes = b""

    def close(self) -> None:
        if not self.closed:
            self.value = self.getvalue()
        super().close()
