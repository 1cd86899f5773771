"""
流式 ZIP 读取 — 边下载边解压，不需要 seek 到中央目录

依次解析本地文件头 (PK\\x03\\x04)，遇到中央目录 (PK\\x01\\x02)
或目录结尾 (PK\\x05\\x06) 即停止。

支持: STORED / DEFLATED，带或不带数据描述符 (标志位 3)。
不支持: 加密条目、ZIP64、其他压缩方法。
"""

from __future__ import annotations

import logging
import struct
import zlib
from dataclasses import dataclass
from typing import BinaryIO, Callable, Iterator, Optional

from schem_core.errors import FormatError

logger = logging.getLogger(__name__)

LOCAL_FILE_HEADER = b"PK\x03\x04"
CENTRAL_DIRECTORY = b"PK\x01\x02"
END_OF_CENTRAL_DIRECTORY = b"PK\x05\x06"
DATA_DESCRIPTOR = b"PK\x07\x08"

# version, flags, method, time, date, crc32, compressed, uncompressed, name_len, extra_len
_LOCAL_HEADER = struct.Struct("<HHHHHIIIHH")

FLAG_ENCRYPTED = 1 << 0
FLAG_DATA_DESCRIPTOR = 1 << 3
FLAG_UTF8 = 1 << 11

METHOD_STORED = 0
METHOD_DEFLATED = 8

CHUNK_SIZE = 8192


class ZipStreamError(FormatError):
    """压缩包结构损坏或使用了不支持的特性"""


@dataclass
class ZipEntry:
    """一个已读出的压缩包条目"""
    name: str
    data: bytes


class _PushbackReader:
    """支持把多读的字节退回的读取器"""

    def __init__(self, raw: BinaryIO) -> None:
        self._raw = raw
        self._buf = bytearray()

    def read(self, n: int) -> bytes:
        while len(self._buf) < n:
            chunk = self._raw.read(max(n - len(self._buf), CHUNK_SIZE))
            if not chunk:
                break
            self._buf.extend(chunk)
        data = bytes(self._buf[:n])
        del self._buf[:n]
        return data

    def read_some(self, n: int = CHUNK_SIZE) -> bytes:
        if self._buf:
            data = bytes(self._buf[:n])
            del self._buf[:n]
            return data
        return self._raw.read(n)

    def unread(self, data: bytes) -> None:
        self._buf[:0] = data


class ZipStreamReader:
    """
    Usage::

        with urlopen(url) as resp:
            for entry in ZipStreamReader(resp).entries(lambda n: n.endswith(".schematic")):
                holders.append(entry.name, entry.data)
    """

    def __init__(self, stream: BinaryIO) -> None:
        self._reader = _PushbackReader(stream)

    def entries(self, accept: Optional[Callable[[str], bool]] = None) -> Iterator[ZipEntry]:
        """按压缩包顺序产出被 accept 接受的文件条目 (目录条目跳过)"""
        while True:
            signature = self._reader.read(4)
            if not signature or signature in (CENTRAL_DIRECTORY, END_OF_CENTRAL_DIRECTORY):
                return
            if signature != LOCAL_FILE_HEADER:
                raise ZipStreamError(f"Unexpected zip signature {signature!r}")

            header = self._read_exact(_LOCAL_HEADER.size)
            (_version, flags, method, _time, _date,
             crc, compressed_size, _size, name_len, extra_len) = _LOCAL_HEADER.unpack(header)
            raw_name = self._read_exact(name_len)
            self._read_exact(extra_len)
            name = raw_name.decode("utf-8" if flags & FLAG_UTF8 else "cp437")

            if flags & FLAG_ENCRYPTED:
                raise ZipStreamError(f"Encrypted zip entry not supported: {name}")
            if compressed_size == 0xFFFFFFFF:
                raise ZipStreamError(f"ZIP64 entry not supported: {name}")

            wanted = not name.endswith("/") and (accept is None or accept(name))
            data = self._read_entry_data(name, flags, method, compressed_size, wanted)

            if flags & FLAG_DATA_DESCRIPTOR:
                crc = self._read_descriptor_crc()
            if wanted:
                if zlib.crc32(data) & 0xFFFFFFFF != crc:
                    raise ZipStreamError(f"CRC mismatch in zip entry: {name}")
                logger.debug("Unzipped entry %s (%d bytes)", name, len(data))
                yield ZipEntry(name, data)

    # ── 内部方法 ────────────────────────────────────────────────

    def _read_exact(self, n: int) -> bytes:
        data = self._reader.read(n)
        if len(data) != n:
            raise ZipStreamError("Zip stream truncated")
        return data

    def _read_entry_data(self, name: str, flags: int, method: int, compressed_size: int, wanted: bool) -> bytes:
        sized = not (flags & FLAG_DATA_DESCRIPTOR) or compressed_size > 0
        if method == METHOD_STORED:
            if not sized:
                raise ZipStreamError(f"Stored entry without size cannot be streamed: {name}")
            return self._read_exact(compressed_size)
        if method != METHOD_DEFLATED:
            raise ZipStreamError(f"Unsupported compression method {method} for {name}")
        if sized and not wanted:
            self._read_exact(compressed_size)
            return b""

        inflater = zlib.decompressobj(-zlib.MAX_WBITS)
        out = bytearray()
        while not inflater.eof:
            chunk = self._reader.read_some()
            if not chunk:
                raise ZipStreamError(f"Zip stream truncated inside {name}")
            try:
                out.extend(inflater.decompress(chunk))
            except zlib.error as exc:
                raise ZipStreamError(f"Corrupt deflate data in {name}") from exc
        self._reader.unread(inflater.unused_data)
        return bytes(out)

    def _read_descriptor_crc(self) -> int:
        head = self._read_exact(4)
        if head == DATA_DESCRIPTOR:
            crc, _, _ = struct.unpack("<III", self._read_exact(12))
            return crc
        (crc,) = struct.unpack("<I", head)
        self._read_exact(8)
        return crc
