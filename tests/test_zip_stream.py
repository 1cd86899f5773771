"""
测试流式 ZIP 读取
"""

import io
import sys
import zipfile
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


class UnseekableSink:
    """只有 write 的输出，zipfile 会改用数据描述符"""

    def __init__(self) -> None:
        self.buf = bytearray()

    def write(self, b) -> int:
        self.buf.extend(b)
        return len(b)

    def flush(self) -> None:
        pass


def _archive(entries, compression=zipfile.ZIP_DEFLATED) -> bytes:
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", compression) as zf:
        for name, data in entries:
            zf.writestr(name, data)
    return buf.getvalue()


class TestZipStreamReader:

    def test_deflated_entries(self):
        from schem_io.zip_stream import ZipStreamReader
        raw = _archive([("a.schematic", b"A" * 500), ("b.txt", b"hello")])
        entries = list(ZipStreamReader(io.BytesIO(raw)).entries())
        assert [(e.name, e.data) for e in entries] == [("a.schematic", b"A" * 500), ("b.txt", b"hello")]

    def test_stored_entries(self):
        from schem_io.zip_stream import ZipStreamReader
        raw = _archive([("x.fawe", bytes(range(200)))], zipfile.ZIP_STORED)
        (entry,) = ZipStreamReader(io.BytesIO(raw)).entries()
        assert entry.data == bytes(range(200))

    def test_accept_filter(self):
        from schem_io.zip_stream import ZipStreamReader
        raw = _archive([("a.schematic", b"1"), ("readme.md", b"2"), ("sub/c.schematic", b"3")])
        names = [e.name for e in ZipStreamReader(io.BytesIO(raw)).entries(lambda n: n.endswith(".schematic"))]
        assert names == ["a.schematic", "sub/c.schematic"]

    def test_data_descriptor(self):
        from schem_io.zip_stream import ZipStreamReader
        sink = UnseekableSink()
        with zipfile.ZipFile(sink, "w", zipfile.ZIP_DEFLATED) as zf:
            zf.writestr("one.schematic", b"first" * 40)
            zf.writestr("two.schematic", b"second" * 40)
        entries = list(ZipStreamReader(io.BytesIO(bytes(sink.buf))).entries())
        assert [e.data for e in entries] == [b"first" * 40, b"second" * 40]

    def test_crc_mismatch(self):
        from schem_io.zip_stream import ZipStreamError, ZipStreamReader
        raw = bytearray(_archive([("a.bin", b"payload")], zipfile.ZIP_STORED))
        # 本地文件头 30 字节 + 文件名
        raw[30 + len("a.bin")] ^= 0xFF
        with pytest.raises(ZipStreamError):
            list(ZipStreamReader(io.BytesIO(bytes(raw))).entries())

    def test_truncated(self):
        from schem_io.zip_stream import ZipStreamError, ZipStreamReader
        raw = _archive([("a.bin", bytes(range(256)) * 8)])
        with pytest.raises(ZipStreamError):
            list(ZipStreamReader(io.BytesIO(raw[:60])).entries())

    def test_not_a_zip(self):
        from schem_core.errors import FormatError
        from schem_io.zip_stream import ZipStreamReader
        with pytest.raises(FormatError):
            list(ZipStreamReader(io.BytesIO(b"<html>not found</html>")).entries())

    def test_empty_stream(self):
        from schem_io.zip_stream import ZipStreamReader
        assert list(ZipStreamReader(io.BytesIO(b"")).entries()) == []
