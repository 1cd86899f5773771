"""
测试底层编解码 — NBT 编/解码器, 流工具
"""

import gzip
import io
import sys
import zlib
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


class NonSeekable(io.RawIOBase):
    """模拟网络响应: 只能顺序读取"""

    def __init__(self, data: bytes) -> None:
        super().__init__()
        self._inner = io.BytesIO(data)

    def readable(self) -> bool:
        return True

    def seekable(self) -> bool:
        return False

    def readinto(self, b) -> int:
        chunk = self._inner.read(min(len(b), 7))
        b[:len(chunk)] = chunk
        return len(chunk)


# ── NBT 编解码 ──────────────────────────────────────────────────

class TestNBTCodec:

    def test_encode_header(self):
        from schem_io.nbt_codec import NBTEncoder, nbt_int, nbt_short, nbt_string
        data = {
            "Version": nbt_int(2),
            "Name": nbt_string("Test"),
            "Width": nbt_short(16),
        }
        raw = NBTEncoder.encode_compound("TestRoot", data)
        # TAG_Compound + u16 名称长度 + 名称
        assert raw[0] == 10
        assert raw[1:3] == b"\x00\x08"
        assert raw[3:11] == b"TestRoot"
        assert raw[-1] == 0

    def test_decode_all_tag_types(self):
        from schem_io.nbt_codec import (
            TAG_COMPOUND, TAG_DOUBLE, TAG_FLOAT, TAG_INT, TAG_INT_ARRAY, TAG_LONG,
            TAG_LONG_ARRAY, TAG_STRING,
            NBTDecoder, NBTEncoder, NBTTag,
            nbt_byte, nbt_byte_array, nbt_compound, nbt_int, nbt_list, nbt_short, nbt_string,
        )
        tags = {
            "b": nbt_byte(-3),
            "s": nbt_short(1234),
            "i": nbt_int(-70000),
            "l": NBTTag(TAG_LONG, 2 ** 40),
            "f": NBTTag(TAG_FLOAT, 1.5),
            "d": NBTTag(TAG_DOUBLE, -0.25),
            "ba": nbt_byte_array(b"\x00\x01\xff"),
            "str": nbt_string("方块"),
            "li": nbt_list(TAG_INT, [1, 2, 3]),
            "ls": nbt_list(TAG_STRING, ["a", "b"]),
            "lc": nbt_list(TAG_COMPOUND, [{"x": nbt_int(1)}]),
            "c": nbt_compound({"inner": nbt_string("v")}),
            "ia": NBTTag(TAG_INT_ARRAY, [7, -8]),
            "la": NBTTag(TAG_LONG_ARRAY, [2 ** 33]),
        }
        name, root = NBTDecoder.read_root(io.BytesIO(NBTEncoder.encode_compound("Root", tags)))
        assert name == "Root"
        assert root == tags
        assert list(root) == list(tags)

    def test_read_root_name(self):
        from schem_io.nbt_codec import NBTDecoder, NBTEncoder
        raw = NBTEncoder.encode_compound("Schematic", {})
        assert NBTDecoder.read_root_name(io.BytesIO(raw)) == "Schematic"

    def test_root_must_be_compound(self):
        from schem_core.errors import FormatError
        from schem_io.nbt_codec import NBTDecoder
        with pytest.raises(FormatError):
            NBTDecoder.read_root(io.BytesIO(b"\x08\x00\x00"))

    def test_truncated(self):
        from schem_core.errors import FormatError
        from schem_io.nbt_codec import NBTDecoder, NBTEncoder, nbt_int
        raw = NBTEncoder.encode_compound("R", {"v": nbt_int(5)})
        with pytest.raises(FormatError):
            NBTDecoder.read_root(io.BytesIO(raw[:-3]))

    def test_negative_length(self):
        from schem_core.errors import FormatError
        from schem_io.nbt_codec import NBTDecoder
        # 根 Compound "" 内含 TAG_Byte_Array "a"，长度 -1
        raw = b"\x0a\x00\x00" + b"\x07\x00\x01a" + b"\xff\xff\xff\xff"
        with pytest.raises(FormatError):
            NBTDecoder.read_root(io.BytesIO(raw))

    def test_nested_lists_too_deep(self):
        from schem_core.errors import FormatError
        from schem_io.nbt_codec import NBTDecoder
        # 根 Compound 内 TAG_List "a"，每层都是只含一个 TAG_List 的列表
        raw = (
            b"\x0a\x00\x00" + b"\x09\x00\x01a"
            + b"\x09\x00\x00\x00\x01" * 5000
            + b"\x00\x00\x00\x00\x00" + b"\x00"
        )
        with pytest.raises(FormatError):
            NBTDecoder.read_root(io.BytesIO(raw))

    def test_nested_compounds_too_deep(self):
        from schem_core.errors import FormatError
        from schem_io.nbt_codec import NBTDecoder
        raw = b"\x0a\x00\x00" + b"\x0a\x00\x01c" * 5000 + b"\x00" * 5001
        with pytest.raises(FormatError):
            NBTDecoder.read_root(io.BytesIO(raw))

    def test_moderate_nesting_decodes(self):
        from schem_io.nbt_codec import TAG_LIST, NBTDecoder
        raw = (
            b"\x0a\x00\x00" + b"\x09\x00\x01a"
            + b"\x09\x00\x00\x00\x01" * 50
            + b"\x00\x00\x00\x00\x00" + b"\x00"
        )
        _, tags = NBTDecoder.read_root(io.BytesIO(raw))
        assert tags["a"].tag_type == TAG_LIST

    def test_require(self):
        from schem_core.errors import FormatError
        from schem_io.nbt_codec import TAG_INT, TAG_SHORT, nbt_short, require
        tags = {"Width": nbt_short(3)}
        assert require(tags, "Width", TAG_SHORT) == 3
        with pytest.raises(FormatError):
            require(tags, "Width", TAG_INT)
        with pytest.raises(FormatError):
            require(tags, "Height", TAG_SHORT)


# ── 流工具 ──────────────────────────────────────────────────────

class TestStreams:

    def test_resettable_input(self):
        from schem_io.streams import ensure_resettable
        stream = ensure_resettable(NonSeekable(b"0123456789abcdef"))
        assert stream.read(4) == b"0123"
        stream.seek(0)
        assert stream.read(6) == b"012345"
        stream.seek(2)
        assert stream.read() == b"23456789abcdef"
        assert stream.read(1) == b""

    def test_seekable_passthrough(self):
        from schem_io.streams import ensure_resettable
        buf = io.BytesIO(b"abc")
        assert ensure_resettable(buf) is buf

    def test_resettable_closes_raw(self):
        from schem_io.streams import ResettableInput
        raw = NonSeekable(b"x")
        ResettableInput(raw).close()
        assert raw.closed

    def test_deflate_sink_keeps_raw_open(self):
        from schem_io.streams import DeflateSink
        raw = io.BytesIO()
        sink = DeflateSink(raw, level=9)
        sink.write(b"hello " * 100)
        sink.close()
        assert not raw.closed
        assert zlib.decompress(raw.getvalue()) == b"hello " * 100

    def test_inflate_input(self):
        from schem_io.streams import InflateInput
        payload = bytes(range(256)) * 50
        stream = InflateInput(io.BytesIO(zlib.compress(payload)), chunk_size=64)
        assert stream.read(10) == payload[:10]
        assert stream.read() == payload[10:]

    def test_inflate_truncated(self):
        from schem_core.errors import FormatError
        from schem_io.streams import InflateInput
        compressed = zlib.compress(bytes(range(256)) * 50)
        stream = InflateInput(io.BytesIO(compressed[:len(compressed) // 2]))
        with pytest.raises(FormatError):
            stream.read()

    def test_inflate_corrupt(self):
        from schem_core.errors import FormatError
        from schem_io.streams import InflateInput
        # 0x78 之后的 FLG 校验失败
        stream = InflateInput(io.BytesIO(b"\x78\x00" + bytes(64)))
        with pytest.raises(FormatError):
            stream.read()

    def test_is_compressed_sink(self):
        from schem_io.streams import DeflateSink, is_compressed_sink
        raw = io.BytesIO()
        assert not is_compressed_sink(raw)
        assert is_compressed_sink(gzip.GzipFile(fileobj=raw, mode="wb"))
        assert is_compressed_sink(DeflateSink(raw))

    def test_capture_buffer(self):
        from schem_io.streams import CaptureBuffer
        buf = CaptureBuffer()
        buf.write(b"data")
        buf.close()
        assert buf.closed
        assert buf.value == b"data"
