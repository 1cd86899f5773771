"""
NBT 编解码器 — Minecraft NBT 二进制格式编/解码

支持所有 NBT 标签类型:
TAG_End(0), TAG_Byte(1), TAG_Short(2), TAG_Int(3), TAG_Long(4),
TAG_Float(5), TAG_Double(6), TAG_Byte_Array(7), TAG_String(8),
TAG_List(9), TAG_Compound(10), TAG_Int_Array(11), TAG_Long_Array(12)

值的表示:
- 数值 / 字符串: Python 原生类型
- TAG_Byte_Array: bytes
- TAG_Int_Array / TAG_Long_Array: list[int]
- TAG_List: (elem_type, [原始值...])
- TAG_Compound: Dict[str, NBTTag]
"""

from __future__ import annotations

import io
import logging
import struct
from typing import Any, BinaryIO, Dict, Tuple

from schem_core.errors import FormatError

logger = logging.getLogger(__name__)

# ── NBT 标签类型 ID ──────────────────────────────────────────
TAG_END = 0
TAG_BYTE = 1
TAG_SHORT = 2
TAG_INT = 3
TAG_LONG = 4
TAG_FLOAT = 5
TAG_DOUBLE = 6
TAG_BYTE_ARRAY = 7
TAG_STRING = 8
TAG_LIST = 9
TAG_COMPOUND = 10
TAG_INT_ARRAY = 11
TAG_LONG_ARRAY = 12

# 定长标签的 struct 格式
_SCALAR_FORMATS = {
    TAG_BYTE: ">b",
    TAG_SHORT: ">h",
    TAG_INT: ">i",
    TAG_LONG: ">q",
    TAG_FLOAT: ">f",
    TAG_DOUBLE: ">d",
}

# 每层嵌套约占两个解释器栈帧，需低于默认递归上限
MAX_DEPTH = 256


class NBTTag:
    """NBT 标签值包装"""
    __slots__ = ("tag_type", "value")

    def __init__(self, tag_type: int, value: Any) -> None:
        self.tag_type = tag_type
        self.value = value

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, NBTTag):
            return NotImplemented
        return self.tag_type == other.tag_type and self.value == other.value

    def __repr__(self) -> str:
        return f"NBTTag(type={self.tag_type}, value={self.value!r})"


class NBTEncoder:
    """
    低级 NBT 二进制编码器。

    Usage::

        data = {
            "Width": nbt_short(64),
            "Blocks": nbt_byte_array(block_bytes),
        }
        NBTEncoder.write_root(stream, "Schematic", data)
    """

    @staticmethod
    def encode_compound(name: str, tags: Dict[str, NBTTag]) -> bytes:
        """编码一个命名的 Compound 标签"""
        buf = io.BytesIO()
        NBTEncoder.write_root(buf, name, tags)
        return buf.getvalue()

    @staticmethod
    def write_root(buf: BinaryIO, name: str, tags: Dict[str, NBTTag]) -> None:
        """把命名的根 Compound 直接写入流"""
        buf.write(struct.pack(">b", TAG_COMPOUND))
        _write_string(buf, name)
        NBTEncoder._write_compound_payload(buf, tags)

    # ── 内部编码方法 ────────────────────────────────────────────

    @staticmethod
    def _write_compound_payload(buf: BinaryIO, tags: Dict[str, NBTTag]) -> None:
        for key, tag in tags.items():
            NBTEncoder._write_named_tag(buf, key, tag)
        buf.write(struct.pack(">b", TAG_END))

    @staticmethod
    def _write_named_tag(buf: BinaryIO, name: str, tag: NBTTag) -> None:
        buf.write(struct.pack(">b", tag.tag_type))
        _write_string(buf, name)
        NBTEncoder._write_payload(buf, tag)

    @staticmethod
    def _write_payload(buf: BinaryIO, tag: NBTTag) -> None:
        t = tag.tag_type
        v = tag.value

        if t in _SCALAR_FORMATS:
            buf.write(struct.pack(_SCALAR_FORMATS[t], v))
        elif t == TAG_BYTE_ARRAY:
            data = v if isinstance(v, (bytes, bytearray)) else bytes(v)
            buf.write(struct.pack(">i", len(data)))
            buf.write(data)
        elif t == TAG_STRING:
            _write_string(buf, v)
        elif t == TAG_LIST:
            elem_type, elements = v
            buf.write(struct.pack(">b", elem_type))
            buf.write(struct.pack(">i", len(elements)))
            for elem in elements:
                NBTEncoder._write_payload(buf, NBTTag(elem_type, elem))
        elif t == TAG_COMPOUND:
            if isinstance(v, dict):
                NBTEncoder._write_compound_payload(buf, v)
            else:
                raise TypeError(f"TAG_COMPOUND value must be dict, got {type(v)}")
        elif t == TAG_INT_ARRAY:
            arr = list(v)
            buf.write(struct.pack(f">i{len(arr)}i", len(arr), *arr))
        elif t == TAG_LONG_ARRAY:
            arr = list(v)
            buf.write(struct.pack(f">i{len(arr)}q", len(arr), *arr))
        else:
            raise ValueError(f"Unknown tag type: {t}")


class NBTDecoder:
    """
    低级 NBT 二进制解码器，NBTEncoder 的逆操作。

    Usage::

        name, root = NBTDecoder.read_root(stream)
        width = root["Width"].value
    """

    @staticmethod
    def read_root(buf: BinaryIO) -> Tuple[str, Dict[str, NBTTag]]:
        """读取命名的根 Compound，返回 (名称, 内容)"""
        tag_type = _read_struct(buf, ">b")
        if tag_type != TAG_COMPOUND:
            raise FormatError(f"Root tag must be TAG_Compound, got type {tag_type}")
        name = _read_string(buf)
        return name, NBTDecoder._read_compound_payload(buf, 0)

    @staticmethod
    def read_root_name(buf: BinaryIO) -> str:
        """只读取根标签类型与名称 (格式嗅探用)"""
        tag_type = _read_struct(buf, ">b")
        if tag_type != TAG_COMPOUND:
            raise FormatError(f"Root tag must be TAG_Compound, got type {tag_type}")
        return _read_string(buf)

    # ── 内部解码方法 ────────────────────────────────────────────

    @staticmethod
    def _read_compound_payload(buf: BinaryIO, depth: int) -> Dict[str, NBTTag]:
        if depth > MAX_DEPTH:
            raise FormatError("NBT nesting too deep")
        tags: Dict[str, NBTTag] = {}
        while True:
            tag_type = _read_struct(buf, ">b")
            if tag_type == TAG_END:
                return tags
            name = _read_string(buf)
            tags[name] = NBTTag(tag_type, NBTDecoder._read_payload(buf, tag_type, depth + 1))

    @staticmethod
    def _read_payload(buf: BinaryIO, t: int, depth: int) -> Any:
        if depth > MAX_DEPTH:
            raise FormatError("NBT nesting too deep")
        if t in _SCALAR_FORMATS:
            return _read_struct(buf, _SCALAR_FORMATS[t])
        if t == TAG_BYTE_ARRAY:
            return _read_exact(buf, _read_length(buf))
        if t == TAG_STRING:
            return _read_string(buf)
        if t == TAG_LIST:
            elem_type = _read_struct(buf, ">b")
            count = _read_length(buf)
            if count and elem_type == TAG_END:
                raise FormatError("Non-empty TAG_List with TAG_End elements")
            values = []
            for _ in range(count):
                values.append(NBTDecoder._read_payload(buf, elem_type, depth + 1))
            return (elem_type, values)
        if t == TAG_COMPOUND:
            return NBTDecoder._read_compound_payload(buf, depth)
        if t == TAG_INT_ARRAY:
            count = _read_length(buf)
            return list(struct.unpack(f">{count}i", _read_exact(buf, count * 4)))
        if t == TAG_LONG_ARRAY:
            count = _read_length(buf)
            return list(struct.unpack(f">{count}q", _read_exact(buf, count * 8)))
        raise FormatError(f"Unknown tag type: {t}")


# ── 底层读写工具 ────────────────────────────────────────────────

def _write_string(buf: BinaryIO, s: str) -> None:
    raw = s.encode("utf-8")
    buf.write(struct.pack(">H", len(raw)))
    buf.write(raw)


def _read_exact(buf: BinaryIO, n: int) -> bytes:
    data = buf.read(n)
    if len(data) != n:
        raise FormatError(f"Unexpected end of NBT data (wanted {n} bytes, got {len(data)})")
    return data


def _read_struct(buf: BinaryIO, fmt: str) -> Any:
    return struct.unpack(fmt, _read_exact(buf, struct.calcsize(fmt)))[0]


def _read_length(buf: BinaryIO) -> int:
    n = _read_struct(buf, ">i")
    if n < 0:
        raise FormatError(f"Negative NBT length: {n}")
    return n


def _read_string(buf: BinaryIO) -> str:
    n = _read_struct(buf, ">H")
    try:
        return _read_exact(buf, n).decode("utf-8")
    except UnicodeDecodeError as exc:
        raise FormatError("Invalid UTF-8 in NBT string") from exc


# ── 便捷构造函数 ────────────────────────────────────────────────

def nbt_byte(v: int) -> NBTTag:
    return NBTTag(TAG_BYTE, v)

def nbt_short(v: int) -> NBTTag:
    return NBTTag(TAG_SHORT, v)

def nbt_int(v: int) -> NBTTag:
    return NBTTag(TAG_INT, v)

def nbt_string(v: str) -> NBTTag:
    return NBTTag(TAG_STRING, v)

def nbt_byte_array(v: bytes | bytearray | list) -> NBTTag:
    return NBTTag(TAG_BYTE_ARRAY, v)

def nbt_list(elem_type: int, elements: list) -> NBTTag:
    return NBTTag(TAG_LIST, (elem_type, elements))

def nbt_compound(v: Dict[str, NBTTag]) -> NBTTag:
    return NBTTag(TAG_COMPOUND, v)


def require(tags: Dict[str, NBTTag], key: str, tag_type: int) -> Any:
    """取出必需字段并校验类型"""
    tag = tags.get(key)
    if tag is None:
        raise FormatError(f"Missing NBT field: {key}")
    if tag.tag_type != tag_type:
        raise FormatError(f"NBT field {key} has type {tag.tag_type}, expected {tag_type}")
    return tag.value
