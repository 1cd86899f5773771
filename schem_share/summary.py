"""
分享/上传辅助 — 方块直方图摘要与上传包

上传传输本身由外部子系统负责，这里只生成:
- 摘要 JSON: 尺寸、作者、非零 id 桶的方块数量
- 载荷: gzip 包装后的格式数据 (依赖写出器的双重压缩保护)
"""

from __future__ import annotations

import gzip
import io
import json
import logging
from dataclasses import dataclass
from typing import Any, BinaryIO, Dict, Optional

from schem_core.block_registry import BlockRegistry
from schem_core.byte_streamer import block_histogram
from schem_core.clipboard import Clipboard
from schem_io.clipboard_format import ClipboardFormat

logger = logging.getLogger(__name__)


@dataclass
class UploadBundle:
    """交给上传子系统的内容"""
    file_name: str
    category: str
    summary_json: str
    payload: bytes


def build_summary(clipboard: Clipboard, creator: Optional[str] = None) -> Dict[str, Any]:
    """尺寸 + 作者 + {id: 数量} (只含非零桶)"""
    counts = block_histogram(clipboard)
    blocks = {int(i): int(counts[i]) for i in counts.nonzero()[0]}
    return {
        "width": clipboard.width,
        "height": clipboard.height,
        "length": clipboard.length,
        "creator": creator,
        "blocks": blocks,
    }


def summary_json(clipboard: Clipboard, creator: Optional[str] = None) -> str:
    return json.dumps(build_summary(clipboard, creator), sort_keys=True)


def write_archive(
    fmt: ClipboardFormat,
    clipboard: Clipboard,
    sink: BinaryIO,
    context: Optional[BlockRegistry] = None,
) -> None:
    """把剪贴板以 gzip 包装写入 sink (不关闭 sink)"""
    with gzip.GzipFile(fileobj=sink, mode="wb") as gz:
        fmt.write_clipboard(gz, clipboard, context)


def build_upload_bundle(
    fmt: ClipboardFormat,
    clipboard: Clipboard,
    creator: Optional[str] = None,
    category: str = "",
    name: str = "clipboard",
) -> UploadBundle:
    buf = io.BytesIO()
    write_archive(fmt, clipboard, buf)
    bundle = UploadBundle(
        file_name=f"{name}.{fmt.extension}",
        category=category,
        summary_json=summary_json(clipboard, creator),
        payload=buf.getvalue(),
    )
    logger.info("Prepared upload %s (%d bytes, %s)", bundle.file_name, len(bundle.payload), fmt.name)
    return bundle
