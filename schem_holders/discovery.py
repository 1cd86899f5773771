"""
多剪贴板发现策略

- 目录: 列出目录下后缀匹配的文件 (不递归，顺序为文件系统列举顺序)
- 远程压缩包: 流式下载 ZIP，匹配的条目读入内存后包装为 BytesSource

两种策略都返回 MultiClipboardHolder，没有任何条目时抛出 NotFoundError。
"""

from __future__ import annotations

import logging
import os
import zlib
from pathlib import Path
from typing import BinaryIO, Callable, Optional
from urllib.parse import quote, urlsplit
from urllib.request import urlopen

from schem_core.block_registry import BlockRegistry
from schem_core.byte_source import BytesSource, FileSource
from schem_core.errors import NotFoundError
from schem_holders.holders import LazyClipboardHolder, MultiClipboardHolder
from schem_io.clipboard_format import ClipboardFormat
from schem_io.zip_stream import ZipStreamError, ZipStreamReader

logger = logging.getLogger(__name__)

Opener = Callable[[str], BinaryIO]


def load_all_from_directory(
    directory: str | Path,
    fmt: ClipboardFormat,
    context: Optional[BlockRegistry] = None,
) -> MultiClipboardHolder:
    """目录下每个匹配文件一个 LazyClipboardHolder"""
    directory = Path(directory)
    multi = MultiClipboardHolder(directory.resolve().as_uri(), context)
    with os.scandir(directory) as it:
        for entry in it:
            if entry.is_file() and fmt.matches_extension(entry.name):
                path = Path(entry.path)
                multi.add(LazyClipboardHolder(path.resolve().as_uri(), FileSource(path), fmt, context))

    if len(multi) == 0:
        raise NotFoundError(f"No .{fmt.extension} files in {directory}")
    logger.info("Found %d %s clipboards in %s", len(multi), fmt.name, directory)
    return multi


def load_all_from_url(
    url: str,
    fmt: ClipboardFormat,
    context: Optional[BlockRegistry] = None,
    opener: Opener = urlopen,
) -> MultiClipboardHolder:
    """
    流式下载 ZIP 压缩包，每个匹配条目一个 LazyClipboardHolder。

    条目定位符构造失败只记录并跳过该条目；压缩包后半部分损坏时
    保留已经读出的条目。
    """
    multi = MultiClipboardHolder(url, context)
    with opener(url) as response:
        reader = ZipStreamReader(response)
        try:
            for entry in reader.entries(fmt.matches_extension):
                try:
                    uri = entry_uri(url, entry.name)
                except ValueError as exc:
                    logger.error("Invalid locator for %s in %s: %s", entry.name, url, exc)
                    continue
                multi.add(LazyClipboardHolder(uri, BytesSource(entry.data), fmt, context))
        except (ZipStreamError, zlib.error) as exc:
            logger.error("Archive %s is corrupt after %d entries: %s", url, len(multi), exc)

    if len(multi) == 0:
        raise NotFoundError(f"No .{fmt.extension} entries in {url}")
    logger.info("Found %d %s clipboards in %s", len(multi), fmt.name, url)
    return multi


def entry_uri(url: str, entry_name: str) -> str:
    """压缩包条目的定位符: <url>#<条目名>"""
    parts = urlsplit(url)
    if not parts.scheme or not parts.netloc:
        raise ValueError(f"Not an absolute URL: {url}")
    return f"{parts.scheme}://{parts.netloc}{parts.path}{'?' + parts.query if parts.query else ''}#{quote(entry_name)}"
