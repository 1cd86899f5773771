"""
输入解析 — 把用户输入的文本引用解析为 MultiClipboardHolder

支持:
    url:<id>            → <web.url>uploads/<id>.<ext>
    http(s)://...       → 主机必须与 web.assets 相同，然后走远程压缩包发现
    名称 / 相对路径     → 在保存目录下查找 (先原名，再补后缀)，文件或目录

返回 None 表示找不到 (不是错误)；权限问题抛出 UnauthorizedError。
"""

from __future__ import annotations

import logging
from pathlib import Path, PureWindowsPath
from typing import Optional, Protocol
from urllib.parse import urljoin, urlsplit
from urllib.request import urlopen

from schem_core.block_registry import BlockRegistry
from schem_core.byte_source import FileSource
from schem_core.config import Settings
from schem_core.errors import FormatError, NotFoundError, UnauthorizedError
from schem_core.schematic import Schematic
from schem_holders.discovery import Opener, load_all_from_directory, load_all_from_url
from schem_holders.holders import LazyClipboardHolder, MultiClipboardHolder
from schem_io.clipboard_format import ClipboardFormat
from schem_io.format_registry import find_by_file

logger = logging.getLogger(__name__)

PERMISSION_LOAD_OTHER = "schematic.load.other"
REMOTE_SCHEMES = ("http", "https")


class Actor(Protocol):
    """宿主提供的操作者 (玩家 / 控制台)"""

    @property
    def unique_id(self) -> str: ...

    def has_permission(self, node: str) -> bool: ...

    def send_message(self, text: str) -> None: ...


class ClipboardLoader:
    """
    Usage::

        loader = ClipboardLoader(Settings.load())
        multi = loader.load_all_from_input(player, "castle", SCHEMATIC)
        if multi is None:
            ...  # 找不到
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        working_dir: Optional[str | Path] = None,
        opener: Opener = urlopen,
    ) -> None:
        self.settings = settings or Settings()
        self.working_dir = Path(working_dir) if working_dir is not None else Path.cwd()
        self.opener = opener

    @property
    def save_dir(self) -> Path:
        return self.working_dir / self.settings.save_dir

    def load_all_from_input(
        self,
        actor: Actor,
        text: str,
        fmt: ClipboardFormat,
        context: Optional[BlockRegistry] = None,
        message: bool = True,
    ) -> Optional[MultiClipboardHolder]:
        if actor is None or text is None:
            raise TypeError("actor and input are required")

        def report(msg: str) -> None:
            if message:
                actor.send_message(msg)

        if text.startswith("url:"):
            text = urljoin(self.settings.web_url, f"uploads/{text[4:]}.{fmt.extension}")

        scheme = text.split(":", 1)[0].lower() if ":" in text else ""
        if scheme in REMOTE_SCHEMES:
            return self._load_remote(text, fmt, context, report)
        return self._load_local(actor, text, fmt, context, report)

    # ── 远程 ────────────────────────────────────────────────────

    def _load_remote(self, url: str, fmt: ClipboardFormat, context, report) -> Optional[MultiClipboardHolder]:
        try:
            host = urlsplit(url).hostname or ""
            trusted = urlsplit(self.settings.web_assets).hostname or ""
        except ValueError as exc:
            logger.error("Invalid URL %s: %s", url, exc)
            report(f"Invalid URL: {url}")
            return None

        if host.lower() != trusted.lower():
            report(f"Unauthorized URL: {url}")
            raise UnauthorizedError(f"Host {host!r} is not trusted (expected {trusted!r})")

        try:
            return load_all_from_url(url, fmt, context, opener=self.opener)
        except NotFoundError:
            report(f"Schematic not found: {url}")
            return None
        except ValueError as exc:
            logger.error("Failed to load %s: %s", url, exc)
            report(f"Invalid URL: {url}")
            return None

    # ── 本地 ────────────────────────────────────────────────────

    def _load_local(
        self,
        actor: Actor,
        text: str,
        fmt: ClipboardFormat,
        context,
        report,
    ) -> Optional[MultiClipboardHolder]:
        privileged = actor.has_permission(PERMISSION_LOAD_OTHER)
        escapes = "../" in text or "..\\" in text or _is_absolute(text)
        if escapes and not privileged:
            report(f"You lack the permission node '{PERMISSION_LOAD_OTHER}'")
            raise UnauthorizedError(f"Path traversal requires {PERMISSION_LOAD_OTHER}")

        root = self.save_dir
        base = root / actor.unique_id if self.settings.per_player_schematics else root
        path = _with_extension(base / text, fmt)
        if path is None and (("/" not in text and "\\" not in text) or privileged):
            path = _with_extension(root / text, fmt)
        if path is None:
            report(f"Schematic not found: {text}")
            return None

        # 符号链接等也不能让无权限的操作者离开保存目录
        if not privileged and not _is_within(path, root):
            report(f"You lack the permission node '{PERMISSION_LOAD_OTHER}'")
            raise UnauthorizedError(f"{text!r} resolves outside the schematic directory")

        if path.is_file():
            uri = path.resolve().as_uri()
            holder = LazyClipboardHolder(uri, FileSource(path), fmt, context)
            return MultiClipboardHolder(uri, context, [holder])

        try:
            return load_all_from_directory(path, fmt, context)
        except NotFoundError:
            report(f"Schematic not found: {text}")
            return None


def _is_absolute(text: str) -> bool:
    """POSIX 绝对路径、Windows 盘符或 UNC 前缀"""
    return (
        Path(text).is_absolute()
        or PureWindowsPath(text).anchor != ""
        or text.startswith(("/", "\\"))
    )


def _is_within(path: Path, root: Path) -> bool:
    try:
        path.resolve().relative_to(root.resolve())
    except ValueError:
        return False
    return True


def _with_extension(path: Path, fmt: ClipboardFormat) -> Optional[Path]:
    """原名存在返回原名，否则尝试 <name>.<ext>"""
    if path.exists():
        return path
    candidate = Path(f"{path}.{fmt.extension}")
    return candidate if candidate.exists() else None


def load_schematic(
    path: str | Path,
    fmt: Optional[ClipboardFormat] = None,
    context: Optional[BlockRegistry] = None,
) -> Schematic:
    """加载单个文件；未指定格式时按注册顺序探测"""
    path = Path(path)
    if not path.exists():
        raise NotFoundError(f"No such schematic: {path}")
    if fmt is None:
        fmt = find_by_file(path)
        if fmt is None:
            raise FormatError(f"Unknown schematic format: {path.name}")
    return fmt.load(path, context)
