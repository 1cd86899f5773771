"""
测试剪贴板持有者 — 延迟解码、多源发现、输入解析
"""

import io
import sys
import threading
import time
import zipfile
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def _clip(block_id=1):
    from schem_core.clipboard import Clipboard
    clip = Clipboard(3, 3, 3)
    clip.set_block(1, 1, 1, block_id)
    return clip


def _schematic_bytes(block_id=1) -> bytes:
    from schem_io import SCHEMATIC
    return SCHEMATIC.to_bytes(_clip(block_id))


def _zip(entries) -> bytes:
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", zipfile.ZIP_DEFLATED) as zf:
        for name, data in entries:
            zf.writestr(name, data)
    return buf.getvalue()


def _make_source(payloads, delay=0.0):
    """依次返回 payloads 中内容的字节源，并统计打开次数"""
    from schem_core.byte_source import ByteSource

    class ScriptedSource(ByteSource):
        def __init__(self):
            self.opens = 0

        def open_stream(self):
            index = min(self.opens, len(payloads) - 1)
            self.opens += 1
            if delay:
                time.sleep(delay)
            return io.BytesIO(payloads[index])

        def size(self):
            return len(payloads[0])

    return ScriptedSource()


class FakeActor:

    def __init__(self, unique_id="player-1", permissions=()):
        self.unique_id = unique_id
        self.permissions = set(permissions)
        self.messages = []

    def has_permission(self, node):
        return node in self.permissions

    def send_message(self, text):
        self.messages.append(text)


# ── 字节源 ──────────────────────────────────────────────────────

class TestByteSource:

    def test_file_source(self, tmp_path):
        from schem_core.byte_source import FileSource
        path = tmp_path / "data.bin"
        path.write_bytes(b"abc")
        source = FileSource(path)
        assert source.size() == 3
        assert source.read() == b"abc"

    def test_bytes_source_reopens(self):
        from schem_core.byte_source import BytesSource
        source = BytesSource(b"xyz")
        with source.open_stream() as f:
            assert f.read() == b"xyz"
        with source.open_stream() as f:
            assert f.read(1) == b"x"


# ── LazyClipboardHolder ─────────────────────────────────────────

class TestLazyHolder:

    def test_no_io_until_requested(self):
        from schem_holders.holders import HolderState, LazyClipboardHolder
        from schem_io import SCHEMATIC
        source = _make_source([_schematic_bytes()])
        holder = LazyClipboardHolder("mem://a", source, SCHEMATIC)
        assert holder.uri == "mem://a"
        assert holder.format is SCHEMATIC
        assert holder.state is HolderState.UNRESOLVED
        assert source.opens == 0

    def test_decodes_once(self):
        from schem_holders.holders import HolderState, LazyClipboardHolder
        from schem_io import SCHEMATIC
        source = _make_source([_schematic_bytes(7)])
        holder = LazyClipboardHolder("mem://a", source, SCHEMATIC)
        first = holder.get_clipboard()
        assert first.get_block(1, 1, 1) == (7, 0)
        assert holder.get_clipboard() is first
        assert holder.state is HolderState.RESOLVED
        assert holder.is_resolved
        assert source.opens == 1

    def test_failure_is_not_cached(self):
        from schem_core.errors import FormatError
        from schem_holders.holders import HolderState, LazyClipboardHolder
        from schem_io import SCHEMATIC
        source = _make_source([b"broken", _schematic_bytes()])
        holder = LazyClipboardHolder("mem://a", source, SCHEMATIC)
        with pytest.raises(FormatError):
            holder.get_clipboard()
        assert holder.state is HolderState.FAILED
        assert isinstance(holder.last_error, FormatError)

        assert holder.get_clipboard() == _clip()
        assert holder.state is HolderState.RESOLVED
        assert holder.last_error is None
        assert source.opens == 2

    def test_concurrent_access_decodes_once(self):
        from schem_holders.holders import LazyClipboardHolder
        from schem_io import SCHEMATIC
        source = _make_source([_schematic_bytes()], delay=0.05)
        holder = LazyClipboardHolder("mem://a", source, SCHEMATIC)
        results = []

        def worker():
            results.append(holder.get_clipboard())

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert source.opens == 1
        assert len(results) == 8
        assert all(r is results[0] for r in results)

    def test_close_drops_cache(self):
        from schem_holders.holders import HolderState, LazyClipboardHolder
        from schem_io import SCHEMATIC
        source = _make_source([_schematic_bytes()])
        holder = LazyClipboardHolder("mem://a", source, SCHEMATIC)
        holder.get_clipboard()
        holder.close()
        assert holder.state is HolderState.UNRESOLVED
        holder.get_clipboard()
        assert source.opens == 2

    def test_context_defaulted(self):
        from schem_holders.holders import LazyClipboardHolder
        from schem_io import STRUCTURE
        source = _make_source([STRUCTURE.to_bytes(_clip(35))])
        holder = LazyClipboardHolder("mem://s", source, STRUCTURE)
        assert holder.context is None
        assert holder.get_clipboard().get_block(1, 1, 1) == (35, 0)

    def test_hold_decodes_immediately(self):
        from schem_holders.holders import hold
        from schem_io import SCHEMATIC
        holder = hold(SCHEMATIC, "mem://x", io.BytesIO(_schematic_bytes()))
        assert holder.get_clipboard() == _clip()
        assert holder.contains("mem://x")


# ── MultiClipboardHolder ────────────────────────────────────────

class TestMultiHolder:

    def test_collection(self):
        from schem_holders.holders import ClipboardHolder, MultiClipboardHolder
        multi = MultiClipboardHolder("dir://pack")
        assert len(multi) == 0
        multi.add(ClipboardHolder("dir://pack/a", _clip(1)))
        multi.add(ClipboardHolder("dir://pack/b", _clip(2)))
        assert [h.uri for h in multi] == ["dir://pack/a", "dir://pack/b"]
        assert [c.get_block(1, 1, 1)[0] for c in multi.get_clipboards()] == [1, 2]
        assert multi.contains("dir://pack/b")
        assert not multi.contains("dir://other")
        with pytest.raises(ValueError):
            multi.get_clipboard()

    def test_single(self):
        from schem_holders.holders import ClipboardHolder, MultiClipboardHolder
        multi = MultiClipboardHolder("x", holders=[ClipboardHolder("x/a", _clip())])
        assert multi.get_clipboard() == _clip()


# ── 目录 / 远程压缩包发现 ──────────────────────────────────────

class TestDiscovery:

    def test_empty_directory(self, tmp_path):
        from schem_core.errors import NotFoundError
        from schem_holders.discovery import load_all_from_directory
        from schem_io import SCHEMATIC
        with pytest.raises(NotFoundError):
            load_all_from_directory(tmp_path, SCHEMATIC)

    def test_directory(self, tmp_path):
        from schem_holders.discovery import load_all_from_directory
        from schem_holders.holders import HolderState
        from schem_io import SCHEMATIC
        (tmp_path / "a.schematic").write_bytes(_schematic_bytes(1))
        (tmp_path / "b.MCE").write_bytes(_schematic_bytes(2))
        (tmp_path / "notes.txt").write_text("skip me", encoding="utf-8")
        (tmp_path / "nested").mkdir()
        (tmp_path / "nested" / "c.schematic").write_bytes(_schematic_bytes(3))

        multi = load_all_from_directory(tmp_path, SCHEMATIC)
        assert len(multi) == 2
        assert all(h.state is HolderState.UNRESOLVED for h in multi)
        ids = sorted(c.get_block(1, 1, 1)[0] for c in multi.get_clipboards())
        assert ids == [1, 2]
        assert multi.contains((tmp_path / "a.schematic").resolve().as_uri())

    def test_remote_archive(self):
        from schem_holders.discovery import load_all_from_url
        from schem_io import SCHEMATIC
        payload = _zip([
            ("a.schematic", _schematic_bytes(1)),
            ("readme.txt", b"hi"),
            ("my b.schematic", _schematic_bytes(2)),
        ])
        requested = []

        def opener(url):
            requested.append(url)
            return io.BytesIO(payload)

        url = "https://empcraft.com/fawe/pack.zip"
        multi = load_all_from_url(url, SCHEMATIC, opener=opener)
        assert requested == [url]
        assert [h.uri for h in multi] == [f"{url}#a.schematic", f"{url}#my%20b.schematic"]
        assert multi.holders[1].get_clipboard().get_block(1, 1, 1) == (2, 0)

    def test_corrupt_tail_keeps_entries(self):
        from schem_holders.discovery import load_all_from_url
        from schem_io import SCHEMATIC
        payload = _zip([("a.schematic", _schematic_bytes(1)), ("b.schematic", _schematic_bytes(2))])
        first_end = 30 + len("a.schematic")
        cut = payload.index(b"PK\x03\x04", first_end) + 40
        multi = load_all_from_url("https://h/x.zip", SCHEMATIC, opener=lambda u: io.BytesIO(payload[:cut]))
        assert [h.uri for h in multi] == ["https://h/x.zip#a.schematic"]

    def test_archive_without_matches(self):
        from schem_core.errors import NotFoundError
        from schem_holders.discovery import load_all_from_url
        from schem_io import SCHEMATIC
        payload = _zip([("readme.txt", b"hi")])
        with pytest.raises(NotFoundError):
            load_all_from_url("https://h/x.zip", SCHEMATIC, opener=lambda u: io.BytesIO(payload))

    def test_entry_uri(self):
        from schem_holders.discovery import entry_uri
        assert entry_uri("https://h/p.zip?v=2", "dir/a b.nbt") == "https://h/p.zip?v=2#dir/a%20b.nbt"
        with pytest.raises(ValueError):
            entry_uri("relative/path.zip", "a.nbt")


# ── 输入解析 ────────────────────────────────────────────────────

class TestClipboardLoader:

    @pytest.fixture
    def save_dir(self, tmp_path):
        root = tmp_path / "schematics"
        root.mkdir()
        (root / "castle.schematic").write_bytes(_schematic_bytes(4))
        (root / "pack").mkdir()
        (root / "pack" / "one.schematic").write_bytes(_schematic_bytes(1))
        (root / "pack" / "two.schematic").write_bytes(_schematic_bytes(2))
        return root

    def _loader(self, tmp_path, opener=None, **settings):
        from schem_core.config import Settings
        from schem_holders.input_resolver import ClipboardLoader
        kwargs = {"opener": opener} if opener is not None else {}
        return ClipboardLoader(Settings(**settings), working_dir=tmp_path, **kwargs)

    def test_extension_completion(self, tmp_path, save_dir):
        from schem_io import SCHEMATIC
        multi = self._loader(tmp_path).load_all_from_input(FakeActor(), "castle", SCHEMATIC)
        assert len(multi) == 1
        assert multi.get_clipboard().get_block(1, 1, 1) == (4, 0)

    def test_exact_name(self, tmp_path, save_dir):
        from schem_io import SCHEMATIC
        multi = self._loader(tmp_path).load_all_from_input(FakeActor(), "castle.schematic", SCHEMATIC)
        assert multi.uri == (save_dir / "castle.schematic").resolve().as_uri()

    def test_directory(self, tmp_path, save_dir):
        from schem_io import SCHEMATIC
        multi = self._loader(tmp_path).load_all_from_input(FakeActor(), "pack", SCHEMATIC)
        assert len(multi) == 2

    def test_not_found(self, tmp_path, save_dir):
        from schem_io import SCHEMATIC
        actor = FakeActor()
        assert self._loader(tmp_path).load_all_from_input(actor, "missing", SCHEMATIC) is None
        assert actor.messages and "missing" in actor.messages[0]

    def test_not_found_silent(self, tmp_path, save_dir):
        from schem_io import SCHEMATIC
        actor = FakeActor()
        assert self._loader(tmp_path).load_all_from_input(actor, "missing", SCHEMATIC, message=False) is None
        assert actor.messages == []

    def test_traversal_requires_permission(self, tmp_path, save_dir):
        from schem_core.errors import UnauthorizedError
        from schem_holders.input_resolver import PERMISSION_LOAD_OTHER
        from schem_io import SCHEMATIC
        (tmp_path / "outside.schematic").write_bytes(_schematic_bytes(9))
        loader = self._loader(tmp_path)
        with pytest.raises(UnauthorizedError):
            loader.load_all_from_input(FakeActor(), "../outside", SCHEMATIC)

        admin = FakeActor(permissions=[PERMISSION_LOAD_OTHER])
        multi = loader.load_all_from_input(admin, "../outside", SCHEMATIC)
        assert multi.get_clipboard().get_block(1, 1, 1) == (9, 0)

    def test_absolute_path_requires_permission(self, tmp_path, save_dir):
        from schem_core.errors import UnauthorizedError
        from schem_holders.input_resolver import PERMISSION_LOAD_OTHER
        from schem_io import SCHEMATIC
        secret = tmp_path / "secret"
        secret.mkdir()
        (secret / "loot.schematic").write_bytes(_schematic_bytes(7))
        loader = self._loader(tmp_path)
        actor = FakeActor()
        with pytest.raises(UnauthorizedError):
            loader.load_all_from_input(actor, str(secret / "loot"), SCHEMATIC)
        assert actor.messages and PERMISSION_LOAD_OTHER in actor.messages[0]

        admin = FakeActor(permissions=[PERMISSION_LOAD_OTHER])
        multi = loader.load_all_from_input(admin, str(secret / "loot"), SCHEMATIC)
        assert multi.get_clipboard().get_block(1, 1, 1) == (7, 0)

    def test_symlink_out_of_save_dir_rejected(self, tmp_path, save_dir):
        from schem_core.errors import UnauthorizedError
        from schem_io import SCHEMATIC
        secret = tmp_path / "secret"
        secret.mkdir()
        (secret / "loot.schematic").write_bytes(_schematic_bytes(7))
        try:
            (save_dir / "link").symlink_to(secret, target_is_directory=True)
        except OSError:
            pytest.skip("symlinks unavailable")
        with pytest.raises(UnauthorizedError):
            self._loader(tmp_path).load_all_from_input(FakeActor(), "link/loot", SCHEMATIC)

    def test_per_player_directory(self, tmp_path, save_dir):
        from schem_io import SCHEMATIC
        own = save_dir / "player-1"
        own.mkdir()
        (own / "house.schematic").write_bytes(_schematic_bytes(5))
        loader = self._loader(tmp_path, per_player_schematics=True)
        actor = FakeActor("player-1")
        assert loader.load_all_from_input(actor, "house", SCHEMATIC).get_clipboard().get_block(1, 1, 1) == (5, 0)
        # 裸名称回退到共享根目录
        assert loader.load_all_from_input(actor, "castle", SCHEMATIC) is not None
        assert loader.load_all_from_input(FakeActor("player-2"), "house", SCHEMATIC) is None

    def test_untrusted_host(self, tmp_path):
        from schem_core.errors import UnauthorizedError
        from schem_io import SCHEMATIC
        actor = FakeActor()
        loader = self._loader(tmp_path, opener=lambda u: pytest.fail("must not download"))
        with pytest.raises(UnauthorizedError):
            loader.load_all_from_input(actor, "https://evil.example/pack.zip", SCHEMATIC)
        assert actor.messages

    def test_trusted_host(self, tmp_path):
        from schem_io import SCHEMATIC
        payload = _zip([("a.schematic", _schematic_bytes(3))])
        loader = self._loader(tmp_path, opener=lambda u: io.BytesIO(payload))
        multi = loader.load_all_from_input(FakeActor(), "https://EMPCRAFT.com/fawe/p.zip", SCHEMATIC)
        assert multi.get_clipboard().get_block(1, 1, 1) == (3, 0)

    def test_url_shortcut(self, tmp_path):
        from schem_io import SCHEMATIC
        requested = []
        payload = _zip([("a.schematic", _schematic_bytes())])

        def opener(url):
            requested.append(url)
            return io.BytesIO(payload)

        loader = self._loader(tmp_path, opener=opener)
        assert loader.load_all_from_input(FakeActor(), "url:abc123", SCHEMATIC) is not None
        assert requested == ["https://empcraft.com/fawe/uploads/abc123.schematic"]

    def test_remote_not_found(self, tmp_path):
        from schem_io import SCHEMATIC
        payload = _zip([("readme.txt", b"")])
        actor = FakeActor()
        loader = self._loader(tmp_path, opener=lambda u: io.BytesIO(payload))
        assert loader.load_all_from_input(actor, "https://empcraft.com/fawe/p.zip", SCHEMATIC) is None
        assert actor.messages


class TestLoadSchematic:

    def test_detects_format(self, tmp_path):
        from schem_holders.input_resolver import load_schematic
        path = tmp_path / "gate.schematic"
        path.write_bytes(_schematic_bytes(6))
        schematic = load_schematic(path)
        assert schematic.name == "gate"
        assert schematic.clipboard.get_block(1, 1, 1) == (6, 0)

    def test_missing(self, tmp_path):
        from schem_core.errors import NotFoundError
        from schem_holders.input_resolver import load_schematic
        with pytest.raises(NotFoundError):
            load_schematic(tmp_path / "nope.schematic")

    def test_unknown_format(self, tmp_path):
        from schem_core.errors import FormatError
        from schem_holders.input_resolver import load_schematic
        path = tmp_path / "notes.txt"
        path.write_text("plain text", encoding="utf-8")
        with pytest.raises(FormatError):
            load_schematic(path)
