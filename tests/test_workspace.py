import pytest

from tool_warden.config import WardenConfig
from tool_warden.errors import (
    DestructiveCommand,
    DisallowedCommand,
    OldTextNotFound,
    OutsideAllowedRoots,
    PathArgumentOutsideRoots,
    PathNotFound,
    ReadOnlyFile,
)
from tool_warden.workspace import Workspace


def test_write_creates_parents(ws, root):
    written = ws.write_text("a/b/c.txt", "hi\n")
    assert written == root / "a" / "b" / "c.txt"
    assert written.read_text(encoding="utf-8") == "hi\n"


def test_write_outside_is_refused(ws, outside):
    with pytest.raises(OutsideAllowedRoots):
        ws.write_text("../outside/evil.txt", "x")
    assert not (outside / "evil.txt").exists()


def test_read_only_file(ws, root):
    (root / "locked.txt").write_text("keep\n", encoding="utf-8")
    with pytest.raises(ReadOnlyFile):
        ws.write_text("locked.txt", "changed")
    with pytest.raises(ReadOnlyFile):
        ws.edit_file("locked.txt", [("keep", "changed")])
    assert (root / "locked.txt").read_text(encoding="utf-8") == "keep\n"
    assert ws.read_text("locked.txt") == "keep\n"


def test_check_writable_does_not_create(ws, root):
    resolved = ws.check_writable("a/new.txt")
    assert resolved.path == root / "a" / "new.txt"
    assert not resolved.exists
    assert not (root / "a").exists()
    with pytest.raises(ReadOnlyFile):
        ws.check_writable("locked.txt")


def test_write_keeps_crlf_verbatim(ws, root):
    ws.write_text("w.txt", "a\r\nb\r\n")
    assert (root / "w.txt").read_bytes() == b"a\r\nb\r\n"


def test_read_missing(ws):
    with pytest.raises(PathNotFound):
        ws.read_text("missing.txt")


def test_read_directory(ws, root):
    (root / "d").mkdir()
    with pytest.raises(IsADirectoryError):
        ws.read_text("d")


def test_edit_file(ws, root):
    (root / "app.py").write_text("def f():\n    return 1\n", encoding="utf-8")
    out = ws.edit_file("app.py", [{"old_text": "return 1", "new_text": "return 2"}])
    assert out == "def f():\n    return 2\n"
    assert (root / "app.py").read_text(encoding="utf-8") == out


def test_edit_preserves_crlf(ws, root):
    (root / "win.txt").write_bytes(b"a\r\nb\r\n")
    ws.edit_file("win.txt", [("a\nb", "x\ny")])
    assert (root / "win.txt").read_bytes() == b"x\r\ny\r\n"


def test_edit_preserves_bom(ws, root):
    (root / "bom.txt").write_bytes("\ufeffhello\n".encode("utf-8"))
    ws.edit_file("bom.txt", [("hello", "bye")])
    assert (root / "bom.txt").read_bytes() == "\ufeffbye\n".encode("utf-8")


def test_edit_dry_run(ws, root):
    (root / "a.txt").write_text("one\n", encoding="utf-8")
    assert ws.edit_file("a.txt", [("one", "two")], dry_run=True) == "two\n"
    assert (root / "a.txt").read_text(encoding="utf-8") == "one\n"


def test_failed_batch_leaves_file_alone(ws, root):
    (root / "a.txt").write_text("one\ntwo\n", encoding="utf-8")
    with pytest.raises(OldTextNotFound):
        ws.edit_file("a.txt", [("one", "1"), ("three", "3")])
    assert (root / "a.txt").read_text(encoding="utf-8") == "one\ntwo\n"


def test_list_dir(ws, root):
    (root / "src").mkdir()
    (root / "README.md").write_text("x", encoding="utf-8")
    (root / ".env").write_text("x", encoding="utf-8")
    assert ws.list_dir() == ["README.md", "src/"]
    assert ".env" in ws.list_dir(include_hidden=True)


def test_exists(ws, root):
    (root / "a.txt").write_text("x", encoding="utf-8")
    assert ws.exists("a.txt")
    assert not ws.exists("b.txt")


def test_check_command_plan(ws, root):
    plan = ws.check_command("ls -la && git status")
    assert plan.cwd == root
    assert plan.programs == ("ls", "git")
    assert not plan.mutating

    (root / "src").mkdir()
    plan = ws.check_command("echo hi > out.txt", cwd="src")
    assert plan.cwd == root / "src"
    assert plan.mutating


@pytest.mark.parametrize(
    "command,cwd,error",
    [
        ("curl example.com", None, DisallowedCommand),
        ("cat /etc/passwd", None, PathArgumentOutsideRoots),
        ("git reset --hard", None, DestructiveCommand),
        ("rm -rf $TMPDIR/x .", None, DestructiveCommand),
        ("rm -r -f src", None, DestructiveCommand),
        ("rm -rf src", None, DestructiveCommand),
        ("ls", "..", OutsideAllowedRoots),
        ("ls", "missing", PathNotFound),
    ],
)
def test_check_command_refusals(ws, command, cwd, error):
    with pytest.raises(error):
        ws.check_command(command, cwd)


def test_cwd_must_be_a_directory(ws, root):
    (root / "file.txt").write_text("x", encoding="utf-8")
    with pytest.raises(NotADirectoryError):
        ws.check_command("ls", "file.txt")


def test_destructive_protection_can_be_disabled(root):
    ws = Workspace.from_path(root, allowed_programs=("git",), protect_destructive=False)
    assert ws.check_command("git reset --hard").mutating


def test_from_config(tmp_path):
    base = tmp_path.resolve()
    (base / "proj").mkdir()
    cfg = WardenConfig(
        raw={
            "workspace": {"roots": ["proj", str(base / "shared")], "read_only_files": ["lock.json"]},
            "commands": {"allowed": ["ls"], "protect_destructive": False},
        },
        base_dir=base,
    )
    ws = Workspace.from_config(cfg)
    assert ws.roots == (base / "proj", base / "shared")
    assert ws.allowed_programs == ("ls",)
    assert ws.read_only_files == ("lock.json",)
    assert ws.protect_destructive is False
    assert ws.is_read_only("lock.json")


def test_from_config_root_override(tmp_path, root):
    ws = Workspace.from_config(WardenConfig(raw={}, base_dir=tmp_path), roots=[root])
    assert ws.roots == (root,)
