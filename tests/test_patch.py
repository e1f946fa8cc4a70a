import pytest

from tool_warden.errors import OutsideAllowedRoots, PatchError, WardenError
from tool_warden.matcher import EditRequest
from tool_warden.patch import apply_file_patch, apply_patch, parse_patch

ADD = """\
*** Begin Patch
*** Add File: src/new.py
+print("hi")
+print("bye")
*** End Patch
"""

FULL = """\
*** Begin Patch
*** Update File: notes.txt
@@ FULL
+fresh
*** End Patch
"""

HUNKS = """\
*** Begin Patch
*** Update File: m.py
@@
 def f():
-    return 1
+    return 2
@@
 def g():
-    pass
+    return 3
*** End Patch
"""


def test_parse_add():
    [fp] = parse_patch(ADD)
    assert (fp.op, fp.path, fp.mode) == ("add", "src/new.py", "full")
    assert fp.content == 'print("hi")\nprint("bye")\n'


def test_parse_hunks_become_edits():
    [fp] = parse_patch(HUNKS)
    assert fp.mode == "hunks"
    assert fp.edits == (
        EditRequest("def f():\n    return 1\n", "def f():\n    return 2\n"),
        EditRequest("def g():\n    pass\n", "def g():\n    return 3\n"),
    )


def test_apply_add(ws, root):
    apply_patch(ws, ADD)
    assert (root / "src" / "new.py").read_text(encoding="utf-8") == 'print("hi")\nprint("bye")\n'


def test_add_existing_needs_force(ws, root):
    (root / "src").mkdir()
    (root / "src" / "new.py").write_text("old\n", encoding="utf-8")
    with pytest.raises(PatchError):
        apply_patch(ws, ADD)
    apply_patch(ws, ADD, allow_overwrite=True)
    assert (root / "src" / "new.py").read_text(encoding="utf-8").startswith("print")


def test_apply_full(ws, root):
    (root / "notes.txt").write_text("stale\n", encoding="utf-8")
    apply_patch(ws, FULL)
    assert (root / "notes.txt").read_text(encoding="utf-8") == "fresh\n"


def test_full_update_of_missing_file(ws):
    with pytest.raises(PatchError):
        apply_patch(ws, FULL)


def test_apply_hunks(ws, root):
    (root / "m.py").write_text("def f():\n    return 1\n\n\ndef g():\n    pass\n", encoding="utf-8")
    apply_patch(ws, HUNKS)
    assert (root / "m.py").read_text(encoding="utf-8") == "def f():\n    return 2\n\n\ndef g():\n    return 3\n"


def test_hunk_not_found(ws, root):
    (root / "m.py").write_text("def h():\n    return 0\n", encoding="utf-8")
    with pytest.raises(PatchError) as exc:
        apply_patch(ws, HUNKS)
    assert "m.py" in str(exc.value)
    assert (root / "m.py").read_text(encoding="utf-8") == "def h():\n    return 0\n"


def test_patch_outside_root_is_refused(ws):
    [fp] = parse_patch(ADD.replace("src/new.py", "../evil.py"))
    with pytest.raises(OutsideAllowedRoots):
        apply_file_patch(ws, fp)


def test_multi_file_patch(ws, root):
    (root / "notes.txt").write_text("stale\n", encoding="utf-8")
    text = ADD.replace("*** End Patch\n", "") + FULL.replace("*** Begin Patch\n", "")
    patches = apply_patch(ws, text)
    assert [fp.path for fp in patches] == ["src/new.py", "notes.txt"]
    assert (root / "notes.txt").read_text(encoding="utf-8") == "fresh\n"


@pytest.mark.parametrize(
    "second",
    [
        "*** Update File: missing.txt\n@@ FULL\n+x\n",
        "*** Update File: m.py\n@@\n-not there\n+x\n",
        "*** Update File: locked.txt\n@@ FULL\n+x\n",
    ],
)
def test_refused_section_leaves_every_file_untouched(ws, root, second):
    (root / "m.py").write_text("def f():\n    return 1\n", encoding="utf-8")
    (root / "locked.txt").write_text("keep\n", encoding="utf-8")
    text = "*** Begin Patch\n*** Add File: first.txt\n+hello\n" + second + "*** End Patch\n"
    with pytest.raises(WardenError):
        apply_patch(ws, text)
    assert not (root / "first.txt").exists()
    assert (root / "m.py").read_text(encoding="utf-8") == "def f():\n    return 1\n"
    assert (root / "locked.txt").read_text(encoding="utf-8") == "keep\n"


def test_same_file_twice_is_refused(ws, root):
    (root / "notes.txt").write_text("stale\n", encoding="utf-8")
    text = FULL.replace("*** End Patch\n", "") + "*** Update File: ./notes.txt\n@@ FULL\n+again\n*** End Patch\n"
    with pytest.raises(PatchError, match="twice"):
        apply_patch(ws, text)
    assert (root / "notes.txt").read_text(encoding="utf-8") == "stale\n"


def test_hunks_keep_crlf_and_bom(ws, root):
    (root / "m.py").write_bytes(b"\xef\xbb\xbfdef f():\r\n    return 1\r\n")
    apply_patch(ws, HUNKS.split("@@\n def g")[0] + "*** End Patch\n")
    assert (root / "m.py").read_bytes() == b"\xef\xbb\xbfdef f():\r\n    return 2\r\n"



@pytest.mark.parametrize(
    "text",
    [
        "",
        "*** Add File: a.txt\n+x\n*** End Patch\n",
        "*** Begin Patch\n*** Add File: a.txt\n+x\n",
        "*** Begin Patch\n*** End Patch\n",
        "*** Begin Patch\n*** Delete File: a.txt\n*** End Patch\n",
        "*** Begin Patch\n*** Add File: a.txt\nx\n*** End Patch\n",
        "*** Begin Patch\n*** Update File: a.txt\n-old\n*** End Patch\n",
        "*** Begin Patch\n*** Update File: a.txt\n@@\n+only added\n*** End Patch\n",
        "*** Begin Patch\n*** Update File: a.txt\n@@\n context\n*** End Patch\n",
        "*** Begin Patch\n*** Update File: a.txt\n@@\n*bad\n*** End Patch\n",
    ],
)
def test_malformed_patches(text):
    with pytest.raises(PatchError):
        parse_patch(text)
