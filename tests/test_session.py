"""Tests for sshhop/session.py: listing/search parsing and RemoteSession commands."""

import subprocess
from unittest.mock import MagicMock, patch

import pytest

from sshhop.errors import AuthError, ConnectError, RemoteCommandError
from sshhop.hosts import HostInfo
from sshhop.session import (
    RemoteEntry, RemoteSession, parse_listing, parse_search_output, sanitize_pattern,
    sort_entries,
)

LS_OUTPUT = """total 32
drwxr-xr-x  5 alice alice 4096 Jan  1 10:00 .
drwxr-xr-x  3 root  root  4096 Jan  1 10:00 ..
-rw-r--r--  1 alice alice  220 Jan  1 10:00 .bashrc
drwxr-xr-x  2 alice alice 4096 Jan  1 10:00 Zeta
-rw-r--r--  1 alice alice 1234 Jan  1 10:00 alpha.txt
drwxr-xr-x  2 alice alice 4096 Jan  1 10:00 beta
lrwxrwxrwx  1 alice alice   11 Jan  1 10:00 www -> /var/www
lrwxrwxrwx  1 alice alice    9 Jan  1 10:00 conf.link -> /etc/hosts
-rw-r--r--  1 alice alice   10 Jan  1 10:00 my file.txt
"""


def completed(stdout="", returncode=0, stderr=""):
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr=stderr)


def fake_remote(responses):
    """Build a RemoteSession.run replacement answering by command prefix."""
    calls = []

    def run(command, timeout=None):
        calls.append(command)
        for prefix, out in responses.items():
            if command.startswith(prefix):
                return completed(out)
        raise AssertionError(f"unexpected command: {command}")

    run.calls = calls
    return run


@pytest.fixture()
def session():
    s = RemoteSession("myhost", host_info=HostInfo("10.0.0.5", 22, "alice"))
    s._open = True
    return s


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


class TestParsing:
    def test_parse_listing(self):
        entries, links = parse_listing(LS_OUTPUT, "/home/alice")
        names = [e.name for e in entries]
        assert "." not in names and ".." not in names
        assert "my file.txt" in names
        assert links == ["/home/alice/www", "/home/alice/conf.link"]
        alpha = next(e for e in entries if e.name == "alpha.txt")
        assert alpha.size == 1234
        assert alpha.path == "/home/alice/alpha.txt"
        assert not alpha.is_dir

    def test_sort_order(self):
        entries = [
            RemoteEntry("b.txt", "/x/b.txt", False),
            RemoteEntry("Alpha", "/x/Alpha", True),
            RemoteEntry("..", "/", True),
            RemoteEntry("A.txt", "/x/A.txt", False),
            RemoteEntry("beta", "/x/beta", True),
        ]
        assert [e.name for e in sort_entries(entries)] == ["..", "Alpha", "beta", "A.txt", "b.txt"]

    def test_parse_search_output(self):
        out = "d /var/log\nf /var/log/app.log\ngarbage\nf relative/path\n"
        results = parse_search_output(out)
        assert [(r.name, r.is_dir) for r in results] == [("log", True), ("app.log", False)]

    def test_sanitize_strips_shell_metacharacters(self):
        assert sanitize_pattern("lo'g\";|&$`s") == "logs"

    def test_entry_path_must_be_absolute(self):
        with pytest.raises(ValueError):
            RemoteEntry("x", "relative/x", False)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


class TestListDirectory:
    def test_listing_resolves_symlinks_and_adds_parent(self, session):
        run = fake_remote({
            "echo $HOME": "/home/alice\n",
            "LC_ALL=C ls -la": LS_OUTPUT,
            "for p in": "/home/alice/www\n",
        })
        with patch.object(session, "run", side_effect=run):
            entries = session.list_directory("~")
        assert [e.name for e in entries] == [
            "..", "beta", "www", "Zeta", ".bashrc", "alpha.txt", "conf.link", "my file.txt",
        ]
        assert entries[0].path == "/home"
        www = next(e for e in entries if e.name == "www")
        assert www.is_dir
        assert run.calls[1] == "LC_ALL=C ls -la /home/alice/"

    def test_root_has_no_parent_entry(self, session):
        run = fake_remote({"LC_ALL=C ls -la": "total 0\ndrwxr-xr-x 2 root root 4096 Jan 1 10:00 etc\n"})
        with patch.object(session, "run", side_effect=run):
            entries = session.list_directory("/")
        assert [e.name for e in entries] == ["etc"]

    def test_paths_are_quoted(self, session):
        run = fake_remote({"LC_ALL=C ls -la": "total 0\n"})
        with patch.object(session, "run", side_effect=run):
            session.list_directory("/srv/my dir")
        assert run.calls == ["LC_ALL=C ls -la '/srv/my dir/'"]

    def test_symlinked_directory_lists_its_target(self, session, tmp_path):
        real = tmp_path / "real"
        real.mkdir()
        (real / "inside.txt").write_text("x")
        (tmp_path / "link").symlink_to(real)

        def local_shell(command, timeout=None):
            return subprocess.run(command, shell=True, capture_output=True, text=True)

        with patch.object(session, "run", side_effect=local_shell):
            top = session.list_directory(str(tmp_path))
            link = next(e for e in top if e.name == "link")
            assert link.is_dir
            entries = session.list_directory(link.path)
        assert [e.name for e in entries] == ["..", "inside.txt"]
        assert entries[1].path == str(tmp_path / "link" / "inside.txt")

    def test_expand_path(self, session):
        session._home = "/home/alice"
        assert session.expand_path("~") == "/home/alice"
        assert session.expand_path("~/src/../docs") == "/home/alice/docs"
        assert session.expand_path("projects") == "/home/alice/projects"
        assert session.expand_path("/etc/") == "/etc"

    def test_stat(self, session):
        run = fake_remote({"LC_ALL=C ls -ld": "drwxr-xr-x 2 root root 4096 Jan 1 10:00 /var/www\n"})
        with patch.object(session, "run", side_effect=run):
            entry = session.stat("/var/www")
        assert entry == RemoteEntry("www", "/var/www", True, 4096)


class TestQuickSearch:
    def test_gnu_find_command(self, session):
        run = fake_remote({
            "command -v timeout": "yes\n",
            "timeout 3s find": "f /home/alice/app.log\n",
        })
        with patch.object(session, "run", side_effect=run):
            results = session.quick_search("lo;g", "/home/alice", limit=5)
        assert [r.path for r in results] == ["/home/alice/app.log"]
        command = run.calls[-1]
        assert "-maxdepth 5" in command
        assert "-iname '*log*'" in command
        assert command.endswith("head -n 5")

    def test_portable_fallback(self, session):
        run = fake_remote({
            "command -v timeout": "\n",
            "find /home/alice": "d /home/alice/logs\n",
        })
        with patch.object(session, "run", side_effect=run):
            results = session.quick_search("log", "/home/alice")
            session.quick_search("log", "/home/alice")
        assert results[0].is_dir
        assert "while IFS= read -r f" in run.calls[1]
        # capability probed once per session
        assert sum(c.startswith("command -v") for c in run.calls) == 1

    def test_empty_pattern_after_sanitizing_skips_remote(self, session):
        with patch.object(session, "run") as run:
            assert session.quick_search(";;|", "/") == []
        run.assert_not_called()


class TestRun:
    def test_non_zero_exit_raises_remote_command_error(self, session):
        with patch("sshhop.session.subprocess.run", return_value=completed("", 2, "ls: cannot access")):
            with pytest.raises(RemoteCommandError) as exc:
                session.run("ls /nope")
        assert exc.value.exit_status == 2
        assert "cannot access" in str(exc.value)

    def test_255_is_a_connection_error(self, session):
        with patch("sshhop.session.subprocess.run", return_value=completed("", 255, "Connection reset")):
            with pytest.raises(ConnectError):
                session.run("true")

    def test_timeout(self, session):
        with patch("sshhop.session.subprocess.run", side_effect=subprocess.TimeoutExpired("ssh", 1)):
            with pytest.raises(RemoteCommandError, match="timed out"):
                session.run("sleep 9", timeout=1)

    def test_commands_reuse_master(self, session):
        with patch("sshhop.session.subprocess.run", return_value=completed("ok")) as run:
            session.run("true")
        argv = run.call_args[0][0]
        assert "ControlMaster=no" in argv
        assert argv[-2:] == ["myhost", "true"]


class TestConnect:
    def _fail_with(self, message):
        def run(cmd, **kwargs):
            kwargs["stderr"].write(message)
            return completed("", 255)
        return run

    def test_auth_failure(self):
        s = RemoteSession("myhost")
        with patch("sshhop.session.subprocess.run", side_effect=self._fail_with("Permission denied (publickey).")):
            with pytest.raises(AuthError):
                s.connect()
        assert not s.is_open

    def test_connect_failure(self):
        s = RemoteSession("myhost")
        with patch("sshhop.session.subprocess.run", side_effect=self._fail_with("Could not resolve hostname")):
            with pytest.raises(ConnectError, match="resolve hostname"):
                s.connect()

    def test_open_and_close(self):
        s = RemoteSession("myhost", config_file="/etc/ssh/alt")
        with patch("sshhop.session.subprocess.run", return_value=completed()) as run:
            s.connect()
            assert s.is_open
            s.close()
            s.close()
        connect_argv, close_argv = (c[0][0] for c in run.call_args_list)
        assert "-M" in connect_argv and "-F" in connect_argv
        assert close_argv[-3:] == ["-O", "exit", "myhost"]
        assert not s.is_open

    def test_open_classmethod_resolves_host(self):
        info = HostInfo("10.0.0.5", 2222, "bob")
        with patch("sshhop.session.resolve", return_value=info), \
                patch.object(RemoteSession, "connect", MagicMock()) as connect:
            s = RemoteSession.open("myhost")
        assert s.host_info == info
        connect.assert_called_once()
