"""Remote command session over a multiplexed OpenSSH connection.

One master connection is opened per session and every listing or search
command rides on it, so authentication happens once.  The session is
closed explicitly when browsing ends.
"""

import logging
import os
import posixpath
import shlex
import subprocess
import tempfile
from dataclasses import dataclass, replace

from sshhop.config import CFG
from sshhop.errors import AuthError, ConnectError, RemoteCommandError
from sshhop.hosts import resolve

logger = logging.getLogger(__name__)

CONTROL_PATH = os.path.join(tempfile.gettempdir(), "sshhop-%C")
CONTROL_PERSIST = 600

# Characters stripped from search patterns before they reach the remote shell
UNSAFE_PATTERN_CHARS = "'\";|&$`"

_AUTH_MARKERS = (
    "permission denied",
    "host key verification failed",
    "too many authentication failures",
    "no supported authentication methods",
)


@dataclass(frozen=True)
class RemoteEntry:
    """One file or directory on the remote host."""

    name: str
    path: str
    is_dir: bool
    size: int = 0

    def __post_init__(self):
        if not self.path.startswith("/"):
            raise ValueError(f"remote path must be absolute: {self.path!r}")

    @property
    def is_parent(self):
        return self.name == ".."


def _entry_sort_key(entry):
    return (0 if entry.is_parent else 1, 0 if entry.is_dir else 1, entry.name.lower())


def sort_entries(entries):
    """Order entries: `..` first, then directories, then files, by name."""
    return sorted(entries, key=_entry_sort_key)


def parent_entry(directory):
    return RemoteEntry(name="..", path=posixpath.dirname(directory) or "/", is_dir=True)


def parse_listing(output, directory):
    """Parse `ls -la` output.

    Returns (entries, symlink_paths); symlinks are reported as files until
    their target is checked.
    """
    entries = []
    links = []
    for line in output.splitlines():
        line = line.strip()
        if not line or line.startswith("total "):
            continue
        fields = line.split(None, 8)
        if len(fields) < 9:
            continue
        perms, size, name = fields[0], fields[4], fields[8]
        is_link = perms.startswith("l")
        if is_link and " -> " in name:
            name = name.split(" -> ", 1)[0]
        if name in (".", ".."):
            continue
        try:
            size = int(size)
        except ValueError:
            size = 0
        path = posixpath.join(directory, name)
        if is_link:
            links.append(path)
        entries.append(RemoteEntry(name=name, path=path, is_dir=perms.startswith("d"), size=size))
    return entries, links


def parse_search_output(output):
    """Parse `<type> <path>` lines produced by the search commands."""
    results = []
    for line in output.splitlines():
        line = line.strip()
        if len(line) < 3 or line[1] != " ":
            continue
        kind, path = line[0], line[2:].strip()
        if not path.startswith("/"):
            continue
        results.append(RemoteEntry(
            name=posixpath.basename(path.rstrip("/")) or path,
            path=path,
            is_dir=kind == "d",
        ))
    return results


def sanitize_pattern(pattern):
    return "".join(ch for ch in pattern if ch not in UNSAFE_PATTERN_CHARS)


def _classify_connect_failure(host, stderr):
    text = (stderr or "").strip()
    lowered = text.lower()
    if any(marker in lowered for marker in _AUTH_MARKERS):
        return AuthError(f"authentication to {host} failed: {text}")
    return ConnectError(f"cannot connect to {host}: {text or 'ssh exited with status 255'}")


class RemoteSession:
    """Runs shell commands on one host through a shared SSH master."""

    def __init__(self, host, config_file="", host_info=None):
        self.host = host
        self.config_file = config_file
        self.host_info = host_info
        self._home = None
        self._gnu_find = None
        self._open = False

    @classmethod
    def open(cls, host, config_file=""):
        session = cls(host, config_file, host_info=resolve(host, config_file))
        session.connect()
        return session

    @property
    def is_open(self):
        return self._open

    def _base_args(self):
        args = ["ssh", "-o", "BatchMode=yes", "-o", f"ControlPath={CONTROL_PATH}"]
        if self.config_file:
            args.extend(["-F", os.path.expanduser(self.config_file)])
        return args

    def connect(self):
        """Start the master connection in the background."""
        timeout = int(CFG.get("connect_timeout", 10))
        cmd = self._base_args() + [
            "-o", f"ConnectTimeout={timeout}",
            "-o", "ControlMaster=yes",
            "-o", f"ControlPersist={CONTROL_PERSIST}",
            "-M", "-N", "-f", self.host,
        ]
        # The daemonized master keeps its stderr open; a pipe would never
        # reach EOF, so collect it through a temporary file instead.
        with tempfile.TemporaryFile(mode="w+") as err:
            try:
                result = subprocess.run(
                    cmd, stdin=subprocess.DEVNULL, stdout=subprocess.DEVNULL,
                    stderr=err, timeout=timeout + 5,
                )
            except subprocess.TimeoutExpired:
                raise ConnectError(f"timed out connecting to {self.host}")
            except OSError as e:
                raise ConnectError(f"cannot run ssh: {e}")
            err.seek(0)
            stderr = err.read()

        if result.returncode != 0:
            raise _classify_connect_failure(self.host, stderr)
        self._open = True
        logger.info("Opened session to %s (%s)", self.host,
                    self.host_info.address if self.host_info else self.host)
        return self

    def run(self, command, timeout=None):
        """Run a remote command and return the CompletedProcess."""
        cmd = self._base_args() + ["-o", "ControlMaster=no", self.host, command]
        logger.debug("remote[%s]: %s", self.host, command)
        try:
            result = subprocess.run(
                cmd, capture_output=True, text=True,
                stdin=subprocess.DEVNULL, timeout=timeout,
            )
        except subprocess.TimeoutExpired:
            raise RemoteCommandError(command, -1, "timed out")
        except OSError as e:
            raise ConnectError(f"cannot run ssh: {e}")
        if result.returncode == 255:
            raise _classify_connect_failure(self.host, result.stderr)
        if result.returncode != 0:
            raise RemoteCommandError(command, result.returncode, result.stderr)
        return result

    def home_directory(self):
        if self._home is None:
            home = self.run("echo $HOME").stdout.strip()
            self._home = home or "/"
        return self._home

    def expand_path(self, path):
        """Expand a leading `~` and normalize to an absolute path."""
        path = path or "~"
        if path == "~" or path.startswith("~/"):
            path = self.home_directory() + path[1:]
        if not path.startswith("/"):
            path = posixpath.join(self.home_directory(), path)
        return posixpath.normpath(path)

    def _directory_links(self, links):
        """Return the subset of symlink paths that point at directories."""
        quoted = " ".join(shlex.quote(p) for p in links)
        script = f'for p in {quoted}; do [ -d "$p" ] && echo "$p"; done; true'
        output = self.run(script).stdout
        return {line.strip() for line in output.splitlines() if line.strip()}

    def list_directory(self, path):
        path = self.expand_path(path)
        # Trailing slash so a symlinked directory lists its target, not the link
        result = self.run(f"LC_ALL=C ls -la {shlex.quote(path.rstrip('/') + '/')}")
        entries, links = parse_listing(result.stdout, path)
        if links:
            dir_links = self._directory_links(links)
            entries = [replace(e, is_dir=True) if e.path in dir_links else e for e in entries]
        if path != "/":
            entries.append(parent_entry(path))
        return sort_entries(entries)

    def stat(self, path):
        path = self.expand_path(path)
        result = self.run(f"LC_ALL=C ls -ld {shlex.quote(path)}")
        fields = result.stdout.strip().split(None, 8)
        if len(fields) < 9:
            raise RemoteCommandError(f"ls -ld {path}", 0, "unexpected ls output")
        try:
            size = int(fields[4])
        except ValueError:
            size = 0
        return RemoteEntry(
            name=posixpath.basename(path) or path, path=path,
            is_dir=fields[0].startswith("d"), size=size,
        )

    def _supports_gnu_find(self):
        if self._gnu_find is None:
            probe = ("command -v timeout >/dev/null 2>&1 && "
                     "find / -maxdepth 0 -printf '' >/dev/null 2>&1 && echo yes; true")
            self._gnu_find = self.run(probe).stdout.strip() == "yes"
            logger.debug("GNU find on %s: %s", self.host, self._gnu_find)
        return self._gnu_find

    def search_command(self, pattern, start_dir, limit):
        depth = int(CFG.get("search_max_depth", 5))
        timeout = int(CFG.get("search_timeout", 3))
        glob = shlex.quote(f"*{pattern}*")
        root = shlex.quote(start_dir)
        if self._supports_gnu_find():
            return (f"timeout {timeout}s find {root} -maxdepth {depth} -iname {glob} "
                    f"-printf '%y %p\\n' 2>/dev/null | head -n {limit}")
        return (f"find {root} -maxdepth {depth} -iname {glob} 2>/dev/null | head -n {limit} | "
                'while IFS= read -r f; do if [ -d "$f" ]; then echo "d $f"; '
                'else echo "f $f"; fi; done')

    def quick_search(self, pattern, start_dir, limit=None):
        """Depth- and time-bounded name search below start_dir."""
        pattern = sanitize_pattern(pattern).strip()
        if not pattern:
            return []
        limit = int(limit or CFG.get("search_limit", 30))
        start_dir = self.expand_path(start_dir)
        command = self.search_command(pattern, start_dir, limit)
        wall_clock = int(CFG.get("search_timeout", 3)) + 10
        result = self.run(command, timeout=wall_clock)
        return parse_search_output(result.stdout)

    def close(self):
        if not self._open:
            return
        self._open = False
        cmd = self._base_args() + ["-O", "exit", self.host]
        try:
            subprocess.run(cmd, capture_output=True, stdin=subprocess.DEVNULL, timeout=5)
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.warning("Closing session to %s failed: %s", self.host, e)
        logger.info("Closed session to %s", self.host)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
        return False
