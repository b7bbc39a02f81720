"""Transfer engine: build, run, and cancel copy-tool invocations."""

import logging
import os
import subprocess
import threading
from dataclasses import dataclass
from enum import Enum

from sshhop.config import CFG
from sshhop.errors import CancellationError, TransferError, ValidationError

logger = logging.getLogger(__name__)


class Direction(Enum):
    UPLOAD = "upload"
    DOWNLOAD = "download"

    def __str__(self):
        return self.value


@dataclass(frozen=True)
class TransferRequest:
    host: str
    direction: Direction
    local_path: str
    remote_path: str
    recursive: bool = False
    config_file: str = ""

    @property
    def remote_spec(self):
        return f"{self.host}:{self.remote_path}"

    @property
    def source(self):
        return self.local_path if self.direction is Direction.UPLOAD else self.remote_spec

    @property
    def destination(self):
        return self.remote_spec if self.direction is Direction.UPLOAD else self.local_path


@dataclass(frozen=True)
class TransferResult:
    success: bool
    error: Exception = None

    @property
    def cancelled(self):
        return isinstance(self.error, CancellationError)


def build_command(request, tool=None):
    """Return the argv for the copy tool: [-r] [-F config] source dest."""
    cmd = [tool or CFG.get("copy_tool", "scp")]
    if request.recursive:
        cmd.append("-r")
    if request.config_file:
        cmd.extend(["-F", os.path.expanduser(request.config_file)])
    cmd.extend([request.source, request.destination])
    return cmd


def run(request):
    """Blocking transfer with the terminal attached, so ssh can prompt."""
    cmd = build_command(request)
    logger.info("Running %s", " ".join(cmd))
    try:
        proc = subprocess.run(cmd)
    except OSError as e:
        logger.error("Could not start %s: %s", cmd[0], e)
        return TransferResult(False, TransferError(f"could not start {cmd[0]}: {e}"))
    if proc.returncode != 0:
        return TransferResult(False, TransferError(f"{cmd[0]} exited with status {proc.returncode}"))
    return TransferResult(True)


class RunningTransfer:
    """Handle to one in-flight transfer.

    The result is published exactly once. A cancel that lands before the
    result is published wins over the process exit status.
    """

    def __init__(self, request):
        self.request = request
        self.command = build_command(request)
        self._proc = None
        self._lock = threading.Lock()
        self._cancelled = False
        self._result = None
        self._done = threading.Event()
        self._callbacks = []

    @property
    def cancelled(self):
        return self._cancelled

    @property
    def done(self):
        return self._done.is_set()

    @property
    def result(self):
        return self._result

    def _spawn(self):
        try:
            self._proc = subprocess.Popen(
                self.command, stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL, stderr=subprocess.PIPE, text=True,
            )
        except OSError as e:
            logger.error("Could not start %s: %s", self.command[0], e)
            self._publish(TransferResult(False, TransferError(f"could not start {self.command[0]}: {e}")))
            return
        threading.Thread(target=self._wait, daemon=True).start()

    def _wait(self):
        _, stderr = self._proc.communicate()
        code = self._proc.returncode
        if code == 0:
            self._publish(TransferResult(True))
        else:
            detail = (stderr or "").strip() or f"{self.command[0]} exited with status {code}"
            self._publish(TransferResult(False, TransferError(detail)))

    def _publish(self, result):
        with self._lock:
            if self._result is not None:
                return
            if self._cancelled:
                result = TransferResult(False, CancellationError())
            self._result = result
            callbacks, self._callbacks = self._callbacks, []
        self._done.set()
        logger.info("Transfer %s -> %s finished: %s", self.request.source,
                    self.request.destination, "ok" if result.success else result.error)
        for fn in callbacks:
            fn(result)

    def cancel(self):
        """Kill the copy process. Safe to call any number of times."""
        with self._lock:
            if self._cancelled or self._result is not None:
                return
            self._cancelled = True
            proc = self._proc
        if proc is not None and proc.poll() is None:
            try:
                proc.kill()
            except OSError as e:
                logger.debug("kill failed: %s", e)
        if proc is None:
            self._publish(TransferResult(False, CancellationError()))

    def add_done_callback(self, fn):
        """Call fn(result) once the transfer finishes."""
        with self._lock:
            if self._result is None:
                self._callbacks.append(fn)
                return
            result = self._result
        fn(result)

    def wait(self, timeout=None):
        self._done.wait(timeout)
        return self._result


def start(request):
    """Start a transfer in the background and return its handle."""
    handle = RunningTransfer(request)
    logger.info("Starting %s", " ".join(handle.command))
    handle._spawn()
    return handle


def cancel(handle):
    if handle is not None:
        handle.cancel()


# ─── Paths ──────────────────────────────────────────────────────────────────

def expand_path(path):
    """Expand ~ and make a local path absolute."""
    return os.path.abspath(os.path.expanduser(path))


def validate_local_path(path, direction):
    if not path:
        raise ValidationError("local path is required")
    if direction is Direction.UPLOAD:
        if not os.path.exists(path):
            raise ValidationError(f"file or directory does not exist: {path}")
    else:
        parent = os.path.dirname(path.rstrip(os.sep)) if not os.path.isdir(path) else path
        if parent and not os.path.isdir(parent):
            raise ValidationError(f"destination directory does not exist: {parent}")


def download_target(local_path, remote_path, isdir=os.path.isdir):
    """Append the remote basename when downloading into an existing directory."""
    if isdir(local_path):
        name = os.path.basename(remote_path.rstrip("/"))
        if name:
            return os.path.join(local_path, name)
    return local_path


def parse_transfer_args(source, dest, config_file=""):
    """Turn scp-style `cp` arguments into a TransferRequest."""
    source_remote = ":" in source
    dest_remote = ":" in dest
    if source_remote and dest_remote:
        raise ValidationError("cannot transfer between two remote hosts")
    if not source_remote and not dest_remote:
        raise ValidationError("either source or destination must be a remote path (host:/path)")

    if source_remote:
        host, remote_path = source.split(":", 1)
        direction, local_path = Direction.DOWNLOAD, dest
    else:
        host, remote_path = dest.split(":", 1)
        direction, local_path = Direction.UPLOAD, source
    if not host:
        raise ValidationError("remote path is missing a host name")
    if not remote_path:
        raise ValidationError("remote path is required")

    recursive = False
    if direction is Direction.UPLOAD:
        if not os.path.exists(local_path):
            raise ValidationError(f"local path does not exist: {local_path}")
        recursive = os.path.isdir(local_path)

    return TransferRequest(
        host=host, direction=direction, local_path=local_path,
        remote_path=remote_path, recursive=recursive, config_file=config_file,
    )
