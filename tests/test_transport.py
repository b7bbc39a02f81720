"""Tests for sshhop/transport.py: command building, paths, and RunningTransfer."""

import subprocess
import threading
from unittest.mock import MagicMock, patch

import pytest

from sshhop import transport
from sshhop.errors import CancellationError, TransferError, ValidationError
from sshhop.transport import (
    Direction, RunningTransfer, TransferRequest, TransferResult, build_command,
    download_target, parse_transfer_args, validate_local_path,
)


def _request(**kw):
    base = dict(host="myhost", direction=Direction.UPLOAD, local_path="./site",
                remote_path="/var/www/")
    base.update(kw)
    return TransferRequest(**base)


class FakeProc:
    """A copy process that runs until killed or told to exit."""

    def __init__(self, returncode=0, stderr=""):
        self._exit = threading.Event()
        self._code = returncode
        self._stderr = stderr
        self.returncode = None
        self.killed = 0

    def communicate(self):
        self._exit.wait(5)
        self.returncode = self._code
        return "", self._stderr

    def poll(self):
        return self.returncode

    def kill(self):
        self.killed += 1
        self._code = -9
        self._exit.set()

    def finish(self):
        self._exit.set()


# ---------------------------------------------------------------------------
# Command building
# ---------------------------------------------------------------------------


class TestBuildCommand:
    def test_recursive_upload(self):
        req = _request(recursive=True)
        assert build_command(req, tool="scp") == ["scp", "-r", "./site", "myhost:/var/www/"]

    def test_download_order(self):
        req = _request(direction=Direction.DOWNLOAD, local_path="./downloads/app.log",
                       remote_path="/var/log/app.log")
        assert build_command(req, tool="scp") == [
            "scp", "myhost:/var/log/app.log", "./downloads/app.log",
        ]

    def test_config_file_flag(self):
        req = _request(config_file="/etc/ssh/alt_config")
        assert build_command(req, tool="scp") == [
            "scp", "-F", "/etc/ssh/alt_config", "./site", "myhost:/var/www/",
        ]

    def test_default_tool_from_config(self):
        assert build_command(_request())[0] == "scp"


# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------


class TestPaths:
    def test_download_target_appends_basename_for_directories(self):
        assert download_target("./downloads/", "/var/log/app.log", isdir=lambda p: True) == "./downloads/app.log"

    def test_download_target_keeps_file_destination(self):
        assert download_target("./out.log", "/var/log/app.log", isdir=lambda p: False) == "./out.log"

    def test_download_target_trailing_slash_remote(self):
        assert download_target("/tmp", "/var/www/", isdir=lambda p: True) == "/tmp/www"

    def test_validate_empty_path(self):
        with pytest.raises(ValidationError, match="required"):
            validate_local_path("", Direction.UPLOAD)

    def test_validate_missing_upload_source(self, tmp_path):
        with pytest.raises(ValidationError, match="does not exist"):
            validate_local_path(str(tmp_path / "nope"), Direction.UPLOAD)

    def test_validate_missing_download_parent(self, tmp_path):
        with pytest.raises(ValidationError, match="destination directory"):
            validate_local_path(str(tmp_path / "a" / "b.txt"), Direction.DOWNLOAD)

    def test_validate_download_into_new_file(self, tmp_path):
        validate_local_path(str(tmp_path / "new.txt"), Direction.DOWNLOAD)


class TestParseTransferArgs:
    def test_upload_directory_is_recursive(self, tmp_path):
        (tmp_path / "site").mkdir()
        req = parse_transfer_args(str(tmp_path / "site"), "myhost:/var/www/")
        assert req.direction is Direction.UPLOAD
        assert req.recursive
        assert req.host == "myhost"

    def test_download(self):
        req = parse_transfer_args("myhost:/var/log/app.log", "./downloads/", "/etc/ssh/alt")
        assert req.direction is Direction.DOWNLOAD
        assert req.remote_path == "/var/log/app.log"
        assert req.local_path == "./downloads/"
        assert req.config_file == "/etc/ssh/alt"

    def test_two_remotes_rejected(self):
        with pytest.raises(ValidationError, match="two remote"):
            parse_transfer_args("a:/x", "b:/y")

    def test_two_locals_rejected(self):
        with pytest.raises(ValidationError, match="must be a remote"):
            parse_transfer_args("./x", "./y")

    def test_missing_upload_source(self, tmp_path):
        with pytest.raises(ValidationError, match="does not exist"):
            parse_transfer_args(str(tmp_path / "gone"), "myhost:/tmp")

    def test_empty_host(self):
        with pytest.raises(ValidationError, match="host"):
            parse_transfer_args(":/etc/hosts", "./hosts")


# ---------------------------------------------------------------------------
# Blocking run
# ---------------------------------------------------------------------------


class TestRun:
    def test_success(self):
        with patch("sshhop.transport.subprocess.run", return_value=MagicMock(returncode=0)) as run:
            result = transport.run(_request())
        assert result.success
        assert run.call_args[0][0][-2:] == ["./site", "myhost:/var/www/"]

    def test_non_zero_exit(self):
        with patch("sshhop.transport.subprocess.run", return_value=MagicMock(returncode=1)):
            result = transport.run(_request())
        assert not result.success
        assert isinstance(result.error, TransferError)
        assert "status 1" in str(result.error)

    def test_start_failure(self):
        with patch("sshhop.transport.subprocess.run", side_effect=FileNotFoundError("scp")):
            result = transport.run(_request())
        assert not result.success
        assert "could not start" in str(result.error)


# ---------------------------------------------------------------------------
# RunningTransfer
# ---------------------------------------------------------------------------


class TestRunningTransfer:
    def _start(self, proc):
        with patch("sshhop.transport.subprocess.Popen", return_value=proc):
            return transport.start(_request())

    def test_success_publishes_once(self):
        proc = FakeProc(returncode=0)
        handle = self._start(proc)
        results = []
        handle.add_done_callback(results.append)
        proc.finish()
        assert handle.wait(timeout=5).success
        assert results == [TransferResult(True)]
        assert handle.done

    def test_failure_keeps_stderr(self):
        proc = FakeProc(returncode=1, stderr="scp: /var/www: Permission denied\n")
        handle = self._start(proc)
        proc.finish()
        result = handle.wait(timeout=5)
        assert not result.success
        assert str(result.error) == "scp: /var/www: Permission denied"

    def test_cancel_yields_single_cancellation(self):
        proc = FakeProc()
        handle = self._start(proc)
        results = []
        handle.add_done_callback(results.append)
        handle.cancel()
        handle.cancel()
        transport.cancel(handle)
        result = handle.wait(timeout=5)
        assert result.cancelled
        assert isinstance(result.error, CancellationError)
        assert proc.killed == 1
        assert len(results) == 1

    def test_cancel_wins_over_concurrent_natural_exit(self):
        handle = RunningTransfer(_request())
        proc = MagicMock()
        proc.poll.return_value = 0
        handle._proc = proc
        results = []
        handle.add_done_callback(results.append)
        handle.cancel()
        # The wait thread reports the exit status after the cancel landed
        handle._publish(TransferResult(True))
        assert len(results) == 1
        assert results[0].cancelled
        proc.kill.assert_not_called()

    def test_cancel_after_completion_is_noop(self):
        proc = FakeProc(returncode=0)
        handle = self._start(proc)
        proc.finish()
        handle.wait(timeout=5)
        handle.cancel()
        assert handle.result.success
        assert not handle.cancelled

    def test_callback_added_after_completion_fires_immediately(self):
        proc = FakeProc(returncode=0)
        handle = self._start(proc)
        proc.finish()
        handle.wait(timeout=5)
        results = []
        handle.add_done_callback(results.append)
        assert results == [TransferResult(True)]

    def test_spawn_failure_is_reported(self):
        with patch("sshhop.transport.subprocess.Popen", side_effect=OSError("no scp")):
            handle = transport.start(_request())
        result = handle.wait(timeout=1)
        assert not result.success
        assert isinstance(result.error, TransferError)
        assert "no scp" in str(result.error)

    def test_cancel_before_spawn_publishes_directly(self):
        handle = RunningTransfer(_request())
        handle.cancel()
        assert handle.done
        assert handle.result.cancelled

    def test_popen_arguments(self):
        proc = FakeProc()
        with patch("sshhop.transport.subprocess.Popen", return_value=proc) as popen:
            handle = transport.start(_request(recursive=True))
        proc.finish()
        handle.wait(timeout=5)
        args, kwargs = popen.call_args
        assert args[0][-3:] == ["-r", "./site", "myhost:/var/www/"]
        assert kwargs["stdin"] is subprocess.DEVNULL
