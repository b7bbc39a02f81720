"""Tests for sshhop/notifications.py."""

import subprocess
from unittest.mock import patch

from sshhop import notifications
from sshhop.config import CFG
from sshhop.errors import CancellationError, TransferError
from sshhop.transport import Direction, TransferRequest, TransferResult

UPLOAD = TransferRequest("web", Direction.UPLOAD, "/tmp/a.txt", "/srv")


class TestNotifyDesktop:
    def test_linux_uses_notify_send(self):
        with patch("sshhop.notifications.sys.platform", "linux"), \
                patch("sshhop.notifications.subprocess.run") as run:
            assert notifications.notify_desktop("sshhop", "done")
        assert run.call_args[0][0] == ["notify-send", "sshhop", "done"]

    def test_macos_escapes_quotes(self):
        with patch("sshhop.notifications.sys.platform", "darwin"), \
                patch("sshhop.notifications.subprocess.run") as run:
            notifications.notify_desktop("sshhop", 'say "hi"')
        assert 'display notification "say \\"hi\\""' in run.call_args[0][0][2]

    def test_missing_tool_is_not_an_error(self):
        with patch("sshhop.notifications.sys.platform", "linux"), \
                patch("sshhop.notifications.subprocess.run", side_effect=FileNotFoundError("notify-send")):
            assert not notifications.notify_desktop("sshhop", "done")

    def test_timeout(self):
        with patch("sshhop.notifications.sys.platform", "linux"), \
                patch("sshhop.notifications.subprocess.run",
                      side_effect=subprocess.TimeoutExpired("notify-send", 5)):
            assert not notifications.notify_desktop("sshhop", "done")


class TestTransferFinished:
    def test_success_message(self):
        with patch.dict(CFG, {"notifications": True}), \
                patch("sshhop.notifications.notify_desktop", return_value=True) as desk:
            notifications.transfer_finished(UPLOAD, TransferResult(True))
        desk.assert_called_once_with("sshhop", "Uploaded /tmp/a.txt -> web:/srv")

    def test_failure_message(self):
        with patch.dict(CFG, {"notifications": True}), \
                patch("sshhop.notifications.notify_desktop") as desk:
            notifications.transfer_finished(UPLOAD, TransferResult(False, TransferError("boom")))
        assert desk.call_args[0][1] == "Transfer to web failed: boom"

    def test_cancel_is_quiet(self):
        with patch("sshhop.notifications.notify_desktop") as desk:
            result = TransferResult(False, CancellationError())
            assert not notifications.transfer_finished(UPLOAD, result)
        desk.assert_not_called()

    def test_disabled_in_config(self):
        with patch.dict(CFG, {"notifications": False}), \
                patch("sshhop.notifications.notify_desktop") as desk:
            assert not notifications.notify("sshhop", "done")
        desk.assert_not_called()
