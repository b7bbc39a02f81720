"""Platform-aware desktop notifications for finished transfers."""

import logging
import subprocess
import sys

from sshhop.config import CFG

logger = logging.getLogger(__name__)


def _escape(text):
    return text.replace("\\", "\\\\").replace('"', '\\"')


def notify(title, message):
    """Send a desktop notification if enabled in config."""
    if not CFG.get("notifications", True):
        return False
    return notify_desktop(title, message)


def notify_desktop(title, message):
    """Platform-aware desktop notification."""
    if sys.platform == "darwin":
        cmd = ["osascript", "-e",
               f'display notification "{_escape(message)}" with title "{_escape(title)}"']
    elif sys.platform.startswith("linux"):
        cmd = ["notify-send", title, message]
    else:
        return False
    try:
        subprocess.run(cmd, capture_output=True, timeout=5)
    except (OSError, subprocess.TimeoutExpired) as e:
        logger.debug("Notification failed: %s", e)
        return False
    return True


def transfer_finished(request, result):
    """Notify about a transfer outcome; cancelled transfers stay quiet."""
    if result.cancelled:
        return False
    verb = "Uploaded" if str(request.direction) == "upload" else "Downloaded"
    if result.success:
        return notify("sshhop", f"{verb} {request.source} -> {request.destination}")
    return notify("sshhop", f"Transfer to {request.host} failed: {result.error}")
