"""Native file dialogs (osascript, zenity, kdialog) with a prompt fallback."""

import logging
import os
import shutil
import subprocess
import sys
from dataclasses import dataclass
from enum import Enum

from sshhop.errors import PickerUnavailableError
from sshhop.ui import error, prompt_text

logger = logging.getLogger(__name__)


class PickerMode(Enum):
    FILE = "file"
    DIRECTORY = "directory"
    SAVE = "save"


@dataclass(frozen=True)
class PickerResult:
    selected: bool
    path: str = ""


CANCELLED = PickerResult(False)


def _backend():
    if sys.platform == "darwin":
        return "osascript" if shutil.which("osascript") else None
    if sys.platform.startswith("linux"):
        for tool in ("zenity", "kdialog"):
            if shutil.which(tool):
                return tool
    return None


def is_available():
    return _backend() is not None


def _escape_applescript(s):
    return s.replace("\\", "\\\\").replace('"', '\\"')


def _osascript_args(mode, title, start_dir, default_name):
    loc = _escape_applescript(start_dir)
    prompt = _escape_applescript(title)
    if mode is PickerMode.FILE:
        chooser = f'choose file with prompt "{prompt}" default location defaultPath'
    elif mode is PickerMode.DIRECTORY:
        chooser = f'choose folder with prompt "{prompt}" default location defaultPath'
    else:
        name = _escape_applescript(default_name)
        chooser = (f'choose file name with prompt "{prompt}" default name "{name}" '
                   f'default location defaultPath')
    script = "\n".join([
        f'set defaultPath to POSIX file "{loc}"',
        "try",
        f"    set picked to {chooser}",
        "    return POSIX path of picked",
        "on error",
        '    return ""',
        "end try",
    ])
    return ["osascript", "-e", script]


def _zenity_args(mode, title, start_dir, default_name):
    args = ["zenity", "--file-selection", "--title", title]
    if mode is PickerMode.DIRECTORY:
        args.append("--directory")
    elif mode is PickerMode.SAVE:
        args.extend(["--save", "--confirm-overwrite"])
    if start_dir:
        args.extend(["--filename", os.path.join(start_dir, default_name)])
    return args


def _kdialog_args(mode, title, start_dir, default_name):
    if mode is PickerMode.FILE:
        return ["kdialog", "--getopenfilename", start_dir, "*", "--title", title]
    if mode is PickerMode.DIRECTORY:
        return ["kdialog", "--getexistingdirectory", start_dir, "--title", title]
    return ["kdialog", "--getsavefilename", os.path.join(start_dir, default_name), "*",
            "--title", title]


_BUILDERS = {
    "osascript": _osascript_args,
    "zenity": _zenity_args,
    "kdialog": _kdialog_args,
}


def open_picker(mode, title, start_dir="", default_name=""):
    """Show a native dialog and block until the user answers."""
    backend = _backend()
    if backend is None:
        raise PickerUnavailableError("no file picker available (install zenity or kdialog)")
    start_dir = start_dir or os.getcwd()
    cmd = _BUILDERS[backend](mode, title, start_dir, default_name)
    try:
        result = subprocess.run(cmd, capture_output=True, text=True)
    except OSError as e:
        raise PickerUnavailableError(f"{backend} failed to start: {e}")
    # Every backend reports a dismissed dialog as a non-zero exit or empty output
    path = result.stdout.strip()
    if result.returncode != 0 or not path:
        logger.debug("%s dialog cancelled (exit %s)", backend, result.returncode)
        return CANCELLED
    return PickerResult(True, path)


def prompt_for_path(mode, title, start_dir="", must_exist=True):
    """Terminal fallback when no native dialog is installed."""
    default = start_dir or os.getcwd()
    while True:
        raw = prompt_text(f"{title} (blank to cancel):", default=default)
        if not raw:
            return CANCELLED
        path = os.path.abspath(os.path.expanduser(raw))
        if mode is PickerMode.DIRECTORY and must_exist and not os.path.isdir(path):
            error(f"Not a directory: {path}")
            continue
        if mode is PickerMode.FILE and must_exist and not os.path.exists(path):
            error(f"Path does not exist: {path}")
            continue
        return PickerResult(True, path)


def pick_local(mode, title, start_dir=""):
    """Native dialog when one exists, terminal prompt otherwise."""
    if is_available():
        try:
            return open_picker(mode, title, start_dir)
        except PickerUnavailableError as e:
            logger.warning("Native picker failed, falling back to prompt: %s", e)
    return prompt_for_path(mode, title, start_dir, must_exist=mode is not PickerMode.SAVE)
