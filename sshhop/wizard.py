"""Quick-transfer wizard.

Direction, then file-or-folder, then the two path picks (order depends
on direction), then the transfer itself.  Like the browser this is a
pure `update(state, event) -> (state, effects)`; pickers, the remote
browser and the copy process are run by the runtime.
"""

import os
from dataclasses import dataclass, replace
from enum import Enum

from sshhop.browser import BrowseMode
from sshhop.errors import ValidationError
from sshhop.picker import PickerMode
from sshhop.transport import Direction, TransferRequest, download_target, validate_local_path


class WizardPhase(Enum):
    CHOOSE_DIRECTION = "choose_direction"
    CHOOSE_UPLOAD_TYPE = "choose_upload_type"
    CHOOSE_DOWNLOAD_TYPE = "choose_download_type"
    SELECTING_LOCAL = "selecting_local"
    SELECTING_REMOTE = "selecting_remote"
    TRANSFERRING = "transferring"
    DONE = "done"


class TransferType(Enum):
    FILE = "file"
    FOLDER = "folder"


# ─── Events ─────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Key:
    name: str


@dataclass(frozen=True)
class LocalPicked:
    selected: bool
    path: str = ""


@dataclass(frozen=True)
class RemotePicked:
    selected: bool
    path: str = ""


@dataclass(frozen=True)
class TransferStarted:
    handle: object


@dataclass(frozen=True)
class TransferFinished:
    result: object


# ─── Effects ────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class OpenLocalPicker:
    mode: PickerMode
    title: str


@dataclass(frozen=True)
class OpenRemoteBrowser:
    host: str
    mode: BrowseMode
    start_path: str = "~"
    config_file: str = ""


@dataclass(frozen=True)
class StartTransfer:
    request: TransferRequest


@dataclass(frozen=True)
class CancelTransfer:
    handle: object


@dataclass(frozen=True)
class RecordTransfer:
    host: str
    direction: str
    local_path: str
    remote_path: str


@dataclass(frozen=True)
class Exit:
    pass


@dataclass(frozen=True)
class WizardState:
    host: str
    config_file: str = ""
    phase: WizardPhase = WizardPhase.CHOOSE_DIRECTION
    direction: Direction = None
    upload_type: TransferType = None
    download_type: TransferType = None
    selected_idx: int = 0
    local_path: str = ""
    remote_path: str = ""
    request: TransferRequest = None
    transfer: object = None
    error: str = ""
    finished: bool = False

    @property
    def succeeded(self):
        return self.phase is WizardPhase.DONE and not self.error


def start(host, config_file="", direction=None):
    """Initial state; a preset direction skips the first question."""
    state = WizardState(host=host, config_file=config_file)
    if direction is Direction.UPLOAD:
        return replace(state, direction=direction, phase=WizardPhase.CHOOSE_UPLOAD_TYPE), []
    if direction is Direction.DOWNLOAD:
        return replace(state, direction=direction, phase=WizardPhase.CHOOSE_DOWNLOAD_TYPE), []
    return state, []


def build_request(state, isdir=os.path.isdir):
    """Validate the picked paths and build the TransferRequest."""
    local = state.local_path
    validate_local_path(local, state.direction)
    if not state.remote_path:
        raise ValidationError("remote path is required")
    if state.direction is Direction.UPLOAD:
        recursive = isdir(local)
    else:
        local = download_target(local, state.remote_path, isdir=isdir)
        recursive = state.download_type is TransferType.FOLDER
    return TransferRequest(
        host=state.host,
        direction=state.direction,
        local_path=local,
        remote_path=state.remote_path,
        recursive=recursive,
        config_file=state.config_file,
    )


def _exit(state):
    effects = [CancelTransfer(state.transfer)] if state.transfer is not None else []
    return replace(state, finished=True, transfer=None), effects + [Exit()]


def _local_picker(state):
    if state.direction is Direction.UPLOAD:
        if state.upload_type is TransferType.FOLDER:
            return OpenLocalPicker(PickerMode.DIRECTORY, "Select folder to upload")
        return OpenLocalPicker(PickerMode.FILE, "Select file to upload")
    return OpenLocalPicker(PickerMode.DIRECTORY, "Select download destination")


def _remote_browser(state):
    if state.direction is Direction.DOWNLOAD and state.download_type is TransferType.FILE:
        mode = BrowseMode.FILES
    else:
        mode = BrowseMode.DIRECTORIES
    return OpenRemoteBrowser(state.host, mode, "~", state.config_file)


def _begin_transfer(state):
    try:
        request = build_request(state)
    except ValidationError as e:
        return replace(state, phase=WizardPhase.DONE, error=str(e)), []
    state = replace(state, phase=WizardPhase.TRANSFERRING, request=request, error="")
    return state, [StartTransfer(request)]


def _choose_direction(state, direction):
    phase = (WizardPhase.CHOOSE_UPLOAD_TYPE if direction is Direction.UPLOAD
             else WizardPhase.CHOOSE_DOWNLOAD_TYPE)
    return replace(state, direction=direction, phase=phase, selected_idx=0), []


def _choose_type(state, kind):
    if state.phase is WizardPhase.CHOOSE_UPLOAD_TYPE:
        state = replace(state, upload_type=kind, phase=WizardPhase.SELECTING_LOCAL)
        return state, [_local_picker(state)]
    state = replace(state, download_type=kind, phase=WizardPhase.SELECTING_REMOTE)
    return state, [_remote_browser(state)]


def _toggle(state, key):
    if key in ("left", "h", "up", "k"):
        return replace(state, selected_idx=0), []
    if key in ("right", "l", "down", "j"):
        return replace(state, selected_idx=1), []
    if key == "tab":
        return replace(state, selected_idx=(state.selected_idx + 1) % 2), []
    return None


def _on_key(state, key):
    if key == "ctrl+c":
        return _exit(state)

    phase = state.phase

    if phase is WizardPhase.CHOOSE_DIRECTION:
        if key in ("esc", "q"):
            return _exit(state)
        if key in ("u", "U", "1"):
            return _choose_direction(state, Direction.UPLOAD)
        if key in ("d", "D", "2"):
            return _choose_direction(state, Direction.DOWNLOAD)
        if key in ("enter", " "):
            return _choose_direction(
                state, Direction.UPLOAD if state.selected_idx == 0 else Direction.DOWNLOAD)
        return _toggle(state, key) or (state, [])

    if phase in (WizardPhase.CHOOSE_UPLOAD_TYPE, WizardPhase.CHOOSE_DOWNLOAD_TYPE):
        if key in ("esc", "q"):
            back_idx = 0 if phase is WizardPhase.CHOOSE_UPLOAD_TYPE else 1
            return replace(state, phase=WizardPhase.CHOOSE_DIRECTION,
                           selected_idx=back_idx), []
        if key in ("f", "F", "1"):
            return _choose_type(state, TransferType.FILE)
        if key in ("d", "D", "2"):
            return _choose_type(state, TransferType.FOLDER)
        if key in ("enter", " "):
            kind = TransferType.FILE if state.selected_idx == 0 else TransferType.FOLDER
            return _choose_type(state, kind)
        return _toggle(state, key) or (state, [])

    if phase in (WizardPhase.SELECTING_LOCAL, WizardPhase.SELECTING_REMOTE):
        if key in ("esc", "q"):
            return _exit(state)
        return state, []

    if phase is WizardPhase.DONE:
        return _exit(state)

    # Transferring: only ctrl+c does anything
    return state, []


def _on_local(state, event):
    if state.phase is not WizardPhase.SELECTING_LOCAL:
        return state, []
    if not event.selected:
        return _exit(state)
    state = replace(state, local_path=event.path)
    if state.direction is Direction.DOWNLOAD:
        return _begin_transfer(state)
    try:
        validate_local_path(state.local_path, state.direction)
    except ValidationError as e:
        return replace(state, phase=WizardPhase.DONE, error=str(e)), []
    state = replace(state, phase=WizardPhase.SELECTING_REMOTE)
    return state, [_remote_browser(state)]


def _on_remote(state, event):
    if state.phase is not WizardPhase.SELECTING_REMOTE:
        return state, []
    if not event.selected:
        return _exit(state)
    state = replace(state, remote_path=event.path)
    if state.direction is Direction.UPLOAD:
        return _begin_transfer(state)
    state = replace(state, phase=WizardPhase.SELECTING_LOCAL)
    return state, [_local_picker(state)]


def _on_started(state, event):
    if state.phase is not WizardPhase.TRANSFERRING:
        # The wizard was torn down before the process came up
        return state, [CancelTransfer(event.handle)]
    return replace(state, transfer=event.handle), []


def _on_finished(state, event):
    if state.phase is not WizardPhase.TRANSFERRING:
        return state, []
    result = event.result
    state = replace(state, transfer=None, phase=WizardPhase.DONE)
    if not result.success:
        return replace(state, error=str(result.error)), []
    req = state.request
    return state, [RecordTransfer(req.host, str(req.direction), req.local_path, req.remote_path)]


def update(state, event):
    """Apply one event; returns (new_state, effects)."""
    if state.finished:
        if isinstance(event, TransferStarted):
            return state, [CancelTransfer(event.handle)]
        return state, []
    if isinstance(event, Key):
        return _on_key(state, event.name)
    if isinstance(event, LocalPicked):
        return _on_local(state, event)
    if isinstance(event, RemotePicked):
        return _on_remote(state, event)
    if isinstance(event, TransferStarted):
        return _on_started(state, event)
    if isinstance(event, TransferFinished):
        return _on_finished(state, event)
    return state, []
