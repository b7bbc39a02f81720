"""Render browser and wizard states to ANSI text."""

from sshhop.browser import SEARCH_MIN_CHARS, BrowseMode, Phase
from sshhop.transport import Direction
from sshhop.ui import C, format_size, truncate_path
from sshhop.wizard import TransferType, WizardPhase


def _window(cursor, total, height):
    start = cursor - height + 1 if cursor >= height else 0
    return start, min(total, start + height)


def _file_line(entry, selected, width):
    if entry.is_parent:
        label = f"{C.BLUE}..{C.RESET}"
        plain = ".."
        size = ""
    elif entry.is_dir:
        plain = entry.name + "/"
        label = f"{C.BLUE}{C.BOLD}{plain}{C.RESET}"
        size = ""
    else:
        plain = entry.name
        label = plain
        size = format_size(entry.size)
    if selected:
        pad = max(1, width - len(plain) - len(size) - 6)
        return f"  {C.REVERSE}{C.ACCENT} > {plain}{' ' * pad}{size} {C.RESET}"
    pad = max(1, width - len(plain) - len(size) - 6)
    return f"    {label}{' ' * pad}{C.DIM}{size}{C.RESET}"


def _search_line(entry, selected, width):
    kind = "d" if entry.is_dir else "f"
    path = truncate_path(entry.path, max(10, width - 10))
    if selected:
        return f"  {C.REVERSE}{C.ACCENT} > [{kind}] {path} {C.RESET}"
    colour = C.BLUE if entry.is_dir else ""
    return f"    {C.DIM}[{kind}]{C.RESET} {colour}{path}{C.RESET}"


def render_browser(state, height=24, width=80):
    lines = [f"{C.BOLD}{C.ACCENT}Remote Browser: {state.host}{C.RESET}"]

    if state.search_mode:
        caret = "" if state.phase is Phase.SEARCHING else "_"
        hint = ""
        if len(state.search_query) < SEARCH_MIN_CHARS:
            hint = f" {C.DIM}(type {SEARCH_MIN_CHARS - len(state.search_query)} more){C.RESET}"
        lines.append(f"  Search: {state.search_query}{caret}{hint}")
        lines.append(f"  {C.DIM}in: {state.current_dir}{C.RESET}")
    else:
        lines.append(f"  {C.BLUE}{truncate_path(state.current_dir, width - 4)}{C.RESET}")
    lines.append("")

    if state.error:
        lines.append(f"  {C.RED}Error: {state.error}{C.RESET}")
        lines.append("")

    items = state.displayed
    if state.phase is Phase.LOADING and not state.loaded_once:
        lines.append(f"  {C.YELLOW}Loading...{C.RESET}")
        items = ()
    elif state.phase is Phase.SEARCHING:
        lines.append(f"  {C.YELLOW}Searching...{C.RESET}")
    elif state.phase is Phase.LOADING:
        lines.append(f"  {C.YELLOW}Loading...{C.RESET}")

    if (state.search_mode and state.search_triggered and not items
            and state.phase is Phase.LISTING):
        lines.append(f"  {C.DIM}No files found{C.RESET}")

    list_height = max(5, height - 10)
    start, end = _window(state.cursor, len(items), list_height)
    render = _search_line if state.search_mode else _file_line
    for i in range(start, end):
        lines.append(render(items[i], i == state.cursor, width))
    if len(items) > list_height:
        lines.append(f"  {C.DIM}[{state.cursor + 1}/{len(items)}]{C.RESET}")

    lines.append("")
    if state.search_mode:
        lines.append(f"  {C.DIM}↑/↓ navigate | Enter: select | Ctrl-S: pick dir | Esc: back{C.RESET}")
    else:
        hidden = "on" if state.show_hidden else "off"
        lines.append(f"  {C.DIM}[hidden: {hidden}]{C.RESET}")
        if state.mode is BrowseMode.DIRECTORIES:
            keys = "↑/↓ navigate | Enter: open | s: select | /: search | .: hidden | r: retry | Esc: cancel"
        else:
            keys = "↑/↓ navigate | Enter: select | /: search | .: hidden | r: retry | Esc: cancel"
        lines.append(f"  {C.DIM}{keys}{C.RESET}")
    return "\n".join(lines)


def _buttons(left, right, selected_idx):
    def btn(label, active):
        if active:
            return f"{C.REVERSE}{C.ACCENT}  {label}  {C.RESET}"
        return f"{C.DIM}  {label}  {C.RESET}"
    return f"  {btn(left, selected_idx == 0)}    {btn(right, selected_idx == 1)}"


def render_wizard(state):
    lines = [
        f"{C.BOLD}{C.ACCENT}Quick Transfer{C.RESET}",
        f"  {C.DIM}Host: {state.host}{C.RESET}",
        "",
    ]
    phase = state.phase

    if phase is WizardPhase.DONE and state.error:
        lines.append(f"  {C.RED}Error: {state.error}{C.RESET}")
        lines.append("")
        lines.append(f"  {C.DIM}Press any key to close{C.RESET}")
        return "\n".join(lines)

    if phase is WizardPhase.CHOOSE_DIRECTION:
        lines.append("  What would you like to do?")
        lines.append("")
        lines.append(_buttons("↑ Upload", "↓ Download", state.selected_idx))
        lines.append("")
        lines.append(f"  {C.DIM}←/→ or Tab: switch | Enter: confirm | Esc: cancel{C.RESET}")
    elif phase in (WizardPhase.CHOOSE_UPLOAD_TYPE, WizardPhase.CHOOSE_DOWNLOAD_TYPE):
        verb = "upload" if phase is WizardPhase.CHOOSE_UPLOAD_TYPE else "download"
        lines.append(f"  What do you want to {verb}?")
        lines.append("")
        lines.append(_buttons("File", "Folder", state.selected_idx))
        lines.append("")
        lines.append(f"  {C.DIM}←/→ or Tab: switch | Enter: confirm | Esc: back{C.RESET}")
    elif phase is WizardPhase.SELECTING_LOCAL:
        if state.direction is Direction.UPLOAD:
            what = "folder" if state.upload_type is TransferType.FOLDER else "file"
            lines.append(f"  Select {what} to upload...")
        else:
            lines.append("  Select download destination...")
        if state.remote_path:
            lines.append(f"  {C.DIM}Remote: {state.remote_path}{C.RESET}")
        lines.append("")
        lines.append(f"  {C.YELLOW}Opening file picker...{C.RESET}")
    elif phase is WizardPhase.SELECTING_REMOTE:
        if state.direction is Direction.UPLOAD:
            lines.append("  Select remote destination...")
        else:
            what = "folder" if state.download_type is TransferType.FOLDER else "file"
            lines.append(f"  Select remote {what} to download...")
        if state.local_path:
            lines.append(f"  {C.DIM}Local: {state.local_path}{C.RESET}")
        lines.append("")
        lines.append(f"  {C.YELLOW}Opening remote browser...{C.RESET}")
    elif phase is WizardPhase.TRANSFERRING:
        verb = "Uploading" if state.direction is Direction.UPLOAD else "Downloading"
        req = state.request
        lines.append(f"  {verb}...")
        lines.append("")
        lines.append(f"  {C.DIM}Local: {req.local_path if req else state.local_path}{C.RESET}")
        lines.append(f"  {C.DIM}Remote: {state.remote_path}{C.RESET}")
        lines.append("")
        lines.append(f"  {C.YELLOW}Transfer in progress... (Ctrl-C to cancel){C.RESET}")
    elif phase is WizardPhase.DONE:
        req = state.request
        lines.append(f"  {C.GREEN}✓ Transfer complete!{C.RESET}")
        lines.append("")
        lines.append(f"  {C.DIM}Local: {req.local_path if req else state.local_path}{C.RESET}")
        lines.append(f"  {C.DIM}Remote: {state.remote_path}{C.RESET}")
        lines.append("")
        lines.append(f"  {C.DIM}Press any key to close{C.RESET}")
    return "\n".join(lines)
