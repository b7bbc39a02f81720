"""Entry point, CLI args, and the interactive host menu."""

import argparse
import datetime
import logging
import os
import subprocess
import sys

from sshhop import __version__, runtime, transport
from sshhop.browser import BrowseMode
from sshhop.config import (
    CFG, CONFIG_PATH, HISTORY_PATH, HOST_SORT_MODES, LOG_PATH,
    ensure_config_dir, save_config, ssh_config_file,
)
from sshhop.errors import SshhopError, ValidationError
from sshhop.history import HistoryStore
from sshhop.hosts import host_exists, list_hosts, resolve
from sshhop.notifications import transfer_finished
from sshhop.picker import PickerMode, pick_local
from sshhop.transport import Direction, TransferRequest
from sshhop.ui import C, confirm, error, info, pick_option, success, warn

logger = logging.getLogger(__name__)

_LOG_FORMAT = "%(asctime)s  %(levelname)-8s  %(name)s - %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def configure_logging(verbose=False, path=None):
    """Send log records to the log file; the terminal belongs to the UI."""
    path = path or LOG_PATH
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    if verbose:
        level = logging.DEBUG
    else:
        level = getattr(logging, str(CFG.get("log_level", "INFO")).upper(), logging.INFO)
    handler = logging.FileHandler(path)
    handler.setFormatter(logging.Formatter(_LOG_FORMAT, _DATE_FORMAT))
    root = logging.getLogger()
    root.addHandler(handler)
    root.setLevel(level)
    return handler


def _require_host(host, config_file):
    if not host_exists(host, config_file):
        raise ValidationError(f"host '{host}' not found in SSH configuration")


def _run_transfer(request, history=None):
    """Blocking transfer with history and a notification on success."""
    verb = "Uploading" if request.direction is Direction.UPLOAD else "Downloading"
    info(f"{verb} {request.source} -> {request.destination}...")
    result = transport.run(request)
    transfer_finished(request, result)
    if not result.success:
        raise result.error
    history = history if history is not None else HistoryStore()
    history.record_transfer(request.host, str(request.direction),
                            request.local_path, request.remote_path)
    success("Transfer complete!")
    return result


# ─── Commands ───────────────────────────────────────────────────────────────

def cmd_cp(args, config_file):
    if args.dest is None:
        # One argument: a host, open the wizard
        _require_host(args.source, config_file)
        runtime.run_quick_transfer(args.source, config_file)
        return 0
    request = transport.parse_transfer_args(args.source, args.dest, config_file)
    if args.recursive and not request.recursive:
        request = TransferRequest(
            host=request.host, direction=request.direction, local_path=request.local_path,
            remote_path=request.remote_path, recursive=True, config_file=config_file,
        )
    _require_host(request.host, config_file)
    _run_transfer(request)
    return 0


def cmd_send(args, config_file):
    host = args.host
    _require_host(host, config_file)

    if args.path:
        local = args.path
    else:
        picked = pick_local(PickerMode.FILE, "Select file to upload", os.getcwd())
        if not picked.selected:
            warn("No file selected, cancelled.")
            return 0
        local = picked.path
    local = transport.expand_path(local)
    transport.validate_local_path(local, Direction.UPLOAD)

    remote = runtime.run_remote_browser(host, "~", BrowseMode.DIRECTORIES, config_file)
    if remote is None:
        warn("No destination selected, cancelled.")
        return 0

    request = TransferRequest(
        host=host, direction=Direction.UPLOAD, local_path=local, remote_path=remote,
        recursive=os.path.isdir(local), config_file=config_file,
    )
    _run_transfer(request)
    return 0


def cmd_get(args, config_file):
    host = args.host
    _require_host(host, config_file)

    remote = args.remote
    if not remote:
        remote = runtime.run_remote_browser(host, "~", BrowseMode.FILES, config_file)
        if remote is None:
            warn("No file selected, cancelled.")
            return 0

    local = args.local
    if not local:
        picked = pick_local(PickerMode.DIRECTORY, "Select download destination", os.getcwd())
        if not picked.selected:
            warn("No destination selected, cancelled.")
            return 0
        local = picked.path
    local = transport.expand_path(local)
    transport.validate_local_path(local, Direction.DOWNLOAD)

    request = TransferRequest(
        host=host, direction=Direction.DOWNLOAD,
        local_path=transport.download_target(local, remote), remote_path=remote,
        recursive=args.recursive, config_file=config_file,
    )
    _run_transfer(request)
    return 0


def _format_entry(entry):
    arrow = "↑" if entry.direction == "upload" else "↓"
    return (f"{arrow} {entry.direction:<8} {entry.local_path}  {C.DIM}<->{C.RESET}  "
            f"{entry.remote_path}  {C.DIM}{entry.timestamp}{C.RESET}")


def cmd_history(args, config_file):
    store = HistoryStore()
    hosts = [args.host] if args.host else [r.get("host_name", "?") for r in store.all_connections()]
    if not hosts:
        info("No history yet.")
        return 0
    for host in hosts:
        entries = store.transfer_history(host)
        count = store.connection_count(host)
        print(f"\n  {C.BOLD}{host}{C.RESET}  {C.DIM}{count} connection(s){C.RESET}")
        if not entries:
            print(f"    {C.DIM}(no transfers){C.RESET}")
        for entry in entries:
            print(f"    {_format_entry(entry)}")
    print()
    return 0


# ─── Host menu ──────────────────────────────────────────────────────────────

def _ago(when):
    if when is None:
        return "never"
    secs = int((datetime.datetime.now() - when).total_seconds())
    if secs < 60:
        return "just now"
    if secs < 3600:
        return f"{secs // 60}m ago"
    if secs < 86400:
        return f"{secs // 3600}h ago"
    return f"{secs // 86400}d ago"


def _sorted_hosts(hosts, store):
    mode = CFG.get("host_sort", "last_used")
    if mode == "most_used":
        return store.sort_hosts_by_most_used(hosts)
    if mode == "name":
        return sorted(hosts, key=str.lower)
    return store.sort_hosts_by_last_used(hosts)


def _connect(host, config_file, store):
    cmd = ["ssh", "-t"]
    if config_file:
        cmd.extend(["-F", config_file])
    cmd.append(host)
    target = resolve(host, config_file)
    info(f"Connecting to {host} ({target.address})...")
    store.record_connection(host)
    logger.info("ssh session to %s", host)
    subprocess.run(cmd)


def _repeat_transfer(host, config_file, store):
    entries = store.transfer_history(host)
    if not entries:
        warn("No transfers recorded for this host.")
        return
    choices = [_format_entry(e) for e in entries] + ["← Back"]
    idx = pick_option(f"Repeat a transfer on {host}:", choices)
    if idx >= len(entries):
        return
    entry = entries[idx]
    direction = Direction(entry.direction)
    recursive = direction is Direction.UPLOAD and os.path.isdir(entry.local_path)
    request = TransferRequest(
        host=host, direction=direction, local_path=entry.local_path,
        remote_path=entry.remote_path, recursive=recursive, config_file=config_file,
    )
    if direction is Direction.UPLOAD:
        transport.validate_local_path(request.local_path, direction)
    _run_transfer(request, store)


def _host_menu(host, config_file, store):
    while True:
        last = store.last_transfer(host)
        header = f"\n  {C.BOLD}{host}{C.RESET}  {C.DIM}{resolve(host, config_file).address}{C.RESET}"
        if last:
            header += f"\n  {C.DIM}last transfer: {last.direction} {last.local_path}{C.RESET}"
        idx = pick_option("", ["Connect", "Quick transfer", "Transfer history", "← Back"],
                          header=header)
        if idx == 3:
            return
        try:
            if idx == 0:
                _connect(host, config_file, store)
                return
            if idx == 1:
                state = runtime.run_quick_transfer(host, config_file, history=store)
                if state is not None and state.succeeded:
                    success("Transfer complete!")
            elif idx == 2:
                _repeat_transfer(host, config_file, store)
        except SshhopError as e:
            error(str(e))
            input(f"  {C.DIM}Press Enter to continue{C.RESET}")


def _cycle_sort():
    current = CFG.get("host_sort", "last_used")
    nxt = HOST_SORT_MODES[(HOST_SORT_MODES.index(current) + 1) % len(HOST_SORT_MODES)]
    CFG["host_sort"] = nxt
    save_config(CFG)
    success(f"Hosts sorted by {nxt.replace('_', ' ')}")


def host_menu(config_file):
    store = HistoryStore()
    while True:
        hosts = _sorted_hosts(list_hosts(config_file), store)
        if not hosts:
            warn(f"No hosts found in {config_file or '~/.ssh/config'}.")
            return
        choices = []
        for h in hosts:
            last = _ago(store.last_connection_time(h))
            count = store.connection_count(h)
            choices.append(f"{h:<24} {C.DIM}{last:<10} {count}x{C.RESET}")
        choices.extend([
            "───────────────",
            f"Sort: {CFG.get('host_sort', 'last_used').replace('_', ' ')}",
            "Forget removed hosts",
            "Quit",
        ])
        idx = pick_option("Hosts:", choices, header=f"\n  {C.BOLD}{C.ACCENT}sshhop{C.RESET}")
        n = len(hosts)
        if idx == n + 3:
            return
        if idx == n:
            continue
        if idx == n + 1:
            _cycle_sort()
            continue
        if idx == n + 2:
            if confirm("Forget history for hosts no longer in the SSH config?"):
                stale = store.cleanup(list_hosts(config_file))
                success(f"Forgot {len(stale)} host(s).")
            continue
        try:
            _host_menu(hosts[idx], config_file, store)
        except KeyboardInterrupt:
            print()
            warn("Interrupted. Returning to host list.")


# ─── CLI ────────────────────────────────────────────────────────────────────

def build_parser():
    parser = argparse.ArgumentParser(
        prog="sshhop",
        description="SSH host shortcuts and interactive file transfer.",
        epilog=f"Config: {CONFIG_PATH}  History: {HISTORY_PATH}  Log: {LOG_PATH}",
    )
    parser.add_argument("-F", "--config", default="", help="SSH config file to use")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    parser.add_argument("--version", action="version", version=f"sshhop {__version__}")
    sub = parser.add_subparsers(dest="command")

    p = sub.add_parser("cp", help="copy host:path <-> local, or open the wizard for a host")
    p.add_argument("source")
    p.add_argument("dest", nargs="?")
    p.add_argument("-r", "--recursive", action="store_true")
    p.set_defaults(func=cmd_cp)

    p = sub.add_parser("send", help="upload to a host")
    p.add_argument("host")
    p.add_argument("path", nargs="?")
    p.set_defaults(func=cmd_send)

    p = sub.add_parser("get", help="download from a host")
    p.add_argument("host")
    p.add_argument("remote", nargs="?")
    p.add_argument("local", nargs="?")
    p.add_argument("-r", "--recursive", action="store_true")
    p.set_defaults(func=cmd_get)

    p = sub.add_parser("history", help="show transfer history")
    p.add_argument("host", nargs="?")
    p.set_defaults(func=cmd_history)
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    ensure_config_dir()
    configure_logging(args.verbose)
    config_file = os.path.expanduser(args.config) if args.config else ssh_config_file()
    logger.info("sshhop %s started: %s", __version__, args.command or "menu")

    try:
        if args.command is None:
            host_menu(config_file)
            return 0
        return args.func(args, config_file)
    except SshhopError as e:
        logger.error("%s", e)
        error(str(e))
        return 1
    except KeyboardInterrupt:
        print()
        return 130


if __name__ == "__main__":
    sys.exit(main())
