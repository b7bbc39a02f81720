"""Terminal colours, status lines, and questionary prompt wrappers."""

import re

import questionary
from prompt_toolkit.key_binding import KeyBindings, merge_key_bindings
from prompt_toolkit.keys import Keys

from sshhop.config import CFG

_FALLBACK_ACCENT = "\033[36m"


def hex_to_ansi(colour):
    """'#5f9ea0' or '#5fa' -> 24-bit foreground escape; cyan if unparsable."""
    digits = colour.strip().lstrip("#")
    if len(digits) == 3:
        digits = "".join(ch * 2 for ch in digits)
    try:
        rgb = bytes.fromhex(digits)
    except ValueError:
        return _FALLBACK_ACCENT
    if len(rgb) != 3:
        return _FALLBACK_ACCENT
    return "\033[38;2;{};{};{}m".format(*rgb)


class C:
    RESET = "\033[0m"
    BOLD = "\033[1m"
    DIM = "\033[2m"
    REVERSE = "\033[7m"
    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    BLUE = "\033[34m"
    CYAN = "\033[36m"
    ACCENT = hex_to_ansi(CFG.get("accent_color", "#5f9ea0"))


def _prompt_style():
    accent = CFG.get("accent_color", "#5f9ea0")
    return questionary.Style.from_dict({
        "qmark": f"{accent} bold",
        "question": "bold",
        "pointer": f"{accent} bold",
        "highlighted": f"{accent} bold",
        "selected": "green",
        "answer": f"{accent}",
        "instruction": "#808080 italic",
        "separator": "#606060",
        "disabled": "#606060",
    })


STYLE = _prompt_style()

_ESCAPES = re.compile(r"\x1b\[[\d;]*m")


def strip_ansi(text):
    return _ESCAPES.sub("", text)


# ─── Status lines ───────────────────────────────────────────────────────────

def _say(colour, msg):
    print(f"  {colour}{msg}{C.RESET}")


def info(msg):
    _say(C.ACCENT, msg)


def success(msg):
    _say(C.GREEN, msg)


def error(msg):
    _say(C.RED, msg)


def warn(msg):
    _say(C.YELLOW, msg)


def clear_screen():
    print("\x1b[H\x1b[2J", end="", flush=True)


# ─── Prompts ────────────────────────────────────────────────────────────────

def _is_separator(option):
    text = strip_ansi(option).strip()
    return bool(text) and set(text) == {"─"}


def pick_option(prompt, options, header=""):
    """Arrow-key menu over options; returns the chosen index.

    Rows made only of box-drawing dashes are shown as separators and cannot
    be chosen. Esc, Ctrl-G and Ctrl-C all return the last index, which
    callers reserve for Back or Quit.
    """
    if not options:
        return 0
    back = len(options) - 1
    clear_screen()
    if header:
        print(header)

    choices = []
    for i, option in enumerate(options):
        if _is_separator(option):
            choices.append(questionary.Separator(strip_ansi(option)))
        else:
            choices.append(questionary.Choice(strip_ansi(option), value=i))

    question = questionary.select(
        strip_ansi(prompt).strip() or "Select:",
        choices=choices,
        style=STYLE,
        use_indicator=True,
        use_search_filter=True,
        use_jk_keys=False,
        instruction="(↑↓ move, type to filter, Esc back)",
    )

    extra = KeyBindings()

    @extra.add(Keys.Escape, eager=True)
    @extra.add(Keys.ControlG, eager=True)
    def _back(event):
        event.app.exit(result=back)

    app = question.application
    app.key_bindings = merge_key_bindings([app.key_bindings, extra])

    try:
        picked = question.unsafe_ask()
    except KeyboardInterrupt:
        return back
    return back if picked is None else picked


def confirm(msg, default_yes=True):
    answer = questionary.confirm(strip_ansi(msg), default=default_yes, style=STYLE).ask()
    return bool(answer)


def prompt_text(msg, default=""):
    """Free-text prompt; empty string when left blank or aborted."""
    answer = questionary.text(strip_ansi(msg), default=default, style=STYLE).ask()
    return (answer or "").strip()


# ─── Formatting ─────────────────────────────────────────────────────────────

def truncate_path(path, max_len):
    """Shorten a path from the left so the tail stays readable."""
    if len(path) <= max_len or max_len < 4:
        return path
    return "..." + path[-(max_len - 3):]


def format_size(size):
    for unit, scale in (("G", 1024 ** 3), ("M", 1024 ** 2), ("K", 1024)):
        if size >= scale:
            return f"{size / scale:.1f}{unit}"
    return f"{size}B"
