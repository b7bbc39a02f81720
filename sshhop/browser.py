"""Remote browser state machine.

`update(state, event)` returns the next state plus a list of effects.
Nothing here touches the network: the runtime carries out the effects
and posts their completions back as events, tagged with the request
they answer so stale ones can be dropped.
"""

import posixpath
from dataclasses import dataclass, replace
from enum import Enum

SEARCH_MIN_CHARS = 3
SEARCH_DEBOUNCE = 0.4


class BrowseMode(Enum):
    FILES = "files"
    DIRECTORIES = "directories"


class Phase(Enum):
    LOADING = "loading"
    LISTING = "listing"
    SEARCHING = "searching"
    ERROR = "error"


# ─── Events ─────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Key:
    name: str


@dataclass(frozen=True)
class DirectoryLoaded:
    token: int
    directory: str = ""
    entries: tuple = ()
    error: str = ""


@dataclass(frozen=True)
class SearchCompleted:
    query: str
    results: tuple = ()
    error: str = ""


@dataclass(frozen=True)
class SearchDebounceElapsed:
    query: str


# ─── Effects ────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class LoadDirectory:
    path: str
    token: int
    reconnect: bool = False


@dataclass(frozen=True)
class RunSearch:
    query: str
    root: str


@dataclass(frozen=True)
class ScheduleSearch:
    query: str
    delay: float = SEARCH_DEBOUNCE


@dataclass(frozen=True)
class CloseSession:
    pass


@dataclass(frozen=True)
class BrowseComplete:
    path: str = None

    @property
    def selected(self):
        return self.path is not None


# ─── State ──────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class BrowserState:
    host: str
    mode: BrowseMode = BrowseMode.FILES
    current_dir: str = "~"
    all_entries: tuple = ()
    visible_entries: tuple = ()
    cursor: int = 0
    show_hidden: bool = False
    search_mode: bool = False
    search_query: str = ""
    search_results: tuple = ()
    search_triggered: bool = False
    phase: Phase = Phase.LOADING
    error: str = ""
    load_token: int = 0
    loaded_once: bool = False
    finished: bool = False

    @property
    def loading(self):
        return self.phase is Phase.LOADING

    @property
    def displayed(self):
        """Entries the cursor moves over: search hits or the listing."""
        return self.search_results if self.search_mode else self.visible_entries

    @property
    def selected_entry(self):
        items = self.displayed
        if 0 <= self.cursor < len(items):
            return items[self.cursor]
        return None


def visible_for(entries, show_hidden):
    if show_hidden:
        return tuple(entries)
    return tuple(e for e in entries if e.name == ".." or not e.name.startswith("."))


def filter_results(results, query):
    """Keep results whose name or path contains the query."""
    q = query.lower()
    return tuple(r for r in results if q in r.name.lower() or q in r.path.lower())


def rank_results(results, query):
    """Exact name, then name prefix, then name substring, then shorter path."""
    if len(query) < SEARCH_MIN_CHARS or not results:
        return tuple(results)
    q = query.lower()

    def key(entry):
        name = entry.name.lower()
        return (name != q, not name.startswith(q), q not in name, len(entry.path))

    return tuple(sorted(results, key=key))


def _clamp(cursor, size):
    return max(0, min(cursor, size - 1))


def _printable(name):
    return len(name) == 1 and 32 <= ord(name) < 127


# ─── Transitions ────────────────────────────────────────────────────────────

def start(host, start_path="~", mode=BrowseMode.FILES, show_hidden=False):
    state = BrowserState(host=host, mode=mode, current_dir=start_path or "~",
                         show_hidden=show_hidden)
    return _load(state, state.current_dir)


def _load(state, path, reconnect=False):
    token = state.load_token + 1
    state = replace(state, phase=Phase.LOADING, error="", load_token=token)
    return state, [LoadDirectory(path, token, reconnect)]


def _finish(state, path=None):
    return replace(state, finished=True), [CloseSession(), BrowseComplete(path)]


def _exit_search(state):
    phase = Phase.LISTING if state.phase is Phase.SEARCHING else state.phase
    return replace(state, search_mode=False, search_query="", search_results=(),
                   search_triggered=False, cursor=0, phase=phase)


def _move(state, key):
    size = len(state.displayed)
    if key in ("up", "k", "ctrl+p"):
        return replace(state, cursor=max(0, state.cursor - 1))
    if key in ("down", "j", "ctrl+n"):
        return replace(state, cursor=_clamp(state.cursor + 1, size))
    if key in ("home", "g"):
        return replace(state, cursor=0)
    if key in ("end", "G"):
        return replace(state, cursor=max(0, size - 1))
    return state


def _select_current(state):
    if state.mode is not BrowseMode.DIRECTORIES:
        return state, []
    path = state.current_dir
    entry = state.selected_entry
    if state.search_mode and entry is not None and entry.is_dir:
        path = entry.path
    return _finish(state, path)


def _search_key(state, key):
    if key in ("esc", "ctrl+c"):
        return _exit_search(state), []

    if key in ("up", "down", "ctrl+p", "ctrl+n"):
        return _move(state, key), []

    if key == "ctrl+s":
        return _select_current(state)

    if key == "enter":
        entry = state.selected_entry
        if entry is None:
            return state, []
        if entry.is_dir:
            return _load(_exit_search(state), entry.path)
        if state.mode is BrowseMode.FILES:
            return _finish(state, entry.path)
        return state, []

    # A new query makes any search in flight stale
    phase = Phase.LISTING if state.phase is Phase.SEARCHING else state.phase

    if key == "backspace":
        if not state.search_query:
            return state, []
        query = state.search_query[:-1]
        if len(query) < SEARCH_MIN_CHARS:
            return replace(state, search_query=query, search_results=(),
                           search_triggered=False, cursor=0, phase=phase), []
        # A shorter query is served from the results already fetched
        results = rank_results(filter_results(state.search_results, query), query)
        state = replace(state, search_query=query, search_results=results, phase=phase,
                        cursor=_clamp(state.cursor, len(results)))
        return state, []

    if _printable(key):
        query = state.search_query + key
        state = replace(state, search_query=query, search_triggered=False, phase=phase)
        if len(query) >= SEARCH_MIN_CHARS:
            return state, [ScheduleSearch(query)]
        return state, []

    return state, []


def _normal_key(state, key):
    if key in ("q", "esc", "ctrl+c"):
        return _finish(state)

    if key in ("up", "k", "down", "j", "home", "g", "end", "G"):
        return _move(state, key), []

    if key == "/":
        return replace(state, search_mode=True, search_query="", search_results=(),
                       search_triggered=False, cursor=0), []

    if key == ".":
        show = not state.show_hidden
        visible = visible_for(state.all_entries, show)
        return replace(state, show_hidden=show, visible_entries=visible,
                       cursor=_clamp(state.cursor, len(visible))), []

    if key in ("r", "R"):
        return _load(state, state.current_dir, reconnect=True)

    if key in ("s", " ", "ctrl+s"):
        return _select_current(state)

    if key in ("enter", "right", "l"):
        entry = state.selected_entry
        if entry is None:
            return state, []
        if entry.is_dir:
            return _load(state, entry.path)
        if key == "enter" and state.mode is BrowseMode.FILES:
            return _finish(state, entry.path)
        return state, []

    if key in ("backspace", "h", "left"):
        parent = posixpath.dirname(state.current_dir)
        if parent and parent != state.current_dir:
            return _load(state, parent)
        return state, []

    if key == "~":
        return _load(state, "~")

    return state, []


def _on_key(state, key):
    if not state.loaded_once:
        # Nothing to navigate until the first listing arrives
        if key in ("q", "esc", "ctrl+c"):
            return _finish(state)
        if key in ("r", "R") and state.phase is Phase.ERROR:
            return _load(state, state.current_dir, reconnect=True)
        return state, []
    if state.search_mode:
        return _search_key(state, key)
    return _normal_key(state, key)


def _on_loaded(state, event):
    if event.token != state.load_token:
        return state, []
    if event.error:
        return replace(state, phase=Phase.ERROR, error=event.error), []
    entries = tuple(event.entries)
    return replace(
        state,
        current_dir=event.directory,
        all_entries=entries,
        visible_entries=visible_for(entries, state.show_hidden),
        cursor=0,
        error="",
        search_mode=False,
        search_query="",
        search_results=(),
        search_triggered=False,
        phase=Phase.LISTING,
        loaded_once=True,
    ), []


def _on_search_done(state, event):
    if not state.search_mode or event.query != state.search_query:
        return state, []
    if event.error:
        return replace(state, phase=Phase.ERROR, error=event.error), []
    results = rank_results(event.results, state.search_query)
    return replace(state, search_results=results, cursor=0, error="",
                   phase=Phase.LISTING), []


def _on_debounce(state, event):
    if (state.search_mode
            and event.query == state.search_query
            and len(state.search_query) >= SEARCH_MIN_CHARS
            and not state.search_triggered):
        state = replace(state, search_triggered=True, phase=Phase.SEARCHING, error="")
        return state, [RunSearch(state.search_query, state.current_dir)]
    return state, []


def update(state, event):
    """Apply one event; returns (new_state, effects)."""
    if state.finished:
        return state, []
    if isinstance(event, Key):
        return _on_key(state, event.name)
    if isinstance(event, DirectoryLoaded):
        return _on_loaded(state, event)
    if isinstance(event, SearchCompleted):
        return _on_search_done(state, event)
    if isinstance(event, SearchDebounceElapsed):
        return _on_debounce(state, event)
    return state, []
