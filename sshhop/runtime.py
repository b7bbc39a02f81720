"""Event loop glue for the browser and the quick-transfer wizard.

The state machines are pure; everything here is IO.  A prompt_toolkit
Application owns the terminal and its asyncio loop.  Key presses and
background completions are all delivered on that loop, one at a time,
so state is only ever touched from a single thread.
"""

import asyncio
import logging
import threading
from concurrent.futures import ThreadPoolExecutor

from prompt_toolkit.application import Application, run_in_terminal
from prompt_toolkit.application.current import set_app
from prompt_toolkit.formatted_text import ANSI
from prompt_toolkit.key_binding import KeyBindings
from prompt_toolkit.keys import Keys
from prompt_toolkit.layout import Layout, Window
from prompt_toolkit.layout.controls import FormattedTextControl

from sshhop import browser, notifications, transport, wizard
from sshhop.browser import BrowseMode
from sshhop.config import CFG
from sshhop.errors import ConnectError, SshhopError
from sshhop.history import HistoryStore
from sshhop.picker import CANCELLED, pick_local
from sshhop.session import RemoteSession
from sshhop.views import render_browser, render_wizard

logger = logging.getLogger(__name__)


class Dispatcher:
    """Serializes events onto one loop and runs blocking work off it."""

    def __init__(self, loop, on_change=None, executor=None):
        self.loop = loop
        self.on_change = on_change
        self.executor = executor or ThreadPoolExecutor(max_workers=4, thread_name_prefix="sshhop")

    def _deliver(self, target, event):
        target(event)
        if self.on_change:
            self.on_change()

    def post(self, target, event):
        """Queue target(event) on the loop. Safe from any thread."""
        self.loop.call_soon_threadsafe(self._deliver, target, event)

    def post_later(self, delay, target, event):
        return self.loop.call_later(delay, self._deliver, target, event)

    def run_background(self, fn, to_event, target):
        """Run fn() on the executor and post to_event(value, error) back."""
        def done(future):
            err = future.exception()
            if err is not None and not isinstance(err, SshhopError):
                logger.error("Background task failed: %r", err)
            event = to_event(None, err) if err is not None else to_event(future.result(), None)
            self.post(target, event)

        future = self.executor.submit(fn)
        future.add_done_callback(done)
        return future

    def shutdown(self):
        self.executor.shutdown(wait=True)


# ─── Browser ────────────────────────────────────────────────────────────────

class BrowserController:
    """Runs one browser state machine against one remote session."""

    def __init__(self, dispatcher, host, start_path="~", mode=BrowseMode.FILES,
                 config_file="", on_complete=None, session_factory=None, show_hidden=None):
        self.dispatcher = dispatcher
        self.host = host
        self.config_file = config_file
        self.on_complete = on_complete
        self.session_factory = session_factory or RemoteSession.open
        self.session = None
        self.result = None
        self._closed = False
        self._lock = threading.Lock()
        if show_hidden is None:
            show_hidden = bool(CFG.get("show_hidden", False))
        self.state, self._pending = browser.start(host, start_path, mode, show_hidden)

    def begin(self):
        effects, self._pending = self._pending, []
        self._run(effects)

    def on_key(self, name):
        self.handle(browser.Key(name))

    def handle(self, event):
        self.state, effects = browser.update(self.state, event)
        self._run(effects)

    def render(self, height=24, width=80):
        return render_browser(self.state, height, width)

    def _ensure_session(self, reconnect):
        """Return the open session, connecting first if needed. Worker thread only."""
        stale = None
        with self._lock:
            if self._closed:
                raise ConnectError("browser already closed")
            if reconnect:
                stale, self.session = self.session, None
            session = self.session
        if stale is not None:
            stale.close()
        if session is not None:
            return session

        # Connect outside the lock so close() never waits on it
        session = self.session_factory(self.host, self.config_file)
        with self._lock:
            closed = self._closed
            if not closed and self.session is None:
                self.session = session
                return session
            current = self.session
        session.close()
        if closed:
            raise ConnectError("browser already closed")
        return current

    def _run(self, effects):
        for effect in effects:
            if isinstance(effect, browser.LoadDirectory):
                self._load(effect)
            elif isinstance(effect, browser.RunSearch):
                self._search(effect)
            elif isinstance(effect, browser.ScheduleSearch):
                self.dispatcher.post_later(effect.delay, self.handle,
                                           browser.SearchDebounceElapsed(effect.query))
            elif isinstance(effect, browser.CloseSession):
                self.close()
            elif isinstance(effect, browser.BrowseComplete):
                self.result = effect
                logger.info("Browse on %s finished: %s", self.host, effect.path or "cancelled")
                if self.on_complete:
                    self.on_complete(effect)

    def _load(self, effect):
        def work():
            session = self._ensure_session(effect.reconnect)
            directory = session.expand_path(effect.path)
            return directory, tuple(session.list_directory(directory))

        def to_event(value, err):
            if err is not None:
                return browser.DirectoryLoaded(effect.token, error=str(err))
            directory, entries = value
            return browser.DirectoryLoaded(effect.token, directory, entries)

        self.dispatcher.run_background(work, to_event, self.handle)

    def _search(self, effect):
        def work():
            session = self._ensure_session(False)
            return tuple(session.quick_search(effect.query, effect.root))

        def to_event(value, err):
            if err is not None:
                return browser.SearchCompleted(effect.query, error=str(err))
            return browser.SearchCompleted(effect.query, value)

        self.dispatcher.run_background(work, to_event, self.handle)

    def close(self):
        with self._lock:
            self._closed = True
            session, self.session = self.session, None
        if session is not None:
            self.dispatcher.executor.submit(session.close)


# ─── Wizard ─────────────────────────────────────────────────────────────────

def terminal_runner(app):
    """Return run(fn, on_done) that suspends the screen while fn runs."""
    def run(fn, on_done):
        with set_app(app):
            future = run_in_terminal(fn, in_executor=True)
        future.add_done_callback(on_done)
    return run


class QuickTransferController:
    """Runs the wizard and, while a remote pick is open, a nested browser."""

    def __init__(self, dispatcher, host, config_file="", direction=None, history=None,
                 terminal=None, on_exit=None, browser_factory=BrowserController,
                 start_transfer=None):
        self.dispatcher = dispatcher
        self.history = history if history is not None else HistoryStore()
        self.terminal = terminal
        self.on_exit = on_exit
        self.browser_factory = browser_factory
        self.start_transfer = start_transfer or transport.start
        self.browser = None
        self.state, self._pending = wizard.start(host, config_file, direction)

    def begin(self):
        effects, self._pending = self._pending, []
        self._run(effects)

    def on_key(self, name):
        if self.browser is not None:
            if name == "ctrl+c":
                # Global cancel reaches the wizard even from inside the browser
                self._close_browser()
                self.handle(wizard.Key(name))
                return
            self.browser.on_key(name)
            return
        self.handle(wizard.Key(name))

    def handle(self, event):
        self.state, effects = wizard.update(self.state, event)
        self._run(effects)

    def render(self, height=24, width=80):
        if self.browser is not None:
            return self.browser.render(height, width)
        return render_wizard(self.state)

    def _close_browser(self):
        if self.browser is not None:
            b, self.browser = self.browser, None
            b.close()

    def close(self):
        """Tear down the nested browser and any transfer still running."""
        self._close_browser()
        transport.cancel(self.state.transfer)

    def _on_browse_complete(self, effect):
        self.browser = None
        self.handle(wizard.RemotePicked(effect.selected, effect.path or ""))

    def _open_browser(self, effect):
        self.browser = self.browser_factory(
            self.dispatcher, effect.host, effect.start_path, effect.mode,
            effect.config_file, on_complete=self._on_browse_complete,
        )
        self.browser.begin()

    def _open_picker(self, effect):
        def on_done(future):
            try:
                picked = future.result()
            except Exception as e:
                logger.error("Local picker failed: %s", e)
                picked = CANCELLED
            self.dispatcher.post(self.handle, wizard.LocalPicked(picked.selected, picked.path))

        self.terminal(lambda: pick_local(effect.mode, effect.title), on_done)

    def _start(self, request):
        handle = self.start_transfer(request)
        # TransferStarted is queued ahead of any completion the handle posts
        self.dispatcher.post(self.handle, wizard.TransferStarted(handle))

        def on_done(result):
            self.dispatcher.post(self.handle, wizard.TransferFinished(result))
            self.dispatcher.executor.submit(notifications.transfer_finished, request, result)

        handle.add_done_callback(on_done)

    def _record(self, effect):
        try:
            self.history.record_transfer(effect.host, effect.direction,
                                         effect.local_path, effect.remote_path)
        except OSError as e:
            logger.warning("Could not save transfer history: %s", e)

    def _run(self, effects):
        for effect in effects:
            if isinstance(effect, wizard.OpenLocalPicker):
                self._open_picker(effect)
            elif isinstance(effect, wizard.OpenRemoteBrowser):
                self._open_browser(effect)
            elif isinstance(effect, wizard.StartTransfer):
                self._start(effect.request)
            elif isinstance(effect, wizard.CancelTransfer):
                transport.cancel(effect.handle)
            elif isinstance(effect, wizard.RecordTransfer):
                self._record(effect)
            elif isinstance(effect, wizard.Exit):
                self._close_browser()
                if self.on_exit:
                    self.on_exit()


# ─── Application ────────────────────────────────────────────────────────────

_KEY_NAMES = {
    "up": "up", "down": "down", "left": "left", "right": "right",
    "home": "home", "end": "end", "enter": "enter", "tab": "tab",
    "escape": "esc", "backspace": "backspace",
    "c-c": "ctrl+c", "c-s": "ctrl+s", "c-p": "ctrl+p", "c-n": "ctrl+n",
}


def build_key_bindings(on_key):
    kb = KeyBindings()

    def bind(key, name):
        @kb.add(key, eager=key == "escape")
        def _(event):
            on_key(name)

    for key, name in _KEY_NAMES.items():
        bind(key, name)

    @kb.add(Keys.Any)
    def _char(event):
        if event.data and event.data.isprintable():
            on_key(event.data)

    return kb


def _run_screen(make_root):
    """Run make_root(dispatcher, exit) full-screen until it exits."""
    holder = {}

    def text():
        root = holder.get("root")
        if root is None:
            return ANSI("")
        size = app.output.get_size()
        return ANSI(root.render(size.rows, size.columns))

    def on_key(name):
        root = holder.get("root")
        if root is not None:
            root.on_key(name)
            app.invalidate()

    control = FormattedTextControl(text, focusable=True, show_cursor=False)
    app = Application(
        layout=Layout(Window(control, wrap_lines=False)),
        key_bindings=build_key_bindings(on_key),
        full_screen=True,
    )
    app.ttimeoutlen = 0.05

    def pre_run():
        dispatcher = Dispatcher(asyncio.get_event_loop(), on_change=app.invalidate)
        holder["dispatcher"] = dispatcher
        root = make_root(dispatcher, app)
        holder["root"] = root
        root.begin()

    try:
        app.run(pre_run=pre_run)
    finally:
        root = holder.get("root")
        if root is not None:
            root.close()
        if "dispatcher" in holder:
            holder["dispatcher"].shutdown()
    return holder.get("root")


def run_remote_browser(host, start_path="~", mode=BrowseMode.FILES, config_file=""):
    """Browse a host full-screen; returns the chosen path or None."""
    def make_root(dispatcher, app):
        return BrowserController(dispatcher, host, start_path, mode, config_file,
                                 on_complete=lambda effect: app.exit())

    root = _run_screen(make_root)
    if root is None or root.result is None:
        return None
    return root.result.path


def run_quick_transfer(host, config_file="", direction=None, history=None):
    """Run the wizard full-screen; returns its final WizardState."""
    def make_root(dispatcher, app):
        return QuickTransferController(dispatcher, host, config_file, direction, history,
                                       terminal=terminal_runner(app), on_exit=app.exit)

    root = _run_screen(make_root)
    return root.state if root is not None else None
