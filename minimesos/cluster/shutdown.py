"""Best-effort cleanup on process exit."""

import atexit
import logging
import signal
import sys
import threading
import typing as tp

LOGGER = logging.getLogger(__name__)


class ShutdownHook:
    """Run the callback once, when the process exits or gets terminated.

    The callback is registered with `atexit` and as the `SIGTERM` handler. On the signal,
    the previously installed handler is called afterwards, or the process exits with
    the conventional `128 + signum` status.
    """

    def __init__(self, callback: tp.Callable[[], tp.Any], *, name: str = "") -> None:
        self.callback = callback
        self.name = name or getattr(callback, "__name__", "shutdown hook")
        self._done = False
        self._registered = False
        self._prev_handler: tp.Any = None
        self._signal_installed = False

    def run(self) -> None:
        """Run the callback, unless it already ran."""
        if self._done:
            return
        self._done = True
        LOGGER.debug(f"Running shutdown hook '{self.name}'.")
        try:
            self.callback()
        except Exception:
            LOGGER.exception(f"Shutdown hook '{self.name}' failed.")

    def _on_signal(self, signum: int, frame: tp.Any) -> None:
        LOGGER.info(f"Received signal {signum}, cleaning up.")
        self.run()
        prev = self._prev_handler
        if callable(prev):
            prev(signum, frame)
            return
        sys.exit(128 + signum)

    def register(self) -> None:
        if self._registered:
            return
        atexit.register(self.run)
        if threading.current_thread() is threading.main_thread():
            self._prev_handler = signal.signal(signal.SIGTERM, self._on_signal)
            self._signal_installed = True
        else:
            LOGGER.debug(f"Not in the main thread, '{self.name}' will not handle SIGTERM.")
        self._registered = True

    def unregister(self) -> None:
        if not self._registered:
            return
        atexit.unregister(self.run)
        if self._signal_installed and threading.current_thread() is threading.main_thread():
            signal.signal(signal.SIGTERM, self._prev_handler or signal.SIG_DFL)
            self._signal_installed = False
        self._registered = False
