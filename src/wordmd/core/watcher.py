"""Staging directory change watcher with noise filtering and leading-edge debounce"""

import contextvars
import logging
import os
import threading
import time
from pathlib import Path
from typing import Callable, Optional

from wordmd.errors import WatcherError


logger = logging.getLogger(__name__)

IGNORED_PREFIXES = (".", "~")
IGNORED_SUFFIXES = (".tmp",)

Signature = tuple[int, int]


def is_ignored(path: Path) -> bool:
    """Editor swap files, hidden files and temp files never trigger a sync."""
    name = Path(path).name
    return name.startswith(IGNORED_PREFIXES) or name.lower().endswith(IGNORED_SUFFIXES)


def snapshot(root: Path) -> dict[str, Signature]:
    """Map every file under root (relative posix path) to its (mtime_ns, size)."""
    result: dict[str, Signature] = {}
    for dirpath, _, filenames in os.walk(root):
        for filename in filenames:
            full = Path(dirpath) / filename
            try:
                st = full.stat()
            except FileNotFoundError:
                # removed between listing and stat; the next scan reports it
                continue
            result[full.relative_to(root).as_posix()] = (st.st_mtime_ns, st.st_size)
    return result


def diff_snapshots(old: dict[str, Signature], new: dict[str, Signature]) -> list[tuple[str, str]]:
    """Return (change_type, relpath) pairs between two snapshots."""
    changes = [("deleted", p) for p in old if p not in new]
    for path, sig in new.items():
        if path not in old:
            changes.append(("created", path))
        elif old[path] != sig:
            changes.append(("modified", path))
    return changes


class ChangeWatcher:
    """Observe a directory tree and invoke ``callback`` at most once per debounce window.

    Observation starts on construction and runs on a daemon thread that polls
    the tree every ``poll_interval`` seconds. ``stop()`` joins that thread, so
    no callback fires after it returns.
    """

    def __init__(
        self,
        directory: Path,
        callback: Callable[[], None],
        debounce: float = 0.5,
        poll_interval: float = 0.1,
        clock: Callable[[], float] = time.monotonic,
        on_error: Optional[Callable[[WatcherError], None]] = None,
        ):
        self.directory = Path(directory)
        self.callback = callback
        self.debounce = debounce
        self.poll_interval = poll_interval
        self.clock = clock
        self.on_error = on_error
        self.error: Optional[WatcherError] = None

        self._last_accepted: Optional[float] = None
        self._lock = threading.Lock()
        self._stopped = threading.Event()

        try:
            self._snapshot = snapshot(self.directory)
        except OSError as e:
            raise WatcherError(f"Cannot observe {self.directory}: {e}") from e
        if not self.directory.is_dir():
            raise WatcherError(f"Not a directory: {self.directory}")

        ctx = contextvars.copy_context()
        self._thread = threading.Thread(
            target=ctx.run, args=(self._loop,), name=f"wordmd-watcher-{self.directory.name}", daemon=True,
        )
        self._thread.start()
        logger.info("Started watching directory: %s", self.directory)

    @property
    def active(self) -> bool:
        return self.error is None and self._thread.is_alive() and not self._stopped.is_set()

    def notify(self, path: Path, change_type: str = "modified") -> bool:
        """Filter then debounce one event. Returns True when the callback was invoked."""
        if is_ignored(path):
            logger.debug("Ignoring %s event for %s", change_type, path)
            return False

        with self._lock:
            if self._stopped.is_set():
                return False
            now = self.clock()
            if self._last_accepted is not None and now - self._last_accepted < self.debounce:
                return False
            self._last_accepted = now

            logger.info("File %s: %s", change_type, path)
            try:
                self.callback()
            except Exception:
                logger.exception("Error in change callback")
            return True

    def poll(self) -> int:
        """Scan once and dispatch every change. Returns the number of accepted events."""
        try:
            current = snapshot(self.directory)
        except OSError as e:
            raise WatcherError(f"Scan of {self.directory} failed: {e}") from e
        if not self.directory.is_dir():
            raise WatcherError(f"Watched directory disappeared: {self.directory}")

        changes = diff_snapshots(self._snapshot, current)
        self._snapshot = current
        return sum(self.notify(self.directory / rel, change) for change, rel in changes)

    def _loop(self) -> None:
        while not self._stopped.wait(self.poll_interval):
            try:
                self.poll()
            except WatcherError as e:
                self.error = e
                logger.warning("Live sync disabled: %s", e)
                if self.on_error is not None:
                    self.on_error(e)
                return

    def stop(self) -> None:
        """Stop observing. Idempotent; blocks until the notification loop has exited."""
        if self._stopped.is_set() and not self._thread.is_alive():
            return
        self._stopped.set()
        if threading.current_thread() is not self._thread:
            self._thread.join()
        logger.info("Stopped watching directory: %s", self.directory)

    def __enter__(self) -> "ChangeWatcher":
        return self

    def __exit__(self, *exc) -> None:
        self.stop()
