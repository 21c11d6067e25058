"""Edit session controller: extract -> edit with live sync -> final embed -> cleanup

Every embed for a session (live and terminal) runs under one lock. Watcher
callbacks only flag a pending sync; a dedicated worker thread services the
flag, so a burst arriving during an embed collapses into a single follow-up
run. On editor exit the watcher is stopped and the worker drained before the
terminal embed, which therefore happens-after any embed already in flight.
"""

import contextvars
import logging
import shutil
import subprocess
import tempfile
import threading
import uuid
from pathlib import Path
from typing import Optional

from wordmd.config import Settings
from wordmd.core import container as store
from wordmd.core import ooxml
from wordmd.core.convert.render import render_document
from wordmd.core.editors import EditorRegistry, ResolvedEditor, prepare_staging
from wordmd.core.models import SessionOutcome, SessionState
from wordmd.core.watcher import ChangeWatcher
from wordmd.errors import CleanupError, ContainerError, EditorLaunchError, WatcherError
from wordmd.logging import session_id_ctx


logger = logging.getLogger(__name__)

TERMINAL_STATES = {SessionState.terminated, SessionState.failed}


class SyncQueue:
    """Coalescing single-consumer queue of 'sync requested' signals."""

    def __init__(self, sync, name: str = "wordmd-sync"):
        self._sync = sync
        self._cond = threading.Condition()
        self._pending = False
        self._closed = False
        ctx = contextvars.copy_context()
        self._thread = threading.Thread(target=ctx.run, args=(self._loop,), name=name, daemon=True)
        self._thread.start()

    def request(self) -> None:
        with self._cond:
            if self._closed:
                return
            self._pending = True
            self._cond.notify()

    def _loop(self) -> None:
        while True:
            with self._cond:
                while not self._pending and not self._closed:
                    self._cond.wait()
                if not self._pending:
                    return
                self._pending = False
            self._sync()

    def close(self) -> None:
        """Run any pending request, then stop the worker. Blocks until it exits."""
        with self._cond:
            self._closed = True
            self._cond.notify_all()
        if threading.current_thread() is not self._thread:
            self._thread.join()


class EditSession:
    """One container, one staging directory, one editor process."""

    def __init__(
        self,
        container: Path,
        editor_id: str,
        settings: Optional[Settings] = None,
        registry: Optional[EditorRegistry] = None,
        ):
        self.container = Path(container)
        self.editor_id = editor_id
        self.settings = settings or Settings()
        self.registry = registry or EditorRegistry()
        self.id = uuid.uuid4().hex[:8]

        self.state = SessionState.idle
        self.staging_dir: Optional[Path] = None
        self.editor: Optional[ResolvedEditor] = None
        self.process: Optional[subprocess.Popen] = None
        self.watcher: Optional[ChangeWatcher] = None
        self.warnings: list[str] = []
        self.embeds = 0

        self._queue: Optional[SyncQueue] = None
        self._embed_lock = threading.Lock()
        self._state_lock = threading.Lock()

    # --- state ---

    def _transition(self, state: SessionState) -> None:
        with self._state_lock:
            if self.state in TERMINAL_STATES:
                return
            logger.debug("%s -> %s", self.state.value, state.value)
            self.state = state

    def _warn(self, message: str) -> None:
        logger.warning(message)
        self.warnings.append(message)

    # --- steps ---

    def _extract(self) -> Path:
        self._transition(SessionState.extracting)
        root = Path(self.settings.staging_root or tempfile.gettempdir())
        self.staging_dir = root / f"wordmd_{uuid.uuid4().hex}"
        logger.info("Using staging directory: %s", self.staging_dir)
        try:
            self.staging_dir.mkdir(parents=True)
        except OSError as e:
            raise ContainerError(f"Cannot create staging directory {self.staging_dir}: {e}") from e
        return store.extract(self.container, self.staging_dir)

    def _start_watcher(self) -> None:
        self._queue = SyncQueue(self._live_sync, name=f"wordmd-sync-{self.id}")
        try:
            self.watcher = ChangeWatcher(
                self.staging_dir,
                self._queue.request,
                debounce=self.settings.debounce_ms / 1000,
                poll_interval=self.settings.poll_interval_ms / 1000,
                on_error=lambda e: self.warnings.append(f"Live sync disabled: {e}"),
            )
        except WatcherError as e:
            self._warn(f"Live sync disabled: {e}")

    def _launch(self, markdown_path: Path) -> None:
        self._transition(SessionState.editing)
        self.editor = self.registry.resolve(self.editor_id)
        if self.editor is None:
            raise EditorLaunchError(f"Editor not found or not installed: {self.editor_id}")

        try:
            prepare_staging(self.editor.definition, self.staging_dir)
        except OSError as e:
            self._warn(f"Cannot prepare staging directory for {self.editor.definition.display_name}: {e}")

        self._start_watcher()
        cmd = self.editor.command(markdown_path)
        logger.info("Launching %s: %s", self.editor.definition.display_name, cmd)
        try:
            self.process = subprocess.Popen(cmd)
        except (OSError, ValueError) as e:
            raise EditorLaunchError(f"Failed to launch editor {self.editor.definition.display_name}: {e}") from e
        logger.info("Editor process started with PID: %s", self.process.pid)

    def sync(self) -> None:
        """Re-render the native body from the staging directory and embed it with the side channel in one rewrite."""
        with self._embed_lock:
            self._transition(SessionState.embedding)
            try:
                channel = store.read_staging_directory(self.staging_dir)
            except (OSError, UnicodeDecodeError) as e:
                raise ContainerError(f"Cannot read staging directory {self.staging_dir}: {e}") from e
            document_xml, warnings = render_document(
                self.container, channel.markdown, self.settings.parser_config, self.settings.code_font,
            )
            self.warnings.extend(str(w) for w in warnings)
            store.embed(self.container, channel.markdown, channel.assets, parts={ooxml.MAIN_DOCUMENT_PART: document_xml})
            self.embeds += 1

    def _live_sync(self) -> None:
        logger.info("File change detected, converting markdown to Word")
        try:
            self.sync()
            logger.info("Document updated successfully")
        except ContainerError as e:
            logger.warning("Error updating document: %s", e)
            self.warnings.append(f"Live sync failed: {e}")
        except Exception as e:
            logger.exception("Unexpected error updating document")
            self.warnings.append(f"Live sync failed: {e}")
        finally:
            self._transition(SessionState.editing)

    def _wait_and_commit(self) -> None:
        code = self.process.wait()
        logger.info("Editor process exited with code %s", code)
        if self.watcher is not None:
            self.watcher.stop()
        self._queue.close()
        self.sync()

    def _cleanup(self) -> None:
        self._transition(SessionState.cleaning)
        if self.watcher is not None:
            self.watcher.stop()
        if self._queue is not None:
            self._queue.close()
        # the editor is left running if we got here before it exited
        self.process = None

        if self.staging_dir is not None and self.staging_dir.exists():
            try:
                shutil.rmtree(self.staging_dir)
                logger.info("Staging directory deleted")
            except OSError as e:
                err = CleanupError(f"Failed to delete staging directory {self.staging_dir}: {e}")
                self._warn(str(err))
        self._transition(SessionState.terminated)

    def run(self) -> SessionOutcome:
        """Run the session to completion. Never raises for container or launch failures."""
        token = session_id_ctx.set(self.id)
        message = ""
        try:
            logger.info("Editing %s with %s", self.container, self.editor_id)
            markdown_path = self._extract()
            self._launch(markdown_path)
            self._wait_and_commit()
            message = f"Saved {self.container}"
        except (ContainerError, EditorLaunchError) as e:
            logger.error("Session failed: %s", e)
            self._transition(SessionState.failed)
            message = str(e)
        finally:
            self._cleanup()
            session_id_ctx.reset(token)

        return SessionOutcome(
            ok=self.state == SessionState.terminated,
            state=self.state,
            container=self.container,
            message=message,
            warnings=list(self.warnings),
            embeds=self.embeds,
        )


def run_edit_session(
    container_path: Path,
    editor_id: str,
    settings: Optional[Settings] = None,
    registry: Optional[EditorRegistry] = None,
    ) -> SessionOutcome:
    """Entry point for the CLI layer: edit one container with one editor."""
    return EditSession(container_path, editor_id, settings, registry).run()
