"""Unit tests for core/session.py"""

import sys
import threading
import time
from pathlib import Path

import pytest

from wordmd.core import container as store
from wordmd.core.editors import EditorDefinition, EditorRegistry
from wordmd.core.models import SessionState
from wordmd.core.session import EditSession, SyncQueue, run_edit_session
from wordmd.errors import WatcherError


WRITE_AND_EXIT = """
import sys
with open(sys.argv[1], "w", encoding="utf-8") as f:
    f.write("# Hello\\n\\nFrom the editor.\\n")
"""


def _registry(script, editor_id="fake"):
    return EditorRegistry([
        EditorDefinition(id=editor_id, display_name="Fake", executables=[sys.executable], args=["-c", script, "{path}"]),
    ])


@pytest.fixture(name="staging_root")
def staging_root_fixture(settings):
    return Path(settings.staging_root)


def test_session_commits_final_edit(container, settings, staging_root, paragraphs):
    outcome = run_edit_session(container, "fake", settings=settings, registry=_registry(WRITE_AND_EXIT))

    assert outcome.ok
    assert outcome.exit_code == 0
    assert outcome.state == SessionState.terminated
    assert outcome.embeds >= 1
    assert store.read_side_channel(container).markdown == "# Hello\n\nFrom the editor.\n"
    assert len(paragraphs(container)) == 2
    assert list(staging_root.iterdir()) == []


def test_session_without_changes_still_embeds(container, settings, staging_root):
    outcome = run_edit_session(container, "fake", settings=settings, registry=_registry("pass"))
    assert outcome.ok
    assert outcome.embeds == 1
    assert store.has_side_channel(container)
    assert store.read_side_channel(container).markdown == ""


def test_unknown_editor_fails_and_cleans_up(container, settings, staging_root):
    before = store.read_part(container, "word/document.xml")
    outcome = run_edit_session(container, "no-such-editor", settings=settings, registry=_registry("pass"))

    assert not outcome.ok
    assert outcome.exit_code == 1
    assert outcome.state == SessionState.failed
    assert "no-such-editor" in outcome.message
    assert outcome.embeds == 0
    assert store.read_part(container, "word/document.xml") == before
    assert list(staging_root.iterdir()) == []


def test_missing_container_fails(tmp_path, settings, staging_root):
    outcome = run_edit_session(tmp_path / "missing.docx", "fake", settings=settings, registry=_registry("pass"))
    assert outcome.state == SessionState.failed
    assert "missing.docx" in outcome.message
    assert list(staging_root.iterdir()) == []


def test_unlaunchable_editor_fails(tmp_path, container, settings, staging_root):
    not_a_program = tmp_path / "editor.txt"
    not_a_program.write_text("plain text")
    registry = EditorRegistry([
        EditorDefinition(id="broken", display_name="Broken", candidate_paths=[str(not_a_program)]),
    ])
    outcome = run_edit_session(container, "broken", settings=settings, registry=registry)

    assert outcome.state == SessionState.failed
    assert "Failed to launch" in outcome.message
    assert list(staging_root.iterdir()) == []


def test_sync_queue_coalesces_burst():
    started = threading.Event()
    release = threading.Event()
    runs = []

    def sync():
        runs.append(1)
        started.set()
        release.wait(2.0)

    q = SyncQueue(sync)
    q.request()
    assert started.wait(2.0)
    for _ in range(5):
        q.request()
    release.set()
    q.close()
    assert len(runs) == 2


def test_sync_queue_ignores_requests_after_close():
    runs = []
    q = SyncQueue(lambda: runs.append(1))
    q.close()
    q.request()
    assert runs == []


def test_embeds_never_overlap(container, settings, monkeypatch):
    """Concurrent sync() calls are serialized by the session's embed lock."""
    real_embed = store.embed
    active = []
    overlaps = []
    guard = threading.Lock()

    def slow_embed(*args, **kwargs):
        with guard:
            active.append(1)
            if len(active) > 1:
                overlaps.append(len(active))
        time.sleep(0.05)
        try:
            real_embed(*args, **kwargs)
        finally:
            with guard:
                active.pop()

    monkeypatch.setattr(store, "embed", slow_embed)
    session = EditSession(container, "fake", settings=settings, registry=_registry("pass"))
    session._extract()
    try:
        threads = [threading.Thread(target=session.sync) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
    finally:
        session._cleanup()

    assert overlaps == []
    assert session.embeds == 4
    assert session.state == SessionState.terminated


def test_watcher_failure_degrades_to_final_commit(container, settings, staging_root, monkeypatch):
    """Without a watcher the session still commits on editor exit and reports ok."""
    def broken_watcher(*args, **kwargs):
        raise WatcherError("inotify limit reached")

    monkeypatch.setattr("wordmd.core.session.ChangeWatcher", broken_watcher)
    outcome = run_edit_session(container, "fake", settings=settings, registry=_registry(WRITE_AND_EXIT))

    assert outcome.ok
    assert outcome.embeds == 1
    assert any("Live sync disabled" in w for w in outcome.warnings)
    assert store.read_side_channel(container).markdown == "# Hello\n\nFrom the editor.\n"


def test_cleanup_failure_is_only_a_warning(container, settings, staging_root, monkeypatch):
    def stuck_rmtree(path, *args, **kwargs):
        raise OSError(f"directory busy: {path}")

    monkeypatch.setattr("wordmd.core.session.shutil.rmtree", stuck_rmtree)
    outcome = run_edit_session(container, "fake", settings=settings, registry=_registry(WRITE_AND_EXIT))

    assert outcome.ok
    assert outcome.state == SessionState.terminated
    assert any("Failed to delete staging directory" in w for w in outcome.warnings)
    assert len(list(staging_root.iterdir())) == 1


NS0_DOCUMENT = (
    b'<?xml version="1.0" encoding="UTF-8"?>'
    b'<ns0:document xmlns:ns0="http://schemas.openxmlformats.org/wordprocessingml/2006/main">'
    b'<ns0:body><ns0:sectPr/></ns0:body></ns0:document>'
)


def test_generated_prefix_document_commits(container, settings, paragraphs):
    store.rewrite_package(container, updates={"word/document.xml": NS0_DOCUMENT})
    outcome = run_edit_session(container, "fake", settings=settings, registry=_registry(WRITE_AND_EXIT))

    assert outcome.ok, outcome.message
    assert len(paragraphs(container)) == 2


def test_unparseable_body_fails_session_without_raising(container, settings, staging_root):
    store.rewrite_package(container, updates={"word/document.xml": b"<w:document"})
    outcome = run_edit_session(container, "fake", settings=settings, registry=_registry("pass"))

    assert outcome.state == SessionState.failed
    assert "not valid XML" in outcome.message
    assert list(staging_root.iterdir()) == []


def test_sync_is_a_single_package_rewrite(container, settings, monkeypatch):
    """Body and side channel are committed by one atomic swap."""
    calls = []
    real_rewrite = store.rewrite_package

    def counting_rewrite(*args, **kwargs):
        calls.append(1)
        real_rewrite(*args, **kwargs)

    session = EditSession(container, "fake", settings=settings, registry=_registry("pass"))
    session._extract().write_text("# Once\n", encoding="utf-8")
    monkeypatch.setattr(store, "rewrite_package", counting_rewrite)
    try:
        session.sync()
    finally:
        session._cleanup()

    assert calls == [1]
    assert store.read_side_channel(container).markdown == "# Once\n"
