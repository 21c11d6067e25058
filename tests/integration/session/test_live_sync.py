"""End-to-end edit sessions driven by a scripted stand-in editor"""

import sys
from pathlib import Path

from wordmd.core import container as store
from wordmd.core.editors import EditorDefinition, EditorRegistry
from wordmd.core.session import run_edit_session


W = "{http://schemas.openxmlformats.org/wordprocessingml/2006/main}"

# three saves 50ms apart, then keep the editor open past the debounce window
RAPID_SAVES = """
import sys, time
time.sleep(0.3)
for word in ("one", "two", "three"):
    with open(sys.argv[1], "w", encoding="utf-8") as f:
        f.write("# Draft " + word + "\\n")
    time.sleep(0.05)
time.sleep(1.5)
"""

ADD_ASSET = """
import os, sys
stage = os.path.dirname(sys.argv[1])
with open(os.path.join(stage, "images", "pic.png"), "wb") as f:
    f.write(b"PNG")
with open(os.path.join(stage, ".document.md.swp"), "w") as f:
    f.write("swap")
with open(sys.argv[1], "w", encoding="utf-8") as f:
    f.write("![pic](images/pic.png)\\n")
"""


def _registry(script):
    return EditorRegistry([
        EditorDefinition(id="scripted", display_name="Scripted", executables=[sys.executable], args=["-c", script, "{path}"]),
    ])


def test_rapid_saves_collapse_to_one_live_sync(container, settings, paragraphs):
    outcome = run_edit_session(container, "scripted", settings=settings, registry=_registry(RAPID_SAVES))

    assert outcome.ok, outcome.message
    # one debounced live sync plus the final commit on editor exit
    assert outcome.embeds == 2
    assert store.read_side_channel(container).markdown == "# Draft three\n"

    body = paragraphs(container)
    assert len(body) == 1
    assert body[0].find(f"{W}pPr/{W}pStyle").get(f"{W}val") == "Heading1"
    assert list(Path(settings.staging_root).iterdir()) == []


def test_assets_round_trip_and_swap_files_are_dropped(container, settings):
    outcome = run_edit_session(container, "scripted", settings=settings, registry=_registry(ADD_ASSET))

    assert outcome.ok, outcome.message
    channel = store.read_side_channel(container)
    assert channel.markdown == "![pic](images/pic.png)\n"
    assert channel.assets == {"pic.png": b"PNG"}
    # images are not rendered into the native body
    assert any("image" in w for w in outcome.warnings)
