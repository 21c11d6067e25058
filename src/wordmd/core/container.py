"""Container store: side-channel markdown + assets inside a .docx package

The side channel lives under the reserved ``wordmd/`` prefix of the zip
archive. Conventional consumers never reference those entries, so the native
body and every other part stay untouched by extract/embed.

Every write goes through :func:`rewrite_package`, which copies the retained
entries into a sibling temp file and swaps it in with ``os.replace``; a reader
opening the container sees either the old or the new package, never a mix.
"""

import logging
import os
import shutil
import tempfile
import zipfile
from pathlib import Path
from typing import Callable, Optional

from wordmd.core import ooxml
from wordmd.core.models import SideChannel
from wordmd.errors import ContainerError


logger = logging.getLogger(__name__)

SIDE_CHANNEL_PREFIX = "wordmd/"
MARKDOWN_ENTRY = f"{SIDE_CHANNEL_PREFIX}document.md"
ASSETS_PREFIX = f"{SIDE_CHANNEL_PREFIX}images/"

STAGING_MARKDOWN = "document.md"
STAGING_ASSETS_DIR = "images"


def _is_side_channel(name: str) -> bool:
    return name.startswith(SIDE_CHANNEL_PREFIX)


def _safe_asset_name(name: str) -> bool:
    """Asset names map 1:1 to file names in the staging assets dir."""
    return bool(name) and "/" not in name and "\\" not in name and name not in (".", "..")


def _open(container: Path) -> zipfile.ZipFile:
    try:
        return zipfile.ZipFile(container, "r")
    except (OSError, zipfile.BadZipFile) as e:
        raise ContainerError(f"Cannot open container {container}: {e}") from e


def create_container(container: Path) -> Path:
    """Write a minimal valid package with an empty body and no side channel."""
    container = Path(container)
    try:
        container.parent.mkdir(parents=True, exist_ok=True)
        with zipfile.ZipFile(container, "w", compression=zipfile.ZIP_DEFLATED) as zf:
            zf.writestr("[Content_Types].xml", ooxml.CONTENT_TYPES_XML)
            zf.writestr("_rels/.rels", ooxml.PACKAGE_RELS_XML)
            zf.writestr(ooxml.MAIN_DOCUMENT_PART, ooxml.BLANK_DOCUMENT_XML)
    except OSError as e:
        raise ContainerError(f"Cannot create container {container}: {e}") from e
    logger.info("Created container %s", container)
    return container


def read_part(container: Path, name: str) -> Optional[bytes]:
    """Return the raw bytes of one package entry, or None when absent."""
    with _open(Path(container)) as zf:
        try:
            return zf.read(name)
        except KeyError:
            return None
        except (OSError, zipfile.BadZipFile) as e:
            raise ContainerError(f"Cannot read {name} from {container}: {e}") from e


def rewrite_package(
    container: Path,
    keep: Callable[[str], bool] = lambda name: True,
    updates: Optional[dict[str, bytes]] = None,
    ) -> None:
    """Atomically rewrite the package.

    Entries for which ``keep(name)`` is False are dropped. Entries named in
    ``updates`` are replaced in place (keeping their zip metadata) or appended
    when new. All other entries are copied byte-for-byte.
    """
    # rewrite the link target, not the link
    container = Path(container).resolve()
    updates = dict(updates or {})
    if not os.access(container, os.W_OK):
        raise ContainerError(f"Container is not writable: {container}")

    try:
        fd, tmp_name = tempfile.mkstemp(prefix=".wordmd-", suffix=".tmp", dir=container.parent)
    except OSError as e:
        raise ContainerError(f"Cannot stage a rewrite next to {container}: {e}") from e
    os.close(fd)
    tmp = Path(tmp_name)
    try:
        with _open(container) as src, zipfile.ZipFile(tmp, "w", compression=zipfile.ZIP_DEFLATED) as dst:
            for info in src.infolist():
                name = info.filename
                if name in updates:
                    dst.writestr(info, updates.pop(name))
                elif keep(name):
                    dst.writestr(info, src.read(info))
            for name, data in updates.items():
                dst.writestr(name, data)
        shutil.copymode(container, tmp)
        os.replace(tmp, container)
    except ContainerError:
        tmp.unlink(missing_ok=True)
        raise
    except (OSError, zipfile.BadZipFile) as e:
        tmp.unlink(missing_ok=True)
        raise ContainerError(f"Cannot write container {container}: {e}") from e


def read_side_channel(container: Path) -> SideChannel:
    """Return the embedded markdown and assets; empty when the container has none."""
    container = Path(container)
    channel = SideChannel()
    with _open(container) as zf:
        try:
            for info in zf.infolist():
                name = info.filename
                if name == MARKDOWN_ENTRY:
                    channel.markdown = zf.read(info).decode("utf-8")
                elif name.startswith(ASSETS_PREFIX) and not info.is_dir():
                    channel.assets[name[len(ASSETS_PREFIX):]] = zf.read(info)
        except (OSError, zipfile.BadZipFile, UnicodeDecodeError) as e:
            raise ContainerError(f"Cannot read side channel of {container}: {e}") from e
    return channel


def has_side_channel(container: Path) -> bool:
    with _open(Path(container)) as zf:
        return any(_is_side_channel(n) for n in zf.namelist())


def embed(
    container: Path,
    markdown: str,
    assets: dict[str, bytes],
    parts: Optional[dict[str, bytes]] = None,
    ) -> None:
    """Replace the whole side channel with ``markdown`` and exactly ``assets``.

    Native ``parts`` (e.g. a re-rendered main document) are swapped in by the
    same rewrite, so body and side channel always change together.
    """
    updates = dict(parts or {})
    for name in updates:
        if _is_side_channel(name):
            raise ContainerError(f"Reserved entry name: {name!r}")
    updates[MARKDOWN_ENTRY] = markdown.encode("utf-8")
    for name, data in sorted(assets.items()):
        if not _safe_asset_name(name):
            raise ContainerError(f"Invalid asset name: {name!r}")
        updates[ASSETS_PREFIX + name] = bytes(data)
    rewrite_package(container, keep=lambda name: not _is_side_channel(name), updates=updates)
    logger.info("Embedded markdown (%d chars) and %d asset(s) into %s", len(markdown), len(assets), container)


def write_staging_directory(staging_dir: Path, channel: SideChannel) -> Path:
    """Lay out ``channel`` on disk; returns the markdown file path."""
    staging_dir = Path(staging_dir)
    assets_dir = staging_dir / STAGING_ASSETS_DIR
    assets_dir.mkdir(parents=True, exist_ok=True)

    md_path = staging_dir / STAGING_MARKDOWN
    md_path.write_bytes(channel.markdown.encode("utf-8"))
    for name, data in channel.assets.items():
        if not _safe_asset_name(name):
            logger.warning("Skipping asset with unsafe name %r", name)
            continue
        (assets_dir / name).write_bytes(data)
    return md_path


def read_staging_directory(staging_dir: Path) -> SideChannel:
    """Read the markdown file and every regular file in the assets dir."""
    staging_dir = Path(staging_dir)
    md_path = staging_dir / STAGING_MARKDOWN
    # utf-8-sig drops a BOM some Windows editors prepend
    markdown = md_path.read_bytes().decode("utf-8-sig") if md_path.exists() else ""

    assets: dict[str, bytes] = {}
    assets_dir = staging_dir / STAGING_ASSETS_DIR
    if assets_dir.is_dir():
        for p in sorted(assets_dir.iterdir()):
            if p.is_file():
                assets[p.name] = p.read_bytes()
    return SideChannel(markdown=markdown, assets=assets)


def extract(container: Path, staging_dir: Path) -> Path:
    """Copy the side channel into ``staging_dir``. Returns the markdown file path."""
    channel = read_side_channel(container)
    try:
        md_path = write_staging_directory(staging_dir, channel)
    except OSError as e:
        raise ContainerError(f"Cannot write staging directory {staging_dir}: {e}") from e
    logger.info(
        "Extracted %s -> %s (%d chars, %d asset(s))",
        container, staging_dir, len(channel.markdown), len(channel.assets),
    )
    return md_path
