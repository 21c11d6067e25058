"""CLI command implementations"""

from pathlib import Path
from typing import Annotated, Optional

import typer

from wordmd.config import Settings, load_config
from wordmd.core import container as store
from wordmd.core import ooxml
from wordmd.core.convert.render import render_document
from wordmd.core.editors import EditorRegistry
from wordmd.core.session import run_edit_session
from wordmd.errors import ContainerError
from wordmd.logging import configure_logging


def _fail(msg: str, cause: Exception = None) -> None:
    """Print a user-friendly error to stderr and exit 1."""
    typer.echo(f"Error: {msg}", err=True)
    if cause:
        typer.echo(f"  {cause}", err=True)
    raise typer.Exit(1)


def _settings(overrides: dict = None) -> Settings:
    """Load config and configure logging, with standard CLI error handling."""
    try:
        settings = load_config(overrides=overrides)
    except ValueError as e:
        _fail(str(e))
    configure_logging(settings.log_level)
    return settings


def _pick_editor(settings: Settings, registry: EditorRegistry) -> str:
    """Configured default editor, else the first installed one in configured order."""
    if settings.default_editor:
        return settings.default_editor
    ordered = registry.ordered(settings.editor_order)
    if not ordered:
        _fail("No supported markdown editor found. Run 'wordmd editors' to see what is detected.")
    return ordered[0].definition.id


def edit_cmd(
    path: Annotated[Path, typer.Argument(help="Word document (.docx) to edit")],
    editor: Annotated[Optional[str], typer.Option("--editor", "-e", help="Editor id, e.g. vscode, typora, vim")] = None,
    debounce: Annotated[Optional[int], typer.Option("--debounce-ms", help="Live sync debounce window")] = None,
    log_level: Annotated[Optional[str], typer.Option("--log-level", help="DEBUG, INFO, WARNING, ...")] = None,
    ):
    """Open the document's markdown in an external editor and sync changes back."""
    settings = _settings(overrides={"debounce_ms": debounce, "log_level": log_level})
    if not path.is_file():
        _fail(f"File not found: {path}")

    registry = EditorRegistry()
    editor_id = editor or _pick_editor(settings, registry)
    outcome = run_edit_session(path, editor_id, settings=settings, registry=registry)

    for warning in outcome.warnings:
        typer.echo(f"  warning: {warning}", err=True)
    if not outcome.ok:
        _fail(outcome.message)
    typer.echo(f"{outcome.message} ({outcome.embeds} sync(s))")


def new_cmd(
    path: Annotated[Path, typer.Argument(help="Word document (.docx) to create")],
    force: Annotated[bool, typer.Option("--force", help="Overwrite an existing file")] = False,
    ):
    """Create an empty Word document ready for markdown editing."""
    _settings()
    if path.exists() and not force:
        _fail(f"{path} already exists. Use --force to overwrite.")
    try:
        store.create_container(path)
    except ContainerError as e:
        _fail("Create failed", e)
    typer.echo(f"Created {path}")


def extract_cmd(
    path: Annotated[Path, typer.Argument(help="Word document (.docx) to read")],
    out: Annotated[Path, typer.Argument(help="Directory to write document.md and images/ into")],
    ):
    """Write the embedded markdown and assets to a directory."""
    _settings()
    try:
        md_path = store.extract(path, out)
    except ContainerError as e:
        _fail("Extract failed", e)
    typer.echo(f"  {path} -> {md_path}")


def embed_cmd(
    path: Annotated[Path, typer.Argument(help="Word document (.docx) to update")],
    source: Annotated[Path, typer.Argument(help="Directory holding document.md and images/")],
    parser: Annotated[Optional[str], typer.Option("--parser-config", help="MarkdownIt preset name")] = None,
    ):
    """Render a staged directory into the document body and embed it."""
    settings = _settings(overrides={"parser_config": parser})
    if not source.is_dir():
        _fail(f"Not a directory: {source}")
    try:
        channel = store.read_staging_directory(source)
        document_xml, warnings = render_document(path, channel.markdown, settings.parser_config, settings.code_font)
        store.embed(path, channel.markdown, channel.assets, parts={ooxml.MAIN_DOCUMENT_PART: document_xml})
    except (OSError, UnicodeDecodeError, ContainerError) as e:
        _fail("Embed failed", e)
    for warning in warnings:
        typer.echo(f"  warning: {warning}", err=True)
    typer.echo(f"Embedded {source} -> {path} ({len(channel.assets)} asset(s))")


def editors_cmd():
    """List installed editors in configured order."""
    settings = _settings()
    ordered = EditorRegistry().ordered(settings.editor_order)
    if not ordered:
        typer.echo("No supported markdown editors found.")
        raise typer.Exit(1)
    default = settings.default_editor or ordered[0].definition.id
    for resolved in ordered:
        marker = "*" if resolved.definition.id == default else " "
        typer.echo(f"{marker} {resolved.definition.id:<16} {resolved.definition.display_name}  ({resolved.executable})")
