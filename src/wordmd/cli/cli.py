"""CLI entrypoint: Typer app definition and command registration"""

import typer

from wordmd.cli.commands import edit_cmd, editors_cmd, embed_cmd, extract_cmd, new_cmd


app = typer.Typer(name="wordmd", no_args_is_help=True, help="Edit markdown embedded in Word documents")

app.command(name="edit")(edit_cmd)
app.command(name="new")(new_cmd)
app.command(name="extract")(extract_cmd)
app.command(name="embed")(embed_cmd)
app.command(name="editors")(editors_cmd)
