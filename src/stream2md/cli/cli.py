"""CLI entrypoint: Typer app definition and command registration"""

import typer

from stream2md.cli.commands import patches_cmd, render_cmd


app = typer.Typer(name="stream2md", no_args_is_help=True, help="Replay markdown files through the streaming engine")

app.command(name="render")(render_cmd)
app.command(name="patches")(patches_cmd)
