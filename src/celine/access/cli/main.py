# access/cli/main.py
from __future__ import annotations
import typer

from celine.access.cli.manifest import manifest_cmd
from celine.access.cli.query import query_cmd, rewrite_cmd

app = typer.Typer(help="Remote table access utilities", no_args_is_help=True)

app.command("manifest")(manifest_cmd)
app.command("rewrite")(rewrite_cmd)
app.command("query")(query_cmd)


def run():
    app()


if __name__ == "__main__":
    run()
