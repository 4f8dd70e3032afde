# access/cli/manifest.py
"""
CLI command printing the manifest the API returns for a table.

Bypasses the cache: every invocation performs one request.
"""
from __future__ import annotations

import json
from typing import Optional

import typer

from celine.access.api.manifest.client import ManifestClient
from celine.access.cli.utils import fail, make_gateway, resolve_context, setup_cli_logging
from celine.access.core.errors import ManifestError

def manifest_cmd(
    table: str = typer.Argument(..., help="Table name"),
    schema: str = typer.Option("main", "--schema", "-s", help="Schema name"),
    api_url: Optional[str] = typer.Option(None, "--api-url", help="Manifest API URL"),
    api_key: Optional[str] = typer.Option(None, "--api-key", help="API key"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    """Fetch and print the manifest for TABLE as JSON."""
    setup_cli_logging(verbose)

    context = resolve_context(api_url, api_key)
    if context is None:
        fail("no credentials: pass --api-url/--api-key or set API_URL and API_KEY")

    with make_gateway() as gateway:
        try:
            manifest = ManifestClient(gateway).fetch(context, schema, table)
        except ManifestError as e:
            fail(f"{schema}.{table}: {e.message}")

    typer.echo(json.dumps(manifest.as_dict(), indent=2))
