# access/cli/query.py
from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator, Optional

import duckdb
import typer

from celine.access.cli.utils import fail, make_gateway, resolve_context, setup_cli_logging
from celine.access.core.errors import RewriteError
from celine.access.db.session import AccessSession, build_cache


@contextmanager
def _open_session(
    database: Optional[str], api_url: Optional[str], api_key: Optional[str]
) -> Iterator[AccessSession]:
    context = resolve_context(api_url, api_key)
    with make_gateway() as gateway, duckdb.connect(database or ":memory:") as con:
        with AccessSession(con, cache=build_cache(gateway=gateway)) as session:
            if context is not None:
                session.set_authorization(context)
            yield session


def rewrite_cmd(
    sql: str = typer.Argument(..., help="SQL statement"),
    database: Optional[str] = typer.Option(None, "--database", "-d", help="DuckDB file"),
    api_url: Optional[str] = typer.Option(None, "--api-url", help="Manifest API URL"),
    api_key: Optional[str] = typer.Option(None, "--api-key", help="API key"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    """Print SQL with remote tables replaced by their policy-applied scans."""
    setup_cli_logging(verbose)

    with _open_session(database, api_url, api_key) as session:
        try:
            resolved = session.rewrite_sql(sql)
        except RewriteError as e:
            fail(e.message)

    for name, result in resolved.rewrites.items():
        for issue in result.report.issues:
            typer.secho(
                f"-- {name}: {issue.kind} {issue.target or ''} not applied ({issue.reason})",
                err=True,
                fg=typer.colors.YELLOW,
            )
    typer.echo(resolved.sql)


def query_cmd(
    sql: str = typer.Argument(..., help="SQL statement"),
    database: Optional[str] = typer.Option(None, "--database", "-d", help="DuckDB file"),
    api_url: Optional[str] = typer.Option(None, "--api-url", help="Manifest API URL"),
    api_key: Optional[str] = typer.Option(None, "--api-key", help="API key"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    """Run SQL in DuckDB, resolving remote tables through the manifest API."""
    setup_cli_logging(verbose)

    with _open_session(database, api_url, api_key) as session:
        try:
            cursor = session.execute(sql)
            columns = [d[0] for d in cursor.description or []]
            rows = cursor.fetchall()
        except RewriteError as e:
            fail(e.message)
        except duckdb.Error as e:
            fail(str(e))

    if columns:
        typer.echo("\t".join(columns))
    for row in rows:
        typer.echo("\t".join("" if v is None else str(v) for v in row))
