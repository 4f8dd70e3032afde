# access/cli/utils.py
from __future__ import annotations

import sys
from typing import NoReturn, Optional

import typer
from pydantic import SecretStr, ValidationError

from celine.access.api.manifest.gateway import ManifestGateway
from celine.access.core.config import settings
from celine.access.core.logging import setup_logging
from celine.access.security.credentials import SettingsCredentials
from celine.access.security.models import AuthorizationContext


def setup_cli_logging(verbose: bool) -> None:
    setup_logging("DEBUG" if verbose else "WARNING", stream=sys.stderr)


def make_gateway() -> ManifestGateway:
    return ManifestGateway(timeout=settings.http_timeout_seconds)


def resolve_context(
    api_url: Optional[str], api_key: Optional[str]
) -> Optional[AuthorizationContext]:
    """Command-line credentials, falling back to API_URL / API_KEY settings."""
    if api_url is None and api_key is None:
        return SettingsCredentials().lookup_current_authorization()

    url = api_url or settings.api_url
    key = api_key or (settings.api_key.get_secret_value() if settings.api_key else None)
    if not url or not key:
        raise typer.BadParameter("both --api-url and --api-key are required")
    try:
        return AuthorizationContext(endpoint=url, api_key=SecretStr(key))
    except ValidationError as e:
        raise typer.BadParameter(str(e)) from e


def fail(message: str) -> NoReturn:
    typer.secho(message, err=True, fg=typer.colors.RED)
    raise typer.Exit(code=1)
