from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta
from typing import Optional

from celine.access.api.manifest.gateway import GatewayResponse, ManifestGateway
from celine.access.api.manifest.models import TableManifest
from celine.access.api.manifest.parser import parse_manifest
from celine.access.core.config import settings
from celine.access.core.errors import HTTP_STATUS_ERRORS, ProtocolError, TransportError
from celine.access.security.models import AuthorizationContext

logger = logging.getLogger(__name__)

_MAX_ERROR_BODY = 200


def _server_message(resp: GatewayResponse, default: str) -> str:
    try:
        data = json.loads(resp.text)
    except ValueError:
        return default
    if isinstance(data, dict) and isinstance(data.get("message"), str):
        return data["message"]
    return default


def raise_for_manifest_status(resp: GatewayResponse, *, schema: str, table: str) -> None:
    """Map a non-success manifest API response to its ``ManifestError``."""
    if resp.ok:
        return

    details = {"status": resp.status_code, "schema": schema, "table": table}

    error_cls = HTTP_STATUS_ERRORS.get(resp.status_code)
    if error_cls is not None:
        message = error_cls.default_message
        if error_cls.use_server_message:
            message = _server_message(resp, message)
        raise error_cls(message, details)

    message = f"API returned HTTP {resp.status_code}"
    if resp.body:
        message += ": " + resp.body[:_MAX_ERROR_BODY].decode("utf-8", errors="replace")
    raise ProtocolError(message, details)


class ManifestClient:
    """Fetch one manifest from the manifest API, without caching."""

    def __init__(
        self,
        gateway: ManifestGateway,
        *,
        timeout: Optional[float] = None,
        default_ttl: Optional[timedelta] = None,
    ):
        self.gateway = gateway
        self._timeout = timeout
        self._default_ttl = default_ttl or timedelta(
            seconds=settings.manifest_default_ttl_seconds
        )

    def fetch(
        self,
        context: AuthorizationContext,
        schema: str,
        table: str,
        *,
        now: Optional[datetime] = None,
    ) -> TableManifest:
        try:
            resp = self.gateway.call(
                context.manifest_url,
                context.api_key.get_secret_value(),
                {"table": table, "schema": schema},
                timeout=self._timeout,
            )
        except TransportError as e:
            raise TransportError(
                f"cannot reach API server: {e.message}", details=e.details
            ) from e

        logger.info(
            "Manifest request for %s.%s to %s (credential %s) -> HTTP %d",
            schema,
            table,
            context.endpoint,
            context.credential_id[:8],
            resp.status_code,
        )
        raise_for_manifest_status(resp, schema=schema, table=table)

        manifest = parse_manifest(resp.body, now=now, default_ttl=self._default_ttl)
        logger.debug(
            "Manifest for %s.%s: %d files, %d row filters, %d masks, expires %s",
            schema,
            table,
            len(manifest.files),
            len(manifest.row_filters),
            len(manifest.column_masks),
            manifest.expires_at.isoformat(),
        )
        return manifest
