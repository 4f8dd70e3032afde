from __future__ import annotations

import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Optional

from pydantic import ValidationError

from celine.access.api.manifest.models import ManifestColumn, ManifestPayload, TableManifest
from celine.access.core.config import settings
from celine.access.core.errors import MalformedManifestError, NoDataFilesError

logger = logging.getLogger(__name__)

# YYYY-MM-DDTHH:MM:SS[.fraction][Z|+HH:MM|-HH:MM]
_TIMESTAMP_RE = re.compile(
    r"^(?P<base>\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2})"
    r"(?:\.\d+)?"
    r"(?P<tz>Z|z|[+-]\d{2}:?\d{2})?$"
)


def parse_expires_at(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp as UTC.

    A missing designator or ``Z`` means UTC; an explicit numeric offset is
    honoured. Local time is never assumed. Returns None when unparsable.
    """
    if not value:
        return None
    m = _TIMESTAMP_RE.match(value.strip())
    if m is None:
        return None
    try:
        base = datetime.strptime(m.group("base"), "%Y-%m-%dT%H:%M:%S")
    except ValueError:
        return None

    tz = m.group("tz")
    if tz is None or tz in ("Z", "z"):
        return base.replace(tzinfo=timezone.utc)

    sign = 1 if tz[0] == "+" else -1
    digits = tz[1:].replace(":", "")
    offset = timedelta(hours=int(digits[:2]), minutes=int(digits[2:]))
    return (base - sign * offset).replace(tzinfo=timezone.utc)


def _summarize(err: ValidationError) -> str:
    errors = err.errors()
    if not errors:
        return str(err)
    first = errors[0]
    loc = ".".join(str(p) for p in first.get("loc", ()) if p != "__root__")
    return f"{loc}: {first['msg']}" if loc else first["msg"]


def parse_manifest(
    body: bytes | str,
    *,
    now: Optional[datetime] = None,
    default_ttl: Optional[timedelta] = None,
) -> TableManifest:
    """Turn a manifest API response body into a ``TableManifest``.

    Raises ``MalformedManifestError`` when the body is not a usable JSON
    object and ``NoDataFilesError`` when it lists no files. Nothing partial
    is returned on failure.
    """
    fetched_at = now or datetime.now(timezone.utc)
    if default_ttl is None:
        default_ttl = timedelta(seconds=settings.manifest_default_ttl_seconds)

    try:
        payload = ManifestPayload.model_validate_json(body)
    except ValidationError as e:
        raise MalformedManifestError(
            f"failed to parse manifest JSON: {_summarize(e)}"
        ) from e
    except ValueError as e:
        raise MalformedManifestError(f"failed to parse manifest JSON: {e}") from e

    expires_at = parse_expires_at(payload.expires_at)
    if expires_at is None:
        if payload.expires_at is not None:
            logger.warning(
                "Manifest for %s.%s has unparsable expires_at %r, using default TTL",
                payload.schema_name,
                payload.table,
                payload.expires_at,
            )
        expires_at = fetched_at + default_ttl

    if not payload.files:
        raise NoDataFilesError(payload.table)

    return TableManifest(
        table=payload.table,
        schema=payload.schema_name,
        files=tuple(payload.files),
        row_filters=tuple(payload.row_filters),
        column_masks=payload.column_masks,
        columns=tuple(
            ManifestColumn(name=c.name, declared_type=c.type) for c in payload.columns
        ),
        expires_at=expires_at,
        fetched_at=fetched_at,
    )
