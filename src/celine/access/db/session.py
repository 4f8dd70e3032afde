"""DuckDB session that resolves remote tables through the manifest API."""

from __future__ import annotations

import logging
from datetime import timedelta
from types import TracebackType
from typing import Any, Optional, Sequence

import duckdb

from celine.access.api.manifest.cache import ManifestCache
from celine.access.api.manifest.client import ManifestClient
from celine.access.api.manifest.gateway import ManifestGateway
from celine.access.api.rewrite.engine import PolicyRewriteEngine
from celine.access.api.rewrite.resolver import QueryResolver, ResolvedQuery
from celine.access.core.config import Settings, settings as default_settings
from celine.access.security.credentials import SessionCredentials
from celine.access.security.models import AuthorizationContext

log = logging.getLogger(__name__)

_LOCAL_TABLE_SQL = """
SELECT 1
FROM information_schema.tables
WHERE lower(table_schema) = lower(?) AND lower(table_name) = lower(?)
LIMIT 1
"""


def build_cache(
    settings: Settings | None = None,
    *,
    gateway: ManifestGateway | None = None,
) -> ManifestCache:
    """Wire gateway, client and cache from settings."""
    cfg = settings or default_settings
    client = ManifestClient(
        gateway or ManifestGateway(timeout=cfg.http_timeout_seconds),
        timeout=cfg.http_timeout_seconds,
        default_ttl=timedelta(seconds=cfg.manifest_default_ttl_seconds),
    )
    return ManifestCache(
        client,
        safety_margin=timedelta(seconds=cfg.manifest_cache_safety_margin_seconds),
        maxsize=cfg.manifest_cache_maxsize,
    )


class AccessSession:
    """A DuckDB connection plus the manifest cache and credentials it uses.

    Queries run through ``execute`` have every table DuckDB does not know
    replaced by a scan of the remote files, with row filters and column
    masks applied. Without an authorization the SQL runs unchanged.
    """

    def __init__(
        self,
        connection: duckdb.DuckDBPyConnection | None = None,
        *,
        cache: ManifestCache | None = None,
        engine: PolicyRewriteEngine | None = None,
        credentials: SessionCredentials | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.settings = settings or default_settings
        self._owns_connection = connection is None
        self._con: duckdb.DuckDBPyConnection | None = (
            connection if connection is not None else duckdb.connect()
        )
        self.credentials = credentials or SessionCredentials()

        self._owns_cache = engine is None and cache is None
        if engine is None:
            engine = PolicyRewriteEngine(
                cache if cache is not None else build_cache(self.settings),
                dialect=self.settings.sql_dialect,
                scan_function=self.settings.scan_function,
                fail_mode=self.settings.policy_fail_mode,
            )
        self.engine = engine
        self.cache = engine.cache
        self.resolver = QueryResolver(
            engine,
            self.credentials,
            is_local=self.is_local,
            dialect=engine.dialect,
        )

    @property
    def con(self) -> duckdb.DuckDBPyConnection:
        if self._con is None:
            raise RuntimeError("session is closed")
        return self._con

    # ------------------------------------------------------------------
    # Authorization
    # ------------------------------------------------------------------

    def set_authorization(self, context: AuthorizationContext) -> None:
        self.credentials.set(context)

    def clear_authorization(self) -> None:
        self.credentials.clear()

    def lookup_current_authorization(self) -> Optional[AuthorizationContext]:
        return self.credentials.lookup_current_authorization()

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def is_local(self, schema: str, table: str) -> bool:
        row = self.con.execute(_LOCAL_TABLE_SQL, [schema, table]).fetchone()
        return row is not None

    def rewrite_sql(self, sql: str) -> ResolvedQuery:
        return self.resolver.resolve(sql)

    def execute(
        self, sql: str, parameters: Sequence[Any] | None = None
    ) -> duckdb.DuckDBPyConnection:
        resolved = self.rewrite_sql(sql)
        if resolved.rewrites:
            log.debug("Rewrote %s", ", ".join(sorted(resolved.rewrites)))
        if parameters is None:
            return self.con.execute(resolved.sql)
        return self.con.execute(resolved.sql, parameters)

    def invalidate(self, schema: str, table: str) -> int:
        return self.cache.invalidate(schema, table)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Close the connection if the session opened it."""
        if self._con is not None:
            if self._owns_connection:
                self._con.close()
            self._con = None
        if self._owns_cache:
            self.cache.clear()
            self.cache.client.gateway.close()

    def __enter__(self) -> "AccessSession":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()
