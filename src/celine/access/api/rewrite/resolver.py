from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Optional

import sqlglot
from sqlglot import exp

from celine.access.api.rewrite.engine import DEFAULT_SCHEMA, PolicyRewriteEngine
from celine.access.api.rewrite.models import RewriteResult
from celine.access.security.credentials import CredentialProvider

logger = logging.getLogger(__name__)

IsLocal = Callable[[str, str], bool]

# Names the host engine scans directly as files
_FILE_SUFFIXES = (
    ".parquet",
    ".csv",
    ".tsv",
    ".json",
    ".jsonl",
    ".ndjson",
    ".gz",
    ".zst",
)


# Tables being created or written are not reads
_WRITE_TARGET_PARENTS = (
    exp.Create,
    exp.Insert,
    exp.Delete,
    exp.Update,
    exp.Drop,
    exp.Alter,
    exp.Schema,
)


def _looks_like_file_path(name: str) -> bool:
    lowered = name.lower()
    return "/" in name or "\\" in name or lowered.endswith(_FILE_SUFFIXES)


def _cte_names(ast: exp.Expression) -> set[str]:
    return {cte.alias_or_name for cte in ast.find_all(exp.CTE)}


@dataclass(frozen=True)
class ResolvedQuery:
    ast: exp.Expression
    dialect: str
    rewrites: dict[str, RewriteResult] = field(default_factory=dict)

    @property
    def sql(self) -> str:
        return self.ast.sql(dialect=self.dialect)


def _never_local(schema: str, table: str) -> bool:
    return False


class QueryResolver:
    """Replace unresolved table references in a query with manifest scans.

    ``is_local(schema, table)`` tells whether the host engine already knows a
    table; those references, CTE names and file paths are left alone. Each
    remaining reference is handed to the rewrite engine with the session's
    current authorization.
    """

    def __init__(
        self,
        engine: PolicyRewriteEngine,
        credentials: CredentialProvider,
        *,
        is_local: Optional[IsLocal] = None,
        dialect: Optional[str] = None,
    ):
        self.engine = engine
        self.credentials = credentials
        self.is_local = is_local or _never_local
        self.dialect = dialect or engine.dialect

    def _candidates(self, ast: exp.Expression) -> list[exp.Table]:
        ctes = _cte_names(ast)
        tables: list[exp.Table] = []
        for table in ast.find_all(exp.Table):
            if not isinstance(table.this, exp.Identifier):
                # table functions, e.g. read_parquet(...)
                continue
            name = table.name
            if not table.db and name in ctes:
                continue
            if _looks_like_file_path(name):
                continue
            if isinstance(table.parent, _WRITE_TARGET_PARENTS) and table.arg_key == "this":
                continue
            if self.is_local(table.db or DEFAULT_SCHEMA, name):
                continue
            tables.append(table)
        return tables

    def resolve_ast(self, ast: exp.Expression) -> ResolvedQuery:
        out = ast.copy()
        rewrites: dict[str, RewriteResult] = {}

        candidates = self._candidates(out)
        if not candidates:
            return ResolvedQuery(ast=out, dialect=self.dialect)

        context = self.credentials.lookup_current_authorization()
        if context is None:
            logger.debug("No authorization in session, leaving %d table(s) alone", len(candidates))
            return ResolvedQuery(ast=out, dialect=self.dialect)

        for table in candidates:
            name = table.name
            result = self.engine.rewrite(name, table.db or DEFAULT_SCHEMA, context)
            if result is None:
                continue

            fragment = result.fragment.copy()
            user_alias = table.args.get("alias")
            if isinstance(user_alias, exp.TableAlias):
                fragment.set("alias", user_alias.copy())

            logger.debug("Replacing %s with %s", table.sql(dialect=self.dialect), name)
            table.replace(fragment)
            rewrites[f"{result.schema}.{name}"] = result

        return ResolvedQuery(ast=out, dialect=self.dialect, rewrites=rewrites)

    def resolve(self, sql: str) -> ResolvedQuery:
        """Parse ``sql`` and substitute remote tables.

        Raises ``RewriteError`` when a referenced table cannot be resolved
        while an authorization is present.
        """
        ast = sqlglot.parse_one(sql, read=self.dialect)
        return self.resolve_ast(ast)
