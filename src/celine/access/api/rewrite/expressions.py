from __future__ import annotations

import sqlglot
from sqlglot import exp
from sqlglot.errors import SqlglotError

from celine.access.core.errors import FilterParseError, MaskParseError


# A policy entry must be a scalar expression, never a statement.
_DISALLOWED_EXPRESSIONS = (
    exp.Query,
    exp.Insert,
    exp.Update,
    exp.Delete,
    exp.Merge,
    exp.Create,
    exp.Drop,
    exp.Alter,
    exp.TruncateTable,
    exp.Command,  # catches EXEC, CALL, COPY, etc.
)


def parse_policy_expression(sql: str, *, dialect: str) -> exp.Expression:
    """Parse one scalar SQL expression; raises ``ValueError`` with the reason."""
    if not sql or not sql.strip():
        raise ValueError("empty expression")

    try:
        statements = [s for s in sqlglot.parse(sql, read=dialect) if s is not None]
    except SqlglotError as e:
        raise ValueError(str(e).splitlines()[0] if str(e) else type(e).__name__) from e

    if len(statements) != 1:
        raise ValueError(f"expected one expression, got {len(statements)}")

    parsed = statements[0]
    # scalar subqueries are expressions
    if isinstance(parsed, _DISALLOWED_EXPRESSIONS) and not isinstance(parsed, exp.Subquery):
        raise ValueError(f"{parsed.key.upper()} statement is not an expression")

    if isinstance(parsed, exp.Alias):
        parsed = parsed.this
    return parsed


def parse_mask(column: str, sql: str, *, dialect: str) -> exp.Expression:
    """Parse the substitute expression for ``column``."""
    try:
        return parse_policy_expression(sql, dialect=dialect)
    except ValueError as e:
        raise MaskParseError(sql, str(e), target=column) from e


def parse_filter(sql: str, *, dialect: str, index: int | None = None) -> exp.Expression:
    """Parse one row filter predicate."""
    try:
        return parse_policy_expression(sql, dialect=dialect)
    except ValueError as e:
        target = f"row_filters[{index}]" if index is not None else None
        raise FilterParseError(sql, str(e), target=target) from e
