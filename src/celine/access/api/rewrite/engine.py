from __future__ import annotations

import logging
from typing import Mapping, Optional

from sqlglot import exp

from celine.access.api.manifest.cache import ManifestCache
from celine.access.api.manifest.models import TableManifest
from celine.access.api.rewrite.expressions import parse_filter, parse_mask
from celine.access.api.rewrite.models import (
    PolicyFailMode,
    PolicyIssue,
    PolicyReport,
    RewriteResult,
)
from celine.access.core.config import settings
from celine.access.core.errors import ManifestError, PolicyExpressionError, RewriteError
from celine.access.security.models import AuthorizationContext

logger = logging.getLogger(__name__)

DEFAULT_SCHEMA = "main"
SOURCE_ALIAS = "__access_src"


def _table_alias(name: str) -> exp.TableAlias:
    return exp.TableAlias(this=exp.to_identifier(name))


def _and_all(conditions: list[exp.Expression]) -> Optional[exp.Expression]:
    """AND-combine conditions left to right, keeping OR/AND operands grouped."""
    combined: Optional[exp.Expression] = None
    for cond in conditions:
        if isinstance(cond, exp.Connector):
            cond = exp.Paren(this=cond)
        combined = cond if combined is None else exp.And(this=combined, expression=cond)
    return combined


class PolicyRewriteEngine:
    """Turn an unresolved table reference into a scan over its manifest files.

    Without row filters or masks the result is a bare
    ``read_parquet([...]) AS <table>``. Otherwise the scan is wrapped in

        (SELECT <columns, masked> FROM read_parquet([...]) AS __access_src
         WHERE <filter> AND <filter> ...) AS <table>
    """

    def __init__(
        self,
        cache: ManifestCache,
        *,
        dialect: Optional[str] = None,
        scan_function: Optional[str] = None,
        fail_mode: "PolicyFailMode | str | None" = None,
        source_alias: str = SOURCE_ALIAS,
    ):
        self.cache = cache
        self.dialect = dialect or settings.sql_dialect
        self.scan_function = scan_function or settings.scan_function
        self.fail_mode = PolicyFailMode.from_value(fail_mode or settings.policy_fail_mode)
        self.source_alias = source_alias

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def rewrite(
        self,
        table: str,
        schema: Optional[str],
        context: Optional[AuthorizationContext],
    ) -> Optional[RewriteResult]:
        """Build the replacement for ``schema.table``.

        Returns None when there is no authorization context: the table is
        not ours and the host resolves it as usual. Raises ``RewriteError``
        when the manifest cannot be obtained or, in closed mode, when a
        policy entry does not parse.
        """
        if context is None:
            return None

        schema = schema or DEFAULT_SCHEMA

        try:
            manifest = self.cache.get_or_fetch(context, schema, table)
        except ManifestError as e:
            logger.warning("Cannot resolve %s.%s: %s", schema, table, e.message)
            raise RewriteError(table, e.message) from e

        report = PolicyReport()
        fragment = self.build_fragment(table, manifest, report)

        if report.degraded:
            logger.warning(
                "Policies for %s.%s partially applied: %d issue(s)",
                schema,
                table,
                len(report.issues),
            )

        return RewriteResult(
            table=table,
            schema=schema,
            fragment=fragment,
            manifest=manifest,
            report=report,
        )

    def build_fragment(
        self,
        table: str,
        manifest: TableManifest,
        report: Optional[PolicyReport] = None,
    ) -> exp.Expression:
        report = report if report is not None else PolicyReport()

        if not manifest.has_policies:
            return self.base_scan(manifest.files, alias=table)

        select = exp.select(*self._projection(table, manifest, report)).from_(
            self.base_scan(manifest.files, alias=self.source_alias)
        )

        condition = _and_all(self._filters(table, manifest, report))
        if condition is not None:
            select = select.where(condition)

        return exp.Subquery(this=select, alias=_table_alias(table))

    def base_scan(self, files: tuple[str, ...] | list[str], *, alias: str) -> exp.Table:
        files_list = exp.Array(expressions=[exp.Literal.string(f) for f in files])
        return exp.Table(
            this=exp.Anonymous(this=self.scan_function, expressions=[files_list]),
            alias=_table_alias(alias),
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _degrade(
        self, table: str, report: PolicyReport, issue: PolicyIssue, error: Exception
    ) -> None:
        if self.fail_mode is PolicyFailMode.CLOSED:
            raise RewriteError(table, str(error)) from error
        logger.warning("%s: %s", table, error)
        report.add(issue)

    def _projection(
        self, table: str, manifest: TableManifest, report: PolicyReport
    ) -> list[exp.Expression]:
        masks = manifest.column_masks
        if not masks:
            return [exp.Star()]

        if not manifest.columns:
            # columns unknown: substitute masked ones in place with * REPLACE
            replacements = [
                exp.alias_(masked, column)
                for column, masked in self._parsed_masks(table, masks, report)
                if masked is not None
            ]
            return [exp.Star(replace=replacements) if replacements else exp.Star()]

        known = set(manifest.column_names)
        for column, expression in masks.items():
            if column not in known:
                logger.warning("%s: mask for undeclared column %r not applied", table, column)
                report.add(
                    PolicyIssue(
                        kind="unknown_mask_column",
                        target=column,
                        expression=expression,
                        reason="column not declared in manifest",
                    )
                )

        parsed = dict(
            self._parsed_masks(
                table, {c.name: masks[c.name] for c in manifest.columns if c.name in masks}, report
            )
        )
        projection: list[exp.Expression] = []
        for col in manifest.columns:
            masked = parsed.get(col.name)
            if masked is None:
                projection.append(exp.column(col.name))
            else:
                projection.append(exp.alias_(masked, col.name))
        return projection

    def _parsed_masks(
        self, table: str, masks: Mapping[str, str], report: PolicyReport
    ) -> list[tuple[str, Optional[exp.Expression]]]:
        """Parse each mask; ``None`` marks one dropped in open mode."""
        parsed: list[tuple[str, Optional[exp.Expression]]] = []
        for column, mask_sql in masks.items():
            try:
                parsed.append((column, parse_mask(column, mask_sql, dialect=self.dialect)))
            except PolicyExpressionError as e:
                self._degrade(
                    table,
                    report,
                    PolicyIssue(kind="mask", target=column, expression=mask_sql, reason=e.reason),
                    e,
                )
                parsed.append((column, None))
        return parsed

    def _filters(
        self, table: str, manifest: TableManifest, report: PolicyReport
    ) -> list[exp.Expression]:
        conditions: list[exp.Expression] = []
        for i, filter_sql in enumerate(manifest.row_filters):
            try:
                conditions.append(parse_filter(filter_sql, dialect=self.dialect, index=i))
            except PolicyExpressionError as e:
                self._degrade(
                    table,
                    report,
                    PolicyIssue(
                        kind="filter", target=e.target, expression=filter_sql, reason=e.reason
                    ),
                    e,
                )
        return conditions
