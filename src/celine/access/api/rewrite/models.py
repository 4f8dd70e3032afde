from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Literal, Optional

from sqlglot import exp

from celine.access.api.manifest.models import TableManifest

PolicyIssueKind = Literal["filter", "mask", "unknown_mask_column"]


class PolicyFailMode(str, Enum):
    """What to do when one row filter or mask does not parse.

    - OPEN: drop that entry (filter skipped, column passed through unmasked)
    - CLOSED: refuse to resolve the table
    """

    OPEN = "open"
    CLOSED = "closed"

    @classmethod
    def from_value(cls, value: "str | PolicyFailMode | None") -> "PolicyFailMode":
        if value is None:
            return cls.OPEN
        if isinstance(value, cls):
            return value
        try:
            return cls(value.lower())
        except ValueError as exc:
            raise ValueError(f"Invalid policy fail mode: {value}") from exc


@dataclass(frozen=True)
class PolicyIssue:
    kind: PolicyIssueKind
    target: Optional[str]
    expression: str
    reason: str


@dataclass
class PolicyReport:
    """Policy entries that were not applied during one rewrite."""

    issues: list[PolicyIssue] = field(default_factory=list)

    def add(self, issue: PolicyIssue) -> None:
        self.issues.append(issue)

    @property
    def degraded(self) -> bool:
        return bool(self.issues)

    @property
    def skipped_filters(self) -> list[PolicyIssue]:
        return [i for i in self.issues if i.kind == "filter"]

    @property
    def unmasked_columns(self) -> list[str]:
        return [i.target for i in self.issues if i.kind == "mask" and i.target]

    @property
    def unknown_mask_columns(self) -> list[str]:
        return [
            i.target for i in self.issues if i.kind == "unknown_mask_column" and i.target
        ]


@dataclass(frozen=True)
class RewriteResult:
    """Fragment substituted for an unresolved table reference.

    - fragment: ``exp.Table`` over the scan function when the manifest has no
      policies, otherwise an ``exp.Subquery`` applying masks and filters.
      Either way its alias is the referenced table name.
    """

    table: str
    schema: str
    fragment: exp.Expression
    manifest: TableManifest
    report: PolicyReport

    @property
    def is_direct_scan(self) -> bool:
        return isinstance(self.fragment, exp.Table)

    def sql(self, dialect: str = "duckdb") -> str:
        return self.fragment.sql(dialect=dialect)
